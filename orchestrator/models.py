"""Pydantic models that capture orchestrator domain concepts."""

from __future__ import annotations

import json
import time
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

UNKNOWN = "unknown"


class ModelStatus(str, Enum):
    STOPPED = "stopped"
    DOWNLOADING = "downloading"
    RUNNING = "running"
    ERROR = "error"


class ModelSource(str, Enum):
    CATALOG = "catalog"
    CACHE = "cache"


class WireModel(BaseModel):
    """Base for records exchanged with the runtime, which speaks camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CatalogModel(WireModel):
    """A model known to the runtime's built-in registry."""

    id: str
    alias: str
    device_type: str = Field(default=UNKNOWN, alias="deviceType")
    execution_provider: str = Field(default=UNKNOWN, alias="executionProvider")
    model_size: str | int | float | None = Field(default=None, alias="modelSize")
    version: str | int | None = None


class LoadedModelInfo(WireModel):
    """Runtime-reported descriptor of a model that is currently loaded."""

    id: str
    alias: str
    version: str | int | None = UNKNOWN
    device_type: str = Field(default=UNKNOWN, alias="deviceType")
    execution_provider: str = Field(default=UNKNOWN, alias="executionProvider")
    model_size: str | int | float | None = Field(default=UNKNOWN, alias="modelSize")

    @classmethod
    def minimal(cls, alias: str) -> LoadedModelInfo:
        """Descriptor for a model loaded by the CLI, which reports no metadata."""
        return cls(id=alias, alias=alias, version=UNKNOWN, device_type=UNKNOWN,
                   execution_provider=UNKNOWN, model_size=UNKNOWN)


class CacheModelRecord(BaseModel):
    """One model physically present in the active cache directory."""

    alias: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)
    description: str = ""
    source: ModelSource = ModelSource.CACHE


class AvailableModel(BaseModel):
    """Row of the merged catalog + cache listing."""

    id: str
    alias: str
    description: str = ""
    version: str | int | None = None
    device_type: str | None = None
    execution_provider: str | None = None
    model_size: str | int | float | None = None
    source: ModelSource = ModelSource.CATALOG
    is_custom: bool = False


class CacheLocation(BaseModel):
    path: str
    is_default: bool = False


class SwitchResult(BaseModel):
    success: bool = True
    location: str
    is_default: bool = False


class ServiceInfo(BaseModel):
    endpoint: str
    service_url: str


class HealthReport(BaseModel):
    status: str
    healthy: bool = False
    endpoint: str | None = None
    last_check: float | None = None
    error: str | None = None


class ModelDescriptor(BaseModel):
    """Configured model persisted by the store.

    ``status``, ``endpoint`` and the runtime metadata are lifecycle fields
    written only by the orchestrator.
    """

    id: str = Field(..., min_length=1, description="Logical model id")
    alias: str = Field(..., min_length=1, description="Alias used against the runtime")
    model_id: str | None = Field(default=None, description="Backing model identifier")
    status: ModelStatus = ModelStatus.STOPPED
    endpoint: str | None = None
    runtime_id: str | None = None
    runtime_alias: str | None = None
    version: str | int | None = None
    device_type: str | None = None
    execution_provider: str | None = None
    model_size: str | int | float | None = None
    last_error: str | None = None
    last_heartbeat: float | None = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    source: ModelSource = ModelSource.CATALOG
    is_custom: bool = False

    def with_updates(self, **fields: Any) -> ModelDescriptor:
        """Return a validated copy with ``fields`` applied and ``updated_at`` stamped."""
        payload = self.model_dump(mode="python")
        payload.update(fields)
        if "updated_at" not in fields:
            payload["updated_at"] = time.time()
        return ModelDescriptor.model_validate(payload)


# ---------------------------------------------------------------------------
# helpers


def coerce_descriptor(value: Any) -> ModelDescriptor:
    """Normalize supported inputs into a ModelDescriptor instance."""
    if isinstance(value, ModelDescriptor):
        return value
    payload: Mapping[str, Any]
    if isinstance(value, Mapping):
        payload = value
    elif isinstance(value, (str, bytes)):
        payload = load_text_payload(value)
    elif isinstance(value, Path):
        payload = load_text_payload(value.read_text())
    else:
        raise TypeError("Unsupported value for a model descriptor")
    try:
        return ModelDescriptor.model_validate(payload)
    except SchemaError as exc:
        raise ValueError("Invalid model descriptor payload") from exc


def load_text_payload(raw: str | bytes) -> dict[str, Any]:
    """Interpret raw text as YAML first, falling back to JSON."""
    text = raw.decode() if isinstance(raw, bytes) else raw
    try:
        return yaml.safe_load(text) or {}
    except yaml.YAMLError:
        return json.loads(text)


__all__ = [
    "AvailableModel",
    "CacheLocation",
    "CacheModelRecord",
    "CatalogModel",
    "HealthReport",
    "LoadedModelInfo",
    "ModelDescriptor",
    "ModelSource",
    "ModelStatus",
    "ServiceInfo",
    "SwitchResult",
    "coerce_descriptor",
    "load_text_payload",
]
