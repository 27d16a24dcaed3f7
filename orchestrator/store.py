"""Durable record of configured models.

The orchestrator is the only writer of lifecycle fields (status, endpoint,
runtime metadata, last_error, heartbeat). Registration and deletion belong to
whoever owns the model list (the CLI ``register`` command, an API layer).
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Protocol

import yaml

from .models import ModelDescriptor, coerce_descriptor, load_text_payload

logger = logging.getLogger(__name__)


class ModelStore(Protocol):
    def get_model(self, model_id: str) -> ModelDescriptor | None: ...
    def save_model(self, record: ModelDescriptor) -> None: ...
    def delete_model(self, model_id: str) -> bool: ...
    def list_models(self) -> list[ModelDescriptor]: ...


class MemoryModelStore:
    """Dict-backed store, used by tests and short-lived processes."""

    def __init__(self, records: list[ModelDescriptor] | None = None) -> None:
        self._records: dict[str, ModelDescriptor] = {r.id: r for r in records or []}

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        return self._records.get(model_id)

    def save_model(self, record: ModelDescriptor) -> None:
        self._records[record.id] = record

    def delete_model(self, model_id: str) -> bool:
        return self._records.pop(model_id, None) is not None

    def list_models(self) -> list[ModelDescriptor]:
        return list(self._records.values())


class YamlModelStore:
    """Single YAML document mapping model id → descriptor.

    The whole file is rewritten on each save (write to a temp file, then
    replace) so a crash never leaves a half-written document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(os.path.expanduser(str(path)))
        self._lock = threading.Lock()

    def _read(self) -> dict[str, ModelDescriptor]:
        if not self.path.exists():
            return {}
        payload = load_text_payload(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{self.path}: expected a mapping of model id to descriptor")
        return {str(k): coerce_descriptor(v) for k, v in payload.items()}

    def _write(self, records: dict[str, ModelDescriptor]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {k: v.model_dump(mode="json") for k, v in records.items()}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(yaml.safe_dump(data, sort_keys=True, allow_unicode=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        with self._lock:
            return self._read().get(model_id)

    def save_model(self, record: ModelDescriptor) -> None:
        with self._lock:
            records = self._read()
            records[record.id] = record
            self._write(records)
        logger.debug("Saved model %s (status=%s)", record.id, record.status.value)

    def delete_model(self, model_id: str) -> bool:
        with self._lock:
            records = self._read()
            if records.pop(model_id, None) is None:
                return False
            self._write(records)
            return True

    def list_models(self) -> list[ModelDescriptor]:
        with self._lock:
            return list(self._read().values())


__all__ = ["MemoryModelStore", "ModelStore", "YamlModelStore"]
