"""Per-process state handed to the orchestrator instead of module singletons."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import httpx

from connectors.connections_manager import create_cli, open_runtime
from connectors.runtime_interface import ModelCatalogClient

from .cache_manager import CacheManager
from .models import LoadedModelInfo
from .settings import Settings


@dataclass
class RuntimeContext:
    """Live runtime handle, loaded-model map and cache manager.

    The cache manager holds the captured default cache path. Nothing here is
    locked: callers must not race load/unload for the same logical id.
    """

    runtime: ModelCatalogClient
    cache: CacheManager
    settings: Settings = field(default_factory=Settings)
    loaded_models: dict[str, LoadedModelInfo] = field(default_factory=dict)
    initialized: bool = False

    def find_logical_id(self, runtime_id_or_alias: str) -> Optional[str]:
        """Map a runtime-side id or alias back to the logical id it was loaded under."""
        for model_id, info in self.loaded_models.items():
            if runtime_id_or_alias in (info.id, info.alias):
                return model_id
        return None


def build_context(
    settings: Settings,
    runtime_type: str = "foundry_local",
    client: Optional[httpx.Client] = None,
) -> RuntimeContext:
    """Wire a context from settings; CLI runner shared by the runtime and cache manager."""
    cli = create_cli(settings)
    runtime = open_runtime(runtime_type, settings, cli=cli, client=client)
    return RuntimeContext(runtime=runtime, cache=CacheManager(cli), settings=settings)


__all__ = ["RuntimeContext", "build_context"]
