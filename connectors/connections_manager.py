# connections_manager.py
"""
connections_manager.py
----------------------
Creates runtime connectors.

Connectors are proxy objects to the shared inference runtime. No connector
is cached here: each RuntimeContext owns the one it was built with, so two
contexts never share a handle by accident.
"""

from typing import Callable, Optional

import httpx

from connectors.foundry_cli import FoundryCLI
from connectors.foundry_connector import FoundryRuntime
from connectors.runtime_interface import ModelCatalogClient
from orchestrator.settings import Settings


def _foundry_local(settings: Settings, cli: FoundryCLI, client: Optional[httpx.Client]) -> ModelCatalogClient:
    return FoundryRuntime(
        cli,
        service_url=settings.runtime_url,
        process_marker=settings.service_process_marker,
        timeout=settings.http_timeout,
        download_timeout=settings.download_timeout,
        client=client,
    )


_RUNTIME_TYPES: dict[str, Callable[[Settings, FoundryCLI, Optional[httpx.Client]], ModelCatalogClient]] = {
    "foundry_local": _foundry_local,
}


def create_cli(settings: Settings) -> FoundryCLI:
    return FoundryCLI(binary=settings.cli_binary, timeout=settings.command_timeout)


def open_runtime(
    runtime_type: str,
    settings: Settings,
    cli: Optional[FoundryCLI] = None,
    client: Optional[httpx.Client] = None,
) -> ModelCatalogClient:
    """
    Build a connector for the given runtime type.
    The connector is not started; Orchestrator.initialize() does that.
    """
    factory = _RUNTIME_TYPES.get(runtime_type)
    # Add other runtime types to _RUNTIME_TYPES as needed
    if factory is None:
        raise ValueError(f"Unsupported runtime type: {runtime_type}")
    return factory(settings, cli or create_cli(settings), client)
