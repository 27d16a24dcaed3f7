"""
This file is the entry point for the 'foundryctl' command-line tool.
Run 'foundryctl' in your shell to use the CLI.

Every command prints one JSON object with a ``returncode`` and ``msg``.
Unsafe input exits with code 2, any other failure with code 1.
"""
import json
from typing import Any, Optional

import typer

from common.app_setup import print_and_log, print_error, setup_logging
from orchestrator.context import build_context
from orchestrator.errors import OrchestratorError, ValidationError
from orchestrator.models import ModelDescriptor, ModelSource
from orchestrator.orchestrator import Orchestrator
from orchestrator.settings import ConfigError, get_settings
from orchestrator.store import YamlModelStore

app = typer.Typer(add_completion=False, help="Manage models on the shared local inference runtime.")
cache_app = typer.Typer(add_completion=False, help="Inspect and switch the runtime's model cache directory.")
app.add_typer(cache_app, name="cache")


@app.callback()
def main(ctx: typer.Context):
    """Build the orchestrator from settings unless one was injected."""
    if ctx.obj is not None:
        return
    try:
        settings = get_settings()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)
    setup_logging(app_name="foundryctl", daemon=False, loglevel=settings.log_level)
    ctx.obj = Orchestrator(build_context(settings), YamlModelStore(settings.store_path))


def _emit(msg: str, **payload: Any) -> None:
    print_and_log(json.dumps({"returncode": 0, "msg": msg, **payload}, default=str))


def _fail(exc: Exception) -> None:
    code = 2 if isinstance(exc, ValidationError) else 1
    print_error(f"{type(exc).__name__}: {exc}")
    print_and_log(json.dumps({"returncode": code, "msg": str(exc), "error": type(exc).__name__}))
    raise typer.Exit(code)


def _dump(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


@app.command()
def init(ctx: typer.Context):
    """Start or attach to the runtime service."""
    orch: Orchestrator = ctx.obj
    try:
        info = orch.initialize()
    except OrchestratorError as e:
        _fail(e)
    _emit("Runtime ready", **info.model_dump())


@app.command()
def status(ctx: typer.Context):
    """Show runtime connector info and service health."""
    orch: Orchestrator = ctx.obj
    try:
        orch.initialize()
    except OrchestratorError as e:
        _fail(e)
    health = orch.check_service_health()
    _emit(f"Service {health.status}", runtime=orch.runtime.info.to_dict(), health=health.model_dump(mode="json"))


@app.command()
def models(ctx: typer.Context):
    """List catalog models and custom models found in the cache."""
    orch: Orchestrator = ctx.obj
    try:
        available = orch.list_available_models()
    except OrchestratorError as e:
        _fail(e)
    _emit(f"{len(available)} model(s) available", models=_dump(available))


@app.command()
def loaded(ctx: typer.Context):
    """List models currently loaded in the runtime."""
    orch: Orchestrator = ctx.obj
    try:
        current = orch.list_loaded_models()
    except OrchestratorError as e:
        _fail(e)
    _emit(f"{len(current)} model(s) loaded", models=_dump(current))


@app.command()
def register(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Logical model id"),
    alias: str = typer.Argument(..., help="Runtime alias, e.g. phi-4-mini"),
    backing_id: Optional[str] = typer.Option(None, help="Backing model identifier"),
    custom: bool = typer.Option(False, help="Model lives only in the cache directory"),
):
    """Add a model record to the store (status stopped)."""
    orch: Orchestrator = ctx.obj
    if orch.store.get_model(model_id) is not None:
        _fail(OrchestratorError(f"Model {model_id} is already registered"))
    record = ModelDescriptor(
        id=model_id,
        alias=alias,
        model_id=backing_id,
        source=ModelSource.CACHE if custom else ModelSource.CATALOG,
        is_custom=custom,
    )
    orch.store.save_model(record)
    _emit(f"Registered {model_id}", model=record.model_dump(mode="json"))


@app.command()
def load(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Logical model id"),
    alias: Optional[str] = typer.Option(None, help="Runtime alias (defaults to the registered alias)"),
    device: Optional[str] = typer.Option(None, help="Device, e.g. CPU or GPU"),
    ttl: Optional[int] = typer.Option(None, min=1, help="Seconds the runtime keeps the model resident"),
):
    """Load a model into the shared runtime."""
    orch: Orchestrator = ctx.obj
    record = orch.store.get_model(model_id)
    alias = alias or (record.alias if record else None)
    if not alias:
        _fail(OrchestratorError(f"Model {model_id} is not registered; pass --alias"))
    try:
        info = orch.load_model(model_id, alias, device, ttl or orch.ctx.settings.default_ttl)
    except OrchestratorError as e:
        _fail(e)
    _emit(f"Loaded {model_id}", endpoint=orch.get_endpoint(), model=info.model_dump(mode="json"))


@app.command()
def unload(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Logical model id"),
    alias: Optional[str] = typer.Option(None, help="Runtime alias (defaults to the one recorded at load)"),
    device: Optional[str] = typer.Option(None),
    force: bool = typer.Option(False, help="Unload even if requests are in flight"),
):
    """Unload a model; its record ends stopped either way."""
    orch: Orchestrator = ctx.obj
    record = orch.store.get_model(model_id)
    alias = alias or (record and (record.runtime_alias or record.alias)) or model_id
    try:
        orch.unload_model(model_id, alias, device, force)
    except OrchestratorError as e:
        _fail(e)
    _emit(f"Unloaded {model_id}")


@app.command()
def health(ctx: typer.Context, model: Optional[str] = typer.Argument(None, help="Alias or id; omit for the service")):
    """Report model or service health."""
    orch: Orchestrator = ctx.obj
    if model:
        report = orch.check_model_health(model)
    else:
        try:
            orch.initialize()
        except OrchestratorError as e:
            _fail(e)
        report = orch.check_service_health()
    _emit(f"{model or 'service'} is {report.status}", health=report.model_dump(mode="json"))


@app.command()
def cleanup(ctx: typer.Context):
    """Force-unload every loaded model."""
    orch: Orchestrator = ctx.obj
    try:
        orch.initialize()
    except OrchestratorError as e:
        _fail(e)
    orch.cleanup()
    _emit("Cleanup complete")


##### cache #####

@cache_app.command("location")
def cache_location(ctx: typer.Context):
    """Show the active cache directory."""
    orch: Orchestrator = ctx.obj
    try:
        location = orch.ctx.cache.get_location()
    except OrchestratorError as e:
        _fail(e)
    _emit(location.path, location=location.path, is_default=location.is_default,
          default_path=orch.ctx.cache.get_default_path())


@cache_app.command("switch")
def cache_switch(ctx: typer.Context, path: str = typer.Argument(..., help="Cache directory, or 'default'")):
    """Point the runtime at another cache directory.

    'default' needs a default captured earlier in the same process, so it
    only succeeds in long-lived hosts that queried the location first.
    """
    orch: Orchestrator = ctx.obj
    try:
        result = orch.ctx.cache.switch_cache(path)
    except OrchestratorError as e:
        _fail(e)
    _emit(f"Switched cache to {result.location}", **result.model_dump())


@cache_app.command("ls")
def cache_ls(ctx: typer.Context):
    """List models in the active cache directory."""
    orch: Orchestrator = ctx.obj
    records = orch.ctx.cache.list_cache_models()
    _emit(f"Found {len(records)} model(s) in current cache", models=_dump(records))


@cache_app.command("check")
def cache_check(ctx: typer.Context):
    """Check that the runtime CLI is installed."""
    orch: Orchestrator = ctx.obj
    if not orch.ctx.cache.check_cli_available():
        _fail(OrchestratorError(f"{orch.ctx.settings.cli_binary} CLI not found in PATH"))
    _emit(f"{orch.ctx.settings.cli_binary} CLI available")


if __name__ == "__main__":
    app()
