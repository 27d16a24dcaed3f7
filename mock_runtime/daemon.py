"""
mock_runtime.daemon
-------------------
This module implements a mock of the shared inference runtime REST API
using FastAPI. It provides endpoints to list the catalog, download, load and
unload models, list loaded models and answer the OpenAI-compatible model
listing, all from an in-memory store. Intended for local development,
testing and demonstration purposes.
"""
import json
import logging
import os
import socket
import sys

import typer
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from common.app_setup import setup_logging

logger = logging.getLogger("mock_runtime")


# Pydantic model for catalog entries (camelCase on the wire, like the real runtime)
class CatalogEntryModel(BaseModel):
    id: str
    alias: str
    deviceType: str = "CPU"
    executionProvider: str = "CPUExecutionProvider"
    modelSize: int = Field(default=0, ge=0, description="Size in MB")
    version: str = "1"


class DownloadRequest(BaseModel):
    model: str = Field(..., min_length=1)
    device: str | None = None
    token: str | None = None
    force: bool = False


DEFAULT_CATALOG = [
    CatalogEntryModel(id="Phi-4-mini-instruct-generic-cpu:1", alias="phi-4-mini", modelSize=4800),
    CatalogEntryModel(id="Phi-3.5-mini-instruct-generic-cpu:1", alias="phi-3.5-mini", modelSize=2500),
    CatalogEntryModel(id="qwen2.5-0.5b-instruct-generic-cpu:3", alias="qwen2.5-0.5b", modelSize=800, version="3"),
]

# In-memory mock runtime state
catalog: dict[str, CatalogEntryModel] = {}
downloaded: set[str] = set()
loaded: dict[str, dict] = {}


def reset_state(entries: list[CatalogEntryModel] | None = None, downloaded_aliases: set[str] | None = None) -> None:
    """Restore the catalog; by default only the first entry is downloaded."""
    catalog.clear()
    downloaded.clear()
    loaded.clear()
    for entry in entries if entries is not None else DEFAULT_CATALOG:
        catalog[entry.alias] = entry
    if downloaded_aliases is None:
        downloaded_aliases = {next(iter(catalog))} if catalog else set()
    downloaded.update(downloaded_aliases)


reset_state()

app = FastAPI()


def _resolve(name: str) -> CatalogEntryModel:
    if name in catalog:
        return catalog[name]
    for entry in catalog.values():
        if entry.id == name:
            return entry
    logger.warning(f"Model not found in catalog: {name!r}")
    raise HTTPException(status_code=404, detail=f"Model '{name}' not found in catalog")


def get_server():
    # Helper to get the running server instance
    return getattr(app.state, "uvicorn_server", None)


@app.post("/shutdown")
def shutdown():
    """Shutdown the server gracefully."""
    logger.info("Shutdown requested via /shutdown endpoint.")
    server = get_server()
    if server:
        server.should_exit = True
    return {"message": "Server shutting down"}


@app.get("/openai/status")
def status():
    """Health/status endpoint of the runtime."""
    server = get_server()
    state = "shutting_down" if server and server.should_exit else "ok"
    return {"status": state, "loaded": len(loaded), "ModelDirPath": os.environ.get("MOCK_RUNTIME_CACHE", "/tmp/mock-cache")}


@app.get("/foundry/list", response_model=list[CatalogEntryModel])
def list_catalog() -> list[CatalogEntryModel]:
    logger.info("Listing catalog")
    return list(catalog.values())


@app.post("/openai/download")
def download(req: DownloadRequest):
    """Stream JSON-lines progress, then a final success line."""
    entry = _resolve(req.model)

    def events():
        if entry.alias in downloaded and not req.force:
            yield json.dumps({"progress": 100.0}) + "\n"
        else:
            for pct in (0.0, 50.0, 100.0):
                yield json.dumps({"progress": pct}) + "\n"
            downloaded.add(entry.alias)
            logger.info(f"Downloaded model {entry.alias}")
        yield json.dumps({"success": True, "errorMessage": None}) + "\n"

    return StreamingResponse(events(), media_type="application/x-ndjson")


@app.get("/openai/load/{name}")
def load(name: str, ttl: int = 600, device: str | None = None):
    entry = _resolve(name)
    if entry.alias not in downloaded:
        raise HTTPException(status_code=400, detail=f"Model '{name}' has not been downloaded yet")
    descriptor = entry.model_dump()
    descriptor["ttl"] = ttl
    if device:
        descriptor["deviceType"] = device
    loaded[entry.id] = descriptor
    logger.info(f"Model {entry.alias} loaded (ttl={ttl})")
    return descriptor


@app.get("/openai/unload/{name}")
def unload(name: str, force: bool = False, device: str | None = None):
    entry = _resolve(name)
    if entry.id not in loaded:
        raise HTTPException(status_code=404, detail=f"Model '{name}' is not loaded")
    del loaded[entry.id]
    logger.info(f"Model {entry.alias} unloaded (force={force})")
    return {"unloaded": entry.id}


@app.get("/openai/loadedmodels")
def loaded_models() -> list[dict]:
    return list(loaded.values())


@app.get("/v1/models")
def openai_models():
    """OpenAI-compatible listing, used as the inference-side probe."""
    return {"object": "list", "data": [{"id": m["id"], "object": "model"} for m in loaded.values()]}


app_cli = typer.Typer()


@app_cli.command()
def run(port: int = typer.Option(None, help="Port to run the server on (auto if not set)")):
    """Run the FastAPI app using Uvicorn on localhost, reporting the actual port used."""
    setup_logging(app_name="mock_runtime", daemon=False)
    if port is None or port == 0:
        # Bind to port 0 to get a free port, then close and reuse
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('127.0.0.1', 0))
            port = s.getsockname()[1]
        logger.info(f"Selected port: {port}")
        print(json.dumps({"event": "port_selected", "port": port}), flush=True)
    else:
        # Check if port is available
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind(('127.0.0.1', port))
            except OSError:
                logger.error(f"ERROR: Port {port} is already in use.")
                sys.exit(98)  # 98 = EADDRINUSE
        logger.info(f"Using port: {port}")
        print(json.dumps({"event": "port_used", "port": port}), flush=True)
    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="info")
    server = uvicorn.Server(config)
    app.state.uvicorn_server = server  # Store server instance for shutdown
    logger.info(f"Starting Uvicorn server on port {port}")
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt in main thread")
    logger.info("Server stopped, exiting process")


if __name__ == "__main__":
    app_cli()
