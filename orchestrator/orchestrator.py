"""
orchestrator.py
---------------
Moves logical models in and out of service on the one shared runtime.

Every model is loaded into the same runtime process and served from the same
endpoint; the orchestrator keeps the logical id → runtime descriptor map,
drives the load/unload state machine and keeps the persisted records in step
with what the runtime actually did.

Load state machine::

    STOPPED --load--> RUNNING
    STOPPED --not downloaded--> DOWNLOADING --download + retry--> RUNNING
    STOPPED --unknown to catalog--> (alias allow-list) --CLI load--> RUNNING
    any --unrecovered failure--> ERROR
    RUNNING --unload--> STOPPED
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

import httpx

from common.app_setup import get_service_logger
from connectors.runtime_interface import ProgressCallback

from .context import RuntimeContext
from .errors import (
    NotDownloadedError,
    NotFoundInCatalogError,
    NotInitializedError,
    OperationalError,
)
from .models import (
    AvailableModel,
    CacheModelRecord,
    CatalogModel,
    HealthReport,
    LoadedModelInfo,
    ModelSource,
    ModelStatus,
    ServiceInfo,
)
from .store import ModelStore
from .validation import validate_model_alias

logger = logging.getLogger(__name__)

DEFAULT_TTL = 600

# Shown when the catalog cannot be listed at all
FALLBACK_MODELS = (
    ("phi-3.5-mini", "Phi-3.5 Mini"),
    ("phi-4-mini", "Phi-4 Mini"),
    ("qwen2.5-0.5b", "Qwen 2.5 0.5B"),
    ("llama-3.2-1b", "Llama 3.2 1B"),
    ("llama-3.2-3b", "Llama 3.2 3B"),
)


class Orchestrator:
    """Sole authority for the lifecycle of models on the shared runtime.

    Args:
        context: live runtime handle, loaded-model map and cache manager.
        store: persisted model records; only lifecycle fields are written here.
    """

    def __init__(self, context: RuntimeContext, store: ModelStore):
        self.ctx = context
        self.store = store

    @property
    def runtime(self):
        return self.ctx.runtime

    # --- service -------------------------------------------------------------

    def initialize(self) -> ServiceInfo:
        """Start or attach to the runtime. Safe to call repeatedly."""
        if self.ctx.initialized and self.runtime.endpoint:
            logger.debug("Orchestrator already initialized")
            return self._service_info()

        logger.info("Initializing runtime")
        try:
            self.runtime.start_service()
        except Exception as exc:
            logger.error("Failed to initialize runtime: %s", exc)
            self.ctx.initialized = False
            raise
        self.ctx.initialized = True
        info = self._service_info()
        logger.info("Runtime ready: endpoint=%s service_url=%s", info.endpoint, info.service_url)
        return info

    def _service_info(self) -> ServiceInfo:
        return ServiceInfo(endpoint=self.runtime.endpoint, service_url=self.runtime.service_url)

    def is_service_running(self) -> bool:
        if not self.ctx.initialized:
            return False
        try:
            return self.runtime.is_service_running()
        except OperationalError as exc:
            logger.error("Error checking service status: %s", exc)
            return False

    def get_endpoint(self) -> Optional[str]:
        return self.runtime.endpoint

    def get_inference_client(self) -> httpx.Client:
        """One client for every model; requests pick the model by id."""
        if not self.ctx.initialized:
            raise NotInitializedError("Orchestrator not initialized. Call initialize() first.")
        return self.runtime.inference_client()

    # --- listings ------------------------------------------------------------

    def list_available_models(self) -> list[AvailableModel]:
        """Catalog models plus cache-only (custom) models."""
        self.initialize()
        try:
            catalog = self.runtime.list_catalog_models()
        except OperationalError as exc:
            logger.error("Failed to list catalog models: %s", exc)
            logger.warning("Returning fallback model list")
            return fallback_models()
        logger.info("Catalog models fetched: %d", len(catalog))

        cache = self.ctx.cache.list_cache_models()
        merged = merge_catalog_and_cache(catalog, cache)
        logger.info("Models merged: catalog=%d cache=%d total=%d", len(catalog), len(cache), len(merged))
        return merged

    def list_loaded_models(self) -> list[LoadedModelInfo]:
        """Runtime's live view, or the in-memory snapshot when the runtime can't answer."""
        self.initialize()
        try:
            models = self.runtime.list_loaded_models()
        except OperationalError as exc:
            logger.error("Failed to list loaded models: %s", exc)
            return self.get_all_loaded_models()
        logger.info("Loaded models fetched: %d", len(models))
        return models

    def get_model_info(self, alias_or_id: str) -> CatalogModel:
        self.initialize()
        info = self.runtime.get_model_info(alias_or_id)
        if info is None:
            raise NotFoundInCatalogError(f"Model {alias_or_id} not found in catalog")
        return info

    def get_loaded_model_info(self, model_id: str) -> Optional[LoadedModelInfo]:
        return self.ctx.loaded_models.get(model_id)

    def get_all_loaded_models(self) -> list[LoadedModelInfo]:
        return list(self.ctx.loaded_models.values())

    # --- lifecycle -----------------------------------------------------------

    def download_model(self, alias: str, device: Optional[str] = None,
                       on_progress: Optional[ProgressCallback] = None) -> None:
        self.initialize()
        log = get_service_logger(alias)
        log.info("Downloading model (device=%s)", device)
        try:
            self.runtime.download_model(alias, device, None, False, on_progress)
        except Exception as exc:
            log.error("Download failed: %s", exc)
            raise
        log.info("Model downloaded")

    def load_model(self, model_id: str, alias: str, device: Optional[str] = None,
                   ttl: int = DEFAULT_TTL) -> LoadedModelInfo:
        """Load ``alias`` into the shared runtime under the logical id ``model_id``.

        Not-downloaded models are downloaded and the load retried once; models
        unknown to the catalog go through the CLI after the alias passes the
        allow-list. Any failure left unrecovered marks the record ERROR and is
        re-raised.
        """
        self.initialize()
        log = get_service_logger(alias)
        log.info("Loading model %s (device=%s ttl=%s)", model_id, device, ttl)
        try:
            try:
                info = self.runtime.load_model(alias, device, ttl)
            except NotDownloadedError:
                log.info("Model not downloaded, downloading now")
                self._update_record(model_id, status=ModelStatus.DOWNLOADING, last_error=None)
                self.download_model(alias, device)
                log.info("Download complete, loading model")
                info = self.runtime.load_model(alias, device, ttl)
            except NotFoundInCatalogError:
                log.info("Model not in catalog, trying CLI fallback for custom model")
                info = self._load_custom_model(alias, ttl)
        except Exception as exc:
            log.error("Load failed: %s", exc)
            self._update_record(model_id, status=ModelStatus.ERROR, endpoint=None, last_error=str(exc))
            raise

        self.ctx.loaded_models[model_id] = info
        now = time.time()
        self._update_record(
            model_id,
            status=ModelStatus.RUNNING,
            endpoint=self.runtime.endpoint,
            runtime_id=info.id,
            runtime_alias=info.alias,
            version=info.version,
            device_type=info.device_type,
            execution_provider=info.execution_provider,
            model_size=info.model_size,
            last_error=None,
            last_heartbeat=now,
            updated_at=now,
        )
        log.info("Model loaded: id=%s runtime_id=%s device=%s provider=%s",
                 model_id, info.id, info.device_type, info.execution_provider)
        return info

    def _load_custom_model(self, alias: str, ttl: int) -> LoadedModelInfo:
        log = get_service_logger(alias)
        # Raises before any process is spawned
        validate_model_alias(alias)
        log.info("Loading custom model via CLI (ttl=%s)", ttl)
        output = self.ctx.cache.load_cached_model(alias, ttl)
        log.info("Custom model loaded via CLI: %s", output.strip())
        return LoadedModelInfo.minimal(alias)

    def unload_model(self, model_id: str, alias: str, device: Optional[str] = None,
                     force: bool = False) -> None:
        """Unload from the runtime; the record always ends STOPPED with no endpoint.

        A runtime failure is logged and re-raised after the record is corrected.
        """
        self.initialize()
        log = get_service_logger(alias)
        info = self.ctx.loaded_models.get(model_id)
        runtime_alias = info.alias if info else alias
        log.info("Unloading model %s (runtime alias=%s force=%s)", model_id, runtime_alias, force)
        try:
            self.runtime.unload_model(runtime_alias, device, force)
        except Exception as exc:
            log.error("Unload failed: %s", exc)
            raise
        finally:
            self.ctx.loaded_models.pop(model_id, None)
            now = time.time()
            self._update_record(model_id, status=ModelStatus.STOPPED, endpoint=None,
                                last_heartbeat=now, updated_at=now)
        log.info("Model unloaded")

    def cleanup(self) -> None:
        """Force-unload everything the runtime reports as loaded."""
        if not self.ctx.initialized:
            logger.info("Nothing to cleanup")
            return
        logger.info("Cleaning up - unloading all models")
        for model in self.list_loaded_models():
            runtime_alias = model.alias or model.id
            model_id = self.ctx.find_logical_id(runtime_alias) or runtime_alias
            try:
                self.unload_model(model_id, runtime_alias, None, force=True)
                logger.info("Unloaded model %s", model.id)
            except Exception as exc:  # noqa: BLE001 - keep sweeping
                logger.error("Error unloading model %s: %s", model.id, exc)
        self.ctx.loaded_models.clear()
        logger.info("Cleanup complete")

    # --- health --------------------------------------------------------------

    def check_model_health(self, alias_or_id: str) -> HealthReport:
        """Healthy iff the runtime lists the model as loaded. No inference probe."""
        try:
            loaded = self.list_loaded_models()
        except Exception as exc:  # noqa: BLE001 - reported, not raised
            return HealthReport(status="error", healthy=False, error=str(exc))
        endpoint = self.runtime.endpoint
        if not any(alias_or_id in (m.alias, m.id) for m in loaded):
            return HealthReport(status=ModelStatus.STOPPED.value, healthy=False, endpoint=endpoint)
        return HealthReport(status=ModelStatus.RUNNING.value, healthy=True, endpoint=endpoint,
                            last_check=time.time())

    def check_service_health(self) -> HealthReport:
        """Process liveness plus a cheap round trip against the inference endpoint."""
        if not self.ctx.initialized:
            return HealthReport(status="not_initialized", healthy=False)
        try:
            if not self.runtime.is_service_running():
                return HealthReport(status=ModelStatus.STOPPED.value, healthy=False)
            try:
                self.runtime.probe()
            except OperationalError:
                return HealthReport(status="error", healthy=False,
                                    error="Service running but not responding")
        except OperationalError as exc:
            return HealthReport(status="error", healthy=False, error=str(exc))
        return HealthReport(status=ModelStatus.RUNNING.value, healthy=True,
                            endpoint=self.runtime.endpoint, last_check=time.time())

    # --- persistence ---------------------------------------------------------

    def _update_record(self, model_id: str, **fields) -> None:
        record = self.store.get_model(model_id)
        if record is None:
            logger.debug("No persisted record for %s; skipping status update", model_id)
            return
        self.store.save_model(record.with_updates(**fields))


# ---------------------------------------------------------------------------
# helpers


def merge_catalog_and_cache(
    catalog: Iterable[CatalogModel], cache: Iterable[CacheModelRecord]
) -> list[AvailableModel]:
    """Catalog rows first, then each cache model unknown to the catalog, once.

    A cache model is custom iff neither its id nor its alias matches any
    catalog id or alias.
    """
    catalog = list(catalog)
    merged = [
        AvailableModel(
            id=m.id,
            alias=m.alias,
            description=f"{m.alias} ({m.device_type})",
            version=m.version,
            device_type=m.device_type,
            execution_provider=m.execution_provider,
            model_size=m.model_size,
            source=ModelSource.CATALOG,
            is_custom=False,
        )
        for m in catalog
    ]
    known = {m.id for m in catalog} | {m.alias for m in catalog}
    seen: set[str] = set()
    for record in cache:
        if record.id in known or record.alias in known or record.id in seen:
            continue
        seen.add(record.id)
        merged.append(AvailableModel(
            id=record.id,
            alias=record.alias,
            description=f"🔧 {record.description or record.alias}",
            source=ModelSource.CACHE,
            is_custom=True,
        ))
    return merged


def fallback_models() -> list[AvailableModel]:
    return [
        AvailableModel(id=alias, alias=alias, description=description, is_custom=False)
        for alias, description in FALLBACK_MODELS
    ]


__all__ = ["Orchestrator", "fallback_models", "merge_catalog_and_cache"]
