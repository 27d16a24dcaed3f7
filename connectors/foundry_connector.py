from typing import Any, Optional
from urllib.parse import quote
import json
import logging
import re

import httpx
import psutil
from pydantic import ValidationError as SchemaError

from connectors.foundry_cli import FoundryCLI
from connectors.runtime_interface import ModelCatalogClient, ProgressCallback, RuntimeInfo
from orchestrator.errors import (
    NotDownloadedError,
    NotFoundInCatalogError,
    NotInitializedError,
    NotLoadedError,
    OperationalError,
    ParseError,
)
from orchestrator.models import CatalogModel, LoadedModelInfo

logger = logging.getLogger(__name__)

# Foundry Local accepts any key; the OpenAI-compatible surface just requires one
PLACEHOLDER_API_KEY = "OPENAI_API_KEY"

# Runtime error wording, matched case-insensitively against the response detail
_NOT_DOWNLOADED_RE = re.compile(r"not (?:been |yet )?downloaded", re.IGNORECASE)
_NOT_IN_CATALOG_RE = re.compile(r"not (?:found )?in (?:the )?catalog|unknown model", re.IGNORECASE)
_NOT_LOADED_RE = re.compile(r"\bnot (?:currently )?loaded\b", re.IGNORECASE)


class FoundryRuntime(ModelCatalogClient):
    """
    Connector for the shared Foundry Local runtime.
    Talks to the service REST API with httpx and uses the CLI only to
    discover or start the service.

    Args:
        cli (FoundryCLI): Runner for the runtime's command-line tool.
        service_url (str): Base URL of an already running service, e.g. "http://127.0.0.1:5273".
            When set, the CLI is never used to find or start the service.
        process_marker (str): Substring of the service process command line.
        timeout (float): Timeout for ordinary HTTP calls, in seconds.
        download_timeout (float): Timeout for a model download, in seconds.
        client (httpx.Client): Optional pre-built client (tests pass a FastAPI TestClient).
    """

    def __init__(
        self,
        cli: FoundryCLI,
        service_url: Optional[str] = None,
        process_marker: str = "Inference.Service.Agent",
        timeout: float = 30.0,
        download_timeout: float = 3600.0,
        client: Optional[httpx.Client] = None,
    ):
        self.cli = cli
        self.configured_url = service_url.rstrip("/") if service_url else None
        self._service_url = self.configured_url
        self.process_marker = process_marker
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._client = client
        self._inference_client: Optional[httpx.Client] = None

    # --- plumbing ----------------------------------------------------------

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def _url(self, endpoint: str) -> str:
        if not self._service_url:
            raise NotInitializedError("Runtime service URL unknown; call start_service() first")
        return f"{self._service_url}/{endpoint.lstrip('/')}"

    def request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """
        Make an HTTP request to the runtime.
        HTTP errors are translated into the orchestrator error taxonomy.

        Args:
            method (str): The HTTP method.
            endpoint (str): The API path to call.
            **kwargs: Additional arguments to pass to httpx request.
            example: runtime.request("GET", "/openai/load/phi-4-mini", params={"ttl": 600})
        """
        url = self._url(endpoint)
        try:
            response = self._http().request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise runtime_error(exc.response) from exc
        except httpx.HTTPError as exc:
            raise OperationalError(f"Runtime request {method} {endpoint} failed: {exc}") from exc
        return response

    def _status_ok(self) -> bool:
        if not self._service_url:
            return False
        try:
            resp = self._http().get(self._url("/openai/status"), timeout=2)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    # --- service -------------------------------------------------------------

    @property
    def service_url(self) -> Optional[str]:
        return self._service_url

    @property
    def endpoint(self) -> Optional[str]:
        return f"{self._service_url}/v1" if self._service_url else None

    @property
    def info(self) -> RuntimeInfo:
        """ Returns information about the connector as a Box."""
        return RuntimeInfo({
            "type": "foundry_local",
            "serviceUrl": self._service_url,
            "endpoint": self.endpoint,
            "cli": self.cli.binary,
        })

    def start_service(self) -> str:
        if self._status_ok():
            logger.info("Attached to running service at %s", self._service_url)
            return self._service_url  # type: ignore[return-value]
        if self.configured_url:
            raise OperationalError(f"Runtime at {self.configured_url} is not reachable")
        try:
            url = self.cli.service_url()
        except OperationalError as exc:
            logger.debug("Service discovery failed, starting it instead: %s", exc)
            url = None
        if url:
            self._service_url = url
            if self._status_ok():
                logger.info("Attached to running service at %s", url)
                return url
        logger.info("Starting runtime service")
        self._service_url = self.cli.start_service()
        logger.info("Runtime service started at %s", self._service_url)
        return self._service_url

    def is_service_running(self) -> bool:
        if _find_service_pid(self.process_marker) is not None:
            return True
        return self._status_ok()

    def probe(self) -> None:
        self.request("GET", "/v1/models", timeout=5)

    def inference_client(self) -> httpx.Client:
        """Shared client for the OpenAI-compatible endpoint; models are selected per request."""
        if self._inference_client is None:
            if not self.endpoint:
                raise NotInitializedError("Runtime not started")
            self._inference_client = httpx.Client(
                base_url=self.endpoint,
                headers={"Authorization": f"Bearer {PLACEHOLDER_API_KEY}"},
                timeout=self.timeout,
            )
        return self._inference_client

    def close(self) -> None:
        for client in (self._client, self._inference_client):
            if client is not None:
                client.close()
        self._client = None
        self._inference_client = None

    # --- catalog -----------------------------------------------------------

    def list_catalog_models(self) -> list[CatalogModel]:
        r = self.request("GET", "/foundry/list")
        return _parse_list(r, CatalogModel)

    def get_model_info(self, alias_or_id: str) -> Optional[CatalogModel]:
        catalog = self.list_catalog_models()
        for model in catalog:
            if model.id == alias_or_id:
                return model
        for model in catalog:
            if model.alias == alias_or_id:
                return model
        return None

    def download_model(
        self,
        alias: str,
        device: Optional[str] = None,
        token: Optional[str] = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Download into the active cache, reporting percent progress from the streamed JSON lines."""
        body = {"model": alias, "device": device, "token": token, "force": force}
        url = self._url("/openai/download")
        try:
            with self._http().stream("POST", url, json=body, timeout=self.download_timeout) as response:
                if response.status_code >= 400:
                    response.read()
                    raise runtime_error(response)
                final: dict[str, Any] = {}
                for line in response.iter_lines():
                    if not line.strip():
                        continue
                    try:
                        msg = json.loads(line)
                    except ValueError:
                        logger.debug("Ignoring download output line %r", line)
                        continue
                    if not isinstance(msg, dict):
                        continue
                    if "progress" in msg and on_progress is not None:
                        try:
                            percent = float(msg["progress"])
                        except (TypeError, ValueError) as exc:
                            raise ParseError(f"Bad download progress for {alias}: {msg['progress']!r}") from exc
                        on_progress(percent)
                    if "success" in msg:
                        final = msg
        except httpx.HTTPError as exc:
            raise OperationalError(f"Download of {alias} failed: {exc}") from exc
        if final and not final.get("success"):
            raise OperationalError(f"Download of {alias} failed: {final.get('errorMessage') or 'unknown error'}")

    # --- loaded models -----------------------------------------------------

    def load_model(self, alias: str, device: Optional[str] = None, ttl: int = 600) -> LoadedModelInfo:
        params: dict[str, Any] = {"ttl": int(ttl)}
        if device:
            params["device"] = device
        r = self.request("GET", f"/openai/load/{quote(alias, safe='')}", params=params, timeout=self.download_timeout)
        try:
            return LoadedModelInfo.model_validate(r.json())
        except (SchemaError, ValueError) as exc:
            raise ParseError(f"Unexpected load response for {alias}: {exc}") from exc

    def unload_model(self, alias: str, device: Optional[str] = None, force: bool = False) -> None:
        params: dict[str, Any] = {"force": "true" if force else "false"}
        if device:
            params["device"] = device
        try:
            self.request("GET", f"/openai/unload/{quote(alias, safe='')}", params=params)
        except NotLoadedError as exc:
            if not force:
                raise
            logger.warning("Forced unload of %s: runtime reports it is not loaded (%s)", alias, exc)

    def list_loaded_models(self) -> list[LoadedModelInfo]:
        r = self.request("GET", "/openai/loadedmodels")
        return _parse_list(r, LoadedModelInfo)


##### helpers #####

def runtime_error(response: httpx.Response) -> OperationalError:
    """Map an error response onto the taxonomy the orchestrator recovers from."""
    detail = _detail(response)
    if _NOT_DOWNLOADED_RE.search(detail):
        return NotDownloadedError(detail)
    if _NOT_IN_CATALOG_RE.search(detail):
        return NotFoundInCatalogError(detail)
    if _NOT_LOADED_RE.search(detail):
        return NotLoadedError(detail)
    return OperationalError(f"Runtime returned {response.status_code}: {detail}")


def _detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("errorMessage") or payload)
    return str(payload)


def _parse_list(response: httpx.Response, model: Any) -> list[Any]:
    try:
        payload = response.json()
        if not isinstance(payload, list):
            raise ValueError(f"expected a list, got {type(payload).__name__}")
        return [model.model_validate(item) for item in payload]
    except (SchemaError, ValueError) as exc:
        raise ParseError(f"Unexpected runtime payload from {response.request.url.path}: {exc}") from exc


def _find_service_pid(marker: str) -> Optional[int]:
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        try:
            cmdline = proc.info['cmdline'] or []
            if marker in (proc.info['name'] or '') or marker in ' '.join(cmdline):
                return proc.pid
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return None
