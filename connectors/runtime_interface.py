from typing import Callable, Optional, Protocol, List
import httpx
from box import Box

from orchestrator.models import CatalogModel, LoadedModelInfo

ProgressCallback = Callable[[float], None]


class RuntimeInfo(Box):
    """
    Description of a runtime connector. Box gives dot-access on a dict.
    Examples:
        info = RuntimeInfo(type='foundry_local', serviceUrl='http://127.0.0.1:5273')
        print(info.type)            # foundry_local
        print(info['serviceUrl'])   # http://127.0.0.1:5273
    """


class ModelCatalogClient(Protocol):
    """
    Protocol for the shared inference runtime.

    One instance fronts one runtime process; every model is loaded into that
    same process and served from the same endpoint. Implementations translate
    runtime failures into the orchestrator error taxonomy:
    NotDownloadedError, NotFoundInCatalogError, NotLoadedError or OperationalError.
    """

    @property
    def endpoint(self) -> Optional[str]:
        """OpenAI-compatible base URL (``<service_url>/v1``), None until started."""
        ...

    @property
    def service_url(self) -> Optional[str]: ...

    @property
    def info(self) -> RuntimeInfo: ...

    def start_service(self) -> str:
        """Start or attach to the runtime and return its service URL.
        Must not restart a service that is already running."""
        ...

    def is_service_running(self) -> bool: ...

    def list_catalog_models(self) -> List[CatalogModel]: ...
    def get_model_info(self, alias_or_id: str) -> Optional[CatalogModel]: ...

    def download_model(
        self,
        alias: str,
        device: Optional[str] = None,
        token: Optional[str] = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None: ...

    def load_model(self, alias: str, device: Optional[str] = None, ttl: int = 600) -> LoadedModelInfo: ...
    def unload_model(self, alias: str, device: Optional[str] = None, force: bool = False) -> None: ...
    def list_loaded_models(self) -> List[LoadedModelInfo]: ...

    def probe(self) -> None:
        """Cheap inference-side round trip; raises OperationalError when unanswered."""
        ...

    def inference_client(self) -> httpx.Client:
        """Client bound to the shared OpenAI-compatible endpoint."""
        ...

    def close(self) -> None: ...
