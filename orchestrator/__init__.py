"""Model lifecycle orchestrator package exposing domain models and errors.

The Orchestrator itself lives in ``orchestrator.orchestrator``; it is not
re-exported here because the connectors import this package's models.
"""

from .errors import (
    NotDownloadedError,
    NotFoundInCatalogError,
    NotInitializedError,
    NotLoadedError,
    OperationalError,
    OrchestratorError,
    ParseError,
    ValidationError,
)
from .models import (
    AvailableModel,
    CacheModelRecord,
    CatalogModel,
    LoadedModelInfo,
    ModelDescriptor,
    ModelSource,
    ModelStatus,
)

__all__ = [
    "AvailableModel",
    "CacheModelRecord",
    "CatalogModel",
    "LoadedModelInfo",
    "ModelDescriptor",
    "ModelSource",
    "ModelStatus",
    "NotDownloadedError",
    "NotFoundInCatalogError",
    "NotInitializedError",
    "NotLoadedError",
    "OperationalError",
    "OrchestratorError",
    "ParseError",
    "ValidationError",
]
