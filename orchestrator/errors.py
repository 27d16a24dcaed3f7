"""Error taxonomy shared by the orchestrator, cache manager and connectors.

Every error carries an ``http_status`` so an API layer can map it to a
response without inspecting messages: validation failures are client errors,
everything else is operational.
"""

from __future__ import annotations

import logging

mylogger = logging.getLogger(__name__)


class OrchestratorError(Exception):
    """Base error with a message, optionally logged when raised."""

    http_status = 500

    def __init__(self, message: str = "An orchestrator error occurred", log: bool = False):
        self.message = message
        super().__init__(self.message)
        if log:
            mylogger.error(message)


class ValidationError(OrchestratorError):
    """Unsafe path or alias. Raised before any external process is touched."""

    http_status = 400


class OperationalError(OrchestratorError):
    """An external tool or the runtime failed."""


class ParseError(OperationalError):
    """External tool output did not have the expected shape."""


class NotDownloadedError(OperationalError):
    """The runtime knows the model but it is not in the cache yet."""


class NotFoundInCatalogError(OperationalError):
    """The runtime catalog has no model with that alias or id."""


class NotLoadedError(OperationalError):
    """Unload asked for a model the runtime does not have loaded."""


class NotInitializedError(OperationalError):
    """The runtime handle was requested before initialize()."""


__all__ = [
    "NotDownloadedError",
    "NotFoundInCatalogError",
    "NotInitializedError",
    "NotLoadedError",
    "OperationalError",
    "OrchestratorError",
    "ParseError",
    "ValidationError",
]
