"""
cache_manager.py
----------------
Mediates the cache directory the runtime reads models from.

All parsing of the tool's free-form text output lives here, so the
orchestrator never depends on the CLI's formatting.

Switching the cache is the one place a user-supplied path reaches an
external process: the path is validated first and then passed as a single
argument, never through a shell.
"""

from __future__ import annotations

import logging
import re

from connectors.foundry_cli import FoundryCLI

from .errors import OperationalError, ParseError, ValidationError
from .models import CacheLocation, CacheModelRecord, SwitchResult
from .validation import validate_cache_path

logger = logging.getLogger(__name__)

DEFAULT_KEYWORD = "default"
CACHE_MARKER = "💾"

_LOCATION_RE = re.compile(r"Cache directory path:\s*(.+)")
_COLUMN_SPLIT_RE = re.compile(r"\s{2,}")


class CacheManager:
    """
    Query and switch the runtime's cache directory.

    The first location successfully read is remembered as the default path
    and is never overwritten afterwards.
    """

    def __init__(self, cli: FoundryCLI):
        self.cli = cli
        self._default_path: str | None = None

    def get_current_location(self) -> str:
        """Return the active cache directory as reported by the tool."""
        logger.info("Getting current cache location")
        result = self.cli.run(["cache", "location"])
        location = parse_cache_location(result.stdout)
        if self._default_path is None:
            self._default_path = location
            logger.info("Stored default cache path: %s", location)
        return location

    def get_default_path(self) -> str | None:
        """Default path captured on the first successful query, or None."""
        return self._default_path

    def get_location(self) -> CacheLocation:
        location = self.get_current_location()
        return CacheLocation(path=location, is_default=location == self._default_path)

    def validate_cache_path(self, path: object) -> str:
        return validate_cache_path(path)

    def switch_cache(self, path: str) -> SwitchResult:
        """
        Point the runtime at another cache directory.

        ``"default"`` restores the captured default path.

        Raises:
            ValidationError: the path is unsafe (client error).
            OperationalError: anything else went wrong.
        """
        try:
            if path == DEFAULT_KEYWORD:
                if self._default_path is None:
                    raise OperationalError("Default cache path is unknown; query the cache location first")
                path = self._default_path
            target = self.validate_cache_path(path)
            if self._default_path is None:
                # Capture the original location before it changes
                self.get_current_location()
            logger.info("Switching cache directory to %s", target)
            self.cli.run(["cache", "cd", target])
            confirmed = self.get_current_location()
        except ValidationError as exc:
            logger.warning("Rejected cache path %r: %s", path, exc)
            raise
        except OperationalError as exc:
            logger.error("Failed to switch cache to %r: %s", path, exc)
            raise OperationalError(f"Failed to switch cache: {exc}") from exc

        logger.info("Cache directory switched: requested=%s actual=%s", target, confirmed)
        return SwitchResult(success=True, location=confirmed, is_default=confirmed == self._default_path)

    def list_cache_models(self) -> list[CacheModelRecord]:
        """Models physically present in the active cache. Never raises."""
        logger.info("Listing models in cache")
        try:
            result = self.cli.run(["cache", "ls"])
        except OperationalError as exc:
            logger.error("Failed to list cache models: %s", exc)
            logger.warning("Returning empty cache models list")
            return []
        models = parse_cache_listing(result.stdout)
        logger.info("Cache models listed: %d", len(models))
        return models

    def load_cached_model(self, alias: str, ttl: int) -> str:
        """Load a cache-only model through the CLI. ``alias`` must already be validated."""
        result = self.cli.run(["model", "load", alias, "--ttl", str(int(ttl))])
        return result.stdout

    def check_cli_available(self) -> bool:
        return self.cli.is_available()


# ---------------------------------------------------------------------------
# parsing


def parse_cache_location(output: str) -> str:
    """Extract the path from ``Cache directory path: <path>``."""
    match = _LOCATION_RE.search(output or "")
    if not match or not match.group(1).strip():
        raise ParseError("Could not parse cache location from output")
    return match.group(1).strip()


def parse_cache_listing(output: str) -> list[CacheModelRecord]:
    """Parse ``cache ls`` output.

    Recognized lines look like ``💾 alias<2+ spaces>model-id``; anything else
    (headers, blank lines, malformed rows) is skipped.
    """
    models: list[CacheModelRecord] = []
    for line in (output or "").splitlines():
        if CACHE_MARKER not in line or "Alias" in line:
            continue
        parts = _COLUMN_SPLIT_RE.split(line.strip())
        if len(parts) < 2:
            continue
        alias = parts[0].replace(CACHE_MARKER, "").strip()
        model_id = parts[1].strip()
        if not alias or not model_id:
            continue
        models.append(CacheModelRecord(alias=alias, id=model_id, description=alias))
    return models


__all__ = ["CacheManager", "parse_cache_listing", "parse_cache_location"]
