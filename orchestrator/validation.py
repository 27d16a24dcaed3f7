"""Checks applied to caller-supplied values before they reach an external process."""

from __future__ import annotations

import os
import re

from .errors import ValidationError

# Letters, digits and underscores, in groups joined by single dashes
_ALIAS_RE = re.compile(r"[A-Za-z0-9_]+(?:-[A-Za-z0-9_]+)*")

_DENIED_ROOTS = (
    "/etc",
    "/private/etc",
    "/sys",
    "/proc",
    "/root",
    "/bin",
    "/sbin",
    "/usr/bin",
    "/usr/sbin",
    "/boot",
    "/dev",
    "c:/windows",
    "c:/program files",
    "c:/program files (x86)",
)


def _denied_roots() -> list[str]:
    roots = list(_DENIED_ROOTS)
    system_root = os.environ.get("SystemRoot")
    if system_root:
        roots.append(_comparable(system_root))
    return roots


def _comparable(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").lower() or "/"


def validate_cache_path(path: object) -> str:
    """Return the absolute, symlink-resolved form of ``path``.

    Raises ValidationError for non-string or empty input, NUL bytes, and any
    location at or below a sensitive system directory. Comparison is
    case-insensitive.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("Cache path must be a non-empty string")
    if "\x00" in path:
        raise ValidationError("Cache path must not contain NUL bytes")

    resolved = os.path.realpath(os.path.abspath(os.path.expanduser(path.strip())))
    candidate = _comparable(resolved)
    for root in _denied_roots():
        if candidate == root or candidate.startswith(root + "/"):
            raise ValidationError(f"Cache path {resolved!r} is inside a protected system directory")
    return resolved


def validate_model_alias(alias: object) -> str:
    """Allow-list check for an alias handed to the CLI."""
    if not isinstance(alias, str) or not _ALIAS_RE.fullmatch(alias):
        raise ValidationError(
            "Invalid model alias for CLI - use letters, digits, underscores and single dashes, "
            "not starting or ending with a dash"
        )
    return alias


__all__ = ["validate_cache_path", "validate_model_alias"]
