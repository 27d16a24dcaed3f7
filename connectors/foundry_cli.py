"""
foundry_cli.py
--------------
Runs the external runtime tool (``foundry``) with a discrete argument vector.

Nothing here goes through a shell: callers pass a list of arguments and each
one reaches the tool verbatim, so caller-supplied data cannot be interpreted
as shell syntax. Every call is bounded by a timeout.
"""

import logging
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Sequence

from orchestrator.errors import OperationalError

logger = logging.getLogger(__name__)

# The tool writes this to stderr whenever it has to start the service first
SERVICE_STARTED_NOTICE = "Service is Started"

SERVICE_URL_RE = re.compile(r"https?://[^\s/]+")


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    stdout: str
    stderr: str


class FoundryCLI:
    """
    Thin wrapper around the runtime's command-line tool.

    Args:
        binary (str): Name or path of the executable.
        timeout (float): Seconds before a call is abandoned and reported as an error.
    """

    def __init__(self, binary: str = "foundry", timeout: float = 300.0):
        self.binary = binary
        self.timeout = timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        """
        Run ``<binary> *args`` and return its captured output.

        Raises:
            OperationalError: the binary is missing, the call timed out, or it exited non-zero.
        """
        argv = [self.binary, *[str(a) for a in args]]
        logger.debug("Running %s", argv)
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, timeout=self.timeout, check=False)
        except FileNotFoundError as exc:
            raise OperationalError(f"{self.binary} not found in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise OperationalError(f"'{' '.join(argv[:3])}' timed out after {self.timeout:g}s") from exc
        except OSError as exc:
            raise OperationalError(f"Could not run {self.binary}: {exc}") from exc

        stdout = proc.stdout or ""
        stderr = proc.stderr or ""
        if proc.returncode != 0:
            detail = stderr.strip() or stdout.strip() or f"exit code {proc.returncode}"
            raise OperationalError(f"'{' '.join(argv[:3])}' failed: {detail}")
        if stderr:
            if SERVICE_STARTED_NOTICE in stderr:
                logger.debug("%s stderr: %s", argv[1:3], stderr.strip())
            else:
                logger.warning("%s stderr: %s", argv[1:3], stderr.strip())
        return CommandResult(tuple(argv), stdout, stderr)

    def is_available(self) -> bool:
        """Check the binary is on PATH with the platform's lookup command."""
        lookup = "where" if sys.platform.startswith("win") else "which"
        try:
            proc = subprocess.run([lookup, self.binary], capture_output=True, text=True, timeout=10, check=False)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("%s lookup failed: %s", lookup, exc)
            return False
        if proc.returncode != 0:
            logger.error("%s CLI not found in PATH", self.binary)
            return False
        return True

    # --- runtime service -------------------------------------------------

    def service_url(self) -> str | None:
        """Return the running service's base URL, or None if the tool reports none."""
        result = self.run(["service", "status"])
        return _first_url(result.stdout)

    def start_service(self) -> str:
        """Start the service (no-op for the tool when it already runs) and return its base URL."""
        result = self.run(["service", "start"])
        url = _first_url(result.stdout) or _first_url(result.stderr) or self.service_url()
        if not url:
            raise OperationalError("Could not determine service URL from 'service start' output")
        return url


def _first_url(text: str) -> str | None:
    match = SERVICE_URL_RE.search(text or "")
    return match.group(0) if match else None


__all__ = ["CommandResult", "FoundryCLI", "SERVICE_STARTED_NOTICE"]
