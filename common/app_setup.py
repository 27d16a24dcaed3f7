"""
Reusable logging and print setup for all parts of the project.

Functions:
    setup_logging      - Configure and return a logger.
    set_print_logger   - Set the logger for print_and_log and print_error.
    print_and_log      - Print and log an info message.
    print_error        - Print and log an error message.
    get_service_logger - Logger adapter tagging records with a model alias.
"""

import logging
import logging.handlers
import os
from typing import Optional
from rich import print as rich_print
from rich.markup import escape
import sys

LOGFILE_ENV = "FOUNDRYCTL_LOGFILE"

# Module-level variable to hold the logger for print_and_log and print_error
_print_logger = None

def setup_logging(app_name: str = "foundryctl", daemon: bool = False, loglevel: int = logging.INFO, logfile: Optional[str] = None) -> logging.Logger:
    """
    Set up logging for the application.
    - If daemon=True, logs to syslog (Linux only).
    - Otherwise, logs to a file in ~/.<app_name>/log.txt, to $FOUNDRYCTL_LOGFILE
      or to a custom logfile.
    Returns the configured logger.
    """
    logger = logging.getLogger()
    logger.setLevel(loglevel)
    from logging import Handler
    if daemon:
        formatter = logging.Formatter(f'%(asctime)s %(levelname)s %(process)d [{app_name}] %(message)s')
        try:
            handler: Handler = logging.handlers.SysLogHandler(address='/dev/log')
        except OSError as e:
            print(f"Syslog unavailable, logging to stderr: {e}", file=sys.stderr)
            handler = logging.StreamHandler()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(process)d %(name)s %(message)s')
        logfile = logfile or os.environ.get(LOGFILE_ENV)
        if logfile is None:
            log_dir = os.path.expanduser(f"~/.{app_name}")
            os.makedirs(log_dir, exist_ok=True)
            logfile = os.path.join(log_dir, "log.txt")
        handler = logging.FileHandler(logfile)

    # Remove any existing handlers
    for h in logger.handlers[:]:
        logger.removeHandler(h)

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    set_print_logger(logger)
    logger.debug("Logger initialized for %s", app_name)
    return logger

def set_print_logger(logger: logging.Logger):
    """
    Set the logger to be used by print_and_log and print_error.
    Called by setup_logging.
    """
    global _print_logger
    _print_logger = logger

def print_and_log(message: str, **kwargs):
    """
    Print to console (via print) and log as info.
    """
    print(message, **kwargs)
    if _print_logger is not None:
        _print_logger.info(message)

def print_error(message: str, **kwargs):
    """
    Print and log an error message (stderr and error level), using the logger set by set_print_logger.
    """
    rich_print(f"[bold red]{escape(message)}[/bold red]", file=sys.stderr, **kwargs)
    if _print_logger is not None:
        _print_logger.error(message)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the model alias it concerns."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['service']}] {msg}", kwargs


def get_service_logger(alias: str, name: str = "foundryctl.service") -> ServiceLoggerAdapter:
    """
    Return a logger for one model service.
    Records carry the alias both in the message and as the ``service`` attribute.
    """
    return ServiceLoggerAdapter(logging.getLogger(name), {"service": alias})
