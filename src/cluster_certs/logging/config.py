"""Structured logging configuration using structlog.

Events pass through a redaction step before any renderer, so private keys
read from cluster state or certificate secrets never reach the console or
the persistent log file.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import MutableMapping
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

# Log file configuration
LOG_DIR = Path.home() / ".local" / "state" / "cluster-certs"
LOG_FILE = LOG_DIR / "cluster-certs.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5  # Keep 5 rotated files
RETENTION_DAYS = 30  # Delete logs older than 30 days

REDACTED = "[REDACTED]"

# Event keys whose values are credentials whatever they contain
SENSITIVE_KEYS = frozenset(
    {
        "client_key",
        "clientKey",
        "key_pem",
        "keyPEM",
        "ssh_key",
        "sshKey",
        "token",
        "password",
    }
)

PRIVATE_KEY_PATTERN = re.compile(
    r"-----BEGIN ([A-Z ]*)PRIVATE KEY-----.*?-----END \1PRIVATE KEY-----",
    re.DOTALL,
)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return PRIVATE_KEY_PATTERN.sub(REDACTED, value)
    if isinstance(value, dict):
        return {
            k: REDACTED if k in SENSITIVE_KEYS and v else _redact_value(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact_value(v) for v in value]
    return value


def redact_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask private keys and credential fields in a log event."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS and value:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact_value(value)
    return event_dict


_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
    redact_credentials,
]


def _cleanup_old_logs() -> None:
    """Delete log files older than RETENTION_DAYS."""
    if not LOG_DIR.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for log_file in LOG_DIR.glob("cluster-certs.log*"):
        try:
            if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                log_file.unlink()
        except OSError:
            pass  # Ignore errors during cleanup


def _setup_file_logging() -> None:
    """Set up rotating file handler for persistent logging.

    The log names clusters and certificate secrets, so the directory and
    file are only accessible to the current user.
    """
    LOG_DIR.mkdir(mode=0o700, parents=True, exist_ok=True)
    _cleanup_old_logs()
    LOG_FILE.touch(mode=0o600, exist_ok=True)

    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    file_handler.setLevel(logging.DEBUG)  # Capture everything to file
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )

    logging.getLogger().addHandler(file_handler)


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_to_file: bool = True,
) -> None:
    """Configure structured logging for the application.

    Logs go to stdout and, unless disabled, to
    ~/.local/state/cluster-certs/cluster-certs.log with rotation
    (10MB max, 5 backups) and 30 day retention. Private keys and credential
    fields are masked in both.

    Args:
        verbose: Enable verbose (INFO level) output.
        debug: Enable debug mode (DEBUG level).
        json_output: Output console logs in JSON format.
        log_to_file: Also write JSON logs to the rotating log file.
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if json_output:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    else:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(
                    show_locals=debug,
                ),
            ),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    root_logger.addHandler(console_handler)

    if log_to_file:
        _setup_file_logging()


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a configured logger with optional initial context.

    Args:
        name: Logger name. If None, uses the calling module's name.
        **initial_context: Initial context variables to bind to the logger.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
