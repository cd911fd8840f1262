"""Loguru structured logging configuration.

Human-readable lines go to stderr. Records bound with ``json_output=True``
(per-operation lifecycle events) are additionally emitted as serialized
JSON so an external collector can consume them. Optionally writes to a
rotating log file when a ``log_dir`` is provided.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format=_LOG_FORMAT,
        serialize=False,
    )
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "finance-transfer.log",
            level=log_level.upper(),
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
        )


def emit_event(event: str, **fields: Any) -> None:
    """Emit a structured lifecycle event.

    Args:
        event: Event name (e.g. ``operation.status``, ``operation.batch``).
        **fields: Event payload; ``operation_id`` is expected for per-operation events.
    """
    summary = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.bind(json_output=True, event=event, **fields).info(f"{event} {summary}")
