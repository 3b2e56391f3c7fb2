"""Structured logging configuration for the valkey manager sidecar."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import structlog


def setup_logging(
    level: str = "INFO",
    member_index: Optional[int] = None,
    component: Optional[str] = None,
    log_path: Optional[str | Path] = None,
) -> structlog.BoundLogger:
    """Configure structured logging and return a bound logger."""

    handlers: list[logging.Handler] = []
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    else:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Every record emitted by this process belongs to one StatefulSet member.
    if member_index is not None:
        structlog.contextvars.bind_contextvars(member_index=member_index)

    logger = structlog.get_logger()
    if component:
        logger = logger.bind(component=component)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger; ``member_index`` comes from the context bound by :func:`setup_logging`."""
    return structlog.get_logger(name)
