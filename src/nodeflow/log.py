"""structlog setup.

Every module logs through ``structlog.get_logger()`` and never configures
anything itself; the CLI calls :func:`configure_logging` once per command.
Log lines go to stderr so ``nodeflow explain`` output stays pipeable.
"""
from __future__ import annotations
import logging
import sys
from typing import Optional

import structlog

from .config import Settings, get_settings

_PRE_CHAIN = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(settings: Optional[Settings] = None, level: Optional[str] = None) -> None:
    """Route structlog through one stderr handler on the root logger.

    ``level`` overrides ``settings.log_level``. Calling this again replaces
    the handler, so a stream that has since been closed is never written to.
    """
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=_renderer(settings.log_format),
        foreign_pre_chain=_PRE_CHAIN,
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, (level or settings.log_level).upper()))

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**kwargs) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
