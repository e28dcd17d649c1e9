"""
Structured logging configuration for Stratapath.

Uses structlog (https://www.structlog.org/) so every slicing event carries
its layer context as key/value pairs instead of formatted strings. Supports
JSON output (batch runs, log aggregation) and colored console output
(interactive debugging of a single model).

Usage::

    from stratapath.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG")  # Call once at startup
    logger = get_logger(__name__)
    logger.info("layer_sliced", layer=12, paths=3, holes=1)
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Optional, Tuple

import structlog

_layer_keys: ContextVar[Tuple[str, ...]] = ContextVar("stratapath_layer_keys", default=())


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the slicing run.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               DEBUG includes per-path anomalies (branch points, collapsed
               offsets, skipped degenerate paths).
        json_output: If True, emit JSON lines. If False, colored console lines.
        log_file: Optional path to also write logs to.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handlers,
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger for the given module name.

    Args:
        name: Module name, typically ``__name__``.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)


def bind_layer_context(layer_index: int, z: float, **extra: Any) -> None:
    """
    Attach the current layer to every log event until cleared.

    The slicer binds this at the start of each layer so messages from the
    geometry modules carry ``layer`` and ``z`` without threading them through
    every call.
    """
    clear_layer_context()
    structlog.contextvars.bind_contextvars(layer=layer_index, z=round(z, 4), **extra)
    _layer_keys.set(("layer", "z", *extra))


def clear_layer_context() -> None:
    """Remove every key bound by :func:`bind_layer_context`."""
    structlog.contextvars.unbind_contextvars(*_layer_keys.get())
    _layer_keys.set(())
