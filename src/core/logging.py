"""Logging estructurado (structlog).

Por qué structlog:
- Eventos con contexto clave/valor (merchant, página, intento) en vez de
  strings formateados a mano.
- JSON en producción, salida legible en desarrollo, sin cambiar los call sites.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configura logging estándar + structlog.

    Args:
        log_level: Nivel (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON para agregadores; si es False, ConsoleRenderer.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Logger structlog para un módulo."""

    return structlog.get_logger(name)
