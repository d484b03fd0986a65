from __future__ import annotations

import logging
import os
from typing import Any, Optional

from .config_loader import SuppressionConfig

LOG_LEVEL_ENV = "SUPPRESSION_ENGINE_LOG_LEVEL"
DEFAULT_LEVEL = logging.WARNING
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# SQLAlchemy logs every statement at INFO; only surface it when debugging.
SQL_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")

logger = logging.getLogger(__name__)


def parse_level(value: Any) -> Optional[int]:
    """Numeric level for a name such as ``debug`` or a digit string, else ``None``."""
    if value is None:
        return None
    text = str(value).strip().upper()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text)
    return level if isinstance(level, int) else None


def effective_level(config: SuppressionConfig, level_override: Optional[str] = None) -> int:
    """
    Pick the log level from, in order: the ``SUPPRESSION_ENGINE_LOG_LEVEL``
    environment variable, ``level_override`` (the ``--log-level`` flag), and
    ``config.logging.level``. A source holding an unrecognised level is
    skipped so the next one applies; with none left the level is ``WARNING``.
    """
    candidates = (
        (LOG_LEVEL_ENV, os.getenv(LOG_LEVEL_ENV)),
        ("--log-level", level_override),
        ("logging.level", config.logging.level),
    )
    for source, candidate in candidates:
        if not candidate:
            continue
        level = parse_level(candidate)
        if level is not None:
            return level
        logger.warning("Ignoring unrecognised log level %r from %s", candidate, source)
    return DEFAULT_LEVEL


def configure_logging(config: SuppressionConfig, level_override: Optional[str] = None) -> int:
    level = effective_level(config, level_override)
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    sql_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in SQL_LOGGERS:
        logging.getLogger(name).setLevel(sql_level)
    return level
