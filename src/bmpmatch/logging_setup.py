from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGER = "bmpmatch"
LEVEL_ENV = "BMPMATCH_LOG_LEVEL"


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: {"t": ms, "lvl": ..., "name": ..., "msg": ...}.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(record.created * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a JSON stderr handler to the ``bmpmatch`` logger, once.

    Level precedence: explicit ``level``, then ``BMPMATCH_LOG_LEVEL``, then INFO.
    Loggers outside the package are left alone.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(_resolve_level(level or os.environ.get(LEVEL_ENV) or "INFO"))

    if not any(isinstance(handler.formatter, JsonFormatter) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    return logger


def _resolve_level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO
