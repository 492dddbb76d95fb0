"""Structured logging configuration.

Analysis code attaches audit context (outcome, variant, subgroup level,
study) through ``extra=``; the JSON formatter lifts those attributes into
the emitted record so every exclusion and skip can be traced back to the
cell that produced it.
"""

import logging
import json
import sys
from typing import Any, Dict, Optional

from ..config.settings import settings

CONTEXT_FIELDS = ("outcome", "variant", "level", "study_id", "reason")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _make_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    return handler


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_make_handler(settings.log_format))
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Re-apply level and format to every ``vdma`` logger created so far.

    Used by the CLI when ``--verbose``/``--log-format`` override the
    environment configuration after modules have been imported.
    """
    level_name = (level or settings.log_level).upper()
    fmt = log_format or settings.log_format
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not name.startswith("vdma") or not isinstance(logger, logging.Logger):
            continue
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.addHandler(_make_handler(fmt))
        logger.setLevel(getattr(logging, level_name, logging.INFO))
