"""
Root logger bootstrap: text or JSON lines, to stderr and optionally a file.
"""
from __future__ import annotations
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from hydraulic_kb.config import Settings, get_settings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class KnowledgeBaseJsonFormatter(jsonlogger.JsonFormatter):

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["component"] = "hydraulic-kb"


def _formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return KnowledgeBaseJsonFormatter("%(message)s")
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Install handlers on the root logger. Safe to call more than once."""
    settings = settings or get_settings()
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level))
    for handler in list(root.handlers):
        if getattr(handler, "_hkb_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = _formatter(settings.log_format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        path = Path(settings.log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._hkb_handler = True
        root.addHandler(handler)

    # asyncpg is chatty at DEBUG
    logging.getLogger("asyncpg").setLevel(max(root.level, logging.INFO))
    return root
