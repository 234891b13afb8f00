"""Logging configuration for questlab.

Every record passing the root handler carries a ``quest`` attribute set by
QuestContextFilter, so both output formats read it like any other field:
- JSON, one object per line, for runs driven by other tooling
- Text, for people watching a quest being set up
"""
from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone

from questlab.config import settings

TEXT_FORMAT = "[%(asctime)s] %(levelname)-8s%(quest_tag)s %(name)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class QuestContextFilter(logging.Filter):
    """Stamp the active quest on each record.

    A quest already set on the record (e.g. passed through ``extra``) wins.
    """

    def __init__(self, quest: str = ""):
        super().__init__()
        self.quest = quest

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "quest", ""):
            record.quest = self.quest
        record.quest_tag = f" [{record.quest}]" if record.quest else ""
        return True


class QuestJSONFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message, quest."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "questlab",
        }
        quest = getattr(record, "quest", "")
        if quest:
            entry["quest"] = quest
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def text_formatter() -> logging.Formatter:
    formatter = logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)
    formatter.converter = time.gmtime
    return formatter


def setup_logging(quest: str = "", debug: bool = False) -> None:
    """Configure the root logger from settings.

    Calling it again replaces the handler, which is how the quest is set once
    the command line has been parsed.

    Args:
        quest: Quest name stamped on every record
        debug: Force DEBUG level regardless of settings.log_level
    """
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(QuestContextFilter(quest))

    if settings.log_format.lower() == "json":
        handler.setFormatter(QuestJSONFormatter())
    else:
        handler.setFormatter(text_formatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
