from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"
CONSOLE_HANDLER = "alpack.console"


def get_logger(name: str, logs_dir: Path) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(logs_dir / f"{name}.log")
    formatter = logging.Formatter(LOG_FORMAT)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger


def configure_console(verbose: bool = False, stream=None) -> logging.Handler:
    """Route ``alpack.*`` records to stderr; warnings only unless verbose."""
    root = logging.getLogger("alpack")
    for existing in list(root.handlers):
        if existing.get_name() == CONSOLE_HANDLER:
            root.removeHandler(existing)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(CONSOLE_HANDLER)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    return handler


class EventLogger:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, event: dict) -> None:
        payload = dict(event)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        line = json.dumps(payload, sort_keys=True, ensure_ascii=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


class NullEventLogger:
    def record(self, event: dict) -> None:
        return


def get_event_logger(logs_dir: Optional[Path]) -> EventLogger | NullEventLogger:
    if logs_dir is None:
        return NullEventLogger()
    return EventLogger(logs_dir / "events.jsonl")
