"""
Logging utilities for the trk toolkit.

Every module calls `get_logger(__name__)` and gets:
- pretty console output via Rich
- for long-running commands (`trk track`, `trk serve`), structured JSON lines
  appended to `{command}.log` in the working directory

`TRK_LOG_LEVEL` overrides the default level (e.g. `TRK_LOG_LEVEL=DEBUG` to see
rejected fixes).
"""

import json
import logging
import os
import sys
from pathlib import Path

from rich.logging import RichHandler

# command -> log file kept on disk
FILE_LOGGED_COMMANDS = {"track": "track.log", "serve": "serve.log"}


class JSONFormatter(logging.Formatter):
    """
    Serializes log records to one JSON object per line.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level":     record.levelname,
            "logger":    record.name,
            "thread":    record.threadName,
            "message":   record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _resolve_level(level: int | str | None) -> int | str:
    if level is not None:
        return level
    return os.environ.get("TRK_LOG_LEVEL", "INFO").upper()


def _log_file_for_command() -> Path | None:
    if len(sys.argv) < 2:
        return None
    name = FILE_LOGGED_COMMANDS.get(sys.argv[1])
    return Path.cwd() / name if name else None


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Return a configured logger for the given name.

    Parameters
    ----------
    name
        Logger name (typically __name__).
    level
        Log level (int or string); defaults to $TRK_LOG_LEVEL or INFO.

    Returns
    -------
    logging.Logger
        Logger with a RichHandler and, for file-logged commands, a JSON file handler.
    """
    level = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        log_path = _log_file_for_command()
        if log_path is not None:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    return logger
