"""Logging for chatterm.

Everything goes to a rotating JSON-lines file under ~/.chatterm/logs. The
terminal belongs to the chat UI, so warnings are echoed there only with
--verbose.
"""

import json
import logging
import logging.handlers
import time
from pathlib import Path

from chatterm.config import DATA_DIR

LOGS_DIR = DATA_DIR / "logs"
APP_LOG_FILE = LOGS_DIR / "chatterm.log"

# Rotate at 5 MB, keep three old files
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Attributes passed through ``extra=`` that end up in the JSON line
_EXTRA_FIELDS = (
    "response_id",
    "status_code",
    "attempt",
    "resource_kind",
    "duration_s",
    "model",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any known ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(record.created))
            + f".{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = str(record.exc_info[1])
        return json.dumps(payload, default=str)


def _rotating_file(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        str(path), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    return handler


def _stderr_warnings() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    return handler


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Point the ``chatterm`` logger tree at the log file (and stderr when verbose).

    Safe to call more than once; earlier handlers are closed and replaced.
    """
    logger = logging.getLogger("chatterm")
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    logger.setLevel(logging.DEBUG)
    logger.addHandler(_rotating_file(log_file or APP_LOG_FILE))
    if verbose:
        logger.addHandler(_stderr_warnings())
