# vorg/core/logs.py
# Console/file logging for the `vorg` logger.

from __future__ import annotations
import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger("vorg")


class EnsureContext(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "source"):    record.source = "-"
        if not hasattr(record, "import_id"): record.import_id = "-"
        # Default file_token to import_id unless the log call overrides it
        if not hasattr(record, "file_token"): record.file_token = record.import_id
        return True


class MaxLevelFilter(logging.Filter):
    """Allow records up to and including `levelno` (drop anything higher)."""
    def __init__(self, levelno: int): super().__init__(); self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool: return record.levelno <= self.levelno


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "name": record.name,
            "source": getattr(record, "source", None),
            "import_id": getattr(record, "import_id", None),
            "file_token": getattr(record, "file_token", None),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(logs_dir: Optional[Path] = None, verbose: int = 0, quiet: bool = False,
                  log_level: Optional[str] = None, json_logs: bool = False) -> logging.Logger:
    """
    Console/File matrix:
      - -q:   console = silent;          file = INFO only (drop WARNING+)
      - none: console = INFO+WARNING+;   file = INFO+
      - -v:   console = DEBUG;           file = DEBUG
      - --log-level=X: both console & file use X (no special filters)
    No file handler is installed unless `logs_dir` is given.
    """
    logger = LOGGER
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers): logger.removeHandler(h)

    file_max = None
    if log_level:
        console_level = getattr(logging, log_level.upper())
        file_level    = console_level
    elif quiet:
        console_level = logging.CRITICAL   # prints nothing (we don't emit CRITICAL)
        file_level    = logging.INFO
        file_max      = MaxLevelFilter(logging.INFO)
    elif verbose >= 1:
        console_level = logging.DEBUG
        file_level    = logging.DEBUG
    else:
        console_level = logging.INFO
        file_level    = logging.INFO

    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.addFilter(EnsureContext())
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)

    if logs_dir:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        log_path = logs_dir / f"vorg-{ts}.log"

        fh = logging.handlers.TimedRotatingFileHandler(
            log_path, when="midnight", backupCount=14, encoding="utf-8"
        )
        fh.setLevel(file_level)
        fh.addFilter(EnsureContext())
        if file_max: fh.addFilter(file_max)
        if json_logs:
            fh.setFormatter(JsonFormatter())
        else:
            fh.setFormatter(logging.Formatter(
                "%(asctime)sZ [%(levelname)s] [%(import_id)s:%(file_token)s] %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S"
            ))
        logger.addHandler(fh)
        logger.debug("Log file: %s", log_path)

    return logger


class _ImportAdapter(logging.LoggerAdapter):
    # per-call extra (e.g. file_token) is merged over the adapter context
    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def import_logger(import_id: str, source: str) -> logging.LoggerAdapter:
    """Attach import_id + source to every log record of one import run."""
    return _ImportAdapter(LOGGER, {"import_id": import_id, "source": source})
