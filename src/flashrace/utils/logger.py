"""
Unified logging setup - console, rotating file, JSONL race events.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .trace_context import get_trace_id

LOG_DIR = Path("logs")
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(trace_id)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_SIZE_MB = 10
BACKUP_COUNT = 5

EVENTS_LOGGER_NAME = "flashrace.events"

_loggers: Dict[str, logging.Logger] = {}
_file_handler_added = False


class TraceIdFilter(logging.Filter):
    """Adds trace_id of the current run to log records."""
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'trace_id'):
            record.trace_id = get_trace_id() or '-'
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured race events."""
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        for key in ("event_type", "run_id", "trace_id", "details"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


_trace_filter = TraceIdFilter()


def parse_level(level: Any, default: int = logging.INFO) -> int:
    """LOG_LEVEL value ("DEBUG", "info", 20) -> logging level."""
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        value = logging.getLevelName(level.strip().upper())
        if isinstance(value, int):
            return value
    return default


def get_logger(name: str, level: int = logging.NOTSET) -> logging.Logger:
    """Get or create a logger."""
    if name in _loggers:
        return _loggers[name]
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level)
    _loggers[name] = logger
    return logger


def setup_file_logging(
    filename: str = "flashrace.log",
    level: int = logging.INFO,
    use_rotation: bool = True,
    log_dir: Optional[Path] = None,
) -> None:
    """Set up file logging once; later calls are no-ops."""
    global _file_handler_added

    if _file_handler_added:
        return

    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / Path(filename).name

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if use_rotation:
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
    else:
        file_handler = logging.FileHandler(str(log_path), encoding='utf-8')

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(_trace_filter)
    root_logger.addHandler(file_handler)

    _file_handler_added = True


def setup_console_logging(level: int = logging.INFO, stream=None) -> None:
    """Set up console logging (stdout unless another stream is given)."""
    stream = stream or sys.stdout
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is stream:
            return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_trace_filter)
    root_logger.addHandler(console_handler)


def setup_json_logging(filename: str = "race_events.jsonl", log_dir: Optional[Path] = None) -> logging.Logger:
    """JSONL logger for run start/end events."""
    json_logger = logging.getLogger(EVENTS_LOGGER_NAME)
    json_logger.setLevel(logging.INFO)
    json_logger.propagate = False

    for handler in json_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return json_logger

    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)

    json_handler = logging.handlers.RotatingFileHandler(
        str(directory / filename),
        maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    json_handler.setFormatter(JSONFormatter())
    json_handler.addFilter(_trace_filter)
    json_logger.addHandler(json_handler)
    return json_logger


def log_race_event(event_type: str, run_id: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Structured run event; dropped silently until setup_json_logging() ran."""
    json_logger = logging.getLogger(EVENTS_LOGGER_NAME)
    if not json_logger.handlers:
        return
    record = json_logger.makeRecord(
        name=EVENTS_LOGGER_NAME,
        level=logging.INFO,
        fn="", lno=0,
        msg=f"{event_type}: {run_id}",
        args=(), exc_info=None
    )
    record.event_type = event_type
    record.run_id = run_id
    if details:
        record.details = details
    json_logger.handle(record)


def setup_logging(level: Any = logging.INFO, log_dir: Optional[Path] = None, to_file: bool = True) -> None:
    """Console + file + JSONL event logging in one call (CLI entry)."""
    numeric_level = parse_level(level)
    setup_console_logging(numeric_level, stream=sys.stderr)
    if to_file:
        setup_file_logging(level=numeric_level, log_dir=log_dir)
        setup_json_logging(log_dir=log_dir)
