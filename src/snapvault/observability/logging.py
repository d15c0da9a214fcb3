"""Structured logging for snapvault.

Every record is written as one JSON object per line. Storage and registry
operations report what they did through ``log_event``, which attaches an
``event`` name and flat fields (snapshot name, version id, counts) that
end up as top-level keys of the JSON line.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union


def _json_default(value: Any) -> Any:
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


class JsonFormatter(logging.Formatter):
    """Formats records as JSONL with event fields merged into the envelope."""

    ENVELOPE = ("timestamp", "level", "message", "component")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        dummy_record = logging.LogRecord("name", logging.INFO, "path", 1, "msg", None, None)
        self._reserved_attrs = set(dummy_record.__dict__.keys())
        self._reserved_attrs.update({"message", "asctime", "stack_info"})

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "component": record.name,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._reserved_attrs:
                continue
            if key == "extra_fields" and isinstance(value, dict):
                # Event fields never shadow the envelope
                log_entry.update(
                    {k: v for k, v in value.items() if k not in self.ENVELOPE}
                )
            else:
                log_entry[key] = value

        return json.dumps(log_entry, default=_json_default)


def log_event(
    logger: logging.Logger,
    message: str,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Logs a message tagged with an event name and structured fields.

    Args:
        logger: Logger to write to.
        message: Human readable message.
        event: Machine readable event name, e.g. ``snapshot_updated``.
        level: Log level.
        **fields: Additional flat fields for the JSON line.
    """
    logger.log(level, message, extra={"extra_fields": {"event": event, **fields}})


def setup_logging(
    level: Optional[str] = None, log_file: Optional[Union[str, Path]] = None
) -> None:
    """Initializes the root logger.

    Records go to stderr so command output on stdout stays machine readable.

    Args:
        level: Log level override. Defaults to the LOG_LEVEL env var or INFO.
        log_file: Optional JSONL file that receives the same records.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    root = logging.getLogger()
    root.setLevel(log_level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = JsonFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
