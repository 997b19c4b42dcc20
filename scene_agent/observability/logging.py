from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "scene_agent"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in (
            "trace_id",
            "session_id",
            "request_id",
            "tool_name",
            "tier",
            "duration_ms",
            "outcome",
            "path",
            "status",
            "method",
        ):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def get_runtime_logger(level: str | None = None) -> logging.Logger:
    """Configure the package logger once; module loggers propagate into it."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    if not level:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
