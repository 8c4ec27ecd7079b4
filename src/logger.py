"""JSON line logging shared by the sweep modules and the CLI."""

import json
import logging
import os
from typing import Any, Dict

LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class JsonFormatter(logging.Formatter):
    def _safe_serialize(self, value: Any) -> Any:
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "extra") and isinstance(getattr(record, "extra"), dict):
            for k, v in getattr(record, "extra").items():
                payload[k] = self._safe_serialize(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload = {k: self._safe_serialize(v) for k, v in payload.items()}
        return json.dumps(payload, ensure_ascii=False)


def get_logger(name: str = "couch_sweep", level: str | None = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    env_level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(LEVELS.get(env_level_name, logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
