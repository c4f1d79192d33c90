"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict

ENGINE_LOGGER_NAME = "chain_rpc_bridge.engine"

# Engine verbosity levels (1 = error .. 5 = trace) to logging levels.
_ENGINE_LEVELS: Dict[int, int] = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
    5: logging.DEBUG,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


class ConsoleFormatter(logging.Formatter):
    """Human readable ``[HH:MM:SS.mmm] [target] message`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created)
        stamp = now.strftime("%H:%M:%S") + f".{int(record.msecs):03d}"
        extra = getattr(record, "extra_fields", None) or {}
        target = extra.get("target") or record.name
        line = f"[{stamp}] [{target}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", *, json_output: bool | None = None) -> None:
    if json_output is None:
        json_output = not (sys.stderr is not None and sys.stderr.isatty())
    logger = logging.getLogger()
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else ConsoleFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def engine_log_callback() -> Callable[[int, str, str], None]:
    """Build the callback handed to the engine for its own log lines."""
    logger = logging.getLogger(ENGINE_LOGGER_NAME)

    def _log(level: int, target: str, message: str) -> None:
        py_level = _ENGINE_LEVELS.get(int(level), logging.DEBUG)
        logger.log(py_level, message, extra={"extra_fields": {"target": target}})

    return _log


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
