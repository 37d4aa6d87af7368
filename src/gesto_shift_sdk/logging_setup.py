from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone

_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: event name plus whatever came in ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "event": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _env_json_enabled() -> bool:
    value = os.getenv("GESTO_LOG_JSON", "1").strip().lower()
    return value in {"1", "true", "yes", "on"}


def configure_logging(level: int | str | None = None, *, json_lines: bool | None = None) -> None:
    level = level or os.getenv("GESTO_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = level.strip().upper()
    handler = logging.StreamHandler()
    if json_lines if json_lines is not None else _env_json_enabled():
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
