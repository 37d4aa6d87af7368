from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from platformdirs import user_data_dir
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from .exceptions import ParseFailed

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

COUNT_TIMES_KEY = "count_times"
POS_MODE_KEY = "pos_mode"
SERVER_URL_KEY = "server_url"
EXCHANGE_RATES_KEY = "exchange_rates"
CASH_BREAKDOWN_KEY = "cash_breakdown"
HOUSE_LEDGER_KEY = "house_ledger"
DEBT_LEDGER_KEY = "debt_ledger"
SELECTED_AREA_KEY = "selected_area"
SELECTED_USER_KEY = "selected_user"
SELECTED_TO_AREA_KEY = "selected_to_area"
SELECTED_TO_USER_KEY = "selected_to_user"


@dataclass
class LocalStore:
    """Key-value store with one JSON file per key.

    Writes replace the whole file through a temporary sibling, so a record is
    either the previous value or the new one. There is no grouping across keys.
    """

    app_name: str = "gesto-shift"
    base_dir: Path | None = None

    def _dir(self) -> Path:
        base = self.base_dir or Path(user_data_dir(self.app_name, "Gesto"))
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _path(self, key: str) -> Path:
        return self._dir() / f"{key}.json"

    def get_json(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ParseFailed(key, str(exc)) from exc

    def set_json(self, key: str, value: Any) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load_model(self, key: str, model_type: type[ModelT]) -> ModelT | None:
        data = self.get_json(key)
        if data is None:
            return None
        try:
            return model_type.model_validate(data)
        except ModelValidationError as exc:
            raise ParseFailed(key, str(exc)) from exc

    def save_model(self, key: str, model: BaseModel) -> None:
        self.set_json(key, model.model_dump(mode="json", by_alias=True))

    def read_model_or_none(self, key: str, model_type: type[ModelT]) -> ModelT | None:
        """Like ``load_model`` but an unreadable record counts as absent."""
        try:
            return self.load_model(key, model_type)
        except ParseFailed as exc:
            logger.warning("local_record_unreadable", extra={"key": key, "reason": exc.reason})
            return None

    def get_text(self, key: str) -> str | None:
        try:
            value = self.get_json(key)
        except ParseFailed as exc:
            logger.warning("local_record_unreadable", extra={"key": key, "reason": exc.reason})
            return None
        if value is None or value == "":
            return None
        return str(value)

    def remove(self, *keys: str) -> None:
        for key in keys:
            path = self._path(key)
            if path.exists():
                path.unlink()
