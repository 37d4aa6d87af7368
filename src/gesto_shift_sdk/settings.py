from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from .config import ClientConfig
from .exceptions import ParseFailed, SelectionMissingError
from .local_store import (
    COUNT_TIMES_KEY,
    EXCHANGE_RATES_KEY,
    POS_MODE_KEY,
    SELECTED_AREA_KEY,
    SELECTED_TO_AREA_KEY,
    SELECTED_TO_USER_KEY,
    SELECTED_USER_KEY,
    SERVER_URL_KEY,
    LocalStore,
)

logger = logging.getLogger(__name__)

EXCHANGE_CODES = ("USD", "EUR", "CAN")


def _slot_count(raw: Any) -> int:
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        return 1
    return value if value >= 1 else 1


def _pos_mode(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _rates(raw: Any) -> dict[str, Decimal]:
    rates = {code: Decimal("0") for code in EXCHANGE_CODES}
    if not isinstance(raw, dict):
        return rates
    for code, value in raw.items():
        try:
            rates[str(code)] = Decimal(str(value).replace(",", "."))
        except InvalidOperation:
            logger.warning("exchange_rate_ignored", extra={"code": code, "value": value})
    return rates


def _read(store: LocalStore, key: str) -> Any:
    try:
        return store.get_json(key)
    except ParseFailed as exc:
        logger.warning("setting_unreadable", extra={"key": key, "reason": exc.reason})
        return None


@dataclass(frozen=True)
class ShiftSettings:
    """Immutable snapshot of the process-wide settings, taken on screen focus."""

    config: ClientConfig
    slot_count: int = 1
    pos_mode: bool = True
    exchange_rates: dict[str, Decimal] = field(default_factory=lambda: _rates(None))

    @property
    def api_base_url(self) -> str:
        return self.config.api_base_url

    @classmethod
    def load(cls, store: LocalStore, config: ClientConfig) -> ShiftSettings:
        server_url = store.get_text(SERVER_URL_KEY)
        effective = config.with_base_url(server_url) if server_url else config
        return cls(
            config=effective,
            slot_count=_slot_count(_read(store, COUNT_TIMES_KEY)),
            pos_mode=_pos_mode(_read(store, POS_MODE_KEY)),
            exchange_rates=_rates(_read(store, EXCHANGE_RATES_KEY)),
        )


def save_slot_count(store: LocalStore, slot_count: int) -> None:
    if slot_count < 1:
        raise ValueError(f"slot count must be >= 1, got {slot_count}")
    store.set_json(COUNT_TIMES_KEY, slot_count)


def save_exchange_rate(store: LocalStore, code: str, rate: Decimal) -> dict[str, Decimal]:
    rates = _rates(_read(store, EXCHANGE_RATES_KEY))
    rates[code] = rate
    store.set_json(EXCHANGE_RATES_KEY, {key: str(value) for key, value in rates.items()})
    return rates


@dataclass(frozen=True)
class Selection:
    area_id: str | None = None
    user_id: str | None = None
    to_area_id: str | None = None
    to_user_id: str | None = None

    @classmethod
    def load(cls, store: LocalStore) -> Selection:
        return cls(
            area_id=store.get_text(SELECTED_AREA_KEY),
            user_id=store.get_text(SELECTED_USER_KEY),
            to_area_id=store.get_text(SELECTED_TO_AREA_KEY),
            to_user_id=store.get_text(SELECTED_TO_USER_KEY),
        )

    def require(self) -> tuple[str, str]:
        if not self.area_id or not self.user_id:
            raise SelectionMissingError("an area and a responsible user must be selected")
        return self.area_id, self.user_id


def clear_selection(store: LocalStore) -> None:
    store.remove(SELECTED_AREA_KEY, SELECTED_USER_KEY)
