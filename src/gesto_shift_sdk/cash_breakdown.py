from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import InputRejected
from .local_store import CASH_BREAKDOWN_KEY, LocalStore
from .models import TRANSFER_KEY, CashBreakdown, CashTotals
from .quantities import ZERO, is_valid_quantity, normalize_input, parse_quantity
from .settings import EXCHANGE_CODES, save_exchange_rate

logger = logging.getLogger(__name__)

FACE_VALUES = ("1000", "500", "200", "100", "50", "20", "10", "5", "3", "1")
DENOMINATIONS: tuple[str, ...] = FACE_VALUES + EXCHANGE_CODES + (TRANSFER_KEY,)
CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_amount_input(raw: str) -> str:
    """Validate a denomination/rate/tip input and return its canonical text."""
    if not is_valid_quantity(raw):
        raise InputRejected(raw, "not an amount with up to 2 decimals")
    text = normalize_input(raw).lstrip("0")
    if not text:
        return "0"
    if text.startswith("."):
        text = "0" + text
    return text


def denomination_value(key: str, count: str, rates: Mapping[str, Decimal]) -> Decimal:
    amount = parse_quantity(count)
    if key == TRANSFER_KEY:
        return amount
    if key in FACE_VALUES:
        return amount * Decimal(key)
    if key in rates:
        return amount * rates[key]
    return ZERO


def compute_totals(
    denominations: Mapping[str, str],
    rates: Mapping[str, Decimal],
    *,
    sales_amount: Decimal,
    commission: Decimal,
    tip_override: Decimal | None = None,
) -> CashTotals:
    total_cash = sum(
        (denomination_value(key, value, rates) for key, value in denominations.items() if key != TRANSFER_KEY),
        ZERO,
    )
    transfer = parse_quantity(denominations.get(TRANSFER_KEY))
    settlement = sales_amount - commission - transfer
    tip = tip_override if tip_override is not None else max(total_cash - settlement, ZERO)
    return CashTotals(
        total_cash=_money(total_cash),
        tip=_money(tip),
        commission=_money(commission),
        salary=_money(tip + commission),
        settlement=_money(settlement),
        sales_amount=_money(sales_amount),
        transfer_amount=_money(transfer),
    )


class CashBreakdownCalculator:
    """Denomination counts for the shift close, persisted on every change."""

    def __init__(
        self,
        store: LocalStore,
        *,
        sales_amount: Decimal,
        commission: Decimal,
        exchange_rates: Mapping[str, Decimal],
        denominations: Mapping[str, str] | None = None,
        tip_override: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.sales_amount = sales_amount
        self.commission = commission
        self.exchange_rates: dict[str, Decimal] = dict(exchange_rates)
        self.denominations: dict[str, str] = {key: "0" for key in DENOMINATIONS}
        for key, value in (denominations or {}).items():
            try:
                self.denominations[key] = normalize_amount_input(value)
            except InputRejected:
                logger.warning("stored_denomination_reset", extra={"denomination": key, "value": value})
                self.denominations[key] = "0"
        self.tip_override = tip_override
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._listeners: list[Callable[[CashBreakdown], None]] = []

    @classmethod
    def open(
        cls,
        store: LocalStore,
        *,
        sales_amount: Decimal,
        commission: Decimal,
        exchange_rates: Mapping[str, Decimal],
        clock: Callable[[], datetime] | None = None,
    ) -> CashBreakdownCalculator:
        """Load the saved breakdown (if any) and persist it right away."""
        previous = store.read_model_or_none(CASH_BREAKDOWN_KEY, CashBreakdown)
        rates = dict(exchange_rates)
        denominations: dict[str, str] = {}
        tip_override = None
        if previous is not None:
            for code, rate in previous.exchange_rates.items():
                if rate:
                    rates[code] = rate
            denominations = dict(previous.denominations)
            tip_override = previous.tip_override
        calculator = cls(
            store,
            sales_amount=sales_amount,
            commission=commission,
            exchange_rates=rates,
            denominations=denominations,
            tip_override=tip_override,
            clock=clock,
        )
        calculator.persist()
        return calculator

    def add_listener(self, listener: Callable[[CashBreakdown], None]) -> None:
        self._listeners.append(listener)

    @property
    def totals(self) -> CashTotals:
        tip = parse_quantity(self.tip_override) if self.tip_override not in {None, ""} else None
        return compute_totals(
            self.denominations,
            self.exchange_rates,
            sales_amount=self.sales_amount,
            commission=self.commission,
            tip_override=tip,
        )

    @property
    def shortfall(self) -> bool:
        totals = self.totals
        return totals.total_cash < totals.settlement

    def set_denomination(self, key: str, raw: str) -> bool:
        if key not in self.denominations:
            logger.debug("unknown_denomination", extra={"denomination": key})
            return False
        try:
            self.denominations[key] = normalize_amount_input(raw)
        except InputRejected as exc:
            logger.debug("denomination_input_rejected", extra={"denomination": key, "reason": exc.reason})
            return False
        self.persist()
        return True

    def set_tip(self, raw: str) -> bool:
        if raw == "":
            self.tip_override = None
        else:
            try:
                self.tip_override = normalize_amount_input(raw)
            except InputRejected as exc:
                logger.debug("tip_input_rejected", extra={"reason": exc.reason})
                return False
        self.persist()
        return True

    def set_exchange_rate(self, code: str, raw: str) -> bool:
        try:
            rate = Decimal(normalize_amount_input(raw))
        except InputRejected as exc:
            logger.debug("exchange_rate_rejected", extra={"code": code, "reason": exc.reason})
            return False
        self.exchange_rates[code] = rate
        save_exchange_rate(self.store, code, rate)
        self.persist()
        return True

    def snapshot(self) -> CashBreakdown:
        return CashBreakdown(
            denominations=dict(self.denominations),
            exchange_rates=dict(self.exchange_rates),
            totals=self.totals,
            tip_override=self.tip_override,
            saved_at=self._clock(),
        )

    def persist(self) -> CashBreakdown:
        record = self.snapshot()
        self.store.save_model(CASH_BREAKDOWN_KEY, record)
        for listener in list(self._listeners):
            listener(record)
        return record
