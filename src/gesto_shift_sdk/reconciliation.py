"""Shift close reconciliation.

Compares three independently maintained figures: the income implied by the
counted products, the cash breakdown totals, and the house/debt consumption
ledgers. The computation is a pure function of those records;
``ReconciliationValidator`` only reads them from the local store and keeps the
latest report for the UI.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .local_store import CASH_BREAKDOWN_KEY, DEBT_LEDGER_KEY, HOUSE_LEDGER_KEY, LocalStore
from .models import TRANSFER_KEY, CashBreakdown, ConsumptionLedger, ProductEntry
from .quantities import ZERO, parse_quantity

logger = logging.getLogger(__name__)

CLOSE_ACTION = "Guardar Final"
BREAKDOWN_REASON = "el desglose no es válido"
HOUSE_REASON = "el consumo de casa no es válido"
DEBT_REASON = "la deuda no es válida"
NEGATIVE_INCOME_REASON = "el importe es menor que 0"


def ledger_quantities(ledger: ConsumptionLedger | None, now: datetime | None = None) -> dict[str, Decimal]:
    if ledger is None or not ledger.is_fresh(now):
        return {}
    return ledger.quantities()


def expected_income(
    products: Iterable[ProductEntry],
    house: Mapping[str, Decimal],
    debt: Mapping[str, Decimal],
) -> Decimal:
    total = ZERO
    for product in products:
        price = product.price or ZERO
        total += product.monto - house.get(product.id, ZERO) * price - debt.get(product.id, ZERO) * price
    return total


def expected_commission(
    products: Iterable[ProductEntry],
    house: Mapping[str, Decimal],
    debt: Mapping[str, Decimal],
) -> Decimal:
    total = ZERO
    for product in products:
        billable = product.sold - house.get(product.id, ZERO) - debt.get(product.id, ZERO)
        total += billable * product.commission_rate
    return total


def breakdown_transfer(breakdown: CashBreakdown) -> Decimal:
    if breakdown.totals.transfer_amount:
        return breakdown.totals.transfer_amount
    return parse_quantity(breakdown.denominations.get(TRANSFER_KEY))


@dataclass(frozen=True)
class ReconciliationReport:
    expected_income: Decimal
    expected_commission: Decimal
    transfer_amount: Decimal
    total_cash: Decimal | None
    breakdown_valid: bool
    house_valid: bool
    debt_valid: bool

    @property
    def required_cash(self) -> Decimal:
        return self.expected_income - self.expected_commission - self.transfer_amount

    @property
    def all_valid(self) -> bool:
        return self.breakdown_valid and self.house_valid and self.debt_valid

    def failure_reasons(self) -> list[str]:
        reasons = []
        if not self.breakdown_valid:
            reasons.append(BREAKDOWN_REASON)
        if not self.house_valid:
            reasons.append(HOUSE_REASON)
        if not self.debt_valid:
            reasons.append(DEBT_REASON)
        if self.expected_income < 0:
            reasons.append(NEGATIVE_INCOME_REASON)
        return reasons

    def as_dict(self) -> dict[str, object]:
        return {
            "expectedIncome": str(self.expected_income),
            "expectedCommission": str(self.expected_commission),
            "transferAmount": str(self.transfer_amount),
            "requiredCash": str(self.required_cash),
            "totalCash": None if self.total_cash is None else str(self.total_cash),
            "breakdownValid": self.breakdown_valid,
            "houseValid": self.house_valid,
            "debtValid": self.debt_valid,
            "reasons": self.failure_reasons(),
        }


def evaluate(
    products: Iterable[ProductEntry],
    breakdown: CashBreakdown | None,
    house_ledger: ConsumptionLedger | None,
    debt_ledger: ConsumptionLedger | None,
    now: datetime | None = None,
) -> ReconciliationReport:
    items = list(products)
    house = ledger_quantities(house_ledger, now)
    debt = ledger_quantities(debt_ledger, now)
    income = expected_income(items, house, debt)
    commission = expected_commission(items, house, debt)

    total_cash: Decimal | None = None
    transfer = ZERO
    breakdown_valid = False
    if breakdown is not None:
        total_cash = breakdown.totals.total_cash
        transfer = breakdown_transfer(breakdown)
        breakdown_valid = total_cash >= income - commission - transfer

    return ReconciliationReport(
        expected_income=income,
        expected_commission=commission,
        transfer_amount=transfer,
        total_cash=total_cash,
        breakdown_valid=breakdown_valid,
        house_valid=house_ledger is not None and house_ledger.is_fresh(now),
        debt_valid=debt_ledger is not None and debt_ledger.is_fresh(now),
    )


@dataclass(frozen=True)
class PendingConfirmation:
    """A closing action awaiting the user's answer to a confirmation dialog."""

    action: str
    text: str
    reasons: tuple[str, ...] = ()

    @property
    def is_override(self) -> bool:
        return bool(self.reasons)


def standard_confirmation(action: str) -> PendingConfirmation:
    return PendingConfirmation(action=action, text=f"¿Desea {action}?")


def close_confirmation(
    action: str,
    report_factory: Callable[[], ReconciliationReport],
    *,
    pos_mode: bool = True,
) -> PendingConfirmation:
    try:
        report = report_factory()
    except Exception:
        logger.exception("reconciliation_failed", extra={"action": action})
        return standard_confirmation(action)
    reasons = report.failure_reasons() if pos_mode else []
    if not reasons:
        return standard_confirmation(action)
    text = f'Advertencia: {" y ".join(reasons)}. ¿Deseas continuar y ejecutar "{action}" de todos modos?'
    return PendingConfirmation(action=action, text=text, reasons=tuple(reasons))


class ReconciliationValidator:
    def __init__(
        self,
        store: LocalStore,
        products: Callable[[], list[ProductEntry]],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self._products = products
        self._clock = clock or datetime.now
        self.report: ReconciliationReport | None = None
        self._listeners: list[Callable[[ReconciliationReport], None]] = []

    def add_listener(self, listener: Callable[[ReconciliationReport], None]) -> None:
        self._listeners.append(listener)

    def house_ledger(self) -> ConsumptionLedger | None:
        return self.store.read_model_or_none(HOUSE_LEDGER_KEY, ConsumptionLedger)

    def debt_ledger(self) -> ConsumptionLedger | None:
        return self.store.read_model_or_none(DEBT_LEDGER_KEY, ConsumptionLedger)

    def compute(self) -> ReconciliationReport:
        return evaluate(
            self._products(),
            self.store.read_model_or_none(CASH_BREAKDOWN_KEY, CashBreakdown),
            self.house_ledger(),
            self.debt_ledger(),
            now=self._clock(),
        )

    def refresh(self) -> ReconciliationReport:
        report = self.compute()
        changed = report != self.report
        self.report = report
        if changed:
            for listener in list(self._listeners):
                listener(report)
        return report
