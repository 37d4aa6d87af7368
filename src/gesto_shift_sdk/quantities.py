"""Multi-slot quantity aggregation for product counts.

Each product carries ``slot_count`` parallel count fields whose sum is the
product quantity. Inputs follow the same grammar as the counting screens:
digits with an optional single decimal separator (comma or dot) and at most
two decimals.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .exceptions import InputRejected
from .models import ConsumptionLedger, FlowKind, LedgerItem, ProductEntry

logger = logging.getLogger(__name__)

QUANTITY_PATTERN = re.compile(r"^\d*[.,]?\d{0,2}$")
ZERO = Decimal("0")

ChangeListener = Callable[[str], None]


def is_valid_quantity(raw: str) -> bool:
    return bool(QUANTITY_PATTERN.match(raw or ""))


def normalize_input(raw: str) -> str:
    return (raw or "").replace(",", ".")


def parse_quantity(value: str | Decimal | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    text = normalize_input(str(value)).strip()
    if not text or text == ".":
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation:
        return ZERO


def format_decimal(value: Decimal) -> str:
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def sum_counts(counts: Iterable[str]) -> Decimal:
    return sum((parse_quantity(item) for item in counts), ZERO)


def _derived_quantity(counts: list[str]) -> str:
    total = sum_counts(counts)
    if total:
        return format_decimal(total)
    return counts[0] if counts else ""


def reshape(entries: Iterable[ProductEntry], slot_count: int) -> list[ProductEntry]:
    """Return copies of ``entries`` whose counts have exactly ``slot_count`` slots."""
    if slot_count < 1:
        raise ValueError(f"slot_count must be >= 1, got {slot_count}")
    shaped: list[ProductEntry] = []
    for entry in entries:
        counts = list(entry.counts)
        if not counts:
            counts = ["0"] * slot_count
            if entry.quantity not in {None, ""}:
                counts[0] = entry.quantity
        elif len(counts) < slot_count:
            counts = counts + ["0"] * (slot_count - len(counts))
        elif len(counts) > slot_count:
            counts = counts[:slot_count]
        shaped.append(entry.model_copy(update={"counts": counts, "quantity": _derived_quantity(counts)}))
    return shaped


def quota_ceiling(
    entry: ProductEntry,
    flow: FlowKind,
    house: Mapping[str, Decimal],
    debt: Mapping[str, Decimal],
) -> Decimal | None:
    """Upper bound for a quantity in flows that draw from ``sold``."""
    if flow is FlowKind.HOUSE:
        return entry.sold - debt.get(entry.id, ZERO)
    if flow is FlowKind.DEBT:
        return entry.sold - house.get(entry.id, ZERO)
    if flow is FlowKind.AREA_TO_AREA:
        return entry.sold
    return None


def build_ledger(entries: Iterable[ProductEntry], now: datetime | None = None) -> ConsumptionLedger:
    items = []
    for entry in entries:
        quantity = parse_quantity(entry.quantity) if entry.quantity else sum_counts(entry.counts)
        if quantity > 0:
            items.append(LedgerItem(id=entry.id, quantity=quantity))
    return ConsumptionLedger(items=items, created_at=now or datetime.now().astimezone())


class QuantityAggregator:
    """Owns the product list of one counting screen."""

    def __init__(self, flow: FlowKind, slot_count: int = 1) -> None:
        self.flow = flow
        self.slot_count = max(1, slot_count)
        self._entries: list[ProductEntry] = []
        self._index: dict[str, int] = {}
        self.house: dict[str, Decimal] = {}
        self.debt: dict[str, Decimal] = {}
        self._listeners: list[ChangeListener] = []

    @property
    def entries(self) -> list[ProductEntry]:
        return list(self._entries)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def load(
        self,
        entries: Iterable[ProductEntry],
        *,
        house: Mapping[str, Decimal] | None = None,
        debt: Mapping[str, Decimal] | None = None,
    ) -> None:
        self.house = dict(house or {})
        self.debt = dict(debt or {})
        loaded = list(entries)
        if self.flow is FlowKind.HOUSE:
            loaded = self._prefill(loaded, self.house)
        elif self.flow is FlowKind.DEBT:
            loaded = self._prefill(loaded, self.debt)
        self._replace(reshape(loaded, self.slot_count))

    def prefill_from_ledger(self, quantities: Mapping[str, Decimal]) -> None:
        """Replace every quantity with the one recorded in a saved ledger."""
        self._replace(reshape(self._prefill(self._entries, quantities), self.slot_count))

    def reshape(self, slot_count: int) -> None:
        self.slot_count = max(1, slot_count)
        self._replace(reshape(self._entries, self.slot_count))

    def set_slot(self, product_id: str, slot_index: int, raw: str) -> bool:
        try:
            entry = self._lookup(product_id)
            if not 0 <= slot_index < self.slot_count:
                raise InputRejected(raw, f"slot {slot_index} out of range")
            text = self._check(entry, raw)
            counts = list(entry.counts)
            counts[slot_index] = text
            total = sum_counts(counts)
            self._check_ceiling(entry, raw, total)
        except InputRejected as exc:
            logger.debug("quantity_input_rejected", extra={"product_id": product_id, "reason": exc.reason})
            return False
        self._store(entry.model_copy(update={"counts": counts, "quantity": _derived_quantity(counts)}))
        return True

    def set_single(self, product_id: str, raw: str) -> bool:
        try:
            entry = self._lookup(product_id)
            text = self._check(entry, raw)
            self._check_ceiling(entry, raw, parse_quantity(text))
        except InputRejected as exc:
            logger.debug("quantity_input_rejected", extra={"product_id": product_id, "reason": exc.reason})
            return False
        counts = list(entry.counts)
        if counts:
            counts = [text] + ["0"] * (len(counts) - 1)
        self._store(entry.model_copy(update={"counts": counts, "quantity": text}))
        return True

    def ceiling_for(self, product_id: str) -> Decimal | None:
        return quota_ceiling(self._lookup(product_id), self.flow, self.house, self.debt)

    def total(self, product_id: str) -> Decimal:
        entry = self._lookup(product_id)
        return sum_counts(entry.counts) if entry.counts else parse_quantity(entry.quantity)

    def to_ledger(self, now: datetime | None = None) -> ConsumptionLedger:
        return build_ledger(self._entries, now=now)

    def _lookup(self, product_id: str) -> ProductEntry:
        position = self._index.get(str(product_id))
        if position is None:
            raise InputRejected(str(product_id), "unknown product")
        return self._entries[position]

    def _check(self, entry: ProductEntry, raw: str) -> str:
        if not is_valid_quantity(raw):
            raise InputRejected(raw, "not a quantity with up to 2 decimals")
        return normalize_input(raw)

    def _check_ceiling(self, entry: ProductEntry, raw: str, total: Decimal) -> None:
        ceiling = quota_ceiling(entry, self.flow, self.house, self.debt)
        if ceiling is not None and total > ceiling:
            raise InputRejected(raw, f"exceeds ceiling {format_decimal(ceiling)}")

    def _prefill(self, entries: list[ProductEntry], source: Mapping[str, Decimal]) -> list[ProductEntry]:
        prefilled = []
        for entry in entries:
            quantity = source.get(entry.id, ZERO)
            prefilled.append(entry.model_copy(update={"counts": [], "quantity": format_decimal(quantity)}))
        return prefilled

    def _replace(self, entries: list[ProductEntry]) -> None:
        self._entries = entries
        self._index = {entry.id: position for position, entry in enumerate(entries)}

    def _store(self, entry: ProductEntry) -> None:
        self._entries[self._index[entry.id]] = entry
        for listener in list(self._listeners):
            listener(entry.id)
