"""Screen-level orchestration of one counting flow.

``ShiftSession`` is what a UI layer talks to: it owns the aggregator, the sync
engine, the connectivity monitor and the validator of a single screen, and
runs every state change on the injected scheduler's loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any

from .cash_breakdown import CashBreakdownCalculator
from .clients import HealthClient, ShiftClient
from .config import ClientConfig
from .connectivity import ConnectivityEvent, ConnectivityMonitor, ConnectivityState
from .exceptions import SelectionMissingError, TransportError, ValidationFailed
from .http_client import HttpClient
from .local_store import CASH_BREAKDOWN_KEY, DEBT_LEDGER_KEY, HOUSE_LEDGER_KEY, LocalStore
from .models import ConsumptionLedger, FlowKind, ProductEntry
from .quantities import QuantityAggregator
from .reconciliation import (
    CLOSE_ACTION,
    PendingConfirmation,
    ReconciliationReport,
    ReconciliationValidator,
    close_confirmation,
    ledger_quantities,
    standard_confirmation,
)
from .scheduling import Scheduler
from .settings import Selection, ShiftSettings, clear_selection
from .sync_engine import SyncEngine, SyncState

logger = logging.getLogger(__name__)

INITIAL_ACTION = "Guardar Inicial"
REQUEST_ACTION = "Enviar Pedido"
TRANSFER_ACTION = "Trasladar"
HOUSE_ACTION = "Guardar Casa"
DEBT_ACTION = "Guardar Deuda"

FLOW_ACTIONS = {
    FlowKind.INITIAL: INITIAL_ACTION,
    FlowKind.REQUEST: REQUEST_ACTION,
    FlowKind.FINAL: CLOSE_ACTION,
    FlowKind.AREA_TO_AREA: TRANSFER_ACTION,
    FlowKind.HOUSE: HOUSE_ACTION,
    FlowKind.DEBT: DEBT_ACTION,
}

LEDGER_KEYS = {FlowKind.HOUSE: HOUSE_LEDGER_KEY, FlowKind.DEBT: DEBT_LEDGER_KEY}


class SessionEvent(str, Enum):
    PRODUCTS = "products"
    SYNC_STATE = "sync_state"
    CONNECTIVITY = "connectivity"
    CONNECTIVITY_LOST = "connectivity_lost"
    VALIDITY = "validity"
    ACTION_DONE = "action_done"
    ACTION_FAILED = "action_failed"
    RELOAD_FAILED = "reload_failed"


SessionListener = Callable[[SessionEvent, Any], None]


class ShiftSession:
    def __init__(
        self,
        flow: FlowKind,
        *,
        config: ClientConfig,
        store: LocalStore,
        scheduler: Scheduler,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.flow = flow
        self.base_config = config
        self.store = store
        self.scheduler = scheduler
        self._clock = clock or (lambda: datetime.now().astimezone())
        self.settings = ShiftSettings.load(store, config)
        self.selection = Selection.load(store)
        self.http: HttpClient | None = None
        self.client: ShiftClient | None = None
        self.health_client: HealthClient | None = None
        self._build_clients(self.settings.config)

        self.aggregator = QuantityAggregator(flow, slot_count=self._slot_count())
        self.validator = ReconciliationValidator(store, lambda: self.aggregator.entries, clock=self._clock)
        self.sync = SyncEngine(
            scheduler,
            flow=flow,
            snapshot=lambda: self.aggregator.entries,
            push=self._push,
            debounce_seconds=config.sync_debounce_seconds,
            status_seconds=config.sync_status_seconds,
        )
        self.monitor = ConnectivityMonitor(
            scheduler,
            self._probe,
            interval_seconds=config.probe_interval_seconds,
        )
        self.loading = False
        self.last_error: Exception | None = None
        self._reload_generation = 0
        self._listeners: list[SessionListener] = []

        self.sync.add_listener(lambda state: self._notify(SessionEvent.SYNC_STATE, state))
        self.monitor.add_state_listener(lambda state: self._notify(SessionEvent.CONNECTIVITY, state))
        self.monitor.add_listener(self._on_connectivity)
        self.validator.add_listener(lambda report: self._notify(SessionEvent.VALIDITY, report))

    # Reactive accessors

    @property
    def sync_state(self) -> SyncState:
        return self.sync.state

    @property
    def connectivity_state(self) -> ConnectivityState:
        return self.monitor.state

    @property
    def products(self) -> list[ProductEntry]:
        return self.aggregator.entries

    @property
    def report(self) -> ReconciliationReport:
        return self.validator.report or self.validator.refresh()

    @property
    def breakdown_valid(self) -> bool:
        return self.report.breakdown_valid

    @property
    def house_valid(self) -> bool:
        return self.report.house_valid

    @property
    def debt_valid(self) -> bool:
        return self.report.debt_valid

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    # Lifecycle

    def focus(self) -> None:
        """Re-read settings, reload products and start probing."""
        settings = ShiftSettings.load(self.store, self.base_config)
        if settings.api_base_url != self.settings.api_base_url:
            logger.info("server_url_changed", extra={"api_base_url": settings.api_base_url})
            self._build_clients(settings.config)
        self.settings = settings
        self.selection = Selection.load(self.store)
        if self._slot_count() != self.aggregator.slot_count:
            self.aggregator.reshape(self._slot_count())
            self._notify(SessionEvent.PRODUCTS, self.products)
        self.force_reload()
        self.monitor.start()
        self.validator.refresh()

    def blur(self) -> None:
        self.monitor.stop()
        self.sync.flush()

    def close(self) -> None:
        self.blur()
        self.sync.stop()
        if self.http is not None and self.http.session is not None:
            self.http.session.close()

    # Quantity edits

    def set_slot(self, product_id: str, slot_index: int, raw: str) -> bool:
        accepted = self.aggregator.set_slot(product_id, slot_index, raw)
        if accepted:
            self._after_mutation()
        return accepted

    def set_single(self, product_id: str, raw: str) -> bool:
        accepted = self.aggregator.set_single(product_id, raw)
        if accepted:
            self._after_mutation()
        return accepted

    def _after_mutation(self) -> None:
        # ledger flows drop the breakdown in save_ledger instead
        if not self.flow.is_ledger:
            self.store.remove(CASH_BREAKDOWN_KEY)
        self.validator.refresh()
        self._notify(SessionEvent.PRODUCTS, self.products)
        self.sync.notify_mutation()

    # Remote loading

    def force_reload(self) -> bool:
        if not self.selection.area_id:
            logger.warning("reload_skipped", extra={"flow": self.flow.value, "reason": "no area selected"})
            return False
        client = self._require_client()
        self._reload_generation += 1
        generation = self._reload_generation
        area_id = self.selection.area_id
        to_area_id = self.selection.to_area_id if self.flow is FlowKind.AREA_TO_AREA else None
        self.loading = True
        self.scheduler.submit(
            lambda: client.products_saved(self.flow, area_id, to_area_id),
            lambda products: self._on_reloaded(generation, products),
            lambda exc: self._on_reload_failed(generation, exc),
        )
        return True

    def _on_reloaded(self, generation: int, products: list[ProductEntry]) -> None:
        if generation != self._reload_generation:
            return
        self.loading = False
        now = self._clock()
        house = ledger_quantities(self.validator.house_ledger(), now)
        debt = ledger_quantities(self.validator.debt_ledger(), now)
        self.aggregator.load(products, house=house, debt=debt)
        logger.info("products_reloaded", extra={"flow": self.flow.value, "count": len(products)})
        self._notify(SessionEvent.PRODUCTS, self.products)
        self.validator.refresh()

    def _on_reload_failed(self, generation: int, exc: Exception) -> None:
        if generation != self._reload_generation:
            return
        self.loading = False
        self.last_error = exc
        logger.warning("products_reload_failed", extra={"flow": self.flow.value, "error": str(exc)})
        self._notify(SessionEvent.RELOAD_FAILED, exc)
        if isinstance(exc, TransportError):
            self.monitor.check_now()

    # Closing actions

    def request_close(self, flow: FlowKind | None = None) -> PendingConfirmation:
        kind = flow or self.flow
        action = FLOW_ACTIONS.get(kind)
        if action is None:
            raise ValueError(f"flow {kind.value!r} has no closing action")
        if kind is not FlowKind.FINAL:
            return standard_confirmation(action)
        return close_confirmation(action, self.validator.refresh, pos_mode=self.settings.pos_mode)

    def confirm(self, pending: PendingConfirmation, *, allow_override: bool = True) -> None:
        """Run the action the user accepted.

        Hosts that cannot show the override dialog pass ``allow_override=False``;
        a close with failing terms then raises ``ValidationFailed`` instead.
        """
        if pending.is_override:
            if not allow_override:
                raise ValidationFailed(pending.action, list(pending.reasons))
            logger.warning("close_override", extra={"action": pending.action, "reasons": list(pending.reasons)})
        if pending.action in {HOUSE_ACTION, DEBT_ACTION}:
            kind = FlowKind.HOUSE if pending.action == HOUSE_ACTION else FlowKind.DEBT
            self.save_ledger(kind)
            self._notify(SessionEvent.ACTION_DONE, pending.action)
            return
        if pending.action == TRANSFER_ACTION:
            self.submit_transfer()
            return
        client = self._require_client()
        try:
            area_id, user_id = self.selection.require()
        except SelectionMissingError as exc:
            self._on_action_failed(pending.action, exc)
            return
        work: Callable[[], Any]
        if pending.action == INITIAL_ACTION:
            work = partial(client.post_initial, area_id=area_id, user_id=user_id)
        elif pending.action == REQUEST_ACTION:
            work = partial(client.send_to_warehouse, area_id=area_id)
        elif pending.action == CLOSE_ACTION:
            work = partial(client.post_final, area_id=area_id, user_id=user_id)
        else:
            raise ValueError(f"unknown action {pending.action!r}")
        self.scheduler.submit(
            work,
            lambda _result: self._on_action_done(pending.action),
            lambda exc: self._on_action_failed(pending.action, exc),
        )

    def _on_action_done(self, action: str) -> None:
        logger.info("action_completed", extra={"action": action, "flow": self.flow.value})
        if action == CLOSE_ACTION:
            clear_selection(self.store)
            self.store.remove(CASH_BREAKDOWN_KEY, HOUSE_LEDGER_KEY, DEBT_LEDGER_KEY)
            self.selection = Selection.load(self.store)
            self.validator.refresh()
        self._notify(SessionEvent.ACTION_DONE, action)

    def _on_action_failed(self, action: str, exc: Exception) -> None:
        self.last_error = exc
        logger.error("action_failed", extra={"action": action, "error": str(exc)})
        self._notify(SessionEvent.ACTION_FAILED, exc)

    def save_ledger(self, flow: FlowKind | None = None) -> ConsumptionLedger:
        kind = flow or self.flow
        key = LEDGER_KEYS.get(kind)
        if key is None:
            raise ValueError(f"flow {kind.value!r} does not keep a ledger")
        ledger = self.aggregator.to_ledger(now=self._clock())
        self.store.save_model(key, ledger)
        self.store.remove(CASH_BREAKDOWN_KEY)
        logger.info("ledger_saved", extra={"ledger": key, "items": len(ledger.items)})
        self.validator.refresh()
        return ledger

    def open_breakdown(self) -> CashBreakdownCalculator:
        report = self.validator.refresh()
        calculator = CashBreakdownCalculator.open(
            self.store,
            sales_amount=report.expected_income,
            commission=report.expected_commission,
            exchange_rates=self.settings.exchange_rates,
            clock=self._clock,
        )
        calculator.add_listener(lambda _record: self.validator.refresh())
        self.validator.refresh()
        return calculator

    def submit_transfer(self) -> None:
        if self.flow is not FlowKind.AREA_TO_AREA:
            raise ValueError("transfers are only submitted from the area-to-area flow")
        client = self._require_client()
        try:
            area_id, user_id = self.selection.require()
        except SelectionMissingError as exc:
            self._on_action_failed(TRANSFER_ACTION, exc)
            return
        if not self.selection.to_area_id:
            self._on_action_failed(TRANSFER_ACTION, ValueError("no destination area selected"))
            return
        products = self.aggregator.entries
        to_area_id = self.selection.to_area_id
        to_user_id = self.selection.to_user_id
        self.scheduler.submit(
            lambda: client.post_area_to_area(
                products,
                area_id=area_id,
                user_id=user_id,
                to_area_id=to_area_id,
                to_user_id=to_user_id,
            ),
            lambda _result: self._on_action_done(TRANSFER_ACTION),
            lambda exc: self._on_action_failed(TRANSFER_ACTION, exc),
        )

    # Wiring

    def _on_connectivity(self, event: ConnectivityEvent) -> None:
        if event is ConnectivityEvent.LOST:
            self._notify(SessionEvent.CONNECTIVITY_LOST, self.monitor.last_failure)
        elif event is ConnectivityEvent.RESTORED:
            if self.flow.auto_sync:
                self.sync.force_push()
            self.validator.refresh()

    def _push(self, products: list[ProductEntry]) -> Any:
        client = self._require_client()
        return client.sync(
            self.flow,
            products,
            user_id=self.selection.user_id,
            area_id=self.selection.area_id,
        )

    def _probe(self) -> Any:
        if self.health_client is None:
            raise RuntimeError("health client is not configured")
        return self.health_client.health()

    def _slot_count(self) -> int:
        return self.settings.slot_count if self.flow.is_multi_slot else 1

    def _build_clients(self, config: ClientConfig) -> None:
        if self.http is not None and self.http.session is not None:
            self.http.session.close()
        self.http = HttpClient(config)
        self.client = ShiftClient(http=self.http)
        self.health_client = HealthClient(http=self.http)

    def _require_client(self) -> ShiftClient:
        if self.client is None:
            raise RuntimeError("shift client is not configured")
        return self.client

    def _notify(self, event: SessionEvent, payload: Any) -> None:
        for listener in list(self._listeners):
            listener(event, payload)
