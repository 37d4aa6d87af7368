from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .exceptions import SyncFailed
from .models import FlowKind, ProductEntry
from .scheduling import Scheduler

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class SyncEngine:
    """Debounced push of the local product list to the remote store.

    Local state is never rolled back: a failed push only changes the status,
    and the next push (debounced or forced) carries the current snapshot. At
    most one push is in flight; anything that wants to push meanwhile collapses
    into a single queued follow-up.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        flow: FlowKind,
        snapshot: Callable[[], list[ProductEntry]],
        push: Callable[[list[ProductEntry]], Any],
        debounce_seconds: float = 0.5,
        status_seconds: float = 1.5,
    ) -> None:
        self.scheduler = scheduler
        self.flow = flow
        self._snapshot = snapshot
        self._push = push
        self.debounce_seconds = debounce_seconds
        self.status_seconds = status_seconds
        self._state = SyncState.IDLE
        self._debounce_handle: Any = None
        self._revert_handle: Any = None
        self._in_flight = False
        self._in_flight_forced = False
        self._queued = False
        self.pushes_started = 0
        self.last_error: SyncFailed | None = None
        self._state_listeners: list[Callable[[SyncState], None]] = []
        self._completion_listeners: list[Callable[[bool], None]] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def add_listener(self, listener: Callable[[SyncState], None]) -> None:
        self._state_listeners.append(listener)

    def add_completion_listener(self, listener: Callable[[bool], None]) -> None:
        self._completion_listeners.append(listener)

    def notify_mutation(self) -> None:
        if not self.flow.auto_sync:
            return
        self._cancel_debounce()
        self._debounce_handle = self.scheduler.call_later(self.debounce_seconds, self._on_debounce)
        if not self._in_flight:
            self._set_state(SyncState.PENDING)

    def force_push(self) -> bool:
        """Push now, bypassing the debounce. Returns False when suppressed."""
        self._cancel_debounce()
        if self._in_flight:
            if self._in_flight_forced:
                logger.info("forced_sync_suppressed", extra={"flow": self.flow.value})
                return False
            self._queued = True
            return True
        self._dispatch(forced=True)
        return True

    def flush(self) -> None:
        """Fire an armed debounce immediately; no-op when nothing is pending."""
        if self._debounce_handle is None:
            return
        self._cancel_debounce()
        self._on_debounce()

    def stop(self) -> None:
        self._cancel_debounce()
        if self._revert_handle is not None:
            self.scheduler.cancel(self._revert_handle)
            self._revert_handle = None
        self._queued = False

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if self._in_flight:
            self._queued = True
            return
        self._dispatch(forced=False)

    def _dispatch(self, *, forced: bool) -> None:
        products = self._snapshot()
        self._in_flight = True
        self._in_flight_forced = forced
        self.pushes_started += 1
        self._set_state(SyncState.LOADING)
        logger.debug("sync_dispatched", extra={"flow": self.flow.value, "forced": forced, "products": len(products)})
        self.scheduler.submit(lambda: self._push(products), self._on_success, self._on_error)

    def _on_success(self, ack: Any) -> None:
        if ack is False:
            self._on_error(RuntimeError("remote store rejected the snapshot"))
            return
        self._finish()
        self.last_error = None
        self._set_state(SyncState.SUCCESS)
        self._after_completion(True)

    def _on_error(self, exc: Exception) -> None:
        self._finish()
        self.last_error = SyncFailed(self.flow.value, exc)
        logger.warning("sync_failed", extra={"flow": self.flow.value, "error": str(exc)})
        self._set_state(SyncState.ERROR)
        self._after_completion(False)

    def _finish(self) -> None:
        self._in_flight = False
        self._in_flight_forced = False

    def _after_completion(self, ok: bool) -> None:
        for listener in list(self._completion_listeners):
            listener(ok)
        if self._queued:
            self._queued = False
            self._dispatch(forced=False)
            return
        if self._debounce_handle is None:
            self._schedule_revert()

    def _schedule_revert(self) -> None:
        if self._revert_handle is not None:
            self.scheduler.cancel(self._revert_handle)
        self._revert_handle = self.scheduler.call_later(self.status_seconds, self._revert)

    def _revert(self) -> None:
        self._revert_handle = None
        if self._state in {SyncState.SUCCESS, SyncState.ERROR}:
            self._set_state(SyncState.IDLE)

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self.scheduler.cancel(self._debounce_handle)
            self._debounce_handle = None

    def _set_state(self, state: SyncState) -> None:
        if state is self._state:
            return
        self._state = state
        for listener in list(self._state_listeners):
            listener(state)
