from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .exceptions import ConnectivityLost
from .scheduling import Scheduler

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    RETRYING = "retrying"


class ConnectivityEvent(str, Enum):
    LOST = "lost"
    CHECKING = "checking"
    RESTORED = "restored"


class ConnectivityMonitor:
    """Periodic health probe with a three-state connection indicator.

    A probe that fails while online emits a single ``LOST`` event; further
    failures stay silent until a probe succeeds again and ``RESTORED`` is
    emitted. Results of probes dispatched before the latest transition, or
    before a stop/start, are dropped.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        probe: Callable[[], Any],
        *,
        interval_seconds: float = 5.0,
    ) -> None:
        self.scheduler = scheduler
        self._probe = probe
        self.interval_seconds = interval_seconds
        self._state = ConnectivityState.ONLINE
        self._running = False
        self._handle: Any = None
        self._generation = 0
        self._probe_ids = itertools.count(1)
        self._probe_in_flight: int | None = None
        self.last_failure: ConnectivityLost | None = None
        self._event_listeners: list[Callable[[ConnectivityEvent], None]] = []
        self._state_listeners: list[Callable[[ConnectivityState], None]] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    def add_listener(self, listener: Callable[[ConnectivityEvent], None]) -> None:
        self._event_listeners.append(listener)

    def add_state_listener(self, listener: Callable[[ConnectivityState], None]) -> None:
        self._state_listeners.append(listener)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._generation += 1
        self._probe_in_flight = None
        self._tick()

    def stop(self) -> None:
        self._running = False
        self._generation += 1
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None

    def check_now(self) -> None:
        """Dispatch a probe outside the regular interval."""
        if self._running and self._probe_in_flight is None:
            self._dispatch()

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        if self._probe_in_flight is None:
            if self._state is ConnectivityState.OFFLINE:
                self._set_state(ConnectivityState.RETRYING)
                self._emit(ConnectivityEvent.CHECKING)
            self._dispatch()
        self._handle = self.scheduler.call_later(self.interval_seconds, self._tick)

    def _dispatch(self) -> None:
        probe_id = next(self._probe_ids)
        generation = self._generation
        self._probe_in_flight = probe_id
        self.scheduler.submit(
            self._probe,
            lambda _result: self._on_result(probe_id, generation, None),
            lambda exc: self._on_result(probe_id, generation, exc),
        )

    def _on_result(self, probe_id: int, generation: int, error: Exception | None) -> None:
        if self._probe_in_flight == probe_id:
            self._probe_in_flight = None
        if generation != self._generation:
            logger.debug("stale_probe_ignored", extra={"probe_id": probe_id})
            return
        if error is None:
            self._on_success()
        else:
            self._on_failure(error)

    def _on_success(self) -> None:
        if self._state is ConnectivityState.ONLINE:
            return
        self._generation += 1
        self.last_failure = None
        self._set_state(ConnectivityState.ONLINE)
        logger.info("connectivity_restored")
        self._emit(ConnectivityEvent.RESTORED)

    def _on_failure(self, error: Exception) -> None:
        if self._state is ConnectivityState.ONLINE:
            self._generation += 1
            self.last_failure = ConnectivityLost(str(error))
            self._set_state(ConnectivityState.OFFLINE)
            logger.warning("connectivity_lost", extra={"error": str(error)})
            self._emit(ConnectivityEvent.LOST)
            return
        self._set_state(ConnectivityState.OFFLINE)

    def _set_state(self, state: ConnectivityState) -> None:
        if state is self._state:
            return
        self._state = state
        for listener in list(self._state_listeners):
            listener(state)

    def _emit(self, event: ConnectivityEvent) -> None:
        for listener in list(self._event_listeners):
            listener(event)
