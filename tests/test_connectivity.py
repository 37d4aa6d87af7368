from __future__ import annotations

from factories import make_product

from gesto_shift_sdk.connectivity import ConnectivityEvent, ConnectivityMonitor, ConnectivityState
from gesto_shift_sdk.exceptions import ConnectivityLost, TransportError
from gesto_shift_sdk.models import FlowKind
from gesto_shift_sdk.scheduling import ManualScheduler
from gesto_shift_sdk.sync_engine import SyncEngine


class FlakyProbe:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if not self.ok:
            raise TransportError(code="TRANSPORT_ERROR", message="unreachable", details=None, status_code=0)
        return {"status": "ok"}


def _monitor(scheduler: ManualScheduler, probe: FlakyProbe) -> ConnectivityMonitor:
    return ConnectivityMonitor(scheduler, probe, interval_seconds=5.0)


def test_probe_runs_on_start_and_every_interval() -> None:
    scheduler = ManualScheduler()
    probe = FlakyProbe()
    monitor = _monitor(scheduler, probe)

    monitor.start()
    scheduler.advance(0)
    scheduler.advance(5)
    scheduler.advance(5)

    assert probe.calls == 3
    assert monitor.state is ConnectivityState.ONLINE


def test_loss_is_reported_once_and_recovery_forces_one_push() -> None:
    scheduler = ManualScheduler()
    probe = FlakyProbe(ok=False)
    monitor = _monitor(scheduler, probe)
    pushes: list[list[str]] = []
    engine = SyncEngine(
        scheduler,
        flow=FlowKind.FINAL,
        snapshot=lambda: [make_product("p1", quantity="5")],
        push=lambda products: pushes.append([p.quantity for p in products]) or True,
    )
    events: list[ConnectivityEvent] = []
    monitor.add_listener(events.append)
    monitor.add_listener(lambda event: event is ConnectivityEvent.RESTORED and engine.force_push())

    monitor.start()
    scheduler.advance(0)
    assert monitor.state is ConnectivityState.OFFLINE
    assert isinstance(monitor.last_failure, ConnectivityLost)

    for _ in range(10):
        scheduler.advance(5)
        assert monitor.state is ConnectivityState.OFFLINE

    probe.ok = True
    scheduler.advance(5)
    scheduler.advance(5)

    assert monitor.state is ConnectivityState.ONLINE
    assert events.count(ConnectivityEvent.LOST) == 1
    assert events.count(ConnectivityEvent.RESTORED) == 1
    assert events.count(ConnectivityEvent.CHECKING) == 11
    assert pushes == [["5"]]
    assert monitor.last_failure is None


def test_offline_cycles_pass_through_retrying() -> None:
    scheduler = ManualScheduler()
    probe = FlakyProbe(ok=False)
    monitor = _monitor(scheduler, probe)
    states: list[ConnectivityState] = []
    monitor.add_state_listener(states.append)

    monitor.start()
    scheduler.advance(0)
    scheduler.advance(5)
    probe.ok = True
    scheduler.advance(5)

    assert states == [
        ConnectivityState.OFFLINE,
        ConnectivityState.RETRYING,
        ConnectivityState.OFFLINE,
        ConnectivityState.RETRYING,
        ConnectivityState.ONLINE,
    ]


def test_stale_probe_result_is_ignored() -> None:
    scheduler = ManualScheduler(autorun_jobs=False)
    probe = FlakyProbe(ok=False)
    monitor = _monitor(scheduler, probe)
    events: list[ConnectivityEvent] = []
    monitor.add_listener(events.append)

    monitor.start()
    monitor.stop()
    scheduler.run_jobs()

    assert events == []
    assert monitor.state is ConnectivityState.ONLINE


def test_slow_probe_is_not_overlapped() -> None:
    scheduler = ManualScheduler(autorun_jobs=False)
    probe = FlakyProbe()
    monitor = _monitor(scheduler, probe)

    monitor.start()
    scheduler.advance(5)
    scheduler.advance(5)

    assert scheduler.pending_jobs == 1

    scheduler.run_jobs()
    scheduler.advance(5)

    assert scheduler.pending_jobs == 1
    assert probe.calls == 1


def test_stop_cancels_interval() -> None:
    scheduler = ManualScheduler()
    probe = FlakyProbe()
    monitor = _monitor(scheduler, probe)

    monitor.start()
    scheduler.advance(0)
    monitor.stop()
    scheduler.advance(30)

    assert probe.calls == 1
    assert monitor.running is False
    assert scheduler.pending_timers == 0


def test_check_now_probes_between_intervals() -> None:
    scheduler = ManualScheduler()
    probe = FlakyProbe()
    monitor = _monitor(scheduler, probe)

    monitor.check_now()
    scheduler.advance(0)
    assert probe.calls == 0

    monitor.start()
    scheduler.advance(1)
    probe.ok = False
    monitor.check_now()
    scheduler.advance(0)

    assert probe.calls == 2
    assert monitor.state is ConnectivityState.OFFLINE
    assert scheduler.now == 1


def test_check_now_does_not_overlap_a_running_probe() -> None:
    scheduler = ManualScheduler(autorun_jobs=False)
    monitor = _monitor(scheduler, FlakyProbe())

    monitor.start()
    monitor.check_now()

    assert scheduler.pending_jobs == 1
