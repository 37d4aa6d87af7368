from __future__ import annotations

import threading

from gesto_shift_sdk.scheduling import ManualScheduler, TkScheduler


class FakeRoot:
    """Stand-in for a Tk root: ``after`` callbacks run when ``pump`` is called."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[int, object]] = []
        self.cancelled: list[str] = []
        self._lock = threading.Lock()

    def after(self, ms: int, func):
        with self._lock:
            self.scheduled.append((ms, func))
            return f"after#{len(self.scheduled)}"

    def after_cancel(self, id: str) -> None:
        self.cancelled.append(id)

    def pump(self) -> None:
        with self._lock:
            pending, self.scheduled = self.scheduled, []
        for _ms, func in pending:
            func()


def _explode() -> None:
    raise RuntimeError("boom")


class ImmediateThread:
    def __init__(self, target=None, daemon=None):
        self._target = target

    def start(self) -> None:
        if self._target:
            self._target()


def test_manual_scheduler_fires_timers_in_order() -> None:
    scheduler = ManualScheduler()
    fired: list[str] = []
    scheduler.call_later(1.0, lambda: fired.append("late"))
    scheduler.call_later(0.5, lambda: fired.append("early"))
    cancelled = scheduler.call_later(0.7, lambda: fired.append("cancelled"))
    scheduler.cancel(cancelled)

    scheduler.advance(0.6)
    assert fired == ["early"]

    scheduler.advance(0.6)
    assert fired == ["early", "late"]
    assert scheduler.now == 1.2
    assert scheduler.pending_timers == 0


def test_manual_scheduler_jobs_report_back() -> None:
    scheduler = ManualScheduler(autorun_jobs=False)
    results: list[object] = []

    scheduler.submit(lambda: 1 + 1, results.append, results.append)
    scheduler.submit(lambda: 1 / 0, results.append, results.append)

    assert results == []
    assert scheduler.pending_jobs == 2
    assert scheduler.run_jobs() == 2
    assert results[0] == 2
    assert isinstance(results[1], ZeroDivisionError)


def test_tk_scheduler_uses_after() -> None:
    root = FakeRoot()
    scheduler = TkScheduler(root)

    handle = scheduler.call_later(0.5, lambda: None)
    scheduler.cancel(handle)

    assert root.scheduled[0][0] == 500
    assert root.cancelled == [handle]


def test_tk_scheduler_delivers_worker_results_on_loop(monkeypatch) -> None:
    monkeypatch.setattr("gesto_shift_sdk.scheduling.threading.Thread", ImmediateThread)
    root = FakeRoot()
    scheduler = TkScheduler(root)
    results: list[object] = []

    scheduler.submit(lambda: "ok", results.append, results.append)
    scheduler.submit(_explode, results.append, results.append)

    assert results == []
    root.pump()
    assert results[0] == "ok"
    assert isinstance(results[1], RuntimeError)
