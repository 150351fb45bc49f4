"""Tests for the keyed task scheduler."""

from datetime import datetime, timedelta

from pushin.scheduler import TaskScheduler


def test_runs_only_due_tasks(t0: datetime) -> None:
    scheduler = TaskScheduler()
    fired = []
    scheduler.schedule("a", t0 + timedelta(seconds=10), lambda now: fired.append(("a", now)))
    scheduler.schedule("b", t0 + timedelta(seconds=20), lambda now: fired.append(("b", now)))

    assert scheduler.run_due(t0 + timedelta(seconds=9)) == []
    assert scheduler.run_due(t0 + timedelta(seconds=10)) == ["a"]
    assert fired == [("a", t0 + timedelta(seconds=10))]
    assert len(scheduler) == 1


def test_late_tick_runs_in_due_order(t0: datetime) -> None:
    scheduler = TaskScheduler()
    order = []
    scheduler.schedule("late", t0 + timedelta(seconds=30), lambda now: order.append("late"))
    scheduler.schedule("early", t0 + timedelta(seconds=5), lambda now: order.append("early"))

    # e.g. after a laptop suspend
    assert scheduler.run_due(t0 + timedelta(hours=2)) == ["early", "late"]
    assert order == ["early", "late"]
    assert len(scheduler) == 0


def test_reschedule_replaces(t0: datetime) -> None:
    scheduler = TaskScheduler()
    fired = []
    scheduler.schedule("expiry", t0 + timedelta(seconds=60), lambda now: fired.append("old"))
    scheduler.schedule("expiry", t0 + timedelta(seconds=360), lambda now: fired.append("new"))

    scheduler.run_due(t0 + timedelta(seconds=61))
    assert fired == []
    scheduler.run_due(t0 + timedelta(seconds=360))
    assert fired == ["new"]


def test_cancel(t0: datetime) -> None:
    scheduler = TaskScheduler()
    scheduler.schedule("x", t0, lambda now: None)
    assert scheduler.pending("x") is not None
    assert scheduler.cancel("x") is True
    assert scheduler.cancel("x") is False
    assert scheduler.run_due(t0) == []


def test_callback_can_cancel_other_due_task(t0: datetime) -> None:
    scheduler = TaskScheduler()
    fired = []

    def first(now):
        fired.append("first")
        scheduler.cancel("second")

    scheduler.schedule("first", t0, first)
    scheduler.schedule("second", t0 + timedelta(seconds=1), lambda now: fired.append("second"))

    assert scheduler.run_due(t0 + timedelta(seconds=5)) == ["first"]
    assert fired == ["first"]


def test_cancel_all(t0: datetime) -> None:
    scheduler = TaskScheduler()
    scheduler.schedule("a", t0, lambda now: None)
    scheduler.schedule("b", t0, lambda now: None)
    scheduler.cancel_all()
    assert len(scheduler) == 0
