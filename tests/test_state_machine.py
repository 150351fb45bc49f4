"""Tests for the unlock/block state machine.

Covers:
- Reducer transitions and rejected commands
- Unlock window extension
- Expiry on tick (boundary, idempotency, skipped ticks)
- Grace period and blocked/accessible queries
- Snapshot serialization
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta

import pytest

from pushin import state_machine as sm
from pushin.state_machine import (
    AppBlockTarget,
    InvalidTransition,
    PushinState,
    PushinStateMachine,
    Snapshot,
    new_session,
)


def secs(n: float) -> timedelta:
    return timedelta(seconds=n)


def unlocked_machine(targets, t0: datetime, seconds: int = 60, **kwargs) -> PushinStateMachine:
    machine = PushinStateMachine(targets, **kwargs)
    assert machine.start_workout(new_session("push-ups", 5, seconds, t0))
    assert machine.complete_workout(t0, actual_reps=5)
    return machine


class TestReducers:
    """Pure snapshot -> snapshot transitions."""

    def test_initial_snapshot_is_locked(self) -> None:
        snap = Snapshot()
        assert snap.state == PushinState.LOCKED
        assert snap.session is None
        assert snap.window is None

    def test_start_workout_from_locked(self, t0: datetime) -> None:
        session = new_session("push-ups", 10, 300, t0)
        snap = sm.start_workout(Snapshot(), session)
        assert snap.state == PushinState.EARNING
        assert snap.session == session

    def test_start_workout_from_expired(self, t0: datetime) -> None:
        expired = Snapshot(state=PushinState.EXPIRED, expired_at=t0)
        snap = sm.start_workout(expired, new_session("squats", 6, 300, t0))
        assert snap.state == PushinState.EARNING
        assert snap.expired_at is None

    def test_start_workout_while_earning_is_rejected(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("push-ups", 10, 300, t0))
        with pytest.raises(InvalidTransition):
            sm.start_workout(snap, new_session("squats", 10, 300, t0))

    def test_rejected_start_keeps_reps(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("push-ups", 10, 300, t0))
        snap = sm.record_rep(snap, 4)
        with pytest.raises(InvalidTransition):
            sm.start_workout(snap, new_session("push-ups", 10, 300, t0))
        assert snap.session.completed_reps == 4

    def test_reducers_do_not_mutate_input(self, t0: datetime) -> None:
        original = Snapshot()
        sm.start_workout(original, new_session("push-ups", 10, 300, t0))
        assert original.state == PushinState.LOCKED
        with pytest.raises(FrozenInstanceError):
            original.state = PushinState.UNLOCKED  # type: ignore[misc]

    def test_complete_without_session_is_rejected(self, t0: datetime) -> None:
        with pytest.raises(InvalidTransition):
            sm.complete_workout(Snapshot(), t0, 10)

    def test_complete_with_too_few_reps_is_rejected(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("push-ups", 10, 300, t0))
        with pytest.raises(InvalidTransition):
            sm.complete_workout(snap, t0, 9)

    def test_complete_uses_recorded_reps(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("push-ups", 2, 120, t0))
        snap = sm.record_rep(sm.record_rep(snap))
        snap = sm.complete_workout(snap, t0 + secs(30))
        assert snap.state == PushinState.UNLOCKED
        assert snap.window.expires_at == t0 + secs(150)

    def test_time_based_workout_completes_on_elapsed_time(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("plank", 30, 600, t0))
        with pytest.raises(InvalidTransition):
            sm.complete_workout(snap, t0 + secs(29))
        done = sm.complete_workout(snap, t0 + secs(30))
        assert done.state == PushinState.UNLOCKED

    def test_cancel_discards_session(self, t0: datetime) -> None:
        snap = sm.start_workout(Snapshot(), new_session("push-ups", 10, 300, t0))
        snap = sm.cancel_workout(snap, t0 + secs(5))
        assert snap.state == PushinState.LOCKED
        assert snap.session is None
        assert snap.locked_at == t0 + secs(5)

    def test_cancel_when_not_earning_is_rejected(self, t0: datetime) -> None:
        with pytest.raises(InvalidTransition):
            sm.cancel_workout(Snapshot(), t0)

    def test_record_rep_without_session_is_rejected(self) -> None:
        with pytest.raises(InvalidTransition):
            sm.record_rep(Snapshot())

    @pytest.mark.parametrize("state", list(PushinState))
    def test_lock_from_any_state(self, state: PushinState, t0: datetime) -> None:
        snap = sm.lock(Snapshot(state=state), t0)
        assert snap.state == PushinState.LOCKED
        assert snap.session is None
        assert snap.window is None
        assert snap.locked_at == t0

    def test_session_validation(self, t0: datetime) -> None:
        with pytest.raises(ValueError):
            new_session("push-ups", 0, 300, t0)
        with pytest.raises(ValueError):
            new_session("push-ups", 10, 0, t0)
        with pytest.raises(ValueError):
            new_session("", 10, 300, t0)


class TestUnlockWindow:
    """Completion creates or extends the window."""

    def test_pushups_scenario(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        machine.start_workout(new_session("pushups", 10, 300, t0 - secs(120)))
        assert machine.complete_workout(t0, actual_reps=10)
        assert machine.state == PushinState.UNLOCKED
        assert machine.get_unlock_time_remaining(t0) == 300

    def test_second_workout_extends_by_exactly_earned_seconds(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=600)
        before = machine.snapshot.window.expires_at

        now = t0 + secs(100)
        assert machine.start_workout(new_session("squats", 5, 300, now))
        assert machine.complete_workout(now + secs(20), actual_reps=5)

        window = machine.snapshot.window
        assert window.expires_at == before + secs(300)
        assert window.reason == "workout_extended"
        assert window.started_at == t0

    def test_extension_after_window_lapsed_starts_from_now(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        machine.start_workout(new_session("squats", 5, 300, t0 + secs(30)))
        # Stacked window ran out while working out
        done_at = t0 + secs(200)
        assert machine.complete_workout(done_at, actual_reps=5)
        assert machine.snapshot.window.expires_at == done_at + secs(300)

    def test_earning_blocks_even_with_stacked_window(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=600)
        machine.start_workout(new_session("squats", 5, 300, t0 + secs(10)))
        assert machine.get_blocked_targets(t0 + secs(10)) == machine.identifiers
        assert machine.get_unlock_time_remaining(t0 + secs(10)) == 0

    def test_expires_at_never_decreases(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        expiries = [machine.snapshot.window.expires_at]
        for i in range(1, 4):
            now = t0 + secs(10 * i)
            machine.start_workout(new_session("push-ups", 1, 30, now))
            machine.complete_workout(now, actual_reps=1)
            expiries.append(machine.snapshot.window.expires_at)
        assert expiries == sorted(expiries)

    def test_total_unlock_duration(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=90)
        assert machine.get_total_unlock_duration() == 90


class TestTick:
    """Automatic expiry."""

    def test_expiry_boundary(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        assert machine.tick(t0 + secs(59)) is False
        assert machine.state == PushinState.UNLOCKED
        assert machine.tick(t0 + secs(60)) is True
        assert machine.state == PushinState.EXPIRED
        assert machine.snapshot.expired_at == t0 + secs(60)

    def test_expiry_long_after(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        machine.tick(t0 + timedelta(hours=3))
        assert machine.state == PushinState.EXPIRED

    def test_tick_fires_once(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        assert machine.tick(t0 + secs(61)) is True
        snap = machine.snapshot
        assert machine.tick(t0 + secs(61)) is False
        assert machine.tick(t0 + secs(30)) is False
        assert machine.snapshot is snap

    def test_tick_returns_same_object_when_nothing_happens(self, t0: datetime) -> None:
        snap = Snapshot()
        assert sm.tick(snap, t0) is snap

    @pytest.mark.parametrize("gap", [1, 59, 60, 61, 3600])
    def test_skipped_ticks_never_miss_expiry(self, targets, t0: datetime, gap: int) -> None:
        stepped = unlocked_machine(targets, t0, seconds=60)
        direct = unlocked_machine(targets, t0, seconds=60)

        now2 = t0 + secs(gap)
        stepped.tick(t0 + secs(gap / 2))
        stepped.tick(now2)
        direct.tick(now2)
        assert stepped.state == direct.state

    def test_earning_does_not_expire(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        machine.start_workout(new_session("squats", 5, 300, t0 + secs(10)))
        machine.tick(t0 + secs(120))
        assert machine.state == PushinState.EARNING


class TestBlockingQueries:
    """Blocked/accessible targets, grace, progress."""

    def test_locked_blocks_everything(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        assert machine.get_blocked_targets(t0) == [t.identifier for t in targets]
        assert machine.get_accessible_targets(t0) == []

    def test_unlocked_blocks_nothing(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0)
        assert machine.get_blocked_targets(t0) == []
        assert machine.get_accessible_targets(t0) == machine.identifiers

    def test_expired_blocks_everything(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=60)
        machine.tick(t0 + secs(60))
        assert machine.get_blocked_targets(t0 + secs(60)) == machine.identifiers

    def test_grace_period_scenario(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets, grace_period_seconds=5)
        machine.lock(t0)
        assert machine.get_blocked_targets(t0 + secs(3)) == []
        assert machine.get_accessible_targets(t0 + secs(3)) == machine.identifiers
        assert machine.get_grace_period_remaining(t0 + secs(3)) == 2
        assert machine.get_blocked_targets(t0 + secs(6)) == machine.identifiers
        assert machine.get_grace_period_remaining(t0 + secs(6)) == 0
        assert machine.state == PushinState.LOCKED

    def test_grace_boundary_enforces(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets, grace_period_seconds=5)
        machine.lock(t0)
        assert machine.get_blocked_targets(t0 + secs(5)) == machine.identifiers

    def test_zero_grace_is_instant(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        machine.lock(t0)
        assert machine.get_blocked_targets(t0) == machine.identifiers

    def test_grace_remaining_outside_locked(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, grace_period_seconds=5)
        assert machine.get_grace_period_remaining(t0) == 0

    def test_rep_progress(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        assert machine.get_workout_progress(t0) == 0.0
        machine.start_workout(new_session("push-ups", 4, 120, t0))
        machine.record_rep()
        assert machine.get_workout_progress(t0) == 0.25
        machine.record_rep(10)
        assert machine.get_workout_progress(t0) == 1.0

    def test_time_progress(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        machine.start_workout(new_session("plank", 40, 600, t0))
        assert machine.get_workout_progress(t0 + secs(10)) == 0.25

    def test_wrapper_reports_rejection(self, targets, t0: datetime) -> None:
        machine = PushinStateMachine(targets)
        assert machine.complete_workout(t0) is False
        assert isinstance(machine.last_error, InvalidTransition)
        assert machine.state == PushinState.LOCKED

        machine.start_workout(new_session("push-ups", 1, 60, t0))
        assert machine.last_error is None
        assert machine.start_workout(new_session("push-ups", 1, 60, t0)) is False
        assert machine.state == PushinState.EARNING


class TestSerialization:
    """Snapshots survive a trip through JSON-compatible dicts."""

    def test_snapshot_round_trip(self, targets, t0: datetime) -> None:
        machine = unlocked_machine(targets, t0, seconds=300)
        machine.start_workout(new_session("squats", 6, 300, t0 + secs(5)))
        machine.record_rep(2)

        restored = Snapshot.from_dict(machine.snapshot.to_dict())
        assert restored == machine.snapshot

    def test_target_from_plain_string(self) -> None:
        target = AppBlockTarget.from_dict("com.reddit.frontpage")
        assert target.identifier == "com.reddit.frontpage"
        assert target.type == "app"

    def test_target_from_dict(self) -> None:
        target = AppBlockTarget.from_dict({"id": "yt", "name": "YouTube", "identifier": "com.google.youtube"})
        assert target.name == "YouTube"
        assert target.identifier == "com.google.youtube"
