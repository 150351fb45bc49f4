"""
PUSHIN - Controller
Wires the state machine to the usage ledger, the emergency tracker,
the platform bridge and the event log.

The controller never mutates a Snapshot. Every command or tick swaps in
the machine's new snapshot, and `_after()` diffs old vs new to decide on
side effects and to notify subscribers with (old, new).
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Dict, Any

from .audit import AuditLogger
from .bridge import OverlayBridge, PlatformBridge
from .emergency import EmergencyUnlockTracker
from .history import WorkoutHistory
from .rewards import WorkoutRewardCalculator
from .scheduler import TaskScheduler
from .state_machine import (
    PushinState,
    PushinStateMachine,
    Snapshot,
    new_session,
)
from .usage import DailyUsageLedger


UNLOCK_EXPIRY_TASK = "unlock_expiry"
EMERGENCY_EXPIRY_TASK = "emergency_expiry"


class BlockReason(Enum):
    """Why the block overlay is showing."""
    APP_BLOCKED = "app_blocked"
    DAILY_CAP_REACHED = "daily_cap_reached"
    SESSION_EXPIRED = "session_expired"


@dataclass(frozen=True)
class BlockOverlay:
    reason: BlockReason
    app_name: Optional[str] = None


Subscriber = Callable[[Snapshot, Snapshot], None]


def _mtime(path: Optional[Path]) -> Optional[float]:
    if path is None:
        return None
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def load_snapshot(path: Path) -> Optional[Snapshot]:
    """Read a persisted snapshot, None if missing or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path, 'r') as f:
            return Snapshot.from_dict(json.load(f))
    except (json.JSONDecodeError, KeyError, ValueError, TypeError):
        print(f"⚠️ Ignoring unreadable state file {path}")
        return None


class PushinController:
    """
    Orchestration around PushinStateMachine.

    All methods take an explicit `now`; the daemon passes the wall clock,
    tests pass whatever they like.
    """

    def __init__(
        self,
        config,
        ledger: DailyUsageLedger,
        tracker: EmergencyUnlockTracker,
        bridge: Optional[PlatformBridge] = None,
        machine: Optional[PushinStateMachine] = None,
        scheduler: Optional[TaskScheduler] = None,
        audit: Optional[AuditLogger] = None,
        calculator: Optional[WorkoutRewardCalculator] = None,
        history: Optional[WorkoutHistory] = None,
        state_path: Optional[Path] = None,
        now: Optional[datetime] = None,
    ):
        self.config = config
        self.ledger = ledger
        self.tracker = tracker
        self.bridge = bridge or OverlayBridge()
        self.fallback = self.bridge if isinstance(self.bridge, OverlayBridge) else OverlayBridge()
        self.machine = machine or PushinStateMachine(
            config.targets, config.grace_period_seconds
        )
        self.scheduler = scheduler or TaskScheduler()
        self.audit = audit
        self.calculator = calculator or WorkoutRewardCalculator()
        self.history = history
        self.state_path = state_path

        self.overlay: Optional[BlockOverlay] = None
        self._subscribers: List[Subscriber] = []
        self._applied: Optional[List[str]] = None  # last blocking pushed to the bridge
        self._last_tick: Optional[datetime] = None
        self._last_sync: Optional[datetime] = None
        self._consumed_carry = 0.0
        self._state_mtime: Optional[float] = None
        self._emergency_mtime = _mtime(tracker.path)

        if state_path is not None:
            snapshot = load_snapshot(state_path)
            if snapshot is not None:
                self.machine.restore(snapshot)
                self._state_mtime = _mtime(state_path)

        self._reschedule(now or datetime.now())

    # ============================================================
    # SUBSCRIPTIONS
    # ============================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for (old, new) snapshot diffs. Returns an unsubscribe function."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    @property
    def snapshot(self) -> Snapshot:
        return self.machine.snapshot

    @property
    def state(self) -> PushinState:
        return self.machine.state

    # ============================================================
    # COMMANDS
    # ============================================================

    def start_workout(
        self,
        workout_type: str,
        target_reps: int,
        desired_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Begin earning. `desired_seconds` is the screen time the user picked;
        without it the reward is derived from the reps.
        """
        now = now or datetime.now()
        earned = desired_seconds or self.calculator.calculate_earned_time(workout_type, target_reps)
        try:
            session = new_session(workout_type, target_reps, earned, now)
        except ValueError as e:
            print(f"⚠️ Invalid workout: {e}")
            return False

        old = self.snapshot
        if not self.machine.start_workout(session):
            print(f"⚠️ {self.machine.last_error}")
            return False
        self._after(old, now)
        return True

    def record_rep(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        old = self.snapshot
        if not self.machine.record_rep():
            return False
        self._after(old, now)
        return True

    def complete_workout(
        self,
        actual_reps: Optional[int] = None,
        now: Optional[datetime] = None,
        mode: Optional[str] = None,
    ) -> bool:
        """Finish the active workout. `mode` is only recorded in the workout history."""
        now = now or datetime.now()
        old = self.snapshot
        session = old.session
        if not self.machine.complete_workout(now, actual_reps):
            print(f"⚠️ {self.machine.last_error}")
            return False

        self.ledger.add_earned_time(session.earned_seconds, now)
        if self.history is not None:
            reps = session.completed_reps if actual_reps is None else actual_reps
            if session.is_time_based:
                reps = max(reps, min(session.target_reps, int(session.elapsed_seconds(now))))
            self.history.record_workout(
                session.type, reps, session.earned_seconds,
                mode or self.config.workout_mode, now,
            )
        self.overlay = None
        self._log('workout_completed', now, seconds=session.earned_seconds, detail=session.type)
        self._after(old, now)
        return True

    def cancel_workout(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        old = self.snapshot
        if not self.machine.cancel_workout(now):
            return False
        self._log('workout_cancelled', now, detail=old.session.type)
        self._after(old, now)
        return True

    def lock(self, now: Optional[datetime] = None, reason: Optional[BlockReason] = None) -> bool:
        """Force LOCKED from any state (manual override, daily cap)."""
        now = now or datetime.now()
        old = self.snapshot
        self.machine.lock(now)
        if reason is not None:
            self.overlay = BlockOverlay(reason)
        self._log('manual_lock' if reason is None else reason.value, now)
        self._after(old, now)
        return True

    def use_emergency_unlock(self, target_id: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        """Spend one emergency unlock. False if no access or quota left."""
        now = now or datetime.now()
        if not self.tracker.use_emergency_unlock(now, target_id):
            if not self.tracker.has_access:
                print("❌ Emergency unlock requires a Pro or Advanced plan")
            else:
                print("❌ No emergency unlocks remaining today")
            return False

        state = self.tracker.state
        print(f"🚨 Emergency unlock used ({state.used_today}/{state.max_per_day}), "
              f"{state.minutes_per_use} min")
        self.overlay = None
        self._schedule_emergency_expiry()
        self._log('emergency_unlock', now, seconds=state.minutes_per_use * 60, target=target_id)
        self._sync_enforcement(now)
        return True

    def handle_app_launch(
        self,
        identifier: str,
        app_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[BlockOverlay]:
        """A monitored app came to the foreground. Returns the overlay to show, if any."""
        now = now or datetime.now()
        if identifier not in self.get_blocked_targets(now):
            return None
        self.overlay = BlockOverlay(BlockReason.APP_BLOCKED, app_name or identifier)
        return self.overlay

    # ============================================================
    # TICK
    # ============================================================

    def tick(self, now: Optional[datetime] = None) -> bool:
        """
        Advance everything time-driven. Returns True if the snapshot changed.

        Safe to call with a repeated or earlier `now`: nothing re-fires.
        """
        now = now or datetime.now()
        old = self.snapshot

        self._consume_unlocked_time(old, now)
        self.scheduler.run_due(now)
        self.machine.tick(now)
        self._check_daily_cap(now)
        self._maybe_sync_emergency(now)

        self._after(old, now)
        if self._last_tick is None or now > self._last_tick:
            self._last_tick = now
        return self.snapshot is not old

    def _consume_unlocked_time(self, snap: Snapshot, now: datetime) -> None:
        last = self._last_tick
        if last is None or now <= last or snap.state != PushinState.UNLOCKED or snap.window is None:
            return
        start = max(last, snap.window.started_at)
        end = min(now, snap.window.expires_at)
        if end <= start:
            return
        self._consumed_carry += (end - start).total_seconds()
        whole = int(self._consumed_carry)
        if whole > 0:
            self._consumed_carry -= whole
            self.ledger.consume_time(whole, now)

    def _check_daily_cap(self, now: datetime) -> None:
        if self.state != PushinState.UNLOCKED:
            return
        if self.ledger.has_hit_daily_cap(now):
            # Side effects run in tick()'s own _after()
            print("🚫 Daily unlock cap reached, locking")
            self.machine.lock(now)
            self.overlay = BlockOverlay(BlockReason.DAILY_CAP_REACHED)
            self._log(BlockReason.DAILY_CAP_REACHED.value, now)

    def _maybe_sync_emergency(self, now: datetime) -> None:
        interval = timedelta(seconds=self.config.sync_interval_seconds)
        if self._last_sync is not None and now - self._last_sync < interval and now >= self._last_sync:
            return
        self._last_sync = now
        self.sync_emergency_status(now)

    def sync_emergency_status(self, now: Optional[datetime] = None) -> bool:
        """Poll the native side and merge its emergency status. True if anything changed."""
        now = now or datetime.now()
        status = self.bridge.query_emergency_status()
        if status is None:
            return False
        if not self.tracker.merge_native_status(status, now):
            return False
        print(f"🔄 Emergency unlock synced from native side "
              f"(used {self.tracker.state.used_today}, active={self.tracker.is_active(now)})")
        if self.tracker.is_active(now):
            self.overlay = None
            self._schedule_emergency_expiry()
        self._sync_enforcement(now)
        return True

    # ============================================================
    # SIDE EFFECTS
    # ============================================================

    def _after(self, old: Snapshot, now: datetime) -> None:
        """Diff old vs new snapshot and apply side effects."""
        new = self.snapshot
        if new is not old:
            if new.state != old.state:
                print(f"🔄 State: {old.state.value} -> {new.state.value}")
            self._on_transition(old, new, now)
            self._save_state()
            for callback in list(self._subscribers):
                callback(old, new)
        self._sync_enforcement(now)

    def _on_transition(self, old: Snapshot, new: Snapshot, now: datetime) -> None:
        if new.state == PushinState.UNLOCKED and new.window is not None:
            # Replaces any task for the previous (shorter) window
            self.scheduler.schedule(UNLOCK_EXPIRY_TASK, new.window.expires_at, self._on_unlock_expired)
        elif new.window is None:
            self.scheduler.cancel(UNLOCK_EXPIRY_TASK)

        if old.state == PushinState.UNLOCKED and new.state == PushinState.EXPIRED:
            self.overlay = BlockOverlay(BlockReason.SESSION_EXPIRED)
            self._log('session_expired', now)

    def _on_unlock_expired(self, now: datetime) -> None:
        self.machine.tick(now)

    def _schedule_emergency_expiry(self) -> None:
        expiry = self.tracker.state.current_expiry
        if expiry is not None:
            self.scheduler.schedule(EMERGENCY_EXPIRY_TASK, expiry, self._on_emergency_expired)

    def _on_emergency_expired(self, now: datetime) -> None:
        if self.tracker.is_active(now):
            # Extended by a native-side merge since this was scheduled
            self._schedule_emergency_expiry()
            return
        print("⏰ Emergency unlock over, blocking resumes")
        self._sync_enforcement(now)

    def _reschedule(self, now: datetime) -> None:
        """Recreate timers from absolute timestamps (startup / state reload)."""
        window = self.snapshot.window
        if self.state == PushinState.UNLOCKED and window is not None:
            self.scheduler.schedule(UNLOCK_EXPIRY_TASK, window.expires_at, self._on_unlock_expired)
        else:
            self.scheduler.cancel(UNLOCK_EXPIRY_TASK)
        if self.tracker.is_active(now):
            self._schedule_emergency_expiry()

    def _sync_enforcement(self, now: datetime) -> None:
        """Push the blocked list to the bridge when it differs from what was last applied."""
        desired = self.get_blocked_targets(now)
        if desired == self._applied:
            return
        self._applied = desired

        if desired:
            if not self.bridge.apply_blocking(desired) and self.fallback is not self.bridge:
                self.fallback.apply_blocking(desired)
        else:
            hint = self._unblock_hint(now)
            if not self.bridge.remove_blocking(hint) and self.fallback is not self.bridge:
                self.fallback.remove_blocking(hint)

    def _unblock_hint(self, now: datetime) -> Optional[int]:
        remaining = max(
            self.machine.get_unlock_time_remaining(now),
            self.tracker.time_remaining(now),
        )
        return remaining or None

    def _log(self, event: str, now: datetime, **kwargs) -> None:
        if self.audit is not None:
            self.audit.log_event(event, self.state.value, now=now, **kwargs)

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def _save_state(self) -> None:
        if self.state_path is None:
            return
        with open(self.state_path, 'w') as f:
            json.dump(self.snapshot.to_dict(), f, indent=2)
        self._state_mtime = _mtime(self.state_path)

    def _reload_tracker(self) -> bool:
        """Re-read emergency.json if it changed on disk."""
        mtime = _mtime(self.tracker.path)
        if mtime is None or mtime == self._emergency_mtime:
            return False
        fresh = EmergencyUnlockTracker.load(self.tracker.plan_tier, self.tracker.path)
        self.tracker.state = fresh.state
        self._emergency_mtime = _mtime(self.tracker.path)
        return True

    def reload_state(self, now: Optional[datetime] = None) -> bool:
        """
        Pick up changes another process (the CLI) wrote to disk.

        Eventually consistent: a change shows up on the next tick.
        Returns True if the snapshot was replaced.
        """
        now = now or datetime.now()
        if self._reload_tracker():
            self._reschedule(now)
            self._sync_enforcement(now)

        mtime = _mtime(self.state_path)
        if mtime is None or mtime == self._state_mtime:
            return False
        self._state_mtime = mtime

        snapshot = load_snapshot(self.state_path)
        if snapshot is None or snapshot == self.snapshot:
            self._reschedule(now)
            return False

        old = self.snapshot
        self.machine.restore(snapshot)
        self._reschedule(now)
        if snapshot.state != old.state:
            print(f"🔄 State: {old.state.value} -> {snapshot.state.value} (from disk)")
        for callback in list(self._subscribers):
            callback(old, snapshot)
        self._sync_enforcement(now)
        return True

    # ============================================================
    # QUERIES
    # ============================================================

    def get_blocked_targets(self, now: datetime) -> List[str]:
        """Blocked identifiers; empty while an emergency unlock is active."""
        if self.tracker.is_active(now):
            return []
        return self.machine.get_blocked_targets(now)

    def get_accessible_targets(self, now: datetime) -> List[str]:
        if self.tracker.is_active(now):
            return self.machine.identifiers
        return self.machine.get_accessible_targets(now)

    def status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Everything the CLI and `export` show."""
        now = now or datetime.now()
        snap = self.snapshot
        usage = self.ledger.get_today_usage(now)
        emergency = self.tracker.state

        return {
            'state': snap.state.value,
            'blocked_targets': self.get_blocked_targets(now),
            'accessible_targets': self.get_accessible_targets(now),
            'unlock_remaining_seconds': self.machine.get_unlock_time_remaining(now),
            'grace_remaining_seconds': self.machine.get_grace_period_remaining(now),
            'workout': {
                'type': snap.session.type,
                'target_reps': snap.session.target_reps,
                'completed_reps': snap.session.completed_reps,
                'earned_seconds': snap.session.earned_seconds,
                'progress': round(self.machine.get_workout_progress(now), 3),
            } if snap.session else None,
            'emergency': {
                'enabled': emergency.enabled,
                'has_access': self.tracker.has_access,
                'active': self.tracker.is_active(now),
                'remaining_seconds': self.tracker.time_remaining(now),
                'used_today': emergency.used_today,
                'remaining_today': self.tracker.remaining_today(now),
                'max_per_day': emergency.max_per_day,
                'minutes_per_use': emergency.minutes_per_use,
            },
            'usage': {
                'date': usage.date,
                'earned_seconds': usage.earned_seconds,
                'consumed_seconds': usage.consumed_seconds,
                'daily_cap_seconds': usage.daily_cap_seconds,
                'has_reached_cap': usage.has_reached_daily_cap,
                'cap_progress': round(usage.daily_cap_progress, 3),
            },
            'streak': {
                'current': self.history.get_current_streak(now),
                'best': self.history.get_best_streak(),
                'total_workouts': self.history.get_total_workouts(),
                'today_completed': self.history.is_today_completed(now),
            } if self.history else None,
            'plan_tier': self.ledger.plan_tier.value,
            'overlay': self.overlay.reason.value if self.overlay else None,
            'enforced': self.bridge.available,
        }
