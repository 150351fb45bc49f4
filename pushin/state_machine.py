"""
PUSHIN - Unlock/Block State Machine
Pure, clock-driven core: (snapshot, now) -> snapshot.

Every command is a reducer that returns a NEW Snapshot or raises
InvalidTransition. Nothing here touches the clock, disk or the platform;
time is always injected by the caller.

    LOCKED   --start_workout-->    EARNING
    EXPIRED  --start_workout-->    EARNING
    UNLOCKED --start_workout-->    EARNING   (window kept, completion extends it)
    EARNING  --complete_workout--> UNLOCKED
    EARNING  --cancel_workout-->   LOCKED
    UNLOCKED --tick(now >= expiry)--> EXPIRED
    *        --lock-->             LOCKED
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any


class PushinState(Enum):
    """State of the unlock cycle."""
    LOCKED = "locked"        # Content blocked, must earn access
    EARNING = "earning"      # Workout in progress
    UNLOCKED = "unlocked"    # Content accessible, window running
    EXPIRED = "expired"      # Window ran out, blocked again


# Workouts whose target is seconds held rather than reps
TIME_BASED_WORKOUTS = ("plank",)


class InvalidTransition(Exception):
    """A command was issued in a state that does not accept it."""

    def __init__(self, state: PushinState, command: str, detail: str = ""):
        self.state = state
        self.command = command
        self.detail = detail
        message = f"Cannot {command} while {state.value}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================
# DOMAIN VALUES
# ============================================================

@dataclass(frozen=True)
class AppBlockTarget:
    """Something that can be blocked: an app, a category or a website."""
    id: str
    name: str
    type: str = "app"  # 'app', 'category', 'website'
    identifier: str = ""

    def __post_init__(self):
        if not self.identifier:
            object.__setattr__(self, "identifier", self.id)

    @classmethod
    def from_dict(cls, data: Any) -> "AppBlockTarget":
        # Plain strings in config.yaml are shorthand for an app identifier
        if isinstance(data, str):
            return cls(id=data, name=data)
        target_id = data.get("id") or data.get("identifier")
        return cls(
            id=target_id,
            name=data.get("name", target_id),
            type=data.get("type", "app"),
            identifier=data.get("identifier", target_id),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "identifier": self.identifier,
        }


@dataclass(frozen=True)
class WorkoutSession:
    """One attempt to earn screen time."""
    id: str
    type: str
    target_reps: int
    earned_seconds: int
    started_at: datetime
    completed_reps: int = 0

    def __post_init__(self):
        if not self.type:
            raise ValueError("workout type cannot be empty")
        if self.target_reps <= 0:
            raise ValueError("target_reps must be positive")
        if self.earned_seconds <= 0:
            raise ValueError("earned_seconds must be positive")

    @property
    def is_time_based(self) -> bool:
        return self.type.lower() in TIME_BASED_WORKOUTS

    def elapsed_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.started_at).total_seconds())

    def progress(self, now: datetime) -> float:
        """Fraction complete, 0.0 - 1.0."""
        if self.is_time_based:
            done = max(self.elapsed_seconds(now), self.completed_reps)
        else:
            done = self.completed_reps
        return min(1.0, max(0.0, done / self.target_reps))

    def is_completed(self, now: datetime, actual_reps: Optional[int] = None) -> bool:
        reps = self.completed_reps if actual_reps is None else actual_reps
        if reps >= self.target_reps:
            return True
        return self.is_time_based and self.elapsed_seconds(now) >= self.target_reps

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "target_reps": self.target_reps,
            "earned_seconds": self.earned_seconds,
            "started_at": self.started_at.isoformat(),
            "completed_reps": self.completed_reps,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkoutSession":
        return cls(
            id=data["id"],
            type=data["type"],
            target_reps=data["target_reps"],
            earned_seconds=data["earned_seconds"],
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_reps=data.get("completed_reps", 0),
        )


def new_session(
    workout_type: str,
    target_reps: int,
    earned_seconds: int,
    now: datetime,
) -> WorkoutSession:
    """Create a session with a fresh id."""
    return WorkoutSession(
        id=uuid.uuid4().hex,
        type=workout_type,
        target_reps=target_reps,
        earned_seconds=earned_seconds,
        started_at=now,
    )


@dataclass(frozen=True)
class UnlockWindow:
    """The span during which blocked targets are accessible."""
    expires_at: datetime
    started_at: datetime
    reason: str = "workout_completed"  # or 'workout_extended'

    @property
    def duration_seconds(self) -> int:
        return int((self.expires_at - self.started_at).total_seconds())

    def remaining_seconds(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expires_at": self.expires_at.isoformat(),
            "started_at": self.started_at.isoformat(),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnlockWindow":
        return cls(
            expires_at=datetime.fromisoformat(data["expires_at"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            reason=data.get("reason", "workout_completed"),
        )


@dataclass(frozen=True)
class Snapshot:
    """Immutable state of the machine at one point in time."""
    state: PushinState = PushinState.LOCKED
    session: Optional[WorkoutSession] = None
    window: Optional[UnlockWindow] = None
    locked_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "session": self.session.to_dict() if self.session else None,
            "window": self.window.to_dict() if self.window else None,
            "locked_at": _format_dt(self.locked_at),
            "expired_at": _format_dt(self.expired_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        session = data.get("session")
        window = data.get("window")
        return cls(
            state=PushinState(data.get("state", "locked")),
            session=WorkoutSession.from_dict(session) if session else None,
            window=UnlockWindow.from_dict(window) if window else None,
            locked_at=_parse_dt(data.get("locked_at")),
            expired_at=_parse_dt(data.get("expired_at")),
        )


# ============================================================
# REDUCERS
# ============================================================

def start_workout(snap: Snapshot, session: WorkoutSession) -> Snapshot:
    if snap.state == PushinState.EARNING or snap.session is not None:
        raise InvalidTransition(
            snap.state, "start workout",
            "a workout is already active, cancel it first"
        )
    return replace(
        snap,
        state=PushinState.EARNING,
        session=session,
        expired_at=None,
    )


def record_rep(snap: Snapshot, count: int = 1) -> Snapshot:
    if snap.state != PushinState.EARNING or snap.session is None:
        raise InvalidTransition(snap.state, "record rep", "no active workout")
    session = replace(snap.session, completed_reps=snap.session.completed_reps + count)
    return replace(snap, session=session)


def complete_workout(
    snap: Snapshot,
    now: datetime,
    actual_reps: Optional[int] = None,
) -> Snapshot:
    session = snap.session
    if snap.state != PushinState.EARNING or session is None:
        raise InvalidTransition(snap.state, "complete workout", "no active workout")
    if not session.is_completed(now, actual_reps):
        raise InvalidTransition(
            snap.state, "complete workout",
            f"{actual_reps if actual_reps is not None else session.completed_reps}"
            f"/{session.target_reps} done"
        )

    # Extend, never replace: leftover time from a stacked window carries over
    base = snap.window.expires_at if snap.window else now
    new_expiry = max(base, now) + timedelta(seconds=session.earned_seconds)

    if snap.window and snap.window.expires_at > now:
        window = UnlockWindow(
            expires_at=new_expiry,
            started_at=snap.window.started_at,
            reason="workout_extended",
        )
    else:
        window = UnlockWindow(expires_at=new_expiry, started_at=now)

    return Snapshot(state=PushinState.UNLOCKED, window=window)


def cancel_workout(snap: Snapshot, now: datetime) -> Snapshot:
    if snap.state != PushinState.EARNING:
        raise InvalidTransition(snap.state, "cancel workout", "no active workout")
    return Snapshot(state=PushinState.LOCKED, locked_at=now)


def tick(snap: Snapshot, now: datetime) -> Snapshot:
    """Apply time-based transitions. Returns `snap` itself if nothing changed."""
    if (
        snap.state == PushinState.UNLOCKED
        and snap.window is not None
        and now >= snap.window.expires_at
    ):
        return Snapshot(
            state=PushinState.EXPIRED,
            expired_at=snap.window.expires_at,
        )
    return snap


def lock(snap: Snapshot, now: datetime) -> Snapshot:
    return Snapshot(state=PushinState.LOCKED, locked_at=now)


# ============================================================
# STATEFUL WRAPPER
# ============================================================

class PushinStateMachine:
    """
    Holds the current Snapshot and answers blocking queries.

    Commands return True if the transition was applied and False if it
    was rejected; the rejection is kept in `last_error`.
    """

    def __init__(
        self,
        targets: Optional[List[AppBlockTarget]] = None,
        grace_period_seconds: int = 0,
        snapshot: Optional[Snapshot] = None,
    ):
        self.targets: List[AppBlockTarget] = list(targets or [])
        self.grace_period_seconds = max(0, grace_period_seconds)
        self._snapshot = snapshot or Snapshot()
        self.last_error: Optional[InvalidTransition] = None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def state(self) -> PushinState:
        return self._snapshot.state

    def restore(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def _apply(self, reducer, *args) -> bool:
        try:
            new = reducer(self._snapshot, *args)
        except InvalidTransition as e:
            self.last_error = e
            return False
        self.last_error = None
        self._snapshot = new
        return True

    # === Commands ===

    def start_workout(self, session: WorkoutSession) -> bool:
        return self._apply(start_workout, session)

    def record_rep(self, count: int = 1) -> bool:
        return self._apply(record_rep, count)

    def complete_workout(self, now: datetime, actual_reps: Optional[int] = None) -> bool:
        return self._apply(complete_workout, now, actual_reps)

    def cancel_workout(self, now: datetime) -> bool:
        return self._apply(cancel_workout, now)

    def lock(self, now: datetime) -> bool:
        return self._apply(lock, now)

    def tick(self, now: datetime) -> bool:
        """Returns True if the tick caused a transition."""
        new = tick(self._snapshot, now)
        changed = new is not self._snapshot
        self._snapshot = new
        return changed

    # === Queries ===

    @property
    def identifiers(self) -> List[str]:
        return [t.identifier for t in self.targets]

    def get_grace_period_remaining(self, now: datetime) -> int:
        snap = self._snapshot
        if snap.state != PushinState.LOCKED or snap.locked_at is None:
            return 0
        elapsed = (now - snap.locked_at).total_seconds()
        return max(0, int(self.grace_period_seconds - elapsed))

    def is_enforcing(self, now: datetime) -> bool:
        """Whether blocked targets should actually be blocked right now."""
        snap = self._snapshot
        if snap.state == PushinState.UNLOCKED:
            return False
        if snap.state == PushinState.LOCKED and snap.locked_at is not None:
            grace_ends = snap.locked_at + timedelta(seconds=self.grace_period_seconds)
            return now >= grace_ends
        return True

    def get_blocked_targets(self, now: datetime) -> List[str]:
        return self.identifiers if self.is_enforcing(now) else []

    def get_accessible_targets(self, now: datetime) -> List[str]:
        blocked = set(self.get_blocked_targets(now))
        return [i for i in self.identifiers if i not in blocked]

    def get_workout_progress(self, now: datetime) -> float:
        session = self._snapshot.session
        return session.progress(now) if session else 0.0

    def get_unlock_time_remaining(self, now: datetime) -> int:
        window = self._snapshot.window
        if self._snapshot.state != PushinState.UNLOCKED or window is None:
            return 0
        return window.remaining_seconds(now)

    def get_total_unlock_duration(self) -> int:
        window = self._snapshot.window
        return window.duration_seconds if window else 0
