"""
PUSHIN - Emergency Unlock Quota Tracker
A small number of time-boxed overrides per day for Pro/Advanced users.

An active emergency session is NOT a state-machine state. It is a
time-gated override: while `now < current_expiry` everything is accessible,
after that normal enforcement resumes on its own.
"""

import json
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from .plans import PlanTier, has_emergency_access


ALLOWED_MINUTES_PER_USE = (10, 15, 30)
DEFAULT_MAX_PER_DAY = 3


def get_emergency_path() -> Path:
    """Get path to the emergency unlock state file."""
    pushin_dir = Path.home() / ".pushin"
    pushin_dir.mkdir(exist_ok=True)
    return pushin_dir / "emergency.json"


@dataclass
class NativeEmergencyStatus:
    """Emergency status as reported by the native side (shield extension/service)."""
    active: bool
    used_today: int = 0
    expiry_timestamp: float = 0.0  # unix seconds, 0 = none
    remaining_seconds: int = 0


@dataclass
class EmergencyUnlockState:
    """Persisted quota state."""
    enabled: bool = False
    used_today: int = 0
    max_per_day: int = DEFAULT_MAX_PER_DAY
    minutes_per_use: int = 10
    reset_time: Optional[date] = None
    current_expiry: Optional[datetime] = None
    last_target: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reset_time"] = self.reset_time.isoformat() if self.reset_time else None
        data["current_expiry"] = self.current_expiry.isoformat() if self.current_expiry else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EmergencyUnlockState":
        reset_time = data.get("reset_time")
        expiry = data.get("current_expiry")
        return cls(
            enabled=data.get("enabled", False),
            used_today=data.get("used_today", 0),
            max_per_day=data.get("max_per_day", DEFAULT_MAX_PER_DAY),
            minutes_per_use=data.get("minutes_per_use", 10),
            reset_time=date.fromisoformat(reset_time) if reset_time else None,
            current_expiry=datetime.fromisoformat(expiry) if expiry else None,
            last_target=data.get("last_target"),
        )


class EmergencyUnlockTracker:
    """
    Per-day emergency unlock counter.

    Every quota read or write runs `check_reset(now)` first so a count
    from yesterday is never used today.
    """

    def __init__(
        self,
        plan_tier=PlanTier.FREE,
        state: Optional[EmergencyUnlockState] = None,
        path: Optional[Path] = None,
    ):
        self.plan_tier = PlanTier.parse(plan_tier)
        self.state = state or EmergencyUnlockState()
        self.path = path

    @classmethod
    def load(cls, plan_tier=PlanTier.FREE, path: Optional[Path] = None) -> "EmergencyUnlockTracker":
        """Load tracker state from disk (defaults if missing or corrupt)."""
        path = path or get_emergency_path()
        state = EmergencyUnlockState()
        if path.exists():
            try:
                with open(path, 'r') as f:
                    state = EmergencyUnlockState.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, ValueError, TypeError):
                print(f"⚠️ Corrupt emergency state at {path}, starting fresh")
        tracker = cls(plan_tier, state, path)
        tracker.sync_with_plan_tier(tracker.plan_tier)
        return tracker

    def save(self) -> None:
        if self.path is None:
            return
        with open(self.path, 'w') as f:
            json.dump(self.state.to_dict(), f, indent=2)

    # === Access ===

    @property
    def has_access(self) -> bool:
        return has_emergency_access(self.plan_tier)

    @property
    def can_use(self) -> bool:
        return self.has_access and self.state.enabled

    def set_enabled(self, enabled: bool) -> bool:
        """Toggle the feature. Free plans cannot enable it."""
        if enabled and not self.has_access:
            print("❌ Emergency unlock requires a Pro or Advanced plan")
            return False
        self.state.enabled = enabled
        self.save()
        return True

    def set_minutes_per_use(self, minutes: int) -> bool:
        if minutes not in ALLOWED_MINUTES_PER_USE:
            return False
        self.state.minutes_per_use = minutes
        self.save()
        return True

    def set_max_per_day(self, max_per_day: int) -> bool:
        """Change the daily quota; today's count never exceeds it."""
        if max_per_day < 0:
            return False
        self.state.max_per_day = max_per_day
        self.state.used_today = min(self.state.used_today, max_per_day)
        self.save()
        return True

    def sync_with_plan_tier(self, plan_tier) -> None:
        """Apply a plan change; losing access switches the feature off."""
        self.plan_tier = PlanTier.parse(plan_tier)
        if not self.has_access and self.state.enabled:
            print("🔄 Plan no longer includes emergency unlock, disabling it")
            self.state.enabled = False
            self.save()

    # === Quota ===

    def check_reset(self, now: datetime) -> bool:
        """Zero the daily count on the first call of a new day. Returns True if reset."""
        today = now.date()
        if self.state.reset_time is None or self.state.reset_time < today:
            self.state.used_today = 0
            self.state.reset_time = today
            self.save()
            return True
        return False

    def remaining_today(self, now: datetime) -> int:
        self.check_reset(now)
        return max(0, self.state.max_per_day - self.state.used_today)

    def use_emergency_unlock(self, now: datetime, target_id: Optional[str] = None) -> bool:
        """
        Spend one emergency unlock.

        Returns False (and changes nothing) if the plan lacks access or
        today's quota is used up. `enabled` only decides whether the option
        is offered on the block screen.
        """
        if not self.has_access:
            return False

        self.check_reset(now)
        if self.state.used_today >= self.state.max_per_day:
            return False

        self.state.used_today += 1
        self.state.current_expiry = now + timedelta(minutes=self.state.minutes_per_use)
        self.state.last_target = target_id
        self.save()
        return True

    def is_active(self, now: datetime) -> bool:
        expiry = self.state.current_expiry
        return expiry is not None and now < expiry

    def time_remaining(self, now: datetime) -> int:
        if not self.is_active(now):
            return 0
        return max(0, int((self.state.current_expiry - now).total_seconds()))

    def merge_native_status(self, status: NativeEmergencyStatus, now: datetime) -> bool:
        """
        Reconcile with the native status store.

        Counts and expiries only ever move forward: the higher count and the
        later expiry win, so out-of-order or stale reports cannot undo a
        newer local change. Returns True if local state changed.
        """
        self.check_reset(now)
        changed = False

        if status.used_today > self.state.used_today:
            self.state.used_today = min(status.used_today, self.state.max_per_day)
            changed = True

        if status.active and status.expiry_timestamp > 0:
            native_expiry = datetime.fromtimestamp(status.expiry_timestamp)
            current = self.state.current_expiry
            if current is None or native_expiry > current:
                self.state.current_expiry = native_expiry
                changed = True

        if changed:
            self.save()
        return changed
