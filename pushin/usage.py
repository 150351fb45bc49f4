"""
PUSHIN - Daily Usage Ledger
Bookkeeping of earned vs consumed unlock time per local calendar day.

- Earned time is credited when a workout completes
- Consumed time is advanced by the controller while UNLOCKED
- The daily cap is compared against CONSUMED time only
- Days roll over at local midnight; old days are kept for history
"""

import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any

from .local_db import LocalDatabase
from .plans import PlanTier, daily_cap_for


CURRENT_PLAN_KEY = "current_plan"
TIMEZONE_OFFSET_KEY = "timezone_offset"

# Days in the summary shown by `pushin history`
WEEKLY_SUMMARY_DAYS = 7


def date_key(day) -> str:
    """YYYY-MM-DD key for a date or datetime (local time)."""
    if isinstance(day, datetime):
        day = day.date()
    return day.isoformat()


@dataclass
class DailyUsage:
    """Usage record for one calendar day."""
    date: str
    plan_tier: str
    last_updated: datetime
    earned_seconds: int = 0
    consumed_seconds: int = 0

    @property
    def daily_cap_seconds(self) -> Optional[int]:
        """Cap for this record's tier, None if unlimited."""
        return daily_cap_for(self.plan_tier)

    @property
    def remaining_seconds(self) -> int:
        return self.earned_seconds - self.consumed_seconds

    @property
    def has_reached_daily_cap(self) -> bool:
        cap = self.daily_cap_seconds
        if cap is None:
            return False
        return self.consumed_seconds >= cap

    @property
    def daily_cap_progress(self) -> float:
        """Fraction of the cap consumed (0.0 - 1.0). 0.0 for unlimited plans."""
        cap = self.daily_cap_seconds
        if cap is None:
            return 0.0
        return min(1.0, max(0.0, self.consumed_seconds / cap))

    @classmethod
    def empty(cls, day: date, plan_tier: str) -> "DailyUsage":
        """Zero record for a day with no activity."""
        return cls(
            date=date_key(day),
            plan_tier=plan_tier,
            last_updated=datetime.combine(day, datetime.min.time()),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DailyUsage":
        return cls(
            date=row["date"],
            plan_tier=row["plan_tier"],
            last_updated=datetime.fromisoformat(row["last_updated"]),
            earned_seconds=row["earned_seconds"],
            consumed_seconds=row["consumed_seconds"],
        )


class DailyUsageLedger:
    """
    Daily usage tracker persisted in the local database.

    Usage:
        ledger = DailyUsageLedger(LocalDatabase(), PlanTier.FREE)
        ledger.add_earned_time(600)     # after a workout
        ledger.consume_time(1)          # every unlocked second
        ledger.has_hit_daily_cap()
    """

    def __init__(self, db: Optional[LocalDatabase] = None, plan_tier=None):
        self.db = db or LocalDatabase()
        if plan_tier is not None:
            tier = PlanTier.parse(plan_tier)
            if self.db.get_setting(CURRENT_PLAN_KEY) != tier.value:
                self.update_plan_tier(tier)

    @property
    def plan_tier(self) -> PlanTier:
        return PlanTier.parse(self.db.get_setting(CURRENT_PLAN_KEY, PlanTier.FREE.value))

    def _save(self, usage: DailyUsage) -> None:
        self.db.put_usage(
            usage.date,
            usage.earned_seconds,
            usage.consumed_seconds,
            usage.plan_tier,
            usage.last_updated.isoformat(),
        )

    def get_today_usage(self, now: Optional[datetime] = None) -> DailyUsage:
        """Get today's record, creating it on first access."""
        now = now or datetime.now()
        key = date_key(now)

        tier = self.plan_tier.value
        row = self.db.get_usage(key)
        if row is not None:
            usage = DailyUsage.from_row(row)
            if usage.plan_tier != tier:
                # Plan changed since the record was made; the cap follows the plan
                usage.plan_tier = tier
                self._save(usage)
            return usage

        usage = DailyUsage(date=key, plan_tier=tier, last_updated=now)
        self._save(usage)
        return usage

    def add_earned_time(self, seconds: int, now: Optional[datetime] = None) -> DailyUsage:
        """Credit time earned from a completed workout."""
        now = now or datetime.now()
        usage = self.get_today_usage(now)
        usage.earned_seconds += max(0, seconds)
        usage.last_updated = now
        self._save(usage)
        return usage

    def consume_time(self, seconds: int, now: Optional[datetime] = None) -> DailyUsage:
        """Advance consumed time (wall-clock seconds spent UNLOCKED)."""
        now = now or datetime.now()
        usage = self.get_today_usage(now)
        usage.consumed_seconds += max(0, seconds)
        usage.last_updated = now
        self._save(usage)
        return usage

    def has_hit_daily_cap(self, now: Optional[datetime] = None) -> bool:
        return self.get_today_usage(now).has_reached_daily_cap

    def can_unlock_more(self, now: Optional[datetime] = None) -> bool:
        return not self.has_hit_daily_cap(now)

    def get_remaining_available_seconds(self, now: Optional[datetime] = None) -> int:
        """Unused earned time, capped by what is left of the daily cap."""
        usage = self.get_today_usage(now)
        remaining = max(0, usage.remaining_seconds)
        cap = usage.daily_cap_seconds
        if cap is None:
            return remaining
        cap_remaining = max(0, cap - usage.consumed_seconds)
        return min(cap_remaining, remaining)

    def update_plan_tier(self, plan_tier, now: Optional[datetime] = None) -> None:
        """Switch plan (after a subscription change) and re-tag today's record."""
        now = now or datetime.now()
        tier = PlanTier.parse(plan_tier)
        self.db.set_setting(CURRENT_PLAN_KEY, tier.value)

        row = self.db.get_usage(date_key(now))
        if row is not None:
            usage = DailyUsage.from_row(row)
            usage.plan_tier = tier.value
            usage.last_updated = now
            self._save(usage)

    def get_usage_history(self, days: int, now: Optional[datetime] = None) -> List[DailyUsage]:
        """Existing records for the last N days, newest first."""
        if days <= 0:
            return []
        today = (now or datetime.now()).date()
        start = today - timedelta(days=days - 1)
        rows = self.db.get_usage_range(date_key(start), date_key(today))
        return [DailyUsage.from_row(r) for r in rows]

    def get_weekly_summary(self, now: Optional[datetime] = None) -> List[DailyUsage]:
        """Exactly 7 records, oldest first, zero-filled for idle days."""
        today = (now or datetime.now()).date()
        existing = {u.date: u for u in self.get_usage_history(WEEKLY_SUMMARY_DAYS, now)}
        tier = self.plan_tier.value

        summary = []
        for offset in range(WEEKLY_SUMMARY_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            summary.append(existing.get(date_key(day)) or DailyUsage.empty(day, tier))
        return summary

    def reset_today(self, now: Optional[datetime] = None) -> None:
        """Delete today's record (debugging only)."""
        self.db.delete_usage(date_key(now or datetime.now()))

    def has_timezone_changed(self) -> bool:
        """
        Compare the local UTC offset with the last one seen.

        A timezone change moves the day boundary, so it is worth knowing
        about when counts look odd.
        """
        current = -(time.altzone if time.localtime().tm_isdst > 0 else time.timezone) // 60
        stored = self.db.get_setting(TIMEZONE_OFFSET_KEY)
        if stored is None:
            self.db.set_setting(TIMEZONE_OFFSET_KEY, str(current))
            return False
        if int(stored) != current:
            self.db.set_setting(TIMEZONE_OFFSET_KEY, str(current))
            return True
        return False
