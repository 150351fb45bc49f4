"""
PUSHIN - Workout History and Streaks
Every completed workout is kept in the local database, and consecutive
workout days add up to a streak.

- Same day: the streak stays as it is (total workouts still counts up)
- Next day: the streak grows by one
- Any gap: the streak starts over at 1
- Best streak only ever goes up
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any

from .local_db import LocalDatabase


CURRENT_STREAK_KEY = "current_streak"
BEST_STREAK_KEY = "best_streak"
TOTAL_WORKOUTS_KEY = "total_workouts"
LAST_WORKOUT_DATE_KEY = "last_workout_date"

# Workouts older than this are dropped by cleanup_old_workouts()
HISTORY_RETENTION_DAYS = 90

DISPLAY_NAMES = {
    'push-ups': 'Push-Ups',
    'squats': 'Squats',
    'plank': 'Plank',
    'jumping-jacks': 'Jumping Jacks',
    'burpees': 'Burpees',
}


@dataclass
class WorkoutRecord:
    """One completed workout."""
    id: str
    workout_type: str
    reps_completed: int
    earned_seconds: int
    workout_mode: str
    completed_at: datetime

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES.get(self.workout_type.lower(), self.workout_type)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WorkoutRecord":
        return cls(
            id=row["id"],
            workout_type=row["workout_type"],
            reps_completed=row["reps_completed"],
            earned_seconds=row["earned_seconds"],
            workout_mode=row["workout_mode"],
            completed_at=datetime.fromisoformat(row["completed_at"]),
        )


@dataclass
class StreakStats:
    current_streak: int = 0
    best_streak: int = 0
    total_workouts: int = 0
    last_workout_date: Optional[date] = None


class WorkoutHistory:
    """
    Completed workouts plus the streak counters.

    Usage:
        history = WorkoutHistory(LocalDatabase())
        history.record_workout("push-ups", 20, 600, "normal")
        history.get_recent_workouts(limit=5)
        history.get_stats().current_streak
    """

    def __init__(self, db: Optional[LocalDatabase] = None):
        self.db = db or LocalDatabase()

    # === Recording ===

    def record_workout(
        self,
        workout_type: str,
        reps_completed: int,
        earned_seconds: int,
        workout_mode: str,
        now: Optional[datetime] = None,
    ) -> WorkoutRecord:
        """Store a completed workout and advance the streak."""
        now = now or datetime.now()
        record = WorkoutRecord(
            id=uuid.uuid4().hex,
            workout_type=workout_type,
            reps_completed=reps_completed,
            earned_seconds=earned_seconds,
            workout_mode=workout_mode,
            completed_at=now,
        )
        self.db.add_workout(
            record.id,
            record.workout_type,
            record.reps_completed,
            record.earned_seconds,
            record.workout_mode,
            record.completed_at.isoformat(),
        )
        self._record_streak_day(now.date())
        return record

    def _record_streak_day(self, today: date) -> StreakStats:
        stats = self.get_stats()
        last = stats.last_workout_date

        if last is None:
            stats.current_streak = 1
        else:
            gap = (today - last).days
            if gap == 1:
                stats.current_streak += 1
            elif gap > 1:
                stats.current_streak = 1
            # gap 0: already counted today. gap < 0: clock went back, keep the later date

        stats.best_streak = max(stats.best_streak, stats.current_streak)
        stats.total_workouts += 1
        if last is None or today > last:
            stats.last_workout_date = today

        self.db.set_setting(CURRENT_STREAK_KEY, str(stats.current_streak))
        self.db.set_setting(BEST_STREAK_KEY, str(stats.best_streak))
        self.db.set_setting(TOTAL_WORKOUTS_KEY, str(stats.total_workouts))
        self.db.set_setting(LAST_WORKOUT_DATE_KEY, stats.last_workout_date.isoformat())
        return stats

    # === Streaks ===

    def get_stats(self) -> StreakStats:
        """Stored counters as last written."""
        last = self.db.get_setting(LAST_WORKOUT_DATE_KEY)
        return StreakStats(
            current_streak=int(self.db.get_setting(CURRENT_STREAK_KEY, "0")),
            best_streak=int(self.db.get_setting(BEST_STREAK_KEY, "0")),
            total_workouts=int(self.db.get_setting(TOTAL_WORKOUTS_KEY, "0")),
            last_workout_date=date.fromisoformat(last) if last else None,
        )

    def get_current_streak(self, now: Optional[datetime] = None) -> int:
        """Current streak, 0 once a whole day has passed without a workout."""
        stats = self.get_stats()
        today = (now or datetime.now()).date()
        if stats.last_workout_date is None or (today - stats.last_workout_date).days > 1:
            return 0
        return stats.current_streak

    def get_best_streak(self) -> int:
        return self.get_stats().best_streak

    def get_total_workouts(self) -> int:
        return self.get_stats().total_workouts

    def is_today_completed(self, now: Optional[datetime] = None) -> bool:
        today = (now or datetime.now()).date()
        return self.get_stats().last_workout_date == today

    def reset_streaks(self) -> None:
        for key in (CURRENT_STREAK_KEY, BEST_STREAK_KEY, TOTAL_WORKOUTS_KEY, LAST_WORKOUT_DATE_KEY):
            self.db.delete_setting(key)

    # === Queries ===

    def get_recent_workouts(self, limit: int = 10) -> List[WorkoutRecord]:
        """Most recent workouts first."""
        if limit <= 0:
            return []
        return [WorkoutRecord.from_row(r) for r in self.db.get_workouts(limit=limit)]

    def get_workouts_from_last_days(self, days: int, now: Optional[datetime] = None) -> List[WorkoutRecord]:
        now = now or datetime.now()
        since = now - timedelta(days=days)
        return [WorkoutRecord.from_row(r) for r in self.db.get_workouts(since=since.isoformat())]

    def get_todays_workouts(self, now: Optional[datetime] = None) -> List[WorkoutRecord]:
        today = datetime.combine((now or datetime.now()).date(), datetime.min.time())
        tomorrow = today + timedelta(days=1)
        rows = self.db.get_workouts(since=today.isoformat(), until=tomorrow.isoformat())
        return [WorkoutRecord.from_row(r) for r in rows]

    def get_total_time_earned(self) -> int:
        """Seconds earned over every stored workout."""
        return self.db.get_workout_totals()["earned_seconds"]

    def get_most_popular_workout_type(self) -> Optional[str]:
        counts = self.db.get_workout_type_counts()
        if not counts:
            return None
        return next(iter(counts))

    # === Maintenance ===

    def delete_workout(self, workout_id: str) -> None:
        self.db.delete_workout(workout_id)

    def clear_history(self) -> int:
        return self.db.delete_workouts_before(None)

    def cleanup_old_workouts(self, now: Optional[datetime] = None) -> int:
        """Drop workouts older than the retention window. Streak counters are kept."""
        now = now or datetime.now()
        cutoff = now - timedelta(days=HISTORY_RETENTION_DAYS)
        removed = self.db.delete_workouts_before(cutoff.isoformat())
        if removed:
            print(f"🧹 Removed {removed} workout(s) older than {HISTORY_RETENTION_DAYS} days")
        return removed
