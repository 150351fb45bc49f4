"""
PUSHIN Daemon - Local Database
Stores daily usage, completed workouts and small settings in SQLite (~/.pushin/usage.db)

One usage row per calendar day. Usage rows are never deleted so weekly
summaries can always be rebuilt.
"""

import sqlite3
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager


def get_db_path() -> Path:
    """Get the path to the local database."""
    pushin_dir = Path.home() / ".pushin"
    pushin_dir.mkdir(exist_ok=True)
    return pushin_dir / "usage.db"


class LocalDatabase:
    """
    Local SQLite database for usage bookkeeping.

    Tables:
    - daily_usage: earned/consumed seconds per local date
    - workout_history: one row per completed workout
    - settings: key/value pairs (current plan, timezone offset, ...)
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_usage (
                    date TEXT PRIMARY KEY,          -- YYYY-MM-DD, local time
                    earned_seconds INTEGER NOT NULL DEFAULT 0,
                    consumed_seconds INTEGER NOT NULL DEFAULT 0,
                    plan_tier TEXT NOT NULL,
                    last_updated TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS workout_history (
                    id TEXT PRIMARY KEY,
                    workout_type TEXT NOT NULL,
                    reps_completed INTEGER NOT NULL,
                    earned_seconds INTEGER NOT NULL,
                    workout_mode TEXT NOT NULL,
                    completed_at TEXT NOT NULL      -- ISO timestamp, local time
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workout_completed
                ON workout_history(completed_at)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # === Daily usage ===

    def get_usage(self, date_key: str) -> Optional[Dict[str, Any]]:
        """Get the usage row for a date, or None."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM daily_usage WHERE date = ?",
                (date_key,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def put_usage(
        self,
        date_key: str,
        earned_seconds: int,
        consumed_seconds: int,
        plan_tier: str,
        last_updated: str,
    ) -> None:
        """Insert or replace the usage row for a date."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO daily_usage (
                    date, earned_seconds, consumed_seconds, plan_tier, last_updated
                ) VALUES (?, ?, ?, ?, ?)
            """, (date_key, earned_seconds, consumed_seconds, plan_tier, last_updated))
            conn.commit()

    def delete_usage(self, date_key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM daily_usage WHERE date = ?", (date_key,))
            conn.commit()

    def get_usage_range(self, start_key: str, end_key: str) -> List[Dict[str, Any]]:
        """
        Get usage rows between two dates (inclusive), newest first.

        Date keys are zero-padded ISO dates so string order is date order.
        """
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT * FROM daily_usage
                WHERE date >= ? AND date <= ?
                ORDER BY date DESC
            """, (start_key, end_key))
            return [dict(row) for row in cursor.fetchall()]

    # === Workout history ===

    def add_workout(
        self,
        workout_id: str,
        workout_type: str,
        reps_completed: int,
        earned_seconds: int,
        workout_mode: str,
        completed_at: str,
    ) -> None:
        """Store one completed workout."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO workout_history (
                    id, workout_type, reps_completed, earned_seconds,
                    workout_mode, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (workout_id, workout_type, reps_completed, earned_seconds,
                  workout_mode, completed_at))
            conn.commit()

    def get_workouts(
        self,
        since: Optional[str] = None,
        until: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Get workouts, most recent first.

        `since` is inclusive, `until` exclusive. ISO timestamps compare
        correctly as strings.
        """
        query = "SELECT * FROM workout_history WHERE 1 = 1"
        params: List[Any] = []
        if since is not None:
            query += " AND completed_at >= ?"
            params.append(since)
        if until is not None:
            query += " AND completed_at < ?"
            params.append(until)
        query += " ORDER BY completed_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def get_workout_totals(self) -> Dict[str, Any]:
        """Count and earned seconds over all stored workouts."""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT COUNT(*) AS count, COALESCE(SUM(earned_seconds), 0) AS earned_seconds
                FROM workout_history
            """)
            return dict(cursor.fetchone())

    def get_workout_type_counts(self) -> Dict[str, int]:
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT workout_type, COUNT(*) AS count
                FROM workout_history
                GROUP BY workout_type
                ORDER BY count DESC, workout_type
            """)
            return {row["workout_type"]: row["count"] for row in cursor.fetchall()}

    def delete_workout(self, workout_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM workout_history WHERE id = ?", (workout_id,))
            conn.commit()

    def delete_workouts_before(self, cutoff: Optional[str] = None) -> int:
        """Delete workouts older than `cutoff` (all of them if None). Returns the count."""
        with self._get_connection() as conn:
            if cutoff is None:
                cursor = conn.execute("DELETE FROM workout_history")
            else:
                cursor = conn.execute(
                    "DELETE FROM workout_history WHERE completed_at < ?",
                    (cutoff,)
                )
            conn.commit()
            return cursor.rowcount

    # === Settings ===

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else default

    def set_setting(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value)
            )
            conn.commit()

    def delete_setting(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
