"""
PUSHIN - Event Log
Records unlock/lock events for the weekly report and for accountability.

Writes to:
1. Local JSON file (~/.pushin/events.json)
2. Optional webhook (Slack-compatible)
"""

import json
import os
import requests
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, asdict


def get_events_path() -> Path:
    """Get path to the event log file."""
    pushin_dir = Path.home() / ".pushin"
    pushin_dir.mkdir(exist_ok=True)
    return pushin_dir / "events.json"


@dataclass
class AuditEntry:
    """A single event log entry."""
    event: str  # 'workout_completed', 'workout_cancelled', 'session_expired', 'daily_cap_reached', 'emergency_unlock', 'manual_lock'
    timestamp: str
    state: str
    user: str
    seconds: int = 0
    target: Optional[str] = None
    detail: Optional[str] = None


class AuditLogger:
    """
    Append-only log of what happened to the unlock cycle.

    Use cases:
    - "How many emergency unlocks did I burn this week?"
    - Accountability partner notifications via webhook
    """

    # Maximum entries to keep in the log
    MAX_ENTRIES = 1000

    def __init__(self, path: Optional[Path] = None, webhook_url: Optional[str] = None):
        self.events_path = path or get_events_path()
        self.webhook_url = webhook_url
        self._load_entries()

    def _load_entries(self) -> None:
        """Load entries from disk."""
        if self.events_path.exists():
            try:
                with open(self.events_path, 'r') as f:
                    data = json.load(f)
                    self.entries = data.get('entries', [])
            except (json.JSONDecodeError, KeyError, AttributeError):
                self.entries = []
        else:
            self.entries = []

    def _save_entries(self) -> None:
        """Save entries to disk."""
        # Trim to MAX_ENTRIES (keep most recent)
        if len(self.entries) > self.MAX_ENTRIES:
            self.entries = self.entries[-self.MAX_ENTRIES:]

        data = {
            'entries': self.entries,
            'last_updated': datetime.now().isoformat(),
            'total_count': len(self.entries)
        }

        with open(self.events_path, 'w') as f:
            json.dump(data, f, indent=2)

    def log_event(
        self,
        event: str,
        state: str,
        now: Optional[datetime] = None,
        seconds: int = 0,
        target: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> AuditEntry:
        """
        Log an event.

        Args:
            event: Type of event
            state: State-machine state after the event
            now: Event time (defaults to now)
            seconds: Seconds earned/granted, if any
            target: App involved, if any
            detail: Free text
        """
        entry = AuditEntry(
            event=event,
            timestamp=(now or datetime.now()).isoformat(),
            state=state,
            user=os.environ.get('USER', 'unknown'),
            seconds=seconds,
            target=target,
            detail=detail,
        )

        # The daemon and the CLI both append to the same file
        self._load_entries()
        self.entries.append(asdict(entry))
        self._save_entries()

        if self.webhook_url:
            self._fire_webhook(entry, self.webhook_url)

        return entry

    def _fire_webhook(self, entry: AuditEntry, webhook_url: str) -> None:
        """
        POST the event to a webhook.

        Fire-and-forget: doesn't block on failure.
        """
        try:
            requests.post(
                webhook_url,
                json=self._format_webhook_payload(entry),
                timeout=5,
                headers={'Content-Type': 'application/json'}
            )
        except requests.RequestException as e:
            print(f"⚠️ Webhook failed: {e}")

    def _format_webhook_payload(self, entry: AuditEntry) -> Dict[str, Any]:
        """Slack-compatible message payload."""
        emoji_map = {
            'workout_completed': '💪',
            'workout_cancelled': '🛑',
            'session_expired': '⏰',
            'daily_cap_reached': '🚫',
            'emergency_unlock': '🚨',
            'manual_lock': '🔒',
        }
        emoji = emoji_map.get(entry.event, '📋')

        text = f"{emoji} *PUSHIN*\n\n"
        text += f"*Event:* {entry.event}\n"
        text += f"*User:* {entry.user}\n"
        text += f"*State:* {entry.state}\n"
        if entry.seconds:
            text += f"*Time:* {entry.seconds // 60} min\n"
        if entry.target:
            text += f"*App:* {entry.target}\n"
        if entry.detail:
            text += f"*Detail:* {entry.detail}\n"
        text += f"*Timestamp:* {entry.timestamp}\n"

        return {
            "text": text,
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": text
                    }
                }
            ]
        }

    def get_recent_events(self, count: int = 10) -> List[Dict]:
        """Get the N most recent events."""
        return self.entries[-count:]

    def get_events_since(self, since: datetime, event: Optional[str] = None) -> List[Dict]:
        """All events (optionally of one type) after a given datetime."""
        return [
            e for e in self.entries
            if (event is None or e['event'] == event)
            and datetime.fromisoformat(e['timestamp']) > since
        ]

    def get_stats(self) -> Dict[str, Any]:
        """Get event statistics."""
        if not self.entries:
            return {
                'total_events': 0,
                'workouts': 0,
                'emergency_unlocks': 0,
                'cap_hits': 0
            }

        return {
            'total_events': len(self.entries),
            'workouts': sum(1 for e in self.entries if e['event'] == 'workout_completed'),
            'emergency_unlocks': sum(1 for e in self.entries if e['event'] == 'emergency_unlock'),
            'cap_hits': sum(1 for e in self.entries if e['event'] == 'daily_cap_reached'),
            'earned_seconds': sum(e.get('seconds', 0) for e in self.entries if e['event'] == 'workout_completed'),
            'oldest_entry': self.entries[0]['timestamp'],
            'newest_entry': self.entries[-1]['timestamp']
        }


# Singleton instance
_logger: Optional[AuditLogger] = None

def get_audit_logger(webhook_url: Optional[str] = None) -> AuditLogger:
    """Get the singleton AuditLogger instance."""
    global _logger
    if _logger is None:
        _logger = AuditLogger(webhook_url=webhook_url)
    return _logger
