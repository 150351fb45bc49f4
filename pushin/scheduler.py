"""
PUSHIN - Task Scheduler
One-shot tasks keyed by name and due at an ABSOLUTE time.

Run from the tick loop with `run_due(now)`. Scheduling under an existing
key replaces the old task, so a re-block scheduled for an old expiry can
never fire after the window has been extended or the user re-locked.
After a suspend/resume the next tick simply sees that `now` passed
`due_at`; nothing depends on an in-flight sleep.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional


@dataclass(order=True)
class ScheduledTask:
    """A pending callback."""
    due_at: datetime
    key: str = field(compare=False)
    callback: Callable[[datetime], None] = field(compare=False, repr=False)


class TaskScheduler:
    """Keyed, cancelable one-shot tasks."""

    def __init__(self):
        self._tasks: Dict[str, ScheduledTask] = {}

    def schedule(
        self,
        key: str,
        due_at: datetime,
        callback: Callable[[datetime], None],
    ) -> ScheduledTask:
        """Schedule `callback(now)` at `due_at`, replacing any task under `key`."""
        task = ScheduledTask(due_at=due_at, key=key, callback=callback)
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        return self._tasks.pop(key, None) is not None

    def cancel_all(self) -> None:
        self._tasks.clear()

    def pending(self, key: str) -> Optional[ScheduledTask]:
        return self._tasks.get(key)

    def __len__(self) -> int:
        return len(self._tasks)

    def run_due(self, now: datetime) -> List[str]:
        """Run every task due at or before `now`, earliest first. Returns their keys."""
        due = sorted(t for t in self._tasks.values() if t.due_at <= now)
        ran = []
        for task in due:
            # A callback may have cancelled or replaced a later task
            if self._tasks.get(task.key) is not task:
                continue
            del self._tasks[task.key]
            task.callback(now)
            ran.append(task.key)
        return ran
