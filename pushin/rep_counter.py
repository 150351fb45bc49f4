"""
PUSHIN - Keyboard Rep Counter
Manual rep counting for desktop workouts: tap SPACE once per rep,
press ESC (or ENTER) when done.

Only the key NAME is inspected; nothing typed is stored.
"""

import threading
import time
from typing import Callable, Optional


class RepCounter:
    """
    Counts reps from key presses.

    The pynput listener runs on its own thread and only forwards presses
    to `on_rep`; state changes stay with the caller.
    """

    # Ignore key auto-repeat from a held-down space bar
    MIN_REP_INTERVAL = 0.3

    REP_KEYS = ("space",)
    DONE_KEYS = ("esc", "enter")

    def __init__(
        self,
        on_rep: Optional[Callable[[int], None]] = None,
        target: Optional[int] = None,
    ):
        self.on_rep = on_rep
        self.target = target
        self.count = 0
        self._last_rep: Optional[float] = None
        self._done = threading.Event()
        self._listener = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def press(self, key, now: Optional[float] = None) -> bool:
        """
        Handle one key press. Returns False when counting is finished
        (pynput stops a listener whose callback returns False).
        """
        if self.done:
            return False

        name = getattr(key, "name", None)
        char = getattr(key, "char", None)

        if name in self.DONE_KEYS:
            self._done.set()
            return False

        if name in self.REP_KEYS or char == " ":
            now = time.time() if now is None else now
            if self._last_rep is not None and now - self._last_rep < self.MIN_REP_INTERVAL:
                return True
            self._last_rep = now
            self.count += 1
            if self.on_rep:
                self.on_rep(self.count)
            if self.target is not None and self.count >= self.target:
                self._done.set()
                return False
        return True

    def _on_press(self, key, injected=False):
        # Listener callback; the wall clock is read in press()
        return self.press(key)

    def start(self) -> None:
        """Start listening to the keyboard."""
        # Imported here: pynput needs a display/input backend at import time
        from pynput import keyboard

        if self._listener is not None:
            return
        self._listener = keyboard.Listener(on_press=self._on_press)
        self._listener.start()
        print("⌨️  SPACE = 1 rep, ESC = done")

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    def wait(self, timeout: Optional[float] = None) -> int:
        """Block until done (or timeout). Returns the rep count."""
        self._done.wait(timeout)
        self.stop()
        return self.count
