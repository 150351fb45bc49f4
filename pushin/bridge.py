"""
PUSHIN - Platform Bridges
The small command interface the core uses to reach OS-level enforcement.

Bridges are best-effort. A missing or failing helper never raises into
the tick loop: the call returns False and the controller falls back to
the UI-only overlay (fail open).
"""

from typing import List, Optional

import requests

from .emergency import NativeEmergencyStatus


class PlatformBridge:
    """Interface every bridge implements."""

    name = "base"

    @property
    def available(self) -> bool:
        return False

    def apply_blocking(self, targets: List[str]) -> bool:
        """Block `targets`. Returns True if enforcement was applied."""
        raise NotImplementedError

    def remove_blocking(self, duration_hint: Optional[int] = None) -> bool:
        """Lift blocking, optionally for `duration_hint` seconds. Returns True on success."""
        raise NotImplementedError

    def query_emergency_status(self) -> Optional[NativeEmergencyStatus]:
        """Emergency status from the native store, or None if unknown."""
        return None


class OverlayBridge(PlatformBridge):
    """
    UI-only fallback: nothing is enforced, the user just sees a notice.

    Used on machines without a blocking helper and whenever the real
    bridge is unreachable.
    """

    name = "overlay"

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.blocked: List[str] = []

    def apply_blocking(self, targets: List[str]) -> bool:
        if targets != self.blocked and not self.quiet:
            print(f"🔒 Overlay: {len(targets)} app(s) blocked (not enforced)")
        self.blocked = list(targets)
        return False

    def remove_blocking(self, duration_hint: Optional[int] = None) -> bool:
        if self.blocked and not self.quiet:
            hint = f" for {duration_hint}s" if duration_hint else ""
            print(f"🔓 Overlay: apps unblocked{hint}")
        self.blocked = []
        return False


class HttpBridge(PlatformBridge):
    """
    Talks to a local blocking helper over HTTP.

    Endpoints:
        POST {base_url}/block      {"targets": [...]}
        POST {base_url}/unblock    {"duration_seconds": N | null}
        GET  {base_url}/emergency  -> {"active", "used_today", "expiry_timestamp", "remaining_seconds"}
    """

    name = "http"

    # Don't hang the tick loop on a slow helper
    TIMEOUT_SECONDS = 2

    def __init__(self, base_url: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    def _mark(self, ok: bool, error: Optional[Exception] = None) -> None:
        if not ok and self._available:
            print(f"⚠️ Blocking helper unavailable ({error or 'bad response'}), "
                  f"falling back to overlay")
        elif ok and not self._available:
            print("✅ Blocking helper reachable again")
        self._available = ok

    def _post(self, path: str, payload: dict) -> bool:
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                timeout=self.TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            self._mark(False, e)
            return False
        self._mark(response.ok)
        return response.ok

    def apply_blocking(self, targets: List[str]) -> bool:
        return self._post("/block", {"targets": list(targets)})

    def remove_blocking(self, duration_hint: Optional[int] = None) -> bool:
        return self._post("/unblock", {"duration_seconds": duration_hint})

    def query_emergency_status(self) -> Optional[NativeEmergencyStatus]:
        try:
            response = self.session.get(
                f"{self.base_url}/emergency",
                timeout=self.TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            self._mark(False, e)
            return None

        self._mark(response.ok)
        if not response.ok:
            return None

        try:
            data = response.json()
            return NativeEmergencyStatus(
                active=bool(data.get("active", False)),
                used_today=int(data.get("used_today", 0)),
                expiry_timestamp=float(data.get("expiry_timestamp", 0) or 0),
                remaining_seconds=int(data.get("remaining_seconds", 0) or 0),
            )
        except (ValueError, TypeError, AttributeError):
            print("⚠️ Blocking helper sent an unreadable emergency status")
            return None


def get_bridge(config) -> PlatformBridge:
    """Pick a bridge from config; anything unusable degrades to the overlay."""
    if config.bridge == "http" and config.bridge_url:
        return HttpBridge(config.bridge_url)
    if config.bridge == "http":
        print("⚠️ bridge: http needs bridge_url, using overlay")
    return OverlayBridge()
