"""
PUSHIN - Configuration Management
Handles ~/.pushin/config.yaml with defaults.

Plan tier comes from the subscription license (verified online, cached
for offline use) unless `plan_tier` is pinned in the config file.
"""

import os
import json
import yaml
import requests
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta

from .plans import PlanTier
from .state_machine import AppBlockTarget


# ============================================================
# PATHS
# ============================================================

def get_pushin_dir() -> Path:
    """Get the PUSHIN data directory."""
    pushin_dir = Path.home() / ".pushin"
    pushin_dir.mkdir(exist_ok=True)
    return pushin_dir


def get_config_path() -> Path:
    """Get path to config file."""
    return get_pushin_dir() / "config.yaml"


def get_license_path() -> Path:
    """Get path to license file."""
    return get_pushin_dir() / "license.key"


def get_license_cache_path() -> Path:
    """Get path to license cache file."""
    return get_pushin_dir() / "license_cache.json"


def get_state_path() -> Path:
    """Get path to the persisted state-machine snapshot."""
    return get_pushin_dir() / "state.json"


# License API endpoint
LICENSE_API_URL = os.getenv("PUSHIN_LICENSE_API", "https://pushin.app/license/verify")


# ============================================================
# DEFAULTS
# ============================================================

# Apps blocked out of the box
DEFAULT_BLOCK_TARGETS = [
    {"id": "com.instagram.android", "name": "Instagram"},
    {"id": "com.zhiliaoapp.musically", "name": "TikTok"},
    {"id": "com.google.android.youtube", "name": "YouTube"},
    {"id": "com.twitter.android", "name": "X"},
    {"id": "com.reddit.frontpage", "name": "Reddit"},
]


# ============================================================
# LICENSE VERIFICATION
# ============================================================

@dataclass
class LicenseInfo:
    """License information."""
    valid: bool
    tier: str  # 'free', 'pro', 'advanced'
    reason: Optional[str] = None
    expires_at: Optional[str] = None
    cached: bool = False


def _read_cache(cache_path: Path, grace: timedelta) -> Optional[Dict[str, Any]]:
    """Return the cache dict if it is valid and younger than `grace`."""
    if not cache_path.exists():
        return None
    try:
        cache = json.loads(cache_path.read_text())
        verified_at = datetime.fromisoformat(cache["verified_at"])
    except (json.JSONDecodeError, KeyError, ValueError):
        return None  # Cache corrupted, will re-verify
    if datetime.utcnow() - verified_at < grace and cache.get("valid"):
        return cache
    return None


def verify_license() -> LicenseInfo:
    """
    Verify the subscription license key.

    Flow:
    1. Check if license file exists
    2. Check local cache (grace period: 7 days)
    3. Verify with server
    4. Update cache
    5. Offline: accept a cache up to 30 days old
    """
    license_path = get_license_path()
    cache_path = get_license_cache_path()

    # No license file = free tier
    if not license_path.exists():
        return LicenseInfo(valid=False, tier="free", reason="No license file")

    license_key = license_path.read_text().strip()

    if not license_key or not license_key.startswith("pushin_"):
        return LicenseInfo(valid=False, tier="free", reason="Invalid license format")

    cache = _read_cache(cache_path, timedelta(days=7))
    if cache:
        return LicenseInfo(
            valid=True,
            tier=PlanTier.parse(cache.get("tier", "pro")).value,
            expires_at=cache.get("expires_at"),
            cached=True
        )

    try:
        response = requests.post(
            LICENSE_API_URL,
            json={"license_key": license_key},
            timeout=5
        )

        if response.ok:
            data = response.json()
            tier = PlanTier.parse(data.get("tier", "pro")).value

            cache = {
                "valid": data.get("valid", False),
                "tier": tier,
                "verified_at": datetime.utcnow().isoformat(),
                "expires_at": data.get("expires_at")
            }
            cache_path.write_text(json.dumps(cache, indent=2))

            return LicenseInfo(
                valid=data.get("valid", False),
                tier=tier if data.get("valid", False) else "free",
                reason=data.get("reason"),
                expires_at=data.get("expires_at")
            )

    except requests.RequestException:
        cache = _read_cache(cache_path, timedelta(days=30))
        if cache:
            return LicenseInfo(
                valid=True,
                tier=PlanTier.parse(cache.get("tier", "pro")).value,
                reason="Offline mode (cached)",
                cached=True
            )

        return LicenseInfo(
            valid=False,
            tier="free",
            reason="Unable to verify (offline)"
        )

    return LicenseInfo(valid=False, tier="free", reason="Verification failed")


# ============================================================
# CONFIG DATACLASS
# ============================================================

@dataclass
class PushinConfig:
    """Configuration settings for PUSHIN."""

    # === BLOCKING ===

    # Apps/categories/websites blocked while locked
    block_targets: List[Dict[str, Any]] = field(
        default_factory=lambda: [dict(t) for t in DEFAULT_BLOCK_TARGETS]
    )

    # Seconds between entering LOCKED and actually blocking (0 = instant)
    grace_period_seconds: int = 0

    # === TIMING ===

    # Tick loop interval (seconds)
    tick_interval: float = 1.0

    # How often to poll the native side for emergency status (seconds)
    sync_interval_seconds: int = 3

    # === WORKOUTS ===

    # Default difficulty: 'cozy', 'normal' or 'tuff'
    workout_mode: str = "normal"

    # Default screen time to earn per workout (minutes)
    default_unlock_minutes: int = 10

    # === EMERGENCY UNLOCK (Pro/Advanced) ===

    emergency_unlock_enabled: bool = False
    emergency_unlock_minutes: int = 10
    max_emergency_unlocks_per_day: int = 3

    # === PLATFORM BRIDGE ===

    # 'overlay' (UI-only, no enforcement) or 'http' (local helper service)
    bridge: str = "overlay"
    bridge_url: Optional[str] = None

    # === NOTIFICATIONS ===

    # Webhook URL for unlock events (Slack, etc.)
    webhook_url: Optional[str] = None

    # Pin the plan tier instead of verifying the license ('free', 'pro', 'advanced')
    plan_tier: Optional[str] = None

    # === LICENSE (computed at runtime) ===
    _license_info: Optional[LicenseInfo] = field(default=None, repr=False)

    @property
    def targets(self) -> List[AppBlockTarget]:
        return [AppBlockTarget.from_dict(t) for t in self.block_targets]

    @property
    def license_info(self) -> LicenseInfo:
        if self._license_info is None:
            self._license_info = verify_license()
        return self._license_info

    @property
    def effective_plan_tier(self) -> PlanTier:
        """Pinned tier if set, otherwise whatever the license says."""
        if self.plan_tier:
            return PlanTier.parse(self.plan_tier)
        return PlanTier.parse(self.license_info.tier)


# ============================================================
# CONFIG LOADING
# ============================================================

def load_config() -> PushinConfig:
    """
    Load configuration from ~/.pushin/config.yaml
    Falls back to defaults if file doesn't exist.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return PushinConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return PushinConfig(
            # Blocking
            block_targets=data.get('block_targets', [dict(t) for t in DEFAULT_BLOCK_TARGETS]),
            grace_period_seconds=data.get('grace_period_seconds', 0),

            # Timing
            tick_interval=data.get('tick_interval', 1.0),
            sync_interval_seconds=data.get('sync_interval_seconds', 3),

            # Workouts
            workout_mode=data.get('workout_mode', 'normal'),
            default_unlock_minutes=data.get('default_unlock_minutes', 10),

            # Emergency unlock
            emergency_unlock_enabled=data.get('emergency_unlock_enabled', False),
            emergency_unlock_minutes=data.get('emergency_unlock_minutes', 10),
            max_emergency_unlocks_per_day=data.get('max_emergency_unlocks_per_day', 3),

            # Bridge
            bridge=data.get('bridge', 'overlay'),
            bridge_url=data.get('bridge_url'),

            webhook_url=data.get('webhook_url'),
            plan_tier=data.get('plan_tier'),
        )
    except Exception as e:
        print(f"⚠️ Error loading config: {e}")
        print("Using default configuration.")
        return PushinConfig()


def save_config(config: PushinConfig) -> None:
    """Save configuration to ~/.pushin/config.yaml"""
    config_path = get_config_path()

    data = {
        'block_targets': config.block_targets,
        'grace_period_seconds': config.grace_period_seconds,
        'tick_interval': config.tick_interval,
        'sync_interval_seconds': config.sync_interval_seconds,
        'workout_mode': config.workout_mode,
        'default_unlock_minutes': config.default_unlock_minutes,
        'emergency_unlock_enabled': config.emergency_unlock_enabled,
        'emergency_unlock_minutes': config.emergency_unlock_minutes,
        'max_emergency_unlocks_per_day': config.max_emergency_unlocks_per_day,
        'bridge': config.bridge,
    }

    # Only save optional fields if they exist
    if config.bridge_url:
        data['bridge_url'] = config.bridge_url
    if config.webhook_url:
        data['webhook_url'] = config.webhook_url
    if config.plan_tier:
        data['plan_tier'] = config.plan_tier

    with open(config_path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False)


def get_example_config() -> str:
    """Return an example config.yaml content."""
    return """# PUSHIN Configuration
# Location: ~/.pushin/config.yaml

# === BLOCKING ===

# Apps blocked until you work out. Plain strings are app identifiers.
block_targets:
  - id: com.instagram.android
    name: Instagram
  - id: com.zhiliaoapp.musically
    name: TikTok
  - id: com.google.android.youtube
    name: YouTube
  - id: com.twitter.android
    name: X
  - id: com.reddit.frontpage
    name: Reddit

# Seconds between locking and actual blocking (0 = instant)
grace_period_seconds: 0

# === WORKOUTS ===

# Difficulty: cozy, normal, tuff
workout_mode: normal

# Screen time earned per workout (minutes)
default_unlock_minutes: 10

# === EMERGENCY UNLOCK (Pro/Advanced) ===

emergency_unlock_enabled: false

# Minutes per emergency unlock: 10, 15 or 30
emergency_unlock_minutes: 10

max_emergency_unlocks_per_day: 3

# === PLATFORM BRIDGE ===

# 'overlay' shows a notice only; 'http' talks to a local blocking helper
bridge: overlay
# bridge_url: http://127.0.0.1:8765

# === NOTIFICATIONS ===

# webhook_url: https://hooks.slack.com/services/XXX/YYY/ZZZ

# Pin plan tier instead of checking the license (free, pro, advanced)
# plan_tier: pro
"""


def create_default_config() -> None:
    """Create a default config file if it doesn't exist."""
    config_path = get_config_path()
    if not config_path.exists():
        with open(config_path, 'w') as f:
            f.write(get_example_config())
        print(f"✅ Created default config at {config_path}")


def reset_config() -> None:
    """Reset config to defaults (overwrites existing)."""
    config_path = get_config_path()
    with open(config_path, 'w') as f:
        f.write(get_example_config())
    print(f"✅ Reset config to defaults at {config_path}")


def print_config() -> None:
    """Print current configuration."""
    config = load_config()

    print("\n📋 Current PUSHIN Configuration:")
    print(f"   Blocked targets: {len(config.block_targets)}")
    for target in config.targets:
        print(f"     - {target.name} ({target.identifier})")
    print(f"   Grace period: {config.grace_period_seconds}s")
    print(f"   Workout mode: {config.workout_mode}")
    print(f"   Unlock per workout: {config.default_unlock_minutes} min")
    print(f"   Emergency unlock: {'enabled' if config.emergency_unlock_enabled else 'disabled'}"
          f" ({config.emergency_unlock_minutes} min, {config.max_emergency_unlocks_per_day}/day)")
    print(f"   Bridge: {config.bridge}{' @ ' + config.bridge_url if config.bridge_url else ''}")
    print(f"   Webhook: {'configured' if config.webhook_url else 'not set'}")
    print()
    print("🔐 Plan:")
    print(f"   Tier: {config.effective_plan_tier.value.upper()}"
          f"{' (pinned in config)' if config.plan_tier else ''}")
    print()


def show_license_status() -> None:
    """Display current license status."""
    info = verify_license()

    print("\n🔐 LICENSE STATUS")
    print("=" * 40)
    print(f"   Tier:    {info.tier.upper()}")
    print(f"   Valid:   {'✅ Yes' if info.valid else '❌ No'}")

    if info.reason:
        print(f"   Status:  {info.reason}")
    if info.expires_at:
        print(f"   Expires: {info.expires_at}")
    if info.cached:
        print(f"   (Using cached verification)")

    if not info.valid:
        print("\n   To activate Pro:")
        print("   1. Subscribe at https://pushin.app/pro")
        print("   2. Save license key to ~/.pushin/license.key")
        print("   3. Restart the daemon")

    print()
