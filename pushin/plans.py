"""
PUSHIN - Plan Tiers
Subscription levels gating daily caps and emergency unlock access.
"""

from enum import Enum
from typing import Dict, Optional


class PlanTier(Enum):
    """Subscription level."""
    FREE = "free"
    PRO = "pro"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value) -> "PlanTier":
        """Parse a tier name. Unknown values fall back to FREE."""
        if isinstance(value, PlanTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FREE


# Daily unlock cap per tier (seconds). None = unlimited.
DAILY_CAP_SECONDS: Dict[PlanTier, Optional[int]] = {
    PlanTier.FREE: 3600,       # 1 hour
    PlanTier.PRO: 10800,       # 3 hours
    PlanTier.ADVANCED: None,
}

# Emergency unlock is a paid feature
EMERGENCY_UNLOCK_ACCESS: Dict[PlanTier, bool] = {
    PlanTier.FREE: False,
    PlanTier.PRO: True,
    PlanTier.ADVANCED: True,
}


def daily_cap_for(tier) -> Optional[int]:
    """Daily cap in seconds for a tier, None if unlimited."""
    return DAILY_CAP_SECONDS[PlanTier.parse(tier)]


def has_emergency_access(tier) -> bool:
    return EMERGENCY_UNLOCK_ACCESS[PlanTier.parse(tier)]
