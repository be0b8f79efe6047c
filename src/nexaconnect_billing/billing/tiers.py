"""Provider service tiers and plan-label mapping.

Plan labels arrive as free-text metadata on Stripe checkout sessions and
subscriptions. Anything that cannot be recognised maps to the lowest tier.
"""

from enum import Enum
from typing import Optional


class Tier(str, Enum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    PREMIUM = "premium"


# ── Display pricing (AUD per month), informational ──
PLANS = {
    Tier.STARTER: {"name": "Starter", "monthly": 0, "annual": 0},
    Tier.PROFESSIONAL: {"name": "Professional", "monthly": 49, "annual": 39},
    Tier.PREMIUM: {"name": "Premium", "monthly": 149, "annual": 119},
}

BILLING_CYCLES = ("monthly", "annual")
_CYCLE_ALIASES = {"month": "monthly", "year": "annual", "yearly": "annual"}


def tier_from_plan_label(label: Optional[str]) -> Tier:
    """Map a plan label to a tier; never raises."""
    if not label:
        return Tier.STARTER
    lower = str(label).lower()
    if "premium" in lower:
        return Tier.PREMIUM
    if "professional" in lower or "pro" in lower:
        return Tier.PROFESSIONAL
    return Tier.STARTER


def normalize_cycle(cycle: Optional[str]) -> str:
    lower = (cycle or "monthly").strip().lower()
    return _CYCLE_ALIASES.get(lower, lower)


def resolve_price_id(
    plan_name: Optional[str],
    billing_cycle: Optional[str],
    price_map: dict[str, str],
) -> Optional[str]:
    """Look up the Stripe Price ID for a plan label and billing cycle.

    Keys in ``price_map`` look like ``professional_monthly``. Returns None
    when the plan has no configured price (including the free tier).
    """
    tier = tier_from_plan_label(plan_name)
    cycle = normalize_cycle(billing_cycle)
    if cycle not in BILLING_CYCLES:
        return None
    return price_map.get(f"{tier.value}_{cycle}")
