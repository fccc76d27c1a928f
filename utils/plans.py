"""
BeautyOn Plan Definitions

Plan tiers:
- free: listing only, no email credits
- starteris: small salons, map visibility and email automation
- pro: verified badge, priority in search, advanced booking
- bizness: everything unlimited

A limit of -1 means unlimited.
"""

from typing import Optional, Dict, Any

FREE_PLAN = "free"
UNLIMITED = -1

PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "name": "Bezmaksas",
        "maxServices": 3,
        "maxStaff": 1,
        "maxGalleryPhotos": 3,
        "maxSchedules": 1,
        "maxExceptionDaysPerMonth": 3,
        "maxActiveReservationsPerMonth": 20,
        "calendarDaysVisible": 14,
        "emailCredits": 0,
        "priority": 3,
        "featureFlags": {
            "canUseEmailAutomation": False,
            "canViewStatistics": True,
            "canUseAdvancedBooking": False,
            "showInMap": False,
            "verified": False,
            "priorityInSearch": False,
        },
    },
    "starteris": {
        "name": "Starteris",
        "maxServices": 10,
        "maxStaff": 3,
        "maxGalleryPhotos": 10,
        "maxSchedules": 2,
        "maxExceptionDaysPerMonth": 10,
        "maxActiveReservationsPerMonth": 100,
        "calendarDaysVisible": 30,
        "emailCredits": 200,
        "priority": 2,
        "featureFlags": {
            "canUseEmailAutomation": True,
            "canViewStatistics": True,
            "canUseAdvancedBooking": False,
            "showInMap": True,
            "verified": False,
            "priorityInSearch": False,
        },
    },
    "pro": {
        "name": "Pro",
        "maxServices": 25,
        "maxStaff": 10,
        "maxGalleryPhotos": 30,
        "maxSchedules": 5,
        "maxExceptionDaysPerMonth": 30,
        "maxActiveReservationsPerMonth": UNLIMITED,
        "calendarDaysVisible": 60,
        "emailCredits": 1000,
        "priority": 1,
        "featureFlags": {
            "canUseEmailAutomation": True,
            "canViewStatistics": True,
            "canUseAdvancedBooking": True,
            "showInMap": True,
            "verified": True,
            "priorityInSearch": True,
        },
    },
    "bizness": {
        "name": "Bizness",
        "maxServices": UNLIMITED,
        "maxStaff": UNLIMITED,
        "maxGalleryPhotos": UNLIMITED,
        "maxSchedules": UNLIMITED,
        "maxExceptionDaysPerMonth": UNLIMITED,
        "maxActiveReservationsPerMonth": UNLIMITED,
        "calendarDaysVisible": UNLIMITED,
        "emailCredits": 5000,
        "priority": 0,
        "featureFlags": {
            "canUseEmailAutomation": True,
            "canViewStatistics": True,
            "canUseAdvancedBooking": True,
            "showInMap": True,
            "verified": True,
            "priorityInSearch": True,
        },
    },
}

LIMIT_KEYS = (
    "maxServices",
    "maxStaff",
    "maxGalleryPhotos",
    "maxSchedules",
    "maxExceptionDaysPerMonth",
    "maxActiveReservationsPerMonth",
    "calendarDaysVisible",
    "emailCredits",
)


def normalize_plan(plan: Optional[str]) -> str:
    """Unknown, empty or None plan ids resolve to the free tier."""
    if not plan:
        return FREE_PLAN
    key = str(plan).strip().lower()
    return key if key in PLANS else FREE_PLAN


def plan_limits(plan: Optional[str]) -> Dict[str, Any]:
    """
    Get the feature limits for a plan.

    Args:
        plan: The plan identifier

    Returns:
        Dictionary of limits and feature flags, free tier limits if plan not found
    """
    definition = PLANS[normalize_plan(plan)]
    limits = {key: definition[key] for key in LIMIT_KEYS}
    limits["featureFlags"] = dict(definition["featureFlags"])
    return limits


def plan_credits(plan: Optional[str]) -> int:
    return PLANS[normalize_plan(plan)]["emailCredits"]


def plan_priority(plan: Optional[str]) -> int:
    return PLANS[normalize_plan(plan)]["priority"]


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def can_add(limit: int, current: int) -> bool:
    return is_unlimited(limit) or current < limit


def build_price_to_plan(starteris: Optional[str], pro: Optional[str], bizness: Optional[str]) -> Dict[str, str]:
    """Build the Stripe price ID -> plan table. Missing price IDs are skipped."""
    table = {}
    for price_id, plan in ((starteris, "starteris"), (pro, "pro"), (bizness, "bizness")):
        if price_id:
            table[price_id] = plan
    return table


def plan_for_price(price_id: Optional[str], price_to_plan: Dict[str, str]) -> str:
    """Map a Stripe price ID to an internal plan. Unmapped prices resolve to free."""
    if not price_id:
        return FREE_PLAN
    return price_to_plan.get(price_id, FREE_PLAN)
