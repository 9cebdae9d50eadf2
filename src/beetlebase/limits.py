"""Plan limits for BeetleBase.

This module centralizes all plan quota logic:
- Registered individuals (5 for free accounts, unlimited for pro)
- Photos per individual (10 for free accounts, 50 for pro)

The `is_at_*` predicates are pure and never fail. The `ensure_*` gates
raise QuotaExceeded with a clear message so the caller can show an
upgrade prompt instead of a hard failure.

Configuration:
- Limits are defined as constants at the top of this file
- To change limits, update the constants

Usage:
    from beetlebase.limits import ensure_can_add_individual

    ensure_can_add_individual(store.plan, len(store.list_individuals()))
"""

from typing import Dict, List, Optional

from loguru import logger

from .errors import QuotaExceeded
from .schemas import PLAN_FREE, PLAN_PRO


# =============================================================================
# Plan Limit Constants
# =============================================================================

# Free tier limits
FREE_INDIVIDUAL_LIMIT = 5
FREE_PHOTOS_PER_INDIVIDUAL = 10

# Pro tier limits (None = unlimited)
PRO_INDIVIDUAL_LIMIT = None
PRO_PHOTOS_PER_INDIVIDUAL = 50

INDIVIDUAL_LIMITS = {
    PLAN_FREE: FREE_INDIVIDUAL_LIMIT,
    PLAN_PRO: PRO_INDIVIDUAL_LIMIT,
}

PHOTO_LIMITS = {
    PLAN_FREE: FREE_PHOTOS_PER_INDIVIDUAL,
    PLAN_PRO: PRO_PHOTOS_PER_INDIVIDUAL,
}


# =============================================================================
# Resource names
# =============================================================================

RESOURCE_INDIVIDUALS = "individuals"
RESOURCE_PHOTOS = "photos"


# =============================================================================
# Limit Lookups
# =============================================================================

def get_individual_limit(plan: str) -> Optional[int]:
    """
    Get the maximum number of individuals for a plan.

    Unknown plans fall back to the free tier.

    Returns:
        Maximum count, or None for unlimited
    """
    return INDIVIDUAL_LIMITS.get(plan, FREE_INDIVIDUAL_LIMIT)


def get_photo_limit(plan: str) -> Optional[int]:
    """Get the maximum number of photos per individual for a plan."""
    return PHOTO_LIMITS.get(plan, FREE_PHOTOS_PER_INDIVIDUAL)


def _is_at_limit(limit: Optional[int], current_count: int) -> bool:
    if limit is None:
        return False
    return current_count >= limit


def is_at_individual_limit(plan: str, current_count: int) -> bool:
    """
    Check whether an account may not register another individual.

    Free accounts: True once current_count reaches FREE_INDIVIDUAL_LIMIT
    Pro accounts: always False

    Args:
        plan: Plan tier ('free' or 'pro')
        current_count: Number of individuals already registered

    Returns:
        True if at or over the limit
    """
    return _is_at_limit(get_individual_limit(plan), current_count)


def is_at_photo_limit(plan: str, current_photo_count: int) -> bool:
    """
    Check whether an individual may not receive another photo.

    Args:
        plan: Plan tier ('free' or 'pro')
        current_photo_count: Number of photos the individual already has

    Returns:
        True if at or over the limit
    """
    return _is_at_limit(get_photo_limit(plan), current_photo_count)


# =============================================================================
# Limit Gates
# =============================================================================

def ensure_can_add_individual(plan: str, current_count: int) -> None:
    """
    Check if an account can register a new individual.

    Args:
        plan: Plan tier evaluated at the time of the action
        current_count: Number of individuals already registered

    Raises:
        QuotaExceeded: if the plan limit is reached
    """
    limit = get_individual_limit(plan)

    if is_at_individual_limit(plan, current_count):
        logger.warning(f"Individual limit reached on {plan} plan: {current_count}/{limit}")
        raise QuotaExceeded(
            f"Free plan limit reached: {limit} individuals. Upgrade to Pro to register more.",
            resource=RESOURCE_INDIVIDUALS,
            plan=plan,
            limit=limit,
            used=current_count,
        )

    logger.debug(f"Can add individual on {plan} plan: {current_count}/{limit}")


def ensure_can_add_photo(plan: str, current_photo_count: int) -> None:
    """
    Check if an individual can receive another photo.

    Args:
        plan: Plan tier evaluated at the time of the action
        current_photo_count: Photos the individual already has

    Raises:
        QuotaExceeded: if the plan limit is reached
    """
    limit = get_photo_limit(plan)

    if is_at_photo_limit(plan, current_photo_count):
        logger.warning(f"Photo limit reached on {plan} plan: {current_photo_count}/{limit}")
        raise QuotaExceeded(
            f"Photo limit reached: {limit} photos per individual on the {plan} plan.",
            resource=RESOURCE_PHOTOS,
            plan=plan,
            limit=limit,
            used=current_photo_count,
        )


# =============================================================================
# Usage Stats
# =============================================================================

def get_usage_stats(plan: str, individual_count: int, photo_counts: List[int]) -> Dict:
    """
    Get current usage statistics for an account.

    Useful for showing remaining quota in UI.

    Args:
        plan: Plan tier
        individual_count: Number of registered individuals
        photo_counts: Photo count of each individual

    Returns:
        Dictionary with usage stats and limits
    """
    individual_limit = get_individual_limit(plan)
    photo_limit = get_photo_limit(plan)

    return {
        "plan": plan,
        "is_pro": plan == PLAN_PRO,
        "individuals": {
            "used": individual_count,
            "limit": individual_limit,
            "remaining": max(0, individual_limit - individual_count) if individual_limit is not None else None,
            "at_limit": is_at_individual_limit(plan, individual_count),
        },
        "photos": {
            "limit_per_individual": photo_limit,
            "max_used": max(photo_counts) if photo_counts else 0,
            "individuals_at_limit": sum(1 for count in photo_counts if is_at_photo_limit(plan, count)),
        },
    }
