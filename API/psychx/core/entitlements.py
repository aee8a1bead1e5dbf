from dataclasses import dataclass

from psychx.core.logging import DOMAIN_ENTITLEMENT, get_domain_logger
from psychx.models.entities import SubscriptionTier, User, UserRole

logger = get_domain_logger(__name__, DOMAIN_ENTITLEMENT)

TIER_LIMITS: dict[SubscriptionTier, dict] = {
    SubscriptionTier.FREE: {"assessments": 3, "roadmaps": 0, "tracking": False, "consultations": False},
    SubscriptionTier.STANDARD: {"assessments": 6, "roadmaps": 6, "tracking": True, "consultations": True},
    SubscriptionTier.PREMIUM: {"assessments": 100, "roadmaps": 100, "tracking": True, "consultations": True},
}

_FEATURE_LABELS = {
    "tracking": "progress tracking",
    "consultations": "expert consultations",
}


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: str = ""


def tier_of(user: User) -> SubscriptionTier:
    try:
        return SubscriptionTier(user.tier or SubscriptionTier.FREE.value)
    except ValueError:
        return SubscriptionTier.FREE


def can_use_feature(user: User, feature: str) -> EntitlementDecision:
    """Boolean gate for tier features ("tracking", "consultations")."""
    if user.role != UserRole.USER.value:
        return EntitlementDecision(False, "Only learner accounts can use this feature.")
    tier = tier_of(user)
    if TIER_LIMITS[tier].get(feature):
        return EntitlementDecision(True)
    label = _FEATURE_LABELS.get(feature, feature)
    logger.info("Feature denied | user_id=%s | tier=%s | feature=%s", user.id, tier.value, feature)
    return EntitlementDecision(
        False, f"Upgrade to Standard or Premium to unlock {label}. Your {tier.value} plan does not include it."
    )


def check_usage_limit(user: User, kind: str, current_count: int) -> EntitlementDecision:
    """Quota gate for counted features ("assessments", "roadmaps")."""
    tier = tier_of(user)
    limit = int(TIER_LIMITS[tier][kind])
    if current_count < limit:
        return EntitlementDecision(True)
    logger.info(
        "Usage limit reached | user_id=%s | tier=%s | kind=%s | count=%s | limit=%s",
        user.id,
        tier.value,
        kind,
        current_count,
        limit,
    )
    return EntitlementDecision(
        False,
        f"You have reached the limit of {limit} {kind} for your {tier.value} plan. Please upgrade to continue.",
    )
