"""Entitlement resolver.

Pure functions over the ordered subscription tiers: basic < premium < pro.
"""

from app.schemas import StreamSettings, SubscriptionStatus, SubscriptionTier
from app.services.integrations.billing_service import ViewerSubscription

TIER_ORDER: dict[SubscriptionTier, int] = {
    SubscriptionTier.BASIC: 0,
    SubscriptionTier.PREMIUM: 1,
    SubscriptionTier.PRO: 2,
}


def tier_rank(tier: SubscriptionTier | None) -> int:
    return TIER_ORDER[tier or SubscriptionTier.BASIC]


def can_access(viewer_tier: SubscriptionTier | None, required_tier: SubscriptionTier | None) -> bool:
    """Whether a viewer at viewer_tier may watch content gated at required_tier.

    A missing tier on either side counts as basic.
    """
    return tier_rank(viewer_tier) >= tier_rank(required_tier)


def effective_tier(subscription: ViewerSubscription | None) -> SubscriptionTier:
    """The tier a subscription actually entitles to. Lapsed subscriptions fall back to basic."""
    if subscription is None or subscription.tier is None:
        return SubscriptionTier.BASIC
    if subscription.status not in SubscriptionStatus.entitled_states():
        return SubscriptionTier.BASIC
    return subscription.tier


def resolve_default_tier(settings: StreamSettings | None) -> SubscriptionTier:
    """Default required tier for content published from a stream with these settings."""
    if settings is None:
        return SubscriptionTier.BASIC
    if tier_rank(settings.required_tier) > tier_rank(SubscriptionTier.BASIC):
        return settings.required_tier
    if settings.require_subscription:
        return SubscriptionTier.PREMIUM
    return SubscriptionTier.BASIC
