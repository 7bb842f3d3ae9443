"""Subscription tier enums."""

from enum import Enum


class SubscriptionTier(str, Enum):
    """Subscription level gating content access. Ordering lives in the entitlement resolver."""

    BASIC = "basic"
    PREMIUM = "premium"
    PRO = "pro"

    def __str__(self) -> str:
        return self.value


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    NONE = "none"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def entitled_states(cls) -> list["SubscriptionStatus"]:
        return [SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING]


__all__ = ["SubscriptionStatus", "SubscriptionTier"]
