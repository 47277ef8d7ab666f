"""Entitlement error taxonomy.

Quota and authorization outcomes are expected, user-facing results and are
modelled as their own exception family so the web layer can tell them apart
from infrastructure failures (SQLAlchemy errors are never wrapped here).
"""


class EntitlementError(Exception):
    """Base class for entitlement and authorization outcomes."""


class UnknownFeature(EntitlementError):
    """A feature key or flag outside the closed feature set."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown feature: {key!r}")
        self.key = key


class UnknownRole(EntitlementError):
    """A role value outside GUEST / MEMBER / ADMIN."""

    def __init__(self, role: str) -> None:
        super().__init__(f"Unknown role: {role!r}")
        self.role = role


class QuotaExceeded(EntitlementError):
    """The subscription has no remaining uses of a capped feature."""

    def __init__(
        self,
        feature: str,
        plan: str,
        limit: int,
        remaining: int = 0,
        message: str | None = None,
    ) -> None:
        super().__init__(message or f"Usage quota exceeded for {feature}")
        self.feature = feature
        self.plan = plan
        self.limit = limit
        self.remaining = remaining


class SubscriptionInactive(QuotaExceeded):
    """The subscription is not ACTIVE, so nothing is consumable."""

    def __init__(self, feature: str, plan: str, status: str) -> None:
        super().__init__(
            feature,
            plan,
            limit=0,
            message=f"Subscription is {status.lower()}; reactivate a plan to use {feature}",
        )
        self.status = status


class PersistenceConflict(EntitlementError):
    """The ledger changed underneath a conditional update; the caller may retry."""

    def __init__(self, subscription_id, feature: str) -> None:
        super().__init__(
            f"Usage ledger for subscription {subscription_id} changed while consuming {feature}"
        )
        self.subscription_id = subscription_id
        self.feature = feature
