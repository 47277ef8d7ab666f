"""Entitlement evaluator — decides and records quota-gated feature use."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from recipe_forge.database import utcnow
from recipe_forge.entitlements.cycles import current_cycle
from recipe_forge.entitlements.errors import PersistenceConflict, QuotaExceeded, SubscriptionInactive
from recipe_forge.entitlements.features import (
    FEATURE_LABELS,
    FeatureFlag,
    FeatureKey,
    PlanFeatures,
    parse_feature_flag,
    parse_feature_key,
)
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import suggested_plan
from recipe_forge.entitlements.store import UsageStore
from recipe_forge.models.subscription import ACTIVE, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageCheck:
    """Outcome of a read-only entitlement check."""

    feature: FeatureKey
    can_use: bool
    remaining: int
    total: int
    plan: str
    message: str | None = None
    suggested_plan: str | None = None


class EntitlementEvaluator:
    """Evaluate and consume feature quotas for a subscription.

    All persistence goes through ``store``; ``clock`` supplies "now" for
    rollover when the caller does not.
    """

    def __init__(self, store: UsageStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    @staticmethod
    def plan_features(subscription: Subscription) -> PlanFeatures:
        return subscription.plan.parsed_features

    async def can_consume(self, subscription: Subscription, feature_key: "str | FeatureKey") -> bool:
        """True if one use of ``feature_key`` would currently be permitted."""
        feature = parse_feature_key(feature_key)
        if subscription.status != ACTIVE:
            return False
        limit = self.plan_features(subscription).limit_for(feature)
        if limit.is_unlimited:
            return True
        if limit.limit == 0:
            return False
        counter = await self.store.read_counter(subscription.id, feature)
        return counter is not None and counter.remaining > 0

    async def consume(self, subscription: Subscription, feature_key: "str | FeatureKey") -> UsageLedger:
        """Record one use of ``feature_key`` and return the resulting ledger.

        Raises:
            UnknownFeature: ``feature_key`` is not a quota feature.
            SubscriptionInactive: the subscription is not ACTIVE.
            QuotaExceeded: the counter is already at zero.
            PersistenceConflict: the billing cycle changed underneath the call.
        """
        feature = parse_feature_key(feature_key)
        plan_name = subscription.plan.name
        if subscription.status != ACTIVE:
            raise SubscriptionInactive(feature.value, plan_name, subscription.status)

        limit = self.plan_features(subscription).limit_for(feature)
        if limit.is_unlimited:
            return await self.store.load_ledger(subscription)

        taken = await self.store.decrement(subscription.id, feature, subscription.billing_cycle_start)
        if taken:
            return await self.store.load_ledger(subscription)

        counter = await self.store.read_counter(subscription.id, feature)
        if counter is None or counter.period_start != subscription.billing_cycle_start or counter.remaining < 0:
            logger.warning(
                "Ledger conflict consuming %s for subscription %s (counter=%s)",
                feature.value,
                subscription.id,
                counter,
            )
            raise PersistenceConflict(subscription.id, feature.value)

        logger.info("Quota exhausted: subscription %s, feature %s, plan %s", subscription.id, feature.value, plan_name)
        raise QuotaExceeded(
            feature.value,
            plan_name,
            limit=limit.limit,
            remaining=counter.remaining,
            message=upgrade_message(feature, plan_name),
        )

    async def rollover_if_due(self, subscription: Subscription, now: datetime | None = None) -> bool:
        """Start a new billing cycle if ``now`` has reached ``next_billing_date``.

        Every counter is reset to its plan limit and ``next_billing_date``
        moves to the first boundary after ``now``. Returns True only for the
        call that actually advanced the cycle.
        """
        now = now or self.clock()
        if subscription.status != ACTIVE or now < subscription.next_billing_date:
            return False

        cycle_start, next_billing = current_cycle(subscription.start_date, subscription.billing_cycle, now)
        ledger = UsageLedger.fresh(self.plan_features(subscription), period_start=cycle_start)
        changed = await self.store.start_cycle(
            subscription,
            observed_next_billing=subscription.next_billing_date,
            cycle_start=cycle_start,
            next_billing=next_billing,
            ledger=ledger,
        )
        if changed:
            logger.info(
                "Rolled over subscription %s: cycle %s -> next billing %s",
                subscription.id,
                cycle_start.isoformat(),
                next_billing.isoformat(),
            )
        return changed

    async def check(self, subscription: Subscription, feature_key: "str | FeatureKey") -> UsageCheck:
        """Read-only usage check with an upgrade hint when denied."""
        feature = parse_feature_key(feature_key)
        plan_name = subscription.plan.name
        total = self.plan_features(subscription).limit_for(feature).to_json()
        ledger = await self.store.load_ledger(subscription)
        can_use = await self.can_consume(subscription, feature)
        if can_use:
            return UsageCheck(feature, True, ledger[feature], total, plan_name)

        if subscription.status != ACTIVE:
            message = f"Your subscription is {subscription.status.lower()}. Reactivate a plan to use {FEATURE_LABELS[feature]}."
        else:
            message = upgrade_message(feature, plan_name)
        return UsageCheck(
            feature,
            False,
            ledger[feature],
            total,
            plan_name,
            message=message,
            suggested_plan=suggested_plan(plan_name),
        )

    def has_feature_access(self, subscription: Subscription, flag: "str | FeatureFlag") -> bool:
        """True if the subscription's plan enables boolean feature ``flag``."""
        parsed = parse_feature_flag(flag)
        if subscription.status != ACTIVE:
            return False
        return self.plan_features(subscription).flags[parsed]


def upgrade_message(feature: FeatureKey, plan_name: str) -> str:
    label = FEATURE_LABELS[feature]
    target = suggested_plan(plan_name)
    if target is None:
        return f"You have reached your monthly limit for {label}."
    return f"You have reached your monthly limit for {label}. Upgrade to {target.title()} for higher limits."
