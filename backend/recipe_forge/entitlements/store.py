"""Usage storage collaborator for the entitlement evaluator.

The evaluator never touches the database directly; it is handed a
``UsageStore``. ``SqlUsageStore`` is the production implementation: every
mutation is a single conditional UPDATE whose rowcount decides the outcome,
so concurrent requests for the same subscription cannot double-spend a quota
or roll a billing cycle over twice.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.entitlements.features import UNLIMITED_SENTINEL, FeatureKey, PlanFeatures
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.models.subscription import Subscription, UsageCounter

logger = logging.getLogger(__name__)

_counters = UsageCounter.__table__
_subscriptions = Subscription.__table__


@dataclass(frozen=True)
class CounterState:
    """Persisted state of one usage counter."""

    remaining: int
    period_start: datetime


class UsageStore(Protocol):
    """Persistence operations the evaluator relies on."""

    async def load_ledger(self, subscription: Subscription) -> UsageLedger: ...

    async def read_counter(self, subscription_id: uuid.UUID, feature: FeatureKey) -> CounterState | None: ...

    async def decrement(
        self, subscription_id: uuid.UUID, feature: FeatureKey, period_start: datetime
    ) -> bool:
        """Atomically take one use if the counter is positive and in ``period_start``."""
        ...

    async def write_ledger(self, subscription: Subscription, ledger: UsageLedger) -> None: ...

    async def start_cycle(
        self,
        subscription: Subscription,
        observed_next_billing: datetime,
        cycle_start: datetime,
        next_billing: datetime,
        ledger: UsageLedger,
    ) -> bool:
        """Advance the cycle only if nobody else did; return whether this call did."""
        ...


class SqlUsageStore:
    """``UsageStore`` backed by the request's SQLAlchemy session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def load_ledger(self, subscription: Subscription) -> UsageLedger:
        # Column select bypasses the identity map, so values are never stale
        result = await self.db.execute(
            select(_counters.c.feature, _counters.c.remaining).where(
                _counters.c.subscription_id == subscription.id
            )
        )
        return UsageLedger.from_counters(result.all(), period_start=subscription.billing_cycle_start)

    async def read_counter(self, subscription_id: uuid.UUID, feature: FeatureKey) -> CounterState | None:
        result = await self.db.execute(
            select(_counters.c.remaining, _counters.c.period_start).where(
                _counters.c.subscription_id == subscription_id,
                _counters.c.feature == feature.value,
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return CounterState(remaining=row.remaining, period_start=row.period_start)

    async def decrement(
        self, subscription_id: uuid.UUID, feature: FeatureKey, period_start: datetime
    ) -> bool:
        result = await self.db.execute(
            update(_counters)
            .where(
                _counters.c.subscription_id == subscription_id,
                _counters.c.feature == feature.value,
                _counters.c.period_start == period_start,
                _counters.c.remaining > 0,
            )
            .values(remaining=_counters.c.remaining - 1)
        )
        return result.rowcount == 1

    async def write_ledger(self, subscription: Subscription, ledger: UsageLedger) -> None:
        """Overwrite every counter of ``subscription`` with ``ledger``."""
        period_start = ledger.period_start or subscription.billing_cycle_start
        for feature, remaining in ledger.remaining.items():
            result = await self.db.execute(
                update(_counters)
                .where(
                    _counters.c.subscription_id == subscription.id,
                    _counters.c.feature == feature.value,
                )
                .values(remaining=remaining, period_start=period_start)
            )
            if result.rowcount == 0:
                await self.db.execute(
                    insert(_counters).values(
                        id=uuid.uuid4(),
                        subscription_id=subscription.id,
                        feature=feature.value,
                        remaining=remaining,
                        period_start=period_start,
                    )
                )

    async def start_cycle(
        self,
        subscription: Subscription,
        observed_next_billing: datetime,
        cycle_start: datetime,
        next_billing: datetime,
        ledger: UsageLedger,
    ) -> bool:
        result = await self.db.execute(
            update(_subscriptions)
            .where(
                _subscriptions.c.id == subscription.id,
                _subscriptions.c.next_billing_date == observed_next_billing,
            )
            .values(billing_cycle_start=cycle_start, next_billing_date=next_billing)
        )
        changed = result.rowcount == 1
        if changed:
            await self.write_ledger(subscription, ledger)
        else:
            logger.info("Billing cycle of subscription %s already advanced by another request", subscription.id)
        await self.db.refresh(subscription, ["billing_cycle_start", "next_billing_date"])
        return changed

    async def apply_plan_limits(self, plan_id: uuid.UUID, features: PlanFeatures) -> int:
        """Bring every counter of subscriptions on ``plan_id`` within ``features``.

        Unlimited features are set to the sentinel. Capped features are
        clamped to the new limit, and a stored sentinel becomes the limit.
        Returns the number of counter rows changed.
        """
        on_plan = select(_subscriptions.c.id).where(_subscriptions.c.plan_id == plan_id)
        changed = 0
        for feature, limit in features.quotas.items():
            stmt = update(_counters).where(
                _counters.c.subscription_id.in_(on_plan),
                _counters.c.feature == feature.value,
            )
            if limit.is_unlimited:
                stmt = stmt.where(_counters.c.remaining != UNLIMITED_SENTINEL)
            else:
                stmt = stmt.where(
                    or_(
                        _counters.c.remaining == UNLIMITED_SENTINEL,
                        _counters.c.remaining > limit.limit,
                    )
                )
            result = await self.db.execute(stmt.values(remaining=limit.to_json()))
            changed += result.rowcount
        return changed
