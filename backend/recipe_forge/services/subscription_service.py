"""Subscription service — plan membership, ledger resets and statistics."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.config import settings
from recipe_forge.database import utcnow
from recipe_forge.entitlements.cycles import next_billing_date
from recipe_forge.entitlements.evaluator import EntitlementEvaluator
from recipe_forge.entitlements.features import PlanFeatures
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import get_plan_by_id, get_plan_by_name, validate_billing_cycle
from recipe_forge.entitlements.store import SqlUsageStore
from recipe_forge.models.plan import SubscriptionPlan
from recipe_forge.models.subscription import (
    ACTIVE,
    CANCELED,
    MONTHLY,
    SUBSCRIPTION_STATUSES,
    Subscription,
)
from recipe_forge.models.user import User

logger = logging.getLogger(__name__)


class SubscriptionConflict(Exception):
    """The requested change collides with the user's current subscription."""


class SubscriptionNotFound(LookupError):
    pass


@dataclass(frozen=True)
class UsageSummary:
    plan: SubscriptionPlan
    status: str
    ledger: UsageLedger
    features: PlanFeatures
    next_billing_date: datetime


async def get_subscription(db: AsyncSession, user: User) -> Subscription | None:
    result = await db.execute(select(Subscription).where(Subscription.user_id == user.id))
    return result.scalar_one_or_none()


async def _start_cycle(
    db: AsyncSession,
    subscription: Subscription,
    plan: SubscriptionPlan,
    billing_cycle: str,
    now: datetime,
) -> Subscription:
    """Point ``subscription`` at ``plan``, restart its cycle and refill its ledger."""
    subscription.plan = plan
    subscription.plan_id = plan.id
    subscription.status = ACTIVE
    subscription.billing_cycle = billing_cycle
    subscription.start_date = now
    subscription.billing_cycle_start = now
    subscription.next_billing_date = next_billing_date(now, billing_cycle)
    subscription.canceled_at = None
    await db.flush()

    ledger = UsageLedger.fresh(plan.parsed_features, period_start=now)
    await SqlUsageStore(db).write_ledger(subscription, ledger)
    return subscription


async def get_or_create_subscription(db: AsyncSession, user: User) -> Subscription:
    """Get existing subscription or create a default-plan one for the user."""
    subscription = await get_subscription(db, user)
    if subscription is not None:
        return subscription

    plan = await get_plan_by_name(db, settings.default_plan_name)
    logger.info("Creating %s subscription for user %s", plan.name, user.id)
    now = utcnow()
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=ACTIVE,
        billing_cycle=MONTHLY,
        start_date=now,
        billing_cycle_start=now,
        next_billing_date=next_billing_date(now, MONTHLY),
        auto_renew=True,
    )
    try:
        async with db.begin_nested():
            db.add(subscription)
            await db.flush()
    except IntegrityError:
        # Another request inserted the row between our select and insert
        existing = await get_subscription(db, user)
        if existing is None:
            raise
        logger.info("Subscription for user %s was created concurrently, reusing it", user.id)
        return existing
    return await _start_cycle(db, subscription, plan, MONTHLY, now)


async def subscribe(
    db: AsyncSession,
    user: User,
    plan_id: uuid.UUID,
    billing_cycle: str = MONTHLY,
    auto_renew: bool = True,
) -> Subscription:
    """Create or upgrade the user's subscription to ``plan_id``.

    Raises:
        PlanNotFound: the plan does not exist or is inactive.
        SubscriptionConflict: the user is already ACTIVE on that plan.
    """
    validate_billing_cycle(billing_cycle)
    plan = await get_plan_by_id(db, plan_id, active_only=True)
    subscription = await get_or_create_subscription(db, user)

    if subscription.status == ACTIVE and subscription.plan_id == plan.id and subscription.billing_cycle == billing_cycle:
        raise SubscriptionConflict(f"User already has an active {plan.name} subscription")

    subscription.auto_renew = auto_renew
    await _start_cycle(db, subscription, plan, billing_cycle, utcnow())
    logger.info("User %s subscribed to %s (%s)", user.id, plan.name, billing_cycle)
    return subscription


async def update_subscription(
    db: AsyncSession,
    user: User,
    plan_id: uuid.UUID | None = None,
    billing_cycle: str | None = None,
    auto_renew: bool | None = None,
    status: str | None = None,
) -> Subscription:
    """Partially update the user's subscription.

    A plan or billing-cycle change restarts the cycle and refills the ledger.
    """
    subscription = await get_subscription(db, user)
    if subscription is None:
        raise SubscriptionNotFound("No subscription found for user")

    if status is not None and status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Unknown subscription status: {status!r}")
    if billing_cycle is not None:
        validate_billing_cycle(billing_cycle)

    plan_changed = plan_id is not None and plan_id != subscription.plan_id
    cycle_changed = billing_cycle is not None and billing_cycle != subscription.billing_cycle
    if plan_changed or cycle_changed:
        plan = await get_plan_by_id(db, plan_id, active_only=True) if plan_changed else subscription.plan
        await _start_cycle(db, subscription, plan, billing_cycle or subscription.billing_cycle, utcnow())

    if auto_renew is not None:
        subscription.auto_renew = auto_renew
    if status is not None and status != subscription.status:
        subscription.status = status
        if status == CANCELED:
            subscription.canceled_at = utcnow()
            subscription.auto_renew = False
    await db.flush()
    return subscription


async def cancel_subscription(db: AsyncSession, user: User) -> Subscription:
    """Soft-terminate the user's subscription; the row and ledger are kept."""
    subscription = await update_subscription(db, user, status=CANCELED, auto_renew=False)
    logger.info("Canceled subscription %s (user %s)", subscription.id, user.id)
    return subscription


async def get_usage_summary(db: AsyncSession, user: User) -> UsageSummary:
    """Current plan, ledger and limits, after any due rollover."""
    subscription = await get_or_create_subscription(db, user)
    store = SqlUsageStore(db)
    await EntitlementEvaluator(store).rollover_if_due(subscription)
    return UsageSummary(
        plan=subscription.plan,
        status=subscription.status,
        ledger=await store.load_ledger(subscription),
        features=subscription.plan.parsed_features,
        next_billing_date=subscription.next_billing_date,
    )


async def reset_all_quotas(db: AsyncSession) -> int:
    """Refill the ledger of every ACTIVE subscription to its plan limits."""
    result = await db.execute(select(Subscription).where(Subscription.status == ACTIVE))
    subscriptions = list(result.scalars().all())
    store = SqlUsageStore(db)
    for subscription in subscriptions:
        ledger = UsageLedger.fresh(subscription.plan.parsed_features, period_start=subscription.billing_cycle_start)
        await store.write_ledger(subscription, ledger)
    logger.info("Reset usage quotas for %d active subscriptions", len(subscriptions))
    return len(subscriptions)


async def rollover_due_subscriptions(db: AsyncSession, now: datetime | None = None) -> int:
    """Scheduled counterpart of the lazy per-request rollover."""
    now = now or utcnow()
    result = await db.execute(
        select(Subscription).where(
            Subscription.status == ACTIVE,
            Subscription.next_billing_date <= now,
        )
    )
    evaluator = EntitlementEvaluator(SqlUsageStore(db))
    rolled = 0
    for subscription in result.scalars().all():
        if await evaluator.rollover_if_due(subscription, now):
            rolled += 1
    return rolled


async def subscription_stats(db: AsyncSession) -> dict:
    """Totals, active count, subscribers per plan and retention rate."""
    total = (await db.execute(select(func.count()).select_from(Subscription))).scalar_one()
    active = (
        await db.execute(select(func.count()).select_from(Subscription).where(Subscription.status == ACTIVE))
    ).scalar_one()

    rows = await db.execute(
        select(SubscriptionPlan.name, func.count(Subscription.id))
        .join(Subscription, Subscription.plan_id == SubscriptionPlan.id)
        .group_by(SubscriptionPlan.name)
    )
    by_plan = {name: count for name, count in rows.all()}

    return {
        "total_subscribers": total,
        "active_subscribers": active,
        "subscribers_by_plan": by_plan,
        "retention_rate": (active / total * 100) if total else 0.0,
    }
