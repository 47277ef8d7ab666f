"""Plan catalog — default tiers, seeding and lookups."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.entitlements.features import UNLIMITED_SENTINEL, PlanFeatures
from recipe_forge.entitlements.store import SqlUsageStore
from recipe_forge.models.plan import SubscriptionPlan
from recipe_forge.models.subscription import BILLING_CYCLES, MONTHLY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanDefinition:
    """Seed definition for a subscription tier."""

    name: str
    display_name: str
    price_cents: int
    yearly_price_cents: int
    features: dict[str, Any]
    sort_order: int
    billing_cycle: str = MONTHLY
    currency: str = "VND"


DEFAULT_PLANS: dict[str, PlanDefinition] = {
    "free": PlanDefinition(
        name="free",
        display_name="Free",
        price_cents=0,
        yearly_price_cents=0,
        features={
            "recipe_generation": 5,
            "video_generation": 1,
            "community_post": 3,
            "community_comment": 10,
            "ai_suggestions": False,
            "premium_templates": False,
            "export_to_pdf": False,
            "priority_support": False,
        },
        sort_order=0,
    ),
    "pro": PlanDefinition(
        name="pro",
        display_name="Pro",
        price_cents=99000,
        yearly_price_cents=990000,
        features={
            "recipe_generation": 50,
            "video_generation": 10,
            "community_post": 100,
            "community_comment": 500,
            "ai_suggestions": True,
            "premium_templates": True,
            "export_to_pdf": True,
            "priority_support": False,
        },
        sort_order=1,
    ),
    "premium": PlanDefinition(
        name="premium",
        display_name="Premium",
        price_cents=199000,
        yearly_price_cents=1990000,
        features={
            "recipe_generation": UNLIMITED_SENTINEL,
            "video_generation": 50,
            "community_post": UNLIMITED_SENTINEL,
            "community_comment": UNLIMITED_SENTINEL,
            "ai_suggestions": True,
            "premium_templates": True,
            "export_to_pdf": True,
            "priority_support": True,
        },
        sort_order=2,
    ),
}

# Next tier to suggest when a quota runs out
UPGRADE_PATH: dict[str, str] = {"free": "pro", "pro": "premium"}


def suggested_plan(plan_name: str) -> str | None:
    """Return the plan to suggest after ``plan_name``; None for the top tier."""
    return UPGRADE_PATH.get(plan_name)


class PlanNotFound(LookupError):
    """No plan with the requested id or name, or it is inactive."""


async def ensure_default_plans(db: AsyncSession) -> list[SubscriptionPlan]:
    """Insert any missing default plans. Existing rows are left untouched."""
    result = await db.execute(select(SubscriptionPlan.name))
    existing = set(result.scalars().all())

    created = []
    for definition in DEFAULT_PLANS.values():
        if definition.name in existing:
            continue
        plan = SubscriptionPlan(
            name=definition.name,
            display_name=definition.display_name,
            price_cents=definition.price_cents,
            yearly_price_cents=definition.yearly_price_cents,
            currency=definition.currency,
            billing_cycle=definition.billing_cycle,
            features=PlanFeatures.from_mapping(definition.features).to_mapping(),
            is_active=True,
            sort_order=definition.sort_order,
        )
        db.add(plan)
        created.append(plan)

    if created:
        await db.flush()
        logger.info("Seeded subscription plans: %s", ", ".join(p.name for p in created))
    return created


async def list_active_plans(db: AsyncSession) -> list[SubscriptionPlan]:
    result = await db.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.sort_order, SubscriptionPlan.name)
    )
    return list(result.scalars().all())


async def get_plan_by_id(db: AsyncSession, plan_id: uuid.UUID, *, active_only: bool = False) -> SubscriptionPlan:
    """Fetch a plan by id or raise ``PlanNotFound``."""
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None or (active_only and not plan.is_active):
        raise PlanNotFound(f"Subscription plan {plan_id} not found or inactive")
    return plan


async def get_plan_by_name(db: AsyncSession, name: str) -> SubscriptionPlan:
    """Fetch a plan by name, seeding the default catalog on first use."""
    result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.name == name))
    plan = result.scalar_one_or_none()
    if plan is None and name in DEFAULT_PLANS:
        await ensure_default_plans(db)
        result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.name == name))
        plan = result.scalar_one_or_none()
    if plan is None:
        raise PlanNotFound(f"Subscription plan {name!r} not found")
    return plan


async def update_plan(
    db: AsyncSession,
    plan: SubscriptionPlan,
    *,
    display_name: str | None = None,
    price_cents: int | None = None,
    yearly_price_cents: int | None = None,
    features: dict[str, Any] | None = None,
    is_active: bool | None = None,
    sort_order: int | None = None,
) -> SubscriptionPlan:
    """Administrative update. ``features`` is validated before it is stored.

    Counters of subscriptions on the plan are reconciled with new limits
    straight away: lowered caps clamp the remaining count, and a feature
    switching between capped and unlimited is reset to the new limit.
    """
    if features is not None:
        parsed = PlanFeatures.from_mapping(features)
        plan.features = parsed.to_mapping()
        reconciled = await SqlUsageStore(db).apply_plan_limits(plan.id, parsed)
        if reconciled:
            logger.info("Reconciled %d usage counters with new limits of plan %s", reconciled, plan.name)
    if display_name is not None:
        plan.display_name = display_name
    if price_cents is not None:
        plan.price_cents = price_cents
    if yearly_price_cents is not None:
        plan.yearly_price_cents = yearly_price_cents
    if is_active is not None:
        plan.is_active = is_active
    if sort_order is not None:
        plan.sort_order = sort_order
    await db.flush()
    logger.info("Updated plan %s (active=%s)", plan.name, plan.is_active)
    return plan


def validate_billing_cycle(billing_cycle: str) -> str:
    if billing_cycle not in BILLING_CYCLES:
        raise ValueError(f"Unknown billing cycle: {billing_cycle!r}")
    return billing_cycle
