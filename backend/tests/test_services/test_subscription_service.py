"""Tests for subscription service — plan membership, resets and stats (pure DB, no HTTP)."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.auth.passwords import hash_password
from recipe_forge.database import utcnow
from recipe_forge.entitlements.errors import SubscriptionInactive, UnknownFeature
from recipe_forge.entitlements.evaluator import EntitlementEvaluator
from recipe_forge.entitlements.features import FeatureKey
from recipe_forge.entitlements.plans import (
    PlanNotFound,
    get_plan_by_id,
    get_plan_by_name,
    list_active_plans,
    update_plan,
)
from recipe_forge.entitlements.store import SqlUsageStore
from recipe_forge.models.subscription import ACTIVE, CANCELED, PAST_DUE, YEARLY
from recipe_forge.models.user import User
from recipe_forge.services.subscription_service import (
    SubscriptionConflict,
    SubscriptionNotFound,
    cancel_subscription,
    get_or_create_subscription,
    get_usage_summary,
    reset_all_quotas,
    rollover_due_subscriptions,
    subscribe,
    subscription_stats,
    update_subscription,
)


async def _create_user(db_session: AsyncSession) -> User:
    """Create a minimal test user without a subscription."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=f"svc-test-{unique}@test.com",
        hashed_password=hash_password("testpass"),
        name="Service Test User",
        is_active=True,
        role="MEMBER",
    )
    db_session.add(user)
    await db_session.flush()
    return user


async def _ledger(db_session: AsyncSession, subscription) -> dict[str, int]:
    return (await SqlUsageStore(db_session).load_ledger(subscription)).to_dict()


class TestPlanCatalog:
    async def test_default_plans_seeded_on_first_lookup(self, db_session: AsyncSession):
        plan = await get_plan_by_name(db_session, "pro")
        assert plan.display_name == "Pro"
        names = [p.name for p in await list_active_plans(db_session)]
        assert names == ["free", "pro", "premium"]

    async def test_unknown_plan_name(self, db_session: AsyncSession):
        with pytest.raises(PlanNotFound):
            await get_plan_by_name(db_session, "enterprise")

    async def test_inactive_plan_hidden(self, db_session: AsyncSession):
        plan = await get_plan_by_name(db_session, "premium")
        await update_plan(db_session, plan, is_active=False)
        assert "premium" not in [p.name for p in await list_active_plans(db_session)]
        with pytest.raises(PlanNotFound):
            await get_plan_by_id(db_session, plan.id, active_only=True)

    async def test_update_plan_rejects_unknown_feature(self, db_session: AsyncSession):
        plan = await get_plan_by_name(db_session, "free")
        with pytest.raises(UnknownFeature):
            await update_plan(db_session, plan, features={"max_properties": 1})

    async def test_update_plan_normalises_features(self, db_session: AsyncSession):
        plan = await get_plan_by_name(db_session, "free")
        await update_plan(db_session, plan, features={"recipe_generation": 7})
        assert plan.features["recipe_generation"] == 7
        assert plan.features["video_generation"] == 0
        assert plan.features["ai_suggestions"] is False


class TestGetOrCreateSubscription:
    async def test_create_free_subscription(self, db_session: AsyncSession):
        """New user gets a free subscription with a full ledger."""
        user = await _create_user(db_session)
        subscription = await get_or_create_subscription(db_session, user)

        assert subscription.user_id == user.id
        assert subscription.plan.name == "free"
        assert subscription.status == ACTIVE
        assert subscription.next_billing_date > subscription.billing_cycle_start
        assert (await _ledger(db_session, subscription))["recipe_generation"] == 5

    async def test_get_existing_subscription(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        first = await get_or_create_subscription(db_session, user)
        second = await get_or_create_subscription(db_session, user)
        assert first.id == second.id

    async def test_concurrent_insert_reuses_existing_row(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        existing = await get_or_create_subscription(db_session, user)

        # The first lookup misses, as if another request had not committed yet
        lookup = AsyncMock(side_effect=[None, existing])
        with patch("recipe_forge.services.subscription_service.get_subscription", new=lookup):
            subscription = await get_or_create_subscription(db_session, user)

        assert subscription.id == existing.id
        assert lookup.await_count == 2
        assert (await _ledger(db_session, subscription))["recipe_generation"] == 5


class TestSubscribe:
    async def test_upgrade_refills_ledger(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        pro = await get_plan_by_name(db_session, "pro")
        subscription = await subscribe(db_session, user, pro.id)

        assert subscription.plan.name == "pro"
        ledger = await _ledger(db_session, subscription)
        assert ledger["recipe_generation"] == 50
        assert ledger["community_comment"] == 500

    async def test_same_plan_conflicts(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        pro = await get_plan_by_name(db_session, "pro")
        await subscribe(db_session, user, pro.id)
        with pytest.raises(SubscriptionConflict):
            await subscribe(db_session, user, pro.id)

    async def test_unknown_plan(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        with pytest.raises(PlanNotFound):
            await subscribe(db_session, user, uuid.uuid4())

    async def test_yearly_cycle(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        premium = await get_plan_by_name(db_session, "premium")
        subscription = await subscribe(db_session, user, premium.id, billing_cycle=YEARLY)
        assert subscription.billing_cycle == YEARLY
        assert subscription.next_billing_date.year == subscription.start_date.year + 1

    async def test_resubscribe_after_cancel(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        free = await get_plan_by_name(db_session, "free")
        await get_or_create_subscription(db_session, user)
        await cancel_subscription(db_session, user)

        subscription = await subscribe(db_session, user, free.id)
        assert subscription.status == ACTIVE
        assert subscription.canceled_at is None


class TestUpdateAndCancel:
    async def test_cancel_is_soft(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        await get_or_create_subscription(db_session, user)
        subscription = await cancel_subscription(db_session, user)

        assert subscription.status == CANCELED
        assert subscription.canceled_at is not None
        assert subscription.auto_renew is False
        assert (await _ledger(db_session, subscription))["recipe_generation"] == 5

    async def test_canceled_subscription_cannot_consume(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        await get_or_create_subscription(db_session, user)
        subscription = await cancel_subscription(db_session, user)

        evaluator = EntitlementEvaluator(SqlUsageStore(db_session))
        with pytest.raises(SubscriptionInactive):
            await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)

    async def test_cancel_without_subscription(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        with pytest.raises(SubscriptionNotFound):
            await cancel_subscription(db_session, user)

    async def test_auto_renew_only(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        original = await get_or_create_subscription(db_session, user)
        cycle_start = original.billing_cycle_start

        subscription = await update_subscription(db_session, user, auto_renew=False)
        assert subscription.auto_renew is False
        assert subscription.billing_cycle_start == cycle_start

    async def test_invalid_status(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        await get_or_create_subscription(db_session, user)
        with pytest.raises(ValueError):
            await update_subscription(db_session, user, status="PAUSED")

    async def test_plan_change_restarts_cycle(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        subscription = await get_or_create_subscription(db_session, user)
        evaluator = EntitlementEvaluator(SqlUsageStore(db_session))
        await evaluator.consume(subscription, FeatureKey.VIDEO_GENERATION)

        pro = await get_plan_by_name(db_session, "pro")
        subscription = await update_subscription(db_session, user, plan_id=pro.id)
        assert (await _ledger(db_session, subscription))["video_generation"] == 10


class TestMaintenance:
    async def test_usage_summary(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        summary = await get_usage_summary(db_session, user)
        assert summary.plan.name == "free"
        assert summary.ledger[FeatureKey.COMMUNITY_POST] == 3

    async def test_reset_all_quotas(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        subscription = await get_or_create_subscription(db_session, user)
        evaluator = EntitlementEvaluator(SqlUsageStore(db_session))
        await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)

        assert await reset_all_quotas(db_session) == 1
        assert (await _ledger(db_session, subscription))["recipe_generation"] == 5

    async def test_reset_skips_inactive(self, db_session: AsyncSession):
        user = await _create_user(db_session)
        await get_or_create_subscription(db_session, user)
        await update_subscription(db_session, user, status=PAST_DUE)
        assert await reset_all_quotas(db_session) == 0

    async def test_rollover_due_subscriptions(self, db_session: AsyncSession):
        first = await get_or_create_subscription(db_session, await _create_user(db_session))
        await get_or_create_subscription(db_session, await _create_user(db_session))

        assert await rollover_due_subscriptions(db_session) == 0
        later = first.next_billing_date + timedelta(days=1)
        assert await rollover_due_subscriptions(db_session, now=later) == 2
        assert await rollover_due_subscriptions(db_session, now=later) == 0

    async def test_stats(self, db_session: AsyncSession):
        await get_or_create_subscription(db_session, await _create_user(db_session))
        user = await _create_user(db_session)
        await get_or_create_subscription(db_session, user)
        await cancel_subscription(db_session, user)

        stats = await subscription_stats(db_session)
        assert stats["total_subscribers"] == 2
        assert stats["active_subscribers"] == 1
        assert stats["subscribers_by_plan"] == {"free": 2}
        assert stats["retention_rate"] == pytest.approx(50.0)

    async def test_stats_empty(self, db_session: AsyncSession):
        stats = await subscription_stats(db_session)
        assert stats["total_subscribers"] == 0
        assert stats["retention_rate"] == 0.0


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
