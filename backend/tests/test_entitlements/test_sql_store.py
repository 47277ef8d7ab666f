"""Tests for the SQLAlchemy-backed usage store and its conditional updates."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.entitlements.cycles import next_billing_date
from recipe_forge.entitlements.errors import QuotaExceeded
from recipe_forge.entitlements.evaluator import EntitlementEvaluator
from recipe_forge.entitlements.features import FeatureKey
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import get_plan_by_name, update_plan
from recipe_forge.entitlements.store import SqlUsageStore
from recipe_forge.models.subscription import MONTHLY, UsageCounter
from recipe_forge.services.subscription_service import get_subscription


async def _remaining(db: AsyncSession, subscription, feature: FeatureKey) -> int:
    result = await db.execute(
        select(UsageCounter.remaining).where(
            UsageCounter.subscription_id == subscription.id,
            UsageCounter.feature == feature.value,
        )
    )
    return result.scalar_one()


@pytest.fixture
def store(db_session: AsyncSession) -> SqlUsageStore:
    return SqlUsageStore(db_session)


class TestSqlUsageStore:
    async def test_new_subscription_has_fresh_ledger(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        ledger = await store.load_ledger(subscription)
        assert ledger.to_dict() == {
            "recipe_generation": 5,
            "video_generation": 1,
            "community_post": 3,
            "community_comment": 10,
        }

    async def test_decrement(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        assert await store.decrement(subscription.id, FeatureKey.RECIPE_GENERATION, subscription.billing_cycle_start)
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 4

    async def test_decrement_with_wrong_period_does_nothing(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        stale = subscription.billing_cycle_start - timedelta(days=31)
        assert not await store.decrement(subscription.id, FeatureKey.RECIPE_GENERATION, stale)
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 5

    async def test_decrement_never_goes_negative(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        period = subscription.billing_cycle_start
        assert await store.decrement(subscription.id, FeatureKey.VIDEO_GENERATION, period)
        assert not await store.decrement(subscription.id, FeatureKey.VIDEO_GENERATION, period)
        assert await _remaining(db_session, subscription, FeatureKey.VIDEO_GENERATION) == 0

    async def test_read_counter(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        counter = await store.read_counter(subscription.id, FeatureKey.COMMUNITY_COMMENT)
        assert counter.remaining == 10
        assert counter.period_start == subscription.billing_cycle_start

    async def test_write_ledger_overwrites(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        current = await store.load_ledger(subscription)
        await store.write_ledger(
            subscription,
            UsageLedger({**current.remaining, FeatureKey.COMMUNITY_POST: 1}, subscription.billing_cycle_start),
        )
        assert await _remaining(db_session, subscription, FeatureKey.COMMUNITY_POST) == 1
        count = await db_session.execute(
            select(UsageCounter.id).where(UsageCounter.subscription_id == subscription.id)
        )
        assert len(count.all()) == len(FeatureKey)

    async def test_start_cycle_only_once(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        observed = subscription.next_billing_date
        new_start = observed
        new_next = next_billing_date(subscription.start_date, MONTHLY, 2)
        ledger = UsageLedger.fresh(subscription.plan.parsed_features, period_start=new_start)

        assert await store.start_cycle(subscription, observed, new_start, new_next, ledger) is True
        assert subscription.next_billing_date == new_next
        assert await store.start_cycle(subscription, observed, new_start, new_next, ledger) is False


class TestEvaluatorOnSql:
    async def test_two_consumes_of_last_use_from_same_snapshot(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        current = await store.load_ledger(subscription)
        await store.write_ledger(
            subscription,
            UsageLedger({**current.remaining, FeatureKey.RECIPE_GENERATION: 1}, subscription.billing_cycle_start),
        )
        first = EntitlementEvaluator(store)
        second = EntitlementEvaluator(SqlUsageStore(db_session))

        ledger = await first.consume(subscription, FeatureKey.RECIPE_GENERATION)
        assert ledger[FeatureKey.RECIPE_GENERATION] == 0
        with pytest.raises(QuotaExceeded):
            await second.consume(subscription, FeatureKey.RECIPE_GENERATION)
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 0

    async def test_rollover_resets_counters(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        evaluator = EntitlementEvaluator(store)
        for _ in range(5):
            await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)

        due = subscription.next_billing_date + timedelta(hours=1)
        assert await evaluator.rollover_if_due(subscription, now=due) is True
        assert subscription.billing_cycle_start == next_billing_date(subscription.start_date, MONTHLY)
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 5

        # Same snapshot again: already advanced, nothing reset
        await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)
        assert await evaluator.rollover_if_due(subscription, now=due) is False
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 4

    async def test_unlimited_counter_untouched(self, db_session, store, premium_member):
        user, _ = premium_member
        subscription = await get_subscription(db_session, user)
        evaluator = EntitlementEvaluator(store)
        for _ in range(50):
            await evaluator.consume(subscription, FeatureKey.COMMUNITY_POST)
        assert await _remaining(db_session, subscription, FeatureKey.COMMUNITY_POST) == -1


class TestPlanLimitChanges:
    async def test_lowered_cap_clamps_existing_ledgers(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        free = await get_plan_by_name(db_session, "free")
        await update_plan(db_session, free, features={**free.features, "recipe_generation": 2})
        assert await _remaining(db_session, subscription, FeatureKey.RECIPE_GENERATION) == 2

        evaluator = EntitlementEvaluator(store)
        await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)
        await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)
        with pytest.raises(QuotaExceeded):
            await evaluator.consume(subscription, FeatureKey.RECIPE_GENERATION)

    async def test_raised_cap_keeps_used_count(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        await EntitlementEvaluator(store).consume(subscription, FeatureKey.COMMUNITY_POST)

        free = await get_plan_by_name(db_session, "free")
        await update_plan(db_session, free, features={**free.features, "community_post": 10})
        assert await _remaining(db_session, subscription, FeatureKey.COMMUNITY_POST) == 2

    async def test_unlimited_to_capped_refills_to_new_limit(self, db_session, store, premium_member):
        user, _ = premium_member
        subscription = await get_subscription(db_session, user)
        premium = await get_plan_by_name(db_session, "premium")
        await update_plan(db_session, premium, features={**premium.features, "community_post": 10})
        assert await _remaining(db_session, subscription, FeatureKey.COMMUNITY_POST) == 10

        evaluator = EntitlementEvaluator(store)
        assert await evaluator.can_consume(subscription, FeatureKey.COMMUNITY_POST) is True
        ledger = await evaluator.consume(subscription, FeatureKey.COMMUNITY_POST)
        assert ledger[FeatureKey.COMMUNITY_POST] == 9

    async def test_capped_to_unlimited(self, db_session, store, test_user):
        subscription = await get_subscription(db_session, test_user)
        free = await get_plan_by_name(db_session, "free")
        await update_plan(db_session, free, features={**free.features, "video_generation": -1})
        assert await _remaining(db_session, subscription, FeatureKey.VIDEO_GENERATION) == -1

        evaluator = EntitlementEvaluator(store)
        for _ in range(3):
            await evaluator.consume(subscription, FeatureKey.VIDEO_GENERATION)
        assert await _remaining(db_session, subscription, FeatureKey.VIDEO_GENERATION) == -1

    async def test_other_plans_untouched(self, db_session, test_user, pro_member):
        user, _ = pro_member
        pro_subscription = await get_subscription(db_session, user)
        free = await get_plan_by_name(db_session, "free")
        await update_plan(db_session, free, features={**free.features, "community_comment": 1})
        assert await _remaining(db_session, pro_subscription, FeatureKey.COMMUNITY_COMMENT) == 500
