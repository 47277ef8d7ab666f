"""Quota gating dependencies — enforce plan usage limits at the API boundary.

Usage in a router::

    @router.post("/generate")
    async def generate(
        gate: QuotaGate = Depends(require_quota(FeatureKey.RECIPE_GENERATION)),
        ...
    ):
        recipe = ...            # perform the action
        await gate.consume(recipe)   # record the use; undoes ``recipe`` on failure
"""

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.auth.dependencies import get_current_active_user
from recipe_forge.config import settings
from recipe_forge.database import get_db
from recipe_forge.entitlements.errors import PersistenceConflict, QuotaExceeded
from recipe_forge.entitlements.evaluator import EntitlementEvaluator, UsageCheck
from recipe_forge.entitlements.features import FeatureFlag, FeatureKey
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import suggested_plan
from recipe_forge.entitlements.store import SqlUsageStore
from recipe_forge.models.subscription import Subscription
from recipe_forge.models.user import User
from recipe_forge.services.subscription_service import get_or_create_subscription

logger = logging.getLogger(__name__)


async def get_evaluator(db: AsyncSession = Depends(get_db)) -> EntitlementEvaluator:
    """Evaluator bound to the request's session."""
    return EntitlementEvaluator(SqlUsageStore(db))


async def get_current_subscription(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> Subscription:
    """The caller's subscription with any due billing-cycle rollover applied."""
    subscription = await get_or_create_subscription(db, user)
    await evaluator.rollover_if_due(subscription)
    return subscription


def quota_denied(check: UsageCheck) -> HTTPException:
    """402 response for a denied usage check."""
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": check.message,
            "feature": check.feature.value,
            "remaining": check.remaining,
            "limit": check.total,
            "plan": check.plan,
            "suggested_plan": check.suggested_plan,
            "upgrade_url": settings.upgrade_url,
        },
    )


def quota_exceeded(exc: QuotaExceeded) -> HTTPException:
    """402 response for a failed consumption."""
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": str(exc),
            "feature": exc.feature,
            "remaining": exc.remaining,
            "limit": exc.limit,
            "plan": exc.plan,
            "suggested_plan": suggested_plan(exc.plan),
            "upgrade_url": settings.upgrade_url,
        },
    )


class QuotaGate:
    """Permission to perform one quota-gated action, consumed afterwards."""

    def __init__(
        self,
        db: AsyncSession,
        evaluator: EntitlementEvaluator,
        subscription: Subscription,
        feature: FeatureKey,
    ) -> None:
        self.db = db
        self.evaluator = evaluator
        self.subscription = subscription
        self.feature = feature

    async def consume(self, *created: object) -> UsageLedger:
        """Record the use after the action succeeded.

        ``created`` are the ORM rows the action added; they are deleted again
        if the use cannot be recorded. A ledger conflict is retried once
        against a refreshed subscription before giving up with 409.
        """
        for attempt in range(2):
            try:
                return await self.evaluator.consume(self.subscription, self.feature)
            except QuotaExceeded as exc:
                await self._discard(created)
                raise quota_exceeded(exc) from None
            except PersistenceConflict:
                if attempt == 1:
                    await self._discard(created)
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="Usage changed concurrently, please retry",
                    ) from None
                await self.db.refresh(self.subscription)
                await self.evaluator.rollover_if_due(self.subscription)
        raise AssertionError("unreachable")

    async def _discard(self, created: tuple[object, ...]) -> None:
        for obj in created:
            await self.db.delete(obj)
        if created:
            await self.db.flush()
            logger.info("Discarded %d row(s) after failed %s consumption", len(created), self.feature.value)


def require_quota(feature: FeatureKey):
    """Dependency factory: 402 unless one use of ``feature`` is available."""

    async def dependency(
        db: AsyncSession = Depends(get_db),
        subscription: Subscription = Depends(get_current_subscription),
        evaluator: EntitlementEvaluator = Depends(get_evaluator),
    ) -> QuotaGate:
        check = await evaluator.check(subscription, feature)
        if not check.can_use:
            logger.info(
                "Denied %s for subscription %s (plan %s, remaining %s)",
                feature.value,
                subscription.id,
                check.plan,
                check.remaining,
            )
            raise quota_denied(check)
        return QuotaGate(db, evaluator, subscription, feature)

    return dependency


def require_feature(flag: FeatureFlag):
    """Dependency factory: 402 unless the plan enables boolean ``flag``."""

    async def dependency(
        subscription: Subscription = Depends(get_current_subscription),
        evaluator: EntitlementEvaluator = Depends(get_evaluator),
    ) -> None:
        if not evaluator.has_feature_access(subscription, flag):
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail={
                    "message": f"{flag.value.replace('_', ' ').capitalize()} is only available on paid plans.",
                    "feature": flag.value,
                    "plan": subscription.plan.name,
                    "suggested_plan": suggested_plan(subscription.plan.name),
                    "upgrade_url": settings.upgrade_url,
                },
            )

    return dependency
