"""Subscription API endpoints — plan catalog, membership and usage quotas."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.api.deps import (
    get_current_active_user,
    get_current_subscription,
    get_db,
    get_evaluator,
)
from recipe_forge.entitlements.dependencies import quota_exceeded
from recipe_forge.entitlements.errors import PersistenceConflict, QuotaExceeded, UnknownFeature
from recipe_forge.entitlements.evaluator import EntitlementEvaluator
from recipe_forge.entitlements.features import parse_feature_key
from recipe_forge.entitlements.plans import PlanNotFound, ensure_default_plans, get_plan_by_id, list_active_plans
from recipe_forge.models.subscription import Subscription
from recipe_forge.models.user import User
from recipe_forge.schemas.subscription import (
    ConsumeRequest,
    ConsumeResponse,
    PlanResponse,
    PlansListResponse,
    SubscribeRequest,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    UsageCheckResponse,
    UsageSummaryResponse,
)
from recipe_forge.services.subscription_service import (
    SubscriptionConflict,
    SubscriptionNotFound,
    cancel_subscription,
    get_usage_summary,
    subscribe,
    update_subscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


async def _subscription_response(
    subscription: Subscription, evaluator: EntitlementEvaluator
) -> SubscriptionResponse:
    ledger = await evaluator.store.load_ledger(subscription)
    return SubscriptionResponse(
        id=subscription.id,
        plan=PlanResponse.model_validate(subscription.plan),
        status=subscription.status,
        billing_cycle=subscription.billing_cycle,
        start_date=subscription.start_date,
        billing_cycle_start=subscription.billing_cycle_start,
        next_billing_date=subscription.next_billing_date,
        auto_renew=subscription.auto_renew,
        canceled_at=subscription.canceled_at,
        usage=ledger.to_dict(),
    )


def _feature_or_400(feature: str):
    try:
        return parse_feature_key(feature)
    except UnknownFeature as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None


@router.get("/plans", response_model=PlansListResponse)
async def list_plans(db: AsyncSession = Depends(get_db)) -> PlansListResponse:
    """List active plans (public — no auth required)."""
    await ensure_default_plans(db)
    plans = await list_active_plans(db)
    return PlansListResponse(plans=[PlanResponse.model_validate(p) for p in plans])


@router.get("/plans/{plan_id}", response_model=PlanResponse)
async def get_plan(plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> PlanResponse:
    try:
        plan = await get_plan_by_id(db, plan_id)
    except PlanNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    return PlanResponse.model_validate(plan)


@router.get("/me", response_model=SubscriptionResponse)
async def get_my_subscription(
    subscription: Subscription = Depends(get_current_subscription),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> SubscriptionResponse:
    """Current subscription and remaining usage for this billing cycle."""
    return await _subscription_response(subscription, evaluator)


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    body: SubscribeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> SubscriptionResponse:
    """Subscribe to (or upgrade to) a plan. Restarts the billing cycle."""
    try:
        subscription = await subscribe(
            db,
            current_user,
            plan_id=body.plan_id,
            billing_cycle=body.billing_cycle,
            auto_renew=body.auto_renew,
        )
    except PlanNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    except SubscriptionConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from None
    return await _subscription_response(subscription, evaluator)


@router.patch("/me", response_model=SubscriptionResponse)
async def update_my_subscription(
    body: SubscriptionUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> SubscriptionResponse:
    """Change plan, billing cycle or auto-renewal."""
    try:
        subscription = await update_subscription(
            db,
            current_user,
            plan_id=body.plan_id,
            billing_cycle=body.billing_cycle,
            auto_renew=body.auto_renew,
        )
    except (PlanNotFound, SubscriptionNotFound) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    return await _subscription_response(subscription, evaluator)


@router.delete("/me", response_model=SubscriptionResponse)
async def cancel_my_subscription(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> SubscriptionResponse:
    """Cancel the subscription. Quota-gated features stop working immediately."""
    try:
        subscription = await cancel_subscription(db, current_user)
    except SubscriptionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    return await _subscription_response(subscription, evaluator)


@router.get("/usage/check/{feature}", response_model=UsageCheckResponse)
async def check_usage(
    feature: str,
    subscription: Subscription = Depends(get_current_subscription),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> UsageCheckResponse:
    """Whether one more use of ``feature`` is currently allowed."""
    check = await evaluator.check(subscription, _feature_or_400(feature))
    return UsageCheckResponse(
        feature=check.feature.value,
        can_use=check.can_use,
        remaining=check.remaining,
        total=check.total,
        plan=check.plan,
        message=check.message,
        suggested_plan=check.suggested_plan,
    )


@router.post("/usage/consume", response_model=ConsumeResponse)
async def consume_usage(
    body: ConsumeRequest,
    subscription: Subscription = Depends(get_current_subscription),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
) -> ConsumeResponse:
    """Record one use of ``feature`` for actions fulfilled outside this API."""
    feature = _feature_or_400(body.feature)
    try:
        ledger = await evaluator.consume(subscription, feature)
    except QuotaExceeded as exc:
        raise quota_exceeded(exc) from None
    except PersistenceConflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Usage changed concurrently, please retry",
        ) from None
    return ConsumeResponse(feature=feature.value, usage=ledger.to_dict())


@router.get("/usage/summary", response_model=UsageSummaryResponse)
async def usage_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> UsageSummaryResponse:
    summary = await get_usage_summary(db, current_user)
    return UsageSummaryResponse(
        plan_name=summary.plan.name,
        status=summary.status,
        usage=summary.ledger.to_dict(),
        limits=summary.features.to_mapping(),
        next_billing_date=summary.next_billing_date,
    )
