"""Administrative API routes — plan management, quota maintenance and roles."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.api.deps import get_db, require_admin
from recipe_forge.entitlements.errors import UnknownFeature
from recipe_forge.entitlements.plans import PlanNotFound, get_plan_by_id, update_plan
from recipe_forge.models.user import User
from recipe_forge.schemas.auth import UserResponse
from recipe_forge.schemas.subscription import (
    PlanResponse,
    PlanUpdateRequest,
    QuotaResetResponse,
    RoleUpdateRequest,
    SubscriptionStatsResponse,
)
from recipe_forge.services.subscription_service import (
    reset_all_quotas,
    rollover_due_subscriptions,
    subscription_stats,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.patch("/plans/{plan_id}", response_model=PlanResponse)
async def patch_plan(
    plan_id: uuid.UUID,
    body: PlanUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> PlanResponse:
    """Update a plan's pricing, visibility or feature limits."""
    try:
        plan = await get_plan_by_id(db, plan_id)
        plan = await update_plan(db, plan, **body.model_dump(exclude_unset=True))
    except PlanNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    except (UnknownFeature, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    return PlanResponse.model_validate(plan)


@router.post("/quotas/reset", response_model=QuotaResetResponse)
async def reset_quotas(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> QuotaResetResponse:
    """Refill every active subscription's ledger to its plan limits."""
    return QuotaResetResponse(reset_subscriptions=await reset_all_quotas(db))


@router.post("/subscriptions/rollover", response_model=QuotaResetResponse)
async def rollover_subscriptions(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> QuotaResetResponse:
    """Start a new billing cycle for every subscription that is due."""
    rolled = await rollover_due_subscriptions(db)
    logger.info("Rolled over %d due subscriptions", rolled)
    return QuotaResetResponse(reset_subscriptions=rolled)


@router.get("/subscriptions/stats", response_model=SubscriptionStatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> SubscriptionStatsResponse:
    return SubscriptionStatsResponse(**await subscription_stats(db))


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def set_user_role(
    user_id: uuid.UUID,
    body: RoleUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> UserResponse:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    user.role = body.role
    await db.flush()
    await db.refresh(user)
    logger.info("Admin %s set role of user %s to %s", admin.id, user.id, user.role)
    return UserResponse.model_validate(user)
