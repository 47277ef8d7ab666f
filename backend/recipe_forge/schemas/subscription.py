"""Pydantic v2 request/response schemas for plans, subscriptions and usage."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

BillingCycleLiteral = Literal["MONTHLY", "YEARLY"]
StatusLiteral = Literal["ACTIVE", "PAST_DUE", "CANCELED"]

# --- Request schemas ---


class SubscribeRequest(BaseModel):
    """Create or upgrade the caller's subscription."""

    plan_id: uuid.UUID
    billing_cycle: BillingCycleLiteral = "MONTHLY"
    auto_renew: bool = True


class SubscriptionUpdateRequest(BaseModel):
    """Partial update of the caller's subscription."""

    plan_id: uuid.UUID | None = None
    billing_cycle: BillingCycleLiteral | None = None
    auto_renew: bool | None = None


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display. Quota values of -1 mean unlimited."""

    id: uuid.UUID
    name: str
    display_name: str
    price_cents: int
    yearly_price_cents: int | None
    currency: str
    billing_cycle: str
    features: dict[str, Any]
    is_active: bool
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class PlansListResponse(BaseModel):
    plans: list[PlanResponse]


class SubscriptionResponse(BaseModel):
    """The caller's subscription with its current ledger."""

    id: uuid.UUID
    plan: PlanResponse
    status: str
    billing_cycle: str
    start_date: datetime
    billing_cycle_start: datetime
    next_billing_date: datetime
    auto_renew: bool
    canceled_at: datetime | None
    usage: dict[str, int]


class UsageCheckResponse(BaseModel):
    feature: str
    can_use: bool
    remaining: int
    total: int
    plan: str
    message: str | None = None
    suggested_plan: str | None = None


class UsageSummaryResponse(BaseModel):
    plan_name: str
    status: str
    usage: dict[str, int]
    limits: dict[str, Any]
    next_billing_date: datetime


class ConsumeRequest(BaseModel):
    feature: str


class ConsumeResponse(BaseModel):
    feature: str
    usage: dict[str, int]


class PlanUpdateRequest(BaseModel):
    """Administrative plan update. Unknown feature keys are rejected."""

    display_name: str | None = Field(None, min_length=1, max_length=100)
    price_cents: int | None = Field(None, ge=0)
    yearly_price_cents: int | None = Field(None, ge=0)
    features: dict[str, Any] | None = None
    is_active: bool | None = None
    sort_order: int | None = None


class SubscriptionStatsResponse(BaseModel):
    total_subscribers: int
    active_subscribers: int
    subscribers_by_plan: dict[str, int]
    retention_rate: float


class QuotaResetResponse(BaseModel):
    reset_subscriptions: int


class RoleUpdateRequest(BaseModel):
    role: Literal["GUEST", "MEMBER", "ADMIN"]
