"""Subscription and usage-counter models — plan membership and quota ledger per user."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recipe_forge.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

ACTIVE = "ACTIVE"
PAST_DUE = "PAST_DUE"
CANCELED = "CANCELED"
SUBSCRIPTION_STATUSES = (ACTIVE, PAST_DUE, CANCELED)

MONTHLY = "MONTHLY"
YEARLY = "YEARLY"
BILLING_CYCLES = (MONTHLY, YEARLY)


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A user's plan membership and current billing cycle."""

    __tablename__ = "subscriptions"

    # One subscription row per user (UNIQUE), so at most one can be ACTIVE
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ACTIVE)
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, default=MONTHLY)

    # Billing period
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    billing_cycle_start: Mapped[datetime] = mapped_column(nullable=False)
    next_billing_date: Mapped[datetime] = mapped_column(nullable=False, index=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    canceled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="subscription", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    plan: Mapped["SubscriptionPlan"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, status={self.status})>"


class UsageCounter(UUIDPrimaryKeyMixin, Base):
    """Remaining uses of one feature within one billing cycle.

    ``remaining`` is ``-1`` for unlimited features and is never decremented
    in that case.
    """

    __tablename__ = "usage_counters"
    __table_args__ = (UniqueConstraint("subscription_id", "feature", name="uq_usage_counter_feature"),)

    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature: Mapped[str] = mapped_column(String(50), nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<UsageCounter(subscription_id={self.subscription_id}, feature={self.feature!r}, remaining={self.remaining})>"
