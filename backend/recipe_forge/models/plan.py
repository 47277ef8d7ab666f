"""Subscription plan model — the plan catalog."""

from sqlalchemy import JSON, Boolean, Integer, String, true
from sqlalchemy.orm import Mapped, mapped_column

from recipe_forge.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from recipe_forge.entitlements.features import PlanFeatures


class SubscriptionPlan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A subscription tier with its price and feature limits.

    Plans are never deleted while subscriptions reference them; set
    ``is_active`` to ``False`` to retire one.
    """

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yearly_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="VND")
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, default="MONTHLY")
    features: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def parsed_features(self) -> PlanFeatures:
        return PlanFeatures.from_mapping(self.features)

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, name={self.name!r}, active={self.is_active})>"
