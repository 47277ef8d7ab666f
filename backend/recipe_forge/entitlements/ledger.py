"""Usage ledger — remaining-count snapshot per feature."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from recipe_forge.entitlements.features import UNLIMITED_SENTINEL, FeatureKey, PlanFeatures


@dataclass(frozen=True)
class UsageLedger:
    """Immutable view of a subscription's counters for one billing cycle.

    Unlimited features hold ``UNLIMITED_SENTINEL`` (``-1``).
    """

    remaining: Mapping[FeatureKey, int]
    period_start: datetime | None = None

    @classmethod
    def fresh(cls, features: PlanFeatures, period_start: datetime | None = None) -> "UsageLedger":
        """A ledger with every feature reset to its plan limit."""
        return cls(
            remaining={key: features.limit_for(key).to_json() for key in FeatureKey},
            period_start=period_start,
        )

    @classmethod
    def from_counters(cls, counters: Iterable, period_start: datetime | None = None) -> "UsageLedger":
        """Build from ``UsageCounter`` rows; features without a row read as 0."""
        remaining = {key: 0 for key in FeatureKey}
        for counter in counters:
            if counter.feature in FeatureKey._value2member_map_:
                remaining[FeatureKey(counter.feature)] = counter.remaining
        return cls(remaining=remaining, period_start=period_start)

    def __getitem__(self, feature: FeatureKey) -> int:
        return self.remaining[feature]

    def is_unlimited(self, feature: FeatureKey) -> bool:
        return self.remaining[feature] == UNLIMITED_SENTINEL

    def to_dict(self) -> dict[str, int]:
        return {key.value: value for key, value in self.remaining.items()}
