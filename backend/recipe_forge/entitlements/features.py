"""Feature keys, feature flags and plan limits.

Plan features are stored as a flat JSON object, e.g.::

    {"recipe_generation": 5, "video_generation": 1, "community_post": -1,
     "community_comment": 10, "ai_suggestions": false, ...}

Quota values are either a non-negative cap or ``-1`` (unlimited). Parsing
turns that map into a closed ``PlanFeatures`` structure and rejects any key
that is not a known quota or flag.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from recipe_forge.entitlements.errors import UnknownFeature

UNLIMITED_SENTINEL = -1


class FeatureKey(str, Enum):
    """Quota-gated capabilities tracked in the usage ledger."""

    RECIPE_GENERATION = "recipe_generation"
    VIDEO_GENERATION = "video_generation"
    COMMUNITY_POST = "community_post"
    COMMUNITY_COMMENT = "community_comment"


class FeatureFlag(str, Enum):
    """Boolean plan capabilities with no usage counter."""

    AI_SUGGESTIONS = "ai_suggestions"
    PREMIUM_TEMPLATES = "premium_templates"
    EXPORT_TO_PDF = "export_to_pdf"
    PRIORITY_SUPPORT = "priority_support"


FEATURE_LABELS: dict[FeatureKey, str] = {
    FeatureKey.RECIPE_GENERATION: "recipe generation",
    FeatureKey.VIDEO_GENERATION: "video generation",
    FeatureKey.COMMUNITY_POST: "community posts",
    FeatureKey.COMMUNITY_COMMENT: "community comments",
}


def parse_feature_key(value: "str | FeatureKey") -> FeatureKey:
    """Resolve a raw string to a ``FeatureKey`` or raise ``UnknownFeature``."""
    if isinstance(value, FeatureKey):
        return value
    try:
        return FeatureKey(value)
    except ValueError:
        raise UnknownFeature(str(value)) from None


def parse_feature_flag(value: "str | FeatureFlag") -> FeatureFlag:
    if isinstance(value, FeatureFlag):
        return value
    try:
        return FeatureFlag(value)
    except ValueError:
        raise UnknownFeature(str(value)) from None


@dataclass(frozen=True)
class Capped:
    """A hard monthly cap."""

    limit: int

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise ValueError(f"Capped limit must be non-negative, got {self.limit}")

    @property
    def is_unlimited(self) -> bool:
        return False

    def to_json(self) -> int:
        return self.limit


@dataclass(frozen=True)
class Unlimited:
    """No cap; never decremented."""

    @property
    def is_unlimited(self) -> bool:
        return True

    def to_json(self) -> int:
        return UNLIMITED_SENTINEL


UNLIMITED = Unlimited()

Limit = Capped | Unlimited


def parse_limit(raw: Any) -> Limit:
    """Convert a stored quota value into a ``Limit``.

    ``-1`` is the unlimited sentinel; any other negative number, a boolean or
    a non-integer is rejected so it cannot leak into ledger arithmetic.
    """
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"Quota limit must be an integer, got {raw!r}")
    if raw == UNLIMITED_SENTINEL:
        return UNLIMITED
    return Capped(raw)


@dataclass(frozen=True)
class PlanFeatures:
    """Parsed feature set of a plan."""

    quotas: dict[FeatureKey, Limit]
    flags: dict[FeatureFlag, bool]

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "PlanFeatures":
        """Build from the stored JSON map.

        Missing quotas are treated as ``Capped(0)`` and missing flags as
        ``False``. Unknown keys raise ``UnknownFeature``.
        """
        quotas: dict[FeatureKey, Limit] = {key: Capped(0) for key in FeatureKey}
        flags: dict[FeatureFlag, bool] = {flag: False for flag in FeatureFlag}
        for raw_key, raw_value in (data or {}).items():
            if raw_key in FeatureKey._value2member_map_:
                quotas[FeatureKey(raw_key)] = parse_limit(raw_value)
            elif raw_key in FeatureFlag._value2member_map_:
                if not isinstance(raw_value, bool):
                    raise ValueError(f"Feature flag {raw_key!r} must be a boolean, got {raw_value!r}")
                flags[FeatureFlag(raw_key)] = raw_value
            else:
                raise UnknownFeature(raw_key)
        return cls(quotas=quotas, flags=flags)

    def limit_for(self, feature: FeatureKey) -> Limit:
        return self.quotas[feature]

    def to_mapping(self) -> dict[str, Any]:
        data: dict[str, Any] = {key.value: limit.to_json() for key, limit in self.quotas.items()}
        data.update({flag.value: enabled for flag, enabled in self.flags.items()})
        return data
