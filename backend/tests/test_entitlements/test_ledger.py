"""Unit tests for the usage ledger snapshot."""

from datetime import datetime
from types import SimpleNamespace

from recipe_forge.entitlements.features import FeatureKey, PlanFeatures
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import DEFAULT_PLANS


class TestUsageLedger:
    def test_fresh_uses_plan_limits(self):
        features = PlanFeatures.from_mapping(DEFAULT_PLANS["free"].features)
        ledger = UsageLedger.fresh(features, period_start=datetime(2026, 1, 1))
        assert ledger[FeatureKey.RECIPE_GENERATION] == 5
        assert ledger[FeatureKey.VIDEO_GENERATION] == 1
        assert ledger.period_start == datetime(2026, 1, 1)

    def test_fresh_unlimited_holds_sentinel(self):
        features = PlanFeatures.from_mapping(DEFAULT_PLANS["premium"].features)
        ledger = UsageLedger.fresh(features)
        assert ledger[FeatureKey.COMMUNITY_POST] == -1
        assert ledger.is_unlimited(FeatureKey.COMMUNITY_POST)
        assert not ledger.is_unlimited(FeatureKey.VIDEO_GENERATION)

    def test_from_counters_missing_rows_read_as_zero(self):
        rows = [SimpleNamespace(feature="recipe_generation", remaining=3)]
        ledger = UsageLedger.from_counters(rows)
        assert ledger[FeatureKey.RECIPE_GENERATION] == 3
        assert ledger[FeatureKey.COMMUNITY_COMMENT] == 0

    def test_from_counters_ignores_retired_features(self):
        rows = [SimpleNamespace(feature="max_properties", remaining=9)]
        assert UsageLedger.from_counters(rows).to_dict() == {key.value: 0 for key in FeatureKey}

    def test_to_dict_uses_wire_names(self):
        ledger = UsageLedger.fresh(PlanFeatures.from_mapping({"community_post": 2}))
        assert ledger.to_dict()["community_post"] == 2
