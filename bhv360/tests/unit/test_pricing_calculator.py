"""
Unit tests for the Pricing Calculator.

Tests cover:
- Per-model module prices (fixed, per_user with bands, per_building, hybrid)
- calculate_pricing order of operations and discount-code gating
- Volume discount ladder
- Quotes, ROI projections and customer pricing
"""

from datetime import timedelta

import pytest

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.models import PricingModel, TierBand
from bhv360.config.settings import EngineSettings
from bhv360.entitlements.errors import ModuleDefinitionNotFoundError
from bhv360.services.discount_codes import DiscountCode, DiscountCodeStore, DiscountType
from bhv360.services.pricing_calculator import (
    BillingCycle,
    PricingCalculator,
    PricingConfig,
)

from conftest import make_module


@pytest.fixture
def hybrid_module():
    return make_module(
        "hybrid",
        model=PricingModel.HYBRID,
        base_price=5000,
        price_per_user=200,
        price_per_building=1500,
    )


@pytest.fixture
def flat_catalog(hybrid_module):
    """Catalog with a hybrid module and a setup-fee-free fixed module."""
    return ModuleCatalog([
        hybrid_module,
        make_module("flat", base_price=10000),
    ])


# =============================================================================
# Module Price Tests
# =============================================================================


class TestCalculateModulePrice:
    """Tests for single-module pricing."""

    def test_hybrid_sums_all_components(self, pricing, hybrid_module):
        """5000 + 200 x 10 + 1500 x 2 = 10000 cents exactly."""
        assert pricing.calculate_module_price(hybrid_module, 10, 2) == 10000

    def test_fixed_ignores_usage(self, pricing):
        assert pricing.calculate_module_price("rapportages", 1, 1) == 7900
        assert pricing.calculate_module_price("rapportages", 500, 12) == 7900

    def test_per_user_flat_rate(self, pricing):
        assert pricing.calculate_module_price("incidenten", 25, 1) == 3750

    def test_per_building(self, pricing):
        assert pricing.calculate_module_price("bezoeker-registratie", 25, 3) == 7500

    @pytest.mark.parametrize("users,expected", [
        (25, 25 * 1200),
        (26, 26 * 1000),
        (100, 100 * 1000),
        (101, 101 * 800),
    ])
    def test_per_user_tier_bands(self, pricing, users, expected):
        """noodprocedures: 1-25 at 1200, 26-100 at 1000, 101+ at 800."""
        assert pricing.calculate_module_price("noodprocedures", users, 1) == expected

    def test_user_count_outside_bands_uses_flat_rate(self, pricing):
        assert pricing.calculate_module_price("noodprocedures", 0, 1) == 0

    def test_negative_usage_flows_through(self, pricing):
        """Negative counts are not rejected; they produce negative prices."""
        assert pricing.calculate_module_price("incidenten", -4, 1) == -600

    def test_hybrid_uses_tier_bands_for_user_part(self):
        module = make_module(
            "banded-hybrid",
            model=PricingModel.HYBRID,
            base_price=1000,
            price_per_user=500,
            tier_bands=(TierBand(min_users=10, price_per_user=100),),
        )
        calculator = PricingCalculator(ModuleCatalog([module]))

        assert calculator.calculate_module_price(module, 10, 0) == 1000 + 100 * 10
        assert calculator.calculate_module_price(module, 9, 0) == 1000 + 500 * 9

    def test_unknown_module_id(self, pricing):
        with pytest.raises(ModuleDefinitionNotFoundError):
            pricing.calculate_module_price("nope", 1, 1)


class TestCostHelpers:
    """Tests for activation, total, setup and yearly cost helpers."""

    def test_yearly_cost_applies_prepayment_discount(self, pricing):
        """7900 x 12 = 94800, minus 10% = 85320."""
        assert pricing.get_yearly_cost(7900) == 85320

    def test_yearly_cost_rounds_half_up(self, pricing):
        """125 x 12 = 1500 -> 150 discount; 5 x 12 = 60 -> 6 discount."""
        assert pricing.get_yearly_cost(125) == 1350
        assert pricing.get_yearly_cost(5) == 54

    def test_activation_cost(self, pricing):
        cost = pricing.get_module_activation_cost("api-integration", 25, 1)

        assert cost.monthly_cost == 19900
        assert cost.yearly_cost == pricing.get_yearly_cost(19900)
        assert cost.setup_fee == 50000
        assert cost.free_trial_days == 0

    def test_total_module_cost(self, pricing):
        total = pricing.get_total_module_cost(["plotkaart", "incidenten"], 25, 1)
        assert total == 2900 + 3750

    def test_total_setup_cost(self, pricing):
        assert pricing.get_total_setup_cost(["api-integration", "noodprocedures", "plotkaart"]) == 75000


# =============================================================================
# calculate_pricing Tests
# =============================================================================


class TestCalculatePricing:
    """Tests for multi-module pricing with discounts."""

    def test_discount_applied_before_yearly_discount(self, pricing):
        """10000 subtotal, 10% code, yearly: total 9000, final 8100 (not 19% combined)."""
        config = PricingConfig(
            module_ids=["mobile-app"],
            user_count=25,
            billing_cycle=BillingCycle.YEARLY,
            discount_code="WELCOME10",
        )

        breakdown = pricing.calculate_pricing(config)

        assert breakdown.subtotal == 10000
        assert breakdown.discount == 1000
        assert breakdown.total == 9000
        assert breakdown.yearly_discount == 900
        assert breakdown.final_total == 8100
        assert breakdown.discount_code == "WELCOME10"

    def test_monthly_cycle_has_no_yearly_discount(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["mobile-app"], user_count=25, discount_code="WELCOME10")
        )

        assert breakdown.yearly_discount == 0
        assert breakdown.final_total == breakdown.total == 9000

    def test_setup_fees_added_before_discount(self, pricing):
        """Setup fees join the running total the code discount applies to."""
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["api-integration"], discount_code="ENTERPRISE20")
        )

        assert breakdown.subtotal == 19900
        assert breakdown.setup_fees == 50000
        assert breakdown.discount == 13980
        assert breakdown.total == 55920

    def test_line_items_per_module(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["plotkaart", "incidenten", "plotkaart"], user_count=25)
        )

        assert [i.module_id for i in breakdown.line_items] == ["plotkaart", "incidenten"]
        incidenten = breakdown.line_items[1]
        assert incidenten.quantity == 25
        assert incidenten.unit_price == 150
        assert incidenten.monthly_price == 3750
        assert breakdown.subtotal == 6650

    def test_code_lookup_is_case_insensitive(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["mobile-app"], user_count=25, discount_code=" welcome10 ")
        )
        assert breakdown.discount == 1000

    def test_unknown_code_is_ignored(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["rapportages"], discount_code="NOPE")
        )

        assert breakdown.discount == 0
        assert breakdown.discount_rejected_reason == "unknown_code"
        assert breakdown.total == 7900

    def test_expired_code_is_ignored(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["rapportages"], discount_code="LAUNCH2024")
        )

        assert breakdown.discount == 0
        assert breakdown.discount_rejected_reason == "expired"

    def test_minimum_spend_gate(self, pricing):
        below = pricing.calculate_pricing(
            PricingConfig(module_ids=["rapportages"], discount_code="BHV50")
        )
        above = pricing.calculate_pricing(
            PricingConfig(module_ids=["rapportages", "api-integration"], discount_code="BHV50")
        )

        assert below.discount_rejected_reason == "minimum_spend_not_met"
        assert above.discount == 5000
        assert above.total == 7900 + 19900 + 50000 - 5000

    def test_module_allowlist_gate(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["rapportages"], discount_code="ENTERPRISE20")
        )
        assert breakdown.discount_rejected_reason == "not_applicable_to_modules"

    def test_max_discount_cap(self, pricing):
        """20% of 469900 is 93980, capped at 50000."""
        breakdown = pricing.calculate_pricing(
            PricingConfig(
                module_ids=["mobile-app", "api-integration"],
                user_count=1000,
                discount_code="ENTERPRISE20",
            )
        )

        assert breakdown.discount == 50000
        assert breakdown.total == 469900 - 50000

    def test_fixed_discount_never_exceeds_total(self, flat_catalog):
        codes = DiscountCodeStore([DiscountCode("HUGE", DiscountType.FIXED, 99999)])
        calculator = PricingCalculator(flat_catalog, codes)

        breakdown = calculator.calculate_pricing(
            PricingConfig(module_ids=["flat"], discount_code="HUGE")
        )

        assert breakdown.discount == 10000
        assert breakdown.total == 0

    def test_unknown_module_raises(self, pricing):
        with pytest.raises(ModuleDefinitionNotFoundError):
            pricing.calculate_pricing(PricingConfig(module_ids=["rapportages", "nope"]))

    def test_empty_selection_prices_to_zero(self, pricing):
        breakdown = pricing.calculate_pricing(PricingConfig())
        assert breakdown.final_total == 0
        assert breakdown.line_items == ()

    def test_yearly_discount_percent_from_settings(self, flat_catalog):
        calculator = PricingCalculator(
            flat_catalog, settings=EngineSettings(yearly_discount_percent=20)
        )

        breakdown = calculator.calculate_pricing(
            PricingConfig(module_ids=["flat"], billing_cycle="yearly")
        )

        assert breakdown.final_total == 8000

    def test_to_dict(self, pricing):
        data = pricing.calculate_pricing(PricingConfig(module_ids=["rapportages"])).to_dict()

        assert data["billing_cycle"] == "monthly"
        assert data["currency"] == "EUR"
        assert data["line_items"][0]["module_id"] == "rapportages"


# =============================================================================
# Volume, Quote and ROI Tests
# =============================================================================


class TestVolumeDiscounts:
    """Tests for the volume discount ladder."""

    @pytest.mark.parametrize("users,percent", [
        (0, 0), (24, 0), (25, 5), (49, 5), (50, 10), (99, 10), (100, 15), (5000, 15),
    ])
    def test_ladder(self, users, percent):
        assert PricingCalculator.get_volume_discounts(users) == percent

    def test_not_folded_into_pricing(self, pricing):
        breakdown = pricing.calculate_pricing(
            PricingConfig(module_ids=["incidenten"], user_count=100)
        )
        assert breakdown.total == 15000


class TestGenerateQuote:
    """Tests for quote snapshots."""

    def test_quote_has_thirty_day_validity(self, pricing):
        quote = pricing.generate_quote(
            PricingConfig(module_ids=["rapportages"], customer_id="cust-1")
        )

        assert quote.valid_until - quote.created_at == timedelta(days=30)
        assert quote.id.startswith("Q-20260302-")
        assert quote.customer_id == "cust-1"
        assert quote.breakdown.final_total == 7900

    def test_quote_terms_are_boilerplate(self, pricing):
        quote = pricing.generate_quote(PricingConfig(module_ids=["rapportages"]))

        assert len(quote.terms) == 5
        assert "EUR" in quote.terms[0]
        assert "30 days" in quote.terms[1]

    def test_quote_ids_are_unique(self, pricing):
        config = PricingConfig(module_ids=["rapportages"])
        assert pricing.generate_quote(config).id != pricing.generate_quote(config).id

    def test_quote_validity(self, pricing):
        quote = pricing.generate_quote(PricingConfig(module_ids=["rapportages"]))

        assert quote.is_valid(quote.created_at + timedelta(days=30))
        assert not quote.is_valid(quote.created_at + timedelta(days=31))


class TestCalculateRoi:
    """Tests for ROI projections."""

    def test_break_even_and_roi(self, pricing):
        """Yearly cost 85320 against 10000/month savings."""
        roi = pricing.calculate_roi("rapportages", 25, 1, 10000)

        assert roi.yearly_cost == 85320
        assert roi.yearly_savings == 120000
        assert roi.net_yearly_benefit == 34680
        assert roi.months_to_break_even == 8.53
        assert roi.roi_percent == 40.65

    def test_zero_savings_has_no_break_even(self, pricing):
        roi = pricing.calculate_roi("rapportages", 25, 1, 0)

        assert roi.months_to_break_even is None
        assert roi.roi_percent == -100.0

    def test_zero_cost_has_no_roi_percent(self, pricing):
        roi = pricing.calculate_roi("oefeningen", 25, 0, 5000)

        assert roi.yearly_cost == 0
        assert roi.roi_percent is None
        assert roi.months_to_break_even == 0.0


class TestCustomerPricing:
    """Tests for pricing a customer's module set per period."""

    def test_monthly(self, pricing):
        result = pricing.calculate_customer_pricing("cust-1", ["plotkaart", "incidenten"], 25)

        assert result.subtotal == 6650
        assert result.discount == 0
        assert result.total == 6650

    def test_yearly_covers_twelve_months(self, pricing):
        result = pricing.calculate_customer_pricing(
            "cust-1", ["plotkaart", "incidenten"], 25, 1, BillingCycle.YEARLY
        )

        assert result.subtotal == 79800
        assert result.discount == 7980
        assert result.total == 71820
