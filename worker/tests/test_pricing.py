import pytest

from ingest.errors import PricingError
from ingest.pricing.calculator import (
    BELOW_THRESHOLD,
    PROFITABLE,
    calculate_all_prices,
    calculate_competitor_prices,
    calculate_list_price,
    calculate_profit,
    competitor_floor,
    recalculate_competitors,
    round2,
)
from ingest.pricing.rules import CompetitorRange, PricingRules, validate_rules


def test_ten_dollar_cost_scenario():
    quote = calculate_all_prices(10.0, seed=42)

    assert quote.list_price == 17.00
    assert competitor_floor(quote.list_price) == 18.70
    assert all(price >= 18.70 for price in quote.competitors.values())
    assert quote.profit_amount == 7.00
    assert quote.profit_percent == 70.0
    assert quote.profit_status == PROFITABLE
    assert quote.seed == 42


def test_quote_is_reproducible_for_a_seed():
    assert calculate_all_prices(23.49, seed=7) == calculate_all_prices(23.49, seed=7)


def test_missing_seed_is_recorded_and_replayable():
    quote = calculate_all_prices(12.99)
    assert calculate_all_prices(12.99, seed=quote.seed) == quote


def test_competitor_prices_stay_in_their_ranges():
    rules = PricingRules()
    quote = calculate_all_prices(19.99, seed=3, rules=rules)

    assert set(quote.competitors) == {"amazon", "costco", "ebay", "sams"}
    for key, price in quote.competitors.items():
        bounds = rules.competitor_ranges[key]
        assert round2(quote.list_price * bounds.min) <= price <= round2(quote.list_price * bounds.max)
    assert quote.compare_at_price == max(quote.competitors.values())
    assert quote.warnings == []


def test_competitor_below_floor_is_clamped_with_warning():
    rules = PricingRules(competitor_ranges={"discount": CompetitorRange(0.5, 0.6), "amazon": CompetitorRange(1.82, 1.88)})
    result = calculate_competitor_prices(17.0, seed=1, rules=rules)

    assert result.prices["discount"] == competitor_floor(17.0, rules)
    assert result.prices["amazon"] > result.prices["discount"]
    assert len(result.warnings) == 1
    assert "discount" in result.warnings[0]


def test_clamp_warning_uses_competitor_display_name():
    rules = PricingRules(competitor_ranges={"sams": CompetitorRange(0.5, 0.6)})
    result = calculate_competitor_prices(17.0, seed=1, rules=rules)

    assert result.warnings[0].startswith("Sam's Club price auto-corrected")
    assert result.warnings[0].endswith("to minimum $18.70")


def test_every_competitor_meets_the_floor_for_many_seeds():
    rules = PricingRules(minimum_markup=1.85)
    for seed in range(50):
        quote = calculate_all_prices(9.99, seed=seed, rules=rules)
        floor = competitor_floor(quote.list_price, rules)
        assert all(price >= floor for price in quote.competitors.values())


@pytest.mark.parametrize("cost", [0, -5, None, float("nan"), "abc", float("inf"), float("-inf"), "inf", 1e30])
def test_invalid_cost_is_rejected(cost):
    with pytest.raises(PricingError) as excinfo:
        calculate_list_price(cost)
    assert excinfo.value.code == "PRICE_CALC_001"


def test_invalid_list_price_uses_competitor_error_code():
    with pytest.raises(PricingError) as excinfo:
        calculate_competitor_prices(0, seed=1)
    assert excinfo.value.code == "PRICE_CALC_002"


def test_profit_threshold():
    assert calculate_profit(10.0, 13.0).status == PROFITABLE
    assert calculate_profit(10.0, 13.0).percent == 30.0
    assert calculate_profit(10.0, 12.99).status == BELOW_THRESHOLD
    assert calculate_profit(10.0, 13.01).status == PROFITABLE


def test_profit_status_uses_configured_threshold():
    rules = PricingRules(profit_threshold_percent=80)
    assert calculate_profit(10.0, 17.0, rules).status == BELOW_THRESHOLD


def test_markup_percent_override():
    rules = PricingRules().with_markup_percent(50)
    assert calculate_list_price(10.0, rules) == 15.0
    assert PricingRules().with_markup_percent(None) == PricingRules()


def test_rounding_is_half_up():
    assert round2(2.675) == 2.68
    assert round2(1.005) == 1.01


def test_recalculate_competitors_keeps_list_price():
    quote = recalculate_competitors(10.0, 21.5, seed=9)
    assert quote.list_price == 21.5
    assert quote.profit_amount == 11.5
    assert quote.profit_percent == 115.0


def test_recalculate_competitors_rejects_non_finite_list_price():
    with pytest.raises(PricingError) as excinfo:
        recalculate_competitors(10.0, float("inf"), seed=9)
    assert excinfo.value.code == "PRICE_CALC_002"



def test_validate_rules():
    assert validate_rules(PricingRules()) == []
    errors = validate_rules(
        PricingRules(
            markup_multiplier=0.9,
            profit_threshold_percent=120,
            competitor_ranges={"amazon": CompetitorRange(1.9, 1.8)},
        )
    )
    assert "markup_multiplier must be greater than 1.0" in errors
    assert "profit_threshold_percent must be between 0 and 100" in errors
    assert "competitor_ranges.amazon.max must be >= min" in errors
