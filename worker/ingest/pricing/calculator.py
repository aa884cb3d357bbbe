"""Price synthesis: cost to list price, competitor reference prices and profit.

Every function is pure given a seed. Competitor draws use one
``random.Random`` per competitor keyed by ``seed + offset`` so a single
competitor can be recomputed without replaying the others.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from ingest.errors import PricingError
from ingest.pricing.rules import COMPETITOR_NAMES, PricingRules

logger = logging.getLogger(__name__)

DEFAULT_RULES = PricingRules()

# Above this a quoted price stops being a currency amount.
MAX_PRICE = 1_000_000.0

PROFITABLE = "profitable"
BELOW_THRESHOLD = "below_threshold"


@dataclass(frozen=True)
class CompetitorPrices:
    prices: dict[str, float]
    highest: float
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProfitMetrics:
    amount: float
    percent: float
    status: str


@dataclass(frozen=True)
class PriceQuote:
    cost: float
    list_price: float
    competitors: dict[str, float]
    compare_at_price: float
    profit_amount: float
    profit_percent: float
    profit_status: str
    seed: int
    warnings: list[str] = field(default_factory=list)


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def competitor_floor(list_price: float, rules: PricingRules = DEFAULT_RULES) -> float:
    exact = Decimal(str(list_price)) * Decimal(str(rules.minimum_markup))
    return float(exact.quantize(Decimal("0.01"), rounding=ROUND_CEILING))


def default_seed() -> int:
    return time.time_ns() % (2**31)


def _require_positive(value: float | None, code: str, label: str) -> float:
    if value is None:
        raise PricingError(code, f"{label} is missing")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise PricingError(code, f"{label} is not a valid number: {value!r}") from exc
    if not math.isfinite(number):
        raise PricingError(code, f"{label} is not a valid number: {value!r}")
    if number <= 0:
        raise PricingError(code, f"{label} must be positive: {value}")
    if number > MAX_PRICE:
        raise PricingError(code, f"{label} exceeds the maximum of {MAX_PRICE:,.2f}: {value}")
    return number


def calculate_list_price(cost: float, rules: PricingRules = DEFAULT_RULES) -> float:
    cost = _require_positive(cost, "PRICE_CALC_001", "Cost price")
    return round2(cost * rules.markup_multiplier)


def calculate_competitor_prices(list_price: float, seed: int, rules: PricingRules = DEFAULT_RULES) -> CompetitorPrices:
    list_price = _require_positive(list_price, "PRICE_CALC_002", "List price")
    floor = competitor_floor(list_price, rules)
    prices: dict[str, float] = {}
    warnings: list[str] = []

    for offset, (key, bounds) in enumerate(rules.competitor_ranges.items(), start=1):
        multiplier = random.Random(seed + offset).uniform(bounds.min, bounds.max)
        price = round2(list_price * multiplier)
        if price < floor:
            warning = f"{COMPETITOR_NAMES.get(key, key)} price auto-corrected from ${price:.2f} to minimum ${floor:.2f}"
            logger.warning(warning)
            warnings.append(warning)
            price = floor
        prices[key] = price

    return CompetitorPrices(prices=prices, highest=max(prices.values()), warnings=warnings)


def calculate_profit(cost: float, list_price: float, rules: PricingRules = DEFAULT_RULES) -> ProfitMetrics:
    cost = _require_positive(cost, "PRICE_CALC_004", "Cost price")
    list_price = _require_positive(list_price, "PRICE_CALC_004", "List price")
    amount = round2(list_price - cost)
    percent = round2(amount / cost * 100)
    status = PROFITABLE if percent >= rules.profit_threshold_percent else BELOW_THRESHOLD
    return ProfitMetrics(amount=amount, percent=percent, status=status)


def calculate_all_prices(cost: float, seed: int | None = None, rules: PricingRules = DEFAULT_RULES) -> PriceQuote:
    if seed is None:
        seed = default_seed()
    list_price = calculate_list_price(cost, rules)
    return _quote(_require_positive(cost, "PRICE_CALC_001", "Cost price"), list_price, seed, rules)


def recalculate_competitors(
    cost: float,
    list_price: float,
    seed: int | None = None,
    rules: PricingRules = DEFAULT_RULES,
) -> PriceQuote:
    """Refresh competitor and profit figures while keeping an existing list price."""
    cost = _require_positive(cost, "PRICE_CALC_001", "Cost price")
    list_price = _require_positive(list_price, "PRICE_CALC_002", "List price")
    if seed is None:
        seed = default_seed()
    return _quote(cost, round2(list_price), seed, rules)


def _quote(cost: float, list_price: float, seed: int, rules: PricingRules) -> PriceQuote:
    competitors = calculate_competitor_prices(list_price, seed, rules)
    profit = calculate_profit(cost, list_price, rules)
    return PriceQuote(
        cost=cost,
        list_price=list_price,
        competitors=competitors.prices,
        compare_at_price=competitors.highest,
        profit_amount=profit.amount,
        profit_percent=profit.percent,
        profit_status=profit.status,
        seed=seed,
        warnings=list(competitors.warnings),
    )
