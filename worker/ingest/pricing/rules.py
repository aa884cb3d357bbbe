from __future__ import annotations

from dataclasses import dataclass, field, replace

from ingest.config import DEFAULT_COMPETITOR_RANGES, WorkerSettings

COMPETITOR_NAMES = {
    "amazon": "Amazon",
    "costco": "Costco",
    "ebay": "eBay",
    "sams": "Sam's Club",
}


@dataclass(frozen=True)
class CompetitorRange:
    min: float
    max: float


@dataclass(frozen=True)
class PricingRules:
    markup_multiplier: float = 1.70
    minimum_markup: float = 1.10
    profit_threshold_percent: float = 30.0
    competitor_ranges: dict[str, CompetitorRange] = field(
        default_factory=lambda: {key: CompetitorRange(*bounds) for key, bounds in DEFAULT_COMPETITOR_RANGES.items()}
    )

    @classmethod
    def from_settings(cls, settings: WorkerSettings) -> PricingRules:
        return cls(
            markup_multiplier=settings.markup_multiplier,
            minimum_markup=settings.competitor_minimum_markup,
            profit_threshold_percent=settings.profit_threshold_percent,
            competitor_ranges={key: CompetitorRange(low, high) for key, (low, high) in settings.competitor_ranges.items()},
        )

    def with_markup_percent(self, markup_percent: float | None) -> PricingRules:
        if markup_percent is None:
            return self
        return replace(self, markup_multiplier=1 + markup_percent / 100)


def validate_rules(rules: PricingRules) -> list[str]:
    errors: list[str] = []
    if rules.markup_multiplier <= 1.0:
        errors.append("markup_multiplier must be greater than 1.0")
    if rules.minimum_markup < 1.0:
        errors.append("minimum_markup must be at least 1.0")
    if not rules.competitor_ranges:
        errors.append("at least one competitor range is required")
    for key, bounds in rules.competitor_ranges.items():
        if bounds.max < bounds.min:
            errors.append(f"competitor_ranges.{key}.max must be >= min")
        if bounds.min <= 0:
            errors.append(f"competitor_ranges.{key}.min must be positive")
    if not 0 <= rules.profit_threshold_percent <= 100:
        errors.append("profit_threshold_percent must be between 0 and 100")
    return errors
