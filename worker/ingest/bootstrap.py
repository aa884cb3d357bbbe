from __future__ import annotations

from ingest.adapters.base import EnrichmentAdapter, StorefrontAdapter
from ingest.adapters.fixture_adapter import FixtureEnrichmentAdapter
from ingest.adapters.keepa import KeepaEnrichmentAdapter
from ingest.adapters.shopify import ShopifyStorefrontAdapter
from ingest.budget import TokenBudgetManager
from ingest.cache import CacheClient
from ingest.config import WorkerSettings
from ingest.jobs import JobStore, SessionFactory
from ingest.pipeline import BatchJobOrchestrator
from ingest.pricing.rules import PricingRules, validate_rules
from ingest.reconciliation import ReconciliationEngine
from ingest.retry import BackoffPolicy

ENRICHMENT_MODES = ("live", "fixture")


def build_storefront(settings: WorkerSettings) -> StorefrontAdapter | None:
    if not settings.shopify_store_domain or not settings.shopify_access_token:
        return None
    return ShopifyStorefrontAdapter(settings)


def build_enrichment_adapter(settings: WorkerSettings, mode: str, cache: CacheClient) -> EnrichmentAdapter:
    if mode not in ENRICHMENT_MODES:
        raise ValueError(f"Unknown enrichment mode: {mode}")
    if mode == "fixture":
        return FixtureEnrichmentAdapter()
    return KeepaEnrichmentAdapter(settings, cache=cache)


def build_reconciliation_engine(settings: WorkerSettings, storefront: StorefrontAdapter | None = None) -> ReconciliationEngine:
    return ReconciliationEngine(
        storefront=storefront if storefront is not None else build_storefront(settings),
        backoff=BackoffPolicy(
            max_attempts=settings.push_max_attempts,
            base_delay_seconds=settings.push_base_delay_seconds,
            max_delay_seconds=settings.push_max_delay_seconds,
        ),
    )


def build_budget(settings: WorkerSettings) -> TokenBudgetManager:
    return TokenBudgetManager(
        settings.daily_token_limit,
        tokens_per_identifier=settings.tokens_per_identifier,
        reset_hour_utc=settings.token_reset_hour_utc,
    )


def build_orchestrator(
    settings: WorkerSettings,
    session_factory: SessionFactory,
    mode: str = "live",
    cache: CacheClient | None = None,
    budget: TokenBudgetManager | None = None,
) -> BatchJobOrchestrator:
    rules = PricingRules.from_settings(settings)
    problems = validate_rules(rules)
    if problems:
        raise ValueError("Invalid pricing rules: " + "; ".join(problems))
    cache = cache or CacheClient(settings)
    return BatchJobOrchestrator(
        session_factory=session_factory,
        store=JobStore(session_factory, cache),
        budget=budget or build_budget(settings),
        adapter=build_enrichment_adapter(settings, mode, cache),
        engine=build_reconciliation_engine(settings),
        settings=settings,
        rules=rules,
    )
