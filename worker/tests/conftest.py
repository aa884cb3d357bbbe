from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ingest.adapters.fixture_adapter import FixtureEnrichmentAdapter
from ingest.budget import TokenBudgetManager
from ingest.cache import CacheClient
from ingest.config import WorkerSettings
from ingest.jobs import JobStore
from ingest.models import Base
from ingest.pipeline import BatchJobOrchestrator
from ingest.reconciliation import KeyedLock, ReconciliationEngine
from ingest.retry import BackoffPolicy


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def settings() -> WorkerSettings:
    return WorkerSettings(
        database_url="sqlite:///:memory:",
        cache_enabled=False,
        keepa_api_key="test-key",
        daily_token_limit=100,
        sub_batch_size=2,
        sub_batch_pause_seconds=0.1,
        max_items_per_import=500,
    )


@pytest.fixture()
def session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory: sessionmaker) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def cache(settings: WorkerSettings) -> CacheClient:
    return CacheClient(settings)


@pytest.fixture()
def budget(settings: WorkerSettings, clock: FrozenClock) -> TokenBudgetManager:
    return TokenBudgetManager(settings.daily_token_limit, clock=clock)


@pytest.fixture()
def orchestrator(
    settings: WorkerSettings,
    session_factory: sessionmaker,
    cache: CacheClient,
    budget: TokenBudgetManager,
    sleeper: SleepRecorder,
) -> BatchJobOrchestrator:
    return BatchJobOrchestrator(
        session_factory=session_factory,
        store=JobStore(session_factory, cache),
        budget=budget,
        adapter=FixtureEnrichmentAdapter(),
        engine=ReconciliationEngine(backoff=BackoffPolicy(jitter=0), sleep=sleeper, locks=KeyedLock()),
        settings=settings,
        sleep=sleeper,
    )
