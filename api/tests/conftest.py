import os

os.environ.setdefault("DROPSHIP_DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ingest.adapters.fixture_adapter import FixtureEnrichmentAdapter
from ingest.budget import TokenBudgetManager
from ingest.cache import CacheClient
from ingest.config import WorkerSettings
from ingest.jobs import JobStore
from ingest.models import Base
from ingest.pipeline import BatchJobOrchestrator
from ingest.reconciliation import KeyedLock, ReconciliationEngine
from ingest_api.api.deps import get_orchestrator
from ingest_api.core.config import get_settings
from ingest_api.main import app

TOKEN_LIMIT = 10


@pytest.fixture()
def orchestrator() -> BatchJobOrchestrator:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    settings = WorkerSettings(cache_enabled=False, daily_token_limit=TOKEN_LIMIT, sub_batch_size=2, sub_batch_pause_seconds=0)
    return BatchJobOrchestrator(
        session_factory=TestingSessionLocal,
        store=JobStore(TestingSessionLocal, CacheClient(settings)),
        budget=TokenBudgetManager(TOKEN_LIMIT),
        adapter=FixtureEnrichmentAdapter(),
        engine=ReconciliationEngine(locks=KeyedLock()),
        settings=settings,
        sleep=lambda _: None,
    )


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": get_settings().admin_token}


@pytest.fixture()
def client(orchestrator: BatchJobOrchestrator) -> TestClient:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
