from functools import lru_cache

from fastapi import Header

from ingest.bootstrap import build_orchestrator
from ingest.config import get_settings as get_worker_settings
from ingest.pipeline import BatchJobOrchestrator
from ingest_api.core.config import get_settings
from ingest_api.core.errors import ApiError, AppHTTPException
from ingest_api.db.session import SessionLocal


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if x_admin_token != settings.admin_token:
        raise AppHTTPException(status_code=401, error=ApiError(code="unauthorized", message="Invalid admin token"))


@lru_cache
def get_orchestrator() -> BatchJobOrchestrator:
    # One orchestrator per process: it owns the token budget and the job stop locks.
    return build_orchestrator(get_worker_settings(), SessionLocal, mode=get_settings().enrichment_mode)
