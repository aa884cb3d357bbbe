from fastapi import APIRouter, Depends

from ingest.pipeline import BatchJobOrchestrator
from ingest_api.api.deps import get_orchestrator, require_admin_token
from ingest_api.schemas.imports import TokenBudgetOut
from ingest_api.services.imports import get_budget

router = APIRouter(prefix="/v1/budget", tags=["budget"], dependencies=[Depends(require_admin_token)])


@router.get("", response_model=TokenBudgetOut)
def budget(orchestrator: BatchJobOrchestrator = Depends(get_orchestrator)) -> TokenBudgetOut:
    return get_budget(orchestrator)
