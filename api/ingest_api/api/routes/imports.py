from fastapi import APIRouter, BackgroundTasks, Depends, Query

from ingest.pipeline import BatchJobOrchestrator
from ingest_api.api.deps import get_orchestrator, require_admin_token
from ingest_api.schemas.imports import ImportAcceptedOut, ImportRequest, JobStatusOut
from ingest_api.services.imports import get_import_status, list_imports, stop_import, submit_import

router = APIRouter(prefix="/v1/imports", tags=["imports"], dependencies=[Depends(require_admin_token)])


@router.post("", response_model=ImportAcceptedOut, status_code=202)
def create_import(
    payload: ImportRequest,
    background_tasks: BackgroundTasks,
    orchestrator: BatchJobOrchestrator = Depends(get_orchestrator),
) -> ImportAcceptedOut:
    accepted = submit_import(orchestrator, payload)
    background_tasks.add_task(orchestrator.process, accepted.job_id)
    return accepted


@router.get("", response_model=list[JobStatusOut])
def recent_imports(
    limit: int = Query(default=20, ge=1, le=200),
    orchestrator: BatchJobOrchestrator = Depends(get_orchestrator),
) -> list[JobStatusOut]:
    return list_imports(orchestrator, limit=limit)


@router.get("/{job_id}", response_model=JobStatusOut)
def import_status(job_id: str, orchestrator: BatchJobOrchestrator = Depends(get_orchestrator)) -> JobStatusOut:
    return get_import_status(orchestrator, job_id)


@router.post("/{job_id}/stop", response_model=JobStatusOut)
def stop(job_id: str, orchestrator: BatchJobOrchestrator = Depends(get_orchestrator)) -> JobStatusOut:
    return stop_import(orchestrator, job_id)
