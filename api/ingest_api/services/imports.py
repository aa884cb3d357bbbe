from __future__ import annotations

import logging

from ingest.errors import BudgetExceeded, InputError, JobNotFound
from ingest.jobs import JobStatus
from ingest.pipeline import BatchJobOrchestrator, ImportOptions
from ingest_api.core.errors import ApiError, AppHTTPException, not_found
from ingest_api.schemas.imports import (
    DuplicateOut,
    ImportAcceptedOut,
    ImportRequest,
    JobStatusOut,
    RejectedInputOut,
    TokenBudgetOut,
)

logger = logging.getLogger(__name__)


def submit_import(orchestrator: BatchJobOrchestrator, payload: ImportRequest) -> ImportAcceptedOut:
    options = ImportOptions(**payload.options.model_dump())
    try:
        result = orchestrator.submit(payload.raw_inputs, options)
    except BudgetExceeded as exc:
        raise AppHTTPException(
            status_code=402,
            error=ApiError(
                code=exc.code,
                message=exc.message,
                details={"required": exc.required, "remaining": exc.remaining},
            ),
        ) from exc
    except InputError as exc:
        raise AppHTTPException(
            status_code=400,
            error=ApiError(code=exc.code, message=exc.message, details={"submitted": len(payload.raw_inputs)}),
        ) from exc

    return ImportAcceptedOut(
        job_id=result.job_id,
        accepted_count=result.accepted_count,
        tokens_reserved=result.tokens_reserved,
        rejected_inputs=[RejectedInputOut(**rejected.to_dict()) for rejected in result.rejected_inputs],
        duplicates=[DuplicateOut(**duplicate.to_dict()) for duplicate in result.duplicates],
    )


def get_import_status(orchestrator: BatchJobOrchestrator, job_id: str) -> JobStatusOut:
    status = orchestrator.store.get_status(job_id)
    if status is None:
        raise not_found("Import job not found", job_id=job_id)
    return _to_out(status)


def list_imports(orchestrator: BatchJobOrchestrator, limit: int = 20) -> list[JobStatusOut]:
    return [_to_out(status) for status in orchestrator.store.list_recent(limit)]


def stop_import(orchestrator: BatchJobOrchestrator, job_id: str) -> JobStatusOut:
    try:
        status = orchestrator.stop(job_id)
    except JobNotFound as exc:
        raise not_found("Import job not found", job_id=job_id) from exc
    return _to_out(status)


def get_budget(orchestrator: BatchJobOrchestrator) -> TokenBudgetOut:
    return TokenBudgetOut(**orchestrator.budget.snapshot().to_dict())


def _to_out(status: JobStatus) -> JobStatusOut:
    return JobStatusOut(**status.to_dict())
