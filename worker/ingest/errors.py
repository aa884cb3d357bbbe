"""Error taxonomy for the ingestion pipeline.

Item-scoped errors (``EnrichmentMiss``, ``RecordValidationError``, exhausted
``UpstreamUnavailable`` or ``UpstreamRateLimited``, ``PricingError``) are
recorded on the job and the loop continues. ``PipelineSystemError`` aborts the job. ``BudgetExceeded`` and
``InputError`` surface at submission time, before a job exists.
"""

from __future__ import annotations


class PipelineError(Exception):
    code = "pipeline_error"
    kind = "system"

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class InputError(PipelineError):
    code = "invalid_input"
    kind = "input"

    def __init__(self, raw: str, message: str = "Invalid identifier format") -> None:
        super().__init__(message)
        self.raw = raw


class BudgetExceeded(PipelineError):
    code = "budget_exceeded"
    kind = "budget"

    def __init__(self, required: int, remaining: int) -> None:
        super().__init__(f"Insufficient enrichment tokens. Need {required}, have {remaining}")
        self.required = required
        self.remaining = remaining

    @property
    def shortfall(self) -> int:
        return self.required - self.remaining


class EnrichmentMiss(PipelineError):
    code = "enrichment_miss"
    kind = "enrichment_miss"

    def __init__(self, identifier: str, reason: str | None = None) -> None:
        super().__init__(reason or "No data returned by enrichment provider", identifier=identifier)


class RecordValidationError(PipelineError):
    code = "validation_error"
    kind = "validation"

    def __init__(self, identifier: str, missing: list[str]) -> None:
        super().__init__(f"Missing or invalid required fields: {', '.join(missing)}", identifier=identifier)
        self.missing = missing


class PricingError(PipelineError):
    kind = "validation"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class UpstreamUnavailable(PipelineError):
    code = "upstream_unavailable"
    kind = "upstream"

    def __init__(self, message: str = "Upstream temporarily unavailable", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamRateLimited(UpstreamUnavailable):
    code = "rate_limited"
    kind = "rate_limited"

    def __init__(self, message: str = "Upstream rate limit hit", retry_after: float | None = None) -> None:
        super().__init__(message, retry_after=retry_after)


class StorefrontNotFound(PipelineError):
    code = "storefront_not_found"
    kind = "push"


class StorefrontResponseError(PipelineError):
    code = "storefront_bad_response"
    kind = "push"


class PipelineSystemError(PipelineError):
    code = "system_error"
    kind = "system"


class JobNotFound(PipelineError):
    code = "job_not_found"
    kind = "system"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Import job {job_id} not found")
        self.job_id = job_id
