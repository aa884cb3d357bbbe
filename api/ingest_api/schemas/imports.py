from typing import Any

from pydantic import BaseModel, Field


class ImportOptionsIn(BaseModel):
    skip_existing: bool = False
    skip_cache: bool = False
    markup_percent: float | None = Field(default=None, gt=0, le=1000)
    check_titles: bool = False
    push_to_storefront: bool = False
    seed: int | None = None


class ImportRequest(BaseModel):
    raw_inputs: list[str | dict[str, Any]]
    options: ImportOptionsIn = Field(default_factory=ImportOptionsIn)


class RejectedInputOut(BaseModel):
    index: int
    raw: str
    reason: str


class DuplicateOut(BaseModel):
    index: int
    identifier: str
    match_type: str
    similarity: float
    original_index: int | None = None
    original_identifier: str | None = None


class ImportAcceptedOut(BaseModel):
    job_id: str
    accepted_count: int
    tokens_reserved: int
    rejected_inputs: list[RejectedInputOut]
    duplicates: list[DuplicateOut]


class JobErrorOut(BaseModel):
    identifier: str
    kind: str
    message: str


class JobStatusOut(BaseModel):
    id: str
    status: str
    total: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    inserted: int
    updated: int
    tokens_reserved: int
    tokens_used: int
    tokens_saved: int
    errors: list[JobErrorOut]
    created_at: str | None
    updated_at: str | None
    completed_at: str | None


class TokenBudgetOut(BaseModel):
    limit: int
    used: int
    remaining: int
    percentage: float
    resets_at: str
