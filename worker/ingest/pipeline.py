from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass, field, replace

from sqlalchemy.orm import Session

from ingest.adapters.base import EnrichedRecord, EnrichmentAdapter, EnrichmentResult
from ingest.budget import TokenBudgetManager
from ingest.config import WorkerSettings, get_settings
from ingest.errors import (
    EnrichmentMiss,
    InputError,
    JobNotFound,
    PipelineError,
    PipelineSystemError,
)
from ingest.jobs import SYSTEM_IDENTIFIER, JobError, JobStatus, JobStore, SessionFactory
from ingest.matching.duplicates import BatchItem, Duplicate, DuplicateDetector, DuplicateOrigin
from ingest.matching.normalization import normalize_identifier, parse_raw_input
from ingest.models import TERMINAL_JOB_STATUSES, BatchJob, utc_now
from ingest.pricing.calculator import calculate_all_prices
from ingest.pricing.rules import PricingRules
from ingest.reconciliation import INSERTED, CatalogRepository, KeyedLock, ReconciliationEngine, validate_record

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ImportOptions:
    skip_existing: bool = False
    skip_cache: bool = False
    markup_percent: float | None = None
    check_titles: bool = False
    push_to_storefront: bool = False
    seed: int | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, object] | None) -> ImportOptions:
        payload = payload or {}
        known = {name: payload[name] for name in cls.__dataclass_fields__ if name in payload}
        return cls(**known)  # type: ignore[arg-type]


@dataclass
class RejectedInput:
    index: int
    raw: str
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {"index": self.index, "raw": self.raw, "reason": self.reason}


@dataclass
class SubmissionResult:
    job_id: str
    accepted_count: int
    rejected_inputs: list[RejectedInput] = field(default_factory=list)
    duplicates: list[Duplicate] = field(default_factory=list)
    tokens_reserved: int = 0


@dataclass
class ItemOutcome:
    action: str
    error: JobError | None = None


class BatchJobOrchestrator:
    """Runs import jobs: submission, sub-batched processing and cooperative stop.

    ``submit`` does all the synchronous work that can be rejected (parsing,
    dedup, budget) and persists a ``pending`` job. ``process`` walks the job's
    identifiers in sub-batches, committing after every item so the status read
    model always reflects completed work. ``stop`` flips the job to ``stopped``;
    the processing loop notices between sub-batches and between items.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        store: JobStore,
        budget: TokenBudgetManager,
        adapter: EnrichmentAdapter,
        engine: ReconciliationEngine | None = None,
        settings: WorkerSettings | None = None,
        rules: PricingRules | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.budget = budget
        self.adapter = adapter
        self.engine = engine or ReconciliationEngine()
        self.settings = settings or get_settings()
        self.rules = rules or PricingRules.from_settings(self.settings)
        self._sleep = sleep
        self._job_locks = KeyedLock()

    def submit(self, raw_inputs: Sequence[str | Mapping[str, object]], options: ImportOptions | None = None) -> SubmissionResult:
        options = options or ImportOptions()
        rejected: list[RejectedInput] = []
        batch: list[BatchItem] = []
        positions: list[int] = []
        costs: dict[str, float] = {}
        categories: dict[str, str] = {}

        for index, value in enumerate(raw_inputs):
            record = parse_raw_input(value)
            identifier = normalize_identifier(record.raw)
            if identifier is None:
                error = InputError(record.raw)
                rejected.append(RejectedInput(index=index, raw=record.raw, reason=error.message))
                continue
            batch.append(BatchItem(identifier=identifier, title=record.title))
            positions.append(index)
            if record.cost is not None and identifier not in costs:
                costs[identifier] = record.cost
            if record.category and identifier not in categories:
                categories[identifier] = record.category

        with self.session_factory() as db:
            catalog = CatalogRepository(db).catalog_items() if options.check_titles else []
            detector = DuplicateDetector(self.settings.fuzzy_title_threshold, check_titles=options.check_titles)
            report = detector.partition(batch, catalog, match_catalog_keys=False)
            duplicates = [_remap_duplicate(duplicate, positions) for duplicate in report.duplicates]

            accepted = report.unique_identifiers
            limit = self.settings.max_items_per_import
            if len(accepted) > limit:
                for item in report.unique[limit:]:
                    rejected.append(
                        RejectedInput(
                            index=positions[item.index],
                            raw=item.identifier,
                            reason=f"Import limit of {limit} items exceeded",
                        )
                    )
                accepted = accepted[:limit]
            rejected.sort(key=lambda item: item.index)

            if not accepted:
                raise InputError("", "No valid identifiers in batch")

            cost = self.budget.estimate(len(accepted))
            self.budget.reserve(cost)
            payload = options.to_dict()
            payload["costs"] = {key: value for key, value in costs.items() if key in accepted}
            payload["categories"] = {key: value for key, value in categories.items() if key in accepted}
            try:
                job = self.store.create(db, accepted, payload, tokens_reserved=cost)
            except Exception:
                db.rollback()
                self.budget.release(cost)
                raise
            job_id = job.id

        logger.info(
            "Accepted import job %s: %s accepted, %s rejected, %s duplicates",
            job_id,
            len(accepted),
            len(rejected),
            len(duplicates),
        )
        return SubmissionResult(
            job_id=job_id,
            accepted_count=len(accepted),
            rejected_inputs=rejected,
            duplicates=duplicates,
            tokens_reserved=cost,
        )

    def start(self, job_id: str) -> threading.Thread:
        thread = threading.Thread(target=self.process, args=(job_id,), name=f"import-{job_id[:8]}", daemon=True)
        thread.start()
        return thread

    def process(self, job_id: str) -> JobStatus:
        with self.session_factory() as db:
            job = self.store.load(db, job_id)
            if job is None:
                raise JobNotFound(job_id)

            with self._job_locks.hold(job_id):
                db.refresh(job)
                if job.status != "pending":
                    logger.info("Import job %s is %s, not processing", job_id, job.status)
                    return JobStatus.from_job(job)
                job.status = "processing"
                self.store.save(db, job)

            logger.info("Processing import job %s (%s identifiers)", job_id, job.total)
            try:
                self._run(db, job)
            except Exception as exc:
                logger.exception("Import job %s failed", job_id)
                db.rollback()
                with self._job_locks.hold(job_id):
                    db.refresh(job)
                    if job.status not in TERMINAL_JOB_STATUSES:
                        job.status = "failed"
                        job.completed_at = utc_now()
                        self.store.append_error(job, JobError(SYSTEM_IDENTIFIER, "system", str(exc)))
                        self.store.save(db, job)
            finally:
                self._release_unspent(job)

            logger.info(
                "Import job %s finished as %s: %s succeeded, %s failed, %s skipped",
                job_id,
                job.status,
                job.succeeded,
                job.failed,
                job.skipped,
            )
            return JobStatus.from_job(job)

    def stop(self, job_id: str) -> JobStatus:
        with self.session_factory() as db, self._job_locks.hold(job_id):
            job = self.store.load(db, job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status in TERMINAL_JOB_STATUSES:
                return JobStatus.from_job(job)

            was_pending = job.status == "pending"
            job.status = "stopped"
            job.completed_at = utc_now()
            self.store.append_error(job, JobError(SYSTEM_IDENTIFIER, "cancelled", "Cancelled by user"))
            self.store.save(db, job)
            logger.info("Import job %s stopped after %s/%s items", job_id, job.processed, job.total)
            if was_pending:
                self._release_unspent(job)
            return JobStatus.from_job(job)

    def _run(self, db: Session, job: BatchJob) -> None:
        options = ImportOptions.from_dict(job.options)
        rules = self.rules.with_markup_percent(options.markup_percent)
        costs = dict((job.options or {}).get("costs") or {})
        categories = dict((job.options or {}).get("categories") or {})
        identifiers = list(job.identifiers)
        size = self.settings.sub_batch_size
        repository = CatalogRepository(db)

        for start in range(0, len(identifiers), size):
            if not self._is_running(db, job):
                return
            chunk = identifiers[start : start + size]
            existing = {entry.identifier for entry in repository.list_by_identifiers(chunk)}
            skipped = {identifier for identifier in chunk if options.skip_existing and identifier in existing}
            to_enrich = [identifier for identifier in chunk if identifier not in skipped]

            result = self.adapter.enrich(to_enrich, skip_cache=options.skip_cache) if to_enrich else EnrichmentResult()
            if result.tokens_saved:
                self.budget.release(result.tokens_saved)
            records = result.by_identifier()
            with self._job_locks.hold(job.id):
                db.refresh(job)
                job.tokens_used += result.tokens_used
                job.tokens_saved += result.tokens_saved
                self.store.save(db, job)

            for offset, identifier in enumerate(chunk):
                if not self._is_running(db, job):
                    return
                if identifier in skipped:
                    outcome = ItemOutcome(action=SKIPPED)
                else:
                    outcome = self._process_item(
                        db,
                        job.id,
                        identifier,
                        records.get(identifier),
                        result,
                        cost=costs.get(identifier),
                        category=categories.get(identifier),
                        seed=options.seed + start + offset if options.seed is not None else None,
                        rules=rules,
                        push=options.push_to_storefront,
                    )
                self._apply(db, job, outcome)

            logger.info("Import job %s: %s/%s processed", job.id, job.processed, job.total)
            if start + size < len(identifiers) and self.settings.sub_batch_pause_seconds > 0:
                self._sleep(self.settings.sub_batch_pause_seconds)

        with self._job_locks.hold(job.id):
            db.refresh(job)
            if job.status == "processing":
                job.status = "completed"
                job.completed_at = utc_now()
                self.store.save(db, job)

    def _process_item(
        self,
        db: Session,
        job_id: str,
        identifier: str,
        record: EnrichedRecord | None,
        result: EnrichmentResult,
        cost: float | None,
        category: str | None,
        seed: int | None,
        rules: PricingRules,
        push: bool,
    ) -> ItemOutcome:
        try:
            if record is None:
                raise EnrichmentMiss(identifier, result.errors.get(identifier))
            unit_cost = cost if cost is not None else record.price
            validate_record(record, unit_cost)
            quote = calculate_all_prices(unit_cost, seed=seed, rules=rules)
            reconciled = self.engine.reconcile(db, record, quote, job_id=job_id, category=category, push=push)
        except PipelineSystemError:
            raise
        except PipelineError as exc:
            logger.info("Import job %s: %s failed (%s)", job_id, identifier, exc.message)
            return ItemOutcome(action=FAILED, error=JobError(identifier, exc.kind, exc.message))
        return ItemOutcome(action=reconciled.action)

    def _apply(self, db: Session, job: BatchJob, outcome: ItemOutcome) -> None:
        with self._job_locks.hold(job.id):
            db.refresh(job)
            job.processed += 1
            if outcome.action == SKIPPED:
                job.skipped += 1
            elif outcome.action == FAILED:
                job.failed += 1
                if outcome.error is not None:
                    self.store.append_error(job, outcome.error)
            else:
                job.succeeded += 1
                if outcome.action == INSERTED:
                    job.inserted += 1
                else:
                    job.updated += 1
            self.store.save(db, job)

    def _is_running(self, db: Session, job: BatchJob) -> bool:
        with self._job_locks.hold(job.id):
            db.refresh(job)
            return job.status == "processing"

    def _release_unspent(self, job: BatchJob) -> None:
        unspent = job.tokens_reserved - job.tokens_used - job.tokens_saved
        if unspent > 0:
            self.budget.release(unspent)
            logger.info("Released %s unspent tokens from import job %s", unspent, job.id)


def _remap_duplicate(duplicate: Duplicate, positions: list[int]) -> Duplicate:
    original = duplicate.original
    if original.batch_index is not None:
        original = DuplicateOrigin(batch_index=positions[original.batch_index])
    return replace(duplicate, index=positions[duplicate.index], original=original)
