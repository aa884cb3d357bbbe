from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ingest.adapters.base import EnrichedRecord, StorefrontAdapter, StorefrontProduct, StorefrontRef
from ingest.errors import PipelineError, PipelineSystemError, RecordValidationError, StorefrontNotFound
from ingest.matching.duplicates import CatalogItem
from ingest.models import CatalogEntry, utc_now
from ingest.pricing.calculator import PriceQuote
from ingest.retry import BackoffPolicy, call_with_backoff

logger = logging.getLogger(__name__)

INSERTED = "inserted"
UPDATED = "updated"


class KeyedLock:
    """One mutex per key, created on first use and dropped when its last holder leaves."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]


# Shared by every engine in the process so concurrent jobs serialize per identifier.
catalog_locks = KeyedLock()


@dataclass
class ReconcileOutcome:
    entry: CatalogEntry
    action: str


@dataclass
class PushSummary:
    attempted: int = 0
    pushed: int = 0
    failed: int = 0


def to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


def amazon_url(identifier: str) -> str:
    return f"https://www.amazon.com/dp/{identifier}"


def missing_fields(record: EnrichedRecord, cost: float | None) -> list[str]:
    missing: list[str] = []
    if not record.title or not record.title.strip():
        missing.append("title")
    if not record.image_url:
        missing.append("image_url")
    if cost is None or cost <= 0:
        missing.append("price")
    return missing


def validate_record(record: EnrichedRecord, cost: float | None = None) -> None:
    effective = cost if cost is not None else record.price
    missing = missing_fields(record, effective)
    if missing:
        raise RecordValidationError(record.identifier, missing)


class CatalogRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_identifier(self, identifier: str) -> CatalogEntry | None:
        return self.db.execute(
            select(CatalogEntry).where(CatalogEntry.identifier == identifier.upper())
        ).scalar_one_or_none()

    def list_by_identifiers(self, identifiers: Sequence[str]) -> list[CatalogEntry]:
        keys = sorted({identifier.upper() for identifier in identifiers})
        if not keys:
            return []
        return list(self.db.execute(select(CatalogEntry).where(CatalogEntry.identifier.in_(keys))).scalars())

    def catalog_items(self) -> list[CatalogItem]:
        rows = self.db.execute(
            select(CatalogEntry.identifier, CatalogEntry.title).where(CatalogEntry.status != "removed")
        ).all()
        return [CatalogItem(identifier=row.identifier, title=row.title) for row in rows]

    def upsert(self, identifier: str, values: dict[str, object]) -> ReconcileOutcome:
        """Insert or update the row for ``identifier`` and commit.

        A concurrent insert of the same identifier trips the unique constraint;
        the loser rolls back, re-reads the winner's row and applies its values
        as an update.
        """
        key = identifier.upper()
        entry = self.find_by_identifier(key)
        if entry is None:
            now = utc_now()
            entry = CatalogEntry(identifier=key, created_at=now, updated_at=now, **values)
            self.db.add(entry)
            try:
                self.db.commit()
                return ReconcileOutcome(entry=entry, action=INSERTED)
            except IntegrityError:
                self.db.rollback()
                logger.info("Concurrent insert for %s, retrying as update", key)
                entry = self.find_by_identifier(key)
                if entry is None:
                    raise

        for field_name, value in values.items():
            setattr(entry, field_name, value)
        entry.updated_at = utc_now()
        self.db.commit()
        return ReconcileOutcome(entry=entry, action=UPDATED)

    def pending_push(self, limit: int = 50) -> list[CatalogEntry]:
        return list(
            self.db.execute(
                select(CatalogEntry)
                .where(CatalogEntry.push_status.in_(("not_pushed", "failed")), CatalogEntry.status != "removed")
                .order_by(CatalogEntry.updated_at.asc())
                .limit(limit)
            ).scalars()
        )


class ReconciliationEngine:
    def __init__(
        self,
        storefront: StorefrontAdapter | None = None,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        locks: KeyedLock | None = None,
    ) -> None:
        self.storefront = storefront
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self.locks = locks or catalog_locks

    def reconcile(
        self,
        db: Session,
        record: EnrichedRecord,
        quote: PriceQuote,
        job_id: str | None = None,
        category: str | None = None,
        push: bool = False,
    ) -> ReconcileOutcome:
        validate_record(record, quote.cost)
        identifier = record.identifier.upper()
        values: dict[str, object] = {
            "title": record.title.strip() if record.title else record.title,
            "description": record.description,
            "image_url": record.image_url,
            "images": list(record.images),
            "category": record.category or category,
            "brand": record.brand,
            "rating": record.rating,
            "review_count": record.review_count,
            "availability": record.availability,
            "is_prime": record.is_prime,
            "cost_price": to_decimal(quote.cost),
            "retail_price": to_decimal(quote.list_price),
            "compare_at_price": to_decimal(quote.compare_at_price),
            "competitor_prices": dict(quote.competitors),
            "profit_amount": to_decimal(quote.profit_amount),
            "profit_percent": to_decimal(quote.profit_percent),
            "profit_status": quote.profit_status,
            "source_url": amazon_url(identifier),
            "import_job_id": job_id,
            "last_enriched_at": record.fetched_at or utc_now(),
        }

        with self.locks.hold(identifier):
            outcome = CatalogRepository(db).upsert(identifier, values)
        logger.debug("Catalog %s %s", outcome.action, identifier)

        if push and self.storefront is not None:
            self.push(db, outcome.entry)
        return outcome

    def push(self, db: Session, entry: CatalogEntry) -> CatalogEntry:
        """Mirror a committed catalog row to the storefront.

        Failures are recorded on the row and never undo the catalog write.
        """
        if self.storefront is None:
            raise PipelineSystemError("No storefront adapter configured", identifier=entry.identifier)

        storefront = self.storefront
        product = to_storefront_product(entry)
        try:
            ref = call_with_backoff(
                lambda: _push_once(storefront, entry.storefront_product_id, product),
                self.backoff,
                sleep=self._sleep,
                label=f"storefront push {entry.identifier}",
            )
        except (PipelineError, httpx.HTTPError) as exc:
            logger.warning("Storefront push failed for %s: %s", entry.identifier, exc)
            entry.push_status = "failed"
            entry.push_error = str(exc)
        else:
            entry.storefront_product_id = ref.external_id
            entry.storefront_variant_id = ref.variant_id
            entry.push_status = "pushed"
            entry.push_error = None
        entry.updated_at = utc_now()
        db.commit()
        return entry

    def push_pending(self, db: Session, limit: int = 50) -> PushSummary:
        summary = PushSummary()
        for entry in CatalogRepository(db).pending_push(limit):
            summary.attempted += 1
            with self.locks.hold(entry.identifier):
                self.push(db, entry)
            if entry.push_status == "pushed":
                summary.pushed += 1
            else:
                summary.failed += 1
        logger.info("Storefront sync: %s attempted, %s pushed, %s failed", summary.attempted, summary.pushed, summary.failed)
        return summary


def to_storefront_product(entry: CatalogEntry) -> StorefrontProduct:
    tags = [tag for tag in (entry.category, entry.brand) if tag]
    return StorefrontProduct(
        identifier=entry.identifier,
        title=entry.title,
        body_html=entry.description or f"<p>{entry.title}</p>",
        price=float(entry.retail_price or 0),
        compare_at_price=float(entry.compare_at_price) if entry.compare_at_price is not None else None,
        image_url=entry.image_url,
        product_type=entry.category,
        status=entry.status,
        competitor_prices={key: float(value) for key, value in (entry.competitor_prices or {}).items()},
        tags=tags,
    )


def _push_once(storefront: StorefrontAdapter, external_id: str | None, product: StorefrontProduct) -> StorefrontRef:
    if external_id:
        try:
            return storefront.update(external_id, product)
        except StorefrontNotFound:
            logger.info("Storefront product %s missing for %s, recreating", external_id, product.identifier)
    return storefront.create(product)
