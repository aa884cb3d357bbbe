from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


JsonDict = dict[str, object]

CATALOG_STATUSES = ("draft", "pending", "active", "paused", "removed")
PUSH_STATUSES = ("not_pushed", "pushed", "failed")
JOB_STATUSES = ("pending", "processing", "completed", "failed", "stopped")
TERMINAL_JOB_STATUSES = frozenset({"completed", "failed", "stopped"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class CatalogEntry(Base):
    __tablename__ = "catalog_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    identifier: Mapped[str] = mapped_column(String(10), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(512), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    images: Mapped[list[str]] = mapped_column(JSON, default=list)
    category: Mapped[str | None] = mapped_column(String(128), index=True)
    brand: Mapped[str | None] = mapped_column(String(128))
    rating: Mapped[float | None] = mapped_column(Float)
    review_count: Mapped[int | None] = mapped_column(Integer)
    availability: Mapped[str | None] = mapped_column(String(64))
    is_prime: Mapped[bool] = mapped_column(Boolean, default=False)

    cost_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    retail_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    compare_at_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    competitor_prices: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    profit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    profit_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))
    profit_status: Mapped[str | None] = mapped_column(String(32))

    status: Mapped[str] = mapped_column(String(16), index=True, default="draft")
    storefront_product_id: Mapped[str | None] = mapped_column(String(64))
    storefront_variant_id: Mapped[str | None] = mapped_column(String(64))
    push_status: Mapped[str] = mapped_column(String(16), index=True, default="not_pushed")
    push_error: Mapped[str | None] = mapped_column(Text)

    source_url: Mapped[str | None] = mapped_column(Text)
    import_job_id: Mapped[str | None] = mapped_column(String(36), index=True)
    last_enriched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class BatchJob(Base):
    __tablename__ = "batch_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    identifiers: Mapped[list[str]] = mapped_column(JSON, default=list)
    options: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(16), index=True, default="pending")
    total: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, default=0)
    failed: Mapped[int] = mapped_column(Integer, default=0)
    skipped: Mapped[int] = mapped_column(Integer, default=0)
    inserted: Mapped[int] = mapped_column(Integer, default=0)
    updated: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list[JsonDict]] = mapped_column(JSON, default=list)
    tokens_reserved: Mapped[int] = mapped_column(Integer, default=0)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    tokens_saved: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
