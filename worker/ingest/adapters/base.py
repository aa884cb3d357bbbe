from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class EnrichedRecord:
    identifier: str
    title: str | None
    image_url: str | None
    price: float | None
    images: list[str] = field(default_factory=list)
    description: str | None = None
    brand: str | None = None
    category: str | None = None
    rating: float | None = None
    review_count: int | None = None
    availability: str | None = None
    is_prime: bool = False
    fetched_at: datetime | None = None
    source: str = "api"

    def to_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["fetched_at"] = self.fetched_at.isoformat() if self.fetched_at else None
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> EnrichedRecord:
        data = dict(payload)
        fetched_at = data.get("fetched_at")
        data["fetched_at"] = datetime.fromisoformat(str(fetched_at)) if fetched_at else None
        return cls(**data)  # type: ignore[arg-type]


@dataclass
class EnrichmentResult:
    records: list[EnrichedRecord] = field(default_factory=list)
    tokens_used: int = 0
    tokens_saved: int = 0
    from_cache: int = 0
    from_api: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def by_identifier(self) -> dict[str, EnrichedRecord]:
        return {record.identifier.upper(): record for record in self.records}


class EnrichmentAdapter(ABC):
    name: str = "enrichment"

    @abstractmethod
    def enrich(self, identifiers: list[str], skip_cache: bool = False) -> EnrichmentResult:
        raise NotImplementedError


@dataclass
class StorefrontProduct:
    identifier: str
    title: str
    body_html: str
    price: float
    compare_at_price: float | None
    image_url: str | None
    product_type: str | None
    status: str
    competitor_prices: dict[str, float] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StorefrontRef:
    external_id: str
    variant_id: str | None


class StorefrontAdapter(ABC):
    @abstractmethod
    def create(self, product: StorefrontProduct) -> StorefrontRef:
        raise NotImplementedError

    @abstractmethod
    def update(self, external_id: str, product: StorefrontProduct) -> StorefrontRef:
        """Raise ``StorefrontNotFound`` when ``external_id`` no longer exists."""
        raise NotImplementedError
