from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from ingest.adapters.base import EnrichedRecord, EnrichmentAdapter, EnrichmentResult
from ingest.matching.normalization import normalize_identifier


class FixtureEnrichmentAdapter(EnrichmentAdapter):
    name = "fixture"
    fixture_name = "enrichment.json"

    def __init__(self, fixture_path: Path | None = None) -> None:
        root = Path(__file__).resolve().parents[1]
        self.fixture_path = fixture_path or root / "fixtures" / self.fixture_name

    def enrich(self, identifiers: list[str], skip_cache: bool = False) -> EnrichmentResult:
        payload = json.loads(self.fixture_path.read_text())
        items = {normalize_identifier(str(item["asin"])): item for item in payload.get("items", [])}
        result = EnrichmentResult(tokens_used=len(identifiers))

        for identifier in identifiers:
            item = items.get(identifier.upper())
            if item is None:
                continue
            images = [str(url) for url in item.get("images", [])]
            result.records.append(
                EnrichedRecord(
                    identifier=identifier.upper(),
                    title=item.get("title"),
                    image_url=item.get("image_url") or (images[0] if images else None),
                    price=float(item["price"]) if item.get("price") is not None else None,
                    images=images,
                    description=item.get("description"),
                    brand=item.get("brand"),
                    category=item.get("category"),
                    rating=float(item["rating"]) if item.get("rating") is not None else None,
                    review_count=int(item["review_count"]) if item.get("review_count") is not None else None,
                    availability=item.get("availability"),
                    is_prime=bool(item.get("is_prime", False)),
                    fetched_at=datetime.now(timezone.utc),
                    source="fixture",
                )
            )
        result.from_api = len(result.records)
        return result
