from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from ingest.adapters.base import EnrichedRecord, EnrichmentAdapter, EnrichmentResult
from ingest.cache import CacheClient
from ingest.config import WorkerSettings, get_settings
from ingest.errors import UpstreamRateLimited, UpstreamUnavailable
from ingest.retry import BackoffPolicy, call_with_backoff, parse_retry_after

RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}
MAX_IDENTIFIERS_PER_REQUEST = 100
IMAGE_BASE_URL = "https://images-na.ssl-images-amazon.com/images/I/"

# Offsets into Keepa's stats.current array.
PRICE_AMAZON = 0
PRICE_NEW = 1
RATING = 16
REVIEW_COUNT = 17

logger = logging.getLogger(__name__)


class KeepaEnrichmentAdapter(EnrichmentAdapter):
    name = "keepa"

    def __init__(
        self,
        settings: WorkerSettings | None = None,
        cache: CacheClient | None = None,
        client: httpx.Client | None = None,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache or CacheClient(self.settings)
        self.backoff = backoff or BackoffPolicy(max_attempts=3, base_delay_seconds=0.6, max_delay_seconds=5.0)
        self._sleep = sleep
        self.client = client or httpx.Client(
            base_url=self.settings.keepa_base_url,
            timeout=self.settings.keepa_timeout_seconds,
            headers={"Accept": "application/json"},
        )

    def enrich(self, identifiers: list[str], skip_cache: bool = False) -> EnrichmentResult:
        result = EnrichmentResult()
        unique = list(dict.fromkeys(identifier.upper() for identifier in identifiers))
        if not unique:
            return result

        to_fetch = unique
        if not skip_cache:
            to_fetch = []
            for identifier in unique:
                cached = self._cached_record(identifier)
                if cached is None:
                    to_fetch.append(identifier)
                    continue
                result.records.append(cached)
            result.from_cache = len(result.records)
            result.tokens_saved = result.from_cache
            logger.info("Keepa cache: %s cached, %s need fetch", result.from_cache, len(to_fetch))

        if to_fetch and not self.settings.keepa_api_key:
            for identifier in to_fetch:
                result.errors[identifier] = "Keepa API key not configured"
            return result

        chunks = [to_fetch[i : i + MAX_IDENTIFIERS_PER_REQUEST] for i in range(0, len(to_fetch), MAX_IDENTIFIERS_PER_REQUEST)]
        for chunk in chunks:
            try:
                payload = self._fetch_products(chunk)
            except (httpx.HTTPError, ValueError, UpstreamUnavailable) as exc:
                logger.warning("Keepa request failed for %s identifiers: %s", len(chunk), exc)
                for identifier in chunk:
                    result.errors[identifier] = f"Fetch error: {exc}"
                continue

            if payload.get("error"):
                message = str((payload["error"] or {}).get("message") or "Unknown error")
                for identifier in chunk:
                    result.errors[identifier] = message
                continue

            result.tokens_used += len(chunk)
            for raw in payload.get("products") or []:
                try:
                    record = self._transform(raw)
                except (KeyError, TypeError, ValueError) as exc:
                    asin = str(raw.get("asin", "")).upper() if isinstance(raw, dict) else ""
                    logger.warning("Could not transform Keepa product %s: %s", asin, exc)
                    if asin:
                        result.errors[asin] = "Transform error"
                    continue
                result.records.append(record)
                result.from_api += 1
                self.cache.set_json(self._cache_key(record.identifier), record.to_dict(), self.settings.keepa_cache_ttl_seconds)

        logger.info(
            "Keepa enrichment complete: %s records, %s tokens used, %s saved",
            len(result.records),
            result.tokens_used,
            result.tokens_saved,
        )
        return result

    def _cache_key(self, identifier: str) -> str:
        return f"keepa:product:{self.settings.keepa_domain}:{identifier}"

    def _cached_record(self, identifier: str) -> EnrichedRecord | None:
        cached = self.cache.get_json(self._cache_key(identifier))
        if not cached.hit or not isinstance(cached.value, dict):
            return None
        record = EnrichedRecord.from_dict(cached.value)
        if record.fetched_at is None:
            return None
        age = datetime.now(timezone.utc) - record.fetched_at
        if age > timedelta(seconds=self.settings.keepa_cache_ttl_seconds):
            return None
        record.source = "cache"
        return record

    def _fetch_products(self, identifiers: list[str]) -> dict[str, Any]:
        params = {
            "key": self.settings.keepa_api_key,
            "domain": str(self.settings.keepa_domain),
            "asin": ",".join(identifiers),
            "stats": "90",
            "rating": "1",
            "history": "0",
            "offers": "0",
        }
        return call_with_backoff(
            lambda: self._fetch_once(params),
            self.backoff,
            sleep=self._sleep,
            label=f"Keepa product request ({len(identifiers)} identifiers)",
        )

    def _fetch_once(self, params: dict[str, str]) -> dict[str, Any]:
        try:
            response = self.client.get("/product", params=params)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise UpstreamUnavailable(f"Keepa request failed: {exc}") from exc

        retry_after = parse_retry_after(response.headers.get("retry-after"))
        if response.status_code == 429:
            raise UpstreamRateLimited("Keepa rate limit exceeded", retry_after=retry_after)
        if response.status_code in RETRYABLE_HTTP_STATUSES:
            raise UpstreamUnavailable(f"Retryable status {response.status_code} from Keepa", retry_after=retry_after)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Unexpected Keepa response body")
        return payload

    def _transform(self, raw: dict[str, Any]) -> EnrichedRecord:
        identifier = str(raw["asin"]).upper()
        current = (raw.get("stats") or {}).get("current") or []
        price = _keepa_price(current, PRICE_AMAZON)
        if price is None:
            price = _keepa_price(current, PRICE_NEW)

        images = [_image_url(code) for code in str(raw.get("imagesCSV") or "").split(",") if code.strip()]
        rating_raw = _stat(current, RATING)
        reviews_raw = _stat(current, REVIEW_COUNT)
        category_tree = raw.get("categoryTree") or []
        category = str(category_tree[-1].get("name")) if category_tree and isinstance(category_tree[-1], dict) else None

        return EnrichedRecord(
            identifier=identifier,
            title=(raw.get("title") or "").strip() or None,
            image_url=images[0] if images else None,
            price=price,
            images=images,
            description=raw.get("description"),
            brand=raw.get("brand"),
            category=category,
            rating=round(rating_raw / 10, 2) if rating_raw is not None else None,
            review_count=int(reviews_raw) if reviews_raw is not None else None,
            availability="in_stock" if price is not None else "out_of_stock",
            is_prime=bool(raw.get("isPrimeEligible") or raw.get("isPrime")),
            fetched_at=datetime.now(timezone.utc),
            source="api",
        )


def _stat(current: list[Any], index: int) -> float | None:
    if index >= len(current) or current[index] is None:
        return None
    value = float(current[index])
    return value if value >= 0 else None


def _keepa_price(current: list[Any], index: int) -> float | None:
    value = _stat(current, index)
    if value is None or value <= 0:
        return None
    return value / 100


def _image_url(code: str) -> str:
    code = code.strip()
    if code.startswith("http"):
        return code
    return f"{IMAGE_BASE_URL}{code}"
