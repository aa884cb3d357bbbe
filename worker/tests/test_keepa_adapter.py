import httpx

from ingest.adapters.keepa import KeepaEnrichmentAdapter
from ingest.cache import CacheClient
from ingest.config import WorkerSettings
from ingest.retry import BackoffPolicy


def _product(asin: str, amazon_cents: int = 1299, new_cents: int = -1) -> dict[str, object]:
    current = [-1] * 18
    current[0] = amazon_cents
    current[1] = new_cents
    current[16] = 45
    current[17] = 18211
    return {
        "asin": asin,
        "title": f"Product {asin} ",
        "imagesCSV": "61lids12.jpg,71lids12b.jpg",
        "stats": {"current": current},
        "categoryTree": [{"name": "Home & Kitchen"}, {"name": "Food Covers"}],
        "brand": "Kitchenix",
        "isPrimeEligible": True,
    }


def _adapter(settings, handler, sleeper=None, cache=None) -> KeepaEnrichmentAdapter:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url=settings.keepa_base_url)
    return KeepaEnrichmentAdapter(
        settings,
        cache=cache or CacheClient(settings),
        client=client,
        backoff=BackoffPolicy(max_attempts=3, base_delay_seconds=0, jitter=0),
        sleep=sleeper or (lambda _: None),
    )


def _echo_handler(requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        asins = request.url.params["asin"].split(",")
        return httpx.Response(200, json={"products": [_product(asin) for asin in asins]})

    return handler


def test_enrich_transforms_keepa_product(settings):
    requests: list[httpx.Request] = []
    result = _adapter(settings, _echo_handler(requests)).enrich(["b07xj8c8f5"])

    record = result.by_identifier()["B07XJ8C8F5"]
    assert record.title == "Product B07XJ8C8F5"
    assert record.price == 12.99
    assert record.image_url == "https://images-na.ssl-images-amazon.com/images/I/61lids12.jpg"
    assert len(record.images) == 2
    assert record.rating == 4.5
    assert record.review_count == 18211
    assert record.category == "Food Covers"
    assert record.is_prime is True
    assert record.availability == "in_stock"
    assert result.tokens_used == 1
    assert requests[0].url.params["key"] == "test-key"


def test_enrich_falls_back_to_new_price(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"products": [_product("B07XJ8C8F5", amazon_cents=-1, new_cents=1549)]})

    record = _adapter(settings, handler).enrich(["B07XJ8C8F5"]).records[0]
    assert record.price == 15.49


def test_second_enrich_is_served_from_cache(settings):
    requests: list[httpx.Request] = []
    adapter = _adapter(settings, _echo_handler(requests))
    adapter.enrich(["B07XJ8C8F5", "B08L5TNJHG"])

    result = adapter.enrich(["B07XJ8C8F5", "B08L5TNJHG", "B09B8RVKGW"])

    assert result.from_cache == 2
    assert result.tokens_saved == 2
    assert result.tokens_used == 1
    assert requests[-1].url.params["asin"] == "B09B8RVKGW"
    assert {record.source for record in result.records} == {"cache", "api"}


def test_skip_cache_always_fetches(settings):
    requests: list[httpx.Request] = []
    adapter = _adapter(settings, _echo_handler(requests))
    adapter.enrich(["B07XJ8C8F5"])
    result = adapter.enrich(["B07XJ8C8F5"], skip_cache=True)

    assert result.tokens_saved == 0
    assert result.tokens_used == 1
    assert len(requests) == 2


def test_large_batches_are_chunked(settings):
    requests: list[httpx.Request] = []
    identifiers = [f"B{index:09d}" for index in range(150)]
    result = _adapter(settings, _echo_handler(requests)).enrich(identifiers)

    assert len(requests) == 2
    assert len(requests[0].url.params["asin"].split(",")) == 100
    assert len(result.records) == 150
    assert result.tokens_used == 150


def test_rate_limit_is_retried_with_retry_after(settings, sleeper):
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "3"})
        return httpx.Response(200, json={"products": [_product("B07XJ8C8F5")]})

    result = _adapter(settings, handler, sleeper=sleeper).enrich(["B07XJ8C8F5"])

    assert len(result.records) == 1
    assert sleeper.calls == [3.0]


def test_exhausted_retries_become_item_errors(settings, sleeper):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(503)

    result = _adapter(settings, handler, sleeper=sleeper).enrich(["B07XJ8C8F5"])

    assert result.records == []
    assert result.tokens_used == 0
    assert result.errors["B07XJ8C8F5"] == "Fetch error: Retryable status 503 from Keepa"
    assert len(requests) == 3
    assert sleeper.calls == [0, 0]


def test_network_errors_are_retried(settings):
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"products": [_product("B07XJ8C8F5")]})

    result = _adapter(settings, handler).enrich(["B07XJ8C8F5"])

    assert calls["count"] == 2
    assert result.by_identifier()["B07XJ8C8F5"].price == 12.99


def test_client_errors_are_not_retried(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(400, json={"error": "bad request"})

    result = _adapter(settings, handler).enrich(["B07XJ8C8F5"])

    assert len(requests) == 1
    assert result.errors["B07XJ8C8F5"].startswith("Fetch error")


def test_provider_error_payload_marks_chunk(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": {"message": "Not enough tokens"}})

    result = _adapter(settings, handler).enrich(["B07XJ8C8F5"])
    assert result.errors == {"B07XJ8C8F5": "Not enough tokens"}


def test_missing_api_key_reports_every_identifier():
    settings = WorkerSettings(keepa_api_key=None, cache_enabled=False)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = _adapter(settings, handler).enrich(["B07XJ8C8F5", "B08L5TNJHG"])
    assert set(result.errors) == {"B07XJ8C8F5", "B08L5TNJHG"}
    assert result.records == []
