from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from ingest.adapters.base import StorefrontAdapter, StorefrontProduct, StorefrontRef
from ingest.config import WorkerSettings, get_settings
from ingest.errors import PipelineSystemError, StorefrontNotFound, StorefrontResponseError, UpstreamRateLimited
from ingest.retry import parse_retry_after

logger = logging.getLogger(__name__)

METAFIELD_NAMESPACE = "dropship_pro"
COMPETITOR_NAMESPACE = "competitor_prices"


def build_handle(title: str) -> str:
    handle = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return handle[:255]


def to_shopify_payload(product: StorefrontProduct) -> dict[str, Any]:
    compare_at = product.compare_at_price if product.compare_at_price and product.compare_at_price > product.price else None
    metafields = [
        {"namespace": METAFIELD_NAMESPACE, "key": "asin", "value": product.identifier, "type": "single_line_text_field"},
    ]
    for key, value in sorted(product.competitor_prices.items()):
        metafields.append(
            {"namespace": COMPETITOR_NAMESPACE, "key": key, "value": f"{value:.2f}", "type": "single_line_text_field"}
        )
    return {
        "product": {
            "title": product.title,
            "body_html": product.body_html,
            "vendor": "Dropship Pro",
            "product_type": product.product_type or "General",
            "handle": build_handle(product.title),
            "status": "draft" if product.status in {"paused", "draft", "removed"} else "active",
            "tags": ", ".join(product.tags),
            "variants": [
                {
                    "sku": product.identifier,
                    "price": f"{product.price:.2f}",
                    "compare_at_price": f"{compare_at:.2f}" if compare_at else None,
                    "inventory_management": None,
                }
            ],
            "images": [{"src": product.image_url, "alt": product.title}] if product.image_url else [],
            "metafields": metafields,
        }
    }


class ShopifyStorefrontAdapter(StorefrontAdapter):
    def __init__(self, settings: WorkerSettings | None = None, client: httpx.Client | None = None) -> None:
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.shopify_store_domain or not self.settings.shopify_access_token:
                raise PipelineSystemError("Shopify storefront is not configured")
            client = httpx.Client(
                base_url=f"https://{self.settings.shopify_store_domain}/admin/api/{self.settings.shopify_api_version}",
                timeout=self.settings.shopify_timeout_seconds,
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self.settings.shopify_access_token,
                },
            )
        self.client = client

    def create(self, product: StorefrontProduct) -> StorefrontRef:
        response = self._request("POST", "/products.json", to_shopify_payload(product))
        return self._to_ref(response)

    def update(self, external_id: str, product: StorefrontProduct) -> StorefrontRef:
        payload = to_shopify_payload(product)
        payload["product"]["id"] = int(external_id) if external_id.isdigit() else external_id
        response = self._request("PUT", f"/products/{external_id}.json", payload)
        return self._to_ref(response)

    def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = self.client.request(method, path, json=payload)
        call_limit = response.headers.get("x-shopify-shop-api-call-limit")
        if call_limit and "/" in call_limit:
            current, _, maximum = call_limit.partition("/")
            if current.isdigit() and maximum.isdigit() and int(current) >= int(maximum) - 5:
                logger.warning("Shopify rate limit warning: %s", call_limit)

        if response.status_code == 429:
            raise UpstreamRateLimited(
                "Shopify rate limit exceeded",
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )
        if response.status_code == 404:
            raise StorefrontNotFound(f"Shopify resource not found: {path}")
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as exc:
            raise StorefrontResponseError(f"Shopify returned a non-JSON body for {method} {path}") from exc
        if not isinstance(body, dict):
            raise StorefrontResponseError(f"Shopify returned an unexpected body for {method} {path}")
        return body

    @staticmethod
    def _to_ref(body: dict[str, Any]) -> StorefrontRef:
        product = body.get("product")
        if not isinstance(product, dict) or product.get("id") is None:
            raise StorefrontResponseError("Shopify response has no product id")
        variants = product.get("variants") or []
        variant_id = variants[0].get("id") if variants and isinstance(variants[0], dict) else None
        return StorefrontRef(
            external_id=str(product["id"]),
            variant_id=str(variant_id) if variant_id is not None else None,
        )
