"""Shopify Admin REST catalog."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Iterable

import httpx

from priceadjuster.catalog import UNSET
from priceadjuster.catalog.models import Metafield, Product, parse_metafield, parse_product
from priceadjuster.errors import CatalogError, NotFoundError, TransientUpstreamError
from priceadjuster.utils.rate_limit import CALL_LIMIT_HEADER, RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-01"


class ShopifyCatalog:
    def __init__(
        self,
        shop: str,
        access_token: str,
        *,
        api_version: str = DEFAULT_API_VERSION,
        concurrency: int = 4,
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.shop = shop if "." in shop else f"{shop}.myshopify.com"
        self.base_url = f"https://{self.shop}/admin/api/{api_version}"
        self._session = session or httpx.AsyncClient(timeout=30.0)
        self._headers = {"X-Shopify-Access-Token": access_token, "Accept": "application/json"}
        self._semaphore = asyncio.Semaphore(concurrency)
        self._rate_limiter = rate_limiter or RateLimiter(rate=2.0)
        # (listing key, page) -> page_info cursor taken from the previous page's Link header
        self._cursors: dict[tuple[str, int], str] = {}

    async def close(self) -> None:
        await self._session.aclose()

    async def get_product(self, product_id: str) -> Product:
        data = await self._get_json(f"/products/{product_id}.json")
        return parse_product(data["product"])

    async def list_products(self, page: int, page_size: int) -> list[Product]:
        return await self._list_page("all", {}, page, page_size)

    async def list_products_by_collection(self, collection_id: str, page: int, page_size: int) -> list[Product]:
        return await self._list_page(f"collection:{collection_id}", {"collection_id": collection_id}, page, page_size)

    async def is_product_in_collection(self, collection_id: str, product_id: str) -> bool:
        data = await self._get_json(
            "/collects.json", params={"collection_id": collection_id, "product_id": product_id, "limit": 1}
        )
        return bool(data.get("collects"))

    async def list_metafields(self, owner_id: str) -> list[Metafield]:
        data = await self._get_json(f"/products/{owner_id}/metafields.json")
        return [parse_metafield(item) for item in data.get("metafields", [])]

    async def create_metafield(self, owner_id: str, namespace: str, key: str, value: str, type: str) -> Metafield:
        payload = {"metafield": {"namespace": namespace, "key": key, "value": value, "type": type}}
        response = await self._request("POST", f"/products/{owner_id}/metafields.json", json=payload)
        return parse_metafield(response.json()["metafield"])

    async def update_metafield(self, metafield_id: str, value: str, type: str) -> Metafield:
        payload = {"metafield": {"id": metafield_id, "value": value, "type": type}}
        response = await self._request("PUT", f"/metafields/{metafield_id}.json", json=payload)
        return parse_metafield(response.json()["metafield"])

    async def update_variant(
        self,
        variant_id: str,
        *,
        price: Decimal | object = UNSET,
        compare_at_price: Decimal | None | object = UNSET,
    ) -> None:
        body: dict[str, Any] = {"id": variant_id}
        if price is not UNSET:
            body["price"] = _money(price)
        if compare_at_price is not UNSET:
            body["compare_at_price"] = None if compare_at_price is None else _money(compare_at_price)
        await self._request("PUT", f"/variants/{variant_id}.json", json={"variant": body})

    async def update_product_tags(self, product_id: str, tags: Iterable[str]) -> None:
        payload = {"product": {"id": product_id, "tags": ", ".join(sorted(tags))}}
        await self._request("PUT", f"/products/{product_id}.json", json=payload)

    async def add_products_to_collection(self, collection_id: str, product_ids: Iterable[str]) -> None:
        for product_id in product_ids:
            payload = {"collect": {"collection_id": collection_id, "product_id": product_id}}
            try:
                await self._request("POST", "/collects.json", json=payload)
            except CatalogError as exc:
                if exc.status_code != 422:
                    raise
                logger.info("Product %s already in collection %s", product_id, collection_id)

    async def _list_page(self, key: str, params: dict[str, Any], page: int, page_size: int) -> list[Product]:
        query: dict[str, Any] = {"limit": page_size}
        if page > 1:
            cursor = self._cursors.get((key, page))
            if cursor is None:
                return []
            # Shopify rejects filters alongside page_info; the cursor carries them.
            query["page_info"] = cursor
        else:
            query.update(params)
        response = await self._request("GET", "/products.json", params=query)
        next_link = response.links.get("next")
        cursor = httpx.URL(next_link["url"]).params.get("page_info") if next_link else None
        # Each response owns the cursor of the page after it.
        if cursor:
            self._cursors[(key, page + 1)] = cursor
        else:
            self._cursors.pop((key, page + 1), None)
        return [parse_product(item) for item in response.json().get("products", [])]

    async def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._request("GET", path, params=params)
        return response.json()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        async with self._semaphore:
            await self._rate_limiter.wait(self.shop)
            try:
                response = await self._session.request(method, url, headers=self._headers, **kwargs)
            except httpx.TransportError as exc:
                raise TransientUpstreamError(f"{method} {path} failed: {exc}") from exc
        self._rate_limiter.observe(self.shop, response.headers.get(CALL_LIMIT_HEADER))
        if response.status_code == 404:
            raise NotFoundError(f"{method} {path} not found", status_code=404)
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientUpstreamError(
                f"{method} {path} returned {response.status_code}", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise CatalogError(
                f"{method} {path} rejected ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        return response


def _money(value: Decimal) -> str:
    return f"{value:.2f}"
