"""Catalog access contract."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol

from priceadjuster.catalog.models import Metafield, Product

UNSET = object()


class CatalogRepository(Protocol):
    async def get_product(self, product_id: str) -> Product: ...

    async def list_products(self, page: int, page_size: int) -> list[Product]: ...

    async def list_products_by_collection(self, collection_id: str, page: int, page_size: int) -> list[Product]: ...

    async def is_product_in_collection(self, collection_id: str, product_id: str) -> bool: ...

    async def list_metafields(self, owner_id: str) -> list[Metafield]: ...

    async def create_metafield(self, owner_id: str, namespace: str, key: str, value: str, type: str) -> Metafield: ...

    async def update_metafield(self, metafield_id: str, value: str, type: str) -> Metafield: ...

    async def update_variant(
        self, variant_id: str, *, price: Decimal | object = UNSET, compare_at_price: Decimal | None | object = UNSET
    ) -> None: ...

    async def update_product_tags(self, product_id: str, tags: Iterable[str]) -> None: ...

    async def add_products_to_collection(self, collection_id: str, product_ids: Iterable[str]) -> None: ...
