"""Sale eligibility and the active/inactive transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from priceadjuster.catalog import CatalogRepository
from priceadjuster.catalog.models import Product
from priceadjuster.errors import CatalogError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_QUALIFYING_TAGS = frozenset({"sale", "clearance", "discount", "promotion"})
SALE_TAG = "sale"


class EligibilityStrategy(Protocol):
    name: str

    async def matches(self, product: Product) -> bool: ...


class CollectionMembership:
    name = "collection"

    def __init__(self, catalog: CatalogRepository, collection_id: str) -> None:
        self.catalog = catalog
        self.collection_id = collection_id

    async def matches(self, product: Product) -> bool:
        return await self.catalog.is_product_in_collection(self.collection_id, product.id)


class TagMembership:
    """Eligible when a qualifying tag is present; optionally files the product into the sale collection."""

    name = "tags"

    def __init__(
        self,
        tags: Iterable[str] = DEFAULT_QUALIFYING_TAGS,
        *,
        catalog: CatalogRepository | None = None,
        promote_to: str | None = None,
    ) -> None:
        self.tags = frozenset(t.lower() for t in tags)
        self.catalog = catalog
        self.promote_to = promote_to
        if promote_to and catalog is None:
            raise ValueError("Promotion into a collection needs a catalog")

    async def matches(self, product: Product) -> bool:
        hits = {t.lower() for t in product.tags} & self.tags
        if hits and self.promote_to:
            logger.info("Promoting product %s into collection %s (tags: %s)", product.id, self.promote_to, sorted(hits))
            await self.catalog.add_products_to_collection(self.promote_to, [product.id])
        return bool(hits)


@dataclass(slots=True)
class DeactivationResult:
    cleared: int = 0
    errors: int = 0


class ActivationGate:
    def __init__(
        self,
        catalog: CatalogRepository,
        strategies: Sequence[EligibilityStrategy],
        *,
        sale_tag: str | None = None,
    ) -> None:
        if not strategies:
            raise ValueError("At least one eligibility strategy is required")
        self.catalog = catalog
        self.strategies = list(strategies)
        self.sale_tag = sale_tag

    async def is_eligible(self, product_id: str) -> bool:
        product = await self.catalog.get_product(product_id)
        return await self.evaluate(product)

    async def evaluate(self, product: Product) -> bool:
        for strategy in self.strategies:
            if await strategy.matches(product):
                return True
        return False

    async def mark_active(self, product: Product) -> None:
        if self.sale_tag and self.sale_tag not in product.tags:
            await self.catalog.update_product_tags(product.id, product.tags | {self.sale_tag})

    async def deactivate(self, product: Product) -> DeactivationResult:
        """Clear compare-at prices; the reference price record is left in place."""
        result = DeactivationResult()
        for variant in product.variants:
            if variant.compare_at_price is None:
                continue
            try:
                await self.catalog.update_variant(variant.id, compare_at_price=None)
            except NotFoundError:
                logger.warning("Variant %s of product %s vanished while clearing compare-at", variant.id, product.id)
                continue
            except CatalogError as exc:
                logger.warning("Clearing compare-at on variant %s of product %s failed: %s", variant.id, product.id, exc)
                result.errors += 1
                continue
            result.cleared += 1
        if self.sale_tag and self.sale_tag in product.tags:
            await self.catalog.update_product_tags(product.id, product.tags - {self.sale_tag})
        if result.cleared:
            logger.info("Deactivated product %s: cleared %s compare-at prices", product.id, result.cleared)
        return result
