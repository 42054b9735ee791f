import dataclasses
import random
from datetime import datetime
from decimal import Decimal

import pytest

from priceadjuster.catalog import UNSET
from priceadjuster.catalog.models import Metafield, Product, Variant
from priceadjuster.errors import NotFoundError
from priceadjuster.logic.debounce import DebounceCoordinator
from priceadjuster.logic.gate import ActivationGate, CollectionMembership
from priceadjuster.logic.ledger import ReferencePriceLedger
from priceadjuster.logic.orchestrator import PriceOrchestrator
from priceadjuster.logic.policy import PolicyConfig, PricePolicy

SALE_COLLECTION = "sale"
# A Tuesday morning in March: no seasonal or flash bonus applies.
QUIET_TIME = datetime(2026, 3, 10, 9, 0)


def make_product(product_id, prices, *, compare_at=None, title="Plain Item", product_type="", tags=()):
    compare_at = compare_at or [None] * len(prices)
    variants = tuple(
        Variant(
            id=f"{product_id}-v{idx}",
            price=Decimal(str(price)),
            compare_at_price=None if cmp is None else Decimal(str(cmp)),
        )
        for idx, (price, cmp) in enumerate(zip(prices, compare_at), start=1)
    )
    return Product(id=product_id, title=title, variants=variants, product_type=product_type, tags=frozenset(tags))


class FakeCatalog:
    """In-memory catalog recording every call."""

    def __init__(self, products=(), collections=None):
        self.products = {p.id: p for p in products}
        self.collections = {k: list(v) for k, v in (collections or {}).items()}
        self.metafields: dict[str, list[Metafield]] = {}
        self.calls: list[tuple] = []
        self.variant_updates: list[tuple[str, dict]] = []
        self.fail_variants: dict[str, Exception] = {}
        self.fail_metafield_create: Exception | None = None

    async def get_product(self, product_id):
        self.calls.append(("get_product", product_id))
        try:
            return self.products[product_id]
        except KeyError:
            raise NotFoundError(f"product {product_id} not found", status_code=404) from None

    async def list_products(self, page, page_size):
        self.calls.append(("list_products", page))
        items = list(self.products.values())
        return items[(page - 1) * page_size : page * page_size]

    async def list_products_by_collection(self, collection_id, page, page_size):
        self.calls.append(("list_products_by_collection", collection_id, page))
        ids = self.collections.get(collection_id, [])[(page - 1) * page_size : page * page_size]
        return [self.products[i] for i in ids]

    async def is_product_in_collection(self, collection_id, product_id):
        self.calls.append(("is_product_in_collection", collection_id, product_id))
        return product_id in self.collections.get(collection_id, [])

    async def list_metafields(self, owner_id):
        self.calls.append(("list_metafields", owner_id))
        return list(self.metafields.get(owner_id, []))

    async def create_metafield(self, owner_id, namespace, key, value, type):
        self.calls.append(("create_metafield", owner_id, namespace, key, value, type))
        if self.fail_metafield_create is not None:
            raise self.fail_metafield_create
        metafield = Metafield(id=str(len(self.calls)), namespace=namespace, key=key, value=value, type=type)
        self.metafields.setdefault(owner_id, []).append(metafield)
        return metafield

    async def update_metafield(self, metafield_id, value, type):
        self.calls.append(("update_metafield", metafield_id, value, type))
        for owner_id, metafields in self.metafields.items():
            for idx, metafield in enumerate(metafields):
                if metafield.id == metafield_id:
                    metafields[idx] = dataclasses.replace(metafield, value=value, type=type)
                    return metafields[idx]
        raise NotFoundError(f"metafield {metafield_id} not found", status_code=404)

    async def update_variant(self, variant_id, *, price=UNSET, compare_at_price=UNSET):
        self.calls.append(("update_variant", variant_id))
        if variant_id in self.fail_variants:
            raise self.fail_variants[variant_id]
        changes = {}
        if price is not UNSET:
            changes["price"] = price
        if compare_at_price is not UNSET:
            changes["compare_at_price"] = compare_at_price
        self.variant_updates.append((variant_id, changes))
        for product in self.products.values():
            variants = tuple(
                dataclasses.replace(v, **changes) if v.id == variant_id else v for v in product.variants
            )
            self.products[product.id] = dataclasses.replace(product, variants=variants)

    async def update_product_tags(self, product_id, tags):
        self.calls.append(("update_product_tags", product_id, frozenset(tags)))
        product = self.products[product_id]
        self.products[product_id] = dataclasses.replace(product, tags=frozenset(tags))

    async def add_products_to_collection(self, collection_id, product_ids):
        self.calls.append(("add_products_to_collection", collection_id, tuple(product_ids)))
        members = self.collections.setdefault(collection_id, [])
        for product_id in product_ids:
            if product_id not in members:
                members.append(product_id)

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def build_orchestrator(
    catalog,
    *,
    config=None,
    strategies=None,
    ttl=30.0,
    clock=None,
    page_size=250,
    concurrency=3,
    stagger=0.0,
    sleep=None,
    sale_tag=None,
    seed=7,
):
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return PriceOrchestrator(
        catalog,
        policy=PricePolicy(config or PolicyConfig(discount_range=(30, 30)), rng=random.Random(seed)),
        ledger=ReferencePriceLedger(catalog, currency="USD"),
        gate=ActivationGate(
            catalog, strategies or [CollectionMembership(catalog, SALE_COLLECTION)], sale_tag=sale_tag
        ),
        debouncer=DebounceCoordinator(ttl, clock=clock or FakeClock()),
        sale_collection_id=SALE_COLLECTION,
        page_size=page_size,
        concurrency=concurrency,
        stagger=stagger,
        clock=lambda: QUIET_TIME,
        **kwargs,
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def catalog():
    return FakeCatalog(
        products=[make_product("P1", ["40.00"])],
        collections={SALE_COLLECTION: ["P1"]},
    )
