"""Per-product pricing runs and catalog sweeps."""

from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Iterable

from priceadjuster.catalog import CatalogRepository
from priceadjuster.catalog.models import Product, ReferencePriceRecord, Variant
from priceadjuster.errors import CatalogError, NotFoundError, PolicyViolation
from priceadjuster.logic.debounce import DebounceCoordinator
from priceadjuster.logic.formatting import (
    apply_discount,
    ensure_sale_below_reference,
    round_for_display,
    to_reference_price,
)
from priceadjuster.logic.gate import SALE_TAG, ActivationGate, CollectionMembership, TagMembership
from priceadjuster.logic.ledger import ReferencePriceLedger
from priceadjuster.logic.policy import DiscountPolicyResult, PricePolicy
from priceadjuster.utils.dates import store_clock
from priceadjuster.utils.settings import Settings

logger = logging.getLogger(__name__)

PROCESSED_STATUSES = {"priced", "unchanged", "partial", "deactivated", "inactive"}


@dataclass(slots=True)
class ProductOutcome:
    product_id: str
    status: str
    written: int = 0
    skipped: int = 0
    violations: int = 0
    errors: int = 0


@dataclass(slots=True)
class SweepSummary:
    processed_count: int = 0
    statuses: dict[str, int] = field(default_factory=dict)
    failed_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[ProductOutcome]) -> SweepSummary:
        outcomes = list(outcomes)
        return cls(
            processed_count=sum(1 for o in outcomes if o.status in PROCESSED_STATUSES),
            statuses=dict(Counter(o.status for o in outcomes)),
            failed_ids=[o.product_id for o in outcomes if o.status == "failed"],
        )

    def as_dict(self) -> dict[str, object]:
        return {"processed": self.processed_count, "statuses": self.statuses, "failed": self.failed_ids}


class PriceOrchestrator:
    def __init__(
        self,
        catalog: CatalogRepository,
        *,
        policy: PricePolicy,
        ledger: ReferencePriceLedger,
        gate: ActivationGate,
        debouncer: DebounceCoordinator,
        sale_collection_id: str | None = None,
        page_size: int = 250,
        concurrency: int = 3,
        stagger: float = 0.5,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.catalog = catalog
        self.policy = policy
        self.ledger = ledger
        self.gate = gate
        self.debouncer = debouncer
        self.sale_collection_id = sale_collection_id
        self.page_size = page_size
        self.concurrency = concurrency
        self.stagger = stagger
        self._clock = clock or store_clock("UTC")
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, catalog: CatalogRepository, *, rng: random.Random | None = None
    ) -> PriceOrchestrator:
        strategies = []
        if "collection" in settings.eligibility_strategies:
            strategies.append(CollectionMembership(catalog, settings.sale_collection_id))
        if "tags" in settings.eligibility_strategies:
            promote_to = settings.sale_collection_id if settings.promote_tagged_to_collection else None
            strategies.append(TagMembership(settings.qualifying_tags, catalog=catalog, promote_to=promote_to))
        return cls(
            catalog,
            policy=PricePolicy(settings.policy, rng=rng),
            ledger=ReferencePriceLedger(catalog, currency=settings.currency),
            gate=ActivationGate(catalog, strategies, sale_tag=SALE_TAG if settings.sync_sale_tag else None),
            debouncer=DebounceCoordinator(settings.debounce_ttl_seconds),
            sale_collection_id=settings.sale_collection_id,
            page_size=settings.page_size,
            concurrency=settings.sweep_concurrency,
            stagger=settings.sweep_stagger_ms / 1000,
            clock=store_clock(settings.timezone),
        )

    # Control surface used by the webhook layer and the scheduler.

    async def on_product_changed(self, product_id: str) -> ProductOutcome:
        return await self._process_isolated(product_id)

    async def on_collection_changed(self, collection_id: str) -> SweepSummary | None:
        if self.sale_collection_id and collection_id != self.sale_collection_id:
            logger.info("Ignoring change to collection %s", collection_id)
            return None
        return await self.process_collection(collection_id)

    async def trigger_manual_sweep(self, collection_id: str | None = None) -> SweepSummary:
        target = collection_id or self.sale_collection_id
        if target is None:
            return await self.sweep_catalog()
        return await self.process_collection(target)

    # Core operations.

    async def process_product(self, product_id: str) -> ProductOutcome:
        if not self.debouncer.try_admit(product_id):
            logger.info("Product %s is already being processed; skipping", product_id)
            return ProductOutcome(product_id, "debounced")
        try:
            product = await self.catalog.get_product(product_id)
            if await self.gate.evaluate(product):
                outcome = await self._activate(product)
            else:
                outcome = await self._deactivate(product)
        except NotFoundError:
            self.debouncer.release(product_id)
            logger.warning("Product %s not found; skipping", product_id)
            return ProductOutcome(product_id, "not_found")
        except Exception:
            self.debouncer.release(product_id)
            raise
        if outcome.errors:
            self.debouncer.release(product_id)
        return outcome

    async def process_collection(self, collection_id: str) -> SweepSummary:
        product_ids = await self._collect_ids(
            lambda page: self.catalog.list_products_by_collection(collection_id, page, self.page_size)
        )
        logger.info("Processing %s products from collection %s", len(product_ids), collection_id)
        summary = SweepSummary.from_outcomes(await self._fan_out(product_ids))
        logger.info("Collection %s done: %s", collection_id, summary.statuses)
        return summary

    async def sweep_catalog(self) -> SweepSummary:
        """Re-check eligibility for every product and reconcile those that drifted."""
        candidates: list[str] = []
        failures: list[ProductOutcome] = []
        seen: set[str] = set()
        page = 1
        while True:
            products = await self.catalog.list_products(page, self.page_size)
            if not products:
                break
            for product in products:
                if product.id in seen:
                    continue
                seen.add(product.id)
                try:
                    eligible = await self.gate.evaluate(product)
                except CatalogError as exc:
                    logger.warning("Eligibility check for product %s failed: %s", product.id, exc)
                    failures.append(ProductOutcome(product.id, "failed"))
                    continue
                if (eligible and not product.fully_priced) or (not eligible and product.has_compare_at):
                    candidates.append(product.id)
            page += 1
        logger.info("Sweep checked %s products; %s need reconciling", len(seen), len(candidates))
        outcomes = await self._fan_out(candidates)
        summary = SweepSummary.from_outcomes(failures + outcomes)
        logger.info("Sweep done: %s", summary.statuses)
        return summary

    async def _activate(self, product: Product) -> ProductOutcome:
        outcome = ProductOutcome(product.id, "priced")
        if not product.variants:
            outcome.status = "unchanged"
            return outcome
        now = self._clock()
        anchor = product.variants[0]
        anchor_policy = self.policy.compute_discount(product, anchor, now)
        record = await self.ledger.resolve_reference_price(
            product.id,
            anchor.price,
            anchor_policy.reference_multiplier,
            base_prices={v.id: v.price for v in product.variants if v.price > 0},
        )
        new_bases: dict[str, Decimal] = {}
        for variant in product.variants:
            base = record.base_price_for(variant)
            if base is None:
                base = variant.price
            try:
                wrote = await self._price_variant(
                    product,
                    variant,
                    base,
                    record,
                    anchor_policy if variant is anchor and base == anchor.price else None,
                    now,
                )
            except PolicyViolation as exc:
                logger.warning("Product %s: %s", product.id, exc)
                outcome.violations += 1
                continue
            except NotFoundError:
                logger.warning("Variant %s of product %s vanished; skipping", variant.id, product.id)
                outcome.skipped += 1
                continue
            except CatalogError as exc:
                logger.warning("Updating variant %s of product %s failed: %s", variant.id, product.id, exc)
                outcome.errors += 1
                continue
            if wrote:
                outcome.written += 1
                if variant.id not in record.base_prices:
                    new_bases[variant.id] = base
            else:
                outcome.skipped += 1
        if new_bases:
            try:
                await self.ledger.add_base_prices(record, new_bases)
            except CatalogError as exc:
                logger.warning("Storing base prices for product %s failed: %s", product.id, exc)
        if outcome.errors:
            outcome.status = "partial" if outcome.written else "failed"
        elif not outcome.written:
            outcome.status = "unchanged"
        try:
            await self.gate.mark_active(product)
        except CatalogError as exc:
            logger.warning("Tagging product %s as on sale failed: %s", product.id, exc)
        logger.info(
            "Product %s %s: %s written, %s skipped, %s violations, %s errors",
            product.id,
            outcome.status,
            outcome.written,
            outcome.skipped,
            outcome.violations,
            outcome.errors,
        )
        return outcome

    async def _price_variant(
        self,
        product: Product,
        variant: Variant,
        base: Decimal,
        record: ReferencePriceRecord,
        result: DiscountPolicyResult | None,
        now: datetime,
    ) -> bool:
        if base <= 0:
            logger.warning("Variant %s of product %s has no price; skipping", variant.id, product.id)
            return False
        reference = to_reference_price(base, record.amount / base)
        if variant.compare_at_price == reference:
            return False
        if result is None:
            result = self.policy.compute_discount(product, replace(variant, price=base), now)
        sale = round_for_display(apply_discount(base, result.discount_percentage))
        ensure_sale_below_reference(variant.id, sale, reference)
        await self.catalog.update_variant(variant.id, price=sale, compare_at_price=reference)
        logger.info(
            "Variant %s: %s -> %s (compare at %s, %s%% off)",
            variant.id,
            base,
            sale,
            reference,
            result.discount_percentage,
        )
        return True

    async def _deactivate(self, product: Product) -> ProductOutcome:
        result = await self.gate.deactivate(product)
        status = "deactivated" if result.cleared else "inactive"
        if result.errors:
            status = "failed"
        return ProductOutcome(product.id, status, written=result.cleared, errors=result.errors)

    async def _collect_ids(self, fetch_page: Callable[[int], Awaitable[list[Product]]]) -> list[str]:
        ordered: dict[str, None] = {}
        page = 1
        while True:
            products = await fetch_page(page)
            if not products:
                break
            logger.info("Fetched page %s with %s products", page, len(products))
            for product in products:
                ordered.setdefault(product.id, None)
            page += 1
        return list(ordered)

    async def _fan_out(self, product_ids: list[str]) -> list[ProductOutcome]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(product_id: str) -> ProductOutcome:
            async with semaphore:
                return await self._process_isolated(product_id)

        tasks = []
        for idx, product_id in enumerate(product_ids):
            if idx and self.stagger:
                await self._sleep(self.stagger)
            tasks.append(asyncio.create_task(run(product_id)))
        return list(await asyncio.gather(*tasks))

    async def _process_isolated(self, product_id: str) -> ProductOutcome:
        try:
            return await self.process_product(product_id)
        except Exception:
            logger.exception("Processing product %s failed", product_id)
            return ProductOutcome(product_id, "failed")
