"""Persisted reference ("original") price per product."""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from priceadjuster.catalog import CatalogRepository
from priceadjuster.catalog.models import LEDGER_NAMESPACE, REFERENCE_PRICE_KEY, ReferencePriceRecord
from priceadjuster.errors import CatalogError, LedgerWriteError, NotFoundError

logger = logging.getLogger(__name__)

METAFIELD_TYPE = "json"


class ReferencePriceLedger:
    """Read-or-create store for reference prices.

    A record is created once, the first time a product is priced, and reused
    afterwards so the compare-at price does not drift between runs.
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        *,
        currency: str = "USD",
        namespace: str = LEDGER_NAMESPACE,
        key: str = REFERENCE_PRICE_KEY,
    ) -> None:
        self.catalog = catalog
        self.currency = currency
        self.namespace = namespace
        self.key = key

    async def find(self, product_id: str) -> ReferencePriceRecord | None:
        metafields = await self.catalog.list_metafields(product_id)
        for metafield in metafields:
            if metafield.namespace == self.namespace and metafield.key == self.key:
                try:
                    return ReferencePriceRecord.from_metafield(product_id, metafield, self.currency)
                except ValueError as exc:
                    raise CatalogError(str(exc)) from exc
        return None

    async def resolve_reference_price(
        self,
        product_id: str,
        base_price: Decimal,
        multiplier: Decimal,
        *,
        base_prices: Mapping[str, Decimal] | None = None,
    ) -> ReferencePriceRecord:
        existing = await self.find(product_id)
        if existing is not None:
            return existing
        amount = (base_price * multiplier).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        record = ReferencePriceRecord(
            product_id=product_id, amount=amount, currency=self.currency, base_prices=dict(base_prices or {})
        )
        try:
            metafield = await self.catalog.create_metafield(
                product_id, self.namespace, self.key, record.to_value(), METAFIELD_TYPE
            )
        except NotFoundError:
            raise
        except CatalogError as exc:
            raise LedgerWriteError(f"Could not persist reference price for product {product_id}: {exc}") from exc
        logger.info("Recorded reference price %s %s for product %s", amount, self.currency, product_id)
        return replace(record, metafield_id=metafield.id)

    async def add_base_prices(
        self, record: ReferencePriceRecord, base_prices: Mapping[str, Decimal]
    ) -> ReferencePriceRecord:
        """Remember pre-sale prices for variants the record does not cover yet."""
        missing = {vid: price for vid, price in base_prices.items() if vid not in record.base_prices}
        if not missing:
            return record
        if record.metafield_id is None:
            logger.info("Reference price for product %s is a legacy value; base prices not stored", record.product_id)
            return record
        updated = replace(record, base_prices={**record.base_prices, **missing})
        try:
            await self.catalog.update_metafield(record.metafield_id, updated.to_value(), METAFIELD_TYPE)
        except NotFoundError:
            raise
        except CatalogError as exc:
            raise LedgerWriteError(f"Could not extend reference price for product {record.product_id}: {exc}") from exc
        logger.info("Stored base prices for %s new variants of product %s", len(missing), record.product_id)
        return updated
