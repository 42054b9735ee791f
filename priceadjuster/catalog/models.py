"""Catalog data models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

LEDGER_NAMESPACE = "price_automation"
REFERENCE_PRICE_KEY = "original_price"


@dataclass(slots=True, frozen=True)
class Variant:
    id: str
    price: Decimal
    compare_at_price: Decimal | None = None


@dataclass(slots=True, frozen=True)
class Product:
    id: str
    title: str
    variants: tuple[Variant, ...]
    product_type: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def has_compare_at(self) -> bool:
        return any(v.compare_at_price is not None for v in self.variants)

    @property
    def fully_priced(self) -> bool:
        return bool(self.variants) and all(v.compare_at_price is not None for v in self.variants)


@dataclass(slots=True, frozen=True)
class Metafield:
    id: str | None
    namespace: str
    key: str
    value: str
    type: str


@dataclass(slots=True, frozen=True)
class ReferencePriceRecord:
    """Reference amount plus the pre-sale price of each variant it was applied to.

    ``base_prices`` is what discounts are computed from, so a variant that left
    the sale with its sale price still in place is not discounted twice.
    ``metafield_id`` is only set for JSON records, which are the ones that can
    be extended later; bare-decimal records from older deployments are read-only.
    """

    product_id: str
    amount: Decimal
    currency: str
    base_prices: Mapping[str, Decimal] = field(default_factory=dict, hash=False)
    metafield_id: str | None = None

    def to_value(self) -> str:
        data: dict[str, Any] = {"amount": f"{self.amount:.2f}", "currency": self.currency}
        if self.base_prices:
            data["base_prices"] = {vid: str(price) for vid, price in self.base_prices.items()}
        return json.dumps(data)

    def base_price_for(self, variant: Variant) -> Decimal | None:
        return self.base_prices.get(variant.id)

    @classmethod
    def from_metafield(cls, product_id: str, metafield: Metafield, default_currency: str) -> ReferencePriceRecord:
        """Decode a stored record; older deployments stored a bare decimal."""
        raw = metafield.value
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = raw
        base_prices: dict[str, Decimal] = {}
        metafield_id = None
        if isinstance(data, Mapping):
            amount = data.get("amount")
            currency = data.get("currency") or data.get("currency_code") or default_currency
            metafield_id = metafield.id
            for vid, price in (data.get("base_prices") or {}).items():
                parsed = _to_decimal(price)
                if parsed is not None and parsed > 0:
                    base_prices[str(vid)] = parsed
        else:
            amount, currency = data, default_currency
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValueError(f"Unreadable reference price for product {product_id}: {raw!r}") from exc
        return cls(
            product_id=product_id,
            amount=value,
            currency=str(currency),
            base_prices=base_prices,
            metafield_id=metafield_id,
        )


def parse_product(data: Mapping[str, Any]) -> Product:
    variants = tuple(
        Variant(
            id=str(item["id"]),
            price=_to_decimal(item.get("price")) or Decimal("0"),
            compare_at_price=_to_decimal(item.get("compare_at_price")),
        )
        for item in data.get("variants", [])
    )
    tags = data.get("tags") or ""
    if isinstance(tags, str):
        tags = tags.split(",")
    return Product(
        id=str(data["id"]),
        title=data.get("title") or "",
        variants=variants,
        product_type=data.get("product_type") or "",
        tags=frozenset(t.strip() for t in tags if t and t.strip()),
    )


def parse_metafield(data: Mapping[str, Any]) -> Metafield:
    return Metafield(
        id=str(data["id"]) if data.get("id") is not None else None,
        namespace=data.get("namespace", ""),
        key=data.get("key", ""),
        value=str(data.get("value", "")),
        type=data.get("type", ""),
    )


def _to_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
