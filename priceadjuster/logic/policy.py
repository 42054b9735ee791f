"""Discount and markup policy.

One policy covers every pricing flavour the service runs with; the
``PolicyConfig`` flags pick the behaviour:

* flat: a discount drawn from ``discount_range`` (or the curated ``.99`` set)
  and a fixed reference multiplier;
* additive bonuses for sale months, flash-sale hours and price tiers;
* category-aware markup: the product is bucketed by keyword, the bucket's
  markup range is interpolated by price tier, jittered and clamped.

The evaluation time and the random source are always passed in so the same
inputs give the same result.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Sequence

from priceadjuster.catalog.models import Product, Variant
from priceadjuster.logic import DEFAULT_BUCKET, CategoryBucket, load_category_buckets

CURATED_DISCOUNTS: tuple[Decimal, ...] = tuple(
    Decimal(v) for v in ("25.99", "29.99", "34.99", "39.99", "44.99", "49.99", "54.99", "59.99")
)
SEASONAL_BONUSES: dict[int, Decimal] = {11: Decimal(10), 12: Decimal(15), 1: Decimal(10), 7: Decimal(5)}
FLASH_WINDOWS: tuple[tuple[int, int], ...] = ((12, 14), (19, 21))
# (minimum variant price, bonus), highest threshold first
VOLUME_TIERS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal(200), Decimal(10)),
    (Decimal(100), Decimal(7)),
    (Decimal(50), Decimal(3)),
)
PRICE_TIERS: tuple[tuple[str, Decimal | None], ...] = (("low", Decimal(50)), ("mid", Decimal(150)), ("high", None))
TIER_POSITIONS = {"low": Decimal("0"), "mid": Decimal("0.5"), "high": Decimal("1")}

_PCT = Decimal("0.01")
_MULT = Decimal("0.001")


@dataclass(slots=True, frozen=True)
class PolicyConfig:
    use_curated_discount_set: bool = False
    seasonal_bonus_enabled: bool = False
    flash_sale_enabled: bool = False
    volume_bonus_enabled: bool = False
    category_aware: bool = False
    discount_range: tuple[int, int] = (20, 50)
    curated_discounts: Sequence[Decimal] = CURATED_DISCOUNTS
    reference_multiplier: Decimal = Decimal("2.0")
    seasonal_bonuses: Mapping[int, Decimal] = field(default_factory=lambda: dict(SEASONAL_BONUSES))
    flash_windows: Sequence[tuple[int, int]] = FLASH_WINDOWS
    flash_bonus: Decimal = Decimal(5)
    volume_tiers: Sequence[tuple[Decimal, Decimal]] = VOLUME_TIERS
    discount_ceiling: Decimal = Decimal(90)
    multiplier_bounds: tuple[Decimal, Decimal] = (Decimal("1.2"), Decimal("3.0"))
    jitter: Decimal = Decimal("0.05")

    @property
    def discount_floor(self) -> Decimal:
        return Decimal(10) if self.category_aware else Decimal(0)


@dataclass(slots=True, frozen=True)
class DiscountPolicyResult:
    discount_percentage: Decimal
    reference_multiplier: Decimal
    category: str | None = None
    bonuses: Mapping[str, Decimal] = field(default_factory=dict)


def price_tier(price: Decimal) -> str:
    for name, upper in PRICE_TIERS:
        if upper is None or price < upper:
            return name
    return PRICE_TIERS[-1][0]  # pragma: no cover


def classify_category(product: Product, buckets: Sequence[CategoryBucket]) -> CategoryBucket:
    text = f"{product.title} {product.product_type}".lower()
    best: CategoryBucket | None = None
    best_len = 0
    for bucket in buckets:
        for keyword in bucket.keywords:
            if len(keyword) > best_len and re.search(rf"\b{re.escape(keyword)}\b", text):
                best, best_len = bucket, len(keyword)
    if best is not None:
        return best
    return next(b for b in buckets if b.name == DEFAULT_BUCKET)


class PricePolicy:
    def __init__(
        self,
        config: PolicyConfig | None = None,
        *,
        rng: random.Random | None = None,
        buckets: Sequence[CategoryBucket] | None = None,
    ) -> None:
        self.config = config or PolicyConfig()
        self.rng = rng or random.Random()
        if buckets is None and self.config.category_aware:
            buckets = load_category_buckets()
        self.buckets = list(buckets or [])

    def compute_discount(self, product: Product, variant: Variant, evaluation_time: datetime) -> DiscountPolicyResult:
        cfg = self.config
        bonuses: dict[str, Decimal] = {}
        if cfg.seasonal_bonus_enabled:
            bonuses["seasonal"] = cfg.seasonal_bonuses.get(evaluation_time.month, Decimal(0))
        if cfg.flash_sale_enabled:
            in_window = any(start <= evaluation_time.hour < end for start, end in cfg.flash_windows)
            bonuses["flash"] = cfg.flash_bonus if in_window else Decimal(0)
        if cfg.volume_bonus_enabled:
            bonuses["volume"] = next(
                (bonus for threshold, bonus in cfg.volume_tiers if variant.price >= threshold), Decimal(0)
            )
        total = self._base_discount() + sum(bonuses.values(), Decimal(0))
        discount = min(max(total, cfg.discount_floor), cfg.discount_ceiling).quantize(_PCT)

        category = None
        if cfg.category_aware:
            bucket = classify_category(product, self.buckets)
            category = bucket.name
            multiplier = self._category_multiplier(bucket, variant.price)
        else:
            multiplier = cfg.reference_multiplier
        return DiscountPolicyResult(
            discount_percentage=discount,
            reference_multiplier=multiplier,
            category=category,
            bonuses=bonuses,
        )

    def _base_discount(self) -> Decimal:
        cfg = self.config
        if cfg.use_curated_discount_set:
            return Decimal(self.rng.choice(list(cfg.curated_discounts)))
        low, high = cfg.discount_range
        return Decimal(self.rng.randint(low, high))

    def _category_multiplier(self, bucket: CategoryBucket, price: Decimal) -> Decimal:
        cfg = self.config
        position = TIER_POSITIONS[price_tier(price)]
        multiplier = bucket.markup_min + (bucket.markup_max - bucket.markup_min) * position
        jitter = Decimal(str(self.rng.uniform(-float(cfg.jitter), float(cfg.jitter))))
        multiplier *= Decimal(1) + jitter
        lower, upper = cfg.multiplier_bounds
        return min(max(multiplier, lower), upper).quantize(_MULT)
