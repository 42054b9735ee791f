"""Process configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Mapping

from priceadjuster.errors import ConfigurationError
from priceadjuster.logic.gate import DEFAULT_QUALIFYING_TAGS
from priceadjuster.logic.policy import PolicyConfig
from priceadjuster.utils.dates import DEFAULT_TZ

STRATEGIES = {"collection", "tags"}
TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    shop_name: str
    access_token: str
    webhook_secret: str
    sale_collection_id: str | None = None
    api_version: str = "2024-01"
    eligibility_strategies: frozenset[str] = frozenset({"collection"})
    qualifying_tags: frozenset[str] = DEFAULT_QUALIFYING_TAGS
    promote_tagged_to_collection: bool = False
    sync_sale_tag: bool = False
    debounce_ttl_seconds: float = 30.0
    page_size: int = 250
    sweep_concurrency: int = 3
    sweep_stagger_ms: int = 500
    sweep_interval_hours: float = 6.0
    sweep_on_startup: bool = True
    currency: str = "USD"
    timezone: str = DEFAULT_TZ
    redis_url: str = "redis://redis:6379/0"
    policy: PolicyConfig = field(default_factory=PolicyConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        errors: list[str] = []

        def required(name: str) -> str:
            value = env.get(name, "").strip()
            if not value:
                errors.append(f"{name} is required")
            return value

        def number(name: str, default: str, kind=float):
            raw = env.get(name, default)
            try:
                return kind(raw)
            except (TypeError, ValueError, InvalidOperation):
                errors.append(f"{name} must be a number, got {raw!r}")
                return kind(default)

        def flag(name: str, default: str) -> bool:
            return env.get(name, default).strip().lower() in TRUE_VALUES

        shop_name = required("SHOP_NAME")
        access_token = required("ACCESS_TOKEN")
        webhook_secret = required("SHOPIFY_WEBHOOK_SECRET")

        strategies = frozenset(
            s.strip().lower() for s in env.get("ELIGIBILITY_STRATEGIES", "collection").split(",") if s.strip()
        )
        unknown = strategies - STRATEGIES
        if unknown or not strategies:
            errors.append(f"ELIGIBILITY_STRATEGIES must name one of {sorted(STRATEGIES)}, got {sorted(strategies)}")
        tags_raw = env.get("QUALIFYING_TAGS", "")
        tags = frozenset(t.strip().lower() for t in tags_raw.split(",") if t.strip()) or DEFAULT_QUALIFYING_TAGS
        promote = flag("PROMOTE_TAGGED_TO_COLLECTION", "0")
        sale_collection_id = env.get("SALE_COLLECTION_ID", "").strip() or None
        if sale_collection_id is None and ("collection" in strategies or promote):
            errors.append("SALE_COLLECTION_ID is required for collection eligibility or tag promotion")

        category_aware = flag("CATEGORY_AWARE", "0")
        policy = PolicyConfig(
            use_curated_discount_set=flag("USE_CURATED_DISCOUNTS", "0"),
            seasonal_bonus_enabled=flag("SEASONAL_BONUS", "0"),
            flash_sale_enabled=flag("FLASH_SALE", "0"),
            volume_bonus_enabled=flag("VOLUME_BONUS", "0"),
            category_aware=category_aware,
            discount_range=(number("DISCOUNT_MIN", "20", int), number("DISCOUNT_MAX", "50", int)),
            reference_multiplier=number("REFERENCE_MULTIPLIER", "2.0", Decimal),
        )
        if policy.discount_range[0] > policy.discount_range[1]:
            errors.append("DISCOUNT_MIN must not exceed DISCOUNT_MAX")
        if policy.reference_multiplier <= 1:
            errors.append("REFERENCE_MULTIPLIER must be greater than 1")

        settings = cls(
            shop_name=shop_name,
            access_token=access_token,
            webhook_secret=webhook_secret,
            sale_collection_id=sale_collection_id,
            api_version=env.get("SHOPIFY_API_VERSION", "2024-01"),
            eligibility_strategies=strategies,
            qualifying_tags=tags,
            promote_tagged_to_collection=promote,
            sync_sale_tag=flag("SYNC_SALE_TAG", "0"),
            debounce_ttl_seconds=number("DEBOUNCE_TTL_SECONDS", "30"),
            page_size=number("PAGE_SIZE", "250", int),
            sweep_concurrency=number("SWEEP_CONCURRENCY", "3", int),
            sweep_stagger_ms=number("SWEEP_STAGGER_MS", "500", int),
            sweep_interval_hours=number("SWEEP_INTERVAL_HOURS", "6"),
            sweep_on_startup=flag("SWEEP_ON_STARTUP", "1"),
            currency=env.get("CURRENCY", "USD").strip().upper(),
            timezone=env.get("TIMEZONE", DEFAULT_TZ),
            redis_url=env.get("REDIS_URL", "redis://redis:6379/0"),
            policy=policy,
        )
        if settings.page_size <= 0 or settings.sweep_concurrency <= 0:
            errors.append("PAGE_SIZE and SWEEP_CONCURRENCY must be positive")
        if settings.debounce_ttl_seconds <= 0:
            errors.append("DEBOUNCE_TTL_SECONDS must be positive")
        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
        return settings
