"""Scheduled catalog reconciliation."""

from __future__ import annotations

import asyncio
import logging

from dotenv import load_dotenv

from priceadjuster.catalog.shopify import ShopifyCatalog
from priceadjuster.logic.orchestrator import PriceOrchestrator, SweepSummary
from priceadjuster.utils.settings import Settings

logger = logging.getLogger(__name__)


async def run_sweep(collection_id: str | None = None, *, full: bool = True) -> SweepSummary:
    """Reconcile the whole catalog, or only ``collection_id`` when ``full`` is false."""
    load_dotenv()
    settings = Settings.from_env()
    catalog = ShopifyCatalog(settings.shop_name, settings.access_token, api_version=settings.api_version)
    orchestrator = PriceOrchestrator.from_settings(settings, catalog)
    try:
        if full:
            summary = await orchestrator.sweep_catalog()
        else:
            summary = await orchestrator.trigger_manual_sweep(collection_id)
    finally:
        await catalog.close()
    logger.info("Sweep finished: %s processed, %s", summary.processed_count, summary.statuses)
    return summary


if __name__ == "__main__":
    asyncio.run(run_sweep())
