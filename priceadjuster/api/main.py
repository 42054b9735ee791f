"""FastAPI application receiving Shopify webhooks and manual triggers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from priceadjuster.catalog import CatalogRepository
from priceadjuster.catalog.shopify import ShopifyCatalog
from priceadjuster.logic.orchestrator import PriceOrchestrator
from priceadjuster.utils.settings import Settings
from priceadjuster.utils.webhooks import SIGNATURE_HEADER, extract_entity_id, verify_signature

logger = logging.getLogger(__name__)


class SweepResponse(BaseModel):
    processed: int
    statuses: dict[str, int]
    failed: list[str]


def create_app(settings: Settings | None = None, catalog: CatalogRepository | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        load_dotenv()
        resolved = settings or Settings.from_env()
        owned = catalog is None
        client = catalog or ShopifyCatalog(
            resolved.shop_name, resolved.access_token, api_version=resolved.api_version
        )
        app.state.settings = resolved
        app.state.orchestrator = PriceOrchestrator.from_settings(resolved, client)
        startup_sweep = None
        if resolved.sweep_on_startup:
            startup_sweep = asyncio.create_task(run_startup_sweep(app.state.orchestrator))
        logger.info("Price adjuster started for %s", resolved.shop_name)
        try:
            yield
        finally:
            if startup_sweep is not None and not startup_sweep.done():
                startup_sweep.cancel()
            if owned:
                await client.close()

    app = FastAPI(title="Price Adjuster", lifespan=lifespan)

    @app.get("/", response_class=PlainTextResponse)
    async def health() -> str:
        return "Price Adjuster Service Running"

    @app.post("/webhooks/products/update")
    async def product_webhook(
        background: BackgroundTasks,
        entity_id: str = Depends(verified_entity_id),
        orchestrator: PriceOrchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        background.add_task(orchestrator.on_product_changed, entity_id)
        return JSONResponse({"status": "accepted", "id": entity_id})

    @app.post("/webhooks/collections/update")
    async def collection_webhook(
        background: BackgroundTasks,
        entity_id: str = Depends(verified_entity_id),
        orchestrator: PriceOrchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        background.add_task(orchestrator.on_collection_changed, entity_id)
        return JSONResponse({"status": "accepted", "id": entity_id})

    @app.post("/update-prices", response_model=SweepResponse)
    async def update_prices(
        collection_id: str | None = Query(None),
        orchestrator: PriceOrchestrator = Depends(get_orchestrator),
    ) -> SweepResponse:
        logger.info("Manual price update triggered")
        summary = await orchestrator.trigger_manual_sweep(collection_id)
        return SweepResponse(**summary.as_dict())

    return app


def get_orchestrator(request: Request) -> PriceOrchestrator:
    return request.app.state.orchestrator


async def run_startup_sweep(orchestrator: PriceOrchestrator) -> None:
    try:
        summary = await orchestrator.sweep_catalog()
    except Exception:
        logger.exception("Startup sweep failed")
        return
    logger.info("Startup sweep finished: %s", summary.as_dict())


async def verified_entity_id(request: Request) -> str:
    raw = await request.body()
    settings: Settings = request.app.state.settings
    if not verify_signature(raw, request.headers.get(SIGNATURE_HEADER), settings.webhook_secret):
        logger.warning("Rejected webhook to %s: invalid signature", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    try:
        return extract_entity_id(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


app = create_app()
