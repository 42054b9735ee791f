import base64
import hashlib
import hmac
import json
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import SALE_COLLECTION, FakeCatalog, build_orchestrator, make_product
from priceadjuster.api.main import create_app, run_startup_sweep
from priceadjuster.errors import TransientUpstreamError
from priceadjuster.logic.policy import PolicyConfig
from priceadjuster.utils.settings import Settings
from priceadjuster.utils.webhooks import SIGNATURE_HEADER

SECRET = "webhook-secret"


def _signed(payload: dict) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    signature = base64.b64encode(hmac.new(SECRET.encode(), body, hashlib.sha256).digest()).decode()
    return body, {SIGNATURE_HEADER: signature, "Content-Type": "application/json"}


@pytest.fixture()
def fake_catalog():
    return FakeCatalog(
        products=[make_product("P1", ["40.00"]), make_product("P2", ["10.00"], compare_at=["25.00"])],
        collections={SALE_COLLECTION: ["P1"]},
    )


@pytest.fixture()
def client(fake_catalog):
    settings = Settings(
        shop_name="demo",
        access_token="token",
        webhook_secret=SECRET,
        sale_collection_id=SALE_COLLECTION,
        sweep_on_startup=False,
        sweep_stagger_ms=0,
        policy=PolicyConfig(discount_range=(30, 30)),
    )
    with TestClient(create_app(settings, fake_catalog)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "Running" in response.text


def test_product_webhook_prices_product(client, fake_catalog):
    body, headers = _signed({"id": "P1", "title": "Thing"})
    response = client.post("/webhooks/products/update", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"status": "accepted", "id": "P1"}
    assert [vid for vid, _ in fake_catalog.variant_updates] == ["P1-v1"]


def test_repeated_webhook_is_debounced(client, fake_catalog):
    body, headers = _signed({"id": "P1"})
    client.post("/webhooks/products/update", content=body, headers=headers)
    client.post("/webhooks/products/update", content=body, headers=headers)
    assert len(fake_catalog.variant_updates) == 1


def test_product_webhook_clears_ineligible_product(client, fake_catalog):
    body, headers = _signed({"id": "P2"})
    client.post("/webhooks/products/update", content=body, headers=headers)
    assert fake_catalog.variant_updates == [("P2-v1", {"compare_at_price": None})]


def test_bad_signature_is_rejected(client, fake_catalog):
    body, headers = _signed({"id": "P1"})
    headers[SIGNATURE_HEADER] = "forged"
    response = client.post("/webhooks/products/update", content=body, headers=headers)
    assert response.status_code == 401
    assert fake_catalog.calls == []


def test_payload_without_id_is_rejected(client):
    body, headers = _signed({"title": "no id"})
    response = client.post("/webhooks/products/update", content=body, headers=headers)
    assert response.status_code == 400


def test_collection_webhook(client, fake_catalog):
    body, headers = _signed({"id": SALE_COLLECTION})
    response = client.post("/webhooks/collections/update", content=body, headers=headers)
    assert response.status_code == 200
    assert [vid for vid, _ in fake_catalog.variant_updates] == ["P1-v1"]


def test_manual_sweep(client):
    response = client.post("/update-prices")
    assert response.status_code == 200
    assert response.json() == {"processed": 1, "statuses": {"priced": 1}, "failed": []}


def test_non_ascii_signature_is_rejected(client, fake_catalog):
    body, headers = _signed({"id": "P1"})
    headers[SIGNATURE_HEADER] = "\xe9abc".encode("latin-1")
    response = client.post("/webhooks/products/update", content=body, headers=headers)
    assert response.status_code == 401
    assert fake_catalog.calls == []


class BrokenListingCatalog(FakeCatalog):
    async def list_products(self, page, page_size):
        raise TransientUpstreamError("503", status_code=503)


@pytest.mark.asyncio
async def test_startup_sweep_failure_is_logged(caplog):
    orchestrator = build_orchestrator(BrokenListingCatalog())
    with caplog.at_level(logging.ERROR, logger="priceadjuster.api.main"):
        await run_startup_sweep(orchestrator)
    (entry,) = [r for r in caplog.records if r.name == "priceadjuster.api.main"]
    assert entry.getMessage() == "Startup sweep failed"
    assert isinstance(entry.exc_info[1], TransientUpstreamError)
