import os

import pytest
from fastapi.testclient import TestClient
from solders.keypair import Keypair

# Unit tests should not require PostgreSQL, a ledger endpoint or a treasury secret.
os.environ.pop("LAUNCHPAD_DATABASE_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LAUNCHPAD_DISABLE_ENGINE", "1")

from launchpad.api import app as api_module
from launchpad.api.app import app
from launchpad.domain.models import LAMPORTS_PER_BASE


@pytest.fixture
def client(orchestrator, tmp_path, monkeypatch):
    monkeypatch.setenv("LAUNCHPAD_SQLITE_PATH", str(tmp_path / "api.db"))
    api_module.set_orchestrator(orchestrator)
    yield TestClient(app)
    api_module.set_orchestrator(None)


def test_health_reports_engine_and_db(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["engine_ready"] is True
    assert data["db_backend"] == "sqlite"
    assert data["db_ok"] is True
    assert data["status"] == "ok"


def test_engine_not_ready_is_503():
    api_module.set_orchestrator(None)
    resp = TestClient(app).get("/api/assets/x/quote/buy", params={"base_amount": 1})
    assert resp.status_code == 503


def test_create_and_quote(client, creator):
    resp = client.post("/api/assets", json={"creator": str(creator.pubkey()), "curve_type": "exponential", "strength": 1})
    assert resp.status_code == 200
    asset_id = resp.json()["id"]
    assert resp.json()["curve_type"] == "exponential"

    quote = client.get(f"/api/assets/{asset_id}/quote/buy", params={"base_amount": 0.5})
    assert quote.status_code == 200
    assert quote.json()["issuable_amount"] == 500_000

    sell = client.get(f"/api/assets/{asset_id}/quote/sell", params={"base_amount": 0.5})
    assert sell.json()["issuable_amount"] == 500_000

    preview = client.get(f"/api/assets/{asset_id}/preview", params={"base_amount": 0.5})
    assert preview.status_code == 200
    assert preview.json()["fee"]["total_bps"] == 75
    assert preview.json()["phase"] == "pre"


def test_validation_errors_map_to_400(client, creator):
    resp = client.post("/api/assets", json={"creator": str(creator.pubkey()), "strength": 9})
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"

    resp = client.post("/api/assets", json={"curve_type": "linear"})
    assert resp.status_code == 400


def test_unknown_asset_is_404(client):
    resp = client.get("/api/assets/nope/stats")
    assert resp.status_code == 404
    assert resp.json()["error"] == "AssetNotFound"


def test_buy_flow_over_http(client, orchestrator, ledger, minted_asset, buyer):
    payer = str(buyer.pubkey())
    built = client.post(f"/api/assets/{minted_asset.id}/buy", json={"payer": payer, "base_amount": 1.0})
    assert built.status_code == 200
    body = built.json()
    assert body["quoted_amount"] == 1_000_000
    assert body["artifact"]["pending_signers"] == [payer]
    assert body["artifact"]["transaction"]

    ledger.add_payment("pay-http", payer, orchestrator.treasury, LAMPORTS_PER_BASE)
    confirmed = client.post(
        f"/api/assets/{minted_asset.id}/buy/confirm",
        json={"payer": payer, "base_amount": 1.0, "payment_reference": "pay-http"},
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["issued_amount"] == 1_000_000
    assert confirmed.json()["recorded"] is True

    again = client.post(
        f"/api/assets/{minted_asset.id}/buy/confirm",
        json={"payer": payer, "base_amount": 1.0, "payment_reference": "pay-http"},
    )
    assert again.status_code == 402

    trades = client.get(f"/api/assets/{minted_asset.id}/trades", params={"limit": 10})
    assert trades.status_code == 200
    assert [t["payment_reference"] for t in trades.json()] == ["pay-http"]

    stats = client.get(f"/api/assets/{minted_asset.id}/stats")
    assert stats.json()["issued_tokens"] == 1_000_000


def test_sell_over_http(client, minted_asset):
    seller = str(Keypair().pubkey())
    resp = client.post(f"/api/assets/{minted_asset.id}/sell", json={"seller": seller, "base_amount": 2})
    assert resp.status_code == 200
    assert resp.json()["required_issuable_amount"] == 2_000_000
    assert resp.json()["artifact"]["fee_payer"] == seller


def test_sell_without_mint_is_409(client, asset):
    resp = client.post(f"/api/assets/{asset.id}/sell", json={"seller": str(Keypair().pubkey()), "base_amount": 1})
    assert resp.status_code == 409


def test_drift_is_500(client, orchestrator, minted_asset, buyer):
    orchestrator.guard.published_identity = str(Keypair().pubkey())
    resp = client.post(f"/api/assets/{minted_asset.id}/buy", json={"payer": str(buyer.pubkey()), "base_amount": 1})
    assert resp.status_code == 500
    assert resp.json()["error"] == "ConfigurationDrift"