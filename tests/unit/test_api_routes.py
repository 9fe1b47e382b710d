"""HTTP-level tests: routers wired to in-memory engines via dependency overrides."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest
from httpx import AsyncClient

from src.esc_common.authz import Actor
from src.esc_common.database import get_db_session
from src.esc_gateway.auth.dependencies import get_current_actor
from src.esc_gateway.auth.jwt_handler import create_access_token
from src.main import app
from tests.fakes import ADMIN, BUYER, SELLER, STRANGER, FakeSession, World

WEBHOOK_HEADERS = {"verif-hash": "test-webhook-hash"}


@dataclass
class Caller:
    actor: Actor = BUYER


@pytest.fixture
def caller(world: World, monkeypatch: pytest.MonkeyPatch) -> Caller:
    current = Caller()

    async def fake_session() -> AsyncGenerator[FakeSession, None]:
        yield world.session()

    async def fake_actor() -> Actor:
        return current.actor

    app.dependency_overrides[get_db_session] = fake_session
    app.dependency_overrides[get_current_actor] = fake_actor
    monkeypatch.setattr("src.esc_offer.api.router.get_offer_ledger", lambda: world.offers)
    monkeypatch.setattr(
        "src.esc_transaction.api.router.get_transaction_engine", lambda: world.transactions
    )
    monkeypatch.setattr(
        "src.esc_transaction.api.payment_router.get_transaction_engine",
        lambda: world.transactions,
    )
    monkeypatch.setattr("src.esc_dispute.api.router.get_dispute_engine", lambda: world.disputes)
    return current


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "gw-123"})
        assert resp.headers["X-Request-ID"] == "gw-123"

    async def test_request_id_is_generated(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.headers["X-Request-ID"].startswith("req_")


class TestOfferRoutes:
    async def test_submit_and_accept(
        self, client: AsyncClient, caller: Caller, world: World
    ) -> None:
        world.add_listing()
        resp = await client.post(
            "/api/v1/offers", json={"listing_id": "listing-1", "amount_minor": 5_000_000}
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["code"] == 0
        offer_id = body["data"]["id"]
        assert body["data"]["status"] == "SENT"

        caller.actor = SELLER
        resp = await client.post(f"/api/v1/offers/{offer_id}/respond", json={"action": "ACCEPT"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["offer"]["status"] == "ACCEPTED"
        assert world.committed_tx(data["transaction_id"]).agreed_price_minor == 5_000_000

    async def test_error_envelope(self, client: AsyncClient, caller: Caller, world: World) -> None:
        world.add_listing()
        caller.actor = SELLER
        resp = await client.post(
            "/api/v1/offers", json={"listing_id": "listing-1", "amount_minor": 100}
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == 2002
        assert body["data"] is None

    async def test_counter_without_amount_is_rejected(
        self, client: AsyncClient, caller: Caller
    ) -> None:
        resp = await client.post("/api/v1/offers/any/respond", json={"action": "COUNTER"})
        assert resp.status_code == 422

    async def test_stats_are_staff_only(self, client: AsyncClient, caller: Caller) -> None:
        resp = await client.get("/api/v1/offers/stats")
        assert resp.status_code == 403
        caller.actor = ADMIN
        resp = await client.get("/api/v1/offers/stats")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"needs_expiry": 0, "expiring_soon": 0, "active": 0}


class TestTransactionRoutes:
    async def test_escrow_then_funding_webhook(
        self, client: AsyncClient, caller: Caller, world: World
    ) -> None:
        tx = await world.accepted_transaction()

        resp = await client.post(f"/api/v1/transactions/{tx.id}/escrow")
        assert resp.status_code == 200
        payment = resp.json()["data"]["payment"]
        assert payment["status"] == "PENDING"

        event = {
            "transaction_id": tx.id,
            "provider_ref": payment["provider_ref"],
            "amount_minor": 5_000_000,
        }
        for _ in range(2):
            resp = await client.post(
                "/api/v1/payments/webhook/funding", json=event, headers=WEBHOOK_HEADERS
            )
            assert resp.status_code == 200
            assert resp.json()["data"]["status"] == "FUNDED"
        assert world.dispatcher.names().count("transaction.funded") == 1

        resp = await client.get(f"/api/v1/transactions/{tx.id}")
        data = resp.json()["data"]
        assert data["next_events"] == ["verificationStarted", "disputeOpened"]

    async def test_webhook_requires_signature(
        self, client: AsyncClient, caller: Caller, world: World
    ) -> None:
        tx = await world.accepted_transaction()
        resp = await client.post(
            "/api/v1/payments/webhook/funding",
            json={"transaction_id": tx.id, "provider_ref": "FND-1", "amount_minor": 1},
            headers={"verif-hash": "wrong"},
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == 1003

    async def test_invalid_transition_is_422(
        self, client: AsyncClient, caller: Caller, world: World
    ) -> None:
        tx = await world.funded_transaction()
        resp = await client.post(f"/api/v1/transactions/{tx.id}/escrow")
        assert resp.status_code == 422
        assert "requestEscrow" in resp.json()["message"]

    async def test_sweep_endpoint(self, client: AsyncClient, caller: Caller, world: World) -> None:
        tx = await world.funded_transaction()
        caller.actor = ADMIN
        resp = await client.post("/api/v1/transactions/sweep")
        assert resp.status_code == 200
        assert resp.json()["data"]["started"] == [tx.id]


class TestDisputeRoutes:
    async def test_open_message_resolve(
        self, client: AsyncClient, caller: Caller, world: World
    ) -> None:
        tx = await world.funded_transaction()

        resp = await client.post(
            "/api/v1/disputes",
            json={"transaction_id": tx.id, "summary": "Deed does not match"},
        )
        assert resp.status_code == 201
        dispute_id = resp.json()["data"]["id"]

        resp = await client.post(
            f"/api/v1/disputes/{dispute_id}/messages", json={"content": "Photos attached"}
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["seq"] == 1

        caller.actor = ADMIN
        resp = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "SPLIT", "resolution": "Half the plot encroached", "split_seller_bps": 5000},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["dispute"]["status"] == "RESOLVED_SPLIT"
        assert data["transaction_status"] == "READY_TO_RELEASE"

    async def test_evidence(self, client: AsyncClient, caller: Caller, world: World) -> None:
        _, dispute = await world.disputed_transaction()
        url = f"/api/v1/disputes/{dispute.id}/evidence"

        resp = await client.post(
            url,
            json={
                "url": "https://files.example.com/survey.pdf",
                "type": "DOCUMENT",
                "description": "Licensed survey",
                "mime_type": "application/pdf",
            },
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["type"] == "DOCUMENT"
        assert data["uploader_role"] == "BUYER"

        resp = await client.post(url, json={"url": "https://x.example.com/a", "type": "AUDIO"})
        assert resp.status_code == 422

        caller.actor = STRANGER
        resp = await client.get(url)
        assert resp.status_code == 403

        caller.actor = SELLER
        resp = await client.get(url)
        assert resp.status_code == 200
        assert [e["id"] for e in resp.json()["data"]] == [data["id"]]


class TestJwtAuth:
    async def test_missing_token(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/transactions")
        assert resp.status_code == 401

    async def test_valid_token_reaches_engine(
        self, client: AsyncClient, world: World, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def fake_session() -> AsyncGenerator[FakeSession, None]:
            yield world.session()

        app.dependency_overrides[get_db_session] = fake_session
        monkeypatch.setattr(
            "src.esc_transaction.api.router.get_transaction_engine", lambda: world.transactions
        )
        token = create_access_token(BUYER.id)
        resp = await client.get(
            "/api/v1/transactions", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 200
        assert resp.json()["data"] == {"items": [], "next_cursor": None, "has_more": False}
