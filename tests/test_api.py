"""Tests for the REST API endpoints.

These tests use FastAPI's TestClient with mocked database sessions, chain
client and Anthropic client, so no external service is contacted.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from instarelief.core.config import settings
from instarelief.core.database import get_session
from instarelief.main import app
from instarelief.services import catastrophe_service
from instarelief.services.agent import get_anthropic_client
from instarelief.services.alert_processor import UserAlertResult, ZipAlertResult
from instarelief.services.chain_client import TransferReceipt, get_chain_client
from instarelief.services.price_service import Conversion
from tests.conftest import make_catastrophe, make_user, scalars_result

ADMIN = {"Authorization": f"Bearer {settings.admin_secret}"}

CONVERSION = Conversion(
    usd_amount=100.0,
    token_amount=0.0408,
    exchange_rate=2500.0,
    timestamp=datetime(2025, 11, 12, tzinfo=timezone.utc),
)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.get.return_value = None
    session.execute.return_value = scalars_result([])
    return session


def _override_session(mock_session: AsyncMock):
    async def _mock_get_session():
        yield mock_session

    app.dependency_overrides[get_session] = _mock_get_session


def _override_chain(chain):
    app.dependency_overrides[get_chain_client] = lambda: chain


class _ApiTest:
    def setup_method(self):
        self.client = TestClient(app)
        self.session = _session()
        _override_session(self.session)

    def teardown_method(self):
        app.dependency_overrides.clear()


# ── Ops ───────────────────────────────────────────────────────────────────────


class TestHealth(_ApiTest):
    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers


# ── Users ─────────────────────────────────────────────────────────────────────


class TestRegisterUser(_ApiTest):
    BODY = {
        "first_name": "Dana",
        "last_name": "Robichaux",
        "email": "Dana@Example.com",
        "phone": "+1 (985) 555-0101",
        "zip": "70401",
        "wallet_address": "0x1111111111111111111111111111111111111111",
    }

    def test_register_success(self):
        response = self.client.post("/api/v1/users", json=self.BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "dana@example.com"
        assert data["phone"] == "19855550101"
        assert data["policy_id"].startswith("POL-70401-")
        assert data["status"] == "ACTIVE"
        assert data["balance"] == 0.0
        self.session.add.assert_called_once()

    def test_duplicate_email(self):
        self.session.execute.return_value = scalars_result([make_user()])

        response = self.client.post("/api/v1/users", json=self.BODY)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_EXISTS"

    def test_invalid_wallet(self):
        response = self.client.post("/api/v1/users", json={**self.BODY, "wallet_address": "abc"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "REGISTRATION_FAILED"

    def test_invalid_zip(self):
        response = self.client.post("/api/v1/users", json={**self.BODY, "zip": "7040"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestGetUser(_ApiTest):
    def test_found(self):
        user = make_user()
        self.session.get.return_value = user

        response = self.client.get(f"/api/v1/users/{user.id}")

        assert response.status_code == 200
        assert response.json()["policy_id"] == user.policy_id

    def test_not_found(self):
        response = self.client.get(f"/api/v1/users/{uuid.uuid4()}")
        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "USER_NOT_FOUND"
        assert error["request_id"]

    def test_by_policy(self):
        user = make_user()
        self.session.execute.return_value = scalars_result([user])

        response = self.client.get(f"/api/v1/users/by-policy/{user.policy_id}")

        assert response.status_code == 200
        assert response.json()["email"] == user.email


class TestPrice(_ApiTest):
    def test_quote(self):
        with patch(
            "instarelief.api.v1.routes.price_service.convert_usd_to_token",
            AsyncMock(return_value=CONVERSION),
        ):
            response = self.client.get("/api/v1/price", params={"usd": 100})

        assert response.status_code == 200
        assert response.json()["token_amount"] == 0.0408

    def test_non_positive_amount(self):
        assert self.client.get("/api/v1/price", params={"usd": 0}).status_code == 422


# ── Admin auth ────────────────────────────────────────────────────────────────


class TestAdminAuth(_ApiTest):
    def test_missing_credentials(self):
        response = self.client.get("/api/v1/admin/users")
        assert response.status_code in (401, 403)

    def test_wrong_secret(self):
        response = self.client.get(
            "/api/v1/admin/users", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_list_users(self):
        self.session.execute.return_value = scalars_result([make_user()])
        response = self.client.get("/api/v1/admin/users", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_update_balance(self):
        user = make_user(balance=100.0)
        self.session.get.return_value = user

        response = self.client.patch(
            f"/api/v1/admin/users/{user.id}/balance", json={"balance": 25.0}, headers=ADMIN
        )

        assert response.status_code == 200
        assert user.balance == 25.0

    def test_negative_balance_rejected(self):
        response = self.client.patch(
            f"/api/v1/admin/users/{uuid.uuid4()}/balance", json={"balance": -1}, headers=ADMIN
        )
        assert response.status_code == 422


# ── Catastrophes ──────────────────────────────────────────────────────────────


class TestCatastrophes(_ApiTest):
    BODY = {
        "type": "Flood",
        "location": "Hammond, LA",
        "zip_codes": "70401,70403",
        "amount": 100,
        "description": "Flash flooding",
    }

    def setup_method(self):
        super().setup_method()
        self.price = patch.object(
            catastrophe_service.price_service,
            "convert_usd_to_token",
            AsyncMock(return_value=CONVERSION),
        )
        self.email = patch.object(catastrophe_service.email_client, "send_email", AsyncMock())
        self.price.start()
        self.email.start()

    def teardown_method(self):
        self.price.stop()
        self.email.stop()
        super().teardown_method()

    def test_preview(self):
        self.session.execute.return_value = scalars_result([make_user()])

        response = self.client.post(
            "/api/v1/admin/catastrophes/preview", json=self.BODY, headers=ADMIN
        )

        assert response.status_code == 200
        data = response.json()
        assert data["affected_users"] == 1
        assert data["zip_codes"] == ["70401", "70403"]

    def test_trigger(self):
        self.session.execute.return_value = scalars_result([make_user()])
        chain = MagicMock()
        chain.operator_address = "0x9999999999999999999999999999999999999999"
        chain.send_native = AsyncMock(
            return_value=TransferReceipt(
                tx_hash="0xabc", explorer_url="https://sepolia.etherscan.io/tx/0xabc", block_number=1
            )
        )
        _override_chain(chain)

        response = self.client.post(
            "/api/v1/admin/catastrophes", json=self.BODY, params={"source": "agent"}, headers=ADMIN
        )

        assert response.status_code == 201
        data = response.json()
        assert data["successful_payouts"] == 1
        assert data["source"] == "agent"
        assert data["payouts"][0]["tx_hash"] == "0xabc"

    def test_trigger_without_users(self):
        chain = MagicMock()
        chain.operator_address = "0x9999999999999999999999999999999999999999"
        _override_chain(chain)

        response = self.client.post("/api/v1/admin/catastrophes", json=self.BODY, headers=ADMIN)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "NO_AFFECTED_USERS"

    def test_trigger_without_wallet(self):
        chain = MagicMock()
        chain.operator_address = None
        _override_chain(chain)

        response = self.client.post("/api/v1/admin/catastrophes", json=self.BODY, headers=ADMIN)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "WALLET_NOT_CONFIGURED"

    def test_list_and_get(self):
        catastrophe = make_catastrophe()
        self.session.execute.return_value = scalars_result([catastrophe])
        self.session.get.return_value = catastrophe

        listed = self.client.get("/api/v1/admin/catastrophes", headers=ADMIN)
        fetched = self.client.get(f"/api/v1/admin/catastrophes/{catastrophe.id}", headers=ADMIN)

        assert listed.json()["total"] == 1
        assert fetched.json()["location"] == "Hammond, LA"


# ── Alerts ────────────────────────────────────────────────────────────────────


class TestAlerts(_ApiTest):
    def test_simulate(self):
        alert = SimpleNamespace(id="demo-1", severity="Extreme")
        result = ZipAlertResult(
            zip="70401",
            users=[UserAlertResult(email="a@example.com", paid=True, email_sent=True)],
        )
        with patch(
            "instarelief.api.admin.routes.alert_processor.simulate_disaster",
            AsyncMock(return_value=(alert, True, result)),
        ):
            response = self.client.post(
                "/api/v1/admin/alerts/simulate", json={"zip": "70401"}, headers=ADMIN
            )

        assert response.status_code == 200
        data = response.json()
        assert data["payout_sent"] is True
        assert data["result"]["paid"] == 1
        assert data["affected_zip"] == "70401"

    def test_simulate_invalid_zip(self):
        response = self.client.post(
            "/api/v1/admin/alerts/simulate", json={"zip": "abc"}, headers=ADMIN
        )
        assert response.status_code == 422

    def test_fetch_noaa_unavailable(self):
        from instarelief.services.noaa_client import NOAAError

        with patch(
            "instarelief.api.admin.routes.alert_processor.noaa_client.fetch_active_alerts",
            AsyncMock(side_effect=NOAAError("NOAA API returned 503: Service Unavailable")),
        ):
            response = self.client.post("/api/v1/admin/alerts/fetch", headers=ADMIN)

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "NOAA_UNAVAILABLE"

    def test_users_in_zip(self):
        self.session.execute.return_value = scalars_result([make_user(balance=100.0)])

        response = self.client.get(
            "/api/v1/admin/alerts/users", params={"zip": "70401"}, headers=ADMIN
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_count"] == 1
        assert data["users"][0]["name"] == "Dana Robichaux"


# ── Wallet / agent ────────────────────────────────────────────────────────────


class TestWalletAndAgent(_ApiTest):
    def test_wallet_not_configured(self):
        chain = MagicMock()
        chain.operator_address = None
        _override_chain(chain)

        response = self.client.get("/api/v1/admin/wallet", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["configured"] is False

    def test_wallet_balance(self):
        chain = MagicMock()
        chain.operator_address = "0x9999999999999999999999999999999999999999"
        chain.get_balance = AsyncMock(return_value=1.25)
        _override_chain(chain)

        response = self.client.get("/api/v1/admin/wallet", headers=ADMIN)

        assert response.json()["balance"] == 1.25

    def test_agent(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                stop_reason="end_turn",
                content=[SimpleNamespace(type="text", text="All quiet.")],
            )
        )
        app.dependency_overrides[get_anthropic_client] = lambda: client

        response = self.client.post(
            "/api/v1/admin/agent", json={"query": "status?"}, headers=ADMIN
        )

        assert response.status_code == 200
        assert response.json()["response"] == "All quiet."

    @pytest.mark.parametrize("body", [{"query": ""}, {}])
    def test_agent_empty_query(self, body):
        app.dependency_overrides[get_anthropic_client] = lambda: MagicMock()
        response = self.client.post("/api/v1/admin/agent", json=body, headers=ADMIN)
        assert response.status_code == 422
