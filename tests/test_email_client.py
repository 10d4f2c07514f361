"""Tests for SMTP2GO delivery and the email templates."""

from unittest.mock import patch

import httpx
import pytest

from instarelief.models import Payout
from instarelief.services import email_client
from instarelief.services.email_client import EmailError, EmailMessage
from tests.conftest import make_alert, make_catastrophe, make_user

MESSAGE = EmailMessage(subject="Test", html_body="<p>hi</p>", text_body="hi")


def _mock_transport(status_code: int, body: dict, seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


def _patched_client(transport: httpx.MockTransport):
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=transport, **kwargs)

    return patch.object(email_client.httpx, "AsyncClient", side_effect=factory)


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with patch.object(email_client.settings, "smtp2go_api_key", None):
            with pytest.raises(EmailError, match="not configured"):
                await email_client.send_email(["a@example.com"], MESSAGE)

    @pytest.mark.asyncio
    async def test_success_sends_api_key_header(self):
        seen: list[httpx.Request] = []
        transport = _mock_transport(200, {"data": {"succeeded": 1}}, seen)
        with patch.object(email_client.settings, "smtp2go_api_key", "api-test"), \
                _patched_client(transport):
            body = await email_client.send_email(["a@example.com"], MESSAGE)

        assert body["data"]["succeeded"] == 1
        assert seen[0].headers["X-Smtp2go-Api-Key"] == "api-test"

    @pytest.mark.asyncio
    async def test_rejected_message_raises(self):
        seen: list[httpx.Request] = []
        transport = _mock_transport(400, {"data": {"error": "sender not verified"}}, seen)
        with patch.object(email_client.settings, "smtp2go_api_key", "api-test"), \
                _patched_client(transport):
            with pytest.raises(EmailError, match="sender not verified"):
                await email_client.send_email(["a@example.com"], MESSAGE)

    @pytest.mark.asyncio
    async def test_non_json_success_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>OK</html>"))
        with patch.object(email_client.settings, "smtp2go_api_key", "api-test"), \
                _patched_client(transport):
            with pytest.raises(EmailError, match="non-JSON"):
                await email_client.send_email(["a@example.com"], MESSAGE)


class TestTemplates:
    def test_recipient_uses_display_name(self):
        assert email_client.recipient(make_user()) == "Dana Robichaux <dana@example.com>"

    def test_alert_email_without_payout(self):
        message = email_client.render_alert_email(make_alert(severity="Moderate"))
        assert message.subject.startswith("Weather Alert")
        assert "released" not in message.text_body

    def test_alert_email_with_payout(self):
        message = email_client.render_alert_email(make_alert(), payout_usd=100.0)
        assert message.subject.startswith("Emergency Fund Released")
        assert "$100.00" in message.html_body

    def test_alert_email_escapes_html(self):
        alert = make_alert(area_desc="<script>x</script>")
        assert "<script>" not in email_client.render_alert_email(alert).html_body

    def test_payout_email(self):
        user = make_user()
        catastrophe = make_catastrophe()
        payout = Payout(
            email=user.email,
            wallet_address=user.wallet_address,
            success=True,
            amount_usd=100.0,
            amount_token=0.0408,
            explorer_url="https://sepolia.etherscan.io/tx/0xabc",
        )
        message = email_client.render_payout_email(user, catastrophe, payout)
        assert "Flood" in message.subject
        assert user.policy_id in message.text_body
        assert "0xabc" in message.html_body
