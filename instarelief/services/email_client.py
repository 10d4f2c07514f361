"""SMTP2GO email delivery and the alert/payout email templates."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError

if TYPE_CHECKING:
    from instarelief.models import Catastrophe, Payout, User
    from instarelief.services.noaa_client import WeatherAlert

logger = logging.getLogger(__name__)


class EmailError(ReliefError):
    status_code = 502
    code = "EMAIL_FAILED"


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html_body: str
    text_body: str


def recipient(user: "User") -> str:
    return f"{user.display_name} <{user.email}>"


async def send_email(
    to: list[str],
    message: EmailMessage,
    sender: str | None = None,
) -> dict[str, Any]:
    """Send one message through the SMTP2GO HTTP API.

    Raises:
        EmailError: If no API key is configured, the API is unreachable, or it
            rejects the message.
    """
    if not settings.smtp2go_api_key:
        raise EmailError("SMTP2GO API key is not configured (set SMTP2GO_API_KEY)")

    payload = {
        "to": to,
        "sender": sender or settings.email_sender,
        "subject": message.subject,
        "html_body": message.html_body,
        "text_body": message.text_body,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
            resp = await client.post(
                settings.smtp2go_api_url,
                json=payload,
                headers={"X-Smtp2go-Api-Key": settings.smtp2go_api_key},
            )
    except httpx.HTTPError as exc:
        raise EmailError(f"Cannot reach SMTP2GO: {exc}") from exc

    if resp.status_code >= 400:
        raise EmailError(f"SMTP2GO error: {_error_detail(resp)}")

    try:
        body = resp.json()
    except ValueError as exc:
        raise EmailError(f"SMTP2GO returned a non-JSON response: {resp.text[:200]}") from exc

    logger.debug("Email '%s' accepted for %s", message.subject, ", ".join(to))
    return body


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"{resp.status_code} {resp.text[:200]}"
    return str(body.get("data", body))


def render_alert_email(
    alert: "WeatherAlert",
    payout_usd: float | None = None,
) -> EmailMessage:
    """Weather alert notice; announces the released fund when ``payout_usd`` is set."""
    subject = f"Weather Alert: {alert.event} ({alert.severity})"
    body = (
        f'<h2 style="color:red;">{html.escape(alert.headline)}</h2>'
        f"<p>{html.escape(alert.description)}</p>"
        f"<p><b>Severity:</b> {html.escape(alert.severity)}</p>"
        f"<p><b>Area:</b> {html.escape(alert.area_desc)}</p>"
    )
    text = f"{alert.event} alert ({alert.severity}) in {alert.area_desc}. {alert.description}"

    if payout_usd is not None:
        subject = f"Emergency Fund Released: {alert.event}"
        body += (
            f"<p><strong>${payout_usd:,.2f} has been released to your emergency fund.</strong></p>"
        )
        text += f" ${payout_usd:,.2f} has been released to your emergency fund."

    return EmailMessage(subject=subject, html_body=body, text_body=text)


def render_payout_email(
    user: "User",
    catastrophe: "Catastrophe",
    payout: "Payout",
) -> EmailMessage:
    """Confirmation for a successful on-chain catastrophe payout."""
    subject = f"Relief Payout Sent: {catastrophe.type} in {catastrophe.location}"
    body = (
        f"<h2>Your relief payout is on its way</h2>"
        f"<p>Hi {html.escape(user.display_name)},</p>"
        f"<p>A {html.escape(catastrophe.type)} event affecting "
        f"{html.escape(catastrophe.location)} triggered your policy "
        f"<b>{html.escape(user.policy_id)}</b>.</p>"
        f"<p><b>Amount:</b> ${payout.amount_usd:,.2f} "
        f"({payout.amount_token:.6f} {settings.price_coin_id})</p>"
        f"<p><b>Wallet:</b> {html.escape(payout.wallet_address)}</p>"
        f'<p><a href="{html.escape(payout.explorer_url or "")}">View transaction</a></p>'
    )
    text = (
        f"A {catastrophe.type} event affecting {catastrophe.location} triggered your policy "
        f"{user.policy_id}. ${payout.amount_usd:,.2f} ({payout.amount_token:.6f} "
        f"{settings.price_coin_id}) was sent to {payout.wallet_address}. "
        f"Transaction: {payout.explorer_url}"
    )
    return EmailMessage(subject=subject, html_body=body, text_body=text)
