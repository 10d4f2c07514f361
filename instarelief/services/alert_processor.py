"""Weather alert fan-out: NOAA (or simulated) alerts to policyholder payouts.

For every new alert:
1. Record the alert id in ``processed_alerts`` *before* fan-out, so a crash or
   an overlapping run never pays the same alert twice.
2. Map the alert's free-text area to ZIP codes.
3. For each ZIP, notify every ACTIVE user:
   - users alerted within the rate-limit window are skipped entirely;
   - Extreme/Severe alerts credit the configured payout to the balance and
     mark the user PAID;
   - everyone else receives an informational email.

Per-user failures (email outages, bad data) are logged and reported in the
run summary; they never abort the remaining users.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError
from instarelief.models import ProcessedAlert, User, UserStatus
from instarelief.services import email_client, noaa_client
from instarelief.services.noaa_client import WeatherAlert
from instarelief.services.zip_lookup import county_for_zip, is_valid_zip, map_area_to_zips

logger = logging.getLogger(__name__)

PAYOUT_SEVERITIES = frozenset({"extreme", "severe"})


class AlertError(ReliefError):
    status_code = 422
    code = "INVALID_ALERT"


@dataclass
class UserAlertResult:
    email: str
    skipped: bool = False
    paid: bool = False
    email_sent: bool = False
    error: str | None = None


@dataclass
class ZipAlertResult:
    zip: str
    users: list[UserAlertResult] = field(default_factory=list)

    @property
    def users_found(self) -> int:
        return len(self.users)

    @property
    def notified(self) -> int:
        return sum(1 for u in self.users if u.email_sent)

    @property
    def paid(self) -> int:
        return sum(1 for u in self.users if u.paid)

    @property
    def skipped(self) -> int:
        return sum(1 for u in self.users if u.skipped)


@dataclass
class AlertRunSummary:
    alerts_seen: int = 0
    alerts_processed: int = 0
    alerts_skipped: int = 0
    zip_results: list[ZipAlertResult] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.alerts_seen == 0:
            return "No active alerts"
        return f"Processed {self.alerts_processed} new alerts"


def should_send_payout(severity: str | None) -> bool:
    return (severity or "").strip().lower() in PAYOUT_SEVERITIES


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _is_rate_limited(user: User, now: datetime) -> bool:
    if user.last_alert_at is None:
        return False
    window = timedelta(minutes=settings.alert_rate_limit_minutes)
    return now - _as_utc(user.last_alert_at) < window


async def handle_user_alert(
    user: User,
    alert: WeatherAlert,
    pay: bool,
    now: datetime | None = None,
) -> UserAlertResult:
    """Credit (if ``pay``) and notify one user about one alert."""
    now = now or datetime.now(timezone.utc)
    result = UserAlertResult(email=user.email)

    if _is_rate_limited(user, now):
        logger.info("Skipping %s (alerted %s, rate limited)", user.email, user.last_alert_at)
        result.skipped = True
        return result

    payout_usd = None
    if pay:
        payout_usd = settings.alert_payout_usd
        user.balance = (user.balance or 0.0) + payout_usd
        user.status = UserStatus.PAID
        user.last_payout = now
        user.last_payout_amount = payout_usd
        result.paid = True

    user.last_alert_at = now
    user.last_alert_id = alert.id

    message = email_client.render_alert_email(alert, payout_usd)
    try:
        await email_client.send_email([email_client.recipient(user)], message)
        result.email_sent = True
        logger.info("Alert email sent to %s (%s)", user.email, alert.id)
    except email_client.EmailError as exc:
        result.error = str(exc)
        logger.error("Email failed for %s: %s", user.email, exc)

    return result


async def active_users_in_zip(
    session: AsyncSession,
    zip_code: str,
    for_update: bool = False,
) -> list[User]:
    stmt = select(User).where(User.zip == zip_code, User.status == UserStatus.ACTIVE)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def handle_zip_alert(
    session: AsyncSession,
    zip_code: str,
    alert: WeatherAlert,
    pay: bool,
) -> ZipAlertResult:
    """Process every active user in one ZIP for one alert."""
    zip_result = ZipAlertResult(zip=zip_code)
    users = await active_users_in_zip(session, zip_code, for_update=pay)

    if not users:
        logger.info("No active users found for ZIP %s", zip_code)
        return zip_result

    now = datetime.now(timezone.utc)
    for user in users:
        try:
            zip_result.users.append(await handle_user_alert(user, alert, pay, now=now))
        except Exception as exc:
            logger.exception("Alert handling failed for %s", user.email)
            zip_result.users.append(UserAlertResult(email=user.email, error=str(exc)))

    await session.flush()
    logger.info(
        "ZIP %s processed: %d users, %d paid, %d skipped",
        zip_code, zip_result.users_found, zip_result.paid, zip_result.skipped,
    )
    return zip_result


async def _already_processed(session: AsyncSession, alert_id: str) -> bool:
    return await session.get(ProcessedAlert, alert_id) is not None


async def process_active_alerts(
    session: AsyncSession,
    alerts: list[WeatherAlert] | None = None,
) -> AlertRunSummary:
    """Fan out every not-yet-processed alert. Fetches from NOAA unless injected."""
    if alerts is None:
        alerts = await noaa_client.fetch_active_alerts()

    summary = AlertRunSummary(alerts_seen=len(alerts))
    if not alerts:
        logger.info("No active alerts from NOAA")
        return summary

    for alert in alerts:
        if await _already_processed(session, alert.id):
            logger.debug("Skipping known alert %s", alert.id)
            summary.alerts_skipped += 1
            continue

        session.add(
            ProcessedAlert(alert_id=alert.id, severity=alert.severity, area_desc=alert.area_desc)
        )
        await session.flush()

        zips = map_area_to_zips(alert.area_desc)
        pay = should_send_payout(alert.severity)
        logger.info(
            "Alert %s (%s, %s) mapped to %d ZIPs", alert.id, alert.event, alert.severity, len(zips)
        )
        for zip_code in zips:
            summary.zip_results.append(await handle_zip_alert(session, zip_code, alert, pay))

        summary.alerts_processed += 1

    return summary


def build_simulated_alert(
    zip_code: str,
    severity: str = "Extreme",
    event: str = "Hurricane",
    area_desc: str | None = None,
    headline: str | None = None,
    description: str | None = None,
) -> WeatherAlert:
    if not is_valid_zip(zip_code):
        raise AlertError(f"ZIP code must be 5 digits, got {zip_code!r}")

    return WeatherAlert(
        id=f"demo-{int(time.time() * 1000)}",
        event=event,
        severity=severity,
        headline=headline or f"{event} Warning - Emergency Alert System Activated",
        description=description
        or (
            f"This is a SIMULATED {event} alert for demonstration purposes. "
            f"A {severity.lower()} weather event has been detected in your area."
        ),
        area_desc=area_desc or county_for_zip(zip_code) or f"Area for ZIP {zip_code}",
    )


async def simulate_disaster(
    session: AsyncSession,
    zip_code: str,
    severity: str = "Extreme",
    event: str = "Hurricane",
    area_desc: str | None = None,
    headline: str | None = None,
    description: str | None = None,
) -> tuple[WeatherAlert, bool, ZipAlertResult]:
    """Run a synthetic alert against a single ZIP.

    Simulated alerts are not recorded in ``processed_alerts``; the per-user
    rate limit still applies.
    """
    alert = build_simulated_alert(zip_code, severity, event, area_desc, headline, description)
    pay = should_send_payout(severity)
    logger.info("Simulating %s (%s) for ZIP %s", event, severity, zip_code)
    return alert, pay, await handle_zip_alert(session, zip_code, alert, pay)
