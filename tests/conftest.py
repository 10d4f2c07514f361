"""Shared test fixtures for the InstaRelief test suite.

Services are tested against a mocked ``AsyncSession``: ORM defaults only
apply on flush, so the factories below set every column explicitly.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from instarelief.models import Catastrophe, CatastropheSource, User, UserStatus
from instarelief.services import price_service
from instarelief.services.noaa_client import WeatherAlert


# ── Factory helpers ───────────────────────────────────────────────────────────


def make_user(
    email: str = "dana@example.com",
    zip_code: str = "70401",
    status: UserStatus = UserStatus.ACTIVE,
    balance: float = 0.0,
    wallet_address: str | None = "0x1111111111111111111111111111111111111111",
    last_alert_at: datetime | None = None,
    first_name: str = "Dana",
    last_name: str = "Robichaux",
) -> User:
    """Create a User instance for testing."""
    return User(
        id=uuid.uuid4(),
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone="9855550101",
        zip=zip_code,
        wallet_address=wallet_address,
        policy_id=f"POL-{zip_code}-TEST1",
        status=status,
        is_activated=True,
        balance=balance,
        last_payout=None,
        last_payout_amount=None,
        last_alert_at=last_alert_at,
        last_alert_id=None,
        created_at=datetime(2025, 11, 11, 1, 14, tzinfo=timezone.utc),
    )


def make_alert(
    alert_id: str = "urn:oid:2.49.0.1.840.0.test.001.1",
    event: str = "Hurricane Warning",
    severity: str = "Extreme",
    area_desc: str = "Tangipahoa, LA; St. Tammany, LA",
) -> WeatherAlert:
    return WeatherAlert(
        id=alert_id,
        event=event,
        severity=severity,
        headline=f"{event} issued for {area_desc}",
        description="Take shelter immediately.",
        area_desc=area_desc,
    )


def make_catastrophe(
    type: str = "Flood",
    location: str = "Hammond, LA",
    zip_codes: list[str] | None = None,
    amount_usd: float = 100.0,
) -> Catastrophe:
    return Catastrophe(
        id=uuid.uuid4(),
        type=type,
        location=location,
        zip_codes=zip_codes or ["70401"],
        description="Flash flooding",
        amount_usd=amount_usd,
        amount_token=0.0408,
        exchange_rate=2500.0,
        source=CatastropheSource.ADMIN,
        created_by="admin",
        total_affected=1,
        successful_payouts=1,
        failed_payouts=0,
        created_at=datetime(2025, 11, 12, 9, 0, tzinfo=timezone.utc),
        payouts=[],
    )


def scalars_result(items: list) -> MagicMock:
    """A mocked ``session.execute`` result whose ``scalars().all()`` returns ``items``."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = items
    result.scalar_one_or_none.return_value = items[0] if items else None
    return result


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_session() -> AsyncMock:
    """A mocked AsyncSession with no rows and a synchronous ``add``."""
    session = AsyncMock()
    session.add = MagicMock()
    session.get.return_value = None
    session.execute.return_value = scalars_result([])
    return session


@pytest.fixture(autouse=True)
def _reset_price_cache():
    price_service.clear_cache()
    yield
    price_service.clear_cache()
