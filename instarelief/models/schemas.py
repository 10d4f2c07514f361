"""Pydantic schemas for the InstaRelief REST API."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator

from instarelief.models.catastrophe import CatastropheSource
from instarelief.models.user import UserStatus

_ZIP_RE = re.compile(r"^\d{5}$")


def _check_zip(value: str) -> str:
    value = value.strip()
    if not _ZIP_RE.match(value):
        raise ValueError(f"ZIP code must be 5 digits, got {value!r}")
    return value


ZipCode = Annotated[str, AfterValidator(_check_zip)]


# ── Users ─────────────────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    """Onboarding form."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=1, description="Any format; stored as digits only")
    zip: ZipCode = Field(..., examples=["70401"])
    wallet_address: str = Field(..., description="Payout wallet (EVM address)")


class UserResponse(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    zip: str
    wallet_address: str | None
    policy_id: str
    status: UserStatus
    is_activated: bool
    balance: float
    last_payout: datetime | None
    last_payout_amount: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int


class BalanceUpdate(BaseModel):
    balance: float = Field(..., ge=0)


# ── Alerts ────────────────────────────────────────────────────────────────────


class SimulateDisasterRequest(BaseModel):
    zip: ZipCode = "70401"
    severity: str = "Extreme"
    event: str = "Hurricane"
    area_desc: str | None = None
    headline: str | None = None
    description: str | None = None


class UserAlertOutcome(BaseModel):
    email: str
    skipped: bool
    paid: bool
    email_sent: bool
    error: str | None = None


class ZipAlertOutcome(BaseModel):
    zip: str
    users_found: int
    notified: int
    paid: int
    skipped: int
    users: list[UserAlertOutcome]


class SimulateDisasterResponse(BaseModel):
    success: bool = True
    message: str
    alert_id: str
    payout_sent: bool
    severity: str
    affected_zip: str
    result: ZipAlertOutcome
    timestamp: datetime


class AlertRunResponse(BaseModel):
    success: bool = True
    message: str
    alerts_seen: int
    alerts_processed: int
    alerts_skipped: int
    zip_results: list[ZipAlertOutcome]
    timestamp: datetime


class ZipUser(BaseModel):
    email: str
    name: str
    balance: float
    last_alert: datetime | None


class ZipUsersResponse(BaseModel):
    zip: str
    user_count: int
    users: list[ZipUser]
    timestamp: datetime


# ── Catastrophes ──────────────────────────────────────────────────────────────


class CatastropheCreate(BaseModel):
    """A catastrophe trigger. ``zip_codes`` accepts a list or a comma-separated string."""

    type: str = Field(..., min_length=1, max_length=64, examples=["Flood"])
    location: str = Field(..., min_length=1, max_length=255, examples=["Hammond, LA"])
    zip_codes: list[ZipCode] = Field(..., min_length=1, examples=[["70401", "70403"]])
    amount: float = Field(..., gt=0, description="Payout per user in USD")
    description: str = ""

    @field_validator("zip_codes", mode="before")
    @classmethod
    def _split_zip_codes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [z for z in (part.strip() for part in value.split(",")) if z]
        return value

    @field_validator("zip_codes")
    @classmethod
    def _dedupe_zip_codes(cls, value: list[str]) -> list[str]:
        # Keep first-seen order, drop duplicates.
        return list(dict.fromkeys(value))


class CatastrophePreviewResponse(BaseModel):
    zip_codes: list[str]
    affected_users: int
    affected_emails: list[str]
    amount_usd: float
    amount_token: float
    exchange_rate: float
    estimated_total_usd: float
    estimated_total_token: float


class PayoutResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    wallet_address: str
    success: bool
    amount_usd: float
    amount_token: float
    attempts: int
    tx_hash: str | None
    explorer_url: str | None
    error: str | None
    email_sent: bool

    model_config = {"from_attributes": True}


class CatastropheResponse(BaseModel):
    id: uuid.UUID
    type: str
    location: str
    zip_codes: list[str]
    description: str | None
    amount_usd: float
    amount_token: float
    exchange_rate: float
    source: CatastropheSource
    created_by: str | None
    total_affected: int
    successful_payouts: int
    failed_payouts: int
    created_at: datetime
    payouts: list[PayoutResponse] = []

    model_config = {"from_attributes": True}


class CatastropheListResponse(BaseModel):
    catastrophes: list[CatastropheResponse]
    total: int


# ── Price / wallet ────────────────────────────────────────────────────────────


class PriceQuoteResponse(BaseModel):
    coin_id: str
    usd_amount: float
    token_amount: float
    exchange_rate: float
    buffer_percent: float
    timestamp: datetime


class WalletStatusResponse(BaseModel):
    network: str
    operator_address: str | None
    balance: float | None
    configured: bool


# ── Agent ─────────────────────────────────────────────────────────────────────


class AgentQuery(BaseModel):
    query: str = Field(..., min_length=1, max_length=4000)


class AgentResponse(BaseModel):
    response: str
    action: str | None = None
    catastrophe_data: dict[str, Any] | None = None
    tool_calls: list[str] = []
