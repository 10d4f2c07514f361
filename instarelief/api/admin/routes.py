"""Admin endpoints: catastrophe triggers, alert runs, wallet status and the AI agent.

Protected by ADMIN_SECRET. Every route here can move money or send email to
policyholders, so none of them are reachable with a user credential.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import anthropic
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.auth import require_admin
from instarelief.core.config import settings
from instarelief.core.database import get_session
from instarelief.models import CatastropheSource, UserStatus
from instarelief.models.schemas import (
    AgentQuery,
    AgentResponse,
    AlertRunResponse,
    BalanceUpdate,
    CatastropheCreate,
    CatastropheListResponse,
    CatastrophePreviewResponse,
    CatastropheResponse,
    SimulateDisasterRequest,
    SimulateDisasterResponse,
    UserAlertOutcome,
    UserListResponse,
    UserResponse,
    WalletStatusResponse,
    ZipAlertOutcome,
    ZipCode,
    ZipUser,
    ZipUsersResponse,
)
from instarelief.services import alert_processor, catastrophe_service, user_service
from instarelief.services.agent import AdminAgent, get_anthropic_client
from instarelief.services.alert_processor import ZipAlertResult
from instarelief.services.chain_client import ChainClient, get_chain_client

router = APIRouter(
    prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


def _zip_outcome(result: ZipAlertResult) -> ZipAlertOutcome:
    return ZipAlertOutcome(
        zip=result.zip,
        users_found=result.users_found,
        notified=result.notified,
        paid=result.paid,
        skipped=result.skipped,
        users=[
            UserAlertOutcome(
                email=u.email,
                skipped=u.skipped,
                paid=u.paid,
                email_sent=u.email_sent,
                error=u.error,
            )
            for u in result.users
        ],
    )


# ── Users ─────────────────────────────────────────────────────────────────────


@router.get("/users", response_model=UserListResponse, summary="List policyholders")
async def list_users(
    zip: ZipCode | None = Query(default=None, description="Filter by ZIP code"),
    user_status: UserStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
) -> UserListResponse:
    users = await user_service.list_users(session, zip_code=zip, status=user_status, limit=limit)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=len(users),
    )


@router.patch(
    "/users/{user_id}/balance",
    response_model=UserResponse,
    summary="Correct a user's balance",
)
async def update_balance(
    user_id: uuid.UUID,
    body: BalanceUpdate,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await user_service.set_balance(session, user_id, body.balance)
    return UserResponse.model_validate(user)


# ── Catastrophes ──────────────────────────────────────────────────────────────


@router.post(
    "/catastrophes/preview",
    response_model=CatastrophePreviewResponse,
    summary="Preview a catastrophe payout",
    description="Resolves affected users and the token amount without sending anything.",
)
async def preview_catastrophe(
    body: CatastropheCreate,
    session: AsyncSession = Depends(get_session),
) -> CatastrophePreviewResponse:
    preview = await catastrophe_service.preview_catastrophe(session, body)
    return CatastrophePreviewResponse(
        zip_codes=preview.zip_codes,
        affected_users=len(preview.users),
        affected_emails=[u.email for u in preview.users],
        amount_usd=preview.conversion.usd_amount,
        amount_token=preview.conversion.token_amount,
        exchange_rate=preview.conversion.exchange_rate,
        estimated_total_usd=preview.estimated_total_usd,
        estimated_total_token=preview.estimated_total_token,
    )


@router.post(
    "/catastrophes",
    response_model=CatastropheResponse,
    status_code=201,
    summary="Trigger a catastrophe",
    description=(
        "Sends the per-user payout on-chain to every affected user with a wallet, "
        "one transfer at a time, then emails confirmations. Per-user failures are "
        "recorded on the catastrophe and do not stop the run."
    ),
)
async def trigger_catastrophe(
    body: CatastropheCreate,
    source: CatastropheSource = Query(
        default=CatastropheSource.ADMIN,
        description="`agent` when confirming a trigger prepared by the AI agent",
    ),
    session: AsyncSession = Depends(get_session),
    chain: ChainClient = Depends(get_chain_client),
) -> CatastropheResponse:
    catastrophe = await catastrophe_service.trigger_catastrophe(
        session, body, chain, created_by="admin", source=source
    )
    return CatastropheResponse.model_validate(catastrophe)


@router.get("/catastrophes", response_model=CatastropheListResponse)
async def list_catastrophes(
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> CatastropheListResponse:
    catastrophes = await catastrophe_service.list_catastrophes(session, limit=limit)
    return CatastropheListResponse(
        catastrophes=[CatastropheResponse.model_validate(c) for c in catastrophes],
        total=len(catastrophes),
    )


@router.get("/catastrophes/{catastrophe_id}", response_model=CatastropheResponse)
async def get_catastrophe(
    catastrophe_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CatastropheResponse:
    catastrophe = await catastrophe_service.get_catastrophe(session, catastrophe_id)
    return CatastropheResponse.model_validate(catastrophe)


# ── Alerts ────────────────────────────────────────────────────────────────────


@router.post(
    "/alerts/fetch",
    response_model=AlertRunResponse,
    tags=["alerts"],
    summary="Process active NOAA alerts now",
    description="Runs the same pipeline as the background alert cron, once.",
)
async def fetch_alerts(session: AsyncSession = Depends(get_session)) -> AlertRunResponse:
    summary = await alert_processor.process_active_alerts(session)
    return AlertRunResponse(
        message=summary.message,
        alerts_seen=summary.alerts_seen,
        alerts_processed=summary.alerts_processed,
        alerts_skipped=summary.alerts_skipped,
        zip_results=[_zip_outcome(r) for r in summary.zip_results],
        timestamp=datetime.now(timezone.utc),
    )


@router.post(
    "/alerts/simulate",
    response_model=SimulateDisasterResponse,
    tags=["alerts"],
    summary="Simulate a disaster alert for one ZIP",
)
async def simulate_disaster(
    body: SimulateDisasterRequest,
    session: AsyncSession = Depends(get_session),
) -> SimulateDisasterResponse:
    alert, pay, result = await alert_processor.simulate_disaster(
        session,
        body.zip,
        severity=body.severity,
        event=body.event,
        area_desc=body.area_desc,
        headline=body.headline,
        description=body.description,
    )
    return SimulateDisasterResponse(
        message=f"Disaster simulation completed for ZIP {body.zip}",
        alert_id=alert.id,
        payout_sent=pay and result.paid > 0,
        severity=alert.severity,
        affected_zip=body.zip,
        result=_zip_outcome(result),
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/alerts/users",
    response_model=ZipUsersResponse,
    tags=["alerts"],
    summary="Active users an alert for this ZIP would reach",
)
async def users_in_zip(
    zip: ZipCode = Query(..., description="5-digit ZIP code"),
    session: AsyncSession = Depends(get_session),
) -> ZipUsersResponse:
    users = await alert_processor.active_users_in_zip(session, zip)
    return ZipUsersResponse(
        zip=zip,
        user_count=len(users),
        users=[
            ZipUser(
                email=u.email,
                name=u.display_name,
                balance=u.balance or 0.0,
                last_alert=u.last_alert_at,
            )
            for u in users
        ],
        timestamp=datetime.now(timezone.utc),
    )


# ── Wallet ────────────────────────────────────────────────────────────────────


@router.get("/wallet", response_model=WalletStatusResponse, tags=["wallet"])
async def wallet_status(chain: ChainClient = Depends(get_chain_client)) -> WalletStatusResponse:
    address = chain.operator_address
    return WalletStatusResponse(
        network=settings.chain_network_name,
        operator_address=address,
        balance=await chain.get_balance(address) if address else None,
        configured=address is not None,
    )


# ── Agent ─────────────────────────────────────────────────────────────────────


@router.post(
    "/agent",
    response_model=AgentResponse,
    tags=["agent"],
    summary="Ask the AI admin assistant",
    description=(
        "The assistant can generate simulated scenarios, validate ZIP codes and prepare "
        "a catastrophe. A prepared catastrophe comes back as "
        "`action=TRIGGER_CATASTROPHE` and is only sent once an admin posts it to "
        "`/catastrophes?source=agent`."
    ),
)
async def ask_agent(
    body: AgentQuery,
    session: AsyncSession = Depends(get_session),
    client: anthropic.AsyncAnthropic = Depends(get_anthropic_client),
) -> AgentResponse:
    reply = await AdminAgent(session, client).run(body.query)
    return AgentResponse(
        response=reply.response,
        action=reply.action,
        catastrophe_data=reply.catastrophe_data,
        tool_calls=reply.tool_calls,
    )
