"""Public v1 routes: policyholder onboarding, lookups and price quotes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.config import settings
from instarelief.core.database import get_session
from instarelief.models.schemas import PriceQuoteResponse, UserCreate, UserResponse
from instarelief.services import price_service, user_service

router = APIRouter(prefix="/api/v1", tags=["users"])


# ── Users ─────────────────────────────────────────────────────────────────────


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a policyholder",
    description=(
        "Onboards a user with a ZIP code and payout wallet. A policy id of the form "
        "`POL-<zip>-<5 chars>` is generated, the user starts ACTIVE with a zero balance."
    ),
)
async def register_user(
    body: UserCreate,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await user_service.register_user(session, body)
    return UserResponse.model_validate(user)


@router.get("/users/by-policy/{policy_id}", response_model=UserResponse)
async def get_user_by_policy(
    policy_id: str,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    return UserResponse.model_validate(await user_service.get_user_by_policy(session, policy_id))


@router.get("/users/{user_id}", response_model=UserResponse, summary="Policyholder dashboard")
async def get_user(
    user_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    return UserResponse.model_validate(await user_service.get_user(session, user_id))


# ── Price ─────────────────────────────────────────────────────────────────────


@router.get(
    "/price",
    response_model=PriceQuoteResponse,
    tags=["price"],
    summary="Quote a USD amount in the payout token",
)
async def quote_price(
    usd: float = Query(100.0, gt=0, description="USD amount to convert"),
) -> PriceQuoteResponse:
    conversion = await price_service.convert_usd_to_token(usd)
    return PriceQuoteResponse(
        coin_id=settings.price_coin_id,
        usd_amount=conversion.usd_amount,
        token_amount=conversion.token_amount,
        exchange_rate=conversion.exchange_rate,
        buffer_percent=settings.conversion_buffer_percent,
        timestamp=conversion.timestamp,
    )
