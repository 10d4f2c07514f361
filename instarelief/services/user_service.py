"""Policyholder onboarding and lookups."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.errors import ReliefError
from instarelief.models import User, UserStatus
from instarelief.models.schemas import UserCreate
from instarelief.services.chain_client import ChainClient
from instarelief.services.policy import generate_policy_id

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


class RegistrationError(ReliefError):
    status_code = 422
    code = "REGISTRATION_FAILED"


class DuplicateUserError(RegistrationError):
    status_code = 409
    code = "EMAIL_EXISTS"


class UserNotFoundError(ReliefError):
    status_code = 404
    code = "USER_NOT_FOUND"


def normalize_phone(phone: str) -> str:
    digits = _NON_DIGITS.sub("", phone)
    if not digits:
        raise RegistrationError(f"Phone number has no digits: {phone!r}")
    return digits


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def register_user(session: AsyncSession, payload: UserCreate) -> User:
    """Create an ACTIVE policyholder with a fresh policy id and zero balance.

    Raises:
        DuplicateUserError: The email is already registered.
        RegistrationError: The wallet address or phone number is unusable.
    """
    email = payload.email.lower()
    if await get_user_by_email(session, email) is not None:
        raise DuplicateUserError(f"A user with email {email} already exists")

    wallet = payload.wallet_address.strip()
    if not ChainClient.is_valid_address(wallet):
        raise RegistrationError(f"Invalid wallet address: {wallet}")

    user = User(
        id=uuid.uuid4(),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=email,
        phone=normalize_phone(payload.phone),
        zip=payload.zip,
        wallet_address=wallet,
        policy_id=generate_policy_id(payload.zip),
        status=UserStatus.ACTIVE,
        is_activated=True,
        balance=0.0,
        created_at=datetime.now(timezone.utc),
    )
    session.add(user)
    await session.flush()

    logger.info("Registered %s in ZIP %s (policy %s)", email, user.zip, user.policy_id)
    return user


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


async def get_user_by_policy(session: AsyncSession, policy_id: str) -> User:
    result = await session.execute(select(User).where(User.policy_id == policy_id.upper()))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(f"No user holds policy {policy_id}")
    return user


async def list_users(
    session: AsyncSession,
    zip_code: str | None = None,
    status: UserStatus | None = None,
    limit: int = 100,
) -> list[User]:
    stmt = select(User).order_by(User.created_at.desc()).limit(limit)
    if zip_code:
        stmt = stmt.where(User.zip == zip_code)
    if status is not None:
        stmt = stmt.where(User.status == status)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def set_balance(session: AsyncSession, user_id: uuid.UUID, balance: float) -> User:
    user = await get_user(session, user_id)
    logger.info("Balance for %s set %.2f -> %.2f", user.email, user.balance or 0.0, balance)
    user.balance = balance
    await session.flush()
    return user


async def user_analytics(session: AsyncSession) -> dict:
    """Aggregate counts for the admin dashboard and the agent."""
    total = await session.scalar(select(func.count()).select_from(User)) or 0
    with_wallet = (
        await session.scalar(
            select(func.count()).select_from(User).where(User.wallet_address.is_not(None))
        )
        or 0
    )

    by_status_rows = await session.execute(
        select(User.status, func.count()).group_by(User.status)
    )
    by_status = {
        (status.value if isinstance(status, UserStatus) else str(status)): count
        for status, count in by_status_rows.all()
    }

    by_zip_rows = await session.execute(
        select(User.zip, func.count()).group_by(User.zip).order_by(func.count().desc()).limit(10)
    )
    top_zips = [{"zip": zip_code, "users": count} for zip_code, count in by_zip_rows.all()]

    total_balance = await session.scalar(select(func.coalesce(func.sum(User.balance), 0.0)))

    return {
        "total_users": total,
        "users_with_wallet": with_wallet,
        "by_status": by_status,
        "top_zips": top_zips,
        "total_balance_usd": float(total_balance or 0.0),
    }
