"""Catastrophe payout orchestration.

Triggering a catastrophe:
1. Resolve affected users: every non-inactive user in the ZIP codes that has
   a wallet address.
2. Convert the per-user USD amount to tokens once, at the current spot price.
3. Send transfers **sequentially** from the operator wallet. Retryable chain
   errors (congestion, RPC timeouts) are retried with exponential backoff;
   anything else fails that user only.
4. After each transfer, credit the user on success, record a Payout row for
   the outcome and commit before the next transfer goes out. The catastrophe
   row itself is committed before the first transfer.
5. Email confirmations to paid users (email failures never undo a payout).

There is no durable queue: if the process dies mid-run, every transfer
already sent has a committed Payout row, and the remaining users are simply
missing from the catastrophe.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError
from instarelief.models import Catastrophe, CatastropheSource, Payout, User, UserStatus
from instarelief.models.schemas import CatastropheCreate
from instarelief.services import email_client, price_service
from instarelief.services.chain_client import ChainClient, TransferError, TransferReceipt
from instarelief.services.price_service import Conversion

logger = logging.getLogger(__name__)


class CatastropheError(ReliefError):
    status_code = 422
    code = "CATASTROPHE_REJECTED"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


@dataclass
class CatastrophePreview:
    zip_codes: list[str]
    users: list[User]
    conversion: Conversion

    @property
    def estimated_total_usd(self) -> float:
        return self.conversion.usd_amount * len(self.users)

    @property
    def estimated_total_token(self) -> float:
        return self.conversion.token_amount * len(self.users)


async def affected_users(session: AsyncSession, zip_codes: list[str]) -> list[User]:
    """Users in ``zip_codes`` that can receive an on-chain payout."""
    stmt = (
        select(User)
        .where(
            User.zip.in_(zip_codes),
            User.wallet_address.is_not(None),
            User.status != UserStatus.INACTIVE,
        )
        .order_by(User.created_at)
    )
    result = await session.execute(stmt)
    return [u for u in result.scalars().all() if u.wallet_address]


def _no_users_error(zip_codes: list[str]) -> CatastropheError:
    return CatastropheError(
        f"No users with wallet addresses found in affected ZIP codes: {', '.join(zip_codes)}",
        code="NO_AFFECTED_USERS",
    )


async def preview_catastrophe(
    session: AsyncSession, request: CatastropheCreate
) -> CatastrophePreview:
    """Who would be paid and what it would cost, without sending anything."""
    users = await affected_users(session, request.zip_codes)
    if not users:
        raise _no_users_error(request.zip_codes)

    conversion = await price_service.convert_usd_to_token(request.amount)
    return CatastrophePreview(zip_codes=request.zip_codes, users=users, conversion=conversion)


async def _send_with_retry(
    chain: ChainClient,
    address: str,
    amount: float,
) -> tuple[TransferReceipt | None, int, str | None]:
    """Returns ``(receipt, attempts, error)``; exactly one of receipt/error is set."""
    max_attempts = max(1, settings.transfer_max_attempts)
    backoff = settings.transfer_backoff_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            return await chain.send_native(address, amount), attempt, None
        except TransferError as exc:
            if not exc.retryable or attempt == max_attempts:
                return None, attempt, exc.message
            logger.warning(
                "Transfer to %s failed (attempt %d/%d): %s; retrying in %.1fs",
                address, attempt, max_attempts, exc.message, backoff,
            )
        await asyncio.sleep(backoff)
        backoff = min(backoff * 2, 30.0)

    return None, max_attempts, "Transfer attempts exhausted"


async def _pay_user(
    chain: ChainClient,
    catastrophe: Catastrophe,
    user: User,
    conversion: Conversion,
    now: datetime,
) -> Payout:
    receipt, attempts, error = await _send_with_retry(
        chain, user.wallet_address, conversion.token_amount
    )

    payout = Payout(
        id=uuid.uuid4(),
        catastrophe_id=catastrophe.id,
        user_id=user.id,
        email=user.email,
        wallet_address=user.wallet_address,
        success=receipt is not None,
        amount_usd=conversion.usd_amount,
        amount_token=conversion.token_amount,
        attempts=attempts,
        tx_hash=receipt.tx_hash if receipt else None,
        explorer_url=receipt.explorer_url if receipt else None,
        error=error,
        email_sent=False,
        created_at=now,
    )

    if receipt is not None:
        user.balance = (user.balance or 0.0) + conversion.usd_amount
        user.status = UserStatus.PAID
        user.last_payout = now
        user.last_payout_amount = conversion.usd_amount
        logger.info("Paid %s: %s", user.email, receipt.explorer_url)
    else:
        logger.error("Payout to %s failed after %d attempt(s): %s", user.email, attempts, error)

    return payout


async def _send_confirmations(
    catastrophe: Catastrophe,
    paid: list[tuple[User, Payout]],
) -> None:
    for user, payout in paid:
        message = email_client.render_payout_email(user, catastrophe, payout)
        try:
            await email_client.send_email([email_client.recipient(user)], message)
            payout.email_sent = True
        except email_client.EmailError as exc:
            logger.error("Payout confirmation email failed for %s: %s", user.email, exc)


async def trigger_catastrophe(
    session: AsyncSession,
    request: CatastropheCreate,
    chain: ChainClient,
    created_by: str | None = None,
    source: CatastropheSource = CatastropheSource.ADMIN,
) -> Catastrophe:
    """Pay every affected user and record the catastrophe.

    Raises:
        CatastropheError: If the operator wallet is not configured or no user
            in the ZIP codes has a wallet address. Nothing is sent in that case.
    """
    if chain.operator_address is None:
        raise CatastropheError(
            "Operator wallet is not configured (set CHAIN_PRIVATE_KEY)",
            status_code=503,
            code="WALLET_NOT_CONFIGURED",
        )

    users = await affected_users(session, request.zip_codes)
    if not users:
        raise _no_users_error(request.zip_codes)

    conversion = await price_service.convert_usd_to_token(request.amount)
    logger.info(
        "Triggering %s at %s: %d users x $%.2f (%.8f tokens @ %.2f), est. total %.8f",
        request.type, request.location, len(users), conversion.usd_amount,
        conversion.token_amount, conversion.exchange_rate,
        conversion.token_amount * len(users),
    )

    now = datetime.now(timezone.utc)
    catastrophe = Catastrophe(
        id=uuid.uuid4(),
        type=request.type,
        location=request.location,
        zip_codes=request.zip_codes,
        description=request.description,
        amount_usd=conversion.usd_amount,
        amount_token=conversion.token_amount,
        exchange_rate=conversion.exchange_rate,
        source=source,
        created_by=created_by,
        total_affected=len(users),
        successful_payouts=0,
        failed_payouts=0,
        created_at=now,
        payouts=[],
    )
    session.add(catastrophe)
    await session.commit()

    paid: list[tuple[User, Payout]] = []
    for index, user in enumerate(users, start=1):
        logger.info("Processing payout %d/%d: %s", index, len(users), user.email)
        payout = await _pay_user(chain, catastrophe, user, conversion, now)
        catastrophe.payouts.append(payout)
        if payout.success:
            paid.append((user, payout))
            catastrophe.successful_payouts += 1
        else:
            catastrophe.failed_payouts += 1
        # The transfer is already on-chain; record it before the next one goes out.
        await session.commit()

    await _send_confirmations(catastrophe, paid)
    await session.flush()

    logger.info(
        "Catastrophe %s recorded: %d successful, %d failed",
        catastrophe.id, catastrophe.successful_payouts, catastrophe.failed_payouts,
    )
    return catastrophe


async def list_catastrophes(session: AsyncSession, limit: int = 50) -> list[Catastrophe]:
    stmt = select(Catastrophe).order_by(Catastrophe.created_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_catastrophe(session: AsyncSession, catastrophe_id: uuid.UUID) -> Catastrophe:
    catastrophe = await session.get(Catastrophe, catastrophe_id)
    if catastrophe is None:
        raise CatastropheError(
            f"Catastrophe {catastrophe_id} not found", status_code=404, code="NOT_FOUND"
        )
    return catastrophe
