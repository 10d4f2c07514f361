"""Catastrophe events and the per-user payouts they produced.

A catastrophe is written once, after every affected user has been
attempted. Each attempt (successful or not) leaves a ``Payout`` row.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from instarelief.core.database import Base


class CatastropheSource(str, enum.Enum):
    ADMIN = "admin"
    AGENT = "agent"


class Catastrophe(Base):
    __tablename__ = "catastrophes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    zip_codes: Mapped[list] = mapped_column(JSON, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount_usd: Mapped[float] = mapped_column(Float, nullable=False)
    amount_token: Mapped[float] = mapped_column(Float, nullable=False)
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False)

    source: Mapped[CatastropheSource] = mapped_column(
        Enum(
            CatastropheSource,
            name="catastrophe_source",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=CatastropheSource.ADMIN,
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    total_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_payouts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_payouts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, index=True
    )

    payouts: Mapped[list["Payout"]] = relationship(
        back_populates="catastrophe", lazy="selectin", order_by="Payout.created_at"
    )

    def __repr__(self) -> str:
        return (
            f"<Catastrophe {self.id} | {self.type} @ {self.location} "
            f"${self.amount_usd} x {self.total_affected}>"
        )


class Payout(Base):
    __tablename__ = "payouts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    catastrophe_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("catastrophes.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    amount_usd: Mapped[float] = mapped_column(Float, nullable=False)
    amount_token: Mapped[float] = mapped_column(Float, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    explorer_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    catastrophe: Mapped[Catastrophe] = relationship(back_populates="payouts")

    def __repr__(self) -> str:
        state = self.tx_hash[:12] if self.success and self.tx_hash else f"failed: {self.error}"
        return f"<Payout {self.email} ${self.amount_usd} {state}>"
