"""Policyholder model.

A user is covered for the ZIP code they registered with. Alert payouts are
credited to ``balance`` (USD); catastrophe payouts are also sent on-chain to
``wallet_address``.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from instarelief.core.database import Base


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    INACTIVE = "INACTIVE"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)

    zip: Mapped[str] = mapped_column(String(5), nullable=False, index=True)
    wallet_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    policy_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status"), nullable=False, default=UserStatus.ACTIVE
    )
    is_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_payout: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payout_amount: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Per-user alert throttling
    last_alert_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_alert_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.email.split("@")[0]

    def __repr__(self) -> str:
        return f"<User {self.email} zip={self.zip} policy={self.policy_id} status={self.status.value}>"
