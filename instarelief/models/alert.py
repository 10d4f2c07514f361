"""Processed NOAA alert ids.

A row is written before an alert is fanned out so that the same alert is
never paid twice, even when a later run sees it again.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from instarelief.core.database import Base


class ProcessedAlert(Base):
    __tablename__ = "processed_alerts"

    alert_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    severity: Mapped[str | None] = mapped_column(String(32), nullable=True)
    area_desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<ProcessedAlert {self.alert_id} severity={self.severity}>"
