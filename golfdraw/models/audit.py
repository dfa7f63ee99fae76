from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import ID_TYPE, Base


class ActivityLog(Base):
    """Append-only record of administrative actions."""

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_activity_log_action_created", "action_type", "created_at"),)

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, action_type='{self.action_type}')>"
