"""Subscription records that decide who takes part in which draw."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .draw import Draw
    from .profile import Profile


PLANS = ("monthly", "annual")
LIVE_STATUSES = ("active", "trialing")


class Subscription(Base):
    """A player's paid plan.

    An ``annual`` plan takes part in every draw while live. A ``monthly``
    plan is bound to exactly one draw through ``assigned_draw_id`` and is
    expired when that draw is published.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    assigned_draw_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("draws.id", ondelete="SET NULL"), nullable=True
    )
    assigned_draw_month: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    """Legacy month label (e.g. ``"March 2026"``); superseded by ``assigned_draw_id``."""

    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    draws_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user: Mapped["Profile"] = relationship(back_populates="subscription")
    assigned_draw: Mapped[Optional["Draw"]] = relationship("Draw")

    __table_args__ = (
        CheckConstraint("plan IN ('monthly','annual')", name="plan_enum"),
        CheckConstraint(
            "status IN ('active','trialing','cancelled','past_due')",
            name="status_enum",
        ),
        Index("ix_subscriptions_status_plan", "status", "plan"),
    )

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @classmethod
    def get_by_user_id(cls, session: Session, user_id: int) -> Optional["Subscription"]:
        return session.scalar(select(cls).where(cls.user_id == user_id))

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, plan='{self.plan}', "
            f"status='{self.status}', assigned_draw_id={self.assigned_draw_id})>"
        )
