"""Charity-side money: donations and the payouts that settle them."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from golfdraw.db.utils import dt_iso

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .charity import Charity
    from .draw import Draw
    from .profile import Profile


DONATION_SOURCES = ("direct", "prize_split", "subscription")


class Donation(Base):
    """Money owed to a charity.

    ``prize_split`` rows are the charity share of a winning draw entry and
    are linked to it by ``(user_id, draw_id)``. ``direct`` rows are gifts
    and carry no draw.
    """

    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    charity_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    draw_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("draws.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    charity_payout_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("charity_payouts.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    charity: Mapped["Charity"] = relationship("Charity")
    user: Mapped[Optional["Profile"]] = relationship("Profile")
    draw: Mapped[Optional["Draw"]] = relationship("Draw")
    payout: Mapped[Optional["CharityPayout"]] = relationship(back_populates="donations")

    __table_args__ = (
        CheckConstraint(
            "source IN ('direct','prize_split','subscription')", name="source_enum"
        ),
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        Index("ix_donations_payout", "charity_payout_id"),
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "charity_id": self.charity_id,
            "user_id": self.user_id,
            "draw_id": self.draw_id,
            "amount": self.amount,
            "source": self.source,
            "status": self.status,
            "charity_payout_id": self.charity_payout_id,
            "created_at": dt_iso(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Donation(id={self.id}, charity_id={self.charity_id}, amount={self.amount}, "
            f"source='{self.source}', charity_payout_id={self.charity_payout_id})>"
        )


class CharityPayout(Base):
    """A transfer to a charity aggregating one or more donations."""

    __tablename__ = "charity_payouts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    charity_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payout_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
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

    charity: Mapped["Charity"] = relationship("Charity")
    donations: Mapped[list["Donation"]] = relationship(back_populates="payout")

    __table_args__ = (
        CheckConstraint("status IN ('pending','paid')", name="status_enum"),
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "charity_id": self.charity_id,
            "amount": self.amount,
            "status": self.status,
            "payout_ref": self.payout_ref,
            "paid_at": dt_iso(self.paid_at),
            "donation_ids": [d.id for d in self.donations],
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<CharityPayout(id={self.id}, charity_id={self.charity_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
