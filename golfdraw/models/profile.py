from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .charity import Charity
    from .score import ScoreRecord
    from .subscription import Subscription


DEFAULT_DONATION_PERCENTAGE = 10.0


class Profile(Base):
    """A golfer (or administrator) account.

    ``account_balance`` is the player's wallet. It is only ever changed
    through single-statement SQL increments, see
    :meth:`golfdraw.settlement.SettlementLedger.mark_winner_as_paid`.
    """

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    selected_charity_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="SET NULL"), nullable=True
    )
    donation_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_DONATION_PERCENTAGE
    )
    account_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
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

    selected_charity: Mapped[Optional["Charity"]] = relationship("Charity")
    subscription: Mapped[Optional["Subscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    scores: Mapped[list["ScoreRecord"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("role IN ('user','admin')", name="role_enum"),
        CheckConstraint(
            "donation_percentage >= 0 AND donation_percentage <= 100",
            name="donation_percentage_range",
        ),
    )

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("email must not be empty")
        return normalized

    @classmethod
    def get_by_email(cls, session: Session, email: str) -> Optional["Profile"]:
        """Retrieve a profile by email address."""
        return session.scalar(select(cls).where(cls.email == email.strip().lower()))

    @property
    def effective_donation_percentage(self) -> float:
        """Donation percentage with the platform default applied to unset values."""
        return self.donation_percentage or DEFAULT_DONATION_PERCENTAGE

    def __repr__(self) -> str:
        return (
            f"<Profile(id={self.id}, email='{self.email}', role='{self.role}', "
            f"status='{self.status}', account_balance={self.account_balance})>"
        )
