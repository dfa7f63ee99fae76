"""Database models for the monthly prize draw."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from golfdraw.db.utils import dt_iso

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .charity import Charity
    from .profile import Profile


DRAW_STATUSES = ("open", "completed", "published")


class Draw(Base):
    """One monthly lottery cycle.

    Created ``open``; becomes ``completed`` when run and ``published`` when
    announced. A reset returns it to ``open`` with every computed field
    cleared.
    """

    __tablename__ = "draws"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    month_year: Mapped[str] = mapped_column(String(32), nullable=False)
    """Cycle label such as ``"March 2026"``; unique per draw."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")

    score_range_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_range_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    winning_numbers: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    """Ordered winning numbers: three rarest scores followed by the two most common."""

    prize_pool: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    """Base pool raised from this cycle's participants (jackpot excluded)."""

    jackpot_added: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Jackpot carried into this draw when it was run; restored on reset."""

    tier1_pool: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tier2_pool: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tier3_pool: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    participants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier1_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier2_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier3_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier1_rollover_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    """Unclaimed tier 1 pool carried into the jackpot."""

    tier2_rollover_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    """Jackpot overflow diverted into tier 2 because the cap was reached."""

    jackpot_cap_reached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    draw_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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

    entries: Mapped[list["DrawEntry"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("month_year", name="uq_draws_month_year"),
        CheckConstraint("status IN ('open','completed','published')", name="status_enum"),
        Index("ix_draws_status_created", "status", "created_at"),
    )

    def __init__(
        self,
        *,
        month_year: str,
        status: str = "open",
        created_at: Optional[datetime] = None,
    ) -> None:
        self.month_year = month_year
        self.status = status
        self.prize_pool = 0.0
        self.tier1_pool = 0.0
        self.tier2_pool = 0.0
        self.tier3_pool = 0.0
        self.participants_count = 0
        self.tier1_winners = 0
        self.tier2_winners = 0
        self.tier3_winners = 0
        self.tier1_rollover_amount = 0.0
        self.tier2_rollover_amount = 0.0
        self.jackpot_cap_reached = False
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Draw(id={self.id}, month_year='{self.month_year}', status='{self.status}')>"

    def clear_results(self) -> None:
        """Return every computed field to its pre-run default and reopen the draw."""

        self.status = "open"
        self.score_range_min = None
        self.score_range_max = None
        self.winning_numbers = None
        self.prize_pool = 0.0
        self.jackpot_added = None
        self.tier1_pool = 0.0
        self.tier2_pool = 0.0
        self.tier3_pool = 0.0
        self.participants_count = 0
        self.tier1_winners = 0
        self.tier2_winners = 0
        self.tier3_winners = 0
        self.tier1_rollover_amount = 0.0
        self.tier2_rollover_amount = 0.0
        self.jackpot_cap_reached = False
        self.draw_date = None
        self.published_at = None

    @classmethod
    def get_by_month_year(cls, session: Session, month_year: str) -> Optional["Draw"]:
        return session.scalar(select(cls).where(cls.month_year == month_year))

    @classmethod
    def current(cls, session: Session) -> Optional["Draw"]:
        """Return the draw the operator should be working on.

        Priority: the oldest ``completed`` draw (it still needs auditing and
        publishing), then the oldest ``open`` draw, then the newest draw of
        any status.
        """

        for status in ("completed", "open"):
            draw = session.scalars(
                select(cls)
                .where(cls.status == status)
                .order_by(cls.created_at.asc(), cls.id.asc())
                .limit(1)
            ).first()
            if draw is not None:
                return draw
        return session.scalars(
            select(cls).order_by(cls.created_at.desc(), cls.id.desc()).limit(1)
        ).first()

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "month_year": self.month_year,
            "status": self.status,
            "score_range_min": self.score_range_min,
            "score_range_max": self.score_range_max,
            "winning_numbers": list(self.winning_numbers or []),
            "prize_pool": self.prize_pool,
            "jackpot_added": self.jackpot_added,
            "tier1_pool": self.tier1_pool,
            "tier2_pool": self.tier2_pool,
            "tier3_pool": self.tier3_pool,
            "participants_count": self.participants_count,
            "tier1_winners": self.tier1_winners,
            "tier2_winners": self.tier2_winners,
            "tier3_winners": self.tier3_winners,
            "tier1_rollover_amount": self.tier1_rollover_amount,
            "tier2_rollover_amount": self.tier2_rollover_amount,
            "jackpot_cap_reached": self.jackpot_cap_reached,
            "draw_date": dt_iso(self.draw_date),
            "published_at": dt_iso(self.published_at),
        }


class DrawEntry(Base):
    """A single player's participation in a draw, with any prize won.

    ``charity_amount + net_payout == gross_prize`` holds for every row.
    """

    __tablename__ = "draw_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draw_id: Mapped[int] = mapped_column(
        ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scores: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    """The five scores played in the draw, zero-padded."""

    matches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gross_prize: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    charity_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    net_payout: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    charity_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("charities.id", ondelete="SET NULL"), nullable=True
    )
    verification_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """``"Pending"`` for winning entries until an admin marks them ``verified``/``rejected``."""

    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[Optional[int]] = mapped_column(ID_TYPE, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    draw: Mapped["Draw"] = relationship(back_populates="entries")
    user: Mapped["Profile"] = relationship("Profile")
    charity: Mapped[Optional["Charity"]] = relationship("Charity")

    __table_args__ = (
        UniqueConstraint("draw_id", "user_id", name="uq_draw_entries_draw_user"),
        CheckConstraint("tier IS NULL OR tier IN (1, 2, 3)", name="tier_enum"),
        Index("ix_draw_entries_tier", "tier"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<DrawEntry(id={self.id}, draw_id={self.draw_id}, user_id={self.user_id}, "
            f"matches={self.matches}, tier={self.tier}, is_paid={self.is_paid})>"
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draw_id": self.draw_id,
            "user_id": self.user_id,
            "scores": list(self.scores or []),
            "matches": self.matches,
            "tier": self.tier,
            "gross_prize": self.gross_prize,
            "charity_amount": self.charity_amount,
            "net_payout": self.net_payout,
            "charity_id": self.charity_id,
            "verification_status": self.verification_status,
            "is_paid": self.is_paid,
            "paid_at": dt_iso(self.paid_at),
            "payment_reference": self.payment_reference,
        }


class JackpotTracker(Base):
    """Singleton row holding the carried-over tier 1 jackpot.

    Writes are guarded by ``version_id``: a flush against a row another
    session changed in the meantime raises
    :class:`sqlalchemy.orm.exc.StaleDataError` instead of silently
    overwriting it.
    """

    __tablename__ = "jackpot_tracker"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_draw_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("draws.id", ondelete="SET NULL"), nullable=True
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    @classmethod
    def get(cls, session: Session) -> "JackpotTracker":
        """Return the tracker row, creating it with a zero jackpot when missing."""

        tracker = session.scalars(select(cls).order_by(cls.id.asc()).limit(1)).first()
        if tracker is None:
            tracker = cls(amount=0.0)
            session.add(tracker)
            session.flush()
        return tracker

    def set_amount(self, amount: float, draw_id: Optional[int] = None) -> None:
        self.amount = float(amount)
        self.last_updated = datetime.now(timezone.utc)
        if draw_id is not None:
            self.last_draw_id = draw_id

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<JackpotTracker(amount={self.amount}, last_draw_id={self.last_draw_id})>"


__all__ = ["Draw", "DrawEntry", "JackpotTracker"]
