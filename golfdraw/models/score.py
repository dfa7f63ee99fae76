from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .profile import Profile


MIN_STABLEFORD_SCORE = 1
MAX_STABLEFORD_SCORE = 45


class ScoreRecord(Base):
    """A Stableford score logged by a player. Immutable once stored."""

    __tablename__ = "scores"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user: Mapped["Profile"] = relationship(back_populates="scores")

    __table_args__ = (
        CheckConstraint(
            f"score >= {MIN_STABLEFORD_SCORE} AND score <= {MAX_STABLEFORD_SCORE}",
            name="score_range",
        ),
        Index("ix_scores_user_created", "user_id", "created_at"),
        Index("ix_scores_score_created", "score", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ScoreRecord(id={self.id}, user_id={self.user_id}, score={self.score})>"
