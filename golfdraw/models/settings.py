from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


DEFAULT_BASE_AMOUNT_PER_SUB = 5.0
DEFAULT_TIER1_PERCENT = 40.0
DEFAULT_TIER2_PERCENT = 35.0
DEFAULT_TIER3_PERCENT = 25.0
DEFAULT_JACKPOT_CAP = 250_000.0


class DrawSettings(Base):
    """Operator-tunable prize settings. At most one row is used."""

    __tablename__ = "draw_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    base_amount_per_sub: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_BASE_AMOUNT_PER_SUB
    )
    tier1_percent: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_TIER1_PERCENT
    )
    tier2_percent: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_TIER2_PERCENT
    )
    tier3_percent: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_TIER3_PERCENT
    )
    jackpot_cap: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_JACKPOT_CAP)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
