"""Reading and updating the operator's prize settings."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import DrawSettings
from ..models.settings import (
    DEFAULT_BASE_AMOUNT_PER_SUB,
    DEFAULT_JACKPOT_CAP,
    DEFAULT_TIER1_PERCENT,
    DEFAULT_TIER2_PERCENT,
    DEFAULT_TIER3_PERCENT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawSettingsSnapshot:
    """Immutable copy of the prize settings used for one computation.

    Tier percentages are whole-number percents (``40`` means 40%).
    """

    base_amount_per_sub: float = DEFAULT_BASE_AMOUNT_PER_SUB
    tier1_percent: float = DEFAULT_TIER1_PERCENT
    tier2_percent: float = DEFAULT_TIER2_PERCENT
    tier3_percent: float = DEFAULT_TIER3_PERCENT
    jackpot_cap: float = DEFAULT_JACKPOT_CAP

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


def _settings_row(session: Session) -> Optional[DrawSettings]:
    return session.scalars(select(DrawSettings).order_by(DrawSettings.id.asc()).limit(1)).first()


def get_draw_settings(session: Session) -> DrawSettingsSnapshot:
    """Return the stored settings, or the platform defaults when none are stored."""

    row = _settings_row(session)
    if row is None:
        return DrawSettingsSnapshot()
    return DrawSettingsSnapshot(
        base_amount_per_sub=float(row.base_amount_per_sub),
        tier1_percent=float(row.tier1_percent),
        tier2_percent=float(row.tier2_percent),
        tier3_percent=float(row.tier3_percent),
        # a zero cap is treated as "not configured"
        jackpot_cap=float(row.jackpot_cap or DEFAULT_JACKPOT_CAP),
    )


def update_draw_settings(
    session: Session,
    *,
    base_amount_per_sub: Optional[float] = None,
    tier1_percent: Optional[float] = None,
    tier2_percent: Optional[float] = None,
    tier3_percent: Optional[float] = None,
    jackpot_cap: Optional[float] = None,
) -> DrawSettingsSnapshot:
    """Patch the stored settings and return the resulting snapshot.

    Raises
    ------
    ValueError
        If an amount is negative or the tier percentages do not sum to 100.
    """

    current = get_draw_settings(session)
    merged = DrawSettingsSnapshot(
        base_amount_per_sub=(
            current.base_amount_per_sub if base_amount_per_sub is None else float(base_amount_per_sub)
        ),
        tier1_percent=current.tier1_percent if tier1_percent is None else float(tier1_percent),
        tier2_percent=current.tier2_percent if tier2_percent is None else float(tier2_percent),
        tier3_percent=current.tier3_percent if tier3_percent is None else float(tier3_percent),
        jackpot_cap=current.jackpot_cap if jackpot_cap is None else float(jackpot_cap),
    )

    for name, value in merged.to_json().items():
        if value < 0:
            raise ValueError(f"{name} must not be negative")
    if merged.jackpot_cap <= 0:
        raise ValueError("jackpot_cap must be positive")
    total_percent = merged.tier1_percent + merged.tier2_percent + merged.tier3_percent
    if abs(total_percent - 100.0) > 1e-9:
        raise ValueError(f"Tier percentages must sum to 100, got {total_percent}")

    row = _settings_row(session)
    if row is None:
        row = DrawSettings()
        session.add(row)
    row.base_amount_per_sub = merged.base_amount_per_sub
    row.tier1_percent = merged.tier1_percent
    row.tier2_percent = merged.tier2_percent
    row.tier3_percent = merged.tier3_percent
    row.jackpot_cap = merged.jackpot_cap
    session.flush()
    logger.info(f"Draw settings updated: {merged.to_json()}")
    return merged


__all__ = ["DrawSettingsSnapshot", "get_draw_settings", "update_draw_settings"]
