"""Fixed monthly draw schedule: the 9th of every month at 8:00 PM New York time."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..models.score import MAX_STABLEFORD_SCORE, MIN_STABLEFORD_SCORE

DRAW_DAY_OF_MONTH = 9
DRAW_HOUR = 20
DRAW_MINUTE = 0
DRAW_TIMEZONE = ZoneInfo("America/New_York")
SCORE_CUTOFF_HOURS_BEFORE = 24


def _draw_date_for_month(year: int, month: int) -> datetime:
    return datetime(
        year, month, DRAW_DAY_OF_MONTH, DRAW_HOUR, DRAW_MINUTE, tzinfo=DRAW_TIMEZONE
    )


def next_draw_date(now: Optional[datetime] = None) -> datetime:
    """Return the next scheduled draw as an aware datetime in New York time.

    This month's draw is returned until it has passed, after which the
    following month's draw is returned.
    """

    current = (now or datetime.now(timezone.utc)).astimezone(DRAW_TIMEZONE)
    draw_date = _draw_date_for_month(current.year, current.month)
    if current > draw_date:
        if current.month == 12:
            draw_date = _draw_date_for_month(current.year + 1, 1)
        else:
            draw_date = _draw_date_for_month(current.year, current.month + 1)
    return draw_date


def draw_month_year(date: Optional[datetime] = None) -> str:
    """Return the cycle label stored in ``Draw.month_year``, e.g. ``"February 2026"``."""

    draw_date = date or next_draw_date()
    return draw_date.strftime("%B %Y")


def can_submit_scores(now: Optional[datetime] = None) -> bool:
    """Scores are locked ``SCORE_CUTOFF_HOURS_BEFORE`` hours before the next draw."""

    current = now or datetime.now(timezone.utc)
    cutoff = next_draw_date(current) - timedelta(hours=SCORE_CUTOFF_HOURS_BEFORE)
    return current < cutoff


def validate_score(score: object) -> int:
    """Return ``score`` as an ``int`` if it is a valid Stableford score.

    Raises
    ------
    ValueError
        If the value is not an integer in the accepted range.
    """

    if isinstance(score, bool):
        raise ValueError("Score must be a number")
    try:
        value = int(score)  # type: ignore[call-overload]
    except (TypeError, ValueError) as exc:
        raise ValueError("Score must be a number") from exc
    if value != score and not isinstance(score, str):
        raise ValueError("Score must be a whole number")
    if value < MIN_STABLEFORD_SCORE:
        raise ValueError(f"Score must be at least {MIN_STABLEFORD_SCORE}")
    if value > MAX_STABLEFORD_SCORE:
        raise ValueError(f"Score cannot exceed {MAX_STABLEFORD_SCORE}")
    return value


__all__ = [
    "DRAW_TIMEZONE",
    "can_submit_scores",
    "draw_month_year",
    "next_draw_date",
    "validate_score",
]
