"""Frequency distribution of submitted scores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import ScoreRecord

logger = logging.getLogger(__name__)

# Wide enough that the first days of a cycle still have enough data.
DEFAULT_LOOKBACK_DAYS = 90


@dataclass(frozen=True)
class ScoreFrequency:
    """Number of times ``score`` was submitted within the lookback window."""

    score: int
    count: int


class ScoreStatistics:
    """Aggregates raw score submissions into a frequency table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def compute_frequencies(
        self,
        min_score: int,
        max_score: int,
        window_days: int = DEFAULT_LOOKBACK_DAYS,
        *,
        now: Optional[datetime] = None,
    ) -> list[ScoreFrequency]:
        """Return score frequencies sorted by ascending count, then ascending score.

        Parameters
        ----------
        min_score, max_score : int
            Inclusive score range to consider.
        window_days : int, default: 90
            Only scores created on or after midnight (UTC) ``window_days`` ago
            are counted.
        now : Optional[datetime], default: None
            Reference time, mainly for tests.

        Returns
        -------
        list[ScoreFrequency]
            Empty when nothing matched; callers decide whether that is an error.
        """

        if min_score > max_score:
            raise ValueError("min_score must not exceed max_score")
        if window_days <= 0:
            raise ValueError("window_days must be positive")

        reference = now or datetime.now(timezone.utc)
        lookback = (reference - timedelta(days=window_days)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        count_col = func.count(ScoreRecord.id).label("count")
        stmt = (
            select(ScoreRecord.score, count_col)
            .where(
                ScoreRecord.score >= min_score,
                ScoreRecord.score <= max_score,
                ScoreRecord.created_at >= lookback,
            )
            .group_by(ScoreRecord.score)
            .order_by(count_col.asc(), ScoreRecord.score.asc())
        )
        frequencies = [
            ScoreFrequency(score=int(score), count=int(count))
            for score, count in self._session.execute(stmt).all()
        ]
        logger.debug(
            f"Score frequencies calculated for {min_score}-{max_score}: "
            f"{len(frequencies)} unique scores"
        )
        return frequencies


__all__ = ["DEFAULT_LOOKBACK_DAYS", "ScoreFrequency", "ScoreStatistics"]
