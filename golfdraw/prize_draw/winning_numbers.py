"""Derivation of a draw's winning numbers from the score distribution."""

from __future__ import annotations

from typing import Sequence

from .errors import InsufficientDataError
from .statistics import ScoreFrequency

WINNING_NUMBER_COUNT = 5
RAREST_COUNT = 3
MOST_COMMON_COUNT = 2


def least_popular(frequencies: Sequence[ScoreFrequency]) -> list[int]:
    """Return the three rarest scores, rarest first."""

    return [f.score for f in frequencies[:RAREST_COUNT]]


def most_popular(frequencies: Sequence[ScoreFrequency]) -> list[int]:
    """Return the two most common scores in ascending-frequency order."""

    return [f.score for f in frequencies[-MOST_COMMON_COUNT:]]


def generate_winning_numbers(frequencies: Sequence[ScoreFrequency]) -> list[int]:
    """Return ``[3 rarest] + [2 most common]`` for a sorted frequency table.

    ``frequencies`` must already be ordered by ascending count with ascending
    score as tie-break, as returned by
    :meth:`~golfdraw.prize_draw.statistics.ScoreStatistics.compute_frequencies`.
    The result is a deterministic function of the table.

    Raises
    ------
    InsufficientDataError
        If fewer than five distinct score values are present.
    """

    if len(frequencies) < WINNING_NUMBER_COUNT:
        raise InsufficientDataError(len(frequencies), WINNING_NUMBER_COUNT)
    return least_popular(frequencies) + most_popular(frequencies)


__all__ = [
    "WINNING_NUMBER_COUNT",
    "generate_winning_numbers",
    "least_popular",
    "most_popular",
]
