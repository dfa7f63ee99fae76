"""Matching a player's scores against the winning numbers."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

MAX_SCORES_PER_ENTRY = 5

# matches -> prize tier; anything not listed wins nothing
TIER_BY_MATCHES = {5: 1, 4: 2, 3: 3}


def count_matches(user_scores: Sequence[int], winning_numbers: Iterable[int]) -> int:
    """Count how many of the player's (first five) scores are winning numbers.

    Every occurrence in ``user_scores`` counts, so a player holding the same
    winning score twice scores two matches for it.
    """

    winning = set(winning_numbers)
    return sum(1 for score in user_scores[:MAX_SCORES_PER_ENTRY] if score in winning)


def tier_for_matches(matches: int) -> Optional[int]:
    """Return the prize tier for ``matches``: 5 -> 1, 4 -> 2, 3 -> 3, else ``None``."""

    return TIER_BY_MATCHES.get(matches)


def pad_scores(scores: Sequence[int], size: int = MAX_SCORES_PER_ENTRY) -> list[int]:
    """Return the first ``size`` scores, zero-padded to exactly ``size`` values."""

    padded = list(scores[:size])
    padded.extend([0] * (size - len(padded)))
    return padded


__all__ = [
    "MAX_SCORES_PER_ENTRY",
    "count_matches",
    "pad_scores",
    "tier_for_matches",
]
