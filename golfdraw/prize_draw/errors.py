"""Exceptions raised by the draw engine and settlement ledger."""

from __future__ import annotations

from typing import Optional, Sequence


class DrawError(Exception):
    """Base class for draw and settlement failures."""


class InsufficientDataError(DrawError):
    """Fewer distinct score values than winning numbers were found in range."""

    def __init__(self, distinct_scores: int, required: int = 5) -> None:
        super().__init__(
            f"Not enough score data in this range: {distinct_scores} distinct "
            f"score(s), {required} required"
        )
        self.distinct_scores = distinct_scores
        self.required = required


class NoEligibleParticipantsError(DrawError):
    """No subscriber qualifies for the draw."""

    def __init__(self, winning_numbers: Optional[Sequence[int]] = None) -> None:
        super().__init__("No eligible participants")
        self.winning_numbers = list(winning_numbers or [])


class DrawNotFoundError(DrawError):
    def __init__(self, draw_id: int) -> None:
        super().__init__(f"Draw {draw_id} not found")
        self.draw_id = draw_id


class InvalidTransitionError(DrawError):
    """A lifecycle operation was invoked on a draw in the wrong status."""

    def __init__(self, operation: str, status: str, allowed: Sequence[str]) -> None:
        super().__init__(
            f"Cannot {operation} a draw in status '{status}' "
            f"(allowed: {', '.join(allowed)})"
        )
        self.operation = operation
        self.status = status
        self.allowed = tuple(allowed)


class PersistenceError(DrawError):
    """Writing a draw, entry, donation or jackpot row failed."""


class SettlementError(DrawError):
    """A payout could not be recorded; money and status were left unchanged."""


class AlreadySettledError(SettlementError):
    """The entry was already paid. Callers treat this as a successful no-op."""


__all__ = [
    "AlreadySettledError",
    "DrawError",
    "DrawNotFoundError",
    "InsufficientDataError",
    "InvalidTransitionError",
    "NoEligibleParticipantsError",
    "PersistenceError",
    "SettlementError",
]
