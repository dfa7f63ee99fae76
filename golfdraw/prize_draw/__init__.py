"""Monthly prize draw: winning numbers, eligibility, allocation and lifecycle."""

from .allocation import PrizePoolAllocation, allocate_prize_pool
from .eligibility import (
    DEFAULT_ELIGIBILITY_RULES,
    EligibilityContext,
    EligibilityResolver,
    EligibilityRule,
    EligibleUser,
)
from .engine import (
    DrawEngine,
    DrawRunReport,
    DrawSimulation,
    LifecycleChange,
    ScoredEntry,
    TierResult,
)
from .errors import (
    AlreadySettledError,
    DrawError,
    DrawNotFoundError,
    InsufficientDataError,
    InvalidTransitionError,
    NoEligibleParticipantsError,
    PersistenceError,
    SettlementError,
)
from .matching import count_matches, pad_scores, tier_for_matches
from .schedule import can_submit_scores, draw_month_year, next_draw_date, validate_score
from .settings import DrawSettingsSnapshot, get_draw_settings, update_draw_settings
from .statistics import DEFAULT_LOOKBACK_DAYS, ScoreFrequency, ScoreStatistics
from .winning_numbers import generate_winning_numbers

__all__ = [
    "AlreadySettledError",
    "DEFAULT_ELIGIBILITY_RULES",
    "DEFAULT_LOOKBACK_DAYS",
    "DrawEngine",
    "DrawError",
    "DrawNotFoundError",
    "DrawRunReport",
    "DrawSettingsSnapshot",
    "DrawSimulation",
    "EligibilityContext",
    "EligibilityResolver",
    "EligibilityRule",
    "EligibleUser",
    "InsufficientDataError",
    "InvalidTransitionError",
    "LifecycleChange",
    "NoEligibleParticipantsError",
    "PersistenceError",
    "PrizePoolAllocation",
    "ScoreFrequency",
    "ScoreStatistics",
    "ScoredEntry",
    "SettlementError",
    "TierResult",
    "allocate_prize_pool",
    "can_submit_scores",
    "count_matches",
    "draw_month_year",
    "generate_winning_numbers",
    "get_draw_settings",
    "next_draw_date",
    "pad_scores",
    "tier_for_matches",
    "update_draw_settings",
    "validate_score",
]
