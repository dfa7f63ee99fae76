"""Which subscribers take part in a given draw.

Eligibility is decided by an ordered chain of named rules. The first rule
that accepts a subscription decides, and its name is kept on the resulting
:class:`EligibleUser` so that an operator can see *why* someone was entered.
The same chain backs counting, listing and draw execution.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.utils import as_utc
from ..models import Draw, Profile, ScoreRecord, Subscription
from ..models.subscription import LIVE_STATUSES
from .matching import MAX_SCORES_PER_ENTRY
from .schedule import next_draw_date

logger = logging.getLogger(__name__)

load_dotenv()

TEST_ACCOUNT_NAMES = frozenset({"Test User"})


@dataclass(frozen=True)
class EligibilityContext:
    """Inputs shared by every rule for one resolution.

    ``target_draw_id`` is ``None`` in global mode, i.e. when no draw was
    requested and none could be resolved.
    """

    target_draw_id: Optional[int]
    next_draw_date: datetime


@dataclass(frozen=True)
class EligibilityRule:
    """A named yes/no test applied to a live subscription."""

    name: str
    predicate: Callable[[Subscription, EligibilityContext], bool]
    description: Optional[str] = None

    def matches(self, subscription: Subscription, context: EligibilityContext) -> bool:
        return bool(self.predicate(subscription, context))


def _annual_plan(sub: Subscription, ctx: EligibilityContext) -> bool:
    return sub.plan == "annual"


def _assigned_to_draw(sub: Subscription, ctx: EligibilityContext) -> bool:
    return (
        sub.plan == "monthly"
        and ctx.target_draw_id is not None
        and sub.assigned_draw_id == ctx.target_draw_id
    )


def _period_covers_next_draw(sub: Subscription, ctx: EligibilityContext) -> bool:
    if sub.plan != "monthly" or sub.assigned_draw_id is not None:
        return False
    period_end = as_utc(sub.current_period_end)
    return period_end is not None and period_end >= ctx.next_draw_date


def _no_target_draw(sub: Subscription, ctx: EligibilityContext) -> bool:
    return ctx.target_draw_id is None


DEFAULT_ELIGIBILITY_RULES: tuple[EligibilityRule, ...] = (
    EligibilityRule(
        "annual_plan",
        _annual_plan,
        "Annual subscribers take part in every draw while active or trialing.",
    ),
    EligibilityRule(
        "assigned_to_draw",
        _assigned_to_draw,
        "Monthly subscribers take part in the draw they are assigned to.",
    ),
    EligibilityRule(
        "period_covers_next_draw",
        _period_covers_next_draw,
        "Unassigned monthly subscribers whose paid period runs through the next draw.",
    ),
    EligibilityRule(
        "no_target_draw",
        _no_target_draw,
        "Without a target draw every live subscription counts.",
    ),
)


@dataclass
class EligibleUser:
    """A player entered into a draw, with their most recent scores (newest first)."""

    id: int
    email: str
    full_name: Optional[str]
    selected_charity_id: Optional[int]
    donation_percentage: float
    rule: str
    scores: list[int] = field(default_factory=list)


def _configured_test_emails() -> frozenset[str]:
    raw = os.getenv("GOLFDRAW_TEST_ACCOUNT_EMAILS", "")
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


class EligibilityResolver:
    """Resolve the participants of a draw.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    rules : Optional[Sequence[EligibilityRule]], default: None
        Ordered rule chain; defaults to :data:`DEFAULT_ELIGIBILITY_RULES`.
    score_limit : int, default: 5
        Number of most recent scores attached to each participant.
    test_account_emails : Optional[Iterable[str]], default: None
        Administrator accounts that still play. Defaults to the
        comma-separated ``GOLFDRAW_TEST_ACCOUNT_EMAILS`` environment variable.
    """

    def __init__(
        self,
        session: Session,
        *,
        rules: Optional[Sequence[EligibilityRule]] = None,
        score_limit: int = MAX_SCORES_PER_ENTRY,
        test_account_emails: Optional[Iterable[str]] = None,
    ) -> None:
        if score_limit <= 0:
            raise ValueError("score_limit must be positive")
        self._session = session
        self._rules = tuple(rules) if rules is not None else DEFAULT_ELIGIBILITY_RULES
        self._score_limit = score_limit
        self._test_emails = (
            frozenset(e.strip().lower() for e in test_account_emails)
            if test_account_emails is not None
            else _configured_test_emails()
        )

    @property
    def rules(self) -> tuple[EligibilityRule, ...]:
        return self._rules

    def is_player(self, profile: Profile) -> bool:
        """Active non-admin accounts, plus the named test accounts."""

        if profile.status != "active":
            return False
        if profile.role != "admin":
            return True
        return profile.full_name in TEST_ACCOUNT_NAMES or profile.email in self._test_emails

    def context_for(
        self,
        draw_id: Optional[int] = None,
        *,
        global_mode: bool = False,
        now: Optional[datetime] = None,
    ) -> EligibilityContext:
        """Build the rule context, resolving the current draw when none is given."""

        target_id = draw_id
        if target_id is None and not global_mode:
            current = Draw.current(self._session)
            target_id = current.id if current is not None else None
        return EligibilityContext(
            target_draw_id=None if global_mode else target_id,
            next_draw_date=next_draw_date(now),
        )

    def matching_rule(
        self, subscription: Subscription, context: EligibilityContext
    ) -> Optional[EligibilityRule]:
        """Return the first rule accepting ``subscription``, or ``None``."""

        if subscription.status not in LIVE_STATUSES:
            return None
        for rule in self._rules:
            if rule.matches(subscription, context):
                return rule
        return None

    def _eligible_pairs(
        self, context: EligibilityContext
    ) -> list[tuple[Profile, EligibilityRule]]:
        rows = self._session.execute(
            select(Subscription, Profile)
            .join(Profile, Profile.id == Subscription.user_id)
            .where(Subscription.status.in_(LIVE_STATUSES))
            .order_by(Profile.id.asc())
        ).all()

        pairs: list[tuple[Profile, EligibilityRule]] = []
        seen: set[int] = set()
        for subscription, profile in rows:
            if profile.id in seen or not self.is_player(profile):
                continue
            rule = self.matching_rule(subscription, context)
            if rule is None:
                continue
            seen.add(profile.id)
            pairs.append((profile, rule))
        return pairs

    def recent_scores(self, user_ids: Sequence[int]) -> dict[int, list[int]]:
        """Return up to ``score_limit`` most recent scores per user, newest first."""

        scores: dict[int, list[int]] = {uid: [] for uid in user_ids}
        if not user_ids:
            return scores
        rows = self._session.execute(
            select(ScoreRecord.user_id, ScoreRecord.score)
            .where(ScoreRecord.user_id.in_(user_ids))
            .order_by(
                ScoreRecord.user_id.asc(),
                ScoreRecord.created_at.desc(),
                ScoreRecord.id.desc(),
            )
        ).all()
        for user_id, score in rows:
            bucket = scores[user_id]
            if len(bucket) < self._score_limit:
                bucket.append(int(score))
        return scores

    def resolve(
        self,
        draw_id: Optional[int] = None,
        *,
        global_mode: bool = False,
        now: Optional[datetime] = None,
    ) -> list[EligibleUser]:
        """Return the participants of ``draw_id`` (or of the current draw).

        Scores are not padded here; fewer than five scores are padded by the
        draw engine.
        """

        context = self.context_for(draw_id, global_mode=global_mode, now=now)
        pairs = self._eligible_pairs(context)
        scores = self.recent_scores([profile.id for profile, _ in pairs])

        eligible = [
            EligibleUser(
                id=profile.id,
                email=profile.email,
                full_name=profile.full_name,
                selected_charity_id=profile.selected_charity_id,
                donation_percentage=profile.effective_donation_percentage,
                rule=rule.name,
                scores=scores[profile.id],
            )
            for profile, rule in pairs
        ]
        target = context.target_draw_id if context.target_draw_id is not None else "global"
        logger.debug(f"Eligible users for draw {target}: {len(eligible)}")
        return eligible

    def count(
        self,
        draw_id: Optional[int] = None,
        *,
        global_mode: bool = False,
        now: Optional[datetime] = None,
    ) -> int:
        """Number of participants, using exactly the same rules as :meth:`resolve`."""

        context = self.context_for(draw_id, global_mode=global_mode, now=now)
        return len(self._eligible_pairs(context))


__all__ = [
    "DEFAULT_ELIGIBILITY_RULES",
    "EligibilityContext",
    "EligibilityResolver",
    "EligibilityRule",
    "EligibleUser",
]
