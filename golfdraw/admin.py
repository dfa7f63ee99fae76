"""Draw and subscription administration."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .audit import log_activity
from .models import Draw, Profile, ScoreRecord, Subscription
from .prize_draw.eligibility import EligibilityResolver
from .prize_draw.schedule import can_submit_scores, draw_month_year, validate_score

logger = logging.getLogger(__name__)

FREE_PLANS = ("none", "free")
DRAWS_PER_PLAN = {"monthly": 1, "annual": 12}
PERIOD_DAYS_PER_PLAN = {"monthly": 30, "annual": 365}


def get_current_draw(session: Session) -> Optional[Draw]:
    """Return the draw the operator is working on, or ``None`` if there is none."""
    return Draw.current(session)


def create_new_draw(session: Session, month_year: str) -> Draw:
    """Return the draw for ``month_year``, creating it ``open`` when missing."""

    if not month_year or not month_year.strip():
        raise ValueError("month_year must not be empty")
    month_year = month_year.strip()

    existing = Draw.get_by_month_year(session, month_year)
    if existing is not None:
        logger.debug(f"Draw already exists for {month_year}")
        return existing

    draw = Draw(month_year=month_year)
    session.add(draw)
    session.flush()
    logger.info(f"New draw created: {month_year}")
    log_activity(session, "draw_created", f"New draw created: {month_year}", {"draw_id": draw.id})
    return draw


def _oldest_open_draw(session: Session) -> Optional[Draw]:
    return session.scalars(
        select(Draw)
        .where(Draw.status == "open")
        .order_by(Draw.created_at.asc(), Draw.id.asc())
        .limit(1)
    ).first()


def assign_subscription(
    session: Session,
    user: Profile,
    plan: str,
    *,
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """Give ``user`` a plan, or take it away.

    ``"none"`` and ``"free"`` delete the user's subscription and return
    ``None``. ``"monthly"`` and ``"annual"`` create or refresh an ``active``
    subscription assigned to the oldest open draw; when no draw is open, the
    draw for the next scheduled month is created and used.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    user : Profile
        Persisted profile receiving the plan.
    plan : str
        ``"monthly"``, ``"annual"``, ``"none"`` or ``"free"``.
    now : Optional[datetime], default: None
        Start of the subscription period.

    Raises
    ------
    ValueError
        If ``plan`` is unknown or the user is not persisted.
    """

    if user.id is None:
        raise ValueError("User must be persisted before assigning a subscription")

    subscription = Subscription.get_by_user_id(session, user.id)
    if plan in FREE_PLANS:
        if subscription is not None:
            session.delete(subscription)
            session.flush()
            logger.info(f"Subscription removed for user {user.id}")
        return None
    if plan not in DRAWS_PER_PLAN:
        raise ValueError(f"Unknown plan '{plan}'")

    start = now or datetime.now(timezone.utc)
    target = _oldest_open_draw(session)
    if target is None:
        target = create_new_draw(session, draw_month_year())

    if subscription is None:
        subscription = Subscription(user_id=user.id)
        session.add(subscription)
    subscription.plan = plan
    subscription.status = "active"
    subscription.assigned_draw_id = target.id
    subscription.assigned_draw_month = target.month_year
    subscription.draws_remaining = DRAWS_PER_PLAN[plan]
    subscription.current_period_start = start
    subscription.current_period_end = start + timedelta(days=PERIOD_DAYS_PER_PLAN[plan])
    session.flush()

    logger.info(f"Assigned {plan} subscription to user {user.id} for draw {target.month_year}")
    return subscription


def backfill_subscription_assignments(session: Session, draw: Optional[Draw] = None) -> int:
    """Fill ``assigned_draw_id`` on monthly plans that only carry a month label.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    draw : Optional[Draw], default: None
        Restrict the backfill to this draw's ``month_year``. Every draw is
        considered when omitted.

    Returns
    -------
    int
        Number of subscriptions updated.
    """

    draws = [draw] if draw is not None else list(session.scalars(select(Draw)))
    updated = 0
    for target in draws:
        result = session.execute(
            update(Subscription)
            .where(
                Subscription.plan == "monthly",
                Subscription.assigned_draw_id.is_(None),
                Subscription.assigned_draw_month == target.month_year,
            )
            .values(assigned_draw_id=target.id)
            .execution_options(synchronize_session="fetch")
        )
        updated += result.rowcount
    if updated:
        logger.info(f"Backfilled draw assignment on {updated} legacy subscription(s)")
    return updated


def count_eligible_subscribers(
    session: Session,
    draw_id: Optional[int] = None,
    global_count: bool = False,
    *,
    now: Optional[datetime] = None,
) -> int:
    """Number of players the draw would include (the current draw by default)."""
    return EligibilityResolver(session).count(draw_id, global_mode=global_count, now=now)


def submit_score(
    session: Session,
    user: Profile,
    score: object,
    *,
    now: Optional[datetime] = None,
) -> ScoreRecord:
    """Store a Stableford score for ``user``.

    Raises
    ------
    ValueError
        If the score is out of range, or scores are locked because the next
        draw is less than a day away.
    """

    value = validate_score(score)
    if user.id is None:
        raise ValueError("User must be persisted before submitting scores")
    current = now or datetime.now(timezone.utc)
    if not can_submit_scores(current):
        raise ValueError("Score submission is closed until the upcoming draw has run")

    record = ScoreRecord(user_id=user.id, score=value, created_at=current)
    session.add(record)
    session.flush()
    logger.debug(f"Score {value} stored for user {user.id}")
    return record


__all__ = [
    "assign_subscription",
    "backfill_subscription_assignments",
    "count_eligible_subscribers",
    "create_new_draw",
    "get_current_draw",
    "submit_score",
]
