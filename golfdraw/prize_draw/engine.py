"""Draw lifecycle: simulate, run, publish and reset a monthly draw."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..audit import log_activity
from ..models import Donation, Draw, DrawEntry, JackpotTracker, Subscription
from .allocation import PrizePoolAllocation, allocate_prize_pool
from .eligibility import EligibilityResolver, EligibleUser
from .errors import (
    DrawNotFoundError,
    InvalidTransitionError,
    NoEligibleParticipantsError,
    PersistenceError,
)
from .matching import count_matches, pad_scores, tier_for_matches
from .settings import DrawSettingsSnapshot, get_draw_settings
from .statistics import DEFAULT_LOOKBACK_DAYS, ScoreStatistics
from .winning_numbers import generate_winning_numbers, least_popular, most_popular

logger = logging.getLogger(__name__)

PRIZE_TIERS = (1, 2, 3)
PENDING_VERIFICATION = "Pending"


@dataclass(frozen=True)
class TierResult:
    """Outcome of one prize tier.

    ``base`` is the tier's share of this draw's base pool; ``diversion`` is
    the jackpot overflow moved into it (tier 2 only).
    """

    count: int
    pool: float
    payout: float
    base: float
    diversion: float = 0.0

    def to_json(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "pool": self.pool,
            "payout": self.payout,
            "base": self.base,
            "diversion": self.diversion,
        }


@dataclass(frozen=True)
class ScoredEntry:
    """A participant's scores checked against the winning numbers."""

    user_id: int
    email: str
    full_name: Optional[str]
    scores: list[int]
    matches: int
    tier: Optional[int]
    gross_prize: float
    charity_amount: float
    net_payout: float
    charity_id: Optional[int]
    donation_percentage: float

    @property
    def is_winner(self) -> bool:
        return self.tier is not None

    def to_json(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "scores": list(self.scores),
            "matches": self.matches,
            "tier": self.tier,
            "gross_prize": self.gross_prize,
            "charity_amount": self.charity_amount,
            "net_payout": self.net_payout,
            "charity_id": self.charity_id,
        }


@dataclass(frozen=True)
class DrawSimulation:
    """Everything a draw run would write, computed without writing it.

    Attributes
    ----------
    winning_numbers : list[int]
        Three rarest scores followed by the two most common ones.
    entries : list[ScoredEntry]
        Every participant, winners and non-winners alike.
    allocation : PrizePoolAllocation
        Pools and payouts the tiers were derived from.
    """

    winning_numbers: list[int]
    least_popular: list[int]
    most_popular: list[int]
    score_range_min: int
    score_range_max: int
    participants: int
    settings: DrawSettingsSnapshot
    allocation: PrizePoolAllocation
    entries: list[ScoredEntry]
    tiers: dict[int, TierResult]
    draw_id: Optional[int] = None

    @property
    def prize_pool(self) -> float:
        return self.allocation.base_prize_pool

    @property
    def current_jackpot(self) -> float:
        return self.allocation.current_jackpot

    @property
    def jackpot_rollover(self) -> float:
        return self.allocation.jackpot_rollover

    @property
    def cap_reached(self) -> bool:
        return self.allocation.cap_reached

    @property
    def winners(self) -> list[ScoredEntry]:
        return [entry for entry in self.entries if entry.is_winner]

    def tier(self, tier: int) -> TierResult:
        return self.tiers[tier]

    def to_json(self) -> dict[str, Any]:
        return {
            "draw_id": self.draw_id,
            "winning_numbers": list(self.winning_numbers),
            "least_popular": list(self.least_popular),
            "most_popular": list(self.most_popular),
            "score_range": [self.score_range_min, self.score_range_max],
            "participants": self.participants,
            "prize_pool": self.prize_pool,
            "current_jackpot": self.current_jackpot,
            "jackpot_rollover": self.jackpot_rollover,
            "cap_reached": self.cap_reached,
            "tiers": {str(tier): result.to_json() for tier, result in self.tiers.items()},
            "winners": [entry.to_json() for entry in self.winners],
            "settings": self.settings.to_json(),
        }


@dataclass
class DrawRunReport:
    """What :meth:`DrawEngine.run` persisted, including rows it had to skip."""

    draw_id: int
    simulation: DrawSimulation
    entries_created: int = 0
    donations_created: int = 0
    failed_entry_user_ids: list[int] = field(default_factory=list)
    failed_donation_user_ids: list[int] = field(default_factory=list)
    jackpot_after: float = 0.0
    recomputed: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failed_entry_user_ids or self.failed_donation_user_ids)

    def to_json(self) -> dict[str, Any]:
        return {
            "draw_id": self.draw_id,
            "entries_created": self.entries_created,
            "donations_created": self.donations_created,
            "failed_entry_user_ids": list(self.failed_entry_user_ids),
            "failed_donation_user_ids": list(self.failed_donation_user_ids),
            "jackpot_after": self.jackpot_after,
            "recomputed": self.recomputed,
            "simulation": self.simulation.to_json(),
        }


@dataclass
class LifecycleChange:
    """Side effects of publishing or resetting a draw."""

    draw: Draw
    previous_status: str
    subscriptions_updated: int = 0
    entries_deleted: int = 0
    donations_deleted: int = 0
    jackpot_restored: Optional[float] = None


class DrawEngine:
    """Runs the monthly draw state machine ``open -> completed -> published``.

    Every method works inside the caller's transaction and only flushes;
    committing is left to the caller. Mutating methods open a SAVEPOINT so
    that a failure leaves no partial state behind.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    resolver : Optional[EligibilityResolver], default: None
        Participant resolver. A default one is built on ``session``.
    statistics : Optional[ScoreStatistics], default: None
        Score frequency source. A default one is built on ``session``.
    window_days : int, default: 90
        Lookback window for score frequencies.
    """

    def __init__(
        self,
        session: Session,
        *,
        resolver: Optional[EligibilityResolver] = None,
        statistics: Optional[ScoreStatistics] = None,
        window_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self._session = session
        self._resolver = resolver or EligibilityResolver(session)
        self._statistics = statistics or ScoreStatistics(session)
        self._window_days = window_days

    @property
    def resolver(self) -> EligibilityResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def get_draw(self, draw_id: int) -> Draw:
        draw = self._session.get(Draw, draw_id)
        if draw is None:
            raise DrawNotFoundError(draw_id)
        return draw

    @staticmethod
    def _require_status(draw: Draw, operation: str, allowed: Sequence[str]) -> None:
        if draw.status not in allowed:
            raise InvalidTransitionError(operation, draw.status, allowed)

    def current_jackpot(self) -> float:
        """Read the carried jackpot without creating the tracker row."""

        amount = self._session.scalar(
            select(JackpotTracker.amount).order_by(JackpotTracker.id.asc()).limit(1)
        )
        return float(amount or 0.0)

    @staticmethod
    def _score_entry(
        user: EligibleUser, winning_numbers: Sequence[int]
    ) -> tuple[list[int], int, Optional[int]]:
        scores = pad_scores(user.scores)
        matches = count_matches(scores, winning_numbers)
        return scores, matches, tier_for_matches(matches)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------
    def simulate(
        self,
        min_score: int,
        max_score: int,
        draw_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> DrawSimulation:
        """Compute a draw outcome without writing anything.

        Parameters
        ----------
        min_score, max_score : int
            Inclusive score range used for the winning numbers.
        draw_id : Optional[int], default: None
            Draw whose participants are used; the current draw when omitted.
        now : Optional[datetime], default: None
            Reference time for the score window and the draw schedule.

        Raises
        ------
        InsufficientDataError
            Fewer than five distinct scores in range.
        NoEligibleParticipantsError
            Nobody qualifies; carries the winning numbers.
        """

        frequencies = self._statistics.compute_frequencies(
            min_score, max_score, self._window_days, now=now
        )
        winning_numbers = generate_winning_numbers(frequencies)

        participants = self._resolver.resolve(draw_id, now=now)
        if not participants:
            raise NoEligibleParticipantsError(winning_numbers)

        scored = [
            (user, *self._score_entry(user, winning_numbers)) for user in participants
        ]
        winner_counts = {tier: 0 for tier in PRIZE_TIERS}
        for _user, _scores, _matches, tier in scored:
            if tier is not None:
                winner_counts[tier] += 1

        settings = get_draw_settings(self._session)
        allocation = allocate_prize_pool(
            len(participants), settings, self.current_jackpot(), winner_counts
        )

        entries: list[ScoredEntry] = []
        for user, scores, matches, tier in scored:
            gross = allocation.payout_for(tier) if tier is not None else 0.0
            charity_amount = gross * (user.donation_percentage / 100)
            entries.append(
                ScoredEntry(
                    user_id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    scores=scores,
                    matches=matches,
                    tier=tier,
                    gross_prize=gross,
                    charity_amount=charity_amount,
                    net_payout=gross - charity_amount,
                    charity_id=user.selected_charity_id,
                    donation_percentage=user.donation_percentage,
                )
            )

        tiers = {
            1: TierResult(
                count=winner_counts[1],
                pool=allocation.tier1_pool,
                payout=allocation.tier1_payout,
                base=allocation.tier1_standard,
            ),
            2: TierResult(
                count=winner_counts[2],
                pool=allocation.tier2_pool,
                payout=allocation.tier2_payout,
                base=allocation.tier2_standard,
                diversion=allocation.rollover_to_tier2,
            ),
            3: TierResult(
                count=winner_counts[3],
                pool=allocation.tier3_pool,
                payout=allocation.tier3_payout,
                base=allocation.tier3_standard,
            ),
        }

        logger.info(
            f"Simulated draw {draw_id if draw_id is not None else 'current'}: "
            f"winning numbers {winning_numbers}, {len(participants)} participants, "
            f"winners {winner_counts}"
        )
        return DrawSimulation(
            winning_numbers=winning_numbers,
            least_popular=least_popular(frequencies),
            most_popular=most_popular(frequencies),
            score_range_min=min_score,
            score_range_max=max_score,
            participants=len(participants),
            settings=settings,
            allocation=allocation,
            entries=entries,
            tiers=tiers,
            draw_id=draw_id,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def run(
        self,
        draw_id: int,
        min_score: int,
        max_score: int,
        *,
        now: Optional[datetime] = None,
    ) -> DrawRunReport:
        """Execute a draw and persist its results.

        The draw row and the jackpot tracker are written all-or-nothing.
        Entries and prize-split donations are fail-soft: a row that cannot be
        written is skipped and reported in the returned
        :class:`DrawRunReport`.

        A ``completed`` draw is first reset (jackpot restored, entries and
        donations removed) and then run again, so re-running never compounds
        the jackpot.

        Raises
        ------
        DrawNotFoundError
            Unknown ``draw_id``.
        InvalidTransitionError
            The draw is already published.
        InsufficientDataError, NoEligibleParticipantsError
            Raised before anything is written.
        PersistenceError
            The draw row or the jackpot tracker could not be written.
        """

        draw = self.get_draw(draw_id)
        self._require_status(draw, "run", ("open", "completed"))
        executed_at = now or datetime.now(timezone.utc)
        recomputed = draw.status == "completed"

        try:
            with self._session.begin_nested():
                if recomputed:
                    logger.warning(f"Draw {draw.id} already completed; resetting before re-run")
                    self._compensate(draw)
                simulation = self.simulate(min_score, max_score, draw.id, now=now)
                self._apply_results(draw, simulation, executed_at)
                jackpot_after = self._update_jackpot(simulation, draw.id)
                report = DrawRunReport(
                    draw_id=draw.id,
                    simulation=simulation,
                    jackpot_after=jackpot_after,
                    recomputed=recomputed,
                )
                self._insert_entries(draw, simulation, report)
        except StaleDataError as exc:
            raise PersistenceError(
                f"Jackpot tracker was modified concurrently while running draw {draw_id}"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store results of draw {draw_id}: {exc}") from exc

        if report.partial:
            logger.warning(
                f"Draw {draw.id} completed with skipped rows: "
                f"entries {report.failed_entry_user_ids}, "
                f"donations {report.failed_donation_user_ids}"
            )
        logger.info(
            f"Draw {draw.id} completed: {report.entries_created} entries, "
            f"{report.donations_created} donations, jackpot now {jackpot_after}"
        )
        log_activity(
            self._session,
            "draw_completed",
            f"Draw {draw.month_year} completed",
            {
                "draw_id": draw.id,
                "winning_numbers": simulation.winning_numbers,
                "participants": simulation.participants,
                "winners": {str(t): r.count for t, r in simulation.tiers.items()},
                "recomputed": recomputed,
            },
        )
        return report

    def _apply_results(
        self, draw: Draw, simulation: DrawSimulation, executed_at: datetime
    ) -> None:
        allocation = simulation.allocation
        draw.status = "completed"
        draw.score_range_min = simulation.score_range_min
        draw.score_range_max = simulation.score_range_max
        draw.winning_numbers = list(simulation.winning_numbers)
        draw.prize_pool = allocation.base_prize_pool
        draw.jackpot_added = allocation.current_jackpot
        draw.tier1_pool = allocation.tier1_pool
        draw.tier2_pool = allocation.tier2_pool
        draw.tier3_pool = allocation.tier3_pool
        draw.participants_count = simulation.participants
        draw.tier1_winners = simulation.tiers[1].count
        draw.tier2_winners = simulation.tiers[2].count
        draw.tier3_winners = simulation.tiers[3].count
        draw.tier1_rollover_amount = allocation.jackpot_rollover
        draw.tier2_rollover_amount = allocation.rollover_to_tier2
        draw.jackpot_cap_reached = allocation.cap_reached
        draw.draw_date = executed_at
        self._session.flush()

    def _update_jackpot(self, simulation: DrawSimulation, draw_id: int) -> float:
        tracker = JackpotTracker.get(self._session)
        tracker.set_amount(simulation.allocation.next_jackpot, draw_id)
        self._session.flush()
        return tracker.amount

    def _insert_rows(
        self,
        items: Sequence[ScoredEntry],
        build: Callable[[ScoredEntry], Any],
        label: str,
    ) -> tuple[int, list[int]]:
        """Insert one row per item, returning ``(created, failed_user_ids)``.

        All rows are first written in a single flush; if that fails they are
        retried one SAVEPOINT at a time so only the offending rows are lost.
        """

        if not items:
            return 0, []
        try:
            with self._session.begin_nested():
                self._session.add_all([build(item) for item in items])
                self._session.flush()
            return len(items), []
        except SQLAlchemyError as exc:
            logger.warning(f"Bulk {label} insert failed, retrying row by row: {exc}")

        created = 0
        failed: list[int] = []
        for item in items:
            try:
                with self._session.begin_nested():
                    self._session.add(build(item))
                    self._session.flush()
                created += 1
            except SQLAlchemyError as exc:
                logger.error(f"Failed to insert {label} for user {item.user_id}: {exc}")
                failed.append(item.user_id)
        return created, failed

    def _insert_entries(
        self, draw: Draw, simulation: DrawSimulation, report: DrawRunReport
    ) -> None:
        def build_entry(entry: ScoredEntry) -> DrawEntry:
            return DrawEntry(
                draw_id=draw.id,
                user_id=entry.user_id,
                scores=list(entry.scores),
                matches=entry.matches,
                tier=entry.tier,
                gross_prize=entry.gross_prize,
                charity_amount=entry.charity_amount,
                net_payout=entry.net_payout,
                charity_id=entry.charity_id,
                verification_status=PENDING_VERIFICATION if entry.is_winner else None,
                is_paid=False,
            )

        report.entries_created, report.failed_entry_user_ids = self._insert_rows(
            simulation.entries, build_entry, "draw entry"
        )

        failed_entries = set(report.failed_entry_user_ids)
        donors: list[ScoredEntry] = []
        for entry in simulation.winners:
            if entry.user_id in failed_entries or entry.charity_amount <= 0:
                continue
            if entry.charity_id is None:
                logger.warning(
                    f"Winner {entry.user_id} of draw {draw.id} has no selected charity; "
                    "charity share not recorded as a donation"
                )
                report.failed_donation_user_ids.append(entry.user_id)
                continue
            donors.append(entry)

        def build_donation(entry: ScoredEntry) -> Donation:
            return Donation(
                charity_id=entry.charity_id,
                user_id=entry.user_id,
                draw_id=draw.id,
                amount=entry.charity_amount,
                source="prize_split",
                status="pending",
            )

        created, failed = self._insert_rows(donors, build_donation, "prize-split donation")
        report.donations_created = created
        report.failed_donation_user_ids.extend(failed)

    # ------------------------------------------------------------------
    # Publish / reset
    # ------------------------------------------------------------------
    def publish(self, draw_id: int, *, now: Optional[datetime] = None) -> LifecycleChange:
        """Publish a completed draw and expire the monthly plans bound to it.

        Raises
        ------
        DrawNotFoundError, InvalidTransitionError, PersistenceError
        """

        from ..admin import backfill_subscription_assignments

        draw = self.get_draw(draw_id)
        self._require_status(draw, "publish", ("completed",))
        change = LifecycleChange(draw=draw, previous_status=draw.status)

        try:
            with self._session.begin_nested():
                draw.status = "published"
                draw.published_at = now or datetime.now(timezone.utc)
                self._session.flush()
                backfill_subscription_assignments(self._session, draw)
                change.subscriptions_updated = self._set_monthly_status(
                    draw.id, status="cancelled", draws_remaining=0
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to publish draw {draw_id}: {exc}") from exc

        logger.info(
            f"Draw {draw.id} published; {change.subscriptions_updated} monthly "
            "subscription(s) expired"
        )
        log_activity(
            self._session,
            "draw_published",
            f"Draw {draw.month_year} published",
            {"draw_id": draw.id, "expired_subscriptions": change.subscriptions_updated},
        )
        return change

    def reset(self, draw_id: int) -> LifecycleChange:
        """Undo a run (and a publication) so the draw can be run again.

        Restores the jackpot to the value carried into the draw, deletes its
        entries and prize-split donations, reactivates the monthly plans a
        publication expired and clears every computed field. Resetting an
        ``open`` draw changes nothing.

        Raises
        ------
        DrawNotFoundError
            Unknown ``draw_id``.
        InvalidTransitionError
            A prize of the draw was already paid out, or one of its
            donations was already included in a charity payout.
        PersistenceError
            The reset could not be written.
        """

        draw = self.get_draw(draw_id)
        change = LifecycleChange(draw=draw, previous_status=draw.status)
        if draw.status == "open":
            # only a half-reset draw still carries a jackpot snapshot
            if draw.jackpot_added is not None:
                restored = float(draw.jackpot_added)
                JackpotTracker.get(self._session).set_amount(restored, draw.id)
                draw.jackpot_added = None
                self._session.flush()
                change.jackpot_restored = restored
            logger.info(f"Draw {draw.id} is already open; nothing else to reset")
            return change

        try:
            with self._session.begin_nested():
                self._compensate(draw, change)
        except StaleDataError as exc:
            raise PersistenceError(
                f"Jackpot tracker was modified concurrently while resetting draw {draw_id}"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reset draw {draw_id}: {exc}") from exc

        logger.info(
            f"Draw {draw.id} reset from '{change.previous_status}': "
            f"{change.entries_deleted} entries and {change.donations_deleted} donations "
            f"removed, jackpot restored to {change.jackpot_restored}"
        )
        log_activity(
            self._session,
            "draw_reset",
            f"Draw {draw.month_year} reset",
            {
                "draw_id": draw.id,
                "previous_status": change.previous_status,
                "jackpot_restored": change.jackpot_restored,
                "subscriptions_reactivated": change.subscriptions_updated,
            },
        )
        return change

    def _ensure_unsettled(self, draw: Draw) -> None:
        paid = self._session.scalar(
            select(func.count(DrawEntry.id)).where(
                DrawEntry.draw_id == draw.id, DrawEntry.is_paid.is_(True)
            )
        )
        if paid:
            raise InvalidTransitionError(
                f"reset (with {paid} paid prize(s))", draw.status, ("completed", "published")
            )
        paid_out = self._session.scalar(
            select(func.count(Donation.id)).where(
                Donation.draw_id == draw.id, Donation.charity_payout_id.is_not(None)
            )
        )
        if paid_out:
            raise InvalidTransitionError(
                f"reset (with {paid_out} donation(s) in a charity payout)",
                draw.status,
                ("completed", "published"),
            )

    def _compensate(self, draw: Draw, change: Optional[LifecycleChange] = None) -> None:
        from ..admin import backfill_subscription_assignments

        change = change or LifecycleChange(draw=draw, previous_status=draw.status)
        self._ensure_unsettled(draw)

        restored = float(draw.jackpot_added or 0.0)
        tracker = JackpotTracker.get(self._session)
        tracker.set_amount(restored, draw.id)
        change.jackpot_restored = restored

        change.entries_deleted = self._session.execute(
            delete(DrawEntry).where(DrawEntry.draw_id == draw.id)
        ).rowcount
        change.donations_deleted = self._session.execute(
            delete(Donation).where(
                Donation.draw_id == draw.id, Donation.source == "prize_split"
            )
        ).rowcount

        if draw.status == "published":
            # Every monthly subscription on the draw comes back active,
            # including ones cancelled or past_due before the run.
            backfill_subscription_assignments(self._session, draw)
            change.subscriptions_updated = self._set_monthly_status(
                draw.id, status="active", draws_remaining=1
            )

        draw.clear_results()
        self._session.flush()
        # the bulk deletes bypassed the identity map
        self._session.expire(draw, ["entries"])

    def _set_monthly_status(self, draw_id: int, *, status: str, draws_remaining: int) -> int:
        result = self._session.execute(
            update(Subscription)
            .where(
                Subscription.plan == "monthly",
                Subscription.assigned_draw_id == draw_id,
            )
            .values(
                status=status,
                draws_remaining=draws_remaining,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount


__all__ = [
    "DrawEngine",
    "DrawRunReport",
    "DrawSimulation",
    "LifecycleChange",
    "ScoredEntry",
    "TierResult",
]
