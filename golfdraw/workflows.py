from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional
import logging

from sqlalchemy.orm import Session

from .admin import (
    assign_subscription,
    backfill_subscription_assignments,
    count_eligible_subscribers,
    create_new_draw,
    get_current_draw,
    submit_score,
)
from .audit import log_activity
from .models import CharityPayout, DrawEntry
from .prize_draw import settings as draw_settings
from .prize_draw.eligibility import EligibilityResolver, EligibleUser
from .prize_draw.engine import DrawEngine, DrawRunReport, DrawSimulation
from .prize_draw.errors import (
    DrawError,
    DrawNotFoundError,
    InsufficientDataError,
    InvalidTransitionError,
    NoEligibleParticipantsError,
    PersistenceError,
    SettlementError,
)
from .prize_draw.matching import count_matches
from .prize_draw.settings import DrawSettingsSnapshot
from .prize_draw.statistics import ScoreFrequency, ScoreStatistics
from .prize_draw.winning_numbers import generate_winning_numbers
from .settlement import SettlementLedger

if TYPE_CHECKING:
    from .gateway.api import PaymentGatewayClient

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Structured outcome of an admin-facing operation.

    Attributes
    ----------
    success : bool
        Whether the operation took effect.
    error : Optional[str]
        Machine-readable failure kind, e.g. ``"insufficient_data"``.
    message : Optional[str]
        Human-readable explanation for the operator.
    simulation : Optional[DrawSimulation]
        Set by :func:`simulate_draw` and :func:`run_draw`.
    report : Optional[DrawRunReport]
        Set by :func:`run_draw`.
    data : Optional[dict]
        Operation-specific payload.
    """

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    simulation: Optional[DrawSimulation] = None
    report: Optional[DrawRunReport] = None
    data: Optional[dict[str, Any]] = None

    def to_json(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "message": self.message,
            "simulation": self.simulation.to_json() if self.simulation else None,
            "report": self.report.to_json() if self.report else None,
            "data": self.data,
        }


_ERROR_KINDS: tuple[tuple[type, str], ...] = (
    (InsufficientDataError, "insufficient_data"),
    (NoEligibleParticipantsError, "no_eligible_participants"),
    (DrawNotFoundError, "not_found"),
    (InvalidTransitionError, "invalid_transition"),
    (PersistenceError, "persistence"),
    (SettlementError, "settlement"),
    (ValueError, "invalid_argument"),
)


def _failure(exc: Exception, **extra: Any) -> OperationResult:
    kind = next((name for cls, name in _ERROR_KINDS if isinstance(exc, cls)), "error")
    return OperationResult(success=False, error=kind, message=str(exc), **extra)


def get_score_frequencies(
    session: Session,
    min_score: int = 1,
    max_score: int = 45,
    *,
    now: Optional[datetime] = None,
) -> list[ScoreFrequency]:
    """Score frequencies over the standard lookback window, rarest first."""
    return ScoreStatistics(session).compute_frequencies(min_score, max_score, now=now)


def get_eligible_users(
    session: Session, draw_id: Optional[int] = None, *, now: Optional[datetime] = None
) -> list[EligibleUser]:
    """Participants of ``draw_id``, or of the current draw when omitted."""
    return EligibilityResolver(session).resolve(draw_id, now=now)


def simulate_draw(
    session: Session,
    min_score: int = 1,
    max_score: int = 45,
    draw_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> OperationResult:
    """Preview a draw without writing anything.

    Insufficient score data and an empty participant list come back as
    ``success=False`` results; with no participants the winning numbers are
    still included in ``data``.
    """

    try:
        simulation = DrawEngine(session).simulate(min_score, max_score, draw_id, now=now)
    except NoEligibleParticipantsError as exc:
        return _failure(exc, data={"winning_numbers": exc.winning_numbers})
    except (DrawError, ValueError) as exc:
        return _failure(exc)
    return OperationResult(success=True, simulation=simulation)


def run_draw(
    session: Session,
    draw_id: int,
    min_score: int = 1,
    max_score: int = 45,
    *,
    now: Optional[datetime] = None,
) -> OperationResult:
    """Run ``draw_id`` and persist its entries, donations and jackpot.

    The result carries the :class:`DrawRunReport`; a run that had to skip
    some entries or donations still succeeds, with ``message`` naming them.
    """

    try:
        report = DrawEngine(session).run(draw_id, min_score, max_score, now=now)
    except NoEligibleParticipantsError as exc:
        return _failure(exc, data={"winning_numbers": exc.winning_numbers})
    except (DrawError, ValueError) as exc:
        logger.error(f"Draw {draw_id} run failed: {exc}")
        return _failure(exc)

    message = None
    if report.partial:
        message = (
            f"Draw completed, but {len(report.failed_entry_user_ids)} entr(ies) and "
            f"{len(report.failed_donation_user_ids)} donation(s) could not be recorded; "
            "review them before publishing"
        )
    return OperationResult(
        success=True, message=message, simulation=report.simulation, report=report
    )


def publish_draw(session: Session, draw_id: int) -> OperationResult:
    """Publish ``draw_id`` and expire the monthly plans that played in it."""

    try:
        change = DrawEngine(session).publish(draw_id)
    except DrawError as exc:
        logger.error(f"Draw {draw_id} publish failed: {exc}")
        return _failure(exc)
    return OperationResult(
        success=True,
        message=f"Draw {change.draw.month_year} published",
        data={"expired_subscriptions": change.subscriptions_updated},
    )


def reset_draw(session: Session, draw_id: int) -> OperationResult:
    """Undo the run and publication of ``draw_id``."""

    try:
        change = DrawEngine(session).reset(draw_id)
    except DrawError as exc:
        logger.error(f"Draw {draw_id} reset failed: {exc}")
        return _failure(exc)
    return OperationResult(
        success=True,
        message=f"Draw {change.draw.month_year} reset",
        data={
            "previous_status": change.previous_status,
            "entries_deleted": change.entries_deleted,
            "donations_deleted": change.donations_deleted,
            "subscriptions_reactivated": change.subscriptions_updated,
            "jackpot_restored": change.jackpot_restored,
        },
    )


def mark_winner_as_paid(
    session: Session,
    entry_id: int,
    reference: str = "",
    admin_id: Optional[int] = None,
) -> OperationResult:
    """Settle a winning entry; paying an already-paid entry succeeds without effect."""

    try:
        outcome = SettlementLedger(session).mark_winner_as_paid(entry_id, reference, admin_id)
    except SettlementError as exc:
        logger.error(f"Entry {entry_id} could not be paid: {exc}")
        return _failure(exc)
    return OperationResult(
        success=True,
        message="Already paid" if outcome.already_paid else None,
        data={"entry_id": outcome.entry_id, "amount": outcome.amount},
    )


def get_draw_settings(session: Session) -> DrawSettingsSnapshot:
    return draw_settings.get_draw_settings(session)


def update_draw_settings(
    session: Session, admin_id: Optional[int] = None, **changes: float
) -> OperationResult:
    """Validate and store new prize settings."""

    try:
        snapshot = draw_settings.update_draw_settings(session, **changes)
    except ValueError as exc:
        return _failure(exc)
    log_activity(
        session,
        "settings_updated",
        "Draw settings updated",
        snapshot.to_json(),
        user_id=admin_id,
    )
    return OperationResult(success=True, data=snapshot.to_json())


def _gateway(client: Optional["PaymentGatewayClient"]) -> "PaymentGatewayClient":
    if client is None:
        from .gateway.api import PaymentGatewayClient

        client = PaymentGatewayClient()
    return client


def create_payout_session(
    session: Session,
    entry_id: int,
    client: Optional["PaymentGatewayClient"] = None,
) -> OperationResult:
    """Ask the payment gateway for a checkout session paying a verified winner.

    Nothing is marked paid here; that happens through
    :func:`mark_winner_as_paid` once the gateway confirms the transfer.
    """

    from .gateway.api import PaymentGatewayError

    entry = session.get(DrawEntry, entry_id)
    if entry is None:
        return OperationResult(
            success=False, error="not_found", message=f"Draw entry {entry_id} not found"
        )
    if entry.is_paid:
        return OperationResult(success=False, error="settlement", message="Already paid")
    if entry.draw.status != "published" or entry.verification_status != "verified":
        return OperationResult(
            success=False,
            error="settlement",
            message="Only verified winners of published draws can be paid",
        )

    try:
        gateway = _gateway(client)
        response = gateway.create_payout_session(
            entry.id, entry.net_payout, entry.user.full_name or entry.user.email, entry.draw.month_year
        )
    except PaymentGatewayError as exc:
        return OperationResult(success=False, error="gateway", message=str(exc))
    except ValueError as exc:
        # gateway URL or key missing from the environment
        return _failure(exc)
    return OperationResult(success=True, data={"url": (response or {}).get("url")})


def create_charity_payout_session(
    session: Session,
    payout_id: int,
    payout_type: str = "charity",
    client: Optional["PaymentGatewayClient"] = None,
) -> OperationResult:
    """Ask the payment gateway for a checkout session funding a charity payout."""

    from .gateway.api import PaymentGatewayError

    payout = session.get(CharityPayout, payout_id)
    if payout is None:
        return OperationResult(
            success=False, error="not_found", message=f"Charity payout {payout_id} not found"
        )
    if payout.status == "paid":
        return OperationResult(success=False, error="settlement", message="Already paid")

    try:
        gateway = _gateway(client)
        response = gateway.create_charity_payout_session(
            payout.id, payout.amount, payout.charity.name, payout_type
        )
    except PaymentGatewayError as exc:
        return OperationResult(success=False, error="gateway", message=str(exc))
    except ValueError as exc:
        return _failure(exc)
    return OperationResult(success=True, data={"url": (response or {}).get("url")})


def process_gateway_payout(
    session: Session,
    entry_id: int,
    client: Optional["PaymentGatewayClient"] = None,
) -> OperationResult:
    """Trigger an automated transfer for a payable winner through the gateway."""

    from .gateway.api import PaymentGatewayError

    entry = session.get(DrawEntry, entry_id)
    if entry is None:
        return OperationResult(
            success=False, error="not_found", message=f"Draw entry {entry_id} not found"
        )
    try:
        gateway = _gateway(client)
        response = gateway.process_payout(entry.id)
    except PaymentGatewayError as exc:
        return OperationResult(success=False, error="gateway", message=str(exc))
    except ValueError as exc:
        return _failure(exc)
    logger.info(f"Automated payout requested for entry {entry_id}")
    return OperationResult(success=True, data=response)


__all__ = [
    "OperationResult",
    "assign_subscription",
    "backfill_subscription_assignments",
    "count_eligible_subscribers",
    "count_matches",
    "create_charity_payout_session",
    "create_new_draw",
    "create_payout_session",
    "generate_winning_numbers",
    "get_current_draw",
    "get_draw_settings",
    "get_eligible_users",
    "get_score_frequencies",
    "mark_winner_as_paid",
    "process_gateway_payout",
    "publish_draw",
    "reset_draw",
    "run_draw",
    "simulate_draw",
    "submit_score",
    "update_draw_settings",
]
