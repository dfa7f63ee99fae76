"""Settlement of prizes and charity payouts, and the reports around them.

Only money belonging to a ``published`` draw (or a direct gift, which has no
draw) can be paid out. Every balance change is a single SQL increment so
concurrent settlements never lose an update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .audit import log_activity
from .db.utils import dt_iso
from .models import Charity, CharityPayout, Donation, Draw, DrawEntry, JackpotTracker, Profile
from .prize_draw.errors import AlreadySettledError, SettlementError

logger = logging.getLogger(__name__)

VERIFICATION_STATUSES = ("Pending", "verified", "rejected")
SETTLED_DRAW_STATUSES = ("completed", "published")


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of paying one winning entry.

    ``already_paid`` is ``True`` when the entry had been settled before; the
    wallet was not credited a second time.
    """

    entry_id: int
    user_id: int
    amount: float
    already_paid: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _pool_label(matches: Optional[int]) -> str:
    return f"{matches} Match Pool" if matches is not None else "Prize Share"


class SettlementLedger:
    """Verification, payment and reporting over draw entries and donations.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session. The ledger only flushes; the caller
        commits.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Player prizes
    # ------------------------------------------------------------------
    def _get_entry(self, entry_id: int) -> DrawEntry:
        entry = self._session.get(DrawEntry, entry_id)
        if entry is None:
            raise SettlementError(f"Draw entry {entry_id} not found")
        return entry

    def update_winner_verification(
        self, entry_id: int, status: str, admin_id: Optional[int] = None
    ) -> DrawEntry:
        """Record an admin's verification decision on a winning entry.

        Raises
        ------
        ValueError
            If ``status`` is not one of ``Pending``, ``verified``, ``rejected``.
        SettlementError
            If the entry is missing, did not win, or is already paid and
            would be rejected.
        """

        if status not in VERIFICATION_STATUSES:
            raise ValueError(
                f"Unknown verification status '{status}' "
                f"(expected one of {', '.join(VERIFICATION_STATUSES)})"
            )
        entry = self._get_entry(entry_id)
        if entry.tier is None:
            raise SettlementError(f"Draw entry {entry_id} is not a winning entry")
        if entry.is_paid and status == "rejected":
            raise SettlementError(f"Draw entry {entry_id} is already paid and cannot be rejected")

        entry.verification_status = status
        entry.verified_at = _now()
        entry.verified_by = admin_id
        self._session.flush()

        logger.info(f"Entry {entry_id} verification: {status}")
        log_activity(
            self._session,
            "winner_verified",
            f"Entry {entry_id} verification: {status}",
            {"entry_id": entry_id, "status": status},
            user_id=admin_id,
        )
        return entry

    def mark_winner_as_paid(
        self,
        entry_id: int,
        reference: str = "",
        admin_id: Optional[int] = None,
    ) -> PaymentOutcome:
        """Mark a winning entry as paid and credit the winner's wallet.

        Calling this twice for the same entry credits the wallet once; the
        second call returns an outcome with ``already_paid=True``.

        Parameters
        ----------
        entry_id : int
            Winning :class:`DrawEntry` to settle.
        reference : str, default: ""
            External payment reference.
        admin_id : Optional[int], default: None
            Administrator performing the settlement.

        Raises
        ------
        SettlementError
            If the entry is missing, did not win, belongs to a draw that is
            not published, was rejected, or the wallet could not be credited.
            Nothing is changed in that case.
        """

        entry = self._get_entry(entry_id)
        outcome = PaymentOutcome(entry_id=entry.id, user_id=entry.user_id, amount=entry.net_payout)
        if entry.is_paid:
            logger.info(f"Entry {entry_id} already paid; nothing to do")
            return PaymentOutcome(
                entry_id=entry.id, user_id=entry.user_id, amount=entry.net_payout, already_paid=True
            )
        if entry.tier is None:
            raise SettlementError(f"Draw entry {entry_id} is not a winning entry")
        if entry.draw.status != "published":
            raise SettlementError(
                f"Draw {entry.draw_id} is '{entry.draw.status}'; only published draws can be paid"
            )
        if entry.verification_status == "rejected":
            raise SettlementError(f"Draw entry {entry_id} was rejected")

        try:
            self._settle_entry(entry, reference, admin_id)
        except AlreadySettledError:
            logger.info(f"Entry {entry_id} was settled concurrently; wallet left unchanged")
            return PaymentOutcome(
                entry_id=entry.id, user_id=entry.user_id, amount=entry.net_payout, already_paid=True
            )

        logger.info(f"Entry {entry_id} paid: {outcome.amount} credited to user {entry.user_id}")
        log_activity(
            self._session,
            "winner_paid",
            f"Entry {entry_id} paid. Ref: {reference}. Balance updated.",
            {"entry_id": entry_id, "amount": outcome.amount, "reference": reference},
            user_id=admin_id,
        )
        return outcome

    def _settle_entry(self, entry: DrawEntry, reference: str, admin_id: Optional[int]) -> None:
        amount = float(entry.net_payout or 0.0)
        try:
            with self._session.begin_nested():
                values: dict[str, Any] = {
                    "is_paid": True,
                    "paid_at": _now(),
                    "payment_reference": reference or None,
                }
                if admin_id is not None:
                    values["verified_by"] = admin_id
                claimed = self._session.execute(
                    update(DrawEntry)
                    .where(DrawEntry.id == entry.id, DrawEntry.is_paid.is_(False))
                    .values(**values)
                    .execution_options(synchronize_session="fetch")
                )
                if claimed.rowcount == 0:
                    raise AlreadySettledError(f"Draw entry {entry.id} is already paid")

                if amount > 0:
                    credited = self._session.execute(
                        update(Profile)
                        .where(Profile.id == entry.user_id)
                        .values(account_balance=Profile.account_balance + amount)
                        .execution_options(synchronize_session="fetch")
                    )
                    if credited.rowcount != 1:
                        raise SettlementError(
                            f"Wallet of user {entry.user_id} could not be credited"
                        )
        except SQLAlchemyError as exc:
            # the claim was rolled back but its fetched values may linger
            self._session.expire(entry)
            logger.error(f"Settlement of entry {entry.id} failed: {exc}")
            raise SettlementError(f"Settlement of entry {entry.id} failed: {exc}") from exc

    def mark_batch_winners_as_paid(
        self,
        entry_ids: Sequence[int],
        reference: str = "",
        admin_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """Settle several entries; one failure does not stop the others."""

        settled = 0
        failed_ids: list[int] = []
        for entry_id in entry_ids:
            try:
                self.mark_winner_as_paid(entry_id, reference, admin_id)
                settled += 1
            except SettlementError as exc:
                logger.warning(f"Batch settlement skipped entry {entry_id}: {exc}")
                failed_ids.append(entry_id)
        if failed_ids:
            logger.warning(f"Batch partial failure: {len(failed_ids)} of {len(entry_ids)} failed")
        return {
            "success": not failed_ids,
            "total": len(entry_ids),
            "settled": settled,
            "failed_ids": failed_ids,
        }

    # ------------------------------------------------------------------
    # Player reports
    # ------------------------------------------------------------------
    def _winner_rows(self, *conditions: Any) -> list[dict[str, Any]]:
        rows = self._session.execute(
            select(DrawEntry, Draw, Profile, Charity)
            .join(Draw, Draw.id == DrawEntry.draw_id)
            .join(Profile, Profile.id == DrawEntry.user_id)
            .outerjoin(Charity, Charity.id == DrawEntry.charity_id)
            .where(DrawEntry.tier.is_not(None), *conditions)
            .order_by(DrawEntry.created_at.desc(), DrawEntry.id.desc())
        ).all()
        return [
            {
                **entry.to_json(),
                "month_year": draw.month_year,
                "draw_status": draw.status,
                "full_name": profile.full_name,
                "email": profile.email,
                "charity_name": charity.name if charity is not None else None,
            }
            for entry, draw, profile, charity in rows
        ]

    def get_winners_for_verification(self) -> list[dict[str, Any]]:
        """Winning entries of completed or published draws, newest first."""
        return self._winner_rows(Draw.status.in_(SETTLED_DRAW_STATUSES))

    def get_winner_audit_report(self) -> list[dict[str, Any]]:
        """Every winning entry across all draws with its payout status."""
        return self._winner_rows()

    def _payable_conditions(self) -> tuple[Any, ...]:
        return (
            Draw.status == "published",
            DrawEntry.verification_status == "verified",
            DrawEntry.is_paid.is_(False),
        )

    def get_payable_winners_for_draw(self, draw_id: int) -> list[dict[str, Any]]:
        """Verified, unpaid winners of one published draw."""
        return self._winner_rows(DrawEntry.draw_id == draw_id, *self._payable_conditions())

    def get_unpaid_winners(self) -> list[dict[str, Any]]:
        """Verified, unpaid winners of every published draw."""
        return self._winner_rows(*self._payable_conditions())

    def get_aggregated_payable_winners(self) -> list[dict[str, Any]]:
        """Payable winners grouped per draw, most recent draw first."""

        groups: dict[int, dict[str, Any]] = {}
        for row in self.get_unpaid_winners():
            group = groups.setdefault(
                row["draw_id"],
                {
                    "draw_id": row["draw_id"],
                    "month_year": row["month_year"],
                    "total_amount": 0.0,
                    "winner_count": 0,
                    "entry_ids": [],
                },
            )
            group["total_amount"] += row["net_payout"]
            group["winner_count"] += 1
            group["entry_ids"].append(row["id"])
        return sorted(groups.values(), key=lambda g: g["draw_id"], reverse=True)

    def _matches_by_user_draw(
        self, donations: Iterable[Donation]
    ) -> dict[tuple[int, int], int]:
        keys = {(d.user_id, d.draw_id) for d in donations if d.user_id and d.draw_id}
        if not keys:
            return {}
        rows = self._session.execute(
            select(DrawEntry.user_id, DrawEntry.draw_id, DrawEntry.matches).where(
                or_(*(and_(DrawEntry.user_id == u, DrawEntry.draw_id == d) for u, d in keys))
            )
        ).all()
        return {(user_id, draw_id): matches for user_id, draw_id, matches in rows}

    def _donation_detail(
        self, donation: Donation, matches: dict[tuple[int, int], int]
    ) -> dict[str, Any]:
        return {
            **donation.to_json(),
            "user_name": donation.user.full_name if donation.user is not None else None,
            "draw_name": donation.draw.month_year if donation.draw is not None else None,
            "pool_info": _pool_label(matches.get((donation.user_id, donation.draw_id))),
        }

    def _payout_label(
        self, winner_donations: Sequence[Donation], matches: dict[tuple[int, int], int]
    ) -> str:
        if not winner_donations:
            return "Direct Distribution"
        if len(winner_donations) == 1:
            d = winner_donations[0]
            name = d.user.full_name if d.user is not None and d.user.full_name else "User"
            return f"Prize Contribution by {name} ({_pool_label(matches.get((d.user_id, d.draw_id)))})"
        return f"{len(winner_donations)} Winner Contributions"

    def get_settled_player_payouts(self, limit: int = 100) -> list[dict[str, Any]]:
        """Paid prizes and paid charity distributions funded by prizes, newest first."""

        entries = self._session.execute(
            select(DrawEntry, Draw, Profile)
            .join(Draw, Draw.id == DrawEntry.draw_id)
            .join(Profile, Profile.id == DrawEntry.user_id)
            .where(DrawEntry.is_paid.is_(True))
            .order_by(DrawEntry.paid_at.desc())
            .limit(limit)
        ).all()
        combined: list[dict[str, Any]] = [
            {
                **entry.to_json(),
                "type": "player_settlement",
                "month_year": draw.month_year,
                "full_name": profile.full_name,
                "sort_key": entry.paid_at,
            }
            for entry, draw, profile in entries
        ]

        payouts = self._session.scalars(
            select(CharityPayout)
            .options(selectinload(CharityPayout.donations), selectinload(CharityPayout.charity))
            .where(CharityPayout.status == "paid")
            .order_by(CharityPayout.updated_at.desc())
            .limit(limit)
        ).all()
        all_donations = [d for p in payouts for d in p.donations]
        matches = self._matches_by_user_draw(all_donations)
        for payout in payouts:
            winner_donations = [d for d in payout.donations if d.source != "direct"]
            if not winner_donations:
                continue
            combined.append(
                {
                    **payout.to_json(),
                    "type": "charity_settlement",
                    "charity_name": payout.charity.name if payout.charity is not None else None,
                    "detail_label": self._payout_label(winner_donations, matches),
                    "donations_detail": [
                        self._donation_detail(d, matches) for d in winner_donations
                    ],
                    "sort_key": payout.paid_at or payout.updated_at,
                }
            )

        epoch = datetime.min.replace(tzinfo=timezone.utc)

        def _sort_key(row: dict[str, Any]) -> datetime:
            value = row.pop("sort_key")
            if value is None:
                return epoch
            return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

        keyed = [(_sort_key(row), row) for row in combined]
        keyed.sort(key=lambda pair: pair[0], reverse=True)
        return [row for _, row in keyed[:limit]]

    def get_draw_analysis_report(self) -> list[dict[str, Any]]:
        """Per-draw totals for completed and published draws, latest first."""

        totals = (
            select(
                DrawEntry.draw_id.label("draw_id"),
                func.count(DrawEntry.id).label("entries_count"),
                func.coalesce(func.sum(DrawEntry.charity_amount), 0.0).label("total_charity"),
                func.coalesce(func.sum(DrawEntry.net_payout), 0.0).label("total_payout"),
            )
            .group_by(DrawEntry.draw_id)
            .subquery()
        )
        rows = self._session.execute(
            select(Draw, totals.c.entries_count, totals.c.total_charity, totals.c.total_payout)
            .outerjoin(totals, totals.c.draw_id == Draw.id)
            .where(Draw.status.in_(SETTLED_DRAW_STATUSES))
            .order_by(Draw.draw_date.desc(), Draw.id.desc())
        ).all()

        tier_counts: dict[tuple[int, int], int] = {
            (draw_id, tier): count
            for draw_id, tier, count in self._session.execute(
                select(DrawEntry.draw_id, DrawEntry.tier, func.count(DrawEntry.id))
                .where(DrawEntry.tier.is_not(None))
                .group_by(DrawEntry.draw_id, DrawEntry.tier)
            ).all()
        }
        report = []
        for draw, entries_count, total_charity, total_payout in rows:
            report.append(
                {
                    **draw.to_json(),
                    "entries_count": entries_count or 0,
                    "tier1_winners": tier_counts.get((draw.id, 1), 0),
                    "tier2_winners": tier_counts.get((draw.id, 2), 0),
                    "tier3_winners": tier_counts.get((draw.id, 3), 0),
                    "total_charity": float(total_charity or 0.0),
                    "total_payout": float(total_payout or 0.0),
                }
            )
        logger.debug(f"Draw analysis reports generated: {len(report)}")
        return report

    def get_jackpot_history(self) -> dict[str, Any]:
        """Jackpot carried into each finished draw, oldest first, plus the current value."""

        draws = self._session.scalars(
            select(Draw)
            .where(Draw.status.in_(SETTLED_DRAW_STATUSES))
            .order_by(Draw.draw_date.asc(), Draw.id.asc())
        ).all()
        current = self._session.scalar(
            select(JackpotTracker.amount).order_by(JackpotTracker.id.asc()).limit(1)
        )
        return {
            "history": [
                {
                    "id": draw.id,
                    "month_year": draw.month_year,
                    "jackpot_added": draw.jackpot_added,
                    "tier1_winners": draw.tier1_winners,
                    "tier1_pool": draw.tier1_pool,
                    "draw_date": dt_iso(draw.draw_date),
                }
                for draw in draws
            ],
            "current": float(current or 0.0),
        }

    # ------------------------------------------------------------------
    # Charity side
    # ------------------------------------------------------------------
    def _get_charity(self, charity_id: int) -> Charity:
        charity = self._session.get(Charity, charity_id)
        if charity is None:
            raise SettlementError(f"Charity {charity_id} not found")
        return charity

    def _get_payout(self, payout_id: int) -> CharityPayout:
        payout = self._session.get(CharityPayout, payout_id)
        if payout is None:
            raise SettlementError(f"Charity payout {payout_id} not found")
        return payout

    @staticmethod
    def _payable_donation_condition() -> Any:
        # direct and subscription gifts have no draw; prize splits wait for publication
        return or_(Donation.source != "prize_split", Draw.status == "published")

    def record_direct_donation(
        self, charity_id: int, amount: float, user_id: Optional[int] = None
    ) -> Donation:
        """Record a gift made straight to a charity."""

        if amount <= 0:
            raise ValueError("Donation amount must be positive")
        charity = self._get_charity(charity_id)
        if charity.status != "active":
            raise SettlementError(f"Charity {charity_id} is not accepting donations")

        donation = Donation(
            charity_id=charity_id,
            user_id=user_id,
            amount=float(amount),
            source="direct",
            status="pending",
        )
        self._session.add(donation)
        self._session.flush()
        logger.info(f"Direct donation of {amount} recorded for charity {charity_id}")
        return donation

    def get_charity_payout_summary(self) -> list[dict[str, Any]]:
        """Money waiting to be paid to each active charity.

        Only unlinked donations count, and prize-split donations only once
        their draw is published.
        """

        charities = self._session.scalars(
            select(Charity).where(Charity.status == "active").order_by(Charity.name.asc())
        ).all()
        supporters = dict(
            self._session.execute(
                select(Profile.selected_charity_id, func.count(Profile.id))
                .where(Profile.status == "active", Profile.selected_charity_id.is_not(None))
                .group_by(Profile.selected_charity_id)
            ).all()
        )
        donations = self._session.scalars(
            select(Donation)
            .outerjoin(Draw, Draw.id == Donation.draw_id)
            .where(Donation.charity_payout_id.is_(None), self._payable_donation_condition())
            .order_by(Donation.created_at.asc(), Donation.id.asc())
        ).all()
        matches = self._matches_by_user_draw(donations)

        summary: dict[int, dict[str, Any]] = {
            charity.id: {
                "charity_id": charity.id,
                "name": charity.name,
                "winner_donations": 0.0,
                "direct_donations": 0.0,
                "winner_donation_ids": [],
                "direct_donation_ids": [],
                "winner_records": [],
                "direct_donors": [],
                "supporter_count": supporters.get(charity.id, 0),
                "total_amount": 0.0,
            }
            for charity in charities
        }
        for donation in donations:
            bucket = summary.get(donation.charity_id)
            if bucket is None:
                continue
            bucket["total_amount"] += donation.amount
            if donation.source == "direct":
                bucket["direct_donations"] += donation.amount
                bucket["direct_donation_ids"].append(donation.id)
                bucket["direct_donors"].append(self._donation_detail(donation, matches))
            else:
                bucket["winner_donations"] += donation.amount
                bucket["winner_donation_ids"].append(donation.id)
                bucket["winner_records"].append(self._donation_detail(donation, matches))

        return [s for s in summary.values() if s["total_amount"] > 0 or s["supporter_count"] > 0]

    def get_charity_payouts(self) -> list[dict[str, Any]]:
        """Charity payout history with the donations behind each payout."""

        payouts = self._session.scalars(
            select(CharityPayout)
            .options(selectinload(CharityPayout.donations), selectinload(CharityPayout.charity))
            .order_by(CharityPayout.created_at.desc(), CharityPayout.id.desc())
        ).all()
        matches = self._matches_by_user_draw([d for p in payouts for d in p.donations])
        history = []
        for payout in payouts:
            winner_donations = [d for d in payout.donations if d.source != "direct"]
            history.append(
                {
                    **payout.to_json(),
                    "charity_name": payout.charity.name if payout.charity is not None else None,
                    "detail_label": self._payout_label(winner_donations, matches),
                    "donations_detail": [
                        self._donation_detail(d, matches) for d in winner_donations
                    ],
                }
            )
        return history

    def _credit_charity(self, charity_id: int, amount: float) -> None:
        result = self._session.execute(
            update(Charity)
            .where(Charity.id == charity_id)
            .values(total_raised=Charity.total_raised + amount)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise SettlementError(f"Charity {charity_id} could not be credited")

    def create_charity_payout(
        self,
        charity_id: int,
        amount: float,
        reference: Optional[str] = None,
        donation_ids: Sequence[int] = (),
    ) -> CharityPayout:
        """Create a payout to a charity and link the donations it settles.

        With a ``reference`` the payout is recorded as already ``paid`` and the
        charity's ``total_raised`` is credited; otherwise it stays ``pending``.

        Raises
        ------
        ValueError
            If ``amount`` is not positive.
        SettlementError
            If a donation is unknown, belongs to another charity, is already
            linked to a payout, or comes from an unpublished draw.
        """

        if amount <= 0:
            raise ValueError("Payout amount must be positive")
        self._get_charity(charity_id)

        ids = list(dict.fromkeys(donation_ids))
        donations: list[Donation] = []
        if ids:
            donations = list(
                self._session.scalars(
                    select(Donation)
                    .outerjoin(Draw, Draw.id == Donation.draw_id)
                    .where(
                        Donation.id.in_(ids),
                        Donation.charity_id == charity_id,
                        Donation.charity_payout_id.is_(None),
                        self._payable_donation_condition(),
                    )
                ).all()
            )
            missing = sorted(set(ids) - {d.id for d in donations})
            if missing:
                raise SettlementError(f"Donations not payable to charity {charity_id}: {missing}")

        paid = bool(reference)
        now = _now()
        try:
            with self._session.begin_nested():
                payout = CharityPayout(
                    charity_id=charity_id,
                    amount=float(amount),
                    status="paid" if paid else "pending",
                    payout_ref=reference or None,
                    paid_at=now if paid else None,
                )
                self._session.add(payout)
                self._session.flush()
                for donation in donations:
                    donation.charity_payout_id = payout.id
                    if paid:
                        donation.status = "paid"
                if paid:
                    self._credit_charity(charity_id, payout.amount)
                self._session.flush()
        except SQLAlchemyError as exc:
            raise SettlementError(f"Failed to create payout for charity {charity_id}: {exc}") from exc

        self._session.refresh(payout, ["donations"])
        logger.info(
            f"Created payout of {amount} for charity {charity_id}. Status: {payout.status}"
        )
        log_activity(
            self._session,
            "charity_payout_created",
            f"Created payout of {amount} for charity {charity_id}. Status: {payout.status}",
            {"payout_id": payout.id, "donation_ids": [d.id for d in donations]},
        )
        return payout

    def mark_charity_payout_as_paid(self, payout_id: int, reference: str) -> CharityPayout:
        """Settle a pending charity payout. Paying it twice changes nothing."""

        if not reference:
            raise ValueError("A payout reference is required")
        payout = self._get_payout(payout_id)
        if payout.status == "paid":
            logger.info(f"Charity payout {payout_id} already paid")
            return payout

        try:
            with self._session.begin_nested():
                claimed = self._session.execute(
                    update(CharityPayout)
                    .where(CharityPayout.id == payout_id, CharityPayout.status == "pending")
                    .values(status="paid", payout_ref=reference, paid_at=_now())
                    .execution_options(synchronize_session="fetch")
                )
                if claimed.rowcount == 0:
                    raise AlreadySettledError(f"Charity payout {payout_id} is already paid")
                self._session.execute(
                    update(Donation)
                    .where(Donation.charity_payout_id == payout_id)
                    .values(status="paid")
                    .execution_options(synchronize_session="fetch")
                )
                self._credit_charity(payout.charity_id, payout.amount)
        except AlreadySettledError:
            self._session.refresh(payout)
            return payout
        except SQLAlchemyError as exc:
            raise SettlementError(f"Failed to settle charity payout {payout_id}: {exc}") from exc

        logger.info(f"Charity payout {payout_id} paid. Ref: {reference}")
        log_activity(
            self._session,
            "charity_payout_paid",
            f"Charity payout {payout_id} paid. Ref: {reference}",
            {"payout_id": payout_id, "reference": reference},
        )
        return payout

    def rollback_charity_payout(self, payout_id: int) -> None:
        """Unlink a payout's donations and delete it.

        A paid payout also takes its amount back off the charity's
        ``total_raised``.
        """

        payout = self._get_payout(payout_id)
        charity_id = payout.charity_id
        amount = payout.amount
        was_paid = payout.status == "paid"
        try:
            with self._session.begin_nested():
                self._session.execute(
                    update(Donation)
                    .where(Donation.charity_payout_id == payout_id)
                    .values(charity_payout_id=None, status="pending")
                    .execution_options(synchronize_session="fetch")
                )
                if was_paid:
                    self._credit_charity(charity_id, -amount)
                self._session.expire(payout, ["donations"])
                self._session.delete(payout)
                self._session.flush()
        except SQLAlchemyError as exc:
            raise SettlementError(f"Failed to roll back charity payout {payout_id}: {exc}") from exc

        logger.info(f"Charity payout {payout_id} rolled back")
        log_activity(
            self._session,
            "charity_payout_rolled_back",
            f"Charity payout {payout_id} rolled back",
            {"payout_id": payout_id, "charity_id": charity_id, "amount": amount},
        )


__all__ = ["PaymentOutcome", "SettlementLedger", "VERIFICATION_STATUSES"]
