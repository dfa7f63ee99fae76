from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.orm import sessionmaker

from golfdraw.db.engine import make_engine
from golfdraw.models import (
    ActivityLog,
    Base,
    Charity,
    Donation,
    Draw,
    DrawEntry,
    JackpotTracker,
    Profile,
    ScoreRecord,
    Subscription,
)
from golfdraw.prize_draw import (
    DrawEngine,
    DrawNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    update_draw_settings,
)
from golfdraw.settlement import SettlementLedger
from golfdraw.workflows import publish_draw, reset_draw, run_draw, simulate_draw

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

# rarest: 18 (1), 27 (2), 32 (2); most common: 41 (4), 35 (5)
PLAYER_SCORES = {
    "a": ("annual", [18, 27, 32, 35, 41]),  # 5 matches
    "b": ("monthly", [27, 32, 35, 41, 40]),  # 4 matches
    "c": ("monthly", [35, 41, 41, 40, 44]),  # 3 matches
    "d": ("annual", [35, 40, 44, 44, 35]),  # 2 matches
}
WINNING_NUMBERS = [18, 27, 32, 41, 35]


class PrizeDrawWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed(
        self,
        session,
        *,
        jackpot: Optional[float] = None,
        inactive: tuple[str, ...] = (),
        without_charity: tuple[str, ...] = (),
    ):
        charity = Charity(name="Fairways for Kids", slug="fairways-for-kids")
        draw = Draw(month_year="January 2026")
        session.add_all([charity, draw])
        session.flush()

        players: dict[str, Profile] = {}
        for key, (plan, scores) in PLAYER_SCORES.items():
            player = Profile(
                email=f"{key}@example.com",
                full_name=f"Player {key.upper()}",
                selected_charity_id=None if key in without_charity else charity.id,
                donation_percentage=20.0 if key == "b" else 10.0,
            )
            session.add(player)
            session.flush()
            session.add(
                Subscription(
                    user_id=player.id,
                    plan=plan,
                    status="cancelled" if key in inactive else "active",
                    assigned_draw_id=draw.id if plan == "monthly" else None,
                    assigned_draw_month=draw.month_year if plan == "monthly" else None,
                )
            )
            for offset, score in enumerate(scores):
                session.add(
                    ScoreRecord(
                        user_id=player.id,
                        score=score,
                        created_at=NOW - timedelta(days=offset + 1),
                    )
                )
            players[key] = player

        if jackpot is not None:
            JackpotTracker.get(session).set_amount(jackpot)
        session.flush()
        return draw, charity, players

    def _entries(self, session, draw_id: int) -> dict[int, DrawEntry]:
        rows = session.scalars(select(DrawEntry).where(DrawEntry.draw_id == draw_id)).all()
        return {entry.user_id: entry for entry in rows}

    def _donations(self, session, draw_id: int) -> list[Donation]:
        return session.scalars(
            select(Donation).where(Donation.draw_id == draw_id).order_by(Donation.id)
        ).all()

    def _subscription(self, session, player: Profile) -> Subscription:
        return Subscription.get_by_user_id(session, player.id)

    # ------------------------------------------------------------------
    # simulate
    # ------------------------------------------------------------------
    def test_simulate_writes_nothing(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)

            result = simulate_draw(session, 1, 45, now=NOW)
            self.assertTrue(result.success)
            simulation = result.simulation
            self.assertEqual(simulation.winning_numbers, WINNING_NUMBERS)
            self.assertEqual(simulation.least_popular, [18, 27, 32])
            self.assertEqual(simulation.most_popular, [41, 35])
            self.assertEqual(simulation.participants, 4)
            self.assertEqual(len(simulation.entries), 4)
            self.assertEqual(
                [entry.user_id for entry in simulation.winners],
                [players["a"].id, players["b"].id, players["c"].id],
            )
            self.assertEqual(simulation.tier(1).count, 1)
            self.assertAlmostEqual(simulation.tier(1).payout, 8.0)
            self.assertAlmostEqual(simulation.tier(2).payout, 7.0)
            self.assertAlmostEqual(simulation.tier(3).payout, 5.0)
            self.assertFalse(simulation.cap_reached)
            self.assertEqual(simulation.jackpot_rollover, 0.0)

            self.assertEqual(draw.status, "open")
            self.assertEqual(self._entries(session, draw.id), {})
            self.assertEqual(session.scalars(select(JackpotTracker)).all(), [])

    def test_simulate_reports_insufficient_data(self) -> None:
        with self.Session.begin() as session:
            self._seed(session)
            # only 40, 41 and 44 fall in this range
            result = simulate_draw(session, 40, 45, now=NOW)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "insufficient_data")
            self.assertIsNone(result.simulation)

    def test_simulate_without_participants_keeps_winning_numbers(self) -> None:
        with self.Session.begin() as session:
            self._seed(session, inactive=("a", "b", "c", "d"))
            result = simulate_draw(session, 1, 45, now=NOW)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "no_eligible_participants")
            self.assertEqual(result.data, {"winning_numbers": WINNING_NUMBERS})

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------
    def test_run_persists_entries_donations_and_jackpot(self) -> None:
        with self.Session.begin() as session:
            draw, charity, players = self._seed(session)

            result = run_draw(session, draw.id, 1, 45, now=NOW)
            self.assertTrue(result.success)
            self.assertIsNone(result.message)
            report = result.report
            self.assertEqual(report.entries_created, 4)
            self.assertEqual(report.donations_created, 3)
            self.assertFalse(report.partial)
            self.assertFalse(report.recomputed)
            self.assertEqual(report.jackpot_after, 0.0)

            self.assertEqual(draw.status, "completed")
            self.assertEqual(draw.winning_numbers, WINNING_NUMBERS)
            self.assertEqual((draw.score_range_min, draw.score_range_max), (1, 45))
            self.assertEqual(draw.participants_count, 4)
            self.assertAlmostEqual(draw.prize_pool, 20.0)
            self.assertEqual(draw.jackpot_added, 0.0)
            self.assertEqual(
                (draw.tier1_winners, draw.tier2_winners, draw.tier3_winners), (1, 1, 1)
            )
            self.assertAlmostEqual(draw.tier1_pool, 8.0)
            self.assertEqual(draw.tier1_rollover_amount, 0.0)
            self.assertIsNotNone(draw.draw_date)

            entries = self._entries(session, draw.id)
            self.assertEqual(len(entries), 4)
            b_entry = entries[players["b"].id]
            self.assertEqual(b_entry.scores, [27, 32, 35, 41, 40])
            self.assertEqual(b_entry.matches, 4)
            self.assertEqual(b_entry.tier, 2)
            self.assertAlmostEqual(b_entry.gross_prize, 7.0)
            self.assertAlmostEqual(b_entry.charity_amount, 1.4)
            self.assertAlmostEqual(b_entry.net_payout, 5.6)
            self.assertEqual(b_entry.verification_status, "Pending")
            self.assertFalse(b_entry.is_paid)

            d_entry = entries[players["d"].id]
            self.assertEqual(d_entry.matches, 2)
            self.assertIsNone(d_entry.tier)
            self.assertEqual(d_entry.gross_prize, 0.0)
            self.assertIsNone(d_entry.verification_status)

            for entry in entries.values():
                self.assertAlmostEqual(entry.charity_amount + entry.net_payout, entry.gross_prize)

            donations = self._donations(session, draw.id)
            self.assertEqual(len(donations), 3)
            self.assertTrue(all(d.source == "prize_split" for d in donations))
            self.assertTrue(all(d.status == "pending" for d in donations))
            self.assertTrue(all(d.charity_id == charity.id for d in donations))
            self.assertAlmostEqual(sum(d.amount for d in donations), 2.7)

            self.assertEqual(JackpotTracker.get(session).amount, 0.0)
            self.assertEqual(JackpotTracker.get(session).last_draw_id, draw.id)
            logged = session.scalar(
                select(func.count(ActivityLog.id)).where(
                    ActivityLog.action_type == "draw_completed"
                )
            )
            self.assertEqual(logged, 1)

    def test_run_without_jackpot_winner_rolls_over(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session, jackpot=100.0, inactive=("a",))

            report = DrawEngine(session).run(draw.id, 1, 45, now=NOW)
            self.assertEqual(report.simulation.participants, 3)
            self.assertAlmostEqual(report.simulation.prize_pool, 15.0)
            self.assertAlmostEqual(report.jackpot_after, 106.0)
            self.assertAlmostEqual(JackpotTracker.get(session).amount, 106.0)

            self.assertEqual(draw.jackpot_added, 100.0)
            self.assertAlmostEqual(draw.tier1_pool, 106.0)
            self.assertAlmostEqual(draw.tier1_rollover_amount, 106.0)
            self.assertEqual(draw.tier1_winners, 0)

            entries = self._entries(session, draw.id)
            self.assertNotIn(players["a"].id, entries)
            self.assertAlmostEqual(entries[players["b"].id].gross_prize, 5.25)
            self.assertAlmostEqual(entries[players["c"].id].gross_prize, 3.75)

    def test_run_diverts_jackpot_overflow_to_tier_two(self) -> None:
        with self.Session.begin() as session:
            update_draw_settings(session, jackpot_cap=100.0)
            draw, _charity, players = self._seed(session, jackpot=99.0)

            report = DrawEngine(session).run(draw.id, 1, 45, now=NOW)
            self.assertTrue(report.simulation.cap_reached)
            self.assertAlmostEqual(report.simulation.tier(2).diversion, 7.0)
            self.assertTrue(draw.jackpot_cap_reached)
            self.assertAlmostEqual(draw.tier1_pool, 100.0)
            self.assertAlmostEqual(draw.tier2_pool, 14.0)
            self.assertAlmostEqual(draw.tier2_rollover_amount, 7.0)

            entries = self._entries(session, draw.id)
            self.assertAlmostEqual(entries[players["a"].id].gross_prize, 100.0)
            self.assertAlmostEqual(entries[players["b"].id].gross_prize, 14.0)
            self.assertEqual(report.jackpot_after, 0.0)

    def test_rerunning_completed_draw_does_not_compound_jackpot(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session, jackpot=100.0, inactive=("a",))
            engine = DrawEngine(session)

            engine.run(draw.id, 1, 45, now=NOW)
            second = engine.run(draw.id, 1, 45, now=NOW)

            self.assertTrue(second.recomputed)
            self.assertEqual(draw.jackpot_added, 100.0)
            self.assertAlmostEqual(JackpotTracker.get(session).amount, 106.0)
            self.assertEqual(len(self._entries(session, draw.id)), 3)
            self.assertEqual(len(self._donations(session, draw.id)), 2)

    def test_run_skips_rows_that_cannot_be_written(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)
            # a stale entry blocks the bulk insert for player B
            session.add(
                DrawEntry(draw_id=draw.id, user_id=players["b"].id, scores=[0, 0, 0, 0, 0])
            )
            session.flush()

            result = run_draw(session, draw.id, 1, 45, now=NOW)
            self.assertTrue(result.success)
            self.assertIsNotNone(result.message)
            report = result.report
            self.assertTrue(report.partial)
            self.assertEqual(report.failed_entry_user_ids, [players["b"].id])
            self.assertEqual(report.entries_created, 3)
            self.assertEqual(report.donations_created, 2)
            self.assertEqual(draw.status, "completed")

            donors = {d.user_id for d in self._donations(session, draw.id)}
            self.assertEqual(donors, {players["a"].id, players["c"].id})

    def test_winner_without_charity_is_reported(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session, without_charity=("c",))

            report = DrawEngine(session).run(draw.id, 1, 45, now=NOW)
            self.assertEqual(report.failed_donation_user_ids, [players["c"].id])
            self.assertEqual(report.donations_created, 2)

            c_entry = self._entries(session, draw.id)[players["c"].id]
            self.assertIsNone(c_entry.charity_id)
            self.assertAlmostEqual(c_entry.charity_amount, 0.5)
            self.assertAlmostEqual(c_entry.net_payout, 4.5)

    def test_run_failures_leave_draw_open(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session)

            result = run_draw(session, draw.id, 40, 45, now=NOW)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "insufficient_data")
            self.assertEqual(draw.status, "open")
            self.assertEqual(self._entries(session, draw.id), {})

            result = run_draw(session, 999, 1, 45, now=NOW)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "not_found")

    def test_concurrent_jackpot_write_aborts_run(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session, jackpot=100.0)
            # another admin moved the jackpot after this session loaded it
            session.execute(text("UPDATE jackpot_tracker SET version_id = version_id + 1"))

            with self.assertRaises(PersistenceError):
                DrawEngine(session).run(draw.id, 1, 45, now=NOW)

            self.assertEqual(session.scalar(select(Draw.status).where(Draw.id == draw.id)), "open")
            self.assertEqual(self._entries(session, draw.id), {})
            self.assertEqual(self._donations(session, draw.id), [])
            self.assertEqual(session.scalar(select(JackpotTracker.amount)), 100.0)

    def test_run_without_participants(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session, inactive=("a", "b", "c", "d"))
            result = run_draw(session, draw.id, 1, 45, now=NOW)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "no_eligible_participants")
            self.assertEqual(result.data["winning_numbers"], WINNING_NUMBERS)
            self.assertEqual(draw.status, "open")

    # ------------------------------------------------------------------
    # publish / reset
    # ------------------------------------------------------------------
    def test_publish_expires_monthly_plans(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)
            DrawEngine(session).run(draw.id, 1, 45, now=NOW)

            result = publish_draw(session, draw.id)
            self.assertTrue(result.success)
            self.assertEqual(result.data, {"expired_subscriptions": 2})
            self.assertEqual(draw.status, "published")
            self.assertIsNotNone(draw.published_at)

            for key in ("b", "c"):
                subscription = self._subscription(session, players[key])
                self.assertEqual(subscription.status, "cancelled")
                self.assertEqual(subscription.draws_remaining, 0)
            for key in ("a", "d"):
                self.assertEqual(self._subscription(session, players[key]).status, "active")

            again = publish_draw(session, draw.id)
            self.assertFalse(again.success)
            self.assertEqual(again.error, "invalid_transition")

            rerun = run_draw(session, draw.id, 1, 45, now=NOW)
            self.assertFalse(rerun.success)
            self.assertEqual(rerun.error, "invalid_transition")

    def test_publish_requires_completed_draw(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session)
            with self.assertRaises(InvalidTransitionError):
                DrawEngine(session).publish(draw.id)
            with self.assertRaises(DrawNotFoundError):
                DrawEngine(session).publish(12345)

    def test_publish_backfills_legacy_month_assignments(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)
            DrawEngine(session).run(draw.id, 1, 45, now=NOW)

            legacy = Profile(email="legacy@example.com")
            session.add(legacy)
            session.flush()
            session.add(
                Subscription(
                    user_id=legacy.id, plan="monthly", assigned_draw_month=draw.month_year
                )
            )
            session.flush()

            change = DrawEngine(session).publish(draw.id)
            self.assertEqual(change.subscriptions_updated, 3)
            subscription = self._subscription(session, legacy)
            self.assertEqual(subscription.assigned_draw_id, draw.id)
            self.assertEqual(subscription.status, "cancelled")

    def test_reset_round_trip(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session, jackpot=100.0, inactive=("a",))
            run_draw(session, draw.id, 1, 45, now=NOW)
            self.assertAlmostEqual(JackpotTracker.get(session).amount, 106.0)

            result = reset_draw(session, draw.id)
            self.assertTrue(result.success)
            self.assertEqual(result.data["previous_status"], "completed")
            self.assertEqual(result.data["entries_deleted"], 3)
            self.assertEqual(result.data["donations_deleted"], 2)
            self.assertEqual(result.data["jackpot_restored"], 100.0)

            self.assertEqual(JackpotTracker.get(session).amount, 100.0)
            self.assertEqual(self._entries(session, draw.id), {})
            self.assertEqual(self._donations(session, draw.id), [])
            self.assertEqual(draw.status, "open")
            self.assertIsNone(draw.winning_numbers)
            self.assertIsNone(draw.jackpot_added)
            self.assertEqual(draw.prize_pool, 0.0)
            self.assertEqual(
                (draw.tier1_pool, draw.tier2_pool, draw.tier3_pool), (0.0, 0.0, 0.0)
            )
            self.assertEqual(
                (draw.tier1_winners, draw.tier2_winners, draw.tier3_winners), (0, 0, 0)
            )
            self.assertEqual(draw.participants_count, 0)
            self.assertEqual(draw.entries, [])

    def test_reset_published_draw_reactivates_monthly_plans(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)
            engine = DrawEngine(session)
            engine.run(draw.id, 1, 45, now=NOW)
            engine.publish(draw.id)

            change = engine.reset(draw.id)
            self.assertEqual(change.previous_status, "published")
            self.assertEqual(change.subscriptions_updated, 2)
            self.assertIsNone(draw.published_at)
            for key in ("b", "c"):
                subscription = self._subscription(session, players[key])
                self.assertEqual(subscription.status, "active")
                self.assertEqual(subscription.draws_remaining, 1)

            # the draw can be played again
            report = engine.run(draw.id, 1, 45, now=NOW)
            self.assertEqual(report.entries_created, 4)

    def test_reset_reactivates_monthly_plans_cancelled_before_the_run(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session, inactive=("c",))
            engine = DrawEngine(session)
            self.assertEqual(engine.run(draw.id, 1, 45, now=NOW).simulation.participants, 3)
            engine.publish(draw.id)

            engine.reset(draw.id)
            cancelled = self._subscription(session, players["c"])
            self.assertEqual(cancelled.status, "active")
            self.assertEqual(cancelled.draws_remaining, 1)
            self.assertEqual(engine.run(draw.id, 1, 45, now=NOW).entries_created, 4)

    def test_reset_refused_after_prize_paid(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, players = self._seed(session)
            engine = DrawEngine(session)
            engine.run(draw.id, 1, 45, now=NOW)
            engine.publish(draw.id)

            entry = self._entries(session, draw.id)[players["a"].id]
            SettlementLedger(session).mark_winner_as_paid(entry.id, "ref-1")

            result = reset_draw(session, draw.id)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "invalid_transition")
            self.assertEqual(draw.status, "published")
            self.assertEqual(len(self._entries(session, draw.id)), 4)

    def test_reset_open_draw_is_a_no_op(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _players = self._seed(session, jackpot=50.0)
            result = reset_draw(session, draw.id)
            self.assertTrue(result.success)
            self.assertEqual(result.data["previous_status"], "open")
            self.assertEqual(result.data["entries_deleted"], 0)
            self.assertIsNone(result.data["jackpot_restored"])
            self.assertEqual(JackpotTracker.get(session).amount, 50.0)


if __name__ == "__main__":
    unittest.main()
