import os
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from golfdraw.db.engine import make_engine
from golfdraw.gateway.api import PaymentGatewayError
from golfdraw.models import (
    ActivityLog,
    Base,
    Charity,
    CharityPayout,
    DrawEntry,
    Profile,
    ScoreRecord,
    Subscription,
)
from golfdraw.prize_draw import DrawEngine
from golfdraw.settlement import SettlementLedger
from golfdraw.workflows import (
    OperationResult,
    create_charity_payout_session,
    create_new_draw,
    create_payout_session,
    get_draw_settings,
    get_eligible_users,
    get_score_frequencies,
    process_gateway_payout,
    update_draw_settings,
)

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


class RecordingGateway:
    """Stands in for PaymentGatewayClient and records what it was asked."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    def _answer(self, name, *args):
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error
        return {"url": f"https://checkout.example.com/{name}"}

    def create_payout_session(self, entry_id, amount, winner_name, draw_month):
        return self._answer("create_payout_session", entry_id, amount, winner_name, draw_month)

    def create_charity_payout_session(self, payout_id, amount, charity_name, payout_type):
        return self._answer(
            "create_charity_payout_session", payout_id, amount, charity_name, payout_type
        )

    def process_payout(self, entry_id):
        return self._answer("process_payout", entry_id)


class WorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _published_winner(self, session):
        charity = Charity(name="Fairways for Kids", slug="fairways-for-kids")
        session.add(charity)
        session.flush()
        draw = create_new_draw(session, "January 2026")
        winner = None
        for i, scores in enumerate(
            ([18, 27, 32, 35, 41], [27, 32, 35, 41, 40], [35, 41, 41, 40, 44], [35, 40, 44, 44, 35])
        ):
            player = Profile(
                email=f"p{i}@example.com", full_name=f"Player {i}", selected_charity_id=charity.id
            )
            session.add(player)
            session.flush()
            session.add(Subscription(user_id=player.id, plan="annual"))
            for offset, score in enumerate(scores):
                session.add(
                    ScoreRecord(
                        user_id=player.id, score=score, created_at=NOW - timedelta(days=offset + 1)
                    )
                )
            winner = winner or player
        session.flush()

        engine = DrawEngine(session)
        engine.run(draw.id, 1, 45, now=NOW)
        engine.publish(draw.id)
        entry = session.scalars(
            select(DrawEntry).where(DrawEntry.draw_id == draw.id, DrawEntry.user_id == winner.id)
        ).one()
        return draw, charity, entry

    def test_operation_result_to_json(self) -> None:
        result = OperationResult(success=False, error="not_found", message="Draw 3 not found")
        self.assertEqual(
            result.to_json(),
            {
                "success": False,
                "error": "not_found",
                "message": "Draw 3 not found",
                "simulation": None,
                "report": None,
                "data": None,
            },
        )

    def test_data_views(self) -> None:
        with self.Session.begin() as session:
            draw, _charity, _entry = self._published_winner(session)

            frequencies = get_score_frequencies(session, 1, 45, now=NOW)
            self.assertEqual([f.score for f in frequencies][:3], [18, 27, 32])
            self.assertEqual([(f.score, f.count) for f in frequencies][-2:], [(41, 4), (35, 5)])
            self.assertEqual(get_score_frequencies(session, 1, 45, now=NOW + timedelta(days=120)), [])

            users = get_eligible_users(session, draw.id, now=NOW)
            self.assertEqual(len(users), 4)
            self.assertTrue(all(user.rule == "annual_plan" for user in users))

    def test_update_draw_settings_validates_and_logs(self) -> None:
        with self.Session.begin() as session:
            bad = update_draw_settings(session, tier1_percent=90)
            self.assertFalse(bad.success)
            self.assertEqual(bad.error, "invalid_argument")
            self.assertEqual(get_draw_settings(session).tier1_percent, 40.0)

            good = update_draw_settings(session, admin_id=None, base_amount_per_sub=10)
            self.assertTrue(good.success)
            self.assertEqual(good.data["base_amount_per_sub"], 10.0)
            self.assertEqual(get_draw_settings(session).base_amount_per_sub, 10.0)

            logs = session.scalars(
                select(ActivityLog).where(ActivityLog.action_type == "settings_updated")
            ).all()
            self.assertEqual(len(logs), 1)

    def test_payout_session_requires_verified_winner(self) -> None:
        with self.Session.begin() as session:
            _draw, _charity, entry = self._published_winner(session)
            gateway = RecordingGateway()

            pending = create_payout_session(session, entry.id, client=gateway)
            self.assertFalse(pending.success)
            self.assertEqual(pending.error, "settlement")
            self.assertEqual(gateway.calls, [])

            SettlementLedger(session).update_winner_verification(entry.id, "verified")
            result = create_payout_session(session, entry.id, client=gateway)
            self.assertTrue(result.success)
            self.assertEqual(
                result.data, {"url": "https://checkout.example.com/create_payout_session"}
            )
            self.assertEqual(
                gateway.calls,
                [("create_payout_session", (entry.id, entry.net_payout, "Player 0", "January 2026"))],
            )
            # opening a session does not settle the entry
            self.assertFalse(entry.is_paid)

            missing = create_payout_session(session, 999, client=gateway)
            self.assertEqual(missing.error, "not_found")

    def test_gateway_errors_are_reported(self) -> None:
        with self.Session.begin() as session:
            _draw, _charity, entry = self._published_winner(session)
            gateway = RecordingGateway(error=PaymentGatewayError("declined", status_code=402))

            result = process_gateway_payout(session, entry.id, client=gateway)
            self.assertFalse(result.success)
            self.assertEqual(result.error, "gateway")
            self.assertEqual(result.message, "declined")

    @patch("golfdraw.gateway.api.load_dotenv")
    def test_unconfigured_gateway_is_reported(self, _mock_load_dotenv) -> None:
        with self.Session.begin() as session:
            _draw, charity, entry = self._published_winner(session)
            SettlementLedger(session).update_winner_verification(entry.id, "verified")
            payout = SettlementLedger(session).create_charity_payout(charity.id, 2.0)

            with patch.dict(os.environ, {}, clear=True):
                results = [
                    create_payout_session(session, entry.id),
                    create_charity_payout_session(session, payout.id),
                    process_gateway_payout(session, entry.id),
                ]

            for result in results:
                self.assertFalse(result.success)
                self.assertEqual(result.error, "invalid_argument")
                self.assertIn("PAYMENT_GATEWAY_BASE_URL", result.message)
            self.assertFalse(entry.is_paid)

    def test_charity_payout_session(self) -> None:
        with self.Session.begin() as session:
            _draw, charity, _entry = self._published_winner(session)
            payout = SettlementLedger(session).create_charity_payout(charity.id, 2.0)
            gateway = RecordingGateway()

            result = create_charity_payout_session(session, payout.id, client=gateway)
            self.assertTrue(result.success)
            self.assertEqual(
                gateway.calls,
                [("create_charity_payout_session", (payout.id, 2.0, "Fairways for Kids", "charity"))],
            )

            SettlementLedger(session).mark_charity_payout_as_paid(payout.id, "ref")
            paid = create_charity_payout_session(session, payout.id, client=gateway)
            self.assertFalse(paid.success)
            self.assertEqual(paid.message, "Already paid")
            self.assertEqual(len(session.scalars(select(CharityPayout)).all()), 1)


if __name__ == "__main__":
    unittest.main()
