import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from golfdraw.admin import (
    assign_subscription,
    backfill_subscription_assignments,
    create_new_draw,
    get_current_draw,
    submit_score,
)
from golfdraw.audit import log_activity
from golfdraw.db.engine import make_engine
from golfdraw.models import ActivityLog, Base, Draw, Profile, ScoreRecord, Subscription


class AdminTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _profile(self, session, email: str = "golfer@example.com") -> Profile:
        profile = Profile(email=email, full_name="Golfer")
        session.add(profile)
        session.flush()
        return profile

    def test_create_new_draw_is_idempotent(self) -> None:
        with self.Session.begin() as session:
            self.assertIsNone(get_current_draw(session))

            draw = create_new_draw(session, " March 2026 ")
            self.assertEqual(draw.month_year, "March 2026")
            self.assertEqual(draw.status, "open")
            self.assertIs(create_new_draw(session, "March 2026"), draw)
            self.assertIs(get_current_draw(session), draw)
            self.assertEqual(len(session.scalars(select(Draw)).all()), 1)

            created = session.scalars(
                select(ActivityLog).where(ActivityLog.action_type == "draw_created")
            ).all()
            self.assertEqual(len(created), 1)
            self.assertEqual(created[0].meta, {"draw_id": draw.id})

            with self.assertRaises(ValueError):
                create_new_draw(session, "  ")

    def test_assign_subscription_targets_oldest_open_draw(self) -> None:
        start = datetime(2026, 1, 2, tzinfo=timezone.utc)
        with self.Session.begin() as session:
            older = Draw(month_year="January 2026", created_at=start - timedelta(days=30))
            newer = Draw(month_year="February 2026", created_at=start)
            session.add_all([older, newer])
            session.flush()
            profile = self._profile(session)

            subscription = assign_subscription(session, profile, "monthly", now=start)
            self.assertEqual(subscription.plan, "monthly")
            self.assertEqual(subscription.status, "active")
            self.assertEqual(subscription.assigned_draw_id, older.id)
            self.assertEqual(subscription.assigned_draw_month, "January 2026")
            self.assertEqual(subscription.draws_remaining, 1)
            self.assertEqual(subscription.current_period_end - subscription.current_period_start, timedelta(days=30))

            upgraded = assign_subscription(session, profile, "annual", now=start)
            self.assertIs(upgraded, subscription)
            self.assertEqual(upgraded.plan, "annual")
            self.assertEqual(upgraded.draws_remaining, 12)
            self.assertEqual(len(session.scalars(select(Subscription)).all()), 1)

    def test_assign_subscription_creates_draw_when_none_open(self) -> None:
        with self.Session.begin() as session:
            profile = self._profile(session)
            subscription = assign_subscription(session, profile, "monthly")
            draw = session.get(Draw, subscription.assigned_draw_id)
            self.assertIsNotNone(draw)
            self.assertEqual(draw.status, "open")

    def test_free_plan_removes_subscription(self) -> None:
        with self.Session.begin() as session:
            create_new_draw(session, "January 2026")
            profile = self._profile(session)
            assign_subscription(session, profile, "annual")

            self.assertIsNone(assign_subscription(session, profile, "free"))
            self.assertIsNone(Subscription.get_by_user_id(session, profile.id))
            self.assertIsNone(assign_subscription(session, profile, "none"))

            with self.assertRaises(ValueError):
                assign_subscription(session, profile, "weekly")
            with self.assertRaises(ValueError):
                assign_subscription(session, Profile(email="new@example.com"), "monthly")

    def test_backfill_assigns_legacy_month_labels(self) -> None:
        with self.Session.begin() as session:
            january = create_new_draw(session, "January 2026")
            february = create_new_draw(session, "February 2026")
            labelled = {}
            for label in ("January 2026", "February 2026", "March 2026"):
                profile = self._profile(session, f"{label.split()[0].lower()}@example.com")
                session.add(
                    Subscription(user_id=profile.id, plan="monthly", assigned_draw_month=label)
                )
                labelled[label] = profile
            annual = self._profile(session, "annual@example.com")
            session.add(
                Subscription(user_id=annual.id, plan="annual", assigned_draw_month="January 2026")
            )
            session.flush()

            self.assertEqual(backfill_subscription_assignments(session, january), 1)
            self.assertEqual(backfill_subscription_assignments(session), 1)
            self.assertEqual(backfill_subscription_assignments(session), 0)

            def assigned(profile):
                return Subscription.get_by_user_id(session, profile.id).assigned_draw_id

            self.assertEqual(assigned(labelled["January 2026"]), january.id)
            self.assertEqual(assigned(labelled["February 2026"]), february.id)
            self.assertIsNone(assigned(labelled["March 2026"]))
            self.assertIsNone(assigned(annual))

    def test_submit_score(self) -> None:
        open_window = datetime(2026, 1, 3, 12, 0, tzinfo=timezone.utc)
        with self.Session.begin() as session:
            profile = self._profile(session)

            record = submit_score(session, profile, 36, now=open_window)
            self.assertEqual(record.score, 36)
            self.assertEqual(record.user_id, profile.id)

            with self.assertRaises(ValueError):
                submit_score(session, profile, 50, now=open_window)
            with self.assertRaises(ValueError):
                submit_score(
                    session, profile, 30, now=datetime(2026, 1, 9, 12, 0, tzinfo=timezone.utc)
                )
            self.assertEqual(len(session.scalars(select(ScoreRecord)).all()), 1)

    def test_log_activity_never_fails_caller(self) -> None:
        with self.Session.begin() as session:
            profile = self._profile(session)
            entry = log_activity(
                session, "settings_updated", "changed", {"k": 1}, user_id=profile.id
            )
            self.assertIsNotNone(entry)
            self.assertEqual(entry.meta, {"k": 1})

            # unknown user id violates the foreign key
            self.assertIsNone(log_activity(session, "draw_created", "fails", user_id=98765))

            self.assertEqual(profile.email, "golfer@example.com")
            self.assertEqual(len(session.scalars(select(ActivityLog)).all()), 1)


if __name__ == "__main__":
    unittest.main()
