import unittest
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import sessionmaker

from golfdraw.admin import count_eligible_subscribers
from golfdraw.db.engine import make_engine
from golfdraw.models import Base, Draw, Profile, ScoreRecord, Subscription
from golfdraw.prize_draw import EligibilityResolver

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


class EligibilityResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _player(
        self,
        session,
        email: str,
        plan: Optional[str] = None,
        *,
        status: str = "active",
        draw: Optional[Draw] = None,
        period_end: Optional[datetime] = None,
        role: str = "user",
        full_name: Optional[str] = None,
        profile_status: str = "active",
    ) -> Profile:
        profile = Profile(email=email, full_name=full_name, role=role, status=profile_status)
        session.add(profile)
        session.flush()
        if plan is not None:
            session.add(
                Subscription(
                    user_id=profile.id,
                    plan=plan,
                    status=status,
                    assigned_draw_id=draw.id if draw is not None else None,
                    current_period_end=period_end,
                )
            )
            session.flush()
        return profile

    def _draws(self, session) -> tuple[Draw, Draw]:
        january = Draw(month_year="January 2026", created_at=NOW - timedelta(days=20))
        february = Draw(month_year="February 2026", created_at=NOW)
        session.add_all([january, february])
        session.flush()
        return january, february

    def test_rules_for_target_draw(self) -> None:
        with self.Session.begin() as session:
            january, february = self._draws(session)
            annual = self._player(session, "annual@example.com", "annual")
            trialing = self._player(session, "trial@example.com", "annual", status="trialing")
            assigned = self._player(session, "assigned@example.com", "monthly", draw=january)
            elsewhere = self._player(session, "elsewhere@example.com", "monthly", draw=february)
            covered = self._player(
                session, "covered@example.com", "monthly", period_end=NOW + timedelta(days=10)
            )
            self._player(
                session, "lapsed@example.com", "monthly", period_end=NOW - timedelta(days=1)
            )
            self._player(session, "cancelled@example.com", "annual", status="cancelled")
            self._player(session, "pastdue@example.com", "monthly", status="past_due", draw=january)
            self._player(session, "nosub@example.com")

            users = EligibilityResolver(session, test_account_emails=[]).resolve(
                january.id, now=NOW
            )
            rules = {user.id: user.rule for user in users}

            self.assertEqual(
                rules,
                {
                    annual.id: "annual_plan",
                    trialing.id: "annual_plan",
                    assigned.id: "assigned_to_draw",
                    covered.id: "period_covers_next_draw",
                },
            )
            self.assertNotIn(elsewhere.id, rules)

            february_users = EligibilityResolver(session, test_account_emails=[]).resolve(
                february.id, now=NOW
            )
            self.assertIn(elsewhere.id, {user.id for user in february_users})
            self.assertNotIn(assigned.id, {user.id for user in february_users})

    def test_current_draw_is_used_by_default(self) -> None:
        with self.Session.begin() as session:
            january, _february = self._draws(session)
            assigned = self._player(session, "assigned@example.com", "monthly", draw=january)

            resolver = EligibilityResolver(session, test_account_emails=[])
            self.assertEqual(resolver.context_for(now=NOW).target_draw_id, january.id)
            self.assertEqual([u.id for u in resolver.resolve(now=NOW)], [assigned.id])

    def test_global_mode_counts_every_live_subscription(self) -> None:
        with self.Session.begin() as session:
            january, february = self._draws(session)
            self._player(session, "annual@example.com", "annual")
            self._player(session, "assigned@example.com", "monthly", draw=january)
            elsewhere = self._player(session, "elsewhere@example.com", "monthly", draw=february)
            self._player(session, "cancelled@example.com", "monthly", status="cancelled")

            resolver = EligibilityResolver(session, test_account_emails=[])
            users = resolver.resolve(global_mode=True, now=NOW)
            self.assertEqual(len(users), 3)
            self.assertEqual(
                {u.id: u.rule for u in users}[elsewhere.id], "no_target_draw"
            )
            self.assertEqual(resolver.count(global_mode=True, now=NOW), 3)
            self.assertEqual(
                count_eligible_subscribers(session, global_count=True, now=NOW), 3
            )
            self.assertEqual(count_eligible_subscribers(session, january.id, now=NOW), 2)

    def test_admins_excluded_except_test_accounts(self) -> None:
        with self.Session.begin() as session:
            self._player(session, "admin@example.com", "annual", role="admin", full_name="Admin")
            named = self._player(
                session, "tester@example.com", "annual", role="admin", full_name="Test User"
            )
            listed = self._player(session, "qa@example.com", "annual", role="admin")
            self._player(session, "suspended@example.com", "annual", profile_status="suspended")

            resolver = EligibilityResolver(session, test_account_emails=["QA@example.com"])
            ids = {user.id for user in resolver.resolve(global_mode=True, now=NOW)}
            self.assertEqual(ids, {named.id, listed.id})

    def test_recent_scores_newest_first_limited_to_five(self) -> None:
        with self.Session.begin() as session:
            player = self._player(session, "scores@example.com", "annual")
            for offset, score in enumerate([10, 11, 12, 13, 14, 15, 16]):
                session.add(
                    ScoreRecord(
                        user_id=player.id,
                        score=score,
                        created_at=NOW - timedelta(days=7 - offset),
                    )
                )
            session.flush()

            users = EligibilityResolver(session, test_account_emails=[]).resolve(
                global_mode=True, now=NOW
            )
            self.assertEqual(len(users), 1)
            self.assertEqual(users[0].scores, [16, 15, 14, 13, 12])
            self.assertEqual(users[0].donation_percentage, 10.0)

    def test_count_matches_resolve(self) -> None:
        with self.Session.begin() as session:
            january, _ = self._draws(session)
            for i in range(4):
                self._player(session, f"p{i}@example.com", "annual" if i % 2 else "monthly", draw=january)
            resolver = EligibilityResolver(session, test_account_emails=[])
            self.assertEqual(resolver.count(january.id, now=NOW), 4)
            self.assertEqual(
                resolver.count(january.id, now=NOW), len(resolver.resolve(january.id, now=NOW))
            )

    def test_invalid_score_limit(self) -> None:
        with self.Session() as session:
            with self.assertRaises(ValueError):
                EligibilityResolver(session, score_limit=0)


if __name__ == "__main__":
    unittest.main()
