import logging
import random
from datetime import datetime, timedelta, timezone

from golfdraw.admin import assign_subscription, create_new_draw
from golfdraw.db.engine import get_sessionmaker, make_engine
from golfdraw.models import (
    Base,
    Charity,
    DrawSettings,
    JackpotTracker,
    Profile,
    ScoreRecord,
)
from golfdraw.prize_draw.schedule import draw_month_year


def main() -> None:
    """Seed the development database with sample data."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    engine = make_engine()

    # Drop and recreate all tables; the schema has no foreign-key cycles.
    Base.metadata.drop_all(engine)

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)
    rng = random.Random(9)

    with Session.begin() as session:
        session.add(DrawSettings())
        JackpotTracker.get(session)

        charities = [
            Charity(name="Fairways for Kids", slug="fairways-for-kids"),
            Charity(name="Green Hearts Foundation", slug="green-hearts"),
            Charity(name="Caddie Scholarship Fund", slug="caddie-scholarship"),
        ]
        session.add_all(charities)
        session.flush()

        # Draw for the upcoming cycle; new subscriptions are assigned to it.
        create_new_draw(session, draw_month_year())

        session.add(
            Profile(
                email="admin@example.com",
                full_name="Draw Admin",
                role="admin",
            )
        )

        players = []
        for i in range(1, 13):
            player = Profile(
                email=f"player{i:02d}@example.com",
                full_name=f"Player {i:02d}",
                selected_charity_id=charities[i % len(charities)].id,
                donation_percentage=10.0 if i % 4 else 25.0,
            )
            players.append(player)
        session.add_all(players)
        session.flush()

        for i, player in enumerate(players):
            assign_subscription(session, player, "annual" if i % 3 == 0 else "monthly", now=now)
            for days_ago in range(5):
                session.add(
                    ScoreRecord(
                        user_id=player.id,
                        score=rng.randint(18, 42),
                        created_at=now - timedelta(days=days_ago * 6 + 1),
                    )
                )
        session.flush()

    logging.getLogger("golfdraw.seed_dev").info("Development database seeded")


if __name__ == "__main__":
    main()
