from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .charity import Charity  # noqa: F401
from .profile import Profile  # noqa: F401
from .subscription import Subscription  # noqa: F401
from .score import ScoreRecord  # noqa: F401
from .draw import Draw, DrawEntry, JackpotTracker  # noqa: F401
from .donation import Donation, CharityPayout  # noqa: F401
from .settings import DrawSettings  # noqa: F401
from .audit import ActivityLog  # noqa: F401

__all__ = [
    "Base",
    "Charity",
    "Profile",
    "Subscription",
    "ScoreRecord",
    "Draw",
    "DrawEntry",
    "JackpotTracker",
    "Donation",
    "CharityPayout",
    "DrawSettings",
    "ActivityLog",
]
