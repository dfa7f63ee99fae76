from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import ID_TYPE, Base


class Charity(Base):
    """A charity listed in the directory and eligible to receive donations."""

    __tablename__ = "charities"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    total_raised: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("status IN ('active','inactive')", name="status_enum"),
    )

    @classmethod
    def get_by_slug(cls, session: Session, slug: str) -> Optional["Charity"]:
        return session.scalar(select(cls).where(cls.slug == slug))

    def __repr__(self) -> str:
        return f"<Charity(id={self.id}, slug='{self.slug}', status='{self.status}')>"
