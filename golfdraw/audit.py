"""Fire-and-forget activity logging for administrative actions."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    session: Session,
    action_type: str,
    description: str,
    metadata: Optional[dict[str, Any]] = None,
    *,
    user_id: Optional[int] = None,
) -> Optional[ActivityLog]:
    """Append an :class:`ActivityLog` row without ever failing the caller.

    The row is written inside a SAVEPOINT so that a failure only discards
    the log entry, not the caller's pending changes.

    Returns
    -------
    Optional[ActivityLog]
        The stored row, or ``None`` when writing it failed.
    """

    entry = ActivityLog(
        action_type=action_type,
        description=description,
        meta=metadata or {},
        user_id=user_id,
    )
    try:
        with session.begin_nested():
            session.add(entry)
            session.flush()
    except SQLAlchemyError as exc:
        logger.warning(f"Failed to log activity '{action_type}': {exc}")
        return None
    return entry


__all__ = ["log_activity"]
