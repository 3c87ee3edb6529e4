"""
In-app notification fan-out.

Writes inbox rows in a session of its own so a failure here never touches
the caller's transaction. Failures are logged and reported as a count.
"""
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from shifttrack.database import SessionLocal
from shifttrack.models.notification import Notification
from shifttrack.models.user import User

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    TIME_ENTRY_MISMATCH = "TIME_ENTRY_MISMATCH"
    GPS_AUTO_STOP = "GPS_AUTO_STOP"
    GENERAL = "GENERAL"


def build_notification(
    user_id: str,
    kind: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "userId": str(user_id),
        "kind": kind.value if isinstance(kind, NotificationType) else str(kind),
        "title": title,
        "message": message,
        "data": data or {},
    }


def create_many(notifications: List[Dict[str, Any]]) -> int:
    if not notifications:
        return 0

    db = SessionLocal()
    try:
        for n in notifications:
            db.add(
                Notification(
                    id=str(uuid4()),
                    user_id=str(n["userId"]),
                    type=str(n["kind"]),
                    title=str(n["title"]),
                    message=str(n["message"]),
                    data=n.get("data") or {},
                    is_read=False,
                )
            )
        db.commit()
        return len(notifications)
    except Exception:
        db.rollback()
        logger.exception(
            "Failed to store notifications",
            extra={"count": len(notifications), "kinds": sorted({str(n.get("kind")) for n in notifications})},
        )
        return 0
    finally:
        db.close()


def active_users_with_roles(db: Session, roles: Iterable[str]) -> List[User]:
    return (
        db.query(User)
        .filter(User.role.in_([str(r) for r in roles]), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )


def list_for_user(db: Session, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    q = db.query(Notification).filter(Notification.user_id == str(user_id))
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc()).limit(int(limit)).all()
