# slashy/core_app/services/guests.py
import re
from typing import Optional

from sqlalchemy.orm import Session

from slashy.core_app.database.models import Guest, utcnow
from slashy.core_app.database.session import store_operation
from slashy.core_app.errors import ValidationError
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

SESSION_ID_PATTERN = re.compile(r"^guest_\d+$")


def validate_session_id(session_id: Optional[str]) -> str:
    # Session tokens are client-generated, so the format is checked before touching the store.
    if not session_id or not SESSION_ID_PATTERN.match(session_id):
        raise ValidationError("Invalid session ID format")
    return session_id


def get_guest(db: Session, guest_id: str) -> Optional[Guest]:
    with store_operation(db, "fetch guest", commit=False):
        return db.query(Guest).filter(Guest.id == guest_id).first()


def get_guest_by_session_id(db: Session, session_id: str) -> Optional[Guest]:
    validate_session_id(session_id)
    with store_operation(db, "fetch guest", commit=False):
        return db.query(Guest).filter(Guest.session_id == session_id).first()


def create_guest(db: Session, name: str, session_id: str) -> Guest:
    """Create a guest for the session, or return the one that already exists."""
    if not name or not name.strip():
        raise ValidationError("Name is required for guest creation")

    existing = get_guest_by_session_id(db, session_id)
    if existing:
        return existing

    guest = Guest(name=name.strip(), session_id=session_id)
    with store_operation(db, "create guest"):
        db.add(guest)
    db.refresh(guest)
    logger.info(f"Created new guest: {guest.id}")
    return guest


def update_guest_activity(db: Session, session_id: str) -> bool:
    validate_session_id(session_id)
    with store_operation(db, "update guest activity"):
        updated = (
            db.query(Guest)
            .filter(Guest.session_id == session_id)
            .update({Guest.last_active_at: utcnow()})
        )
    return updated > 0


def touch_guest(db: Session, guest_id: str) -> None:
    with store_operation(db, "update guest activity"):
        db.query(Guest).filter(Guest.id == guest_id).update({Guest.last_active_at: utcnow()})
