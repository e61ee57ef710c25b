"""User lookups"""
from sqlmodel import Session

from app.models import User


def get_user_contact(*, session: Session, user_id: int) -> tuple[str, str] | None:
    """Return ``(email, full name)`` for billing, or None for an unknown user"""
    user = session.get(User, user_id)
    if not user:
        return None
    name = " ".join(p for p in (user.first_name, user.last_name) if p)
    return user.email, name
