"""
Display utilities for user names, emails and phone numbers
"""
from typing import Optional

from sqlalchemy.orm import Session
import models


def mask_email(email: str) -> str:
    """
    Mask an email address for display to other users.
    Example: jules@example.com -> ju***s@example.com
    """
    if not email or "@" not in email:
        return "User"

    user_part, domain_part = email.split("@", 1)
    if len(user_part) > 3:
        return f"{user_part[:2]}***{user_part[-1]}@{domain_part}"
    elif len(user_part) > 1:
        return f"{user_part[0]}***@{domain_part}"
    return f"***@{domain_part}"


def mask_phone_number(phone_number: str) -> str:
    """Keep only the last four digits: 9876543210 -> ******3210"""
    if not phone_number:
        return ""
    digits = phone_number.lstrip("+")
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]


def get_user_display_name(user: Optional[models.User]) -> str:
    """
    Get a safe display name for a user.
    Uses full_name if available, otherwise masks the email, then the phone number.
    """
    if not user:
        return "Unknown User"

    if user.full_name:
        return user.full_name
    if user.email:
        return mask_email(user.email)
    if user.phone_number:
        return mask_phone_number(user.phone_number)
    return "User"


def get_user_display_names(db: Session, user_ids: list[str]) -> dict[str, str]:
    """Resolve display names for many users in one query."""
    if not user_ids:
        return {}
    users = db.query(models.User).filter(models.User.id.in_(user_ids)).all()
    names = {user.id: get_user_display_name(user) for user in users}
    return {user_id: names.get(user_id, "Unknown User") for user_id in user_ids}
