"""User lookup and identity-provider synchronisation."""

import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
import schemas
from exceptions import EmailTaken, NotFound, PhoneNumberTaken

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: str):
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_or_404(db: Session, user_id: str) -> models.User:
    user = get_user(db, user_id)
    if not user:
        raise NotFound("User not found", user_id=user_id)
    return user


def get_user_by_phone_number(db: Session, phone_number: str):
    """Get a user by their phone number (used for friend lookup)."""
    return db.query(models.User).filter(models.User.phone_number == phone_number).first()


def upsert_user(db: Session, claims: dict) -> models.User:
    """
    Create or refresh the local user row for a verified identity token.

    Only the subject is required; name and email are copied when present.
    An email already registered to another user is not copied.
    """
    user_id = claims["sub"]
    user = get_user(db, user_id)
    full_name = claims.get("name")
    email = claims.get("email")

    if email:
        owner = db.query(models.User.id).filter(models.User.email == email).first()
        if owner is not None and owner.id != user_id:
            logger.warning(f"Email from token for {user_id} already belongs to {owner.id}; not copied")
            email = None

    if user is None:
        user = models.User(id=user_id, full_name=full_name, email=email)
        db.add(user)
    else:
        if full_name and user.full_name != full_name:
            user.full_name = full_name
        if email and user.email != email:
            user.email = email

    if user in db.new or db.is_modified(user):
        try:
            db.commit()
        except IntegrityError as e:
            # Another request created the same user, or claimed the email in the meantime
            db.rollback()
            user = get_user(db, user_id)
            if user is None:
                raise EmailTaken(user_id=user_id) from e
        else:
            db.refresh(user)
            logger.info(f"Synchronised user {user_id} from identity provider")
    return user


def update_user(db: Session, user: models.User, update: schemas.UserUpdate) -> models.User:
    """Update profile fields. Phone numbers must be unique across users."""
    if update.phone_number is not None and update.phone_number != user.phone_number:
        existing = get_user_by_phone_number(db, update.phone_number)
        if existing and existing.id != user.id:
            raise PhoneNumberTaken(phone_number=update.phone_number)
        user.phone_number = update.phone_number

    if update.full_name is not None:
        user.full_name = update.full_name

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise PhoneNumberTaken(phone_number=update.phone_number)
    db.refresh(user)
    return user
