"""
Friend relationships.

A friendship row is directed (requester -> recipient). Accepting writes the
requester's row and the reciprocal row in the same transaction, so an
accepted friendship is always visible from both sides or from neither.
"""

import logging
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

import models
import schemas
from exceptions import FriendshipExists, InvalidFriendRequest, NotFound, StorageUnavailable
from utils.users import get_user_or_404

logger = logging.getLogger(__name__)


def _get_row(db: Session, user_id: str, friend_id: str, lock: bool = False):
    query = db.query(models.Friendship).filter(
        models.Friendship.user_id == user_id,
        models.Friendship.friend_id == friend_id
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def _commit(db: Session, **identifiers):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise FriendshipExists(**identifiers) from e
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable(**identifiers) from e


def _accept(db: Session, request_row: models.Friendship) -> models.Friendship:
    """Mark a pending request accepted and upsert the reciprocal row. Caller commits."""
    request_row.status = "accepted"
    reciprocal = _get_row(db, request_row.friend_id, request_row.user_id, lock=True)
    if reciprocal is None:
        reciprocal = models.Friendship(
            user_id=request_row.friend_id,
            friend_id=request_row.user_id,
            status="accepted"
        )
        db.add(reciprocal)
    else:
        reciprocal.status = "accepted"
    db.flush()
    return reciprocal


def send_request(db: Session, user: models.User, friend_id: str) -> models.Friendship:
    """
    Send a friend request.

    If the other user already has a pending request to us, this accepts it.
    """
    if friend_id == user.id:
        raise InvalidFriendRequest("Cannot add yourself as friend", friend_id=friend_id)
    get_user_or_404(db, friend_id)

    try:
        mine = _get_row(db, user.id, friend_id, lock=True)
        theirs = _get_row(db, friend_id, user.id, lock=True)

        if (mine and mine.status == "blocked") or (theirs and theirs.status == "blocked"):
            raise InvalidFriendRequest("Cannot send a friend request to this user", friend_id=friend_id)
        if mine:
            raise FriendshipExists(
                "Already friends" if mine.status == "accepted" else "Friend request already sent",
                friend_id=friend_id,
                status=mine.status,
            )

        if theirs and theirs.status == "pending":
            row = _accept(db, theirs)
            logger.info(f"Mutual friend request between {user.id} and {friend_id}; accepted")
        else:
            row = models.Friendship(user_id=user.id, friend_id=friend_id, status="pending")
            db.add(row)
            db.flush()
    except (FriendshipExists, InvalidFriendRequest):
        db.rollback()
        raise

    _commit(db, friend_id=friend_id)
    db.refresh(row)
    return row


def accept_request(db: Session, user: models.User, requester_id: str) -> models.Friendship:
    """Accept a pending request from requester_id; both directions become accepted atomically."""
    request_row = _get_row(db, requester_id, user.id, lock=True)
    if not request_row or request_row.status != "pending":
        db.rollback()
        raise NotFound("No pending friend request from this user", requester_id=requester_id)

    reciprocal = _accept(db, request_row)
    _commit(db, requester_id=requester_id)
    db.refresh(reciprocal)
    logger.info(f"{user.id} accepted friend request from {requester_id}")
    return reciprocal


def block_user(db: Session, user: models.User, other_id: str) -> models.Friendship:
    """
    Block another user.

    Our row becomes blocked and theirs is removed, so neither side can see an
    accepted friendship and the other user cannot send new requests.
    """
    if other_id == user.id:
        raise InvalidFriendRequest("Cannot block yourself", friend_id=other_id)
    get_user_or_404(db, other_id)

    mine = _get_row(db, user.id, other_id, lock=True)
    theirs = _get_row(db, other_id, user.id, lock=True)

    if mine is None:
        mine = models.Friendship(user_id=user.id, friend_id=other_id, status="blocked")
        db.add(mine)
    else:
        mine.status = "blocked"
    if theirs is not None:
        db.delete(theirs)

    _commit(db, friend_id=other_id)
    db.refresh(mine)
    logger.info(f"{user.id} blocked {other_id}")
    return mine


def list_friends(db: Session, user_id: str) -> list[schemas.FriendWithUser]:
    rows = db.query(models.Friendship, models.User).join(
        models.User, models.Friendship.friend_id == models.User.id
    ).filter(
        models.Friendship.user_id == user_id,
        models.Friendship.status == "accepted"
    ).order_by(models.Friendship.id).all()

    return [
        schemas.FriendWithUser(
            id=f.id,
            user_id=f.user_id,
            friend_id=f.friend_id,
            status=f.status,
            created_at=f.created_at,
            friend=schemas.User.model_validate(u),
        )
        for f, u in rows
    ]


def list_pending_requests(db: Session, user_id: str) -> list[schemas.FriendRequestWithUser]:
    """Incoming requests waiting for this user's answer."""
    rows = db.query(models.Friendship, models.User).join(
        models.User, models.Friendship.user_id == models.User.id
    ).filter(
        models.Friendship.friend_id == user_id,
        models.Friendship.status == "pending"
    ).order_by(models.Friendship.id).all()

    return [
        schemas.FriendRequestWithUser(
            id=f.id,
            user_id=f.user_id,
            friend_id=f.friend_id,
            status=f.status,
            created_at=f.created_at,
            user=schemas.User.model_validate(u),
        )
        for f, u in rows
    ]
