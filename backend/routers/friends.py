"""Friends router: manage friend relationships."""

from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils import friends


router = APIRouter(prefix="/friends", tags=["friends"])


@router.post("", response_model=schemas.Friendship)
def add_friend(
    friend_request: schemas.FriendRequest,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return friends.send_request(db, current_user, friend_request.friend_id)


@router.get("", response_model=list[schemas.FriendWithUser])
def read_friends(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return friends.list_friends(db, current_user.id)


@router.get("/requests", response_model=list[schemas.FriendRequestWithUser])
def read_friend_requests(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return friends.list_pending_requests(db, current_user.id)


@router.post("/{friend_id}/accept", response_model=schemas.Friendship)
def accept_friend_request(
    friend_id: str,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return friends.accept_request(db, current_user, friend_id)


@router.post("/{friend_id}/block", response_model=schemas.Friendship)
def block_friend(
    friend_id: str,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return friends.block_user(db, current_user, friend_id)
