"""Users router: current user, phone number, friend lookup, balance summary."""

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils import ledger
from utils.currency import DEFAULT_CURRENCY
from utils.display import get_user_display_names
from utils.users import get_user_by_phone_number, update_user


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.User)
def read_me(current_user: Annotated[models.User, Depends(get_current_user)]):
    return current_user


@router.patch("/me", response_model=schemas.User)
def update_me(
    update: schemas.UserUpdate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return update_user(db, current_user, update)


@router.get("/search/{phone_number}", response_model=schemas.User)
def search_by_phone_number(
    phone_number: str,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    user = get_user_by_phone_number(db, phone_number)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/balance", response_model=schemas.BalanceSummary)
def read_balance_summary(
    current_user: Annotated[models.User, Depends(get_current_user)],
    currency: str = DEFAULT_CURRENCY,
    db: Session = Depends(get_db)
):
    """Totals the current user owes and is owed, plus the per-friend breakdown."""
    balances = [b for b in ledger.get_user_balances(db, current_user.id) if b.owes.currency == currency]
    names = get_user_display_names(db, [b.other_user_id for b in balances])
    owes, owed = ledger.get_user_totals(db, current_user.id, currency)

    return schemas.BalanceSummary(
        currency=currency,
        owes=owes.amount,
        owed=owed.amount,
        balances=[
            schemas.PairBalance(
                user_id=b.other_user_id,
                full_name=names[b.other_user_id],
                currency=currency,
                owes=b.owes.amount,
                owed_to=b.owed_to.amount,
                net=b.net.amount,
            )
            for b in balances
        ],
    )
