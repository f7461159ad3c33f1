"""Balances router: what the current user and one other user owe each other."""

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user
from utils import ledger
from utils.currency import DEFAULT_CURRENCY, is_supported_currency
from utils.display import get_user_display_name
from utils.users import get_user_or_404


router = APIRouter(tags=["balances"])


@router.get("/balances/{other_user_id}", response_model=schemas.PairBalance)
def get_pair_balance(
    other_user_id: str,
    current_user: Annotated[models.User, Depends(get_current_user)],
    currency: str = DEFAULT_CURRENCY,
    db: Session = Depends(get_db)
):
    if not is_supported_currency(currency):
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {currency}")
    other = get_user_or_404(db, other_user_id)

    balance = ledger.get_balance(db, current_user.id, other.id, currency)
    return schemas.PairBalance(
        user_id=other.id,
        full_name=get_user_display_name(other),
        currency=currency,
        owes=balance.owes.amount,
        owed_to=balance.owed_to.amount,
        net=balance.net.amount,
    )
