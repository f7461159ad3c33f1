"""Shared dependencies: authentication and the injected external collaborators."""

from functools import lru_cache
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

import models
import auth
from database import get_db
from ocr.service import OCRService
from payments.gateway import PaymentGateway, PAYMENT_GATEWAY_KEY_ID, PAYMENT_GATEWAY_KEY_SECRET
from utils.settlement import SettlementVerifier
from utils.users import upsert_user


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the user for a bearer token issued by the identity provider."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = auth.decode_access_token(token)
    except auth.JWTError:
        raise credentials_exception
    return upsert_user(db, claims)


@lru_cache()
def get_ocr_service() -> OCRService:
    """One Vision client per process, created on first use."""
    return OCRService()


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway(key_id=PAYMENT_GATEWAY_KEY_ID, key_secret=PAYMENT_GATEWAY_KEY_SECRET)


def get_settlement_verifier() -> SettlementVerifier:
    return SettlementVerifier(secret=PAYMENT_GATEWAY_KEY_SECRET)
