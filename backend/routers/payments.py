"""Payments router: gateway orders, signed confirmations and payment history."""

from typing import Annotated
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user, get_payment_gateway, get_settlement_verifier
from exceptions import Forbidden, ObligationNotSettleable, StorageUnavailable
from payments.gateway import PaymentGateway, make_receipt
from utils import ledger
from utils.rate_limiter import payment_rate_limiter
from utils.settlement import (
    SettlementVerifier, create_pending_payment, find_pending_payment, mark_payment_failed
)

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/payments", tags=["payments"])


def order_response(payment: models.Payment, gateway: PaymentGateway) -> schemas.PaymentOrder:
    return schemas.PaymentOrder(
        order_ref=payment.order_ref,
        payment_id=payment.id,
        obligation_id=payment.obligation_id,
        amount=payment.amount,
        currency=payment.currency,
        key_id=gateway.key_id,
    )


@router.post("/orders", response_model=schemas.PaymentOrder, dependencies=[Depends(payment_rate_limiter)])
def create_payment_order(
    order_in: schemas.PaymentOrderCreate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    db: Session = Depends(get_db)
):
    """
    Open a gateway order for one of the current user's pending obligations.

    Only the debtor may pay. The payment is recorded as pending until the
    gateway's signed confirmation arrives at /payments/verify. While an order
    is still pending, repeated calls return that order instead of opening a
    second one.
    """
    obligation = ledger.get_obligation_or_404(db, order_in.obligation_id)
    if obligation.debtor_id != current_user.id:
        raise Forbidden("Only the debtor can pay this obligation", obligation_id=obligation.id)
    if obligation.status != ledger.PENDING:
        raise ObligationNotSettleable(
            f"Obligation is {obligation.status}", obligation_id=obligation.id, status=obligation.status
        )

    existing = find_pending_payment(db, obligation.id)
    if existing is not None:
        logger.info(f"Reusing pending order {existing.order_ref} for obligation {obligation.id}")
        return order_response(existing, gateway)

    order = gateway.create_order(
        obligation.money,
        receipt=make_receipt(obligation.bill_id, obligation.id),
        notes={
            "bill_id": str(obligation.bill_id),
            "payer_id": obligation.debtor_id,
            "payee_id": obligation.creditor_id,
        },
    )

    try:
        # Re-check under the locks: the bill may have been cancelled, or another
        # request may have opened an order, while the gateway call ran
        ledger.lock_bill(db, obligation.bill_id)
        obligation = ledger.lock_obligation(db, obligation.id)
        if obligation.status != ledger.PENDING:
            raise ObligationNotSettleable(
                f"Obligation is {obligation.status}", obligation_id=obligation.id, status=obligation.status
            )
        payment = find_pending_payment(db, obligation.id)
        if payment is not None:
            logger.warning(
                f"Gateway order {order['id']} abandoned; obligation {obligation.id} "
                f"already has pending order {payment.order_ref}"
            )
        else:
            payment = create_pending_payment(db, obligation, order["id"])
        db.commit()
    except (IntegrityError, OperationalError) as e:
        db.rollback()
        logger.error(f"Failed to record payment for order {order['id']}: {e}")
        raise StorageUnavailable(order_ref=order["id"]) from e
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    return order_response(payment, gateway)


@router.post("/verify", response_model=schemas.SettlementResponse, dependencies=[Depends(payment_rate_limiter)])
def verify_payment(
    confirmation: schemas.PaymentConfirmation,
    current_user: Annotated[models.User, Depends(get_current_user)],
    verifier: Annotated[SettlementVerifier, Depends(get_settlement_verifier)],
    db: Session = Depends(get_db)
):
    """
    Apply a signed payment confirmation.

    A repeated confirmation for an order that already completed is answered
    with duplicate=True and changes nothing.
    """
    if current_user.id not in (confirmation.payer_id, confirmation.payee_id):
        raise Forbidden("You are not a party to this payment", order_ref=confirmation.order_ref)

    result = verifier.verify(db, confirmation)
    message = "Payment already processed" if result.duplicate else "Payment verified and obligation settled"
    return schemas.SettlementResponse(
        message=message,
        duplicate=result.duplicate,
        payment=schemas.Payment.model_validate(result.payment),
    )


@router.post("/{order_ref}/fail", response_model=schemas.Payment)
def fail_payment(
    order_ref: str,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return mark_payment_failed(db, order_ref, current_user.id)


@router.get("", response_model=list[schemas.Payment])
def read_payments(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return db.query(models.Payment).filter(
        (models.Payment.payer_id == current_user.id) | (models.Payment.payee_id == current_user.id)
    ).order_by(models.Payment.created_at.desc(), models.Payment.id.desc()).all()
