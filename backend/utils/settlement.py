"""
Settlement verification: turn a signed gateway confirmation into a settled obligation.

The signature is an HMAC-SHA256 over the confirmation's canonical fields,
sorted by name and joined with '|', keyed with the shared gateway secret.
The payment row and the obligation move together in one transaction, and
the obligation row is locked before the order reference is checked for a
previous completion.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

import models
import schemas
from exceptions import (
    ConfirmationMismatch, InvalidSignature, NotFound, PaymentNotPending, StorageUnavailable
)
from utils import ledger

logger = logging.getLogger(__name__)

def canonical_fields(confirmation: schemas.PaymentConfirmation) -> dict[str, str]:
    """Field set covered by the signature, keyed by wire name."""
    return {
        "amount": str(confirmation.amount),
        "billId": str(confirmation.bill_id),
        "orderRef": confirmation.order_ref,
        "payeeId": confirmation.payee_id,
        "payerId": confirmation.payer_id,
        "paymentRef": confirmation.payment_ref,
    }


def sign(fields: Mapping[str, str], secret: str) -> str:
    """
    Compute the hex HMAC-SHA256 signature for a set of fields.

    Field order does not matter: names are sorted before their values are
    joined, exactly as the gateway does when it signs.
    """
    message = "|".join(str(fields[name]) for name in sorted(fields))
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class SettlementResult:
    payment: models.Payment
    obligation: models.Obligation
    duplicate: bool = False


class SettlementVerifier:
    """Validates gateway confirmations and applies them to the ledger at most once."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("A gateway secret is required to verify payments")
        self.secret = secret

    def check_signature(self, confirmation: schemas.PaymentConfirmation) -> None:
        expected = sign(canonical_fields(confirmation), self.secret)
        if not hmac.compare_digest(expected.encode("utf-8"), confirmation.signature.encode("utf-8")):
            logger.warning(
                f"SECURITY: rejected payment confirmation with invalid signature "
                f"(order_ref={confirmation.order_ref}, bill_id={confirmation.bill_id}, "
                f"payer_id={confirmation.payer_id}, payee_id={confirmation.payee_id})"
            )
            raise InvalidSignature(order_ref=confirmation.order_ref, bill_id=confirmation.bill_id)

    def verify(self, db: Session, confirmation: schemas.PaymentConfirmation) -> SettlementResult:
        """
        Verify a confirmation and settle its obligation.

        Returns a SettlementResult; duplicate=True means the order reference
        had already completed and nothing was changed.

        Raises:
            InvalidSignature: signature mismatch (never retried)
            ObligationNotSettleable / AlreadySettled / AmountMismatch: ledger conflicts
            StorageUnavailable: lock wait or store timeout, safe to retry
        """
        self.check_signature(confirmation)

        try:
            result = self._apply(db, confirmation)
            db.commit()
        except IntegrityError:
            # Another writer inserted the same order_ref between our check and flush
            db.rollback()
            existing = self._find_payment(db, confirmation.order_ref)
            if existing is not None and existing.status == "completed":
                logger.warning(f"Duplicate payment confirmation for order {confirmation.order_ref} (lost race)")
                obligation = ledger.get_obligation_or_404(db, existing.obligation_id)
                return SettlementResult(payment=existing, obligation=obligation, duplicate=True)
            raise StorageUnavailable("Concurrent update detected. Please retry.", order_ref=confirmation.order_ref)
        except OperationalError as e:
            db.rollback()
            logger.error(f"Storage unavailable while settling order {confirmation.order_ref}: {e}")
            raise StorageUnavailable(order_ref=confirmation.order_ref) from e
        except Exception:
            db.rollback()
            raise

        if not result.duplicate:
            db.refresh(result.payment)
            db.refresh(result.obligation)
        return result

    def _find_payment(self, db: Session, order_ref: str, lock: bool = False):
        query = db.query(models.Payment).filter(models.Payment.order_ref == order_ref)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def _apply(self, db: Session, confirmation: schemas.PaymentConfirmation) -> SettlementResult:
        payment = self._find_payment(db, confirmation.order_ref)

        if payment is not None and payment.obligation_id is not None:
            obligation_id = payment.obligation_id
            bill_id = payment.bill_id
        else:
            found = ledger.find_pending_obligation(
                db, confirmation.bill_id, confirmation.payer_id, confirmation.payee_id
            )
            if found is None:
                raise NotFound(
                    "No obligation matches this payment confirmation",
                    order_ref=confirmation.order_ref,
                    bill_id=confirmation.bill_id,
                )
            obligation_id = found.id
            bill_id = found.bill_id

        # Same lock order as cancel_bill: bill, then obligation, then the idempotency check
        ledger.lock_bill(db, bill_id)
        obligation = ledger.lock_obligation(db, obligation_id)
        payment = self._find_payment(db, confirmation.order_ref, lock=True)

        if payment is not None and payment.status == "completed":
            logger.warning(f"Duplicate payment confirmation for order {confirmation.order_ref}; no changes applied")
            return SettlementResult(payment=payment, obligation=obligation, duplicate=True)

        if payment is not None and payment.status == "failed":
            raise PaymentNotPending(
                "Payment was already marked failed",
                order_ref=confirmation.order_ref,
                payment_id=payment.id,
            )

        if (obligation.bill_id != confirmation.bill_id
                or obligation.debtor_id != confirmation.payer_id
                or obligation.creditor_id != confirmation.payee_id):
            raise ConfirmationMismatch(
                order_ref=confirmation.order_ref,
                obligation_id=obligation.id,
                bill_id=confirmation.bill_id,
            )

        if payment is None:
            payment = models.Payment(
                bill_id=confirmation.bill_id,
                payer_id=confirmation.payer_id,
                payee_id=confirmation.payee_id,
                obligation_id=obligation.id,
                amount=confirmation.amount,
                currency=obligation.currency,
                order_ref=confirmation.order_ref,
                status="pending",
            )
            db.add(payment)
        elif payment.amount != confirmation.amount:
            raise ConfirmationMismatch(
                "Confirmed amount differs from the ordered amount",
                order_ref=confirmation.order_ref,
                expected_amount=payment.amount,
                received_amount=confirmation.amount,
            )

        payment.status = "completed"
        payment.payment_ref = confirmation.payment_ref
        payment.completed_at = datetime.utcnow()
        db.flush()

        ledger.settle(db, obligation, payment)
        logger.info(f"Payment {payment.id} (order {payment.order_ref}) completed for obligation {obligation.id}")
        return SettlementResult(payment=payment, obligation=obligation)


def mark_payment_failed(db: Session, order_ref: str, user_id: str) -> models.Payment:
    """Move a pending payment to failed after the gateway reports a failure."""
    try:
        payment = db.query(models.Payment).filter(
            models.Payment.order_ref == order_ref
        ).with_for_update().first()
        if not payment or user_id not in (payment.payer_id, payment.payee_id):
            raise NotFound("Payment not found", order_ref=order_ref)
        if payment.status != "pending":
            raise PaymentNotPending(order_ref=order_ref, payment_id=payment.id, status=payment.status)

        payment.status = "failed"
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable(order_ref=order_ref) from e
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info(f"Payment {payment.id} (order {order_ref}) marked failed")
    return payment


def find_pending_payment(db: Session, obligation_id: int):
    """The open gateway order for an obligation, if one exists."""
    return db.query(models.Payment).filter(
        models.Payment.obligation_id == obligation_id,
        models.Payment.status == "pending"
    ).order_by(models.Payment.id).first()


def create_pending_payment(
    db: Session,
    obligation: models.Obligation,
    order_ref: str
) -> models.Payment:
    """Record the pending payment for a freshly created gateway order. Caller commits."""
    payment = models.Payment(
        bill_id=obligation.bill_id,
        payer_id=obligation.debtor_id,
        payee_id=obligation.creditor_id,
        obligation_id=obligation.id,
        amount=obligation.amount,
        currency=obligation.currency,
        order_ref=order_ref,
        status="pending",
    )
    db.add(payment)
    db.flush()
    return payment
