"""
Obligation ledger and the balance read model derived from it.

An obligation moves pending -> settled (verified payment) or
pending -> cancelled (bill cancelled). Nothing leaves settled or cancelled.
Balances are never stored: they are summed from pending obligations on
every read.

Functions here only flush; the caller owns the transaction and commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import models
from exceptions import AlreadySettled, AmountMismatch, CurrencyMismatch, NotFound, ObligationNotSettleable
from utils.currency import DEFAULT_CURRENCY
from utils.money import Money

logger = logging.getLogger(__name__)

PENDING = "pending"
SETTLED = "settled"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class PairBalance:
    """What user_a owes user_b and what user_b owes user_a, in one currency."""
    user_id: str
    other_user_id: str
    owes: Money
    owed_to: Money

    @property
    def net(self) -> Money:
        # Positive: the other user owes you. Negative: you owe them.
        return self.owed_to - self.owes


def record_obligation(
    db: Session,
    bill: models.Bill,
    debtor_id: str,
    creditor_id: str,
    amount: Money
) -> Optional[models.Obligation]:
    """Append a pending obligation. Zero amounts and self-debts are not recorded."""
    if amount.currency != bill.currency:
        raise CurrencyMismatch(bill_id=bill.id, bill_currency=bill.currency, currency=amount.currency)
    if debtor_id == creditor_id or amount.is_zero():
        return None
    if amount.amount < 0:
        raise ValueError("Obligation amount must be positive")

    obligation = models.Obligation(
        bill_id=bill.id,
        debtor_id=debtor_id,
        creditor_id=creditor_id,
        amount=amount.amount,
        currency=amount.currency,
        status=PENDING,
    )
    db.add(obligation)
    db.flush()
    return obligation


def get_obligation_or_404(db: Session, obligation_id: int) -> models.Obligation:
    obligation = db.query(models.Obligation).filter(models.Obligation.id == obligation_id).first()
    if not obligation:
        raise NotFound("Obligation not found", obligation_id=obligation_id)
    return obligation


def lock_bill(db: Session, bill_id: int) -> models.Bill:
    """
    Load a bill holding a row lock until the transaction ends.

    Writers that touch a bill and its obligations lock the bill first, then
    the obligations.
    """
    bill = (
        db.query(models.Bill)
        .filter(models.Bill.id == bill_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not bill:
        raise NotFound("Bill not found", bill_id=bill_id)
    return bill


def lock_obligation(db: Session, obligation_id: int) -> models.Obligation:
    """
    Load an obligation holding a row lock until the transaction ends.

    Must be called before any idempotency check on payments for it, and
    after lock_bill on its bill.
    """
    obligation = (
        db.query(models.Obligation)
        .filter(models.Obligation.id == obligation_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not obligation:
        raise NotFound("Obligation not found", obligation_id=obligation_id)
    return obligation


def find_pending_obligation(db: Session, bill_id: int, debtor_id: str, creditor_id: str):
    return db.query(models.Obligation).filter(
        models.Obligation.bill_id == bill_id,
        models.Obligation.debtor_id == debtor_id,
        models.Obligation.creditor_id == creditor_id,
    ).order_by(
        # Prefer a pending one, but surface settled/cancelled so callers get the right error
        (models.Obligation.status == PENDING).desc(),
        models.Obligation.id
    ).first()


def settle(db: Session, obligation: models.Obligation, payment: models.Payment) -> models.Obligation:
    """
    Mark an obligation settled by a completed payment.

    Raises:
        AlreadySettled: obligation is already settled
        ObligationNotSettleable: obligation was cancelled
        AmountMismatch: payment amount or currency differs from the obligation
    """
    if obligation.status == SETTLED:
        raise AlreadySettled(obligation_id=obligation.id, bill_id=obligation.bill_id)
    if obligation.status == CANCELLED:
        raise ObligationNotSettleable(
            "Obligation was cancelled and can no longer be settled",
            obligation_id=obligation.id,
            bill_id=obligation.bill_id,
        )
    if payment.amount != obligation.amount or payment.currency != obligation.currency:
        raise AmountMismatch(
            f"Payment of {payment.money} does not match obligation of {obligation.money}",
            obligation_id=obligation.id,
            expected_amount=obligation.amount,
            received_amount=payment.amount,
        )

    now = datetime.utcnow()
    obligation.status = SETTLED
    obligation.settled_at = now
    obligation.payment_id = payment.id

    participant = db.query(models.BillParticipant).filter(
        models.BillParticipant.bill_id == obligation.bill_id,
        models.BillParticipant.user_id == obligation.debtor_id
    ).first()
    if participant:
        participant.is_paid = True
        participant.paid_at = now

    db.flush()

    remaining = db.query(models.Obligation).filter(
        models.Obligation.bill_id == obligation.bill_id,
        models.Obligation.status == PENDING
    ).count()
    if remaining == 0:
        bill = db.query(models.Bill).filter(models.Bill.id == obligation.bill_id).first()
        if bill and bill.status == "active":
            bill.status = "settled"
            logger.info(f"Bill {bill.id} fully settled")

    logger.info(
        f"Obligation {obligation.id} settled by payment {payment.id} "
        f"({obligation.debtor_id} -> {obligation.creditor_id}, {obligation.money})"
    )
    db.flush()
    return obligation


def cancel_bill_obligations(db: Session, bill: models.Bill) -> list[models.Obligation]:
    """Cancel every pending obligation on a bill. Settled ones are left alone."""
    pending = (
        db.query(models.Obligation)
        .filter(models.Obligation.bill_id == bill.id, models.Obligation.status == PENDING)
        .with_for_update()
        .all()
    )
    for obligation in pending:
        obligation.status = CANCELLED
    db.flush()
    return pending


def _pending_total(db: Session, debtor_id: str, creditor_id: str, currency: str) -> int:
    total = db.query(func.coalesce(func.sum(models.Obligation.amount), 0)).filter(
        models.Obligation.debtor_id == debtor_id,
        models.Obligation.creditor_id == creditor_id,
        models.Obligation.currency == currency,
        models.Obligation.status == PENDING
    ).scalar()
    return int(total or 0)


def get_balance(db: Session, user_a: str, user_b: str, currency: str = DEFAULT_CURRENCY) -> PairBalance:
    """
    Net position between two users, from user_a's point of view.

    owes: pending obligations user_a -> user_b
    owed_to: pending obligations user_b -> user_a
    Settled and cancelled obligations never count.
    """
    return PairBalance(
        user_id=user_a,
        other_user_id=user_b,
        owes=Money(_pending_total(db, user_a, user_b, currency), currency),
        owed_to=Money(_pending_total(db, user_b, user_a, currency), currency),
    )


def get_user_balances(db: Session, user_id: str) -> list[PairBalance]:
    """Every non-zero pairwise balance for a user, one per (counterparty, currency)."""
    rows = db.query(
        models.Obligation.debtor_id,
        models.Obligation.creditor_id,
        models.Obligation.currency,
        func.sum(models.Obligation.amount)
    ).filter(
        models.Obligation.status == PENDING,
        (models.Obligation.debtor_id == user_id) | (models.Obligation.creditor_id == user_id)
    ).group_by(
        models.Obligation.debtor_id,
        models.Obligation.creditor_id,
        models.Obligation.currency
    ).all()

    owes = {}  # (other_id, currency) -> int
    owed = {}
    for debtor_id, creditor_id, currency, amount in rows:
        if debtor_id == user_id:
            key = (creditor_id, currency)
            owes[key] = owes.get(key, 0) + int(amount)
        else:
            key = (debtor_id, currency)
            owed[key] = owed.get(key, 0) + int(amount)

    balances = []
    for other_id, currency in sorted(set(owes) | set(owed)):
        balances.append(PairBalance(
            user_id=user_id,
            other_user_id=other_id,
            owes=Money(owes.get((other_id, currency), 0), currency),
            owed_to=Money(owed.get((other_id, currency), 0), currency),
        ))
    return balances


def get_user_totals(db: Session, user_id: str, currency: str = DEFAULT_CURRENCY) -> tuple[Money, Money]:
    """Total (owes, owed_to) for a user across all counterparties in one currency."""
    owes = Money.zero(currency)
    owed_to = Money.zero(currency)
    for balance in get_user_balances(db, user_id):
        if balance.owes.currency == currency:
            owes = owes + balance.owes
            owed_to = owed_to + balance.owed_to
    return owes, owed_to
