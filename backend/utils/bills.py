"""
Bill aggregate: a bill with its items, participants, splits and obligations.

create_bill validates everything and computes every share before the first
write, then persists the whole aggregate in one transaction. A failure at
any point leaves no bill behind.
"""

import logging
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

import models
import schemas
from exceptions import (
    BillNotCancellable, Forbidden, InvalidBill, InvalidItem, InvalidTotals,
    NotFound, StorageUnavailable, UnknownParticipant
)
from utils import ledger
from utils.display import get_user_display_name
from utils.money import Money
from utils.splits import ByItem, Equal, ItemShare, SplitBill, SplitItem, compute_item_splits, compute_shares

logger = logging.getLogger(__name__)

# Allowed difference between the printed total and subtotal + tax + tip
TOTAL_TOLERANCE = 1


def build_split_bill(bill_in: schemas.BillCreate) -> SplitBill:
    """Validate bill input and convert it to Money values for the split engine."""
    currency = bill_in.currency

    if not bill_in.merchant_name or not bill_in.merchant_name.strip():
        raise InvalidBill("Merchant name is required", field="merchant_name")
    if not bill_in.items:
        raise InvalidBill("A bill needs at least one item", field="items")

    items = []
    for idx, item in enumerate(bill_in.items):
        if not item.name or not item.name.strip():
            raise InvalidItem(f"Item {idx + 1} has no name", item_index=idx)
        if item.unit_price < 0:
            raise InvalidItem(f"Item '{item.name}' has a negative price", item_index=idx)
        if item.quantity < 1:
            raise InvalidItem(f"Item '{item.name}' must have a quantity of at least 1", item_index=idx)
        items.append(SplitItem(name=item.name.strip(), unit_price=Money(item.unit_price, currency),
                               quantity=item.quantity))

    if bill_in.tax < 0 or bill_in.tip < 0:
        raise InvalidTotals("Tax and tip cannot be negative", tax=bill_in.tax, tip=bill_in.tip)

    split_bill = SplitBill(
        currency=currency,
        items=items,
        tax=Money(bill_in.tax, currency),
        tip=Money(bill_in.tip, currency),
    )

    if bill_in.total is not None:
        if bill_in.total < 0:
            raise InvalidTotals("Total cannot be negative", total=bill_in.total)
        expected = split_bill.total.amount
        if abs(bill_in.total - expected) > TOTAL_TOLERANCE:
            raise InvalidTotals(
                f"Total {bill_in.total} does not equal subtotal {split_bill.subtotal.amount} "
                f"+ tax {bill_in.tax} + tip {bill_in.tip}",
                subtotal=split_bill.subtotal.amount,
                tax=bill_in.tax,
                tip=bill_in.tip,
                total=bill_in.total,
            )
        split_bill = SplitBill(
            currency=currency,
            items=items,
            tax=split_bill.tax,
            tip=split_bill.tip,
            total=Money(bill_in.total, currency),
        )

    return split_bill


def resolve_participants(db: Session, creator: models.User, participant_ids: list[str]) -> list[str]:
    """Creator first, then explicitly added participants in order, without duplicates."""
    ordered = [creator.id]
    for user_id in participant_ids:
        if user_id not in ordered:
            ordered.append(user_id)

    others = ordered[1:]
    if others:
        found = {
            row.id for row in db.query(models.User.id).filter(models.User.id.in_(others)).all()
        }
        for user_id in others:
            if user_id not in found:
                raise UnknownParticipant(f"User {user_id} not found", user_id=user_id)
    return ordered


def build_strategy(bill_in: schemas.BillCreate):
    if bill_in.split_type == "BY_ITEM":
        return ByItem(assignments={
            idx: [ItemShare(participant=a.user_id, weight=a.weight) for a in item.assignments]
            for idx, item in enumerate(bill_in.items)
        })
    return Equal()


def create_bill(db: Session, creator: models.User, bill_in: schemas.BillCreate) -> models.Bill:
    """
    Create a bill, its items and participants, and the obligations they imply.

    Each participant other than the creator owes the creator their share.

    Raises:
        InvalidBill / InvalidItem / InvalidTotals: bad input, nothing written
        EmptyParticipantSet / UnassignedItem / UnknownParticipant: bad split, nothing written
        StorageUnavailable: store timed out, transaction rolled back
    """
    split_bill = build_split_bill(bill_in)
    participants = resolve_participants(db, creator, bill_in.participant_ids)
    strategy = build_strategy(bill_in)

    shares = compute_shares(split_bill, participants, strategy)
    item_splits = compute_item_splits(split_bill, participants, strategy) if isinstance(strategy, ByItem) else {}

    try:
        db_bill = models.Bill(
            created_by_id=creator.id,
            merchant_name=bill_in.merchant_name.strip(),
            currency=split_bill.currency,
            subtotal=split_bill.subtotal.amount,
            tax=split_bill.tax.amount,
            tip=split_bill.tip.amount,
            total=split_bill.total.amount,
            status="active",
            split_type=bill_in.split_type,
            image_url=bill_in.image_url,
            ocr_data=bill_in.ocr_data,
        )
        db.add(db_bill)
        db.flush()

        for idx, item in enumerate(split_bill.items):
            db_item = models.BillItem(
                bill_id=db_bill.id,
                name=item.name,
                unit_price=item.unit_price.amount,
                quantity=item.quantity,
                position=idx,
            )
            db.add(db_item)
            db.flush()

            # Several weighted entries for one user on one item collapse into a single row
            per_user = {}
            for user_id, amount in item_splits.get(idx, []):
                per_user[user_id] = per_user.get(user_id, 0) + amount.amount
            for user_id, amount in per_user.items():
                db.add(models.ExpenseSplit(bill_item_id=db_item.id, user_id=user_id, share_amount=amount))

        for position, (user_id, share) in enumerate(shares):
            db.add(models.BillParticipant(
                bill_id=db_bill.id,
                user_id=user_id,
                share_amount=share.amount,
                # The creator paid the merchant, so their own share is already covered
                is_paid=(user_id == creator.id),
                position=position,
            ))
        db.flush()

        for user_id, share in shares:
            ledger.record_obligation(db, db_bill, debtor_id=user_id, creditor_id=creator.id, amount=share)

        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.error(f"Storage unavailable while creating bill for {creator.id}: {e}")
        raise StorageUnavailable() from e
    except Exception:
        db.rollback()
        raise

    db.refresh(db_bill)
    logger.info(
        f"Bill {db_bill.id} created by {creator.id}: {split_bill.total} across "
        f"{len(participants)} participant(s), split {bill_in.split_type}"
    )
    return db_bill


def get_bill_or_404(db: Session, bill_id: int) -> models.Bill:
    bill = db.query(models.Bill).filter(models.Bill.id == bill_id).first()
    if not bill:
        raise NotFound("Bill not found", bill_id=bill_id)
    return bill


def verify_bill_access(db: Session, bill: models.Bill, user_id: str) -> None:
    """Only the creator and the bill's participants may see a bill."""
    if bill.created_by_id == user_id:
        return
    participant = db.query(models.BillParticipant).filter(
        models.BillParticipant.bill_id == bill.id,
        models.BillParticipant.user_id == user_id
    ).first()
    if not participant:
        raise Forbidden("You don't have access to this bill", bill_id=bill.id)


def list_user_bills(db: Session, user_id: str) -> list[models.Bill]:
    """Bills the user created or participates in, newest first."""
    subquery = db.query(models.BillParticipant.bill_id).filter(
        models.BillParticipant.user_id == user_id
    ).subquery()

    return db.query(models.Bill).filter(
        (models.Bill.created_by_id == user_id) |
        (models.Bill.id.in_(subquery.select()))
    ).order_by(models.Bill.created_at.desc(), models.Bill.id.desc()).all()


def cancel_bill(db: Session, bill_id: int, user: models.User) -> models.Bill:
    """
    Cancel a bill and all of its pending obligations in one transaction.

    Payment confirmations that arrive later fail with ObligationNotSettleable.
    """
    try:
        bill = ledger.lock_bill(db, bill_id)
        if bill.created_by_id != user.id:
            raise Forbidden("Only the bill creator can cancel this bill", bill_id=bill_id)
        if bill.status != "active":
            raise BillNotCancellable(f"Bill is already {bill.status}", bill_id=bill_id, status=bill.status)

        bill.status = "cancelled"
        cancelled = ledger.cancel_bill_obligations(db, bill)
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable(bill_id=bill_id) from e
    except Exception:
        db.rollback()
        raise

    db.refresh(bill)
    logger.info(f"Bill {bill_id} cancelled by {user.id}; {len(cancelled)} pending obligation(s) cancelled")
    return bill


def get_bill_details(db: Session, bill: models.Bill) -> schemas.BillWithDetails:
    """Build the detail view: items, participants with names, splits and obligations."""
    user_ids = [p.user_id for p in bill.participants]
    users = {
        u.id: u for u in db.query(models.User).filter(models.User.id.in_(user_ids)).all()
    } if user_ids else {}

    participants = [
        schemas.BillParticipant(
            id=p.id,
            user_id=p.user_id,
            share_amount=p.share_amount,
            is_paid=p.is_paid,
            paid_at=p.paid_at,
            user_name=get_user_display_name(users.get(p.user_id)),
        )
        for p in bill.participants
    ]

    splits = []
    if bill.split_type == "BY_ITEM":
        for item in bill.items:
            splits.extend(schemas.ExpenseSplit.model_validate(s) for s in item.splits)

    return schemas.BillWithDetails(
        id=bill.id,
        created_by_id=bill.created_by_id,
        merchant_name=bill.merchant_name,
        currency=bill.currency,
        subtotal=bill.subtotal,
        tax=bill.tax,
        tip=bill.tip,
        total=bill.total,
        status=bill.status,
        split_type=bill.split_type,
        image_url=bill.image_url,
        created_at=bill.created_at,
        items=[schemas.BillItem.model_validate(item) for item in bill.items],
        participants=participants,
        splits=splits,
        obligations=[schemas.Obligation.model_validate(o) for o in bill.obligations],
        ocr_data=bill.ocr_data,
    )
