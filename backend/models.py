from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from database import Base
from utils.money import Money


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Subject id from the identity provider
    email = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String)
    phone_number = Column(String, unique=True, index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Friendship(Base):
    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendship_pair"),
        CheckConstraint("status IN ('pending', 'accepted', 'blocked')", name="ck_friendship_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)  # Requester
    friend_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)  # Recipient
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'settled', 'cancelled')", name="ck_bill_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    created_by_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    merchant_name = Column(String, nullable=False)
    currency = Column(String, nullable=False, default="INR")
    # Stored in minor units (paise/cents)
    subtotal = Column(Integer, nullable=False)
    tax = Column(Integer, nullable=False, default=0)
    tip = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="active")
    split_type = Column(String, nullable=False, default="EQUAL")  # EQUAL, BY_ITEM
    image_url = Column(String, nullable=True)
    ocr_data = Column(JSON, nullable=True)  # Raw extraction payload, kept for audit
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    items = relationship("BillItem", back_populates="bill", cascade="all, delete-orphan",
                         order_by="BillItem.position")
    participants = relationship("BillParticipant", back_populates="bill", cascade="all, delete-orphan",
                                order_by="BillParticipant.position")
    obligations = relationship("Obligation", back_populates="bill", cascade="all, delete-orphan",
                               order_by="Obligation.id")


class BillItem(Base):
    __tablename__ = "bill_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_bill_item_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    unit_price = Column(Integer, nullable=False)  # Minor units
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)

    bill = relationship("Bill", back_populates="items")
    splits = relationship("ExpenseSplit", back_populates="item", cascade="all, delete-orphan")

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


class BillParticipant(Base):
    __tablename__ = "bill_participants"
    __table_args__ = (
        UniqueConstraint("bill_id", "user_id", name="uq_bill_participant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    share_amount = Column(Integer, nullable=False)  # Minor units
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    position = Column(Integer, nullable=False, default=0)  # Insertion order, breaks rounding ties

    bill = relationship("Bill", back_populates="participants")


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"
    __table_args__ = (
        UniqueConstraint("bill_item_id", "user_id", name="uq_expense_split"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_item_id = Column(Integer, ForeignKey("bill_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    share_amount = Column(Integer, nullable=False)  # Minor units

    item = relationship("BillItem", back_populates="splits")


class Obligation(Base):
    """A directed debt: debtor owes creditor `amount` for a bill."""
    __tablename__ = "obligations"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'settled', 'cancelled')", name="ck_obligation_status"),
        CheckConstraint("amount > 0", name="ck_obligation_amount"),
        Index("ix_obligation_pair_status", "debtor_id", "creditor_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    debtor_id = Column(String, ForeignKey("users.id"), nullable=False)
    creditor_id = Column(String, ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)  # Minor units
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    settled_at = Column(DateTime, nullable=True)

    bill = relationship("Bill", back_populates="obligations")

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'failed')", name="ck_payment_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # References only: a payment neither owns nor outlives-and-deletes its bill
    bill_id = Column(Integer, nullable=False, index=True)
    payer_id = Column(String, nullable=False, index=True)
    payee_id = Column(String, nullable=False, index=True)
    obligation_id = Column(Integer, nullable=True, index=True)
    amount = Column(Integer, nullable=False)  # Minor units
    currency = Column(String, nullable=False)
    order_ref = Column(String, unique=True, nullable=False, index=True)  # Idempotency key
    payment_ref = Column(String, nullable=True)  # Gateway payment id
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)
