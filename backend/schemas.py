from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional

from utils.currency import DEFAULT_CURRENCY, is_supported_currency


SPLIT_TYPES = ["EQUAL", "BY_ITEM"]


def _validate_currency(v):
    if not is_supported_currency(v):
        raise ValueError(f'Unsupported currency: {v}')
    return v


class User(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None:
            return v
        digits = v.replace(" ", "").replace("-", "")
        if not digits.lstrip("+").isdigit() or not 7 <= len(digits.lstrip("+")) <= 15:
            raise ValueError('Phone number must contain 7-15 digits')
        return digits


# Friends
class FriendRequest(BaseModel):
    friend_id: str

class Friendship(BaseModel):
    id: int
    user_id: str
    friend_id: str
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FriendWithUser(Friendship):
    friend: User

class FriendRequestWithUser(Friendship):
    user: User


# Bills
class ItemAssignment(BaseModel):
    user_id: str
    weight: int = Field(default=1, ge=1)

class BillItemCreate(BaseModel):
    name: str
    unit_price: int  # In minor units
    quantity: int = 1
    assignments: list[ItemAssignment] = []  # Only for BY_ITEM split type

class BillCreate(BaseModel):
    merchant_name: str
    currency: str = DEFAULT_CURRENCY
    items: list[BillItemCreate]
    tax: int = 0
    tip: int = 0
    total: Optional[int] = None  # Printed total; checked against subtotal + tax + tip
    participant_ids: list[str] = []
    split_type: str = "EQUAL"  # EQUAL, BY_ITEM
    image_url: Optional[str] = None
    ocr_data: Optional[dict[str, Any]] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        return _validate_currency(v)

    @field_validator('split_type')
    @classmethod
    def validate_split_type(cls, v):
        if v not in SPLIT_TYPES:
            raise ValueError(f'Split type must be one of {SPLIT_TYPES}')
        return v

class BillItem(BaseModel):
    id: int
    name: str
    unit_price: int
    quantity: int
    line_total: int

    class Config:
        from_attributes = True

class ExpenseSplit(BaseModel):
    bill_item_id: int
    user_id: str
    share_amount: int

    class Config:
        from_attributes = True

class BillParticipant(BaseModel):
    id: int
    user_id: str
    share_amount: int
    is_paid: bool
    paid_at: Optional[datetime] = None
    user_name: Optional[str] = None

    class Config:
        from_attributes = True

class Obligation(BaseModel):
    id: int
    bill_id: int
    debtor_id: str
    creditor_id: str
    amount: int
    currency: str
    status: str
    payment_id: Optional[int] = None
    settled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Bill(BaseModel):
    id: int
    created_by_id: str
    merchant_name: str
    currency: str
    subtotal: int
    tax: int
    tip: int
    total: int
    status: str
    split_type: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BillWithDetails(Bill):
    items: list[BillItem] = []
    participants: list[BillParticipant] = []
    splits: list[ExpenseSplit] = []  # Only populated for BY_ITEM bills
    obligations: list[Obligation] = []
    ocr_data: Optional[dict[str, Any]] = None


# OCR extraction
class ExtractedItem(BaseModel):
    name: str
    unit_price: int
    quantity: int = 1

class ExtractedBill(BaseModel):
    merchant_name: str
    currency: str = DEFAULT_CURRENCY
    items: list[ExtractedItem]
    subtotal: int
    tax: int = 0
    tip: int = 0
    total: int
    raw_text: Optional[str] = None


# Balances
class PairBalance(BaseModel):
    """Balance between the current user and one other user in one currency."""
    user_id: str
    full_name: Optional[str] = None
    currency: str
    owes: int  # You owe them
    owed_to: int  # They owe you
    net: int  # Positive means you are owed, negative means you owe

class BalanceSummary(BaseModel):
    currency: str
    owes: int
    owed: int
    balances: list[PairBalance] = []


# Payments
class PaymentOrderCreate(BaseModel):
    obligation_id: int

class PaymentOrder(BaseModel):
    order_ref: str
    payment_id: int
    obligation_id: int
    amount: int
    currency: str
    key_id: Optional[str] = None  # Public gateway key for the checkout widget

class PaymentConfirmation(BaseModel):
    """Callback payload delivered by the payment gateway."""
    order_ref: str = Field(alias="orderRef")
    payment_ref: str = Field(alias="paymentRef")
    signature: str
    amount: int  # Minor units
    bill_id: int = Field(alias="billId")
    payer_id: str = Field(alias="payerId")
    payee_id: str = Field(alias="payeeId")

    class Config:
        populate_by_name = True

class Payment(BaseModel):
    id: int
    bill_id: int
    payer_id: str
    payee_id: str
    obligation_id: Optional[int] = None
    amount: int
    currency: str
    order_ref: str
    payment_ref: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SettlementResponse(BaseModel):
    message: str
    duplicate: bool = False
    payment: Payment
