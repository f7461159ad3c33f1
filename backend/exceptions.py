"""
Domain exceptions for the ledger and settlement core.

Every error carries a kind (validation, conflict, integrity, transient,
not_found, forbidden), a stable code, and the identifiers needed to render a
precise message. Routers do not catch these; the handler in main.py turns
them into HTTP responses.
"""

VALIDATION = "validation"
CONFLICT = "conflict"
INTEGRITY = "integrity"
TRANSIENT = "transient"
NOT_FOUND = "not_found"
FORBIDDEN = "forbidden"


class LedgerError(Exception):
    """Base exception for all ledger core errors."""
    kind = VALIDATION
    code = "ledger_error"
    status_code = 400
    default_detail = "Request could not be processed."

    def __init__(self, detail: str = None, **identifiers):
        self.detail = detail or self.default_detail
        self.identifiers = identifiers
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            "detail": self.detail,
            "code": self.code,
            "kind": self.kind,
            **self.identifiers,
        }


# Validation

class ValidationError(LedgerError):
    kind = VALIDATION
    status_code = 400


class CurrencyMismatch(ValidationError):
    """Raised when Money operands carry different currencies."""
    code = "currency_mismatch"
    default_detail = "Amounts are in different currencies."


class InvalidTotals(ValidationError):
    """Raised when total != subtotal + tax + tip beyond one minor unit."""
    code = "invalid_totals"
    default_detail = "Bill total does not equal subtotal + tax + tip."


class InvalidBill(ValidationError):
    code = "invalid_bill"
    default_detail = "Bill is invalid."


class InvalidItem(ValidationError):
    code = "invalid_item"
    default_detail = "Bill item is invalid."


class EmptyParticipantSet(ValidationError):
    code = "empty_participant_set"
    default_detail = "At least one participant is required."


class UnassignedItem(ValidationError):
    code = "unassigned_item"
    default_detail = "Every item must be assigned to at least one participant."


class UnknownParticipant(ValidationError):
    code = "unknown_participant"
    default_detail = "Participant is not part of this bill."


class ExtractionFailed(ValidationError):
    """Raised when OCR output cannot be turned into bill data."""
    code = "extraction_failed"
    status_code = 422
    default_detail = "Could not extract bill data from the image."


class InvalidFriendRequest(ValidationError):
    code = "invalid_friend_request"
    default_detail = "Friend request is invalid."


# Conflict

class ConflictError(LedgerError):
    kind = CONFLICT
    status_code = 409


class AlreadySettled(ConflictError):
    code = "already_settled"
    default_detail = "Obligation is already settled."


class AmountMismatch(ConflictError):
    code = "amount_mismatch"
    default_detail = "Payment amount does not match the obligation."


class ObligationNotSettleable(ConflictError):
    """Raised when a confirmation arrives for a cancelled obligation."""
    code = "obligation_not_settleable"
    default_detail = "Obligation can no longer be settled."


class BillNotCancellable(ConflictError):
    code = "bill_not_cancellable"
    default_detail = "Bill can no longer be cancelled."


class FriendshipExists(ConflictError):
    code = "friendship_exists"
    default_detail = "Friend request already exists."


class PhoneNumberTaken(ConflictError):
    code = "phone_number_taken"
    default_detail = "Phone number is already registered to another user."


class EmailTaken(ConflictError):
    code = "email_taken"
    default_detail = "Email is already registered to another user."


class PaymentNotPending(ConflictError):
    """Raised when a payment already reached a terminal status."""
    code = "payment_not_pending"
    default_detail = "Payment is no longer pending."


class ConfirmationMismatch(ConflictError):
    """Raised when a signed confirmation disagrees with the recorded order."""
    code = "confirmation_mismatch"
    default_detail = "Payment confirmation does not match the recorded order."


# Integrity

class InvalidSignature(LedgerError):
    """Raised when a payment confirmation signature does not verify."""
    kind = INTEGRITY
    code = "invalid_signature"
    status_code = 400
    default_detail = "Invalid payment signature."


# Transient

class StorageUnavailable(LedgerError):
    """Raised when the store times out or is locked; safe to retry."""
    kind = TRANSIENT
    code = "storage_unavailable"
    status_code = 503
    default_detail = "Storage is temporarily unavailable. Please retry."


class GatewayUnavailable(LedgerError):
    """Raised when the payment gateway cannot be reached; safe to retry."""
    kind = TRANSIENT
    code = "gateway_unavailable"
    status_code = 502
    default_detail = "Payment gateway is temporarily unavailable. Please retry."


# Lookup / access

class NotFound(LedgerError):
    kind = NOT_FOUND
    code = "not_found"
    status_code = 404
    default_detail = "Not found."


class Forbidden(LedgerError):
    kind = FORBIDDEN
    code = "forbidden"
    status_code = 403
    default_detail = "You do not have permission to perform this action."
