"""Custom exception hierarchy for p2p-lending."""

from decimal import Decimal


class LendingError(Exception):
    """Base exception for all p2p-lending errors."""

    reason = "lending_error"


class ValidationError(LendingError):
    """Raised when input is malformed or out of range, before any state change."""

    reason = "validation_error"


class InvalidAmountError(ValidationError):
    """Raised when a monetary amount is outside the accepted range."""

    reason = "invalid_amount"


class InvalidDurationError(ValidationError):
    """Raised when a loan duration is outside the accepted range."""

    reason = "invalid_duration"


class InvalidPurposeError(ValidationError):
    """Raised when a loan purpose is empty or too long."""

    reason = "invalid_purpose"


class AmountMismatchError(ValidationError):
    """Raised when a repayment does not match the installment due amount."""

    reason = "amount_mismatch"


class StateConflictError(LendingError):
    """Raised when the current entity state does not allow the operation."""

    reason = "state_conflict"


class InvalidStateTransitionError(StateConflictError):
    """Raised when a lifecycle transition is attempted from an invalid state."""

    reason = "invalid_state_transition"


class AlreadyDecidedError(InvalidStateTransitionError):
    """Raised when an approval decision is made twice on the same loan."""

    reason = "already_decided"


class AlreadyFundedError(StateConflictError):
    """Raised when investing in a loan that is already fully funded."""

    reason = "already_funded"


class DuplicateInvestorError(StateConflictError):
    """Raised when an investor already holds an investment in the loan."""

    reason = "duplicate_investor"


class LoanNotOpenError(StateConflictError):
    """Raised when investing in a loan that is not accepting investments."""

    reason = "loan_not_open"


class AlreadyPaidError(StateConflictError):
    """Raised when paying an installment that is already paid."""

    reason = "already_paid"


class CapacityError(LendingError):
    """Raised when an amount does not fit the remaining capacity."""

    reason = "capacity_error"


class ExceedsRemainingError(CapacityError):
    """Raised when an investment exceeds the remaining funding gap."""

    reason = "exceeds_remaining"

    def __init__(self, message: str, remaining: Decimal) -> None:
        super().__init__(message)
        self.remaining = remaining


class EntityNotFoundError(LendingError):
    """Raised when a referenced entity does not exist."""

    reason = "not_found"


class LoanNotFoundError(EntityNotFoundError):
    """Raised when a loan id is unknown."""

    reason = "loan_not_found"


class InstallmentNotFoundError(EntityNotFoundError):
    """Raised when an installment id is unknown."""

    reason = "installment_not_found"


class BorrowerNotFoundError(EntityNotFoundError):
    """Raised when a borrower id is unknown."""

    reason = "borrower_not_found"


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""

    reason = "referential_integrity"


class ConfigurationError(LendingError):
    """Raised when configuration is invalid or missing."""

    reason = "configuration_error"


class SinkError(LendingError):
    """Raised when a sink operation fails."""

    reason = "sink_error"
