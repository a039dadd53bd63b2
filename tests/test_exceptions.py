"""Tests for custom exception hierarchy."""

from decimal import Decimal

import pytest

from p2p_lending.exceptions import (
    AlreadyDecidedError,
    AlreadyFundedError,
    AlreadyPaidError,
    AmountMismatchError,
    BorrowerNotFoundError,
    CapacityError,
    ConfigurationError,
    DuplicateInvestorError,
    EntityNotFoundError,
    ExceedsRemainingError,
    InstallmentNotFoundError,
    InvalidAmountError,
    InvalidDurationError,
    InvalidPurposeError,
    InvalidStateTransitionError,
    LendingError,
    LoanNotFoundError,
    LoanNotOpenError,
    ReferentialIntegrityError,
    SinkError,
    StateConflictError,
    ValidationError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_lending_error_is_exception(self) -> None:
        assert isinstance(LendingError("test"), Exception)

    @pytest.mark.parametrize(
        "error_class",
        [InvalidAmountError, InvalidDurationError, InvalidPurposeError, AmountMismatchError],
    )
    def test_validation_errors(self, error_class: type) -> None:
        err = error_class("test")
        assert isinstance(err, ValidationError)
        assert isinstance(err, LendingError)

    @pytest.mark.parametrize(
        "error_class",
        [
            InvalidStateTransitionError,
            AlreadyFundedError,
            DuplicateInvestorError,
            LoanNotOpenError,
            AlreadyPaidError,
        ],
    )
    def test_state_conflict_errors(self, error_class: type) -> None:
        assert isinstance(error_class("test"), StateConflictError)

    def test_already_decided_is_invalid_transition(self) -> None:
        err = AlreadyDecidedError("test")
        assert isinstance(err, InvalidStateTransitionError)
        assert isinstance(err, StateConflictError)

    @pytest.mark.parametrize(
        "error_class",
        [LoanNotFoundError, InstallmentNotFoundError, BorrowerNotFoundError, ReferentialIntegrityError],
    )
    def test_not_found_errors(self, error_class: type) -> None:
        assert isinstance(error_class("test"), EntityNotFoundError)

    def test_configuration_and_sink_errors(self) -> None:
        assert isinstance(ConfigurationError("test"), LendingError)
        assert isinstance(SinkError("test"), LendingError)

    def test_exception_message(self) -> None:
        err = LoanNotFoundError("Loan loan-001 not found")
        assert str(err) == "Loan loan-001 not found"


class TestExceedsRemainingError:
    """Tests for the capacity error carrying the remaining gap."""

    def test_carries_remaining(self) -> None:
        err = ExceedsRemainingError("too much", remaining=Decimal("4000"))

        assert isinstance(err, CapacityError)
        assert err.remaining == Decimal("4000")
        assert str(err) == "too much"


class TestReasons:
    """Every error exposes a stable reason code."""

    def test_reasons_are_distinct(self) -> None:
        classes = [
            LendingError,
            ValidationError,
            InvalidAmountError,
            InvalidDurationError,
            InvalidPurposeError,
            AmountMismatchError,
            StateConflictError,
            InvalidStateTransitionError,
            AlreadyDecidedError,
            AlreadyFundedError,
            DuplicateInvestorError,
            LoanNotOpenError,
            AlreadyPaidError,
            CapacityError,
            ExceedsRemainingError,
            EntityNotFoundError,
            LoanNotFoundError,
            InstallmentNotFoundError,
            BorrowerNotFoundError,
            ReferentialIntegrityError,
            ConfigurationError,
            SinkError,
        ]
        reasons = [cls.reason for cls in classes]

        assert len(set(reasons)) == len(reasons)

    def test_reason_on_instance(self) -> None:
        assert AlreadyFundedError("x").reason == "already_funded"
        assert AmountMismatchError("x").reason == "amount_mismatch"
