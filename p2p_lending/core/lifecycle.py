"""Loan lifecycle state machine."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable

from p2p_lending.config import PolicyConfig
from p2p_lending.core.events import EventBus
from p2p_lending.core.ledger import FundingLedger
from p2p_lending.core.repayment import RepaymentScheduler
from p2p_lending.core.risk import RiskModel
from p2p_lending.exceptions import (
    AlreadyDecidedError,
    InvalidAmountError,
    InvalidDurationError,
    InvalidPurposeError,
    InvalidStateTransitionError,
)
from p2p_lending.models.lending import (
    BorrowerProfile,
    EventType,
    InstallmentStatus,
    InvestmentStatus,
    Loan,
    LoanStatus,
    LoanTransition,
    RepaymentInstallment,
    RiskAssessment,
)
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)

# Allowed transitions; anything else raises InvalidStateTransitionError
TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED}),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
}


class LoanLifecycle:
    """Drive a loan from request through approval, funding, repayment and closure.

    Every transition runs under the loan's lock, is validated against
    ``TRANSITIONS``, appended to the audit trail and announced on the event
    bus. Invalid transitions are logged and raised, never ignored.
    """

    def __init__(
        self,
        store: MarketplaceStore,
        bus: EventBus,
        risk_model: RiskModel,
        ledger: FundingLedger,
        scheduler: RepaymentScheduler,
        policy: PolicyConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.risk_model = risk_model
        self.ledger = ledger
        self.scheduler = scheduler
        self.policy = policy or PolicyConfig()
        self.clock = clock or datetime.now

        ledger.add_funded_listener(self.on_fully_funded)
        scheduler.add_completion_listener(self.on_all_installments_paid)

    def request(
        self,
        borrower: BorrowerProfile,
        amount: Decimal,
        duration: int,
        purpose: str,
    ) -> Loan:
        """Create a PENDING loan priced by the risk model.

        Parameters
        ----------
        borrower : BorrowerProfile
            Current profile of the requesting borrower.
        amount : Decimal
            Requested principal.
        duration : int
            Term in months.
        purpose : str
            Free-text purpose of the loan.

        Returns
        -------
        Loan
            The new loan in PENDING.

        Raises
        ------
        InvalidAmountError, InvalidDurationError, InvalidPurposeError
            If the request is out of range. Nothing is stored in that case.
        """
        amount = self._validate_amount(amount)
        duration = self._validate_duration(duration)
        purpose = self._validate_purpose(purpose)

        self.store.add_borrower(borrower)
        assessment = self.assess(borrower, amount, duration)

        loan = Loan(
            loan_id=uuid.uuid4().hex,
            borrower_id=borrower.borrower_id,
            principal=amount,
            duration_months=duration,
            purpose=purpose,
            interest_rate=assessment.interest_rate,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            status=LoanStatus.PENDING,
            created_at=self.clock(),
        )
        self.store.add_loan(loan)
        self._record(loan, None, LoanStatus.PENDING, actor=borrower.borrower_id)

        logger.info(
            "Loan %s requested by %s: amount=%s duration=%d rate=%s risk=%s",
            loan.loan_id,
            borrower.borrower_id,
            amount,
            duration,
            loan.interest_rate,
            loan.risk_level.value,
            extra={"loan_id": loan.loan_id, "status": loan.status.value},
        )
        self.bus.emit(
            EventType.LOAN_REQUESTED,
            loan.loan_id,
            {
                "borrower_id": borrower.borrower_id,
                "amount": amount,
                "duration_months": duration,
                "interest_rate": loan.interest_rate,
                "risk_score": loan.risk_score,
                "risk_level": loan.risk_level,
            },
        )
        return loan

    def assess(self, borrower: BorrowerProfile, amount: Decimal, duration: int) -> RiskAssessment:
        """Assess a prospective loan using the borrower's track record."""
        existing_loans, history = self.borrower_history(borrower.borrower_id)
        factors = self.risk_model.factors_for(
            borrower,
            amount,
            duration,
            existing_loans=existing_loans,
            repayment_history=history,
        )
        return self.risk_model.assess(factors)

    def borrower_history(self, borrower_id: str) -> tuple[int, float]:
        """Return (active loan count, on-time repayment percentage) for a borrower.

        Borrowers without any installment history score 100% on time.
        """
        loans = self.store.get_borrower_loans(borrower_id)
        active = sum(1 for loan in loans if loan.status == LoanStatus.ACTIVE)

        total = 0
        on_time = 0
        for loan in loans:
            for inst in self.store.get_loan_installments(loan.loan_id):
                total += 1
                if inst.status == InstallmentStatus.PAID and inst.paid_date <= inst.due_date:
                    on_time += 1

        history = (on_time / total * 100) if total else 100.0
        return active, history

    def decide(
        self,
        loan_id: str,
        approved: bool,
        reason: str | None = None,
        approver: str | None = None,
    ) -> Loan:
        """Approve or reject a PENDING loan.

        Raises
        ------
        AlreadyDecidedError
            If the loan was already approved or rejected.
        InvalidStateTransitionError
            If the loan has moved past the decision stage.
        """
        with self.store.loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)

            if loan.status in (LoanStatus.APPROVED, LoanStatus.REJECTED):
                logger.warning(
                    "Decision on loan %s rejected: already %s", loan_id, loan.status.value
                )
                raise AlreadyDecidedError(
                    f"Loan {loan_id} has already been {loan.status.value.lower()}"
                )

            target = LoanStatus.APPROVED if approved else LoanStatus.REJECTED
            self._check(loan, target)

            now = self.clock()
            loan.approved_by = approver
            loan.decision_reason = reason
            if approved:
                loan.approved_at = now
            else:
                loan.closed_at = now
            self._transition(loan, target, actor=approver, reason=reason)

            if approved:
                self.bus.emit(
                    EventType.LOAN_APPROVED,
                    loan_id,
                    {
                        "borrower_id": loan.borrower_id,
                        "amount": loan.principal,
                        "interest_rate": loan.interest_rate,
                        "purpose": loan.purpose,
                        "approved_by": approver,
                    },
                )
            else:
                self.bus.emit(
                    EventType.LOAN_REJECTED,
                    loan_id,
                    {
                        "borrower_id": loan.borrower_id,
                        "amount": loan.principal,
                        "reason": reason,
                    },
                )
        return loan

    def on_fully_funded(self, loan_id: str) -> list[RepaymentInstallment]:
        """Activate a fully funded loan and materialize its schedule.

        Safe to call again for the same loan: once ACTIVE, the existing
        schedule is returned and nothing is regenerated.
        """
        with self.store.loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)

            if loan.status == LoanStatus.ACTIVE:
                existing = self.store.get_loan_installments(loan_id)
                if existing:
                    logger.info("Loan %s already active; activation replay ignored", loan_id)
                    return existing

            self._check(loan, LoanStatus.ACTIVE)

            funded = self.store.funded_amount(loan_id)
            if funded < loan.principal:
                logger.warning(
                    "Activation of loan %s rejected: funded %s of %s",
                    loan_id,
                    funded,
                    loan.principal,
                )
                raise InvalidStateTransitionError(
                    f"Loan {loan_id} is not fully funded ({funded} of {loan.principal})"
                )

            loan.activated_at = self.clock()
            self._transition(loan, LoanStatus.ACTIVE)
            installments = self.scheduler.materialize(loan)

        return installments

    def on_all_installments_paid(self, loan_id: str) -> Loan:
        """Close an ACTIVE loan whose installments are all paid."""
        with self.store.loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)
            self._check(loan, LoanStatus.COMPLETED)

            if not self.scheduler.is_fully_paid(loan_id):
                logger.warning("Completion of loan %s rejected: unpaid installments", loan_id)
                raise InvalidStateTransitionError(f"Loan {loan_id} still has unpaid installments")

            now = self.clock()
            loan.closed_at = now
            self._transition(loan, LoanStatus.COMPLETED)
            for inv in self.store.get_loan_investments(loan_id):
                if inv.status == InvestmentStatus.ACTIVE:
                    inv.status = InvestmentStatus.COMPLETED
                    inv.updated_at = now

            self.bus.emit(
                EventType.LOAN_COMPLETED,
                loan_id,
                {"borrower_id": loan.borrower_id, "amount": loan.principal},
            )
        return loan

    def mark_defaulted(self, loan_id: str, reason: str | None = None, actor: str | None = None) -> Loan:
        """Move an ACTIVE loan to DEFAULTED on behalf of the collections policy."""
        with self.store.loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)
            self._check(loan, LoanStatus.DEFAULTED)

            loan.closed_at = self.clock()
            self._transition(loan, LoanStatus.DEFAULTED, actor=actor, reason=reason)
            self.bus.emit(
                EventType.LOAN_DEFAULTED,
                loan_id,
                {"borrower_id": loan.borrower_id, "amount": loan.principal, "reason": reason},
            )
        return loan

    def history(self, loan_id: str) -> list[LoanTransition]:
        """Audit trail of a loan's transitions, oldest first."""
        self.store.get_loan(loan_id)
        return self.store.get_loan_transitions(loan_id)

    def _check(self, loan: Loan, target: LoanStatus) -> None:
        if target not in TRANSITIONS[loan.status]:
            logger.warning(
                "Invalid transition for loan %s: %s -> %s",
                loan.loan_id,
                loan.status.value,
                target.value,
                extra={"loan_id": loan.loan_id, "status": loan.status.value},
            )
            raise InvalidStateTransitionError(
                f"Cannot move loan {loan.loan_id} from {loan.status.value} to {target.value}"
            )

    def _transition(
        self,
        loan: Loan,
        target: LoanStatus,
        actor: str | None = None,
        reason: str | None = None,
    ) -> None:
        previous = loan.status
        loan.status = target
        loan.updated_at = self.clock()
        self._record(loan, previous, target, actor=actor, reason=reason)
        logger.info(
            "Loan %s: %s -> %s",
            loan.loan_id,
            previous.value,
            target.value,
            extra={"loan_id": loan.loan_id, "status": target.value},
        )

    def _record(
        self,
        loan: Loan,
        previous: LoanStatus | None,
        target: LoanStatus,
        actor: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.store.add_transition(
            LoanTransition(
                loan_id=loan.loan_id,
                from_status=previous,
                to_status=target,
                occurred_at=self.clock(),
                actor=actor,
                reason=reason,
            )
        )

    def _validate_amount(self, amount: Decimal) -> Decimal:
        try:
            value = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmountError(f"Loan amount is not a number: {amount!r}") from None
        if not value.is_finite() or not (
            self.policy.min_loan_amount <= value <= self.policy.max_loan_amount
        ):
            raise InvalidAmountError(
                f"Loan amount must be between {self.policy.min_loan_amount} "
                f"and {self.policy.max_loan_amount}, got {amount}"
            )
        return value

    def _validate_duration(self, duration: int) -> int:
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise InvalidDurationError(f"Loan duration must be a whole number of months: {duration!r}")
        if not self.policy.min_duration_months <= duration <= self.policy.max_duration_months:
            raise InvalidDurationError(
                f"Loan duration must be between {self.policy.min_duration_months} "
                f"and {self.policy.max_duration_months} months, got {duration}"
            )
        return duration

    def _validate_purpose(self, purpose: str) -> str:
        text = (purpose or "").strip()
        if not text:
            raise InvalidPurposeError("Loan purpose is required")
        if len(text) > self.policy.max_purpose_length:
            raise InvalidPurposeError(
                f"Loan purpose must be at most {self.policy.max_purpose_length} characters"
            )
        return text
