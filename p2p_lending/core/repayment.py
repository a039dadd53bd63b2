"""Amortized repayment schedules, payments, late fees and overdue tracking."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from dateutil.relativedelta import relativedelta

from p2p_lending.config import PolicyConfig
from p2p_lending.core.events import EventBus
from p2p_lending.exceptions import (
    AlreadyPaidError,
    AmountMismatchError,
    InvalidStateTransitionError,
)
from p2p_lending.models.lending import (
    EventType,
    InstallmentStatus,
    Loan,
    LoanStatus,
    RepaymentInstallment,
    ScheduleSummary,
)
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

ScheduleListener = Callable[[str], object]


def monthly_payment(principal: Decimal, annual_rate: Decimal, months: int) -> Decimal:
    """Fixed amortized payment (PMT formula), rounded to cents.

    Parameters
    ----------
    principal : Decimal
        Amount borrowed.
    annual_rate : Decimal
        Annual interest rate in percent (15 for 15%).
    months : int
        Number of monthly installments.

    Returns
    -------
    Decimal
        Monthly payment covering interest and principal.
    """
    rate = Decimal(annual_rate) / Decimal(100) / Decimal(12)
    if rate == 0:
        payment = Decimal(principal) / months
    else:
        growth = (1 + rate) ** months
        payment = Decimal(principal) * rate * growth / (growth - 1)
    return payment.quantize(CENT, rounding=ROUND_HALF_UP)


class RepaymentScheduler:
    """Materialize and track the repayment schedule of active loans.

    A schedule is computed once, when the loan activates, and frozen: later
    changes to the loan never alter stored installments. Only the status and
    payment fields of an installment change afterwards.
    """

    def __init__(
        self,
        store: MarketplaceStore,
        bus: EventBus,
        policy: PolicyConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.policy = policy or PolicyConfig()
        self.clock = clock or datetime.now
        self._completion_listeners: list[ScheduleListener] = []

    def add_completion_listener(self, listener: ScheduleListener) -> None:
        """Register a callback invoked with the loan id once every installment is paid."""
        self._completion_listeners.append(listener)

    def materialize(self, loan: Loan) -> list[RepaymentInstallment]:
        """Create the installment schedule of a loan, or return the existing one.

        Parameters
        ----------
        loan : Loan
            Loan being activated. Its approval date anchors the due dates.

        Returns
        -------
        list[RepaymentInstallment]
            Installments in due-date order.

        Raises
        ------
        InvalidStateTransitionError
            If no schedule exists yet and the loan is not ACTIVE.
        """
        with self.store.loan_lock(loan.loan_id):
            existing = self.store.get_loan_installments(loan.loan_id)
            if existing:
                logger.debug("Schedule for loan %s already materialized", loan.loan_id)
                return existing

            if loan.status != LoanStatus.ACTIVE:
                logger.warning(
                    "Schedule for loan %s rejected: loan is %s", loan.loan_id, loan.status.value
                )
                raise InvalidStateTransitionError(
                    f"Loan {loan.loan_id} is {loan.status.value}; "
                    "a schedule is only created for active loans"
                )

            installments = self.build_schedule(loan)
            self.store.add_installments(loan.loan_id, installments)

        logger.info(
            "Materialized %d installments of %s for loan %s",
            len(installments),
            installments[0].amount_due if installments else Decimal("0"),
            loan.loan_id,
            extra={"loan_id": loan.loan_id},
        )
        return installments

    def build_schedule(self, loan: Loan) -> list[RepaymentInstallment]:
        """Compute the amortized schedule of a loan without storing it."""
        months = loan.duration_months
        rate = Decimal(loan.interest_rate) / Decimal(100) / Decimal(12)
        payment = monthly_payment(loan.principal, loan.interest_rate, months)
        anchor = self._anchor_date(loan)

        installments = []
        balance = Decimal(loan.principal)
        for i in range(months):
            interest = (balance * rate).quantize(CENT, rounding=ROUND_HALF_UP)
            if i == months - 1:
                # Last installment absorbs the rounding residue
                principal_part = balance
                amount_due = principal_part + interest
            else:
                principal_part = payment - interest
                amount_due = payment
            balance -= principal_part

            installments.append(
                RepaymentInstallment(
                    installment_id=uuid.uuid4().hex,
                    loan_id=loan.loan_id,
                    borrower_id=loan.borrower_id,
                    installment_number=i + 1,
                    due_date=anchor + relativedelta(months=i + 1),
                    amount_due=amount_due,
                    principal_amount=principal_part,
                    interest_amount=interest,
                )
            )
        return installments

    def record_payment(
        self,
        installment_id: str,
        amount: Decimal,
        paid_date: date,
        reference: str | None = None,
    ) -> RepaymentInstallment:
        """Record a borrower payment against one installment.

        Parameters
        ----------
        installment_id : str
            Installment being paid.
        amount : Decimal
            Amount received; must match the due amount within the tolerance.
        paid_date : date
            Date the payment was made. Later than the due date incurs the
            late fee, added to the recorded transaction amount only.
        reference : str | None
            Payment confirmation reference. Redelivery of an already recorded
            payment with the same reference returns the installment unchanged.

        Returns
        -------
        RepaymentInstallment
            The paid installment.

        Raises
        ------
        InstallmentNotFoundError
            If the installment does not exist.
        AlreadyPaidError
            If the installment is already paid by another payment.
        AmountMismatchError
            If the amount differs from the due amount beyond the tolerance.
        InvalidStateTransitionError
            If the loan is not ACTIVE.
        """
        installment = self.store.get_installment(installment_id)
        if isinstance(paid_date, datetime):
            paid_date = paid_date.date()
        try:
            amount = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise AmountMismatchError(f"Payment amount is not a number: {amount!r}") from None
        if not amount.is_finite():
            raise AmountMismatchError(f"Payment amount must be a finite number, got {amount}")

        with self.store.loan_lock(installment.loan_id):
            loan = self.store.get_loan(installment.loan_id)

            if installment.status == InstallmentStatus.PAID:
                if reference is not None and reference == installment.payment_reference:
                    logger.info(
                        "Duplicate delivery of payment %s for installment %s ignored",
                        reference,
                        installment_id,
                    )
                    return installment
                logger.warning("Installment %s is already paid", installment_id)
                raise AlreadyPaidError(f"Installment {installment_id} is already paid")

            if loan.status != LoanStatus.ACTIVE:
                logger.warning(
                    "Payment for installment %s rejected: loan %s is %s",
                    installment_id,
                    loan.loan_id,
                    loan.status.value,
                )
                raise InvalidStateTransitionError(
                    f"Loan {loan.loan_id} is {loan.status.value}; payments require ACTIVE"
                )

            if abs(amount - installment.amount_due) > self.policy.payment_tolerance:
                logger.warning(
                    "Payment of %s for installment %s does not match due amount %s",
                    amount,
                    installment_id,
                    installment.amount_due,
                    extra={"loan_id": loan.loan_id, "installment_id": installment_id},
                )
                raise AmountMismatchError(
                    f"Payment amount must be {installment.amount_due}. You provided {amount}"
                )

            late_fee = Decimal("0")
            if paid_date > installment.due_date:
                late_fee = (installment.amount_due * self.policy.late_fee_rate).quantize(
                    CENT, rounding=ROUND_HALF_UP
                )

            installment.status = InstallmentStatus.PAID
            installment.paid_date = paid_date
            installment.late_fee = late_fee
            installment.paid_amount = amount + late_fee
            installment.payment_reference = reference
            installment.updated_at = self.clock()

            logger.info(
                "Installment %d of loan %s paid: amount=%s late_fee=%s",
                installment.installment_number,
                loan.loan_id,
                amount,
                late_fee,
                extra={"loan_id": loan.loan_id, "installment_id": installment_id},
            )
            self.bus.emit(
                EventType.REPAYMENT_RECEIVED,
                loan.loan_id,
                {
                    "installment_id": installment.installment_id,
                    "installment_number": installment.installment_number,
                    "borrower_id": loan.borrower_id,
                    "amount": amount,
                    "late_fee": late_fee,
                    "paid_amount": installment.paid_amount,
                    "paid_date": paid_date,
                    "is_overdue": late_fee > 0,
                },
            )

            if self.is_fully_paid(loan.loan_id):
                for listener in self._completion_listeners:
                    listener(loan.loan_id)

        return installment

    def is_fully_paid(self, loan_id: str) -> bool:
        """Check whether every installment of a loan is paid."""
        installments = self.store.get_loan_installments(loan_id)
        return bool(installments) and all(
            inst.status == InstallmentStatus.PAID for inst in installments
        )

    def refresh_overdue(self, as_of: date) -> list[RepaymentInstallment]:
        """Mark pending installments of active loans that are past due as OVERDUE.

        Returns
        -------
        list[RepaymentInstallment]
            Installments that became overdue in this pass.
        """
        newly_overdue = []
        for loan in self.store.get_loans_by_status(LoanStatus.ACTIVE):
            with self.store.loan_lock(loan.loan_id):
                for inst in self.store.get_loan_installments(loan.loan_id):
                    if inst.status == InstallmentStatus.PENDING and inst.due_date < as_of:
                        inst.status = InstallmentStatus.OVERDUE
                        inst.updated_at = self.clock()
                        newly_overdue.append(inst)

        if newly_overdue:
            logger.info("Marked %d installments overdue as of %s", len(newly_overdue), as_of)
        return newly_overdue

    def send_due_reminders(
        self,
        as_of: date,
        within_days: int | None = None,
    ) -> list[RepaymentInstallment]:
        """Publish a repayment-due event for each pending installment due soon."""
        window = self.policy.reminder_window_days if within_days is None else within_days
        horizon = as_of + timedelta(days=window)

        reminded = []
        for loan in self.store.get_loans_by_status(LoanStatus.ACTIVE):
            for inst in self.store.get_loan_installments(loan.loan_id):
                if inst.status == InstallmentStatus.PENDING and as_of <= inst.due_date <= horizon:
                    self.bus.emit(
                        EventType.REPAYMENT_DUE,
                        loan.loan_id,
                        {
                            "installment_id": inst.installment_id,
                            "installment_number": inst.installment_number,
                            "borrower_id": inst.borrower_id,
                            "amount_due": inst.amount_due,
                            "due_date": inst.due_date,
                        },
                    )
                    reminded.append(inst)
        return reminded

    def summary(self, loan_id: str) -> ScheduleSummary:
        """Summarize repayment progress of a loan."""
        installments = self.store.get_loan_installments(loan_id)
        paid = [i for i in installments if i.status == InstallmentStatus.PAID]
        pending = [i for i in installments if i.status == InstallmentStatus.PENDING]
        overdue = [i for i in installments if i.status == InstallmentStatus.OVERDUE]
        zero = Decimal("0")

        return ScheduleSummary(
            loan_id=loan_id,
            total_installments=len(installments),
            paid_installments=len(paid),
            pending_installments=len(pending),
            overdue_installments=len(overdue),
            total_amount=sum((i.amount_due for i in installments), zero),
            paid_amount=sum((i.paid_amount or zero for i in paid), zero),
            pending_amount=sum((i.amount_due for i in pending + overdue), zero),
            late_fees=sum((i.late_fee for i in paid), zero),
            completion_rate=(len(paid) / len(installments) * 100) if installments else 0.0,
        )

    def _anchor_date(self, loan: Loan) -> date:
        anchor = loan.approved_at or loan.activated_at or loan.created_at
        return anchor.date() if isinstance(anchor, datetime) else anchor
