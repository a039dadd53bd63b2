"""Loan models for lending domain."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from p2p_lending.models.lending.enums import InstallmentStatus, LoanStatus, RiskLevel


@dataclass
class Loan:
    """Loan request and contract entity.

    The funded amount is not stored here; it is derived from the committed
    investments held by the funding ledger.
    """

    loan_id: str
    borrower_id: str
    principal: Decimal
    duration_months: int
    purpose: str
    interest_rate: Decimal  # Annual percent (e.g., 15.5)
    risk_score: int
    risk_level: RiskLevel
    status: LoanStatus
    created_at: datetime
    sequence: int = 0  # Creation order, assigned by the store
    approved_at: datetime | None = None
    approved_by: str | None = None
    decision_reason: str | None = None
    activated_at: datetime | None = None
    closed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RepaymentInstallment:
    """Loan installment.

    Everything except the payment fields is frozen once the schedule is
    materialized.
    """

    installment_id: str
    loan_id: str
    borrower_id: str
    installment_number: int  # 1, 2, 3, ...
    due_date: date
    amount_due: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: date | None = None
    paid_amount: Decimal | None = None  # Transaction amount, late fee included
    late_fee: Decimal = Decimal("0")
    payment_reference: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LoanTransition:
    """Audit record for a lifecycle transition."""

    loan_id: str
    from_status: LoanStatus | None
    to_status: LoanStatus
    occurred_at: datetime
    actor: str | None = None
    reason: str | None = None


@dataclass
class ScheduleSummary:
    """Aggregate repayment progress for a loan."""

    loan_id: str
    total_installments: int
    paid_installments: int
    pending_installments: int
    overdue_installments: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    late_fees: Decimal
    completion_rate: float  # Percent of installments paid
