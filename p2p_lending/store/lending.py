"""Lending marketplace data store with referential integrity and per-loan locks."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from p2p_lending.exceptions import (
    BorrowerNotFoundError,
    InstallmentNotFoundError,
    LoanNotFoundError,
    ReferentialIntegrityError,
    StateConflictError,
)
from p2p_lending.models.lending import (
    BorrowerProfile,
    Investment,
    InvestmentStatus,
    LenderPreferences,
    Loan,
    LoanStatus,
    LoanTransition,
    RepaymentInstallment,
)


@dataclass
class MarketplaceStore:
    """In-memory store for lending entities with relationship tracking.

    Every mutation of a loan, its investments or its installments must happen
    while holding ``loan_lock(loan_id)``. Locks are per loan, so writers on
    different loans never block each other.
    """

    # Primary entities
    borrowers: dict[str, BorrowerProfile] = field(default_factory=dict)
    lenders: dict[str, LenderPreferences] = field(default_factory=dict)
    loans: dict[str, Loan] = field(default_factory=dict)
    investments: dict[str, Investment] = field(default_factory=dict)
    installments: dict[str, RepaymentInstallment] = field(default_factory=dict)
    transitions: list[LoanTransition] = field(default_factory=list)

    # Relationship indexes
    _borrower_loans: dict[str, list[str]] = field(default_factory=dict)
    _loan_investments: dict[str, list[str]] = field(default_factory=dict)
    _investor_investments: dict[str, list[str]] = field(default_factory=dict)
    _loan_installments: dict[str, list[str]] = field(default_factory=dict)
    _loan_transitions: dict[str, list[int]] = field(default_factory=dict)

    # Concurrency
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _loan_locks: dict[str, threading.RLock] = field(default_factory=dict, repr=False)
    _next_sequence: int = 1

    def loan_lock(self, loan_id: str) -> threading.RLock:
        """Return the re-entrant lock serializing writes on one loan.

        Locks are created with the loan, so unknown ids never register one.
        """
        try:
            return self._loan_locks[loan_id]
        except KeyError:
            raise LoanNotFoundError(f"Loan {loan_id} not found") from None

    # Borrowers and lenders
    def add_borrower(self, borrower: BorrowerProfile) -> None:
        """Add or refresh a borrower profile snapshot."""
        if borrower.created_at is None:
            borrower.created_at = datetime.now()
        self.borrowers[borrower.borrower_id] = borrower
        self._borrower_loans.setdefault(borrower.borrower_id, [])

    def get_borrower(self, borrower_id: str) -> BorrowerProfile:
        """Get a borrower profile."""
        try:
            return self.borrowers[borrower_id]
        except KeyError:
            raise BorrowerNotFoundError(f"Borrower {borrower_id} not found") from None

    def add_lender(self, preferences: LenderPreferences) -> None:
        """Add or replace a lender's preferences."""
        self.lenders[preferences.investor_id] = preferences

    def get_lender(self, investor_id: str) -> LenderPreferences | None:
        """Get a lender's preferences, if registered."""
        return self.lenders.get(investor_id)

    # Loans
    def add_loan(self, loan: Loan) -> None:
        """Add a loan to the store and assign its creation sequence."""
        if loan.borrower_id not in self.borrowers:
            raise ReferentialIntegrityError(f"Borrower {loan.borrower_id} not found")

        with self._registry_lock:
            loan.sequence = self._next_sequence
            self._next_sequence += 1
            self._loan_locks.setdefault(loan.loan_id, threading.RLock())
            self.loans[loan.loan_id] = loan
            self._borrower_loans[loan.borrower_id].append(loan.loan_id)
            self._loan_investments[loan.loan_id] = []
            self._loan_installments[loan.loan_id] = []
            self._loan_transitions[loan.loan_id] = []

    def get_loan(self, loan_id: str) -> Loan:
        """Get a loan."""
        try:
            return self.loans[loan_id]
        except KeyError:
            raise LoanNotFoundError(f"Loan {loan_id} not found") from None

    def get_loans_by_status(self, *statuses: LoanStatus) -> list[Loan]:
        """Get loans in any of the given statuses, oldest first."""
        loans = [loan for loan in list(self.loans.values()) if loan.status in statuses]
        return sorted(loans, key=lambda loan: loan.sequence)

    def get_borrower_loans(self, borrower_id: str) -> list[Loan]:
        """Get all loans requested by a borrower."""
        loan_ids = self._borrower_loans.get(borrower_id, [])
        return [self.loans[lid] for lid in list(loan_ids)]

    # Investments
    def add_investment(self, investment: Investment) -> None:
        """Add a committed investment. Caller holds the loan lock."""
        if investment.loan_id not in self.loans:
            raise ReferentialIntegrityError(f"Loan {investment.loan_id} not found")

        self.investments[investment.investment_id] = investment
        self._loan_investments[investment.loan_id].append(investment.investment_id)
        self._investor_investments.setdefault(investment.investor_id, []).append(
            investment.investment_id
        )

    def get_loan_investments(self, loan_id: str) -> list[Investment]:
        """Get all investments committed against a loan."""
        investment_ids = self._loan_investments.get(loan_id, [])
        return [self.investments[iid] for iid in list(investment_ids)]

    def get_investor_investments(self, investor_id: str) -> list[Investment]:
        """Get all investments held by an investor."""
        investment_ids = self._investor_investments.get(investor_id, [])
        return [self.investments[iid] for iid in list(investment_ids)]

    def has_investment(self, loan_id: str, investor_id: str) -> bool:
        """Check whether an investor already holds an investment in a loan."""
        return any(inv.investor_id == investor_id for inv in self.get_loan_investments(loan_id))

    def funded_amount(self, loan_id: str) -> Decimal:
        """Sum of committed (non-withdrawn) investments for a loan."""
        return sum(
            (
                inv.amount
                for inv in self.get_loan_investments(loan_id)
                if inv.status != InvestmentStatus.WITHDRAWN
            ),
            Decimal("0"),
        )

    # Installments
    def add_installments(self, loan_id: str, installments: list[RepaymentInstallment]) -> None:
        """Add the full installment schedule of a loan in one batch."""
        if loan_id not in self.loans:
            raise ReferentialIntegrityError(f"Loan {loan_id} not found")
        if self._loan_installments[loan_id]:
            raise StateConflictError(f"Loan {loan_id} already has a repayment schedule")

        now = datetime.now()
        for installment in installments:
            if installment.loan_id != loan_id:
                raise ReferentialIntegrityError(
                    f"Installment {installment.installment_id} belongs to loan {installment.loan_id}"
                )
            if installment.created_at is None:
                installment.created_at = now
            self.installments[installment.installment_id] = installment
        self._loan_installments[loan_id] = [inst.installment_id for inst in installments]

    def get_installment(self, installment_id: str) -> RepaymentInstallment:
        """Get an installment."""
        try:
            return self.installments[installment_id]
        except KeyError:
            raise InstallmentNotFoundError(f"Installment {installment_id} not found") from None

    def get_loan_installments(self, loan_id: str) -> list[RepaymentInstallment]:
        """Get the installments of a loan in schedule order."""
        installment_ids = self._loan_installments.get(loan_id, [])
        return [self.installments[iid] for iid in list(installment_ids)]

    # Audit trail
    def add_transition(self, transition: LoanTransition) -> None:
        """Append a lifecycle transition to the audit trail."""
        with self._registry_lock:
            idx = len(self.transitions)
            self.transitions.append(transition)
            self._loan_transitions.setdefault(transition.loan_id, []).append(idx)

    def get_loan_transitions(self, loan_id: str) -> list[LoanTransition]:
        """Get the ordered transitions of a loan."""
        indices = self._loan_transitions.get(loan_id, [])
        return [self.transitions[i] for i in list(indices)]

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        return {
            "borrowers": len(self.borrowers),
            "lenders": len(self.lenders),
            "loans": len(self.loans),
            "investments": len(self.investments),
            "installments": len(self.installments),
            "transitions": len(self.transitions),
        }
