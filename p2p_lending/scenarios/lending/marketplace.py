"""Marketplace scenario simulating borrowers, lenders and repayments end to end."""

from __future__ import annotations

import logging
import random
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any

from p2p_lending.config import MarketplaceConfig
from p2p_lending.exceptions import CapacityError, ExceedsRemainingError, StateConflictError, ValidationError
from p2p_lending.generators.lending import BorrowerGenerator, LenderGenerator
from p2p_lending.marketplace import Marketplace
from p2p_lending.models.lending import InstallmentStatus, LenderPreferences, Loan, LoanStatus
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)


class MarketplaceScenario:
    """Run a full marketplace cycle on synthetic data.

    This scenario:
    - Generates borrowers and has each request one loan
    - Approves or rejects every request with a score-based underwriting rule
    - Lets lenders invest concurrently in their best matches, round by round
    - Repays fully funded loans with on-time, late and defaulting behavior
    """

    APPROVER = "auto-underwriter"

    def __init__(
        self,
        num_borrowers: int = 50,
        num_lenders: int = 30,
        approval_min_score: int = 45,
        investment_rounds: int = 5,
        matches_per_lender: int = 5,
        late_rate: float = 0.10,
        default_rate: float = 0.05,
        seed: int | None = None,
        *,
        marketplace: Marketplace | None = None,
        config: MarketplaceConfig | None = None,
    ) -> None:
        """Initialize marketplace scenario.

        Parameters
        ----------
        num_borrowers : int
            Number of borrowers, each requesting one loan.
        num_lenders : int
            Number of lenders investing.
        approval_min_score : int
            Minimum risk score the underwriting rule approves.
        investment_rounds : int
            Maximum number of concurrent investment rounds.
        matches_per_lender : int
            Matches each lender considers per round.
        late_rate : float
            Share of installments paid after their due date.
        default_rate : float
            Share of active loans that stop paying and default.
        seed : int | None
            Random seed for reproducibility.
        marketplace : Marketplace | None
            Marketplace to run on. When omitted the scenario creates one
            and closes it once ``generate`` finishes.
        config : MarketplaceConfig | None
            Configuration for the marketplace created by the scenario.
        """
        self.num_borrowers = num_borrowers
        self.num_lenders = num_lenders
        self.approval_min_score = approval_min_score
        self.investment_rounds = investment_rounds
        self.matches_per_lender = matches_per_lender
        self.late_rate = late_rate
        self.default_rate = default_rate
        self.seed = seed

        if seed is not None:
            random.seed(seed)

        self._owns_marketplace = marketplace is None
        self.marketplace = marketplace or Marketplace(config or MarketplaceConfig(seed=seed))
        self.store = self.marketplace.store
        self._borrower_gen = BorrowerGenerator(seed=seed)
        self._lender_gen = LenderGenerator(seed=seed)

    def generate(self) -> MarketplaceStore:
        """Run the scenario.

        Returns
        -------
        MarketplaceStore
            Store holding every entity the run produced.
        """
        logger.info(
            "Starting marketplace scenario: %d borrowers, %d lenders",
            self.num_borrowers,
            self.num_lenders,
        )
        self.marketplace.start()
        try:
            self._request_loans()
            self._decide_loans()
            self._fund_loans()
            self._repay_loans()
        finally:
            if self._owns_marketplace:
                self.marketplace.close()

        logger.info("Marketplace scenario complete: %s", self.store.summary())
        return self.store

    def _request_loans(self) -> None:
        """Generate borrowers and submit one loan request each."""
        for borrower in self._borrower_gen.generate_batch(self.num_borrowers):
            request = self._borrower_gen.generate_request(borrower)
            try:
                self.marketplace.request_loan(
                    borrower,
                    request.amount,
                    request.duration_months,
                    request.purpose,
                )
            except ValidationError as e:
                logger.warning("Loan request of %s refused: %s", borrower.borrower_id, e)

        logger.info("Requested %d loans", len(self.store.loans))

    def _decide_loans(self) -> None:
        """Approve requests scoring at least ``approval_min_score``, reject the rest."""
        for loan in self.store.get_loans_by_status(LoanStatus.PENDING):
            if loan.risk_score >= self.approval_min_score:
                self.marketplace.decide(loan.loan_id, True, approver=self.APPROVER)
            else:
                self.marketplace.decide(
                    loan.loan_id,
                    False,
                    reason=f"Risk score {loan.risk_score} below {self.approval_min_score}",
                    approver=self.APPROVER,
                )

        logger.info(
            "Decided loans: %d approved, %d rejected",
            len(self.store.get_loans_by_status(LoanStatus.APPROVED)),
            len(self.store.get_loans_by_status(LoanStatus.REJECTED)),
        )

    def _fund_loans(self) -> None:
        """Let every lender invest in its matches concurrently until funding stalls."""
        lenders = list(self._lender_gen.generate_batch(self.num_lenders))
        for lender in lenders:
            self.marketplace.register_lender(lender)

        for round_number in range(1, self.investment_rounds + 1):
            futures = [self.marketplace.submit(self._invest_for_lender, lender) for lender in lenders]
            committed = sum(future.result() for future in futures)
            logger.info("Investment round %d: %d investments committed", round_number, committed)
            if committed == 0:
                break

        logger.info(
            "Funding complete: %d investments, %d loans active",
            len(self.store.investments),
            len(self.store.get_loans_by_status(LoanStatus.ACTIVE)),
        )

    def _invest_for_lender(self, lender: LenderPreferences) -> int:
        """Invest one ticket in each of a lender's top matches."""
        committed = 0
        for match in self.marketplace.find_matches(lender.investor_id, limit=self.matches_per_lender):
            loan_id = match.loan.loan_id
            amount = self._ticket(lender, self.marketplace.ledger.remaining(loan_id))
            if amount <= 0:
                continue
            try:
                self.marketplace.invest(loan_id, lender.investor_id, amount)
            except ExceedsRemainingError as e:
                # Another lender got there first; take what is left
                if e.remaining <= 0 or not self._retry_remaining(lender, loan_id, e.remaining):
                    continue
            except (CapacityError, StateConflictError, ValidationError) as e:
                logger.debug("Investment by %s in %s lost: %s", lender.investor_id, loan_id, e)
                continue
            committed += 1
        return committed

    def _retry_remaining(self, lender: LenderPreferences, loan_id: str, remaining: Decimal) -> bool:
        try:
            self.marketplace.invest(loan_id, lender.investor_id, remaining)
        except (CapacityError, StateConflictError, ValidationError) as e:
            logger.debug("Retry by %s in %s lost: %s", lender.investor_id, loan_id, e)
            return False
        return True

    def _ticket(self, lender: LenderPreferences, remaining: Decimal) -> Decimal:
        """Pick an investment amount that never leaves an unfundable gap."""
        if remaining <= 0:
            return Decimal("0")

        minimum = self.marketplace.policy.min_investment
        ticket = Decimal(random.randint(int(lender.min_amount), int(lender.max_amount)))
        amount = min(remaining, max(ticket, minimum))
        if Decimal("0") < remaining - amount < minimum:
            amount = remaining
        return amount

    def _repay_loans(self) -> None:
        """Pay installments of active loans, some late, and default a share of them."""
        active = self.store.get_loans_by_status(LoanStatus.ACTIVE)
        if not active:
            return

        first_due = min(self.store.get_loan_installments(loan.loan_id)[0].due_date for loan in active)
        reminder_day = first_due - timedelta(days=self.marketplace.policy.reminder_window_days)
        self.marketplace.scheduler.send_due_reminders(reminder_day)

        defaulters = [loan for loan in active if random.random() < self.default_rate]
        defaulter_ids = {loan.loan_id for loan in defaulters}

        futures = [
            self.marketplace.submit(self._repay_loan, loan, loan.loan_id in defaulter_ids)
            for loan in active
        ]
        for future in futures:
            future.result()

        if defaulters:
            last_due = max(inst.due_date for inst in self.store.installments.values())
            self.marketplace.scheduler.refresh_overdue(last_due + timedelta(days=1))
            for loan in defaulters:
                missed = sum(
                    1
                    for inst in self.store.get_loan_installments(loan.loan_id)
                    if inst.status != InstallmentStatus.PAID
                )
                self.marketplace.lifecycle.mark_defaulted(
                    loan.loan_id,
                    reason=f"{missed} installments unpaid",
                    actor=self.APPROVER,
                )

        logger.info(
            "Repayments complete: %d loans completed, %d defaulted",
            len(self.store.get_loans_by_status(LoanStatus.COMPLETED)),
            len(self.store.get_loans_by_status(LoanStatus.DEFAULTED)),
        )

    def _repay_loan(self, loan: Loan, defaults: bool) -> None:
        installments = self.store.get_loan_installments(loan.loan_id)
        to_pay = installments
        if defaults:
            to_pay = installments[: random.randint(0, len(installments) - 1)]

        for inst in to_pay:
            if random.random() < self.late_rate:
                paid_date = inst.due_date + timedelta(days=random.randint(1, 30))
            else:
                paid_date = inst.due_date - timedelta(days=random.randint(0, 5))
            self.marketplace.record_payment(
                inst.installment_id,
                inst.amount_due,
                paid_date,
                reference=f"TXN-{uuid.uuid4().hex[:16].upper()}",
            )

    def export(self, sinks: list[Any]) -> None:
        """Export the marketplace state to sinks.

        Parameters
        ----------
        sinks : list[Any]
            List of sink instances (JsonFileSink, PostgresSink, etc.).
        """
        for sink in sinks:
            self.marketplace.export(sink)

        logger.info("Exported marketplace to %d sinks", len(sinks))

    def get_summary(self) -> dict[str, Any]:
        """Get summary statistics for the run.

        Returns
        -------
        dict[str, Any]
            Loan, funding and repayment statistics.
        """
        loans = list(self.store.loans.values())
        if not loans:
            return {}

        status_counts: dict[str, int] = {}
        for loan in loans:
            status_counts[loan.status.value] = status_counts.get(loan.status.value, 0) + 1

        installments = list(self.store.installments.values())
        paid = [i for i in installments if i.status == InstallmentStatus.PAID]

        return {
            "total_loans": len(loans),
            "total_requested": float(sum(loan.principal for loan in loans)),
            "total_funded": float(sum(inv.amount for inv in self.store.investments.values())),
            "average_interest_rate": float(sum(loan.interest_rate for loan in loans) / len(loans)),
            "loan_status_distribution": status_counts,
            "investments": len(self.store.investments),
            "installments": len(installments),
            "installments_paid": len(paid),
            "late_payments": sum(1 for i in paid if i.late_fee > 0),
            "late_fees": float(sum(i.late_fee for i in paid)),
            "events_published": self.marketplace.bus.stats.published,
            "event_delivery_failures": self.marketplace.bus.stats.failed,
        }
