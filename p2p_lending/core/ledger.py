"""Funding ledger: the authoritative record of investments against loans."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from p2p_lending.config import PolicyConfig
from p2p_lending.core.events import EventBus
from p2p_lending.exceptions import (
    AlreadyFundedError,
    DuplicateInvestorError,
    ExceedsRemainingError,
    InvalidAmountError,
    LoanNotOpenError,
)
from p2p_lending.models.lending import (
    EventType,
    InstallmentStatus,
    Investment,
    InvestmentPosition,
    LoanStatus,
)
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)

FundedListener = Callable[[str], object]

FUNDED_STATUSES = (LoanStatus.ACTIVE, LoanStatus.COMPLETED, LoanStatus.DEFAULTED)


class FundingLedger:
    """Record investments so that a loan is never funded beyond its principal.

    ``record_investment`` checks the remaining gap and inserts the investment
    while holding the loan's lock, making check-and-commit a single atomic
    step per loan. Investments in different loans use different locks and
    proceed in parallel.
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
        self._funded_listeners: list[FundedListener] = []

    def add_funded_listener(self, listener: FundedListener) -> None:
        """Register a callback run with the loan id when a loan becomes fully funded.

        Listeners run inside the loan's critical section, so no other
        investment can be committed between full funding and activation.
        """
        self._funded_listeners.append(listener)

    def record_investment(self, loan_id: str, investor_id: str, amount: Decimal) -> Investment:
        """Commit an investment of ``amount`` by ``investor_id`` in ``loan_id``.

        Parameters
        ----------
        loan_id : str
            Loan receiving the funds.
        investor_id : str
            Investor committing the funds.
        amount : Decimal
            Confirmed amount. Never clamped: an amount larger than the
            remaining gap is rejected so the caller can resubmit.

        Returns
        -------
        Investment
            The committed investment.

        Raises
        ------
        LoanNotFoundError
            If the loan does not exist.
        InvalidAmountError
            If the amount is not a positive number, or below the minimum investment
            without exactly closing the remaining gap.
        LoanNotOpenError
            If the loan is not approved for funding.
        AlreadyFundedError
            If the loan has no remaining gap.
        DuplicateInvestorError
            If the investor already holds an investment in the loan.
        ExceedsRemainingError
            If the amount exceeds the remaining gap.
        """
        amount = self._validate_amount(amount)

        with self.store.loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)
            funded = self.store.funded_amount(loan_id)
            remaining = loan.principal - funded

            if loan.status in FUNDED_STATUSES or (
                loan.status == LoanStatus.APPROVED and remaining <= 0
            ):
                self._reject(loan_id, investor_id, amount, "already funded")
                raise AlreadyFundedError(f"Loan {loan_id} is already fully funded")

            if loan.status != LoanStatus.APPROVED:
                self._reject(loan_id, investor_id, amount, f"loan is {loan.status.value}")
                raise LoanNotOpenError(
                    f"Loan {loan_id} is {loan.status.value} and not accepting investments"
                )

            if self.store.has_investment(loan_id, investor_id):
                self._reject(loan_id, investor_id, amount, "duplicate investor")
                raise DuplicateInvestorError(
                    f"Investor {investor_id} has already invested in loan {loan_id}"
                )

            if amount > remaining:
                self._reject(loan_id, investor_id, amount, f"exceeds remaining {remaining}")
                raise ExceedsRemainingError(
                    f"Investment amount exceeds remaining loan amount. Maximum: {remaining}",
                    remaining=remaining,
                )

            if amount < self.policy.min_investment and amount != remaining:
                self._reject(loan_id, investor_id, amount, "below minimum")
                raise InvalidAmountError(
                    f"Investment amount must be at least {self.policy.min_investment} "
                    f"or exactly the remaining {remaining}"
                )

            investment = Investment(
                investment_id=uuid.uuid4().hex,
                investor_id=investor_id,
                loan_id=loan_id,
                amount=amount,
                created_at=self.clock(),
            )
            self.store.add_investment(investment)
            funded += amount

            logger.info(
                "Investment %s committed: loan=%s investor=%s amount=%s funded=%s/%s",
                investment.investment_id,
                loan_id,
                investor_id,
                amount,
                funded,
                loan.principal,
                extra={"loan_id": loan_id, "investor_id": investor_id},
            )
            self.bus.emit(
                EventType.INVESTMENT_RECEIVED,
                loan_id,
                {
                    "investment_id": investment.investment_id,
                    "investor_id": investor_id,
                    "borrower_id": loan.borrower_id,
                    "amount": amount,
                    "funded_amount": funded,
                    "principal": loan.principal,
                },
            )

            if funded == loan.principal:
                self.bus.emit(
                    EventType.LOAN_FULLY_FUNDED,
                    loan_id,
                    {
                        "borrower_id": loan.borrower_id,
                        "principal": loan.principal,
                        "investors": len(self.store.get_loan_investments(loan_id)),
                    },
                )
                for listener in self._funded_listeners:
                    listener(loan_id)

        return investment

    def funded_amount(self, loan_id: str) -> Decimal:
        """Sum of committed investments for a loan."""
        self.store.get_loan(loan_id)
        return self.store.funded_amount(loan_id)

    def remaining(self, loan_id: str) -> Decimal:
        """Remaining funding gap of a loan."""
        loan = self.store.get_loan(loan_id)
        return max(Decimal("0"), loan.principal - self.store.funded_amount(loan_id))

    def funding_progress(self, loan_id: str) -> float:
        """Funded share of the principal, in percent."""
        loan = self.store.get_loan(loan_id)
        if loan.principal <= 0:
            return 100.0
        return float(self.store.funded_amount(loan_id) / loan.principal * 100)

    def investments_for_loan(self, loan_id: str) -> list[Investment]:
        """All investments committed against a loan."""
        return self.store.get_loan_investments(loan_id)

    def investments_for_investor(self, investor_id: str) -> list[Investment]:
        """All investments held by an investor."""
        return self.store.get_investor_investments(investor_id)

    def positions(self, investor_id: str) -> list[InvestmentPosition]:
        """Investor positions with expected and realized returns, newest first.

        The realized return is the investor's pro-rata share of repayments
        received on the loan so far.
        """
        investments = sorted(
            self.store.get_investor_investments(investor_id),
            key=lambda inv: inv.created_at,
            reverse=True,
        )
        positions = []
        for inv in investments:
            loan = self.store.get_loan(inv.loan_id)
            repaid = sum(
                (
                    inst.amount_due
                    for inst in self.store.get_loan_installments(loan.loan_id)
                    if inst.status == InstallmentStatus.PAID
                ),
                Decimal("0"),
            )
            share = inv.amount / loan.principal
            expected = inv.amount * (1 + loan.interest_rate / Decimal(100))
            actual = repaid * share
            positions.append(
                InvestmentPosition(
                    investment_id=inv.investment_id,
                    loan_id=inv.loan_id,
                    amount=inv.amount,
                    interest_rate=loan.interest_rate,
                    status=inv.status,
                    expected_return=expected.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
                    actual_return=actual.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
                    return_rate=((actual - inv.amount) / inv.amount * 100).quantize(
                        Decimal("0.01"), rounding=ROUND_HALF_UP
                    ),
                )
            )
        return positions

    def _reject(self, loan_id: str, investor_id: str, amount: Decimal, why: str) -> None:
        logger.warning(
            "Investment rejected: loan=%s investor=%s amount=%s (%s)",
            loan_id,
            investor_id,
            amount,
            why,
            extra={"loan_id": loan_id, "investor_id": investor_id},
        )

    def _validate_amount(self, amount: Decimal) -> Decimal:
        try:
            value = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmountError(f"Investment amount is not a number: {amount!r}") from None
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(f"Investment amount must be positive, got {amount}")
        return value
