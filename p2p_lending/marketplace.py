"""Process-wide marketplace runtime wiring the core components together."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from p2p_lending.config import MarketplaceConfig
from p2p_lending.core.events import EventBus, EventSink
from p2p_lending.core.ledger import FundingLedger
from p2p_lending.core.lifecycle import LoanLifecycle
from p2p_lending.core.matching import MatchEngine
from p2p_lending.core.repayment import RepaymentScheduler
from p2p_lending.core.risk import RiskModel
from p2p_lending.models.lending import (
    BorrowerProfile,
    DiversificationReport,
    Investment,
    InvestmentPosition,
    LenderPreferences,
    Loan,
    LoanMatch,
    LoanTransition,
    RepaymentInstallment,
)
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)


class Marketplace:
    """Owner of the store, event bus, sinks and worker pool.

    Create one per process, ``start()`` it before submitting work and
    ``close()`` it on shutdown; closing drains the worker pool and then
    flushes and closes every sink. Also usable as a context manager.

    Parameters
    ----------
    config : MarketplaceConfig | None
        Runtime configuration. Defaults to ``MarketplaceConfig()``.
    sinks : list[EventSink] | None
        Sinks receiving every domain event.
    store : MarketplaceStore | None
        Existing store to operate on.
    clock : Callable[[], datetime] | None
        Time source shared by all components.
    """

    # Export order respects foreign keys between tables
    ENTITY_ORDER = ["borrowers", "lenders", "loans", "investments", "installments", "transitions"]

    def __init__(
        self,
        config: MarketplaceConfig | None = None,
        sinks: list[EventSink] | None = None,
        store: MarketplaceStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or MarketplaceConfig()
        self.config.policy.validate()
        self.policy = self.config.policy
        self.clock = clock or datetime.now

        self.store = store or MarketplaceStore()
        self.bus = EventBus(self.config.events, sinks=sinks, clock=self.clock)
        self.risk_model = RiskModel()
        self.ledger = FundingLedger(self.store, self.bus, self.policy, self.clock)
        self.scheduler = RepaymentScheduler(self.store, self.bus, self.policy, self.clock)
        self.lifecycle = LoanLifecycle(
            self.store,
            self.bus,
            self.risk_model,
            self.ledger,
            self.scheduler,
            self.policy,
            self.clock,
        )
        self.matcher = MatchEngine(self.store, self.policy, self.clock)

        self._executor: ThreadPoolExecutor | None = None
        self._closed = False

    @classmethod
    def from_env(cls, sinks: list[EventSink] | None = None) -> "Marketplace":
        """Create a marketplace configured from environment variables."""
        return cls(MarketplaceConfig.from_env(), sinks=sinks)

    @property
    def running(self) -> bool:
        """Whether the worker pool accepts submissions."""
        return self._executor is not None

    def start(self) -> "Marketplace":
        """Start the worker pool. Calling it on a running marketplace is a no-op."""
        if self._closed:
            raise RuntimeError("Marketplace has been closed")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.workers,
                thread_name_prefix="lending",
            )
            logger.info("Marketplace started with %d workers", self.config.workers)
        return self

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run an operation on the worker pool."""
        if self._executor is None:
            raise RuntimeError("Marketplace is not started")
        return self._executor.submit(fn, *args, **kwargs)

    def close(self) -> None:
        """Drain the worker pool, then flush and close all sinks."""
        if self._closed:
            return
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.bus.close()
        self._closed = True
        logger.info("Marketplace closed: %s", self.store.summary())

    def __enter__(self) -> "Marketplace":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Borrowers
    def request_loan(
        self,
        borrower: BorrowerProfile,
        amount: Decimal,
        duration: int,
        purpose: str,
    ) -> Loan:
        return self.lifecycle.request(borrower, amount, duration, purpose)

    def decide(
        self,
        loan_id: str,
        approved: bool,
        reason: str | None = None,
        approver: str | None = None,
    ) -> Loan:
        return self.lifecycle.decide(loan_id, approved, reason=reason, approver=approver)

    # Lenders
    def register_lender(self, preferences: LenderPreferences) -> None:
        self.store.add_lender(preferences)

    def find_matches(self, lender_id: str, limit: int = 10) -> list[LoanMatch]:
        return self.matcher.find_matches(lender_id, limit=limit)

    def diversification(self, lender_id: str) -> DiversificationReport:
        return self.matcher.get_diversification_recommendations(lender_id)

    def invest(self, loan_id: str, investor_id: str, amount: Decimal) -> Investment:
        return self.ledger.record_investment(loan_id, investor_id, amount)

    def positions(self, investor_id: str) -> list[InvestmentPosition]:
        return self.ledger.positions(investor_id)

    # Repayments
    def schedule(self, loan_id: str) -> list[RepaymentInstallment]:
        """Installments of a loan in due-date order."""
        self.store.get_loan(loan_id)
        return self.store.get_loan_installments(loan_id)

    def record_payment(
        self,
        installment_id: str,
        amount: Decimal,
        paid_date: date,
        reference: str | None = None,
    ) -> RepaymentInstallment:
        return self.scheduler.record_payment(installment_id, amount, paid_date, reference)

    def history(self, loan_id: str) -> list[LoanTransition]:
        return self.lifecycle.history(loan_id)

    def export(self, sink: Any) -> dict[str, int]:
        """Write every entity table to a batch sink in foreign-key order.

        Parameters
        ----------
        sink : Any
            Any sink exposing ``write_batch(entity_type, records)``.

        Returns
        -------
        dict[str, int]
            Number of records written per entity type.
        """
        tables = {
            "borrowers": list(self.store.borrowers.values()),
            "lenders": list(self.store.lenders.values()),
            "loans": sorted(self.store.loans.values(), key=lambda loan: loan.sequence),
            "investments": list(self.store.investments.values()),
            "installments": list(self.store.installments.values()),
            "transitions": list(self.store.transitions),
        }

        counts = {}
        for entity in self.ENTITY_ORDER:
            records = tables[entity]
            sink.write_batch(entity, records)
            counts[entity] = len(records)

        logger.info("Exported marketplace to %s: %s", type(sink).__name__, counts)
        return counts
