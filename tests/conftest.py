"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

import pytest

from p2p_lending.config import MarketplaceConfig, PolicyConfig
from p2p_lending.core.events import EventBus
from p2p_lending.marketplace import Marketplace
from p2p_lending.models.lending import (
    BorrowerProfile,
    EmploymentStatus,
    LenderPreferences,
    Loan,
    LoanStatus,
    RiskLevel,
)
from p2p_lending.store.lending import MarketplaceStore


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSink:
    """Sink keeping everything it receives in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, object, str | None]] = []
        self.batches: list[tuple[str, list]] = []
        self.flushed = 0
        self.closed = False

    def send(self, topic: str, record: object, key: str | None = None) -> None:
        self.sent.append((topic, record, key))

    def write_batch(self, entity_type: str, records: list) -> None:
        self.batches.append((entity_type, list(records)))

    def flush(self) -> None:
        self.flushed += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2025-01-15 10:00."""
    return FakeClock(datetime(2025, 1, 15, 10, 0, 0))


@pytest.fixture
def policy() -> PolicyConfig:
    """Default business policy."""
    return PolicyConfig()


@pytest.fixture
def store() -> MarketplaceStore:
    """Create a fresh store for each test."""
    return MarketplaceStore()


@pytest.fixture
def recording_sink() -> RecordingSink:
    """In-memory sink."""
    return RecordingSink()


@pytest.fixture
def bus(clock: FakeClock, recording_sink: RecordingSink) -> EventBus:
    """Event bus publishing to the recording sink."""
    return EventBus(sinks=[recording_sink], clock=clock)


@pytest.fixture
def marketplace(clock: FakeClock, recording_sink: RecordingSink) -> Marketplace:
    """Marketplace on a frozen clock; synchronous calls need no start()."""
    return Marketplace(MarketplaceConfig(workers=4), sinks=[recording_sink], clock=clock)


@pytest.fixture
def make_borrower() -> Callable[..., BorrowerProfile]:
    """Factory for borrower profiles."""

    def _make(
        borrower_id: str = "bor-001",
        credit_score: int = 720,
        monthly_income: Decimal = Decimal("1000000"),
        employment_status: EmploymentStatus | str = EmploymentStatus.EMPLOYED,
        country: str = "UG",
    ) -> BorrowerProfile:
        return BorrowerProfile(
            borrower_id=borrower_id,
            name=f"Borrower {borrower_id}",
            credit_score=credit_score,
            monthly_income=monthly_income,
            employment_status=employment_status,
            country=country,
        )

    return _make


@pytest.fixture
def make_lender() -> Callable[..., LenderPreferences]:
    """Factory for lender preferences."""

    def _make(
        investor_id: str = "inv-001",
        risk_tolerance: RiskLevel = RiskLevel.MEDIUM,
        max_amount: Decimal = Decimal("100000"),
        country: str | None = "UG",
        preferred_durations: list[int] | None = None,
        preferred_countries: list[str] | None = None,
    ) -> LenderPreferences:
        return LenderPreferences(
            investor_id=investor_id,
            risk_tolerance=risk_tolerance,
            min_amount=Decimal("1000"),
            max_amount=max_amount,
            preferred_durations=preferred_durations or [],
            preferred_countries=preferred_countries or [],
            country=country,
        )

    return _make


@pytest.fixture
def make_loan(clock: FakeClock, make_borrower: Callable[..., BorrowerProfile]) -> Callable[..., Loan]:
    """Factory placing a loan straight into a store with chosen pricing."""
    counter = iter(range(1, 10_000))

    def _make(
        store: MarketplaceStore,
        principal: Decimal = Decimal("100000"),
        duration_months: int = 12,
        interest_rate: Decimal = Decimal("15.00"),
        risk_level: RiskLevel = RiskLevel.MEDIUM,
        status: LoanStatus = LoanStatus.APPROVED,
        borrower: BorrowerProfile | None = None,
        created_at: datetime | None = None,
    ) -> Loan:
        n = next(counter)
        borrower = borrower or make_borrower(borrower_id=f"bor-{n:03d}")
        store.add_borrower(borrower)
        loan = Loan(
            loan_id=f"loan-{n:03d}",
            borrower_id=borrower.borrower_id,
            principal=Decimal(principal),
            duration_months=duration_months,
            purpose="Working capital",
            interest_rate=Decimal(interest_rate),
            risk_score=70,
            risk_level=risk_level,
            status=status,
            created_at=created_at or clock(),
            approved_at=clock() if status != LoanStatus.PENDING else None,
        )
        store.add_loan(loan)
        return loan

    return _make


@pytest.fixture
def approved_loan(marketplace: Marketplace, make_borrower: Callable[..., BorrowerProfile]) -> Loan:
    """A 120,000 / 12 month loan requested and approved through the lifecycle."""
    loan = marketplace.request_loan(make_borrower(), Decimal("120000"), 12, "Expand shop inventory")
    return marketplace.decide(loan.loan_id, True, approver="admin-001")


@pytest.fixture
def active_loan(marketplace: Marketplace, approved_loan: Loan) -> Loan:
    """The approved loan, fully funded by two investors and therefore ACTIVE."""
    marketplace.invest(approved_loan.loan_id, "inv-001", Decimal("70000"))
    marketplace.invest(approved_loan.loan_id, "inv-002", Decimal("50000"))
    return marketplace.store.get_loan(approved_loan.loan_id)
