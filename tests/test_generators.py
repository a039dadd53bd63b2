"""Tests for data generators."""

from decimal import Decimal

from p2p_lending.generators.lending import BorrowerGenerator, LenderGenerator
from p2p_lending.generators.lending.borrower import COUNTRIES
from p2p_lending.models.lending import EmploymentStatus, RiskLevel


class TestBorrowerGenerator:
    """Tests for BorrowerGenerator."""

    def test_generate_borrower(self, seed: int) -> None:
        """Test borrower generation."""
        gen = BorrowerGenerator(seed=seed)
        borrower = gen.generate()

        assert borrower.borrower_id is not None
        assert borrower.name
        assert 300 <= borrower.credit_score <= 850
        assert borrower.monthly_income >= 0
        assert isinstance(borrower.employment_status, EmploymentStatus)
        assert borrower.country in COUNTRIES
        assert borrower.created_at is not None

    def test_generate_multiple(self, seed: int) -> None:
        """Test generating multiple borrowers."""
        gen = BorrowerGenerator(seed=seed)
        borrowers = list(gen.generate_batch(10))

        assert len(borrowers) == 10
        # All should have unique IDs
        assert len({b.borrower_id for b in borrowers}) == 10

    def test_reproducible(self, seed: int) -> None:
        """The same seed yields the same borrowers."""
        first = list(BorrowerGenerator(seed=seed).generate_batch(5))
        second = list(BorrowerGenerator(seed=seed).generate_batch(5))

        assert [(b.borrower_id, b.credit_score, b.monthly_income) for b in first] == [
            (b.borrower_id, b.credit_score, b.monthly_income) for b in second
        ]

    def test_income_within_employment_range(self, seed: int) -> None:
        gen = BorrowerGenerator(seed=seed)

        for borrower in gen.generate_batch(50):
            low, high = BorrowerGenerator.INCOME_RANGES[borrower.employment_status]
            assert low <= borrower.monthly_income <= high

    def test_generate_request(self, seed: int) -> None:
        """Requests are whole thousands within the accepted loan range."""
        gen = BorrowerGenerator(seed=seed)

        for borrower in gen.generate_batch(30):
            request = gen.generate_request(borrower)
            assert Decimal("1000") <= request.amount <= Decimal("10000000")
            assert request.amount % 1000 == 0
            assert request.duration_months in BorrowerGenerator.DURATIONS
            assert request.purpose in BorrowerGenerator.PURPOSES

    def test_request_for_zero_income(self, seed: int, make_borrower) -> None:
        gen = BorrowerGenerator(seed=seed)

        request = gen.generate_request(make_borrower(monthly_income=Decimal("0")))

        assert request.amount == Decimal("1000")


class TestLenderGenerator:
    """Tests for LenderGenerator."""

    def test_generate_lender(self, seed: int) -> None:
        """Test lender generation."""
        gen = LenderGenerator(seed=seed)
        lender = gen.generate()

        assert lender.investor_id is not None
        assert isinstance(lender.risk_tolerance, RiskLevel)
        assert Decimal("1000") <= lender.min_amount < lender.max_amount
        assert lender.country in COUNTRIES

    def test_preferences(self, seed: int) -> None:
        gen = LenderGenerator(seed=seed)

        for lender in gen.generate_batch(30):
            assert len(lender.preferred_durations) <= 3
            assert lender.preferred_durations == sorted(lender.preferred_durations)
            assert set(lender.preferred_durations) <= set(LenderGenerator.DURATION_CHOICES)
            assert len(lender.preferred_countries) <= 2
            assert set(lender.preferred_countries) <= set(COUNTRIES)

    def test_generate_multiple(self, seed: int) -> None:
        lenders = list(LenderGenerator(seed=seed).generate_batch(5))

        assert len({lender.investor_id for lender in lenders}) == 5
