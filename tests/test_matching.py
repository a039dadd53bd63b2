"""Tests for the match engine."""

from datetime import timedelta
from decimal import Decimal

import pytest

from p2p_lending.config import PolicyConfig
from p2p_lending.core.events import EventBus
from p2p_lending.core.ledger import FundingLedger
from p2p_lending.core.matching import MatchEngine, region_of
from p2p_lending.models.lending import LoanStatus, RiskLevel
from p2p_lending.store.lending import MarketplaceStore


@pytest.fixture
def engine(store: MarketplaceStore, clock) -> MatchEngine:
    return MatchEngine(store, PolicyConfig(), clock)


@pytest.fixture
def ledger(store: MarketplaceStore, clock) -> FundingLedger:
    return FundingLedger(store, EventBus(clock=clock), PolicyConfig(), clock)


class TestRegions:
    """Tests for region lookup."""

    def test_known_regions(self) -> None:
        assert region_of("UG") == "EAST_AFRICA"
        assert region_of("KE") == "EAST_AFRICA"
        assert region_of("NG") == "WEST_AFRICA"

    def test_unknown_region(self) -> None:
        assert region_of("ZA") is None
        assert region_of(None) is None


class TestFindMatches:
    """Tests for MatchEngine.find_matches."""

    def test_unknown_lender(self, engine: MatchEngine, store, make_loan) -> None:
        """A lender without preferences gets no matches."""
        make_loan(store)

        assert engine.find_matches("nobody") == []

    def test_perfect_match(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """All components at their best except urgency for a brand new loan."""
        store.add_lender(make_lender())
        loan = make_loan(store)

        matches = engine.find_matches("inv-001")

        assert len(matches) == 1
        match = matches[0]
        assert match.loan is loan
        assert match.components == {
            "risk": 100.0,
            "interest": 80.0,
            "capital": 100.0,
            "duration": 100.0,
            "geography": 100.0,
            "urgency": 30.0,
        }
        # 35 + 20 + 20 + 10 + 5 + 1.5
        assert match.match_score == 92
        assert match.risk_level == RiskLevel.MEDIUM
        assert match.interest_rate == Decimal("15.00")
        assert match.funding_progress == 0.0
        assert match.time_remaining == 30

    def test_opposite_risk_tier(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """A LOW tolerance lender facing a HIGH risk loan scores 30 on risk."""
        store.add_lender(make_lender(risk_tolerance=RiskLevel.LOW))
        make_loan(store, risk_level=RiskLevel.HIGH, interest_rate=Decimal("22"))

        match = engine.find_matches("inv-001")[0]

        assert match.components["risk"] == 30.0

    def test_adjacent_risk_tier(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        store.add_lender(make_lender(risk_tolerance=RiskLevel.LOW))
        make_loan(store, risk_level=RiskLevel.MEDIUM)

        assert engine.find_matches("inv-001")[0].components["risk"] == 70.0

    @pytest.mark.parametrize(
        ("rate", "expected"),
        [("25", 100.0), ("20", 100.0), ("15", 80.0), ("12", 60.0), ("10", 40.0), ("9.99", 20.0)],
    )
    def test_interest_steps(self, engine: MatchEngine, store, make_loan, make_lender, rate: str, expected: float) -> None:
        store.add_lender(make_lender())
        make_loan(store, interest_rate=Decimal(rate))

        assert engine.find_matches("inv-001")[0].components["interest"] == expected

    def test_capital_fit(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """Capital fit is the smaller of amount and capacity over the larger."""
        store.add_lender(make_lender(max_amount=Decimal("50000")))
        make_loan(store, principal=Decimal("200000"))

        assert engine.find_matches("inv-001")[0].components["capital"] == 25.0

    @pytest.mark.parametrize(
        ("months", "expected"),
        [(6, 100.0), (18, 100.0), (3, 80.0), (24, 80.0), (1, 60.0), (36, 60.0), (48, 40.0)],
    )
    def test_duration_steps(self, engine: MatchEngine, store, make_loan, make_lender, months: int, expected: float) -> None:
        store.add_lender(make_lender())
        make_loan(store, duration_months=months)

        assert engine.find_matches("inv-001")[0].components["duration"] == expected

    def test_preferred_duration(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """A term the lender explicitly prefers scores full marks."""
        store.add_lender(make_lender(preferred_durations=[48]))
        make_loan(store, duration_months=48)

        assert engine.find_matches("inv-001")[0].components["duration"] == 100.0

    def test_geography(self, engine: MatchEngine, store, make_loan, make_lender, make_borrower) -> None:
        """Same country 100, same region 70, elsewhere 50, preferred country 100."""
        store.add_lender(make_lender(country="UG", preferred_countries=["GH"]))
        same = make_loan(store, borrower=make_borrower("bor-ug", country="UG"))
        region = make_loan(store, borrower=make_borrower("bor-ke", country="KE"))
        other = make_loan(store, borrower=make_borrower("bor-ng", country="NG"))
        preferred = make_loan(store, borrower=make_borrower("bor-gh", country="GH"))

        scores = {m.loan.loan_id: m.components["geography"] for m in engine.find_matches("inv-001")}

        assert scores[same.loan_id] == 100.0
        assert scores[region.loan_id] == 70.0
        assert scores[other.loan_id] == 50.0
        assert scores[preferred.loan_id] == 100.0

    def test_urgency_and_time_remaining(
        self, engine: MatchEngine, ledger: FundingLedger, store, clock, make_loan, make_lender
    ) -> None:
        """A ten-day-old loan 60% funded earns 30 + 15 urgency and has 20 days left."""
        store.add_lender(make_lender())
        loan = make_loan(store, created_at=clock() - timedelta(days=10))
        ledger.record_investment(loan.loan_id, "inv-other", Decimal("60000"))

        match = engine.find_matches("inv-001")[0]

        assert match.funding_progress == 60.0
        assert match.components["urgency"] == 45.0
        assert match.time_remaining == 20

    def test_old_loan_time_remaining_floors_at_zero(
        self, engine: MatchEngine, store, clock, make_loan, make_lender
    ) -> None:
        store.add_lender(make_lender())
        make_loan(store, created_at=clock() - timedelta(days=45))

        match = engine.find_matches("inv-001")[0]

        assert match.time_remaining == 0
        assert match.components["urgency"] == 25.0

    def test_low_scores_excluded(self, engine: MatchEngine, store, make_loan, make_lender, make_borrower) -> None:
        """Loans scoring below 25 are not recommended."""
        store.add_lender(make_lender(risk_tolerance=RiskLevel.LOW, max_amount=Decimal("1000")))
        make_loan(
            store,
            principal=Decimal("10000000"),
            duration_months=60,
            interest_rate=Decimal("5"),
            risk_level=RiskLevel.HIGH,
            borrower=make_borrower("bor-ng", country="NG"),
        )

        assert engine.find_matches("inv-001") == []

    def test_ordering_by_score_then_creation(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """Higher scores first; equal scores keep creation order."""
        store.add_lender(make_lender())
        first = make_loan(store, interest_rate=Decimal("15"))
        second = make_loan(store, interest_rate=Decimal("15"))
        best = make_loan(store, interest_rate=Decimal("20"))

        ids = [m.loan.loan_id for m in engine.find_matches("inv-001")]

        assert ids == [best.loan_id, first.loan_id, second.loan_id]

    def test_limit(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        store.add_lender(make_lender())
        for _ in range(5):
            make_loan(store)

        assert len(engine.find_matches("inv-001", limit=3)) == 3

    def test_only_open_loans(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """Only APPROVED loans are candidates."""
        store.add_lender(make_lender())
        open_loan = make_loan(store)
        for status in (LoanStatus.PENDING, LoanStatus.REJECTED, LoanStatus.ACTIVE, LoanStatus.COMPLETED):
            make_loan(store, status=status)

        ids = [m.loan.loan_id for m in engine.find_matches("inv-001")]

        assert ids == [open_loan.loan_id]

    def test_excludes_loans_already_invested(
        self, engine: MatchEngine, ledger: FundingLedger, store, make_loan, make_lender
    ) -> None:
        store.add_lender(make_lender())
        invested = make_loan(store)
        other = make_loan(store)
        ledger.record_investment(invested.loan_id, "inv-001", Decimal("5000"))

        ids = [m.loan.loan_id for m in engine.find_matches("inv-001")]

        assert ids == [other.loan_id]

    def test_excludes_fully_funded_loans(
        self, engine: MatchEngine, ledger: FundingLedger, store, make_loan, make_lender
    ) -> None:
        """A funded loan left APPROVED (no lifecycle wired) is still excluded."""
        store.add_lender(make_lender())
        funded = make_loan(store, principal=Decimal("10000"))
        ledger.record_investment(funded.loan_id, "inv-other", Decimal("10000"))

        assert engine.find_matches("inv-001") == []

    def test_read_only(self, engine: MatchEngine, store, make_loan, make_lender) -> None:
        """Matching never mutates loans or investments."""
        store.add_lender(make_lender())
        loan = make_loan(store)

        engine.find_matches("inv-001")

        assert loan.status == LoanStatus.APPROVED
        assert store.investments == {}


class TestDiversification:
    """Tests for MatchEngine.get_diversification_recommendations."""

    def test_empty_portfolio(self, engine: MatchEngine) -> None:
        report = engine.get_diversification_recommendations("inv-001")

        assert report.portfolio == []
        assert report.total_invested == Decimal("0")
        assert report.risk_distribution == {}
        assert report.recommendations == [
            "Consider investing across different countries to reduce geographic risk",
            "Diversify across more loans to reduce concentration risk",
        ]

    def test_high_risk_concentration(
        self, engine: MatchEngine, ledger: FundingLedger, store, make_loan, make_borrower
    ) -> None:
        """More than half in HIGH credit-score buckets triggers a warning."""
        risky = make_loan(store, borrower=make_borrower("bor-a", credit_score=550))
        safe = make_loan(store, borrower=make_borrower("bor-b", credit_score=720))
        ledger.record_investment(risky.loan_id, "inv-001", Decimal("6000"))
        ledger.record_investment(safe.loan_id, "inv-001", Decimal("4000"))

        report = engine.get_diversification_recommendations("inv-001")

        assert report.total_invested == Decimal("10000")
        assert report.risk_distribution == {"HIGH": Decimal("6000"), "LOW": Decimal("4000")}
        assert report.country_distribution == {"UG": Decimal("10000")}
        assert "Consider diversifying into lower-risk loans to balance your portfolio" in report.recommendations
        assert "Consider investing across different countries to reduce geographic risk" in report.recommendations
        assert "Diversify across more loans to reduce concentration risk" in report.recommendations

    def test_low_risk_concentration(
        self, engine: MatchEngine, ledger: FundingLedger, store, make_loan, make_borrower
    ) -> None:
        """A portfolio over 80% LOW is nudged towards medium risk."""
        countries = ["UG", "KE", "NG", "GH", "SN"]
        for i, country in enumerate(countries):
            loan = make_loan(store, borrower=make_borrower(f"bor-{i}", credit_score=760, country=country))
            ledger.record_investment(loan.loan_id, "inv-001", Decimal("2000"))

        report = engine.get_diversification_recommendations("inv-001")

        assert report.recommendations == [
            "You might consider some medium-risk loans for higher returns"
        ]
        assert [entry.risk_level for entry in report.portfolio] == [RiskLevel.LOW] * 5

    def test_medium_bucket(
        self, engine: MatchEngine, ledger: FundingLedger, store, make_loan, make_borrower
    ) -> None:
        loan = make_loan(store, borrower=make_borrower("bor-m", credit_score=650))
        ledger.record_investment(loan.loan_id, "inv-001", Decimal("2000"))

        report = engine.get_diversification_recommendations("inv-001")

        assert report.portfolio[0].risk_level == RiskLevel.MEDIUM
        assert report.risk_distribution == {"MEDIUM": Decimal("2000")}
