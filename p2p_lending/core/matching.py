"""Lender-to-loan matching and portfolio diversification advice."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable

from p2p_lending.config import PolicyConfig
from p2p_lending.core.risk import round_half_up
from p2p_lending.models.lending import (
    DiversificationReport,
    LenderPreferences,
    Loan,
    LoanMatch,
    LoanStatus,
    PortfolioEntry,
    RiskLevel,
)
from p2p_lending.store.lending import MarketplaceStore

logger = logging.getLogger(__name__)

REGIONS = {
    "EAST_AFRICA": frozenset({"UG", "KE", "TZ"}),
    "WEST_AFRICA": frozenset({"NG", "GH", "SN"}),
}

# Ordinal position used to measure how far apart two risk tiers are
RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


def region_of(country: str | None) -> str | None:
    """Return the region a country belongs to, if any."""
    for region, countries in REGIONS.items():
        if country in countries:
            return region
    return None


class MatchEngine:
    """Rank open loans for a lender.

    Read-only: neither method mutates loans or investments. Scores combine
    risk alignment, rate, capital fit, duration, geography and urgency.

    Notes
    -----
    The urgency tiers and diversification thresholds are heuristics carried
    over from the marketplace's existing behavior. They rank candidates but
    are not business rules.
    """

    WEIGHTS = {
        "risk": 0.35,
        "interest": 0.25,
        "capital": 0.20,
        "duration": 0.10,
        "geography": 0.05,
        "urgency": 0.05,
    }

    RISK_ALIGNMENT = {0: 100.0, 1: 70.0, 2: 30.0}

    FUNDING_WINDOW_DAYS = 30

    def __init__(
        self,
        store: MarketplaceStore,
        policy: PolicyConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or PolicyConfig()
        self.clock = clock or datetime.now

    def find_matches(self, lender_id: str, limit: int = 10) -> list[LoanMatch]:
        """Return the best-matching open loans for a lender.

        Parameters
        ----------
        lender_id : str
            Investor whose preferences drive the ranking.
        limit : int
            Maximum number of matches returned.

        Returns
        -------
        list[LoanMatch]
            Matches by descending score, ties broken by loan creation order.
            Empty if the lender has no registered preferences.
        """
        prefs = self.store.get_lender(lender_id)
        if prefs is None:
            logger.debug("No preferences for lender %s; no matches", lender_id)
            return []

        now = self.clock()
        matches = []
        for loan in self._candidates(lender_id):
            funded = self.store.funded_amount(loan.loan_id)
            progress = float(funded / loan.principal * 100) if loan.principal > 0 else 100.0
            age_days = max(0, (now - loan.created_at).days)

            components = self.score_components(loan, prefs, progress, age_days)
            score = int(
                round_half_up(sum(components[name] * w for name, w in self.WEIGHTS.items()))
            )
            if score < self.policy.min_match_score:
                continue

            matches.append(
                LoanMatch(
                    loan=loan,
                    match_score=score,
                    risk_level=loan.risk_level,
                    interest_rate=loan.interest_rate,
                    funding_progress=progress,
                    time_remaining=max(0, self.FUNDING_WINDOW_DAYS - age_days),
                    components=components,
                )
            )

        matches.sort(key=lambda m: (-m.match_score, m.loan.sequence))
        return matches[:limit]

    def score_components(
        self,
        loan: Loan,
        prefs: LenderPreferences,
        funding_progress: float,
        age_days: int,
    ) -> dict[str, float]:
        """Compute the unweighted 0-100 sub-scores of a loan for a lender."""
        borrower = self.store.borrowers.get(loan.borrower_id)
        country = borrower.country if borrower else None
        return {
            "risk": self._risk_alignment(prefs.risk_tolerance, loan.risk_level),
            "interest": self._interest_attractiveness(loan.interest_rate),
            "capital": self._capital_fit(loan.principal, prefs.max_amount),
            "duration": self._duration_fit(loan.duration_months, prefs.preferred_durations),
            "geography": self._geographic_affinity(country, prefs),
            "urgency": self._urgency(funding_progress, age_days),
        }

    def get_diversification_recommendations(self, lender_id: str) -> DiversificationReport:
        """Break down a lender's portfolio by risk bucket and country and suggest changes.

        Risk buckets follow the borrower's credit score: 700 and above is
        LOW, 600 and above MEDIUM, anything lower HIGH.
        """
        report = DiversificationReport(investor_id=lender_id)

        for inv in self.store.get_investor_investments(lender_id):
            loan = self.store.get_loan(inv.loan_id)
            borrower = self.store.borrowers.get(loan.borrower_id)
            credit = borrower.credit_score if borrower else 0
            country = borrower.country if borrower else ""

            if credit >= 700:
                bucket = RiskLevel.LOW
            elif credit >= 600:
                bucket = RiskLevel.MEDIUM
            else:
                bucket = RiskLevel.HIGH

            report.portfolio.append(
                PortfolioEntry(loan_id=loan.loan_id, amount=inv.amount, risk_level=bucket, country=country)
            )
            report.risk_distribution[bucket.value] = (
                report.risk_distribution.get(bucket.value, Decimal("0")) + inv.amount
            )
            report.country_distribution[country] = (
                report.country_distribution.get(country, Decimal("0")) + inv.amount
            )

        total = report.total_invested
        high = report.risk_distribution.get(RiskLevel.HIGH.value, Decimal("0"))
        low = report.risk_distribution.get(RiskLevel.LOW.value, Decimal("0"))

        if total > 0 and high / total > Decimal("0.5"):
            report.recommendations.append(
                "Consider diversifying into lower-risk loans to balance your portfolio"
            )
        if total > 0 and low / total > Decimal("0.8"):
            report.recommendations.append(
                "You might consider some medium-risk loans for higher returns"
            )
        if len(report.country_distribution) < 2:
            report.recommendations.append(
                "Consider investing across different countries to reduce geographic risk"
            )
        if len(report.portfolio) < 5:
            report.recommendations.append(
                "Diversify across more loans to reduce concentration risk"
            )
        return report

    def _candidates(self, lender_id: str) -> list[Loan]:
        """Newest open loans the lender has not invested in yet."""
        open_loans = [
            loan
            for loan in self.store.get_loans_by_status(LoanStatus.APPROVED)
            if self.store.funded_amount(loan.loan_id) < loan.principal
            and not self.store.has_investment(loan.loan_id, lender_id)
        ]
        window = self.policy.match_candidate_window
        return open_loans[-window:] if window > 0 else open_loans

    def _risk_alignment(self, tolerance: RiskLevel, level: RiskLevel) -> float:
        distance = abs(RISK_ORDER[RiskLevel(tolerance)] - RISK_ORDER[RiskLevel(level)])
        return self.RISK_ALIGNMENT[distance]

    def _interest_attractiveness(self, rate: Decimal) -> float:
        if rate >= 20:
            return 100.0
        if rate >= 15:
            return 80.0
        if rate >= 12:
            return 60.0
        if rate >= 10:
            return 40.0
        return 20.0

    def _capital_fit(self, amount: Decimal, capacity: Decimal) -> float:
        amount = Decimal(amount)
        capacity = Decimal(capacity) if capacity else self.policy.default_lender_capacity
        high = max(amount, capacity)
        if high <= 0:
            return 0.0
        return float(min(amount, capacity) / high * 100)

    def _duration_fit(self, months: int, preferred: list[int]) -> float:
        if months in preferred:
            return 100.0
        if 6 <= months <= 18:
            return 100.0
        if 3 <= months <= 24:
            return 80.0
        if 1 <= months <= 36:
            return 60.0
        return 40.0

    def _geographic_affinity(self, country: str | None, prefs: LenderPreferences) -> float:
        if country is None:
            return 50.0
        if country == prefs.country or country in prefs.preferred_countries:
            return 100.0
        region = region_of(country)
        if region is not None and region == region_of(prefs.country):
            return 70.0
        return 50.0

    def _urgency(self, progress: float, age_days: int) -> float:
        score = 0.0
        if progress >= 80:
            score += 50
        elif progress >= 50:
            score += 30
        elif progress >= 20:
            score += 15

        if age_days <= 3:
            score += 30
        elif age_days >= 14:
            score += 25
        elif age_days >= 7:
            score += 15
        return min(score, 100.0)
