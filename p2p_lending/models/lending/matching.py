"""Matching models for lending domain."""

from dataclasses import dataclass, field
from decimal import Decimal

from p2p_lending.models.lending.enums import RiskLevel
from p2p_lending.models.lending.investment import PortfolioEntry
from p2p_lending.models.lending.loan import Loan


@dataclass
class LoanMatch:
    """A candidate loan ranked for one lender."""

    loan: Loan
    match_score: int  # 0-100, higher is a better match
    risk_level: RiskLevel
    interest_rate: Decimal
    funding_progress: float  # Percent funded
    time_remaining: int  # Days left in the funding window
    components: dict[str, float] = field(default_factory=dict)


@dataclass
class DiversificationReport:
    """Portfolio breakdown and advice for a lender."""

    investor_id: str
    portfolio: list[PortfolioEntry] = field(default_factory=list)
    risk_distribution: dict[str, Decimal] = field(default_factory=dict)
    country_distribution: dict[str, Decimal] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    @property
    def total_invested(self) -> Decimal:
        """Sum of all portfolio positions."""
        return sum((entry.amount for entry in self.portfolio), Decimal("0"))
