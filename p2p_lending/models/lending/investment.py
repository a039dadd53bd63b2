"""Investment models for lending domain."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from p2p_lending.models.lending.enums import InvestmentStatus, RiskLevel


@dataclass
class Investment:
    """Committed investment of one investor in one loan."""

    investment_id: str
    investor_id: str
    loan_id: str
    amount: Decimal
    created_at: datetime
    status: InvestmentStatus = InvestmentStatus.ACTIVE
    updated_at: datetime | None = None


@dataclass
class InvestmentPosition:
    """Investor view of an investment with expected and realized returns."""

    investment_id: str
    loan_id: str
    amount: Decimal
    interest_rate: Decimal
    status: InvestmentStatus
    expected_return: Decimal
    actual_return: Decimal
    return_rate: Decimal  # Percent realized so far


@dataclass
class PortfolioEntry:
    """One line of a lender's portfolio used for diversification analysis."""

    loan_id: str
    amount: Decimal
    risk_level: RiskLevel
    country: str
