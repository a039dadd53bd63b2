"""Risk assessment models for lending domain."""

from dataclasses import dataclass, field
from decimal import Decimal

from p2p_lending.models.lending.enums import EmploymentStatus, RiskLevel


@dataclass(frozen=True)
class RiskFactors:
    """Inputs to the risk model."""

    credit_score: int
    monthly_income: Decimal
    employment_status: EmploymentStatus | str
    loan_amount: Decimal
    loan_duration: int
    country: str = ""
    existing_loans: int = 0
    repayment_history: float = 100.0  # Percentage of on-time payments


@dataclass(frozen=True)
class RiskAssessment:
    """Output of the risk model."""

    risk_score: int  # 0-100, higher is safer
    risk_level: RiskLevel
    interest_rate: Decimal  # Annual percent
    max_loan_amount: Decimal
    recommended_duration: int
    factors: dict[str, int] = field(default_factory=dict)
