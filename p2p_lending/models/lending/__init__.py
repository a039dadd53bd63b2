"""Lending domain models."""

from p2p_lending.models.lending.borrower import BorrowerProfile
from p2p_lending.models.lending.enums import (
    EmploymentStatus,
    EventType,
    InstallmentStatus,
    InvestmentStatus,
    LoanStatus,
    RiskLevel,
)
from p2p_lending.models.lending.investment import (
    Investment,
    InvestmentPosition,
    PortfolioEntry,
)
from p2p_lending.models.lending.lender import LenderPreferences
from p2p_lending.models.lending.loan import (
    Loan,
    LoanTransition,
    RepaymentInstallment,
    ScheduleSummary,
)
from p2p_lending.models.lending.matching import DiversificationReport, LoanMatch
from p2p_lending.models.lending.risk import RiskAssessment, RiskFactors

__all__ = [
    "BorrowerProfile",
    "DiversificationReport",
    "EmploymentStatus",
    "EventType",
    "InstallmentStatus",
    "Investment",
    "InvestmentPosition",
    "InvestmentStatus",
    "LenderPreferences",
    "Loan",
    "LoanMatch",
    "LoanStatus",
    "LoanTransition",
    "PortfolioEntry",
    "RepaymentInstallment",
    "RiskAssessment",
    "RiskFactors",
    "RiskLevel",
    "ScheduleSummary",
]
