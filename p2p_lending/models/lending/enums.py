"""Enumeration types for lending domain entities."""

from enum import Enum


class EmploymentStatus(str, Enum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self-employed"
    FREELANCER = "freelancer"
    STUDENT = "student"
    UNEMPLOYED = "unemployed"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"


class InvestmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WITHDRAWN = "WITHDRAWN"  # Not supported mid-term
    COMPLETED = "COMPLETED"


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class EventType(str, Enum):
    LOAN_REQUESTED = "loan.requested"
    LOAN_APPROVED = "loan.approved"
    LOAN_REJECTED = "loan.rejected"
    INVESTMENT_RECEIVED = "investment.received"
    LOAN_FULLY_FUNDED = "loan.fully_funded"
    REPAYMENT_DUE = "repayment.due"
    REPAYMENT_RECEIVED = "repayment.received"
    LOAN_COMPLETED = "loan.completed"
    LOAN_DEFAULTED = "loan.defaulted"
