"""Borrower model for lending domain."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from p2p_lending.models.lending.enums import EmploymentStatus


@dataclass
class BorrowerProfile:
    """Borrower attributes consumed by risk scoring.

    Maintained by the KYC/profile collaborators; the core only reads it.
    """

    borrower_id: str
    name: str
    credit_score: int  # 300-850
    monthly_income: Decimal
    employment_status: EmploymentStatus | str
    country: str  # ISO 3166-1 alpha-2
    created_at: datetime | None = None
