"""Lender preference model for lending domain."""

from dataclasses import dataclass, field
from decimal import Decimal

from p2p_lending.models.lending.enums import RiskLevel


@dataclass
class LenderPreferences:
    """Investment preferences read by the match engine."""

    investor_id: str
    risk_tolerance: RiskLevel
    min_amount: Decimal
    max_amount: Decimal  # Capacity used for capital fit
    preferred_durations: list[int] = field(default_factory=list)
    preferred_countries: list[str] = field(default_factory=list)
    country: str | None = None
