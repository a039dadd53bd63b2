"""Core marketplace components: risk, matching, funding, lifecycle and repayment."""

from p2p_lending.core.events import DeliveryStats, EventBus, EventSink
from p2p_lending.core.ledger import FundingLedger
from p2p_lending.core.lifecycle import LoanLifecycle
from p2p_lending.core.matching import MatchEngine
from p2p_lending.core.repayment import RepaymentScheduler, monthly_payment
from p2p_lending.core.risk import RiskModel

__all__ = [
    "DeliveryStats",
    "EventBus",
    "EventSink",
    "FundingLedger",
    "LoanLifecycle",
    "MatchEngine",
    "RepaymentScheduler",
    "RiskModel",
    "monthly_payment",
]
