"""Risk scoring and risk-adjusted pricing for loan requests."""

import math
from decimal import ROUND_HALF_UP, Decimal

from p2p_lending.models.lending import (
    BorrowerProfile,
    EmploymentStatus,
    RiskAssessment,
    RiskFactors,
    RiskLevel,
)


def round_half_up(value: float, places: int = 0) -> Decimal:
    """Round a float the way borrowers expect to see it (0.5 rounds up)."""
    exponent = Decimal(1).scaleb(-places)
    return Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class RiskModel:
    """Score a borrower/loan pair and price it.

    The assessment is a pure function of its inputs: identical factors always
    produce the identical score, level and rate, so historical pricing can be
    reproduced for audit. Out-of-range inputs are clamped, never rejected.
    """

    WEIGHTS = {
        "credit_score": 0.25,
        "income_ratio": 0.20,
        "employment": 0.15,
        "loan_size": 0.15,
        "duration": 0.15,
        "history": 0.10,
    }

    EMPLOYMENT_SCORES = {
        EmploymentStatus.EMPLOYED: 100.0,
        EmploymentStatus.SELF_EMPLOYED: 80.0,
        EmploymentStatus.FREELANCER: 70.0,
        EmploymentStatus.STUDENT: 30.0,
        EmploymentStatus.UNEMPLOYED: 0.0,
    }
    UNKNOWN_EMPLOYMENT_SCORE = 50.0

    MIN_CREDIT_SCORE = 300
    MAX_CREDIT_SCORE = 850

    ASSUMED_MONTHLY_PAYMENT_RATE = 0.02
    LOAN_SIZE_REFERENCE = 1_000_000
    LOAN_SIZE_PENALTY = 50.0
    DURATION_PENALTY_PER_MONTH = 5.0

    LOW_RISK_THRESHOLD = 80.0
    MEDIUM_RISK_THRESHOLD = 60.0

    BASE_RATE = 12.0
    MAX_RATE = 30.0

    MAX_LOAN_INCOME_MULTIPLE = 6
    AFFORDABLE_INCOME_SHARE = 0.3
    MIN_RECOMMENDED_DURATION = 3
    MAX_RECOMMENDED_DURATION = 24

    def assess(self, factors: RiskFactors) -> RiskAssessment:
        """Compute the risk assessment for a set of factors.

        Parameters
        ----------
        factors : RiskFactors
            Borrower and loan attributes.

        Returns
        -------
        RiskAssessment
            Score in [0, 100] (higher is safer), level, annual interest rate,
            maximum loan amount and recommended duration.
        """
        income = max(0.0, float(factors.monthly_income))
        amount = max(0.0, float(factors.loan_amount))
        duration = max(0, int(factors.loan_duration))

        sub_scores = {
            "credit_score": self._credit_score_factor(factors.credit_score),
            "income_ratio": self._income_ratio_factor(amount, income),
            "employment": self._employment_factor(factors.employment_status),
            "loan_size": _clamp(100 - (amount / self.LOAN_SIZE_REFERENCE) * self.LOAN_SIZE_PENALTY),
            "duration": _clamp(100 - (duration - 1) * self.DURATION_PENALTY_PER_MONTH),
            "history": _clamp(float(factors.repayment_history)),
        }

        score = sum(sub_scores[name] * weight for name, weight in self.WEIGHTS.items())
        score = _clamp(score)

        if score >= self.LOW_RISK_THRESHOLD:
            level = RiskLevel.LOW
        elif score >= self.MEDIUM_RISK_THRESHOLD:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.HIGH

        rate = min(self.MAX_RATE, self.BASE_RATE + (100 - score) / 10)

        return RiskAssessment(
            risk_score=int(round_half_up(score)),
            risk_level=level,
            interest_rate=round_half_up(rate, 2),
            max_loan_amount=round_half_up(income * self.MAX_LOAN_INCOME_MULTIPLE),
            recommended_duration=self._recommended_duration(amount, income),
            factors={name: int(round_half_up(value)) for name, value in sub_scores.items()},
        )

    def factors_for(
        self,
        borrower: BorrowerProfile,
        amount: Decimal,
        duration: int,
        existing_loans: int = 0,
        repayment_history: float = 100.0,
    ) -> RiskFactors:
        """Build risk factors for a loan request from a borrower profile."""
        return RiskFactors(
            credit_score=borrower.credit_score,
            monthly_income=borrower.monthly_income,
            employment_status=borrower.employment_status,
            loan_amount=amount,
            loan_duration=duration,
            country=borrower.country,
            existing_loans=max(0, existing_loans),
            repayment_history=repayment_history,
        )

    def _credit_score_factor(self, credit_score: int) -> float:
        span = self.MAX_CREDIT_SCORE - self.MIN_CREDIT_SCORE
        return _clamp((float(credit_score) - self.MIN_CREDIT_SCORE) / span * 100)

    def _income_ratio_factor(self, amount: float, income: float) -> float:
        if income <= 0:
            return 0.0
        monthly_payment = amount * self.ASSUMED_MONTHLY_PAYMENT_RATE
        return _clamp(100 - (monthly_payment / income) * 100)

    def _employment_factor(self, status: EmploymentStatus | str) -> float:
        try:
            key = EmploymentStatus(status)
        except ValueError:
            return self.UNKNOWN_EMPLOYMENT_SCORE
        return self.EMPLOYMENT_SCORES[key]

    def _recommended_duration(self, amount: float, income: float) -> int:
        if income <= 0:
            return self.MAX_RECOMMENDED_DURATION
        months = math.ceil(amount / (income * self.AFFORDABLE_INCOME_SHARE))
        return min(self.MAX_RECOMMENDED_DURATION, max(self.MIN_RECOMMENDED_DURATION, months))
