"""Borrower and loan request generator for lending domain."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterator

from p2p_lending.generators.base import BaseGenerator
from p2p_lending.models.lending import BorrowerProfile, EmploymentStatus

COUNTRIES = ["UG", "KE", "TZ", "NG", "GH", "SN", "RW"]
COUNTRY_WEIGHTS = [0.30, 0.20, 0.10, 0.15, 0.10, 0.05, 0.10]


@dataclass
class LoanRequest:
    """Synthetic borrower request: amount, term and purpose."""

    amount: Decimal
    duration_months: int
    purpose: str


class BorrowerGenerator(BaseGenerator):
    """Generate synthetic borrower profiles and their loan requests."""

    EMPLOYMENT_STATUS = list(EmploymentStatus)
    EMPLOYMENT_WEIGHTS = [0.45, 0.25, 0.15, 0.08, 0.07]

    # Monthly income ranges by employment status
    INCOME_RANGES = {
        EmploymentStatus.EMPLOYED: (300_000, 5_000_000),
        EmploymentStatus.SELF_EMPLOYED: (200_000, 8_000_000),
        EmploymentStatus.FREELANCER: (150_000, 3_000_000),
        EmploymentStatus.STUDENT: (0, 400_000),
        EmploymentStatus.UNEMPLOYED: (0, 150_000),
    }

    PURPOSES = [
        "Expand retail shop inventory",
        "School fees for the new term",
        "Purchase a motorcycle for boda-boda business",
        "Buy seeds and fertilizer for the planting season",
        "Renovate family home",
        "Medical expenses",
        "Buy a sewing machine for tailoring business",
        "Working capital for poultry farm",
        "Solar panels for the household",
        "Laptop for freelance work",
    ]

    DURATIONS = [3, 6, 9, 12, 18, 24, 36]

    def generate(self) -> BorrowerProfile:
        """Generate a single borrower.

        Returns
        -------
        BorrowerProfile
            Generated borrower.
        """
        return self._generate_one()

    def generate_batch(self, count: int) -> Iterator[BorrowerProfile]:
        """Generate multiple borrowers.

        Parameters
        ----------
        count : int
            Number of borrowers to generate.

        Yields
        ------
        BorrowerProfile
            Generated borrowers.
        """
        for _ in range(count):
            yield self._generate_one()

    def generate_request(self, borrower: BorrowerProfile) -> LoanRequest:
        """Generate a loan request sized to the borrower's income."""
        income = float(borrower.monthly_income)
        ceiling = max(1_000, min(10_000_000, income * random.uniform(0.5, 6)))
        amount = max(1_000, int(ceiling / 1_000) * 1_000)

        return LoanRequest(
            amount=Decimal(amount),
            duration_months=random.choice(self.DURATIONS),
            purpose=random.choice(self.PURPOSES),
        )

    def _generate_one(self) -> BorrowerProfile:
        """Generate a single borrower."""
        employment = random.choices(
            self.EMPLOYMENT_STATUS, weights=self.EMPLOYMENT_WEIGHTS, k=1
        )[0]

        low, high = self.INCOME_RANGES[employment]
        income = random.lognormvariate(mu=13.8, sigma=0.8)  # ~1,000,000 median
        income = max(low, min(income, high))

        base_score = 520
        if employment == EmploymentStatus.EMPLOYED:
            base_score += 120
        elif employment == EmploymentStatus.SELF_EMPLOYED:
            base_score += 80
        elif employment == EmploymentStatus.FREELANCER:
            base_score += 50

        income_factor = min(100, int(income / 50_000))
        credit_score = min(850, max(300, base_score + income_factor + random.randint(-80, 80)))

        days_ago = random.randint(0, 3 * 365)

        return BorrowerProfile(
            borrower_id=self.fake.uuid4(),
            name=self.fake.name(),
            credit_score=credit_score,
            monthly_income=Decimal(str(round(income, 2))),
            employment_status=employment,
            country=random.choices(COUNTRIES, weights=COUNTRY_WEIGHTS, k=1)[0],
            created_at=datetime.now() - timedelta(days=days_ago),
        )
