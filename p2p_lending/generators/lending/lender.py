"""Lender preference generator for lending domain."""

from __future__ import annotations

import random
from decimal import Decimal
from typing import Iterator

from p2p_lending.generators.base import BaseGenerator
from p2p_lending.generators.lending.borrower import COUNTRIES
from p2p_lending.models.lending import LenderPreferences, RiskLevel


class LenderGenerator(BaseGenerator):
    """Generate synthetic lenders with investment preferences."""

    RISK_TOLERANCES = list(RiskLevel)
    RISK_WEIGHTS = [0.35, 0.45, 0.20]

    # Per-investment ticket sizes
    TICKET_SIZES = [
        (Decimal("1000"), Decimal("50000")),
        (Decimal("5000"), Decimal("200000")),
        (Decimal("20000"), Decimal("1000000")),
    ]
    TICKET_WEIGHTS = [0.50, 0.35, 0.15]

    DURATION_CHOICES = [3, 6, 9, 12, 18, 24, 36]

    def generate(self) -> LenderPreferences:
        """Generate a single lender.

        Returns
        -------
        LenderPreferences
            Generated lender preferences.
        """
        return self._generate_one()

    def generate_batch(self, count: int) -> Iterator[LenderPreferences]:
        """Generate multiple lenders."""
        for _ in range(count):
            yield self._generate_one()

    def _generate_one(self) -> LenderPreferences:
        """Generate a single lender."""
        min_amount, max_amount = random.choices(
            self.TICKET_SIZES, weights=self.TICKET_WEIGHTS, k=1
        )[0]
        country = random.choice(COUNTRIES)

        return LenderPreferences(
            investor_id=self.fake.uuid4(),
            risk_tolerance=random.choices(self.RISK_TOLERANCES, weights=self.RISK_WEIGHTS, k=1)[0],
            min_amount=min_amount,
            max_amount=max_amount,
            preferred_durations=sorted(random.sample(self.DURATION_CHOICES, k=random.randint(0, 3))),
            preferred_countries=random.sample(COUNTRIES, k=random.randint(0, 2)),
            country=country,
        )
