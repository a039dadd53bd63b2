"""Lending domain generators."""

from p2p_lending.generators.lending.borrower import BorrowerGenerator, LoanRequest
from p2p_lending.generators.lending.lender import LenderGenerator

__all__ = ["BorrowerGenerator", "LenderGenerator", "LoanRequest"]
