"""Lending marketplace scenarios."""

from p2p_lending.scenarios.lending.marketplace import MarketplaceScenario

__all__ = ["MarketplaceScenario"]
