"""Scenarios simulating the lending marketplace end to end."""

from p2p_lending.scenarios.lending import MarketplaceScenario

__all__ = ["MarketplaceScenario"]
