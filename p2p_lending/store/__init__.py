"""In-memory data stores."""

from p2p_lending.store.lending import MarketplaceStore

__all__ = ["MarketplaceStore"]
