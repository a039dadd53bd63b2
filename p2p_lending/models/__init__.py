"""Domain models for the lending marketplace."""

from p2p_lending.models.base import Event

__all__ = ["Event"]
