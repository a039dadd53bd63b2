"""Synthetic data generators."""

from p2p_lending.generators.base import BaseGenerator

__all__ = ["BaseGenerator"]
