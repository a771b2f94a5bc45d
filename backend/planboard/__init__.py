"""Planboard: hierarchical planning with an atomic batched mutation engine."""

__version__ = "0.1.0"
