"""Randomized XRP payment runs from a single account."""

__version__ = "0.1.0"
