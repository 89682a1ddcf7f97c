"""Duplicate-property detection for listing portfolios."""

__version__ = "0.1.0"
