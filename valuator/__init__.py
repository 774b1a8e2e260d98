"""Insight-driven valuation adjustment engine."""

__version__ = "1.0.0"
