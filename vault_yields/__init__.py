"""Stablecoin vault yield engine."""

__version__ = "0.1.0"
