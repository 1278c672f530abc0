"""Aurum: risk-bounded auto-trading engine for a single instrument."""

__version__ = "0.1.0"
