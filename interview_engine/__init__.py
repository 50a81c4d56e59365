"""Adaptive technical interview engine."""

__version__ = "0.1.0"
