"""Gated-download verification and credential engine."""

__version__ = "0.1.0"
