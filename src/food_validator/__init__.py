"""Asynchronous food dietary-compliance validation service."""

__version__ = "0.1.0"
