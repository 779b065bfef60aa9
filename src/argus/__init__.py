"""Argus: event memory distilled from chat messages."""

__version__ = "0.1.0"
