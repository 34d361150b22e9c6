"""Slack thread image text extraction."""

__version__ = "0.1.0"
