"""Promotional lottery events: phone verification, pre-generated pools and result reveals."""

__version__ = "0.1.0"
