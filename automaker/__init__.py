"""Automaker deployment pipeline engine."""

__version__ = "0.1.0"
