"""Personalized ranking and feed cache engine for syndicated drops."""

__version__ = "0.1.0"
