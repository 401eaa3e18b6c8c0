"""Hacker News ingestion and categorization pipeline."""

__version__ = "0.1.0"
