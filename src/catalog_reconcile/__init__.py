"""Reconcile AI model catalog records from multiple sources."""

__version__ = "0.1.0"
