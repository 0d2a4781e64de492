"""Resolve, trigger and analyze GitHub Actions workflows by name."""

__version__ = "0.1.0"
