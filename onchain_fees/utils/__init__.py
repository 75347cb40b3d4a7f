"""Utility functions and helpers."""

from onchain_fees.utils.logging import setup_logging

__all__ = [
    "setup_logging",
]
