"""Peller Nation fan-club backend: member registration and Paystack payments."""

__version__ = "0.1.0"
