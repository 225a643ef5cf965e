"""Kiosk order backend: orders, card and Swish payments, receipts and ready notifications."""

__version__ = "1.0.0"
