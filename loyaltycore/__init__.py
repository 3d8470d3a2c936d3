"""Wallet login challenges and trial subscription lifecycle for the loyalty platform."""

__version__ = "0.1.0"
