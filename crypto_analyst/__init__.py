"""Crypto-Analyst: multi-signal cryptocurrency research and scoring."""

__version__ = "0.1.0"
