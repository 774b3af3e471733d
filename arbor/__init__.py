"""Arbor: streaming chat client for the agents backend."""

__version__ = "0.1.0"
