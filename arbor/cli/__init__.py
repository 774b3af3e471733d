"""Command-line interface for Arbor."""

from arbor.cli.main import app

__all__ = ["app"]
