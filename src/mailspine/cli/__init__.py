"""Command-line interface (``mail-spine``)."""

from mailspine.cli.app import app

__all__ = ["app"]
