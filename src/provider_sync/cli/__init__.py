"""Command line interface for provider-sync."""

from .main import cli

__all__ = ["cli"]
