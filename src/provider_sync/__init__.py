"""Reconciles a local instance inventory against what providers actually run."""

__version__ = "0.1.0"
