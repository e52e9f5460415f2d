"""
CLI layer for dropwatch.

Entry point::

    dropwatch --help
"""

from dropwatch.cli.app import app

__all__ = ["app"]
