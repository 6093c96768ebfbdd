"""
sheetsync: keep Google Sheets in step with an Actual Budget ledger.
"""

from .version import __version__

__all__ = ["__version__"]
