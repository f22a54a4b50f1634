"""Accounts payable module."""

from fiscal_modules.ap.service import SqlPayableLedger

__all__ = ["SqlPayableLedger"]
