"""
Append-only vote ledger.
"""

from .vote_ledger import LedgerSnapshot, VoteLedger

__all__ = ["LedgerSnapshot", "VoteLedger"]
