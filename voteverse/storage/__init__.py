"""
Storage implementations.

Provides implementations of the VoteStore interface for persisting votes
and engine state.

Available implementations:
- JSONLStorage: Persists votes to JSONL files and engine state to JSON
"""

from .jsonl_storage import JSONLStorage

__all__ = ["JSONLStorage"]
