"""
Voter and participant registry.
"""

from .roster import Roster

__all__ = ["Roster"]
