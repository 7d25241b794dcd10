"""
Clocks and round timers.
"""

from .clocks import ManualClock, SystemClock
from .round_timer import RoundTimer

__all__ = ["ManualClock", "SystemClock", "RoundTimer"]
