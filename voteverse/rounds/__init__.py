"""
Round lifecycle control.
"""

from .round_controller import RoundController

__all__ = ["RoundController"]
