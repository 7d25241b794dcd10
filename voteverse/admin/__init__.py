"""
Administrator operations.
"""

from .control_surface import AdminControlSurface

__all__ = ["AdminControlSurface"]
