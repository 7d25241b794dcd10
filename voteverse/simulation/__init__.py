"""
Simulated voters for demos and tests.
"""

from .simulated_panel import SimulatedPanel, SubmissionReport

__all__ = ["SimulatedPanel", "SubmissionReport"]
