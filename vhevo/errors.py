"""
Error kinds raised by the strain-introduction simulation.

Every error is fatal for a run: the loop never retries and never hands back
a partially filled population matrix.
"""


class SimulationError(Exception):
    """Base class for failures of a simulation run."""


class ShapeMismatchError(SimulationError, ValueError):
    """Per-strain vectors (or the state vector) have inconsistent lengths."""


class IntegrationFailureError(SimulationError, RuntimeError):
    """The ODE solver did not converge over a window."""

    def __init__(self, message, t_span=None):
        self.t_span = t_span
        if t_span is not None:
            message = f"{message} (t_span={t_span[0]:g}..{t_span[1]:g})"
        super().__init__(message)


class NoExtinctionSlotError(SimulationError, RuntimeError):
    """No strain slot is at exactly zero density, so no strain can be introduced."""
