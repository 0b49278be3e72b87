"""Strain introduction under vertical and horizontal transmission."""

from vhevo.errors import (
    IntegrationFailureError,
    NoExtinctionSlotError,
    ShapeMismatchError,
    SimulationError,
)
from vhevo.introduction import PopulationMatrix, RunConfig, run_introductions
from vhevo.model import Params, model_ode, simulate

__version__ = "0.1.0"
