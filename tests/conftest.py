import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from vhevo.introduction import RunConfig
from vhevo.model import Params


@pytest.fixture
def two_strain_params():
    """Two identical strains on a small carrying capacity."""
    return Params(
        b_x=1.0, u_x=0.2, c=1.0, K=80.0,
        b_y=[0.5, 0.5], u_y=[0.3, 0.3], beta_y=[0.4, 0.4], e_y=[0.2, 0.2],
    )


@pytest.fixture
def short_windows():
    return RunConfig(window_length=10.0, stride=1.0)


@pytest.fixture
def y0_two():
    return np.array([10.0, 1.0, 0.0])
