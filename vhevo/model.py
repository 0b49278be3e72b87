"""
Model of pathogen strains spreading by vertical and horizontal transmission in
a logistically regulated host population. This file only contains the model
structure and a thin solver wrapper; the strain-introduction loop lives in
introduction.py.

This module provides:
- A `Params` dataclass containing the host scalars and per-strain traits.
- A `model_ode` function (right-hand side of the ODE system).
- A `simulate` helper around `scipy.integrate.solve_ivp`.
- `results_to_dataframe` to turn a population matrix into a tidy table.

Dependencies:
    numpy, pandas, scipy
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.integrate import solve_ivp

from vhevo.errors import IntegrationFailureError, ShapeMismatchError

logger = logging.getLogger(__name__)

STRAIN_TRAITS = ("b_y", "u_y", "beta_y", "e_y")
OPTIONAL_TRAITS = ("virulence",)
HOST_PARAMS = ("b_x", "u_x", "c", "K")

# Tolerances of the original model runs. Tighter tolerances keep extinct
# strains as tiny positive values and no slot ever reaches exactly zero.
DEFAULT_RTOL = 1e-3
DEFAULT_ATOL = 1e-6


# --------------------------------------------------------------------------------------
# Parameters
# --------------------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Params:
    """
    Model parameters.

    All rates are per unit time.

    Host demography:
        b_x : float  Birth rate of uninfected hosts
        u_x : float  Mortality rate of uninfected hosts
        K   : float  Carrying capacity shared by all host classes

    Transmission:
        c   : float  Host contact rate

    Per-strain traits (one entry per strain slot):
        b_y    : array  Birth rate of hosts infected with strain i (their
                        offspring are born infected: vertical transmission)
        u_y    : array  Mortality rate of hosts infected with strain i
        beta_y : array  Horizontal transmission coefficient of strain i
        e_y    : array  Uninfected offspring produced by hosts infected
                        with strain i
        virulence : array, optional  Virulence drawn with the strain; when
                        absent it is derived from the other traits

    Notes:
        - Vectors are stored as read-only float arrays.
        - All vectors must share one length, `n_parasites`.
    """
    # Host demography
    b_x: float
    u_x: float
    c: float
    K: float

    # Strain traits
    b_y: np.ndarray
    u_y: np.ndarray
    beta_y: np.ndarray
    e_y: np.ndarray
    virulence: Optional[np.ndarray] = None

    def __post_init__(self):
        for name in HOST_PARAMS:
            object.__setattr__(self, name, float(getattr(self, name)))
        lengths = {}
        for name in STRAIN_TRAITS + OPTIONAL_TRAITS:
            if getattr(self, name) is None:
                continue
            arr = np.array(getattr(self, name), dtype=float).reshape(-1)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)
            lengths[name] = arr.size
        if len(set(lengths.values())) != 1:
            raise ShapeMismatchError(
                "Per-strain vectors must share one length, got "
                + ", ".join(f"{k}={v}" for k, v in lengths.items())
            )
        if lengths["b_y"] == 0:
            raise ShapeMismatchError("At least one strain slot is required.")
        if self.K <= 0:
            raise ValueError(f"Carrying capacity K must be positive, got {self.K}.")

    @property
    def n_parasites(self) -> int:
        return int(self.b_y.size)

    @classmethod
    def from_dict(cls, d: Dict) -> "Params":
        missing = sorted(set(HOST_PARAMS + STRAIN_TRAITS) - set(d))
        if missing:
            raise ValueError(f"Missing parameters: {missing}")
        keys = HOST_PARAMS + STRAIN_TRAITS + OPTIONAL_TRAITS
        return cls(**{k: d[k] for k in keys if k in d})

    def to_frame(self) -> pd.DataFrame:
        """Per-strain traits, one row per slot (slots numbered from 1)."""
        df = pd.DataFrame({name: getattr(self, name) for name in STRAIN_TRAITS + OPTIONAL_TRAITS
                           if getattr(self, name) is not None})
        df.index = pd.RangeIndex(1, self.n_parasites + 1, name="slot")
        return df


# --------------------------------------------------------------------------------------
# ODE right-hand side
# --------------------------------------------------------------------------------------

def model_ode(
    t: float,
    y: np.ndarray,
    p: Params,
) -> np.ndarray:
    """
    Right-hand side of the ODE system dy/dt = f(t, y; p).

    State vector y (length n_parasites + 1):
        0      x    Uninfected hosts
        1..n   y_i  Hosts infected with the strain occupying slot i

    Dynamics:
        regul = 1 - (x + sum(y_i)) / K
        dx    = (b_x x + sum(e_i y_i)) regul - u_x x - c sum(beta_i y_i) x
        dy_i  = b_i y_i regul - u_i y_i + c beta_i x y_i

    Returns:
        dydt: np.ndarray of shape (n_parasites + 1,)
    """
    y = np.asarray(y, dtype=float)
    if y.shape != (p.n_parasites + 1,):
        raise ShapeMismatchError(
            f"State vector must have {p.n_parasites + 1} entries, got {y.shape}."
        )
    return _density_field(y, p)


def _density_field(y: np.ndarray, p: Params) -> np.ndarray:
    # Unchecked; the solver calls this on every step.
    x = y[0]
    Y = y[1:]

    # Logistic regulation shared by every host class
    regul = 1.0 - (x + Y.sum()) / p.K

    # Horizontal transmission (mass action)
    infections = p.c * p.beta_y * x * Y

    dydt = np.empty(p.n_parasites + 1)
    dydt[0] = (p.b_x * x + np.dot(p.e_y, Y)) * regul - p.u_x * x - infections.sum()
    dydt[1:] = p.b_y * Y * regul - p.u_y * Y + infections
    return dydt


# --------------------------------------------------------------------------------------
# Simulation helpers
# --------------------------------------------------------------------------------------

def simulate(
    y0: Iterable[float],
    t_span: Tuple[float, float],
    params: Params,
    t_eval: Optional[np.ndarray] = None,
    rtol: float = DEFAULT_RTOL,
    atol: float = DEFAULT_ATOL,
    method: str = "RK45",
):
    """
    Integrate the ODE system.

    Args:
        y0: Initial conditions, iterable of length n_parasites + 1.
        t_span: (t0, tf).
        params: Params dataclass.
        t_eval: Optional array of time points at which to store the solution.
        rtol, atol: Solver tolerances.
        method: Any method accepted by `solve_ivp` (e.g., "RK45", "LSODA").

    Returns:
        SciPy `OdeResult` as returned by `solve_ivp`.

    Raises:
        IntegrationFailureError: the solver stopped before reaching t_span[1].
    """
    y0 = np.asarray(list(y0), dtype=float)
    if y0.shape != (params.n_parasites + 1,):
        raise ShapeMismatchError(
            f"y0 must have {params.n_parasites + 1} elements, got {y0.shape}."
        )

    # Wrap RHS with params closed over; y0 was checked above
    def rhs(t, y):
        return _density_field(y, params)

    sol = solve_ivp(
        rhs,
        t_span=t_span,
        y0=y0,
        t_eval=t_eval,
        method=method,
        rtol=rtol,
        atol=atol,
        vectorized=False,
    )
    if not sol.success:
        logger.error("Solver failed over %s: %s", t_span, sol.message)
        raise IntegrationFailureError(f"Solver failed: {sol.message}", t_span)
    return sol


def results_to_dataframe(
    matrix: np.ndarray,
    times: np.ndarray,
    run: Optional[int] = None,
) -> pd.DataFrame:
    """
    Convert a population matrix into a tidy DataFrame, one row per time sample.

    Columns produced:
        Time, X, Y_1..Y_n, Total_infected, Total_hosts[, Run]

    Args:
        matrix: array of shape (n_parasites + 1, n_samples).
        times: sample times, length n_samples.
        run: Optional identifier when stacking several runs.

    Returns:
        pd.DataFrame
    """
    matrix = np.asarray(matrix, dtype=float)
    times = np.asarray(times, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != times.size:
        raise ShapeMismatchError(
            f"Matrix shape {matrix.shape} does not match {times.size} time samples."
        )

    df = pd.DataFrame({"Time": times, "X": matrix[0]})
    strains = pd.DataFrame(
        matrix[1:].T, columns=[f"Y_{i}" for i in range(1, matrix.shape[0])]
    )
    df = pd.concat([df, strains], axis=1)

    # Totals
    df["Total_infected"] = matrix[1:].sum(axis=0)
    df["Total_hosts"] = df["X"] + df["Total_infected"]

    if run is not None:
        df["Run"] = int(run)

    return df
