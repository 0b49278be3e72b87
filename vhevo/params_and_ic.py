"""

Parameter dictionary (`params`), initial conditions (`IC`) and per-strain
trait generators for the vertical/horizontal transmission model.

Host parameters are plain dicts so scripts can override single values; the
generators return a complete `Params` for one scenario.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd

from vhevo.model import OPTIONAL_TRAITS, STRAIN_TRAITS, Params

# ---------------------------
# Host parameters (per unit time)
# ---------------------------
params = {
    'b_x': 1.0,    # birth rate of uninfected hosts
    'u_x': 0.2,    # mortality rate of uninfected hosts
    'K'  : 80.0,   # carrying capacity
    'c'  : 4.0,    # host contact rate (overridden per scenario)
}

# ---------------------------
# Initial conditions (state order used by model_ode):
# [X, Y_1, ..., Y_n]; Y_2..Y_n start empty
# ---------------------------
IC = {
    "X":  {"name": "constant", "args": {"value": 10.0}},  # Uninfected hosts
    "Y1": {"name": "constant", "args": {"value": 1.0}},   # Hosts infected with the first strain
}

# ---------------------------
# Scenarios of the three figure sets
# ---------------------------
SCENARIOS = {
    'fig1': {'regime': 'fixed_vertical', 'c': 4.0, 'b_y': 0.1},
    'fig2': {'regime': 'tradeoff', 'c': 4.0, 'r1_virulence': True},
    'fig3': {'regime': 'tradeoff', 'c': 0.5, 'r1_virulence': False},
}

# mortality of infected hosts is drawn on a 0.001 grid in [0.2, 1.0]
U_Y_GRID = np.arange(200, 1001) / 1000
UNIT_GRID = np.arange(0, 1001) / 1000


def build_y0(n_parasites: int, IC_dict: Optional[Dict] = None) -> np.ndarray:
    """
    Map ICs to the state order expected by model_ode:
    [X, Y_1, 0, ..., 0]
    """
    IC_dict = IC if IC_dict is None else IC_dict
    if n_parasites < 1:
        raise ValueError(f"n_parasites must be at least 1, got {n_parasites}.")
    y0 = np.zeros(n_parasites + 1, dtype=float)
    y0[0] = IC_dict['X']['args']['value']
    y0[1] = IC_dict['Y1']['args']['value']
    return y0


def _host(overrides: Dict) -> Dict:
    unknown = sorted(set(overrides) - set(params))
    if unknown:
        raise ValueError(f"Unknown host parameters: {unknown}")
    host = params.copy()
    host.update(overrides)
    return host


def draw_tradeoff_params(n_parasites, c, rng=None, r1_virulence=True, **host_overrides) -> Params:
    """
    Strains under a virulence trade-off.

    r1 sets the strain's investment in transmission, r2 the cost of that
    investment to vertical transmission, r3 the loss of uninfected offspring:

        b_y    = b_x r1 (1 - r1 r2)
        V0     = b_y u_x / (b_x u_y)
        beta_y = r1 - (1 - V0) b_y / b_x
        e_y    = b_x (1 - r3) (1 - r1 r2)

    With `r1_virulence` the drawn r1 is kept as the strains' virulence;
    otherwise virulence is derived from the demographic traits.
    """
    rng = np.random.default_rng(rng)
    host = _host(dict(host_overrides, c=c))
    b_x, u_x = host['b_x'], host['u_x']

    u_y = rng.choice(U_Y_GRID, n_parasites)
    r1 = rng.choice(UNIT_GRID, n_parasites)
    r2 = rng.choice(UNIT_GRID, n_parasites)
    r3 = rng.choice(UNIT_GRID, n_parasites)

    b_y = b_x * r1 * (1 - r1 * r2)
    V0 = (b_y * u_x) / (b_x * u_y)
    beta_y = r1 - (1 - V0) * b_y / b_x
    e_y = b_x * (1 - r3) * (1 - r1 * r2)

    return Params(b_y=b_y, u_y=u_y, beta_y=beta_y, e_y=e_y,
                  virulence=r1 if r1_virulence else None, **host)


def draw_fixed_vertical_params(n_parasites, c, b_y=0.1, rng=None, **host_overrides) -> Params:
    """
    Strains sharing one vertical transmission rate. Horizontal transmission
    saturates with the extra mortality u_y - u_x of infected hosts.
    """
    rng = np.random.default_rng(rng)
    host = _host(dict(host_overrides, c=c))
    b_x, u_x = host['b_x'], host['u_x']
    if not 0 <= b_y <= b_x:
        raise ValueError(f"b_y must lie in [0, b_x={b_x}], got {b_y}.")

    u_y = rng.choice(U_Y_GRID, n_parasites)
    u1 = u_y - u_x
    beta_y = 3 * u1 / (u1 + 1)

    return Params(
        b_y=np.full(n_parasites, b_y),
        u_y=u_y,
        beta_y=beta_y,
        e_y=np.full(n_parasites, b_x - b_y),
        **host,
    )


def draw_scenario(name: str, n_parasites: int = 100, seed=None) -> Params:
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario {name!r}; choose from {sorted(SCENARIOS)}.")
    scenario = dict(SCENARIOS[name])
    regime = scenario.pop('regime')
    if regime == 'tradeoff':
        return draw_tradeoff_params(n_parasites, rng=seed, **scenario)
    return draw_fixed_vertical_params(n_parasites, rng=seed, **scenario)


def load_params_csv(path, **host_overrides) -> Params:
    """
    Per-strain traits from a CSV with one row per strain slot and columns
    b_y, u_y, beta_y, e_y, plus an optional virulence column. Host parameters
    come from `params` and overrides.
    """
    traits = pd.read_csv(path)
    missing = sorted(set(STRAIN_TRAITS) - set(traits.columns))
    if missing:
        raise ValueError(f"Missing columns in {path}: {missing}")
    host = _host(host_overrides)
    columns = [k for k in STRAIN_TRAITS + OPTIONAL_TRAITS if k in traits.columns]
    if traits[columns].isna().any().any():
        raise ValueError(f"Empty trait values in {path}")
    return Params(**{k: traits[k].to_numpy(dtype=float) for k in columns}, **host)
