"""
Summary statistics of a population matrix.

All series are density-weighted averages over the strain block, one value per
time sample (weighting reduces the noise of strains at vanishing density).
Samples without any infected host give NaN.
"""

import logging

import numpy as np
import pandas as pd

from vhevo.errors import ShapeMismatchError

logger = logging.getLogger(__name__)

EPS = np.finfo(float).eps


def _values(matrix):
    """Accept a PopulationMatrix or a plain (n_parasites + 1, n_samples) array."""
    return np.asarray(getattr(matrix, 'values', matrix), dtype=float)


def weighted_average(matrix, trait):
    """sum_i(y_i * trait_i) / sum_i(y_i) at every time sample."""
    Y = _values(matrix)[1:]
    trait = np.asarray(trait, dtype=float)
    if trait.shape != (Y.shape[0],):
        raise ShapeMismatchError(
            f"Trait has {trait.size} entries for {Y.shape[0]} strain slots."
        )
    total = Y.sum(axis=0)
    with np.errstate(invalid='ignore', divide='ignore'):
        return (Y * trait[:, None]).sum(axis=0) / total


def mortality(matrix, params):
    return weighted_average(matrix, params.u_y)


def horizontal_transmission(matrix, params):
    return weighted_average(matrix, params.beta_y)


def vertical_birth(matrix, params):
    return weighted_average(matrix, params.b_y)


def H0(matrix, params, k=1.0):
    """Horizontal cases caused by one infected host before it dies."""
    with np.errstate(invalid='ignore', divide='ignore'):
        return (params.c * horizontal_transmission(matrix, params) / mortality(matrix, params)
                * k * (1 - params.u_x / params.b_x))


def V0(matrix, params):
    """Vertical basic reproductive ratio."""
    with np.errstate(invalid='ignore', divide='ignore'):
        return vertical_birth(matrix, params) * params.u_x / (params.b_x * mortality(matrix, params))


def R0(matrix, params, k=1.0):
    return H0(matrix, params, k) + V0(matrix, params)


def strain_virulence(params):
    """Fecundity and survival lost by a host to each strain."""
    return 1 - (params.b_y + params.e_y) * params.u_x / (params.b_x * params.u_y)


def virulence(matrix, params):
    """Infected-weighted virulence; a drawn per-strain virulence takes precedence."""
    per_strain = params.virulence
    if per_strain is None:
        per_strain = strain_virulence(params)
    return weighted_average(matrix, per_strain)


def pielou_evenness(densities):
    """
    Pielou's J of strain densities at one time sample.

    Densities below machine epsilon count as absent. One (or no) present
    strain gives 0.0.
    """
    n = np.asarray(densities, dtype=float)
    n = n[n > EPS]
    if n.size <= 1:
        return 0.0
    p = n / n.sum()
    return float(-np.sum(p * np.log(p)) / np.log(p.size))


def evenness(matrix):
    Y = _values(matrix)[1:]
    return np.array([pielou_evenness(Y[:, j]) for j in range(Y.shape[1])])


def summary_frame(matrix, params, times=None) -> pd.DataFrame:
    """
    Every statistic through time.

    Columns produced:
        Time, uninfected, total_infected, mortality, beta, virulence,
        H0, V0, R0, evenness
    """
    values = _values(matrix)
    if times is None:
        times = getattr(matrix, 'times', np.arange(values.shape[1], dtype=float))

    h0 = H0(values, params)
    v0 = V0(values, params)
    df = pd.DataFrame({
        'Time': times,
        'uninfected': values[0],
        'total_infected': values[1:].sum(axis=0),
        'mortality': mortality(values, params),
        'beta': horizontal_transmission(values, params),
        'virulence': virulence(values, params),
        'H0': h0,
        'V0': v0,
        'R0': h0 + v0,
        'evenness': evenness(values),
    })

    empty = int(df['mortality'].isna().sum())
    if empty:
        logger.warning("%d of %d samples have no infected hosts; statistics are NaN there",
                       empty, len(df))
    return df
