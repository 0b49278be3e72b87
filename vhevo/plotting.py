"""
Figures of a strain-introduction run, written as PNG files.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np


def _save(fig, png_path):
    png_path = Path(png_path)
    png_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(png_path)
    plt.close(fig)
    return png_path


def plot_population_numbers(matrix, png_path, title="Number of infected and uninfected hosts",
                            ylim=(0, 100)):
    """
    Densities of each strain (blue), uninfected hosts (black) and all
    infected hosts together (red).
    """
    values = np.asarray(getattr(matrix, 'values', matrix), dtype=float)
    times = getattr(matrix, 'times', np.arange(values.shape[1]))

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(times, values[1:].T, c='blue', lw=1.5, alpha=0.4)
    ax.plot(times, values[0], c='black', lw=1.5, label='Uninfected')
    ax.plot(times, values[1:].sum(axis=0), c='red', label='Total parasites')
    ax.set(title=title, xlabel='Time', ylabel='Number of individuals', ylim=ylim)
    ax.legend(loc='upper right')
    return _save(fig, png_path)


def plot_series(times, data, png_path, title, ylabel, ylim=None, lw=1.5):
    """One statistic through time (mortality, R0, V0, evenness, ...)."""
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(times, data, c='black', lw=lw)
    ax.set(title=title, xlabel='Time', ylabel=ylabel)
    if ylim is not None:
        ax.set_ylim(*ylim)
    return _save(fig, png_path)


def plot_horizontal_and_virulence(times, beta, vir, png_path):
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(times, beta, c='black', label='Beta')
    ax.plot(times, vir, c='blue', lw=1.5, label='Virulence')
    ax.set(title='Virulence and beta', xlabel='Time',
           ylabel='Mean virulence & \n Mean Beta', ylim=(0, 1))
    ax.legend()
    return _save(fig, png_path)


def plot_summary(summary, out_dir, prefix='graph'):
    """Write the standard figure set from a summary_frame. Returns the written paths."""
    out_dir = Path(out_dir)
    t = summary['Time']
    return [
        plot_series(t, summary['mortality'], out_dir / f'{prefix}_mortality.png',
                    'Average mortality in the population', 'Mean mortality (ui)', (0, 1)),
        plot_series(t, summary['R0'], out_dir / f'{prefix}_R0.png',
                    'Average R0 in the population', 'Mean R0'),
        plot_series(t, summary['V0'], out_dir / f'{prefix}_V0.png',
                    'Average vertical cases in the population', 'Mean V0', (0, 1)),
        plot_horizontal_and_virulence(t, summary['beta'], summary['virulence'],
                                      out_dir / f'{prefix}_beta_virulence.png'),
        plot_series(t, summary['evenness'], out_dir / f'{prefix}_evenness.png',
                    'Evenness', 'Relative abundance (log)', (0, 1), lw=0.5),
    ]
