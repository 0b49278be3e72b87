"""
Repeated strain introduction.

The host population is integrated over contiguous windows of fixed length.
Between two windows one new strain is seeded into the first strain slot whose
density is exactly zero. Samples are clamped to non-negative values and
collected into a population matrix (rows: uninfected hosts then strain slots,
columns: time samples).

State order: [X, Y_1, ..., Y_n]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from vhevo.errors import IntegrationFailureError, NoExtinctionSlotError, ShapeMismatchError
from vhevo.model import DEFAULT_ATOL, DEFAULT_RTOL, Params, results_to_dataframe, simulate

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------------------
# Run configuration
# --------------------------------------------------------------------------------------

@dataclass(frozen=True)
class RunConfig:
    """
    Settings of one introduction run.

        window_length : float  Time between two strain introductions
        stride        : float  Sampling step inside a window
        seed_density  : float  Density given to a newly introduced strain
        t0            : float  Start of the first window
        method        : str    `solve_ivp` method
        rtol, atol    : float  Solver tolerances
    """
    window_length: float = 1000.0
    stride: float = 1.0
    seed_density: float = 1.0
    t0: float = 0.0
    method: str = "RK45"
    rtol: float = DEFAULT_RTOL
    atol: float = DEFAULT_ATOL

    def __post_init__(self):
        if self.stride <= 0 or self.window_length <= 0:
            raise ValueError("window_length and stride must be positive.")
        steps = self.window_length / self.stride
        if round(steps) < 1 or not np.isclose(steps, round(steps)):
            raise ValueError(
                f"window_length ({self.window_length}) must be a whole multiple "
                f"of stride ({self.stride})."
            )
        if self.seed_density <= 0:
            raise ValueError(f"seed_density must be positive, got {self.seed_density}.")

    @property
    def steps_per_window(self) -> int:
        return int(round(self.window_length / self.stride))

    def sample_times(self, start: float) -> np.ndarray:
        return start + self.stride * np.arange(self.steps_per_window + 1)

    def n_columns(self, n_windows: int) -> int:
        return n_windows * self.steps_per_window + 1


# --------------------------------------------------------------------------------------
# Strain slots
# --------------------------------------------------------------------------------------

@dataclass
class StrainRecord:
    """Lifecycle of one introduced strain. Slots are numbered like state rows (1..n)."""
    strain: int
    slot: int
    introduced_at: float
    extinct_at: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self.extinct_at is None


@dataclass(frozen=True, eq=False)
class IntroductionEvent:
    window: int
    time: float
    slot: int
    strain: int
    state_before: np.ndarray
    state_after: np.ndarray


class StrainSlots:
    """
    Occupancy of the strain block of the state vector.

    A slot is free when its density is exactly 0.0. Free slots are scanned in
    ascending order and the lowest one is reused, so when several strains die
    out in the same window the new strain takes the lowest slot.
    """

    def __init__(self, initial_state: np.ndarray, t0: float = 0.0):
        initial_state = np.asarray(initial_state, dtype=float)
        self.n_slots = initial_state.size - 1
        self._occupant: List[Optional[StrainRecord]] = [None] * self.n_slots
        self.records: List[StrainRecord] = []
        for slot in range(1, self.n_slots + 1):
            if initial_state[slot] > 0.0:
                self._occupy(slot, t0)

    def _occupy(self, slot: int, time: float) -> StrainRecord:
        record = StrainRecord(strain=len(self.records) + 1, slot=slot, introduced_at=time)
        self.records.append(record)
        self._occupant[slot - 1] = record
        return record

    def occupant(self, slot: int) -> Optional[StrainRecord]:
        return self._occupant[slot - 1]

    def mark_extinctions(self, state: np.ndarray, time: float) -> List[StrainRecord]:
        """Close the record of every occupied slot whose density is exactly zero."""
        extinct = []
        for i, record in enumerate(self._occupant):
            if record is not None and state[i + 1] == 0.0:
                record.extinct_at = time
                self._occupant[i] = None
                extinct.append(record)
        return extinct

    def first_free(self, state: np.ndarray) -> int:
        free = np.flatnonzero(np.asarray(state[1:]) == 0.0)
        if free.size == 0:
            raise NoExtinctionSlotError(
                f"No strain slot is at zero density out of {self.n_slots}; "
                "cannot introduce a new strain. The window may be too short for "
                "strains to go extinct, or more introductions were requested than slots."
            )
        return int(free[0]) + 1

    def introduce(
        self, state: np.ndarray, time: float, seed_density: float = 1.0
    ) -> Tuple[np.ndarray, StrainRecord]:
        """Seed a new strain in the first free slot. Returns the new state and its record."""
        slot = self.first_free(state)
        new_state = np.array(state, dtype=float)
        new_state[slot] = seed_density
        return new_state, self._occupy(slot, time)


# --------------------------------------------------------------------------------------
# Population matrix
# --------------------------------------------------------------------------------------

class PopulationMatrix:
    """
    Densities through time.

    values[0, j] is the uninfected host density at times[j]; values[i, j] the
    density in strain slot i. Column j holds time t0 + j * stride. The column
    shared by two consecutive windows holds the state the later window starts
    from, i.e. after the new strain was seeded.
    """

    def __init__(self, n_parasites: int, n_windows: int, config: RunConfig):
        self.config = config
        self.n_windows = n_windows
        n_columns = config.n_columns(n_windows)
        self.values = np.zeros((n_parasites + 1, n_columns), dtype=float)
        self.times = config.t0 + config.stride * np.arange(n_columns)
        self.events: List[IntroductionEvent] = []
        self.records: List[StrainRecord] = []
        self._finalized = False

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def n_parasites(self) -> int:
        return self.values.shape[0] - 1

    @property
    def host(self) -> np.ndarray:
        return self.values[0]

    @property
    def strains(self) -> np.ndarray:
        return self.values[1:]

    def column_of(self, t: float) -> int:
        return int(np.rint((t - self.config.t0) / self.config.stride))

    def write_window(self, times: np.ndarray, states: np.ndarray) -> None:
        if self._finalized:
            raise RuntimeError("Population matrix is read-only once the run has finished.")
        cols = np.rint((np.asarray(times) - self.config.t0) / self.config.stride).astype(int)
        if cols.min() < 0 or cols.max() >= self.values.shape[1]:
            raise IndexError(
                f"Samples at t={times[0]:g}..{times[-1]:g} fall outside the matrix."
            )
        self.values[:, cols] = states

    def finalize(self, events: List[IntroductionEvent], records: List[StrainRecord]) -> None:
        self.events = list(events)
        self.records = list(records)
        self.values.setflags(write=False)
        self._finalized = True

    def to_frame(self):
        return results_to_dataframe(self.values, self.times)


# --------------------------------------------------------------------------------------
# Introduction loop
# --------------------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class LoopState:
    window: int
    window_start: float
    window_end: float
    current: np.ndarray = field(repr=False)

    def advance(self, new_state: np.ndarray, window_length: float) -> "LoopState":
        return replace(
            self,
            window=self.window + 1,
            window_start=self.window_end,
            window_end=self.window_end + window_length,
            current=new_state,
        )


@dataclass(frozen=True, eq=False)
class WindowReport:
    index: int
    t_start: float
    t_end: float
    final_state: np.ndarray
    event: Optional[IntroductionEvent]


WindowObserver = Callable[[WindowReport], None]


def clamp_negative(states: np.ndarray) -> np.ndarray:
    """Set negative densities (solver overshoot near extinction) to exactly 0.0."""
    states = np.asarray(states, dtype=float)
    return np.where(states < 0.0, 0.0, states)


def integrate_window(
    loop: LoopState, params: Params, config: RunConfig
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solve one window from the loop's current state.

    Returns:
        times: sample times, first and last equal to the window bounds.
        states: clamped samples, shape (n_parasites + 1, n_samples).
    """
    t_eval = config.sample_times(loop.window_start)
    sol = simulate(
        loop.current,
        (float(t_eval[0]), float(t_eval[-1])),
        params,
        t_eval=t_eval,
        rtol=config.rtol,
        atol=config.atol,
        method=config.method,
    )
    if sol.y.shape[1] != t_eval.size or not np.all(np.isfinite(sol.y)):
        raise IntegrationFailureError(
            "Solver returned incomplete or non-finite samples",
            (float(t_eval[0]), float(t_eval[-1])),
        )
    states = clamp_negative(sol.y)
    # the window starts exactly from the handed-over state
    states[:, 0] = loop.current
    return t_eval, states


def run_introductions(
    initial_state,
    params: Params,
    n_introductions: Optional[int] = None,
    config: Optional[RunConfig] = None,
    observer: Optional[WindowObserver] = None,
) -> PopulationMatrix:
    """
    Run the strain-introduction simulation.

    One window is integrated per introduced strain: the strains present in
    `initial_state` start the first window and every later window starts
    right after a new strain was seeded, so `n_introductions` windows contain
    `n_introductions - 1` introduction events.

    Args:
        initial_state: [X, Y_1, ..., Y_n], non-negative.
        params: Params dataclass.
        n_introductions: number of windows; defaults to params.n_parasites.
        config: RunConfig; defaults to windows of 1000 sampled every 1.0.
        observer: called once per completed window with a WindowReport.

    Returns:
        Read-only PopulationMatrix of shape
        (n_parasites + 1, n_introductions * window_length / stride + 1).

    Raises:
        ShapeMismatchError, IntegrationFailureError, NoExtinctionSlotError.
    """
    config = config or RunConfig()
    y0 = np.array(initial_state, dtype=float).reshape(-1)
    if y0.size != params.n_parasites + 1:
        raise ShapeMismatchError(
            f"initial_state must have {params.n_parasites + 1} entries, got {y0.size}."
        )
    if not np.all(np.isfinite(y0)) or np.any(y0 < 0):
        raise ValueError("initial_state must be finite and non-negative.")
    if n_introductions is None:
        n_introductions = params.n_parasites
    if n_introductions < 1:
        raise ValueError(f"n_introductions must be at least 1, got {n_introductions}.")

    matrix = PopulationMatrix(params.n_parasites, n_introductions, config)
    slots = StrainSlots(y0, config.t0)
    events: List[IntroductionEvent] = []
    loop = LoopState(
        window=0,
        window_start=config.t0,
        window_end=config.t0 + config.window_length,
        current=y0,
    )
    logger.info(
        "Running %d window(s) of length %g for %d strain slot(s)",
        n_introductions, config.window_length, params.n_parasites,
    )

    for _ in range(n_introductions):
        times, states = integrate_window(loop, params, config)
        matrix.write_window(times, states)

        final = states[:, -1].copy()
        extinct = slots.mark_extinctions(final, loop.window_end)

        event = None
        next_state = final
        if loop.window < n_introductions - 1:
            next_state, record = slots.introduce(final, loop.window_end, config.seed_density)
            event = IntroductionEvent(
                window=loop.window,
                time=loop.window_end,
                slot=record.slot,
                strain=record.strain,
                state_before=final,
                state_after=next_state.copy(),
            )
            events.append(event)

        logger.debug(
            "Window %d [%g, %g]: %d extinct, introduced slot %s",
            loop.window, loop.window_start, loop.window_end, len(extinct),
            event.slot if event else None,
        )
        if observer is not None:
            observer(WindowReport(loop.window, loop.window_start, loop.window_end, final, event))

        loop = loop.advance(next_state, config.window_length)

    matrix.finalize(events, slots.records)
    logger.info(
        "Run finished: %d strain(s) introduced, %d alive at t=%g",
        len(slots.records), sum(r.alive for r in slots.records), matrix.times[-1],
    )
    return matrix


class ProgressObserver:
    """Progress bar observer, one tick per completed window."""

    def __init__(self, total: int, desc: str = "Simulation", **kwargs):
        self.bar = tqdm(total=total, desc=desc, unit="window", **kwargs)

    def __call__(self, report: WindowReport) -> None:
        self.bar.update(1)
        if report.event is not None:
            self.bar.set_postfix(slot=report.event.slot, refresh=False)

    def close(self) -> None:
        self.bar.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
