import argparse
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path

import numpy as np

from vhevo.errors import SimulationError
from vhevo.model import DEFAULT_ATOL, DEFAULT_RTOL
from vhevo.introduction import ProgressObserver, RunConfig, run_introductions
from vhevo.params_and_ic import IC, SCENARIOS, build_y0, draw_scenario, load_params_csv
from vhevo.plotting import plot_population_numbers, plot_summary
from vhevo.summary_stats import summary_frame

logger = logging.getLogger("vhevo.solve")

# ---- Config -----------------------------------------------------------------

N_PARASITES = 100                         # strain slots
WINDOW_LENGTH = 1000.0                    # time between two introductions
STRIDE = 1.0                              # sampling step

POPULATION_CSV = "population.csv"
SUMMARY_CSV = "summary.csv"
TRAITS_CSV = "traits.csv"

# ---- Helpers ----------------------------------------------------------------


def build_parser():
    parser = argparse.ArgumentParser(
        description="Introduce pathogen strains one window at a time and "
                    "record host and strain densities.")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="fig2",
                        help="Trait regime to draw strains from.")
    parser.add_argument("--params-csv", type=Path, default=None,
                        help="Read per-strain traits (b_y, u_y, beta_y, e_y) instead of drawing them.")
    parser.add_argument("--contact-rate", type=float, default=None,
                        help="Host contact rate c (defaults to the scenario value).")
    parser.add_argument("--n-parasites", type=int, default=N_PARASITES)
    parser.add_argument("--n-introductions", type=int, default=None,
                        help="Number of windows; defaults to the number of strain slots.")
    parser.add_argument("--window-length", type=float, default=WINDOW_LENGTH)
    parser.add_argument("--stride", type=float, default=STRIDE)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--method", default="RK45")
    parser.add_argument("--rtol", type=float, default=DEFAULT_RTOL)
    parser.add_argument("--atol", type=float, default=DEFAULT_ATOL)
    parser.add_argument("--out-dir", type=Path, default=Path("results"))
    parser.add_argument("--no-plots", action="store_true")
    parser.add_argument("--no-progress", action="store_true")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def load_params(args):
    host = {}
    if args.contact_rate is not None:
        host["c"] = args.contact_rate
    if args.params_csv is not None:
        if "c" not in host:
            host["c"] = SCENARIOS[args.scenario]["c"]
        return load_params_csv(args.params_csv, **host)
    params = draw_scenario(args.scenario, args.n_parasites, seed=args.seed)
    if host:
        params = replace(params, **host)
    return params


def run(args):
    params = load_params(args)
    config = RunConfig(
        window_length=args.window_length,
        stride=args.stride,
        method=args.method,
        rtol=args.rtol,
        atol=args.atol,
    )
    if args.n_introductions is not None:
        n_windows = args.n_introductions
    else:
        n_windows = params.n_parasites
    y0 = build_y0(params.n_parasites, IC)

    t0 = time.time()
    if args.no_progress:
        matrix = run_introductions(y0, params, n_windows, config)
    else:
        with ProgressObserver(n_windows) as progress:
            matrix = run_introductions(y0, params, n_windows, config, observer=progress)
    logger.info("Solved %d window(s) in %.2fs", n_windows, time.time() - t0)

    summary = summary_frame(matrix, params)
    return params, matrix, summary


def save(args, params, matrix, summary):
    out_dir = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    params.to_frame().to_csv(out_dir / TRAITS_CSV)
    matrix.to_frame().to_csv(out_dir / POPULATION_CSV, index=False)
    summary.to_csv(out_dir / SUMMARY_CSV, index=False)
    print(f"Saved results → {out_dir / POPULATION_CSV}, {out_dir / SUMMARY_CSV}")

    if not args.no_plots:
        title = f"c={params.c}\n \nNumber of infected and uninfected hosts"
        paths = [plot_population_numbers(matrix, out_dir / "graph_population.png", title)]
        paths += plot_summary(summary, out_dir)
        print(f"Saved {len(paths)} figures → {out_dir}")


# ---- Main -------------------------------------------------------------------

def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    start_all = time.time()
    try:
        params, matrix, summary = run(args)
    except (SimulationError, ValueError) as e:
        logger.error("Simulation failed: %s", e)
        return 1

    alive = int(np.count_nonzero(matrix.strains[:, -1]))
    logger.info("%d strain(s) introduced, %d present at the end",
                len(matrix.records), alive)
    save(args, params, matrix, summary)
    print(f"Total wall time: {time.time() - start_all:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
