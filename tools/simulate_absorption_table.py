"""Write a Monte-Carlo absorption table for the no-arbitrage SABR model.

The table can be used in place of the built-in one:

    python tools/simulate_absorption_table.py --nsim 100000 --output table.npz
    NOARB_SABR_ABSORPTION_TABLE=table.npz python run_demo.py
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir)))

from noarb_sabr.absorption_table import check_absorption_matrix, save_absorption_table  # noqa: E402
from noarb_sabr.simulation import simulate_absorption_table  # noqa: E402

logger = logging.getLogger("simulate_absorption_table")


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--output", required=True, help="Path of the .npz table to write")
    ap.add_argument("--nsim", type=int, default=20000)
    ap.add_argument("--steps-per-year", type=int, default=200)
    ap.add_argument("--chunk", type=int, default=50000)
    ap.add_argument("--seed", type=int, default=2025)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    t0 = time.perf_counter()
    table = simulate_absorption_table(
        args.nsim, steps_per_year=args.steps_per_year, seed=args.seed, chunk=args.chunk
    )
    save_absorption_table(args.output, table)
    logger.info("wrote %s in %.0fs", args.output, time.perf_counter() - t0)
    print(check_absorption_matrix(table).summary())


if __name__ == "__main__":
    main()
