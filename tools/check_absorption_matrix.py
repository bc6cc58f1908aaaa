"""Run the absorption table self-check.

Run examples:
    python tools/check_absorption_matrix.py
    python tools/check_absorption_matrix.py --table table.npz --reference other.npz
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir)))

from noarb_sabr import DEFAULT_CONSTANTS, check_absorption_matrix, load_absorption_table  # noqa: E402


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--table", default=None, help="Table file; defaults to the process-wide table")
    ap.add_argument("--reference", default=None, help="Second table on the same grid to compare against")
    ap.add_argument("--sigmas", type=float, default=DEFAULT_CONSTANTS.absorption_check_sigmas)
    ap.add_argument("--show", type=int, default=20, help="Number of violations to print")
    args = ap.parse_args()

    logging.basicConfig(level=logging.ERROR)

    table = load_absorption_table(args.table) if args.table else None
    reference = load_absorption_table(args.reference) if args.reference else None
    constants = replace(DEFAULT_CONSTANTS, absorption_check_sigmas=args.sigmas)

    report = check_absorption_matrix(table, constants, reference=reference)
    print(report.summary())
    for v in report.violations[: args.show]:
        print(f"  [{v.kind}] {v.message}")
    raise SystemExit(0 if report.ok else 1)


if __name__ == "__main__":
    main()
