import os
import sys

import pytest


# Ensure repo root is on sys.path so tests can import the local `noarb_sabr` package
# regardless of pytest's import mode / rootdir heuristics.
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from noarb_sabr import NoArbSabrModel  # noqa: E402

# Reference parameter set: T, F, alpha, beta, nu, rho
SCENARIO = dict(expiry_time=5.0, forward=0.03, alpha=0.05, beta=0.5, nu=0.3, rho=-0.2)


@pytest.fixture(scope="session")
def scenario_model() -> NoArbSabrModel:
    return NoArbSabrModel(**SCENARIO)
