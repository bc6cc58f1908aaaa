"""Tabulated absorption probabilities for the no-arbitrage SABR model.

The table stores, for every node of a five dimensional grid

    (expiry, sigmaI, rho, nu, beta)

the number of paths (out of ``nsim``) of the normalised SABR forward
(F0 = 1, alpha = sigmaI) absorbed at zero before the expiry node. Expiry is the
leading axis so that one simulation per (sigmaI, rho, nu, beta) fills a whole
column of cumulative counts.

Two sources produce tables with identical layout:

- ``build_effective_cev_table`` (built in, used by default): the CEV absorption
  law Q(1 / (2 (1 - beta)), phi / T) evaluated at the SABR distance to the
  boundary, phi = x(z_F)^2 / 2, quantised to counts out of ``nsim``.
- ``tools/simulate_absorption_table.py``: a Monte-Carlo simulation of the SABR
  dynamics, written with ``save_absorption_table``. Point the environment
  variable ``NOARB_SABR_ABSORPTION_TABLE`` at such a file to use it for the
  whole process.

The process-wide table is built (or loaded) once and its arrays are read-only.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from scipy.special import gammaincc

from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .errors import AbsorptionTableError
from .numerics import sabr_j_and_x

logger = logging.getLogger(__name__)

TABLE_VERSION = "1"
ABSORPTION_TABLE_ENV = "NOARB_SABR_ABSORPTION_TABLE"

# Grid axes (all increasing).
TAU_GRID: Tuple[float, ...] = (
    0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0, 2.25, 2.5,
    2.75, 3.0, 3.25, 3.5, 3.75, 4.0, 4.25, 4.5, 4.75, 5.0,
    5.5, 6.0, 6.5, 7.0, 7.5, 8.0, 8.5, 9.0, 9.5, 10.0,
    11.0, 12.0, 13.0, 14.0, 15.0, 17.5, 20.0, 25.0, 30.0,
)
SIGMA_I_GRID: Tuple[float, ...] = (
    0.05, 0.075, 0.1, 0.125, 0.15, 0.18, 0.21, 0.24, 0.27,
    0.3, 0.35, 0.4, 0.45, 0.5, 0.6, 0.7, 0.8, 1.0,
)
RHO_GRID: Tuple[float, ...] = (-0.75, -0.5, -0.25, 0.0, 0.25, 0.5, 0.75)
NU_GRID: Tuple[float, ...] = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8)
BETA_GRID: Tuple[float, ...] = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9)

AXIS_NAMES: Tuple[str, ...] = ("tau", "sigma_i", "rho", "nu", "beta")


def _frozen(values, dtype=float) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class AbsorptionTable:
    """Absorbed-path counts on the (tau, sigma_i, rho, nu, beta) grid."""

    tau: np.ndarray
    sigma_i: np.ndarray
    rho: np.ndarray
    nu: np.ndarray
    beta: np.ndarray
    counts: np.ndarray
    nsim: float
    version: str = TABLE_VERSION
    source: str = "effective-cev"
    metadata: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in AXIS_NAMES:
            axis = _frozen(getattr(self, name))
            if axis.ndim != 1 or axis.size < 2:
                raise AbsorptionTableError(f"axis '{name}' needs at least two nodes")
            if not np.all(np.diff(axis) > 0.0):
                raise AbsorptionTableError(f"axis '{name}' must be strictly increasing")
            object.__setattr__(self, name, axis)

        counts = _frozen(self.counts, dtype=np.int64)
        expected = tuple(getattr(self, name).size for name in AXIS_NAMES)
        if counts.shape != expected:
            raise AbsorptionTableError(f"counts shape {counts.shape} does not match axes {expected}")
        object.__setattr__(self, "counts", counts)

        nsim = float(self.nsim)
        if not np.isfinite(nsim) or nsim <= 0.0:
            raise AbsorptionTableError("nsim must be finite and > 0")
        object.__setattr__(self, "nsim", nsim)

        # The interpolator adds its own anchors at nu = 0 and beta = 1.
        if self.nu[0] <= 0.0:
            raise AbsorptionTableError("nu axis must be strictly positive")
        if self.beta[0] <= 0.0 or self.beta[-1] >= 1.0:
            raise AbsorptionTableError("beta axis must lie inside (0, 1)")

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.counts.shape

    def probability(self, index: Tuple[int, int, int, int, int]) -> float:
        """Tabulated absorption probability at a grid node."""
        return float(self.counts[index]) / self.nsim


def build_effective_cev_table(
    constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
    *,
    tau: Tuple[float, ...] = TAU_GRID,
    sigma_i: Tuple[float, ...] = SIGMA_I_GRID,
    rho: Tuple[float, ...] = RHO_GRID,
    nu: Tuple[float, ...] = NU_GRID,
    beta: Tuple[float, ...] = BETA_GRID,
) -> AbsorptionTable:
    """Build the default table from the CEV absorption law.

    For the normalised forward F0 = 1 with alpha = sigmaI the CEV distance to
    zero is z_F = 1 / (sigmaI (1 - beta)). The SABR distance x(z_F) replaces z_F
    so that vol-of-vol and correlation move the boundary closer or further away,
    and the absorbed fraction by time T is Q(1 / (2 (1 - beta)), x^2 / (2 T)).
    """
    t = np.asarray(tau, dtype=float)[:, None, None, None, None]
    s = np.asarray(sigma_i, dtype=float)[None, :, None, None, None]
    r = np.asarray(rho, dtype=float)[None, None, :, None, None]
    n = np.asarray(nu, dtype=float)[None, None, None, :, None]
    b = np.asarray(beta, dtype=float)[None, None, None, None, :]

    one_m_beta = 1.0 - b
    z_f = 1.0 / (s * one_m_beta)
    _, x = sabr_j_and_x(z_f, r, n)
    phi = 0.5 * x * x
    d0 = gammaincc(0.5 / one_m_beta, phi / t)
    counts = np.rint(d0 * constants.nsim).astype(np.int64)

    return AbsorptionTable(
        tau=tau,
        sigma_i=sigma_i,
        rho=rho,
        nu=nu,
        beta=beta,
        counts=counts,
        nsim=constants.nsim,
        source="effective-cev",
    )


def save_absorption_table(path: str | os.PathLike, table: AbsorptionTable) -> None:
    """Write a table to a compressed ``.npz`` file."""
    np.savez_compressed(
        path,
        tau=table.tau,
        sigma_i=table.sigma_i,
        rho=table.rho,
        nu=table.nu,
        beta=table.beta,
        counts=table.counts,
        nsim=np.array(table.nsim),
        version=np.array(table.version),
        source=np.array(table.source),
    )


def load_absorption_table(path: str | os.PathLike) -> AbsorptionTable:
    """Read a table written by :func:`save_absorption_table`."""
    with np.load(path, allow_pickle=False) as data:
        missing = [k for k in (*AXIS_NAMES, "counts", "nsim") if k not in data.files]
        if missing:
            raise AbsorptionTableError(f"absorption table {path} is missing {missing}")
        version = str(data["version"]) if "version" in data.files else TABLE_VERSION
        if version != TABLE_VERSION:
            raise AbsorptionTableError(f"absorption table {path} has version {version}, expected {TABLE_VERSION}")
        return AbsorptionTable(
            tau=data["tau"],
            sigma_i=data["sigma_i"],
            rho=data["rho"],
            nu=data["nu"],
            beta=data["beta"],
            counts=data["counts"],
            nsim=float(data["nsim"]),
            version=version,
            source=str(data["source"]) if "source" in data.files else "file",
            metadata={"path": os.fspath(path)},
        )


_TABLE_LOCK = threading.Lock()
_DEFAULT_TABLE: Optional[AbsorptionTable] = None


def default_absorption_table() -> AbsorptionTable:
    """Process-wide table, built or loaded on first use."""
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        with _TABLE_LOCK:
            if _DEFAULT_TABLE is None:
                path = os.environ.get(ABSORPTION_TABLE_ENV)
                if path:
                    table = load_absorption_table(path)
                    logger.info("Loaded absorption table from %s (source=%s, shape=%s)", path, table.source, table.shape)
                else:
                    table = build_effective_cev_table()
                    logger.debug("Built effective-CEV absorption table, shape=%s", table.shape)
                _DEFAULT_TABLE = table
    return _DEFAULT_TABLE


# --------------------------------------------------------------------------- #
# Consistency checks
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class AbsorptionViolation:
    kind: str
    index: Tuple[int, ...]
    message: str


@dataclass(frozen=True)
class AbsorptionMatrixReport:
    """Outcome of :func:`check_absorption_matrix`."""

    violations: Tuple[AbsorptionViolation, ...]
    checked: int
    nsim: float
    source: str

    @property
    def ok(self) -> bool:
        return not self.violations

    def summary(self) -> str:
        status = "ok" if self.ok else f"{len(self.violations)} violation(s)"
        return f"absorption matrix ({self.source}, nsim={self.nsim:g}): {self.checked} checks, {status}"


def _binomial_stderr(counts: np.ndarray, nsim: float) -> np.ndarray:
    p = np.clip(counts / nsim, 0.0, 1.0)
    return np.sqrt(nsim * p * (1.0 - p))


def _monotone_violations(counts: np.ndarray, axis: int, nsim: float, sigmas: float) -> list[AbsorptionViolation]:
    n = counts.shape[axis]
    lo = np.take(counts, np.arange(n - 1), axis=axis)
    hi = np.take(counts, np.arange(1, n), axis=axis)
    # difference of two estimates, each with its own sampling error
    stderr = np.sqrt(2.0) * _binomial_stderr(0.5 * (lo + hi), nsim)
    tol = sigmas * np.maximum(stderr, 1.0)
    drop = lo - hi
    out = []
    name = AXIS_NAMES[axis]
    for idx in np.argwhere(drop > tol):
        idx_t = tuple(int(i) for i in idx)
        out.append(
            AbsorptionViolation(
                kind=name,
                index=idx_t,
                message=(
                    f"count decreases along {name} at {idx_t}: {lo[idx_t]:.0f} -> {hi[idx_t]:.0f}"
                    f" (tolerance {tol[idx_t]:.1f})"
                ),
            )
        )
    return out


def check_absorption_matrix(
    table: Optional[AbsorptionTable] = None,
    constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
    *,
    reference: Optional[AbsorptionTable] = None,
) -> AbsorptionMatrixReport:
    """Check a table against the sampling-error bounds of its simulation.

    - every count lies in [0, nsim];
    - absorption does not decrease with expiry nor with sigmaI, up to
      ``constants.absorption_check_sigmas`` binomial standard errors;
    - if `reference` is given (same grid), both estimates agree within the same
      number of standard errors of their difference.
    """
    table = default_absorption_table() if table is None else table
    counts = table.counts.astype(float)
    nsim = table.nsim
    sigmas = float(constants.absorption_check_sigmas)

    violations: list[AbsorptionViolation] = []
    checked = counts.size

    for idx in np.argwhere((counts < 0.0) | (counts > nsim)):
        idx_t = tuple(int(i) for i in idx)
        violations.append(
            AbsorptionViolation("range", idx_t, f"count {counts[idx_t]:.0f} at {idx_t} outside [0, {nsim:g}]")
        )

    for axis in (0, 1):
        violations.extend(_monotone_violations(counts, axis, nsim, sigmas))
        checked += counts.size // counts.shape[axis] * (counts.shape[axis] - 1)

    if reference is not None:
        if reference.shape != table.shape:
            raise ValueError(f"reference table shape {reference.shape} differs from {table.shape}")
        p1 = counts / nsim
        p2 = reference.counts.astype(float) / reference.nsim
        var = p1 * (1.0 - p1) / nsim + p2 * (1.0 - p2) / reference.nsim
        tol = sigmas * np.maximum(np.sqrt(var), 1.0 / min(nsim, reference.nsim))
        for idx in np.argwhere(np.abs(p1 - p2) > tol):
            idx_t = tuple(int(i) for i in idx)
            violations.append(
                AbsorptionViolation(
                    "reference",
                    idx_t,
                    f"probability {p1[idx_t]:.6g} at {idx_t} differs from reference {p2[idx_t]:.6g}",
                )
            )
        checked += counts.size

    report = AbsorptionMatrixReport(
        violations=tuple(violations),
        checked=int(checked),
        nsim=nsim,
        source=table.source,
    )
    if not report.ok:
        logger.warning(report.summary())
        for v in report.violations[:10]:
            logger.warning("  %s", v.message)
    return report
