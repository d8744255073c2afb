"""
Fit the variational approximation at every point of a hyperparameter grid.

Grid points are independent: each run reads X, y and Z and owns its own slice of the variational
parameters, so the runs of a phase can be spread over worker processes and gathered in grid order.
"""
from __future__ import annotations
import logging
import multiprocessing as mp
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from .config import FitOptions, HyperparameterGrid
from .families import Family
from .innerloop import GridPointFit, TerminalState, fit_grid_point, print_progress_header

_LOGGER = logging.getLogger(__name__)

@dataclass(frozen=True)
class GridFit:
    """Per-grid-point results stacked column-wise (alpha, mu, s are p x ns; eta is n x ns)."""
    logw: np.ndarray
    sigma: np.ndarray
    sa: np.ndarray
    alpha: np.ndarray
    mu: np.ndarray
    s: np.ndarray
    eta: Optional[np.ndarray]
    iterations: np.ndarray
    states: Tuple[TerminalState, ...]
    fits: Tuple[GridPointFit, ...]

    @classmethod
    def from_fits(cls, fits: List[GridPointFit]) -> "GridFit":
        eta = None
        if fits[0].eta is not None:
            eta = np.column_stack([f.eta for f in fits])
        return cls(logw=np.array([f.logw for f in fits]), sigma=np.array([f.sigma for f in fits]),
                   sa=np.array([f.sa for f in fits]), alpha=np.column_stack([f.alpha for f in fits]),
                   mu=np.column_stack([f.mu for f in fits]), s=np.column_stack([f.s for f in fits]),
                   eta=eta, iterations=np.array([f.iterations for f in fits], dtype=int),
                   states=tuple(f.state for f in fits), fits=tuple(fits))

    @property
    def ns(self) -> int:
        return len(self.fits)

    @property
    def best(self) -> int:
        """Index of the grid point with the largest lower bound."""
        return int(np.argmax(self.logw))

def random_init(n: int, p: int, ns: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Random starting values: alpha uniform with columns normalised to sum to 1, mu standard normal, eta ones."""
    alpha = rng.random((p, ns))
    alpha = alpha / np.sum(alpha, axis=0, keepdims=True)
    mu = rng.standard_normal((p, ns))
    return alpha, mu, np.ones((n, ns))

def _broadcast_init(value, rows: int, ns: int, name: str, what: str) -> np.ndarray:
    value = np.asarray(value, float)
    if value.ndim == 1:
        value = value[:, None]
    if value.ndim != 2 or value.shape[0] != rows:
        raise ValueError(f"{name} must have as many rows as {what}")
    if value.shape[1] == 1:
        value = np.repeat(value, ns, axis=1)
    if value.shape[1] != ns:
        raise ValueError(f"{name} must have one column, or one column for each hyperparameter setting")
    return value

def _grid_point_worker(args) -> GridPointFit:
    return fit_grid_point(*args)

def _run_phase(X, y, family: Family, grid: HyperparameterGrid, alpha: np.ndarray, mu: np.ndarray,
               eta: Optional[np.ndarray], options: FitOptions, Z, logdet_ztz: float) -> List[GridPointFit]:
    p = X.shape[1]; ns = grid.ns
    tasks = [(X, y, family, grid.sigma[i], grid.sa[i], grid.natural_logodds(i, p), alpha[:, i], mu[:, i],
              None if eta is None else eta[:, i], options, Z, logdet_ztz, i + 1 if ns > 1 else None)
             for i in range(ns)]
    if options.n_jobs > 1 and ns > 1:
        ctx = mp.get_context("spawn")
        with ProcessPoolExecutor(max_workers=min(options.n_jobs, ns), mp_context=ctx) as pool:
            return list(pool.map(_grid_point_worker, tasks))
    return [_grid_point_worker(t) for t in tasks]

def run_grid(X: np.ndarray, y: np.ndarray, family: Union[Family, str], grid: HyperparameterGrid,
             alpha: Optional[np.ndarray] = None, mu: Optional[np.ndarray] = None, eta: Optional[np.ndarray] = None,
             options: Optional[FitOptions] = None, Z: Optional[np.ndarray] = None, logdet_ztz: float = 0.0,
             rng: Union[None, int, np.random.Generator] = None) -> GridFit:
    """Compute the variational approximation for every hyperparameter setting in grid.

    When there is more than one setting and options.initialize_params is set, every setting is
    first fitted from its own random start; the parameters (alpha, mu, eta) of the setting with the
    largest lower bound then become the common starting point of the final fit at every setting.
    Otherwise the final fits start directly from the supplied (or random) values.

    Parameters
    ----------
    X : ndarray (n, p), already adjusted for covariates (gaussian family)
    y : ndarray (n,)
    grid : HyperparameterGrid with ns settings
    alpha, mu : ndarray (p,) or (p, ns), optional starting values
    eta : ndarray (n,) or (n, ns), optional starting bound locations (binomial only)
    rng : seed or Generator for the random starting values
    Returns
    -------
    GridFit with one column per setting.
    """
    family = Family.coerce(family)
    options = FitOptions() if options is None else options
    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)
    if np.ndim(X) != 2:
        raise ValueError("X must be a matrix")
    n, p = X.shape
    y = np.asarray(y, float).ravel()
    if y.shape[0] != n:
        raise ValueError("Inputs X and y do not match.")
    grid.check_variables(p)
    ns = grid.ns
    if family is Family.GAUSSIAN:
        if not np.all(np.isfinite(grid.sigma)):
            raise ValueError("gaussian family requires a residual variance at every grid point")
        if eta is not None:
            raise ValueError("eta is only valid for family = binomial")
    if Z is not None and np.shape(Z)[0] != n:
        raise ValueError("Inputs X and Z do not match.")

    alpha0, mu0, eta0 = random_init(n, p, ns, rng)
    alpha = alpha0 if alpha is None else _broadcast_init(alpha, p, ns, "alpha", "X has columns")
    mu = mu0 if mu is None else _broadcast_init(mu, p, ns, "mu", "X has columns")
    if family is Family.BINOMIAL:
        eta = eta0 if eta is None else _broadcast_init(eta, n, ns, "eta", "X")
    else:
        eta = None

    if ns > 1 and options.initialize_params:
        _LOGGER.info("Finding best initialization for %d combinations of hyperparameters.", ns)
        if options.verbose:
            print(f"Finding best initialization for {ns} combinations of hyperparameters.")
            print_progress_header(outer=True)
        fits = _run_phase(X, y, family, grid, alpha, mu, eta, options, Z, logdet_ztz)
        i = int(np.argmax([f.logw for f in fits]))
        _LOGGER.debug("initialization taken from grid point %d (logw = %.6g)", i, fits[i].logw)
        alpha = np.repeat(np.asarray(fits[i].alpha)[:, None], ns, axis=1)
        mu = np.repeat(np.asarray(fits[i].mu)[:, None], ns, axis=1)
        if eta is not None:
            eta = np.repeat(np.asarray(fits[i].eta)[:, None], ns, axis=1)
        grid = HyperparameterGrid(sigma=np.array([f.sigma for f in fits]), sa=np.array([f.sa for f in fits]),
                                  logodds=grid.logodds)

    _LOGGER.info("Computing marginal likelihood for %d combinations of hyperparameters.", ns)
    if options.verbose:
        if ns > 1:
            print(f"Computing marginal likelihood for {ns} combinations of hyperparameters.")
        print_progress_header(outer=ns > 1)
    fits = _run_phase(X, y, family, grid, alpha, mu, eta, options, Z, logdet_ztz)
    nmax = sum(f.state is TerminalState.MAXITER_REACHED for f in fits)
    if nmax:
        _LOGGER.debug("%d of %d grid points stopped at maxiter", nmax, ns)
    return GridFit.from_fits(fits)
