"""
Immutable option records and the resolution of user-facing options into a hyperparameter grid.

All defaulting happens here, once, before the coordinate ascent runs; the fitting code only ever
receives the frozen records built below.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from .families import Family

@dataclass(frozen=True)
class FitOptions:
    """Settings for the coordinate ascent runs of the single-slab model.

    update_sigma applies to the gaussian family only, optimize_eta to the binomial family only;
    each is ignored for the other family. n0 and sa0 are the degrees of freedom and scale of the
    scaled inverse chi-square prior on sa used when update_sa is set.
    """
    tol: float = 1e-4
    maxiter: int = 10000
    update_sigma: bool = True
    update_sa: bool = True
    optimize_eta: bool = True
    n0: float = 0.0
    sa0: float = 0.0
    initialize_params: bool = True
    n_jobs: int = 1
    verbose: bool = False

    def __post_init__(self):
        if not (np.isfinite(self.tol) and self.tol > 0):
            raise ValueError("tol must be a positive number")
        if not (np.isfinite(self.maxiter) and self.maxiter >= 1):
            raise ValueError("maxiter must be a finite number >= 1")
        object.__setattr__(self, "maxiter", int(self.maxiter))
        if self.n0 < 0 or self.sa0 < 0:
            raise ValueError("n0 and sa0 must be non-negative")
        if int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be >= 1")

@dataclass(frozen=True)
class MixtureOptions:
    """Settings for the mixture-of-variances model.

    q_penalty holds the Dirichlet penalty for the mixture weight update (length K). None means
    one extra pseudo-count on the first component and none on the others.
    """
    tol: float = 1e-4
    maxiter: int = 10000
    update_sigma: bool = True
    update_q: bool = True
    q_penalty: Optional[Tuple[float, ...]] = None
    verbose: bool = False

    def __post_init__(self):
        if not (np.isfinite(self.tol) and self.tol > 0):
            raise ValueError("tol must be a positive number")
        if not (np.isfinite(self.maxiter) and self.maxiter >= 1):
            raise ValueError("maxiter must be a finite number >= 1")
        object.__setattr__(self, "maxiter", int(self.maxiter))
        if self.q_penalty is not None:
            pen = tuple(float(v) for v in np.ravel(self.q_penalty))
            if any(v < 1 for v in pen):
                raise ValueError("q_penalty entries must be >= 1")
            object.__setattr__(self, "q_penalty", pen)

    def penalty(self, K: int) -> np.ndarray:
        if self.q_penalty is None:
            pen = np.ones(K); pen[0] = 2.0
            return pen
        if len(self.q_penalty) != K:
            raise ValueError("q_penalty must have one entry for each mixture component")
        return np.asarray(self.q_penalty, float)

@dataclass(frozen=True)
class HyperparameterGrid:
    """Ordered grid of ns hyperparameter settings (sigma, sa, logodds).

    logodds is in log10 units and is either 1 x ns (same prior for every variable) or p x ns.
    sigma is NaN for the binomial family.
    """
    sigma: np.ndarray
    sa: np.ndarray
    logodds: np.ndarray

    def __post_init__(self):
        sigma = np.atleast_1d(np.asarray(self.sigma, float)).ravel()
        sa = np.atleast_1d(np.asarray(self.sa, float)).ravel()
        logodds = np.asarray(self.logodds, float)
        if logodds.ndim < 2:
            logodds = logodds.reshape(1, -1)
        ns = logodds.shape[1]
        if sigma.shape[0] != ns or sa.shape[0] != ns:
            raise ValueError("sigma, sa and logodds are inconsistent")
        if np.any(sa <= 0):
            raise ValueError("sa must be positive")
        if np.any(np.isfinite(sigma) & (sigma <= 0)):
            raise ValueError("sigma must be positive")
        object.__setattr__(self, "sigma", sigma)
        object.__setattr__(self, "sa", sa)
        object.__setattr__(self, "logodds", logodds)

    @property
    def ns(self) -> int:
        return int(self.logodds.shape[1])

    @property
    def prior_same(self) -> bool:
        return self.logodds.shape[0] == 1

    def check_variables(self, p: int) -> None:
        if not self.prior_same and self.logodds.shape[0] != p:
            raise ValueError("logodds must have one row, or as many rows as X has columns")

    def natural_logodds(self, i: int, p: int) -> np.ndarray:
        """Prior log-odds (natural log) for grid point i as a p-vector."""
        lo = self.logodds[:, i]
        if self.prior_same:
            lo = np.repeat(lo[0], p)
        return np.log(10) * lo

def resolve_options(family: Union[Family, str], n: int, p: int, y: np.ndarray, sigma=None, sa=None,
                    logodds=None, update_sigma: Optional[bool] = None, update_sa: Optional[bool] = None,
                    alpha=None, mu=None, eta=None, optimize_eta: Optional[bool] = None,
                    initialize_params: Optional[bool] = None, tol: float = 1e-4, maxiter: int = 10000,
                    n0: float = 0.0, sa0: float = 0.0, n_jobs: int = 1,
                    verbose: bool = False) -> Tuple[HyperparameterGrid, FitOptions]:
    """Apply the default settings and consistency checks for a variable selection fit.

    sigma defaults to the sample variance of y and is then fitted to the data; a supplied sigma is
    held fixed unless update_sigma says otherwise. sa defaults to 1 and is fitted likewise. The
    default logodds grid is 20 values evenly spaced from -log10(p) to -0.3 and is only available
    when sigma and sa are single values.
    """
    family = Family.coerce(family)
    if sigma is not None:
        if family is Family.BINOMIAL:
            raise ValueError("sigma is not valid with family = binomial")
        sigma = np.atleast_1d(np.asarray(sigma, float)).ravel()
        default_update_sigma = False
    elif family is Family.GAUSSIAN:
        sigma = np.array([float(np.var(y, ddof=1))])
        default_update_sigma = True
    else:
        sigma = np.array([np.nan])
        default_update_sigma = False
    if update_sigma is None:
        update_sigma = default_update_sigma
    elif family is Family.BINOMIAL and update_sigma:
        raise ValueError("update_sigma is not valid with family = binomial")

    if sa is not None:
        sa = np.atleast_1d(np.asarray(sa, float)).ravel()
        default_update_sa = False
    else:
        sa = np.array([1.0])
        default_update_sa = True
    if update_sa is None:
        update_sa = default_update_sa

    if logodds is not None:
        logodds = np.asarray(logodds, float)
    elif sigma.size == 1 and sa.size == 1:
        logodds = np.linspace(-np.log10(p), -0.3, 20)
    else:
        raise ValueError("logodds must be specified")
    if not (logodds.ndim == 2 and logodds.shape[0] == p):
        logodds = logodds.reshape(1, -1)

    ns = max(sigma.size, sa.size, logodds.shape[1])
    if sigma.size == 1:
        sigma = np.repeat(sigma, ns)
    if sa.size == 1:
        sa = np.repeat(sa, ns)
    if sigma.size != ns or sa.size != ns or logodds.shape[1] != ns:
        raise ValueError("sigma, sa and logodds are inconsistent")

    if eta is not None:
        if family is not Family.BINOMIAL:
            raise ValueError("eta is only valid for family = binomial")
        default_optimize_eta = False
    else:
        default_optimize_eta = family is Family.BINOMIAL
    if optimize_eta is None:
        optimize_eta = default_optimize_eta
    elif optimize_eta and family is not Family.BINOMIAL:
        raise ValueError("optimize_eta is only valid for family = binomial")

    if initialize_params is None:
        initialize_params = alpha is None and mu is None and eta is None

    grid = HyperparameterGrid(sigma=sigma, sa=sa, logodds=logodds)
    grid.check_variables(p)
    options = FitOptions(tol=tol, maxiter=maxiter, update_sigma=bool(update_sigma), update_sa=bool(update_sa),
                         optimize_eta=bool(optimize_eta), n0=n0, sa0=sa0,
                         initialize_params=bool(initialize_params), n_jobs=n_jobs, verbose=verbose)
    return grid, options
