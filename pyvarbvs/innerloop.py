"""
Coordinate ascent for one fixed hyperparameter setting.

Iterates full sweeps of the coordinate updates until the largest change in the posterior inclusion
probabilities falls below tol, the lower bound stops increasing, or maxiter sweeps have run.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np

from .bounds import variational_lower_bound
from .config import FitOptions
from .families import Family, make_linearizer
from .linalg import compute_Xb
from .updates import sweep_order, varbvs_update

_LOGGER = logging.getLogger(__name__)

class TerminalState(Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    MAXITER_REACHED = "maxiter_reached"

@dataclass(frozen=True)
class GridPointFit:
    """Converged variational parameters for one hyperparameter setting.

    logw is the final lower bound; logw_trace and err_trace hold the lower bound and the largest
    change in alpha at every sweep. safeguard is True when the run ended because a sweep decreased
    the lower bound and its changes were discarded.
    """
    logw: float
    sigma: float
    sa: float
    alpha: np.ndarray
    mu: np.ndarray
    s: np.ndarray
    eta: Optional[np.ndarray]
    iterations: int
    state: TerminalState
    logw_trace: np.ndarray
    err_trace: np.ndarray
    safeguard: bool = False

    @property
    def converged(self) -> bool:
        return self.state is TerminalState.CONVERGED

def _frozen(a: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if a is None:
        return None
    a = np.array(a, dtype=float, copy=True)
    a.setflags(write=False)
    return a

def print_progress_header(outer: bool = False) -> None:
    if outer:
        print("-iteration-   variational    max.   incl variance params")
        print("outer inner   lower bound  change   vars   sigma      sa")
    else:
        print("        variational    max.   incl variance params")
        print(" iter   lower bound  change   vars   sigma      sa")

def _print_progress(outer_iter: Optional[int], it: int, logw: float, err: float, nincl: float,
                    sigma: float, sa: float) -> None:
    prefix = f"{outer_iter:4d} " if outer_iter is not None else ""
    sig = f"{sigma:0.1e}" if np.isfinite(sigma) else "     NA"
    print(f"{prefix}{it:4d} {logw:+13.6e} {err:0.1e} {nincl:7.2f} {sig} {sa:0.1e}")

def fit_grid_point(X: np.ndarray, y: np.ndarray, family: Union[Family, str], sigma: Optional[float], sa: float,
                   logodds: np.ndarray, alpha: np.ndarray, mu: np.ndarray, eta: Optional[np.ndarray] = None,
                   options: Optional[FitOptions] = None, Z: Optional[np.ndarray] = None, logdet_ztz: float = 0.0,
                   outer_iter: Optional[int] = None) -> GridPointFit:
    """Run coordinate ascent to convergence for a single setting of (sigma, sa, logodds).

    Parameters
    ----------
    X : ndarray (n, p), covariate-adjusted for the gaussian family
    y : ndarray (n,)
    sigma : residual variance (gaussian only; ignored for binomial)
    sa : prior variance of the slab (scaled by sigma for the gaussian family)
    logodds : ndarray (p,) or scalar, prior log-odds of inclusion in natural units
    alpha, mu : ndarray (p,) starting values; copied, never modified
    eta : ndarray (n,) starting bound locations (binomial only, default ones)
    Z : ndarray (n, m) covariates with intercept column (binomial only)
    logdet_ztz : log|Z'Z| from covariate adjustment (gaussian only)
    """
    family = Family.coerce(family)
    options = FitOptions() if options is None else options
    n, p = X.shape
    logodds = np.asarray(logodds, float)
    if logodds.size == 1:
        logodds = np.full(p, logodds.item())
    alpha = np.array(alpha, dtype=float, copy=True)
    mu = np.array(mu, dtype=float, copy=True)
    if alpha.shape != (p,) or mu.shape != (p,):
        raise ValueError("alpha and mu must have one entry for each variable (column of X)")
    gaussian = family is Family.GAUSSIAN
    update_sigma = options.update_sigma and gaussian
    optimize_eta = options.optimize_eta and not gaussian
    sa = float(sa); tol = options.tol; maxiter = options.maxiter
    lin = make_linearizer(family, X, y, sigma=sigma, eta=eta, Z=Z, logdet_ztz=logdet_ztz)

    def slab_variances(lin, sa):
        return 1.0 / (lin.precision + 1.0 / lin.prior_variance(sa))

    s = slab_variances(lin, sa)
    Xr = compute_Xb(X, alpha * mu)
    logw = np.zeros(maxiter); err = np.zeros(maxiter)
    state = TerminalState.RUNNING; safeguard = False
    it = 0
    for it in range(1, maxiter + 1):
        alpha0 = alpha.copy(); mu0 = mu.copy(); s0 = s; Xr0 = Xr.copy(); lin0 = lin; sa_prev = sa
        logw0 = variational_lower_bound(lin, Xr, alpha, mu, s, sa, logodds)

        if optimize_eta:
            lin = lin.with_eta(X, lin.update_eta(X, alpha, mu, s, Xr))
        s = varbvs_update(X, lin, sa, logodds, alpha, mu, Xr, sweep_order(p, it))
        logw[it - 1] = variational_lower_bound(lin, Xr, alpha, mu, s, sa, logodds)

        if update_sigma:
            lin = lin.with_sigma(lin.estimate_sigma(Xr, alpha, mu, s, sa))
            s = slab_variances(lin, sa)
        if options.update_sa:
            den = options.n0 + lin.sa_scale * np.sum(alpha)
            if den > 0:
                sa = float((options.sa0 * options.n0 + np.dot(alpha, s + mu**2)) / den)
                s = slab_variances(lin, sa)

        err[it - 1] = np.max(np.abs(alpha - alpha0)) if p > 0 else 0.0
        if options.verbose:
            _print_progress(outer_iter, it, logw[it - 1], err[it - 1], float(np.sum(alpha)),
                            getattr(lin, "sigma", np.nan), sa)
        if logw[it - 1] < logw0:
            _LOGGER.debug("lower bound decreased from %.8g to %.8g at iteration %d; reverting sweep",
                          logw0, logw[it - 1], it)
            logw[it - 1] = logw0; err[it - 1] = 0.0
            alpha = alpha0; mu = mu0; s = s0; Xr = Xr0; lin = lin0; sa = sa_prev
            state = TerminalState.CONVERGED; safeguard = True
            break
        elif err[it - 1] < tol:
            state = TerminalState.CONVERGED
            break
    else:
        state = TerminalState.MAXITER_REACHED
        _LOGGER.debug("maximum number of iterations (%d) reached; max change in alpha %.3g",
                      maxiter, err[maxiter - 1])

    return GridPointFit(logw=float(logw[it - 1]), sigma=float(getattr(lin, "sigma", np.nan)), sa=sa,
                        alpha=_frozen(alpha), mu=_frozen(mu), s=_frozen(s),
                        eta=_frozen(getattr(lin, "eta", None)), iterations=it, state=state,
                        logw_trace=_frozen(logw[:it]), err_trace=_frozen(err[:it]), safeguard=safeguard)
