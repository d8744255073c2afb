"""
Coordinate ascent for linear regression with a mixture-of-normals prior on the coefficients.

The prior variances sa_1..sa_K are fixed; each coefficient is assigned to one component by a
categorical variational factor. A component with sa_k = 0 is a point mass at zero (the "spike").
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from .bounds import varbvsmix_lower_bound
from .config import MixtureOptions
from .innerloop import TerminalState, _frozen
from .linalg import betavarmix, compute_Xb, compute_Xty, diagsq
from .updates import mixture_variances, sweep_order, varbvsmix_update

_LOGGER = logging.getLogger(__name__)

@dataclass(frozen=True)
class MixtureFit:
    logw: np.ndarray
    err: np.ndarray
    sigma: float
    q: np.ndarray
    alpha: np.ndarray
    mu: np.ndarray
    s: np.ndarray
    iterations: int
    state: TerminalState
    safeguard: bool = False

    @property
    def converged(self) -> bool:
        return self.state is TerminalState.CONVERGED

def run_mixture(X: np.ndarray, y: np.ndarray, sa, q: Optional[np.ndarray] = None, alpha: Optional[np.ndarray] = None,
                mu: Optional[np.ndarray] = None, sigma: Optional[float] = None,
                options: Optional[MixtureOptions] = None, logdet_ztz: float = 0.0,
                rng: Union[None, int, np.random.Generator] = None) -> MixtureFit:
    """Fit the mixture-prior variational approximation.

    Parameters
    ----------
    X : ndarray (n, p), already adjusted for covariates
    y : ndarray (n,), already adjusted for covariates
    sa : sequence of K prior variances (in units of sigma); zero entries are spikes
    q : ndarray (K,), starting mixture weights (default equal)
    alpha, mu : ndarray (p, K), starting values (default random)
    sigma : starting residual variance (default sample variance of y)
    Returns
    -------
    MixtureFit with the lower bound and max change in alpha at every iteration.
    """
    options = MixtureOptions() if options is None else options
    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)
    if np.ndim(X) != 2:
        raise ValueError("X must be a matrix")
    n, p = X.shape
    y = np.asarray(y, float).ravel()
    if y.shape[0] != n:
        raise ValueError("Inputs X and y do not match.")
    sa = np.atleast_1d(np.asarray(sa, float)).ravel()
    K = sa.size
    if np.any(sa < 0) or not np.all(np.isfinite(sa)):
        raise ValueError("sa must be finite and non-negative")
    slab = sa > 0
    if sigma is None:
        sigma = float(np.var(y, ddof=1))
    sigma = float(sigma)
    if not (np.isfinite(sigma) and sigma > 0):
        raise ValueError("sigma must be positive")

    if q is None:
        q = np.ones(K) / K
    q = np.asarray(q, float).ravel()
    if q.size != K or np.any(q < 0) or np.sum(q) <= 0:
        raise ValueError("q must be non-negative with one entry for each mixture component")
    q = q / np.sum(q)
    if alpha is None:
        alpha = rng.random((p, K))
        alpha = alpha / np.sum(alpha, axis=1, keepdims=True)
    else:
        alpha = np.array(alpha, dtype=float, copy=True)
        if alpha.shape != (p, K):
            raise ValueError("alpha must have one row for each variable and one column for each mixture component")
    if mu is None:
        mu = rng.standard_normal((p, K))
    else:
        mu = np.array(mu, dtype=float, copy=True)
        if mu.shape != (p, K):
            raise ValueError("mu must have one row for each variable and one column for each mixture component")
    mu[:, ~slab] = 0.0
    penalty = options.penalty(K) if options.update_q else None

    xy = compute_Xty(X, y)
    d = diagsq(X)
    Xr = compute_Xb(X, np.sum(alpha * mu, axis=1))
    s = mixture_variances(d, sigma, sa)

    def bound():
        return varbvsmix_lower_bound(Xr, d, y, sigma, sa, q, alpha, mu, s, logdet_ztz=logdet_ztz, q_penalty=penalty)

    maxiter = options.maxiter
    logw = np.zeros(maxiter); err = np.zeros(maxiter)
    state = TerminalState.RUNNING; safeguard = False
    it = 0
    for it in range(1, maxiter + 1):
        alpha0 = alpha.copy(); mu0 = mu.copy(); s0 = s; Xr0 = Xr.copy(); sigma0 = sigma; q0 = q
        logw0 = bound()

        s = varbvsmix_update(X, sigma, sa, q, xy, d, alpha, mu, Xr, sweep_order(p, it))

        if options.update_sigma:
            num = (np.sum((y - Xr)**2) + np.dot(d, betavarmix(alpha, mu, s))
                   + np.sum(np.sum(alpha[:, slab] * (s[:, slab] + mu[:, slab]**2), axis=0) / sa[slab]))
            sigma = float(num / (n + np.sum(alpha[:, slab])))
            s = mixture_variances(d, sigma, sa)
        if options.update_q:
            q = np.sum(alpha, axis=0) + penalty - 1
            q = q / np.sum(q)

        logw[it - 1] = bound()
        err[it - 1] = np.max(np.abs(alpha - alpha0)) if p > 0 else 0.0
        if options.verbose:
            print(f"{it:4d} {logw[it - 1]:+13.6e} {err[it - 1]:0.1e} {sigma:0.1e} "
                  + " ".join(f"{v:0.3f}" for v in q))
        if logw[it - 1] < logw0:
            _LOGGER.debug("lower bound decreased from %.8g to %.8g at iteration %d; reverting sweep",
                          logw0, logw[it - 1], it)
            logw[it - 1] = logw0; err[it - 1] = 0.0
            alpha = alpha0; mu = mu0; s = s0; Xr = Xr0; sigma = sigma0; q = q0
            state = TerminalState.CONVERGED; safeguard = True
            break
        elif err[it - 1] < options.tol:
            state = TerminalState.CONVERGED
            break
    else:
        state = TerminalState.MAXITER_REACHED
        _LOGGER.debug("maximum number of iterations (%d) reached", maxiter)

    return MixtureFit(logw=_frozen(logw[:it]), err=_frozen(err[:it]), sigma=sigma, q=_frozen(q),
                      alpha=_frozen(alpha), mu=_frozen(mu), s=_frozen(s), iterations=it, state=state,
                      safeguard=safeguard)
