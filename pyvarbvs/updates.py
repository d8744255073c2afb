"""
Coordinate ascent updates for the fully-factorized variational approximation.

Each update changes one variable's variational parameters to their coordinate-wise optimum and
adds the change in its expected effect to the fitted values Xr = X (alpha * mu). Updates within a
sweep are sequentially dependent through Xr.
"""
from __future__ import annotations
import numpy as np
from typing import Sequence

from .linalg import sigmoid, eps

def sweep_order(p: int, iteration: int) -> np.ndarray:
    """Forward pass on odd iterations, backward pass on even ones (iterations count from 1)."""
    if iteration % 2:
        return np.arange(p)
    return np.arange(p - 1, -1, -1)

def varbvs_update(X: np.ndarray, lin, sa: float, logodds: np.ndarray, alpha: np.ndarray, mu: np.ndarray,
                  Xr: np.ndarray, order: Sequence[int]) -> np.ndarray:
    """Run one pass of the spike-and-slab coordinate updates in the given order.

    alpha, mu and Xr are updated in place. lin supplies the effective precision and residual target
    for the outcome family (see families.py).

    Returns
    -------
    ndarray (p,) posterior variances s of the slab components.
    """
    sa_eff = lin.prior_variance(sa)
    s = 1.0 / (lin.precision + 1.0 / sa_eff)
    for j in order:
        x = X[:, j]
        r = alpha[j] * mu[j]
        mu[j] = s[j] * lin.target(j, x, Xr, r)
        alpha[j] = sigmoid(logodds[j] + (np.log(s[j] / sa_eff) + mu[j]**2 / s[j]) / 2)
        Xr += (alpha[j] * mu[j] - r) * x
    return s

def mixture_variances(d: np.ndarray, sigma: float, sa: np.ndarray) -> np.ndarray:
    """Posterior variances s_jk = sigma sa_k / (sa_k d_j + 1); zero for point-mass components."""
    sa = np.asarray(sa, float)
    return sigma * sa[None, :] / (np.outer(d, sa) + 1)

def varbvsmix_update(X: np.ndarray, sigma: float, sa: np.ndarray, q: np.ndarray, xy: np.ndarray,
                     d: np.ndarray, alpha: np.ndarray, mu: np.ndarray, Xr: np.ndarray,
                     order: Sequence[int]) -> np.ndarray:
    """One pass of coordinate updates under the mixture-of-variances prior (alpha, mu p x K, in place)."""
    sa = np.asarray(sa, float)
    slab = sa > 0
    s = mixture_variances(d, sigma, sa)
    logq = np.log(q + eps)
    for j in order:
        x = X[:, j]
        r = np.dot(alpha[j], mu[j])
        t = xy[j] - np.dot(x, Xr) + d[j] * r
        sj = s[j]
        mu[j] = 0.0
        mu[j, slab] = sj[slab] / sigma * t
        L = logq.copy()
        L[slab] += (np.log(sj[slab] / (sigma * sa[slab])) + mu[j, slab]**2 / sj[slab]) / 2
        L = np.exp(L - np.max(L))
        alpha[j] = L / np.sum(L)
        Xr += (np.dot(alpha[j], mu[j]) - r) * x
    return s
