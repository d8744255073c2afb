"""
Dense linear algebra kernels and numerically safe scalar helpers.

X is held in single precision (float32) to halve memory for large genotype matrices; every
reduction below accumulates in double precision so the coordinate-ascent quantities stay float64.
"""
from __future__ import annotations
import numpy as np
from scipy.special import expit, log_expit, softmax
from typing import Iterator, Optional

eps = np.finfo(float).eps

def compute_Xb(X: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Compute X @ b.

    Parameters
    ----------
    X : ndarray (n, p), float32 or float64
    b : ndarray (p,)
    Returns
    -------
    ndarray (n,) float64 result of matrix-vector product.
    """
    b = np.asarray(b, np.float64)
    n, p = X.shape
    Xb = np.zeros(n)
    for cols in column_blocks(n, p):
        Xb += X[:, cols] @ b[cols]
    return Xb

def compute_Xty(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Compute X.T @ y as y @ X, so X is never transposed."""
    y = np.asarray(y, np.float64)
    n, p = X.shape
    Xty = np.empty(p)
    for cols in column_blocks(n, p):
        Xty[cols] = y @ X[:, cols]
    return Xty

def diagsq(X: np.ndarray, a: Optional[np.ndarray] = None) -> np.ndarray:
    """Column sums of squares, sum_i a_i * X_ij**2 (a defaults to ones)."""
    if a is None:
        return np.einsum("ij,ij->j", X, X, dtype=np.float64)
    return np.einsum("ij,ij,i->j", X, X, np.asarray(a, np.float64), dtype=np.float64)

def column_blocks(n: int, p: int, nbytes: int = 2**19) -> Iterator[slice]:
    """Slices over the p columns such that an n x block float64 array takes at most nbytes."""
    size = max(1, nbytes // (8 * max(n, 1)))
    for start in range(0, p, size):
        yield slice(start, min(start + size, p))

def var1(X: np.ndarray) -> np.ndarray:
    """Column variances with 1/n normalisation."""
    X = np.asarray(X)
    if X.ndim == 1:
        return float(np.var(X, dtype=np.float64))
    return np.var(X, axis=0, dtype=np.float64)

def betavar(alpha: np.ndarray, mu: np.ndarray, s: np.ndarray) -> np.ndarray:
    """Variance of b_j under q_j = alpha_j N(mu_j, s_j) + (1 - alpha_j) delta_0."""
    return alpha * (s + mu**2) - (alpha * mu)**2

def betavarmix(alpha: np.ndarray, mu: np.ndarray, s: np.ndarray) -> np.ndarray:
    """Variance of b_j when q_j is a mixture over the K columns of alpha, mu and s."""
    return np.sum(alpha * (s + mu**2), axis=1) - np.sum(alpha * mu, axis=1)**2

def sigmoid(x):
    return expit(x)

def logsigmoid(x):
    return log_expit(x)

def logit(x):
    x = np.asarray(x, float)
    return np.log((x + eps) / ((1 - x) + eps))

def slope(eta: np.ndarray) -> np.ndarray:
    """Curvature tanh(eta/2) / (2 eta) of the quadratic logistic bound; 1/4 as eta -> 0."""
    eta = np.abs(np.asarray(eta, float))
    small = eta < 1e-8
    safe = np.where(small, 1.0, eta)
    return np.where(small, 0.25 - eta**2 / 48, np.tanh(safe / 2) / (2 * safe))

def normalizelogweights(logw: np.ndarray) -> np.ndarray:
    """Normalised weights w_i proportional to exp(logw_i), computed stably."""
    return softmax(np.asarray(logw, float).ravel())

def logdet_spd(A: np.ndarray) -> float:
    """log|A| for a symmetric positive definite matrix."""
    sign, ld = np.linalg.slogdet(np.atleast_2d(A))
    if sign <= 0:
        raise ValueError("Matrix is not positive definite")
    return float(ld)
