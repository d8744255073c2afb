"""
Variational lower bound (ELBO) on the marginal log-likelihood.

The bound splits into a likelihood term (family specific), the expected log prior of the
inclusion indicators (int_gamma) and the negative KL divergence of the coefficients from their
spike-and-slab prior (int_klbeta). The mixture-prior variant has its own bound.
"""
from __future__ import annotations
import numpy as np
from typing import Optional

from .linalg import betavar, betavarmix, logsigmoid, eps

def int_linear(Xr: np.ndarray, d: np.ndarray, y: np.ndarray, sigma: float, alpha: np.ndarray,
               mu: np.ndarray, s: np.ndarray) -> float:
    """Expected Gaussian log-likelihood under the fully-factorized approximation."""
    n = y.shape[0]
    return float(-n / 2 * np.log(2 * np.pi * sigma) - np.sum((y - Xr)**2) / (2 * sigma)
                 - np.dot(d, betavar(alpha, mu, s)) / (2 * sigma))

def int_gamma(logodds: np.ndarray, alpha: np.ndarray) -> float:
    """Expected log prior of the inclusion indicators; logodds in natural units."""
    return float(np.sum((alpha - 1) * logodds + logsigmoid(logodds)))

def int_klbeta(alpha: np.ndarray, mu: np.ndarray, s: np.ndarray, sa: float) -> float:
    """Negative KL divergence between q(b, gamma) and the spike-and-slab prior with slab variance sa."""
    return float((np.sum(alpha) + np.dot(alpha, np.log(s / sa)) - np.dot(alpha, s + mu**2) / sa) / 2
                 - np.dot(alpha, np.log(alpha + eps)) - np.dot(1 - alpha, np.log(1 - alpha + eps)))

def int_logit(y: np.ndarray, eta: np.ndarray, u: np.ndarray, Z: np.ndarray, S: np.ndarray,
              logdet_S: float, yhat: np.ndarray, xdx: np.ndarray, alpha: np.ndarray, mu: np.ndarray,
              s: np.ndarray, Xr: np.ndarray) -> float:
    """Expected Jaakkola-Jordan bound on the logistic log-likelihood.

    The covariate coefficients (columns of Z, intercept included) are integrated out under a flat
    prior, which contributes log|S|/2 and the two quadratic forms in S.

    Parameters
    ----------
    y : ndarray (n,) binary outcome
    eta : ndarray (n,) bound locations
    u : ndarray (n,) curvatures slope(eta)
    Z : ndarray (n, m) covariates, first column the intercept
    S : ndarray (m, m) inverse of Z' U Z
    yhat : ndarray (n,) adjusted response (y - 1/2) - U Z S Z' (y - 1/2)
    xdx : ndarray (p,) diagonal of X' Dhat X
    """
    a = Z.T @ (y - 0.5)
    uXr = u * Xr
    b = Z.T @ uXr
    return float(np.sum(logsigmoid(eta)) + np.dot(eta, u * eta - 1) / 2 + logdet_S / 2
                 + a @ S @ a / 2 + np.dot(yhat, Xr) - np.dot(Xr, uXr) / 2 + b @ S @ b / 2
                 - np.dot(xdx, betavar(alpha, mu, s)) / 2)

def variational_lower_bound(lin, Xr: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray,
                            sa: float, logodds: np.ndarray) -> float:
    """Full ELBO for one hyperparameter setting given a family linearizer."""
    return (lin.expected_loglik(Xr, alpha, mu, s) + int_gamma(logodds, alpha)
            + int_klbeta(alpha, mu, s, lin.prior_variance(sa)))

def varbvsmix_lower_bound(Xr: np.ndarray, d: np.ndarray, y: np.ndarray, sigma: float, sa: np.ndarray,
                          q: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray,
                          logdet_ztz: float = 0.0, q_penalty: Optional[np.ndarray] = None) -> float:
    """ELBO for the mixture-of-variances prior; components with sa_k == 0 are point masses at zero."""
    n = y.shape[0]
    I = (-n / 2 * np.log(2 * np.pi * sigma) - logdet_ztz / 2
         - (np.sum((y - Xr)**2) + np.dot(d, betavarmix(alpha, mu, s))) / (2 * sigma))
    for k in range(len(sa)):
        ak = alpha[:, k]
        I += np.sum(ak) * np.log(q[k] + eps) - np.dot(ak, np.log(ak + eps))
        if sa[k] > 0:
            sk = s[:, k]; vk = sigma * sa[k]
            I += (np.sum(ak) + np.dot(ak, np.log(sk / vk)) - np.dot(ak, sk + mu[:, k]**2) / vk) / 2
    if q_penalty is not None:
        I += float(np.sum((np.asarray(q_penalty, float) - 1) * np.log(q + eps)))
    return float(I)
