"""
Outcome families and their likelihood linearizers.

Each linearizer turns the current fit into the two per-variable quantities the coordinate update
needs: an effective precision and an effective residual target. For the Gaussian family these are
exact. For the binomial family the logistic likelihood is replaced by the Jaakkola-Jordan quadratic
bound at locations eta, after which the update has the same form with the curvatures slope(eta)
taking the place of 1/sigma. The covariates of the binomial model (intercept included) are
integrated out inside the linearizer.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

import numpy as np
from scipy import linalg as sla

from .linalg import column_blocks, compute_Xty, diagsq, betavar, slope, logdet_spd
from .bounds import int_linear, int_logit

class Family(Enum):
    GAUSSIAN = "gaussian"
    BINOMIAL = "binomial"

    @classmethod
    def coerce(cls, family: Union["Family", str]) -> "Family":
        if isinstance(family, cls):
            return family
        try:
            return cls(str(family).lower())
        except ValueError:
            raise ValueError("family must be gaussian or binomial") from None

@dataclass(frozen=True)
class GaussianLinearizer:
    """Exact linearization of the Gaussian likelihood with residual variance sigma.

    The slab variance is sigma * sa, so sa is the prior variance in units of the residual variance.
    """
    y: np.ndarray
    sigma: float
    xy: np.ndarray
    d: np.ndarray
    logdet_ztz: float = 0.0
    family = Family.GAUSSIAN

    @classmethod
    def from_data(cls, X: np.ndarray, y: np.ndarray, sigma: float, logdet_ztz: float = 0.0) -> "GaussianLinearizer":
        y = np.asarray(y, np.float64)
        return cls(y=y, sigma=float(sigma), xy=compute_Xty(X, y), d=diagsq(X), logdet_ztz=float(logdet_ztz))

    @property
    def precision(self) -> np.ndarray:
        return self.d / self.sigma

    @property
    def sa_scale(self) -> float:
        return self.sigma

    def prior_variance(self, sa: float) -> float:
        return self.sigma * sa

    def target(self, j: int, x: np.ndarray, Xr: np.ndarray, r: float) -> float:
        return (self.xy[j] - np.dot(x, Xr) + self.d[j] * r) / self.sigma

    def expected_loglik(self, Xr: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray) -> float:
        return int_linear(Xr, self.d, self.y, self.sigma, alpha, mu, s) - self.logdet_ztz / 2

    def estimate_sigma(self, Xr: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray, sa: float) -> float:
        """Value of sigma maximizing the lower bound with the other parameters held fixed."""
        n = self.y.shape[0]
        num = (np.sum((self.y - Xr)**2) + np.dot(self.d, betavar(alpha, mu, s))
               + np.dot(alpha, s + mu**2) / sa)
        return float(num / (n + np.sum(alpha)))

    def with_sigma(self, sigma: float) -> "GaussianLinearizer":
        return replace(self, sigma=float(sigma))

@dataclass(frozen=True)
class BinomialLinearizer:
    """Quadratic bound on the logistic likelihood at bound locations eta.

    Weighted operator is Dhat = U - U Z S Z' U with U = diag(slope(eta)) and S = (Z' U Z)^-1.
    """
    y: np.ndarray
    Z: np.ndarray
    eta: np.ndarray
    u: np.ndarray
    S: np.ndarray
    logdet_S: float
    yhat: np.ndarray
    xy: np.ndarray
    xdz: np.ndarray
    xdx: np.ndarray
    family = Family.BINOMIAL

    @classmethod
    def from_data(cls, X: np.ndarray, y: np.ndarray, eta: np.ndarray, Z: Optional[np.ndarray] = None) -> "BinomialLinearizer":
        y = np.asarray(y, np.float64); eta = np.asarray(eta, np.float64)
        n = y.shape[0]
        Z = np.ones((n, 1)) if Z is None else np.asarray(Z, np.float64)
        u = slope(eta)
        Zu = Z * u[:, None]
        ZUZ = Z.T @ Zu
        S = sla.cho_solve(sla.cho_factor(ZUZ, lower=True), np.eye(Z.shape[1]))
        S = (S + S.T) / 2
        L = sla.cholesky(S, lower=True)
        a = Z.T @ (y - 0.5)
        yhat = (y - 0.5) - u * (Z @ (S @ a))
        xdz = np.empty((X.shape[1], Z.shape[1]))
        for cols in column_blocks(n, X.shape[1]):
            xdz[cols] = (Zu.T @ X[:, cols]).T
        xdx = diagsq(X, u) - np.sum((xdz @ L)**2, axis=1)
        return cls(y=y, Z=Z, eta=eta, u=u, S=S, logdet_S=-logdet_spd(ZUZ), yhat=yhat,
                   xy=compute_Xty(X, yhat), xdz=xdz, xdx=xdx)

    @property
    def precision(self) -> np.ndarray:
        return self.xdx

    @property
    def sa_scale(self) -> float:
        return 1.0

    def prior_variance(self, sa: float) -> float:
        return sa

    def target(self, j: int, x: np.ndarray, Xr: np.ndarray, r: float) -> float:
        uXr = self.u * Xr
        xdXr = np.dot(x, uXr) - self.xdz[j] @ (self.S @ (self.Z.T @ uXr))
        return self.xy[j] + self.xdx[j] * r - xdXr

    def expected_loglik(self, Xr: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray) -> float:
        return int_logit(self.y, self.eta, self.u, self.Z, self.S, self.logdet_S, self.yhat, self.xdx,
                         alpha, mu, s, Xr)

    def covariate_effects(self, Xr: np.ndarray) -> np.ndarray:
        """Posterior mean of the covariate coefficients given the fitted values Xr."""
        return self.S @ (self.Z.T @ (self.y - 0.5 - self.u * Xr))

    def update_eta(self, X: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray,
                   Xr: np.ndarray) -> np.ndarray:
        """Bound locations eta_i = sqrt(E[t_i^2]) for the linear predictor t = Z u + X b."""
        v = betavar(alpha, mu, s)
        ZS = self.Z @ self.S
        n, p = X.shape
        xv = np.zeros(n)
        for cols in column_blocks(n, p):
            Xt = np.asarray(X[:, cols], np.float64) - ZS @ self.xdz[cols].T
            xv += (Xt**2) @ v[cols]
        m = self.Z @ self.covariate_effects(Xr) + Xr
        return np.sqrt(m**2 + np.sum(ZS * self.Z, axis=1) + xv)

    def with_eta(self, X: np.ndarray, eta: np.ndarray) -> "BinomialLinearizer":
        return BinomialLinearizer.from_data(X, self.y, eta, Z=self.Z)

def make_linearizer(family: Union[Family, str], X: np.ndarray, y: np.ndarray, sigma: Optional[float] = None,
                    eta: Optional[np.ndarray] = None, Z: Optional[np.ndarray] = None, logdet_ztz: float = 0.0):
    family = Family.coerce(family)
    if family is Family.GAUSSIAN:
        if sigma is None:
            raise ValueError("gaussian family requires sigma")
        return GaussianLinearizer.from_data(X, y, sigma, logdet_ztz=logdet_ztz)
    if eta is None:
        eta = np.ones(np.asarray(y).shape[0])
    return BinomialLinearizer.from_data(X, y, eta, Z=Z)
