"""
Removal of covariate effects before fitting.

Projecting the covariates (intercept included) out of X and y is equivalent to integrating out
their coefficients under a flat prior (Chipman, George and McCulloch, 2001). The adjusted arrays
are new objects; the caller's X, y and Z are never modified.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from scipy import linalg as sla

from .families import Family
from .linalg import logdet_spd

@dataclass(frozen=True)
class CovariateAdjustment:
    """Adjusted data plus the quantities needed later to recover covariate effects.

    X is single precision in Fortran order so that columns are contiguous. For the gaussian family
    SZy = (Z'Z)^-1 Z'y and SZX = (Z'Z)^-1 Z'X are kept so that the covariate coefficients for fitted
    coefficients b are SZy - SZX b. For the binomial family X and y are left as given and the
    covariates are handled by the likelihood linearizer.
    """
    X: np.ndarray
    y: np.ndarray
    Z: np.ndarray
    SZy: Optional[np.ndarray]
    SZX: Optional[np.ndarray]
    logdet_ztz: float
    family: Family

    @property
    def num_covariates(self) -> int:
        return int(self.Z.shape[1] - 1)

    def covariate_effects(self, beta: np.ndarray) -> np.ndarray:
        """Covariate coefficients (intercept first) given coefficients beta (p,) or (p, ns); gaussian only."""
        if self.SZX is None:
            raise ValueError("covariate effects from the adjustment are only available for family = gaussian")
        beta = np.asarray(beta, float)
        if beta.ndim == 1:
            return self.SZy - self.SZX @ beta
        return self.SZy[:, None] - self.SZX @ beta

def add_intercept(Z: Optional[np.ndarray], n: int) -> np.ndarray:
    if Z is None or np.size(Z) == 0:
        return np.ones((n, 1))
    Z = np.asarray(Z, float)
    if Z.ndim == 1:
        Z = Z[:, None]
    if Z.shape[0] != n:
        raise ValueError("Inputs X and Z do not match.")
    return np.column_stack([np.ones(n), Z])

def adjust_for_covariates(X: np.ndarray, y: np.ndarray, Z: Optional[np.ndarray] = None,
                          family: Union[Family, str] = Family.GAUSSIAN) -> CovariateAdjustment:
    family = Family.coerce(family)
    X = np.asarray(X)
    n = X.shape[0]
    y = np.asarray(y, float).ravel()
    if y.shape[0] != n:
        raise ValueError("Inputs X and y do not match.")
    Z = add_intercept(Z, n)
    ZtZ = Z.T @ Z
    logdet_ztz = logdet_spd(ZtZ)
    if family is Family.BINOMIAL:
        return CovariateAdjustment(X=np.asfortranarray(X, dtype=np.float32), y=y.copy(), Z=Z, SZy=None, SZX=None,
                                   logdet_ztz=logdet_ztz, family=family)
    cf = sla.cho_factor(ZtZ, lower=True)
    SZy = sla.cho_solve(cf, Z.T @ y)
    SZX = sla.cho_solve(cf, (Z.T @ X).astype(np.float64))
    if Z.shape[1] == 1:
        Xa = X - np.mean(X, axis=0, dtype=np.float64)
        ya = y - np.mean(y)
    else:
        Xa = X - Z @ SZX
        ya = y - Z @ SZy
    return CovariateAdjustment(X=np.asfortranarray(Xa, dtype=np.float32), y=ya, Z=Z, SZy=SZy, SZX=SZX,
                               logdet_ztz=logdet_ztz, family=family)
