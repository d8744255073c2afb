"""
Linear regression with a mixture-of-normals prior on the coefficients.

VarBVSMix fits the variational approximation for a prior that mixes K normal distributions with
fixed variances sigma * sa_k. Setting sa_1 = 0 makes the first component a spike at zero.
"""
from __future__ import annotations
import numpy as np
from typing import Optional, List, Sequence, Union

from .config import MixtureOptions
from .families import Family
from .innerloop import TerminalState
from .mixture import run_mixture, MixtureFit
from .model_varbvs import check_data, check_labels
from .preprocess import adjust_for_covariates

class VarBVSMix:
    def __init__(self):
        self.labels: Optional[List[str]] = None
        self.sa: Optional[np.ndarray] = None
        self.logw: Optional[np.ndarray] = None
        self.err: Optional[np.ndarray] = None
        self.sigma: float = np.nan
        self.q: Optional[np.ndarray] = None
        self.alpha: Optional[np.ndarray] = None
        self.mu: Optional[np.ndarray] = None
        self.s: Optional[np.ndarray] = None
        self.pip: Optional[np.ndarray] = None
        self.beta: Optional[np.ndarray] = None
        self.beta_cov: Optional[np.ndarray] = None
        self.niter: int = 0
        self.state: Optional[TerminalState] = None
        self.result: Optional[MixtureFit] = None

    @property
    def converged(self) -> bool:
        return self.state is TerminalState.CONVERGED

    def fit(self, X: np.ndarray, y: np.ndarray, sa: Sequence[float], Z: Optional[np.ndarray] = None,
            labels: Optional[List[str]] = None, sigma: Optional[float] = None, q: Optional[np.ndarray] = None,
            alpha: Optional[np.ndarray] = None, mu: Optional[np.ndarray] = None, update_sigma: bool = True,
            update_q: bool = True, q_penalty: Optional[Sequence[float]] = None, tol: float = 1e-4,
            maxiter: int = 10000, verbose: bool = False,
            seed: Union[None, int, np.random.Generator] = None) -> "VarBVSMix":
        X, y = check_data(X, y, Family.GAUSSIAN)
        p = X.shape[1]
        self.labels = check_labels(labels, p)
        if sigma is None:
            sigma = float(np.var(y, ddof=1))
        options = MixtureOptions(tol=tol, maxiter=maxiter, update_sigma=update_sigma, update_q=update_q,
                                 q_penalty=None if q_penalty is None else tuple(q_penalty), verbose=verbose)
        adj = adjust_for_covariates(X, y, Z, Family.GAUSSIAN)
        res = run_mixture(adj.X, adj.y, sa, q=q, alpha=alpha, mu=mu, sigma=sigma, options=options,
                          logdet_ztz=adj.logdet_ztz, rng=seed)
        self.result = res
        self.sa = np.atleast_1d(np.asarray(sa, float)).ravel()
        self.logw = res.logw; self.err = res.err; self.sigma = res.sigma; self.q = res.q
        self.alpha = res.alpha; self.mu = res.mu; self.s = res.s
        self.niter = res.iterations; self.state = res.state
        self.pip = np.sum(self.alpha[:, self.sa > 0], axis=1)
        self.beta = np.sum(self.alpha * self.mu, axis=1)
        self.beta_cov = adj.covariate_effects(self.beta)
        return self
