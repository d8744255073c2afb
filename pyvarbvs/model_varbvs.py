"""
Bayesian variable selection in linear and logistic regression by variational approximation.

This module implements the VarBVS estimator: a fully-factorized variational approximation to the
posterior under spike-and-slab priors, fitted over a grid of hyperparameter settings and averaged
with weights proportional to the approximate marginal likelihood. It also provides posterior
summaries: proportion of variance explained (PVE), posterior inclusion probabilities and Monte
Carlo credible intervals for the coefficients.

Reference: P. Carbonetto and M. Stephens (2012). Scalable variational inference for Bayesian
variable selection in regression, and its accuracy in genetic association studies. Bayesian
Analysis 7: 73-108.
"""
from __future__ import annotations
import logging
import numpy as np
from scipy import sparse
from typing import Optional, Dict, List, Tuple, Union

from .config import resolve_options, FitOptions, HyperparameterGrid
from .families import Family, BinomialLinearizer
from .grid import run_grid, GridFit
from .innerloop import TerminalState
from .linalg import compute_Xb, normalizelogweights, var1
from .preprocess import adjust_for_covariates

_LOGGER = logging.getLogger(__name__)

# Input checks

def check_data(X: np.ndarray, y: np.ndarray, family: Family = Family.GAUSSIAN) -> Tuple[np.ndarray, np.ndarray]:
    """Return X and y as dense arrays after the basic consistency checks."""
    if sparse.issparse(X):
        raise ValueError("Input X cannot be sparse")
    X = np.asarray(X)
    if X.ndim != 2:
        raise ValueError("X must be a matrix")
    if not np.all(np.isfinite(X)): raise ValueError("X contains non-finite values (NaN/Inf).")
    y = np.asarray(y, float).ravel()
    if y.shape[0] != X.shape[0]:
        raise ValueError("Inputs X and y do not match.")
    if not np.all(np.isfinite(y)): raise ValueError("y contains non-finite values (NaN/Inf).")
    if family is Family.BINOMIAL and not np.all((y == 0) | (y == 1)):
        raise ValueError("For family = binomial, all entries of y must be 0 or 1.")
    return X, y

def check_labels(labels: Optional[List[str]], p: int) -> List[str]:
    if labels is None:
        return [str(i) for i in range(1, p + 1)]
    labels = [str(v) for v in labels]
    if len(labels) != p:
        raise ValueError("labels must have one entry for each column of X")
    return labels

# Posterior summaries

def varbvspve(X: np.ndarray, sigma: np.ndarray, alpha: np.ndarray, mu: np.ndarray, s: np.ndarray,
              w: np.ndarray, nr: int = 1000, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Draw nr samples of the proportion of variance in y explained by the regression model.

    Each draw picks a hyperparameter setting i with probability w_i, samples the coefficients from
    the variational approximation at that setting, and returns var(Xb) / (var(Xb) + sigma_i).
    """
    if rng is None: rng = np.random.default_rng()
    p, ns = alpha.shape
    pve = np.zeros(nr)
    for r in range(nr):
        i = rng.choice(ns, p=w)
        b = mu[:, i] + np.sqrt(s[:, i]) * rng.standard_normal(p)
        b = b * (rng.random(p) < alpha[:, i])
        sz = var1(compute_Xb(X, b))
        pve[r] = sz / (sz + sigma[i])
    return pve

def variable_pve(X: np.ndarray, sigma: np.ndarray, mu: np.ndarray, s: np.ndarray) -> np.ndarray:
    """PVE of each variable at each hyperparameter setting, given that it is included."""
    sx = var1(X)
    sz = sx[:, None] * (mu**2 + s)
    return sz / (sz + sigma[None, :])

def shortest_interval(x: np.ndarray, coverage: float = 0.95) -> Tuple[float, float]:
    """Shortest interval [a, b] containing a fraction coverage of the samples x."""
    x = np.sort(np.asarray(x, float))
    n = x.size
    k = max(int(np.ceil(coverage * n)), 1)
    widths = x[k - 1:] - x[:n - k + 1]
    t = int(np.argmin(widths))
    return float(x[t]), float(x[t + k - 1])

def varbvscoefcred(alpha: np.ndarray, mu: np.ndarray, s: np.ndarray, w: np.ndarray,
                   variables: Optional[List[int]] = None,
                   cred_int: float = 0.95, nr: int = 1000,
                   rng: Optional[np.random.Generator] = None) -> Dict[str, np.ndarray]:
    """Monte Carlo credible intervals for the coefficients, averaged over hyperparameter settings."""
    if not (0 < cred_int < 1):
        raise ValueError("cred_int must be between 0 and 1")
    if rng is None: rng = np.random.default_rng()
    p, ns = alpha.shape
    variables = list(range(p)) if variables is None else [int(j) for j in variables]
    a = np.zeros(len(variables)); b = np.zeros(len(variables))
    for t, j in enumerate(variables):
        i = rng.choice(ns, size=nr, p=w)
        x = mu[j, i] + np.sqrt(s[j, i]) * rng.standard_normal(nr)
        x = x * (rng.random(nr) < alpha[j, i])
        a[t], b[t] = shortest_interval(x, cred_int)
    return dict(a=a, b=b, variables=np.asarray(variables, dtype=int))

class VarBVS:
    def __init__(self, family: Union[Family, str] = "gaussian"):
        self.family = Family.coerce(family)
        self.labels: Optional[List[str]] = None
        self.num_samples: int = 0
        self.num_covariates: int = 0
        self.grid: Optional[HyperparameterGrid] = None
        self.options: Optional[FitOptions] = None
        self.logw: Optional[np.ndarray] = None
        self.sigma: Optional[np.ndarray] = None
        self.sa: Optional[np.ndarray] = None
        self.logodds: Optional[np.ndarray] = None
        self.alpha: Optional[np.ndarray] = None
        self.mu: Optional[np.ndarray] = None
        self.s: Optional[np.ndarray] = None
        self.eta: Optional[np.ndarray] = None
        self.iterations: Optional[np.ndarray] = None
        self.states: Optional[Tuple[TerminalState, ...]] = None
        self.w: Optional[np.ndarray] = None
        self.pip: Optional[np.ndarray] = None
        self.beta: Optional[np.ndarray] = None
        self.beta_cov: Optional[np.ndarray] = None
        self.pve: Optional[np.ndarray] = None
        self.model_pve: Optional[np.ndarray] = None
        self.result: Optional[GridFit] = None
        self._rng: Optional[np.random.Generator] = None

    @property
    def prior_same(self) -> bool:
        return bool(self.grid is not None and self.grid.prior_same)

    def fit(self, X: np.ndarray, y: np.ndarray, Z: Optional[np.ndarray] = None, labels: Optional[List[str]] = None,
            sigma=None, sa=None, logodds=None, update_sigma: Optional[bool] = None,
            update_sa: Optional[bool] = None, sa0: float = 0.0, n0: float = 0.0,
            alpha: Optional[np.ndarray] = None, mu: Optional[np.ndarray] = None, eta: Optional[np.ndarray] = None,
            optimize_eta: Optional[bool] = None, initialize_params: Optional[bool] = None, tol: float = 1e-4,
            maxiter: int = 10000, nr: int = 1000, verbose: bool = False, n_jobs: int = 1,
            seed: Union[None, int, np.random.Generator] = None) -> "VarBVS":
        """Fit the variable selection model at every hyperparameter setting.

        logodds is given in log10 units, either one value per setting or a p x ns matrix of
        per-variable values. Z holds covariates without the intercept, which is always included.
        Set nr = 0 to skip the PVE samples (gaussian family).
        """
        family = self.family
        X, y = check_data(X, y, family)
        n, p = X.shape
        self.labels = check_labels(labels, p)
        grid, options = resolve_options(family, n, p, y, sigma=sigma, sa=sa, logodds=logodds,
                                        update_sigma=update_sigma, update_sa=update_sa, alpha=alpha, mu=mu,
                                        eta=eta, optimize_eta=optimize_eta, initialize_params=initialize_params,
                                        tol=tol, maxiter=maxiter, n0=n0, sa0=sa0, n_jobs=n_jobs, verbose=verbose)
        adj = adjust_for_covariates(X, y, Z, family)
        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        self._rng = rng
        if verbose:
            print("Fitting variational approximation for Bayesian variable selection model.")
            print(f"family:     {family.value:<8s}   num. hyperparameter settings: {grid.ns}")
            print(f"samples:    {n:<6d}     convergence tolerance         {options.tol:0.1e}")
            print(f"variables:  {p:<6d}     iid variable selection prior: {'yes' if grid.prior_same else 'no'}")
            print(f"covariates: {adj.num_covariates:<6d}     fit prior var. of coefs (sa): {'yes' if options.update_sa else 'no'}")
            if family is Family.GAUSSIAN:
                print(f"intercept:  yes        fit residual var. (sigma):    {'yes' if options.update_sigma else 'no'}")
            else:
                print(f"intercept:  yes        fit approx. factors (eta):    {'yes' if options.optimize_eta else 'no'}")
        _LOGGER.debug("fitting %s model: n=%d, p=%d, ns=%d", family.value, n, p, grid.ns)

        gaussian = family is Family.GAUSSIAN
        res = run_grid(adj.X, adj.y, family, grid, alpha=alpha, mu=mu, eta=eta, options=options,
                       Z=None if gaussian else adj.Z, logdet_ztz=adj.logdet_ztz if gaussian else 0.0, rng=rng)

        self.num_samples = n; self.num_covariates = adj.num_covariates
        self.grid = grid; self.options = options; self.result = res
        self.logw = res.logw; self.sa = res.sa; self.logodds = grid.logodds
        self.alpha = res.alpha; self.mu = res.mu; self.s = res.s
        self.iterations = res.iterations; self.states = res.states
        self.w = normalizelogweights(res.logw)
        self.pip = self.alpha @ self.w
        self.beta = (self.alpha * self.mu) @ self.w
        if gaussian:
            self.sigma = res.sigma; self.eta = None
            self.beta_cov = adj.covariate_effects(self.alpha * self.mu)
            self.pve = variable_pve(adj.X, self.sigma, self.mu, self.s)
            self.model_pve = (varbvspve(adj.X, self.sigma, self.alpha, self.mu, self.s, self.w, nr, rng)
                              if nr > 0 else None)
        else:
            self.sigma = None; self.eta = res.eta; self.pve = None; self.model_pve = None
            beta_cov = []
            for i in range(grid.ns):
                lin = BinomialLinearizer.from_data(adj.X, adj.y, res.eta[:, i], Z=adj.Z)
                beta_cov.append(lin.covariate_effects(compute_Xb(adj.X, self.alpha[:, i] * self.mu[:, i])))
            self.beta_cov = np.column_stack(beta_cov)
        return self

    def coefcred(self, variables: Optional[List[int]] = None, cred_int: float = 0.95, nr: int = 1000) -> Dict[str, np.ndarray]:
        if self.alpha is None:
            raise ValueError("Model has not been fitted")
        return varbvscoefcred(self.alpha, self.mu, self.s, self.w, variables=variables, cred_int=cred_int, nr=nr,
                              rng=self._rng)

    def summary(self, nv: int = 5) -> str:
        """Text summary of the fit and of the nv variables with the largest inclusion probabilities."""
        if self.alpha is None:
            raise ValueError("Model has not been fitted")
        p = self.alpha.shape[0]; nv = min(nv, p)
        lines = ["Summary of fitted Bayesian variable selection model:",
                 f"family:     {self.family.value:<8s}   num. hyperparameter settings: {len(self.logw)}",
                 f"samples:    {self.num_samples:<6d}     iid variable selection prior: {'yes' if self.prior_same else 'no'}",
                 f"variables:  {p:<6d}     covariates: {self.num_covariates}",
                 f"maximum log-likelihood lower bound: {np.max(self.logw):0.4f}"]
        nmax = sum(st is TerminalState.MAXITER_REACHED for st in self.states)
        if nmax:
            lines.append(f"warning: {nmax} hyperparameter settings stopped at maxiter")
        if self.model_pve is not None:
            lo, hi = np.quantile(self.model_pve, [0.05, 0.95])
            lines.append(f"proportion of variance explained: {np.mean(self.model_pve):0.3f} [{lo:0.3f},{hi:0.3f}]")
        i = int(np.argmax(self.logw))
        lines.append(f"hyperparameters at max. lower bound: sa={self.sa[i]:0.3g}"
                     + (f" sigma={self.sigma[i]:0.3g}" if self.sigma is not None else ""))
        lines.append("Top variables by posterior inclusion probability:")
        lines.append(f"{'index':>6s} {'variable':>12s} {'prob':>6s} {'beta':>9s}")
        for j in np.argsort(-self.pip)[:nv]:
            lines.append(f"{j + 1:6d} {self.labels[j]:>12s} {self.pip[j]:6.3f} {self.beta[j]:+9.3f}")
        return "\n".join(lines)
