import numpy as np
import pytest
from pyvarbvs.families import GaussianLinearizer, BinomialLinearizer
from pyvarbvs.updates import sweep_order, varbvs_update, varbvsmix_update, mixture_variances
from pyvarbvs.linalg import compute_Xty, diagsq

def test_sweep_order_alternates():
    np.testing.assert_array_equal(sweep_order(4, 1), [0, 1, 2, 3])
    np.testing.assert_array_equal(sweep_order(4, 2), [3, 2, 1, 0])
    np.testing.assert_array_equal(sweep_order(4, 3), [0, 1, 2, 3])

@pytest.mark.parametrize("family", ["gaussian", "binomial"])
def test_incremental_fitted_values_match_recomputation(family, gaussian_data, binomial_data, rng):
    if family == "gaussian":
        X, y, _ = gaussian_data
        lin = GaussianLinearizer.from_data(X, y, 1.2)
    else:
        X, y = binomial_data
        lin = BinomialLinearizer.from_data(X, y, np.ones(len(y)))
    p = X.shape[1]
    alpha = rng.random(p); mu = rng.standard_normal(p)
    Xr = X @ (alpha * mu)
    logodds = np.full(p, -1.0)
    for it in range(1, 6):
        s = varbvs_update(X, lin, 0.5, logodds, alpha, mu, Xr, sweep_order(p, it))
        assert np.all((alpha >= 0) & (alpha <= 1))
        assert np.all(s > 0)
    np.testing.assert_allclose(Xr, X @ (alpha * mu), rtol=1e-6, atol=1e-8)

def test_single_update_is_closed_form(gaussian_data):
    X, y, _ = gaussian_data
    sigma, sa, lo = 1.3, 0.7, -0.5
    lin = GaussianLinearizer.from_data(X, y, sigma)
    p = X.shape[1]
    alpha = np.zeros(p); mu = np.zeros(p); Xr = np.zeros(len(y))
    s = varbvs_update(X, lin, sa, np.full(p, lo), alpha, mu, Xr, [4])
    d = np.sum(X.astype(float)[:, 4]**2)
    s4 = sigma * sa / (sa * d + 1)
    mu4 = s4 / sigma * (X.astype(float)[:, 4] @ y)
    a4 = 1 / (1 + np.exp(-(lo + (np.log(s4 / (sigma * sa)) + mu4**2 / s4) / 2)))
    assert s[4] == pytest.approx(s4, rel=1e-8)
    assert mu[4] == pytest.approx(mu4, rel=1e-6)
    assert alpha[4] == pytest.approx(a4, rel=1e-6)
    assert np.all(alpha[[0, 1, 2, 3, 5]] == 0)

def test_mixture_update_with_spike(gaussian_data, rng):
    X, y, _ = gaussian_data
    p = X.shape[1]
    sa = np.array([0.0, 0.5, 2.0])
    q = np.array([0.6, 0.3, 0.1])
    alpha = rng.random((p, 3)); alpha /= alpha.sum(axis=1, keepdims=True)
    mu = rng.standard_normal((p, 3)); mu[:, 0] = 0
    Xr = X @ np.sum(alpha * mu, axis=1)
    d = diagsq(X); xy = compute_Xty(X, y)
    s = varbvsmix_update(X, 1.0, sa, q, xy, d, alpha, mu, Xr, sweep_order(p, 1))
    np.testing.assert_allclose(alpha.sum(axis=1), 1.0)
    np.testing.assert_array_equal(mu[:, 0], 0.0)
    np.testing.assert_array_equal(s[:, 0], 0.0)
    np.testing.assert_allclose(s, mixture_variances(d, 1.0, sa))
    np.testing.assert_allclose(Xr, X @ np.sum(alpha * mu, axis=1), rtol=1e-6, atol=1e-8)
