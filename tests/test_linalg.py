import warnings

import numpy as np
import pytest
from pyvarbvs import linalg as la

# ---------------------------------------------------------------------
# Matrix kernels
# ---------------------------------------------------------------------

def test_compute_Xb_upcasts_single_precision(rng):
    X = rng.standard_normal((20, 4)).astype(np.float32)
    b = rng.standard_normal(4)
    out = la.compute_Xb(X, b)
    assert out.dtype == np.float64
    np.testing.assert_allclose(out, X.astype(float) @ b, rtol=1e-6)

def test_compute_Xty(rng):
    X = rng.standard_normal((30, 5))
    y = rng.standard_normal(30)
    np.testing.assert_allclose(la.compute_Xty(X, y), X.T @ y)

def test_column_blocks_cover_all_columns():
    blocks = list(la.column_blocks(4000, 50))
    assert len(blocks) > 1
    assert all(b.stop - b.start <= 16 for b in blocks)
    np.testing.assert_array_equal(np.concatenate([np.arange(50)[b] for b in blocks]), np.arange(50))
    assert list(la.column_blocks(10, 0)) == []

def test_blocked_products_match_dense(rng):
    X = rng.standard_normal((4000, 50)).astype(np.float32)
    b = rng.standard_normal(50); y = rng.standard_normal(4000)
    Xd = X.astype(float)
    np.testing.assert_allclose(la.compute_Xb(X, b), Xd @ b, rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(la.compute_Xty(X, y), y @ Xd, rtol=1e-6, atol=1e-8)

def test_diagsq_plain_and_weighted(rng):
    X = rng.standard_normal((25, 3)).astype(np.float32)
    a = rng.random(25)
    Xd = X.astype(float)
    np.testing.assert_allclose(la.diagsq(X), np.sum(Xd**2, axis=0), rtol=1e-6)
    np.testing.assert_allclose(la.diagsq(X, a), np.sum(a[:, None] * Xd**2, axis=0), rtol=1e-6)

def test_var1_uses_population_variance(rng):
    X = rng.standard_normal((40, 3))
    np.testing.assert_allclose(la.var1(X), X.var(axis=0, ddof=0))
    assert la.var1(X[:, 0]) == pytest.approx(X[:, 0].var())

def test_betavar_reduces_to_slab_variance_when_included():
    mu = np.array([1.0, -2.0]); s = np.array([0.5, 0.1])
    np.testing.assert_allclose(la.betavar(np.ones(2), mu, s), s)
    np.testing.assert_allclose(la.betavar(np.zeros(2), mu, s), 0.0)

def test_betavarmix_matches_single_component():
    alpha = np.array([[0.3], [0.9]]); mu = np.array([[1.0], [2.0]]); s = np.array([[0.2], [0.4]])
    np.testing.assert_allclose(la.betavarmix(alpha, mu, s), la.betavar(alpha[:, 0], mu[:, 0], s[:, 0]))

# ---------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------

def test_sigmoid_is_overflow_safe():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        x = np.array([-1000.0, 0.0, 1000.0])
        np.testing.assert_allclose(la.sigmoid(x), [0.0, 0.5, 1.0])
        np.testing.assert_allclose(la.logsigmoid(x), [-1000.0, np.log(0.5), 0.0], atol=1e-12)

def test_slope_limit_and_definition():
    assert la.slope(np.array([0.0]))[0] == pytest.approx(0.25)
    x = np.array([1e-3, 0.5, 3.0, 40.0])
    expected = (la.sigmoid(x) - 0.5) / x
    np.testing.assert_allclose(la.slope(x), expected, rtol=1e-6)
    np.testing.assert_allclose(la.slope(-x), expected, rtol=1e-6)

def test_normalizelogweights_is_stable():
    w = la.normalizelogweights(np.array([-1e5, -1e5 + np.log(3.0)]))
    np.testing.assert_allclose(w, [0.25, 0.75])

def test_logdet_spd_rejects_indefinite():
    assert la.logdet_spd(np.diag([2.0, 3.0])) == pytest.approx(np.log(6.0))
    with pytest.raises(ValueError):
        la.logdet_spd(np.array([[1.0, 2.0], [2.0, 1.0]]))
