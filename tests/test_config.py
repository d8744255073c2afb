import dataclasses
import numpy as np
import pytest
from pyvarbvs.config import FitOptions, MixtureOptions, HyperparameterGrid, resolve_options

def test_gaussian_defaults(rng):
    y = rng.standard_normal(50)
    grid, opts = resolve_options("gaussian", 50, 100, y)
    assert grid.ns == 20 and grid.prior_same
    np.testing.assert_allclose(grid.logodds[0, [0, -1]], [-2.0, -0.3])
    np.testing.assert_allclose(grid.sigma, np.var(y, ddof=1))
    np.testing.assert_allclose(grid.sa, 1.0)
    assert opts.update_sigma and opts.update_sa and opts.initialize_params
    assert not opts.optimize_eta

def test_supplied_hyperparameters_are_held_fixed(rng):
    y = rng.standard_normal(50)
    grid, opts = resolve_options("gaussian", 50, 10, y, sigma=2.0, sa=[0.5, 1.0], logodds=[-1.0, -2.0])
    assert grid.ns == 2
    np.testing.assert_allclose(grid.sigma, [2.0, 2.0])
    assert not opts.update_sigma and not opts.update_sa

def test_binomial_defaults():
    y = np.array([0.0, 1.0, 1.0, 0.0])
    grid, opts = resolve_options("binomial", 4, 3, y, logodds=-1.0)
    assert np.all(np.isnan(grid.sigma))
    assert opts.optimize_eta and not opts.update_sigma
    _, opts = resolve_options("binomial", 4, 3, y, logodds=-1.0, eta=np.ones(4))
    assert not opts.optimize_eta and not opts.initialize_params

def test_initialization_flag_follows_supplied_parameters(rng):
    y = rng.standard_normal(20)
    _, opts = resolve_options("gaussian", 20, 5, y, alpha=np.full(5, 0.1))
    assert not opts.initialize_params
    _, opts = resolve_options("gaussian", 20, 5, y, alpha=np.full(5, 0.1), initialize_params=True)
    assert opts.initialize_params

def test_per_variable_prior(rng):
    y = rng.standard_normal(20)
    grid, _ = resolve_options("gaussian", 20, 5, y, sigma=1.0, sa=1.0, logodds=np.full((5, 3), -1.0))
    assert grid.ns == 3 and not grid.prior_same
    np.testing.assert_allclose(grid.natural_logodds(0, 5), np.full(5, -np.log(10)))

def test_natural_logodds_repeats_shared_value():
    grid = HyperparameterGrid(sigma=[1.0, 1.0], sa=[1.0, 1.0], logodds=[-1.0, -2.0])
    lo = grid.natural_logodds(1, 4)
    np.testing.assert_allclose(lo, np.full(4, -2.0 * np.log(10)))

@pytest.mark.parametrize("kwargs, msg", [
    (dict(family="binomial", sigma=1.0), "sigma is not valid"),
    (dict(family="binomial", update_sigma=True, logodds=-1.0), "update_sigma"),
    (dict(family="gaussian", sigma=[1.0, 2.0], sa=1.0), "logodds must be specified"),
    (dict(family="gaussian", sigma=[1.0, 2.0], sa=[1.0, 2.0, 3.0], logodds=[-1.0, -1.0]), "inconsistent"),
    (dict(family="gaussian", eta=np.ones(20)), "eta is only valid"),
    (dict(family="gaussian", optimize_eta=True), "optimize_eta"),
    (dict(family="gaussian", sa=0.0, logodds=-1.0), "sa must be positive"),
    (dict(family="poisson"), "family"),
])
def test_configuration_errors(rng, kwargs, msg):
    y = rng.standard_normal(20)
    family = kwargs.pop("family")
    with pytest.raises(ValueError, match=msg):
        resolve_options(family, 20, 5, y, **kwargs)

def test_options_are_validated_and_frozen():
    with pytest.raises(ValueError):
        FitOptions(tol=0)
    with pytest.raises(ValueError):
        FitOptions(maxiter=0)
    with pytest.raises(ValueError):
        FitOptions(n0=-1)
    opts = FitOptions(maxiter=5.0)
    assert isinstance(opts.maxiter, int)
    with pytest.raises(dataclasses.FrozenInstanceError):
        opts.tol = 1.0

def test_mixture_penalty():
    np.testing.assert_array_equal(MixtureOptions().penalty(3), [2.0, 1.0, 1.0])
    np.testing.assert_array_equal(MixtureOptions(q_penalty=(1, 3)).penalty(2), [1.0, 3.0])
    with pytest.raises(ValueError):
        MixtureOptions(q_penalty=(0.5, 1.0))
    with pytest.raises(ValueError):
        MixtureOptions(q_penalty=(1.0, 1.0)).penalty(3)
