import numpy as np
import pytest

from sparse_hedge.errors import InsufficientDataError
from sparse_hedge.regression import (
    ElasticNetSolver,
    PenaltySpec,
    elastic_net_path,
    fit_elastic_net,
    lambda_max,
    soft_threshold,
)


def _design(seed: int = 0, n: int = 200):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, 3))
    y = X @ np.array([1.5, -2.0, 0.5]) + 0.3 + 0.05 * rng.standard_normal(n)
    return X, y


def test_zero_penalty_matches_ols() -> None:
    X, y = _design()
    fit = ElasticNetSolver(tol=1e-10, max_iter=5000).fit(X, y, PenaltySpec(alpha=0.0, lambda_=0.0))

    design = np.column_stack([np.ones(X.shape[0]), X])
    ols, *_ = np.linalg.lstsq(design, y, rcond=None)

    assert fit.converged
    np.testing.assert_allclose(fit.coef, ols[1:], atol=1e-6)
    assert fit.intercept == pytest.approx(ols[0], abs=1e-6)
    np.testing.assert_allclose(fit.fitted + fit.residuals, y)


@pytest.mark.parametrize("alpha", [1.0, 0.5, 0.1])
def test_lambda_above_lambda_max_zeroes_everything(alpha: float) -> None:
    X, y = _design(seed=1)
    lam = lambda_max(X, y, alpha) * 1.01
    fit = fit_elastic_net(X, y, PenaltySpec(alpha=alpha, lambda_=lam))
    assert np.all(fit.coef == 0.0)
    assert fit.intercept == pytest.approx(y.mean())


@pytest.mark.parametrize("alpha", [1.0, 0.7, 0.3, 0.1])
def test_lambda_max_itself_zeroes_everything(alpha: float) -> None:
    X, y = _design(seed=1)
    lam = lambda_max(X, y, alpha)
    fit = fit_elastic_net(X, y, PenaltySpec(alpha=alpha, lambda_=lam))
    assert np.all(fit.coef == 0.0)
    relaxed = fit_elastic_net(X, y, PenaltySpec(alpha=alpha, lambda_=lam * 0.99))
    assert np.count_nonzero(relaxed.coef) >= 1


def test_path_starts_at_lambda_max() -> None:
    X, y = _design(seed=6)
    for alpha in (1.0, 0.4):
        grid, coefs = elastic_net_path(X, y, alpha, n_lambdas=15)
        assert grid[0] == lambda_max(X, y, alpha)
        assert grid[-1] == pytest.approx(grid[0] * 1e-3)
        assert np.all(coefs[0] == 0.0)


def test_penalty_shrinks_towards_zero() -> None:
    X, y = _design(seed=2)
    weak = fit_elastic_net(X, y, PenaltySpec(alpha=0.5, lambda_=0.01))
    strong = fit_elastic_net(X, y, PenaltySpec(alpha=0.5, lambda_=0.5))
    assert np.abs(strong.coef).sum() < np.abs(weak.coef).sum()


def test_no_predictors_is_intercept_only() -> None:
    y = np.array([0.1, 0.2, 0.4, 0.3])
    fit = ElasticNetSolver().fit(np.empty((4, 0)), y, PenaltySpec())
    assert fit.coef.size == 0
    assert fit.intercept == pytest.approx(0.25)
    assert fit.residual_variance() == pytest.approx(np.var(y, ddof=1))


def test_constant_predictor_gets_zero_coefficient() -> None:
    rng = np.random.default_rng(3)
    x = rng.standard_normal(50)
    X = np.column_stack([np.full(50, 2.0), x])
    y = 3.0 * x + 1.0
    fit = fit_elastic_net(X, y, PenaltySpec(alpha=0.0, lambda_=0.0), tol=1e-10)
    assert fit.coef[0] == 0.0
    assert fit.coef[1] == pytest.approx(3.0, abs=1e-6)


def test_all_constant_predictors_raise() -> None:
    X = np.ones((10, 2))
    with pytest.raises(InsufficientDataError):
        fit_elastic_net(X, np.arange(10.0), PenaltySpec())


def test_input_validation() -> None:
    with pytest.raises(InsufficientDataError):
        fit_elastic_net(np.ones((1, 2)), np.ones(1), PenaltySpec())
    with pytest.raises(ValueError):
        fit_elastic_net(np.array([[np.nan, 1.0], [0.0, 1.0]]), np.ones(2), PenaltySpec())
    with pytest.raises(ValueError):
        fit_elastic_net(np.ones((3, 2)), np.ones(4), PenaltySpec())
    with pytest.raises(ValueError):
        fit_elastic_net(np.ones(3), np.ones(3), PenaltySpec())


def test_penalty_spec_validation() -> None:
    with pytest.raises(ValueError):
        PenaltySpec(alpha=1.5)
    with pytest.raises(ValueError):
        PenaltySpec(lambda_=-0.1)
    spec = PenaltySpec(alpha=0.25, lambda_=2.0)
    assert spec.l1 == pytest.approx(0.5)
    assert spec.l2 == pytest.approx(1.5)
    assert spec.as_dict() == {"alpha": 0.25, "lambda": 2.0}


def test_soft_threshold() -> None:
    assert soft_threshold(3.0, 1.0) == 2.0
    assert soft_threshold(-3.0, 1.0) == -2.0
    assert soft_threshold(0.5, 1.0) == 0.0
    np.testing.assert_allclose(soft_threshold(np.array([-2.0, 0.2, 2.0]), 0.5), [-1.5, 0.0, 1.5])


def test_non_convergence_is_reported_not_raised() -> None:
    X, y = _design(seed=4)
    fit = ElasticNetSolver(max_iter=1).fit(X, y, PenaltySpec(alpha=0.5, lambda_=0.001))
    assert fit.converged is False
    assert fit.n_iter == 1


def test_warm_start_reaches_same_solution() -> None:
    X, y = _design(seed=5)
    solver = ElasticNetSolver(tol=1e-10, max_iter=5000)
    penalty = PenaltySpec(alpha=0.3, lambda_=0.05)
    cold = solver.fit(X, y, penalty)
    warm = solver.fit(X, y, penalty, warm_start=cold.coef * 0.5)
    np.testing.assert_allclose(warm.coef, cold.coef, atol=1e-7)


def test_path_descends_from_all_zero() -> None:
    X, y = _design(seed=6)
    grid, coefs = elastic_net_path(X, y, 1.0, n_lambdas=15)
    assert grid.shape == (15,)
    assert np.all(np.diff(grid) < 0)
    assert coefs.shape == (15, 3)
    assert np.all(coefs[0] == 0.0)
    assert np.count_nonzero(coefs[-1]) == 3


def test_path_with_explicit_lambdas_sorts_descending() -> None:
    X, y = _design(seed=7)
    grid, coefs = elastic_net_path(X, y, 0.5, lambdas=[0.01, 1.0, 0.1])
    np.testing.assert_allclose(grid, [1.0, 0.1, 0.01])
    assert coefs.shape == (3, 3)
