import numpy as np
import pytest

from sparse_hedge.errors import (
    DegenerateWeightsError,
    EmptyUniverseError,
    InsufficientDataError,
    SingularMatrixError,
)
from sparse_hedge.portfolio import (
    equal_weight,
    normalize_weights,
    regularized_covariance,
    shrunk_min_variance,
)


def test_equal_weight() -> None:
    np.testing.assert_allclose(equal_weight(4), np.full(4, 0.25))
    with pytest.raises(EmptyUniverseError):
        equal_weight(0)


def test_isotropic_covariance_gives_equal_weights() -> None:
    window = np.array(
        [
            [1.0, 1.0, 1.0],
            [1.0, -1.0, -1.0],
            [-1.0, 1.0, -1.0],
            [-1.0, -1.0, 1.0],
        ]
    )
    cov = regularized_covariance(window, shrinkage=0.01)
    np.testing.assert_allclose(cov, (4.0 / 3.0 + 0.01) * np.eye(3), atol=1e-12)
    np.testing.assert_allclose(shrunk_min_variance(window), np.full(3, 1.0 / 3.0), atol=1e-12)


def test_min_variance_sums_to_one(make_returns) -> None:
    window = make_returns(n_dates=40, n_assets=6, seed=11).to_numpy()
    weights = shrunk_min_variance(window)
    assert weights.shape == (6,)
    assert weights.sum() == pytest.approx(1.0, abs=1e-9)


def test_quiet_asset_dominates_min_variance(scenario_4x6) -> None:
    weights = shrunk_min_variance(scenario_4x6, shrinkage=0.01)
    assert weights.sum() == pytest.approx(1.0, abs=1e-9)
    assert int(np.argmax(weights)) == 0
    assert weights[0] > 0.5


def test_fewer_rows_than_assets_is_regularized() -> None:
    rng = np.random.default_rng(2)
    window = rng.normal(0.0, 0.02, size=(3, 8))
    weights = shrunk_min_variance(window, shrinkage=0.01)
    assert weights.sum() == pytest.approx(1.0, abs=1e-9)


def test_unshrunk_rank_deficient_covariance_is_singular() -> None:
    window = np.array([[0.01, 0.02, 0.03], [0.02, 0.01, 0.00]])
    with pytest.raises(SingularMatrixError):
        shrunk_min_variance(window, shrinkage=0.0)


def test_single_observation_is_insufficient() -> None:
    with pytest.raises(InsufficientDataError):
        shrunk_min_variance(np.ones((1, 3)))


def test_negative_shrinkage_rejected(scenario_4x6) -> None:
    with pytest.raises(ValueError):
        shrunk_min_variance(scenario_4x6, shrinkage=-0.1)


def test_normalize_weights() -> None:
    np.testing.assert_allclose(normalize_weights(np.array([1.0, 3.0])), [0.25, 0.75])
    with pytest.raises(DegenerateWeightsError):
        normalize_weights(np.array([1.0, -1.0]))
    with pytest.raises(EmptyUniverseError):
        normalize_weights(np.array([]))
