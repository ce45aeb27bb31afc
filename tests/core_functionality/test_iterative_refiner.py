import numpy as np
import pytest

from pydeconv.core_functionality.constraints import ConstraintEnforcer
from pydeconv.core_functionality.exceptions import DimensionMismatchError
from pydeconv.core_functionality.iterative_refiner import IterativeRefiner, residual_weights
from pydeconv.core_functionality.linear_solver import Formulation, LinearSolver


@pytest.fixture
def signatures():
    rng = np.random.default_rng(11)
    R = rng.uniform(0.0, 1.0, size=(50, 3))
    p = np.array([0.2, 0.3, 0.5])
    return R, p


def test_weights_unchanged_for_perfect_fit():
    w = residual_weights(np.zeros(4), np.ones(4))
    np.testing.assert_allclose(w, np.ones(4))


def test_large_residuals_get_small_weights():
    w = residual_weights(np.array([0.1, 0.1, 10.0]), np.ones(3))
    assert w[2] < w[0]
    assert w[2] < 1e-3


def test_non_finite_weights_replaced_by_minimum():
    w = residual_weights(np.array([np.inf, 1.0, 2.0]), np.ones(3))
    assert np.all(np.isfinite(w))
    assert w[0] == w[np.isfinite(w)].min()


def test_all_non_finite_weights_fall_back_to_base():
    base = np.array([1.0, 2.0])
    np.testing.assert_array_equal(residual_weights(np.array([np.nan, np.nan]), base), base)


def test_refine_clean_data_converges(signatures):
    R, p = signatures
    result = IterativeRefiner().refine(R, R @ p)
    np.testing.assert_allclose(result.coefficients, p, atol=1e-6)
    assert result.diagnostic.converged
    assert 1 <= result.diagnostic.iterations <= 50
    assert result.diagnostic.method.startswith("iterative_")


def test_refine_damps_outlier_feature(signatures):
    R, p = signatures
    t = R @ p
    t[0] += 50.0
    plain = LinearSolver(Formulation.NNLS).solve(R, t)
    refined = IterativeRefiner().refine(R, t)
    plain_error = np.abs(plain.coefficients - p).sum()
    refined_error = np.abs(refined.coefficients - p).sum()
    assert refined_error < plain_error
    assert refined_error < 0.05


def test_refine_result_is_enforced(signatures):
    R, p = signatures
    result = IterativeRefiner().refine(R, R @ p * 3.0)
    again, valid = ConstraintEnforcer.apply(result.coefficients)
    assert valid
    np.testing.assert_allclose(again, result.coefficients, atol=1e-12)


def test_zero_target_returned_as_is(signatures):
    R, _ = signatures
    result = IterativeRefiner().refine(R, np.zeros(R.shape[0]))
    assert result.diagnostic.skipped
    assert result.diagnostic.iterations == 0
    assert result.diagnostic.converged is False
    assert not result.valid


def test_zero_iterations_returns_initial_solution(signatures):
    R, p = signatures
    result = IterativeRefiner().refine(R, R @ p, max_iterations=0)
    assert result.diagnostic.iterations == 0
    assert result.diagnostic.converged is False
    np.testing.assert_allclose(result.coefficients, p, atol=1e-6)


def test_weights_init_length_checked(signatures):
    R, p = signatures
    with pytest.raises(DimensionMismatchError):
        IterativeRefiner().refine(R, R @ p, weights_init=np.ones(3))


def test_negative_weights_rejected(signatures):
    R, p = signatures
    weights = np.ones(R.shape[0])
    weights[0] = -1.0
    with pytest.raises(ValueError, match="non-negative"):
        IterativeRefiner().refine(R, R @ p, weights_init=weights)


def test_negative_tolerance_rejected(signatures):
    R, p = signatures
    with pytest.raises(ValueError, match="tolerance"):
        IterativeRefiner().refine(R, R @ p, tolerance=-1.0)
