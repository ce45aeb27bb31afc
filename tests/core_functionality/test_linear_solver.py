import logging

import numpy as np
import pytest

from pydeconv.core_functionality import linear_solver
from pydeconv.core_functionality.constraints import Constraints
from pydeconv.core_functionality.exceptions import DimensionMismatchError, SolverError
from pydeconv.core_functionality.linear_solver import (
    FallbackTier, Formulation, LinearSolver, RidgeClippedSolver, nnls_solve
)
from pydeconv.core_functionality.matrices import ReferenceMatrix


@pytest.fixture
def simple_linear_data():
    A = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    b = np.array([2.0, 3.0, 5.0])
    return A, b


@pytest.fixture
def convex_mixture():
    rng = np.random.default_rng(7)
    R = rng.uniform(0.0, 1.0, size=(20, 3))
    p = np.array([0.2, 0.3, 0.5])
    return R, p, R @ p


def test_nnls_solve_exact_solution(simple_linear_data):
    A, b = simple_linear_data
    np.testing.assert_allclose(nnls_solve(A, b), [2.0, 3.0], atol=1e-10)


def test_nnls_solve_clamps_negative_coefficients():
    A = np.array([[1.0, 0.0], [0.0, 1.0]])
    np.testing.assert_allclose(nnls_solve(A, np.array([2.0, -1.0])), [2.0, 0.0], atol=1e-12)


def test_nnls_solve_iteration_limit(monkeypatch):
    def exhausted(A, b, maxiter=None):
        raise RuntimeError("Maximum number of iterations reached.")

    monkeypatch.setattr(linear_solver, "nnls", exhausted)
    with pytest.raises(ValueError, match="NNLS did not converge"):
        nnls_solve(np.eye(2), np.ones(2))


def test_nnls_then_normalize(simple_linear_data):
    A, b = simple_linear_data
    result = LinearSolver(Formulation.NNLS).solve(A, b, Constraints())
    np.testing.assert_allclose(result.raw_coefficients, [2.0, 3.0], atol=1e-8)
    np.testing.assert_allclose(result.coefficients, [0.4, 0.6], atol=1e-8)
    assert result.valid
    assert result.diagnostic.tier is FallbackTier.PRIMARY
    assert not result.diagnostic.fallback_triggered
    assert result.diagnostic.residual_norm == pytest.approx(0.0, abs=1e-8)


def test_accepts_reference_matrix(simple_linear_data):
    A, b = simple_linear_data
    result = LinearSolver(Formulation.NNLS).solve(ReferenceMatrix(A), b)
    np.testing.assert_allclose(result.coefficients, [0.4, 0.6], atol=1e-8)


def test_default_formulation_follows_constraints():
    solver = LinearSolver()
    assert solver.resolve_formulation(Constraints(sum_to_one=True)) is Formulation.QP
    assert solver.resolve_formulation(Constraints(sum_to_one=False)) is Formulation.NNLS
    assert LinearSolver(Formulation.SIMPLEX_QP).resolve_formulation(Constraints()) is Formulation.SIMPLEX_QP


def test_qp_recovers_convex_combination(convex_mixture):
    R, p, t = convex_mixture
    result = LinearSolver(Formulation.QP).solve(R, t)
    np.testing.assert_allclose(result.coefficients, p, atol=1e-6)
    assert result.diagnostic.method == "qp"
    assert abs(result.coefficients.sum() - 1.0) < 1e-6


def test_simplex_qp_recovers_convex_combination(convex_mixture):
    R, p, t = convex_mixture
    result = LinearSolver(Formulation.SIMPLEX_QP).solve(R, t)
    np.testing.assert_allclose(result.coefficients, p, atol=1e-4)
    assert np.all(result.coefficients >= 0)


def test_zero_target_is_skipped():
    result = LinearSolver().solve(np.eye(3), np.zeros(3))
    assert not result.valid
    assert result.diagnostic.skipped
    assert result.diagnostic.tier is FallbackTier.SKIPPED
    np.testing.assert_array_equal(result.coefficients, np.zeros(3))


def test_non_finite_target_is_skipped():
    result = LinearSolver().solve(np.eye(2), np.array([1.0, np.nan]))
    assert result.diagnostic.skipped
    assert not np.isnan(result.coefficients).any()


def test_dimension_mismatch(simple_linear_data):
    A, _ = simple_linear_data
    with pytest.raises(DimensionMismatchError):
        LinearSolver().solve(A, np.ones(4))

# ============== Fallback chain ==============

def test_singular_hessian_falls_back_to_ridge(caplog):
    # identical columns make R^T R singular, which quadprog refuses
    R = np.array([[1.0, 1.0], [2.0, 2.0], [3.0, 3.0]])
    with caplog.at_level(logging.WARNING):
        result = LinearSolver(Formulation.QP).solve(R, np.array([1.0, 2.0, 3.0]))
    assert result.valid
    assert result.diagnostic.tier is FallbackTier.RIDGE
    assert result.diagnostic.fallback_triggered
    assert result.diagnostic.failures[0].startswith("primary")
    np.testing.assert_allclose(result.coefficients, [0.5, 0.5], atol=1e-3)
    assert "falling back" in caplog.text


def test_primary_failure_is_recorded(monkeypatch, simple_linear_data):
    def boom(A, b):
        raise ValueError("forced failure")

    monkeypatch.setitem(linear_solver._PRIMARY_SOLVERS, Formulation.NNLS, boom)
    A, b = simple_linear_data
    result = LinearSolver(Formulation.NNLS).solve(A, b)
    assert result.diagnostic.tier is FallbackTier.RIDGE
    assert "forced failure" in result.diagnostic.failures[0]
    np.testing.assert_allclose(result.coefficients, [0.4, 0.6], atol=1e-6)


def test_mean_profile_tier_is_low_confidence():
    # a negative target has no non-negative fit, so primary and ridge both come back empty
    R = np.array([[1.0], [1.0]])
    result = LinearSolver(Formulation.NNLS).solve(R, np.array([-1.0, -1.0]))
    assert result.diagnostic.tier is FallbackTier.MEAN_PROFILE
    assert result.diagnostic.low_confidence
    assert len(result.diagnostic.failures) == 2
    np.testing.assert_allclose(result.coefficients, [1.0])


def test_every_tier_failing_raises():
    R = np.zeros((3, 2))
    with pytest.raises(SolverError) as excinfo:
        LinearSolver(Formulation.NNLS).solve(R, np.array([1.0, 2.0, 3.0]))
    assert len(excinfo.value.failures) == 3


def test_ridge_clipped_solver(simple_linear_data):
    A, b = simple_linear_data
    result = RidgeClippedSolver().solve(A, b)
    assert result.diagnostic.tier is FallbackTier.RIDGE
    assert not result.diagnostic.fallback_triggered
    np.testing.assert_allclose(result.coefficients, [0.4, 0.6], atol=1e-6)


def test_min_fraction_applied_after_solve():
    result = LinearSolver(Formulation.NNLS).solve(np.eye(2), np.array([0.05, 1.0]), Constraints(min_fraction=0.1))
    assert result.valid
    np.testing.assert_allclose(result.coefficients, [0.0, 1.0])


def test_thresholding_everything_marks_invalid():
    result = LinearSolver(Formulation.NNLS).solve(
        np.eye(2), np.array([0.1, 0.2]), Constraints(sum_to_one=False, min_fraction=0.5)
    )
    assert not result.valid
    assert not result.diagnostic.skipped
    np.testing.assert_array_equal(result.coefficients, [0.0, 0.0])


def test_requires_ridge_epsilons():
    with pytest.raises(ValueError):
        LinearSolver(ridge_epsilons=())
