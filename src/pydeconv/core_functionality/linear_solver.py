#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Constrained least-squares solve of one mixture sample against the reference.

The solve runs through an ordered fallback chain (primary formulation, ridge
regularised least squares, mean reference profile). Each tier returns a typed
TierOutcome, and the first successful tier is post-processed by the
ConstraintEnforcer.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 04, 2026"
__updated__ = "October 16, 2026"

# built-in modules
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union
import logging

# third-party modules
import numpy as np
import quadprog
from scipy.optimize import minimize, nnls

# project modules
from pydeconv.core_functionality.constraints import ConstraintEnforcer, Constraints
from pydeconv.core_functionality.exceptions import DimensionMismatchError, SolverError
from pydeconv.core_functionality.matrices import ReferenceMatrix

logger = logging.getLogger(__name__)

DEFAULT_RIDGE_EPSILONS = (1e-10, 1e-6, 1e-2)


class Formulation(Enum):
    NNLS = "nnls"
    QP = "qp"
    SIMPLEX_QP = "simplex_qp"


class FallbackTier(Enum):
    PRIMARY = "primary"
    RIDGE = "ridge"
    MEAN_PROFILE = "mean_profile"
    SKIPPED = "skipped"


@dataclass
class TierOutcome:
    tier: FallbackTier
    success: bool
    coefficients: Optional[np.ndarray] = None
    method: str = ""
    reason: str = ""


@dataclass
class SolverDiagnostic:
    """Provenance of a single-sample solve."""
    method: str
    tier: FallbackTier
    fallback_triggered: bool = False
    skipped: bool = False
    residual_norm: float = float("nan")
    failures: List[str] = field(default_factory=list)
    iterations: Optional[int] = None
    converged: Optional[bool] = None

    @property
    def low_confidence(self) -> bool:
        return self.tier is FallbackTier.MEAN_PROFILE


@dataclass
class SolverResult:
    coefficients: np.ndarray
    valid: bool
    diagnostic: SolverDiagnostic
    raw_coefficients: Optional[np.ndarray] = None


def nnls_solve(A: np.ndarray, b: np.ndarray, max_iter: Optional[int] = None) -> np.ndarray:
    """ Non-negative least squares, argmin_x ||Ax - b|| subject to x >= 0.

    Lawson-Hanson active set from scipy.

    Args:
        A (np.ndarray): Features x cell types.
        b (np.ndarray): One mixture sample.
        max_iter (Optional[int], optional): Active-set iteration limit, scipy's default (3 x cell types) when None.

    Raises:
        ValueError: If the active-set loop does not finish within max_iter.

    Returns:
        np.ndarray: Non-negative coefficients, one per cell type.
    """
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float).reshape(-1)
    try:
        x, _ = nnls(A, b, maxiter=max_iter)
    except RuntimeError as e:
        raise ValueError(f"NNLS did not converge: {e}")
    return np.asarray(x, dtype=float)


def qp_solve(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    """ Sum-to-one, non-negative least squares as a quadratic program.

    Minimizes 1/2 x^T G x - a^T x with G = A^T A and a = A^T b, subject to one
    equality row (sum(x) = 1) and one inequality row per coefficient (x >= 0).
    Solved with the Goldfarb-Idnani dual active-set method from quadprog, which
    raises ValueError when G is not positive definite.
    """
    G = A.T @ A
    a = A.T @ b
    scale = np.linalg.norm(G, 2)
    if scale > 0:
        G = G / scale
        a = a / scale
    n = G.shape[0]
    C = np.column_stack([np.ones(n), np.eye(n)])
    bounds = np.concatenate([[1.0], np.zeros(n)])
    x = quadprog.solve_qp(
        np.ascontiguousarray(G, dtype=float),
        np.ascontiguousarray(a, dtype=float),
        np.ascontiguousarray(C, dtype=float),
        bounds,
        1,
    )[0]
    return np.asarray(x, dtype=float)


def simplex_qp_solve(A: np.ndarray, b: np.ndarray, max_iter: int = 500) -> np.ndarray:
    """ Least squares over the probability simplex, solved with SLSQP. """
    G = A.T @ A
    a = A.T @ b
    scale = np.linalg.norm(G, 2)
    if scale > 0:
        G = G / scale
        a = a / scale
    n = G.shape[0]

    def objective(x):
        return 0.5 * x @ G @ x - a @ x

    def gradient(x):
        return G @ x - a

    res = minimize(
        objective,
        np.full(n, 1.0 / n),
        jac=gradient,
        method="SLSQP",
        bounds=[(0.0, 1.0)] * n,
        constraints=[{"type": "eq", "fun": lambda x: np.sum(x) - 1.0, "jac": lambda x: np.ones_like(x)}],
        options={"maxiter": max_iter, "ftol": 1e-12},
    )
    if not res.success:
        raise ValueError(f"SLSQP did not converge: {res.message}")
    return np.asarray(res.x, dtype=float)


_PRIMARY_SOLVERS = {
    Formulation.NNLS: nnls_solve,
    Formulation.QP: qp_solve,
    Formulation.SIMPLEX_QP: simplex_qp_solve,
}


class LinearSolver():
    """Single-sample constrained solve with an explicit fallback chain."""

    def __init__(
        self,
        formulation: Optional[Formulation] = None,
        ridge_epsilons: Sequence[float] = DEFAULT_RIDGE_EPSILONS,
    ):
        """ Initialize the solver.

        Args:
            formulation (Optional[Formulation], optional): Primary formulation. When None, the QP is used
                if the constraints require sum-to-one and NNLS otherwise. Defaults to None.
            ridge_epsilons (Sequence[float], optional): Diagonal regularization strengths tried in order
                by the ridge tier. Defaults to (1e-10, 1e-6, 1e-2).
        """
        if not ridge_epsilons:
            raise ValueError("At least one ridge epsilon is required")
        self.formulation = formulation
        self.ridge_epsilons = tuple(float(e) for e in ridge_epsilons)

    def resolve_formulation(self, constraints: Constraints) -> Formulation:
        if self.formulation is not None:
            return self.formulation
        return Formulation.QP if constraints.sum_to_one else Formulation.NNLS

    # ---------------- fallback tiers ----------------
    def _primary_tier(self, A: np.ndarray, b: np.ndarray, constraints: Constraints) -> TierOutcome:
        formulation = self.resolve_formulation(constraints)
        try:
            x = _PRIMARY_SOLVERS[formulation](A, b)
        except (np.linalg.LinAlgError, ValueError) as e:
            return TierOutcome(FallbackTier.PRIMARY, False, method=formulation.value, reason=f"{formulation.value} failed: {e}")
        return self._check(FallbackTier.PRIMARY, formulation.value, x)

    def _ridge_tier(self, A: np.ndarray, b: np.ndarray, constraints: Constraints) -> TierOutcome:
        G = A.T @ A
        a = A.T @ b
        reasons = []
        for epsilon in self.ridge_epsilons:
            try:
                x = np.linalg.solve(G + epsilon * np.eye(G.shape[0]), a)
            except np.linalg.LinAlgError as e:
                reasons.append(f"ridge eps={epsilon:g}: {e}")
                continue
            outcome = self._check(FallbackTier.RIDGE, f"ridge(eps={epsilon:g})", np.maximum(x, 0.0))
            if outcome.success:
                return outcome
            reasons.append(outcome.reason)
        return TierOutcome(FallbackTier.RIDGE, False, method="ridge", reason="; ".join(reasons))

    def _mean_profile_tier(self, A: np.ndarray, b: np.ndarray, constraints: Constraints) -> TierOutcome:
        profile = A.mean(axis=0) if A.shape[0] else np.zeros(A.shape[1])
        profile = np.where(np.isfinite(profile), profile, 0.0)
        profile = np.clip(profile, 0.0, None)
        total = profile.sum()
        if total <= 0:
            return TierOutcome(FallbackTier.MEAN_PROFILE, False, method="mean_profile",
                               reason="reference mean profile has no positive entries")
        return TierOutcome(FallbackTier.MEAN_PROFILE, True, profile / total, method="mean_profile")

    def fallback_chain(self) -> List[Callable[[np.ndarray, np.ndarray, Constraints], TierOutcome]]:
        return [self._primary_tier, self._ridge_tier, self._mean_profile_tier]

    @staticmethod
    def _check(tier: FallbackTier, method: str, x: np.ndarray) -> TierOutcome:
        x = np.asarray(x, dtype=float).reshape(-1)
        if not np.all(np.isfinite(x)):
            return TierOutcome(tier, False, method=method, reason=f"{method} produced non-finite coefficients")
        if np.clip(x, 0.0, None).sum() <= 0:
            return TierOutcome(tier, False, method=method, reason=f"{method} produced an empty solution")
        return TierOutcome(tier, True, x, method=method)

    # ---------------- public API ----------------
    def solve(
        self,
        reference: Union[ReferenceMatrix, np.ndarray],
        target: np.ndarray,
        constraints: Optional[Constraints] = None,
        sample: str = "",
    ) -> SolverResult:
        """ Solve for the cell-type coefficients of one sample.

        Args:
            reference (Union[ReferenceMatrix, np.ndarray]): Features x cell types.
            target (np.ndarray): One mixture sample, length n_features.
            constraints (Optional[Constraints], optional): Active constraint set. Defaults to Constraints().
            sample (str, optional): Sample name, used in log messages only. Defaults to "".

        Raises:
            DimensionMismatchError: If the target length differs from the number of reference features.
            SolverError: If every tier of the fallback chain fails.

        Returns:
            SolverResult: Enforced coefficients, validity flag and diagnostic.
        """
        constraints = constraints or Constraints()
        A = reference.values if isinstance(reference, ReferenceMatrix) else np.asarray(reference, dtype=float)
        b = np.asarray(target, dtype=float).reshape(-1)
        if A.ndim != 2:
            raise ValueError("Reference must be a 2D matrix (features x cell types)")
        if A.shape[0] != b.shape[0]:
            raise DimensionMismatchError(
                f"Reference has {A.shape[0]} features but the target has {b.shape[0]}"
            )
        n_cell_types = A.shape[1]
        label = sample or "<unnamed>"

        if not np.all(np.isfinite(b)) or not np.any(b != 0):
            logger.info("Sample %s is all zero or non-finite; skipping solve", label)
            return SolverResult(
                coefficients=np.zeros(n_cell_types),
                valid=False,
                diagnostic=SolverDiagnostic(method="skip", tier=FallbackTier.SKIPPED, skipped=True),
                raw_coefficients=None,
            )

        failures: List[str] = []
        chosen: Optional[TierOutcome] = None
        for tier in self.fallback_chain():
            outcome = tier(A, b, constraints)
            if outcome.success:
                chosen = outcome
                break
            failures.append(f"{outcome.tier.value}: {outcome.reason}")
            logger.warning("Sample %s: %s tier failed (%s); falling back", label, outcome.tier.value, outcome.reason)

        if chosen is None:
            raise SolverError(f"Every fallback tier failed for sample {label}", failures)
        if chosen.tier is FallbackTier.MEAN_PROFILE:
            logger.warning("Sample %s: returning the low-confidence mean reference profile", label)

        raw = chosen.coefficients
        coefficients, valid = ConstraintEnforcer.apply(raw, constraints)
        diagnostic = SolverDiagnostic(
            method=chosen.method,
            tier=chosen.tier,
            fallback_triggered=bool(failures),
            residual_norm=float(np.linalg.norm(A @ raw - b)),
            failures=failures,
        )
        return SolverResult(coefficients=coefficients, valid=valid, diagnostic=diagnostic, raw_coefficients=raw)


class RidgeClippedSolver(LinearSolver):
    """Last-resort solver: ridge regularised least squares, clipped at zero.

    Skips the primary formulation and starts the fallback chain at the ridge tier.
    """

    def fallback_chain(self) -> List[Callable[[np.ndarray, np.ndarray, Constraints], TierOutcome]]:
        return [self._ridge_tier, self._mean_profile_tier]
