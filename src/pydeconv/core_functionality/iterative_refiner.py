#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Iterative residual-reweighted non-negative least squares.

Features that the current solution reconstructs poorly get exponentially
smaller weights on the next solve, which damps the influence of outlier
features on the estimated proportions.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 09, 2026"
__updated__ = "September 28, 2026"

# built-in modules
from dataclasses import replace
from typing import Optional, Union
import logging

# third-party modules
import numpy as np

# project modules
from pydeconv.core_functionality.constraints import ConstraintEnforcer, Constraints
from pydeconv.core_functionality.exceptions import DimensionMismatchError
from pydeconv.core_functionality.linear_solver import Formulation, LinearSolver, SolverResult
from pydeconv.core_functionality.matrices import ReferenceMatrix

logger = logging.getLogger(__name__)


def residual_weights(residual: np.ndarray, base_weights: np.ndarray, epsilon: float = 1e-12) -> np.ndarray:
    """ Down-weight features with large absolute residuals.

    w = base * exp(-|r| / (mean(|r|) + epsilon)). Non-finite weights are replaced
    with the smallest finite weight of the same vector, or with the base weights
    when none is finite.

    Args:
        residual (np.ndarray): Residual per feature.
        base_weights (np.ndarray): Initial weight per feature.
        epsilon (float, optional): Guards the division for a perfect fit. Defaults to 1e-12.

    Returns:
        np.ndarray: New weight per feature.
    """
    abs_residual = np.abs(residual)
    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        scale = np.nanmean(abs_residual) if abs_residual.size else 0.0
        weights = base_weights * np.exp(-abs_residual / (scale + epsilon))
    finite = np.isfinite(weights)
    if np.all(finite):
        return weights
    if not np.any(finite):
        return np.array(base_weights, dtype=float, copy=True)
    weights = weights.copy()
    weights[~finite] = weights[finite].min()
    return weights


class IterativeRefiner():
    """MuSiC-like reweighting loop wrapped around a LinearSolver."""

    def __init__(self, solver: Optional[LinearSolver] = None, epsilon: float = 1e-12):
        self.solver = solver if solver is not None else LinearSolver(formulation=Formulation.NNLS)
        self.epsilon = float(epsilon)

    def refine(
        self,
        reference: Union[ReferenceMatrix, np.ndarray],
        target: np.ndarray,
        weights_init: Optional[np.ndarray] = None,
        max_iterations: int = 50,
        tolerance: float = 1e-6,
        constraints: Optional[Constraints] = None,
        sample: str = "",
    ) -> SolverResult:
        """ Run the reweighting loop for one sample.

        Args:
            reference (Union[ReferenceMatrix, np.ndarray]): Features x cell types.
            target (np.ndarray): One mixture sample, length n_features.
            weights_init (Optional[np.ndarray], optional): Base weight per feature. Defaults to all ones.
            max_iterations (int, optional): Upper bound on reweighted solves. Defaults to 50.
            tolerance (float, optional): Convergence threshold on the L1 change of the coefficients. Defaults to 1e-6.
            constraints (Optional[Constraints], optional): Active constraint set. Defaults to Constraints().
            sample (str, optional): Sample name for log messages. Defaults to "".

        Raises:
            ValueError: If max_iterations is negative, tolerance is negative or the weights are invalid.
            DimensionMismatchError: If the weights do not have one entry per feature.

        Returns:
            SolverResult: Final coefficients with iterations/converged recorded in the diagnostic.
        """
        if max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        if tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        constraints = constraints or Constraints()
        A = reference.values if isinstance(reference, ReferenceMatrix) else np.asarray(reference, dtype=float)
        b = np.asarray(target, dtype=float).reshape(-1)

        if weights_init is None:
            base = np.ones(A.shape[0])
        else:
            base = np.asarray(weights_init, dtype=float).reshape(-1)
            if base.shape[0] != A.shape[0]:
                raise DimensionMismatchError(
                    f"weights_init has {base.shape[0]} entries, reference has {A.shape[0]} features"
                )
            if np.any(base < 0) or not np.all(np.isfinite(base)):
                raise ValueError("weights_init must be finite and non-negative")

        result = self.solver.solve(A, b, constraints, sample=sample)
        if result.diagnostic.skipped or not result.valid:
            result.diagnostic = replace(result.diagnostic, iterations=0, converged=False)
            return result

        current = result
        converged = False
        iterations = 0
        for iterations in range(1, max_iterations + 1):
            residual = b - A @ current.raw_coefficients
            weights = residual_weights(residual, base, self.epsilon)
            root = np.sqrt(weights)
            candidate = self.solver.solve(root[:, None] * A, root * b, constraints, sample=sample)
            if candidate.diagnostic.skipped or not candidate.valid:
                logger.warning("Sample %s: reweighted solve %d produced no valid solution; keeping previous", sample or "<unnamed>", iterations)
                break

            delta = float(np.abs(candidate.coefficients - current.coefficients).sum())
            logger.debug("Sample %s: iteration %d, L1 change %.3e", sample or "<unnamed>", iterations, delta)
            current = candidate
            if delta < tolerance:
                converged = True
                break

        if not converged:
            logger.info("Sample %s: reweighting stopped after %d iteration(s) without converging", sample or "<unnamed>", iterations)

        failures = list(result.diagnostic.failures)
        if current is not result:
            failures.extend(current.diagnostic.failures)
        coefficients, valid = ConstraintEnforcer.apply(current.coefficients, constraints)
        diagnostic = replace(
            current.diagnostic,
            method=f"iterative_{current.diagnostic.method}",
            iterations=iterations,
            converged=converged,
            residual_norm=float(np.linalg.norm(A @ current.raw_coefficients - b)),
            failures=failures,
        )
        return SolverResult(
            coefficients=coefficients,
            valid=valid,
            diagnostic=diagnostic,
            raw_coefficients=current.raw_coefficients,
        )
