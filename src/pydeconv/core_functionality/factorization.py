#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Joint factorization strategy: non-negative matrix factorization of the whole
mixture, initialised from the reference signatures, so that the cell-type
profiles may adapt to the cohort while the proportions are estimated.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 16, 2026"
__updated__ = "September 28, 2026"

# built-in modules
from dataclasses import dataclass
from typing import List, Optional
import logging
import warnings

# third-party modules
import numpy as np
import pandas as pd
from sklearn.decomposition import NMF
from sklearn.exceptions import ConvergenceWarning

# project modules
from pydeconv.core_functionality.constraints import ConstraintEnforcer, Constraints
from pydeconv.core_functionality.exceptions import DimensionMismatchError
from pydeconv.core_functionality.linear_solver import FallbackTier, SolverDiagnostic, SolverResult, nnls_solve
from pydeconv.core_functionality.matching import match_cell_types
from pydeconv.core_functionality.matrices import MixtureMatrix, ReferenceMatrix
from pydeconv.core_functionality.parallel import map_samples

logger = logging.getLogger(__name__)

INIT_FLOOR = 1e-8


@dataclass
class JointFactorization:
    """Output of the joint factorization.

    Attributes:
        results (List[SolverResult]): One result per mixture sample, in sample order.
        profiles (pd.DataFrame): Refined features x cell types signatures, rescaled to the reference's column sums.
        n_iter (int): Iterations used by the NMF solver.
        reconstruction_err (float): Frobenius norm of mixture - profiles x weights.
    """
    results: List[SolverResult]
    profiles: pd.DataFrame
    n_iter: int
    reconstruction_err: float


def joint_factorization(
    reference: ReferenceMatrix,
    mixture: MixtureMatrix,
    constraints: Optional[Constraints] = None,
    max_iter: int = 500,
    tol: float = 1e-4,
    random_state: Optional[int] = 0,
    n_jobs: int = 1,
) -> JointFactorization:
    """ Factorize mixture^T ~ W H with H initialised to reference^T.

    W is initialised with the per-sample NNLS solution. After fitting, each NMF
    component is mapped back to a reference cell type by correlation, W is
    rescaled so the components carry the reference's magnitude, and each row is
    passed through the ConstraintEnforcer.

    Args:
        reference (ReferenceMatrix): Features x cell types.
        mixture (MixtureMatrix): Features x samples, non-negative.
        constraints (Optional[Constraints], optional): Active constraint set. Defaults to Constraints().
        max_iter (int, optional): NMF iteration budget. Defaults to 500.
        tol (float, optional): NMF stopping tolerance. Defaults to 1e-4.
        random_state (Optional[int], optional): Seed handed to NMF. Defaults to 0.
        n_jobs (int, optional): Workers for the NNLS initialisation. Defaults to 1.

    Raises:
        DimensionMismatchError: If the feature counts differ.
        ValueError: If the mixture or reference has negative values (raised by NMF).

    Returns:
        JointFactorization: Per-sample results plus the refined profiles.
    """
    constraints = constraints or Constraints()
    if reference.n_features != mixture.n_features:
        raise DimensionMismatchError(
            f"Reference has {reference.n_features} features, mixture has {mixture.n_features}"
        )
    R = reference.values
    X = np.ascontiguousarray(mixture.values.T, dtype=np.float64)
    n_cell_types = reference.n_cell_types
    zero_samples = mixture.zero_samples()

    def _init_row(i):
        if zero_samples[i]:
            return np.zeros(n_cell_types)
        return nnls_solve(R, mixture.column(i))

    W0 = np.vstack(map_samples(_init_row, mixture.n_samples, n_jobs=n_jobs)) if mixture.n_samples else np.zeros((0, n_cell_types))
    W0 = np.maximum(W0, INIT_FLOOR)
    H0 = np.maximum(np.array(R.T, dtype=np.float64), INIT_FLOOR)

    model = NMF(
        n_components=n_cell_types,
        init="custom",
        max_iter=max_iter,
        tol=tol,
        random_state=random_state,
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        W = model.fit_transform(X, W=W0, H=H0)
    converged = not any(issubclass(w.category, ConvergenceWarning) for w in caught)
    if not converged:
        logger.warning("Joint factorization stopped at max_iter=%d before converging", max_iter)
    H = model.components_

    order = match_cell_types(H.T, R)
    W = W[:, order]
    H = H[order, :]
    reference_totals = R.sum(axis=0)
    component_totals = H.sum(axis=1)
    scale = np.divide(
        component_totals,
        reference_totals,
        out=np.ones_like(component_totals),
        where=reference_totals > 0,
    )
    W = W * scale
    profiles = H.T / np.where(scale > 0, scale, 1.0)

    results = []
    for i, sample in enumerate(mixture.samples):
        if zero_samples[i]:
            logger.info("Sample %s is all zero; skipping", sample)
            results.append(SolverResult(
                coefficients=np.zeros(n_cell_types),
                valid=False,
                diagnostic=SolverDiagnostic(method="skip", tier=FallbackTier.SKIPPED, skipped=True),
            ))
            continue
        raw = W[i]
        coefficients, valid = ConstraintEnforcer.apply(raw, constraints)
        results.append(SolverResult(
            coefficients=coefficients,
            valid=valid,
            diagnostic=SolverDiagnostic(
                method="nmf",
                tier=FallbackTier.PRIMARY,
                residual_norm=float(np.linalg.norm(profiles @ raw - mixture.column(i))),
                iterations=int(model.n_iter_),
                converged=converged,
            ),
            raw_coefficients=raw,
        ))

    return JointFactorization(
        results=results,
        profiles=pd.DataFrame(profiles, index=reference.features, columns=reference.cell_types),
        n_iter=int(model.n_iter_),
        reconstruction_err=float(model.reconstruction_err_),
    )
