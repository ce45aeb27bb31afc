#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Runs several solver strategies over the same reference and mixture, scores
them and keeps the best one.

Every strategy runs independently over every sample. A strategy that raises
is excluded and reported, and the others still run. With a ground truth the
strategy with the highest mean R2 against it wins, otherwise a fixed
priority order decides. Ridge regression clipped at zero is the last resort
when no strategy produced a single valid sample. A reference with no usable
signature is not solved at all: every sample comes back as an invalid zero vector.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 18, 2026"
__updated__ = "October 16, 2026"

# built-in modules
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union
import logging
import time

# third-party modules
import numpy as np
import pandas as pd

# project modules
from pydeconv.core_functionality.constraints import Constraints
from pydeconv.core_functionality.evaluation import FitEvaluator
from pydeconv.core_functionality.exceptions import DimensionMismatchError, SolverError
from pydeconv.core_functionality.factorization import joint_factorization
from pydeconv.core_functionality.iterative_refiner import IterativeRefiner
from pydeconv.core_functionality.linear_solver import (
    FallbackTier,
    Formulation,
    LinearSolver,
    RidgeClippedSolver,
    SolverDiagnostic,
    SolverResult,
)
from pydeconv.core_functionality.matching import ComparisonUnavailable, validate_ground_truth
from pydeconv.core_functionality.matrices import MixtureMatrix, ProportionsMatrix, ReferenceMatrix
from pydeconv.core_functionality.parallel import map_samples

logger = logging.getLogger(__name__)


class SolverStrategy(Enum):
    NNLS = "nnls"
    QP = "qp"
    SIMPLEX_QP = "simplex_qp"
    ITERATIVE_REWEIGHTED = "iterative_reweighted"
    JOINT_FACTORIZATION = "joint_factorization"
    RIDGE_CLIPPED = "ridge_clipped"


PRIORITY_ORDER = (
    SolverStrategy.NNLS,
    SolverStrategy.QP,
    SolverStrategy.SIMPLEX_QP,
    SolverStrategy.ITERATIVE_REWEIGHTED,
    SolverStrategy.JOINT_FACTORIZATION,
)
DEFAULT_STRATEGIES = PRIORITY_ORDER
LAST_RESORT = SolverStrategy.RIDGE_CLIPPED


@dataclass
class StrategyOutput:
    strategy: SolverStrategy
    proportions: ProportionsMatrix
    results: List[SolverResult]
    elapsed: float = 0.0

    @property
    def n_valid(self) -> int:
        return self.proportions.n_valid


@dataclass
class EnsembleResult:
    """Winner of an ensemble run plus everything needed to audit the choice.

    Iterating yields (proportions, chosen_strategy), so the result unpacks as a pair.
    chosen_strategy is None when the reference is degenerate and nothing was solved.
    """
    proportions: ProportionsMatrix
    chosen_strategy: Optional[SolverStrategy]
    selection_reason: str
    results: List[SolverResult] = field(default_factory=list)
    outputs: Dict[SolverStrategy, StrategyOutput] = field(default_factory=dict)
    excluded: Dict[SolverStrategy, str] = field(default_factory=dict)
    not_run: List[SolverStrategy] = field(default_factory=list)
    not_run_reason: str = "time budget exhausted"
    scores: Dict[SolverStrategy, float] = field(default_factory=dict)
    fit_metrics: Optional[pd.DataFrame] = None
    comparison: Union[pd.DataFrame, ComparisonUnavailable, None] = None

    def __iter__(self):
        yield self.proportions
        yield self.chosen_strategy

    def provenance(self) -> pd.DataFrame:
        """ Per-sample strategy, fallback tier and validity of the chosen output. """
        strategy = self.chosen_strategy.value if self.chosen_strategy is not None else "none"
        rows = []
        for sample, result in zip(self.proportions.samples, self.results):
            d = result.diagnostic
            rows.append({
                "sample": sample,
                "strategy": strategy,
                "method": d.method,
                "tier": d.tier.value,
                "fallback_triggered": d.fallback_triggered,
                "skipped": d.skipped,
                "low_confidence": d.low_confidence,
                "valid": bool(result.valid),
                "residual_norm": d.residual_norm,
                "iterations": d.iterations,
                "converged": d.converged,
                "failures": "; ".join(d.failures),
            })
        return pd.DataFrame(rows).set_index("sample") if rows else pd.DataFrame()

    def summary(self) -> pd.DataFrame:
        """ One row per requested strategy: status, valid samples, score and reason. """
        rows = []
        for strategy in SolverStrategy:
            if strategy in self.outputs:
                output = self.outputs[strategy]
                status = "chosen" if strategy is self.chosen_strategy else "ran"
                rows.append({
                    "strategy": strategy.value,
                    "status": status,
                    "n_valid": output.n_valid,
                    "score": self.scores.get(strategy),
                    "elapsed_s": output.elapsed,
                    "reason": self.selection_reason if status == "chosen" else "",
                })
            elif strategy in self.excluded:
                rows.append({"strategy": strategy.value, "status": "excluded", "n_valid": 0,
                             "score": None, "elapsed_s": None, "reason": self.excluded[strategy]})
            elif strategy in self.not_run:
                rows.append({"strategy": strategy.value, "status": "not_run", "n_valid": 0,
                             "score": None, "elapsed_s": None, "reason": self.not_run_reason})
        return pd.DataFrame(rows).set_index("strategy")


def _as_strategy(value) -> SolverStrategy:
    if isinstance(value, SolverStrategy):
        return value
    try:
        return SolverStrategy(str(value).lower())
    except ValueError:
        try:
            return SolverStrategy[str(value).upper()]
        except KeyError:
            valid = ", ".join(s.value for s in SolverStrategy)
            raise ValueError(f"Unknown solver strategy '{value}'. Valid strategies are: {valid}")


class EnsembleSelector():

    def __init__(
        self,
        constraints: Optional[Constraints] = None,
        n_jobs: int = 1,
        iterative_max_iterations: int = 50,
        iterative_tolerance: float = 1e-6,
        factorization_max_iter: int = 500,
        factorization_tol: float = 1e-4,
        random_state: Optional[int] = 0,
    ):
        """ Initialize the selector.

        Args:
            constraints (Optional[Constraints], optional): Constraint set shared by every strategy. Defaults to Constraints().
            n_jobs (int, optional): Workers for per-sample solves, 1 runs sequentially. Defaults to 1.
            iterative_max_iterations (int, optional): Reweighting budget of ITERATIVE_REWEIGHTED. Defaults to 50.
            iterative_tolerance (float, optional): Convergence threshold of ITERATIVE_REWEIGHTED. Defaults to 1e-6.
            factorization_max_iter (int, optional): NMF budget of JOINT_FACTORIZATION. Defaults to 500.
            factorization_tol (float, optional): NMF tolerance of JOINT_FACTORIZATION. Defaults to 1e-4.
            random_state (Optional[int], optional): Seed for JOINT_FACTORIZATION. Defaults to 0.
        """
        if n_jobs == 0:
            raise ValueError("n_jobs must be non-zero")
        if iterative_max_iterations < 0 or factorization_max_iter < 1:
            raise ValueError("Iteration budgets must be positive")
        self.constraints = constraints or Constraints()
        self.n_jobs = n_jobs
        self.iterative_max_iterations = iterative_max_iterations
        self.iterative_tolerance = iterative_tolerance
        self.factorization_max_iter = factorization_max_iter
        self.factorization_tol = factorization_tol
        self.random_state = random_state

    # ---------------- strategy runners ----------------
    def _solve_each(self, solve, reference: ReferenceMatrix, mixture: MixtureMatrix) -> List[SolverResult]:
        samples = mixture.samples

        def _one(i):
            return solve(reference, mixture.column(i), constraints=self.constraints, sample=samples[i])

        return map_samples(_one, mixture.n_samples, n_jobs=self.n_jobs)

    def _run_nnls(self, reference, mixture):
        return self._solve_each(LinearSolver(Formulation.NNLS).solve, reference, mixture)

    def _run_qp(self, reference, mixture):
        return self._solve_each(LinearSolver(Formulation.QP).solve, reference, mixture)

    def _run_simplex_qp(self, reference, mixture):
        return self._solve_each(LinearSolver(Formulation.SIMPLEX_QP).solve, reference, mixture)

    def _run_iterative_reweighted(self, reference, mixture):
        refiner = IterativeRefiner(LinearSolver(Formulation.NNLS))

        def _refine(ref, target, constraints, sample):
            return refiner.refine(
                ref, target,
                max_iterations=self.iterative_max_iterations,
                tolerance=self.iterative_tolerance,
                constraints=constraints,
                sample=sample,
            )

        return self._solve_each(_refine, reference, mixture)

    def _run_joint_factorization(self, reference, mixture):
        return joint_factorization(
            reference,
            mixture,
            constraints=self.constraints,
            max_iter=self.factorization_max_iter,
            tol=self.factorization_tol,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        ).results

    def _run_ridge_clipped(self, reference, mixture):
        return self._solve_each(RidgeClippedSolver().solve, reference, mixture)

    def run_strategy(self, strategy: SolverStrategy, reference: ReferenceMatrix, mixture: MixtureMatrix) -> StrategyOutput:
        """ Run one strategy over every sample and assemble its proportions. """
        strategy = _as_strategy(strategy)
        start = time.monotonic()
        results = _RUNNERS[strategy](self, reference, mixture)
        proportions = ProportionsMatrix.from_columns(
            [r.coefficients for r in results],
            [r.valid for r in results],
            reference.cell_types,
            mixture.samples,
        )
        output = StrategyOutput(strategy, proportions, list(results), time.monotonic() - start)
        n_invalid = mixture.n_samples - output.n_valid
        if n_invalid:
            logger.warning("%s: %d of %d sample(s) have no valid solution", strategy.value, n_invalid, mixture.n_samples)
        n_fallback = sum(r.diagnostic.fallback_triggered for r in results)
        if n_fallback:
            logger.warning("%s: fallback tier used for %d sample(s)", strategy.value, n_fallback)
        return output

    # ---------------- validation ----------------
    @staticmethod
    def _check_inputs(reference, mixture):
        if isinstance(reference, pd.DataFrame):
            reference = ReferenceMatrix(reference)
        if isinstance(mixture, pd.DataFrame):
            mixture = MixtureMatrix(mixture)
        if not isinstance(reference, ReferenceMatrix):
            raise TypeError("reference must be a ReferenceMatrix or a pandas DataFrame")
        if not isinstance(mixture, MixtureMatrix):
            raise TypeError("mixture must be a MixtureMatrix or a pandas DataFrame")
        if reference.n_features != mixture.n_features:
            raise DimensionMismatchError(
                f"Reference has {reference.n_features} features but the mixture has {mixture.n_features}"
            )
        if reference.features != mixture.features:
            logger.warning("Reference and mixture feature labels differ; rows are matched by position")
        return reference, mixture

    # ---------------- degenerate reference ----------------
    @staticmethod
    def _degenerate_reason(reference: ReferenceMatrix) -> Optional[str]:
        if reference.is_empty():
            return f"Reference matrix is empty ({reference.n_features} features x {reference.n_cell_types} cell types)"
        if not reference.nonzero_cell_types().any():
            return "Reference matrix has no non-zero cell-type signature"
        return None

    @staticmethod
    def _degenerate_result(reference, mixture, requested, reason, ground_truth) -> EnsembleResult:
        logger.warning("%s; every sample is reported as invalid", reason)
        n_cell_types, n_samples = reference.n_cell_types, mixture.n_samples
        proportions = ProportionsMatrix(
            np.zeros((n_cell_types, n_samples)),
            reference.cell_types,
            mixture.samples,
            valid=np.zeros(n_samples, dtype=bool),
        )
        results = [
            SolverResult(
                coefficients=np.zeros(n_cell_types),
                valid=False,
                diagnostic=SolverDiagnostic(method="skip", tier=FallbackTier.SKIPPED, skipped=True, failures=[reason]),
            )
            for _ in range(n_samples)
        ]
        comparison = None
        if ground_truth is not None:
            comparison = FitEvaluator.compare_to_ground_truth(proportions, ground_truth)
        return EnsembleResult(
            proportions=proportions,
            chosen_strategy=None,
            selection_reason=reason,
            results=results,
            not_run=list(requested),
            not_run_reason=reason,
            fit_metrics=FitEvaluator.evaluate(reference, mixture, proportions),
            comparison=comparison,
        )

    # ---------------- selection ----------------
    def _score_against_truth(self, outputs, ground_truth):
        scores: Dict[SolverStrategy, float] = {}
        comparisons = {}
        for strategy, output in outputs.items():
            if output.n_valid == 0:
                continue
            comparison = FitEvaluator.compare_to_ground_truth(output.proportions, ground_truth)
            comparisons[strategy] = comparison
            if isinstance(comparison, ComparisonUnavailable):
                continue
            mean_r2 = comparison["r2"].mean(skipna=True)
            if pd.isna(mean_r2):
                continue
            scores[strategy] = float(mean_r2)
        return scores, comparisons

    @staticmethod
    def _by_priority(outputs) -> Optional[SolverStrategy]:
        for strategy in PRIORITY_ORDER:
            if strategy in outputs and outputs[strategy].n_valid > 0:
                return strategy
        return None

    def run(
        self,
        reference: Union[ReferenceMatrix, pd.DataFrame],
        mixture: Union[MixtureMatrix, pd.DataFrame],
        strategies: Optional[Iterable[Union[SolverStrategy, str]]] = None,
        ground_truth: Optional[pd.DataFrame] = None,
        time_budget: Optional[float] = None,
    ) -> EnsembleResult:
        """ Run the strategies and select the winning proportions.

        Args:
            reference (Union[ReferenceMatrix, pd.DataFrame]): Features x cell types.
            mixture (Union[MixtureMatrix, pd.DataFrame]): Features x samples, aligned to the reference.
            strategies (Optional[Iterable[Union[SolverStrategy, str]]], optional): Strategies to try, in order.
                Defaults to NNLS, QP, SIMPLEX_QP, ITERATIVE_REWEIGHTED, JOINT_FACTORIZATION.
            ground_truth (Optional[pd.DataFrame], optional): Known proportions, samples x cell types. Defaults to None.
            time_budget (Optional[float], optional): Seconds; checked before each strategy starts. Defaults to None.

        Raises:
            DimensionMismatchError: If feature counts differ or the ground truth is empty or non-numeric.
            SolverError: If no strategy, including the last resort, produced any output.

        Returns:
            EnsembleResult: Chosen proportions and the audit trail.
        """
        reference, mixture = self._check_inputs(reference, mixture)
        if ground_truth is not None:
            ground_truth = validate_ground_truth(ground_truth)
        if time_budget is not None and time_budget < 0:
            raise ValueError("time_budget must be >= 0")

        requested: List[SolverStrategy] = []
        for s in (DEFAULT_STRATEGIES if strategies is None else strategies):
            strategy = _as_strategy(s)
            if strategy not in requested:
                requested.append(strategy)
        if not requested:
            raise ValueError("At least one solver strategy is required")

        degenerate = self._degenerate_reason(reference)
        if degenerate is not None:
            return self._degenerate_result(reference, mixture, requested, degenerate, ground_truth)

        outputs: Dict[SolverStrategy, StrategyOutput] = {}
        excluded: Dict[SolverStrategy, str] = {}
        not_run: List[SolverStrategy] = []
        start = time.monotonic()
        for position, strategy in enumerate(requested):
            if time_budget is not None and time.monotonic() - start >= time_budget:
                not_run = requested[position:]
                logger.warning("Time budget of %.3gs exhausted; not running: %s",
                               time_budget, ", ".join(s.value for s in not_run))
                break
            logger.info("Running strategy %s on %d sample(s)", strategy.value, mixture.n_samples)
            try:
                outputs[strategy] = self.run_strategy(strategy, reference, mixture)
            except Exception as e:
                excluded[strategy] = f"{type(e).__name__}: {e}"
                logger.warning("Strategy %s excluded: %s", strategy.value, excluded[strategy])

        scores: Dict[SolverStrategy, float] = {}
        comparisons = {}
        chosen: Optional[SolverStrategy] = None
        reason = ""
        if ground_truth is not None:
            scores, comparisons = self._score_against_truth(outputs, ground_truth)
            for strategy in requested:
                if strategy in scores and (chosen is None or scores[strategy] > scores[chosen]):
                    chosen = strategy
            if chosen is not None:
                reason = f"highest mean R2 against ground truth ({scores[chosen]:.4f})"

        if chosen is None:
            chosen = self._by_priority(outputs)
            if chosen is not None:
                reason = "first strategy in priority order with valid samples"
                if ground_truth is not None:
                    reason += " (ground truth not comparable)"

        if chosen is None and LAST_RESORT in outputs and outputs[LAST_RESORT].n_valid > 0:
            chosen = LAST_RESORT
            reason = "only ridge regression produced valid samples"

        if chosen is None:
            logger.warning("No strategy produced a valid sample; running %s as last resort", LAST_RESORT.value)
            try:
                outputs[LAST_RESORT] = self.run_strategy(LAST_RESORT, reference, mixture)
            except (ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
                excluded[LAST_RESORT] = f"{type(e).__name__}: {e}"
                logger.warning("Last resort %s failed: %s", LAST_RESORT.value, excluded[LAST_RESORT])
            if LAST_RESORT in outputs:
                chosen = LAST_RESORT
                reason = "last resort, no other strategy produced valid samples"
            elif outputs:
                chosen = next(s for s in requested if s in outputs)
                reason = "no strategy produced valid samples"
            else:
                raise SolverError(
                    "Every solver strategy failed",
                    [f"{s.value}: {r}" for s, r in excluded.items()],
                )

        logger.info("Selected %s: %s", chosen.value, reason)
        winner = outputs[chosen]

        comparison = None
        if ground_truth is not None:
            comparison = comparisons.get(chosen)
            if comparison is None:
                comparison = FitEvaluator.compare_to_ground_truth(winner.proportions, ground_truth)

        return EnsembleResult(
            proportions=winner.proportions,
            chosen_strategy=chosen,
            selection_reason=reason,
            results=winner.results,
            outputs=outputs,
            excluded=excluded,
            not_run=not_run,
            scores=scores,
            fit_metrics=FitEvaluator.evaluate(reference, mixture, winner.proportions),
            comparison=comparison,
        )


_RUNNERS: Dict[SolverStrategy, Callable[[EnsembleSelector, ReferenceMatrix, MixtureMatrix], List[SolverResult]]] = {
    SolverStrategy.NNLS: EnsembleSelector._run_nnls,
    SolverStrategy.QP: EnsembleSelector._run_qp,
    SolverStrategy.SIMPLEX_QP: EnsembleSelector._run_simplex_qp,
    SolverStrategy.ITERATIVE_REWEIGHTED: EnsembleSelector._run_iterative_reweighted,
    SolverStrategy.JOINT_FACTORIZATION: EnsembleSelector._run_joint_factorization,
    SolverStrategy.RIDGE_CLIPPED: EnsembleSelector._run_ridge_clipped,
}
_missing = set(SolverStrategy) - set(_RUNNERS)
if _missing:
    raise RuntimeError(f"No runner registered for: {sorted(s.value for s in _missing)}")
