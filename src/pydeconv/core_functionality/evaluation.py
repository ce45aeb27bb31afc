#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Goodness-of-fit metrics for reconstructed mixtures and for estimated
proportions against a known ground truth.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 10, 2026"
__updated__ = "September 28, 2026"

# built-in modules
from dataclasses import asdict, dataclass
from typing import Optional, Union
import logging
import warnings

# third-party modules
import numpy as np
import pandas as pd
from scipy import stats

# project modules
from pydeconv.core_functionality.exceptions import DimensionMismatchError
from pydeconv.core_functionality.matching import ComparisonUnavailable, reconcile_ground_truth
from pydeconv.core_functionality.matrices import MixtureMatrix, ProportionsMatrix, ReferenceMatrix

logger = logging.getLogger(__name__)

METRIC_COLUMNS = ["rmse", "r2", "mae", "pearson", "spearman"]


@dataclass(frozen=True)
class FitMetrics:
    """Per-sample fit quality. None marks a metric that is undefined for the sample."""
    rmse: Optional[float]
    r2: Optional[float]
    mae: Optional[float]
    pearson: Optional[float]
    spearman: Optional[float]

    def as_dict(self) -> dict:
        return asdict(self)


def _correlation(method, x: np.ndarray, y: np.ndarray) -> Optional[float]:
    if x.size < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            value = method(x, y)[0]
    except (ValueError, FloatingPointError) as e:
        logger.debug("Correlation undefined: %s", e)
        return None
    value = float(value)
    return value if np.isfinite(value) else None


def compute_fit_metrics(actual: np.ndarray, estimated: np.ndarray) -> FitMetrics:
    """ Compare two vectors of equal length.

    Args:
        actual (np.ndarray): Observed values.
        estimated (np.ndarray): Predicted values.

    Raises:
        DimensionMismatchError: If the vectors differ in length.

    Returns:
        FitMetrics: rmse, r2, mae, pearson and spearman. R2 is None when the actual
            values are constant, correlations are None for constant vectors or fewer than two points.
    """
    a = np.asarray(actual, dtype=float).reshape(-1)
    e = np.asarray(estimated, dtype=float).reshape(-1)
    if a.shape != e.shape:
        raise DimensionMismatchError(f"Cannot compare vectors of length {a.size} and {e.size}")
    mask = np.isfinite(a) & np.isfinite(e)
    a, e = a[mask], e[mask]
    if a.size == 0:
        return FitMetrics(None, None, None, None, None)

    diff = a - e
    rmse = float(np.sqrt(np.mean(diff ** 2)))
    mae = float(np.mean(np.abs(diff)))
    ss_tot = float(np.sum((a - a.mean()) ** 2))
    r2 = None if ss_tot == 0 else float(1.0 - np.sum(diff ** 2) / ss_tot)

    return FitMetrics(
        rmse=rmse,
        r2=r2,
        mae=mae,
        pearson=_correlation(stats.pearsonr, a, e),
        spearman=_correlation(stats.spearmanr, a, e),
    )


def metrics_frame(records: dict) -> pd.DataFrame:
    """ Build a nullable-float frame (one row per key) from FitMetrics values. """
    frame = pd.DataFrame.from_dict(
        {name: metrics.as_dict() for name, metrics in records.items()},
        orient="index",
        columns=METRIC_COLUMNS,
    )
    if frame.empty:
        frame = pd.DataFrame(columns=METRIC_COLUMNS)
    return frame.astype("Float64")


class FitEvaluator():
    """Scores proportions by reconstruction quality or against ground truth."""

    @staticmethod
    def evaluate(
        reference: ReferenceMatrix,
        mixture: MixtureMatrix,
        proportions: ProportionsMatrix,
        rescale: bool = False,
    ) -> pd.DataFrame:
        """ Per-sample fit of reference x proportions to the mixture.

        Args:
            reference (ReferenceMatrix): Features x cell types.
            mixture (MixtureMatrix): Features x samples.
            proportions (ProportionsMatrix): Cell types x samples.
            rescale (bool, optional): Apply the least-squares scale factor per sample before
                scoring, since sum-to-one proportions do not carry the mixture's overall
                magnitude. Defaults to False.

        Raises:
            DimensionMismatchError: If the three matrices do not line up.

        Returns:
            pd.DataFrame: Samples x metrics, Float64 with <NA> for undefined values.
        """
        if reference.n_features != mixture.n_features:
            raise DimensionMismatchError(
                f"Reference has {reference.n_features} features, mixture has {mixture.n_features}"
            )
        if proportions.values.shape[1] != mixture.n_samples:
            raise DimensionMismatchError(
                f"Proportions cover {proportions.values.shape[1]} samples, mixture has {mixture.n_samples}"
            )
        estimated = proportions.reconstruct(reference)
        actual = mixture.values

        records = {}
        for i, sample in enumerate(mixture.samples):
            e = estimated[:, i]
            a = actual[:, i]
            if rescale:
                denominator = float(e @ e)
                if denominator > 0:
                    e = e * float(e @ a) / denominator
            records[sample] = compute_fit_metrics(a, e)
        return metrics_frame(records)

    @staticmethod
    def compare_to_ground_truth(
        proportions: ProportionsMatrix,
        ground_truth: pd.DataFrame,
    ) -> Union[pd.DataFrame, ComparisonUnavailable]:
        """ Per-sample comparison of estimated against true proportions.

        Labels are reconciled first. The truth is renormalized over the matched
        cell types, and invalid samples (or truth rows summing to zero) are left out.

        Args:
            proportions (ProportionsMatrix): Estimated proportions.
            ground_truth (pd.DataFrame): Samples x cell types.

        Returns:
            Union[pd.DataFrame, ComparisonUnavailable]: Samples x metrics, or why no comparison was possible.
        """
        alignment = reconcile_ground_truth(proportions.cell_types, proportions.samples, ground_truth)
        if isinstance(alignment, ComparisonUnavailable):
            return alignment

        estimate = proportions.to_frame()
        valid = dict(zip(proportions.samples, proportions.valid))
        records = {}
        for sample, truth_row in alignment.truth.iterrows():
            if not valid[sample] or truth_row.isna().any():
                continue
            estimated_row = estimate.loc[sample, alignment.truth.columns]
            records[sample] = compute_fit_metrics(truth_row.to_numpy(), estimated_row.to_numpy())
        if not records:
            return ComparisonUnavailable("no valid sample overlaps the ground truth")
        return metrics_frame(records)

    @staticmethod
    def summarize(metrics: pd.DataFrame) -> pd.Series:
        """ Column means over defined values; <NA> when a metric is undefined for every sample. """
        return metrics.mean(skipna=True).astype("Float64")
