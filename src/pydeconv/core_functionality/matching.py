#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Label reconciliation between estimated proportions and ground truth, and
identity matching of deconvolved profiles to reference cell types.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 12, 2026"
__updated__ = "October 16, 2026"

# built-in modules
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Union
import logging
import warnings

# third-party modules
import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment

# project modules
from pydeconv.core_functionality.exceptions import DataError, DimensionMismatchError

logger = logging.getLogger(__name__)

MAX_NORMALIZED_DISTANCE = 0.5


@dataclass(frozen=True)
class ComparisonUnavailable:
    """Returned instead of a comparison when labels cannot be reconciled."""
    reason: str

    def __bool__(self):
        return False


@dataclass
class GroundTruthAlignment:
    """Ground truth restricted to the matched labels, in the estimate's naming.

    Attributes:
        truth (pd.DataFrame): Samples x cell types, rows renormalized over the matched cell types.
        cell_type_map (Dict[str, str]): Estimated cell type -> ground-truth column.
        sample_map (Dict[str, str]): Estimated sample -> ground-truth row.
        heuristic_matches (List[str]): Human-readable description of every non-exact match.
    """
    truth: pd.DataFrame
    cell_type_map: Dict[str, str]
    sample_map: Dict[str, str]
    heuristic_matches: List[str] = field(default_factory=list)


def levenshtein(a: str, b: str) -> int:
    """ Edit distance between two strings (insertions, deletions, substitutions). """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def _normalize_label(label: str) -> str:
    return str(label).strip().lower()


def _announce(message: str, notes: List[str]):
    notes.append(message)
    logger.warning(message)
    warnings.warn(message, UserWarning, stacklevel=3)


def match_cell_type_labels(estimated: Sequence[str], truth: Sequence[str]) -> Dict[str, str]:
    """ Map estimated cell-type labels to ground-truth labels.

    Exact matches are taken first. Every remaining estimated label is matched to
    the unused truth label at the smallest Levenshtein distance (case-insensitive),
    accepted only when distance / max(len) <= 0.5.

    Args:
        estimated (Sequence[str]): Labels of the estimated proportions.
        truth (Sequence[str]): Labels of the ground truth.

    Returns:
        Dict[str, str]: estimated label -> truth label, exact and heuristic matches alike.
    """
    truth_labels = set(truth)
    mapping = {label: label for label in estimated if label in truth_labels}
    unused = [t for t in truth if t not in mapping.values()]
    for label in estimated:
        if label in mapping or not unused:
            continue
        distances = [levenshtein(_normalize_label(label), _normalize_label(t)) for t in unused]
        best = int(np.argmin(distances))
        longest = max(len(label), len(unused[best]), 1)
        if distances[best] / longest <= MAX_NORMALIZED_DISTANCE:
            mapping[label] = unused.pop(best)
    return mapping


def match_sample_labels(estimated: Sequence[str], truth: Sequence[str]) -> Dict[str, str]:
    """ Map estimated sample labels to ground-truth labels.

    Exact matches first, then substring containment in either direction. A
    containment match is accepted only when exactly one unused truth label qualifies.
    """
    truth_labels = set(truth)
    mapping = {label: label for label in estimated if label in truth_labels}
    unused = [t for t in truth if t not in mapping.values()]
    for label in estimated:
        if label in mapping:
            continue
        candidates = [t for t in unused if label in t or t in label]
        if len(candidates) == 1:
            mapping[label] = candidates[0]
            unused.remove(candidates[0])
    return mapping


def validate_ground_truth(ground_truth: pd.DataFrame) -> pd.DataFrame:
    """ Check that a ground-truth table is a non-empty table of non-negative numbers.

    Raises:
        DimensionMismatchError: If the table is empty or holds non-numeric or negative values.
        DataError: If sample or cell-type labels are duplicated.
    """
    if not isinstance(ground_truth, pd.DataFrame):
        raise TypeError("Ground truth must be a pandas DataFrame (samples x cell types)")
    if ground_truth.empty:
        raise DimensionMismatchError("Ground truth table is empty")
    try:
        numeric = ground_truth.astype(float)
    except (TypeError, ValueError) as e:
        raise DimensionMismatchError(f"Ground truth contains non-numeric values: {e}")
    if not np.all(np.isfinite(numeric.to_numpy())):
        raise DimensionMismatchError("Ground truth contains missing or infinite values")
    if (numeric.to_numpy() < 0).any():
        raise DimensionMismatchError("Ground truth proportions must be non-negative")
    numeric.index = numeric.index.map(str)
    numeric.columns = numeric.columns.map(str)
    if numeric.index.has_duplicates or numeric.columns.has_duplicates:
        raise DataError("Ground truth has duplicated sample or cell-type labels")
    return numeric


def reconcile_ground_truth(
    cell_types: Sequence[str],
    samples: Sequence[str],
    ground_truth: pd.DataFrame,
) -> Union[GroundTruthAlignment, ComparisonUnavailable]:
    """ Align a ground-truth table to the estimate's cell types and samples.

    Args:
        cell_types (Sequence[str]): Cell types of the estimated proportions.
        samples (Sequence[str]): Samples of the estimated proportions.
        ground_truth (pd.DataFrame): Samples x cell types, non-negative, arbitrary row sums.

    Returns:
        Union[GroundTruthAlignment, ComparisonUnavailable]: The aligned truth, or the reason no comparison is possible.
    """
    truth = validate_ground_truth(ground_truth)
    notes: List[str] = []

    cell_type_map = match_cell_type_labels(list(cell_types), truth.columns.tolist())
    for est, tru in cell_type_map.items():
        if est != tru:
            _announce(f"Ground truth cell type '{tru}' matched to '{est}' by edit distance", notes)
    if not cell_type_map:
        return ComparisonUnavailable("no ground-truth cell type matches the reference cell types")

    sample_map = match_sample_labels(list(samples), truth.index.tolist())
    for est, tru in sample_map.items():
        if est != tru:
            _announce(f"Ground truth sample '{tru}' matched to '{est}' by substring containment", notes)
    if not sample_map:
        return ComparisonUnavailable("no ground-truth sample matches the mixture samples")

    matched_types = [c for c in cell_types if c in cell_type_map]
    matched_samples = [s for s in samples if s in sample_map]
    aligned = truth.loc[[sample_map[s] for s in matched_samples], [cell_type_map[c] for c in matched_types]]
    aligned = pd.DataFrame(aligned.to_numpy(dtype=float), index=matched_samples, columns=matched_types)
    totals = aligned.sum(axis=1)
    aligned = aligned.div(totals.where(totals > 0), axis=0)

    return GroundTruthAlignment(aligned, cell_type_map, sample_map, notes)


def match_cell_types(
    profiles: np.ndarray,
    reference: np.ndarray,
) -> np.ndarray:
    """ Bipartite matching of deconvolved profiles to labelled reference profiles.

    Maximizes the total Pearson correlation between matched columns with the
    Hungarian algorithm.

    Args:
        profiles (np.ndarray): Features x components, e.g. NMF basis profiles.
        reference (np.ndarray): Features x cell types.

    Returns:
        np.ndarray: order such that profiles[:, order[k]] is the component matched to reference column k.
    """
    profiles = np.asarray(profiles, dtype=float)
    reference = np.asarray(reference, dtype=float)
    if profiles.shape != reference.shape:
        raise DimensionMismatchError(
            f"Profiles {profiles.shape} and reference {reference.shape} must have the same shape"
        )
    n = reference.shape[1]
    similarity = np.zeros((n, n))
    for k in range(n):
        for j in range(n):
            similarity[k, j] = _safe_correlation(reference[:, k], profiles[:, j])
    rows, cols = linear_sum_assignment(-similarity)
    order = np.empty(n, dtype=int)
    order[rows] = cols
    return order


def _safe_correlation(x: np.ndarray, y: np.ndarray) -> float:
    if x.size < 2 or np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])

