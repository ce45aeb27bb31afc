#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Post-hoc constraint enforcement applied after every solve.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 03, 2026"
__updated__ = "August 14, 2026"

# built-in modules
from dataclasses import dataclass
from typing import Tuple

# third-party modules
import numpy as np


@dataclass(frozen=True)
class Constraints:
    """Constraint set for a single solve.

    Attributes:
        sum_to_one (bool): Require the coefficients to sum to exactly one.
        min_fraction (float): Coefficients strictly below this value are zeroed after solving.
    """
    sum_to_one: bool = True
    min_fraction: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.min_fraction < 1.0:
            raise ValueError(f"min_fraction must be in [0, 1), got {self.min_fraction}")


class ConstraintEnforcer():
    """Clip, threshold and renormalize a coefficient vector."""

    @staticmethod
    def apply(coefficients: np.ndarray, constraints: Constraints = Constraints()) -> Tuple[np.ndarray, bool]:
        """ Enforce non-negativity, the minimum fraction and (optionally) sum-to-one.

        Thresholding is repeated after each renormalization until no non-zero entry
        falls below min_fraction, so applying the enforcer twice gives the same
        result as applying it once.

        Args:
            coefficients (np.ndarray): Raw solver output, one entry per cell type.
            constraints (Constraints, optional): Active constraint set. Defaults to Constraints().

        Returns:
            Tuple[np.ndarray, bool]: The enforced vector and whether it is valid (non-zero sum).
        """
        x = np.array(coefficients, dtype=float, copy=True).reshape(-1)
        x[~np.isfinite(x)] = 0.0
        x = np.clip(x, 0.0, None)

        while True:
            x[x < constraints.min_fraction] = 0.0
            total = x.sum()
            if total <= 0:
                return np.zeros_like(x), False
            if not constraints.sum_to_one:
                return x, True
            x = x / total
            # renormalizing may push a surviving entry under the threshold
            if not np.any((x > 0) & (x < constraints.min_fraction)):
                return x, True
