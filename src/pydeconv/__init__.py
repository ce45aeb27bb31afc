"""
PyDeconv - Python cell-type deconvolution of bulk samples

PyDeconv estimates the cell-type composition of bulk measurements from a
reference of per-cell-type signatures, running several constrained solvers
side by side and keeping the best supported result.
"""

__version__ = "0.3.0"
__author__ = "worrada"

from pydeconv.core_functionality.constraints import Constraints, ConstraintEnforcer
from pydeconv.core_functionality.ensemble import EnsembleResult, EnsembleSelector, SolverStrategy
from pydeconv.core_functionality.evaluation import FitEvaluator, FitMetrics, compute_fit_metrics
from pydeconv.core_functionality.exceptions import DataError, DimensionMismatchError, SolverError
from pydeconv.core_functionality.iterative_refiner import IterativeRefiner
from pydeconv.core_functionality.linear_solver import Formulation, LinearSolver, SolverResult
from pydeconv.core_functionality.matrices import MixtureMatrix, ProportionsMatrix, ReferenceMatrix
