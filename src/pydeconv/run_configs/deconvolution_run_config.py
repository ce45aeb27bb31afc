#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
This is the file that handles running the deconvolution analysis based on a set of configurations.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 24, 2026"
__updated__ = "October 16, 2026"

# built-in modules
from typing import Dict, Optional
import logging
import os

# third-party modules
import pandas as pd

# project modules
from pydeconv.core_functionality.constraints import Constraints
from pydeconv.core_functionality.data_processing import DataProcessingTable, align_features
from pydeconv.core_functionality.ensemble import EnsembleResult, EnsembleSelector
from pydeconv.core_functionality.evaluation import FitEvaluator
from pydeconv.core_functionality.matching import ComparisonUnavailable
from pydeconv.core_functionality.matrices import MixtureMatrix, ReferenceMatrix
from pydeconv.run_configs.base_run_config import BaseRunConfig
from pydeconv.config_files.config_dictionaries import (
    REFERENCE_FILE, MIXTURE_FILE, GROUND_TRUTH_FILE, OUTPUT_DIRECTORY, PROJECT_NAME, FILE_TYPE, AUTO, CSV, TSV,
    SOLVER_STRATEGIES, SUM_TO_ONE, MIN_FRACTION, N_JOBS, TIME_BUDGET, RESCALE_FIT, ITERATIVE_CONFIGS,
    FACTORIZATION_CONFIGS, MAX_ITER, TOLERANCE, RANDOM_STATE, default_dict_config
)
from pydeconv.config_files.dict_config_utils import current_state_of_key

logger = logging.getLogger(__name__)

DELIMITERS = {AUTO: None, CSV: ",", TSV: "\t"}

PROPORTIONS_FILE = "proportions.csv"
FIT_METRICS_FILE = "fit_metrics.csv"
PROVENANCE_FILE = "provenance.csv"
STRATEGY_SUMMARY_FILE = "strategy_summary.csv"
GROUND_TRUTH_COMPARISON_FILE = "ground_truth_comparison.csv"


class DeconvolutionRunConfig(BaseRunConfig):
    default_config = default_dict_config

    def __init__(self, dict_config) -> None:
        super().__init__(dict_config)

        self.reference: Optional[ReferenceMatrix] = None
        self.mixture: Optional[MixtureMatrix] = None
        self.ground_truth: Optional[pd.DataFrame] = None
        self.output_directory = current_state_of_key(self.general_page_config, OUTPUT_DIRECTORY)
        self.project_file = current_state_of_key(self.general_page_config, PROJECT_NAME)
        self.result: Optional[EnsembleResult] = None

    def _read_table(self, path: str) -> pd.DataFrame:
        delimiter = DELIMITERS[current_state_of_key(self.general_page_config, FILE_TYPE)]
        return DataProcessingTable(path, delimiter=delimiter).frame

    def load_data(self):
        self.check_required()

        reference = self._read_table(current_state_of_key(self.general_page_config, REFERENCE_FILE))
        mixture = self._read_table(current_state_of_key(self.general_page_config, MIXTURE_FILE))
        self.reference, self.mixture = align_features(reference, mixture)
        logger.info(
            "Loaded reference (%d features x %d cell types) and mixture (%d samples)",
            self.reference.n_features, self.reference.n_cell_types, self.mixture.n_samples,
        )

        ground_truth_file = current_state_of_key(self.general_page_config, GROUND_TRUTH_FILE)
        if ground_truth_file:
            self.ground_truth = self._read_table(ground_truth_file)

    def build_selector(self) -> EnsembleSelector:
        iterative = current_state_of_key(self.analysis_page_config, ITERATIVE_CONFIGS)
        factorization = current_state_of_key(self.analysis_page_config, FACTORIZATION_CONFIGS)
        constraints = Constraints(
            sum_to_one=current_state_of_key(self.analysis_page_config, SUM_TO_ONE),
            min_fraction=current_state_of_key(self.analysis_page_config, MIN_FRACTION),
        )
        return EnsembleSelector(
            constraints=constraints,
            n_jobs=current_state_of_key(self.analysis_page_config, N_JOBS),
            iterative_max_iterations=current_state_of_key(iterative, MAX_ITER),
            iterative_tolerance=current_state_of_key(iterative, TOLERANCE),
            factorization_max_iter=current_state_of_key(factorization, MAX_ITER),
            factorization_tol=current_state_of_key(factorization, TOLERANCE),
            random_state=current_state_of_key(factorization, RANDOM_STATE),
        )

    def perform_analysis(self) -> Dict[str, str]:
        """ Run the ensemble and write its outputs to the output directory.

        Raises:
            RuntimeError: If load_data has not been called.

        Returns:
            Dict[str, str]: output name -> path of every file written.
        """
        if self.reference is None or self.mixture is None:
            raise RuntimeError("load_data must be called before perform_analysis")

        time_budget = current_state_of_key(self.analysis_page_config, TIME_BUDGET)
        self.result = self.build_selector().run(
            self.reference,
            self.mixture,
            strategies=current_state_of_key(self.analysis_page_config, SOLVER_STRATEGIES),
            ground_truth=self.ground_truth,
            time_budget=None if time_budget < 0 else time_budget,
        )

        os.makedirs(self.output_directory, exist_ok=True)
        written = {}

        def _write(frame: pd.DataFrame, file_name: str, index_label: str):
            path = os.path.join(self.output_directory, file_name)
            frame.to_csv(path, index_label=index_label)
            written[file_name] = path

        _write(self.result.proportions.to_frame(), PROPORTIONS_FILE, "sample")
        fit_metrics = self.result.fit_metrics
        if current_state_of_key(self.analysis_page_config, RESCALE_FIT):
            fit_metrics = FitEvaluator.evaluate(self.reference, self.mixture, self.result.proportions, rescale=True)
        _write(fit_metrics, FIT_METRICS_FILE, "sample")
        _write(self.result.provenance(), PROVENANCE_FILE, "sample")
        _write(self.result.summary(), STRATEGY_SUMMARY_FILE, "strategy")

        comparison = self.result.comparison
        if isinstance(comparison, ComparisonUnavailable):
            logger.warning("Ground truth comparison unavailable: %s", comparison.reason)
        elif comparison is not None:
            _write(comparison, GROUND_TRUTH_COMPARISON_FILE, "sample")

        written["config"] = self.save_config()
        if self.result.chosen_strategy is None:
            logger.warning("No strategy was run: %s", self.result.selection_reason)
        else:
            logger.info("Chosen strategy %s (%s)", self.result.chosen_strategy.value, self.result.selection_reason)
        return written

    def save_config(self) -> str:
        if self.project_file != "":
            file_location = os.path.join(self.output_directory, self.project_file)
        else:
            file_location = os.path.join(self.output_directory, "project.json")

        if os.path.splitext(file_location)[1].lower() not in (".json", ".yaml", ".yml"):
            file_location += ".json"

        self.write_config(file_location)
        logger.info("Configuration saved to %s", file_location)
        return file_location


if __name__ == "__main__":
    pass
