#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Configuration keys and the default configuration pages.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 23, 2026"
__updated__ = "September 30, 2026"

# built-in modules
from typing import List

# project modules
from pydeconv.config_files.dict_config_utils import DictConfig, GENERAL_PAGE, ANALYSIS_PAGE


# Constants for dictionary keys
REFERENCE_FILE = "Reference File"
MIXTURE_FILE = "Mixture File"
GROUND_TRUTH_FILE = "Ground Truth File"
OUTPUT_DIRECTORY = "Output Directory"
PROJECT_NAME = "Project Name"
PROJECT_DEFAULT = "Project"
FILE_TYPE = "File Type"
AUTO = "auto"
CSV = "csv"
TSV = "tsv"
ANALYSIS_TYPE = "Analysis type"

# Constants for Deconvolution
DECONVOLUTION_ANALYSIS_TYPE = "Deconvolution"
SOLVER_STRATEGIES = "Solver strategies"
SUM_TO_ONE = "Sum to one"
MIN_FRACTION = "Minimum fraction"
N_JOBS = "Number of jobs"
TIME_BUDGET = "Time budget"
RESCALE_FIT = "Rescale fit"
ITERATIVE_CONFIGS = "Iterative reweighting configs"
FACTORIZATION_CONFIGS = "Joint factorization configs"
MAX_ITER = "max iterations"
TOLERANCE = "tolerance"
RANDOM_STATE = "random state"

DEFAULT_SOLVER_STRATEGIES = ["nnls", "qp", "simplex_qp", "iterative_reweighted", "joint_factorization"]

dict_config_general = {
    REFERENCE_FILE: DictConfig(parent_key=REFERENCE_FILE, type_val=str, current_state="", is_required=True, select_location=True, tooltip="table of cell-type signatures, features as rows and cell types as columns").get_config(),
    MIXTURE_FILE: DictConfig(parent_key=MIXTURE_FILE, type_val=str, current_state="", is_required=True, select_location=True, tooltip="table of bulk samples, features as rows and samples as columns").get_config(),
    GROUND_TRUTH_FILE: DictConfig(parent_key=GROUND_TRUTH_FILE, type_val=str, current_state="", is_required=False, select_location=True, tooltip="optional table of known proportions, samples as rows and cell types as columns").get_config(),
    OUTPUT_DIRECTORY: DictConfig(parent_key=OUTPUT_DIRECTORY, type_val=str, current_state="", is_required=True, select_location=True, tooltip="output directory where the output CSV files will be created").get_config(),
    PROJECT_NAME: DictConfig(parent_key=PROJECT_NAME, type_val=str, current_state=PROJECT_DEFAULT, is_required=True, select_location=False, tooltip="The name of the project save file.").get_config(),
    FILE_TYPE: DictConfig(parent_key=FILE_TYPE, type_val=str, current_state=AUTO, is_required=True, select_location=False, tooltip="delimiter of the input tables, 'auto' sniffs it from the file", has_options=True, options=[AUTO, CSV, TSV]).get_config(),
}

dict_config_deconvolution = {
    ANALYSIS_TYPE: DictConfig(parent_key=ANALYSIS_TYPE, type_val=str, current_state=DECONVOLUTION_ANALYSIS_TYPE, is_required=True, select_location=False, tooltip="analysis type", editable=False).get_config(),
    SOLVER_STRATEGIES: DictConfig(parent_key=SOLVER_STRATEGIES, type_val=List[str], current_state=list(DEFAULT_SOLVER_STRATEGIES), is_required=True, select_location=False, tooltip="strategies to run, in order: nnls, qp, simplex_qp, iterative_reweighted, joint_factorization, ridge_clipped").get_config(),
    SUM_TO_ONE: DictConfig(parent_key=SUM_TO_ONE, type_val=bool, current_state=True, is_required=True, select_location=False, tooltip="renormalize every valid sample to sum to one").get_config(),
    MIN_FRACTION: DictConfig(parent_key=MIN_FRACTION, type_val=float, current_state=0.0, is_required=True, select_location=False, tooltip="proportions below this value are set to zero").get_config(),
    N_JOBS: DictConfig(parent_key=N_JOBS, type_val=int, current_state=1, is_required=True, select_location=False, tooltip="parallel workers for per-sample solves, 1 runs sequentially, -1 uses all cores").get_config(),
    TIME_BUDGET: DictConfig(parent_key=TIME_BUDGET, type_val=float, current_state=-1.0, is_required=False, select_location=False, tooltip="seconds before no further strategy is started, -1 for no limit").get_config(),
    RESCALE_FIT: DictConfig(parent_key=RESCALE_FIT, type_val=bool, current_state=False, is_required=False, select_location=False, tooltip="scale each reconstructed sample to the mixture before computing fit metrics").get_config(),
    ITERATIVE_CONFIGS: DictConfig(parent_key=ITERATIVE_CONFIGS, type_val=dict, current_state={
        MAX_ITER: DictConfig(parent_key=MAX_ITER, type_val=int, current_state=50, tooltip="maximum number of reweighting iterations").get_config(),
        TOLERANCE: DictConfig(parent_key=TOLERANCE, type_val=float, current_state=1.0e-6, tooltip="L1 change of the proportions that counts as converged").get_config(),
    }, is_required=True, select_location=False, tooltip="configs for iterative reweighted least squares").get_config(),
    FACTORIZATION_CONFIGS: DictConfig(parent_key=FACTORIZATION_CONFIGS, type_val=dict, current_state={
        MAX_ITER: DictConfig(parent_key=MAX_ITER, type_val=int, current_state=500, tooltip="maximum number of NMF iterations").get_config(),
        TOLERANCE: DictConfig(parent_key=TOLERANCE, type_val=float, current_state=1.0e-4, tooltip="NMF stopping tolerance").get_config(),
        RANDOM_STATE: DictConfig(parent_key=RANDOM_STATE, type_val=int, current_state=0, tooltip="seed for the factorization").get_config(),
    }, is_required=True, select_location=False, tooltip="configs for the joint factorization").get_config(),
}

default_dict_config = {
    GENERAL_PAGE: dict_config_general,
    ANALYSIS_PAGE: dict_config_deconvolution,
}
