#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Command line entry point: pydeconv <config_file.yaml|json>
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 25, 2026"
__updated__ = "September 30, 2026"

# built-in modules
from typing import List, Optional
import argparse
import logging
import sys

# project modules
from pydeconv.config_files.config_dictionaries import ANALYSIS_TYPE, DECONVOLUTION_ANALYSIS_TYPE
from pydeconv.config_files.dict_config_utils import ANALYSIS_PAGE, CURRENT_STATE
from pydeconv.core_functionality.exceptions import DataError, SolverError
from pydeconv.run_configs.base_run_config import BaseRunConfig
from pydeconv.run_configs.deconvolution_run_config import DeconvolutionRunConfig

logger = logging.getLogger("pydeconv")

RUN_CONFIGS = {
    DECONVOLUTION_ANALYSIS_TYPE: DeconvolutionRunConfig,
}


def _analysis_type(config: dict) -> str:
    value = config.get(ANALYSIS_PAGE, {}).get(ANALYSIS_TYPE, DECONVOLUTION_ANALYSIS_TYPE)
    if isinstance(value, dict) and CURRENT_STATE in value:
        value = value[CURRENT_STATE]
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pydeconv",
        description="Estimate cell-type proportions of bulk samples from a reference of cell-type signatures.",
    )
    parser.add_argument("config", help="run configuration (.yaml, .yml or .json)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity (default: INFO)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = BaseRunConfig.read_config_file(args.config)
        analysis_type = _analysis_type(config)
        if analysis_type not in RUN_CONFIGS:
            raise ValueError(f"Unsupported analysis type '{analysis_type}', expected one of {list(RUN_CONFIGS)}")
        run_config = RUN_CONFIGS[analysis_type](config)
        run_config.load_data()
        written = run_config.perform_analysis()
    except (DataError, SolverError, FileNotFoundError, KeyError, ValueError) as e:
        logger.error("%s", e)
        return 1

    for name, path in written.items():
        logger.info("Wrote %s: %s", name, path)
    logger.info("Analysis complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
