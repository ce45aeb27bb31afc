#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Per-sample worker pool.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 11, 2026"
__updated__ = "June 02, 2026"

# built-in modules
from typing import Callable, List, TypeVar
import logging

# third-party modules
import joblib

logger = logging.getLogger(__name__)

T = TypeVar("T")


def map_samples(func: Callable[[int], T], n_items: int, n_jobs: int = 1) -> List[T]:
    """ Apply func to every sample index and return the results in index order.

    Workers only read shared, read-only inputs and each returns its own column,
    so threads are safe and avoid pickling the reference matrix.

    Args:
        func (Callable[[int], T]): Called with the sample position.
        n_items (int): Number of samples.
        n_jobs (int, optional): 1 runs sequentially, any other value is handed to joblib. Defaults to 1.

    Returns:
        List[T]: One result per sample, in input order.
    """
    if n_jobs == 0:
        raise ValueError("n_jobs must be non-zero")
    if n_jobs == 1 or n_items <= 1:
        return [func(i) for i in range(n_items)]
    logger.debug("Solving %d samples with n_jobs=%d", n_items, n_jobs)
    with joblib.Parallel(n_jobs=n_jobs, prefer="threads") as par:
        return list(par(joblib.delayed(func)(i) for i in range(n_items)))
