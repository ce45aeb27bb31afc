#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Exceptions raised by the deconvolution core.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 02, 2026"
__updated__ = "October 16, 2026"


class DataError(Exception):
    """Raised when input data cannot be read or is structurally unusable."""


class DimensionMismatchError(DataError):
    """Raised before solving when reference, mixture or ground truth shapes disagree."""


class SolverError(ArithmeticError):
    """Raised when every tier of the solver fallback chain failed for a sample."""

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = list(failures or [])
