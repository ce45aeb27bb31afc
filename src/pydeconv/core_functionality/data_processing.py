#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
File created to decouple deconvolution from reading matrices from files.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 20, 2026"
__updated__ = "September 14, 2026"

# built-in modules
from typing import Optional, Tuple
from pathlib import Path
import csv
import logging

# third-party modules
import pandas as pd

# project modules
from pydeconv.core_functionality.matrices import MixtureMatrix, ReferenceMatrix
from pydeconv.core_functionality.exceptions import DataError

logger = logging.getLogger(__name__)


class DataProcessingTable:
    """
    Load one delimited matrix (CSV or TSV) whose first column holds the row
    labels and whose header holds the column labels, and coerce it to numbers.
    """

    def __init__(
        self,
        fpath: str,
        delimiter: Optional[str] = None,
        transpose: bool = False,
    ):
        """ Initialize the DataProcessingTable instance.

        Args:
            fpath (str): Path to the table.
            delimiter (Optional[str], optional): Column delimiter. Sniffed from the file when None. Defaults to None.
            transpose (bool, optional): Transpose after loading, for tables stored entities x features. Defaults to False.

        Raises:
            FileNotFoundError: If the file does not exist.
            DataError: If the file cannot be parsed, is empty or holds non-numeric cells.
        """
        self.fpath = Path(fpath)
        if not self.fpath.is_file():
            raise FileNotFoundError(f"Table not found: {self.fpath}")
        self.delimiter = delimiter or self._sniff_delimiter()
        self.transpose = transpose
        self._frame = self._load_table()

    def _sniff_delimiter(self) -> str:
        """ Guess the delimiter from the file suffix or its first lines. """
        if self.fpath.suffix.lower() in (".tsv", ".tab"):
            return "\t"
        with self.fpath.open(newline="") as handle:
            sample = "".join(handle.readline() for _ in range(5))
        try:
            return csv.Sniffer().sniff(sample, delimiters=",\t;").delimiter
        except csv.Error:
            return ','  # Default to comma if sniffing fails

    def _load_table(self) -> pd.DataFrame:
        """ Read the table and convert every cell to float.

        Raises:
            DataError: If the file cannot be read.
            DataError: If the table has no rows or no columns.
            DataError: If any cell is missing or not numeric.

        Returns:
            pd.DataFrame: Labelled numeric frame.
        """
        try:
            df = pd.read_csv(self.fpath, sep=self.delimiter, index_col=0)
        except Exception as e:
            raise DataError(f"Failed to read {self.fpath.name}: {e}")

        if df.shape[0] == 0 or df.shape[1] == 0:
            raise DataError(f"{self.fpath.name} contains no data (shape {df.shape})")

        numeric = df.apply(pd.to_numeric, errors="coerce")
        bad = numeric.isna() & df.notna()
        if bad.to_numpy().any():
            columns = bad.columns[bad.any(axis=0)].tolist()
            raise DataError(
                f"{self.fpath.name} has non-numeric values in columns: {', '.join(map(str, columns[:5]))}"
            )
        if numeric.isna().to_numpy().any():
            raise DataError(f"{self.fpath.name} has missing values")

        numeric.index = numeric.index.map(str)
        numeric.columns = numeric.columns.map(str)
        numeric = numeric.astype(float)
        return numeric.T if self.transpose else numeric

    @property
    def frame(self) -> pd.DataFrame:
        """The loaded table, a copy on every access."""
        return self._frame.copy()

    def __repr__(self) -> str:
        return f'DataProcessingTable({self.fpath.name}, shape={self._frame.shape})'


def align_features(reference: pd.DataFrame, mixture: pd.DataFrame) -> Tuple[ReferenceMatrix, MixtureMatrix]:
    """ Restrict reference and mixture to their shared feature labels.

    Shared features keep the reference's order.

    Args:
        reference (pd.DataFrame): Features x cell types.
        mixture (pd.DataFrame): Features x samples.

    Raises:
        DataError: If the two tables share no feature label.

    Returns:
        Tuple[ReferenceMatrix, MixtureMatrix]: Aligned matrices.
    """
    reference = reference.copy()
    mixture = mixture.copy()
    reference.index = reference.index.map(str)
    mixture.index = mixture.index.map(str)
    mixture_features = set(mixture.index)
    shared = [f for f in reference.index if f in mixture_features]
    if not shared:
        raise DataError("Reference and mixture share no feature labels")
    dropped_reference = reference.shape[0] - len(shared)
    dropped_mixture = mixture.shape[0] - len(shared)
    if dropped_reference or dropped_mixture:
        logger.info(
            "Aligned on %d shared features (dropped %d reference-only, %d mixture-only)",
            len(shared), dropped_reference, dropped_mixture,
        )
    return ReferenceMatrix(reference.loc[shared]), MixtureMatrix(mixture.loc[shared])


if __name__ == '__main__':
    pass
