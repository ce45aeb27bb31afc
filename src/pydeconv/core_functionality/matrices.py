#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Reference, mixture and proportions matrix data structures.

All matrices share one orientation: rows are features (or cell types, for the
proportions) and columns are entities (cell types or samples). Conversion to
the samples x cell types export orientation happens only in
ProportionsMatrix.to_frame().
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
__updated__ = "September 28, 2026"

# built-in modules
from typing import List, Optional, Sequence, Union

# third-party modules
import numpy as np
import pandas as pd

# project modules
from pydeconv.core_functionality.exceptions import DataError, DimensionMismatchError

MatrixLike = Union[pd.DataFrame, np.ndarray]


def _as_frame(
    data: MatrixLike,
    row_labels: Optional[Sequence[str]],
    column_labels: Optional[Sequence[str]],
    row_prefix: str,
    column_prefix: str,
) -> pd.DataFrame:
    """ Build a numeric DataFrame from a frame or a 2D array, filling in default labels. """
    if isinstance(data, pd.DataFrame):
        frame = data.copy()
        if row_labels is not None:
            frame.index = list(row_labels)
        if column_labels is not None:
            frame.columns = list(column_labels)
    else:
        array = np.asarray(data, dtype=float)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2D matrix, got an array with {array.ndim} dimension(s)")
        rows = list(row_labels) if row_labels is not None else [f"{row_prefix}_{i}" for i in range(array.shape[0])]
        cols = list(column_labels) if column_labels is not None else [f"{column_prefix}_{j}" for j in range(array.shape[1])]
        frame = pd.DataFrame(array, index=rows, columns=cols)

    frame.index = frame.index.map(str)
    frame.columns = frame.columns.map(str)
    try:
        frame = frame.astype(float)
    except (TypeError, ValueError) as e:
        raise DataError(f"Matrix contains non-numeric values: {e}")
    return frame


class _LabelledMatrix():
    """Immutable features x entities snapshot shared by reference and mixture."""

    _row_prefix = "feature"
    _column_prefix = "column"
    _kind = "matrix"

    def __init__(
        self,
        data: MatrixLike,
        features: Optional[Sequence[str]] = None,
        columns: Optional[Sequence[str]] = None,
    ):
        frame = _as_frame(data, features, columns, self._row_prefix, self._column_prefix)
        if frame.index.has_duplicates:
            dupes = frame.index[frame.index.duplicated()].unique().tolist()
            raise DataError(f"{self._kind} has duplicated feature labels: {dupes[:5]}")
        if frame.columns.has_duplicates:
            dupes = frame.columns[frame.columns.duplicated()].unique().tolist()
            raise DataError(f"{self._kind} has duplicated column labels: {dupes[:5]}")
        if not np.all(np.isfinite(frame.to_numpy())):
            raise DataError(f"{self._kind} contains NaN or infinite values")

        values = frame.to_numpy(dtype=float, copy=True)
        values.setflags(write=False)
        self._values = values
        self._features: List[str] = frame.index.tolist()
        self._columns: List[str] = frame.columns.tolist()

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def features(self) -> List[str]:
        return list(self._features)

    @property
    def n_features(self) -> int:
        return self._values.shape[0]

    @property
    def shape(self):
        return self._values.shape

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._values.copy(), index=self._features, columns=self._columns)

    def column(self, position: int) -> np.ndarray:
        return self._values[:, position]

    def __repr__(self) -> str:
        return f'{type(self).__name__}(features={self.n_features}, columns={len(self._columns)})'


class ReferenceMatrix(_LabelledMatrix):
    """Per-cell-type signatures, features x cell types."""

    _column_prefix = "cell_type"
    _kind = "Reference matrix"

    def __init__(
        self,
        data: MatrixLike,
        features: Optional[Sequence[str]] = None,
        cell_types: Optional[Sequence[str]] = None,
    ):
        super().__init__(data, features, cell_types)

    @property
    def cell_types(self) -> List[str]:
        return list(self._columns)

    @property
    def n_cell_types(self) -> int:
        return self._values.shape[1]

    def is_empty(self) -> bool:
        return self.n_features == 0 or self.n_cell_types == 0

    def nonzero_cell_types(self) -> np.ndarray:
        """ Boolean mask of cell types whose signature is not identically zero. """
        return np.any(self._values != 0, axis=0)


class MixtureMatrix(_LabelledMatrix):
    """Bulk measurements, features x samples."""

    _column_prefix = "sample"
    _kind = "Mixture matrix"

    def __init__(
        self,
        data: MatrixLike,
        features: Optional[Sequence[str]] = None,
        samples: Optional[Sequence[str]] = None,
    ):
        super().__init__(data, features, samples)

    @property
    def samples(self) -> List[str]:
        return list(self._columns)

    @property
    def n_samples(self) -> int:
        return self._values.shape[1]

    def zero_samples(self) -> np.ndarray:
        """ Boolean mask of samples whose measurements are all zero. """
        return ~np.any(self._values != 0, axis=0)


class ProportionsMatrix():
    """Estimated proportions, stored as cell types x samples."""

    def __init__(
        self,
        values: np.ndarray,
        cell_types: Sequence[str],
        samples: Sequence[str],
        valid: Optional[np.ndarray] = None,
    ):
        """ Initializes a ProportionsMatrix.

        Args:
            values (np.ndarray): Array of shape (n_cell_types, n_samples).
            cell_types (Sequence[str]): Row labels.
            samples (Sequence[str]): Column labels, in the mixture's sample order.
            valid (Optional[np.ndarray], optional): Boolean flag per sample. Defaults to all True.

        Raises:
            DimensionMismatchError: If the labels or the validity mask do not match the array shape.
        """
        array = np.array(values, dtype=float, copy=True)
        if array.ndim != 2:
            raise ValueError("Proportions must be a 2D array (cell types x samples)")
        if array.shape != (len(cell_types), len(samples)):
            raise DimensionMismatchError(
                f"Proportions shape {array.shape} does not match "
                f"{len(cell_types)} cell types x {len(samples)} samples"
            )
        if valid is None:
            valid_mask = np.ones(array.shape[1], dtype=bool)
        else:
            valid_mask = np.array(valid, dtype=bool, copy=True)
            if valid_mask.shape != (array.shape[1],):
                raise DimensionMismatchError("Validity mask must have one entry per sample")
        array.setflags(write=False)
        valid_mask.setflags(write=False)
        self._values = array
        self._cell_types = [str(c) for c in cell_types]
        self._samples = [str(s) for s in samples]
        self._valid = valid_mask

    @classmethod
    def from_columns(
        cls,
        columns: Sequence[np.ndarray],
        valid: Sequence[bool],
        cell_types: Sequence[str],
        samples: Sequence[str],
    ) -> 'ProportionsMatrix':
        """ Assemble a matrix from independently solved per-sample columns. """
        if len(columns) == 0:
            values = np.zeros((len(cell_types), 0))
        else:
            values = np.column_stack([np.asarray(c, dtype=float) for c in columns])
        return cls(values, cell_types, samples, valid=np.asarray(valid, dtype=bool))

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def cell_types(self) -> List[str]:
        return list(self._cell_types)

    @property
    def samples(self) -> List[str]:
        return list(self._samples)

    @property
    def valid(self) -> np.ndarray:
        return self._valid

    @property
    def n_valid(self) -> int:
        return int(self._valid.sum())

    def sample(self, name: str) -> np.ndarray:
        return self._values[:, self._samples.index(name)]

    def reconstruct(self, reference: ReferenceMatrix) -> np.ndarray:
        """ Reference x proportions, features x samples. """
        if reference.n_cell_types != len(self._cell_types):
            raise DimensionMismatchError(
                f"Reference has {reference.n_cell_types} cell types, proportions have {len(self._cell_types)}"
            )
        return reference.values @ self._values

    def to_frame(self) -> pd.DataFrame:
        """ Samples x cell types frame, the orientation used for export. """
        return pd.DataFrame(self._values.T.copy(), index=self._samples, columns=self._cell_types)

    def __repr__(self) -> str:
        return (
            f'ProportionsMatrix(cell_types={len(self._cell_types)}, samples={len(self._samples)}, '
            f'valid={self.n_valid})'
        )
