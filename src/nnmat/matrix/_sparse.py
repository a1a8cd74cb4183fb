"""Sparse Matrix.

Matrix storing only its non-zero entries in a ``{(row, column): value}``
dictionary. Writing zero removes the entry, so ``nnz`` is always exact.

Provides scipy interoperability:

    >>> import scipy.sparse as sp
    >>> m = SparseMatrix.from_scipy(sp.random(100, 50, density=0.05))
    >>> csr = m.to_scipy()          # scipy.sparse.csr_matrix
"""

from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from ..error import MatrixError
from ._base import StorageMatrix
from ._mask import SparseMask

__all__ = ['SparseMatrix']


class SparseMatrix(StorageMatrix):
    """Dictionary-of-keys sparse matrix.

    Behaves exactly like ``DenseMatrix`` through the matrix contract; only
    the storage differs.

    Args:
        rows: Number of rows
        columns: Number of columns
        scalar: Create a 1x1 scalar that broadcasts against any shape
        name: Optional matrix name
    """

    def __init__(self, rows: int, columns: int, scalar: bool = False, name: Optional[str] = None):
        if scalar:
            rows, columns = 1, 1
        super().__init__(rows, columns, scalar=scalar, name=name)

    @classmethod
    def from_array(cls, values: Any, name: Optional[str] = None) -> 'SparseMatrix':
        """Create from a 2D array-like, keeping its non-zero entries."""
        data = np.asarray(values, dtype=np.float64)
        if data.ndim != 2:
            raise MatrixError.invalid_argument(f"Expected 2D data, got {data.ndim}D")
        matrix = cls(data.shape[0], data.shape[1], name=name)
        for row, column in zip(*np.nonzero(data)):
            matrix._storage[(int(row), int(column))] = float(data[row, column])
        return matrix

    @classmethod
    def from_scipy(cls, mat: Any, name: Optional[str] = None) -> 'SparseMatrix':
        """Create from any scipy sparse matrix or array (copied).

        Explicitly stored zeros are dropped.
        """
        coo = sp.coo_matrix(mat)
        matrix = cls(coo.shape[0], coo.shape[1], name=name)
        for row, column, value in zip(coo.row, coo.col, coo.data):
            if value != 0:
                key = (int(row), int(column))
                matrix._storage[key] = matrix._storage.get(key, 0.0) + float(value)
        return matrix

    def to_scipy(self) -> sp.csr_matrix:
        """Logical contents as a ``scipy.sparse.csr_matrix``."""
        rows, columns, values = [], [], []
        for (row, column), value in self.items():
            rows.append(row)
            columns.append(column)
            values.append(value)
        return sp.csr_matrix(
            (np.array(values, dtype=np.float64), (np.array(rows, dtype=np.int64), np.array(columns, dtype=np.int64))),
            shape=self.shape,
        )

    @property
    def nnz(self) -> int:
        """Number of stored (non-zero) entries of the underlying storage."""
        return len(self._storage)

    @property
    def density(self) -> float:
        total = self._physical_rows * self._physical_columns
        return self.nnz / total if total > 0 else 0.0

    def items(self) -> Iterator[Tuple[Tuple[int, int], float]]:
        """Logical ((row, column), value) pairs of the non-zero entries visible in this view."""
        if self._scalar:
            value = self._get(0, 0)
            if value != 0:
                yield (0, 0), value
            return
        start_row, start_column = (self._slice[0], self._slice[1]) if self._slice else (0, 0)
        for (row, column), value in self._storage.items():
            if self._transposed:
                row, column = column, row
            row -= start_row
            column -= start_column
            if 0 <= row < self.rows and 0 <= column < self.columns:
                yield (row, column), value

    # =========================================================================
    # Storage hooks
    # =========================================================================

    def _allocate(self, rows: int, columns: int) -> None:
        self._storage: Dict[Tuple[int, int], float] = {}

    def _get(self, row: int, column: int) -> float:
        return self._storage.get((row, column), 0.0)

    def _put(self, row: int, column: int, value: float) -> None:
        if value == 0:
            self._storage.pop((row, column), None)
        else:
            self._storage[(row, column)] = value

    def _copy_storage(self) -> Dict[Tuple[int, int], float]:
        return dict(self._storage)

    def _clear_storage(self) -> None:
        self._storage.clear()

    def _create_mask(self, rows: int, columns: int) -> SparseMask:
        return SparseMask(rows, columns)

    def _physical_array(self) -> np.ndarray:
        out = np.zeros((self._physical_rows, self._physical_columns), dtype=np.float64)
        for (row, column), value in self._storage.items():
            out[row, column] = value
        return out
