"""Dense Matrix.

Matrix backed by a contiguous numpy float64 array.

Example:
    >>> a = DenseMatrix.from_array([[1, 2], [3, 4]])
    >>> b = DenseMatrix(2, 2)          # zeros
    >>> b.initialize(Initialization.NORMAL_HE)
    >>> (a @ b).to_array()
"""

from typing import Any, Optional

import numpy as np

from ..error import MatrixError
from ._base import StorageMatrix
from ._mask import DenseMask

__all__ = ['DenseMatrix']


class DenseMatrix(StorageMatrix):
    """Dense matrix over a ``(rows, columns)`` numpy array.

    Args:
        rows: Number of rows
        columns: Number of columns
        scalar: Create a 1x1 scalar that broadcasts against any shape
        name: Optional matrix name

    Example:
        >>> m = DenseMatrix(3, 2, name="weights")
        >>> m.set_value(0, 1, 5.0)
        >>> m.get_value(0, 1)
        5.0
    """

    def __init__(self, rows: int, columns: int, scalar: bool = False, name: Optional[str] = None):
        if scalar:
            rows, columns = 1, 1
        super().__init__(rows, columns, scalar=scalar, name=name)

    @classmethod
    def from_array(cls, values: Any, name: Optional[str] = None) -> 'DenseMatrix':
        """Create from a 2D array-like (copied).

        Raises:
            MatrixError: If ``values`` is not two-dimensional
        """
        data = np.array(values, dtype=np.float64)
        if data.ndim != 2:
            raise MatrixError.invalid_argument(f"Expected 2D data, got {data.ndim}D")
        matrix = cls(data.shape[0], data.shape[1], name=name)
        matrix._storage = data
        return matrix

    @classmethod
    def scalar(cls, value: float) -> 'DenseMatrix':
        matrix = cls(1, 1, scalar=True)
        matrix.set_value(0, 0, value)
        return matrix

    # =========================================================================
    # Storage hooks
    # =========================================================================

    def _allocate(self, rows: int, columns: int) -> None:
        self._storage = np.zeros((rows, columns), dtype=np.float64)

    def _get(self, row: int, column: int) -> float:
        return float(self._storage[row, column])

    def _put(self, row: int, column: int, value: float) -> None:
        self._storage[row, column] = value

    def _copy_storage(self) -> np.ndarray:
        return self._storage.copy()

    def _clear_storage(self) -> None:
        self._storage.fill(0.0)

    def _create_mask(self, rows: int, columns: int) -> DenseMask:
        return DenseMask(rows, columns)

    def _physical_array(self) -> np.ndarray:
        return self._storage

    # =========================================================================
    # Bulk access
    # =========================================================================

    def _logical_storage(self) -> np.ndarray:
        """Writable numpy view of the logical contents."""
        values = self._storage.T if self._transposed else self._storage
        if self._slice is not None:
            start_row, start_column, rows, columns = self._slice
            values = values[start_row:start_row + rows, start_column:start_column + columns]
        return values

    def fill(self, value: float) -> None:
        if self._scalar:
            self._storage[0, 0] = value
        else:
            self._logical_storage()[...] = value

    def _assign_array(self, values: np.ndarray) -> None:
        if self._scalar:
            self._storage[0, 0] = values[0, 0]
        else:
            self._logical_storage()[...] = values
