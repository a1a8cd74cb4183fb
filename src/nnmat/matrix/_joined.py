"""Joined Matrix.

Block concatenation of sub-matrices that does not copy data. Reads and
writes are routed to the sub-matrix owning the position, so writing through
a joined matrix updates the sub-matrices and vice versa:

    >>> top = DenseMatrix.from_array([[1, 2]])
    >>> bottom = DenseMatrix.from_array([[3, 4], [5, 6]])
    >>> joined = JoinedMatrix([top, bottom], vertical=True)    # 3x2
    >>> joined.set_value(2, 0, 9.0)
    >>> bottom.get_value(1, 0)
    9.0

The joined shape is fixed: operations that would resize it raise
``MatrixError`` with code ``ERROR_ILLEGAL_STRUCTURE``.
"""

import bisect
import copy as _copy
from typing import List, Optional, Sequence, Tuple

from .._recorder import ExpressionKind, recorded
from ..error import MatrixError, check_shape
from ._base import Matrix
from ._dense import DenseMatrix
from ._mask import DenseMask, Mask
from ._ownership import OwnershipTracker

__all__ = ['JoinedMatrix']


class JoinedMatrix(Matrix):
    """Vertical or horizontal concatenation of sub-matrices.

    Args:
        matrices: Sub-matrices in order (at least one)
        vertical: Stack rows (True) or columns (False)
        name: Optional matrix name

    Raises:
        MatrixError: ERROR_DIMENSION_MISMATCH if the sub-matrices disagree on
            the non-joined dimension
    """

    def __init__(self, matrices: Sequence[Matrix], vertical: bool = True, name: Optional[str] = None):
        super().__init__(name)
        matrices = list(matrices)
        if not matrices:
            raise MatrixError.invalid_argument("Joined matrix requires at least one sub-matrix.")
        self._matrices: List[Matrix] = matrices
        self._vertical = vertical
        self._offsets: List[int] = []

        total = 0
        for matrix in matrices:
            if vertical and matrix.columns != matrices[0].columns:
                raise MatrixError.dimension_mismatch("Number of columns in matrices are not matching.")
            if not vertical and matrix.rows != matrices[0].rows:
                raise MatrixError.dimension_mismatch("Number of rows in matrices are not matching.")
            self._offsets.append(total)
            total += matrix.rows if vertical else matrix.columns

        if vertical:
            self._total = (total, matrices[0].columns)
        else:
            self._total = (matrices[0].rows, total)
        self._slice: Optional[Tuple[int, int, int, int]] = None
        self._mask: Optional[Mask] = None
        self._ownership = OwnershipTracker.owned()

    # =========================================================================
    # Structure
    # =========================================================================

    @property
    def sub_matrices(self) -> List[Matrix]:
        return list(self._matrices)

    @property
    def is_joined_vertically(self) -> bool:
        return self._vertical

    @property
    def rows(self) -> int:
        return self._slice[2] if self._slice is not None else self._total[0]

    @property
    def columns(self) -> int:
        return self._slice[3] if self._slice is not None else self._total[1]

    def _absolute(self, row: int, column: int) -> Tuple[int, int]:
        if not (0 <= row < self.rows and 0 <= column < self.columns):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Index ({row}, {column}) out of bounds for {self.rows}x{self.columns}"
            )
        if self._slice is not None:
            return row + self._slice[0], column + self._slice[1]
        return row, column

    def _locate(self, row: int, column: int) -> Tuple[Matrix, int, int]:
        """Sub-matrix owning logical (row, column) and the local coordinate in it."""
        row, column = self._absolute(row, column)
        position = row if self._vertical else column
        index = bisect.bisect_right(self._offsets, position) - 1
        offset = self._offsets[index]
        if self._vertical:
            return self._matrices[index], row - offset, column
        return self._matrices[index], row, column - offset

    def get_value(self, row: int, column: int) -> float:
        matrix, local_row, local_column = self._locate(row, column)
        return matrix.get_value(local_row, local_column)

    def set_value(self, row: int, column: int, value: float) -> None:
        matrix, local_row, local_column = self._locate(row, column)
        matrix.set_value(local_row, local_column, value)

    @recorded(ExpressionKind.TRANSPOSE)
    def transpose(self) -> 'JoinedMatrix':
        """Joined matrix of the transposed sub-matrices in the other direction."""
        transposed = JoinedMatrix([matrix.transpose() for matrix in self._matrices], not self._vertical)
        transposed._ownership = OwnershipTracker.view(self)
        if self._mask is not None:
            transposed._mask = self._mask.transpose()
        if self._slice is not None:
            start_row, start_column, rows, columns = self._slice
            transposed._slice = (start_column, start_row, columns, rows)
        return transposed

    def slice(self, start_row: int, start_column: int, end_row: int, end_column: int) -> 'JoinedMatrix':
        """View of the sub-rectangle ``[start_row, end_row) x [start_column, end_column)``."""
        if not (0 <= start_row <= end_row <= self.rows and 0 <= start_column <= end_column <= self.columns):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Slice ({start_row}, {start_column}) - ({end_row}, {end_column}) "
                f"out of bounds for {self.rows}x{self.columns}"
            )
        offset_row, offset_column = (self._slice[0], self._slice[1]) if self._slice else (0, 0)
        view = _copy.copy(self)
        view._ownership = OwnershipTracker.view(self)
        view._slice = (offset_row + start_row, offset_column + start_column,
                       end_row - start_row, end_column - start_column)
        return view

    @recorded(ExpressionKind.JOIN)
    def join(self, other: Matrix, vertical: bool = True) -> 'JoinedMatrix':
        """Joined matrix with ``other`` appended; flattens when the direction matches."""
        if vertical == self._vertical and self._slice is None:
            return JoinedMatrix(self._matrices + [other], vertical)
        return JoinedMatrix([self, other], vertical)

    @recorded(ExpressionKind.UNJOIN)
    def unjoin(self, index: int) -> Matrix:
        """Sub-matrix at ``index`` (shares storage with this joined matrix)."""
        if not 0 <= index < len(self._matrices):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Sub-matrix index {index} out of range for {len(self._matrices)} sub-matrices"
            )
        return self._matrices[index]

    def concatenate_vertical(self, other: Matrix) -> Matrix:
        raise MatrixError(MatrixError.ERROR_ILLEGAL_STRUCTURE, "Joined matrix cannot be resized.")

    def concatenate_horizontal(self, other: Matrix) -> Matrix:
        raise MatrixError(MatrixError.ERROR_ILLEGAL_STRUCTURE, "Joined matrix cannot be resized.")

    # =========================================================================
    # Mask
    # =========================================================================

    @property
    def has_mask(self) -> bool:
        return self._mask is not None or any(matrix.has_mask for matrix in self._matrices)

    @property
    def mask(self) -> Optional[Mask]:
        """Mask over the whole joined shape (sub-matrix masks apply as well)."""
        return self._mask

    def set_mask(self, mask: Optional[Mask] = None) -> Mask:
        if mask is None:
            if self._mask is None:
                self._mask = DenseMask(*self._total)
            return self._mask
        check_shape(self._total, mask.shape, "Mask")
        self._mask = mask
        return mask

    def remove_mask(self) -> None:
        self._mask = None

    def _is_masked(self, row: int, column: int) -> bool:
        if self._mask is not None and self._mask.is_masked(*self._absolute(row, column)):
            return True
        matrix, local_row, local_column = self._locate(row, column)
        return matrix._is_masked(local_row, local_column)

    # =========================================================================
    # Factories, copies and state
    # =========================================================================

    def new_matrix_of(self, rows: int, columns: int) -> Matrix:
        return DenseMatrix(rows, columns)

    def new_matrix(self, as_transposed: bool = False) -> Matrix:
        """Joined matrix of fresh sub-matrices with the same structure."""
        if self._slice is not None:
            return super().new_matrix(as_transposed)
        fresh = JoinedMatrix([matrix.new_matrix() for matrix in self._matrices], self._vertical)
        return fresh.transpose() if as_transposed else fresh

    def constant_matrix(self, value: float) -> Matrix:
        return DenseMatrix.scalar(value)

    def reference(self) -> 'JoinedMatrix':
        alias = _copy.copy(self)
        alias._ownership = OwnershipTracker.reference(self)
        return alias

    def copy(self) -> 'JoinedMatrix':
        """Joined matrix of copied sub-matrices."""
        clone = JoinedMatrix([matrix.copy() for matrix in self._matrices], self._vertical, self._name)
        clone._slice = self._slice
        if self._mask is not None:
            clone._mask = self._mask.copy()
        return clone

    def reset(self) -> None:
        """Reset every sub-matrix and clear the joined mask."""
        for matrix in self._matrices:
            matrix.reset()
        if self._mask is not None:
            self._mask.clear()

    def equals(self, other: Matrix) -> bool:
        """Sub-matrix by sub-matrix against another joined matrix of the same layout, cell by cell otherwise."""
        if (isinstance(other, JoinedMatrix) and self._slice is None and other._slice is None
                and len(other._matrices) == len(self._matrices) and other._vertical == self._vertical
                and all(mine.shape == theirs.shape for mine, theirs in zip(self._matrices, other._matrices))):
            check_shape(self.shape, other.shape, "Incompatible target matrix size")
            return all(mine.equals(theirs) for mine, theirs in zip(self._matrices, other._matrices))
        return super().equals(other)

    def __repr__(self) -> str:
        direction = "vertical" if self._vertical else "horizontal"
        return f"JoinedMatrix(shape={self.shape}, {direction}, parts={len(self._matrices)})"
