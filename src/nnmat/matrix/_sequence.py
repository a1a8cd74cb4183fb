"""Matrix Sequence.

Ordered, integer-keyed collection of equal-shape matrices, e.g. the time
steps of a recurrent layer or the channels of a convolutional layer.
Single-matrix operations run entry by entry; batch reductions (``sum``,
``mean``, ``variance``, ``standard_deviation``) collapse the sequence into a
single matrix.

Example:
    >>> seq = MatrixSequence(capacity=3)
    >>> for step in range(3):
    ...     seq.put(step, DenseMatrix.from_array([[step, step]]))
    >>> seq.mean().to_array()
    array([[1., 1.]])
    >>> flat = seq.flatten()                  # one 6x1 column vector
    >>> restored = flat.unflatten(1, 2, 3)    # three 1x2 matrices again
"""

import copy as _copy
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .._recorder import ExpressionKind, recorded, synchronize_recorders
from ..error import MatrixError
from ..function import UnaryFunctionType
from ._base import Matrix
from ._dense import DenseMatrix

__all__ = ['MatrixSequence']


class MatrixSequence:
    """Keyed collection of equal-shape matrices.

    The first inserted matrix becomes the reference matrix: every later entry
    must have its shape, and batch reductions build their results from it.
    Removing the reference matrix hands the role to the first remaining entry.

    Args:
        capacity: Maximum number of entries (None for unbounded)
        entries: Optional initial matrix (stored at key 0) or key -> matrix mapping
        name: Optional sequence name

    Raises:
        MatrixError: ERROR_INVALID_ARGUMENT if ``capacity < 1``
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        entries: Union[Matrix, Mapping[int, Matrix], None] = None,
        name: Optional[str] = None,
    ):
        if capacity is not None and capacity < 1:
            raise MatrixError.invalid_argument("Capacity must be at least 1.")
        self._capacity = capacity
        self._matrices: Dict[int, Matrix] = {}
        self._reference: Optional[Matrix] = None
        self._recorder = None
        self._name = name
        if isinstance(entries, Matrix):
            self.put(0, entries)
        elif entries is not None:
            for key, matrix in entries.items():
                self.put(key, matrix)

    # =========================================================================
    # Collection interface
    # =========================================================================

    @property
    def capacity(self) -> Optional[int]:
        return self._capacity

    @property
    def depth(self) -> int:
        """Number of entries."""
        return len(self._matrices)

    @property
    def reference_matrix(self) -> Optional[Matrix]:
        return self._reference

    @property
    def shape(self) -> Optional[Tuple[int, int]]:
        """Shape shared by every entry (None while empty)."""
        return self._reference.shape if self._reference is not None else None

    def put(self, key: int, matrix: Matrix) -> None:
        """Insert or replace the entry at ``key``.

        Raises:
            MatrixError: ERROR_INVALID_ARGUMENT when a new key would exceed the
                capacity, ERROR_DIMENSION_MISMATCH when the shape differs
                from the reference matrix
        """
        if key not in self._matrices and self._capacity is not None and len(self._matrices) >= self._capacity:
            raise MatrixError.invalid_argument("Matrix sequence is exceeding defined capacity.")
        if self._reference is not None and matrix.shape != self._reference.shape:
            raise MatrixError.dimension_mismatch(
                f"Incompatible matrix size: {matrix.rows}x{matrix.columns} "
                f"(expected {self._reference.rows}x{self._reference.columns})"
            )
        if self._recorder is not None or matrix.recorder is not None:
            synchronize_recorders(matrix, self)
        if self._reference is None:
            self._reference = matrix
        self._matrices[key] = matrix

    def get(self, key: int) -> Optional[Matrix]:
        return self._matrices.get(key)

    def remove(self, key: int) -> None:
        if self._matrices.pop(key, None) is not None:
            self._update_reference()

    def _update_reference(self) -> None:
        """Point the shape reference at the first remaining entry."""
        self._reference = self._matrices[min(self._matrices)] if self._matrices else None

    def clear(self) -> None:
        self._matrices = {}
        self._reference = None

    def keys(self) -> List[int]:
        """Keys in ascending order."""
        return sorted(self._matrices)

    def values(self) -> List[Matrix]:
        return [self._matrices[key] for key in self.keys()]

    def items(self) -> List[Tuple[int, Matrix]]:
        return [(key, self._matrices[key]) for key in self.keys()]

    def _require_entries(self) -> None:
        if not self._matrices:
            raise MatrixError.invalid_argument("Matrix sequence is empty.")

    def first_key(self) -> int:
        self._require_entries()
        return min(self._matrices)

    def last_key(self) -> int:
        self._require_entries()
        return max(self._matrices)

    def first(self) -> Matrix:
        return self._matrices[self.first_key()]

    def last(self) -> Matrix:
        return self._matrices[self.last_key()]

    def contains(self, matrix: Matrix) -> bool:
        """True if ``matrix`` itself (by identity) is an entry."""
        return any(entry is matrix for entry in self._matrices.values())

    def __len__(self) -> int:
        return len(self._matrices)

    def __iter__(self) -> Iterator[int]:
        return iter(self.keys())

    def __contains__(self, key: int) -> bool:
        return key in self._matrices

    def __getitem__(self, key: int) -> Matrix:
        return self._matrices[key]

    def __setitem__(self, key: int, matrix: Matrix) -> None:
        self.put(key, matrix)

    def __delitem__(self, key: int) -> None:
        del self._matrices[key]
        self._update_reference()

    # =========================================================================
    # Name and recorder
    # =========================================================================

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        self._name = value

    def set_name(self, name: Optional[str], assign_to_matrices: bool = False) -> None:
        """Set the sequence name, optionally naming every entry too."""
        self._name = name
        if assign_to_matrices:
            for matrix in self._matrices.values():
                matrix.name = name

    @property
    def recorder(self):
        return self._recorder

    @recorder.setter
    def recorder(self, value) -> None:
        self._recorder = value
        for matrix in self._matrices.values():
            matrix.recorder = value

    # =========================================================================
    # Copies and comparison
    # =========================================================================

    def reference(self) -> 'MatrixSequence':
        """Shallow alias sharing the entry table."""
        return _copy.copy(self)

    def copy(self) -> 'MatrixSequence':
        """Sequence of copied entries."""
        clone = _copy.copy(self)
        clone._matrices = {key: matrix.copy() for key, matrix in self._matrices.items()}
        if self._matrices:
            clone._reference = clone._matrices[self.first_key()]
        return clone

    def _check_depth(self, other: 'MatrixSequence') -> None:
        if other.depth != self.depth:
            raise MatrixError.dimension_mismatch(
                f"Size of matrix sequences are not matching: {self.depth} and {other.depth}"
            )

    def set_equal_to(self, other: 'MatrixSequence') -> None:
        """Make every entry of this sequence refer to the entry of ``other`` at the same key."""
        self._check_depth(other)
        for key, matrix in other.items():
            self.put(key, matrix)

    def equals(self, other: 'MatrixSequence') -> bool:
        """True if both sequences hold the very same matrix objects per key."""
        self._check_depth(other)
        return all(self._matrices.get(key) is matrix for key, matrix in other.items())

    # =========================================================================
    # Entry-wise operations
    # =========================================================================

    def _map(self, operation) -> 'MatrixSequence':
        result = MatrixSequence()
        for key, matrix in self.items():
            result.put(key, operation(matrix))
        return result

    def _pairs(self, other: 'MatrixSequence') -> List[Tuple[int, Matrix, Matrix]]:
        """(key, entry, partner) triples; ``other`` must hold every key of this sequence."""
        self._check_depth(other)
        pairs = []
        for key, matrix in self.items():
            partner = other.get(key)
            if partner is None:
                raise MatrixError.dimension_mismatch(f"Matrix sequence has no entry at key {key}")
            pairs.append((key, matrix, partner))
        return pairs

    def _combine(self, other: Union['MatrixSequence', Matrix], operation) -> 'MatrixSequence':
        if isinstance(other, MatrixSequence):
            result = MatrixSequence()
            for key, matrix, partner in self._pairs(other):
                result.put(key, operation(matrix, partner))
            return result
        return self._map(lambda matrix: operation(matrix, other))

    @recorded(ExpressionKind.UNARY_FUNCTION)
    def apply(self, function) -> 'MatrixSequence':
        return self._map(lambda matrix: matrix.apply(function))

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def apply_bi(self, other: Union['MatrixSequence', Matrix], function) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.apply_bi(partner, function))

    @recorded(ExpressionKind.ADD)
    def add(self, other: Union['MatrixSequence', Matrix]) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.add(partner))

    @recorded(ExpressionKind.SUBTRACT)
    def subtract(self, other: Union['MatrixSequence', Matrix]) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.subtract(partner))

    @recorded(ExpressionKind.MULTIPLY)
    def multiply(self, other: Union['MatrixSequence', Matrix]) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.multiply(partner))

    @recorded(ExpressionKind.DIVIDE)
    def divide(self, other: Union['MatrixSequence', Matrix]) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.divide(partner))

    @recorded(ExpressionKind.DOT)
    def dot(self, other: Union['MatrixSequence', Matrix]) -> 'MatrixSequence':
        return self._combine(other, lambda matrix, partner: matrix.dot(partner))

    @recorded(ExpressionKind.SOFTMAX)
    def softmax(self) -> 'MatrixSequence':
        return self._map(lambda matrix: matrix.softmax())

    @recorded(ExpressionKind.GUMBEL_SOFTMAX)
    def gumbel_softmax(self, tau: Optional[float] = None) -> 'MatrixSequence':
        return self._map(lambda matrix: matrix.gumbel_softmax(tau))

    # =========================================================================
    # Batch reductions
    # =========================================================================

    @recorded(ExpressionKind.SUM)
    def sum(self) -> Matrix:
        """Element-wise sum of all entries; an element masked in an entry is skipped for that entry."""
        self._require_entries()
        total = self._reference.new_matrix()
        for matrix in self.values():
            total.add(matrix, total)
        return total

    @recorded(ExpressionKind.MEAN)
    def mean(self) -> Matrix:
        """Element-wise mean of all entries."""
        return self.sum().divide(self.depth)

    @recorded(ExpressionKind.VARIANCE)
    def variance(self, mean: Optional[Matrix] = None) -> Matrix:
        """Element-wise biased variance ``sum((x - mean)^2) / depth``."""
        if mean is None:
            mean = self.mean()
        total = self._reference.new_matrix()
        for matrix in self.values():
            deviation = matrix.subtract(mean)
            total.add(deviation.multiply(deviation), total)
        return total.divide(self.depth)

    @recorded(ExpressionKind.STANDARD_DEVIATION)
    def standard_deviation(self, mean: Optional[Matrix] = None) -> Matrix:
        """Element-wise ``sqrt(variance * depth / (depth - 1))``."""
        depth = self.depth
        return self.variance(mean).multiply(depth).divide(depth - 1).apply(UnaryFunctionType.SQRT)

    # =========================================================================
    # Reshaping
    # =========================================================================

    @staticmethod
    def _position(rows: int, columns: int, row: int, column: int, depth_index: int) -> int:
        return row + rows * column + rows * columns * depth_index

    @recorded(ExpressionKind.FLATTEN)
    def flatten(self) -> 'MatrixSequence':
        """Single-entry sequence holding every value as one column vector.

        Element (row, column) of the d-th entry (by ascending key) lands at
        ``row + rows * column + rows * columns * d``.
        """
        self._require_entries()
        rows, columns = self._reference.shape
        vector = DenseMatrix(rows * columns * self.depth, 1)
        for depth_index, matrix in enumerate(self.values()):
            for row in range(rows):
                for column in range(columns):
                    position = self._position(rows, columns, row, column, depth_index)
                    vector.set_value(position, 0, matrix.get_value(row, column))
        return MatrixSequence(capacity=1, entries=vector)

    @recorded(ExpressionKind.UNFLATTEN)
    def unflatten(self, rows: int, columns: int, depth: int) -> 'MatrixSequence':
        """Inverse of ``flatten``.

        Raises:
            MatrixError: ERROR_INVALID_ARGUMENT unless the sequence has exactly
                one entry; ERROR_DIMENSION_MISMATCH if its size is not
                ``rows * columns * depth``
        """
        if self.depth != 1:
            raise MatrixError.invalid_argument(
                "Matrix sequence cannot be unflattened since it is not column vector (size equals 1)."
            )
        vector = self.first()
        if vector.size != rows * columns * depth:
            raise MatrixError.dimension_mismatch(
                f"Cannot unflatten {vector.rows}x{vector.columns} into {depth} x {rows}x{columns}"
            )
        result = MatrixSequence(capacity=depth)
        for depth_index in range(depth):
            matrix = DenseMatrix(rows, columns)
            for row in range(rows):
                for column in range(columns):
                    position = self._position(rows, columns, row, column, depth_index)
                    matrix.set_value(row, column, vector.get_value(position, 0))
            result.put(depth_index, matrix)
        return result

    @recorded(ExpressionKind.JOIN)
    def join(self, other: 'MatrixSequence', vertical: bool = True) -> 'MatrixSequence':
        """Per-key joined matrices of this sequence's and ``other``'s entries.

        Raises:
            MatrixError: ERROR_DIMENSION_MISMATCH if depths or keys differ
        """
        self._check_depth(other)
        if self.keys() != other.keys():
            raise MatrixError.dimension_mismatch("Keys of matrix sequences are not matching.")
        from ._joined import JoinedMatrix
        result = MatrixSequence()
        for key, matrix in self.items():
            result.put(key, JoinedMatrix([matrix, other[key]], vertical))
        return result

    @recorded(ExpressionKind.UNJOIN)
    def unjoin(self, index: int) -> 'MatrixSequence':
        """Sub-matrix ``index`` of every joined entry."""
        return self._map(lambda matrix: matrix.unjoin(index))

    def __repr__(self) -> str:
        label = f", name={self._name!r}" if self._name else ""
        return f"MatrixSequence(depth={self.depth}, shape={self.shape}, capacity={self._capacity}{label})"
