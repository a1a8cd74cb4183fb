"""
Masks

A mask suppresses matrix elements from every operation. It holds three
independent layers over the owning matrix's logical shape:

    cell mask    (rows x columns booleans)
    row mask     (one boolean per row)
    column mask  (one boolean per column)

Element (r, c) is masked when any of cell (r, c), row r or column c is set.
Each layer has its own stack so a caller can save the current layer, work
on a fresh one and restore it afterwards:

    mask.stack_mask(reset=True)    # push current cells, start all-false
    mask.set_mask(0, 0)
    ...
    mask.unstack_mask()            # restore the pushed cells

Stacks push the layer by reference. Popping an empty stack raises
``MatrixError`` with code ``ERROR_STACK_EMPTY``.

Implementations:

    Mask (ABC)
    ├── DenseMask  - numpy boolean arrays
    └── SparseMask - sets of masked coordinates

``transpose()`` returns a view sharing the same layers and stacks with
rows and columns swapped; the owning matrix's transposed view uses it so
logical coordinates are mapped through the transpose before any lookup.
"""

import copy as _copy
from abc import ABC, abstractmethod
from typing import Any, List, Set, Tuple

import numpy as np

from .._config import config
from ..error import MatrixError

__all__ = [
    'Mask',
    'DenseMask',
    'SparseMask',
]


class _MaskState:
    """Layers and stacks shared by a mask and its transposed views."""

    __slots__ = ('cells', 'row_mask', 'column_mask',
                 'cell_stack', 'row_stack', 'column_stack', 'probability')

    def __init__(self, cells, row_mask, column_mask, probability=0.0):
        self.cells = cells
        self.row_mask = row_mask
        self.column_mask = column_mask
        self.cell_stack: List[Any] = []
        self.row_stack: List[Any] = []
        self.column_stack: List[Any] = []
        self.probability = probability


class Mask(ABC):
    """
    Abstract base class for masks.

    Subclasses provide the storage of the three layers through the
    ``_new_*``, ``_get_*``, ``_set_*`` and ``_copy_*`` hooks. Everything else
    (transpose mapping, stacks, probabilistic masking) lives here.

    Args:
        rows: Number of rows of the owning matrix
        columns: Number of columns of the owning matrix
        probability: Retention probability used by the ``mask_*_by_probability`` methods
    """

    def __init__(self, rows: int, columns: int, probability: float = 0.0):
        if rows < 0 or columns < 0:
            raise MatrixError.invalid_argument(f"Invalid mask size: {rows}x{columns}")
        self._rows = rows
        self._columns = columns
        self._transposed = False
        self._state = _MaskState(
            self._new_cells(rows, columns),
            self._new_vector(rows),
            self._new_vector(columns),
        )
        self.probability = probability

    # =========================================================================
    # Storage hooks
    # =========================================================================

    @abstractmethod
    def _new_cells(self, rows: int, columns: int) -> Any:
        ...

    @abstractmethod
    def _new_vector(self, size: int) -> Any:
        ...

    @abstractmethod
    def _get_cell(self, cells: Any, row: int, column: int) -> bool:
        ...

    @abstractmethod
    def _set_cell(self, cells: Any, row: int, column: int, value: bool) -> None:
        ...

    @abstractmethod
    def _get_entry(self, vector: Any, index: int) -> bool:
        ...

    @abstractmethod
    def _set_entry(self, vector: Any, index: int, value: bool) -> None:
        ...

    @abstractmethod
    def _copy_layer(self, layer: Any) -> Any:
        ...

    # =========================================================================
    # Shape
    # =========================================================================

    @property
    def rows(self) -> int:
        return self._columns if self._transposed else self._rows

    @property
    def columns(self) -> int:
        return self._rows if self._transposed else self._columns

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.columns)

    @property
    def size(self) -> int:
        return self._rows * self._columns

    @property
    def is_transposed(self) -> bool:
        return self._transposed

    # =========================================================================
    # Cell / row / column layers
    # =========================================================================

    def _physical(self, row: int, column: int) -> Tuple[int, int]:
        return (column, row) if self._transposed else (row, column)

    def _check_index(self, row: int, column: int) -> None:
        if not (0 <= row < self.rows and 0 <= column < self.columns):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Mask index ({row}, {column}) out of bounds for {self.rows}x{self.columns}"
            )

    def set_mask(self, row: int, column: int, value: bool = True) -> None:
        """Set cell mask at (row, column)."""
        self._check_index(row, column)
        r, c = self._physical(row, column)
        self._set_cell(self._state.cells, r, c, bool(value))

    def get_mask(self, row: int, column: int) -> bool:
        """Cell mask at (row, column) (ignores row and column layers)."""
        r, c = self._physical(row, column)
        return self._get_cell(self._state.cells, r, c)

    def set_row_mask(self, row: int, value: bool = True) -> None:
        if not 0 <= row < self.rows:
            raise MatrixError(MatrixError.ERROR_INDEX_OUT_OF_BOUNDS, f"Row {row} out of bounds")
        if self._transposed:
            self._set_entry(self._state.column_mask, row, bool(value))
        else:
            self._set_entry(self._state.row_mask, row, bool(value))

    def get_row_mask(self, row: int) -> bool:
        if self._transposed:
            return self._get_entry(self._state.column_mask, row)
        return self._get_entry(self._state.row_mask, row)

    def set_column_mask(self, column: int, value: bool = True) -> None:
        if not 0 <= column < self.columns:
            raise MatrixError(MatrixError.ERROR_INDEX_OUT_OF_BOUNDS, f"Column {column} out of bounds")
        if self._transposed:
            self._set_entry(self._state.row_mask, column, bool(value))
        else:
            self._set_entry(self._state.column_mask, column, bool(value))

    def get_column_mask(self, column: int) -> bool:
        if self._transposed:
            return self._get_entry(self._state.row_mask, column)
        return self._get_entry(self._state.column_mask, column)

    def is_masked(self, row: int, column: int) -> bool:
        """True if (row, column) is suppressed by the cell, row or column layer."""
        r, c = self._physical(row, column)
        state = self._state
        return (self._get_entry(state.row_mask, r)
                or self._get_entry(state.column_mask, c)
                or self._get_cell(state.cells, r, c))

    def count_masked(self) -> int:
        """Number of elements suppressed by any layer."""
        return int(self.to_array().sum())

    def to_array(self) -> np.ndarray:
        """Combined mask as a boolean array of the logical shape."""
        out = np.zeros(self.shape, dtype=bool)
        for row in range(self.rows):
            for column in range(self.columns):
                out[row, column] = self.is_masked(row, column)
        return out

    def clear(self) -> None:
        """Reset all three layers to all-false (stacks are kept)."""
        state = self._state
        state.cells = self._new_cells(self._rows, self._columns)
        state.row_mask = self._new_vector(self._rows)
        state.column_mask = self._new_vector(self._columns)

    # =========================================================================
    # Stacks
    # =========================================================================

    def _row_attr(self) -> Tuple[str, str]:
        return ('column_mask', 'column_stack') if self._transposed else ('row_mask', 'row_stack')

    def _column_attr(self) -> Tuple[str, str]:
        return ('row_mask', 'row_stack') if self._transposed else ('column_mask', 'column_stack')

    def _push(self, layer: str, stack: str, fresh) -> None:
        state = self._state
        getattr(state, stack).append(getattr(state, layer))
        if fresh is not None:
            setattr(state, layer, fresh)

    def _pop(self, layer: str, stack: str, message: str) -> None:
        state = self._state
        entries = getattr(state, stack)
        if not entries:
            raise MatrixError(MatrixError.ERROR_STACK_EMPTY, message)
        setattr(state, layer, entries.pop())

    def stack_mask(self, reset: bool = True) -> None:
        """Push the current cell layer; start a fresh all-false layer if ``reset``."""
        fresh = self._new_cells(self._rows, self._columns) if reset else None
        self._push('cells', 'cell_stack', fresh)

    def unstack_mask(self) -> None:
        """Restore the most recently pushed cell layer."""
        self._pop('cells', 'cell_stack', "Mask stack is empty.")

    def stack_row_mask(self, reset: bool = True) -> None:
        layer, stack = self._row_attr()
        fresh = self._new_vector(self.rows) if reset else None
        self._push(layer, stack, fresh)

    def unstack_row_mask(self) -> None:
        layer, stack = self._row_attr()
        self._pop(layer, stack, "Row mask stack is empty.")

    def stack_column_mask(self, reset: bool = True) -> None:
        layer, stack = self._column_attr()
        fresh = self._new_vector(self.columns) if reset else None
        self._push(layer, stack, fresh)

    def unstack_column_mask(self) -> None:
        layer, stack = self._column_attr()
        self._pop(layer, stack, "Column mask stack is empty.")

    @property
    def mask_stack_size(self) -> int:
        return len(self._state.cell_stack)

    @property
    def row_mask_stack_size(self) -> int:
        return len(getattr(self._state, self._row_attr()[1]))

    @property
    def column_mask_stack_size(self) -> int:
        return len(getattr(self._state, self._column_attr()[1]))

    def clear_mask_stack(self) -> None:
        self._state.cell_stack.clear()

    def clear_row_mask_stack(self) -> None:
        getattr(self._state, self._row_attr()[1]).clear()

    def clear_column_mask_stack(self) -> None:
        getattr(self._state, self._column_attr()[1]).clear()

    # =========================================================================
    # Probabilistic masking
    # =========================================================================

    @property
    def probability(self) -> float:
        """Retention probability: an element is masked when a uniform draw exceeds it."""
        return self._state.probability

    @probability.setter
    def probability(self, value: float) -> None:
        if value < 0 or value > 1:
            raise MatrixError.invalid_argument("Masking probability must be between 0 and 1.")
        self._state.probability = float(value)

    def _draw(self) -> bool:
        return bool(config.rng.random() > self._state.probability)

    def mask_by_probability(self) -> None:
        for row in range(self.rows):
            for column in range(self.columns):
                self.set_mask(row, column, self._draw())

    def mask_row_by_probability(self) -> None:
        for row in range(self.rows):
            self.set_row_mask(row, self._draw())

    def mask_column_by_probability(self) -> None:
        for column in range(self.columns):
            self.set_column_mask(column, self._draw())

    # =========================================================================
    # Copies and views
    # =========================================================================

    def new_mask(self, as_transposed: bool = False) -> 'Mask':
        """Fresh all-false mask of the same kind and logical (or transposed) shape."""
        rows, columns = (self.columns, self.rows) if as_transposed else (self.rows, self.columns)
        return type(self)(rows, columns)

    def reference(self) -> 'Mask':
        """Shallow alias sharing layers and stacks."""
        return _copy.copy(self)

    def copy(self) -> 'Mask':
        """Independent deep copy of layers and stacks."""
        clone = _copy.copy(self)
        state = self._state
        clone._state = _MaskState(
            self._copy_layer(state.cells),
            self._copy_layer(state.row_mask),
            self._copy_layer(state.column_mask),
            state.probability,
        )
        clone._state.cell_stack = [self._copy_layer(entry) for entry in state.cell_stack]
        clone._state.row_stack = [self._copy_layer(entry) for entry in state.row_stack]
        clone._state.column_stack = [self._copy_layer(entry) for entry in state.column_stack]
        return clone

    def transpose(self) -> 'Mask':
        """View of this mask with rows and columns swapped."""
        view = _copy.copy(self)
        view._transposed = not self._transposed
        return view

    def shares_state(self, other: 'Mask') -> bool:
        return self._state is other._state

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(shape={self.shape}, masked={self.count_masked()}, "
                f"transposed={self._transposed})")


# =============================================================================
# Dense Mask
# =============================================================================

class DenseMask(Mask):
    """Mask backed by numpy boolean arrays."""

    def _new_cells(self, rows: int, columns: int) -> np.ndarray:
        return np.zeros((rows, columns), dtype=bool)

    def _new_vector(self, size: int) -> np.ndarray:
        return np.zeros(size, dtype=bool)

    def _get_cell(self, cells, row, column) -> bool:
        return bool(cells[row, column])

    def _set_cell(self, cells, row, column, value) -> None:
        cells[row, column] = value

    def _get_entry(self, vector, index) -> bool:
        return bool(vector[index])

    def _set_entry(self, vector, index, value) -> None:
        vector[index] = value

    def _copy_layer(self, layer: np.ndarray) -> np.ndarray:
        return layer.copy()

    def to_array(self) -> np.ndarray:
        state = self._state
        combined = state.cells | state.row_mask[:, None] | state.column_mask[None, :]
        return combined.T.copy() if self._transposed else combined.copy()


# =============================================================================
# Sparse Mask
# =============================================================================

class SparseMask(Mask):
    """Mask storing only the masked coordinates."""

    def _new_cells(self, rows: int, columns: int) -> Set[Tuple[int, int]]:
        return set()

    def _new_vector(self, size: int) -> Set[int]:
        return set()

    def _get_cell(self, cells, row, column) -> bool:
        return (row, column) in cells

    def _set_cell(self, cells, row, column, value) -> None:
        if value:
            cells.add((row, column))
        else:
            cells.discard((row, column))

    def _get_entry(self, vector, index) -> bool:
        return index in vector

    def _set_entry(self, vector, index, value) -> None:
        if value:
            vector.add(index)
        else:
            vector.discard(index)

    def _copy_layer(self, layer: set) -> set:
        return set(layer)
