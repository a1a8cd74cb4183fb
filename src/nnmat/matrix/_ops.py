"""Convolution and Pooling Kernels.

Functional kernels shared by every matrix representation. They only use
the logical element interface of ``Matrix`` (``get_value``, ``set_value``,
``_is_masked`` and the factories), so dense, sparse, joined and view
matrices all run through the same code:

- Convolution / cross-correlation and their input and filter gradients
- Winograd F(2x2, 3x3) cross-correlation for 3x3 filters
- Max pooling with argmax bookkeeping and its gradient
- Average pooling and its gradient

Filter index mapping:
    cross-correlation: p(i) = i
    convolution:       p(i) = F - 1 - i
A filter tap contributes only when ``p % dilation == 0``. Output cells are
visited at ``0, stride, 2 * stride, ...``; unvisited cells stay zero.

Example:
    >>> out = crosscorrelate(image, kernel, stride=1, dilation=1)
    >>> grad_in = crosscorrelate_input_gradient(out_grad, kernel, 1, 1)
    >>> grad_k = crosscorrelate_filter_gradient(out_grad, image, kernel.shape, 1, 1)
"""

from typing import TYPE_CHECKING, Dict, Optional, Tuple

import numpy as np

from ..error import MatrixError, check_shape

if TYPE_CHECKING:
    from ._base import Matrix

__all__ = [
    'convolution',
    'convolution_input_gradient',
    'convolution_filter_gradient',
    'winograd_convolution',
    'winograd_filter_transform',
    'max_pool',
    'max_pool_gradient',
    'average_pool',
    'average_pool_gradient',
]

Positions = Dict[Tuple[int, int], Tuple[int, int]]


def _check_step(stride: int, dilation: int = 1) -> None:
    if stride < 1:
        raise MatrixError.invalid_argument(f"Stride must be positive, got {stride}")
    if dilation < 1:
        raise MatrixError.invalid_argument(f"Dilation must be positive, got {dilation}")


def _taps(size: int, dilation: int, flip: bool):
    """Pairs (i, p(i)) of filter taps that pass the dilation gate."""
    taps = []
    for i in range(size):
        p = size - 1 - i if flip else i
        if p % dilation == 0:
            taps.append((i, p))
    return taps


def _prepare(result: Optional['Matrix'], factory: 'Matrix', rows: int, columns: int) -> 'Matrix':
    if result is None:
        return factory.new_matrix_of(rows, columns)
    check_shape((rows, columns), result.shape, "Result matrix")
    return result


# =============================================================================
# Convolution
# =============================================================================

def convolution(
    input: 'Matrix',
    filter: 'Matrix',
    stride: int,
    dilation: int,
    flip: bool,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Convolve (``flip=True``) or cross-correlate ``input`` with ``filter``.

    Args:
        input: Input matrix
        filter: Filter matrix (FR x FC)
        stride: Output step
        dilation: Filter dilation gate
        flip: Use convolution index mapping
        result: Optional output buffer

    Returns:
        Output matrix of shape (rows - FR + 1) x (columns - FC + 1).
    """
    _check_step(stride, dilation)
    filter_rows, filter_columns = filter.shape
    rows = input.rows - filter_rows + 1
    columns = input.columns - filter_columns + 1
    if rows < 1 or columns < 1:
        raise MatrixError.dimension_mismatch(
            f"Filter {filter_rows}x{filter_columns} larger than input {input.rows}x{input.columns}"
        )
    result = _prepare(result, input, rows, columns)
    row_taps = _taps(filter_rows, dilation, flip)
    column_taps = _taps(filter_columns, dilation, flip)

    for row in range(0, rows, stride):
        for column in range(0, columns, stride):
            total = 0.0
            for i, p in row_taps:
                for j, q in column_taps:
                    if input._is_masked(row + i, column + j) or filter._is_masked(p, q):
                        continue
                    total += input.get_value(row + i, column + j) * filter.get_value(p, q)
            result.set_value(row, column, total)
    return result


def convolution_input_gradient(
    output_gradient: 'Matrix',
    filter: 'Matrix',
    stride: int,
    dilation: int,
    flip: bool,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Gradient of the convolution output with respect to its input.

    Scatters ``filter[p][q] * g[r][c]`` into ``[r + i][c + j]``.

    Returns:
        Matrix of shape (g.rows + FR - 1) x (g.columns + FC - 1).
    """
    _check_step(stride, dilation)
    filter_rows, filter_columns = filter.shape
    rows = output_gradient.rows + filter_rows - 1
    columns = output_gradient.columns + filter_columns - 1
    result = _prepare(result, output_gradient, rows, columns)
    row_taps = _taps(filter_rows, dilation, flip)
    column_taps = _taps(filter_columns, dilation, flip)

    for row in range(0, output_gradient.rows, stride):
        for column in range(0, output_gradient.columns, stride):
            if output_gradient._is_masked(row, column):
                continue
            gradient = output_gradient.get_value(row, column)
            for i, p in row_taps:
                for j, q in column_taps:
                    if filter._is_masked(p, q):
                        continue
                    current = result.get_value(row + i, column + j)
                    result.set_value(row + i, column + j, current + filter.get_value(p, q) * gradient)
    return result


def convolution_filter_gradient(
    output_gradient: 'Matrix',
    input: 'Matrix',
    filter_size: Tuple[int, int],
    stride: int,
    dilation: int,
    flip: bool,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Gradient of the convolution output with respect to its filter.

    Accumulates ``input[r + p(i)][c + p(j)] * g[r][c]`` into ``[i][j]``.

    Returns:
        Matrix of shape ``filter_size``.
    """
    _check_step(stride, dilation)
    filter_rows, filter_columns = filter_size
    check_shape(
        (input.rows - filter_rows + 1, input.columns - filter_columns + 1),
        output_gradient.shape,
        "Output gradient",
    )
    result = _prepare(result, output_gradient, filter_rows, filter_columns)
    # Gate on the filter cell itself, p(i) only locates the input tap.
    row_taps = [(i, filter_rows - 1 - i if flip else i) for i in range(filter_rows) if i % dilation == 0]
    column_taps = [(j, filter_columns - 1 - j if flip else j) for j in range(filter_columns) if j % dilation == 0]

    for row in range(0, output_gradient.rows, stride):
        for column in range(0, output_gradient.columns, stride):
            if output_gradient._is_masked(row, column):
                continue
            gradient = output_gradient.get_value(row, column)
            for i, p in row_taps:
                for j, q in column_taps:
                    if input._is_masked(row + p, column + q):
                        continue
                    current = result.get_value(i, j)
                    result.set_value(i, j, current + input.get_value(row + p, column + q) * gradient)
    return result


# =============================================================================
# Winograd convolution
# =============================================================================

# F(2x2, 3x3) transforms: Y = A^T [(G g G^T) * (B^T d B)] A
_WINOGRAD_BT = np.array([
    [1.0, 0.0, -1.0, 0.0],
    [0.0, 1.0, 1.0, 0.0],
    [0.0, -1.0, 1.0, 0.0],
    [0.0, 1.0, 0.0, -1.0],
])
_WINOGRAD_G = np.array([
    [1.0, 0.0, 0.0],
    [0.5, 0.5, 0.5],
    [0.5, -0.5, 0.5],
    [0.0, 0.0, 1.0],
])
_WINOGRAD_AT = np.array([
    [1.0, 1.0, 1.0, 0.0],
    [0.0, 1.0, -1.0, -1.0],
])


def _unmasked_array(matrix: 'Matrix') -> np.ndarray:
    """Logical values with masked cells read as zero."""
    values = np.zeros(matrix.shape)
    for row in range(matrix.rows):
        for column in range(matrix.columns):
            if not matrix._is_masked(row, column):
                values[row, column] = matrix.get_value(row, column)
    return values


def winograd_filter_transform(filter: 'Matrix') -> np.ndarray:
    """4x4 transformed filter ``G g G^T`` of a 3x3 filter."""
    check_shape((3, 3), filter.shape, "Winograd filter")
    return _WINOGRAD_G @ _unmasked_array(filter) @ _WINOGRAD_G.T


def winograd_convolution(
    input: 'Matrix',
    filter: 'Matrix',
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Winograd F(2x2, 3x3) cross-correlation of ``input`` with a 3x3 ``filter``.

    Equal to ``convolution(input, filter, 1, 1, flip=False)`` up to rounding.
    The input is processed in overlapping 4x4 tiles that each produce a 2x2
    output block; tiles running past an odd-sized edge are zero padded and
    only in-bounds outputs are written. Masked input and filter cells count
    as zero.

    Args:
        input: Input matrix (at least 3x3)
        filter: 3x3 filter matrix
        result: Optional output buffer

    Returns:
        Output matrix of shape (rows - 2) x (columns - 2).

    Example:
        >>> out = winograd_convolution(image, kernel)
        >>> np.allclose(out.to_array(), convolution(image, kernel, 1, 1, False).to_array())
        True
    """
    transformed = winograd_filter_transform(filter)
    rows = input.rows - 2
    columns = input.columns - 2
    if rows < 1 or columns < 1:
        raise MatrixError.dimension_mismatch(
            f"Filter 3x3 larger than input {input.rows}x{input.columns}"
        )
    result = _prepare(result, input, rows, columns)

    padded = np.zeros((rows + rows % 2 + 2, columns + columns % 2 + 2))
    padded[:input.rows, :input.columns] = _unmasked_array(input)
    for row in range(0, rows, 2):
        for column in range(0, columns, 2):
            tile = padded[row:row + 4, column:column + 4]
            block = _WINOGRAD_AT @ (transformed * (_WINOGRAD_BT @ tile @ _WINOGRAD_BT.T)) @ _WINOGRAD_AT.T
            for i in range(min(2, rows - row)):
                for j in range(min(2, columns - column)):
                    result.set_value(row + i, column + j, float(block[i, j]))
    return result


# =============================================================================
# Pooling
# =============================================================================

def _pool_shape(input: 'Matrix', pool_size: int, stride: int) -> Tuple[int, int]:
    if pool_size < 1:
        raise MatrixError.invalid_argument(f"Pool size must be positive, got {pool_size}")
    _check_step(stride)
    if input.rows < pool_size or input.columns < pool_size:
        raise MatrixError.dimension_mismatch(
            f"Pool {pool_size}x{pool_size} larger than input {input.rows}x{input.columns}"
        )
    return ((input.rows - pool_size) // stride + 1, (input.columns - pool_size) // stride + 1)


def max_pool(
    input: 'Matrix',
    positions: Positions,
    pool_size: int,
    stride: int,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Max pooling recording the absolute argmax per output cell.

    ``positions`` is cleared and filled with ``{(out_r, out_c): (in_r, in_c)}``.
    Windows whose cells are all masked produce zero and no position.
    """
    rows, columns = _pool_shape(input, pool_size, stride)
    result = _prepare(result, input, rows, columns)
    positions.clear()

    for row in range(rows):
        for column in range(columns):
            best = None
            best_at = None
            for i in range(row * stride, row * stride + pool_size):
                for j in range(column * stride, column * stride + pool_size):
                    if input._is_masked(i, j):
                        continue
                    value = input.get_value(i, j)
                    if best is None or best < value:
                        best = value
                        best_at = (i, j)
            if best_at is not None:
                result.set_value(row, column, best)
                positions[(row, column)] = best_at
    return result


def max_pool_gradient(
    output_gradient: 'Matrix',
    positions: Positions,
    input_shape: Tuple[int, int],
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Route each output gradient value to its recorded argmax input cell."""
    result = _prepare(result, output_gradient, *input_shape)
    for (row, column), (input_row, input_column) in positions.items():
        if output_gradient._is_masked(row, column):
            continue
        current = result.get_value(input_row, input_column)
        result.set_value(input_row, input_column, current + output_gradient.get_value(row, column))
    return result


def average_pool(
    input: 'Matrix',
    pool_size: int,
    stride: int,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Average pooling; the window sum of unmasked cells is divided by ``pool_size ** 2``."""
    rows, columns = _pool_shape(input, pool_size, stride)
    result = _prepare(result, input, rows, columns)
    area = pool_size * pool_size

    for row in range(rows):
        for column in range(columns):
            total = 0.0
            for i in range(row * stride, row * stride + pool_size):
                for j in range(column * stride, column * stride + pool_size):
                    if not input._is_masked(i, j):
                        total += input.get_value(i, j)
            result.set_value(row, column, total / area)
    return result


def average_pool_gradient(
    output_gradient: 'Matrix',
    input_shape: Tuple[int, int],
    pool_size: int,
    stride: int,
    result: Optional['Matrix'] = None,
) -> 'Matrix':
    """Spread each output gradient value evenly over its pooling window."""
    if pool_size < 1:
        raise MatrixError.invalid_argument(f"Pool size must be positive, got {pool_size}")
    _check_step(stride)
    result = _prepare(result, output_gradient, *input_shape)
    area = pool_size * pool_size

    for row in range(output_gradient.rows):
        for column in range(output_gradient.columns):
            if output_gradient._is_masked(row, column):
                continue
            share = output_gradient.get_value(row, column) / area
            for i in range(row * stride, row * stride + pool_size):
                for j in range(column * stride, column * stride + pool_size):
                    result.set_value(i, j, result.get_value(i, j) + share)
    return result
