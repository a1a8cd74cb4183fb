"""
Matrix Base Classes

This module defines the abstract matrix contract of nnmat and the algorithms
shared by every representation. Subclasses only provide element access and
factories; element-wise operations, reductions, softmax, convolution and
pooling are written once here against the logical element interface.

Type Hierarchy:

    Matrix (ABC) - contract + shared algorithms
    ├── StorageMatrix (ABC) - owns storage; transposed / sliced / scalar views
    │   ├── DenseMatrix  - numpy float64 array
    │   └── SparseMatrix - dictionary of non-zero entries
    └── JoinedMatrix - block concatenation of sub-matrices (non-owning)

Masking:

    Every cell-iterating operation skips element (r, c) when it is masked in
    any operand (cell, row or column layer). A matrix without a mask never
    consults one.

Scalars:

    A scalar matrix (``constant_matrix(value)``) always reports 1x1 and
    returns its value for every index, so it broadcasts against any shape:

        a = DenseMatrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        b = a.add(a.constant_matrix(10.0))   # [[11, 12], [13, 14]]
        c = a * 2.0                          # same through the operator

Views:

    ``transpose()`` and ``slice()`` return views sharing storage and mask with
    the matrix they were taken from; ``reference()`` is a shallow alias;
    ``copy()`` is an independent deep clone.
"""

import copy as _copy
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, Union

import numpy as np

from .._config import config
from .._recorder import ExpressionKind, recorded
from ..error import MatrixError, check_shape
from ..function import BinaryFunction, BinaryFunctionType, UnaryFunction, UnaryFunctionType
from ..function._params import ieee
from . import _ops
from ._init import Initialization, initialize
from ._mask import Mask
from ._ownership import OwnershipTracker

logger = logging.getLogger("nnmat.matrix")

__all__ = [
    'Matrix',
    'StorageMatrix',
]

Operand = Union['Matrix', float, int]

_ADD = ieee(lambda a, b: a + b)
_SUBTRACT = ieee(lambda a, b: a - b)
_MULTIPLY = ieee(lambda a, b: a * b)
_DIVIDE = ieee(lambda a, b: a / b)
_SGNMUL = ieee(lambda a, b: np.sign(a) * np.sign(b))
_ENTROPY_TERM = ieee(lambda a: a * np.log2(a))


def _unary_callable(function) -> Callable[[float], float]:
    if isinstance(function, UnaryFunction):
        return function.function
    if isinstance(function, (UnaryFunctionType, str)):
        return UnaryFunction(function).function
    if callable(function):
        return function
    raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown unary function.")


def _binary_callable(function) -> Callable[[float, float], float]:
    if isinstance(function, BinaryFunction):
        return function.function
    if isinstance(function, (BinaryFunctionType, str)):
        return BinaryFunction(function).function
    if callable(function):
        return function
    raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown binary function.")


class Matrix(ABC):
    """
    Abstract base class for all matrices.

    Required (subclasses must implement):
        rows, columns: Logical dimensions
        get_value(row, column), set_value(row, column, value)
        _is_masked(row, column), has_mask, set_mask(mask)
        new_matrix_of(rows, columns), constant_matrix(value)
        transpose(), slice(...), reference(), copy(), reset()

    Everything else is implemented here in terms of those.

    Attributes:
        name: Optional human-readable name
        recorder: Optional expression recorder notified by recorded operations
    """

    # Defer mixed numpy arithmetic to the reflected operators.
    __array_ufunc__ = None

    def __init__(self, name: Optional[str] = None):
        self._name = name
        self.recorder = None

    # =========================================================================
    # Abstract Interface
    # =========================================================================

    @property
    @abstractmethod
    def rows(self) -> int:
        ...

    @property
    @abstractmethod
    def columns(self) -> int:
        ...

    @abstractmethod
    def get_value(self, row: int, column: int) -> float:
        ...

    @abstractmethod
    def set_value(self, row: int, column: int, value: float) -> None:
        ...

    @abstractmethod
    def _is_masked(self, row: int, column: int) -> bool:
        """True if element (row, column) is masked in any layer."""
        ...

    @property
    @abstractmethod
    def has_mask(self) -> bool:
        ...

    @abstractmethod
    def set_mask(self, mask: Optional[Mask] = None) -> Optional[Mask]:
        ...

    @abstractmethod
    def new_matrix_of(self, rows: int, columns: int) -> 'Matrix':
        """Fresh zero matrix of the given shape and the same representation."""
        ...

    @abstractmethod
    def constant_matrix(self, value: float) -> 'Matrix':
        """Scalar matrix of the same representation holding ``value``."""
        ...

    @abstractmethod
    def transpose(self) -> 'Matrix':
        ...

    @abstractmethod
    def slice(self, start_row: int, start_column: int, end_row: int, end_column: int) -> 'Matrix':
        ...

    @abstractmethod
    def reference(self) -> 'Matrix':
        ...

    @abstractmethod
    def copy(self) -> 'Matrix':
        ...

    @abstractmethod
    def reset(self) -> None:
        ...

    # =========================================================================
    # Derived Properties
    # =========================================================================

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.columns)

    @property
    def size(self) -> int:
        """Total number of elements (rows * columns)."""
        return self.rows * self.columns

    @property
    def is_scalar(self) -> bool:
        return False

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        self._name = value

    def new_matrix(self, as_transposed: bool = False) -> 'Matrix':
        """Fresh zero matrix of the same shape (or transposed shape) and representation."""
        if as_transposed:
            return self.new_matrix_of(self.columns, self.rows)
        return self.new_matrix_of(self.rows, self.columns)

    def fill(self, value: float) -> None:
        for row in range(self.rows):
            for column in range(self.columns):
                self.set_value(row, column, value)

    def to_array(self) -> np.ndarray:
        """Logical contents as a float64 numpy array."""
        out = np.zeros(self.shape, dtype=np.float64)
        for row in range(self.rows):
            for column in range(self.columns):
                out[row, column] = self.get_value(row, column)
        return out

    def _assign_array(self, values: np.ndarray) -> None:
        for row in range(self.rows):
            for column in range(self.columns):
                self.set_value(row, column, float(values[row, column]))

    def _unmasked(self):
        """Logical coordinates not suppressed by the mask."""
        check = self.has_mask
        for row in range(self.rows):
            for column in range(self.columns):
                if check and self._is_masked(row, column):
                    continue
                yield row, column

    def _result(self, result: Optional['Matrix'], rows: int, columns: int) -> 'Matrix':
        if result is None:
            if (rows, columns) == self.shape:
                return self.new_matrix()
            return self.new_matrix_of(rows, columns)
        check_shape((rows, columns), result.shape, "Result matrix")
        return result

    def _as_matrix(self, other: Operand) -> 'Matrix':
        if isinstance(other, Matrix):
            return other
        if isinstance(other, (int, float, np.floating, np.integer)):
            return self.constant_matrix(float(other))
        raise MatrixError.invalid_argument(f"Unsupported operand type: {type(other).__name__}")

    # =========================================================================
    # Element-wise Operations
    # =========================================================================

    @recorded(ExpressionKind.UNARY_FUNCTION)
    def apply(self, function, result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Apply a unary function to every unmasked element.

        Args:
            function: ``UnaryFunction``, ``UnaryFunctionType`` (or its name) or
                a plain callable of one float
            result: Optional output buffer of the same shape

        Returns:
            Result matrix. SOFTMAX / GUMBEL_SOFTMAX run the whole-vector
            algorithms instead of the element-wise path.
        """
        if isinstance(function, (UnaryFunctionType, str)):
            function = UnaryFunction(function)
        if isinstance(function, UnaryFunction):
            if function.type is UnaryFunctionType.SOFTMAX:
                return self.softmax(result)
            if function.type is UnaryFunctionType.GUMBEL_SOFTMAX:
                return self.gumbel_softmax(function.tau, result)
        scalar_function = _unary_callable(function)
        result = self._result(result, self.rows, self.columns)
        for row, column in self._unmasked():
            result.set_value(row, column, scalar_function(self.get_value(row, column)))
        return result

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def apply_bi(self, other: Operand, function, result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Apply a binary function element-wise with scalar broadcasting.

        Shapes must match unless either operand is scalar. Iteration bounds
        and the result factory come from the non-scalar operand (this matrix
        when both are non-scalar). Elements masked in either operand are
        skipped.

        Raises:
            MatrixError: ERROR_DIMENSION_MISMATCH on incompatible shapes
        """
        other = self._as_matrix(other)
        scalar_function = _binary_callable(function)
        if not self.is_scalar and not other.is_scalar and self.shape != other.shape:
            raise MatrixError.dimension_mismatch(
                f"Incompatible matrix sizes: {self.rows}x{self.columns} by {other.rows}x{other.columns}"
            )
        base = other if self.is_scalar and not other.is_scalar else self
        rows, columns = base.shape
        result = base._result(result, rows, columns)
        check_self = self.has_mask
        check_other = other.has_mask
        for row in range(rows):
            for column in range(columns):
                if check_self and self._is_masked(row, column):
                    continue
                if check_other and other._is_masked(row, column):
                    continue
                value = scalar_function(self.get_value(row, column), other.get_value(row, column))
                result.set_value(row, column, value)
        return result

    @recorded(ExpressionKind.ADD)
    def add(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(other, _ADD, result)

    @recorded(ExpressionKind.SUBTRACT)
    def subtract(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(other, _SUBTRACT, result)

    @recorded(ExpressionKind.MULTIPLY)
    def multiply(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(other, _MULTIPLY, result)

    @recorded(ExpressionKind.DIVIDE)
    def divide(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        """Element-wise division; division by zero follows IEEE (``1 / 0 == inf``)."""
        return self.apply_bi(other, _DIVIDE, result)

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def power(self, exponent: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(exponent, BinaryFunction(BinaryFunctionType.POW), result)

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def maximum(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(other, BinaryFunction(BinaryFunctionType.MAX), result)

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def minimum(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        return self.apply_bi(other, BinaryFunction(BinaryFunctionType.MIN), result)

    @recorded(ExpressionKind.BINARY_FUNCTION)
    def sgnmul(self, other: Operand, result: Optional['Matrix'] = None) -> 'Matrix':
        """Product of element signs."""
        return self.apply_bi(other, _SGNMUL, result)

    def __add__(self, other):
        return self.add(other)

    def __radd__(self, other):
        return self._as_matrix(other).add(self)

    def __sub__(self, other):
        return self.subtract(other)

    def __rsub__(self, other):
        return self._as_matrix(other).subtract(self)

    def __mul__(self, other):
        return self.multiply(other)

    def __rmul__(self, other):
        return self._as_matrix(other).multiply(self)

    def __truediv__(self, other):
        return self.divide(other)

    def __rtruediv__(self, other):
        return self._as_matrix(other).divide(self)

    def __matmul__(self, other):
        return self.dot(other)

    def __neg__(self):
        return self.multiply(-1.0)

    # =========================================================================
    # Matrix Product
    # =========================================================================

    @recorded(ExpressionKind.DOT)
    def dot(self, other: 'Matrix', result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Matrix product ``self @ other``.

        Contraction terms masked in either operand are skipped.

        Raises:
            MatrixError: ERROR_DIMENSION_MISMATCH if ``self.columns != other.rows``
        """
        if self.columns != other.rows:
            raise MatrixError.dimension_mismatch(
                f"Incompatible matrix sizes for dot: {self.rows}x{self.columns} by {other.rows}x{other.columns}"
            )
        result = self._result(result, self.rows, other.columns)
        if not self.has_mask and not other.has_mask:
            with np.errstate(all='ignore'):
                result._assign_array(self.to_array() @ other.to_array())
            return result

        for row in range(self.rows):
            for column in range(other.columns):
                total = 0.0
                for index in range(self.columns):
                    if self._is_masked(row, index) or other._is_masked(index, column):
                        continue
                    total += self.get_value(row, index) * other.get_value(index, column)
                result.set_value(row, column, total)
        return result

    # =========================================================================
    # Reductions
    # =========================================================================

    def count(self) -> Tuple[float, int]:
        """Sum and number of unmasked elements."""
        total = 0.0
        n = 0
        for row, column in self._unmasked():
            total += self.get_value(row, column)
            n += 1
        return total, n

    @recorded(ExpressionKind.SUM)
    def sum(self) -> float:
        return self.count()[0]

    @recorded(ExpressionKind.MEAN)
    def mean(self) -> float:
        """Mean of unmasked elements (0 when every element is masked)."""
        total, n = self.count()
        return total / n if n > 0 else 0.0

    def _squared_deviation(self, mean: Optional[float]) -> Tuple[float, int]:
        if mean is None:
            mean = self.mean()
        total = 0.0
        n = 0
        for row, column in self._unmasked():
            total += (self.get_value(row, column) - mean) ** 2
            n += 1
        return total, n

    @recorded(ExpressionKind.VARIANCE)
    def variance(self, mean: Optional[float] = None) -> float:
        """Biased variance ``sum((x - mean)^2) / n`` over unmasked elements."""
        total, n = self._squared_deviation(mean)
        return total / n if n > 0 else 0.0

    @recorded(ExpressionKind.STANDARD_DEVIATION)
    def standard_deviation(self, mean: Optional[float] = None) -> float:
        """Sample standard deviation ``sqrt(sum((x - mean)^2) / (n - 1))`` (0 when n <= 1)."""
        total, n = self._squared_deviation(mean)
        return math.sqrt(total / (n - 1)) if n > 1 else 0.0

    @recorded(ExpressionKind.NORM)
    def norm(self, p: float = 2) -> float:
        """p-norm of unmasked elements."""
        if p <= 0:
            raise MatrixError.invalid_argument(f"Norm order must be positive, got {p}")
        total = 0.0
        for row, column in self._unmasked():
            total += abs(self.get_value(row, column)) ** p
        return total ** (1.0 / p)

    @recorded(ExpressionKind.ENTROPY)
    def entropy(self) -> float:
        """Mean base-2 entropy ``-sum(x * log2(x)) / n`` over unmasked elements.

        Zero elements count towards ``n`` and contribute nothing
        (``0 * log2(0)`` is taken as 0). Returns 0 when every element is masked.
        """
        total = 0.0
        n = 0
        for row, column in self._unmasked():
            value = self.get_value(row, column)
            if value != 0.0:
                total += _ENTROPY_TERM(value)
            n += 1
        return -total / n if n > 0 else 0.0

    @recorded(ExpressionKind.SUM)
    def sum_as_matrix(self) -> 'Matrix':
        return self.constant_matrix(self.sum())

    @recorded(ExpressionKind.MEAN)
    def mean_as_matrix(self) -> 'Matrix':
        return self.constant_matrix(self.mean())

    @recorded(ExpressionKind.VARIANCE)
    def variance_as_matrix(self, mean: Optional[float] = None) -> 'Matrix':
        return self.constant_matrix(self.variance(mean))

    @recorded(ExpressionKind.STANDARD_DEVIATION)
    def standard_deviation_as_matrix(self, mean: Optional[float] = None) -> 'Matrix':
        return self.constant_matrix(self.standard_deviation(mean))

    @recorded(ExpressionKind.NORM)
    def norm_as_matrix(self, p: float = 2) -> 'Matrix':
        return self.constant_matrix(self.norm(p))

    def _extreme(self, is_minimum: bool) -> Tuple[float, Tuple[int, int]]:
        value = math.inf if is_minimum else -math.inf
        index = (0, 0)
        for row, column in self._unmasked():
            current = self.get_value(row, column)
            if (current < value) if is_minimum else (current > value):
                value = current
                index = (row, column)
        return value, index

    def min(self) -> float:
        """Smallest unmasked value (``inf`` when every element is masked)."""
        return self._extreme(True)[0]

    def max(self) -> float:
        """Largest unmasked value (``-inf`` when every element is masked)."""
        return self._extreme(False)[0]

    def argmin(self) -> Tuple[int, int]:
        """(row, column) of the first smallest unmasked value."""
        return self._extreme(True)[1]

    def argmax(self) -> Tuple[int, int]:
        """(row, column) of the first largest unmasked value."""
        return self._extreme(False)[1]

    def exponential_moving_average(self, current_average: Optional['Matrix'], beta: float) -> 'Matrix':
        """``beta * current_average + (1 - beta) * self``; returns self when there is no average yet."""
        if current_average is None:
            return self
        return current_average.multiply(beta).add(self.multiply(1 - beta))

    def normalize(self) -> 'Matrix':
        """Zero mean and unit standard deviation over unmasked elements."""
        mean = self.mean()
        deviation = self.standard_deviation(mean)
        return self.apply(ieee(lambda value: (value - mean) / deviation))

    def min_max(self, new_minimum: float = 0.0, new_maximum: float = 1.0) -> 'Matrix':
        """Rescale unmasked elements linearly onto [new_minimum, new_maximum]."""
        minimum = self.min()
        maximum = self.max()
        delta = maximum - minimum if maximum - minimum != 0 else 1.0
        scale = new_maximum - new_minimum
        return self.apply(lambda value: (value - minimum) / delta * scale + new_minimum)

    # =========================================================================
    # Softmax
    # =========================================================================

    def _check_column_vector(self) -> None:
        if self.columns != 1:
            raise MatrixError.invalid_argument("Matrix must be a column vector.")

    def _normalize_rows(self, result: 'Matrix') -> 'Matrix':
        total = 0.0
        for row, column in self._unmasked():
            total += result.get_value(row, column)
        with np.errstate(all='ignore'):
            for row, column in self._unmasked():
                result.set_value(row, column, float(np.float64(result.get_value(row, column)) / total))
        return result

    @recorded(ExpressionKind.SOFTMAX)
    def softmax(self, result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Softmax of a column vector.

        Masked rows take no part in the maximum or the normalizing sum and
        are left untouched in the result.

        Raises:
            MatrixError: ERROR_INVALID_ARGUMENT if the matrix is not a column vector
        """
        self._check_column_vector()
        result = self._result(result, self.rows, 1)
        maximum = self.max()
        exponent = ieee(lambda value: np.exp(value - maximum))
        for row, column in self._unmasked():
            result.set_value(row, column, exponent(self.get_value(row, column)))
        return self._normalize_rows(result)

    @recorded(ExpressionKind.GUMBEL_SOFTMAX)
    def gumbel_softmax(self, tau: Optional[float] = None, result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Gumbel softmax of a column vector.

        Each element becomes ``exp((log(sigmoid(v)) + g) / tau)`` with Gumbel
        noise ``g = -log(-log(U + eps) + eps)``, then the vector is normalized.
        ``tau`` defaults to ``config.compute.gumbel_tau``.
        """
        self._check_column_vector()
        if tau is None:
            tau = config.compute.gumbel_tau
        epsilon = config.compute.gumbel_epsilon
        rng = config.rng
        result = self._result(result, self.rows, 1)

        def sample(value):
            noise = -np.log(-np.log(rng.random() + epsilon) + epsilon)
            return np.exp((np.log(np.exp(value) / (1 + np.exp(value))) + noise) / tau)

        sample = ieee(sample)
        for row, column in self._unmasked():
            result.set_value(row, column, sample(self.get_value(row, column)))
        return self._normalize_rows(result)

    def softmax_grad(self, result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Jacobian-style softmax gradient of a softmax output column vector.

        Returns:
            n x n matrix with ``result[i][j] = (1 if i == j else 0) - output[i]``.
        """
        self._check_column_vector()
        n = self.rows
        result = self._result(result, n, n)
        for i in range(n):
            value = self.get_value(i, 0)
            for j in range(n):
                result.set_value(i, j, (1.0 if i == j else 0.0) - value)
        return result

    # =========================================================================
    # Convolution
    # =========================================================================

    @staticmethod
    def _steps(stride: Optional[int], dilation: Optional[int]) -> Tuple[int, int]:
        settings = config.convolution
        return (settings.stride if stride is None else stride,
                settings.dilation if dilation is None else dilation)

    @recorded(ExpressionKind.CONVOLVE)
    def convolve(self, filter: 'Matrix', stride: Optional[int] = None,
                 dilation: Optional[int] = None, result: Optional['Matrix'] = None) -> 'Matrix':
        """Convolution with ``filter``; stride and dilation default to ``config.convolution``."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution(self, filter, stride, dilation, True, result)

    @recorded(ExpressionKind.CROSSCORRELATE)
    def crosscorrelate(self, filter: 'Matrix', stride: Optional[int] = None,
                       dilation: Optional[int] = None, result: Optional['Matrix'] = None) -> 'Matrix':
        """Cross-correlation with ``filter``; stride and dilation default to ``config.convolution``."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution(self, filter, stride, dilation, False, result)

    @recorded(ExpressionKind.WINOGRAD_CONVOLVE)
    def winograd_convolve(self, filter: 'Matrix', result: Optional['Matrix'] = None) -> 'Matrix':
        """Winograd F(2x2, 3x3) form of ``crosscorrelate`` for a 3x3 filter at stride 1 and dilation 1.

        Raises:
            MatrixError: ERROR_DIMENSION_MISMATCH if the filter is not 3x3 or the
                input is smaller than the filter
        """
        return _ops.winograd_convolution(self, filter, result)

    def convolve_input_gradient(self, filter: 'Matrix', stride: Optional[int] = None,
                                dilation: Optional[int] = None,
                                result: Optional['Matrix'] = None) -> 'Matrix':
        """Input gradient of ``convolve``; called on the output gradient."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution_input_gradient(self, filter, stride, dilation, True, result)

    def crosscorrelate_input_gradient(self, filter: 'Matrix', stride: Optional[int] = None,
                                      dilation: Optional[int] = None,
                                      result: Optional['Matrix'] = None) -> 'Matrix':
        """Input gradient of ``crosscorrelate``; called on the output gradient."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution_input_gradient(self, filter, stride, dilation, False, result)

    def convolve_filter_gradient(self, input: 'Matrix', filter_size: Tuple[int, int],
                                 stride: Optional[int] = None, dilation: Optional[int] = None,
                                 result: Optional['Matrix'] = None) -> 'Matrix':
        """Filter gradient of ``convolve``; called on the output gradient."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution_filter_gradient(self, input, filter_size, stride, dilation, True, result)

    def crosscorrelate_filter_gradient(self, input: 'Matrix', filter_size: Tuple[int, int],
                                       stride: Optional[int] = None, dilation: Optional[int] = None,
                                       result: Optional['Matrix'] = None) -> 'Matrix':
        """Filter gradient of ``crosscorrelate``; called on the output gradient."""
        stride, dilation = self._steps(stride, dilation)
        return _ops.convolution_filter_gradient(self, input, filter_size, stride, dilation, False, result)

    # =========================================================================
    # Pooling
    # =========================================================================

    @staticmethod
    def _pooling(pool_size: Optional[int], stride: Optional[int]) -> Tuple[int, int]:
        settings = config.pooling
        return (settings.pool_size if pool_size is None else pool_size,
                settings.stride if stride is None else stride)

    @recorded(ExpressionKind.MAX_POOL)
    def max_pool(self, positions: Dict[Tuple[int, int], Tuple[int, int]],
                 pool_size: Optional[int] = None, stride: Optional[int] = None,
                 result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Max pooling.

        Args:
            positions: Dict filled with ``{(out_row, out_col): (in_row, in_col)}``
            pool_size: Window side, defaults to ``config.pooling.pool_size``
            stride: Window step, defaults to ``config.pooling.stride``
            result: Optional output buffer

        Returns:
            Matrix of shape ((rows - P) // stride + 1) x ((columns - P) // stride + 1)
        """
        pool_size, stride = self._pooling(pool_size, stride)
        return _ops.max_pool(self, positions, pool_size, stride, result)

    def max_pool_gradient(self, positions: Dict[Tuple[int, int], Tuple[int, int]],
                          input_shape: Tuple[int, int],
                          result: Optional['Matrix'] = None) -> 'Matrix':
        """Input gradient of ``max_pool``; called on the output gradient."""
        return _ops.max_pool_gradient(self, positions, input_shape, result)

    @recorded(ExpressionKind.AVERAGE_POOL)
    def average_pool(self, pool_size: Optional[int] = None, stride: Optional[int] = None,
                     result: Optional['Matrix'] = None) -> 'Matrix':
        pool_size, stride = self._pooling(pool_size, stride)
        return _ops.average_pool(self, pool_size, stride, result)

    def average_pool_gradient(self, input_shape: Tuple[int, int], pool_size: Optional[int] = None,
                              stride: Optional[int] = None,
                              result: Optional['Matrix'] = None) -> 'Matrix':
        """Input gradient of ``average_pool``; called on the output gradient."""
        pool_size, stride = self._pooling(pool_size, stride)
        return _ops.average_pool_gradient(self, input_shape, pool_size, stride, result)

    # =========================================================================
    # Structure
    # =========================================================================

    def _concatenation_target(self, other: 'Matrix', rows: int, columns: int) -> 'Matrix':
        from ._dense import DenseMatrix
        from ._sparse import SparseMatrix
        if isinstance(self, SparseMatrix) and isinstance(other, SparseMatrix):
            return SparseMatrix(rows, columns)
        return DenseMatrix(rows, columns)

    def concatenate_vertical(self, other: 'Matrix') -> 'Matrix':
        """New matrix with ``other`` stacked below this one."""
        if self.columns != other.columns:
            raise MatrixError.dimension_mismatch("Number of columns in matrices are not matching.")
        result = self._concatenation_target(other, self.rows + other.rows, self.columns)
        for row in range(self.rows):
            for column in range(self.columns):
                result.set_value(row, column, self.get_value(row, column))
        for row in range(other.rows):
            for column in range(other.columns):
                result.set_value(self.rows + row, column, other.get_value(row, column))
        return result

    def concatenate_horizontal(self, other: 'Matrix') -> 'Matrix':
        """New matrix with ``other`` placed right of this one."""
        if self.rows != other.rows:
            raise MatrixError.dimension_mismatch("Number of rows in matrices are not matching.")
        result = self._concatenation_target(other, self.rows, self.columns + other.columns)
        for row in range(self.rows):
            for column in range(self.columns):
                result.set_value(row, column, self.get_value(row, column))
            for column in range(other.columns):
                result.set_value(row, self.columns + column, other.get_value(row, column))
        return result

    @recorded(ExpressionKind.JOIN)
    def join(self, other: 'Matrix', vertical: bool = True) -> 'Matrix':
        """Joined (non-copying) view of this matrix followed by ``other``."""
        from ._joined import JoinedMatrix
        return JoinedMatrix([self, other], vertical)

    def unjoin(self, index: int) -> 'Matrix':
        raise MatrixError(MatrixError.ERROR_ILLEGAL_STRUCTURE, "Matrix is not joined.")

    # =========================================================================
    # State
    # =========================================================================

    def set_equal_to(self, other: 'Matrix') -> None:
        """Copy every value of ``other`` into this matrix."""
        check_shape(self.shape, other.shape, "Incompatible target matrix size")
        for row in range(self.rows):
            for column in range(self.columns):
                self.set_value(row, column, other.get_value(row, column))

    def equals(self, other: 'Matrix') -> bool:
        """
        Element-wise exact equality.

        Raises:
            MatrixError: ERROR_DIMENSION_MISMATCH if the shapes differ
        """
        check_shape(self.shape, other.shape, "Incompatible target matrix size")
        for row in range(self.rows):
            for column in range(self.columns):
                if self.get_value(row, column) != other.get_value(row, column):
                    return False
        return True

    def initialize(self, init: Union[Initialization, str],
                   inputs: Optional[int] = None, outputs: Optional[int] = None) -> None:
        """Fill this matrix in place with an initialization scheme."""
        initialize(self, init, inputs, outputs)

    def __repr__(self) -> str:
        label = f", name={self._name!r}" if self._name else ""
        return f"{type(self).__name__}(shape={self.shape}{label})"


# =============================================================================
# Storage Matrix
# =============================================================================

class _SharedMask:
    """Mask slot shared by a matrix and all of its views."""

    __slots__ = ('mask',)

    def __init__(self):
        self.mask: Optional[Mask] = None


class StorageMatrix(Matrix):
    """
    Matrix owning physical storage, with transposed, sliced and scalar views.

    Logical (row, column) maps to physical storage as:

        (row + start_row, column + start_column)   # active slice
        -> swapped when transposed                  # transposed view

    The mask is kept in physical orientation and shared with every view, so a
    mask set through one view is honoured by all of them.

    Storage hooks (subclasses must implement):
        _allocate(rows, columns), _get(row, column), _put(row, column, value),
        _copy_storage(), _clear_storage(), _create_mask(rows, columns)
    """

    def __init__(self, rows: int, columns: int, scalar: bool = False, name: Optional[str] = None):
        super().__init__(name)
        if rows < 0 or columns < 0:
            raise MatrixError.invalid_argument(f"Invalid matrix size: {rows}x{columns}")
        self._physical_rows = rows
        self._physical_columns = columns
        self._transposed = False
        self._slice: Optional[Tuple[int, int, int, int]] = None
        self._scalar = scalar
        self._shared = _SharedMask()
        self._ownership = OwnershipTracker.owned()
        self._allocate(rows, columns)

    # =========================================================================
    # Storage hooks
    # =========================================================================

    @abstractmethod
    def _allocate(self, rows: int, columns: int) -> None:
        ...

    @abstractmethod
    def _get(self, row: int, column: int) -> float:
        ...

    @abstractmethod
    def _put(self, row: int, column: int, value: float) -> None:
        ...

    @abstractmethod
    def _copy_storage(self) -> Any:
        ...

    @abstractmethod
    def _clear_storage(self) -> None:
        ...

    @abstractmethod
    def _create_mask(self, rows: int, columns: int) -> Mask:
        ...

    @classmethod
    def _empty(cls, rows: int, columns: int, scalar: bool = False) -> 'StorageMatrix':
        return cls(rows, columns, scalar=scalar)

    # =========================================================================
    # Shape and views
    # =========================================================================

    @property
    def rows(self) -> int:
        if self._scalar:
            return 1
        if self._slice is not None:
            return self._slice[2]
        return self._physical_columns if self._transposed else self._physical_rows

    @property
    def columns(self) -> int:
        if self._scalar:
            return 1
        if self._slice is not None:
            return self._slice[3]
        return self._physical_rows if self._transposed else self._physical_columns

    @property
    def is_scalar(self) -> bool:
        return self._scalar

    @property
    def is_transposed(self) -> bool:
        return self._transposed

    @property
    def is_sliced(self) -> bool:
        return self._slice is not None

    @property
    def ownership(self) -> OwnershipTracker:
        return self._ownership

    @property
    def is_view(self) -> bool:
        return not self._ownership.is_owned

    def _locate(self, row: int, column: int) -> Tuple[int, int]:
        if self._scalar:
            return (0, 0)
        if not (0 <= row < self.rows and 0 <= column < self.columns):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Index ({row}, {column}) out of bounds for {self.rows}x{self.columns}"
            )
        if self._slice is not None:
            row += self._slice[0]
            column += self._slice[1]
        return (column, row) if self._transposed else (row, column)

    def get_value(self, row: int, column: int) -> float:
        return self._get(*self._locate(row, column))

    def set_value(self, row: int, column: int, value: float) -> None:
        self._put(*self._locate(row, column), float(value))

    def _view(self) -> 'StorageMatrix':
        view = _copy.copy(self)
        view._ownership = OwnershipTracker.view(self)
        return view

    @recorded(ExpressionKind.TRANSPOSE)
    def transpose(self) -> 'StorageMatrix':
        """Transposed view sharing storage and mask."""
        if self._scalar:
            return self.reference()
        view = self._view()
        view._transposed = not self._transposed
        if self._slice is not None:
            start_row, start_column, rows, columns = self._slice
            view._slice = (start_column, start_row, columns, rows)
        return view

    @property
    def T(self) -> 'StorageMatrix':
        return self.transpose()

    def slice(self, start_row: int, start_column: int, end_row: int, end_column: int) -> 'StorageMatrix':
        """
        View of the sub-rectangle ``[start_row, end_row) x [start_column, end_column)``.

        Raises:
            MatrixError: ERROR_INDEX_OUT_OF_BOUNDS for an invalid rectangle
        """
        if self._scalar:
            return self.reference()
        if not (0 <= start_row <= end_row <= self.rows and 0 <= start_column <= end_column <= self.columns):
            raise MatrixError(
                MatrixError.ERROR_INDEX_OUT_OF_BOUNDS,
                f"Slice ({start_row}, {start_column}) - ({end_row}, {end_column}) "
                f"out of bounds for {self.rows}x{self.columns}"
            )
        offset_row, offset_column = (self._slice[0], self._slice[1]) if self._slice else (0, 0)
        view = self._view()
        view._slice = (offset_row + start_row, offset_column + start_column,
                       end_row - start_row, end_column - start_column)
        return view

    def unslice(self) -> 'StorageMatrix':
        """View of the full underlying matrix in this orientation."""
        view = self._view()
        view._slice = None
        return view

    # =========================================================================
    # Mask
    # =========================================================================

    @property
    def has_mask(self) -> bool:
        return self._shared.mask is not None

    @property
    def mask(self) -> Optional[Mask]:
        """
        Attached mask in this matrix's (unsliced) orientation.

        Indices into the mask are unsliced coordinates: for a slice starting
        at (sr, sc), logical element (r, c) corresponds to mask (r + sr, c + sc).
        """
        mask = self._shared.mask
        if mask is None:
            return None
        return mask.transpose() if self._transposed else mask

    def set_mask(self, mask: Optional[Mask] = None) -> Mask:
        """
        Attach a mask and return it.

        Without an argument a fresh mask is created unless one is already
        attached. A supplied mask must have this matrix's unsliced shape.
        """
        if mask is None:
            if self._shared.mask is None:
                self._shared.mask = self._create_mask(self._physical_rows, self._physical_columns)
            return self.mask
        physical = mask.transpose() if self._transposed else mask
        check_shape((self._physical_rows, self._physical_columns), physical.shape, "Mask")
        self._shared.mask = physical
        return self.mask

    def remove_mask(self) -> None:
        self._shared.mask = None

    def _is_masked(self, row: int, column: int) -> bool:
        mask = self._shared.mask
        if mask is None:
            return False
        return mask.is_masked(*self._locate(row, column))

    # =========================================================================
    # Factories, copies and state
    # =========================================================================

    def new_matrix_of(self, rows: int, columns: int) -> 'StorageMatrix':
        return type(self)._empty(rows, columns)

    def new_matrix(self, as_transposed: bool = False) -> 'StorageMatrix':
        if self._scalar:
            return type(self)._empty(1, 1, scalar=True)
        return super().new_matrix(as_transposed)

    def constant_matrix(self, value: float) -> 'StorageMatrix':
        matrix = type(self)._empty(1, 1, scalar=True)
        matrix.set_value(0, 0, value)
        return matrix

    def reference(self) -> 'StorageMatrix':
        """Shallow alias sharing storage and mask."""
        alias = _copy.copy(self)
        alias._ownership = OwnershipTracker.reference(self)
        return alias

    def copy(self) -> 'StorageMatrix':
        """Independent deep copy of storage and mask, keeping the view state."""
        clone = _copy.copy(self)
        clone._ownership = OwnershipTracker.owned()
        clone._storage = self._copy_storage()
        clone._shared = _SharedMask()
        if self._shared.mask is not None:
            clone._shared.mask = self._shared.mask.copy()
        return clone

    def reset(self) -> None:
        """Zero the storage and clear the attached mask."""
        self._clear_storage()
        if self._shared.mask is not None:
            self._shared.mask.clear()

    def _physical_array(self) -> np.ndarray:
        out = np.zeros((self._physical_rows, self._physical_columns), dtype=np.float64)
        for row in range(self._physical_rows):
            for column in range(self._physical_columns):
                out[row, column] = self._get(row, column)
        return out

    def to_array(self) -> np.ndarray:
        if self._scalar:
            return np.full((1, 1), self._get(0, 0), dtype=np.float64)
        values = self._physical_array()
        if self._transposed:
            values = values.T
        if self._slice is not None:
            start_row, start_column, rows, columns = self._slice
            values = values[start_row:start_row + rows, start_column:start_column + columns]
        return np.array(values, dtype=np.float64)

    def __repr__(self) -> str:
        flags = []
        if self._scalar:
            flags.append("scalar")
        if self._transposed:
            flags.append("transposed")
        if self._slice is not None:
            flags.append(f"slice={self._slice[:2]}")
        if self.has_mask:
            flags.append("masked")
        label = f", name={self._name!r}" if self._name else ""
        extra = f", {', '.join(flags)}" if flags else ""
        return f"{type(self).__name__}(shape={self.shape}{label}{extra})"
