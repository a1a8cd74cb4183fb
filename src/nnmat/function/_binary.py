"""
Binary Functions

Loss and combinator functions of ``(value, constant)`` paired with their
derivative with respect to ``value``.

Example:

    mse = BinaryFunction(BinaryFunctionType.MEAN_SQUARED_ERROR)
    mse(3.0, 1.0)              # 2.0
    mse.derivative(3.0, 1.0)   # 2.0

    huber = BinaryFunction('HUBER', {'delta': 0.5})
    loss = huber.apply_function(prediction, target)
"""

from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from ..error import MatrixError
from ._params import BINARY_PARAMETERS, describe_params, ieee, resolve_params
from ._types import BinaryFunctionType

if TYPE_CHECKING:
    from ..matrix._base import Matrix

__all__ = [
    'BinaryFunction',
]

_Formula = Callable[[float, float], float]


def _hinge(p):
    margin = p['margin']
    return (
        lambda v, c: 0.0 if margin - c * v <= 0 else margin - c * v,
        lambda v, c: 0.0 if margin - c * v <= 0 else -c,
    )


def _huber(p):
    delta = p['delta']
    return (
        lambda v, c: 0.5 * (v - c) ** 2 if np.abs(v - c) <= delta else delta * np.abs(v - c) - 0.5 * delta ** 2,
        lambda v, c: v - c if np.abs(v - c) <= delta else delta * np.sign(v - c),
    )


_BINARY_FORMULAS: Dict[BinaryFunctionType, Callable[[Dict[str, float]], Tuple[_Formula, _Formula]]] = {
    BinaryFunctionType.MEAN_SQUARED_ERROR: lambda p: (
        lambda v, c: 0.5 * (v - c) ** 2,
        lambda v, c: v - c,
    ),
    BinaryFunctionType.MEAN_SQUARED_LOGARITHMIC_ERROR: lambda p: (
        lambda v, c: (np.log(c + 1) - np.log(v + 1)) ** 2,
        lambda v, c: -2 * (np.log(c + 1) - np.log(v + 1)) / (c + 1),
    ),
    BinaryFunctionType.MEAN_ABSOLUTE_ERROR: lambda p: (
        lambda v, c: np.abs(v - c),
        lambda v, c: np.sign(v - c),
    ),
    BinaryFunctionType.MEAN_ABSOLUTE_PERCENTAGE_ERROR: lambda p: (
        lambda v, c: 100 * np.abs((v - c) / c),
        lambda v, c: 100 * (v - c) / (np.abs(c) * np.abs(v - c)),
    ),
    BinaryFunctionType.CROSS_ENTROPY: lambda p: (
        lambda v, c: -c * np.log(v),
        lambda v, c: -c / v,
    ),
    BinaryFunctionType.KULLBACK_LEIBLER: lambda p: (
        lambda v, c: c * np.log(c) - c * np.log(v),
        lambda v, c: -c / v,
    ),
    BinaryFunctionType.NEGATIVE_LOG_LIKELIHOOD: lambda p: (
        lambda v, c: -np.log(v),
        lambda v, c: -1 / v,
    ),
    BinaryFunctionType.POISSON: lambda p: (
        lambda v, c: v - c * np.log(v),
        lambda v, c: 1 - c / v,
    ),
    BinaryFunctionType.HINGE: _hinge,
    BinaryFunctionType.SQUARED_HINGE: lambda p: (
        lambda v, c: 0.0 if 1 - c * v <= 0 else (1 - c * v) ** 2,
        lambda v, c: 0.0 if 1 - c * v <= 0 else -2 * c * (1 - c * v),
    ),
    BinaryFunctionType.HUBER: _huber,
    BinaryFunctionType.DIRECT_GRADIENT: lambda p: (
        lambda v, c: 0.0,
        lambda v, c: c,
    ),
    # -log(policy value) * advantage
    BinaryFunctionType.POLICY_GRADIENT: lambda p: (
        lambda v, c: 0.0,
        lambda v, c: -np.log(v) * c,
    ),
    BinaryFunctionType.POW: lambda p: (
        lambda v, c: np.power(v, c),
        lambda v, c: c * np.power(v, c - 1),
    ),
    BinaryFunctionType.MAX: lambda p: (np.maximum, lambda v, c: 1.0),
    BinaryFunctionType.MIN: lambda p: (np.minimum, lambda v, c: 1.0),
}


def _coerce_type(function_type: Union[BinaryFunctionType, str]) -> BinaryFunctionType:
    if isinstance(function_type, BinaryFunctionType):
        return function_type
    if isinstance(function_type, str):
        try:
            return BinaryFunctionType[function_type.upper()]
        except KeyError:
            pass
    raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown binary function.")


class BinaryFunction:
    """
    Binary function of (value, constant) with derivative in ``value``.

    Args:
        function_type: Named function type (enum member or its name)
        params: Optional parameter overrides (HINGE: margin, HUBER: delta)

    Raises:
        MatrixError: ERROR_UNSUPPORTED_FUNCTION for CUSTOM or unknown types,
            ERROR_INVALID_ARGUMENT for unknown parameter names
    """

    def __init__(
        self,
        function_type: Union[BinaryFunctionType, str],
        params: Optional[Mapping[str, float]] = None,
    ):
        function_type = _coerce_type(function_type)
        if function_type is BinaryFunctionType.CUSTOM:
            raise MatrixError(
                MatrixError.ERROR_UNSUPPORTED_FUNCTION,
                "Custom function cannot be defined with this constructor."
            )
        builder = _BINARY_FORMULAS.get(function_type)
        if builder is None:
            raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown binary function.")

        defaults = BINARY_PARAMETERS.get(function_type, {})
        self._type = function_type
        self._params = resolve_params(defaults, params, function_type.name)
        self._param_defs = describe_params(defaults)
        forward, derivative = builder(self._params)
        self._function = ieee(forward)
        self._derivative = ieee(derivative)

    @classmethod
    def custom(cls, function: _Formula, derivative: _Formula) -> 'BinaryFunction':
        """Create a CUSTOM function from caller supplied closures."""
        instance = cls.__new__(cls)
        instance._type = BinaryFunctionType.CUSTOM
        instance._params = {}
        instance._param_defs = None
        instance._function = function
        instance._derivative = derivative
        return instance

    @property
    def type(self) -> BinaryFunctionType:
        return self._type

    @property
    def name(self) -> str:
        return self._type.name

    @property
    def params(self) -> Mapping[str, float]:
        return MappingProxyType(self._params)

    @property
    def param_defs(self) -> Optional[str]:
        return self._param_defs

    @property
    def function(self) -> _Formula:
        return self._function

    @property
    def derivative(self) -> _Formula:
        return self._derivative

    def __call__(self, value: float, constant: float) -> float:
        return self._function(value, constant)

    def apply_function(
        self,
        first: 'Matrix',
        second: 'Matrix',
        result: Optional['Matrix'] = None,
    ) -> 'Matrix':
        """Apply the function element-wise to ``first`` (values) and ``second`` (constants)."""
        return first.apply_bi(second, self, result)

    def apply_gradient(self, first: 'Matrix', second: 'Matrix', output_gradient: 'Matrix') -> 'Matrix':
        """Gradient with respect to ``first``: ``output_gradient * derivative(first, second)``."""
        return output_gradient.multiply(first.apply_bi(second, self._derivative))

    def __eq__(self, other):
        if not isinstance(other, BinaryFunction):
            return NotImplemented
        if self._type is BinaryFunctionType.CUSTOM:
            return self is other
        return self._type is other._type and self._params == other._params

    def __hash__(self):
        if self._type is BinaryFunctionType.CUSTOM:
            return id(self)
        return hash((self._type, tuple(sorted(self._params.items()))))

    def __reduce__(self):
        if self._type is BinaryFunctionType.CUSTOM:
            raise TypeError("Custom binary functions cannot be pickled")
        return (BinaryFunction, (self._type, dict(self._params)))

    def __repr__(self) -> str:
        if self._params:
            params = ", ".join(f"{k}={v}" for k, v in self._params.items())
            return f"BinaryFunction({self.name}, {params})"
        return f"BinaryFunction({self.name})"
