"""
Unary Functions

Activation functions paired with their analytic derivatives.

Each named ``UnaryFunctionType`` maps to a builder in ``_UNARY_FORMULAS``
that receives the resolved parameters and returns the ``(function,
derivative)`` closure pair. Only the type tag and the numeric parameters
define a function, so an instance can always be rebuilt from
``(type, params)``.

Example:

    relu = UnaryFunction(UnaryFunctionType.RELU, {'alpha': 0.01})
    relu(-2.0)               # -0.02
    relu.derivative(-2.0)    # 0.01

    out = relu.apply_function(matrix)
    grad = relu.apply_gradient(matrix, out_grad)
"""

import math
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from ..error import MatrixError
from ._params import UNARY_PARAMETERS, describe_params, ieee, resolve_params
from ._types import UnaryFunctionType

if TYPE_CHECKING:
    from ..matrix._base import Matrix

__all__ = [
    'UnaryFunction',
]

_Formula = Callable[[float], float]

_SQRT_2_OVER_PI = math.sqrt(2 / math.pi)
_SQRT_2PI = math.sqrt(2 * math.pi)
_LN10 = math.log(10)


def _relu(p):
    threshold, alpha = p['threshold'], p['alpha']
    return (
        lambda v: alpha * v if v < threshold else v,
        lambda v: alpha if v < threshold else 1.0,
    )


def _elu(p):
    threshold, alpha = p['threshold'], p['alpha']
    return (
        lambda v: alpha * (np.exp(v) - 1) if v < threshold else v,
        lambda v: alpha * np.exp(v) if v < threshold else 1.0,
    )


def _selu(p):
    threshold, alpha, lam = p['threshold'], p['alpha'], p['lambda']
    return (
        lambda v: lam * alpha * (np.exp(v) - 1) if v < threshold else lam * v,
        lambda v: lam * alpha * np.exp(v) if v < threshold else lam,
    )


def _gelu_inner(v):
    return _SQRT_2_OVER_PI * (v + 0.044715 * v ** 3)


def _gelu(p):
    return (
        lambda v: 0.5 * v * (1 + np.tanh(_gelu_inner(v))),
        lambda v: (0.5 * (1 + np.tanh(_gelu_inner(v)))
                   + v * (0.134145 * v ** 2 + 1) / np.cosh(_gelu_inner(v)) ** 2 / _SQRT_2PI),
    )


def _placeholder(p):
    # Softmax variants are whole-vector operations handled by the matrix.
    return (lambda v: 1.0, lambda v: 1.0)


_UNARY_FORMULAS: Dict[UnaryFunctionType, Callable[[Dict[str, float]], Tuple[_Formula, _Formula]]] = {
    UnaryFunctionType.ABS: lambda p: (np.abs, lambda v: v / np.abs(v)),
    UnaryFunctionType.COS: lambda p: (np.cos, lambda v: -np.sin(v)),
    UnaryFunctionType.COSH: lambda p: (np.cosh, np.sinh),
    UnaryFunctionType.EXP: lambda p: (np.exp, np.exp),
    UnaryFunctionType.LOG: lambda p: (np.log, lambda v: 1 / v),
    UnaryFunctionType.LOG10: lambda p: (np.log10, lambda v: 1 / (_LN10 * v)),
    UnaryFunctionType.SGN: lambda p: (np.sign, lambda v: 0.0),
    UnaryFunctionType.SIN: lambda p: (np.sin, np.cos),
    UnaryFunctionType.SINH: lambda p: (np.sinh, np.cosh),
    UnaryFunctionType.SQRT: lambda p: (np.sqrt, lambda v: 1 / (2 * np.sqrt(v))),
    UnaryFunctionType.CBRT: lambda p: (np.cbrt, lambda v: 1 / (3 * np.cbrt(v * v))),
    UnaryFunctionType.MULINV: lambda p: (lambda v: 1 / v, lambda v: -1 / v ** 2),
    UnaryFunctionType.TAN: lambda p: (np.tan, lambda v: 1 + np.tan(v) ** 2),
    UnaryFunctionType.TANH: lambda p: (np.tanh, lambda v: 1 - np.tanh(v) ** 2),
    UnaryFunctionType.LINEAR: lambda p: (lambda v: v, lambda v: 1.0),
    UnaryFunctionType.SIGMOID: lambda p: (
        lambda v: 1 / (1 + np.exp(-v)),
        lambda v: np.exp(v) / (1 + np.exp(v)) ** 2,
    ),
    UnaryFunctionType.SWISH: lambda p: (
        lambda v: v / (1 + np.exp(-v)),
        lambda v: np.exp(v) * (np.exp(v) + v + 1) / (1 + np.exp(v)) ** 2,
    ),
    UnaryFunctionType.HARDSIGMOID: lambda p: (
        lambda v: min(1.0, max(0.0, 0.125 * v + 0.5)),
        lambda v: 0.0 if (v < -4 or v > 4) else 0.125,
    ),
    UnaryFunctionType.BIPOLARSIGMOID: lambda p: (
        lambda v: 2 / (1 + np.exp(-v)) - 1,
        lambda v: 2 * np.exp(v) / (np.exp(v) + 1) ** 2,
    ),
    UnaryFunctionType.TANHSIG: lambda p: (
        lambda v: 2 / (np.exp(-2 * v) + 1) - 1,
        lambda v: 4 * np.exp(2 * v) / (np.exp(2 * v) + 1) ** 2,
    ),
    UnaryFunctionType.TANHAPPR: lambda p: (
        lambda v: (np.exp(2 * v) - 1) / (np.exp(2 * v) + 1),
        lambda v: 4 * np.exp(2 * v) / (np.exp(2 * v) + 1) ** 2,
    ),
    UnaryFunctionType.HARDTANH: lambda p: (
        lambda v: min(1.0, max(-1.0, 0.5 * v)),
        lambda v: 0.0 if (v < -2 or v > 2) else 0.5,
    ),
    UnaryFunctionType.SOFTPLUS: lambda p: (
        lambda v: np.log(1 + np.exp(v)),
        lambda v: 1 / (1 + np.exp(-v)),
    ),
    UnaryFunctionType.SOFTSIGN: lambda p: (
        lambda v: v / (np.abs(v) + 1),
        lambda v: 1 / (np.abs(v) + 1) ** 2,
    ),
    UnaryFunctionType.RELU: _relu,
    UnaryFunctionType.RELU_COS: lambda p: (
        lambda v: max(0.0, v) + np.cos(v),
        lambda v: (0.0 if v < 0 else 1.0) - np.sin(v),
    ),
    UnaryFunctionType.RELU_SIN: lambda p: (
        lambda v: max(0.0, v) + np.sin(v),
        lambda v: (0.0 if v < 0 else 1.0) + np.cos(v),
    ),
    UnaryFunctionType.ELU: _elu,
    UnaryFunctionType.SELU: _selu,
    UnaryFunctionType.GELU: _gelu,
    UnaryFunctionType.SOFTMAX: _placeholder,
    UnaryFunctionType.GUMBEL_SOFTMAX: _placeholder,
    UnaryFunctionType.GAUSSIAN: lambda p: (
        lambda v: np.exp(-v ** 2 / 2),
        lambda v: -v * np.exp(-v ** 2 / 2),
    ),
    UnaryFunctionType.SINACT: lambda p: (
        lambda v: -1.0 if v < -0.5 * math.pi else 1.0 if v > 0.5 * math.pi else np.sin(v),
        lambda v: 0.0 if (v < -0.5 * math.pi or v > 0.5 * math.pi) else np.cos(v),
    ),
    UnaryFunctionType.LOGIT: lambda p: (
        lambda v: np.log(v / (1 - v)),
        lambda v: -1 / ((v - 1) * v),
    ),
}


def _coerce_type(function_type: Union[UnaryFunctionType, str]) -> UnaryFunctionType:
    if isinstance(function_type, UnaryFunctionType):
        return function_type
    if isinstance(function_type, str):
        try:
            return UnaryFunctionType[function_type.upper()]
        except KeyError:
            pass
    raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown unary function.")


class UnaryFunction:
    """
    Unary function with analytic derivative.

    Args:
        function_type: Named function type (enum member or its name)
        params: Optional parameter overrides for tunable variants
            (RELU, ELU, SELU, GUMBEL_SOFTMAX)

    Raises:
        MatrixError: ERROR_UNSUPPORTED_FUNCTION for CUSTOM or unknown types,
            ERROR_INVALID_ARGUMENT for unknown parameter names

    Note:
        SOFTMAX and GUMBEL_SOFTMAX carry placeholder closures returning 1.
        Use ``apply_function`` / ``apply_gradient`` which dispatch them to the
        whole-vector softmax algorithms.
    """

    def __init__(
        self,
        function_type: Union[UnaryFunctionType, str],
        params: Optional[Mapping[str, float]] = None,
    ):
        function_type = _coerce_type(function_type)
        if function_type is UnaryFunctionType.CUSTOM:
            raise MatrixError(
                MatrixError.ERROR_UNSUPPORTED_FUNCTION,
                "Custom function cannot be defined with this constructor."
            )
        builder = _UNARY_FORMULAS.get(function_type)
        if builder is None:
            raise MatrixError(MatrixError.ERROR_UNSUPPORTED_FUNCTION, "Unknown unary function.")

        defaults = UNARY_PARAMETERS.get(function_type, {})
        self._type = function_type
        self._params = resolve_params(defaults, params, function_type.name)
        self._param_defs = describe_params(defaults)
        forward, derivative = builder(self._params)
        self._function = ieee(forward)
        self._derivative = ieee(derivative)

    @classmethod
    def custom(cls, function: _Formula, derivative: _Formula) -> 'UnaryFunction':
        """
        Create a CUSTOM function from caller supplied closures.

        No parameters are parsed for custom functions.
        """
        instance = cls.__new__(cls)
        instance._type = UnaryFunctionType.CUSTOM
        instance._params = {}
        instance._param_defs = None
        instance._function = function
        instance._derivative = derivative
        return instance

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def type(self) -> UnaryFunctionType:
        return self._type

    @property
    def name(self) -> str:
        return self._type.name

    @property
    def params(self) -> Mapping[str, float]:
        """Resolved parameter values (read-only)."""
        return MappingProxyType(self._params)

    @property
    def param_defs(self) -> Optional[str]:
        """Parameter declaration string, e.g. ``(threshold:DOUBLE), (alpha:DOUBLE)``."""
        return self._param_defs

    @property
    def function(self) -> _Formula:
        return self._function

    @property
    def derivative(self) -> _Formula:
        return self._derivative

    @property
    def tau(self) -> float:
        """Gumbel softmax temperature."""
        return self._params.get('tau', UNARY_PARAMETERS[UnaryFunctionType.GUMBEL_SOFTMAX]['tau'])

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def __call__(self, value: float) -> float:
        return self._function(value)

    def apply_function(self, matrix: 'Matrix', result: Optional['Matrix'] = None) -> 'Matrix':
        """
        Apply the function to every element of ``matrix``.

        SOFTMAX and GUMBEL_SOFTMAX run the whole-vector algorithms instead.
        """
        return matrix.apply(self, result)

    def apply_gradient(self, first: 'Matrix', output_gradient: 'Matrix') -> 'Matrix':
        """
        Input gradient of the function.

        Args:
            first: Forward input; for the softmax variants the forward output
            output_gradient: Gradient flowing back from the output

        Returns:
            ``first.softmax_grad().dot(output_gradient)`` for the softmax
            variants, ``output_gradient * derivative(first)`` otherwise.
        """
        if self._type in (UnaryFunctionType.SOFTMAX, UnaryFunctionType.GUMBEL_SOFTMAX):
            return first.softmax_grad().dot(output_gradient)
        return output_gradient.multiply(first.apply(self._derivative))

    # -------------------------------------------------------------------------
    # Value semantics
    # -------------------------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, UnaryFunction):
            return NotImplemented
        if self._type is UnaryFunctionType.CUSTOM:
            return self is other
        return self._type is other._type and self._params == other._params

    def __hash__(self):
        if self._type is UnaryFunctionType.CUSTOM:
            return id(self)
        return hash((self._type, tuple(sorted(self._params.items()))))

    def __reduce__(self):
        if self._type is UnaryFunctionType.CUSTOM:
            raise TypeError("Custom unary functions cannot be pickled")
        return (UnaryFunction, (self._type, dict(self._params)))

    def __repr__(self) -> str:
        if self._params:
            params = ", ".join(f"{k}={v}" for k, v in self._params.items())
            return f"UnaryFunction({self.name}, {params})"
        return f"UnaryFunction({self.name})"
