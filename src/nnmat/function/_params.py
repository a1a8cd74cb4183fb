"""
Function Parameters

Named numeric parameters of the tunable function variants, their defaults,
and the scalar evaluation wrapper shared by unary and binary functions.

Parameter strings such as ``"threshold = 0.1, alpha = 0.01"`` are parsed by
the caller; functions consume the resulting key -> float mapping.
"""

from functools import wraps
from typing import Callable, Dict, Mapping, Optional

import numpy as np

from ..error import MatrixError
from ._types import BinaryFunctionType, UnaryFunctionType

__all__ = [
    'UNARY_PARAMETERS',
    'BINARY_PARAMETERS',
    'resolve_params',
    'describe_params',
    'ieee',
]


UNARY_PARAMETERS: Dict[UnaryFunctionType, Dict[str, float]] = {
    UnaryFunctionType.RELU: {'threshold': 0.0, 'alpha': 0.0},
    UnaryFunctionType.ELU: {'threshold': 0.0, 'alpha': 1.0},
    UnaryFunctionType.SELU: {'threshold': 0.0, 'alpha': 1.6732, 'lambda': 1.0507},
    UnaryFunctionType.GUMBEL_SOFTMAX: {'tau': 2.75},
}

BINARY_PARAMETERS: Dict[BinaryFunctionType, Dict[str, float]] = {
    BinaryFunctionType.HINGE: {'margin': 1.0},
    BinaryFunctionType.HUBER: {'delta': 1.0},
}


def resolve_params(
    defaults: Mapping[str, float],
    params: Optional[Mapping[str, float]],
    owner: str,
) -> Dict[str, float]:
    """
    Merge caller parameters over the defaults of a function variant.

    Args:
        defaults: Parameter names and default values of the variant
        params: Caller supplied values (may be None)
        owner: Function name used in error messages

    Returns:
        Resolved parameter values as floats

    Raises:
        MatrixError: If a parameter is unknown or not numeric
    """
    resolved = {name: float(value) for name, value in defaults.items()}
    if not params:
        return resolved
    for name, value in params.items():
        if name not in defaults:
            raise MatrixError.invalid_argument(f"{owner}: unknown parameter '{name}'")
        try:
            resolved[name] = float(value)
        except (TypeError, ValueError):
            raise MatrixError.invalid_argument(
                f"{owner}: parameter '{name}' cannot be converted to float"
            ) from None
    return resolved


def describe_params(defaults: Mapping[str, float]) -> Optional[str]:
    """Declaration string of a variant's parameters, e.g. ``(delta:DOUBLE)``."""
    if not defaults:
        return None
    return ", ".join(f"({name}:DOUBLE)" for name in defaults)


def ieee(formula: Callable) -> Callable:
    """
    Evaluate a scalar formula with IEEE 754 semantics.

    Arguments are promoted to ``numpy.float64`` so that division by zero,
    logarithms of non-positive numbers and overflow produce inf/nan instead of
    Python exceptions.
    """
    @wraps(formula)
    def evaluate(*values):
        with np.errstate(all='ignore'):
            return float(formula(*(np.float64(value) for value in values)))
    return evaluate
