"""
Scalar function framework.

Unary (activation) and binary (loss / combinator) functions, each a type tag
plus numeric parameters with a forward formula and its analytic derivative.
"""

from ._types import UnaryFunctionType, BinaryFunctionType
from ._params import UNARY_PARAMETERS, BINARY_PARAMETERS
from ._unary import UnaryFunction
from ._binary import BinaryFunction

__all__ = [
    'UnaryFunctionType',
    'BinaryFunctionType',
    'UnaryFunction',
    'BinaryFunction',
    'UNARY_PARAMETERS',
    'BINARY_PARAMETERS',
]
