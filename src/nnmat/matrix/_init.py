"""
Weight Initialization

Initialization schemes for matrix weights. The ``_CONV`` variants take
their fan-in / fan-out from the caller (the number of inputs and outputs of
a convolutional layer) instead of the matrix shape.
"""

import math
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .._config import config
from ..error import MatrixError

if TYPE_CHECKING:
    from ._base import Matrix

__all__ = [
    'Initialization',
    'initialize',
]


class Initialization(Enum):
    ZERO = 'zero'
    ONE = 'one'
    RANDOM = 'random'
    IDENTITY = 'identity'
    NORMAL_XAVIER = 'normal_xavier'
    UNIFORM_XAVIER = 'uniform_xavier'
    NORMAL_HE = 'normal_he'
    UNIFORM_HE = 'uniform_he'
    NORMAL_LECUN = 'normal_lecun'
    UNIFORM_LECUN = 'uniform_lecun'
    NORMAL_XAVIER_CONV = 'normal_xavier_conv'
    UNIFORM_XAVIER_CONV = 'uniform_xavier_conv'
    NORMAL_HE_CONV = 'normal_he_conv'
    UNIFORM_HE_CONV = 'uniform_he_conv'
    NORMAL_LECUN_CONV = 'normal_lecun_conv'
    UNIFORM_LECUN_CONV = 'uniform_lecun_conv'


# scheme -> (is_normal, scale(a, b))
_SCALED = {
    'NORMAL_XAVIER': (True, lambda a, b: math.sqrt(2 / (a + b))),
    'UNIFORM_XAVIER': (False, lambda a, b: math.sqrt(6 / (a + b))),
    'NORMAL_HE': (True, lambda a, b: math.sqrt(2 / a)),
    'UNIFORM_HE': (False, lambda a, b: math.sqrt(6 / a)),
    'NORMAL_LECUN': (True, lambda a, b: math.sqrt(1 / a)),
    'UNIFORM_LECUN': (False, lambda a, b: math.sqrt(3 / a)),
}


def initialize(
    matrix: 'Matrix',
    init: Initialization,
    inputs: Optional[int] = None,
    outputs: Optional[int] = None,
) -> None:
    """
    Fill ``matrix`` in place according to ``init``.

    Args:
        matrix: Target matrix
        init: Initialization scheme
        inputs: Fan-in for the ``_CONV`` variants
        outputs: Fan-out for the ``_CONV`` variants

    Raises:
        MatrixError: If a ``_CONV`` variant is used without positive fan-in / fan-out
    """
    if isinstance(init, str):
        init = Initialization[init.upper()]
    rows, columns = matrix.rows, matrix.columns
    rng = config.rng
    if rows == 0 or columns == 0:
        return

    if init is Initialization.ZERO:
        matrix.fill(0.0)
        return
    if init is Initialization.ONE:
        matrix.fill(1.0)
        return
    if init is Initialization.RANDOM:
        for row in range(rows):
            for column in range(columns):
                matrix.set_value(row, column, rng.random())
        return
    if init is Initialization.IDENTITY:
        matrix.fill(0.0)
        for index in range(min(rows, columns)):
            matrix.set_value(index, index, 1.0)
        return

    name = init.name
    if name.endswith('_CONV'):
        if not inputs or not outputs or inputs < 1 or outputs < 1:
            raise MatrixError.invalid_argument(
                f"{name} requires positive number of inputs and outputs."
            )
        fan_in, fan_out = inputs, outputs
        name = name[:-len('_CONV')]
    else:
        fan_in, fan_out = rows, columns

    is_normal, scale = _SCALED[name]
    width = scale(fan_in, fan_out)
    for row in range(rows):
        for column in range(columns):
            if is_normal:
                value = rng.normal(0.0, width)
            else:
                value = (2 * rng.random() - 1) * width
            matrix.set_value(row, column, float(value))
