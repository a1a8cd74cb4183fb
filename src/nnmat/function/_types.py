"""Function type tags."""

from enum import Enum

__all__ = [
    'UnaryFunctionType',
    'BinaryFunctionType',
]


class UnaryFunctionType(Enum):
    """Named unary (activation) functions."""
    ABS = 'ABS'
    COS = 'COS'
    COSH = 'COSH'
    EXP = 'EXP'
    LOG = 'LOG'
    LOG10 = 'LOG10'
    SGN = 'SGN'
    SIN = 'SIN'
    SINH = 'SINH'
    SQRT = 'SQRT'
    CBRT = 'CBRT'
    MULINV = 'MULINV'
    TAN = 'TAN'
    TANH = 'TANH'
    LINEAR = 'LINEAR'
    SIGMOID = 'SIGMOID'
    SWISH = 'SWISH'
    HARDSIGMOID = 'HARDSIGMOID'
    BIPOLARSIGMOID = 'BIPOLARSIGMOID'
    TANHSIG = 'TANHSIG'
    TANHAPPR = 'TANHAPPR'
    HARDTANH = 'HARDTANH'
    SOFTPLUS = 'SOFTPLUS'
    SOFTSIGN = 'SOFTSIGN'
    RELU = 'RELU'
    RELU_COS = 'RELU_COS'
    RELU_SIN = 'RELU_SIN'
    ELU = 'ELU'
    SELU = 'SELU'
    GELU = 'GELU'
    SOFTMAX = 'SOFTMAX'
    GUMBEL_SOFTMAX = 'GUMBEL_SOFTMAX'
    GAUSSIAN = 'GAUSSIAN'
    SINACT = 'SINACT'
    LOGIT = 'LOGIT'
    CUSTOM = 'CUSTOM'


class BinaryFunctionType(Enum):
    """Named binary (loss / combinator) functions of (value, constant)."""
    MEAN_SQUARED_ERROR = 'MEAN_SQUARED_ERROR'
    MEAN_SQUARED_LOGARITHMIC_ERROR = 'MEAN_SQUARED_LOGARITHMIC_ERROR'
    MEAN_ABSOLUTE_ERROR = 'MEAN_ABSOLUTE_ERROR'
    MEAN_ABSOLUTE_PERCENTAGE_ERROR = 'MEAN_ABSOLUTE_PERCENTAGE_ERROR'
    CROSS_ENTROPY = 'CROSS_ENTROPY'
    KULLBACK_LEIBLER = 'KULLBACK_LEIBLER'
    NEGATIVE_LOG_LIKELIHOOD = 'NEGATIVE_LOG_LIKELIHOOD'
    POISSON = 'POISSON'
    HINGE = 'HINGE'
    SQUARED_HINGE = 'SQUARED_HINGE'
    HUBER = 'HUBER'
    DIRECT_GRADIENT = 'DIRECT_GRADIENT'
    POLICY_GRADIENT = 'POLICY_GRADIENT'
    POW = 'POW'
    MAX = 'MAX'
    MIN = 'MIN'
    CUSTOM = 'CUSTOM'
