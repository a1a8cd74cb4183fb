"""
nnmat - Neural Network Matrix Core

Numeric core of a neural-network toolkit with:
- Dense, sparse, joined and sequence matrices behind one contract
- Cell / row / column masking honoured by every operation
- Activation and loss functions with analytic derivatives
- Convolution, cross-correlation and pooling with their gradients
- An optional recording hook for expression-graph collaborators

Modules:
- matrix: Matrix data structures and numeric algorithms
- function: Unary and binary scalar functions
- error: MatrixError and error codes

Architecture:
    ┌──────────────────────────────────────────────┐
    │   Matrix (Dense | Sparse | Joined) + Mask    │
    ├──────────────────────────────────────────────┤
    │  UnaryFunction / BinaryFunction (+ deriv.)   │
    │  Recorder hook (optional)                    │
    └──────────────────────────────────────────────┘

Example:
    >>> import nnmat
    >>> from nnmat import DenseMatrix, UnaryFunction, UnaryFunctionType
    >>>
    >>> x = DenseMatrix.from_array([[-2.0], [-1.0], [0.0], [1.0], [2.0]])
    >>> relu = UnaryFunction(UnaryFunctionType.RELU)
    >>> relu.apply_function(x).to_array().ravel()
    array([0., 0., 0., 1., 2.])
    >>>
    >>> # Thread-local configuration
    >>> with nnmat.config.local(compute=nnmat.ComputeConfig(gumbel_tau=0.5)):
    ...     probabilities = x.gumbel_softmax()
"""

__version__ = '0.1.0'

# Import main modules
from . import error
from . import function
from . import matrix

from ._config import (
    config,
    get_config,
    NnmatConfig,
    ComputeConfig,
    ConvolutionConfig,
    PoolingConfig,
    RandomConfig,
    RecordingConfig,
)
from ._recorder import (
    ExpressionKind,
    ExpressionRecord,
    Recorder,
    LoggingRecorder,
    synchronize_recorders,
)
from .error import MatrixError
from .function import (
    UnaryFunction,
    UnaryFunctionType,
    BinaryFunction,
    BinaryFunctionType,
)
from .matrix import (
    Matrix,
    DenseMatrix,
    SparseMatrix,
    JoinedMatrix,
    MatrixSequence,
    Mask,
    DenseMask,
    SparseMask,
    Initialization,
)

__all__ = [
    # Version
    '__version__',

    # Modules
    'error',
    'function',
    'matrix',

    # Configuration
    'config',
    'get_config',
    'NnmatConfig',
    'ComputeConfig',
    'ConvolutionConfig',
    'PoolingConfig',
    'RandomConfig',
    'RecordingConfig',

    # Recording
    'ExpressionKind',
    'ExpressionRecord',
    'Recorder',
    'LoggingRecorder',
    'synchronize_recorders',

    # Errors
    'MatrixError',

    # Functions
    'UnaryFunction',
    'UnaryFunctionType',
    'BinaryFunction',
    'BinaryFunctionType',

    # Matrices
    'Matrix',
    'DenseMatrix',
    'SparseMatrix',
    'JoinedMatrix',
    'MatrixSequence',
    'Mask',
    'DenseMask',
    'SparseMask',
    'Initialization',
]
