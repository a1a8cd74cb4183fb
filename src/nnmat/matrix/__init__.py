"""nnmat Matrix Module.

Matrix data structures of the numeric core with masking, views and the
shared numeric algorithms.

Type Hierarchy:

    Matrix (ABC)
    ├── StorageMatrix (ABC)
    │   ├── DenseMatrix               # numpy float64 array
    │   └── SparseMatrix              # dictionary of non-zero entries
    └── JoinedMatrix                  # block concatenation (non-owning)

    MatrixSequence                    # keyed batch of equal-shape matrices

    Mask (ABC)
    ├── DenseMask                     # numpy boolean layers
    └── SparseMask                    # sets of masked coordinates

Quick Start:
    >>> from nnmat.matrix import DenseMatrix, SparseMatrix
    >>> a = DenseMatrix.from_array([[1, 2], [3, 4]])
    >>> b = SparseMatrix.from_array([[0, 1], [1, 0]])
    >>> (a @ b).to_array()
    array([[2., 1.],
           [4., 3.]])
    >>> a.set_mask().set_mask(0, 0)     # element (0, 0) now ignored
    >>> a.sum()
    9.0
"""

from ._mask import Mask, DenseMask, SparseMask
from ._ownership import OwnershipTracker
from ._init import Initialization, initialize
from ._base import Matrix, StorageMatrix
from ._dense import DenseMatrix
from ._sparse import SparseMatrix
from ._joined import JoinedMatrix
from ._sequence import MatrixSequence

__all__ = [
    # Matrices
    'Matrix',
    'StorageMatrix',
    'DenseMatrix',
    'SparseMatrix',
    'JoinedMatrix',
    'MatrixSequence',

    # Masks
    'Mask',
    'DenseMask',
    'SparseMask',

    # Ownership
    'OwnershipTracker',

    # Initialization
    'Initialization',
    'initialize',
]
