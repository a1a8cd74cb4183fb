"""Ownership of matrix storage.

A matrix either owns its storage or is a view onto another matrix's
storage (transposed view, slice, reference). Views keep a strong
reference to the matrix they were derived from, flattened to the owner,
so the owner stays alive as long as any view does:

    >>> a = DenseMatrix(4, 4)
    >>> b = a.transpose()          # b.ownership.source is a
    >>> c = b.slice(0, 0, 2, 2)    # c.ownership.source is a (flattened)
    >>> del a, b                   # c still valid
"""

import logging
from typing import Any, Optional

__all__ = [
    'OwnershipTracker',
]

logger = logging.getLogger("nnmat.matrix")


class OwnershipTracker:
    """Tracks whether a matrix owns its storage or views another matrix's.

    Attributes:
        _source: Owning matrix for views, None for owners.
        _kind: 'owned', 'view' or 'reference'.
    """

    __slots__ = ('_source', '_kind')

    def __init__(self, source: Optional[Any] = None, kind: str = 'owned'):
        if kind not in ('owned', 'view', 'reference'):
            raise ValueError(f"Unknown ownership kind: {kind}")
        self._kind = kind
        self._source = None
        if kind != 'owned':
            self._source = _root_of(source)

    @classmethod
    def owned(cls) -> 'OwnershipTracker':
        return cls()

    @classmethod
    def view(cls, source: Any) -> 'OwnershipTracker':
        """Tracker for a transposed or sliced view of ``source``."""
        logger.debug(f"View created over {type(source).__name__}")
        return cls(source, 'view')

    @classmethod
    def reference(cls, source: Any) -> 'OwnershipTracker':
        """Tracker for a shallow alias of ``source``."""
        return cls(source, 'reference')

    @property
    def is_owned(self) -> bool:
        return self._kind == 'owned'

    @property
    def is_view(self) -> bool:
        return self._kind == 'view'

    @property
    def is_reference(self) -> bool:
        return self._kind == 'reference'

    @property
    def source(self) -> Optional[Any]:
        """Matrix owning the storage (None when this matrix owns it)."""
        return self._source

    def __repr__(self) -> str:
        if self._source is None:
            return "OwnershipTracker(owned)"
        return f"OwnershipTracker({self._kind} of {type(self._source).__name__})"


def _root_of(source: Any) -> Any:
    tracker = getattr(source, '_ownership', None)
    if tracker is not None and tracker.source is not None:
        return tracker.source
    return source
