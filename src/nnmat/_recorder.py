"""
Expression Recording Hook

Lets an external expression-graph / autograd component observe the
operations performed by the numeric core so it can replay or differentiate
them later. The core only talks to the collaborator through the narrow
``Recorder`` interface:

1. ``start_expression(matrix)`` is called before the operation and returns an
   opaque token.
2. ``record(token, kind, operands, result, details)`` is called after the
   operation completed.

Recorders are optional. A matrix or sequence without a recorder runs the same
arithmetic and simply skips the notifications. When two operands carry
different recorders the operation is rejected; when only one carries a
recorder the other adopts it.

Recording can be switched off process-wide:

    import os
    os.environ['NNMAT_NO_RECORDING'] = '1'   # before import

    # or at runtime
    from nnmat import config, RecordingConfig
    config.recording = RecordingConfig(enabled=False)
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from ._config import config
from .error import MatrixError

logger = logging.getLogger("nnmat.recorder")

__all__ = [
    'ExpressionKind',
    'Recorder',
    'LoggingRecorder',
    'ExpressionRecord',
    'synchronize_recorders',
    'recorded',
]


class ExpressionKind(Enum):
    """Operation kinds reported to a recorder."""
    UNARY_FUNCTION = 'unary_function'
    BINARY_FUNCTION = 'binary_function'
    ADD = 'add'
    SUBTRACT = 'subtract'
    MULTIPLY = 'multiply'
    DIVIDE = 'divide'
    DOT = 'dot'
    SUM = 'sum'
    MEAN = 'mean'
    VARIANCE = 'variance'
    STANDARD_DEVIATION = 'standard_deviation'
    NORM = 'norm'
    ENTROPY = 'entropy'
    SOFTMAX = 'softmax'
    GUMBEL_SOFTMAX = 'gumbel_softmax'
    CONVOLVE = 'convolve'
    CROSSCORRELATE = 'crosscorrelate'
    WINOGRAD_CONVOLVE = 'winograd_convolve'
    MAX_POOL = 'max_pool'
    AVERAGE_POOL = 'average_pool'
    TRANSPOSE = 'transpose'
    JOIN = 'join'
    UNJOIN = 'unjoin'
    FLATTEN = 'flatten'
    UNFLATTEN = 'unflatten'


# =============================================================================
# Recorder Interface
# =============================================================================

class Recorder(ABC):
    """
    Collaborator notified around recorded operations.

    Subclasses implement the two notification points. The token returned by
    ``start_expression`` is passed back unchanged to ``record``.
    """

    @abstractmethod
    def start_expression(self, matrix: Any) -> Any:
        """Called before an operation on ``matrix`` starts."""
        ...

    @abstractmethod
    def record(
        self,
        token: Any,
        kind: ExpressionKind,
        operands: Tuple[Any, ...],
        result: Any,
        details: Dict[str, Any],
    ) -> None:
        """Called after an operation completed with its operands and result."""
        ...


@dataclass
class ExpressionRecord:
    """One recorded operation."""
    token: int
    kind: ExpressionKind
    operands: Tuple[Any, ...]
    result: Any
    details: Dict[str, Any] = field(default_factory=dict)


class LoggingRecorder(Recorder):
    """
    Recorder that keeps every expression in memory and logs it at DEBUG.

    Example:
        >>> recorder = LoggingRecorder()
        >>> a.recorder = recorder
        >>> c = a.add(b)
        >>> recorder.records[-1].kind
        <ExpressionKind.ADD: 'add'>
    """

    def __init__(self):
        self.records: List[ExpressionRecord] = []
        self._next_token = 0

    def start_expression(self, matrix: Any) -> int:
        token = self._next_token
        self._next_token += 1
        return token

    def record(self, token, kind, operands, result, details) -> None:
        self.records.append(ExpressionRecord(token, kind, operands, result, dict(details)))
        logger.debug(f"Expression #{token}: {kind.value} over {len(operands)} operand(s)")

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)


# =============================================================================
# Synchronization
# =============================================================================

def synchronize_recorders(first: Any, *others: Any) -> Optional[Recorder]:
    """
    Make ``first`` and ``others`` share one recorder.

    An operand without a recorder adopts the recorder of the other side.

    Returns:
        The shared recorder, or None when no operand has one.

    Raises:
        MatrixError: If two operands carry different recorders.
    """
    for other in others:
        mine = first.recorder
        theirs = other.recorder
        if mine is theirs:
            continue
        if mine is None:
            first.recorder = theirs
        elif theirs is None:
            other.recorder = mine
        else:
            raise MatrixError(
                MatrixError.ERROR_CONFLICTING_RECORDER,
                "This and other matrices have conflicting recorders."
            )
    return first.recorder


def _is_recordable(obj: Any) -> bool:
    return hasattr(obj, 'recorder') and (hasattr(obj, 'shape') or hasattr(obj, 'depth'))


_state = threading.local()


def recorded(kind: ExpressionKind):
    """
    Decorator reporting a matrix or sequence method to the attached recorder.

    Positional arguments that are matrices or sequences are treated as
    operands and synchronized with ``self``; other arguments are passed to the
    recorder as details. Only the outermost recorded call is reported, so an
    operation built from other recorded operations shows up once.
    """
    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            operands = tuple(arg for arg in args if _is_recordable(arg))
            recorder = synchronize_recorders(self, *operands)
            depth = getattr(_state, 'depth', 0)
            if recorder is None or depth > 0 or not config.recording.enabled:
                return method(self, *args, **kwargs)

            token = recorder.start_expression(self)
            _state.depth = depth + 1
            try:
                result = method(self, *args, **kwargs)
            finally:
                _state.depth = depth
            if _is_recordable(result):
                result.recorder = recorder
            details = dict(kwargs)
            extra = [arg for arg in args if not _is_recordable(arg)]
            if extra:
                details['args'] = tuple(extra)
            recorder.record(token, kind, (self,) + operands, result, details)
            return result
        return wrapper
    return decorator
