"""
Error handling for nnmat.

All failures raised by the numeric core are ``MatrixError`` instances carrying
an integer code and a human-readable message. Every error is reported
synchronously to the caller; the core never repairs or retries bad input.
"""

from __future__ import annotations

from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

# Success
NNMAT_OK = 0

# General errors (1-9)
NNMAT_ERROR_UNKNOWN = 1

# Argument errors (10-19)
NNMAT_ERROR_INVALID_ARGUMENT = 10
NNMAT_ERROR_DIMENSION_MISMATCH = 11
NNMAT_ERROR_INDEX_OUT_OF_BOUNDS = 14

# Structural errors (20-29)
NNMAT_ERROR_ILLEGAL_STRUCTURE = 20
NNMAT_ERROR_STACK_EMPTY = 21

# Function errors (30-39)
NNMAT_ERROR_UNSUPPORTED_FUNCTION = 30

# Collaborator errors (40-49)
NNMAT_ERROR_CONFLICTING_RECORDER = 40


# Error code to message mapping
_ERROR_MESSAGES = {
    NNMAT_OK: "Success",
    NNMAT_ERROR_UNKNOWN: "Unknown error",
    NNMAT_ERROR_INVALID_ARGUMENT: "Invalid argument",
    NNMAT_ERROR_DIMENSION_MISMATCH: "Dimension mismatch",
    NNMAT_ERROR_INDEX_OUT_OF_BOUNDS: "Index out of bounds",
    NNMAT_ERROR_ILLEGAL_STRUCTURE: "Illegal structural operation",
    NNMAT_ERROR_STACK_EMPTY: "Stack is empty",
    NNMAT_ERROR_UNSUPPORTED_FUNCTION: "Unsupported function",
    NNMAT_ERROR_CONFLICTING_RECORDER: "Conflicting recorders",
}


# =============================================================================
# Exception Class
# =============================================================================

class MatrixError(Exception):
    """
    Base exception for all nnmat errors.

    Attributes:
        code: Integer error code (one of the ``ERROR_*`` class attributes)
        message: Human-readable cause
    """

    # Re-export error codes as class attributes for convenience
    OK = NNMAT_OK
    ERROR_UNKNOWN = NNMAT_ERROR_UNKNOWN
    ERROR_INVALID_ARGUMENT = NNMAT_ERROR_INVALID_ARGUMENT
    ERROR_DIMENSION_MISMATCH = NNMAT_ERROR_DIMENSION_MISMATCH
    ERROR_INDEX_OUT_OF_BOUNDS = NNMAT_ERROR_INDEX_OUT_OF_BOUNDS
    ERROR_ILLEGAL_STRUCTURE = NNMAT_ERROR_ILLEGAL_STRUCTURE
    ERROR_STACK_EMPTY = NNMAT_ERROR_STACK_EMPTY
    ERROR_UNSUPPORTED_FUNCTION = NNMAT_ERROR_UNSUPPORTED_FUNCTION
    ERROR_CONFLICTING_RECORDER = NNMAT_ERROR_CONFLICTING_RECORDER

    def __init__(self, code: int, message: Optional[str] = None):
        """
        Create nnmat exception.

        Args:
            code: Error code
            message: Optional detailed message (looked up from the code table if not provided)
        """
        self.code = code
        if message is None:
            message = _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")
        self.message = message
        super().__init__(message)

    @classmethod
    def from_code(cls, code: int, context: str = "") -> "MatrixError":
        """Create exception from error code with optional context."""
        base_msg = _ERROR_MESSAGES.get(code, "Unknown error")
        msg = f"{context}: {base_msg}" if context else base_msg
        return cls(code, msg)

    @classmethod
    def dimension_mismatch(cls, message: str) -> "MatrixError":
        return cls(NNMAT_ERROR_DIMENSION_MISMATCH, message)

    @classmethod
    def invalid_argument(cls, message: str) -> "MatrixError":
        return cls(NNMAT_ERROR_INVALID_ARGUMENT, message)


# =============================================================================
# Error Checking Functions
# =============================================================================

def check_shape(expected, actual, context: str = "") -> None:
    """
    Raise a dimension-mismatch error when two shapes differ.

    Args:
        expected: Expected (rows, columns)
        actual: Actual (rows, columns)
        context: Optional context message for better error reporting

    Raises:
        MatrixError: If shapes are not equal
    """
    if tuple(expected) == tuple(actual):
        return
    msg = f"{actual[0]}x{actual[1]} (expected {expected[0]}x{expected[1]})"
    if context:
        msg = f"{context}: {msg}"
    raise MatrixError(NNMAT_ERROR_DIMENSION_MISMATCH, msg)
