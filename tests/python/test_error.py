"""
Tests for error handling.
"""

import pytest

from nnmat import MatrixError
from nnmat.error import check_shape


class TestMatrixError:
    """Test error codes and messages."""

    def test_default_message(self):
        """Messages default to the code table."""
        error = MatrixError(MatrixError.ERROR_STACK_EMPTY)

        assert error.code == MatrixError.ERROR_STACK_EMPTY
        assert error.message == "Stack is empty"
        assert str(error) == "Stack is empty"

    def test_unknown_code(self):
        """Unknown codes still produce a message."""
        assert "code=999" in MatrixError(999).message

    def test_from_code(self):
        """from_code prefixes the context."""
        error = MatrixError.from_code(MatrixError.ERROR_DIMENSION_MISMATCH, "dot")

        assert error.message == "dot: Dimension mismatch"

    def test_shortcuts(self):
        """Shortcut constructors carry their codes."""
        assert MatrixError.dimension_mismatch("x").code == MatrixError.ERROR_DIMENSION_MISMATCH
        assert MatrixError.invalid_argument("y").code == MatrixError.ERROR_INVALID_ARGUMENT

    def test_is_exception(self):
        """MatrixError can be caught as Exception."""
        with pytest.raises(Exception):
            raise MatrixError(MatrixError.ERROR_UNKNOWN)


class TestCheckShape:
    """Test shape checking."""

    def test_equal_shapes(self):
        """Equal shapes pass."""
        check_shape((2, 3), [2, 3])

    def test_mismatch(self):
        """Different shapes raise with context."""
        with pytest.raises(MatrixError) as excinfo:
            check_shape((2, 3), (3, 2), "Mask")

        assert excinfo.value.code == MatrixError.ERROR_DIMENSION_MISMATCH
        assert excinfo.value.message == "Mask: 3x2 (expected 2x3)"
