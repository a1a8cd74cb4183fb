"""
Tests for joined matrices.
"""

import numpy as np
import pytest

from nnmat import DenseMatrix, JoinedMatrix, MatrixError, SparseMatrix
from conftest import assert_array_equal


@pytest.fixture
def parts(make):
    """Two blocks with matching column counts.

    top:    [[1, 2]]
    bottom: [[3, 4],
             [5, 6]]
    """
    return make([[1.0, 2.0]]), make([[3.0, 4.0], [5.0, 6.0]])


@pytest.fixture
def joined(parts):
    """Vertical join of the two blocks (3x2)."""
    return JoinedMatrix(list(parts), vertical=True)


class TestJoinedStructure:
    """Test layout and element routing."""

    def test_shape_and_values(self, joined):
        """Rows of the blocks are stacked."""
        assert joined.shape == (3, 2)
        assert joined.is_joined_vertically
        assert_array_equal(joined, [[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])

    def test_horizontal(self, make):
        """Columns of the blocks are placed side by side."""
        left = make([[1.0], [2.0]])
        right = make([[3.0, 4.0], [5.0, 6.0]])
        joined = JoinedMatrix([left, right], vertical=False)

        assert joined.shape == (2, 3)
        assert_array_equal(joined, [[1.0, 3.0, 4.0], [2.0, 5.0, 6.0]])

    def test_writes_reach_blocks(self, joined, parts):
        """Writes are routed to the owning block and vice versa."""
        top, bottom = parts
        joined.set_value(2, 0, 9.0)
        top.set_value(0, 1, -2.0)

        assert bottom.get_value(1, 0) == 9.0
        assert joined.get_value(0, 1) == -2.0

    def test_mismatched_blocks(self, make):
        """Blocks must agree on the non-joined dimension."""
        with pytest.raises(MatrixError) as excinfo:
            JoinedMatrix([make([[1.0, 2.0]]), make([[1.0]])], vertical=True)
        assert excinfo.value.message == "Number of columns in matrices are not matching."
        with pytest.raises(MatrixError) as excinfo:
            JoinedMatrix([make([[1.0, 2.0]]), make([[1.0], [2.0]])], vertical=False)
        assert excinfo.value.message == "Number of rows in matrices are not matching."

    def test_empty_join(self):
        """At least one block is required."""
        with pytest.raises(MatrixError):
            JoinedMatrix([])

    def test_out_of_bounds(self, joined):
        """Indices outside the joined shape are rejected."""
        with pytest.raises(MatrixError) as excinfo:
            joined.get_value(3, 0)
        assert excinfo.value.code == MatrixError.ERROR_INDEX_OUT_OF_BOUNDS

    def test_unjoin(self, joined, parts):
        """unjoin returns the block itself."""
        assert joined.unjoin(1) is parts[1]
        with pytest.raises(MatrixError):
            joined.unjoin(2)

    def test_join_flattens(self, joined, make):
        """Joining in the same direction appends a block."""
        extra = make([[7.0, 8.0]])
        bigger = joined.join(extra, vertical=True)

        assert len(bigger.sub_matrices) == 3
        assert bigger.shape == (4, 2)
        assert bigger.unjoin(2) is extra

    def test_join_other_direction_nests(self, joined, make):
        """Joining in the other direction nests the joined matrix."""
        side = make([[0.0], [0.0], [0.0]])
        wide = joined.join(side, vertical=False)

        assert wide.shape == (3, 3)
        assert wide.unjoin(0) is joined

    def test_cannot_resize(self, joined):
        """Concatenation is illegal on a joined matrix."""
        with pytest.raises(MatrixError) as excinfo:
            joined.concatenate_vertical(joined)
        assert excinfo.value.code == MatrixError.ERROR_ILLEGAL_STRUCTURE
        assert excinfo.value.message == "Joined matrix cannot be resized."


class TestJoinedOperations:
    """Test the shared algorithms on joined matrices."""

    def test_arithmetic_matches_dense(self, joined):
        """Results equal those of the equivalent dense matrix."""
        dense = DenseMatrix.from_array(joined.to_array())

        assert_array_equal(joined.multiply(joined), dense.multiply(dense))
        assert joined.sum() == dense.sum()
        assert_array_equal(joined.dot(joined.transpose()), dense.dot(dense.transpose()))

    def test_result_keeps_structure(self, joined):
        """Same-shape results are joined matrices over fresh blocks."""
        out = joined.add(1.0)

        assert isinstance(out, JoinedMatrix)
        assert len(out.sub_matrices) == 2
        assert_array_equal(out.unjoin(0), [[2.0, 3.0]])

    def test_transpose(self, joined, parts):
        """Transpose joins the transposed blocks in the other direction."""
        transposed = joined.transpose()

        assert transposed.shape == (2, 3)
        assert not transposed.is_joined_vertically
        assert_array_equal(transposed, joined.to_array().T)
        transposed.set_value(1, 2, 60.0)
        assert parts[1].get_value(1, 1) == 60.0

    def test_slice(self, joined):
        """Slices may straddle block boundaries."""
        window = joined.slice(0, 1, 2, 2)

        assert window.shape == (2, 1)
        assert_array_equal(window, [[2.0], [4.0]])
        assert_array_equal(window.transpose(), [[2.0, 4.0]])

    def test_block_mask_honoured(self, joined, parts):
        """A mask on a block suppresses the joined element."""
        parts[1].set_mask().set_mask(0, 0)

        assert joined.has_mask
        assert joined.sum() == 18.0

    def test_joined_mask(self, joined):
        """A mask over the joined shape combines with the block masks."""
        mask = joined.set_mask()
        mask.set_row_mask(0)

        assert mask.shape == (3, 2)
        assert joined.sum() == 18.0
        joined.remove_mask()
        assert joined.sum() == 21.0

    def test_mixed_blocks(self):
        """Dense and sparse blocks can be joined."""
        joined = JoinedMatrix([DenseMatrix.from_array([[1.0]]), SparseMatrix.from_array([[2.0]])])

        assert_array_equal(joined, [[1.0], [2.0]])
        assert joined.softmax().sum() == pytest.approx(1.0)

    def test_pooling(self, make):
        """Pooling reads across block boundaries."""
        values = np.arange(1.0, 17.0).reshape(4, 4)
        joined = JoinedMatrix([make(values[:1]), make(values[1:])])
        positions = {}
        out = joined.max_pool(positions, pool_size=2, stride=2)

        assert_array_equal(out, [[6.0, 8.0], [14.0, 16.0]])


class TestJoinedCopies:
    """Test copies, references and state."""

    def test_copy_is_independent(self, joined, parts):
        """Copies duplicate every block."""
        clone = joined.copy()
        clone.set_value(0, 0, 100.0)

        assert parts[0].get_value(0, 0) == 1.0
        assert clone.unjoin(0) is not parts[0]

    def test_reference_shares(self, joined, parts):
        """References route to the same blocks."""
        alias = joined.reference()
        alias.set_value(0, 0, 100.0)

        assert parts[0].get_value(0, 0) == 100.0

    def test_reset(self, joined, parts):
        """Reset zeroes every block."""
        joined.reset()

        assert parts[0].sum() == 0.0
        assert parts[1].sum() == 0.0

    def test_equals(self, joined):
        """Joined matrices compare block by block or cell by cell."""
        clone = joined.copy()

        assert joined.equals(clone)
        assert joined.equals(DenseMatrix.from_array(joined.to_array()))
        clone.set_value(2, 1, 0.0)
        assert not joined.equals(clone)

    def test_equals_different_split(self, make):
        """Joins with different block boundaries compare cell by cell."""
        values = np.arange(6.0).reshape(3, 2)
        upper_split = JoinedMatrix([make(values[:2]), make(values[2:])], vertical=True)
        lower_split = JoinedMatrix([make(values[:1]), make(values[1:])], vertical=True)

        assert upper_split.equals(lower_split)
        lower_split.set_value(1, 0, -1.0)
        assert not upper_split.equals(lower_split)

    def test_constant_matrix(self, joined):
        """Scalars of a joined matrix are dense."""
        scalar = joined.constant_matrix(2.0)

        assert scalar.is_scalar
        assert isinstance(scalar, DenseMatrix)
