"""
Tests for the expression recording hook.
"""

import logging

import pytest

from nnmat import (
    DenseMatrix,
    ExpressionKind,
    LoggingRecorder,
    MatrixError,
    MatrixSequence,
    Recorder,
    RecordingConfig,
    config,
    synchronize_recorders,
)


class CountingRecorder(Recorder):
    """Recorder that only counts notifications."""

    def __init__(self):
        self.started = 0
        self.kinds = []

    def start_expression(self, matrix):
        self.started += 1
        return self.started

    def record(self, token, kind, operands, result, details):
        assert token == self.started
        self.kinds.append(kind)


class TestRecording:
    """Test which operations are reported."""

    def test_no_recorder(self):
        """Operations without a recorder run normally."""
        a = DenseMatrix.from_array([[1.0, 2.0]])
        out = a.add(a)

        assert out.recorder is None
        assert out.get_value(0, 1) == 4.0

    def test_records_operation(self, recorder):
        """The outermost operation is recorded with operands and result."""
        a = DenseMatrix.from_array([[1.0, 2.0]])
        b = DenseMatrix.from_array([[3.0, 4.0]])
        a.recorder = recorder
        c = a.add(b)

        assert len(recorder) == 1
        record = recorder.records[0]
        assert record.kind is ExpressionKind.ADD
        assert record.operands == (a, b)
        assert record.result is c
        assert c.recorder is recorder
        assert b.recorder is recorder

    def test_nested_operations_recorded_once(self, recorder):
        """Operations built from other operations show up once."""
        a = DenseMatrix.from_array([[1.0], [2.0]])
        a.recorder = recorder
        a.variance_as_matrix()
        a.softmax()

        assert [record.kind for record in recorder.records] == [
            ExpressionKind.VARIANCE,
            ExpressionKind.SOFTMAX,
        ]

    def test_details(self, recorder):
        """Keyword and plain positional arguments become details."""
        a = DenseMatrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        a.recorder = recorder
        a.crosscorrelate(DenseMatrix.from_array([[1.0]]), stride=2)
        a.norm(1)

        assert recorder.records[0].details == {'stride': 2}
        assert recorder.records[1].details == {'args': (1,)}
        assert recorder.records[1].result == 10.0

    def test_views_are_recorded(self, recorder):
        """Transpose reports and passes the recorder on."""
        a = DenseMatrix.from_array([[1.0, 2.0]])
        a.recorder = recorder
        t = a.transpose()

        assert recorder.records[-1].kind is ExpressionKind.TRANSPOSE
        assert t.recorder is recorder

    def test_conflicting_recorders(self):
        """Operands with different recorders are rejected."""
        a = DenseMatrix.from_array([[1.0]])
        b = DenseMatrix.from_array([[2.0]])
        a.recorder = LoggingRecorder()
        b.recorder = LoggingRecorder()

        with pytest.raises(MatrixError) as excinfo:
            a.add(b)
        assert excinfo.value.code == MatrixError.ERROR_CONFLICTING_RECORDER

    def test_recording_disabled(self, recorder):
        """Recording can be switched off through the configuration."""
        config.recording = RecordingConfig(enabled=False)
        a = DenseMatrix.from_array([[1.0]])
        a.recorder = recorder
        a.add(a)

        assert len(recorder) == 0

    def test_recording_disabled_locally(self, recorder):
        """A local override disables recording for the block only."""
        a = DenseMatrix.from_array([[1.0]])
        a.recorder = recorder
        with config.local(recording=RecordingConfig(enabled=False)):
            a.add(a)
        a.add(a)

        assert len(recorder) == 1

    def test_custom_recorder(self):
        """Custom recorders receive tokens from start_expression."""
        counting = CountingRecorder()
        a = DenseMatrix.from_array([[1.0, 2.0]])
        a.recorder = counting
        a.multiply(2.0).subtract(a)

        assert counting.started == 2
        assert counting.kinds == [ExpressionKind.MULTIPLY, ExpressionKind.SUBTRACT]

    def test_logging_recorder_logs(self, recorder, caplog):
        """LoggingRecorder logs every expression at DEBUG."""
        a = DenseMatrix.from_array([[1.0]])
        a.recorder = recorder
        with caplog.at_level(logging.DEBUG, logger="nnmat.recorder"):
            a.add(a)

        assert "add" in caplog.text
        recorder.clear()
        assert len(recorder) == 0


class TestSynchronization:
    """Test recorder sharing between operands."""

    def test_adopt_recorder(self, recorder):
        """An operand without recorder adopts the other's."""
        a = DenseMatrix(1, 1)
        b = DenseMatrix(1, 1)
        b.recorder = recorder

        assert synchronize_recorders(a, b) is recorder
        assert a.recorder is recorder

    def test_none_when_unset(self):
        """No recorder on either side."""
        assert synchronize_recorders(DenseMatrix(1, 1), DenseMatrix(1, 1)) is None

    def test_sequence_recorder(self, recorder):
        """Sequences pass their recorder to entries and record batch operations."""
        sequence = MatrixSequence()
        sequence.put(0, DenseMatrix.from_array([[1.0]]))
        sequence.recorder = recorder
        late = DenseMatrix.from_array([[3.0]])
        sequence.put(1, late)

        assert sequence[0].recorder is recorder
        assert late.recorder is recorder

        sequence.sum()
        assert [record.kind for record in recorder.records] == [ExpressionKind.SUM]
        assert recorder.records[0].operands == (sequence,)
