"""
Tests for unary and binary functions.
"""

import math
import pickle

import numpy as np
import pytest

from nnmat import (
    BinaryFunction,
    BinaryFunctionType,
    DenseMatrix,
    MatrixError,
    UnaryFunction,
    UnaryFunctionType,
)
from conftest import assert_array_equal


class TestUnaryFunction:
    """Test activation functions and their derivatives."""

    def test_relu_values_and_derivative(self):
        """ReLU clamps negatives and steps its derivative at the threshold."""
        relu = UnaryFunction(UnaryFunctionType.RELU)
        values = [-2.0, -1.0, 0.0, 1.0, 2.0]

        assert [relu(v) for v in values] == [0.0, 0.0, 0.0, 1.0, 2.0]
        assert [relu.derivative(v) for v in values] == [0.0, 0.0, 1.0, 1.0, 1.0]

    def test_leaky_relu(self):
        """alpha sets the slope below the threshold."""
        relu = UnaryFunction(UnaryFunctionType.RELU, {'alpha': 0.01})

        assert relu(-2.0) == pytest.approx(-0.02)
        assert relu.derivative(-2.0) == pytest.approx(0.01)
        assert relu(3.0) == 3.0

    def test_relu_threshold(self):
        """Values below the threshold take the alpha branch."""
        relu = UnaryFunction(UnaryFunctionType.RELU, {'threshold': 1.0})

        assert relu(0.5) == 0.0
        assert relu(1.0) == 1.0

    @pytest.mark.parametrize("function_type", [
        UnaryFunctionType.SOFTPLUS,
        UnaryFunctionType.GAUSSIAN,
        UnaryFunctionType.SIGMOID,
        UnaryFunctionType.TANH,
    ])
    @pytest.mark.parametrize("value", [-1.5, -0.3, 0.7, 2.0])
    def test_derivative_matches_finite_difference(self, function_type, value):
        """Analytic derivatives agree with central differences."""
        function = UnaryFunction(function_type)
        step = 1e-6
        numeric = (function(value + step) - function(value - step)) / (2 * step)

        assert function.derivative(value) == pytest.approx(numeric, rel=1e-5, abs=1e-8)

    def test_softplus_and_gaussian_derivatives(self):
        """Softplus' is the logistic function; gaussian' is -v * exp(-v^2 / 2)."""
        softplus = UnaryFunction(UnaryFunctionType.SOFTPLUS)
        gaussian = UnaryFunction(UnaryFunctionType.GAUSSIAN)

        assert softplus.derivative(1.0) == pytest.approx(1 / (1 + math.exp(-1.0)))
        assert gaussian.derivative(1.0) == pytest.approx(-math.exp(-0.5))

    def test_create_by_name(self):
        """Type can be given by its name, case-insensitively."""
        assert UnaryFunction('tanh').type is UnaryFunctionType.TANH
        assert UnaryFunction('SIGMOID').name == 'SIGMOID'

    def test_sigmoid(self):
        """Sigmoid and derivative at zero."""
        sigmoid = UnaryFunction(UnaryFunctionType.SIGMOID)

        assert sigmoid(0.0) == pytest.approx(0.5)
        assert sigmoid.derivative(0.0) == pytest.approx(0.25)

    def test_elu_and_selu_defaults(self):
        """ELU and SELU use their default alpha and lambda."""
        elu = UnaryFunction(UnaryFunctionType.ELU)
        selu = UnaryFunction(UnaryFunctionType.SELU)

        assert elu(-1.0) == pytest.approx(math.exp(-1.0) - 1.0)
        assert elu(2.0) == 2.0
        assert selu(1.0) == pytest.approx(1.0507)
        assert selu.derivative(-1.0) == pytest.approx(1.0507 * 1.6732 * math.exp(-1.0))

    def test_hard_functions(self):
        """Piecewise linear functions clamp and zero their derivative outside the ramp."""
        hard_sigmoid = UnaryFunction(UnaryFunctionType.HARDSIGMOID)
        hard_tanh = UnaryFunction(UnaryFunctionType.HARDTANH)

        assert hard_sigmoid(10.0) == 1.0
        assert hard_sigmoid(0.0) == 0.5
        assert hard_sigmoid.derivative(5.0) == 0.0
        assert hard_tanh(-10.0) == -1.0
        assert hard_tanh.derivative(1.0) == 0.5

    def test_ieee_results(self):
        """Singular inputs produce inf / nan instead of exceptions."""
        assert UnaryFunction(UnaryFunctionType.LOG)(0.0) == -math.inf
        assert UnaryFunction(UnaryFunctionType.MULINV)(0.0) == math.inf
        assert math.isnan(UnaryFunction(UnaryFunctionType.LOG)(-1.0))
        assert math.isnan(UnaryFunction(UnaryFunctionType.SQRT)(-4.0))

    def test_param_defs(self):
        """Declaration string lists tunable parameters."""
        assert UnaryFunction(UnaryFunctionType.RELU).param_defs == "(threshold:DOUBLE), (alpha:DOUBLE)"
        assert UnaryFunction(UnaryFunctionType.TANH).param_defs is None

    def test_params_read_only(self):
        """Resolved parameters cannot be modified."""
        relu = UnaryFunction(UnaryFunctionType.RELU, {'alpha': '0.2'})

        assert relu.params['alpha'] == 0.2
        with pytest.raises(TypeError):
            relu.params['alpha'] = 1.0

    def test_unknown_parameter(self):
        """Unknown parameter names are rejected."""
        with pytest.raises(MatrixError) as excinfo:
            UnaryFunction(UnaryFunctionType.RELU, {'slope': 1.0})
        assert excinfo.value.code == MatrixError.ERROR_INVALID_ARGUMENT

    def test_non_numeric_parameter(self):
        """Parameters must convert to float."""
        with pytest.raises(MatrixError) as excinfo:
            UnaryFunction(UnaryFunctionType.ELU, {'alpha': 'steep'})
        assert excinfo.value.code == MatrixError.ERROR_INVALID_ARGUMENT

    def test_unknown_type(self):
        """Unknown names raise unsupported function."""
        with pytest.raises(MatrixError) as excinfo:
            UnaryFunction('not_a_function')
        assert excinfo.value.code == MatrixError.ERROR_UNSUPPORTED_FUNCTION

    def test_custom_requires_factory(self):
        """CUSTOM cannot be built through the constructor."""
        with pytest.raises(MatrixError) as excinfo:
            UnaryFunction(UnaryFunctionType.CUSTOM)
        assert excinfo.value.code == MatrixError.ERROR_UNSUPPORTED_FUNCTION

    def test_custom_function(self):
        """Custom closures are used as given."""
        square = UnaryFunction.custom(lambda v: v * v, lambda v: 2 * v)

        assert square.type is UnaryFunctionType.CUSTOM
        assert square(3.0) == 9.0
        assert square.derivative(3.0) == 6.0
        assert square.params == {}

    def test_value_semantics(self):
        """Functions compare and hash by type and parameters."""
        a = UnaryFunction(UnaryFunctionType.RELU, {'alpha': 0.1})
        b = UnaryFunction(UnaryFunctionType.RELU, {'alpha': 0.1})
        c = UnaryFunction(UnaryFunctionType.RELU)

        assert a == b
        assert hash(a) == hash(b)
        assert a != c
        assert len({a, b, c}) == 2

    def test_pickle(self):
        """Named functions survive pickling with their parameters."""
        relu = UnaryFunction(UnaryFunctionType.RELU, {'alpha': 0.3})
        restored = pickle.loads(pickle.dumps(relu))

        assert restored == relu
        assert restored(-1.0) == pytest.approx(-0.3)

    def test_custom_not_picklable(self):
        """Custom closures cannot be pickled."""
        custom = UnaryFunction.custom(lambda v: v, lambda v: 1.0)
        with pytest.raises(TypeError):
            pickle.dumps(custom)

    def test_gumbel_tau(self):
        """Gumbel softmax carries a temperature parameter."""
        assert UnaryFunction(UnaryFunctionType.GUMBEL_SOFTMAX).tau == 2.75
        assert UnaryFunction(UnaryFunctionType.GUMBEL_SOFTMAX, {'tau': 0.5}).tau == 0.5


class TestUnaryFunctionOnMatrix:
    """Test applying unary functions through matrices."""

    def test_apply_function(self, make):
        """Function is applied to every element."""
        x = make([[-2.0], [-1.0], [0.0], [1.0], [2.0]])
        out = UnaryFunction(UnaryFunctionType.RELU).apply_function(x)

        assert_array_equal(out, [[0.0], [0.0], [0.0], [1.0], [2.0]])

    def test_apply_gradient(self, make):
        """Gradient multiplies the output gradient by the derivative."""
        x = make([[-2.0], [-1.0], [0.0], [1.0], [2.0]])
        gradient = make([[2.0]] * 5)
        out = UnaryFunction(UnaryFunctionType.RELU).apply_gradient(x, gradient)

        assert_array_equal(out, [[0.0], [0.0], [2.0], [2.0], [2.0]])

    def test_softmax_dispatch(self, make):
        """SOFTMAX runs the whole-vector algorithm."""
        x = make([[1.0], [2.0], [3.0]])
        out = UnaryFunction(UnaryFunctionType.SOFTMAX).apply_function(x)

        expected = np.exp([1.0, 2.0, 3.0])
        expected /= expected.sum()
        assert_array_equal(out.to_array().ravel(), expected)

    def test_softmax_gradient(self, make):
        """Softmax gradient is the Jacobian times the output gradient."""
        out = make([[0.25], [0.75]])
        gradient = make([[1.0], [0.0]])
        result = UnaryFunction(UnaryFunctionType.SOFTMAX).apply_gradient(out, gradient)

        assert_array_equal(result, [[0.75], [-0.75]])


class TestBinaryFunction:
    """Test loss and combinator functions."""

    def test_mean_squared_error(self):
        """MSE of (3, 1) is 2 with derivative 2."""
        mse = BinaryFunction(BinaryFunctionType.MEAN_SQUARED_ERROR)

        assert mse(3.0, 1.0) == 2.0
        assert mse.derivative(3.0, 1.0) == 2.0

    def test_hinge_margin(self):
        """Hinge loss uses its margin parameter."""
        hinge = BinaryFunction(BinaryFunctionType.HINGE)
        wide = BinaryFunction(BinaryFunctionType.HINGE, {'margin': 2.0})

        assert hinge(0.5, 1.0) == pytest.approx(0.5)
        assert hinge.derivative(0.5, 1.0) == -1.0
        assert hinge(2.0, 1.0) == 0.0
        assert wide(1.5, 1.0) == pytest.approx(0.5)

    def test_huber_delta(self):
        """Huber switches to linear outside delta."""
        huber = BinaryFunction('huber', {'delta': 0.5})

        assert huber(3.0, 1.0) == pytest.approx(0.875)
        assert huber.derivative(3.0, 1.0) == pytest.approx(0.5)
        assert huber(1.2, 1.0) == pytest.approx(0.02)
        assert huber.derivative(1.2, 1.0) == pytest.approx(0.2)

    def test_cross_entropy(self):
        """Cross entropy and derivative."""
        ce = BinaryFunction(BinaryFunctionType.CROSS_ENTROPY)

        assert ce(0.5, 1.0) == pytest.approx(math.log(2.0))
        assert ce.derivative(0.5, 1.0) == pytest.approx(-2.0)
        assert ce(0.0, 1.0) == math.inf

    def test_max_min(self):
        """MAX and MIN combinators."""
        assert BinaryFunction(BinaryFunctionType.MAX)(2.0, 3.0) == 3.0
        assert BinaryFunction(BinaryFunctionType.MIN)(2.0, 3.0) == 2.0

    def test_direct_gradient(self):
        """DIRECT_GRADIENT passes the constant through as derivative."""
        direct = BinaryFunction(BinaryFunctionType.DIRECT_GRADIENT)

        assert direct(5.0, 7.0) == 0.0
        assert direct.derivative(5.0, 7.0) == 7.0

    def test_param_defs(self):
        """Declaration string lists tunable parameters."""
        assert BinaryFunction(BinaryFunctionType.HUBER).param_defs == "(delta:DOUBLE)"
        assert BinaryFunction(BinaryFunctionType.POISSON).param_defs is None

    def test_unknown_parameter(self):
        """Unknown parameter names are rejected."""
        with pytest.raises(MatrixError) as excinfo:
            BinaryFunction(BinaryFunctionType.HINGE, {'delta': 1.0})
        assert excinfo.value.code == MatrixError.ERROR_INVALID_ARGUMENT

    def test_custom(self):
        """Custom binary closures."""
        product = BinaryFunction.custom(lambda v, c: v * c, lambda v, c: c)

        assert product(2.0, 3.0) == 6.0
        assert product.derivative(2.0, 3.0) == 3.0
        with pytest.raises(MatrixError):
            BinaryFunction(BinaryFunctionType.CUSTOM)

    def test_value_semantics_and_pickle(self):
        """Binary functions compare by type and parameters and pickle."""
        huber = BinaryFunction(BinaryFunctionType.HUBER, {'delta': 0.5})

        assert huber == BinaryFunction(BinaryFunctionType.HUBER, {'delta': 0.5})
        assert huber != BinaryFunction(BinaryFunctionType.HUBER)
        assert pickle.loads(pickle.dumps(huber)) == huber

    def test_apply_function(self, make):
        """Element-wise evaluation of (values, constants)."""
        prediction = make([[3.0, 1.0], [0.0, 2.0]])
        target = make([[1.0, 1.0], [1.0, 0.0]])
        out = BinaryFunction(BinaryFunctionType.MEAN_SQUARED_ERROR).apply_function(prediction, target)

        assert_array_equal(out, [[2.0, 0.0], [0.5, 2.0]])

    def test_apply_gradient(self, make):
        """Gradient with respect to the values."""
        prediction = make([[3.0, 1.0]])
        target = make([[1.0, 1.0]])
        gradient = make([[0.5, 0.5]])
        out = BinaryFunction(BinaryFunctionType.MEAN_SQUARED_ERROR).apply_gradient(prediction, target, gradient)

        assert_array_equal(out, [[1.0, 0.0]])

    def test_apply_with_scalar_constant(self):
        """A plain number broadcasts as the constant operand."""
        prediction = DenseMatrix.from_array([[1.0, 2.0]])
        out = BinaryFunction(BinaryFunctionType.POW).apply_function(prediction, 2.0)

        assert_array_equal(out, [[1.0, 4.0]])
