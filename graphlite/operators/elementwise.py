"""
Elementwise operators.

Binary operators broadcast their inputs; their backward passes sum the
gradient back over broadcast axes via accumulate().
"""

import numpy as np

from ..dtype import dtypes, require_float, result_type, validate
from ..errors import ElementTypeError
from ..shape import broadcast_shapes
from .base import Operator, ElementwiseOperator, accumulate


def _sigmoid(x):
    # exp(-log(1 + exp(-x))) does not overflow for large |x|
    return np.exp(-np.logaddexp(0, -x))


# =========================
# BINARY ARITHMETIC
# =========================

class Plus(ElementwiseOperator):
    def compute(self, a, b):
        return a + b

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad)
        accumulate(input_grads, 1, out_grad)


class Minus(ElementwiseOperator):
    def compute(self, a, b):
        return a - b

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad)
        accumulate(input_grads, 1, -out_grad)


class Mult(ElementwiseOperator):
    def compute(self, a, b):
        return a * b

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        accumulate(input_grads, 0, out_grad * b)
        accumulate(input_grads, 1, out_grad * a)


class Div(ElementwiseOperator):
    def infer(self, inputs):
        shape, dtype = super().infer(inputs)
        return shape, require_float(dtype, "Division")

    def compute(self, a, b):
        return a / b

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        accumulate(input_grads, 0, out_grad / b)
        accumulate(input_grads, 1, -out_grad * a / (b * b))


class Maximum(ElementwiseOperator):
    """Ties send the gradient to the first input"""

    def compute(self, a, b):
        return np.maximum(a, b)

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        mask = a >= b
        accumulate(input_grads, 0, out_grad * mask)
        accumulate(input_grads, 1, out_grad * ~mask)


class Minimum(ElementwiseOperator):
    def compute(self, a, b):
        return np.minimum(a, b)

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        mask = a <= b
        accumulate(input_grads, 0, out_grad * mask)
        accumulate(input_grads, 1, out_grad * ~mask)


class LogAddExp(ElementwiseOperator):
    """log(exp(a) + exp(b)) computed without overflow"""

    def infer(self, inputs):
        shape, dtype = super().infer(inputs)
        return shape, require_float(dtype, "logaddexp")

    def compute(self, a, b):
        return np.logaddexp(a, b)

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        accumulate(input_grads, 0, out_grad * np.exp(a - out))
        accumulate(input_grads, 1, out_grad * np.exp(b - out))


class Compare(ElementwiseOperator):
    """
    Elementwise comparison. The result is 1 where the relation holds and 0
    elsewhere, in the (common) input type, so it can be used as a mask.
    """

    differentiable = False

    _FUNCS = {
        'lt': np.less, 'le': np.less_equal,
        'gt': np.greater, 'ge': np.greater_equal,
        'eq': np.equal, 'ne': np.not_equal,
    }

    def __init__(self, relation):
        if relation not in self._FUNCS:
            raise ValueError(f"Unknown comparison {relation!r}")
        self.relation = relation

    def params(self):
        return (self.relation,)

    def compute(self, a, b):
        return self._FUNCS[self.relation](a, b)


# =========================
# UNARY
# =========================

class UnaryOperator(Operator):
    """Same shape and type in and out"""

    float_only = True

    def infer(self, inputs):
        (a,) = inputs
        if self.float_only:
            require_float(a.dtype, self.kind)
        return a.shape, a.dtype

    def forward(self, inputs, out):
        out[...] = self.compute(inputs[0])


class Neg(UnaryOperator):
    float_only = False

    def compute(self, a):
        return -a

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, -out_grad)


class ScalarOperator(UnaryOperator):
    """Unary op with a Python scalar operand; the input keeps its type"""

    float_only = False

    def __init__(self, scalar):
        self.scalar = float(scalar)

    def params(self):
        return (self.scalar,)

    def infer(self, inputs):
        (a,) = inputs
        if not dtypes.is_float(a.dtype) and not self.scalar.is_integer():
            raise ElementTypeError(
                f"{self.kind} by {self.scalar} would truncate {a.dtype}; cast to a float type first")
        return a.shape, a.dtype


class ScalarAdd(ScalarOperator):
    def compute(self, a):
        return a + self.scalar

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad)


class ScalarMult(ScalarOperator):
    def compute(self, a):
        return a * self.scalar

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * self.scalar)


class Sqrt(UnaryOperator):
    """sqrt(a + eps)"""

    def __init__(self, eps=0.0):
        self.eps = float(eps)

    def params(self):
        return (self.eps,)

    def compute(self, a):
        return np.sqrt(a + self.eps)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * 0.5 / out)


class Square(UnaryOperator):
    float_only = False

    def compute(self, a):
        return a * a

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * 2 * inputs[0])


class Abs(UnaryOperator):
    float_only = False

    def compute(self, a):
        return np.abs(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * np.sign(inputs[0]))


class Exp(UnaryOperator):
    def compute(self, a):
        return np.exp(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * out)


class Log(UnaryOperator):
    def compute(self, a):
        return np.log(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad / inputs[0])


class Sin(UnaryOperator):
    def compute(self, a):
        return np.sin(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * np.cos(inputs[0]))


class Cos(UnaryOperator):
    def compute(self, a):
        return np.cos(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, -out_grad * np.sin(inputs[0]))


class Tan(UnaryOperator):
    def compute(self, a):
        return np.tan(a)

    def backward(self, inputs, out, out_grad, input_grads):
        # d tan(x) = 1 + tan(x)^2
        accumulate(input_grads, 0, out_grad * (1 + out * out))


class Sigmoid(UnaryOperator):
    def compute(self, a):
        return _sigmoid(a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * out * (1 - out))


class Swish(UnaryOperator):
    """x * sigmoid(beta * x); beta = 1.702 approximates GELU"""

    def __init__(self, beta=1.0):
        self.beta = float(beta)

    def params(self):
        return (self.beta,)

    def compute(self, a):
        return a * _sigmoid(self.beta * a)

    def backward(self, inputs, out, out_grad, input_grads):
        s = _sigmoid(self.beta * inputs[0])
        accumulate(input_grads, 0, out_grad * (s + self.beta * out * (1 - s)))


class ReLU(UnaryOperator):
    float_only = False

    def compute(self, a):
        return np.maximum(a, 0)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * (inputs[0] > 0))


class PReLU(UnaryOperator):
    """x if x > 0 else alpha * x; alpha is a fixed parameter"""

    def __init__(self, alpha=0.01):
        self.alpha = float(alpha)

    def params(self):
        return (self.alpha,)

    def compute(self, a):
        return np.where(a > 0, a, self.alpha * a)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * np.where(inputs[0] > 0, 1.0, self.alpha))


class Clip(UnaryOperator):
    """Clip values into [-c, c]"""

    float_only = False

    def __init__(self, c):
        self.c = float(c)

    def params(self):
        return (self.c,)

    def compute(self, a):
        return np.clip(a, -self.c, self.c)

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad * (np.abs(inputs[0]) <= self.c))


class ClipGradient(UnaryOperator):
    """Identity forward; the gradient passing through is clipped to [-c, c]"""

    view = True

    def __init__(self, c):
        self.c = float(c)

    def params(self):
        return (self.c,)

    def view_of(self, inputs):
        return inputs[0]

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, np.clip(out_grad, -self.c, self.c))


class StopGradient(UnaryOperator):
    """Identity whose output is never trainable"""

    view = True
    differentiable = False
    float_only = False

    def view_of(self, inputs):
        return inputs[0]


class Cast(UnaryOperator):
    """Convert to another element type. Gradients flow only float to float."""

    float_only = False

    def __init__(self, dtype):
        self.dtype = validate(dtype)

    def params(self):
        return (self.dtype,)

    def infer(self, inputs):
        (a,) = inputs
        return a.shape, self.dtype

    def forward(self, inputs, out):
        out[...] = inputs[0].astype(out.dtype)

    def backward(self, inputs, out, out_grad, input_grads):
        if dtypes.is_float(self.dtype):
            accumulate(input_grads, 0, out_grad.astype(inputs[0].dtype))


class Debug(UnaryOperator):
    """
    Identity that reports the value on forward and the gradient on
    backward to a sink callable(message, phase, array).
    """

    view = True
    memoize = False
    float_only = False

    def __init__(self, message, sink):
        self.message = message
        self.sink = sink

    def params(self):
        return (self.message,)

    def view_of(self, inputs):
        self.sink(self.message, 'forward', inputs[0])
        return inputs[0]

    def backward(self, inputs, out, out_grad, input_grads):
        self.sink(self.message, 'backward', out_grad)
        accumulate(input_grads, 0, out_grad)


# =========================
# N-ARY
# =========================

class Tanh(ElementwiseOperator):
    """tanh of the (broadcast) sum of all inputs"""

    def infer(self, inputs):
        shape, dtype = super().infer(inputs)
        return shape, require_float(dtype, "tanh")

    def compute(self, *inputs):
        total = inputs[0]
        for x in inputs[1:]:
            total = total + x
        return np.tanh(total)

    def backward(self, inputs, out, out_grad, input_grads):
        grad = out_grad * (1 - out * out)
        for i in range(len(inputs)):
            accumulate(input_grads, i, grad)


class Highway(ElementwiseOperator):
    """
    Highway gate: sigmoid(t) * y + (1 - sigmoid(t)) * x, inputs (y, x, t).
    """

    def infer(self, inputs):
        shape = broadcast_shapes(*(node.shape for node in inputs))
        dtype = require_float(result_type(*(node.dtype for node in inputs)), "highway")
        return shape, dtype

    def compute(self, y, x, t):
        s = _sigmoid(t)
        return s * y + (1 - s) * x

    def backward(self, inputs, out, out_grad, input_grads):
        y, x, t = inputs
        s = _sigmoid(t)
        accumulate(input_grads, 0, out_grad * s)
        accumulate(input_grads, 1, out_grad * (1 - s))
        accumulate(input_grads, 2, out_grad * (y - x) * s * (1 - s))
