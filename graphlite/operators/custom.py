"""
Lambda operator: forward/backward supplied as plain functions.

    forward_fn(inputs, out)                         fills `out`
    backward_fn(inputs, out, out_grad, input_grads) adds into input grads

Shape and type cannot be inferred generically, so they are given up front.
"""

from ..dtype import validate
from ..shape import Shape
from .base import Operator


class Lambda(Operator):
    def __init__(self, shape, dtype, forward_fn, backward_fn=None, name=None):
        self.shape = Shape(shape)
        self.dtype = validate(dtype)
        self.forward_fn = forward_fn
        self.backward_fn = backward_fn
        self.name = name or getattr(forward_fn, '__name__', 'lambda')
        if backward_fn is None:
            self.differentiable = False

    @property
    def kind(self):
        return f"Lambda[{self.name}]"

    def params(self):
        # Functions hash by identity
        return (self.shape, self.dtype, self.forward_fn, self.backward_fn)

    def infer(self, inputs):
        return self.shape, self.dtype

    def forward(self, inputs, out):
        self.forward_fn(inputs, out)

    def backward(self, inputs, out, out_grad, input_grads):
        self.backward_fn(inputs, out, out_grad, input_grads)
