"""
Matrix products.

MatMul covers both `dot` (b is a plain matrix, a may carry leading batch
axes) and `bdot` (both operands batched, batch axes broadcast):

    out = scalar * op(a) @ op(b),   op(x) = x or swapaxes(x, -1, -2)
"""

import numpy as np

from ..dtype import result_type
from ..errors import ShapeError
from ..shape import broadcast_shapes, Shape
from .base import Operator, accumulate


def _t(x):
    return np.swapaxes(x, -1, -2)


class MatMul(Operator):
    def __init__(self, trans_a=False, trans_b=False, scalar=1.0, batched=False):
        self.trans_a = bool(trans_a)
        self.trans_b = bool(trans_b)
        self.scalar = float(scalar)
        self.batched = bool(batched)

    def params(self):
        return (self.trans_a, self.trans_b, self.scalar, self.batched)

    @property
    def kind(self):
        return 'BDot' if self.batched else 'Dot'

    def infer(self, inputs):
        a, b = inputs
        if a.shape.rank < 2 or b.shape.rank < 2:
            raise ShapeError(f"{self.kind} needs operands of rank >= 2, "
                             f"got {list(a.shape)} and {list(b.shape)}")
        if not self.batched and b.shape.rank != 2:
            raise ShapeError(f"dot expects a matrix as second operand, got {list(b.shape)}; use bdot")
        m, k = (a.shape[-1], a.shape[-2]) if self.trans_a else (a.shape[-2], a.shape[-1])
        k2, n = (b.shape[-1], b.shape[-2]) if self.trans_b else (b.shape[-2], b.shape[-1])
        if k != k2:
            raise ShapeError(f"{self.kind}: inner dimensions differ ({list(a.shape)} "
                             f"transA={self.trans_a} vs {list(b.shape)} transB={self.trans_b})")
        batch = broadcast_shapes(a.shape[:-2], b.shape[:-2])
        return Shape(tuple(batch) + (m, n)), result_type(a.dtype, b.dtype)

    def _operands(self, inputs):
        a, b = inputs
        return (_t(a) if self.trans_a else a), (_t(b) if self.trans_b else b)

    def forward(self, inputs, out):
        a, b = self._operands(inputs)
        out[...] = np.matmul(a, b) * self.scalar

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = self._operands(inputs)
        g = out_grad * self.scalar
        if input_grads[0] is not None:
            da = np.matmul(g, _t(b))
            if self.trans_a:
                da = _t(da)
            accumulate(input_grads, 0, da)
        if input_grads[1] is not None:
            db = np.matmul(_t(a), g)
            if self.trans_b:
                db = _t(db)
            accumulate(input_grads, 1, db)
