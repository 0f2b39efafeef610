"""
Operator base class.

An operator defines the contract the graph engine relies on:
  - infer(inputs) -> (Shape, dtype)     : shape/type rule, raises on mismatch
  - forward(inputs, out)                : fill the preallocated output buffer
  - backward(inputs, out, out_grad, input_grads)
                                        : add (never assign) into input grads
  - structural_key(inputs)              : identity used for deduplication

`inputs` is a list of Nodes for infer() and a list of numpy arrays for
forward()/backward(). `input_grads` holds one array per input, or None
where the input is not trainable.
"""

import numpy as np

from ..shape import broadcast_shapes
from ..dtype import result_type


def unbroadcast(grad, shape):
    """
    Sum a gradient back down to the shape of the input it belongs to.

    Sums over leading axes that broadcasting added, then over axes where the
    input had extent 1 but the gradient does not.
    """
    ndims_added = grad.ndim - len(shape)
    if ndims_added > 0:
        grad = grad.sum(axis=tuple(range(ndims_added)))
    axes = tuple(i for i, (dim, orig_dim) in enumerate(zip(grad.shape, shape))
                 if orig_dim == 1 and dim != 1)
    if axes:
        grad = grad.sum(axis=axes, keepdims=True)
    return grad.reshape(shape)


class Operator:
    """Base class for all operators"""

    # Set to False for operators that must not be deduplicated
    memoize = True
    # View operators return an array sharing storage with inputs[0]
    view = False
    # Outputs of non-differentiable operators never carry gradients
    differentiable = True

    @property
    def kind(self):
        return type(self).__name__

    def params(self):
        """Hashable tuple of the operator's own parameters"""
        return ()

    def structural_key(self, inputs):
        return (self.kind, self.params(), tuple(node.id for node in inputs))

    def infer(self, inputs):
        raise NotImplementedError("Subclasses must implement this method.")

    def forward(self, inputs, out):
        raise NotImplementedError("Subclasses must implement this method.")

    def view_of(self, inputs):
        raise NotImplementedError("View operators must implement this method.")

    def backward(self, inputs, out, out_grad, input_grads):
        raise NotImplementedError("Subclasses must implement this method.")

    def run_backward(self, inputs, out, out_grad, input_grads):
        """Absent upstream gradient means no contribution"""
        if out_grad is None or not self.differentiable:
            return
        if all(g is None for g in input_grads):
            return
        self.backward(inputs, out, out_grad, input_grads)

    def __repr__(self):
        params = ', '.join(repr(p) for p in self.params())
        return f"{self.kind}({params})"


class ElementwiseOperator(Operator):
    """Operators whose output shape is the broadcast of all input shapes"""

    def infer(self, inputs):
        shape = broadcast_shapes(*(node.shape for node in inputs))
        return shape, result_type(*(node.dtype for node in inputs))

    def forward(self, inputs, out):
        out[...] = self.compute(*inputs)

    def compute(self, *inputs):
        raise NotImplementedError("Subclasses must implement this method.")


def accumulate(input_grads, i, grad):
    """Add grad into input_grads[i], summing broadcast axes away"""
    target = input_grads[i]
    if target is None:
        return
    target += unbroadcast(np.asarray(grad), target.shape).astype(target.dtype, copy=False)
