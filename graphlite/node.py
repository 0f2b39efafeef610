"""
GraphLite Node - a vertex of the expression graph.

A node pairs one operator with its input nodes and holds:
1. Value (the forward result, None until computed or after being freed)
2. Gradient (None until backward reaches it)
3. Bookkeeping (trainable, checkpoint, pending consumer counts)

Users only ever hold references to nodes. `Expr` is the public name for
such a reference: copying an Expr copies the reference, never the node.
"""

import numpy as np


class Node:
    """
    Graph vertex. Created by ExpressionGraph, never directly.

    Args:
        graph: Owning ExpressionGraph
        node_id: Graph-unique id; inputs always have smaller ids
        op: Operator instance, or None for leaves
        inputs: Input nodes (immutable)
        shape: Output Shape
        dtype: Output element type
        episode: Episode the node belongs to (None for parameters)
    """

    def __init__(self, graph, node_id, op, inputs, shape, dtype, episode,
                 trainable=False, initializer=None, name=None):
        self.graph = graph
        self.id = node_id
        self.op = op
        self.inputs = tuple(inputs)
        self.shape = shape
        self.dtype = dtype
        self.episode = episode
        self.trainable = trainable
        self.initializer = initializer
        self.name = name

        self.value = None
        self.grad = None
        self.computed = False
        self.is_checkpoint = False
        self.retained = False

        self._owns_value = False
        self._forward_pending = 0
        self._backward_pending = 0

        # Same input twice (a * a) counts as one dependency
        seen = {}
        for node in self.inputs:
            seen.setdefault(node.id, node)
        self.distinct_inputs = tuple(seen.values())

    @property
    def is_leaf(self):
        return self.op is None

    @property
    def label(self):
        if self.name:
            return self.name
        kind = self.op.kind if self.op is not None else 'leaf'
        return f"{kind}#{self.id}"

    def __repr__(self):
        return (f"Node({self.label}, shape={list(self.shape)}, dtype={self.dtype}, "
                f"trainable={self.trainable})")

    def zero_grad(self):
        """Reset the gradient to zero (call this before each backward pass)"""
        if self.grad is not None:
            self.grad[...] = 0

    def numpy(self):
        """Get the forward value as a numpy array"""
        return self.value

    def item(self):
        """Get the value as a Python scalar (for single-element nodes)"""
        return self.value.item()

    def checkpoint(self):
        from .expression import checkpoint
        return checkpoint(self)

    # =========================
    # OPERATOR OVERLOADS
    # =========================

    def __add__(self, other):
        from .expression import add
        return add(self, other)

    def __radd__(self, other):
        from .expression import add
        return add(other, self)

    def __sub__(self, other):
        from .expression import sub
        return sub(self, other)

    def __rsub__(self, other):
        from .expression import sub
        return sub(other, self)

    def __mul__(self, other):
        from .expression import mul
        return mul(self, other)

    def __rmul__(self, other):
        from .expression import mul
        return mul(other, self)

    def __truediv__(self, other):
        from .expression import div
        return div(self, other)

    def __rtruediv__(self, other):
        from .expression import div
        return div(other, self)

    def __neg__(self):
        from .expression import neg
        return neg(self)

    def __matmul__(self, other):
        from .expression import dot
        return dot(self, other)

    # Identity semantics: nodes are dict keys and set members
    __hash__ = object.__hash__

    # =========================
    # CONVENIENCE METHODS
    # =========================

    def relu(self):
        from .expression import relu
        return relu(self)

    def sigmoid(self):
        from .expression import sigmoid
        return sigmoid(self)

    def tanh(self):
        from .expression import tanh
        return tanh(self)

    def exp(self):
        from .expression import exp
        return exp(self)

    def log(self):
        from .expression import log
        return log(self)

    def sum(self, axis=0):
        from .expression import sum
        return sum(self, axis)

    def mean(self, axis=0):
        from .expression import mean
        return mean(self, axis)

    def reshape(self, *shape):
        from .expression import reshape
        if len(shape) == 1 and not isinstance(shape[0], (int, np.integer)):
            shape = shape[0]
        return reshape(self, shape)

    def transpose(self, *axes):
        from .expression import transpose
        if len(axes) == 1 and not isinstance(axes[0], (int, np.integer)):
            axes = axes[0]
        return transpose(self, axes or None)

    def softmax(self, axis=-1):
        from .expression import softmax
        return softmax(self, axis=axis)


# Public handle type
Expr = Node
