"""
GraphLite expression operators - the functional API.

Every function takes Exprs (plus plain Python parameters) and returns a
new Expr on the graph its inputs belong to. Floats mixed with Exprs are
either folded into scalar operators (x + 1.0, 2.0 * x) or promoted to
constants of the other operand's element type.

Reductions keep the reduced axis with extent 1:

    sum(x, axis=0)          # x: [2, 3] -> [1, 3]
"""

import numpy as np

from .dtype import dtypes
from .errors import ShapeError, UnsupportedOperationError
from .initializers import from_array, from_value
from .node import Node
from .shape import normalize_axis
from . import operators as ops

__all__ = [
    'debug', 'checkpoint', 'lambda_op',
    'plus', 'sigmoid', 'swish', 'gelu', 'tanh', 'relu', 'leakyrelu', 'prelu',
    'log', 'exp', 'sin', 'cos', 'tan',
    'neg', 'add', 'sub', 'mul', 'div', 'sqrt', 'square', 'abs', 'logaddexp',
    'maximum', 'minimum', 'topk', 'argmax', 'argmin',
    'lt', 'eq', 'gt', 'ge', 'ne', 'le',
    'dot', 'bdot', 'affine',
    'transpose', 'swap_axes', 'cast', 'concatenate', 'repeat', 'reshape',
    'clip', 'clip_gradient', 'atleast_1d', 'atleast_2d', 'atleast_3d',
    'atleast_4d', 'atleast_nd', 'constant_like', 'flatten', 'flatten_2d',
    'stop_gradient', 'gather', 'index_select', 'rows', 'cols', 'slice', 'narrow',
    'sum', 'mean', 'std', 'var', 'max', 'min', 'prod', 'logsumexp',
    'softmax', 'logsoftmax', 'cross_entropy', 'scalar_product',
    'weighted_average', 'layer_norm', 'highway', 'dropout',
]


# =========================
# HELPERS
# =========================

def _is_expr(x):
    return isinstance(x, Node)


def _graph_of(*items):
    for x in items:
        if _is_expr(x):
            return x.graph
    raise TypeError("At least one argument must be an Expr")


def _as_expr(x, like):
    """Promote a number or array-like to a constant of like's element type"""
    if _is_expr(x):
        return x
    value = np.asarray(x)
    if value.ndim == 0:
        return like.graph.constant((), from_value(value.item()), dtype=like.dtype)
    return like.graph.constant(value.shape, from_array(value), dtype=like.dtype)


def _as_indices(indices, like, shape=None):
    if _is_expr(indices):
        return indices
    value = np.asarray(indices)
    return like.graph.constant(shape if shape is not None else value.shape,
                               from_array(value), dtype=dtypes.index)


def _is_number(x):
    return isinstance(x, (int, float, np.number)) and not isinstance(x, bool)


def _single(nodes, name):
    """List forms of single-input activations only accept one element"""
    if isinstance(nodes, (list, tuple)):
        if len(nodes) != 1:
            raise UnsupportedOperationError(
                f"{name} of {len(nodes)} expressions is not supported; pass a single expression")
        return nodes[0]
    return nodes


def _unary(op, a):
    return a.graph.add(op, [a])


def _binary(op, a, b):
    graph = _graph_of(a, b)
    a = _as_expr(a, b) if not _is_expr(a) else a
    b = _as_expr(b, a) if not _is_expr(b) else b
    return graph.add(op, [a, b])


# =========================
# GRAPH-LEVEL HELPERS
# =========================

def debug(a, message=""):
    """Identity that reports value and gradient of a when they are computed"""
    graph = a.graph
    return graph.add(ops.Debug(message or a.label, graph._debug_sink), [a])


def checkpoint(a):
    """
    Mark a for checkpointing and return it: its value is dropped once its
    consumers have run forward, and recomputed during backward.
    """
    a.graph._check_node(a)
    if not a.is_leaf:
        a.is_checkpoint = True
    return a


def lambda_op(inputs, shape, dtype, forward_fn, backward_fn=None, name=None):
    """
    Custom operator from plain functions:

        forward_fn(inputs, out)
        backward_fn(inputs, out, out_grad, input_grads)

    Without backward_fn the result carries no gradient.
    """
    inputs = list(inputs)
    if not inputs:
        raise ValueError("lambda_op needs at least one input")
    op = ops.Lambda(shape, dtype, forward_fn, backward_fn, name=name)
    return inputs[0].graph.add(op, inputs)


# =========================
# ACTIVATIONS
# =========================

def plus(nodes):
    """Linear activation: returns nodes[0]"""
    return _single(nodes, "plus")


def sigmoid(a):
    return _unary(ops.Sigmoid(), _single(a, "sigmoid"))


def swish(a, beta=1.0):
    return _unary(ops.Swish(beta), _single(a, "swish"))


def gelu(a):
    """Approximate GELU, x * sigmoid(1.702 x)"""
    return _unary(ops.Swish(1.702), _single(a, "gelu"))


def tanh(*nodes):
    """tanh of the sum of all arguments (a single list is accepted too)"""
    if len(nodes) == 1 and isinstance(nodes[0], (list, tuple)):
        nodes = tuple(nodes[0])
    if not nodes:
        raise ValueError("tanh needs at least one expression")
    return nodes[0].graph.add(ops.Tanh(), nodes)


def relu(a):
    return _unary(ops.ReLU(), _single(a, "relu"))


def leakyrelu(a):
    return _unary(ops.PReLU(0.01), _single(a, "leakyrelu"))


def prelu(a, alpha=0.01):
    return _unary(ops.PReLU(alpha), _single(a, "prelu"))


# =========================
# MATHEMATICAL
# =========================

def log(a):
    return _unary(ops.Log(), a)


def exp(a):
    return _unary(ops.Exp(), a)


def sin(a):
    return _unary(ops.Sin(), a)


def cos(a):
    return _unary(ops.Cos(), a)


def tan(a):
    return _unary(ops.Tan(), a)


def neg(a):
    return _unary(ops.Neg(), a)


def add(a, b):
    if _is_expr(a) and _is_number(b):
        return _unary(ops.ScalarAdd(b), a)
    if _is_number(a) and _is_expr(b):
        return _unary(ops.ScalarAdd(a), b)
    return _binary(ops.Plus(), a, b)


def sub(a, b):
    if _is_expr(a) and _is_number(b):
        return _unary(ops.ScalarAdd(-b), a)
    if _is_number(a) and _is_expr(b):
        return _unary(ops.ScalarAdd(a), neg(b))
    return _binary(ops.Minus(), a, b)


def mul(a, b):
    if _is_expr(a) and _is_number(b):
        return _unary(ops.ScalarMult(b), a)
    if _is_number(a) and _is_expr(b):
        return _unary(ops.ScalarMult(a), b)
    return _binary(ops.Mult(), a, b)


def div(a, b):
    if _is_expr(a) and _is_number(b):
        return _unary(ops.ScalarMult(1.0 / b), a)
    return _binary(ops.Div(), a, b)


def sqrt(a, eps=0.0):
    return _unary(ops.Sqrt(eps), a)


def square(a):
    return _unary(ops.Square(), a)


def abs(a):
    return _unary(ops.Abs(), a)


def logaddexp(a, b):
    return _binary(ops.LogAddExp(), a, b)


def maximum(a, b):
    return _binary(ops.Maximum(), a, b)


def minimum(a, b):
    return _binary(ops.Minimum(), a, b)


def topk(a, k, axis=-1, descending=True):
    """Returns (values, indices) of the k largest (smallest) entries"""
    values = a.graph.add(ops.TopK(k, axis, descending), [a])
    indices = a.graph.add(ops.TopK(k, axis, descending, indices=True), [a])
    return values, indices


def argmax(a, axis):
    return topk(a, 1, axis, descending=True)


def argmin(a, axis):
    return topk(a, 1, axis, descending=False)


# =========================
# COMPARISON
# =========================

def lt(a, b):
    return _binary(ops.Compare('lt'), a, b)


def eq(a, b):
    return _binary(ops.Compare('eq'), a, b)


def gt(a, b):
    return _binary(ops.Compare('gt'), a, b)


def ge(a, b):
    return _binary(ops.Compare('ge'), a, b)


def ne(a, b):
    return _binary(ops.Compare('ne'), a, b)


def le(a, b):
    return _binary(ops.Compare('le'), a, b)


# =========================
# LINEAR ALGEBRA
# =========================

def dot(a, b, trans_a=False, trans_b=False, scalar=1.0):
    """scalar * a @ b, where b is a matrix and a may have batch axes"""
    return _binary(ops.MatMul(trans_a, trans_b, scalar), a, b)


def bdot(a, b, trans_a=False, trans_b=False, scalar=1.0):
    """Batched product; batch axes of a and b broadcast"""
    return _binary(ops.MatMul(trans_a, trans_b, scalar, batched=True), a, b)


def affine(a, b, bias, trans_a=False, trans_b=False, scalar=1.0):
    """dot(a, b) + bias"""
    return add(dot(a, b, trans_a, trans_b, scalar), bias)


# =========================
# MANIPULATION
# =========================

def transpose(a, axes=None):
    """Permute axes; without axes, swap the last two"""
    if axes is None:
        if a.shape.rank < 2:
            raise ShapeError(f"transpose needs rank >= 2, got {list(a.shape)}")
        axes = list(range(a.shape.rank))
        axes[-1], axes[-2] = axes[-2], axes[-1]
    return _unary(ops.Transpose(axes), a)


def swap_axes(x, axis1, axis2):
    rank = x.shape.rank
    axis1, axis2 = normalize_axis(axis1, rank), normalize_axis(axis2, rank)
    if axis1 == axis2:
        return x
    axes = list(range(rank))
    axes[axis1], axes[axis2] = axes[axis2], axes[axis1]
    return transpose(x, axes)


def cast(a, dtype=dtypes.float32):
    if a.dtype == dtype:
        return a
    return _unary(ops.Cast(dtype), a)


def concatenate(nodes, axis=0):
    nodes = list(nodes)
    if not nodes:
        raise ValueError("concatenate needs at least one expression")
    if len(nodes) == 1:
        return nodes[0]
    return nodes[0].graph.add(ops.Concatenate(axis), nodes)


def repeat(a, repeats, axis=0):
    """Repeat a along axis repeats times (as a concatenation of copies)"""
    if repeats < 1:
        raise ShapeError(f"repeat needs repeats >= 1, got {repeats}")
    if repeats == 1:
        return a
    return concatenate([a] * repeats, axis)


def reshape(a, shape):
    return _unary(ops.Reshape(shape), a)


def clip(a, c):
    return _unary(ops.Clip(c), a)


def clip_gradient(a, c):
    return _unary(ops.ClipGradient(c), a)


def atleast_nd(a, dims):
    """Prepend axes of extent 1 until a has at least dims axes"""
    missing = dims - a.shape.rank
    if missing <= 0:
        return a
    return reshape(a, (1,) * missing + tuple(a.shape))


def atleast_1d(a):
    return atleast_nd(a, 1)


def atleast_2d(a):
    return atleast_nd(a, 2)


def atleast_3d(a):
    return atleast_nd(a, 3)


def atleast_4d(a):
    return atleast_nd(a, 4)


def constant_like(a, init):
    """Constant with a's shape and element type"""
    return a.graph.constant(a.shape, init, dtype=a.dtype)


def flatten(a):
    return reshape(a, (a.shape.elements,))


def flatten_2d(a):
    """Collapse all but the last axis"""
    last = a.shape[-1] if a.shape.rank else 1
    return reshape(a, (a.shape.elements // last, last))


def stop_gradient(a):
    return _unary(ops.StopGradient(), a)


def gather(a, axis, indices):
    return a.graph.add(ops.Gather(axis), [a, _as_indices(indices, a)])


def index_select(a, axis, indices):
    return a.graph.add(ops.IndexSelect(axis), [a, _as_indices(indices, a)])


def rows(a, indices):
    return index_select(a, 0, indices)


def cols(a, indices):
    return index_select(a, -1, indices)


def slice(a, axis, index):
    """
    Slice along one axis. index is an int (keeps the axis, extent 1) or a
    Python slice object.
    """
    return _unary(ops.Slice(axis, index), a)


def narrow(a, axis, start, length):
    return _unary(ops.Slice(axis, (start, start + length, None)), a)


# =========================
# REDUCTIONS
# =========================

def sum(a, axis=0):
    return _unary(ops.Reduce('sum', axis), a)


def mean(a, axis=0):
    return _unary(ops.Reduce('mean', axis), a)


def std(a, axis):
    return _unary(ops.Reduce('std', axis), a)


def var(a, axis):
    return _unary(ops.Reduce('var', axis), a)


def max(a, axis):
    return _unary(ops.Reduce('max', axis), a)


def min(a, axis):
    return _unary(ops.Reduce('min', axis), a)


def prod(a, axis):
    return _unary(ops.Reduce('prod', axis), a)


def logsumexp(a, axis):
    return _unary(ops.Reduce('logsumexp', axis), a)


def softmax(x, axis=-1, mask=None):
    """
    Softmax along axis. With a 0/1 mask, masked-out positions get (almost)
    zero probability.
    """
    if mask is not None:
        lowest = float(np.finfo(dtypes.to_numpy(x.dtype)).min) / 2
        x = add(x, mul(sub(1.0, mask), lowest))
    return _unary(ops.Softmax(axis), x)


def logsoftmax(a, axis=-1):
    return _unary(ops.LogSoftmax(axis), a)


def cross_entropy(logits, labels, label_smoothing=0.0):
    """Per-position cross-entropy of logits [..., V] and integer labels [...]"""
    labels = _as_indices(labels, logits)
    return logits.graph.add(ops.CrossEntropy(label_smoothing), [logits, labels])


def scalar_product(a, b, axis=0):
    return _binary(ops.ScalarProduct(axis), a, b)


def weighted_average(x, weights, axis=0):
    return div(scalar_product(x, weights, axis), sum(weights, axis))


def layer_norm(x, gamma, beta=None, eps=1e-9):
    inputs = [x, gamma] if beta is None else [x, gamma, beta]
    return x.graph.add(ops.LayerNorm(eps), inputs)


def highway(y, x, t):
    """sigmoid(t) * y + (1 - sigmoid(t)) * x"""
    return x.graph.add(ops.Highway(), [y, x, t])


def dropout(x, prob, shape=None):
    """
    Multiply by a dropout mask. prob is a probability (a fresh inverted
    dropout mask of `shape`, default x's shape, is drawn) or a mask Expr.
    """
    if _is_expr(prob):
        return mul(x, prob)
    if prob == 0:
        return x
    mask = x.graph.dropout_mask(prob, shape if shape is not None else x.shape, dtype=x.dtype)
    return mul(x, mask)
