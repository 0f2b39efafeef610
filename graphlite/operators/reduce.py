"""
Reductions and normalizations.

Reductions keep the reduced axis with extent 1, so their results broadcast
straight back against the input (sum(x, -1) has shape [..., 1]).
"""

import numpy as np

from ..dtype import dtypes, require_float, result_type
from ..errors import ElementTypeError, ShapeError
from ..shape import broadcast_shapes, normalize_axis, Shape
from .base import Operator, accumulate


class Reduce(Operator):
    """
    Reduce one axis with sum, mean, std, var, max, min, prod or logsumexp.
    """

    KINDS = ('sum', 'mean', 'std', 'var', 'max', 'min', 'prod', 'logsumexp')
    _FLOAT_ONLY = ('mean', 'std', 'var', 'logsumexp')

    def __init__(self, reduction, axis):
        if reduction not in self.KINDS:
            raise ValueError(f"Unknown reduction {reduction!r}")
        self.reduction = reduction
        self.axis = axis

    def params(self):
        return (self.reduction, self.axis)

    @property
    def kind(self):
        return f"Reduce[{self.reduction}]"

    def infer(self, inputs):
        (a,) = inputs
        if self.reduction in self._FLOAT_ONLY:
            require_float(a.dtype, self.reduction)
        axis = normalize_axis(self.axis, a.shape.rank)
        return a.shape.set(axis, 1), a.dtype

    def forward(self, inputs, out):
        a = inputs[0]
        axis = normalize_axis(self.axis, a.ndim)
        r = self.reduction
        if r == 'logsumexp':
            m = a.max(axis=axis, keepdims=True)
            out[...] = m + np.log(np.exp(a - m).sum(axis=axis, keepdims=True))
        else:
            func = {'sum': np.sum, 'mean': np.mean, 'std': np.std, 'var': np.var,
                    'max': np.max, 'min': np.min, 'prod': np.prod}[r]
            out[...] = func(a, axis=axis, keepdims=True)

    def backward(self, inputs, out, out_grad, input_grads):
        a = inputs[0]
        axis = normalize_axis(self.axis, a.ndim)
        n = a.shape[axis]
        r = self.reduction
        if r == 'sum':
            grad = np.broadcast_to(out_grad, a.shape)
        elif r == 'mean':
            grad = np.broadcast_to(out_grad / n, a.shape)
        elif r == 'var':
            centered = a - a.mean(axis=axis, keepdims=True)
            grad = out_grad * 2.0 * centered / n
        elif r == 'std':
            centered = a - a.mean(axis=axis, keepdims=True)
            # zero subgradient where the spread is zero
            scale = np.divide(1.0, n * out, out=np.zeros_like(out), where=out > 0)
            grad = out_grad * centered * scale
        elif r in ('max', 'min'):
            grad = out_grad * (a == out)
        elif r == 'prod':
            grad = out_grad * _prod_of_others(a, axis)
        else:
            grad = out_grad * np.exp(a - out)
        accumulate(input_grads, 0, grad)


def _prod_of_others(a, axis):
    """Product of all elements along axis except the one at each position"""
    ones = np.ones(a.shape[:axis] + (1,) + a.shape[axis + 1:], dtype=a.dtype)
    head = np.concatenate([ones, np.take(a, range(a.shape[axis] - 1), axis=axis)], axis=axis)
    tail = np.concatenate([np.take(a, range(1, a.shape[axis]), axis=axis), ones], axis=axis)
    left = np.cumprod(head, axis=axis)
    right = np.flip(np.cumprod(np.flip(tail, axis=axis), axis=axis), axis=axis)
    return left * right


class ScalarProduct(Operator):
    """sum(a * b) along one axis, with broadcasting between a and b"""

    def __init__(self, axis):
        self.axis = axis

    def params(self):
        return (self.axis,)

    def infer(self, inputs):
        a, b = inputs
        shape = broadcast_shapes(a.shape, b.shape)
        axis = normalize_axis(self.axis, shape.rank)
        return shape.set(axis, 1), result_type(a.dtype, b.dtype)

    def forward(self, inputs, out):
        a, b = inputs
        prod = a * b
        out[...] = prod.sum(axis=normalize_axis(self.axis, prod.ndim), keepdims=True)

    def backward(self, inputs, out, out_grad, input_grads):
        a, b = inputs
        accumulate(input_grads, 0, out_grad * b)
        accumulate(input_grads, 1, out_grad * a)


class Softmax(Operator):
    def __init__(self, axis=-1):
        self.axis = axis

    def params(self):
        return (self.axis,)

    def infer(self, inputs):
        (a,) = inputs
        require_float(a.dtype, "softmax")
        normalize_axis(self.axis, a.shape.rank)
        return a.shape, a.dtype

    def forward(self, inputs, out):
        a = inputs[0]
        axis = normalize_axis(self.axis, a.ndim)
        # Numerical stability: subtract max
        exp_x = np.exp(a - a.max(axis=axis, keepdims=True))
        out[...] = exp_x / exp_x.sum(axis=axis, keepdims=True)

    def backward(self, inputs, out, out_grad, input_grads):
        axis = normalize_axis(self.axis, out.ndim)
        dot = np.sum(out_grad * out, axis=axis, keepdims=True)
        accumulate(input_grads, 0, out * (out_grad - dot))


class LogSoftmax(Softmax):
    def forward(self, inputs, out):
        a = inputs[0]
        axis = normalize_axis(self.axis, a.ndim)
        shifted = a - a.max(axis=axis, keepdims=True)
        out[...] = shifted - np.log(np.exp(shifted).sum(axis=axis, keepdims=True))

    def backward(self, inputs, out, out_grad, input_grads):
        axis = normalize_axis(self.axis, out.ndim)
        total = np.sum(out_grad, axis=axis, keepdims=True)
        accumulate(input_grads, 0, out_grad - np.exp(out) * total)


def _label_index(logits, indices):
    """Integer labels as an array of shape logits.shape[:-1] + (1,)"""
    return indices.reshape(logits.shape[:-1] + (1,)).astype(np.int64)


class CrossEntropy(Operator):
    """
    Cross-entropy of logits [..., V] against integer labels [...] or
    [..., 1], with optional label smoothing alpha:

        ce = -(1 - alpha) * logp[label] - alpha * mean(logp)

    The result has shape [..., 1].
    """

    def __init__(self, label_smoothing=0.0):
        self.label_smoothing = float(label_smoothing)

    def params(self):
        return (self.label_smoothing,)

    def infer(self, inputs):
        logits, labels = inputs
        require_float(logits.dtype, "cross_entropy")
        if not dtypes.is_int(labels.dtype):
            raise ElementTypeError(f"cross_entropy labels must be integers, got {labels.dtype}")
        batch = logits.shape[:-1]
        if tuple(labels.shape) not in (tuple(batch), tuple(batch) + (1,)):
            raise ShapeError(
                f"Labels {list(labels.shape)} do not match logits {list(logits.shape)}")
        return Shape(tuple(batch) + (1,)), logits.dtype

    def _log_probs(self, logits):
        shifted = logits - logits.max(axis=-1, keepdims=True)
        return shifted - np.log(np.exp(shifted).sum(axis=-1, keepdims=True))

    def forward(self, inputs, out):
        logits, labels = inputs
        logp = self._log_probs(logits)
        picked = np.take_along_axis(logp, _label_index(logits, labels), axis=-1)
        alpha = self.label_smoothing
        out[...] = -(1 - alpha) * picked - alpha * logp.mean(axis=-1, keepdims=True)

    def backward(self, inputs, out, out_grad, input_grads):
        logits, labels = inputs
        probs = np.exp(self._log_probs(logits))
        onehot = np.zeros_like(logits)
        np.put_along_axis(onehot, _label_index(logits, labels), 1.0, axis=-1)
        alpha = self.label_smoothing
        target = (1 - alpha) * onehot + alpha / logits.shape[-1]
        accumulate(input_grads, 0, out_grad * (probs - target))


class LayerNorm(Operator):
    """
    Normalize over the last axis, then scale by gamma and shift by beta.
    Inputs are (x, gamma) or (x, gamma, beta).
    """

    def __init__(self, eps=1e-9):
        self.eps = float(eps)

    def params(self):
        return (self.eps,)

    def infer(self, inputs):
        shape = broadcast_shapes(*(node.shape for node in inputs))
        if shape != inputs[0].shape:
            raise ShapeError(
                f"layer_norm scale/shift {[list(n.shape) for n in inputs[1:]]} "
                f"must broadcast to input {list(inputs[0].shape)}")
        dtype = result_type(*(node.dtype for node in inputs))
        return shape, require_float(dtype, "layer_norm")

    def _normalize(self, x):
        mean = x.mean(axis=-1, keepdims=True)
        inv_std = 1.0 / np.sqrt(x.var(axis=-1, keepdims=True) + self.eps)
        return (x - mean) * inv_std, inv_std

    def forward(self, inputs, out):
        xhat, _ = self._normalize(inputs[0])
        result = xhat * inputs[1]
        if len(inputs) > 2:
            result = result + inputs[2]
        out[...] = result

    def backward(self, inputs, out, out_grad, input_grads):
        x, gamma = inputs[0], inputs[1]
        xhat, inv_std = self._normalize(x)
        n = x.shape[-1]
        if input_grads[0] is not None:
            g = out_grad * gamma
            dx = inv_std / n * (n * g
                                - g.sum(axis=-1, keepdims=True)
                                - xhat * (g * xhat).sum(axis=-1, keepdims=True))
            accumulate(input_grads, 0, dx)
        accumulate(input_grads, 1, out_grad * xhat)
        if len(inputs) > 2:
            accumulate(input_grads, 2, out_grad)


class TopK(Operator):
    """
    The k largest (or smallest) entries along an axis, ordered. With
    indices=True the operator yields their positions instead (int32, no
    gradient).
    """

    def __init__(self, k, axis=-1, descending=True, indices=False):
        self.k = int(k)
        self.axis = axis
        self.descending = bool(descending)
        self.indices = bool(indices)
        if indices:
            self.differentiable = False

    def params(self):
        return (self.k, self.axis, self.descending, self.indices)

    def infer(self, inputs):
        (a,) = inputs
        axis = normalize_axis(self.axis, a.shape.rank)
        if not 1 <= self.k <= a.shape[axis]:
            raise ShapeError(f"topk k={self.k} is out of range for extent {a.shape[axis]}")
        return a.shape.set(axis, self.k), (dtypes.index if self.indices else a.dtype)

    def _positions(self, a):
        axis = normalize_axis(self.axis, a.ndim)
        keys = -a if self.descending else a
        return np.argsort(keys, axis=axis, kind='stable').take(range(self.k), axis=axis)

    def forward(self, inputs, out):
        a = inputs[0]
        positions = self._positions(a)
        if self.indices:
            out[...] = positions
        else:
            out[...] = np.take_along_axis(a, positions, axis=normalize_axis(self.axis, a.ndim))

    def backward(self, inputs, out, out_grad, input_grads):
        a = inputs[0]
        grad = np.zeros_like(a)
        np.put_along_axis(grad, self._positions(a), out_grad,
                          axis=normalize_axis(self.axis, a.ndim))
        accumulate(input_grads, 0, grad)
