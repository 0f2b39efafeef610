"""
Shape manipulation and indexing operators.
"""

import numpy as np

from ..dtype import dtypes, result_type
from ..errors import AxisError, ElementTypeError, ShapeError
from ..shape import normalize_axis, resolve_shape, Shape
from .base import Operator, accumulate


class Transpose(Operator):
    """Permute axes: output axis i is input axis axes[i]"""

    def __init__(self, axes):
        self.axes = tuple(int(a) for a in axes)

    def params(self):
        return (self.axes,)

    def _normalized(self, rank):
        if len(self.axes) != rank:
            raise AxisError(f"Permutation {list(self.axes)} does not match rank {rank}")
        axes = tuple(normalize_axis(a, rank) for a in self.axes)
        if sorted(axes) != list(range(rank)):
            raise AxisError(f"{list(self.axes)} is not a permutation of {rank} axes")
        return axes

    def infer(self, inputs):
        (a,) = inputs
        axes = self._normalized(a.shape.rank)
        return Shape(a.shape[i] for i in axes), a.dtype

    def forward(self, inputs, out):
        out[...] = np.transpose(inputs[0], self._normalized(inputs[0].ndim))

    def backward(self, inputs, out, out_grad, input_grads):
        # Inverse permutation
        axes = self._normalized(out_grad.ndim)
        inv_axes = [0] * len(axes)
        for i, a in enumerate(axes):
            inv_axes[a] = i
        accumulate(input_grads, 0, np.transpose(out_grad, inv_axes))


class Reshape(Operator):
    """Same elements, new shape; shares the input buffer when possible"""

    view = True

    def __init__(self, shape):
        self.shape = tuple(int(e) for e in shape)

    def params(self):
        return (self.shape,)

    def infer(self, inputs):
        (a,) = inputs
        return resolve_shape(self.shape, a.shape.elements), a.dtype

    def view_of(self, inputs):
        a = inputs[0]
        return a.reshape(resolve_shape(self.shape, a.size))

    def backward(self, inputs, out, out_grad, input_grads):
        accumulate(input_grads, 0, out_grad.reshape(inputs[0].shape))


class Concatenate(Operator):
    """Join inputs along one axis; all other extents must match"""

    def __init__(self, axis=0):
        self.axis = axis

    def params(self):
        return (self.axis,)

    def infer(self, inputs):
        first = inputs[0].shape
        axis = normalize_axis(self.axis, first.rank)
        total = 0
        for node in inputs:
            s = node.shape
            if s.rank != first.rank or any(
                    s[i] != first[i] for i in range(first.rank) if i != axis):
                raise ShapeError(f"Cannot concatenate {list(s)} with {list(first)} along axis {self.axis}")
            total += s[axis]
        return first.set(axis, total), result_type(*(node.dtype for node in inputs))

    def forward(self, inputs, out):
        out[...] = np.concatenate(inputs, axis=normalize_axis(self.axis, out.ndim))

    def backward(self, inputs, out, out_grad, input_grads):
        axis = normalize_axis(self.axis, out_grad.ndim)
        offset = 0
        for i, x in enumerate(inputs):
            width = x.shape[axis]
            accumulate(input_grads, i, np.take(out_grad, range(offset, offset + width), axis=axis))
            offset += width


class Slice(Operator):
    """
    Python-style slice along one axis. An integer index selects a single
    position and keeps the axis with extent 1.
    """

    def __init__(self, axis, index):
        if isinstance(index, slice):
            index = (index.start, index.stop, index.step)
        self.axis = axis
        self.index = index

    def params(self):
        return (self.axis, self.index)

    def _index(self, shape):
        axis = normalize_axis(self.axis, len(shape))
        extent = shape[axis]
        if isinstance(self.index, tuple):
            sl = slice(*self.index)
        else:
            if not -extent <= self.index < extent:
                raise ShapeError(f"Index {self.index} out of range for extent {extent}")
            start = self.index % extent
            sl = slice(start, start + 1)
        width = len(range(*sl.indices(extent)))
        if width == 0:
            raise ShapeError(f"Slice {sl} of axis {self.axis} (extent {extent}) is empty")
        index = [slice(None)] * len(shape)
        index[axis] = sl
        return tuple(index), axis, width

    def infer(self, inputs):
        (a,) = inputs
        _, axis, width = self._index(a.shape)
        return a.shape.set(axis, width), a.dtype

    def forward(self, inputs, out):
        index, _, _ = self._index(inputs[0].shape)
        out[...] = inputs[0][index]

    def backward(self, inputs, out, out_grad, input_grads):
        target = input_grads[0]
        if target is None:
            return
        index, _, _ = self._index(inputs[0].shape)
        target[index] += out_grad


def _require_indices(node, what):
    if not dtypes.is_int(node.dtype):
        raise ElementTypeError(f"{what} indices must be integers, got {node.dtype}")


class IndexSelect(Operator):
    """Pick positions along an axis; inputs are (a, indices) with 1-D indices"""

    def __init__(self, axis):
        self.axis = axis

    def params(self):
        return (self.axis,)

    def infer(self, inputs):
        a, indices = inputs
        _require_indices(indices, "index_select")
        if indices.shape.rank != 1:
            raise ShapeError(f"index_select expects 1-D indices, got {list(indices.shape)}")
        axis = normalize_axis(self.axis, a.shape.rank)
        return a.shape.set(axis, indices.shape[0]), a.dtype

    def forward(self, inputs, out):
        a, indices = inputs
        out[...] = np.take(a, indices, axis=normalize_axis(self.axis, a.ndim))

    def backward(self, inputs, out, out_grad, input_grads):
        target = input_grads[0]
        if target is None:
            return
        a, indices = inputs
        axis = normalize_axis(self.axis, a.ndim)
        # moveaxis returns a view, so add.at writes into target
        np.add.at(np.moveaxis(target, axis, 0), indices, np.moveaxis(out_grad, axis, 0))


class Gather(Operator):
    """
    out[..., i, ...] = a[..., indices[..., i, ...], ...] along one axis.
    indices has a's rank and matches a on every other axis.
    """

    def __init__(self, axis):
        self.axis = axis

    def params(self):
        return (self.axis,)

    def infer(self, inputs):
        a, indices = inputs
        _require_indices(indices, "gather")
        axis = normalize_axis(self.axis, a.shape.rank)
        if indices.shape.rank != a.shape.rank or any(
                indices.shape[i] != a.shape[i] for i in range(a.shape.rank) if i != axis):
            raise ShapeError(f"gather indices {list(indices.shape)} do not match "
                             f"{list(a.shape)} outside axis {self.axis}")
        return indices.shape, a.dtype

    def forward(self, inputs, out):
        a, indices = inputs
        out[...] = np.take_along_axis(a, indices.astype(np.int64), axis=normalize_axis(self.axis, a.ndim))

    def backward(self, inputs, out, out_grad, input_grads):
        target = input_grads[0]
        if target is None:
            return
        a, indices = inputs
        axis = normalize_axis(self.axis, a.ndim)
        # Scatter-add so repeated indices accumulate
        index = list(np.indices(indices.shape, sparse=True))
        index[axis] = indices.astype(np.int64)
        np.add.at(target, tuple(index), out_grad)
