"""
GraphLite Initializers

An initializer produces the value of a leaf node (constant or parameter).
Every initializer is a callable

    init(shape, dtype, rng) -> numpy array of that shape

where rng is the graph's numpy Generator. The graph calls it once, when the
leaf is first needed, and copies the result into a buffer it owns.
"""

import numpy as np

from .dtype import dtypes
from .errors import ShapeError


def zeros():
    """All zeros"""
    def init(shape, dtype, rng):
        return np.zeros(shape, dtype=dtypes.to_numpy(dtype))
    return init


def ones():
    """All ones"""
    def init(shape, dtype, rng):
        return np.ones(shape, dtype=dtypes.to_numpy(dtype))
    return init


def from_value(value):
    """Fill every element with one scalar"""
    def init(shape, dtype, rng):
        return np.full(shape, value, dtype=dtypes.to_numpy(dtype))
    return init


def _check_size(array, shape):
    size = int(np.prod(tuple(shape), dtype=np.int64))
    if array.size != size:
        raise ShapeError(
            f"Initializer holds {array.size} values, node {list(shape)} needs {size}")


def from_array(array):
    """
    Use the given values. The array must have exactly the node's element
    count; it is reshaped (not broadcast) to the node's shape.
    """
    array = np.asarray(array)

    def init(shape, dtype, rng):
        _check_size(array, shape)
        return array.reshape(shape).astype(dtypes.to_numpy(dtype))
    init.values = array
    return init


def normal(mean=0.0, std=1.0):
    def init(shape, dtype, rng):
        return rng.normal(mean, std, size=shape).astype(dtypes.to_numpy(dtype))
    return init


def uniform(low=0.0, high=1.0):
    def init(shape, dtype, rng):
        return rng.uniform(low, high, size=shape).astype(dtypes.to_numpy(dtype))
    return init


def glorot_uniform():
    """
    Glorot/Xavier uniform: U(-a, a), a = sqrt(6 / (fan_in + fan_out)),
    using the last two axes as (fan_in, fan_out).
    """
    def init(shape, dtype, rng):
        fan_in = shape[-2] if len(shape) > 1 else 1
        fan_out = shape[-1] if len(shape) else 1
        limit = np.sqrt(6.0 / (fan_in + fan_out))
        return rng.uniform(-limit, limit, size=shape).astype(dtypes.to_numpy(dtype))
    return init


def he_normal(fan_in=None):
    """He initialization: N(0, 2 / fan_in), fan_in defaults to shape[0]"""
    def init(shape, dtype, rng):
        n = fan_in if fan_in is not None else (shape[0] if len(shape) else 1)
        scale = np.sqrt(2.0 / n)
        return (rng.standard_normal(size=shape) * scale).astype(dtypes.to_numpy(dtype))
    return init


def dropout(prob):
    """
    Inverted dropout keep-mask: 0 with probability prob, else 1 / (1 - prob),
    so the expected value of x * mask is x.
    """
    if not 0.0 <= prob < 1.0:
        raise ValueError(f"Dropout probability must be in [0, 1), got {prob}")

    def init(shape, dtype, rng):
        keep = rng.random(size=shape) >= prob
        return (keep / (1.0 - prob)).astype(dtypes.to_numpy(dtype))
    return init


def range_(start=0):
    """start, start + 1, ... in row-major order"""
    def init(shape, dtype, rng):
        size = int(np.prod(shape, dtype=np.int64))
        return np.arange(start, start + size).reshape(shape).astype(dtypes.to_numpy(dtype))
    return init


def as_initializer(init, shape=None):
    """
    Accept an initializer callable or a literal value (scalar or array-like).
    With shape given, literal values are checked against it right away.
    """
    if not callable(init):
        array = np.asarray(init)
        if array.ndim == 0:
            return from_value(array.item())
        init = from_array(array)
    values = getattr(init, 'values', None)
    if shape is not None and values is not None:
        _check_size(values, shape)
    return init
