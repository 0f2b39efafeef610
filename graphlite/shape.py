"""
GraphLite Shapes

A Shape is an immutable tuple of axis extents. All shape inference in the
operator catalogue is written in terms of broadcast_shapes() and
normalize_axis() plus a bit of per-operator axis arithmetic.
"""

from functools import reduce
from operator import index, mul

from .errors import ShapeError, AxisError


def normalize_axis(axis, rank):
    """
    Map a possibly negative axis into [0, rank).

    normalize_axis(-1, 3) == 2, normalize_axis(3, 3) raises AxisError.
    """
    try:
        axis = index(axis)
    except TypeError:
        raise AxisError(f"Axis must be an integer, got {axis!r}") from None
    if axis < -rank or axis >= rank:
        raise AxisError(f"Axis {axis} is out of range for rank {rank}")
    return axis % rank


class Shape(tuple):
    """Ordered axis extents; every extent must be >= 1"""

    def __new__(cls, extents=()):
        if isinstance(extents, int):
            extents = (extents,)
        extents = tuple(int(e) for e in extents)
        for e in extents:
            if e < 1:
                raise ShapeError(f"Invalid extent {e} in shape {extents}")
        return super().__new__(cls, extents)

    @property
    def rank(self):
        return len(self)

    @property
    def elements(self):
        return reduce(mul, self, 1)

    def normalize_axis(self, axis):
        return normalize_axis(axis, len(self))

    def set(self, axis, extent):
        """Return a copy with one extent replaced"""
        axis = self.normalize_axis(axis)
        extents = list(self)
        extents[axis] = extent
        return Shape(extents)

    def __repr__(self):
        return f"Shape({list(self)})"


def broadcast_shapes(*shapes):
    """
    Broadcast shapes against each other, comparing trailing axes.

    Each pair of extents must be equal or one of them 1:
    broadcast_shapes((4, 1), (1, 5)) == (4, 5)
    broadcast_shapes((3, 4), (5, 4)) raises ShapeError
    """
    shapes = [Shape(s) for s in shapes]
    rank = max((len(s) for s in shapes), default=0)
    result = []
    for i in range(-rank, 0):
        extent = 1
        for s in shapes:
            if -i > len(s):
                continue
            e = s[i]
            if e == 1 or e == extent:
                continue
            if extent != 1:
                raise ShapeError(
                    f"Shapes {', '.join(str(list(s)) for s in shapes)} "
                    f"are not broadcast-compatible")
            extent = e
        result.append(extent)
    return Shape(result)


def resolve_shape(requested, elements):
    """Resolve a requested reshape target, allowing a single -1 extent"""
    requested = [int(e) for e in requested]
    unknown = [i for i, e in enumerate(requested) if e == -1]
    if len(unknown) > 1:
        raise ShapeError(f"Only one -1 extent allowed in {requested}")
    if unknown:
        known = reduce(mul, (e for e in requested if e != -1), 1)
        if known < 1 or elements % known:
            raise ShapeError(f"Cannot reshape {elements} elements into {requested}")
        requested[unknown[0]] = elements // known
    shape = Shape(requested)
    if shape.elements != elements:
        raise ShapeError(f"Cannot reshape {elements} elements into {list(shape)}")
    return shape
