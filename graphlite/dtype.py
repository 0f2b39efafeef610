"""dtypes — element types and their promotion rules."""

import numpy as np

from .errors import ElementTypeError


class dtypes:
    float64 = 'float64'
    float32 = 'float32'
    float16 = 'float16'
    int64 = 'int64'
    int32 = 'int32'
    bool = 'bool'
    float = float32
    half = float16
    default_float = float32
    index = int32

    @staticmethod
    def is_float(d):
        return d in ('float64', 'float32', 'float16')

    @staticmethod
    def is_int(d):
        return d in ('int32', 'int64')

    @staticmethod
    def to_numpy(d):
        return np.dtype(validate(d))

    @staticmethod
    def of(array):
        """Element type of a numpy array (or anything np.asarray accepts)"""
        return validate(np.asarray(array).dtype.name)


_ALL = ('float64', 'float32', 'float16', 'int64', 'int32', 'bool')

# Width order inside each kind
_RANK = {'float16': 0, 'float32': 1, 'float64': 2, 'int32': 0, 'int64': 1, 'bool': 0}


def validate(d):
    """Return d as a known element type name, or raise ElementTypeError"""
    name = d.name if isinstance(d, np.dtype) else str(d)
    if name not in _ALL:
        raise ElementTypeError(f"Unsupported element type: {d!r}")
    return name


def kind(d):
    d = validate(d)
    if dtypes.is_float(d):
        return 'float'
    if dtypes.is_int(d):
        return 'int'
    return 'bool'


def result_type(*types):
    """
    Element type produced by combining nodes of the given types.

    Types of the same kind promote to the widest one. Mixing kinds
    (float with int, anything with bool) is an error: cast explicitly.
    """
    types = [validate(t) for t in types]
    kinds = {kind(t) for t in types}
    if len(kinds) > 1:
        raise ElementTypeError(
            f"Incompatible element types {', '.join(types)}; use cast() first")
    return max(types, key=lambda t: _RANK[t])


def require_float(d, what):
    if not dtypes.is_float(d):
        raise ElementTypeError(f"{what} requires a floating point input, got {d}")
    return d
