"""
GraphLite - expression graphs with reverse-mode automatic differentiation
Build a computation once, run it forward, get gradients for every parameter
"""

from .errors import (
    GraphError, ShapeError, AxisError, ElementTypeError, GraphStateError,
    UnsupportedOperationError,
)
from .dtype import dtypes
from .shape import Shape, broadcast_shapes, normalize_axis
from .node import Node, Expr
from .graph import ExpressionGraph
from . import initializers as inits
from .expression import *  # noqa: F401,F403
from . import expression
from . import nn
from . import optim
from . import visualize
from . import logger

__version__ = "0.1.0"
