"""
GraphLite Errors

Every error the engine raises derives from GraphError, and also from the
closest builtin so callers can catch ValueError/TypeError as usual.
"""


class GraphError(Exception):
    """Base class for all graph engine errors"""


class ShapeError(GraphError, ValueError):
    """Incompatible shapes found while building an expression"""


class AxisError(ShapeError, IndexError):
    """Axis outside of [-rank, rank)"""


class ElementTypeError(GraphError, TypeError):
    """Incompatible element types, e.g. adding an int32 to a float32 node"""


class GraphStateError(GraphError, RuntimeError):
    """
    The graph is in the wrong state for the call.

    Raised for backward() before forward(), for nodes that belong to another
    graph or to an expired episode. The current episode cannot continue;
    call reset() and rebuild.
    """


class UnsupportedOperationError(GraphError, NotImplementedError):
    """An operator form that is declared but intentionally not supported"""
