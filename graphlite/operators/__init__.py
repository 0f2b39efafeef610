"""
GraphLite operator catalogue.

Each operator implements the Operator contract from base.py; the graph
engine never looks further inside an operator than that contract.
"""

from .base import Operator, ElementwiseOperator, unbroadcast, accumulate
from .elementwise import (
    Plus, Minus, Mult, Div, Maximum, Minimum, LogAddExp, Compare,
    Neg, ScalarAdd, ScalarMult, Sqrt, Square, Abs, Exp, Log, Sin, Cos, Tan,
    Sigmoid, Swish, ReLU, PReLU, Clip, ClipGradient, StopGradient, Cast, Debug,
    Tanh, Highway,
)
from .reduce import (
    Reduce, ScalarProduct, Softmax, LogSoftmax, CrossEntropy, LayerNorm, TopK,
)
from .linalg import MatMul
from .manipulation import (
    Transpose, Reshape, Concatenate, Slice, IndexSelect, Gather,
)
from .custom import Lambda
