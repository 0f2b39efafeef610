import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from graphlite import ExpressionGraph  # noqa: E402


@pytest.fixture
def graph():
    return ExpressionGraph(dtype="float64", seed=0)


def numeric_grad(f, x, eps=1e-6):
    """Central differences of a scalar function f at array x"""
    x = np.array(x, dtype=np.float64)
    grad = np.zeros_like(x)
    for idx in np.ndindex(*x.shape):
        old = x[idx]
        x[idx] = old + eps
        hi = f(x)
        x[idx] = old - eps
        lo = f(x)
        x[idx] = old
        grad[idx] = (hi - lo) / (2 * eps)
    return grad
