"""Tests for user-defined lambda operators."""

import numpy as np
import pytest

import graphlite as gl
from graphlite import ElementTypeError, ExpressionGraph


def cube_forward(inputs, out):
    out[...] = inputs[0] ** 3


def cube_backward(inputs, out, out_grad, input_grads):
    if input_grads[0] is not None:
        input_grads[0] += 3 * inputs[0] ** 2 * out_grad


def outer_forward(inputs, out):
    out[...] = np.outer(inputs[0], inputs[1])


def outer_backward(inputs, out, out_grad, input_grads):
    a, b = inputs
    if input_grads[0] is not None:
        input_grads[0] += out_grad @ b
    if input_grads[1] is not None:
        input_grads[1] += out_grad.T @ a


class TestLambda:
    def test_forward_backward(self, graph):
        a = graph.parameter('a', (3,), np.array([1.0, 2.0, 3.0]))
        c = gl.lambda_op([a], (3,), 'float64', cube_forward, cube_backward)
        y = gl.sum(c, axis=0)
        graph.forward()
        np.testing.assert_allclose(c.value, [1.0, 8.0, 27.0])
        graph.backward(y)
        np.testing.assert_allclose(a.grad, [3.0, 12.0, 27.0])

    def test_multiple_inputs(self, graph):
        a = graph.parameter('a', (2,), np.array([1.0, 2.0]))
        b = graph.parameter('b', (3,), np.array([3.0, 4.0, 5.0]))
        o = gl.lambda_op([a, b], (2, 3), 'float64', outer_forward, outer_backward, name='outer')
        y = gl.sum(gl.flatten(o), axis=0)
        graph.forward()
        graph.backward(y)
        np.testing.assert_allclose(a.grad, [12.0, 12.0])
        np.testing.assert_allclose(b.grad, [3.0, 3.0, 3.0])
        assert o.label.startswith('Lambda[outer]')

    def test_without_backward_has_no_gradient(self, graph):
        a = graph.parameter('a', (3,), np.array([1.0, 2.0, 3.0]))
        c = gl.lambda_op([a], (3,), 'float64', cube_forward)
        y = gl.sum(c * a, axis=0)
        assert not c.trainable
        graph.forward()
        graph.backward(y)
        np.testing.assert_allclose(a.grad, [1.0, 8.0, 27.0])

    def test_deduplicated_by_function(self, graph):
        a = graph.constant((3,), np.ones(3))
        c1 = gl.lambda_op([a], (3,), 'float64', cube_forward)
        c2 = gl.lambda_op([a], (3,), 'float64', cube_forward)
        c3 = gl.lambda_op([a], (3,), 'float64', outer_forward)
        assert c1 is c2
        assert c1 is not c3

    def test_checkpointed_lambda_recomputes(self):
        calls = []

        def forward(inputs, out):
            calls.append(1)
            cube_forward(inputs, out)

        graph = ExpressionGraph(dtype='float64')
        a = graph.parameter('a', (3,), np.array([1.0, 2.0, 3.0]))
        c = gl.checkpoint(gl.lambda_op([a], (3,), 'float64', forward, cube_backward))
        y = gl.sum(c * 2.0, axis=0)
        graph.forward()
        graph.backward(y)
        assert len(calls) == 2
        np.testing.assert_allclose(a.grad, [6.0, 24.0, 54.0])

    def test_requires_inputs(self):
        with pytest.raises(ValueError):
            gl.lambda_op([], (3,), 'float64', cube_forward)

    def test_bad_dtype(self, graph):
        a = graph.constant((3,), np.ones(3))
        with pytest.raises(ElementTypeError):
            gl.lambda_op([a], (3,), 'complex128', cube_forward)
