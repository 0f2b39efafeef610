"""Forward values, shape inference and error cases of the expression API."""

import numpy as np
import pytest

import graphlite as gl
from graphlite import (
    AxisError, ElementTypeError, ShapeError, UnsupportedOperationError, inits,
)


X = np.array([[1.0, -2.0, 3.0], [-4.0, 5.0, -6.0]])


@pytest.fixture
def x(graph):
    return graph.constant((2, 3), X)


def run(node):
    node.graph.forward()
    return node.value


class TestElementwise:
    def test_arithmetic(self, x):
        np.testing.assert_allclose(run(x + x), X + X)
        np.testing.assert_allclose(run(x - 1.0), X - 1.0)
        np.testing.assert_allclose(run(1.0 - x), 1.0 - X)
        np.testing.assert_allclose(run(x * 2.0), X * 2.0)
        np.testing.assert_allclose(run(x / 2.0), X / 2.0)
        np.testing.assert_allclose(run(6.0 / x), 6.0 / X)
        np.testing.assert_allclose(run(-x), -X)

    def test_scalar_folding(self, x):
        assert isinstance((x + 1.0).op, gl.operators.ScalarAdd)
        assert isinstance((2.0 * x).op, gl.operators.ScalarMult)

    def test_integer_scalars_on_int_nodes(self, graph):
        n = graph.constant((3,), np.array([1, 2, 3]), dtype='int32')
        np.testing.assert_array_equal(run(n * 2.0), [2, 4, 6])
        np.testing.assert_array_equal(run(n + 1), [2, 3, 4])
        assert (n * 2).dtype == 'int32'

    def test_fractional_scalar_on_int_node(self, graph):
        n = graph.constant((3,), np.array([1, 2, 3]), dtype='int32')
        before = len(graph)
        with pytest.raises(ElementTypeError):
            n * 0.5
        with pytest.raises(ElementTypeError):
            n + 0.25
        with pytest.raises(ElementTypeError):
            n / 2
        assert len(graph) == before
        np.testing.assert_allclose(run(gl.cast(n, 'float64') * 0.5), [0.5, 1.0, 1.5])

    def test_activations(self, x):
        np.testing.assert_allclose(run(gl.relu(x)), np.maximum(X, 0))
        np.testing.assert_allclose(run(gl.leakyrelu(x)), np.where(X > 0, X, 0.01 * X))
        np.testing.assert_allclose(run(gl.sigmoid(x)), 1 / (1 + np.exp(-X)))
        np.testing.assert_allclose(run(gl.swish(x)), X / (1 + np.exp(-X)))
        np.testing.assert_allclose(run(gl.gelu(x)), X / (1 + np.exp(-1.702 * X)))

    def test_sigmoid_is_stable(self, graph):
        a = graph.constant((2,), np.array([-1000.0, 1000.0]))
        out = run(gl.sigmoid(a))
        assert np.all(np.isfinite(out))
        np.testing.assert_allclose(out, [0.0, 1.0])

    def test_list_forms(self, x, graph):
        assert gl.plus([x]) is x
        assert gl.relu([x]) is gl.relu(x)
        y = graph.constant((2, 3), inits.ones())
        with pytest.raises(UnsupportedOperationError):
            gl.sigmoid([x, y])
        with pytest.raises(UnsupportedOperationError):
            gl.plus([x, y])
        with pytest.raises(NotImplementedError):
            gl.prelu([x, y])

    def test_tanh_sums(self, x, graph):
        b = graph.constant((3,), np.array([1.0, 2.0, 3.0]))
        np.testing.assert_allclose(run(gl.tanh(x, b)), np.tanh(X + [1.0, 2.0, 3.0]))
        np.testing.assert_allclose(run(gl.tanh([x, b])), np.tanh(X + [1.0, 2.0, 3.0]))

    def test_comparisons(self, x):
        np.testing.assert_array_equal(run(gl.gt(x, 0.0)), (X > 0).astype(float))
        np.testing.assert_array_equal(run(gl.eq(x, x)), np.ones((2, 3)))
        np.testing.assert_array_equal(run(gl.ne(x, x)), np.zeros((2, 3)))
        np.testing.assert_array_equal(run(gl.le(x, -2.0)), (X <= -2).astype(float))

    def test_maximum_ties_go_to_first(self, graph):
        a = graph.parameter('a', (2,), np.array([1.0, 2.0]))
        b = graph.parameter('b', (2,), np.array([1.0, 3.0]))
        y = gl.sum(gl.maximum(a, b), axis=0)
        graph.forward()
        graph.backward(y)
        np.testing.assert_allclose(a.grad, [1.0, 0.0])
        np.testing.assert_allclose(b.grad, [0.0, 1.0])

    def test_float_only(self, graph):
        i = graph.constant((3,), inits.range_(), dtype='int32')
        with pytest.raises(ElementTypeError):
            gl.exp(i)
        with pytest.raises(ElementTypeError):
            gl.softmax(i)
        np.testing.assert_array_equal(run(gl.square(i)), [0, 1, 4])

    def test_cast(self, graph):
        i = graph.constant((3,), inits.range_(), dtype='int32')
        f = gl.cast(i, 'float32')
        assert f.dtype == 'float32'
        assert gl.cast(f, 'float32') is f
        np.testing.assert_allclose(run(gl.exp(f)), np.exp([0.0, 1.0, 2.0]), rtol=1e-6)

    def test_clip(self, x):
        np.testing.assert_allclose(run(gl.clip(x, 2.5)), np.clip(X, -2.5, 2.5))

    def test_highway(self, graph):
        y = graph.constant((2,), np.array([1.0, 1.0]))
        x = graph.constant((2,), np.array([3.0, 3.0]))
        t = graph.constant((2,), np.array([0.0, 100.0]))
        np.testing.assert_allclose(run(gl.highway(y, x, t)), [2.0, 1.0])


class TestReductions:
    def test_keep_reduced_axis(self, x):
        assert gl.sum(x, axis=0).shape == (1, 3)
        assert gl.mean(x, axis=-1).shape == (2, 1)

    def test_values(self, x):
        np.testing.assert_allclose(run(gl.sum(x, 1)), X.sum(1, keepdims=True))
        np.testing.assert_allclose(run(gl.mean(x, 0)), X.mean(0, keepdims=True))
        np.testing.assert_allclose(run(gl.std(x, 1)), X.std(1, keepdims=True))
        np.testing.assert_allclose(run(gl.var(x, 1)), X.var(1, keepdims=True))
        np.testing.assert_allclose(run(gl.max(x, 1)), X.max(1, keepdims=True))
        np.testing.assert_allclose(run(gl.min(x, 0)), X.min(0, keepdims=True))
        np.testing.assert_allclose(run(gl.prod(x, 1)), X.prod(1, keepdims=True))

    def test_logsumexp_stable(self, graph):
        a = graph.constant((1, 2), np.array([[1000.0, 1000.0]]))
        np.testing.assert_allclose(run(gl.logsumexp(a, -1)), [[1000.0 + np.log(2.0)]])

    def test_bad_axis(self, x):
        with pytest.raises(AxisError):
            gl.sum(x, axis=2)

    def test_softmax_rows_sum_to_one(self, x):
        out = run(gl.softmax(x))
        np.testing.assert_allclose(out.sum(-1), np.ones(2))

    def test_masked_softmax(self, x, graph):
        mask = graph.constant((2, 3), np.array([[1.0, 1.0, 0.0], [0.0, 1.0, 1.0]]))
        out = run(gl.softmax(x, mask=mask))
        np.testing.assert_allclose(out[0, 2], 0.0, atol=1e-12)
        np.testing.assert_allclose(out[1, 0], 0.0, atol=1e-12)
        np.testing.assert_allclose(out.sum(-1), np.ones(2))

    def test_logsoftmax(self, x):
        np.testing.assert_allclose(np.exp(run(gl.logsoftmax(x))).sum(-1), np.ones(2))

    def test_cross_entropy(self, x, graph):
        ce = gl.cross_entropy(x, [2, 1])
        assert ce.shape == (2, 1)
        logp = X - np.log(np.exp(X).sum(-1, keepdims=True))
        np.testing.assert_allclose(run(ce), [[-logp[0, 2]], [-logp[1, 1]]])

    def test_cross_entropy_rejects_float_labels(self, x, graph):
        labels = graph.constant((2,), inits.zeros())
        with pytest.raises(ElementTypeError):
            gl.cross_entropy(x, labels)

    def test_cross_entropy_label_shape(self, x):
        with pytest.raises(ShapeError):
            gl.cross_entropy(x, [0, 1, 2])

    def test_layer_norm(self, x, graph):
        gamma = graph.constant((3,), inits.ones())
        out = run(gl.layer_norm(x, gamma))
        np.testing.assert_allclose(out.mean(-1), np.zeros(2), atol=1e-9)
        np.testing.assert_allclose(out.std(-1), np.ones(2), atol=1e-6)

    def test_topk(self, x):
        values, indices = gl.topk(x, 2, axis=-1)
        assert indices.dtype == 'int32'
        assert not indices.trainable
        np.testing.assert_allclose(run(values), [[3.0, 1.0], [5.0, -4.0]])
        np.testing.assert_array_equal(indices.value, [[2, 0], [1, 0]])

    def test_argmax_argmin(self, x):
        _, imax = gl.argmax(x, axis=0)
        _, imin = gl.argmin(x, axis=-1)
        run(imax)
        np.testing.assert_array_equal(imax.value, [[0, 1, 0]])
        np.testing.assert_array_equal(imin.value, [[1], [2]])

    def test_topk_bad_k(self, x):
        with pytest.raises(ShapeError):
            gl.topk(x, 4, axis=-1)


class TestLinearAlgebra:
    def test_dot(self, x, graph):
        w = graph.constant((3, 4), inits.range_())
        out = gl.dot(x, w)
        assert out.shape == (2, 4)
        np.testing.assert_allclose(run(out), X @ np.arange(12.0).reshape(3, 4))

    def test_matmul_operator(self, x, graph):
        w = graph.constant((3, 4), inits.range_())
        assert (x @ w) is gl.dot(x, w)

    def test_dot_inner_mismatch(self, x, graph):
        w = graph.constant((4, 4), inits.ones())
        with pytest.raises(ShapeError):
            gl.dot(x, w)

    def test_dot_requires_matrix(self, graph):
        a = graph.constant((2, 2, 3), inits.ones())
        b = graph.constant((2, 3, 4), inits.ones())
        with pytest.raises(ShapeError):
            gl.dot(a, b)
        assert gl.bdot(a, b).shape == (2, 2, 4)

    def test_dot_transposed_scaled(self, x):
        out = gl.dot(x, x, trans_b=True, scalar=0.5)
        np.testing.assert_allclose(run(out), 0.5 * X @ X.T)


class TestManipulation:
    def test_transpose(self, x):
        t = gl.transpose(x)
        assert t.shape == (3, 2)
        np.testing.assert_allclose(run(t), X.T)

    def test_transpose_bad_permutation(self, x):
        with pytest.raises(AxisError):
            gl.transpose(x, (0, 0))
        with pytest.raises(ShapeError):
            gl.transpose(gl.flatten(x))

    def test_reshape_view(self, x):
        r = gl.reshape(x, (3, -1))
        assert r.shape == (3, 2)
        run(r)
        assert np.shares_memory(r.value, x.value)

    def test_reshape_mismatch(self, x):
        with pytest.raises(ShapeError):
            gl.reshape(x, (4, 2))

    def test_concatenate(self, x):
        c = gl.concatenate([x, x], axis=-1)
        assert c.shape == (2, 6)
        np.testing.assert_allclose(run(c), np.concatenate([X, X], axis=-1))

    def test_concatenate_mismatch(self, x, graph):
        y = graph.constant((3, 3), inits.ones())
        with pytest.raises(ShapeError):
            gl.concatenate([x, y], axis=1)

    def test_slice(self, x):
        assert gl.slice(x, 1, -1).shape == (2, 1)
        np.testing.assert_allclose(run(gl.slice(x, 1, slice(0, 2))), X[:, 0:2])
        np.testing.assert_allclose(run(gl.narrow(x, 0, 1, 1)), X[1:2])

    def test_slice_empty_or_out_of_range(self, x):
        with pytest.raises(ShapeError):
            gl.slice(x, 1, slice(2, 2))
        with pytest.raises(ShapeError):
            gl.slice(x, 0, 5)

    def test_index_select(self, x):
        out = gl.cols(x, [2, 0])
        assert out.shape == (2, 2)
        np.testing.assert_allclose(run(out), X[:, [2, 0]])

    def test_index_select_float_indices(self, x, graph):
        idx = graph.constant((2,), inits.zeros())
        with pytest.raises(ElementTypeError):
            gl.index_select(x, 0, idx)

    def test_gather(self, x):
        idx = np.array([[2], [0]])
        out = gl.gather(x, -1, idx)
        np.testing.assert_allclose(run(out), [[3.0], [-4.0]])

    def test_atleast(self, graph):
        a = graph.constant((3,), inits.ones())
        assert gl.atleast_2d(a).shape == (1, 3)
        assert gl.atleast_3d(a).shape == (1, 1, 3)
        assert gl.atleast_1d(a) is a

    def test_flatten(self, graph):
        a = graph.constant((2, 3, 4), inits.ones())
        assert gl.flatten(a).shape == (24,)
        assert gl.flatten_2d(a).shape == (6, 4)

    def test_swap_axes_same(self, x):
        assert gl.swap_axes(x, 0, -2) is x

    def test_repeat(self, x):
        assert gl.repeat(x, 1) is x
        assert gl.repeat(x, 2, axis=0).shape == (4, 3)


class TestHelpers:
    def test_constant_like(self, x):
        c = gl.constant_like(x, inits.ones())
        assert c.shape == x.shape and c.dtype == x.dtype

    def test_dropout_zero(self, x):
        assert gl.dropout(x, 0.0) is x

    def test_dropout_mask(self, graph):
        a = graph.constant((1000,), inits.ones())
        out = run(gl.dropout(a, 0.5))
        assert set(np.unique(out)) <= {0.0, 2.0}
        assert 0.3 < (out == 0).mean() < 0.7

    def test_dropout_bad_probability(self, x):
        with pytest.raises(ValueError):
            gl.dropout(x, 1.0)

    def test_debug_prints(self, graph, capsys):
        a = graph.parameter('a', (2,), np.array([1.0, 2.0]))
        d = gl.debug(a * 3.0, "scaled")
        y = gl.sum(d, axis=0)
        graph.forward()
        graph.backward(y)
        captured = capsys.readouterr().out
        assert "[forward] scaled" in captured
        assert "[backward] scaled" in captured
        np.testing.assert_allclose(a.grad, [3.0, 3.0])

    def test_debug_not_deduplicated(self, x):
        assert gl.debug(x, "m") is not gl.debug(x, "m")
