"""Tests for layers, losses and optimizers."""

import numpy as np
import pytest

import graphlite as gl
from graphlite import ExpressionGraph, inits, nn, optim


@pytest.fixture
def batch(graph):
    return graph.constant((4, 2), np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]))


class TestLinear:
    def test_forward_shape(self, graph, batch):
        layer = nn.Linear(graph, 'fc', 2, 3)
        out = layer(batch)
        assert out.shape == (4, 3)
        assert layer.weight.shape == (2, 3)
        assert layer.bias.shape == (3,)

    def test_forward_no_bias(self, graph, batch):
        layer = nn.Linear(graph, 'fc', 2, 3, bias=False)
        assert layer.bias is None
        assert len(layer.parameters()) == 1
        out = layer(batch)
        graph.forward()
        np.testing.assert_allclose(out.value, batch.value @ layer.weight.value)

    def test_parameters_shared_across_episodes(self, graph, batch):
        layer = nn.Linear(graph, 'fc', 2, 3)
        again = nn.Linear(graph, 'fc', 2, 3)
        assert again.weight is layer.weight
        graph.reset()
        assert graph.get_param('fc.weight') is layer.weight

    def test_backward(self, graph, batch):
        layer = nn.Linear(graph, 'fc', 2, 1)
        loss = gl.sum(layer(batch), axis=0)
        graph.forward()
        graph.backward(loss)
        np.testing.assert_allclose(layer.weight.grad, [[2.0], [2.0]])
        np.testing.assert_allclose(layer.bias.grad, [4.0])


class TestLayerNorm:
    def test_output_normalized(self, graph):
        x = graph.constant((3, 4), inits.normal())
        out = nn.LayerNorm(graph, 'ln', 4)(x)
        graph.forward()
        np.testing.assert_allclose(out.value.mean(-1), np.zeros(3), atol=1e-7)

    def test_parameters(self, graph):
        ln = nn.LayerNorm(graph, 'ln', 4)
        assert [p.name for p in ln.parameters()] == ['ln.gamma', 'ln.beta']


class TestSequential:
    def test_forward_and_parameters(self, graph, batch):
        model = nn.Sequential(
            nn.Linear(graph, 'l1', 2, 4),
            nn.ReLU(),
            nn.Linear(graph, 'l2', 4, 1),
            nn.Sigmoid(),
        )
        out = model(batch)
        assert out.shape == (4, 1)
        assert len(model.parameters()) == 4
        assert 'Linear' in repr(model)

    def test_zero_grad(self, graph, batch):
        model = nn.Sequential(nn.Linear(graph, 'l1', 2, 1), nn.Tanh())
        loss = gl.sum(model(batch), axis=0)
        graph.forward()
        graph.backward(loss)
        model.zero_grad()
        for p in model.parameters():
            np.testing.assert_array_equal(p.grad, np.zeros(p.shape))


class TestLosses:
    def test_mse(self, graph):
        pred = graph.constant((2, 2), np.array([[1.0, 2.0], [3.0, 4.0]]))
        loss = nn.MSELoss()(pred, np.array([[1.0, 0.0], [3.0, 0.0]]))
        graph.forward()
        np.testing.assert_allclose(loss.value, [5.0])

    def test_bce(self, graph):
        pred = graph.constant((2,), np.array([0.9, 0.2]))
        loss = nn.BCELoss()(pred, np.array([1.0, 0.0]))
        graph.forward()
        expected = -np.mean([np.log(0.9), np.log(0.8)])
        np.testing.assert_allclose(loss.value, [expected], rtol=1e-5)

    def test_cross_entropy(self, graph):
        logits = graph.constant((2, 3), np.zeros((2, 3)))
        loss = nn.CrossEntropyLoss()(logits, [0, 2])
        graph.forward()
        np.testing.assert_allclose(loss.value, [np.log(3.0)])


def train_xor(optimizer_cls, steps, **kwargs):
    graph = ExpressionGraph(dtype='float64', seed=1)
    model = nn.Sequential(
        nn.Linear(graph, 'l1', 2, 8),
        nn.Tanh(),
        nn.Linear(graph, 'l2', 8, 1),
        nn.Sigmoid(),
    )
    data = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
    target = np.array([[0.0], [1.0], [1.0], [0.0]])
    opt = None
    losses = []
    for _ in range(steps):
        graph.reset()
        x = graph.constant((4, 2), data)
        loss = nn.MSELoss()(model(x), target)
        graph.forward()
        if opt is None:
            opt = optimizer_cls(model.parameters(), **kwargs)
        opt.zero_grad()
        graph.backward(loss)
        opt.step()
        losses.append(loss.item())
    return losses


class TestOptimizers:
    def test_sgd_reduces_loss(self):
        losses = train_xor(optim.SGD, 200, lr=0.5)
        assert losses[-1] < losses[0]

    def test_sgd_momentum_reduces_loss(self):
        losses = train_xor(optim.SGD, 200, lr=0.2, momentum=0.9)
        assert losses[-1] < losses[0]

    def test_adam_reduces_loss(self):
        losses = train_xor(optim.Adam, 200, lr=0.05)
        assert losses[-1] < losses[0]

    def test_sgd_step(self, graph):
        w = graph.parameter('w', (2,), np.array([1.0, 2.0]))
        loss = gl.sum(w * w, axis=0)
        graph.forward()
        graph.backward(loss)
        optim.SGD([w], lr=0.1).step()
        np.testing.assert_allclose(w.value, [0.8, 1.6])

    def test_skips_parameters_without_gradient(self, graph):
        w = graph.parameter('w', (2,), np.array([1.0, 2.0]))
        graph.value(w)
        optim.Adam([w]).step()
        np.testing.assert_allclose(w.value, [1.0, 2.0])
