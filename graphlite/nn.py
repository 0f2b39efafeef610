"""
GraphLite Neural Network Layers

Small building blocks on top of the expression API.

A module owns named parameters on one ExpressionGraph. Calling a module
builds new expression nodes for the current episode; its parameters are
fetched by name, so the same weights are reused after graph.reset().
"""

import numpy as np

from . import expression as E
from . import initializers as inits
from .node import Node


class Module:
    """
    Base class for all neural network modules.

    A module can contain parameters (weights) and define a forward pass.
    """

    def parameters(self):
        """Return all trainable parameters in this module"""
        return []

    def zero_grad(self):
        """Zero out gradients for all parameters"""
        for p in self.parameters():
            p.zero_grad()

    def __call__(self, *args, **kwargs):
        """Make module callable: model(x) calls model.forward(x)"""
        return self.forward(*args, **kwargs)


class Linear(Module):
    """
    Fully connected linear layer: y = x @ W + b

    Args:
        graph: ExpressionGraph owning the parameters
        name: Parameter name prefix (parameters are <name>.weight, <name>.bias)
        in_features: Number of input features
        out_features: Number of output features
        bias: Whether to include bias term (default True)
    """

    def __init__(self, graph, name, in_features, out_features, bias=True):
        self.graph = graph
        self.name = name
        self.in_features = in_features
        self.out_features = out_features

        # He initialization, stored as (in_features, out_features) so the
        # forward pass is x @ W without a transpose node
        self.weight = graph.parameter(f"{name}.weight", (in_features, out_features),
                                      inits.he_normal(in_features))

        self.use_bias = bias
        self.bias = graph.parameter(f"{name}.bias", (out_features,), inits.zeros()) if bias else None

    def forward(self, x):
        """
        Args:
            x: Expr of shape (..., in_features)

        Returns:
            Expr of shape (..., out_features)
        """
        if self.use_bias:
            return E.affine(x, self.weight, self.bias)
        return E.dot(x, self.weight)

    def parameters(self):
        if self.use_bias:
            return [self.weight, self.bias]
        return [self.weight]

    def __repr__(self):
        return (f"Linear({self.name!r}, in_features={self.in_features}, "
                f"out_features={self.out_features}, bias={self.use_bias})")


class LayerNorm(Module):
    """Layer normalization over the last axis with learned scale and shift"""

    def __init__(self, graph, name, features, eps=1e-9):
        self.name = name
        self.features = features
        self.eps = eps
        self.gamma = graph.parameter(f"{name}.gamma", (features,), inits.ones())
        self.beta = graph.parameter(f"{name}.beta", (features,), inits.zeros())

    def forward(self, x):
        return E.layer_norm(x, self.gamma, self.beta, eps=self.eps)

    def parameters(self):
        return [self.gamma, self.beta]

    def __repr__(self):
        return f"LayerNorm({self.name!r}, features={self.features})"


class Sequential(Module):
    """
    Container for stacking layers sequentially.

    Example:
        model = Sequential(
            Linear(graph, 'l1', 2, 4),
            ReLU(),
            Linear(graph, 'l2', 4, 1)
        )
        output = model(x)
    """

    def __init__(self, *layers):
        self.layers = layers

    def forward(self, x):
        for layer in self.layers:
            x = layer(x)
        return x

    def parameters(self):
        params = []
        for layer in self.layers:
            params.extend(layer.parameters())
        return params

    def __repr__(self):
        layer_str = '\n  '.join(str(layer) for layer in self.layers)
        return f"Sequential(\n  {layer_str}\n)"


# =========================
# ACTIVATION FUNCTIONS
# =========================

class ReLU(Module):
    """ReLU activation: max(0, x)"""

    def forward(self, x):
        return E.relu(x)

    def __repr__(self):
        return "ReLU()"


class Sigmoid(Module):
    """Sigmoid activation: 1 / (1 + exp(-x))"""

    def forward(self, x):
        return E.sigmoid(x)

    def __repr__(self):
        return "Sigmoid()"


class Tanh(Module):
    """Tanh activation, zero-centered, range (-1, 1)"""

    def forward(self, x):
        return E.tanh(x)

    def __repr__(self):
        return "Tanh()"


# =========================
# LOSS FUNCTIONS
# =========================

def _as_target(target, pred):
    if isinstance(target, Node):
        return target
    target = np.asarray(target)
    return pred.graph.constant(pred.shape, inits.from_array(target), dtype=pred.dtype)


def _mean_all(x):
    return E.mean(E.flatten(x), axis=0)


class MSELoss(Module):
    """
    Mean Squared Error Loss: mean((pred - target)^2)

    Returns an Expr of shape [1].
    """

    def forward(self, pred, target):
        diff = pred - _as_target(target, pred)
        return _mean_all(E.square(diff))

    def __repr__(self):
        return "MSELoss()"


class BCELoss(Module):
    """
    Binary Cross-Entropy Loss on probabilities in (0, 1):

        -mean(target * log(pred + eps) + (1 - target) * log(1 - pred + eps))
    """

    def __init__(self, eps=1e-7):
        self.eps = eps

    def forward(self, pred, target):
        target = _as_target(target, pred)
        term1 = target * E.log(pred + self.eps)
        term2 = (1.0 - target) * E.log((1.0 + self.eps) - pred)
        return -_mean_all(term1 + term2)

    def __repr__(self):
        return "BCELoss()"


class CrossEntropyLoss(Module):
    """Mean cross-entropy of logits [..., classes] and integer labels [...]"""

    def __init__(self, label_smoothing=0.0):
        self.label_smoothing = label_smoothing

    def forward(self, logits, labels):
        return _mean_all(E.cross_entropy(logits, labels, self.label_smoothing))

    def __repr__(self):
        return f"CrossEntropyLoss(label_smoothing={self.label_smoothing})"
