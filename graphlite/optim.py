"""
GraphLite Optimizers

Optimizers update parameter nodes in place from the gradients left by
graph.backward(). Parameters live across episodes, so an optimizer can be
created once and stepped after every episode's backward pass.
"""

import numpy as np


class Optimizer:
    """Base class for all optimizers"""

    def __init__(self, parameters):
        """
        Args:
            parameters: Parameter nodes to optimize
        """
        self.parameters = list(parameters)
        # per-parameter optimizer state, keyed by parameter label
        self.state = {}

    def zero_grad(self):
        """Reset gradients to zero before backward pass"""
        for p in self.parameters:
            p.zero_grad()

    def _active(self):
        """Parameters that have both a value and a gradient"""
        for p in self.parameters:
            if p.value is not None and p.grad is not None:
                yield p

    def step(self):
        """Update parameters (must be implemented by subclass)"""
        raise NotImplementedError


class SGD(Optimizer):
    """
    Stochastic Gradient Descent

        param = param - lr * grad

    With momentum:
        velocity = momentum * velocity - lr * grad
        param = param + velocity

    Args:
        parameters: Parameter nodes to optimize
        lr: Learning rate
        momentum: Momentum factor (default 0 = no momentum)
    """

    def __init__(self, parameters, lr=0.01, momentum=0.0):
        super().__init__(parameters)
        self.lr = lr
        self.momentum = momentum

    def step(self):
        for param in self._active():
            if self.momentum == 0:
                param.value -= self.lr * param.grad
                continue
            velocity = self.state.setdefault(param.label, np.zeros_like(param.value))
            velocity *= self.momentum
            velocity -= self.lr * param.grad
            param.value += velocity

    def __repr__(self):
        return f"SGD(lr={self.lr}, momentum={self.momentum})"


class Adam(Optimizer):
    """
    Adam: Adaptive Moment Estimation

    Algorithm:
        1. m = beta1*m + (1-beta1)*grad
        2. v = beta2*v + (1-beta2)*grad^2
        3. m_hat = m/(1-beta1^t), v_hat = v/(1-beta2^t)
        4. param = param - lr * m_hat / (sqrt(v_hat) + eps)

    Args:
        parameters: Parameter nodes to optimize
        lr: Learning rate (default 0.001)
        beta1: Decay rate for first moment (default 0.9)
        beta2: Decay rate for second moment (default 0.999)
        eps: Small constant for numerical stability (default 1e-8)
    """

    def __init__(self, parameters, lr=0.001, beta1=0.9, beta2=0.999, eps=1e-8):
        super().__init__(parameters)
        self.lr = lr
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0

    def step(self):
        self.t += 1
        for param in self._active():
            grad = param.grad
            m, v = self.state.setdefault(
                param.label, (np.zeros_like(param.value), np.zeros_like(param.value)))
            m *= self.beta1
            m += (1 - self.beta1) * grad
            v *= self.beta2
            v += (1 - self.beta2) * grad ** 2

            # Moments start at 0, correct the bias early on
            m_hat = m / (1 - self.beta1 ** self.t)
            v_hat = v / (1 - self.beta2 ** self.t)
            param.value -= (self.lr * m_hat / (np.sqrt(v_hat) + self.eps)).astype(param.value.dtype)

    def __repr__(self):
        return f"Adam(lr={self.lr}, beta1={self.beta1}, beta2={self.beta2})"
