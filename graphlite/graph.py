"""
GraphLite ExpressionGraph - owns the nodes of a computation and runs it.

Typical use:

    graph = ExpressionGraph()
    x = graph.constant((2, 3), inits.from_array(data))
    w = graph.parameter('w', (3, 4), inits.glorot_uniform())
    loss = sum(sigmoid(x @ w), axis=-1)
    graph.forward()
    graph.backward()
    w.grad            # d loss / d w

Every expression-building call goes through ExpressionGraph.add(): the
operator infers the output shape/type (errors surface right here, leaving
the graph untouched), an equivalent existing node is reused if there is
one, otherwise the new node is appended to the tape.

One computation cycle (build, forward, backward) is an episode; reset()
starts the next one. Parameters outlive episodes, everything else is
dropped. A graph is not thread-safe: serialize access to one instance,
or give each thread its own graph.
"""

import itertools

import numpy as np

from .config import make_config
from .dtype import dtypes, require_float, validate
from .errors import GraphStateError, ShapeError
from .initializers import as_initializer, dropout
from .logger import GraphLogger
from .memory import MemoryManager
from .node import Node
from .shape import Shape
from .tape import Tape


class ExpressionGraph:
    """
    Expression graph for one computation episode at a time.

    Args:
        config: Optional dict of settings (see config.DEFAULT_CONFIG)
        **overrides: Individual settings, e.g. dtype='float64', seed=0
    """

    def __init__(self, config=None, **overrides):
        self.config = make_config(config, **overrides)
        self.dtype = self.config['dtype']
        self.rng = np.random.default_rng(self.config['seed'])
        self.memory = MemoryManager(release_memory=self.config['release_memory'],
                                    inference=self.config['inference'])
        self.tape = Tape()
        self.logger = None
        if self.config['log_dir'] is not None:
            self.logger = GraphLogger(name=self.config['log_name'],
                                      log_dir=self.config['log_dir'],
                                      max_values=self.config['log_max_values'])

        self.episode = 0
        self._ids = itertools.count()
        self._index = {}     # structural key -> node, current episode only
        self._params = {}    # name -> node, kept across episodes
        self._forwarded = False

    def __repr__(self):
        return (f"ExpressionGraph(episode={self.episode}, nodes={len(self.tape)}, "
                f"params={len(self._params)})")

    def __len__(self):
        return len(self.tape)

    @property
    def nodes(self):
        return list(self.tape)

    @property
    def params(self):
        return list(self._params.values())

    @property
    def inference(self):
        return self.config['inference']

    def get_param(self, name):
        """Parameter registered under name, or None"""
        return self._params.get(name)

    # =========================
    # CONSTRUCTION
    # =========================

    def _check_node(self, node):
        if not isinstance(node, Node):
            raise TypeError(f"Expected an Expr, got {type(node).__name__}")
        if node.graph is not self:
            raise GraphStateError(f"{node.label} belongs to a different graph")
        if node.episode is not None and node.episode != self.episode:
            raise GraphStateError(
                f"{node.label} belongs to episode {node.episode}, the graph is at "
                f"episode {self.episode}; rebuild the expression after reset()")

    def add(self, op, inputs):
        """
        Add op applied to inputs, or return the existing equivalent node.

        Shape/type errors from op.infer() propagate unchanged; nothing is
        added in that case.
        """
        inputs = tuple(inputs)
        for node in inputs:
            self._check_node(node)
        shape, dtype = op.infer(inputs)

        key = op.structural_key(inputs) if op.memoize else None
        if key is not None:
            existing = self._index.get(key)
            if existing is not None:
                return existing

        trainable = (op.differentiable and dtypes.is_float(dtype)
                     and any(node.trainable for node in inputs))
        node = Node(self, next(self._ids), op, inputs, Shape(shape), validate(dtype),
                    self.episode, trainable=trainable)
        self.tape.append(node)
        if key is not None:
            self._index[key] = node
        return node

    def constant(self, shape, init, dtype=None, name=None):
        """
        Leaf holding a fixed value, produced by init when first needed.

        Args:
            shape: Shape of the constant
            init: Initializer callable, or a literal scalar/array
            dtype: Element type (graph default if omitted)
        """
        shape = Shape(shape)
        initializer = as_initializer(init, shape)
        node = Node(self, next(self._ids), None, (), shape, validate(dtype or self.dtype),
                    self.episode, initializer=initializer, name=name)
        self.tape.append(node)
        return node

    def parameter(self, name, shape, init, dtype=None, trainable=True):
        """
        Named leaf that survives reset(). Asking again for an existing name
        returns the same node.
        """
        shape = Shape(shape)
        existing = self._params.get(name)
        if existing is not None:
            if existing.shape != shape:
                raise ShapeError(f"Parameter {name!r} exists with shape {list(existing.shape)}, "
                                 f"requested {list(shape)}")
            return existing
        dtype = require_float(validate(dtype or self.dtype), "parameter")
        node = Node(self, next(self._ids), None, (), shape, dtype, None,
                    trainable=trainable, initializer=as_initializer(init, shape), name=name)
        self._params[name] = node
        return node

    def dropout_mask(self, prob, shape, dtype=None):
        return self.constant(shape, dropout(prob), dtype=dtype)

    def retain(self, expr):
        """Keep value and gradient of expr alive through backward"""
        self._check_node(expr)
        expr.retained = True
        return expr

    # =========================
    # EXECUTION
    # =========================

    def _compute(self, node):
        if node.is_leaf:
            value = self.memory.new_value(node)
            try:
                value[...] = node.initializer(node.shape, node.dtype, self.rng)
            except Exception:
                self.memory.allocator.release(value)
                raise
            self.memory.set_value(node, value)
        else:
            inputs = [i.value for i in node.inputs]
            if node.op.view:
                self.memory.set_value(node, node.op.view_of(inputs), owned=False)
            else:
                out = self.memory.new_value(node)
                node.op.forward(inputs, out)
                self.memory.set_value(node, out)
        node.computed = True

    def _ensure(self, node):
        return self.memory.ensure_value(node, self._compute)

    def forward(self):
        """
        Compute every node on the tape that has not been computed in this
        episode, in creation order. Calling it again is a no-op unless the
        graph has grown since.
        """
        pending = [node for node in self.tape if not node.computed]
        self.memory.begin_forward(pending)
        for node in pending:
            for i in node.distinct_inputs:
                self._ensure(i)
            self._compute(node)
            self.memory.after_forward(node)
        self._forwarded = True

        if self.logger is not None:
            self.logger.log_forward(self.episode, pending)

    def _as_list(self, items):
        if items is None:
            return None
        if isinstance(items, (list, tuple)):
            return list(items)
        return [items]

    def backward(self, roots=None, seeds=None):
        """
        Reverse-mode differentiation from roots (default: last node built).

        Each root's gradient is seeded with ones (or the given seed array)
        and the tape is walked backwards, adding every node's contribution
        into the gradients of its trainable inputs. Parameter gradients
        accumulate across calls; zero them with zero_grad().
        """
        if self.inference:
            raise GraphStateError("backward() is not available on an inference graph")
        if not self._forwarded:
            raise GraphStateError("backward() called before forward() in this episode")
        if any(not node.computed for node in self.tape):
            raise GraphStateError("The graph was extended after forward(); call forward() again")

        # seeds follow the form of roots: a list for a list, one array otherwise
        many = isinstance(roots, (list, tuple))
        roots = self._as_list(roots)
        if roots is None:
            if not len(self.tape):
                raise GraphStateError("Nothing to differentiate: the graph is empty")
            roots = [self.tape[-1]]
        if seeds is not None:
            seeds = self._as_list(seeds) if many else [seeds]
        seeds = seeds or [None] * len(roots)
        if len(seeds) != len(roots):
            raise ValueError(f"Got {len(seeds)} seeds for {len(roots)} roots")
        for root, seed in zip(roots, seeds):
            self._check_node(root)
            if seed is not None and np.shape(seed) != tuple(root.shape):
                raise ShapeError(f"Seed shape {list(np.shape(seed))} does not match "
                                 f"{root.label} {list(root.shape)}")

        # Intermediate gradients from an earlier backward in this episode
        for node in self.tape:
            if not node.is_leaf:
                self.memory.release_grad(node)
        self.memory.begin_backward(list(self.tape))

        for root, seed in zip(roots, seeds):
            root.retained = True
            self._ensure(root)
            if not root.trainable:
                continue
            grad = self.memory.grad_buffer(root)
            grad += 1 if seed is None else np.asarray(seed, dtype=grad.dtype)

        for node in reversed(self.tape):
            if not node.is_leaf and node.grad is not None and node.trainable:
                self._backward_step(node)
            self.memory.after_backward(node)

        if self.logger is not None:
            self.logger.log_backward(self.episode, roots,
                                     [p for p in self._params.values() if p.grad is not None])
            self.logger.log_memory(self.episode, self.memory.stats())

    def _backward_step(self, node):
        value = self._ensure(node)
        inputs = [self._ensure(i) for i in node.inputs]
        input_grads = [self.memory.grad_buffer(i) if i.trainable else None
                       for i in node.inputs]
        node.op.run_backward(inputs, value, node.grad, input_grads)

    # =========================
    # EPISODES
    # =========================

    def reset(self, keep_params=True):
        """
        Start a new episode: drop every node of the current one together
        with its buffers. Parameters (values and gradients) survive unless
        keep_params is False.
        """
        for node in self.tape:
            self.memory.release(node)
        self.tape.clear()
        self._index.clear()
        if not keep_params:
            for node in self._params.values():
                self.memory.release(node)
            self._params.clear()
        self.episode += 1
        self._forwarded = False

    clear = reset

    def invalidate(self, expr=None):
        """
        Force recomputation: every intermediate of the episode is dropped,
        and if expr is a leaf its initializer runs again on next use.
        """
        if expr is not None:
            self._check_node(expr)
            if expr.is_leaf:
                self.memory.release_value(expr)
                expr.computed = False
        for node in self.tape:
            if not node.is_leaf:
                self.memory.release_value(node)
                node.computed = False
        self._forwarded = False

    def zero_grad(self):
        """Zero the gradients of all parameters"""
        for node in self._params.values():
            node.zero_grad()

    # =========================
    # RESULTS
    # =========================

    def value(self, expr):
        """Forward value of expr, recomputed if it was released"""
        self._check_node(expr)
        if not expr.is_leaf and not expr.computed:
            raise GraphStateError(f"{expr.label} has not been computed; call forward()")
        return self._ensure(expr)

    def grad(self, expr):
        """Gradient of expr from the last backward (None if it got none)"""
        self._check_node(expr)
        return expr.grad

    def memory_stats(self):
        return self.memory.stats()

    def _debug_sink(self, message, phase, array):
        if self.logger is not None:
            self.logger.log_debug(message, phase, array)
        else:
            print(f"[{phase}] {message}: shape={list(np.shape(array))}\n{array}")
