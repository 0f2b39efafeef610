"""
GraphLite Memory Management

Two layers:

1. Allocator - the storage boundary. Hands out zeroed numpy buffers for a
   (shape, dtype) and keeps byte counts so peak memory can be measured.

2. MemoryManager - decides when node buffers may go away:
   - checkpointed nodes (and, in inference mode, every intermediate) drop
     their value once all of their forward consumers have run
   - during backward, each node counts the consumers that still have to be
     visited; a value nobody will need again is released, and a visited
     node releases its value and gradient after its own step
   - released values are recomputed on demand with an explicit stack, so
     deep graphs never hit the recursion limit

Leaves (constants, parameters) and retained nodes are never released.

Byte counts follow owned buffers only. A view node (reshape, stop/clip
gradient, debug) aliases its input's buffer, so when that input is
released while the view still holds its value, the bytes leave live_bytes
but the array stays alive until the view is released too. peak_bytes and
history can under-report by that amount.
"""

import numpy as np

from .dtype import dtypes


class Allocator:
    """Allocates buffers and tracks live/peak bytes"""

    def __init__(self):
        self.live_bytes = 0
        self.peak_bytes = 0
        self.allocations = 0
        self.releases = 0
        self._sizes = {}

    def allocate(self, shape, dtype):
        buffer = np.zeros(tuple(shape), dtype=dtypes.to_numpy(dtype))
        self._sizes[id(buffer)] = buffer.nbytes
        self.allocations += 1
        self.live_bytes += buffer.nbytes
        self.peak_bytes = max(self.peak_bytes, self.live_bytes)
        return buffer

    def release(self, buffer):
        nbytes = self._sizes.pop(id(buffer), None)
        if nbytes is None:
            return
        self.releases += 1
        self.live_bytes -= nbytes

    def owns(self, buffer):
        return id(buffer) in self._sizes

    def reset_peak(self):
        self.peak_bytes = self.live_bytes

    def __repr__(self):
        return f"Allocator(live={self.live_bytes}B, peak={self.peak_bytes}B)"


class MemoryManager:
    """
    Buffer lifetime for the nodes of one graph.

    Args:
        allocator: Allocator to use (a fresh one by default)
        release_memory: Free intermediates during backward
        inference: Free every intermediate as soon as its forward consumers ran
    """

    def __init__(self, allocator=None, release_memory=True, inference=False):
        self.allocator = allocator or Allocator()
        self.release_memory = release_memory
        self.inference = inference
        self.recomputations = 0
        # live bytes after every forward/backward step
        self.history = []

    # =========================
    # BUFFERS
    # =========================

    def new_value(self, node):
        """Allocate the output buffer for node"""
        return self.allocator.allocate(node.shape, node.dtype)

    def set_value(self, node, buffer, owned=True):
        self.release_value(node)
        node.value = buffer
        node._owns_value = owned

    def release_value(self, node):
        if node.value is None:
            return
        if node._owns_value:
            self.allocator.release(node.value)
        node.value = None
        node._owns_value = False

    def grad_buffer(self, node):
        """Gradient accumulator of node, allocated (zeroed) on first use"""
        if node.grad is None:
            node.grad = self.allocator.allocate(node.shape, node.dtype)
        return node.grad

    def release_grad(self, node):
        if node.grad is None:
            return
        self.allocator.release(node.grad)
        node.grad = None

    def release(self, node):
        self.release_value(node)
        self.release_grad(node)

    @staticmethod
    def releasable(node):
        return not node.is_leaf and not node.retained

    def record(self):
        self.history.append(self.allocator.live_bytes)

    # =========================
    # FORWARD
    # =========================

    def begin_forward(self, nodes):
        """Count, for every input, how many of `nodes` are about to consume it"""
        for node in nodes:
            for i in node.distinct_inputs:
                i._forward_pending = 0
        for node in nodes:
            for i in node.distinct_inputs:
                i._forward_pending += 1

    def after_forward(self, node):
        for i in node.distinct_inputs:
            i._forward_pending -= 1
            if i._forward_pending == 0 and self.releasable(i) and (i.is_checkpoint or self.inference):
                self.release_value(i)
        self.record()

    def ensure_value(self, node, compute):
        """
        Make sure node.value is materialized, recomputing it (and any of its
        released inputs) with compute(node). Returns the value.
        """
        if node.value is not None:
            return node.value
        stack = [node]
        while stack:
            top = stack[-1]
            if top.value is not None:
                stack.pop()
                continue
            missing = [i for i in top.distinct_inputs if i.value is None]
            if missing:
                stack.extend(missing)
                continue
            if top.computed:
                self.recomputations += 1
            compute(top)
            stack.pop()
        return node.value

    # =========================
    # BACKWARD
    # =========================

    def begin_backward(self, nodes):
        """Count consumers still to be backward-visited for every input"""
        for node in nodes:
            for i in node.distinct_inputs:
                i._backward_pending = 0
        for node in nodes:
            for i in node.distinct_inputs:
                i._backward_pending += 1

    def after_backward(self, node):
        """Called for every tape node, in reverse order, once its step is over"""
        if self.release_memory:
            for i in node.distinct_inputs:
                i._backward_pending -= 1
                # inputs without gradient will not get a backward step of their own
                if i._backward_pending == 0 and i.grad is None and self.releasable(i):
                    self.release_value(i)
            if self.releasable(node):
                self.release(node)
        self.record()

    # =========================
    # STATS
    # =========================

    def stats(self):
        return {
            'live_bytes': self.allocator.live_bytes,
            'peak_bytes': self.allocator.peak_bytes,
            'allocations': self.allocator.allocations,
            'releases': self.allocator.releases,
            'recomputations': self.recomputations,
        }
