"""
GraphLite Logging System

Simple text logging for graph execution.
Logs node values, shapes, gradients and memory use at pass boundaries.
"""

import numpy as np
from datetime import datetime
import os


def _format_array(arr, max_values=10):
    """Format a numpy array for pretty printing."""
    if arr is None:
        return "<released>"
    if isinstance(arr, (int, float)):
        return f"{arr:.6f}"

    arr = np.asarray(arr)
    flat = arr.flatten().astype(np.float64)

    if len(flat) <= max_values:
        values_str = ", ".join([f"{v:.6f}" for v in flat])
    else:
        first_part = ", ".join([f"{v:.6f}" for v in flat[:max_values//2]])
        last_part = ", ".join([f"{v:.6f}" for v in flat[-max_values//2:]])
        values_str = f"{first_part}, ..., {last_part}"

    return f"[{values_str}]"


def _format_timestamp():
    """Get current timestamp string."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _format_bytes(n):
    for unit in ('B', 'KB', 'MB'):
        if n < 1024:
            return f"{n:.0f}{unit}" if unit == 'B' else f"{n:.1f}{unit}"
        n /= 1024
    return f"{n:.1f}GB"


class GraphLogger:
    """
    Logger for graph runs.

    Appends to <log_dir>/<name>.graph.log:
    - a run header when created
    - node-by-node forward values per episode
    - root and parameter gradients after backward
    - debug() node reports
    - memory statistics

    Args:
        name: Base name for log file (will create <name>.graph.log)
        log_dir: Directory for log files (default: current directory)
        max_values: Number of sample values written per array
    """

    def __init__(self, name="graph", log_dir=".", max_values=10):
        self.name = name
        self.log_dir = log_dir
        self.max_values = max_values
        self.log_path = os.path.join(log_dir, f"{name}.graph.log")
        os.makedirs(log_dir, exist_ok=True)

        # Start new run section
        with open(self.log_path, 'a') as f:
            f.write("\n" + "=" * 80 + "\n")
            f.write(f"RUN: {_format_timestamp()}\n")
            f.write("=" * 80 + "\n\n")

    def _write_array(self, f, title, shape, values, indent="  "):
        f.write(f"{title}:\n")
        f.write(f"{indent}Shape: {list(shape)}\n")
        f.write(f"{indent}Values: {_format_array(values, self.max_values)}\n")

    def log_forward(self, episode, nodes):
        """
        Log a forward pass.

        Args:
            episode: Episode number
            nodes: Nodes computed by this pass, in tape order
        """
        with open(self.log_path, 'a') as f:
            f.write(f"[EPISODE {episode} - FORWARD PASS]\n")
            f.write(f"Timestamp: {_format_timestamp()}\n")
            f.write(f"Nodes computed: {len(nodes)}\n\n")

            for node in nodes:
                flags = []
                if node.trainable:
                    flags.append("trainable")
                if node.is_checkpoint:
                    flags.append("checkpoint")
                suffix = f" ({', '.join(flags)})" if flags else ""
                self._write_array(f, f"{node.label}{suffix}", node.shape, node.value)
            f.write("\n" + "-" * 80 + "\n\n")

    def log_backward(self, episode, roots, params):
        """
        Log a backward pass.

        Args:
            episode: Episode number
            roots: Nodes the gradient was seeded at
            params: Parameters that hold a gradient
        """
        with open(self.log_path, 'a') as f:
            f.write(f"[EPISODE {episode} - BACKWARD PASS]\n")
            f.write(f"Timestamp: {_format_timestamp()}\n\n")

            for root in roots:
                self._write_array(f, f"Root {root.label}", root.shape, root.value)

            if params:
                f.write("\nParameters and Gradients:\n")
                for node in params:
                    f.write(f"\n  {node.label}:\n")
                    f.write(f"    Shape: {list(node.shape)}\n")
                    f.write(f"    Values: {_format_array(node.value, self.max_values)}\n")
                    f.write(f"    Gradient values: {_format_array(node.grad, self.max_values)}\n")

            f.write("\n" + "-" * 80 + "\n\n")

    def log_debug(self, message, phase, array):
        """Log the value (forward) or gradient (backward) seen by a debug node"""
        with open(self.log_path, 'a') as f:
            f.write(f"[DEBUG {phase.upper()}] {_format_timestamp()} {message}\n")
            self._write_array(f, "  Tensor", np.shape(array), array, indent="    ")
            f.write("\n")

    def log_memory(self, episode, stats):
        """Log memory manager statistics"""
        with open(self.log_path, 'a') as f:
            f.write(f"[EPISODE {episode} - MEMORY]\n")
            f.write(f"  Live: {_format_bytes(stats['live_bytes'])}\n")
            f.write(f"  Peak: {_format_bytes(stats['peak_bytes'])}\n")
            f.write(f"  Allocations: {stats['allocations']}, releases: {stats['releases']}, "
                    f"recomputations: {stats['recomputations']}\n\n")
