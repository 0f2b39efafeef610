"""
GraphLite Tape

Nodes in the order they were created. Since a node can only take inputs
that already exist, creation order is a topological order: forward walks
the tape front to back, backward walks it back to front.
"""


class Tape:
    def __init__(self):
        self._nodes = []
        self._positions = {}

    def append(self, node):
        self._positions[node.id] = len(self._nodes)
        self._nodes.append(node)

    def position(self, node):
        """Index of node on the tape (KeyError if it is not recorded)"""
        return self._positions[node.id]

    def clear(self):
        self._nodes = []
        self._positions = {}

    def __contains__(self, node):
        return node.id in self._positions and self._nodes[self._positions[node.id]] is node

    def __iter__(self):
        return iter(list(self._nodes))

    def __reversed__(self):
        return reversed(list(self._nodes))

    def __len__(self):
        return len(self._nodes)

    def __getitem__(self, i):
        return self._nodes[i]

    def __repr__(self):
        return f"Tape({len(self._nodes)} nodes)"
