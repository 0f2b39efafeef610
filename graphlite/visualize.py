"""
GraphLite Visualization Utilities

Draw an expression graph, and how much buffer memory it held while it ran.
"""

import matplotlib.pyplot as plt
import networkx as nx


def to_networkx(graph):
    """
    Convert the current episode of an ExpressionGraph to a networkx DiGraph.

    Node keys are node ids. Each node carries label, kind, shape, dtype,
    trainable, checkpoint and computed attributes. Parameters used by the
    episode are included.
    """
    G = nx.DiGraph()

    def add_node(node):
        G.add_node(node.id,
                   label=node.label,
                   kind=node.op.kind if node.op is not None else 'leaf',
                   shape=tuple(node.shape),
                   dtype=node.dtype,
                   trainable=node.trainable,
                   checkpoint=node.is_checkpoint,
                   computed=node.computed or node.value is not None)

    for node in graph.tape:
        add_node(node)
        for i in node.inputs:
            if i.id not in G:
                add_node(i)
            G.add_edge(i.id, node.id)
    return G


def plot_computation_graph(graph, filename=None):
    """
    Visualize the computation graph of the current episode.

    Blue nodes carry gradients, gray nodes do not, orange nodes are
    checkpoints.

    Args:
        graph: ExpressionGraph to draw
        filename: If provided, save to this file instead of showing
    """
    G = to_networkx(graph)

    def color(attrs):
        if attrs['checkpoint']:
            return 'orange'
        return 'lightblue' if attrs['trainable'] else 'lightgray'

    plt.figure(figsize=(12, 8))
    pos = nx.spring_layout(G, k=2, iterations=50, seed=0)

    colors = [color(G.nodes[node]) for node in G.nodes()]
    labels = {node: f"{G.nodes[node]['label']}\n{list(G.nodes[node]['shape'])}"
              for node in G.nodes()}

    nx.draw(G, pos, labels=labels, node_color=colors,
            node_size=3000, font_size=8, font_weight='bold',
            arrows=True, arrowsize=20, edge_color='gray',
            arrowstyle='->', connectionstyle='arc3,rad=0.1')

    plt.title("Computation Graph\n(Blue = gradients tracked, Gray = no gradients, "
              "Orange = checkpoint)", fontsize=12, fontweight='bold')
    plt.axis('off')
    plt.tight_layout()

    if filename:
        plt.savefig(filename, dpi=150, bbox_inches='tight')
        print(f"Saved computation graph to {filename}")
    else:
        plt.show()

    plt.close()


def plot_memory_profile(graph, title="Buffer Memory", filename=None):
    """
    Plot live buffer bytes after every forward and backward step.

    Args:
        graph: ExpressionGraph that has run at least one pass
        title: Plot title
        filename: If provided, save to this file
    """
    history = graph.memory.history
    peak = graph.memory.allocator.peak_bytes

    fig, ax = plt.subplots(figsize=(10, 6))

    ax.plot(range(len(history)), history, 'b-', linewidth=2, label='Live bytes')
    ax.axhline(peak, color='red', linestyle='--', alpha=0.6, label=f'Peak: {peak} bytes')

    ax.set_xlabel('Step', fontsize=12)
    ax.set_ylabel('Bytes', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend()

    plt.tight_layout()

    if filename:
        plt.savefig(filename, dpi=150, bbox_inches='tight')
        print(f"Saved memory profile to {filename}")
    else:
        plt.show()

    plt.close()
