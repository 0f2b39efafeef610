"""
GraphLite Configuration

Graph-wide settings live in a plain dict. ExpressionGraph takes a config
dict and/or keyword overrides, e.g.

    graph = ExpressionGraph(dtype='float64', seed=1234)
"""

from .dtype import validate

# =========================
# CONFIGURATION
# =========================

DEFAULT_CONFIG = {
    'dtype': 'float32',        # default element type of constants/parameters
    'release_memory': True,    # free intermediate buffers during backward
    'inference': False,        # free everything eagerly, forbid backward
    'seed': None,              # seed for initializers and dropout masks
    'log_dir': None,           # write <log_name>.graph.log here when set
    'log_name': 'graph',
    'log_max_values': 10,      # sample values printed per array
}


def make_config(config=None, **overrides):
    """Merge user settings over DEFAULT_CONFIG, rejecting unknown keys"""
    merged = dict(DEFAULT_CONFIG)
    for source in (config or {}), overrides:
        for key, value in source.items():
            if key not in DEFAULT_CONFIG:
                raise KeyError(f"Unknown graph config key: {key!r}")
            merged[key] = value
    merged['dtype'] = validate(merged['dtype'])
    return merged
