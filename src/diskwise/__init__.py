"""diskwise - concurrent disk usage scanner with cached results."""

__version__ = "0.1.0"
