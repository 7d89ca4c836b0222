"""stocksync — reconciles ERP stock and prices into an existing commerce catalog."""

__version__ = "1.0.0"
