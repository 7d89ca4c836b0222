"""Database models — re-exports for convenience.

Import from here:  from stocksync.models import Base, Product
"""

from .base import Base  # noqa: F401

# Commerce store catalog
from .product import Product  # noqa: F401
