"""Commerce store product model — the records the sync engine updates.

The products table is owned by the commerce application. The sync engine
only updates existing rows matched by sku; it never inserts or deletes.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Index, Integer, Numeric, String, Text, func

from ..database import UTCDateTime
from .base import Base


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    sku = Column(String(100))
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    discount_price = Column(Numeric(12, 2))
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (Index("ix_products_sku", "sku"),)
