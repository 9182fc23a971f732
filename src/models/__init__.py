"""
Database models package.

This package contains all SQLAlchemy ORM models for the catalog.
"""

from .base import Base, BaseModel
from .dimensions import Dimensions
from .product import (
    Product,
    PRODUCT_TYPE_SIMPLE,
    PRODUCT_TYPE_COMPOSITE,
    PRODUCT_TYPE_VARIABLE,
    PRODUCT_TYPE_COMPOSITE_VARIABLE,
)
from .composition_item import CompositionItem
from .product_variation_item import ProductVariationItem
from .variation_type import VariationType
from .variation import Variation
from .migration_backup import MigrationBackup

__all__ = [
    "Base",
    "BaseModel",
    "Dimensions",
    "Product",
    "PRODUCT_TYPE_SIMPLE",
    "PRODUCT_TYPE_COMPOSITE",
    "PRODUCT_TYPE_VARIABLE",
    "PRODUCT_TYPE_COMPOSITE_VARIABLE",
    "CompositionItem",
    "ProductVariationItem",
    "VariationType",
    "Variation",
    "MigrationBackup",
]
