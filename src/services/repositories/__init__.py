"""
Repositories: persistence for catalog entities.

Each repository wraps one model and accepts an optional session on every
method (see ``base.BaseRepository``).
"""

from .base import BaseRepository
from .product_repository import ProductRepository
from .composition_item_repository import CompositionItemRepository
from .product_variation_item_repository import ProductVariationItemRepository
from .variation_type_repository import VariationTypeRepository
from .variation_repository import VariationRepository
from .migration_backup_repository import MigrationBackupRepository

__all__ = [
    "BaseRepository",
    "ProductRepository",
    "CompositionItemRepository",
    "ProductVariationItemRepository",
    "VariationTypeRepository",
    "VariationRepository",
    "MigrationBackupRepository",
]
