"""
Product state migrations.

This package moves composition and variation data when a product changes
between plain, composite, variable and composite+variable shapes, with a
backup taken first so a failed migration can be rolled back.
"""

from src.services.migration.composite_variation_migration import CompositeVariationMigrationService
from src.services.migration.saga import MigrationSaga, MigrationStep
from src.services.migration.transitions import determine_transition_type, get_transition_config

__all__ = [
    "CompositeVariationMigrationService",
    "MigrationSaga",
    "MigrationStep",
    "determine_transition_type",
    "get_transition_config",
]
