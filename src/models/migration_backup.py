"""
MigrationBackup model - snapshot of a product and its composition/variation
data taken before a state migration.

Snapshots live in the same database as live data so a migration interrupted
after the backup step can always be rolled back from the stored row alone.
"""

from sqlalchemy import JSON, Column, Index, String

from src.utils.constants import MAX_SKU_LENGTH

from .base import BaseModel


class MigrationBackup(BaseModel):
    """
    Stored backup snapshot.

    Attributes:
        backup_id: Public backup id (``<sku>-<epoch millis>-<random>``)
        product_sku: Product the snapshot was taken for
        operation: Label of the migration that requested the backup
        backup_data: Full BackupData payload (JSON)
    """

    __tablename__ = "migration_backups"

    backup_id = Column(String(100), nullable=False, unique=True, index=True)
    product_sku = Column(String(MAX_SKU_LENGTH), nullable=False)
    operation = Column(String(100), nullable=False)
    backup_data = Column(JSON, nullable=False)

    __table_args__ = (Index("idx_migration_backup_product", "product_sku", "created_at"),)
