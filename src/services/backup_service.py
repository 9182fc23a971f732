"""Backup Service - snapshots taken before product state migrations.

A backup captures a product together with its composition items and
variation combinations (``to_dict()`` of each) so a failed migration can put
everything back exactly as it was. Backups are stored in the
``migration_backups`` table of the live database and are committed in their
own transaction, so they survive a migration that fails afterwards.

Retention: after each new backup, only the newest ``max_backups_per_product``
backups of that product are kept, and backups older than
``backup_expiry_days`` are dropped.

Example Usage:
  >>> from src.services.backup_service import BackupService
  >>>
  >>> service = BackupService()
  >>> backup_id = service.create_backup("DINING-SET-001", "composite-to-variations",
  ...                                   product, items, variations)
  >>> data = service.restore(backup_id)
  >>> len(data.original_composition_items)
  2
"""

import json
import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from src.models import MigrationBackup
from src.utils.config import get_config
from src.utils.constants import BACKUP_USER_AGENT
from src.utils.datetime_utils import as_utc, epoch_millis, parse_iso, utc_now

from .exceptions import BackupNotFoundError, StorageError
from .logging_utils import get_service_logger, log_operation
from .repositories import MigrationBackupRepository

logger = get_service_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 6) -> str:
    """Short random base36 string used in backup and operation ids."""
    return "".join(random.choices(_ID_ALPHABET, k=length))


def _snapshot(record: Any) -> Dict[str, Any]:
    if isinstance(record, dict):
        return dict(record)
    return record.to_dict()


@dataclass
class BackupData:
    """
    Restorable snapshot of one product.

    Attributes:
        id: Backup id
        product_sku: Product the snapshot belongs to
        timestamp: When the snapshot was taken (UTC)
        original_product: Product ``to_dict()``
        original_composition_items: CompositionItem ``to_dict()`` rows
        original_variations: ProductVariationItem ``to_dict()`` rows
        metadata: ``operation``, ``user_agent`` and ``version``
    """

    id: str
    product_sku: str
    timestamp: datetime
    original_product: Dict[str, Any]
    original_composition_items: List[Dict[str, Any]] = field(default_factory=list)
    original_variations: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_sku": self.product_sku,
            "timestamp": self.timestamp.isoformat(),
            "original_product": self.original_product,
            "original_composition_items": self.original_composition_items,
            "original_variations": self.original_variations,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupData":
        return cls(
            id=data["id"],
            product_sku=data["product_sku"],
            timestamp=as_utc(parse_iso(data["timestamp"])),
            original_product=data["original_product"],
            original_composition_items=list(data["original_composition_items"]),
            original_variations=list(data["original_variations"]),
            metadata=dict(data["metadata"]),
        )


def _is_valid_payload(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("id"), str)
        and isinstance(data.get("product_sku"), str)
        and bool(data.get("timestamp"))
        and isinstance(data.get("original_product"), dict)
        and isinstance(data.get("original_composition_items"), list)
        and isinstance(data.get("original_variations"), list)
        and isinstance(data.get("metadata"), dict)
        and isinstance(data["metadata"].get("operation"), str)
    )


class BackupService:
    """Create, restore and prune migration backups."""

    def __init__(self, backup_repository: Optional[MigrationBackupRepository] = None):
        self.backup_repository = backup_repository or MigrationBackupRepository()

    @staticmethod
    def generate_backup_id(product_sku: str) -> str:
        """``<sku>-<epoch millis>-<6 random base36 chars>``"""
        return f"{product_sku}-{epoch_millis()}-{random_suffix()}"

    def create_backup(
        self,
        product_sku: str,
        operation: str,
        product: Any,
        composition_items: Iterable[Any] = (),
        variations: Iterable[Any] = (),
    ) -> str:
        """
        Store a snapshot of a product and its related data.

        Args:
            product_sku: Product being migrated
            operation: Label of the migration requesting the backup
            product: Product (model or ``to_dict()`` mapping)
            composition_items: CompositionItems to capture
            variations: ProductVariationItems to capture

        Returns:
            The new backup id

        Raises:
            StorageError: The backup could not be written
        """
        backup_id = self.generate_backup_id(product_sku)
        config = get_config()
        data = BackupData(
            id=backup_id,
            product_sku=product_sku,
            timestamp=utc_now(),
            original_product=_snapshot(product),
            original_composition_items=[_snapshot(item) for item in composition_items],
            original_variations=[_snapshot(variation) for variation in variations],
            metadata={
                "operation": operation,
                "user_agent": BACKUP_USER_AGENT,
                "version": config.app_version,
            },
        )

        self.backup_repository.create(
            {
                "backup_id": backup_id,
                "product_sku": product_sku,
                "operation": operation,
                "backup_data": data.to_dict(),
            }
        )
        log_operation(
            logger,
            operation="create_backup",
            outcome="success",
            product_sku=product_sku,
            backup_id=backup_id,
            items=len(data.original_composition_items),
            variations=len(data.original_variations),
        )

        self.cleanup_old_backups(product_sku)
        return backup_id

    def restore(self, backup_id: str) -> BackupData:
        """
        Load a stored snapshot.

        Raises:
            BackupNotFoundError: No backup with this id
            StorageError: The stored payload is not a valid backup
        """
        record = self.backup_repository.find_by_backup_id(backup_id)
        if record is None:
            raise BackupNotFoundError(backup_id)
        if not _is_valid_payload(record.backup_data):
            raise StorageError(f"Invalid backup data: {backup_id}", "restore")
        return BackupData.from_dict(record.backup_data)

    def get_backups_for_product(self, product_sku: str) -> List[BackupData]:
        """All readable backups of a product, newest first."""
        backups = []
        for record in self.backup_repository.find_by_product(product_sku):
            if not _is_valid_payload(record.backup_data):
                logger.warning(f"Skipping corrupted backup: {record.backup_id}")
                continue
            backups.append(BackupData.from_dict(record.backup_data))
        return sorted(backups, key=lambda backup: backup.timestamp, reverse=True)

    def delete_backup(self, backup_id: str) -> None:
        """Delete a backup; unknown ids are ignored."""
        deleted = self.backup_repository.delete_by_backup_ids([backup_id])
        if deleted:
            log_operation(logger, operation="delete_backup", outcome="success", backup_id=backup_id)

    def cleanup_old_backups(self, product_sku: str) -> int:
        """
        Apply retention to one product's backups.

        Returns:
            Number of backups deleted
        """
        config = get_config()
        records = self.backup_repository.find_by_product(product_sku)
        cutoff = utc_now() - timedelta(days=config.backup_expiry_days)

        to_delete = [r.backup_id for r in records[config.max_backups_per_product:]]
        to_delete.extend(
            r.backup_id
            for r in records[: config.max_backups_per_product]
            if as_utc(r.created_at) < cutoff
        )

        deleted = self.backup_repository.delete_by_backup_ids(to_delete)
        if deleted:
            log_operation(
                logger,
                operation="cleanup_old_backups",
                outcome="success",
                product_sku=product_sku,
                deleted=deleted,
            )
        return deleted

    def get_storage_stats(self) -> Dict[str, Any]:
        """
        Backup storage usage.

        Returns:
            Dict with ``total_backups``, ``total_size`` (characters of
            serialized payload), ``oldest_backup`` and ``newest_backup``
        """
        records: List[MigrationBackup] = self.backup_repository.find_all()
        date_range = self.backup_repository.get_date_range()
        return {
            "total_backups": len(records),
            "total_size": sum(len(json.dumps(r.backup_data)) for r in records),
            "oldest_backup": as_utc(date_range["oldest"]) if date_range["oldest"] else None,
            "newest_backup": as_utc(date_range["newest"]) if date_range["newest"] else None,
        }
