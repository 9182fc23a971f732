"""Migration backup repository - backups are addressed by backup id."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import MigrationBackup

from .base import BaseRepository


class MigrationBackupRepository(BaseRepository):
    model = MigrationBackup
    entity_name = "Migration backup"

    def _lookup(self, session: Session, backup_id: str):
        return self._query(session).filter(MigrationBackup.backup_id == backup_id).first()

    def find_by_backup_id(self, backup_id: str, session: Optional[Session] = None) -> Optional[MigrationBackup]:
        return self.find_by_id(backup_id, session=session)

    def find_by_product(self, product_sku: str, session: Optional[Session] = None) -> List[MigrationBackup]:
        """Backups of one product, newest first."""
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(MigrationBackup.product_sku == product_sku)
            .order_by(MigrationBackup.created_at.desc(), MigrationBackup.id.desc())
            .all(),
            session,
        )

    def find_created_before(self, cutoff: datetime, session: Optional[Session] = None) -> List[MigrationBackup]:
        return self._run(
            "find",
            lambda s: self._query(s).filter(MigrationBackup.created_at < cutoff).all(),
            session,
        )

    def delete_by_backup_ids(self, backup_ids: List[str], session: Optional[Session] = None) -> int:
        if not backup_ids:
            return 0
        return self._run(
            "delete",
            lambda s: s.query(MigrationBackup)
            .filter(MigrationBackup.backup_id.in_(backup_ids))
            .delete(synchronize_session=False),
            session,
        )

    def get_date_range(self, session: Optional[Session] = None) -> Dict[str, Any]:
        """Oldest and newest ``created_at`` across all backups."""

        def _impl(s: Session):
            oldest, newest = s.query(
                func.min(MigrationBackup.created_at), func.max(MigrationBackup.created_at)
            ).one()
            return {"oldest": oldest, "newest": newest}

        return self._run("stats", _impl, session)
