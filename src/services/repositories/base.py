"""
Base repository for catalog entities.

Every repository method accepts an optional ``session``. With a session the
work joins the caller's transaction; without one the method opens its own
``session_scope()`` and commits before returning. Returned instances are
detached (the session factory uses ``expire_on_commit=False``), so their
column attributes stay readable after the scope closes.

SQLAlchemy failures are wrapped in StorageError; service errors raised by the
work itself propagate unchanged.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.base import BaseModel
from src.services import database
from src.services.exceptions import RecordNotFound, ServiceError, StorageError
from src.utils.datetime_utils import parse_iso, utc_now

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    CRUD over one model, keyed by its public ``uuid``.

    Subclasses set ``model`` and ``entity_name`` and may extend
    ``_before_create``/``_before_update``/``_before_delete``.
    """

    model: Type[BaseModel] = BaseModel
    entity_name = "Record"

    # Non-column attributes accepted by create/update (model properties)
    extra_fields: tuple = ()

    def _run(self, operation: str, work: Callable[[Session], Any], session: Optional[Session] = None):
        try:
            if session is not None:
                return work(session)
            with database.session_scope() as scoped:
                return work(scoped)
        except ServiceError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"{self.entity_name} {operation} failed: {e}")
            raise StorageError(f"Failed to {operation} {self.entity_name}: {e}", operation, e) from e

    def _query(self, session: Session):
        return session.query(self.model)

    def _lookup(self, session: Session, record_id: str):
        return self._query(session).filter(self.model.uuid == record_id).first()

    def _get_or_raise(self, session: Session, record_id: str):
        record = self._lookup(session, record_id)
        if record is None:
            raise RecordNotFound(self.entity_name, record_id)
        return record

    def _build(self, data: Dict[str, Any]):
        columns = {c.name for c in self.model.__table__.columns}
        fields = {k: v for k, v in data.items() if k in columns and k not in self.model.PROTECTED_FIELDS}
        record = self.model(**fields)
        for name in self.extra_fields:
            if name in data:
                setattr(record, name, data[name])
        return record

    def _apply(self, record, patch: Dict[str, Any]) -> None:
        record.update_from_dict(patch)
        for name in self.extra_fields:
            if name in patch:
                setattr(record, name, patch[name])

    # Hooks ---------------------------------------------------------------

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        pass

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        pass

    def _before_delete(self, session: Session, record) -> None:
        pass

    # CRUD ----------------------------------------------------------------

    def find_all(self, session: Optional[Session] = None) -> List[BaseModel]:
        return self._run("find all", lambda s: self._query(s).order_by(self.model.id).all(), session)

    def find_by_id(self, record_id: str, session: Optional[Session] = None) -> Optional[BaseModel]:
        return self._run("find", lambda s: self._lookup(s, record_id), session)

    def find_where(self, predicate: Callable[[Any], bool], session: Optional[Session] = None) -> List[BaseModel]:
        return [record for record in self.find_all(session=session) if predicate(record)]

    def exists(self, record_id: str, session: Optional[Session] = None) -> bool:
        return self.find_by_id(record_id, session=session) is not None

    def count(self, session: Optional[Session] = None) -> int:
        return self._run("count", lambda s: self._query(s).count(), session)

    def create(self, data: Dict[str, Any], session: Optional[Session] = None) -> BaseModel:
        def _impl(s: Session):
            payload = dict(data)
            self._before_create(s, payload)
            record = self._build(payload)
            s.add(record)
            s.flush()
            return record

        return self._run("create", _impl, session)

    def create_many(self, rows: Iterable[Dict[str, Any]], session: Optional[Session] = None) -> List[BaseModel]:
        """Create several records in one transaction."""
        rows = list(rows)

        def _impl(s: Session):
            created = []
            for data in rows:
                payload = dict(data)
                self._before_create(s, payload)
                record = self._build(payload)
                s.add(record)
                s.flush()
                created.append(record)
            return created

        return self._run("create", _impl, session)

    def update(self, record_id: str, patch: Dict[str, Any], session: Optional[Session] = None) -> BaseModel:
        def _impl(s: Session):
            record = self._get_or_raise(s, record_id)
            self._before_update(s, record, patch)
            self._apply(record, patch)
            s.flush()
            return record

        return self._run("update", _impl, session)

    def delete(self, record_id: str, session: Optional[Session] = None) -> None:
        def _impl(s: Session):
            record = self._get_or_raise(s, record_id)
            self._before_delete(s, record)
            s.delete(record)
            s.flush()

        self._run("delete", _impl, session)

    def delete_many(self, record_ids: Iterable[str], session: Optional[Session] = None) -> int:
        record_ids = list(record_ids)
        if not record_ids:
            return 0

        def _impl(s: Session):
            return (
                s.query(self.model)
                .filter(self.model.uuid.in_(record_ids))
                .delete(synchronize_session=False)
            )

        return self._run("delete", _impl, session)

    def restore(self, snapshot: Dict[str, Any], session: Optional[Session] = None) -> BaseModel:
        """
        Re-insert a record from its ``to_dict()`` snapshot, keeping its uuid
        and timestamps.
        """

        def _impl(s: Session):
            record = self.model()
            for column in self.model.__table__.columns:
                if column.name == "id" or column.name not in snapshot:
                    continue
                value = snapshot[column.name]
                if column.name in ("created_at", "updated_at"):
                    value = parse_iso(value) or utc_now()
                setattr(record, column.name, value)
            s.add(record)
            s.flush()
            return record

        return self._run("restore", _impl, session)
