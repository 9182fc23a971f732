"""VariationType repository."""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import Variation, VariationType
from src.services.exceptions import BusinessRuleError, ValidationError

from .base import BaseRepository


class VariationTypeRepository(BaseRepository):
    model = VariationType
    entity_name = "Variation type"

    def _query(self, session: Session):
        return session.query(VariationType)

    def _find_by_name(self, session: Session, name: str):
        normalized = (name or "").strip().lower()
        return self._query(session).filter(func.lower(VariationType.name) == normalized).first()

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        if self._find_by_name(session, data.get("name")) is not None:
            raise ValidationError(
                f"A variation type with name '{data.get('name')}' already exists", "name", "duplicate"
            )

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        if "name" in patch:
            existing = self._find_by_name(session, patch["name"])
            if existing is not None and existing.uuid != record.uuid:
                raise ValidationError(
                    f"A variation type with name '{patch['name']}' already exists", "name", "duplicate"
                )

    def _before_delete(self, session: Session, record) -> None:
        count = session.query(Variation).filter(Variation.variation_type_id == record.uuid).count()
        if count > 0:
            raise BusinessRuleError(
                f"Cannot delete variation type '{record.name}' because it has {count} "
                f"variation(s) associated with it. Please delete all variations first.",
                "variation_type_in_use",
                {"variation_type_id": record.uuid, "variation_count": count},
            )

    def find_by_name(self, name: str, session: Optional[Session] = None) -> Optional[VariationType]:
        return self._run("find", lambda s: self._find_by_name(s, name), session)

    def name_exists(self, name: str, exclude_id: Optional[str] = None, session: Optional[Session] = None) -> bool:
        existing = self.find_by_name(name, session=session)
        return existing is not None and existing.uuid != exclude_id

    def get_all_names(self, session: Optional[Session] = None) -> List[str]:
        return sorted(vt.name for vt in self.find_all(session=session))

    def find_weight_modifying(self, session: Optional[Session] = None) -> List[VariationType]:
        return self.find_where(lambda vt: vt.modifies_weight, session=session)

    def find_dimension_modifying(self, session: Optional[Session] = None) -> List[VariationType]:
        return self.find_where(lambda vt: vt.modifies_dimensions, session=session)

    def search(self, query: str, session: Optional[Session] = None) -> List[VariationType]:
        normalized = (query or "").strip().lower()
        return self.find_where(lambda vt: normalized in vt.name.lower(), session=session)

    def find_by_ids(self, ids: Iterable[str], session: Optional[Session] = None) -> List[VariationType]:
        ids = list(ids)
        if not ids:
            return []
        return self._run(
            "find", lambda s: self._query(s).filter(VariationType.uuid.in_(ids)).all(), session
        )

    def any_modify_weight(self, ids: Iterable[str], session: Optional[Session] = None) -> bool:
        return any(vt.modifies_weight for vt in self.find_by_ids(ids, session=session))

    def any_modify_dimensions(self, ids: Iterable[str], session: Optional[Session] = None) -> bool:
        return any(vt.modifies_dimensions for vt in self.find_by_ids(ids, session=session))
