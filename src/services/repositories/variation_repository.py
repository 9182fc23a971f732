"""Variation repository. Names are unique per variation type, case-insensitively."""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import ProductVariationItem, Variation
from src.services.exceptions import BusinessRuleError, ValidationError

from .base import BaseRepository


class VariationRepository(BaseRepository):
    model = Variation
    entity_name = "Variation"

    def _find_by_name_in_type(self, session: Session, name: str, variation_type_id: str):
        normalized = (name or "").strip().lower()
        return (
            self._query(session)
            .filter(
                Variation.variation_type_id == variation_type_id,
                func.lower(Variation.name) == normalized,
            )
            .first()
        )

    def _duplicate(self, name: str) -> ValidationError:
        return ValidationError(
            f"A variation with name '{name}' already exists in this variation type", "name", "duplicate"
        )

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        if self._find_by_name_in_type(session, data.get("name"), data.get("variation_type_id")):
            raise self._duplicate(data.get("name"))

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        if "name" in patch:
            type_id = patch.get("variation_type_id", record.variation_type_id)
            existing = self._find_by_name_in_type(session, patch["name"], type_id)
            if existing is not None and existing.uuid != record.uuid:
                raise self._duplicate(patch["name"])

    def _before_delete(self, session: Session, record) -> None:
        usage = [
            item
            for item in session.query(ProductVariationItem).all()
            if record.uuid in (item.selections or {}).values()
        ]
        if usage:
            raise BusinessRuleError(
                f"Cannot delete variation '{record.name}' because it is being used in "
                f"{len(usage)} product variation(s). Please remove it from all products first.",
                "variation_in_use",
                {"variation_id": record.uuid, "usage_count": len(usage)},
            )

    def find_by_variation_type(self, variation_type_id: str, session: Optional[Session] = None) -> List[Variation]:
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(Variation.variation_type_id == variation_type_id)
            .order_by(Variation.id)
            .all(),
            session,
        )

    def find_by_name_in_type(
        self, name: str, variation_type_id: str, session: Optional[Session] = None
    ) -> Optional[Variation]:
        return self._run(
            "find", lambda s: self._find_by_name_in_type(s, name, variation_type_id), session
        )

    def name_exists_in_type(
        self,
        name: str,
        variation_type_id: str,
        exclude_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> bool:
        existing = self.find_by_name_in_type(name, variation_type_id, session=session)
        return existing is not None and existing.uuid != exclude_id

    def find_grouped_by_type(self, session: Optional[Session] = None) -> Dict[str, List[Variation]]:
        grouped: Dict[str, List[Variation]] = {}
        for variation in self.find_all(session=session):
            grouped.setdefault(variation.variation_type_id, []).append(variation)
        return grouped

    def find_for_variation_types(
        self, variation_type_ids: Iterable[str], session: Optional[Session] = None
    ) -> Dict[str, List[Variation]]:
        grouped = self.find_grouped_by_type(session=session)
        return {type_id: grouped.get(type_id, []) for type_id in variation_type_ids}

    def find_by_ids(self, ids: Iterable[str], session: Optional[Session] = None) -> List[Variation]:
        ids = list(ids)
        if not ids:
            return []
        return self._run(
            "find", lambda s: self._query(s).filter(Variation.uuid.in_(ids)).all(), session
        )

    def search(
        self, query: str, variation_type_id: Optional[str] = None, session: Optional[Session] = None
    ) -> List[Variation]:
        normalized = (query or "").strip().lower()

        def matches(variation: Variation) -> bool:
            if variation_type_id and variation.variation_type_id != variation_type_id:
                return False
            return not normalized or normalized in variation.name.lower()

        return self.find_where(matches, session=session)

    def count_by_variation_type(self, variation_type_id: str, session: Optional[Session] = None) -> int:
        return self._run(
            "count",
            lambda s: self._query(s).filter(Variation.variation_type_id == variation_type_id).count(),
            session,
        )

    def delete_by_variation_type(self, variation_type_id: str, session: Optional[Session] = None) -> int:
        return self._run(
            "delete",
            lambda s: s.query(Variation)
            .filter(Variation.variation_type_id == variation_type_id)
            .delete(synchronize_session=False),
            session,
        )
