"""
CompositionItem repository.

Parent keys may be plain SKUs or ``<sku>#<variationId>`` scope keys; methods
that take a parent accept either the stored key or a CompositionScope.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from src.models import CompositionItem
from src.services.composition_scope import CompositionScope, as_key, base_sku, scope_prefix
from src.services.exceptions import ValidationError
from src.utils.validators import validate_quantity

from .base import BaseRepository

ParentKey = Union[str, CompositionScope]


class CompositionItemRepository(BaseRepository):
    model = CompositionItem
    entity_name = "CompositionItem"

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        if data.get("parent_sku") is not None:
            data["parent_sku"] = as_key(data["parent_sku"])

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        if "quantity" in patch:
            valid, error = validate_quantity(patch["quantity"])
            if not valid:
                raise ValidationError(error, "quantity", "positive")

    # Lookups -------------------------------------------------------------

    def find_by_parent(self, parent: ParentKey, session: Optional[Session] = None) -> List[CompositionItem]:
        key = as_key(parent)
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(CompositionItem.parent_sku == key)
            .order_by(CompositionItem.id)
            .all(),
            session,
        )

    def find_by_child(self, child_sku: str, session: Optional[Session] = None) -> List[CompositionItem]:
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(CompositionItem.child_sku == child_sku)
            .order_by(CompositionItem.id)
            .all(),
            session,
        )

    def find_by_parent_and_child(
        self, parent: ParentKey, child_sku: str, session: Optional[Session] = None
    ) -> Optional[CompositionItem]:
        key = as_key(parent)
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(CompositionItem.parent_sku == key, CompositionItem.child_sku == child_sku)
            .first(),
            session,
        )

    def find_by_product_scopes(self, product_sku: str, session: Optional[Session] = None) -> List[CompositionItem]:
        """Items under the plain key and under every ``<sku>#...`` scope key."""
        prefix = scope_prefix(product_sku)
        return self._run(
            "find",
            lambda s: self._query(s)
            .filter(
                or_(
                    CompositionItem.parent_sku == product_sku,
                    func.substr(CompositionItem.parent_sku, 1, len(prefix)) == prefix,
                )
            )
            .order_by(CompositionItem.id)
            .all(),
            session,
        )

    def find_by_child_product(self, product_sku: str, session: Optional[Session] = None) -> List[CompositionItem]:
        """Items whose child is the product itself or any of its variation references."""
        return [
            item
            for item in self.find_all(session=session)
            if base_sku(item.child_sku) == product_sku
        ]

    def find_grouped_by_parent(self, session: Optional[Session] = None) -> Dict[str, List[CompositionItem]]:
        grouped: Dict[str, List[CompositionItem]] = OrderedDict()
        for item in self.find_all(session=session):
            grouped.setdefault(item.parent_sku, []).append(item)
        return grouped

    def count_by_parent(self, parent: ParentKey, session: Optional[Session] = None) -> int:
        key = as_key(parent)
        return self._run(
            "count",
            lambda s: self._query(s).filter(CompositionItem.parent_sku == key).count(),
            session,
        )

    def count_by_child(self, child_sku: str, session: Optional[Session] = None) -> int:
        return self._run(
            "count",
            lambda s: self._query(s).filter(CompositionItem.child_sku == child_sku).count(),
            session,
        )

    def get_parents_using_child(self, child_sku: str, session: Optional[Session] = None) -> List[str]:
        parents = []
        for item in self.find_by_child(child_sku, session=session):
            if item.parent_sku not in parents:
                parents.append(item.parent_sku)
        return parents

    def get_children_of_parent(self, parent: ParentKey, session: Optional[Session] = None) -> List[str]:
        return [item.child_sku for item in self.find_by_parent(parent, session=session)]

    def is_used_as_child(self, child_sku: str, session: Optional[Session] = None) -> bool:
        return self.count_by_child(child_sku, session=session) > 0

    def has_composition_items(self, parent: ParentKey, session: Optional[Session] = None) -> bool:
        return self.count_by_parent(parent, session=session) > 0

    def search(self, query: str, session: Optional[Session] = None) -> List[CompositionItem]:
        normalized = (query or "").strip().lower()
        if not normalized:
            return self.find_all(session=session)
        return self.find_where(
            lambda item: normalized in item.parent_sku.lower() or normalized in item.child_sku.lower(),
            session=session,
        )

    # Writes --------------------------------------------------------------

    def create_batch(self, rows: Iterable[Dict[str, Any]], session: Optional[Session] = None) -> List[CompositionItem]:
        """Create items in one transaction; any invalid row rolls back the batch."""
        return self.create_many(rows, session=session)

    def update_quantity(self, item_id: str, quantity: int, session: Optional[Session] = None) -> CompositionItem:
        return self.update(item_id, {"quantity": quantity}, session=session)

    def delete_by_parent(self, parent: ParentKey, session: Optional[Session] = None) -> int:
        key = as_key(parent)
        return self._run(
            "delete",
            lambda s: self._query(s)
            .filter(CompositionItem.parent_sku == key)
            .delete(synchronize_session=False),
            session,
        )

    def delete_by_child(self, child_sku: str, session: Optional[Session] = None) -> int:
        return self._run(
            "delete",
            lambda s: self._query(s)
            .filter(CompositionItem.child_sku == child_sku)
            .delete(synchronize_session=False),
            session,
        )

    def delete_by_parent_prefix(self, product_sku: str, session: Optional[Session] = None) -> int:
        """Delete the items of every variation scope of a product."""
        prefix = scope_prefix(product_sku)
        return self._run(
            "delete",
            lambda s: self._query(s)
            .filter(func.substr(CompositionItem.parent_sku, 1, len(prefix)) == prefix)
            .delete(synchronize_session=False),
            session,
        )

    def copy_items(self, source: ParentKey, target: ParentKey, session: Optional[Session] = None) -> List[CompositionItem]:
        """Duplicate every item of ``source`` under ``target``."""
        target_key = as_key(target)
        rows = [
            {"parent_sku": target_key, "child_sku": item.child_sku, "quantity": item.quantity}
            for item in self.find_by_parent(source, session=session)
        ]
        return self.create_batch(rows, session=session)

    # Aggregates ----------------------------------------------------------

    def calculate_composite_weight(
        self, parent: ParentKey, child_weights: Dict[str, float], session: Optional[Session] = None
    ) -> float:
        """Quantity-weighted sum over known child weights (missing -> 0)."""
        return sum(
            (child_weights.get(item.child_sku) or 0) * item.quantity
            for item in self.find_by_parent(parent, session=session)
        )

    def get_composition_stats(self, session: Optional[Session] = None) -> Dict[str, Any]:
        items = self.find_all(session=session)
        unique_parents = len({item.parent_sku for item in items})
        unique_children = len({item.child_sku for item in items})
        return {
            "total_items": len(items),
            "unique_parents": unique_parents,
            "unique_children": unique_children,
            "average_items_per_parent": len(items) / unique_parents if unique_parents else 0,
        }

    def validate_integrity(self, available_skus: Iterable[str], session: Optional[Session] = None) -> Dict[str, Any]:
        """
        Audit every item against the known product SKUs.

        Returns:
            Dict with ``valid``, ``orphaned_items`` (parent product missing) and
            ``missing_children`` (distinct child keys whose product is missing)
        """
        known = set(available_skus)
        orphaned_items = []
        missing_children: List[str] = []

        for item in self.find_all(session=session):
            if base_sku(item.parent_sku) not in known:
                orphaned_items.append(item)
            if base_sku(item.child_sku) not in known and item.child_sku not in missing_children:
                missing_children.append(item.child_sku)

        return {
            "valid": not orphaned_items and not missing_children,
            "orphaned_items": orphaned_items,
            "missing_children": missing_children,
        }
