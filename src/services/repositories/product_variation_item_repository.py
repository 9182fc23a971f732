"""ProductVariationItem repository (variation combinations of products)."""

from itertools import product as cartesian_product
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy.orm import Session

from src.models import ProductVariationItem
from src.services.exceptions import ValidationError

from .base import BaseRepository

DUPLICATE_COMBINATION = "A variation with this combination already exists for this product"


class ProductVariationItemRepository(BaseRepository):
    model = ProductVariationItem
    entity_name = "Product variation item"
    extra_fields = ("dimensions_override",)

    def _query(self, session: Session):
        return session.query(ProductVariationItem).order_by(
            ProductVariationItem.sort_order, ProductVariationItem.id
        )

    def _matching(self, session: Session, product_sku: str, selections: Dict[str, str]):
        for item in self._query(session).filter(ProductVariationItem.product_sku == product_sku):
            if (item.selections or {}) == selections:
                return item
        return None

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        selections = data.get("selections") or {}
        # Composite-variation combinations all carry empty selections
        if selections and self._matching(session, data.get("product_sku"), selections):
            raise ValidationError(DUPLICATE_COMBINATION, "selections", "duplicate")
        if "sort_order" not in data:
            data["sort_order"] = (
                self._query(session)
                .filter(ProductVariationItem.product_sku == data.get("product_sku"))
                .count()
            )

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        if "product_sku" in patch and patch["product_sku"] != record.product_sku:
            raise ValidationError("Product SKU cannot be modified during update", "product_sku")
        selections = patch.get("selections")
        if selections:
            existing = self._matching(session, record.product_sku, selections)
            if existing is not None and existing.uuid != record.uuid:
                raise ValidationError(DUPLICATE_COMBINATION, "selections", "duplicate")

    def find_by_product(self, product_sku: str, session: Optional[Session] = None) -> List[ProductVariationItem]:
        return self._run(
            "find",
            lambda s: self._query(s).filter(ProductVariationItem.product_sku == product_sku).all(),
            session,
        )

    def find_by_product_sku(self, product_sku: str, session: Optional[Session] = None) -> List[ProductVariationItem]:
        return self.find_by_product(product_sku, session=session)

    def count_by_product(self, product_sku: str, session: Optional[Session] = None) -> int:
        return self._run(
            "count",
            lambda s: self._query(s).filter(ProductVariationItem.product_sku == product_sku).count(),
            session,
        )

    def find_by_selections(
        self, product_sku: str, selections: Dict[str, str], session: Optional[Session] = None
    ) -> Optional[ProductVariationItem]:
        return self._run("find", lambda s: self._matching(s, product_sku, selections), session)

    def find_by_variation(self, variation_id: str, session: Optional[Session] = None) -> List[ProductVariationItem]:
        return self.find_where(
            lambda item: variation_id in (item.selections or {}).values(), session=session
        )

    def find_by_variation_type(self, variation_type_id: str, session: Optional[Session] = None) -> List[ProductVariationItem]:
        return self.find_where(
            lambda item: item.has_selection_for_type(variation_type_id), session=session
        )

    def search(self, query: str, session: Optional[Session] = None) -> List[ProductVariationItem]:
        normalized = (query or "").strip().lower()
        if not normalized:
            return self.find_all(session=session)
        return self.find_where(
            lambda item: normalized in item.product_sku.lower()
            or normalized in (item.name or "").lower(),
            session=session,
        )

    def delete_by_product(self, product_sku: str, session: Optional[Session] = None) -> int:
        return self._run(
            "delete",
            lambda s: s.query(ProductVariationItem)
            .filter(ProductVariationItem.product_sku == product_sku)
            .delete(synchronize_session=False),
            session,
        )

    def delete_by_variation(self, variation_id: str, session: Optional[Session] = None) -> int:
        ids = [item.uuid for item in self.find_by_variation(variation_id, session=session)]
        return self.delete_many(ids, session=session)

    @staticmethod
    def generate_combinations(
        variation_type_ids: List[str], variations_by_type: Dict[str, List[str]]
    ) -> Iterator[Dict[str, str]]:
        """
        Yield every selections mapping in the cartesian product of the given
        types' variation ids.
        """
        if not variation_type_ids:
            return
        pools = [variations_by_type.get(type_id, []) for type_id in variation_type_ids]
        for combination in cartesian_product(*pools):
            yield dict(zip(variation_type_ids, combination))

    def create_from_combinations(
        self,
        product_sku: str,
        combinations: Iterable[Dict[str, str]],
        weight_override: Optional[float] = None,
        dimensions_override: Optional[Dict[str, float]] = None,
        session: Optional[Session] = None,
    ) -> List[ProductVariationItem]:
        rows = []
        for selections in combinations:
            row = {"product_sku": product_sku, "selections": selections}
            if weight_override is not None:
                row["weight_override"] = weight_override
            if dimensions_override is not None:
                row["dimensions_override"] = dimensions_override
            rows.append(row)
        return self.create_many(rows, session=session)
