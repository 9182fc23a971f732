"""Product repository - products are addressed by SKU."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from src.models import Product
from src.services.exceptions import ProductNotFound, ValidationError
from src.utils.datetime_utils import parse_iso

from .base import BaseRepository


class ProductRepository(BaseRepository):
    model = Product
    entity_name = "Product"
    extra_fields = ("dimensions",)

    def _lookup(self, session: Session, sku: str):
        return self._query(session).filter(Product.sku == sku).first()

    def _get_or_raise(self, session: Session, sku: str):
        product = self._lookup(session, sku)
        if product is None:
            raise ProductNotFound(sku)
        return product

    def _before_create(self, session: Session, data: Dict[str, Any]) -> None:
        sku = data.get("sku")
        if sku and self._lookup(session, sku) is not None:
            raise ValidationError(f"Product with SKU '{sku}' already exists", "sku", "duplicate")

    def _before_update(self, session: Session, record, patch: Dict[str, Any]) -> None:
        if "sku" in patch and patch["sku"] != record.sku:
            raise ValidationError("SKU cannot be modified during update", "sku", "immutable")

    def find_by_sku(self, sku: str, session: Optional[Session] = None) -> Optional[Product]:
        return self.find_by_id(sku, session=session)

    def find_by_uuid(self, uuid: str, session: Optional[Session] = None) -> Optional[Product]:
        return self._run(
            "find", lambda s: self._query(s).filter(Product.uuid == uuid).first(), session
        )

    def sku_exists(self, sku: str, session: Optional[Session] = None) -> bool:
        return self.exists(sku, session=session)

    def find_by_name(self, name: str, session: Optional[Session] = None) -> Optional[Product]:
        """Case-insensitive exact name match."""
        normalized = (name or "").strip().lower()
        return self._run(
            "find",
            lambda s: self._query(s).filter(func.lower(Product.name) == normalized).first(),
            session,
        )

    def find_by_type(
        self,
        is_composite: Optional[bool] = None,
        has_variation: Optional[bool] = None,
        session: Optional[Session] = None,
    ) -> List[Product]:
        def _impl(s: Session):
            query = self._query(s)
            if is_composite is not None:
                query = query.filter(Product.is_composite == is_composite)
            if has_variation is not None:
                query = query.filter(Product.has_variation == has_variation)
            return query.order_by(Product.sku).all()

        return self._run("find", _impl, session)

    def search(self, query: str, session: Optional[Session] = None) -> List[Product]:
        """Products whose SKU or name contains ``query`` (case-insensitive)."""
        normalized = (query or "").strip().lower()
        if not normalized:
            return self.find_all(session=session)
        pattern = f"%{normalized}%"
        return self._run(
            "search",
            lambda s: self._query(s)
            .filter(or_(func.lower(Product.sku).like(pattern), func.lower(Product.name).like(pattern)))
            .order_by(Product.sku)
            .all(),
            session,
        )

    def find_composition_eligible(self, session: Optional[Session] = None) -> List[Product]:
        """Products usable as a bare composition child (not variable)."""
        return self.find_by_type(has_variation=False, session=session)

    def find_with_variations(self, session: Optional[Session] = None) -> List[Product]:
        return self.find_by_type(has_variation=True, session=session)

    def find_composite(self, session: Optional[Session] = None) -> List[Product]:
        return self.find_by_type(is_composite=True, session=session)

    def find_simple(self, session: Optional[Session] = None) -> List[Product]:
        return self.find_by_type(is_composite=False, has_variation=False, session=session)

    def restore_fields(self, snapshot: Dict[str, Any], session: Optional[Session] = None) -> Product:
        """
        Put a product back exactly as captured by ``to_dict()``, including
        ``updated_at``.
        """

        def _impl(s: Session):
            product = self._lookup(s, snapshot["sku"])
            if product is None:
                return self.restore(snapshot, session=s)
            for column in Product.__table__.columns:
                if column.name in ("id", "sku", "uuid", "created_at", "updated_at"):
                    continue
                if column.name in snapshot:
                    setattr(product, column.name, snapshot[column.name])
            s.flush()

            # Bulk update so onupdate does not overwrite the captured timestamp
            identity = {"uuid": snapshot.get("uuid") or product.uuid}
            for name in ("created_at", "updated_at"):
                if snapshot.get(name) is not None:
                    identity[name] = parse_iso(snapshot[name])
            s.query(Product).filter(Product.sku == product.sku).update(
                identity, synchronize_session="fetch"
            )
            return product

        return self._run("restore", _impl, session)
