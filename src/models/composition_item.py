"""
CompositionItem model: one (parent -> child, quantity) edge of the
bill-of-materials graph.

Parent and child are stored as keys, not foreign keys:
- ``parent_sku`` is a product SKU or a composite-variation scope key
  ``<productSku>#<variationId>``
- ``child_sku`` is a product SKU or a variation reference
  (``<productSku>#<variationId>`` / ``<productSku>-VAR-<variationId>``)

Dangling child keys are tolerated on read (weight calculation counts them as
zero) and reported by the integrity audit.
"""

from typing import Any

from sqlalchemy import CheckConstraint, Column, Index, Integer, String
from sqlalchemy.orm import validates

from src.services.composition_scope import (
    ChildReference,
    CompositionScope,
    parse_child_reference,
    parse_scope,
)
from src.services.exceptions import ValidationError
from src.utils.constants import MAX_COMPOSITION_KEY_LENGTH
from src.utils.validators import validate_quantity, validate_required_string

from .base import BaseModel


class CompositionItem(BaseModel):
    """
    Composition edge.

    Attributes:
        parent_sku: Key of the composition that owns this item
        child_sku: Product or variation reference being included
        quantity: How many of the child go into the parent (positive integer)
    """

    __tablename__ = "composition_items"

    parent_sku = Column(String(MAX_COMPOSITION_KEY_LENGTH), nullable=False, index=True)
    child_sku = Column(String(MAX_COMPOSITION_KEY_LENGTH), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_composition_item_quantity_positive"),
        CheckConstraint("parent_sku != child_sku", name="ck_composition_item_not_self"),
        Index("idx_composition_item_parent_child", "parent_sku", "child_sku"),
    )

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("quantity", 1)
        super().__init__(**kwargs)

    @validates("parent_sku", "child_sku")
    def _validate_key(self, key: str, value: Any) -> str:
        label = "Parent SKU" if key == "parent_sku" else "Child SKU"
        valid, error = validate_required_string(value, label)
        if not valid:
            raise ValidationError(error, key, "required")
        value = value.strip()
        other = self.child_sku if key == "parent_sku" else self.parent_sku
        if other is not None and other == value:
            raise ValidationError(
                "A product cannot be composed of itself", "child_sku", "self_reference"
            )
        return value

    @validates("quantity")
    def _validate_quantity(self, _key: str, value: Any) -> int:
        valid, error = validate_quantity(value)
        if not valid:
            raise ValidationError(error, "quantity", "positive")
        return value

    @property
    def scope(self) -> CompositionScope:
        """Parsed parent key."""
        return parse_scope(self.parent_sku)

    @property
    def child_reference(self) -> ChildReference:
        """Parsed child SKU (see ``parse_child_reference``)."""
        return parse_child_reference(self.child_sku)

    def edge(self) -> tuple:
        return (self.parent_sku, self.child_sku, self.quantity)
