"""
ProductVariationItem model: one concrete variation combination of a variable
product.

``selections`` maps variation-type uuid to variation uuid. The mapping is
unordered; ``selection_hash()`` gives an order-independent canonical form used
for uniqueness checks and generated variation SKUs.

Composite+variable products do not use selections: their combinations carry an
empty mapping and own a composition keyed ``<productSku>#<uuid>``.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, CheckConstraint, Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import validates

from src.services.exceptions import ValidationError
from src.utils.constants import (
    MAX_SKU_LENGTH,
    MAX_VARIATION_ITEM_NAME_LENGTH,
    VARIATION_SKU_MARKER,
)
from src.utils.validators import validate_positive_number, validate_variation_item_data

from .base import BaseModel
from .dimensions import Dimensions


class ProductVariationItem(BaseModel):
    """
    Variation combination of a product.

    Attributes:
        product_sku: SKU of the owning product
        selections: variation type uuid -> variation uuid
        name: Optional display name ("Variation 1", "Red / Large")
        weight_override: Replaces the product weight for this combination
        override_height, override_width, override_depth: Dimension override
        sort_order: Display order (lower = earlier)
    """

    __tablename__ = "product_variation_items"

    product_sku = Column(
        String(MAX_SKU_LENGTH),
        ForeignKey("products.sku", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    selections = Column(JSON, nullable=False, default=dict)
    name = Column(String(MAX_VARIATION_ITEM_NAME_LENGTH), nullable=True)
    weight_override = Column(Float, nullable=True)

    override_height = Column(Float, nullable=True)
    override_width = Column(Float, nullable=True)
    override_depth = Column(Float, nullable=True)

    sort_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "weight_override IS NULL OR weight_override > 0",
            name="ck_variation_item_weight_override_positive",
        ),
    )

    @validates("selections")
    def _validate_selections(self, _key: str, value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        valid, errors = validate_variation_item_data({"selections": value})
        if not valid:
            raise ValidationError(errors, "selections")
        return dict(value)

    @validates("weight_override")
    def _validate_weight_override(self, _key: str, value: Any) -> Optional[float]:
        if value is None:
            return None
        valid, error = validate_positive_number(value, "Weight override")
        if not valid:
            raise ValidationError(error, "weight_override", "positive")
        return float(value)

    @property
    def dimensions_override(self) -> Optional[Dimensions]:
        if self.override_height is None:
            return None
        return Dimensions(self.override_height, self.override_width, self.override_depth)

    @dimensions_override.setter
    def dimensions_override(self, value: Any) -> None:
        dims = Dimensions.from_value(value)
        if dims is None:
            self.override_height = self.override_width = self.override_depth = None
        else:
            self.override_height = dims.height
            self.override_width = dims.width
            self.override_depth = dims.depth

    def selection_hash(self) -> str:
        """
        Canonical form of the selections: ``typeId:variationId`` pairs sorted
        by type id and joined with ``|``.
        """
        return "|".join(
            f"{type_id}:{variation_id}"
            for type_id, variation_id in sorted((self.selections or {}).items())
        )

    def has_same_selections(self, other: "ProductVariationItem") -> bool:
        return self.selection_hash() == other.selection_hash()

    def variation_type_ids(self) -> List[str]:
        return list((self.selections or {}).keys())

    def variation_id_for(self, variation_type_id: str) -> Optional[str]:
        return (self.selections or {}).get(variation_type_id)

    def has_selection_for_type(self, variation_type_id: str) -> bool:
        return variation_type_id in (self.selections or {})

    def variation_sku(self) -> str:
        """Display SKU: ``<productSku>-VAR-<uuid>``, which also resolves as a child reference."""
        return f"{self.product_sku}{VARIATION_SKU_MARKER}{self.uuid}"

    def effective_weight(self, product) -> Optional[float]:
        """Weight override if set, otherwise the product's own weight."""
        if self.weight_override is not None:
            return self.weight_override
        return product.weight if product is not None else None

    def effective_dimensions(self, product) -> Optional[Dimensions]:
        override = self.dimensions_override
        if override is not None:
            return override
        return product.dimensions if product is not None else None

    @property
    def display_name(self) -> str:
        return self.name or self.variation_sku()
