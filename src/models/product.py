"""
Product model for the catalog.

A product is identified by its SKU and may be:
- simple: own weight/dimensions are authoritative
- composite: assembled from child products (see CompositionItem); weight is
  derived from the composition
- variable: offered as several variation combinations
  (see ProductVariationItem)
- composite and variable: every variation combination owns its own
  composition, keyed ``<sku>#<variationId>``
"""

from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Float, Index, String
from sqlalchemy.orm import validates

from src.services.exceptions import ValidationError
from src.utils.constants import MAX_PRODUCT_NAME_LENGTH, MAX_SKU_LENGTH
from src.utils.validators import (
    validate_positive_number,
    validate_required_string,
    validate_sku,
    validate_string_length,
)

from .base import BaseModel
from .dimensions import Dimensions

PRODUCT_TYPE_SIMPLE = "simple"
PRODUCT_TYPE_COMPOSITE = "composite"
PRODUCT_TYPE_VARIABLE = "variable"
PRODUCT_TYPE_COMPOSITE_VARIABLE = "composite_variable"


class Product(BaseModel):
    """
    Catalog product.

    Attributes:
        sku: Unique product code (uppercase letters, digits, hyphens)
        name: Display name, unique case-insensitively
        weight: Authoritative weight for non-composite products
        height, width, depth: Optional dimensions (all set or all empty)
        is_composite: Product is assembled from composition items
        has_variation: Product is offered as variation combinations
    """

    __tablename__ = "products"

    sku = Column(String(MAX_SKU_LENGTH), nullable=False, unique=True, index=True)
    name = Column(String(MAX_PRODUCT_NAME_LENGTH), nullable=False)
    weight = Column(Float, nullable=True)

    height = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    depth = Column(Float, nullable=True)

    is_composite = Column(Boolean, nullable=False, default=False)
    has_variation = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("weight IS NULL OR weight > 0", name="ck_product_weight_positive"),
        CheckConstraint("height IS NULL OR height > 0", name="ck_product_height_positive"),
        CheckConstraint("width IS NULL OR width > 0", name="ck_product_width_positive"),
        CheckConstraint("depth IS NULL OR depth > 0", name="ck_product_depth_positive"),
        Index("idx_product_flags", "is_composite", "has_variation"),
    )

    @validates("sku")
    def _validate_sku(self, _key: str, value: Any) -> str:
        valid, error = validate_sku(value)
        if not valid:
            raise ValidationError(error, "sku", "format")
        return value

    @validates("name")
    def _validate_name(self, _key: str, value: Any) -> str:
        valid, error = validate_required_string(value, "Product name")
        if valid:
            valid, error = validate_string_length(value, MAX_PRODUCT_NAME_LENGTH, "Product name")
        if not valid:
            raise ValidationError(error, "name", "required")
        return value

    @validates("weight", "height", "width", "depth")
    def _validate_measure(self, key: str, value: Any) -> Optional[float]:
        if value is None:
            return None
        valid, error = validate_positive_number(value, key.capitalize())
        if not valid:
            raise ValidationError(error, key, "positive")
        return float(value)

    @property
    def dimensions(self) -> Optional[Dimensions]:
        """Dimensions value object, or None when no dimensions are stored."""
        if self.height is None and self.width is None and self.depth is None:
            return None
        return Dimensions(self.height, self.width, self.depth)

    @dimensions.setter
    def dimensions(self, value: Any) -> None:
        dims = Dimensions.from_value(value)
        if dims is None:
            self.height = self.width = self.depth = None
        else:
            self.height, self.width, self.depth = dims.height, dims.width, dims.depth

    @property
    def is_simple(self) -> bool:
        return not self.is_composite and not self.has_variation

    @property
    def is_variable(self) -> bool:
        return bool(self.has_variation)

    @property
    def product_type(self) -> str:
        """One of simple, composite, variable, composite_variable."""
        if self.is_composite and self.has_variation:
            return PRODUCT_TYPE_COMPOSITE_VARIABLE
        if self.is_composite:
            return PRODUCT_TYPE_COMPOSITE
        if self.has_variation:
            return PRODUCT_TYPE_VARIABLE
        return PRODUCT_TYPE_SIMPLE

    @property
    def flags(self) -> dict:
        return {"is_composite": bool(self.is_composite), "has_variation": bool(self.has_variation)}
