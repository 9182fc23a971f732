"""
VariationType model - an axis along which a product can vary (e.g. "Color").

Selecting a variation of a type that modifies weight or dimensions means the
variation combination's override is authoritative.
"""

from typing import Any

from sqlalchemy import Boolean, Column, String
from sqlalchemy.orm import validates

from src.services.exceptions import ValidationError
from src.utils.constants import MAX_VARIATION_TYPE_NAME_LENGTH
from src.utils.validators import validate_variation_type_data

from .base import BaseModel


class VariationType(BaseModel):
    """
    Variation type.

    Attributes:
        name: Unique display name (case-insensitive)
        modifies_weight: Variations of this type change product weight
        modifies_dimensions: Variations of this type change product dimensions
    """

    __tablename__ = "variation_types"

    name = Column(String(MAX_VARIATION_TYPE_NAME_LENGTH), nullable=False, index=True)
    modifies_weight = Column(Boolean, nullable=False, default=False)
    modifies_dimensions = Column(Boolean, nullable=False, default=False)

    @validates("name")
    def _validate_name(self, _key: str, value: Any) -> str:
        valid, errors = validate_variation_type_data({"name": value})
        if not valid:
            raise ValidationError(errors, "name", "required")
        return value.strip()
