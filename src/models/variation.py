"""
Variation model - one value of a variation type (e.g. "Red" for "Color").
"""

from typing import Any

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship, validates

from src.services.exceptions import ValidationError
from src.utils.constants import MAX_VARIATION_NAME_LENGTH
from src.utils.validators import validate_required_string, validate_string_length

from .base import BaseModel


class Variation(BaseModel):
    """
    Variation belonging to exactly one VariationType.

    Attributes:
        variation_type_id: uuid of the owning VariationType
        name: Display name, unique within its type (case-insensitive)
    """

    __tablename__ = "variations"

    variation_type_id = Column(
        String(36),
        ForeignKey("variation_types.uuid", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name = Column(String(MAX_VARIATION_NAME_LENGTH), nullable=False)

    variation_type = relationship("VariationType", lazy="joined")

    @validates("name")
    def _validate_name(self, _key: str, value: Any) -> str:
        valid, error = validate_required_string(value, "Variation name")
        if valid:
            valid, error = validate_string_length(
                value, MAX_VARIATION_NAME_LENGTH, "Variation name"
            )
        if not valid:
            raise ValidationError(error, "name", "required")
        return value.strip()

    @validates("variation_type_id")
    def _validate_variation_type_id(self, _key: str, value: Any) -> str:
        valid, error = validate_required_string(value, "Variation type")
        if not valid:
            raise ValidationError(error, "variation_type_id", "required")
        return value
