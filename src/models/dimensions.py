"""Dimensions value object shared by products and variation overrides."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from src.services.exceptions import ValidationError
from src.utils.validators import validate_dimensions


@dataclass(frozen=True)
class Dimensions:
    """Height, width and depth of a product. All three must be positive."""

    height: float
    width: float
    depth: float

    def __post_init__(self) -> None:
        errors = validate_dimensions(asdict(self))
        if errors:
            raise ValidationError(errors, "dimensions", "positive")

    @classmethod
    def from_value(cls, value: Any) -> Optional["Dimensions"]:
        """Build from a Dimensions, a mapping, or None."""
        if value is None or isinstance(value, Dimensions):
            return value
        if not isinstance(value, dict):
            raise ValidationError("Dimensions must include height, width and depth", "dimensions")
        return cls(value.get("height"), value.get("width"), value.get("depth"))

    def volume(self) -> float:
        return self.height * self.width * self.depth

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)
