"""
Input validation functions for the Catalog Composer application.

This module provides validation functions for catalog inputs including:
- Numeric validation (positive numbers, positive integer quantities)
- String validation (required, length, SKU format)
- Dimensions validation
- Whole-record validation for products, variation types and variations

Field-level validators return ``(is_valid, error_message)``; record-level
validators return ``(is_valid, errors)`` so callers can report every problem
at once.
"""

import re
from numbers import Number
from typing import Any, List, Optional, Tuple

from .constants import (
    ERROR_INVALID_SKU,
    ERROR_RESERVED_SKU_MARKER,
    MAX_PRODUCT_NAME_LENGTH,
    MAX_SKU_LENGTH,
    MAX_VARIATION_NAME_LENGTH,
    MAX_VARIATION_TYPE_NAME_LENGTH,
    SKU_PATTERN,
    VARIATION_SKU_MARKER,
)

_SKU_RE = re.compile(SKU_PATTERN)

DIMENSION_FIELDS = ("height", "width", "depth")


def _is_number(value: Any) -> bool:
    # bool is a Number subclass but never a valid measurement
    return isinstance(value, Number) and not isinstance(value, bool)


def validate_required_string(value: Optional[str], label: str) -> Tuple[bool, str]:
    """
    Validate that a string field is present and not blank.

    Args:
        value: The string value to validate
        label: Human readable field label used in the message

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not isinstance(value, str) or value.strip() == "":
        return False, f"{label} is required"
    return True, ""


def validate_string_length(value: Optional[str], max_length: int, label: str) -> Tuple[bool, str]:
    """Validate that a string doesn't exceed ``max_length`` characters."""
    if value and len(value) > max_length:
        return False, f"{label} must be {max_length} characters or less"
    return True, ""


def validate_positive_number(value: Any, label: str) -> Tuple[bool, str]:
    """
    Validate that a value is a number greater than zero.

    Args:
        value: The value to validate
        label: Human readable field label used in the message

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not _is_number(value) or value <= 0:
        return False, f"{label} must be a positive number"
    return True, ""


def validate_quantity(value: Any) -> Tuple[bool, str]:
    """Validate a composition quantity (positive integer)."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return False, "Quantity must be a positive integer"
    return True, ""


def validate_sku(sku: Any) -> Tuple[bool, str]:
    """
    Validate a product SKU.

    SKUs are required, at most 50 characters and limited to uppercase
    letters, digits and hyphens. The "-VAR-" marker is reserved for
    variation references so a product SKU never parses as one.

    Returns:
        Tuple of (is_valid, error_message)
    """
    valid, error = validate_required_string(sku, "SKU")
    if not valid:
        return valid, error
    valid, error = validate_string_length(sku, MAX_SKU_LENGTH, "SKU")
    if not valid:
        return valid, error
    if not _SKU_RE.match(sku):
        return False, ERROR_INVALID_SKU
    if VARIATION_SKU_MARKER in sku:
        return False, ERROR_RESERVED_SKU_MARKER
    return True, ""


def validate_dimensions(dimensions: Any, label_prefix: str = "") -> List[str]:
    """
    Validate a dimensions mapping with height, width and depth.

    Args:
        dimensions: Mapping with height/width/depth keys
        label_prefix: Optional prefix for messages (e.g. "Override ")

    Returns:
        List of error messages (empty when valid)
    """
    if not isinstance(dimensions, dict):
        return [f"{label_prefix}Dimensions must include height, width and depth"]

    errors = []
    for field in DIMENSION_FIELDS:
        label = f"{label_prefix}{field}".strip()
        label = label[0].upper() + label[1:]
        valid, error = validate_positive_number(dimensions.get(field), label)
        if not valid:
            errors.append(error)
    return errors


def validate_product_data(data: dict, partial: bool = False) -> Tuple[bool, list]:
    """
    Validate product data.

    Args:
        data: Product fields (sku, name, weight, dimensions, flags)
        partial: If True, only validate fields present in ``data`` (updates)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if not partial or "sku" in data:
        valid, error = validate_sku(data.get("sku"))
        if not valid:
            errors.append(error)

    if not partial or "name" in data:
        name = data.get("name")
        valid, error = validate_required_string(name, "Product name")
        if not valid:
            errors.append(error)
        else:
            valid, error = validate_string_length(name, MAX_PRODUCT_NAME_LENGTH, "Product name")
            if not valid:
                errors.append(error)

    if data.get("weight") is not None:
        valid, error = validate_positive_number(data["weight"], "Weight")
        if not valid:
            errors.append(error)

    if data.get("dimensions") is not None:
        errors.extend(validate_dimensions(data["dimensions"]))

    for flag in ("is_composite", "has_variation"):
        if flag in data and not isinstance(data[flag], bool):
            errors.append(f"{flag} must be true or false")

    return len(errors) == 0, errors


def validate_variation_item_data(data: dict) -> Tuple[bool, list]:
    """
    Validate product variation item fields (selections and overrides).

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    selections = data.get("selections", {})
    if not isinstance(selections, dict):
        errors.append("Selections must map variation type ids to variation ids")
    else:
        for type_id, variation_id in selections.items():
            if not isinstance(type_id, str) or not isinstance(variation_id, str):
                errors.append("Selections must map variation type ids to variation ids")
                break

    if data.get("weight_override") is not None:
        valid, error = validate_positive_number(data["weight_override"], "Weight override")
        if not valid:
            errors.append(error)

    if data.get("dimensions_override") is not None:
        errors.extend(validate_dimensions(data["dimensions_override"], "Override "))

    return len(errors) == 0, errors


def validate_variation_type_data(data: dict) -> Tuple[bool, list]:
    """Validate variation type fields (name and modifier flags)."""
    errors = []
    name = data.get("name")
    valid, error = validate_required_string(name, "Variation type name")
    if not valid:
        errors.append(error)
    else:
        valid, error = validate_string_length(
            name, MAX_VARIATION_TYPE_NAME_LENGTH, "Variation type name"
        )
        if not valid:
            errors.append(error)
    return len(errors) == 0, errors


def validate_variation_data(data: dict) -> Tuple[bool, list]:
    """Validate variation fields (name and owning variation type)."""
    errors = []
    name = data.get("name")
    valid, error = validate_required_string(name, "Variation name")
    if not valid:
        errors.append(error)
    else:
        valid, error = validate_string_length(name, MAX_VARIATION_NAME_LENGTH, "Variation name")
        if not valid:
            errors.append(error)

    valid, error = validate_required_string(data.get("variation_type_id"), "Variation type")
    if not valid:
        errors.append(error)
    return len(errors) == 0, errors
