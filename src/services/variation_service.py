"""Variation Service - variation combinations of variable products.

Handles both traditional variations (one combination of variation-type
selections, e.g. Color x Size) and composite variations, where each
combination of a composite+variable product owns its own composition under
``<productSku>#<variationId>``.

The ``validate_*``, ``generate_variation_name``, ``calculate_variation_weight``
and ``to_composite_variation`` helpers are pure: they work on the values passed
in and never touch storage.

Example Usage:
  >>> from src.services.variation_service import VariationService
  >>>
  >>> VariationService.generate_variation_name(existing)  # "Variation 3"
  >>> service = VariationService()
  >>> service.create_product_variation("T-SHIRT-001", {"selections": {type_id: red_id}})
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from src.models import CompositionItem, Product, ProductVariationItem
from src.utils.constants import DEFAULT_VARIATION_NAME_PREFIX
from src.utils.validators import validate_variation_item_data

from . import database
from .composition_scope import VariationScope, serialize_scope
from .exceptions import BusinessRuleError, ProductNotFound, RecordNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation
from .repositories import (
    CompositionItemRepository,
    ProductRepository,
    ProductVariationItemRepository,
)

logger = get_service_logger(__name__)


def _selection_key(selections: Optional[Dict[str, str]]) -> tuple:
    return tuple(sorted((selections or {}).items()))


class VariationService:
    """Variation combination rules and management."""

    def __init__(
        self,
        variation_item_repository: Optional[ProductVariationItemRepository] = None,
        product_repository: Optional[ProductRepository] = None,
        composition_item_repository: Optional[CompositionItemRepository] = None,
    ):
        self.variation_item_repository = variation_item_repository or ProductVariationItemRepository()
        self.product_repository = product_repository or ProductRepository()
        self.composition_item_repository = composition_item_repository or CompositionItemRepository()

    # ------------------------------------------------------------------
    # Pure rules
    # ------------------------------------------------------------------

    @staticmethod
    def validate_variation_creation(
        data: Dict[str, Any],
        existing_variations: Iterable[ProductVariationItem],
        product: Product,
    ) -> Dict[str, Any]:
        """
        Validate a new variation for ``product``.

        Composite variations must not carry selections; traditional variations
        must not repeat an existing selection set (order-independent).

        Returns:
            Dict with ``valid`` and ``errors``
        """
        errors: List[str] = []
        selections = data.get("selections") or {}

        if product.is_composite and product.has_variation and selections:
            errors.append("Composite variations should not have traditional variation selections")

        if not product.is_composite and selections:
            key = _selection_key(selections)
            if any(_selection_key(v.selections) == key for v in existing_variations):
                errors.append("This variation combination already exists")

        valid, field_errors = validate_variation_item_data(data)
        if not valid:
            errors.extend(field_errors)

        return {"valid": not errors, "errors": errors}

    @staticmethod
    def generate_variation_name(
        existing_variations: Iterable[ProductVariationItem],
        prefix: str = DEFAULT_VARIATION_NAME_PREFIX,
    ) -> str:
        """
        Next free "<prefix> N" name, filling the first gap in the numbering.

        Names like "Variation 1", "Variation-2" and "Variation3" all count.
        """
        pattern = re.compile(rf"^{re.escape(prefix)}[\s-]?(\d+)$")
        numbers = set()
        for variation in existing_variations:
            match = pattern.match(variation.name or variation.uuid or "")
            if match:
                numbers.add(int(match.group(1)))

        next_number = 1
        while next_number in numbers:
            next_number += 1
        return f"{prefix} {next_number}"

    @staticmethod
    def validate_minimum_variations(
        variations: Iterable[ProductVariationItem], product: Product
    ) -> Dict[str, Any]:
        errors = []
        if product.has_variation and not list(variations):
            errors.append("Products with variations must have at least one variation")
            if product.is_composite:
                errors.append("Composite products with variations must have at least one variation")
        return {"valid": not errors, "errors": errors}

    @staticmethod
    def calculate_variation_weight(
        variation: ProductVariationItem,
        product: Product,
        composition_items: Iterable[CompositionItem],
        child_products: Iterable[Product] = (),
    ) -> float:
        """
        Weight of one variation from already loaded data.

        The override wins; composite variations sum their own composition one
        level deep (unknown children weigh 0); otherwise the product weight.
        """
        if variation.weight_override is not None:
            return variation.weight_override

        if product.is_composite:
            scope_key = serialize_scope(VariationScope(product.sku, variation.uuid))
            weights = {child.sku: child.weight or 0.0 for child in child_products}
            return sum(
                weights.get(item.child_sku, 0.0) * item.quantity
                for item in composition_items
                if item.parent_sku == scope_key
            )

        return product.weight or 0.0

    @staticmethod
    def validate_variation_ordering(
        variations: Iterable[ProductVariationItem], new_order: List[str]
    ) -> Dict[str, Any]:
        """Check that ``new_order`` is a permutation of the variation ids."""
        errors = []
        variation_ids = [v.uuid for v in variations]
        known = set(variation_ids)
        ordered = set(new_order)

        if len(known) != len(ordered) or len(new_order) != len(ordered):
            errors.append("Order must include all variations")
        for variation_id in new_order:
            if variation_id not in known:
                errors.append(f"Unknown variation ID: {variation_id}")
        for variation_id in variation_ids:
            if variation_id not in ordered:
                errors.append(f"Missing variation ID in order: {variation_id}")

        return {"valid": not errors, "errors": errors}

    @staticmethod
    def validate_composite_variation_name(
        name: Optional[str],
        product_sku: str,
        existing_variations: Iterable[ProductVariationItem],
        exclude_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Composite variation names are required and unique per product (case-insensitive)."""
        normalized = (name or "").strip().lower()
        if not normalized:
            return {"valid": False, "error": "Variation name is required"}

        for variation in existing_variations:
            if variation.product_sku != product_sku or variation.uuid == exclude_id:
                continue
            if (variation.name or "").strip().lower() == normalized:
                return {"valid": False, "error": "A variation with this name already exists"}
        return {"valid": True, "error": None}

    @classmethod
    def to_composite_variation(
        cls,
        variation: ProductVariationItem,
        product: Product,
        composition_items: Iterable[CompositionItem],
        index: int,
        child_products: Iterable[Product] = (),
    ) -> Dict[str, Any]:
        """Composite-variation view of a variation combination."""
        composition_items = list(composition_items)
        scope_key = serialize_scope(VariationScope(product.sku, variation.uuid))
        return {
            "id": variation.uuid,
            "product_sku": product.sku,
            "name": variation.name or f"{DEFAULT_VARIATION_NAME_PREFIX} {index + 1}",
            "composition_items": [i for i in composition_items if i.parent_sku == scope_key],
            "total_weight": cls.calculate_variation_weight(
                variation, product, composition_items, child_products
            ),
            "is_active": True,
            "sort_order": variation.sort_order,
            "created_at": variation.created_at,
            "updated_at": variation.updated_at,
        }

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def _require_variable_product(self, sku: str) -> Product:
        product = self.product_repository.find_by_sku(sku)
        if product is None:
            raise ProductNotFound(sku)
        if not product.has_variation:
            raise BusinessRuleError(
                f"Product '{sku}' does not have variations enabled",
                "variations_disabled",
                {"sku": sku},
            )
        return product

    def _require_variation(self, variation_id: str) -> ProductVariationItem:
        variation = self.variation_item_repository.find_by_id(variation_id)
        if variation is None:
            raise RecordNotFound("Product variation", variation_id)
        return variation

    def create_product_variation(self, product_sku: str, data: Dict[str, Any]) -> ProductVariationItem:
        """
        Add a variation combination to a variable product.

        Composite variations get an automatic "Variation N" name when none is
        given.

        Raises:
            ProductNotFound: Unknown product
            BusinessRuleError: Product has no variations enabled
            ValidationError: Invalid or duplicate combination, or duplicate
                composite variation name
        """
        product = self._require_variable_product(product_sku)
        existing = self.variation_item_repository.find_by_product(product_sku)

        result = self.validate_variation_creation(data, existing, product)
        if not result["valid"]:
            raise ValidationError(result["errors"])

        payload = dict(data)
        payload["product_sku"] = product_sku
        payload.setdefault("selections", {})
        if product.is_composite:
            if not payload.get("name"):
                payload["name"] = self.generate_variation_name(existing)
            name_check = self.validate_composite_variation_name(payload["name"], product_sku, existing)
            if not name_check["valid"]:
                raise ValidationError(name_check["error"], "name", "unique")

        variation = self.variation_item_repository.create(payload)
        log_operation(
            logger,
            operation="create_product_variation",
            outcome="success",
            product_sku=product_sku,
            variation_id=variation.uuid,
        )
        return variation

    def update_product_variation(self, variation_id: str, patch: Dict[str, Any]) -> ProductVariationItem:
        """Update overrides, name or selections of a variation."""
        variation = self._require_variation(variation_id)
        if "product_sku" in patch and patch["product_sku"] != variation.product_sku:
            raise ValidationError(
                "A variation cannot be moved to another product", "product_sku", "immutable"
            )

        valid, errors = validate_variation_item_data(patch)
        if not valid:
            raise ValidationError(errors)

        if patch.get("name"):
            product = self.product_repository.find_by_sku(variation.product_sku)
            if product is not None and product.is_composite:
                siblings = self.variation_item_repository.find_by_product(variation.product_sku)
                name_check = self.validate_composite_variation_name(
                    patch["name"], variation.product_sku, siblings, exclude_id=variation_id
                )
                if not name_check["valid"]:
                    raise ValidationError(name_check["error"], "name", "unique")

        return self.variation_item_repository.update(variation_id, patch)

    def delete_product_variation(self, variation_id: str) -> None:
        """
        Delete a variation and the composition it owns.

        Raises:
            RecordNotFound: Unknown variation
            BusinessRuleError: It is the last variation of a variable product
        """
        variation = self._require_variation(variation_id)
        product = self.product_repository.find_by_sku(variation.product_sku)

        if product is not None and product.has_variation:
            remaining = self.variation_item_repository.count_by_product(variation.product_sku)
            if remaining <= 1:
                raise BusinessRuleError(
                    f"Cannot delete the last variation of product '{variation.product_sku}'. "
                    f"Disable variations instead.",
                    "minimum_variations",
                    {"sku": variation.product_sku, "variation_id": variation_id},
                )

        scope_key = serialize_scope(VariationScope(variation.product_sku, variation_id))
        with database.session_scope() as session:
            self.composition_item_repository.delete_by_parent(scope_key, session=session)
            self.variation_item_repository.delete(variation_id, session=session)

        log_operation(
            logger,
            operation="delete_product_variation",
            outcome="success",
            product_sku=variation.product_sku,
            variation_id=variation_id,
        )

    def reorder_variations(self, product_sku: str, new_order: List[str]) -> List[ProductVariationItem]:
        """
        Apply a new display order.

        Raises:
            ValidationError: ``new_order`` is not a permutation of the product's variations
        """
        variations = self.variation_item_repository.find_by_product(product_sku)
        result = self.validate_variation_ordering(variations, new_order)
        if not result["valid"]:
            raise ValidationError(result["errors"], "order")

        with database.session_scope() as session:
            for position, variation_id in enumerate(new_order):
                self.variation_item_repository.update(
                    variation_id, {"sort_order": position}, session=session
                )
        return self.variation_item_repository.find_by_product(product_sku)
