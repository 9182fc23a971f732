"""Product Service - product catalog management with business rules.

This module provides business logic for creating, updating and deleting
products while keeping the composite and variation flags consistent with the
composition and variation data stored for each product.

Key Features:
- SKU uniqueness and case-insensitive name uniqueness
- Composite weight rule (composite products derive their weight)
- Flag changes blocked while dependent data exists
- Deletion guarded by composition usage, with optional cascade
- Effective weight and dimensions
- Pure state-transition validation for the product editor

Example Usage:
  >>> from src.services.product_service import ProductService
  >>>
  >>> service = ProductService()
  >>> service.create_product({"sku": "CHAIR-001", "name": "Chair", "weight": 5})
  >>> service.create_product({"sku": "DINING-SET-001", "name": "Dining Set", "is_composite": True})
  >>> service.get_effective_weight("DINING-SET-001")
  0.0
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from src.models import CompositionItem, Dimensions, Product, ProductVariationItem
from src.utils.validators import validate_product_data

from . import database
from .composition_service import CompositionService
from .exceptions import BusinessRuleError, ProductNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation
from .migration.transitions import DISABLE_COMPOSITE, determine_transition_type
from .repositories import (
    CompositionItemRepository,
    ProductRepository,
    ProductVariationItemRepository,
)

logger = get_service_logger(__name__)

COMPOSITE_WEIGHT_MESSAGE = (
    "Composite products should not have a weight specified - "
    "it will be calculated from components"
)


class ProductService:
    """Product CRUD and product-level business rules."""

    def __init__(
        self,
        product_repository: Optional[ProductRepository] = None,
        variation_item_repository: Optional[ProductVariationItemRepository] = None,
        composition_item_repository: Optional[CompositionItemRepository] = None,
        composition_service: Optional[CompositionService] = None,
    ):
        self.product_repository = product_repository or ProductRepository()
        self.variation_item_repository = variation_item_repository or ProductVariationItemRepository()
        self.composition_item_repository = composition_item_repository or CompositionItemRepository()
        if composition_service is None:
            composition_service = CompositionService(
                composition_item_repository=self.composition_item_repository,
                product_repository=self.product_repository,
                variation_item_repository=self.variation_item_repository,
            )
        self.composition_service = composition_service

    def _require_product(self, sku: str) -> Product:
        product = self.product_repository.find_by_sku(sku)
        if product is None:
            raise ProductNotFound(sku)
        return product

    def _count_own_items(self, sku: str) -> int:
        """Composition items under the plain key and every variation key."""
        return len(self.composition_item_repository.find_by_product_scopes(sku))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_product(self, data: Dict[str, Any]) -> Product:
        """
        Create a product after business rule validation.

        Args:
            data: sku, name, optional weight/dimensions, is_composite, has_variation

        Returns:
            Created Product

        Raises:
            ValidationError: Duplicate SKU or name, or invalid fields
            BusinessRuleError: Composite product given a weight
        """
        sku = data.get("sku")
        if sku and self.product_repository.sku_exists(sku):
            raise ValidationError(f"Product with SKU '{sku}' already exists", "sku", "unique")

        name = data.get("name")
        if isinstance(name, str) and name.strip():
            if self.product_repository.find_by_name(name) is not None:
                raise ValidationError(
                    f"A product with name '{name}' already exists", "name", "unique"
                )

        if data.get("is_composite") and data.get("weight") is not None:
            raise BusinessRuleError(
                COMPOSITE_WEIGHT_MESSAGE,
                "composite_weight_rule",
                {"sku": sku, "weight": data.get("weight")},
            )

        valid, errors = validate_product_data(data)
        if not valid:
            raise ValidationError(errors)

        product = self.product_repository.create(data)
        log_operation(logger, operation="create_product", outcome="success", product_sku=product.sku)
        return product

    def update_product(self, sku: str, data: Dict[str, Any]) -> Product:
        """
        Update a product after business rule validation.

        Disabling ``has_variation`` while variations exist, or ``is_composite``
        while composition items exist, is rejected; run the matching transition
        instead so the data is migrated first.

        Raises:
            ProductNotFound: Unknown SKU
            ValidationError: Invalid fields or duplicate name
            BusinessRuleError: Composite weight rule or flag constraint
        """
        existing = self._require_product(sku)

        is_composite = data.get("is_composite", existing.is_composite)
        weight = data["weight"] if "weight" in data else existing.weight
        if is_composite and weight is not None:
            raise BusinessRuleError(
                COMPOSITE_WEIGHT_MESSAGE, "composite_weight_rule", {"sku": sku, "weight": weight}
            )

        valid, errors = validate_product_data(data, partial=True)
        if not valid:
            raise ValidationError(errors)

        if "name" in data:
            same_name = self.product_repository.find_by_name(data["name"])
            if same_name is not None and same_name.sku != sku:
                raise ValidationError(
                    f"A product with name '{data['name']}' already exists", "name", "unique"
                )

        if "has_variation" in data and data["has_variation"] != existing.has_variation:
            self._validate_variation_flag_change(sku, data["has_variation"])
        if "is_composite" in data and data["is_composite"] != existing.is_composite:
            self._validate_composite_flag_change(sku, data["is_composite"])

        product = self.product_repository.update(sku, data)
        log_operation(
            logger,
            operation="update_product",
            outcome="success",
            product_sku=sku,
            fields=sorted(data.keys()),
        )
        return product

    def _validate_variation_flag_change(self, sku: str, has_variation: bool) -> None:
        variation_count = self.variation_item_repository.count_by_product(sku)
        if not has_variation and variation_count > 0:
            raise BusinessRuleError(
                f"Cannot disable variations for product '{sku}': {variation_count} "
                f"variation combinations exist. Delete them first.",
                "variation_flag_constraint",
                {"sku": sku, "variation_count": variation_count},
            )

    def _validate_composite_flag_change(self, sku: str, is_composite: bool) -> None:
        composition_count = self._count_own_items(sku)
        if not is_composite and composition_count > 0:
            raise BusinessRuleError(
                f"Cannot disable composite for product '{sku}': {composition_count} "
                f"composition items exist. Delete them first.",
                "composite_flag_constraint",
                {"sku": sku, "composition_count": composition_count},
            )

    def delete_product(self, sku: str, cascade: bool = False) -> None:
        """
        Delete a product.

        Args:
            sku: Product to delete
            cascade: Also delete the product's own composition items and
                variations. Without it, their presence blocks the delete.

        Raises:
            ProductNotFound: Unknown SKU
            BusinessRuleError: Product is used as a composition child, or
                still owns data and cascade is False
        """
        self._require_product(sku)

        usage_count = len(self.composition_item_repository.find_by_child_product(sku))
        if usage_count > 0:
            log_operation(
                logger,
                operation="delete_product",
                outcome="blocked",
                level=logging.WARNING,
                product_sku=sku,
                usage_count=usage_count,
            )
            raise BusinessRuleError(
                f"Cannot delete product '{sku}': it is used in {usage_count} composition(s). "
                f"Remove it from compositions first.",
                "referential_integrity",
                {"sku": sku, "usage_count": usage_count},
            )

        item_count = self._count_own_items(sku)
        variation_count = self.variation_item_repository.count_by_product(sku)
        if not cascade and (item_count or variation_count):
            raise BusinessRuleError(
                f"Cannot delete product '{sku}': it has {item_count} composition item(s) "
                f"and {variation_count} variation(s). Delete them first.",
                "dependent_data",
                {"sku": sku, "item_count": item_count, "variation_count": variation_count},
            )

        with database.session_scope() as session:
            self.composition_item_repository.delete_by_parent(sku, session=session)
            self.composition_item_repository.delete_by_parent_prefix(sku, session=session)
            self.variation_item_repository.delete_by_product(sku, session=session)
            self.product_repository.delete(sku, session=session)

        log_operation(
            logger,
            operation="delete_product",
            outcome="success",
            product_sku=sku,
            deleted_items=item_count,
            deleted_variations=variation_count,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_product(self, sku: str) -> Optional[Product]:
        return self.product_repository.find_by_sku(sku)

    def get_all_products(self) -> List[Product]:
        return self.product_repository.find_all()

    def search_products(self, query: str) -> List[Product]:
        return self.product_repository.search(query)

    def get_products_by_type(
        self, is_composite: Optional[bool] = None, has_variation: Optional[bool] = None
    ) -> List[Product]:
        return self.product_repository.find_by_type(is_composite=is_composite, has_variation=has_variation)

    def get_composition_eligible_products(self) -> List[Product]:
        """Products that may be used directly as composition children."""
        return self.product_repository.find_composition_eligible()

    def get_effective_weight(self, sku: str) -> Optional[float]:
        """
        Weight of a product: computed from its composition when composite,
        otherwise the stored weight (None when not set).
        """
        product = self._require_product(sku)
        if product.is_composite:
            return self.composition_service.calculate_composite_weight(sku)
        return product.weight

    def get_effective_dimensions(self, sku: str) -> Optional[Dimensions]:
        return self._require_product(sku).dimensions

    def validate_product_constraints(self, sku: str) -> None:
        """
        Check that a product's flags are backed by data.

        Raises:
            ProductNotFound: Unknown SKU
            BusinessRuleError: Variable product without variations, or
                composite product without composition items
        """
        product = self._require_product(sku)

        if product.has_variation and self.variation_item_repository.count_by_product(sku) == 0:
            raise BusinessRuleError(
                "Products with hasVariation=true must have at least one variation combination",
                "variation_required",
                {"sku": sku},
            )

        if product.is_composite and self._count_own_items(sku) == 0:
            raise BusinessRuleError(
                "Products with isComposite=true must have at least one composition item",
                "composition_required",
                {"sku": sku},
            )

    def get_product_stats(self) -> Dict[str, int]:
        """Product counts by shape."""
        stats = {
            "total": 0,
            "simple": 0,
            "with_variations": 0,
            "composite": 0,
            "composite_with_variations": 0,
        }
        for product in self.product_repository.find_all():
            stats["total"] += 1
            if product.is_composite and product.has_variation:
                stats["composite_with_variations"] += 1
            elif product.is_composite:
                stats["composite"] += 1
            elif product.has_variation:
                stats["with_variations"] += 1
            else:
                stats["simple"] += 1
        return stats

    def can_be_used_in_composition(self, sku: str) -> bool:
        """Variable products (and unknown SKUs) cannot be used directly."""
        product = self.product_repository.find_by_sku(sku)
        if product is None:
            return False
        return not product.has_variation

    def get_dependent_products(self, sku: str) -> List[str]:
        """SKUs of products whose compositions use ``sku``."""
        return self.composition_service.get_dependent_products(sku)

    def get_product_dependencies(self, sku: str) -> List[str]:
        """Child SKUs across every composition scope of ``sku``."""
        children = []
        for item in self.composition_item_repository.find_by_product_scopes(sku):
            if item.child_sku not in children:
                children.append(item.child_sku)
        return children

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    @staticmethod
    def validate_state_transition(
        product: Product,
        proposed_changes: Dict[str, Any],
        existing_items: Iterable[CompositionItem],
        existing_variations: Iterable[ProductVariationItem],
    ) -> Dict[str, Any]:
        """
        Validate a proposed flag change without touching storage.

        Args:
            product: Current product
            proposed_changes: Fields about to change (is_composite,
                has_variation, weight)
            existing_items: Composition items owned by the product
            existing_variations: Variation combinations of the product

        Returns:
            Dict with ``valid``, ``errors``, ``warnings`` and
            ``transition_type`` (None when no migration is needed)
        """
        errors: List[str] = []
        warnings: List[str] = []
        existing_items = list(existing_items)
        existing_variations = list(existing_variations)

        current_flags = {"is_composite": product.is_composite, "has_variation": product.has_variation}
        target_flags = {
            "is_composite": proposed_changes.get("is_composite", product.is_composite),
            "has_variation": proposed_changes.get("has_variation", product.has_variation),
        }
        transition_type = determine_transition_type(current_flags, target_flags)

        weight = proposed_changes["weight"] if "weight" in proposed_changes else product.weight
        if target_flags["is_composite"] and not product.is_composite and weight is not None:
            errors.append(COMPOSITE_WEIGHT_MESSAGE)

        if transition_type == DISABLE_COMPOSITE and existing_items:
            warnings.append("Disabling composite will permanently delete all composition data")

        if (
            product.has_variation
            and not target_flags["has_variation"]
            and existing_variations
        ):
            warnings.append(
                f"Disabling variations will remove {len(existing_variations)} variation combination(s)"
            )

        return {
            "valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "transition_type": transition_type,
        }

