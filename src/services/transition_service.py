"""Transition Service - confirmable product state changes.

Changing a product's ``is_composite``/``has_variation`` flags may require
moving or deleting composition data first. ``prepare_transition`` describes
what a flag change will do (so it can be confirmed), and
``execute_transition`` performs the data migration and then flips the flags.

Example Usage:
  >>> from src.services.transition_service import TransitionService
  >>>
  >>> service = TransitionService()
  >>> context = service.prepare_transition(
  ...     "DINING-SET-001", {"is_composite": True, "has_variation": True}
  ... )
  >>> context["transition_type"]
  'enable-variations'
  >>> service.execute_transition("DINING-SET-001", {"is_composite": True, "has_variation": True})
  {'success': True, 'message': 'Successfully enabled variations! ...', 'error': None}
"""

import logging
from typing import Any, Dict, Optional

from src.utils.constants import MERGE_STRATEGY_FIRST_VARIATION

from . import database
from .exceptions import ProductNotFound, ServiceError
from .logging_utils import get_service_logger, log_operation
from .migration import CompositeVariationMigrationService
from .migration.saga import ProgressCallback
from .migration.transitions import (
    DISABLE_COMPOSITE,
    DISABLE_VARIATIONS,
    ENABLE_COMPOSITE,
    ENABLE_VARIATIONS,
    determine_transition_type,
    get_transition_config,
)
from .product_service import ProductService

logger = get_service_logger(__name__)


class TransitionService:
    """Plans and runs product flag transitions."""

    def __init__(
        self,
        product_service: Optional[ProductService] = None,
        migration_service: Optional[CompositeVariationMigrationService] = None,
    ):
        self.product_service = product_service or ProductService()
        self.migration_service = migration_service or CompositeVariationMigrationService(
            composition_item_repository=self.product_service.composition_item_repository,
            variation_item_repository=self.product_service.variation_item_repository,
            product_repository=self.product_service.product_repository,
        )

    @property
    def composition_item_repository(self):
        return self.product_service.composition_item_repository

    @property
    def variation_item_repository(self):
        return self.product_service.variation_item_repository

    def _existing_data_count(self, sku: str) -> int:
        """Composition items under the plain key plus every variation's items."""
        return len(self.composition_item_repository.find_by_product_scopes(sku))

    def prepare_transition(self, sku: str, target_flags: Dict[str, bool]) -> Optional[Dict[str, Any]]:
        """
        Describe the transition a flag change needs.

        Returns:
            Dict with ``product_sku``, ``product_name``, ``existing_data_count``,
            ``current_flags``, ``target_flags``, ``transition_type`` and
            ``config``; None when the change needs no migration

        Raises:
            ProductNotFound: Unknown SKU
        """
        product = self.product_service.get_product(sku)
        if product is None:
            raise ProductNotFound(sku)

        current_flags = {"is_composite": product.is_composite, "has_variation": product.has_variation}
        target = {
            "is_composite": bool(target_flags.get("is_composite", product.is_composite)),
            "has_variation": bool(target_flags.get("has_variation", product.has_variation)),
        }
        transition_type = determine_transition_type(current_flags, target)
        if transition_type is None:
            return None

        existing_data_count = self._existing_data_count(sku) if product.is_composite else 0
        return {
            "product_sku": sku,
            "product_name": product.name,
            "existing_data_count": existing_data_count,
            "current_flags": current_flags,
            "target_flags": target,
            "transition_type": transition_type,
            "config": get_transition_config(transition_type, existing_data_count),
        }

    def execute_transition(
        self,
        sku: str,
        target_flags: Dict[str, bool],
        merge_strategy: str = MERGE_STRATEGY_FIRST_VARIATION,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """
        Migrate the product's data for a flag change, then update the flags.

        Returns:
            Dict with ``success``, ``message`` and ``error`` (None on success)
        """
        try:
            context = self.prepare_transition(sku, target_flags)
            if context is None:
                return {"success": True, "message": "No transition required", "error": None}

            transition_type = context["transition_type"]
            if transition_type == ENABLE_VARIATIONS:
                result = self._enable_variations(sku, on_progress)
            elif transition_type == DISABLE_COMPOSITE:
                result = self._disable_composite(sku)
            elif transition_type == DISABLE_VARIATIONS:
                result = self._disable_variations(sku, merge_strategy, on_progress)
            elif transition_type == ENABLE_COMPOSITE:
                self.product_service.update_product(sku, {"is_composite": True})
                result = {
                    "success": True,
                    "message": (
                        "Successfully enabled composite product! "
                        "You can now add composition items."
                    ),
                    "error": None,
                }
            else:
                raise ValueError(f"Unknown transition type: {transition_type}")
        except ServiceError as e:
            log_operation(
                logger,
                operation="execute_transition",
                outcome="error",
                level=logging.ERROR,
                product_sku=sku,
                error=str(e),
            )
            return {"success": False, "message": "Transition failed", "error": str(e)}

        log_operation(
            logger,
            operation="execute_transition",
            outcome="success" if result["success"] else "failed",
            product_sku=sku,
            transition_type=transition_type,
        )
        return result

    def _enable_variations(self, sku: str, on_progress: Optional[ProgressCallback]) -> Dict[str, Any]:
        migration = self.migration_service.migrate_composite_to_variations(sku, on_progress)
        if not migration["success"]:
            return {
                "success": False,
                "message": "Failed to enable variations",
                "error": ", ".join(migration["errors"]),
            }
        self.product_service.update_product(sku, {"has_variation": True})
        return {
            "success": True,
            "message": (
                f'Successfully enabled variations! Created "Variation 1" with '
                f"{migration['migrated_items_count']} composition items."
            ),
            "error": None,
        }

    def _disable_variations(
        self, sku: str, merge_strategy: str, on_progress: Optional[ProgressCallback]
    ) -> Dict[str, Any]:
        migration = self.migration_service.migrate_variations_to_composite(
            sku, merge_strategy, on_progress
        )
        if not migration["success"]:
            return {
                "success": False,
                "message": "Failed to disable variations",
                "error": ", ".join(migration["errors"]),
            }
        self.product_service.update_product(sku, {"has_variation": False})
        return {
            "success": True,
            "message": (
                f"Successfully disabled variations! Merged composition contains "
                f"{migration['migrated_items_count']} items."
            ),
            "error": None,
        }

    def _disable_composite(self, sku: str) -> Dict[str, Any]:
        with database.session_scope() as session:
            self.composition_item_repository.delete_by_parent_prefix(sku, session=session)
            self.variation_item_repository.delete_by_product(sku, session=session)
            self.composition_item_repository.delete_by_parent(sku, session=session)

        self.product_service.update_product(sku, {"is_composite": False, "has_variation": False})
        return {
            "success": True,
            "message": "Successfully disabled composite product and removed all composition data.",
            "error": None,
        }
