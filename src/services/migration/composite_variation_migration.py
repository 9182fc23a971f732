"""
Composite/variation migration: move composition data when a composite
product gains or loses variations.

Forward (``migrate_composite_to_variations``): the product's composition
becomes the composition of a new "Variation 1", keyed
``<productSku>#<variationId>``.

Reverse (``migrate_variations_to_composite``): the per-variation compositions
collapse back onto the plain product key, either by keeping the first
variation's items or by merging every variation (quantities summed per child).

Both directions back up the product, the composition items of every scope
it owns and its variations first. Each repository write commits on its own, so a failure
after the backup step is undone by ``rollback_migration`` from the stored
backup, which restores records with their original ids and timestamps.

Usage:
    from src.services.migration import CompositeVariationMigrationService

    service = CompositeVariationMigrationService()
    result = service.migrate_composite_to_variations("DINING-SET-001")
    if not result["success"]:
        print(result["errors"])
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from src.services import database
from src.services.backup_service import BackupData, BackupService, random_suffix
from src.services.composition_scope import VariationScope, serialize_scope
from src.services.exceptions import MigrationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.repositories import (
    CompositionItemRepository,
    ProductRepository,
    ProductVariationItemRepository,
)
from src.services.variation_service import VariationService
from src.utils.constants import (
    MERGE_STRATEGIES,
    MERGE_STRATEGY_FIRST_VARIATION,
    MERGE_STRATEGY_MERGE_ALL,
)
from src.utils.datetime_utils import epoch_millis, utc_now

from .saga import (
    STATE_BACKED_UP,
    STATE_CLEANED_UP,
    STATE_TRANSFORMED,
    MigrationSaga,
    MigrationStep,
    ProgressCallback,
)

logger = get_service_logger(__name__)

OPERATION_COMPOSITE_TO_VARIATIONS = "migrate-composite-to-variations"
OPERATION_VARIATIONS_TO_COMPOSITE = "migrate-variations-to-composite"


class CompositeVariationMigrationService:
    """Backed-up, rollback-capable migrations between composite shapes."""

    def __init__(
        self,
        backup_service: Optional[BackupService] = None,
        composition_item_repository: Optional[CompositionItemRepository] = None,
        variation_item_repository: Optional[ProductVariationItemRepository] = None,
        product_repository: Optional[ProductRepository] = None,
    ):
        self.backup_service = backup_service or BackupService()
        self.composition_item_repository = composition_item_repository or CompositionItemRepository()
        self.variation_item_repository = variation_item_repository or ProductVariationItemRepository()
        self.product_repository = product_repository or ProductRepository()

    @staticmethod
    def generate_operation_id() -> str:
        """``migration-<epoch millis>-<6 random base36 chars>``"""
        return f"migration-{epoch_millis()}-{random_suffix()}"

    # ------------------------------------------------------------------
    # Forward: composite -> composite + variations
    # ------------------------------------------------------------------

    def migrate_composite_to_variations(
        self, product_sku: str, on_progress: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        """
        Turn a composite product's composition into its first variation.

        Args:
            product_sku: Composite product to migrate
            on_progress: Optional callback receiving progress events

        Returns:
            Dict with ``success``, ``migrated_items_count``,
            ``created_variation_id``, ``errors``, ``rollback_data``,
            ``operation_id`` and ``timestamp``. Failures are reported here,
            never raised.
        """
        operation_id = self.generate_operation_id()
        context: Dict[str, Any] = {"product_sku": product_sku, "backup_id": None}

        def load_data(ctx):
            product = self.product_repository.find_by_sku(product_sku)
            if product is None:
                raise MigrationError("Product not found", "PRODUCT_NOT_FOUND", "load-data", recoverable=False)
            ctx["product"] = product
            ctx["existing_items"] = self.composition_item_repository.find_by_parent(product_sku)
            ctx["existing_variations"] = self.variation_item_repository.find_by_product_sku(product_sku)

        def create_backup(ctx):
            # Rollback clears every scope of the product, so every scope is captured
            ctx["backup_id"] = self.backup_service.create_backup(
                product_sku,
                OPERATION_COMPOSITE_TO_VARIATIONS,
                ctx["product"],
                self.composition_item_repository.find_by_product_scopes(product_sku),
                ctx["existing_variations"],
            )

        def create_first_variation(ctx):
            ctx["variation"] = self.variation_item_repository.create(
                {
                    "product_sku": product_sku,
                    "selections": {},
                    "weight_override": None,
                    "name": VariationService.generate_variation_name(ctx["existing_variations"]),
                }
            )

        def migrate_items(ctx):
            scope_key = serialize_scope(VariationScope(product_sku, ctx["variation"].uuid))
            ctx["migrated_items"] = self.composition_item_repository.create_batch(
                {"parent_sku": scope_key, "child_sku": item.child_sku, "quantity": item.quantity}
                for item in ctx["existing_items"]
            )

        def cleanup(ctx):
            self.composition_item_repository.delete_many(item.uuid for item in ctx["existing_items"])

        steps = [
            MigrationStep(
                "load-data", "Loading current data", "Loading product and composition data...", load_data
            ),
            MigrationStep(
                "create-backup",
                "Creating backup",
                "Creating data backup for rollback safety...",
                create_backup,
                STATE_BACKED_UP,
            ),
            MigrationStep(
                "create-variation",
                "Creating first variation",
                'Creating "Variation 1" from existing composition...',
                create_first_variation,
            ),
            MigrationStep(
                "migrate-items",
                "Migrating composition items",
                lambda ctx: f"Migrating {len(ctx['existing_items'])} composition items...",
                migrate_items,
                STATE_TRANSFORMED,
            ),
            MigrationStep("cleanup", "Cleaning up", "Finalizing migration...", cleanup, STATE_CLEANED_UP),
        ]

        saga = MigrationSaga(operation_id, steps, on_progress)
        try:
            saga.run(context)
        except MigrationError as e:
            return self._failed(saga, e, context)

        log_operation(
            logger,
            operation="migrate_composite_to_variations",
            outcome="success",
            operation_id=operation_id,
            product_sku=product_sku,
            migrated_items=len(context["migrated_items"]),
        )
        return {
            "success": True,
            "migrated_items_count": len(context["migrated_items"]),
            "created_variation_id": context["variation"].uuid,
            "errors": [],
            "rollback_data": self.backup_service.restore(context["backup_id"]),
            "operation_id": operation_id,
            "timestamp": utc_now(),
        }

    # ------------------------------------------------------------------
    # Reverse: composite + variations -> composite
    # ------------------------------------------------------------------

    def migrate_variations_to_composite(
        self,
        product_sku: str,
        merge_strategy: str = MERGE_STRATEGY_FIRST_VARIATION,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """
        Collapse per-variation compositions onto the plain product key and
        remove every variation.

        Args:
            product_sku: Composite+variable product
            merge_strategy: ``first-variation`` keeps the first variation's
                items; ``merge-all`` sums quantities per child across all
                variations
            on_progress: Optional callback receiving progress events

        Returns:
            Same shape as ``migrate_composite_to_variations`` without
            ``created_variation_id``
        """
        operation_id = self.generate_operation_id()
        context: Dict[str, Any] = {"product_sku": product_sku, "backup_id": None}

        if merge_strategy not in MERGE_STRATEGIES:
            error = MigrationError(
                f"Unknown merge strategy: {merge_strategy}", "MIGRATION_FAILED", "validate", recoverable=False
            )
            return self._result_failed(operation_id, error)

        def load_data(ctx):
            product = self.product_repository.find_by_sku(product_sku)
            if product is None:
                raise MigrationError("Product not found", "PRODUCT_NOT_FOUND", "load-data", recoverable=False)
            variations = self.variation_item_repository.find_by_product_sku(product_sku)
            if not variations:
                raise MigrationError("No variations found", "NO_VARIATIONS", "load-data", recoverable=False)
            ctx["product"] = product
            ctx["variations"] = variations

        def create_backup(ctx):
            items_by_variation = OrderedDict()
            for variation in ctx["variations"]:
                items_by_variation[variation.uuid] = self.composition_item_repository.find_by_parent(
                    VariationScope(product_sku, variation.uuid)
                )
            ctx["items_by_variation"] = items_by_variation
            ctx["all_items"] = [item for items in items_by_variation.values() for item in items]
            ctx["backup_id"] = self.backup_service.create_backup(
                product_sku,
                OPERATION_VARIATIONS_TO_COMPOSITE,
                ctx["product"],
                self.composition_item_repository.find_by_product_scopes(product_sku),
                ctx["variations"],
            )

        def merge_compositions(ctx):
            if merge_strategy == MERGE_STRATEGY_FIRST_VARIATION:
                first_id = ctx["variations"][0].uuid
                ctx["kept"] = [
                    {"child_sku": item.child_sku, "quantity": item.quantity}
                    for item in ctx["items_by_variation"][first_id]
                ]
                return

            merged: Dict[str, int] = OrderedDict()
            for item in ctx["all_items"]:
                merged[item.child_sku] = merged.get(item.child_sku, 0) + item.quantity
            ctx["kept"] = self.composition_item_repository.create_batch(
                {"parent_sku": product_sku, "child_sku": child_sku, "quantity": quantity}
                for child_sku, quantity in merged.items()
            )

        def cleanup(ctx):
            self.composition_item_repository.delete_many(item.uuid for item in ctx["all_items"])
            self.variation_item_repository.delete_many(v.uuid for v in ctx["variations"])
            if merge_strategy == MERGE_STRATEGY_FIRST_VARIATION:
                ctx["kept"] = self.composition_item_repository.create_batch(
                    {"parent_sku": product_sku, **row} for row in ctx["kept"]
                )

        steps = [
            MigrationStep(
                "load-data", "Loading variation data", "Loading variations and composition data...", load_data
            ),
            MigrationStep(
                "create-backup",
                "Creating backup",
                "Creating backup before merging variations...",
                create_backup,
                STATE_BACKED_UP,
            ),
            MigrationStep(
                "merge-compositions",
                "Merging compositions",
                "Merging variation compositions...",
                merge_compositions,
                STATE_TRANSFORMED,
            ),
            MigrationStep(
                "cleanup",
                "Cleaning up variations",
                "Removing variations and finalizing...",
                cleanup,
                STATE_CLEANED_UP,
            ),
        ]

        saga = MigrationSaga(operation_id, steps, on_progress)
        try:
            saga.run(context)
        except MigrationError as e:
            return self._failed(saga, e, context)

        log_operation(
            logger,
            operation="migrate_variations_to_composite",
            outcome="success",
            operation_id=operation_id,
            product_sku=product_sku,
            merge_strategy=merge_strategy,
            migrated_items=len(context["kept"]),
        )
        return {
            "success": True,
            "migrated_items_count": len(context["kept"]),
            "errors": [],
            "rollback_data": self.backup_service.restore(context["backup_id"]),
            "operation_id": operation_id,
            "timestamp": utc_now(),
        }

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _failed(self, saga: MigrationSaga, error: MigrationError, context: Dict[str, Any]) -> Dict[str, Any]:
        """Roll back from the backup (if one was taken) and build the failure result."""
        log_operation(
            logger,
            operation="migration",
            outcome="failed",
            level=logging.ERROR,
            operation_id=saga.operation_id,
            product_sku=context.get("product_sku"),
            step=error.step,
            code=error.code,
            error=str(error),
        )

        if context.get("backup_id"):
            try:
                self.rollback_migration(self.backup_service.restore(context["backup_id"]))
                saga.mark_rolled_back()
            except Exception as rollback_error:
                # Rollback is best effort here; the backup stays available
                log_operation(
                    logger,
                    operation="rollback_migration",
                    outcome="error",
                    level=logging.ERROR,
                    operation_id=saga.operation_id,
                    backup_id=context["backup_id"],
                    error=str(rollback_error),
                )

        return self._result_failed(saga.operation_id, error)

    @staticmethod
    def _result_failed(operation_id: str, error: MigrationError) -> Dict[str, Any]:
        return {
            "success": False,
            "migrated_items_count": 0,
            "errors": [str(error)],
            "error_code": error.code,
            "recoverable": error.recoverable,
            "operation_id": operation_id,
            "timestamp": utc_now(),
        }

    def rollback_migration(self, backup_data: BackupData) -> None:
        """
        Put a product and its composition/variation data back as captured.

        Runs in a single transaction: the product fields are restored, every
        current item under the plain key and every variation (with its
        composition) is removed, then the backed-up items and variations are
        re-inserted with their original ids and timestamps.

        Raises:
            MigrationError: ``ROLLBACK_FAILED``, never recoverable
        """
        product_sku = backup_data.product_sku
        try:
            with database.session_scope() as session:
                self.product_repository.restore_fields(backup_data.original_product, session=session)

                self.composition_item_repository.delete_by_parent(product_sku, session=session)
                self.composition_item_repository.delete_by_parent_prefix(product_sku, session=session)
                self.variation_item_repository.delete_by_product(product_sku, session=session)

                for variation in backup_data.original_variations:
                    self.variation_item_repository.restore(variation, session=session)
                for item in backup_data.original_composition_items:
                    self.composition_item_repository.restore(item, session=session)
        except Exception as e:
            log_operation(
                logger,
                operation="rollback_migration",
                outcome="error",
                level=logging.ERROR,
                product_sku=product_sku,
                backup_id=backup_data.id,
                error=str(e),
            )
            raise MigrationError(
                f"Rollback failed: {e}", "ROLLBACK_FAILED", "rollback", recoverable=False
            ) from e

        log_operation(
            logger,
            operation="rollback_migration",
            outcome="success",
            product_sku=product_sku,
            backup_id=backup_data.id,
            restored_items=len(backup_data.original_composition_items),
            restored_variations=len(backup_data.original_variations),
        )

    # ------------------------------------------------------------------
    # Prerequisites
    # ------------------------------------------------------------------

    def validate_migration_prerequisites(
        self, product_sku: str, target_state: Dict[str, bool]
    ) -> Dict[str, Any]:
        """
        Check whether a migration to ``target_state`` makes sense.

        Existing composition or variation data when leaving composite is
        expected and not reported.

        Args:
            product_sku: Product to migrate
            target_state: ``{"is_composite": bool, "has_variation": bool}``

        Returns:
            Dict with ``valid`` and ``errors``
        """
        errors: List[str] = []
        product = self.product_repository.find_by_sku(product_sku)
        if product is None:
            return {"valid": False, "errors": ["Product not found"]}

        target_composite = bool(target_state.get("is_composite"))
        target_variation = bool(target_state.get("has_variation"))

        if product.is_composite == target_composite and product.has_variation == target_variation:
            errors.append("Product is already in target state")

        if target_composite and target_variation:
            if self.variation_item_repository.count_by_product(product_sku) > 0:
                errors.append("Product already has variations")

        return {"valid": not errors, "errors": errors}
