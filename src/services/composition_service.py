"""
Composition Service - composition graph operations for the catalog.

This service manages the (parent -> child, quantity) edges that make up a
composite product, including the per-variation compositions owned by
composite+variable products.

Key Features:
- Recursive composite weight calculation across nested compositions
- Composition tree building with a maximum nesting depth
- Circular dependency detection before an edge is added
- Child eligibility rules (variable products only through a specific variation)
- Composite-variation composition management (create, replace, complete check)
- Deletion impact and integrity audits

Parent keys are plain SKUs or ``<sku>#<variationId>`` scope keys; child SKUs
are parsed with ``parse_child_reference``. Weight calculation tolerates
dangling references (they weigh 0); the integrity audit reports them.
"""

import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set

from src.models import CompositionItem, Product, ProductVariationItem
from src.utils.config import get_config
from src.utils.validators import validate_quantity

from . import database
from .composition_scope import (
    REF_COMPOSITE,
    REF_REJECTED_LEGACY,
    REF_SIMPLE,
    REF_VARIABLE,
    ChildReference,
    VariationScope,
    as_key,
    as_scope,
    base_sku,
    parse_child_reference,
    serialize_scope,
)
from .exceptions import (
    BusinessRuleError,
    CircularDependencyError,
    CompositionDepthExceeded,
    DuplicateCompositionItemError,
    LegacySkuFormatError,
    ProductNotFound,
    RecordNotFound,
    ServiceError,
    ValidationError,
    VariableProductNotAllowed,
    VariationNotFound,
    VariationProductMismatch,
)
from .logging_utils import get_service_logger, log_operation
from .repositories import (
    CompositionItemRepository,
    ProductRepository,
    ProductVariationItemRepository,
    VariationTypeRepository,
)

logger = get_service_logger(__name__)


def _item_fields(item: Any) -> Dict[str, Any]:
    """Accept composition rows as dicts or CompositionItem-like objects."""
    if isinstance(item, dict):
        return {"child_sku": item.get("child_sku"), "quantity": item.get("quantity", 1)}
    return {"child_sku": item.child_sku, "quantity": item.quantity}


class CompositionService:
    """
    Composition graph operations over the product, composition item,
    variation item and variation type repositories.
    """

    def __init__(
        self,
        composition_item_repository: Optional[CompositionItemRepository] = None,
        product_repository: Optional[ProductRepository] = None,
        variation_item_repository: Optional[ProductVariationItemRepository] = None,
        variation_type_repository: Optional[VariationTypeRepository] = None,
    ):
        self.composition_item_repository = composition_item_repository or CompositionItemRepository()
        self.product_repository = product_repository or ProductRepository()
        self.variation_item_repository = variation_item_repository or ProductVariationItemRepository()
        self.variation_type_repository = variation_type_repository or VariationTypeRepository()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_product(self, sku: str) -> Product:
        product = self.product_repository.find_by_sku(sku)
        if product is None:
            raise ProductNotFound(sku)
        return product

    def _find_variation(self, ref: ChildReference) -> Optional[ProductVariationItem]:
        """Variation a reference points at by id, or None. Both encodings carry the id."""
        return self.variation_item_repository.find_by_id(ref.variation_id)

    def _require_variation(self, product_sku: str, variation_id: str) -> ProductVariationItem:
        variation = self.variation_item_repository.find_by_id(variation_id)
        if variation is None or variation.product_sku != product_sku:
            raise VariationNotFound(variation_id, product_sku)
        return variation

    def _expansion_key(self, child_sku: str) -> Optional[str]:
        """
        Parent key holding the composition a child expands into, or None
        when the child does not resolve.
        """
        ref = parse_child_reference(child_sku)
        if ref.is_rejected:
            return None
        if ref.is_variation:
            variation = self._find_variation(ref)
            if variation is None or variation.product_sku != ref.product_sku:
                return None
            return serialize_scope(VariationScope(ref.product_sku, variation.uuid))
        return ref.product_sku

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def get_composition_items(self, parent: Any) -> List[CompositionItem]:
        """Items directly under a parent key or scope."""
        return self.composition_item_repository.find_by_parent(parent)

    def create_composition_item(self, data: Dict[str, Any]) -> CompositionItem:
        """
        Add one edge after full validation.

        Args:
            data: ``parent_sku`` (key or scope), ``child_sku``, ``quantity`` (default 1)

        Returns:
            Created CompositionItem

        Raises:
            ValidationError: Bad quantity, self reference, unknown product
            BusinessRuleError: Parent not composite, duplicate child, cycle,
                ineligible child, nesting too deep
        """
        parent_key = as_key(data.get("parent_sku"))
        child_sku = data.get("child_sku")
        quantity = data.get("quantity", 1)

        valid, error = validate_quantity(quantity)
        if not valid:
            raise ValidationError(error, "quantity", "positive")

        self.validate_referential_integrity(parent_key, child_sku)

        scope = as_scope(parent_key)
        if isinstance(scope, VariationScope):
            self._require_variation(scope.product_sku, scope.variation_id)

        self.validate_child_product_eligibility(child_sku)
        self._check_nesting_depth(parent_key, child_sku)

        item = self.composition_item_repository.create(
            {"parent_sku": parent_key, "child_sku": child_sku, "quantity": quantity}
        )
        log_operation(
            logger,
            operation="create_composition_item",
            outcome="success",
            parent_sku=parent_key,
            child_sku=child_sku,
            quantity=quantity,
        )
        return item

    def update_composition_item(self, item_id: str, patch: Dict[str, Any]) -> CompositionItem:
        """
        Change the quantity of an existing edge.

        Parent and child are fixed; remove and re-add the item to change them.
        """
        existing = self.composition_item_repository.find_by_id(item_id)
        if existing is None:
            raise RecordNotFound("Composition item", item_id)
        for field in ("parent_sku", "child_sku"):
            if field in patch and patch[field] != getattr(existing, field):
                raise ValidationError(
                    "Composition item parent and child cannot be changed", field, "immutable"
                )
        if "quantity" in patch:
            valid, error = validate_quantity(patch["quantity"])
            if not valid:
                raise ValidationError(error, "quantity", "positive")
        return self.composition_item_repository.update(
            item_id, {k: v for k, v in patch.items() if k == "quantity"}
        )

    def delete_composition_item(self, item_id: str) -> None:
        self.composition_item_repository.delete(item_id)
        log_operation(logger, operation="delete_composition_item", outcome="success", item_id=item_id)

    # ------------------------------------------------------------------
    # Weight
    # ------------------------------------------------------------------

    def calculate_composite_weight(self, parent: Any) -> float:
        """
        Quantity-weighted weight of everything under a parent key.

        Children resolve recursively: simple products use their own weight,
        variation references use the weight override (or the composition of a
        composite variation, or the product weight), composite products
        recurse. Missing products and unresolvable references weigh 0.

        Args:
            parent: Parent key (``sku`` or ``sku#variationId``) or scope

        Returns:
            Total weight (0.0 for an empty composition)
        """
        products = {p.sku: p for p in self.product_repository.find_all()}
        return self._key_weight(as_key(parent), products, set(), {})

    def _key_weight(
        self, key: str, products: Dict[str, Product], active: Set[str], memo: Dict[str, float]
    ) -> float:
        if key in memo:
            return memo[key]
        if key in active:
            logger.warning(f"Cycle through '{key}' ignored during weight calculation")
            return 0.0

        active.add(key)
        total = 0.0
        for item in self.composition_item_repository.find_by_parent(key):
            total += item.quantity * self._child_weight(item.child_sku, products, active, memo)
        active.discard(key)

        memo[key] = total
        return total

    def _child_weight(
        self, child_sku: str, products: Dict[str, Product], active: Set[str], memo: Dict[str, float]
    ) -> float:
        ref = parse_child_reference(child_sku)
        if ref.is_rejected:
            return 0.0
        product = products.get(ref.product_sku)
        if product is None:
            return 0.0

        if ref.is_variation:
            variation = self._find_variation(ref)
            if variation is None or variation.product_sku != product.sku:
                return 0.0
            if variation.weight_override is not None:
                return variation.weight_override
            if product.is_composite:
                scope_key = serialize_scope(VariationScope(product.sku, variation.uuid))
                return self._key_weight(scope_key, products, active, memo)
            return product.weight or 0.0

        if product.is_composite:
            return self._key_weight(product.sku, products, active, memo)
        return product.weight or 0.0

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def get_composition_tree(self, root: Any, max_depth: Optional[int] = None) -> Dict[str, Any]:
        """
        Build the composition tree under a product or composite variation.

        Each node is ``{sku, name, is_composite, quantity, children,
        calculated_weight}``; variation nodes also carry ``is_variation`` and
        ``parent_product_sku``. Composite nodes weigh the quantity-weighted
        sum of their children, leaves weigh their own weight.

        Raises:
            ProductNotFound: Root product does not exist
            CompositionDepthExceeded: Nesting goes deeper than ``max_depth``
        """
        if max_depth is None:
            max_depth = get_config().max_composition_depth
        root_key = as_key(root)
        self._require_product(base_sku(root_key))
        products = {p.sku: p for p in self.product_repository.find_all()}
        return self._build_node(root_key, 1, 0, max_depth, products)

    def _build_node(
        self, key: str, quantity: int, depth: int, max_depth: int, products: Dict[str, Product]
    ) -> Dict[str, Any]:
        if depth > max_depth:
            raise CompositionDepthExceeded(key, max_depth)

        ref = parse_child_reference(key)
        product = products.get(ref.product_sku)
        node = {
            "sku": key,
            "name": product.name if product else key,
            "is_composite": bool(product and product.is_composite),
            "quantity": quantity,
            "children": [],
            "calculated_weight": 0.0,
        }
        if product is None or ref.is_rejected:
            return node

        weight_override = None
        expansion_key = product.sku if product.is_composite else None
        if ref.is_variation:
            node["is_variation"] = True
            node["parent_product_sku"] = product.sku
            variation = self._find_variation(ref)
            if variation is None or variation.product_sku != product.sku:
                return node
            node["name"] = f"{product.name} - {variation.display_name}"
            weight_override = variation.weight_override
            if product.is_composite:
                expansion_key = serialize_scope(VariationScope(product.sku, variation.uuid))

        if expansion_key is None:
            node["calculated_weight"] = (
                weight_override if weight_override is not None else product.weight or 0.0
            )
            return node

        for item in self.composition_item_repository.find_by_parent(expansion_key):
            node["children"].append(
                self._build_node(item.child_sku, item.quantity, depth + 1, max_depth, products)
            )
        if weight_override is not None:
            node["calculated_weight"] = weight_override
        else:
            node["calculated_weight"] = sum(
                child["quantity"] * child["calculated_weight"] for child in node["children"]
            )
        return node

    def _nesting_depth(self, child_sku: str, limit: int, level: int = 0) -> int:
        """Composition levels below a child (0 for a leaf), capped past ``limit``."""
        if level > limit:
            return level
        key = self._expansion_key(child_sku)
        items = self.composition_item_repository.find_by_parent(key) if key else []
        if not items:
            return 0
        return 1 + max(self._nesting_depth(item.child_sku, limit, level + 1) for item in items)

    def _ancestor_depth(self, parent_key: str, limit: int, level: int = 0) -> int:
        """Composition levels above a parent key (0 when nothing uses it), capped past ``limit``."""
        if level > limit:
            return level
        users = [
            item
            for item in self.composition_item_repository.find_by_child_product(base_sku(parent_key))
            if self._expansion_key(item.child_sku) == parent_key
        ]
        if not users:
            return 0
        return 1 + max(self._ancestor_depth(item.parent_sku, limit, level + 1) for item in users)

    def _check_nesting_depth(self, parent_key: str, child_sku: str) -> None:
        """
        Reject an edge that would make any tree through ``parent_key`` deeper
        than the configured maximum, counting levels above the parent as well
        as the child's own subtree.
        """
        max_depth = get_config().max_composition_depth
        above = self._ancestor_depth(parent_key, max_depth)
        if above + 1 + self._nesting_depth(child_sku, max_depth) > max_depth:
            raise CompositionDepthExceeded(base_sku(parent_key), max_depth)

    # ------------------------------------------------------------------
    # Graph validation
    # ------------------------------------------------------------------

    def has_circular_dependency(self, parent: Any, candidate_child_sku: str) -> bool:
        """
        Would adding ``parent -> candidate_child_sku`` create a cycle?

        Walks the candidate's existing subtree (every composition scope of
        each product reached) looking for the parent's base product.
        """
        target = base_sku(as_key(parent))
        start = base_sku(candidate_child_sku)
        if start == target:
            return True

        visited: Set[str] = set()
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            for item in self.composition_item_repository.find_by_product_scopes(current):
                child_base = base_sku(item.child_sku)
                if child_base == target:
                    return True
                if child_base not in visited:
                    queue.append(child_base)
        return False

    def validate_referential_integrity(self, parent: Any, child_sku: str) -> None:
        """
        Check that ``parent -> child_sku`` may be added.

        Raises:
            ValidationError: Self reference, or parent product missing
            BusinessRuleError: Parent not composite, duplicate child, or cycle
        """
        parent_key = as_key(parent)
        if parent_key == child_sku:
            raise ValidationError(
                "A product cannot be composed of itself", "child_sku", "self_reference"
            )

        parent_sku = base_sku(parent_key)
        parent_product = self._require_product(parent_sku)
        if not parent_product.is_composite:
            raise BusinessRuleError(
                f"Product '{parent_sku}' is not marked as composite",
                "parent_not_composite",
                {"parent_sku": parent_sku},
            )

        if self.composition_item_repository.find_by_parent_and_child(parent_key, child_sku):
            raise DuplicateCompositionItemError(parent_key, child_sku)

        if self.has_circular_dependency(parent_key, child_sku):
            raise CircularDependencyError(parent_key, child_sku)

    def resolve_child_reference(self, child_sku: str) -> ChildReference:
        """
        Parse a child SKU and classify plain product references as simple,
        composite or variable. Unknown products keep the plain ``product`` kind.
        """
        ref = parse_child_reference(child_sku)
        if ref.is_variation or ref.is_rejected:
            return ref
        product = self.product_repository.find_by_sku(ref.product_sku)
        if product is None:
            return ref
        if product.has_variation:
            return ref.with_kind(REF_VARIABLE)
        if product.is_composite:
            return ref.with_kind(REF_COMPOSITE)
        return ref.with_kind(REF_SIMPLE)

    def validate_child_product_eligibility(self, child_sku: str) -> ChildReference:
        """
        Check that a SKU may be used as a composition child.

        Simple and composite products are accepted. A variable product is only
        accepted through one of its variations (``SKU#id`` or ``SKU-VAR-id``);
        the legacy ``SKU:id`` form is always rejected.

        Returns:
            The resolved ChildReference

        Raises:
            LegacySkuFormatError, VariationNotFound, VariationProductMismatch,
            ProductNotFound, VariableProductNotAllowed
        """
        ref = self.resolve_child_reference(child_sku)

        if ref.kind == REF_REJECTED_LEGACY:
            raise LegacySkuFormatError(child_sku)

        if ref.is_variation:
            variation = self._find_variation(ref)
            if variation is None:
                raise VariationNotFound(ref.variation_id)
            if variation.product_sku != ref.product_sku:
                raise VariationProductMismatch(
                    ref.variation_id, ref.product_sku, variation.product_sku
                )
            self._require_product(ref.product_sku)
            return ref

        if ref.kind == REF_VARIABLE:
            raise VariableProductNotAllowed(child_sku)
        if ref.kind not in (REF_SIMPLE, REF_COMPOSITE):
            raise ProductNotFound(child_sku)
        return ref

    # ------------------------------------------------------------------
    # Selection lists
    # ------------------------------------------------------------------

    def get_composition_available_items(self) -> List[Dict[str, Any]]:
        """
        Everything that can be picked as a composition child.

        One entry per simple product, per composite product and per variation
        of each variable product; variable products never appear themselves.
        Sorted by display name.
        """
        products = {p.sku: p for p in self.product_repository.find_all()}
        memo: Dict[str, float] = {}
        entries = []

        for product in products.values():
            if product.has_variation:
                for variation in self.variation_item_repository.find_by_product(product.sku):
                    sku = serialize_scope(VariationScope(product.sku, variation.uuid))
                    entries.append(
                        {
                            "id": variation.uuid,
                            "sku": sku,
                            "display_name": f"{product.name} - {variation.display_name}",
                            "weight": self._child_weight(sku, products, set(), memo),
                            "type": "variation",
                            "parent_sku": product.sku,
                        }
                    )
                continue

            entries.append(
                {
                    "id": product.sku,
                    "sku": product.sku,
                    "display_name": product.name,
                    "weight": self._child_weight(product.sku, products, set(), memo),
                    "type": "composite" if product.is_composite else "simple",
                    "parent_sku": None,
                }
            )

        return sorted(entries, key=lambda entry: entry["display_name"].lower())

    # ------------------------------------------------------------------
    # Composite variations
    # ------------------------------------------------------------------

    def _require_composite_variable(self, product_sku: str) -> Product:
        product = self._require_product(product_sku)
        if not (product.is_composite and product.has_variation):
            raise BusinessRuleError(
                f"Product '{product_sku}' is not a composite product with variations",
                "composite_variation_required",
                {"product_sku": product_sku},
            )
        return product

    def _prepare_variation_rows(
        self, product_sku: str, variation_id: str, items: Iterable[Any], check_existing: bool
    ) -> List[Dict[str, Any]]:
        """Validate every row up front; nothing is written here."""
        self._require_composite_variable(product_sku)
        self._require_variation(product_sku, variation_id)

        items = [_item_fields(item) for item in items or []]
        if not items:
            raise ValidationError("At least one composition item is required", "items", "required")

        scope_key = serialize_scope(VariationScope(product_sku, variation_id))
        seen: Set[str] = set()
        rows = []
        for item in items:
            child_sku, quantity = item["child_sku"], item["quantity"]

            valid, error = validate_quantity(quantity)
            if not valid:
                raise ValidationError(error, "quantity", "positive")
            if not child_sku:
                raise ValidationError("Child SKU is required", "child_sku", "required")
            if base_sku(child_sku) == product_sku:
                raise BusinessRuleError(
                    f"Product '{product_sku}' cannot be composed of its own variations",
                    "self_reference",
                    {"product_sku": product_sku, "child_sku": child_sku},
                )
            if child_sku in seen:
                raise ValidationError(
                    "Duplicate products are not allowed in the same variation", "items", "duplicate"
                )
            seen.add(child_sku)

            self.validate_child_product_eligibility(child_sku)
            if check_existing and self.composition_item_repository.find_by_parent_and_child(
                scope_key, child_sku
            ):
                raise DuplicateCompositionItemError(scope_key, child_sku)
            if self.has_circular_dependency(scope_key, child_sku):
                raise CircularDependencyError(scope_key, child_sku)
            self._check_nesting_depth(scope_key, child_sku)

            rows.append({"parent_sku": scope_key, "child_sku": child_sku, "quantity": quantity})
        return rows

    def create_composite_variation_composition(
        self, product_sku: str, variation_id: str, items: Iterable[Any]
    ) -> List[CompositionItem]:
        """
        Create the composition of one variation of a composite+variable product.

        All rows are validated before anything is written, so a single
        ineligible child leaves storage untouched.

        Args:
            product_sku: Composite+variable product
            variation_id: Variation (ProductVariationItem uuid) of that product
            items: Rows with ``child_sku`` and ``quantity``

        Returns:
            Created CompositionItems keyed ``<product_sku>#<variation_id>``
        """
        rows = self._prepare_variation_rows(product_sku, variation_id, items, check_existing=True)
        created = self.composition_item_repository.create_batch(rows)
        log_operation(
            logger,
            operation="create_composite_variation_composition",
            outcome="success",
            product_sku=product_sku,
            variation_id=variation_id,
            item_count=len(created),
        )
        return created

    def update_composite_variation_composition(
        self, product_sku: str, variation_id: str, items: Iterable[Any]
    ) -> List[CompositionItem]:
        """Replace a variation's composition (delete then recreate, one transaction)."""
        rows = self._prepare_variation_rows(product_sku, variation_id, items, check_existing=False)
        scope_key = serialize_scope(VariationScope(product_sku, variation_id))

        with database.session_scope() as session:
            self.composition_item_repository.delete_by_parent(scope_key, session=session)
            created = self.composition_item_repository.create_batch(rows, session=session)

        log_operation(
            logger,
            operation="update_composite_variation_composition",
            outcome="success",
            product_sku=product_sku,
            variation_id=variation_id,
            item_count=len(created),
        )
        return created

    def get_composite_variation_composition(
        self, product_sku: str, variation_id: str
    ) -> List[CompositionItem]:
        return self.composition_item_repository.find_by_parent(
            VariationScope(product_sku, variation_id)
        )

    def calculate_composite_variation_weight(self, product_sku: str, variation_id: str) -> float:
        """
        Weight of one composite variation.

        A weight override counts only when one of the variation's selected
        types modifies weight; otherwise the variation's composition is summed.
        """
        variation = self._require_variation(product_sku, variation_id)
        if variation.weight_override is not None and self.variation_type_repository.any_modify_weight(
            variation.variation_type_ids()
        ):
            return variation.weight_override
        return self.calculate_composite_weight(VariationScope(product_sku, variation_id))

    def validate_composite_variation_uniqueness(
        self, product_sku: str, variation_id: str, exclude_variation_id: Optional[str] = None
    ) -> bool:
        """
        Reject a variation whose selections match another variation of the
        same product. Empty selections (composite variations) never clash.
        """
        variation = self._require_variation(product_sku, variation_id)
        if not variation.selections:
            return True
        for other in self.variation_item_repository.find_by_product(product_sku):
            if other.uuid in (variation_id, exclude_variation_id):
                continue
            if other.has_same_selections(variation):
                raise BusinessRuleError(
                    "A variation combination with the same selections already exists",
                    "variation_uniqueness",
                    {"product_sku": product_sku, "variation_id": variation_id, "duplicate_of": other.uuid},
                )
        return True

    def validate_composite_variation_completeness(
        self, product_sku: str, variation_id: str
    ) -> Dict[str, Any]:
        """
        Check a variation's composition without raising.

        Returns:
            Dict with ``is_complete``, ``missing_items`` (messages) and
            ``invalid_items`` (``{item_id, child_sku, error}`` per bad child)
        """
        items = self.get_composite_variation_composition(product_sku, variation_id)
        missing_items = [] if items else ["At least one composition item is required"]
        invalid_items = []

        for item in items:
            try:
                self.validate_child_product_eligibility(item.child_sku)
            except ServiceError as e:
                invalid_items.append({"item_id": item.uuid, "child_sku": item.child_sku, "error": str(e)})

        return {
            "is_complete": not missing_items and not invalid_items,
            "missing_items": missing_items,
            "invalid_items": invalid_items,
        }

    def get_composite_variations_with_composition(self, product_sku: str) -> List[Dict[str, Any]]:
        """
        Per-variation composition summary of a composite+variable product.

        Returns ``[{variation, composition_items, total_weight, is_complete}]``,
        or an empty list for any other product shape.
        """
        product = self.product_repository.find_by_sku(product_sku)
        if product is None or not (product.is_composite and product.has_variation):
            return []

        summaries = []
        for variation in self.variation_item_repository.find_by_product(product_sku):
            summaries.append(
                {
                    "variation": variation,
                    "composition_items": self.get_composite_variation_composition(
                        product_sku, variation.uuid
                    ),
                    "total_weight": self.calculate_composite_variation_weight(
                        product_sku, variation.uuid
                    ),
                    "is_complete": self.validate_composite_variation_completeness(
                        product_sku, variation.uuid
                    )["is_complete"],
                }
            )
        return summaries

    # ------------------------------------------------------------------
    # Dependents and audits
    # ------------------------------------------------------------------

    def get_dependent_products(self, sku: str) -> List[str]:
        """Base SKUs of products whose compositions use ``sku`` or its variations."""
        dependents = []
        for item in self.composition_item_repository.find_by_child_product(sku):
            parent_sku = base_sku(item.parent_sku)
            if parent_sku not in dependents:
                dependents.append(parent_sku)
        return dependents

    def validate_product_deletion_impact(self, sku: str) -> Dict[str, Any]:
        """
        What deleting a product would break.

        Returns:
            Dict with ``can_delete``, ``blockers``, ``warnings`` and
            ``affected_compositions`` (SKUs of products using it)
        """
        self._require_product(sku)
        usages = self.composition_item_repository.find_by_child_product(sku)
        affected = self.get_dependent_products(sku)

        blockers = []
        if usages:
            blockers.append(f"Product '{sku}' is used in {len(usages)} composition(s)")

        warnings = []
        own_items = self.composition_item_repository.find_by_product_scopes(sku)
        if own_items:
            warnings.append(f"{len(own_items)} composition item(s) of '{sku}' will be deleted")
        variation_count = self.variation_item_repository.count_by_product(sku)
        if variation_count:
            warnings.append(f"{variation_count} variation(s) of '{sku}' will be deleted")

        return {
            "can_delete": not blockers,
            "blockers": blockers,
            "warnings": warnings,
            "affected_compositions": affected,
        }

    def validate_composition_integrity(self) -> Dict[str, Any]:
        """
        Audit every composition item.

        Unlike weight calculation, dangling references are reported here.

        Returns:
            Dict with ``valid``, ``orphaned_items``, ``missing_children`` and
            ``invalid_items`` (children failing eligibility, e.g. legacy SKUs)
        """
        skus = [p.sku for p in self.product_repository.find_all()]
        result = self.composition_item_repository.validate_integrity(skus)
        known = set(skus)

        invalid_items = []
        for item in self.composition_item_repository.find_all():
            if base_sku(item.child_sku) not in known:
                continue
            try:
                self.validate_child_product_eligibility(item.child_sku)
            except ServiceError as e:
                invalid_items.append({"item_id": item.uuid, "child_sku": item.child_sku, "error": str(e)})

        result["invalid_items"] = invalid_items
        result["valid"] = result["valid"] and not invalid_items
        if not result["valid"]:
            log_operation(
                logger,
                operation="validate_composition_integrity",
                outcome="issues_found",
                level=logging.WARNING,
                orphaned=len(result["orphaned_items"]),
                missing_children=len(result["missing_children"]),
                invalid=len(invalid_items),
            )
        return result
