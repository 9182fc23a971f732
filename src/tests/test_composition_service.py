"""
Tests for Composition Service.

Tests cover:
- create/update/delete of composition items with full validation
- Recursive composite weight calculation (nested, variations, dangling refs)
- Composition tree building and the maximum nesting depth
- Circular dependency, duplicate and parent-not-composite rules
- Child eligibility (legacy format, variable products, variation references)
- Composite-variation compositions (all-or-nothing create, replace, weight)
- Available item listing, deletion impact and integrity audit
"""

import pytest

from src.services.composition_scope import VariationScope
from src.services.exceptions import (
    BusinessRuleError,
    CircularDependencyError,
    CompositionDepthExceeded,
    DuplicateCompositionItemError,
    LegacySkuFormatError,
    ProductNotFound,
    RecordNotFound,
    ValidationError,
    VariableProductNotAllowed,
    VariationNotFound,
    VariationProductMismatch,
)
from src.services.repositories import CompositionItemRepository, ProductRepository

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def office_set(product_service, composition_service, simple_products):
    """OFFICE-SET-001 = 1 x DESK-001 (30) + 4 x CHAIR-001 (5) + 4 x LAMP-001 (2.5) = 60."""
    product_service.create_product({"sku": "DESK-001", "name": "Desk", "weight": 30})
    product_service.create_product({"sku": "OFFICE-SET-001", "name": "Office Set", "is_composite": True})
    for child_sku, quantity in (("DESK-001", 1), ("CHAIR-001", 4), ("LAMP-001", 4)):
        composition_service.create_composition_item(
            {"parent_sku": "OFFICE-SET-001", "child_sku": child_sku, "quantity": quantity}
        )
    return "OFFICE-SET-001"


@pytest.fixture
def gift_set(product_service, variation_service, simple_products):
    """Composite+variable GIFT-SET-001 with one (empty) composite variation."""
    product_service.create_product(
        {"sku": "GIFT-SET-001", "name": "Gift Set", "is_composite": True, "has_variation": True}
    )
    variation = variation_service.create_product_variation("GIFT-SET-001", {})
    return variation


def _chain(length):
    """Composite chain LEVEL-0 -> LEVEL-1 -> ... -> LEVEL-<length-1> -> LEAF-001."""
    products = ProductRepository()
    items = CompositionItemRepository()
    products.create({"sku": "LEAF-001", "name": "Leaf", "weight": 1})
    for level in range(length):
        products.create({"sku": f"LEVEL-{level}", "name": f"Level {level}", "is_composite": True})
    for level in range(length):
        child = f"LEVEL-{level + 1}" if level + 1 < length else "LEAF-001"
        items.create({"parent_sku": f"LEVEL-{level}", "child_sku": child, "quantity": 1})


# =============================================================================
# Weight
# =============================================================================


class TestCompositeWeight:
    """Tests for calculate_composite_weight."""

    def test_office_set_weight(self, composition_service, office_set):
        assert composition_service.calculate_composite_weight(office_set) == 60

    def test_weight_follows_child_changes(self, product_service, composition_service, dining_set):
        product_service.update_product("TABLE-001", {"weight": 16})
        assert composition_service.calculate_composite_weight("DINING-SET-001") == 36

    def test_nested_composite_weight(self, product_service, composition_service, office_set):
        product_service.create_product({"sku": "WORKSPACE-001", "name": "Workspace", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "WORKSPACE-001", "child_sku": office_set, "quantity": 2}
        )
        composition_service.create_composition_item(
            {"parent_sku": "WORKSPACE-001", "child_sku": "TABLE-001", "quantity": 1}
        )

        assert composition_service.calculate_composite_weight("WORKSPACE-001") == 140

    def test_empty_composition_weighs_zero(self, product_service, composition_service):
        product_service.create_product({"sku": "EMPTY-SET", "name": "Empty", "is_composite": True})
        assert composition_service.calculate_composite_weight("EMPTY-SET") == 0.0

    def test_dangling_child_weighs_zero(self, composition_service, dining_set):
        CompositionItemRepository().create(
            {"parent_sku": "DINING-SET-001", "child_sku": "GONE-001", "quantity": 3}
        )
        assert composition_service.calculate_composite_weight("DINING-SET-001") == 40

    def test_variation_children_use_override_or_product_weight(
        self, product_service, composition_service, variable_shirt
    ):
        red_large = variable_shirt["items"]["red_large"]
        blue_large = variable_shirt["items"]["blue_large"]
        product_service.create_product({"sku": "MERCH-BOX", "name": "Merch Box", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "MERCH-BOX", "child_sku": f"T-SHIRT-001#{red_large.uuid}", "quantity": 2}
        )
        composition_service.create_composition_item(
            {"parent_sku": "MERCH-BOX", "child_sku": f"T-SHIRT-001-VAR-{blue_large.uuid}", "quantity": 10}
        )

        # 2 x 0.4 (override) + 10 x 0.3 (product weight)
        assert composition_service.calculate_composite_weight("MERCH-BOX") == pytest.approx(3.8)

    def test_weight_is_deterministic(self, composition_service, office_set):
        first = composition_service.calculate_composite_weight(office_set)
        assert composition_service.calculate_composite_weight(office_set) == first

    def test_deep_chain_weight_has_no_depth_limit(self, test_db, composition_service):
        _chain(15)
        assert composition_service.calculate_composite_weight("LEVEL-0") == 1


# =============================================================================
# Tree
# =============================================================================


class TestCompositionTree:
    def test_tree_structure(self, composition_service, dining_set):
        tree = composition_service.get_composition_tree("DINING-SET-001")

        assert tree["sku"] == "DINING-SET-001"
        assert tree["is_composite"] is True
        assert tree["calculated_weight"] == 40
        assert [(c["sku"], c["quantity"], c["calculated_weight"]) for c in tree["children"]] == [
            ("CHAIR-001", 4, 5),
            ("TABLE-001", 1, 20),
        ]
        assert tree["children"][0]["children"] == []

    def test_tree_depth_limit(self, test_db, composition_service):
        _chain(15)
        with pytest.raises(CompositionDepthExceeded) as exc_info:
            composition_service.get_composition_tree("LEVEL-0")
        assert "10 levels" in str(exc_info.value)

    def test_tree_custom_depth(self, test_db, composition_service):
        _chain(3)
        tree = composition_service.get_composition_tree("LEVEL-0", max_depth=3)
        assert tree["children"][0]["children"][0]["children"][0]["sku"] == "LEAF-001"
        with pytest.raises(CompositionDepthExceeded):
            composition_service.get_composition_tree("LEVEL-0", max_depth=2)

    def test_tree_unknown_root(self, composition_service):
        with pytest.raises(ProductNotFound):
            composition_service.get_composition_tree("MISSING-001")

    def test_variation_nodes(self, product_service, composition_service, variable_shirt):
        red_large = variable_shirt["items"]["red_large"]
        product_service.create_product({"sku": "MERCH-BOX", "name": "Merch Box", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "MERCH-BOX", "child_sku": f"T-SHIRT-001#{red_large.uuid}", "quantity": 1}
        )

        node = composition_service.get_composition_tree("MERCH-BOX")["children"][0]
        assert node["is_variation"] is True
        assert node["parent_product_sku"] == "T-SHIRT-001"
        assert node["name"] == "T-Shirt - Red / Large"
        assert node["calculated_weight"] == 0.4


# =============================================================================
# Creating items
# =============================================================================


class TestCreateCompositionItem:
    def test_create_item(self, composition_service, dining_set):
        items = composition_service.get_composition_items("DINING-SET-001")
        assert [(i.child_sku, i.quantity) for i in items] == [("CHAIR-001", 4), ("TABLE-001", 1)]

    def test_default_quantity_is_one(self, product_service, composition_service, simple_products):
        product_service.create_product({"sku": "PAIR-001", "name": "Pair", "is_composite": True})
        item = composition_service.create_composition_item(
            {"parent_sku": "PAIR-001", "child_sku": "CHAIR-001"}
        )
        assert item.quantity == 1

    @pytest.mark.parametrize("quantity", [0, -2, 1.5])
    def test_invalid_quantity(self, composition_service, dining_set, quantity):
        with pytest.raises(ValidationError) as exc_info:
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "LAMP-001", "quantity": quantity}
            )
        assert "positive integer" in str(exc_info.value)

    def test_self_reference(self, composition_service, dining_set):
        with pytest.raises(ValidationError) as exc_info:
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "DINING-SET-001"}
            )
        assert "itself" in str(exc_info.value)

    def test_parent_must_be_composite(self, composition_service, simple_products):
        with pytest.raises(BusinessRuleError) as exc_info:
            composition_service.create_composition_item(
                {"parent_sku": "CHAIR-001", "child_sku": "TABLE-001"}
            )
        assert exc_info.value.rule == "parent_not_composite"

    def test_unknown_parent(self, composition_service, simple_products):
        with pytest.raises(ProductNotFound):
            composition_service.create_composition_item(
                {"parent_sku": "MISSING-001", "child_sku": "CHAIR-001"}
            )

    def test_unknown_child(self, composition_service, dining_set):
        with pytest.raises(ProductNotFound):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "MISSING-001"}
            )

    def test_duplicate_child(self, composition_service, dining_set):
        with pytest.raises(DuplicateCompositionItemError):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "CHAIR-001", "quantity": 2}
            )

    def test_direct_cycle(self, product_service, composition_service, dining_set):
        product_service.create_product({"sku": "HOUSE-001", "name": "House", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "HOUSE-001", "child_sku": "DINING-SET-001"}
        )
        with pytest.raises(CircularDependencyError):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "HOUSE-001"}
            )
        assert composition_service.has_circular_dependency("DINING-SET-001", "HOUSE-001")
        assert not composition_service.has_circular_dependency("HOUSE-001", "LAMP-001")

    def test_legacy_variation_format_rejected(self, composition_service, dining_set, variable_shirt):
        red_large = variable_shirt["items"]["red_large"]
        with pytest.raises(LegacySkuFormatError) as exc_info:
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": f"T-SHIRT-001:{red_large.uuid}"}
            )
        assert "#" in str(exc_info.value)

    def test_variable_product_not_allowed_directly(self, composition_service, dining_set, variable_shirt):
        with pytest.raises(VariableProductNotAllowed):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "T-SHIRT-001"}
            )

    def test_unknown_variation(self, composition_service, dining_set, variable_shirt):
        with pytest.raises(VariationNotFound):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "T-SHIRT-001#missing"}
            )

    def test_variation_of_another_product(self, composition_service, dining_set, variable_shirt):
        red_large = variable_shirt["items"]["red_large"]
        with pytest.raises(VariationProductMismatch):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": f"LAMP-001#{red_large.uuid}"}
            )

    def test_marker_form_uses_variation_sku(self, composition_service, dining_set, variable_shirt):
        red_large = variable_shirt["items"]["red_large"]
        item = composition_service.create_composition_item(
            {"parent_sku": "DINING-SET-001", "child_sku": red_large.variation_sku()}
        )
        assert item.child_reference.is_variation
        assert composition_service.calculate_composite_weight("DINING-SET-001") == pytest.approx(40.4)

    def test_marker_form_resolves_the_referenced_variation(
        self, composition_service, dining_set, variable_shirt
    ):
        red_large = variable_shirt["items"]["red_large"]
        blue_large = variable_shirt["items"]["blue_large"]
        assert red_large.variation_sku() != blue_large.variation_sku()

        composition_service.create_composition_item(
            {"parent_sku": "DINING-SET-001", "child_sku": blue_large.variation_sku()}
        )
        # Blue / Large has no override, so the shirt's own 0.3 applies
        assert composition_service.calculate_composite_weight("DINING-SET-001") == pytest.approx(40.3)

    def test_marker_form_with_unknown_id(self, composition_service, dining_set, variable_shirt):
        with pytest.raises(VariationNotFound):
            composition_service.create_composition_item(
                {"parent_sku": "DINING-SET-001", "child_sku": "T-SHIRT-001-VAR-abcdef12"}
            )

    def test_nesting_depth_enforced_on_create(self, monkeypatch, test_db, composition_service):
        from src.utils.config import reset_config

        monkeypatch.setenv("CATALOG_MAX_COMPOSITION_DEPTH", "3")
        reset_config()
        _chain(3)
        ProductRepository().create({"sku": "TOP-001", "name": "Top", "is_composite": True})

        with pytest.raises(CompositionDepthExceeded):
            composition_service.create_composition_item(
                {"parent_sku": "TOP-001", "child_sku": "LEVEL-0"}
            )
        # One level shallower fits
        composition_service.create_composition_item({"parent_sku": "TOP-001", "child_sku": "LEVEL-1"})

    def test_nesting_depth_counts_levels_above_parent(self, monkeypatch, test_db, composition_service):
        from src.utils.config import reset_config

        monkeypatch.setenv("CATALOG_MAX_COMPOSITION_DEPTH", "3")
        reset_config()
        _chain(3)
        products = ProductRepository()
        products.create({"sku": "LEAF-002", "name": "Second Leaf", "weight": 2})
        products.create({"sku": "KIT-001", "name": "Kit", "is_composite": True})
        CompositionItemRepository().create({"parent_sku": "KIT-001", "child_sku": "LEAF-001", "quantity": 1})

        # LEVEL-2 already sits two levels below LEVEL-0
        with pytest.raises(CompositionDepthExceeded):
            composition_service.create_composition_item({"parent_sku": "LEVEL-2", "child_sku": "KIT-001"})

        composition_service.create_composition_item({"parent_sku": "LEVEL-2", "child_sku": "LEAF-002"})
        tree = composition_service.get_composition_tree("LEVEL-0")
        assert tree["calculated_weight"] == 3


class TestUpdateDeleteCompositionItem:
    def test_update_quantity(self, composition_service, dining_set):
        item = composition_service.get_composition_items("DINING-SET-001")[0]
        composition_service.update_composition_item(item.uuid, {"quantity": 6})
        assert composition_service.calculate_composite_weight("DINING-SET-001") == 50

    def test_parent_and_child_are_immutable(self, composition_service, dining_set):
        item = composition_service.get_composition_items("DINING-SET-001")[0]
        with pytest.raises(ValidationError) as exc_info:
            composition_service.update_composition_item(item.uuid, {"child_sku": "LAMP-001"})
        assert "cannot be changed" in str(exc_info.value)

    def test_update_unknown_item(self, composition_service, dining_set):
        with pytest.raises(RecordNotFound):
            composition_service.update_composition_item("missing", {"quantity": 2})

    def test_delete_item(self, composition_service, dining_set):
        item = composition_service.get_composition_items("DINING-SET-001")[1]
        composition_service.delete_composition_item(item.uuid)
        assert composition_service.calculate_composite_weight("DINING-SET-001") == 20


# =============================================================================
# Composite variations
# =============================================================================


class TestCompositeVariationCompositions:
    def test_create_and_weigh(self, composition_service, gift_set):
        created = composition_service.create_composite_variation_composition(
            "GIFT-SET-001",
            gift_set.uuid,
            [{"child_sku": "CHAIR-001", "quantity": 2}, {"child_sku": "LAMP-001", "quantity": 1}],
        )

        assert {i.parent_sku for i in created} == {f"GIFT-SET-001#{gift_set.uuid}"}
        assert composition_service.calculate_composite_variation_weight("GIFT-SET-001", gift_set.uuid) == 12.5
        assert composition_service.calculate_composite_weight(
            VariationScope("GIFT-SET-001", gift_set.uuid)
        ) == 12.5
        # Nothing is stored under the plain key
        assert composition_service.get_composition_items("GIFT-SET-001") == []

    def test_one_bad_child_writes_nothing(self, composition_service, gift_set, variable_shirt):
        with pytest.raises(VariableProductNotAllowed):
            composition_service.create_composite_variation_composition(
                "GIFT-SET-001",
                gift_set.uuid,
                [{"child_sku": "CHAIR-001", "quantity": 2}, {"child_sku": "T-SHIRT-001", "quantity": 1}],
            )
        assert composition_service.get_composite_variation_composition("GIFT-SET-001", gift_set.uuid) == []

    def test_empty_and_duplicate_rows(self, composition_service, gift_set):
        with pytest.raises(ValidationError):
            composition_service.create_composite_variation_composition("GIFT-SET-001", gift_set.uuid, [])
        with pytest.raises(ValidationError) as exc_info:
            composition_service.create_composite_variation_composition(
                "GIFT-SET-001",
                gift_set.uuid,
                [{"child_sku": "CHAIR-001", "quantity": 1}, {"child_sku": "CHAIR-001", "quantity": 2}],
            )
        assert "Duplicate" in str(exc_info.value)

    def test_own_variations_rejected(self, variation_service, composition_service, gift_set):
        second = variation_service.create_product_variation("GIFT-SET-001", {})
        with pytest.raises(BusinessRuleError) as exc_info:
            composition_service.create_composite_variation_composition(
                "GIFT-SET-001", gift_set.uuid, [{"child_sku": f"GIFT-SET-001#{second.uuid}", "quantity": 1}]
            )
        assert exc_info.value.rule == "self_reference"

    def test_requires_composite_variable_product(self, composition_service, dining_set):
        with pytest.raises(BusinessRuleError) as exc_info:
            composition_service.create_composite_variation_composition(
                "DINING-SET-001", "v1", [{"child_sku": "CHAIR-001", "quantity": 1}]
            )
        assert exc_info.value.rule == "composite_variation_required"

    def test_unknown_variation_scope(self, composition_service, gift_set):
        with pytest.raises(VariationNotFound):
            composition_service.create_composition_item(
                {"parent_sku": "GIFT-SET-001#missing", "child_sku": "CHAIR-001"}
            )

    def test_update_replaces_composition(self, composition_service, gift_set):
        composition_service.create_composite_variation_composition(
            "GIFT-SET-001", gift_set.uuid, [{"child_sku": "CHAIR-001", "quantity": 2}]
        )
        composition_service.update_composite_variation_composition(
            "GIFT-SET-001",
            gift_set.uuid,
            [{"child_sku": "CHAIR-001", "quantity": 1}, {"child_sku": "TABLE-001", "quantity": 1}],
        )

        items = composition_service.get_composite_variation_composition("GIFT-SET-001", gift_set.uuid)
        assert [(i.child_sku, i.quantity) for i in items] == [("CHAIR-001", 1), ("TABLE-001", 1)]

    def test_override_ignored_without_weight_modifying_type(
        self, variation_service, composition_service, gift_set
    ):
        composition_service.create_composite_variation_composition(
            "GIFT-SET-001", gift_set.uuid, [{"child_sku": "TABLE-001", "quantity": 1}]
        )
        variation_service.update_product_variation(gift_set.uuid, {"weight_override": 99})

        assert composition_service.calculate_composite_variation_weight("GIFT-SET-001", gift_set.uuid) == 20

    def test_completeness_and_summary(self, composition_service, gift_set):
        result = composition_service.validate_composite_variation_completeness("GIFT-SET-001", gift_set.uuid)
        assert result["is_complete"] is False
        assert result["missing_items"] == ["At least one composition item is required"]

        composition_service.create_composite_variation_composition(
            "GIFT-SET-001", gift_set.uuid, [{"child_sku": "LAMP-001", "quantity": 2}]
        )
        summaries = composition_service.get_composite_variations_with_composition("GIFT-SET-001")
        assert len(summaries) == 1
        assert summaries[0]["total_weight"] == 5
        assert summaries[0]["is_complete"] is True
        assert composition_service.get_composite_variations_with_composition("CHAIR-001") == []

    def test_empty_selections_are_unique(self, composition_service, gift_set):
        assert composition_service.validate_composite_variation_uniqueness("GIFT-SET-001", gift_set.uuid)

    def test_variation_of_composite_product_expands_its_composition(
        self, product_service, composition_service, gift_set
    ):
        composition_service.create_composite_variation_composition(
            "GIFT-SET-001", gift_set.uuid, [{"child_sku": "CHAIR-001", "quantity": 3}]
        )
        product_service.create_product({"sku": "PALLET-001", "name": "Pallet", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "PALLET-001", "child_sku": f"GIFT-SET-001#{gift_set.uuid}", "quantity": 2}
        )
        assert composition_service.calculate_composite_weight("PALLET-001") == 30


# =============================================================================
# Listings and audits
# =============================================================================


class TestAvailableItemsAndAudits:
    def test_available_items(self, composition_service, dining_set, variable_shirt):
        entries = composition_service.get_composition_available_items()
        by_sku = {entry["sku"]: entry for entry in entries}

        assert "T-SHIRT-001" not in by_sku
        assert by_sku["DINING-SET-001"]["type"] == "composite"
        assert by_sku["DINING-SET-001"]["weight"] == 40
        assert by_sku["CHAIR-001"]["type"] == "simple"

        variation_entries = [e for e in entries if e["type"] == "variation"]
        assert len(variation_entries) == 2
        assert all(e["parent_sku"] == "T-SHIRT-001" for e in variation_entries)
        names = [e["display_name"] for e in entries]
        assert names == sorted(names, key=str.lower)

    def test_resolve_child_reference_kinds(self, composition_service, dining_set, variable_shirt):
        assert composition_service.resolve_child_reference("CHAIR-001").kind == "simple"
        assert composition_service.resolve_child_reference("DINING-SET-001").kind == "composite"
        assert composition_service.resolve_child_reference("T-SHIRT-001").kind == "variable"
        assert composition_service.resolve_child_reference("MISSING-001").kind == "product"

    def test_deletion_impact(self, composition_service, dining_set):
        impact = composition_service.validate_product_deletion_impact("CHAIR-001")
        assert impact["can_delete"] is False
        assert impact["affected_compositions"] == ["DINING-SET-001"]

        impact = composition_service.validate_product_deletion_impact("DINING-SET-001")
        assert impact["can_delete"] is True
        assert impact["warnings"] == ["2 composition item(s) of 'DINING-SET-001' will be deleted"]

    def test_dependents_include_variation_references(
        self, product_service, composition_service, variable_shirt
    ):
        red_large = variable_shirt["items"]["red_large"]
        product_service.create_product({"sku": "MERCH-BOX", "name": "Merch Box", "is_composite": True})
        composition_service.create_composition_item(
            {"parent_sku": "MERCH-BOX", "child_sku": f"T-SHIRT-001#{red_large.uuid}", "quantity": 1}
        )
        assert composition_service.get_dependent_products("T-SHIRT-001") == ["MERCH-BOX"]

    def test_integrity_audit(self, composition_service, dining_set, variable_shirt):
        assert composition_service.validate_composition_integrity()["valid"] is True

        repository = CompositionItemRepository()
        repository.create({"parent_sku": "DINING-SET-001", "child_sku": "GONE-001"})
        repository.create({"parent_sku": "GHOST-SET", "child_sku": "CHAIR-001"})
        repository.create({"parent_sku": "DINING-SET-001", "child_sku": "T-SHIRT-001:abc"})

        result = composition_service.validate_composition_integrity()
        assert result["valid"] is False
        assert result["missing_children"] == ["GONE-001"]
        assert [i.parent_sku for i in result["orphaned_items"]] == ["GHOST-SET"]
        assert [i["child_sku"] for i in result["invalid_items"]] == ["T-SHIRT-001:abc"]
