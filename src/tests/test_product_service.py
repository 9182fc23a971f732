"""
Tests for Product Service.

Tests cover:
- create_product() uniqueness and composite weight rules
- update_product() flag constraints
- delete_product() referential integrity and cascade
- Effective weight/dimensions, constraints and stats
- validate_state_transition() without storage
"""

import pytest

from src.models import CompositionItem, Product, ProductVariationItem
from src.services.exceptions import BusinessRuleError, ProductNotFound, ValidationError
from src.services.product_service import COMPOSITE_WEIGHT_MESSAGE, ProductService
from src.services.repositories import ProductVariationItemRepository


class TestCreateProduct:
    def test_create_simple_product(self, product_service):
        product = product_service.create_product({"sku": "CHAIR-001", "name": "Chair", "weight": 5})
        assert product.uuid is not None
        assert product_service.get_product("CHAIR-001").weight == 5

    def test_duplicate_sku(self, product_service, simple_products):
        with pytest.raises(ValidationError) as exc_info:
            product_service.create_product({"sku": "CHAIR-001", "name": "Other Chair"})
        assert "Product with SKU 'CHAIR-001' already exists" in str(exc_info.value)
        assert exc_info.value.code == "unique"

    def test_variation_marker_sku_rejected(self, product_service):
        with pytest.raises(ValidationError) as exc_info:
            product_service.create_product({"sku": "KIT-VAR-2", "name": "Kit", "weight": 1})
        assert "-VAR-" in str(exc_info.value)
        assert product_service.get_product("KIT-VAR-2") is None

    def test_duplicate_name_case_insensitive(self, product_service, simple_products):
        with pytest.raises(ValidationError) as exc_info:
            product_service.create_product({"sku": "CHAIR-002", "name": "CHAIR"})
        assert "already exists" in str(exc_info.value)

    def test_composite_with_weight_rejected(self, product_service):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.create_product(
                {"sku": "SET-001", "name": "Set", "is_composite": True, "weight": 10}
            )
        assert str(exc_info.value) == COMPOSITE_WEIGHT_MESSAGE
        assert exc_info.value.rule == "composite_weight_rule"

    def test_invalid_fields_collected(self, product_service):
        with pytest.raises(ValidationError) as exc_info:
            product_service.create_product({"sku": "bad sku", "name": "X", "weight": -1})
        assert len(exc_info.value.errors) == 2

    def test_create_with_dimensions(self, product_service):
        product_service.create_product(
            {
                "sku": "TABLE-002",
                "name": "Side Table",
                "weight": 8,
                "dimensions": {"height": 50, "width": 40, "depth": 40},
            }
        )
        assert product_service.get_effective_dimensions("TABLE-002").height == 50


class TestUpdateProduct:
    def test_update_fields(self, product_service, simple_products):
        updated = product_service.update_product("CHAIR-001", {"name": "Armchair", "weight": 7})
        assert updated.name == "Armchair"
        assert product_service.get_effective_weight("CHAIR-001") == 7

    def test_unknown_product(self, product_service):
        with pytest.raises(ProductNotFound):
            product_service.update_product("MISSING-001", {"weight": 1})

    def test_rename_to_existing_name(self, product_service, simple_products):
        with pytest.raises(ValidationError):
            product_service.update_product("CHAIR-001", {"name": "table"})

    def test_keep_own_name(self, product_service, simple_products):
        product_service.update_product("CHAIR-001", {"name": "Chair", "weight": 6})

    def test_make_composite_while_weight_set(self, product_service, simple_products):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.update_product("CHAIR-001", {"is_composite": True})
        assert exc_info.value.rule == "composite_weight_rule"

        product_service.update_product("CHAIR-001", {"is_composite": True, "weight": None})
        assert product_service.get_product("CHAIR-001").is_composite

    def test_cannot_disable_composite_with_items(self, product_service, dining_set):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.update_product("DINING-SET-001", {"is_composite": False})
        assert "2 composition items exist" in str(exc_info.value)
        assert exc_info.value.rule == "composite_flag_constraint"

    def test_cannot_disable_variations_with_combinations(self, product_service, variable_shirt):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.update_product("T-SHIRT-001", {"has_variation": False})
        assert "2 variation combinations exist" in str(exc_info.value)

    def test_sku_cannot_change(self, product_service, simple_products):
        with pytest.raises(ValidationError):
            product_service.update_product("CHAIR-001", {"sku": "CHAIR-009"})


class TestDeleteProduct:
    def test_delete_unused_product(self, product_service, simple_products):
        product_service.delete_product("LAMP-001")
        assert product_service.get_product("LAMP-001") is None

    def test_delete_used_child_blocked(self, product_service, dining_set):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.delete_product("CHAIR-001")
        assert "used in 1 composition(s)" in str(exc_info.value)
        assert exc_info.value.rule == "referential_integrity"

    def test_delete_variation_referenced_product_blocked(
        self, product_service, composition_service, dining_set, variable_shirt
    ):
        red_large = variable_shirt["items"]["red_large"]
        composition_service.create_composition_item(
            {"parent_sku": "DINING-SET-001", "child_sku": f"T-SHIRT-001#{red_large.uuid}"}
        )
        with pytest.raises(BusinessRuleError):
            product_service.delete_product("T-SHIRT-001", cascade=True)

    def test_delete_with_own_data_requires_cascade(self, product_service, dining_set):
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.delete_product("DINING-SET-001")
        assert exc_info.value.rule == "dependent_data"

        product_service.delete_product("DINING-SET-001", cascade=True)
        assert product_service.get_product("DINING-SET-001") is None
        assert product_service.composition_item_repository.count() == 0
        # Children are untouched
        assert product_service.get_product("CHAIR-001") is not None

    def test_cascade_removes_variations(self, product_service, variable_shirt):
        product_service.delete_product("T-SHIRT-001", cascade=True)
        assert ProductVariationItemRepository().count_by_product("T-SHIRT-001") == 0

    def test_delete_unknown(self, product_service):
        with pytest.raises(ProductNotFound):
            product_service.delete_product("MISSING-001")


class TestProductQueries:
    def test_effective_weight(self, product_service, dining_set):
        assert product_service.get_effective_weight("DINING-SET-001") == 40
        assert product_service.get_effective_weight("CHAIR-001") == 5

    def test_effective_weight_unset(self, product_service):
        product_service.create_product({"sku": "MYSTERY-001", "name": "Mystery"})
        assert product_service.get_effective_weight("MYSTERY-001") is None

    def test_search_and_types(self, product_service, dining_set, variable_shirt):
        assert [p.sku for p in product_service.search_products("chair")] == ["CHAIR-001"]
        assert [p.sku for p in product_service.get_products_by_type(is_composite=True)] == ["DINING-SET-001"]
        eligible = {p.sku for p in product_service.get_composition_eligible_products()}
        assert "T-SHIRT-001" not in eligible
        assert len(product_service.get_all_products()) == 5

    def test_stats(self, product_service, dining_set, variable_shirt):
        product_service.create_product(
            {"sku": "GIFT-SET-001", "name": "Gift Set", "is_composite": True, "has_variation": True}
        )
        assert product_service.get_product_stats() == {
            "total": 6,
            "simple": 3,
            "with_variations": 1,
            "composite": 1,
            "composite_with_variations": 1,
        }

    def test_constraints(self, product_service, dining_set):
        product_service.validate_product_constraints("DINING-SET-001")

        product_service.create_product({"sku": "EMPTY-SET", "name": "Empty Set", "is_composite": True})
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.validate_product_constraints("EMPTY-SET")
        assert "at least one composition item" in str(exc_info.value)

        product_service.create_product({"sku": "BARE-001", "name": "Bare", "has_variation": True})
        with pytest.raises(BusinessRuleError) as exc_info:
            product_service.validate_product_constraints("BARE-001")
        assert exc_info.value.rule == "variation_required"

    def test_composition_usage(self, product_service, dining_set, variable_shirt):
        assert product_service.can_be_used_in_composition("CHAIR-001")
        assert not product_service.can_be_used_in_composition("T-SHIRT-001")
        assert not product_service.can_be_used_in_composition("MISSING-001")
        assert product_service.get_dependent_products("CHAIR-001") == ["DINING-SET-001"]
        assert product_service.get_product_dependencies("DINING-SET-001") == ["CHAIR-001", "TABLE-001"]


class TestValidateStateTransition:
    """validate_state_transition works on plain objects only."""

    def _product(self, **flags):
        return Product(sku="SET-001", name="Set", **flags)

    def test_enable_variations(self):
        result = ProductService.validate_state_transition(
            self._product(is_composite=True, has_variation=False),
            {"has_variation": True},
            [CompositionItem(parent_sku="SET-001", child_sku="CHAIR-001")],
            [],
        )
        assert result == {
            "valid": True,
            "errors": [],
            "warnings": [],
            "transition_type": "enable-variations",
        }

    def test_enable_composite_with_weight(self):
        result = ProductService.validate_state_transition(
            self._product(is_composite=False, has_variation=False, weight=3),
            {"is_composite": True},
            [],
            [],
        )
        assert result["valid"] is False
        assert result["errors"] == [COMPOSITE_WEIGHT_MESSAGE]
        assert result["transition_type"] == "enable-composite"

    def test_enable_composite_clearing_weight(self):
        result = ProductService.validate_state_transition(
            self._product(is_composite=False, has_variation=False, weight=3),
            {"is_composite": True, "weight": None},
            [],
            [],
        )
        assert result["valid"] is True

    def test_disable_composite_warns(self):
        result = ProductService.validate_state_transition(
            self._product(is_composite=True, has_variation=True),
            {"is_composite": False, "has_variation": False},
            [CompositionItem(parent_sku="SET-001", child_sku="CHAIR-001")],
            [ProductVariationItem(product_sku="SET-001", selections={})],
        )
        assert result["transition_type"] == "disable-composite"
        assert result["warnings"] == [
            "Disabling composite will permanently delete all composition data",
            "Disabling variations will remove 1 variation combination(s)",
        ]

    def test_no_change(self):
        result = ProductService.validate_state_transition(
            self._product(is_composite=False, has_variation=False), {}, [], []
        )
        assert result["transition_type"] is None
        assert result["valid"] is True
