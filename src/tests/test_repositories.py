"""
Tests for the repository layer.

Tests cover:
- CRUD through BaseRepository with and without a caller session
- Product lookups by SKU, name and type
- Composition item queries by parent key, scope prefix and child product
- Variation combination uniqueness and ordering
- Backup lookups and retention helpers
- restore() keeping ids and timestamps
"""

from datetime import timedelta

import pytest

from src.services import database
from src.services.composition_scope import VariationScope
from src.services.exceptions import ProductNotFound, RecordNotFound, StorageError, ValidationError
from src.services.repositories import (
    CompositionItemRepository,
    MigrationBackupRepository,
    ProductRepository,
    ProductVariationItemRepository,
    VariationRepository,
    VariationTypeRepository,
)
from src.utils.datetime_utils import utc_now


@pytest.fixture
def products(test_db):
    repository = ProductRepository()
    repository.create({"sku": "CHAIR-001", "name": "Chair", "weight": 5})
    repository.create({"sku": "SET-001", "name": "Set", "is_composite": True})
    repository.create({"sku": "SHIRT-001", "name": "Shirt", "weight": 1, "has_variation": True})
    return repository


class TestProductRepository:
    def test_create_and_find_by_sku(self, products):
        chair = products.find_by_sku("CHAIR-001")
        assert chair.name == "Chair"
        assert products.find_by_uuid(chair.uuid).sku == "CHAIR-001"
        assert products.find_by_sku("MISSING") is None

    def test_duplicate_sku_rejected(self, products):
        with pytest.raises(ValidationError) as exc_info:
            products.create({"sku": "CHAIR-001", "name": "Another"})
        assert "already exists" in str(exc_info.value)

    def test_find_by_name_is_case_insensitive(self, products):
        assert products.find_by_name("  chair ").sku == "CHAIR-001"

    def test_find_by_type(self, products):
        assert [p.sku for p in products.find_composite()] == ["SET-001"]
        assert [p.sku for p in products.find_with_variations()] == ["SHIRT-001"]
        assert [p.sku for p in products.find_simple()] == ["CHAIR-001"]
        assert [p.sku for p in products.find_composition_eligible()] == ["CHAIR-001", "SET-001"]

    def test_search_matches_sku_and_name(self, products):
        assert [p.sku for p in products.search("shi")] == ["SHIRT-001"]
        assert len(products.search("")) == 3

    def test_update_by_sku(self, products):
        updated = products.update("CHAIR-001", {"weight": 6})
        assert updated.weight == 6
        assert products.find_by_sku("CHAIR-001").weight == 6

    def test_sku_is_immutable(self, products):
        with pytest.raises(ValidationError):
            products.update("CHAIR-001", {"sku": "CHAIR-002"})

    def test_update_unknown_product(self, products):
        with pytest.raises(ProductNotFound):
            products.update("MISSING", {"weight": 1})

    def test_dimensions_extra_field(self, products):
        products.update("CHAIR-001", {"dimensions": {"height": 1, "width": 2, "depth": 3}})
        assert products.find_by_sku("CHAIR-001").dimensions.depth == 3

    def test_database_errors_become_storage_errors(self, products):
        with pytest.raises(StorageError) as exc_info:
            # Foreign key to a product that does not exist
            ProductVariationItemRepository().create({"product_sku": "MISSING-001", "selections": {}})
        assert exc_info.value.operation == "create"

    def test_restore_fields_keeps_uuid_and_timestamps(self, products):
        snapshot = products.find_by_sku("CHAIR-001").to_dict()
        products.update("CHAIR-001", {"weight": 9, "name": "Renamed"})

        restored_repo = ProductRepository()
        restored_repo.restore_fields(snapshot)
        restored = restored_repo.find_by_sku("CHAIR-001")

        assert restored.name == "Chair"
        assert restored.weight == 5
        assert restored.uuid == snapshot["uuid"]
        assert restored.updated_at.isoformat() == snapshot["updated_at"]


class TestCompositionItemRepository:
    @pytest.fixture
    def items(self, test_db):
        repository = CompositionItemRepository()
        repository.create_batch(
            [
                {"parent_sku": "SET-001", "child_sku": "CHAIR-001", "quantity": 4},
                {"parent_sku": "SET-001", "child_sku": "TABLE-001", "quantity": 1},
                {"parent_sku": VariationScope("SET-001", "v1"), "child_sku": "CHAIR-001", "quantity": 2},
                {"parent_sku": "SET-0010", "child_sku": "SHIRT-001#red", "quantity": 3},
            ]
        )
        return repository

    def test_find_by_parent_accepts_scope(self, items):
        assert [i.child_sku for i in items.find_by_parent("SET-001")] == ["CHAIR-001", "TABLE-001"]
        scoped = items.find_by_parent(VariationScope("SET-001", "v1"))
        assert [(i.parent_sku, i.quantity) for i in scoped] == [("SET-001#v1", 2)]

    def test_find_by_product_scopes_does_not_match_similar_skus(self, items):
        found = items.find_by_product_scopes("SET-001")
        assert {i.parent_sku for i in found} == {"SET-001", "SET-001#v1"}

    def test_find_by_child_product_includes_variation_references(self, items):
        assert [i.parent_sku for i in items.find_by_child_product("SHIRT-001")] == ["SET-0010"]
        assert len(items.find_by_child_product("CHAIR-001")) == 2

    def test_counts_and_lookups(self, items):
        assert items.count_by_parent("SET-001") == 2
        assert items.count_by_child("CHAIR-001") == 2
        assert items.get_parents_using_child("CHAIR-001") == ["SET-001", "SET-001#v1"]
        assert items.get_children_of_parent("SET-001") == ["CHAIR-001", "TABLE-001"]
        assert items.is_used_as_child("TABLE-001")
        assert not items.has_composition_items("CHAIR-001")
        assert items.find_by_parent_and_child("SET-001", "TABLE-001").quantity == 1

    def test_grouped_by_parent(self, items):
        grouped = items.find_grouped_by_parent()
        assert list(grouped) == ["SET-001", "SET-001#v1", "SET-0010"]

    def test_invalid_row_rolls_back_batch(self, items):
        with pytest.raises(ValidationError):
            items.create_batch(
                [
                    {"parent_sku": "SET-002", "child_sku": "CHAIR-001", "quantity": 1},
                    {"parent_sku": "SET-002", "child_sku": "TABLE-001", "quantity": 0},
                ]
            )
        assert items.count_by_parent("SET-002") == 0

    def test_update_quantity_validates(self, items):
        item = items.find_by_parent("SET-001")[0]
        assert items.update_quantity(item.uuid, 6).quantity == 6
        with pytest.raises(ValidationError):
            items.update_quantity(item.uuid, -1)

    def test_delete_by_parent_prefix_leaves_plain_key(self, items):
        assert items.delete_by_parent_prefix("SET-001") == 1
        assert items.count_by_parent("SET-001") == 2
        assert items.count_by_parent("SET-0010") == 1

    def test_delete_helpers(self, items):
        assert items.delete_by_child("CHAIR-001") == 2
        assert items.delete_by_parent("SET-001") == 1
        assert items.count() == 1

    def test_copy_items(self, items):
        copied = items.copy_items("SET-001", "SET-002")
        assert [(i.parent_sku, i.child_sku) for i in copied] == [
            ("SET-002", "CHAIR-001"),
            ("SET-002", "TABLE-001"),
        ]

    def test_repository_weight_and_stats(self, items):
        assert items.calculate_composite_weight("SET-001", {"CHAIR-001": 5, "TABLE-001": 20}) == 40
        stats = items.get_composition_stats()
        assert stats["total_items"] == 4

    def test_validate_integrity(self, items):
        result = items.validate_integrity(["SET-001", "CHAIR-001", "TABLE-001"])
        assert not result["valid"]
        assert [i.parent_sku for i in result["orphaned_items"]] == ["SET-0010"]
        assert result["missing_children"] == ["SHIRT-001#red"]

    def test_restore_keeps_uuid(self, items):
        item = items.find_by_parent("SET-001")[0]
        snapshot = item.to_dict()
        items.delete(item.uuid)
        restored = items.restore(snapshot)

        assert restored.uuid == snapshot["uuid"]
        assert items.find_by_id(snapshot["uuid"]).quantity == 4

    def test_delete_unknown_item(self, items):
        with pytest.raises(RecordNotFound):
            items.delete("missing")


class TestVariationRepositories:
    def test_duplicate_combination_rejected(self, products):
        repository = ProductVariationItemRepository()
        repository.create({"product_sku": "SHIRT-001", "selections": {"color": "red"}})
        with pytest.raises(ValidationError):
            repository.create({"product_sku": "SHIRT-001", "selections": {"color": "red"}})

    def test_empty_selections_never_clash(self, products):
        repository = ProductVariationItemRepository()
        repository.create({"product_sku": "SET-001", "selections": {}, "name": "Variation 1"})
        repository.create({"product_sku": "SET-001", "selections": {}, "name": "Variation 2"})
        variations = repository.find_by_product("SET-001")
        assert [v.sort_order for v in variations] == [0, 1]
        assert repository.count_by_product("SET-001") == 2

    def test_generate_and_create_combinations(self, products):
        combinations = list(
            ProductVariationItemRepository.generate_combinations(
                ["color", "size"], {"color": ["red", "blue"], "size": ["s", "l"]}
            )
        )
        assert len(combinations) == 4
        assert combinations[0] == {"color": "red", "size": "s"}

        created = ProductVariationItemRepository().create_from_combinations(
            "SHIRT-001", combinations, weight_override=1.5
        )
        assert len(created) == 4
        assert all(item.weight_override == 1.5 for item in created)

    def test_find_by_variation_and_type(self, products):
        repository = ProductVariationItemRepository()
        repository.create({"product_sku": "SHIRT-001", "selections": {"color": "red", "size": "l"}})
        repository.create({"product_sku": "SHIRT-001", "selections": {"color": "blue"}})

        assert len(repository.find_by_variation("red")) == 1
        assert len(repository.find_by_variation_type("color")) == 2
        assert repository.find_by_selections("SHIRT-001", {"size": "l", "color": "red"}) is not None
        assert repository.delete_by_variation("blue") == 1

    def test_variation_type_names_unique(self, test_db):
        types = VariationTypeRepository()
        color = types.create({"name": "Color", "modifies_weight": False})
        size = types.create({"name": "Size", "modifies_weight": True})
        with pytest.raises(ValidationError):
            types.create({"name": "color"})

        assert types.name_exists("COLOR")
        assert not types.name_exists("Color", exclude_id=color.uuid)
        assert types.any_modify_weight([color.uuid, size.uuid])
        assert not types.any_modify_weight([color.uuid])

    def test_variation_names_unique_within_type(self, test_db):
        color = VariationTypeRepository().create({"name": "Color"})
        size = VariationTypeRepository().create({"name": "Size"})
        variations = VariationRepository()
        variations.create({"variation_type_id": color.uuid, "name": "Red"})
        variations.create({"variation_type_id": size.uuid, "name": "Red"})
        with pytest.raises(ValidationError):
            variations.create({"variation_type_id": color.uuid, "name": "red"})

        assert variations.count_by_variation_type(color.uuid) == 1
        assert set(variations.find_grouped_by_type()) == {color.uuid, size.uuid}


class TestMigrationBackupRepository:
    def _create(self, repository, backup_id, sku="SET-001", created_at=None):
        data = {
            "backup_id": backup_id,
            "product_sku": sku,
            "operation": "test",
            "backup_data": {"id": backup_id},
        }
        record = repository.create(data)
        if created_at is not None:
            with database.session_scope() as session:
                session.query(repository.model).filter_by(backup_id=backup_id).update(
                    {"created_at": created_at}
                )
        return record

    def test_find_by_product_newest_first(self, test_db):
        repository = MigrationBackupRepository()
        now = utc_now()
        self._create(repository, "b-old", created_at=now - timedelta(days=2))
        self._create(repository, "b-new", created_at=now)
        self._create(repository, "b-other", sku="OTHER-001")

        assert [r.backup_id for r in repository.find_by_product("SET-001")] == ["b-new", "b-old"]
        assert repository.find_by_backup_id("b-old").operation == "test"
        assert [r.backup_id for r in repository.find_created_before(now - timedelta(days=1))] == ["b-old"]

    def test_delete_by_backup_ids_and_date_range(self, test_db):
        repository = MigrationBackupRepository()
        self._create(repository, "b-1")
        self._create(repository, "b-2")

        date_range = repository.get_date_range()
        assert date_range["oldest"] <= date_range["newest"]
        assert repository.delete_by_backup_ids(["b-1", "missing"]) == 1
        assert repository.delete_by_backup_ids([]) == 0
        assert repository.count() == 1
