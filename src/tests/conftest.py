"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base
from src.services.database import get_session_factory
from src.utils.config import reset_config


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default limits."""
    monkeypatch.delenv("CATALOG_MAX_COMPOSITION_DEPTH", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def product_service(test_db):
    from src.services.product_service import ProductService

    return ProductService()


@pytest.fixture
def composition_service(test_db):
    from src.services.composition_service import CompositionService

    return CompositionService()


@pytest.fixture
def variation_service(test_db):
    from src.services.variation_service import VariationService

    return VariationService()


@pytest.fixture
def simple_products(product_service):
    """Chair (5), table (20) and lamp (2.5) - plain products with weights."""
    return [
        product_service.create_product({"sku": "CHAIR-001", "name": "Chair", "weight": 5}),
        product_service.create_product({"sku": "TABLE-001", "name": "Table", "weight": 20}),
        product_service.create_product({"sku": "LAMP-001", "name": "Desk Lamp", "weight": 2.5}),
    ]


@pytest.fixture
def dining_set(product_service, composition_service, simple_products):
    """Composite DINING-SET-001 = 4 x CHAIR-001 + 1 x TABLE-001 (weight 40)."""
    product = product_service.create_product(
        {"sku": "DINING-SET-001", "name": "Dining Set", "is_composite": True}
    )
    composition_service.create_composition_item(
        {"parent_sku": "DINING-SET-001", "child_sku": "CHAIR-001", "quantity": 4}
    )
    composition_service.create_composition_item(
        {"parent_sku": "DINING-SET-001", "child_sku": "TABLE-001", "quantity": 1}
    )
    return product


@pytest.fixture
def variable_shirt(product_service, test_db):
    """Variable T-SHIRT-001 (weight 0.3) with Color x Size combinations."""
    from src.services.repositories import (
        ProductVariationItemRepository,
        VariationRepository,
        VariationTypeRepository,
    )

    color = VariationTypeRepository().create({"name": "Color"})
    size = VariationTypeRepository().create({"name": "Size", "modifies_weight": True})
    red = VariationRepository().create({"variation_type_id": color.uuid, "name": "Red"})
    blue = VariationRepository().create({"variation_type_id": color.uuid, "name": "Blue"})
    large = VariationRepository().create({"variation_type_id": size.uuid, "name": "Large"})

    product = product_service.create_product(
        {"sku": "T-SHIRT-001", "name": "T-Shirt", "weight": 0.3, "has_variation": True}
    )
    repository = ProductVariationItemRepository()
    red_large = repository.create(
        {
            "product_sku": "T-SHIRT-001",
            "selections": {color.uuid: red.uuid, size.uuid: large.uuid},
            "name": "Red / Large",
            "weight_override": 0.4,
        }
    )
    blue_large = repository.create(
        {
            "product_sku": "T-SHIRT-001",
            "selections": {color.uuid: blue.uuid, size.uuid: large.uuid},
            "name": "Blue / Large",
        }
    )
    return {
        "product": product,
        "types": {"color": color, "size": size},
        "variations": {"red": red, "blue": blue, "large": large},
        "items": {"red_large": red_large, "blue_large": blue_large},
    }


@pytest.fixture
def variable_bundle(product_service, variation_service, composition_service, simple_products):
    """Composite+variable BUNDLE-001: "Variation 1" = 2 CHAIR, "Variation 2" = 3 CHAIR + 1 LAMP."""
    product = product_service.create_product(
        {"sku": "BUNDLE-001", "name": "Bundle", "is_composite": True, "has_variation": True}
    )
    first = variation_service.create_product_variation("BUNDLE-001", {})
    second = variation_service.create_product_variation("BUNDLE-001", {})
    composition_service.create_composite_variation_composition(
        "BUNDLE-001", first.uuid, [{"child_sku": "CHAIR-001", "quantity": 2}]
    )
    composition_service.create_composite_variation_composition(
        "BUNDLE-001",
        second.uuid,
        [{"child_sku": "CHAIR-001", "quantity": 3}, {"child_sku": "LAMP-001", "quantity": 1}],
    )
    return {"product": product, "variations": [first, second]}
