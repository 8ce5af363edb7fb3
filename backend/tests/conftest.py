"""
conftest.py: Shared pytest fixtures for the quote costing test suite.

No database or external service fixtures are defined here.  Services run
against the in-memory gateways in ``fakes.py``; the API tests swap those in
through FastAPI dependency overrides.

Import-path bootstrapping:
    ``backend/`` is inserted into sys.path so that all ``app.*`` imports
    resolve regardless of where pytest is invoked, and ``backend/tests/`` so
    that ``fakes`` is importable from every test module.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` and ``backend/tests/`` are on the import path.
# ---------------------------------------------------------------------------
_TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
_BACKEND_DIR = os.path.dirname(_TESTS_DIR)
for _path in (_BACKEND_DIR, _TESTS_DIR):
    if _path not in sys.path:
        sys.path.insert(0, _path)


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------

@pytest.fixture
def catalog():
    """
    Catalog with one configured product and its component / labour data.

    Product 1 "Cabinet Door":
      BOM  = Hinge (component 10) × 2 @ 5.00, supplier offer 100
      BOL  = Assembly (job 7), hourly 120/h, 30 minutes, quantity 1
    Component 10 has three supplier offers priced 10 / 7 / 12.
    Collection 50 bundles two components.
    """
    from fakes import FakeCatalog
    from app.models.costing_types import (
        BomRow,
        CollectionRow,
        ComponentRecord,
        LaborRow,
        PayType,
        ProductImage,
        ProductRecord,
        SupplierOffer,
        TimeUnit,
    )

    cat = FakeCatalog()
    cat.products[1] = ProductRecord(product_id=1, internal_code="CAB-DOOR", name="Cabinet Door")
    cat.products[2] = ProductRecord(product_id=2, internal_code="EMPTY", name="Empty Product")
    cat.components[10] = ComponentRecord(component_id=10, internal_code="HNG-35", description="Hinge")
    cat.components[11] = ComponentRecord(component_id=11, internal_code="SCR-4X16", description="Screw 4x16")
    cat.components[12] = ComponentRecord(component_id=12, internal_code="HDL-128", description=None)
    cat.effective_bom[1] = [
        BomRow(component_id=10, quantity_required=2, unit_cost=5.0, supplier_component_id=100),
    ]
    cat.labor[1] = [
        LaborRow(
            job_id=7,
            job_name="Assembly",
            pay_type=PayType.HOURLY,
            time_required=30,
            time_unit=TimeUnit.MINUTES,
            quantity=1,
            hourly_rate=120.0,
        ),
    ]
    cat.offers[10] = [
        SupplierOffer(supplier_component_id=100, component_id=10, supplier="Acme", price=10.0),
        SupplierOffer(supplier_component_id=101, component_id=10, supplier="Bolt Co", price=7.0),
        SupplierOffer(supplier_component_id=102, component_id=10, supplier="Hardware Ltd", price=12.0),
    ]
    cat.images[1] = ProductImage(url="https://cdn.example.com/products/cab-door.jpg", original_name="cab-door.jpg")
    cat.collections[50] = [
        CollectionRow(component_id=11, quantity_required=8, price=0.05, supplier_component_id=110),
        CollectionRow(component_id=12, quantity_required=1, price=3.2, description="Handle 128mm"),
    ]
    return cat


@pytest.fixture
def store():
    from fakes import FakeQuoteStore
    return FakeQuoteStore()


@pytest.fixture
def attachment_gateway():
    from fakes import FakeAttachmentGateway
    return FakeAttachmentGateway()


@pytest.fixture
def attachments(attachment_gateway):
    """AttachmentService with the HEAD probe disabled (no network)."""
    from app.services.attachment_service import AttachmentService
    return AttachmentService(attachment_gateway, probe_enabled=False)


@pytest.fixture
def lifecycle(store, catalog, attachments):
    from app.services.item_lifecycle import ItemLifecycleManager
    return ItemLifecycleManager(store=store, catalog=catalog, attachments=attachments)


@pytest.fixture
def quote(store):
    """A persisted draft quote Q-1001."""
    from fakes import run
    return run(store.create_quote("Q-1001", "Harbour Kitchens", "draft"))


# ---------------------------------------------------------------------------
# Perf tracker isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_tracker():
    from app.services.perf_monitor import tracker
    tracker.reset()
    yield
    tracker.reset()
