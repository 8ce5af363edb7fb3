"""
test_quote_routes.py: HTTP surface of the quote and catalog routers.

The app's per-request dependencies are overridden with services built on the
in-memory gateways, so no database is needed.  Covers request validation,
the error → status mapping and the main command round trips.
"""

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_catalog_resolver, get_lifecycle, get_supplier_resolver
from app.main import app
from app.services.catalog_resolver import CatalogResolver
from app.services.item_lifecycle import ItemLifecycleManager
from app.services.supplier_pricing import SupplierPriceResolver


@pytest.fixture
def client(store, catalog, attachments):
    app.dependency_overrides[get_lifecycle] = lambda: ItemLifecycleManager(
        store=store, catalog=catalog, attachments=attachments
    )
    app.dependency_overrides[get_catalog_resolver] = lambda: CatalogResolver(catalog)
    app.dependency_overrides[get_supplier_resolver] = lambda: SupplierPriceResolver(catalog)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def quote_id(client):
    resp = client.post("/api/quotes", json={"quote_number": "Q-2001", "customer_name": "Oak & Co"})
    assert resp.status_code == 201
    return resp.json()["id"]


def _product_item(client, quote_id, qty=3):
    resp = client.post(f"/api/quotes/{quote_id}/items/product", json={"product_id": 1, "qty": qty})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Quotes / items
# ---------------------------------------------------------------------------

class TestQuoteRoutes:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "active"

    def test_duplicate_quote_number_is_422(self, client, quote_id):
        resp = client.post("/api/quotes", json={"quote_number": "Q-2001"})
        assert resp.status_code == 422

    def test_unknown_quote_is_404(self, client):
        resp = client.get("/api/quotes/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["detail"]["context"]["quote_id"] == "does-not-exist"

    def test_product_item_and_tree(self, client, quote_id):
        body = _product_item(client, quote_id)
        assert [l["line_type"] for l in body["lines"]] == ["component", "labor"]
        assert body["item"]["unit_price"] == 0.0

        tree = client.get(f"/api/quotes/{quote_id}").json()
        assert len(tree["items"]) == 1
        assert len(tree["items"][0]["clusters"][0]["lines"]) == 2

    def test_blank_manual_description_is_422(self, client, quote_id):
        resp = client.post(f"/api/quotes/{quote_id}/items/manual", json={"description": "  "})
        assert resp.status_code == 422

    def test_text_item_rejects_priced_type(self, client, quote_id):
        resp = client.post(f"/api/quotes/{quote_id}/items/text", json={"description": "x", "item_type": "priced"})
        assert resp.status_code == 422

    def test_explosion_failure_is_502(self, client, quote_id, catalog, store):
        catalog.fail_after["fetch_product_labor"] = 0
        resp = client.post(f"/api/quotes/{quote_id}/items/product", json={"product_id": 1})
        assert resp.status_code == 502
        assert store.items == {}

    def test_move_and_reorder_failure(self, client, quote_id, store):
        ids = [
            client.post(f"/api/quotes/{quote_id}/items/manual", json={"description": d}).json()["id"]
            for d in ("A", "B", "C")
        ]
        resp = client.post(f"/api/quote-items/{ids[1]}/move", json={"direction": "up"})
        assert [i["id"] for i in resp.json()] == [ids[1], ids[0], ids[2]]

        store.fail_after["reorder_quote_items"] = store.calls["reorder_quote_items"]
        resp = client.put(f"/api/quotes/{quote_id}/items/order", json={"item_ids": ids})
        assert resp.status_code == 409

    def test_duplicate_item(self, client, quote_id):
        item = _product_item(client, quote_id)["item"]
        resp = client.post(f"/api/quote-items/{item['id']}/duplicate")
        assert resp.status_code == 201
        body = resp.json()
        assert body["item"]["id"] != item["id"]
        assert body["item"]["position"] == 1
        assert body["attachments_copied"] == 1

    def test_copy_quote(self, client, quote_id):
        _product_item(client, quote_id)
        resp = client.post(f"/api/quotes/{quote_id}/copy", json={"quote_number": "Q-2002"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["id"] != quote_id
        assert body["quote_number"] == "Q-2002"
        assert len(body["items"]) == 1
        assert len(body["items"][0]["clusters"][0]["lines"]) == 2

    def test_metrics_reports_operations(self, client, quote_id):
        _product_item(client, quote_id)
        body = client.get("/metrics").json()
        assert body["uptime_seconds"] >= 0
        assert body["calls_by_operation"]["CostLineFactory.explode_product"] == 1

    def test_delete_item(self, client, quote_id, store):
        item = _product_item(client, quote_id)["item"]
        assert client.delete(f"/api/quote-items/{item['id']}").status_code == 204
        assert store.items == {}


# ---------------------------------------------------------------------------
# Clusters / lines
# ---------------------------------------------------------------------------

class TestClusterRoutes:

    def test_markup_summary_and_propagate(self, client, quote_id):
        cluster_id = _product_item(client, quote_id)["cluster"]["id"]
        resp = client.patch(f"/api/clusters/{cluster_id}", json={"markup": {"type": "percentage", "value": 20}})
        assert resp.json()["markup"] == {"type": "percentage", "value": 20.0}

        summary = client.get(f"/api/clusters/{cluster_id}/summary").json()
        assert summary["subtotal"] == pytest.approx(210.0)
        assert summary["total"] == pytest.approx(252.0)

        body = client.post(f"/api/clusters/{cluster_id}/propagate").json()
        assert body["item"]["unit_price"] == pytest.approx(252.0)

    def test_markup_type_mismatch_is_422(self, client, quote_id):
        cluster_id = _product_item(client, quote_id)["cluster"]["id"]
        resp = client.patch(f"/api/clusters/{cluster_id}", json={"markup": {"type": "fixed", "value": 50}})
        assert resp.status_code == 422

        switched = client.post(f"/api/clusters/{cluster_id}/markup-type", json={"markup_type": "fixed"}).json()
        assert switched["markup"] == {"type": "fixed", "value": 0.0}

    def test_ensure_cluster_without_body(self, client, quote_id):
        item_id = client.post(f"/api/quotes/{quote_id}/items/manual", json={"description": "Misc"}).json()["id"]
        first = client.post(f"/api/quote-items/{item_id}/clusters")
        second = client.post(f"/api/quote-items/{item_id}/clusters", json={"name": "Ignored"})
        assert first.status_code == 200
        assert first.json()["id"] == second.json()["id"]

    def test_ensure_cluster_on_heading_is_422(self, client, quote_id):
        item_id = client.post(f"/api/quotes/{quote_id}/items/text", json={"description": "Doors"}).json()["id"]
        assert client.post(f"/api/quote-items/{item_id}/clusters").status_code == 422

    def test_add_lines_by_entry_type(self, client, quote_id):
        item_id = client.post(f"/api/quotes/{quote_id}/items/manual", json={"description": "Misc"}).json()["id"]
        cluster_id = client.post(f"/api/quote-items/{item_id}/clusters").json()["id"]

        manual = client.post(f"/api/clusters/{cluster_id}/lines",
                             json={"entry_type": "manual", "description": "Freight", "unit_cost": 30})
        component = client.post(f"/api/clusters/{cluster_id}/lines",
                                json={"entry_type": "component", "component_id": 10, "qty": 2})
        collection = client.post(f"/api/clusters/{cluster_id}/lines",
                                 json={"entry_type": "collection", "collection_id": 404})
        assert manual.status_code == component.status_code == collection.status_code == 201
        assert component.json()["lines"][0]["unit_cost"] == pytest.approx(7.0)
        assert collection.json()["notices"] == ["Collection has no items"]
        assert len(collection.json()["cluster"]["lines"]) == 2

    def test_unknown_entry_type_is_422(self, client, quote_id):
        item_id = client.post(f"/api/quotes/{quote_id}/items/manual", json={"description": "Misc"}).json()["id"]
        cluster_id = client.post(f"/api/quote-items/{item_id}/clusters").json()["id"]
        resp = client.post(f"/api/clusters/{cluster_id}/lines", json={"entry_type": "labor", "qty": 1})
        assert resp.status_code == 422

    def test_line_update_and_delete(self, client, quote_id):
        line = _product_item(client, quote_id)["lines"][0]
        resp = client.patch(f"/api/cluster-lines/{line['id']}", json={"qty": 10})
        assert resp.json()["line_total"] == pytest.approx(50.0)
        assert client.delete(f"/api/cluster-lines/{line['id']}").status_code == 204
        assert client.delete(f"/api/cluster-lines/{line['id']}").status_code == 404


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class TestCatalogRoutes:

    def test_offers_flag_lowest(self, client):
        body = client.get("/api/catalog/components/10/offers").json()
        assert body["default_supplier_component_id"] == 101
        assert [o["is_lowest"] for o in body["offers"]] == [False, True, False]

    def test_effective_bom(self, client):
        rows = client.get("/api/catalog/products/1/effective-bom", params={"option": "FINISH:OAK"}).json()
        assert rows[0]["component_id"] == 10

    def test_bad_option_is_422(self, client):
        assert client.get("/api/catalog/products/1/effective-bom", params={"option": "FINISH"}).status_code == 422

    def test_unknown_product_is_404(self, client):
        assert client.get("/api/catalog/products/999/labor").status_code == 404

    def test_labour_rows(self, client):
        (row,) = client.get("/api/catalog/products/1/labor").json()
        assert row["pay_type"] == "hourly"
        assert row["time_unit"] == "minutes"
