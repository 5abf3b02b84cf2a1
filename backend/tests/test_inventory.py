"""
Inventory tests: counts, adjustments, transfers and low-stock reporting.
"""

import pytest

from dukkan.services import inventory_service


def post_inventory(client, product, warehouse, quantity, is_count):
    return client.post("/api/inventory", json={
        "productId": product.id,
        "warehouseId": warehouse.id,
        "quantity": quantity,
        "isCount": is_count,
    })


class TestCounts:

    def test_count_is_idempotent(self, auth_client, product, warehouse):
        first = post_inventory(auth_client, product, warehouse, 50, True)
        assert first.status_code == 200, first.get_json()
        assert first.get_json()["quantity"] == 50
        assert first.get_json()["appliedDelta"] == 50

        second = post_inventory(auth_client, product, warehouse, 50, True)
        assert second.status_code == 200
        assert second.get_json()["quantity"] == 50
        assert second.get_json()["appliedDelta"] == 0

        movements = inventory_service.list_inventory_transactions(product_id=product.id)
        assert len(movements) == 1
        assert movements[0].type == "adjustment"

    def test_count_replaces_quantity(self, auth_client, stocked_product, warehouse):
        resp = post_inventory(auth_client, stocked_product, warehouse, 40, True)
        assert resp.get_json()["appliedDelta"] == -60
        assert inventory_service.current_quantity(stocked_product.id, warehouse.id) == 40

    def test_negative_count_rejected(self, auth_client, product, warehouse):
        resp = post_inventory(auth_client, product, warehouse, -1, True)
        assert resp.status_code == 400


class TestAdjustments:

    def test_adjustment_is_a_delta(self, auth_client, stocked_product, warehouse):
        resp = post_inventory(auth_client, stocked_product, warehouse, -5, False)
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 95

        resp = post_inventory(auth_client, stocked_product, warehouse, 7, False)
        assert resp.get_json()["quantity"] == 102

    def test_zero_adjustment_rejected(self, auth_client, stocked_product, warehouse):
        resp = post_inventory(auth_client, stocked_product, warehouse, 0, False)
        assert resp.status_code == 400

    def test_unknown_product_is_404(self, auth_client, warehouse):
        resp = auth_client.post("/api/inventory", json={
            "productId": 999999, "warehouseId": warehouse.id, "quantity": 1,
        })
        assert resp.status_code == 404


class TestQueries:

    def test_get_row(self, auth_client, stocked_product, warehouse):
        resp = auth_client.get(f"/api/inventory/{stocked_product.id}/{warehouse.id}")
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 100

    def test_missing_row_is_404(self, auth_client, product, warehouse):
        resp = auth_client.get(f"/api/inventory/{product.id}/{warehouse.id}")
        assert resp.status_code == 404

    def test_list_includes_value(self, auth_client, stocked_product, warehouse):
        rows = auth_client.get(f"/api/inventory?warehouseId={warehouse.id}").get_json()
        assert len(rows) == 1
        assert rows[0]["productCode"] == "P-001"
        assert rows[0]["value"] == pytest.approx(1000.0)

    def test_low_stock(self, auth_client, product, warehouse):
        auth_client.patch(f"/api/products/{product.id}", json={"minStock": 10})
        post_inventory(auth_client, product, warehouse, 5, True)

        rows = auth_client.get("/api/inventory/low-stock").get_json()
        assert [r["id"] for r in rows] == [product.id]
        assert rows[0]["quantity"] == 5


class TestTransfers:

    def test_transfer_moves_stock(self, auth_client, stocked_product, warehouse, second_warehouse):
        resp = auth_client.post("/api/inventory/transfer", json={
            "productId": stocked_product.id,
            "fromWarehouseId": warehouse.id,
            "toWarehouseId": second_warehouse.id,
            "quantity": 30,
        })
        assert resp.status_code == 200, resp.get_json()
        data = resp.get_json()
        assert data["from"]["quantity"] == 70
        assert data["to"]["quantity"] == 30

        movements = inventory_service.list_inventory_transactions(product_id=stocked_product.id)
        assert sum(1 for m in movements if m.type == "transfer") == 2

    def test_transfer_to_same_warehouse_rejected(self, auth_client, stocked_product, warehouse):
        resp = auth_client.post("/api/inventory/transfer", json={
            "productId": stocked_product.id,
            "fromWarehouseId": warehouse.id,
            "toWarehouseId": warehouse.id,
            "quantity": 1,
        })
        assert resp.status_code == 400
