"""
Catalog tests: categories, products and warehouses.
"""

import pytest

from dukkan.extensions import db
from dukkan.models import Category, Inventory, InventoryTransaction, Product
from dukkan.services import catalog_service


class TestCategories:

    def test_delete_in_use_category_conflicts(self, auth_client, category, product):
        resp = auth_client.delete(f"/api/categories/{category.id}")
        assert resp.status_code == 409
        assert db.session.get(Category, category.id) is not None

    def test_delete_with_reassignment(self, auth_client, category, product):
        other = catalog_service.create_category({"name": "Misc"})
        category_id, other_id, product_id = category.id, other.id, product.id

        resp = auth_client.delete(f"/api/categories/{category_id}?reassignTo={other_id}")
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["movedProducts"] == 1

        assert db.session.get(Category, category_id) is None
        assert db.session.query(Product.category_id).filter(Product.id == product_id).scalar() == other_id

    def test_reassign_to_itself_rejected(self, auth_client, category, product):
        resp = auth_client.delete(f"/api/categories/{category.id}?reassignTo={category.id}")
        assert resp.status_code == 400

    def test_delete_unused_category(self, auth_client, db_session):
        empty = catalog_service.create_category({"name": "Empty"})
        resp = auth_client.delete(f"/api/categories/{empty.id}")
        assert resp.status_code == 200

    def test_only_one_default(self, auth_client, category):
        resp = auth_client.post("/api/categories", json={"name": "New default", "isDefault": True})
        assert resp.status_code == 201

        defaults = db.session.query(Category).filter(Category.is_default.is_(True)).all()
        assert [c.name for c in defaults] == ["New default"]


class TestProducts:

    def test_create_with_initial_quantity(self, auth_client, warehouse, category):
        resp = auth_client.post("/api/products", json={
            "name": "Steel bar",
            "code": "P-100",
            "sellPrice1": 120,
            "sellPrice2": 110,
            "initialQuantity": 25,
        })
        assert resp.status_code == 201, resp.get_json()
        data = resp.get_json()
        assert data["sellPrice2"] == 110
        assert data["categoryId"] == category.id

        inv = auth_client.get(f"/api/inventory/{data['id']}/{warehouse.id}").get_json()
        assert inv["quantity"] == 25

    def test_duplicate_code_conflicts(self, auth_client, product):
        resp = auth_client.post("/api/products", json={"name": "Copy", "code": "P-001"})
        assert resp.status_code == 409

    def test_missing_name_rejected(self, auth_client, db_session):
        resp = auth_client.post("/api/products", json={"code": "X-1"})
        assert resp.status_code == 400

    def test_negative_price_rejected(self, auth_client, db_session):
        resp = auth_client.post("/api/products", json={"name": "Bad", "code": "X-2", "costPrice": -1})
        assert resp.status_code == 400

    def test_search(self, auth_client, product):
        rows = auth_client.get("/api/products/search?query=Cement").get_json()
        assert [r["code"] for r in rows] == ["P-001"]

    def test_delete_zeroes_stock_then_removes(self, auth_client, stocked_product, warehouse):
        product_id, warehouse_id = stocked_product.id, warehouse.id

        resp = auth_client.delete(f"/api/products/{product_id}")
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["zeroed"] == [{"warehouseId": warehouse_id, "removed": 100}]

        assert db.session.get(Product, product_id) is None
        assert db.session.query(Inventory).filter_by(product_id=product_id).count() == 0

    def test_delete_keeps_stock_history(self, auth_client, stocked_product, warehouse):
        product_id, warehouse_id = stocked_product.id, warehouse.id
        assert db.session.query(InventoryTransaction).filter_by(product_id=product_id).count() == 1

        assert auth_client.delete(f"/api/products/{product_id}").status_code == 200

        history = (
            db.session.query(InventoryTransaction)
            .filter_by(warehouse_id=warehouse_id)
            .order_by(InventoryTransaction.id.asc())
            .all()
        )
        assert [(m.product_id, m.type, m.quantity) for m in history] == [
            (None, "adjustment", 100),
            (None, "adjustment", -100),
        ]
        assert "P-001" in history[1].notes

    def test_delete_product_on_invoice_conflicts_after_zeroing(
        self, auth_client, stocked_product, warehouse, customer
    ):
        product_id, warehouse_id = stocked_product.id, warehouse.id
        auth_client.post("/api/invoices", json={
            "invoice": {"accountId": customer.id, "warehouseId": warehouse_id},
            "details": [{"productId": product_id, "quantity": 1, "unitPrice": 15}],
        })

        resp = auth_client.delete(f"/api/products/{product_id}")
        assert resp.status_code == 409

        assert db.session.get(Product, product_id) is not None
        qty = db.session.query(Inventory.quantity).filter_by(
            product_id=product_id, warehouse_id=warehouse_id
        ).scalar()
        assert qty == 0


class TestWarehouses:

    def test_crud(self, auth_client, db_session):
        created = auth_client.post("/api/warehouses", json={"name": "Branch", "location": "Giza"})
        assert created.status_code == 201
        warehouse_id = created.get_json()["id"]

        updated = auth_client.put(f"/api/warehouses/{warehouse_id}", json={"manager": "Omar"})
        assert updated.get_json()["manager"] == "Omar"

        assert auth_client.delete(f"/api/warehouses/{warehouse_id}").status_code == 200
        assert auth_client.get(f"/api/warehouses/{warehouse_id}").status_code == 404

    def test_warehouse_with_stock_history_is_kept(self, auth_client, stocked_product, warehouse):
        resp = auth_client.delete(f"/api/warehouses/{warehouse.id}")
        assert resp.status_code == 409

    def test_unknown_field_rejected(self, auth_client, db_session):
        resp = auth_client.post("/api/warehouses", json={"name": "X", "capacity": 10})
        assert resp.status_code == 400


@pytest.mark.parametrize("path", ["/api/categories", "/api/products", "/api/warehouses"])
def test_lists_require_auth(client, db_session, path):
    assert client.get(path).status_code == 401
