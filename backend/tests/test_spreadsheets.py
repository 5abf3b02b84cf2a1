"""
Excel export, template and import tests.
"""

import io

import openpyxl
import pytest

from dukkan.extensions import db
from dukkan.models import Account, Product
from dukkan.services import inventory_service
from dukkan.services.spreadsheet_service import ACCOUNT_HEADERS, PRODUCT_HEADERS, XLSX_MIMETYPE


def workbook_bytes(headers, rows):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def read_sheet(content):
    wb = openpyxl.load_workbook(io.BytesIO(content))
    return [list(row) for row in wb.active.iter_rows(values_only=True)]


def upload(client, entity, buffer):
    return client.post(
        f"/api/import/{entity}",
        data={"file": (buffer, f"{entity}.xlsx")},
        content_type="multipart/form-data",
    )


class TestExport:

    def test_products_export(self, auth_client, stocked_product):
        resp = auth_client.get("/api/export/products")
        assert resp.status_code == 200
        assert resp.mimetype == XLSX_MIMETYPE
        assert "attachment" in resp.headers["Content-Disposition"]

        rows = read_sheet(resp.data)
        assert rows[0] == PRODUCT_HEADERS
        assert rows[1][0] == "P-001"
        assert rows[1][-1] == 100

    def test_invoices_export_uses_labels(self, auth_client, customer, warehouse, stocked_product):
        auth_client.post("/api/invoices", json={
            "invoice": {"accountId": customer.id, "warehouseId": warehouse.id, "status": "posted"},
            "details": [{"productId": stocked_product.id, "quantity": 2, "unitPrice": 15}],
        })

        rows = read_sheet(auth_client.get("/api/export/invoices").data)
        assert len(rows) == 2
        assert "مبيعات" in rows[1]
        assert "معتمد" in rows[1]

    @pytest.mark.parametrize("entity", ["products", "accounts", "invoices", "transactions"])
    def test_templates(self, auth_client, entity):
        resp = auth_client.get(f"/api/export/templates/{entity}")
        assert resp.status_code == 200
        assert len(read_sheet(resp.data)) == 2

    def test_unknown_entity(self, auth_client):
        assert auth_client.get("/api/export/widgets").status_code == 400


class TestImport:

    def test_products_create_update_and_report_errors(self, auth_client, product, warehouse):
        buffer = workbook_bytes(PRODUCT_HEADERS, [
            ["P-200", "Gravel", "Aggregates", "ton", 50, 70, 12],
            ["P-001", "Cement 50kg (new)", None, None, None, 16, None],
            ["P-300", None, None, None, None, None, None],
        ])

        resp = upload(auth_client, "products", buffer)
        assert resp.status_code == 200, resp.get_json()
        result = resp.get_json()
        assert result["created"] == 1
        assert result["updated"] == 1
        assert [e["row"] for e in result["errors"]] == [4]

        gravel = db.session.query(Product).filter_by(code="P-200").one()
        assert gravel.category.name == "Aggregates"
        assert inventory_service.current_quantity(gravel.id, warehouse.id) == 12

        cement = db.session.query(Product).filter_by(code="P-001").one()
        assert cement.name == "Cement 50kg (new)"
        assert cement.sell_price_1 == 16

    def test_import_quantity_is_a_count(self, auth_client, stocked_product, warehouse):
        buffer = workbook_bytes(PRODUCT_HEADERS, [["P-001", None, None, None, None, None, 40]])
        upload(auth_client, "products", buffer)
        upload(auth_client, "products", workbook_bytes(PRODUCT_HEADERS, [["P-001", None, None, None, None, None, 40]]))

        assert inventory_service.current_quantity(stocked_product.id, warehouse.id) == 40

    def test_accounts_import_maps_type_labels(self, auth_client, db_session):
        buffer = workbook_bytes(ACCOUNT_HEADERS, [
            ["C100", "Sara Stores", "عميل", "Cairo", "0100", 250, None],
            ["S100", "Nile Traders", "مورد", None, None, None, None],
            ["X100", "Nobody", "صديق", None, None, None, None],
        ])

        result = upload(auth_client, "accounts", buffer).get_json()
        assert result["created"] == 2
        assert len(result["errors"]) == 1

        sara = db.session.query(Account).filter_by(code="C100").one()
        assert sara.type == "customer"
        assert sara.current_balance == 250

    def test_missing_file(self, auth_client):
        resp = auth_client.post("/api/import/products", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_not_a_workbook(self, auth_client):
        resp = upload(auth_client, "products", io.BytesIO(b"plain text, not xlsx"))
        assert resp.status_code == 400

    def test_unsupported_entity(self, auth_client):
        resp = upload(auth_client, "invoices", workbook_bytes(PRODUCT_HEADERS, []))
        assert resp.status_code == 400
