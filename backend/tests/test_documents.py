"""
Invoice and purchase workflow tests.

Verifies:
- Totals are recomputed server-side with half-up rounding
- Posting moves stock and balances once, with the sign of the document kind
- Re-posting is a no-op; cancelling keeps the posted effects
- Edits and deletes of posted documents net the effects correctly
- Invalid documents are rejected before anything is written
"""

import pytest

from dukkan.extensions import db
from dukkan.models import Account, Invoice, Transaction
from dukkan.services import account_service, inventory_service, settings_service
from dukkan.services.document_service import LineInput, compute_totals


def on_hand(product, warehouse):
    return inventory_service.current_quantity(product.id, warehouse.id)


def balance(account):
    return db.session.query(Account.current_balance).filter(Account.id == account.id).scalar()


def create_doc(client, collection, account, warehouse, lines, **header):
    key = "invoice" if collection == "invoices" else "purchase"
    body = {key: {"accountId": account.id, "warehouseId": warehouse.id, **header}, "details": lines}
    return client.post(f"/api/{collection}", json=body)


def line(product, quantity, unit_price=15, **extra):
    return {"productId": product.id, "quantity": quantity, "unitPrice": unit_price, **extra}


# =============================================================================
# TOTALS
# =============================================================================


class TestTotals:

    def test_compute_totals_rounds_half_up(self):
        totals = compute_totals([LineInput(1, 1, 0.125)])
        assert float(totals.subtotal) == 0.13
        assert float(totals.total) == 0.13

    def test_header_tax_rate_applies_after_discount(self):
        totals = compute_totals([LineInput(1, 2, 50)], discount_amount=20, tax_rate=10)
        assert float(totals.subtotal) == 100.0
        assert float(totals.discount) == 20.0
        assert float(totals.tax) == 8.0
        assert float(totals.total) == 88.0

    def test_draft_invoice_totals(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 3)], taxRate=10)
        assert resp.status_code == 201, resp.get_json()
        data = resp.get_json()

        assert data["subtotal"] == pytest.approx(45.00)
        assert data["tax"] == pytest.approx(4.50)
        assert data["discount"] == pytest.approx(0.00)
        assert data["total"] == pytest.approx(49.50)
        assert data["status"] == "draft"
        assert data["invoiceNumber"] == "INV-0001"
        assert data["details"][0]["total"] == pytest.approx(45.00)

    def test_client_totals_are_ignored(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 2, total=999)], total=999, subtotal=999)
        assert resp.status_code == 201
        assert resp.get_json()["total"] == pytest.approx(30.0)

    def test_draft_has_no_effects(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse, [line(stocked_product, 3)])
        assert resp.status_code == 201

        assert on_hand(stocked_product, warehouse) == 100
        assert balance(customer) == 0
        assert resp.get_json()["postedAt"] is None


# =============================================================================
# POSTING EFFECTS PER KIND
# =============================================================================


class TestPostingEffects:

    @pytest.mark.parametrize(
        "collection,kind,party,stock_after,balance_after,prefix",
        [
            ("invoices", "sale", "customer", 97, 45.0, "INV-"),
            ("invoices", "sale_return", "customer", 103, -45.0, "SRT-"),
            ("purchases", "purchase", "supplier", 103, -45.0, "PUR-"),
            ("purchases", "purchase_return", "supplier", 97, 45.0, "PRT-"),
        ],
    )
    def test_posting_moves_stock_and_balance(
        self, request, auth_client, warehouse, stocked_product,
        collection, kind, party, stock_after, balance_after, prefix,
    ):
        account = request.getfixturevalue(party)
        resp = create_doc(auth_client, collection, account, warehouse,
                          [line(stocked_product, 3)], kind=kind, status="posted")
        assert resp.status_code == 201, resp.get_json()
        data = resp.get_json()

        number = data["invoiceNumber"] if collection == "invoices" else data["purchaseNumber"]
        assert number.startswith(prefix)
        assert data["postedAt"] is not None
        assert on_hand(stocked_product, warehouse) == stock_after
        assert balance(account) == pytest.approx(balance_after)

    def test_sale_writes_audit_rows(self, auth_client, customer, warehouse, stocked_product):
        doc = create_doc(auth_client, "invoices", customer, warehouse,
                         [line(stocked_product, 3)], status="posted").get_json()

        movements = inventory_service.list_inventory_transactions(document_type="invoice", document_id=doc["id"])
        assert [(m.type, m.quantity) for m in movements] == [("sale", -3)]

        txs = db.session.query(Transaction).filter_by(document_type="invoice", document_id=doc["id"]).all()
        assert len(txs) == 1
        assert txs[0].type == "debit"
        assert txs[0].amount == pytest.approx(45.0)
        assert txs[0].payment_method == "credit"

    def test_purchases_list_through_invoices_endpoint(self, auth_client, supplier, warehouse, stocked_product):
        create_doc(auth_client, "purchases", supplier, warehouse, [line(stocked_product, 1)])

        resp = auth_client.get("/api/invoices?type=purchases")
        assert resp.status_code == 200
        rows = resp.get_json()
        assert len(rows) == 1
        assert rows[0]["documentType"] == "purchase"


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    @pytest.fixture
    def posted_sale(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 3)], status="posted")
        assert resp.status_code == 201
        return resp.get_json()

    def test_reposting_is_idempotent(self, auth_client, posted_sale, customer, warehouse, stocked_product):
        resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={"status": "posted"})
        assert resp.status_code == 200

        assert on_hand(stocked_product, warehouse) == 97
        assert balance(customer) == pytest.approx(45.0)
        movements = inventory_service.list_inventory_transactions(
            document_type="invoice", document_id=posted_sale["id"]
        )
        assert len(movements) == 1

    def test_paid_states_do_not_repeat_effects(self, auth_client, posted_sale, customer, warehouse, stocked_product):
        for status in ("paid", "partially_paid", "paid"):
            resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={"status": status})
            assert resp.status_code == 200, resp.get_json()

        assert on_hand(stocked_product, warehouse) == 97
        assert balance(customer) == pytest.approx(45.0)

    @pytest.mark.parametrize("path", [["cancelled"], ["paid", "cancelled"], ["partially_paid", "cancelled"]])
    def test_cancel_leaves_effects_in_place(
        self, auth_client, posted_sale, customer, warehouse, stocked_product, path
    ):
        for status in path:
            resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={"status": status})
            assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["status"] == "cancelled"
        assert resp.get_json()["postedAt"] is not None

        assert on_hand(stocked_product, warehouse) == 97
        assert balance(customer) == pytest.approx(45.0)

        movements = inventory_service.list_inventory_transactions(
            document_type="invoice", document_id=posted_sale["id"]
        )
        assert [(m.quantity, m.is_reversal) for m in movements] == [(-3, False)]

    def test_cancel_through_header_edit_leaves_effects_in_place(
        self, auth_client, posted_sale, customer, warehouse, stocked_product
    ):
        resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}", json={"invoice": {"status": "cancelled"}})
        assert resp.status_code == 200, resp.get_json()

        assert on_hand(stocked_product, warehouse) == 97
        assert balance(customer) == pytest.approx(45.0)

    def test_draft_cannot_be_cancelled(self, auth_client, customer, warehouse, stocked_product):
        doc = create_doc(auth_client, "invoices", customer, warehouse, [line(stocked_product, 1)]).get_json()

        resp = auth_client.patch(f"/api/invoices/{doc['id']}/status", json={"status": "cancelled"})
        assert resp.status_code == 409

        assert auth_client.delete(f"/api/invoices/{doc['id']}").status_code == 200

    def test_cancelled_is_terminal(self, auth_client, posted_sale):
        auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={"status": "cancelled"})

        resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={"status": "posted"})
        assert resp.status_code == 409

        resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}", json={"notes": "late edit"})
        assert resp.status_code == 409

    def test_draft_cannot_jump_to_paid(self, auth_client, customer, warehouse, stocked_product):
        doc = create_doc(auth_client, "invoices", customer, warehouse, [line(stocked_product, 1)]).get_json()

        resp = auth_client.patch(f"/api/invoices/{doc['id']}/status", json={"status": "paid"})
        assert resp.status_code == 409

    def test_status_is_required(self, auth_client, posted_sale):
        resp = auth_client.patch(f"/api/invoices/{posted_sale['id']}/status", json={})
        assert resp.status_code == 400

    def test_editing_posted_quantity_nets_difference(
        self, auth_client, posted_sale, customer, warehouse, stocked_product
    ):
        resp = auth_client.patch(
            f"/api/invoices/{posted_sale['id']}",
            json={"details": [line(stocked_product, 5)]},
        )
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["total"] == pytest.approx(75.0)

        assert on_hand(stocked_product, warehouse) == 95
        assert balance(customer) == pytest.approx(75.0)

    def test_editing_posted_purchase_nets_difference(self, auth_client, supplier, warehouse, stocked_product):
        doc = create_doc(auth_client, "purchases", supplier, warehouse,
                         [line(stocked_product, 3)], status="posted").get_json()
        assert on_hand(stocked_product, warehouse) == 103
        assert balance(supplier) == pytest.approx(-45.0)

        resp = auth_client.patch(f"/api/purchases/{doc['id']}", json={"details": [line(stocked_product, 5)]})
        assert resp.status_code == 200, resp.get_json()

        assert on_hand(stocked_product, warehouse) == 105
        assert balance(supplier) == pytest.approx(-75.0)

    def test_moving_posted_document_to_another_warehouse(
        self, auth_client, posted_sale, customer, warehouse, second_warehouse, stocked_product
    ):
        inventory_service.update_inventory({
            "productId": stocked_product.id, "warehouseId": second_warehouse.id, "quantity": 10, "isCount": True,
        })

        resp = auth_client.patch(
            f"/api/invoices/{posted_sale['id']}",
            json={"invoice": {"warehouseId": second_warehouse.id}},
        )
        assert resp.status_code == 200, resp.get_json()

        assert on_hand(stocked_product, warehouse) == 100
        assert on_hand(stocked_product, second_warehouse) == 7
        assert balance(customer) == pytest.approx(45.0)

    def test_moving_posted_document_to_another_account(
        self, auth_client, posted_sale, customer, warehouse, stocked_product
    ):
        other = account_service.create_account({"name": "Sara Stores", "type": "customer"})

        resp = auth_client.patch(
            f"/api/invoices/{posted_sale['id']}",
            json={"invoice": {"accountId": other.id}},
        )
        assert resp.status_code == 200, resp.get_json()

        assert balance(customer) == pytest.approx(0.0)
        assert balance(other) == pytest.approx(45.0)
        assert on_hand(stocked_product, warehouse) == 97

    def test_editing_draft_then_posting(self, auth_client, customer, warehouse, stocked_product):
        doc = create_doc(auth_client, "invoices", customer, warehouse, [line(stocked_product, 1)]).get_json()

        auth_client.patch(f"/api/invoices/{doc['id']}", json={"details": [line(stocked_product, 4)]})
        assert on_hand(stocked_product, warehouse) == 100

        resp = auth_client.patch(f"/api/invoices/{doc['id']}/status", json={"status": "posted"})
        assert resp.status_code == 200
        assert on_hand(stocked_product, warehouse) == 96
        assert balance(customer) == pytest.approx(60.0)

    def test_delete_posted_reverses_and_keeps_audit(
        self, auth_client, posted_sale, customer, warehouse, stocked_product
    ):
        resp = auth_client.delete(f"/api/invoices/{posted_sale['id']}")
        assert resp.status_code == 200

        assert auth_client.get(f"/api/invoices/{posted_sale['id']}").status_code == 404
        assert on_hand(stocked_product, warehouse) == 100
        assert balance(customer) == pytest.approx(0.0)

        movements = inventory_service.list_inventory_transactions(
            document_type="invoice", document_id=posted_sale["id"]
        )
        assert sum(m.quantity for m in movements) == 0
        assert len(movements) == 2


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidation:

    def test_discount_larger_than_subtotal_rejected(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 3)], discountAmount=100, status="posted")
        assert resp.status_code == 400

        assert db.session.query(Invoice).count() == 0
        assert on_hand(stocked_product, warehouse) == 100

    @pytest.mark.parametrize(
        "details",
        [
            [],
            [{"productId": 1, "quantity": 0, "unitPrice": 5}],
            [{"productId": 999999, "quantity": 1, "unitPrice": 5}],
            [{"productId": 1, "quantity": 1, "unitPrice": -5}],
        ],
    )
    def test_bad_lines_rejected(self, auth_client, customer, warehouse, stocked_product, details):
        for d in details:
            if d["productId"] == 1:
                d["productId"] = stocked_product.id
        resp = create_doc(auth_client, "invoices", customer, warehouse, details)
        assert resp.status_code == 400

    def test_missing_account_rejected(self, auth_client, warehouse, stocked_product):
        resp = auth_client.post("/api/invoices", json={
            "invoice": {"warehouseId": warehouse.id},
            "details": [line(stocked_product, 1)],
        })
        assert resp.status_code == 400

    def test_duplicate_number_conflicts(self, auth_client, customer, warehouse, stocked_product):
        first = create_doc(auth_client, "invoices", customer, warehouse,
                           [line(stocked_product, 1)], invoiceNumber="MAN-1")
        assert first.status_code == 201

        second = create_doc(auth_client, "invoices", customer, warehouse,
                            [line(stocked_product, 1)], invoiceNumber="MAN-1")
        assert second.status_code == 409

    def test_negative_stock_blocked_when_disabled(self, auth_client, customer, warehouse, stocked_product):
        settings_service.update_settings({"allowNegativeStock": False})

        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 150)], status="posted")
        assert resp.status_code == 409

        assert on_hand(stocked_product, warehouse) == 100
        assert balance(customer) == 0
        assert db.session.query(Invoice).count() == 0

    def test_negative_stock_allowed_by_default(self, auth_client, customer, warehouse, stocked_product):
        resp = create_doc(auth_client, "invoices", customer, warehouse,
                          [line(stocked_product, 150)], status="posted")
        assert resp.status_code == 201
        assert on_hand(stocked_product, warehouse) == -50

    def test_document_transactions_are_locked(self, auth_client, customer, warehouse, stocked_product):
        doc = create_doc(auth_client, "invoices", customer, warehouse,
                         [line(stocked_product, 1)], status="posted").get_json()
        tx = db.session.query(Transaction).filter_by(document_type="invoice", document_id=doc["id"]).one()

        assert auth_client.put(f"/api/transactions/{tx.id}", json={"amount": 1}).status_code == 409
        assert auth_client.delete(f"/api/transactions/{tx.id}").status_code == 409
