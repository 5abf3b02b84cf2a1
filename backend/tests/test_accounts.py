"""
Account and financial transaction tests.

Verifies:
- current_balance starts at opening_balance and only moves through transactions
- Debit raises and credit lowers the balance; the bank counter-account takes the opposite sign
- Edits and deletes undo the original effect
- Statements carry a running balance; reconciliation finds and fixes drift
"""

import pytest

from dukkan.extensions import db
from dukkan.models import Account
from dukkan.services import account_service


def balance(account_id):
    return db.session.query(Account.current_balance).filter(Account.id == account_id).scalar()


class TestAccounts:

    def test_opening_balance_seeds_current(self, auth_client, db_session):
        resp = auth_client.post("/api/accounts", json={"name": "Cash box", "type": "cash", "openingBalance": 500})
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["openingBalance"] == 500
        assert data["currentBalance"] == 500

    def test_current_balance_not_writable(self, auth_client, customer):
        resp = auth_client.patch(f"/api/accounts/{customer.id}", json={"currentBalance": 1000})
        assert resp.status_code == 400

    def test_editing_opening_balance_shifts_current(self, auth_client, customer):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 40, "type": "debit"})

        resp = auth_client.patch(f"/api/accounts/{customer.id}", json={"openingBalance": 100})
        assert resp.status_code == 200
        assert resp.get_json()["currentBalance"] == pytest.approx(140.0)

    def test_invalid_type_rejected(self, auth_client, db_session):
        resp = auth_client.post("/api/accounts", json={"name": "X", "type": "friend"})
        assert resp.status_code == 400

    def test_filters_and_search(self, auth_client, customer, supplier):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 10, "type": "debit"})

        customers = auth_client.get("/api/accounts?type=customer").get_json()
        assert [a["id"] for a in customers] == [customer.id]

        non_zero = auth_client.get("/api/accounts?showNonZeroOnly=true").get_json()
        assert [a["id"] for a in non_zero] == [customer.id]

        found = auth_client.get("/api/accounts/search?query=Delta").get_json()
        assert [a["id"] for a in found] == [supplier.id]

    def test_account_with_transactions_cannot_be_deleted(self, auth_client, customer):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 10, "type": "debit"})
        assert auth_client.delete(f"/api/accounts/{customer.id}").status_code == 409

    def test_unused_account_deleted(self, auth_client, supplier):
        assert auth_client.delete(f"/api/accounts/{supplier.id}").status_code == 200
        assert auth_client.get(f"/api/accounts/{supplier.id}").status_code == 404


class TestTransactions:

    def test_debit_and_credit_signs(self, auth_client, customer):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 100, "type": "debit"})
        assert balance(customer.id) == pytest.approx(100.0)

        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 30, "type": "credit"})
        assert balance(customer.id) == pytest.approx(70.0)

    def test_bank_counter_entry(self, auth_client, customer, bank):
        resp = auth_client.post("/api/transactions", json={
            "accountId": customer.id,
            "amount": 250,
            "type": "credit",
            "paymentMethod": "bank",
            "bankId": bank.id,
        })
        assert resp.status_code == 201, resp.get_json()

        assert balance(customer.id) == pytest.approx(-250.0)
        assert balance(bank.id) == pytest.approx(250.0)

    def test_bank_must_be_bank_or_cash(self, auth_client, customer, supplier):
        resp = auth_client.post("/api/transactions", json={
            "accountId": customer.id, "amount": 10, "type": "debit", "bankId": supplier.id,
        })
        assert resp.status_code == 400

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_bad_amount_rejected(self, auth_client, customer, amount):
        resp = auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": amount, "type": "debit"})
        assert resp.status_code == 400
        assert balance(customer.id) == 0

    def test_update_reapplies_effect(self, auth_client, customer, bank):
        tx = auth_client.post("/api/transactions", json={
            "accountId": customer.id, "amount": 100, "type": "debit", "bankId": bank.id,
        }).get_json()

        resp = auth_client.put(f"/api/transactions/{tx['id']}", json={"amount": 60, "type": "credit"})
        assert resp.status_code == 200, resp.get_json()

        assert balance(customer.id) == pytest.approx(-60.0)
        assert balance(bank.id) == pytest.approx(60.0)

    def test_delete_reverses_effect(self, auth_client, customer, bank):
        tx = auth_client.post("/api/transactions", json={
            "accountId": customer.id, "amount": 100, "type": "debit", "bankId": bank.id,
        }).get_json()

        assert auth_client.delete(f"/api/transactions/{tx['id']}").status_code == 200
        assert balance(customer.id) == pytest.approx(0.0)
        assert balance(bank.id) == pytest.approx(0.0)

    def test_list_filters_by_account(self, auth_client, customer, supplier):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 5, "type": "debit"})
        auth_client.post("/api/transactions", json={"accountId": supplier.id, "amount": 7, "type": "credit"})

        rows = auth_client.get(f"/api/transactions?accountId={customer.id}").get_json()
        assert [r["amount"] for r in rows] == [5]


class TestStatementsAndReconcile:

    def test_statement_running_balance(self, auth_client, db_session):
        account = account_service.create_account({"name": "Hassan", "type": "customer", "openingBalance": 50})
        auth_client.post("/api/transactions", json={
            "accountId": account.id, "amount": 100, "type": "debit", "date": "2026-01-05T10:00:00Z",
        })
        auth_client.post("/api/transactions", json={
            "accountId": account.id, "amount": 30, "type": "credit", "date": "2026-01-10T10:00:00Z",
        })

        data = auth_client.get(f"/api/accounts/{account.id}/statement").get_json()
        assert data["openingBalance"] == pytest.approx(50.0)
        assert [e["balance"] for e in data["entries"]] == pytest.approx([150.0, 120.0])
        assert data["totalDebit"] == pytest.approx(100.0)
        assert data["totalCredit"] == pytest.approx(30.0)
        assert data["closingBalance"] == pytest.approx(120.0)

        later = auth_client.get(f"/api/accounts/{account.id}/statement?startDate=2026-01-08").get_json()
        assert later["openingBalance"] == pytest.approx(150.0)
        assert len(later["entries"]) == 1

    def test_last_transactions(self, auth_client, customer):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 5, "type": "debit"})

        data = auth_client.get(f"/api/accounts/{customer.id}/last-transactions").get_json()
        assert data["lastTransaction"]["amount"] == 5
        assert data["lastInvoice"] is None

    def test_reconcile_reports_and_fixes_drift(self, auth_client, customer):
        auth_client.post("/api/transactions", json={"accountId": customer.id, "amount": 80, "type": "debit"})
        db.session.query(Account).filter(Account.id == customer.id).update({Account.current_balance: 999})
        db.session.commit()

        mismatches = account_service.reconcile_balances()
        assert [(m["accountId"], m["stored"], m["expected"]) for m in mismatches] == [(customer.id, 999, 80)]
        assert balance(customer.id) == 999

        account_service.reconcile_balances(fix=True)
        assert balance(customer.id) == pytest.approx(80.0)
        assert account_service.reconcile_balances() == []
