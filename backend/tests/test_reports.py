"""
Report and dashboard tests. Only posted documents count.
"""

import pytest


def post_doc(client, collection, account, warehouse, product, quantity, unit_price, **header):
    key = "invoice" if collection == "invoices" else "purchase"
    resp = client.post(f"/api/{collection}", json={
        key: {"accountId": account.id, "warehouseId": warehouse.id, **header},
        "details": [{"productId": product.id, "quantity": quantity, "unitPrice": unit_price}],
    })
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


@pytest.fixture
def trading_day(auth_client, customer, supplier, warehouse, stocked_product):
    """Posted sale of 200, a draft sale, a posted purchase of 300 and a sale return of 20."""
    post_doc(auth_client, "invoices", customer, warehouse, stocked_product, 10, 20, status="posted")
    post_doc(auth_client, "invoices", customer, warehouse, stocked_product, 99, 20)
    post_doc(auth_client, "purchases", supplier, warehouse, stocked_product, 30, 10, status="posted")
    post_doc(auth_client, "invoices", customer, warehouse, stocked_product, 1, 20,
             kind="sale_return", status="posted")
    return auth_client


class TestDashboard:

    def test_stats(self, trading_day):
        stats = trading_day.get("/api/stats").get_json()

        assert stats["totalSales"] == pytest.approx(180.0)
        assert stats["totalPurchases"] == pytest.approx(300.0)
        assert stats["debtors"] == pytest.approx(180.0)
        assert stats["debtorsCount"] == 1
        assert stats["creditors"] == pytest.approx(300.0)
        assert stats["creditorsCount"] == 1
        assert stats["customers"] == 1
        assert stats["suppliers"] == 1
        assert stats["products"] == 1
        assert stats["inventoryValue"] == pytest.approx(1210.0)

    def test_empty_stats(self, auth_client):
        stats = auth_client.get("/api/stats").get_json()
        assert stats["totalSales"] == 0
        assert stats["debtorsCount"] == 0
        assert stats["lowStockItems"] == 0


class TestReports:

    def test_sales_report_excludes_drafts(self, trading_day):
        data = trading_day.get("/api/reports?type=sales").get_json()

        assert data["type"] == "sales"
        assert data["summary"]["count"] == 2
        assert data["summary"]["grossTotal"] == pytest.approx(200.0)
        assert data["summary"]["returnsTotal"] == pytest.approx(20.0)
        assert data["summary"]["netTotal"] == pytest.approx(180.0)

    def test_period_filter(self, trading_day):
        data = trading_day.get("/api/reports?type=sales&startDate=2000-01-01&endDate=2000-12-31").get_json()
        assert data["summary"]["count"] == 0

    def test_customers_report(self, trading_day, customer):
        data = trading_day.get("/api/reports?type=customers").get_json()
        assert [(r["id"], r["documentCount"]) for r in data["rows"]] == [(customer.id, 2)]
        assert data["rows"][0]["balance"] == pytest.approx(180.0)

    def test_inventory_report(self, trading_day):
        data = trading_day.get("/api/reports?type=inventory").get_json()
        assert data["summary"]["totalQuantity"] == pytest.approx(121.0)

    @pytest.mark.parametrize("query", ["", "?type=bogus", "?type=sales&startDate=not-a-date"])
    def test_bad_requests(self, auth_client, query):
        assert auth_client.get(f"/api/reports{query}").status_code == 400


class TestFinanceReports:

    def test_income_statement(self, trading_day):
        data = trading_day.get("/api/finance/reports?type=income").get_json()["data"]
        assert data["revenue"] == pytest.approx(180.0)
        assert data["costOfGoodsSold"] == pytest.approx(90.0)
        assert data["grossProfit"] == pytest.approx(90.0)

    def test_balance_sheet(self, trading_day):
        data = trading_day.get("/api/finance/reports?type=balance").get_json()["data"]
        assert data["assets"]["receivables"] == pytest.approx(180.0)
        assert data["liabilities"]["payables"] == pytest.approx(300.0)

    def test_accounts_summary(self, trading_day):
        data = trading_day.get("/api/finance/reports?type=accounts").get_json()["data"]
        assert data["customer"]["count"] == 1

    def test_unknown_type(self, auth_client):
        assert auth_client.get("/api/finance/reports?type=bogus").status_code == 400
        assert auth_client.get("/api/finance/reports").status_code == 400
