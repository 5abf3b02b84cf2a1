# Overview: Service-layer read models for reports, financial statements, and dashboard stats.

"""
Report Service

All figures come from posted documents (status posted/paid/partially_paid)
and recorded transactions; drafts and cancelled documents never count.

SIGN CONVENTION (dashboards):
- debtors   = sum of customer balances that are > 0
- creditors = sum of |supplier balances| that are < 0
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import Account, Category, Invoice, Product, Purchase, Transaction
from ..models.documents import EFFECTIVE_STATUSES
from ..money import ZERO, round_money, sum_money, to_decimal
from ..validation import ValidationError
from .inventory_service import list_inventory, low_stock_products
from .transaction_service import signed_amount
from dukkan.time_utils import utcnow


REPORT_TYPES = ("sales", "purchases", "inventory", "customers", "suppliers")
FINANCE_REPORT_TYPES = ("income", "balance", "cashflow", "accounts")

RETURN_KINDS = {"sale_return", "purchase_return"}


def _posted(model, start=None, end=None, account_id=None):
    query = db.session.query(model).filter(model.status.in_(EFFECTIVE_STATUSES))
    if start is not None:
        query = query.filter(model.date >= start)
    if end is not None:
        query = query.filter(model.date < end)
    if account_id:
        query = query.filter(model.account_id == account_id)
    return query.order_by(model.date.asc(), model.id.asc()).all()


def _net_total(docs) -> Decimal:
    """Gross documents minus returns."""
    total = ZERO
    for doc in docs:
        amount = round_money(doc.total)
        total += -amount if doc.kind in RETURN_KINDS else amount
    return round_money(total)


def _document_report(model, start, end) -> dict:
    docs = _posted(model, start, end)
    by_status = defaultdict(lambda: ZERO)
    rows = []
    for doc in docs:
        by_status[doc.status] += round_money(doc.total)
        rows.append({
            model.NUMBER_KEY: doc.number,
            "id": doc.id,
            "date": doc.to_dict()["date"],
            "accountName": doc.account.name if doc.account else None,
            "kind": doc.kind,
            "subtotal": doc.subtotal,
            "discount": doc.discount,
            "tax": doc.tax,
            "total": doc.total,
            "status": doc.status,
        })
    returns = [d for d in docs if d.kind in RETURN_KINDS]
    return {
        "rows": rows,
        "summary": {
            "count": len(docs),
            "grossTotal": float(sum_money(d.total for d in docs if d.kind not in RETURN_KINDS)),
            "returnsTotal": float(sum_money(d.total for d in returns)),
            "netTotal": float(_net_total(docs)),
            "taxTotal": float(sum_money(d.tax for d in docs)),
            "byStatus": {k: float(v) for k, v in by_status.items()},
        },
    }


def _party_report(account_type: str, model, start, end) -> dict:
    accounts = (
        db.session.query(Account)
        .filter(Account.type == account_type)
        .order_by(Account.name.asc())
        .all()
    )
    docs_by_account = defaultdict(list)
    for doc in _posted(model, start, end):
        docs_by_account[doc.account_id].append(doc)

    rows = []
    for account in accounts:
        docs = docs_by_account.get(account.id, [])
        rows.append({
            "id": account.id,
            "name": account.name,
            "code": account.code,
            "phone": account.phone,
            "documentCount": len(docs),
            "documentsTotal": float(_net_total(docs)),
            "balance": account.current_balance,
        })
    return {
        "rows": rows,
        "summary": {
            "count": len(rows),
            "totalBalance": float(sum_money(a.current_balance for a in accounts)),
        },
    }


def _inventory_report() -> dict:
    rows = list_inventory()
    return {
        "rows": rows,
        "summary": {
            "count": len(rows),
            "totalQuantity": round(sum(r["quantity"] or 0 for r in rows), 3),
            "totalValue": float(sum_money(r["value"] for r in rows)),
        },
    }


def build_report(report_type: str, *, start=None, end=None) -> dict:
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(REPORT_TYPES)}")

    if report_type == "sales":
        data = _document_report(Invoice, start, end)
    elif report_type == "purchases":
        data = _document_report(Purchase, start, end)
    elif report_type == "inventory":
        data = _inventory_report()
    elif report_type == "customers":
        data = _party_report("customer", Invoice, start, end)
    else:
        data = _party_report("supplier", Purchase, start, end)

    data["type"] = report_type
    return data


# =============================================================================
# Financial reports
# =============================================================================


def _cost_of_goods_sold(invoices) -> Decimal:
    """Cost of sold lines at current product cost; returns put cost back."""
    cost = ZERO
    for invoice in invoices:
        sign = -1 if invoice.kind in RETURN_KINDS else 1
        for line in invoice.details:
            unit_cost = to_decimal(line.product.cost_price if line.product else 0)
            cost += sign * round_money(to_decimal(line.quantity) * unit_cost)
    return round_money(cost)


def _account_movements(account_type: str, start, end) -> Decimal:
    """Net signed movement on all accounts of a type within the period."""
    ids = [a.id for a in db.session.query(Account.id).filter(Account.type == account_type).all()]
    if not ids:
        return ZERO
    query = db.session.query(Transaction).filter(
        or_(Transaction.account_id.in_(ids), Transaction.bank_id.in_(ids))
    )
    if start is not None:
        query = query.filter(Transaction.date >= start)
    if end is not None:
        query = query.filter(Transaction.date < end)
    total = ZERO
    for tx in query.all():
        if tx.account_id in ids:
            total += round_money(signed_amount(tx.type, tx.amount))
        if tx.bank_id in ids:
            total -= round_money(signed_amount(tx.type, tx.amount))
    return round_money(total)


def _income_statement(start, end) -> dict:
    invoices = _posted(Invoice, start, end)
    revenue = _net_total(invoices)
    cogs = _cost_of_goods_sold(invoices)
    gross = round_money(revenue - cogs)
    # expense accounts grow with debits, income accounts with credits
    expenses = _account_movements("expense", start, end)
    other_income = round_money(-_account_movements("income", start, end))
    net = round_money(gross + other_income - expenses)
    return {
        "revenue": float(revenue),
        "costOfGoodsSold": float(cogs),
        "grossProfit": float(gross),
        "otherIncome": float(other_income),
        "expenses": float(expenses),
        "netIncome": float(net),
    }


def _balance_sheet() -> dict:
    accounts = db.session.query(Account).all()
    by_type = defaultdict(list)
    for account in accounts:
        by_type[account.type].append(round_money(account.current_balance))

    cash = round_money(sum(by_type["cash"], ZERO) + sum(by_type["bank"], ZERO))
    receivables = round_money(sum((b for b in by_type["customer"] if b > 0), ZERO))
    customer_credits = round_money(sum((-b for b in by_type["customer"] if b < 0), ZERO))
    payables = round_money(sum((-b for b in by_type["supplier"] if b < 0), ZERO))
    supplier_advances = round_money(sum((b for b in by_type["supplier"] if b > 0), ZERO))
    inventory_value = sum_money(r["value"] for r in list_inventory())

    assets = round_money(cash + receivables + supplier_advances + inventory_value)
    liabilities = round_money(payables + customer_credits)
    return {
        "assets": {
            "cash": float(cash),
            "receivables": float(receivables),
            "supplierAdvances": float(supplier_advances),
            "inventory": float(inventory_value),
            "total": float(assets),
        },
        "liabilities": {
            "payables": float(payables),
            "customerCredits": float(customer_credits),
            "total": float(liabilities),
        },
        "equity": float(round_money(assets - liabilities)),
    }


def _cash_flow(start, end) -> dict:
    cash_ids = {
        a.id for a in db.session.query(Account.id).filter(Account.type.in_(("cash", "bank"))).all()
    }
    query = db.session.query(Transaction)
    if start is not None:
        query = query.filter(Transaction.date >= start)
    if end is not None:
        query = query.filter(Transaction.date < end)

    inflow = ZERO
    outflow = ZERO
    by_method = defaultdict(lambda: ZERO)
    for tx in query.all():
        effect = ZERO
        if tx.account_id in cash_ids:
            effect += round_money(signed_amount(tx.type, tx.amount))
        if tx.bank_id in cash_ids:
            effect -= round_money(signed_amount(tx.type, tx.amount))
        if effect > 0:
            inflow += effect
        elif effect < 0:
            outflow += -effect
        if effect:
            by_method[tx.payment_method] += effect
    return {
        "inflow": float(round_money(inflow)),
        "outflow": float(round_money(outflow)),
        "net": float(round_money(inflow - outflow)),
        "byPaymentMethod": {k: float(round_money(v)) for k, v in by_method.items()},
    }


def _accounts_summary() -> dict:
    groups = defaultdict(list)
    for account in db.session.query(Account).order_by(Account.type.asc(), Account.name.asc()).all():
        groups[account.type].append(account)
    return {
        account_type: {
            "count": len(items),
            "totalBalance": float(sum_money(a.current_balance for a in items)),
            "accounts": [
                {"id": a.id, "name": a.name, "code": a.code, "balance": a.current_balance}
                for a in items
            ],
        }
        for account_type, items in groups.items()
    }


def build_finance_report(report_type: str, *, start=None, end=None) -> dict:
    if report_type not in FINANCE_REPORT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(FINANCE_REPORT_TYPES)}")

    if report_type == "income":
        data = _income_statement(start, end)
    elif report_type == "balance":
        data = _balance_sheet()
    elif report_type == "cashflow":
        data = _cash_flow(start, end)
    else:
        data = _accounts_summary()
    return {"type": report_type, "data": data}


# =============================================================================
# Dashboard
# =============================================================================


def dashboard_stats() -> dict:
    customers = db.session.query(Account).filter(Account.type == "customer").all()
    suppliers = db.session.query(Account).filter(Account.type == "supplier").all()

    debtors = sum_money(a.current_balance for a in customers if round_money(a.current_balance) > 0)
    creditors = sum_money(-a.current_balance for a in suppliers if round_money(a.current_balance) < 0)

    since = utcnow() - timedelta(days=30)
    recent = db.session.query(Transaction).filter(Transaction.date >= since).count()

    return {
        "totalSales": float(_net_total(_posted(Invoice))),
        "totalPurchases": float(_net_total(_posted(Purchase))),
        "customers": len(customers),
        "suppliers": len(suppliers),
        "products": db.session.query(Product).count(),
        "categories": db.session.query(Category).count(),
        "lowStockItems": len(low_stock_products()),
        "recentTransactions": recent,
        "debtors": float(debtors),
        "debtorsCount": sum(1 for a in customers if round_money(a.current_balance) > 0),
        "creditors": float(creditors),
        "creditorsCount": sum(1 for a in suppliers if round_money(a.current_balance) < 0),
        "inventoryValue": float(sum_money(r["value"] for r in list_inventory())),
    }
