# Overview: Excel (xlsx) export, templates, and import for products and accounts.

"""
Spreadsheet Service

Workbooks use the Arabic column headers the front office already works with.
Exports are rendered in memory and returned as bytes; imports read the first
sheet, find the header row, and create or update rows matched by code.

Import is row-by-row: every row is validated through the regular services
and either commits on its own or is reported in `errors` with its Excel row
number. A bad row never blocks the rest of the sheet.
"""

from __future__ import annotations

import io
import json
import logging
from typing import Any

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ..extensions import db
from ..models import Account, Category, Invoice, Product, Purchase, Transaction
from ..validation import ConflictError, NotFoundError, ValidationError
from .account_service import create_account, update_account
from .catalog_service import create_product, default_warehouse, update_product
from .inventory_service import set_count, stock_totals

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

PRODUCT_HEADERS = ["الكود", "الاسم", "الفئة", "الوحدة", "سعر التكلفة", "سعر البيع", "الكمية"]
ACCOUNT_HEADERS = ["الكود", "الاسم", "النوع", "العنوان", "الهاتف", "الرصيد الافتتاحي", "ملاحظات"]
INVOICE_HEADERS = [
    "رقم الفاتورة", "التاريخ", "اسم العميل/المورد", "نوع الفاتورة", "المنتجات",
    "إجمالي الكمية", "إجمالي القيمة", "الخصم", "الضريبة", "الإجمالي النهائي", "الحالة", "ملاحظات",
]
TRANSACTION_HEADERS = ["التاريخ", "نوع المعاملة", "اسم الحساب", "المبلغ", "طريقة الدفع", "الملاحظات"]

STATUS_LABELS = {
    "draft": "مسودة",
    "posted": "معتمد",
    "paid": "مدفوع",
    "partially_paid": "مدفوع جزئياً",
    "cancelled": "ملغي",
}
KIND_LABELS = {
    "sale": "مبيعات",
    "sale_return": "مرتجع مبيعات",
    "purchase": "مشتريات",
    "purchase_return": "مرتجع مشتريات",
}
TRANSACTION_TYPE_LABELS = {"debit": "مدين", "credit": "دائن"}
PAYMENT_METHOD_LABELS = {
    "cash": "نقدي",
    "bank": "تحويل بنكي",
    "check": "شيك",
    "credit": "آجل",
}
ACCOUNT_TYPE_LABELS = {
    "customer": "عميل",
    "supplier": "مورد",
    "expense": "مصروف",
    "income": "إيراد",
    "bank": "بنك",
    "cash": "نقدية",
}
ACCOUNT_TYPE_BY_LABEL = {label: key for key, label in ACCOUNT_TYPE_LABELS.items()}

EXPORT_ENTITIES = ("products", "accounts", "invoices", "transactions")
IMPORT_ENTITIES = ("products", "accounts")

SHEET_TITLES = {
    "products": ("المنتجات", "قائمة_المنتجات.xlsx"),
    "accounts": ("العملاء والموردين", "قائمة_العملاء_والموردين.xlsx"),
    "invoices": ("الفواتير", "قائمة_الفواتير.xlsx"),
    "transactions": ("المعاملات", "قائمة_المعاملات.xlsx"),
}

TEMPLATES = {
    "products": (
        "قالب_المنتجات",
        PRODUCT_HEADERS,
        ["مثال: 001", "مثال: منتج 1", "مثال: فئة 1", "مثال: قطعة", 100, 150, 10],
    ),
    "accounts": (
        "قالب_العملاء",
        ACCOUNT_HEADERS,
        ["مثال: C001", "مثال: شركة النور", "عميل", "مثال: شارع النصر", "0123456789", 0, "ملاحظات إضافية"],
    ),
    "invoices": (
        "قالب_الفواتير",
        INVOICE_HEADERS,
        [
            "INV-0001", "2024-01-01", "مثال: شركة النور", "مبيعات",
            '[{"code":"001","name":"منتج 1","quantity":5,"price":100}]',
            5, 500, 50, 70, 520, "مسودة", "ملاحظات الفاتورة",
        ],
    ),
    "transactions": (
        "قالب_المعاملات",
        TRANSACTION_HEADERS,
        ["2024-01-01", "مدين", "مثال: شركة النور", 1000, "نقدي", "ملاحظات المعاملة"],
    ),
}


class SpreadsheetError(ValidationError):
    """Raised when a workbook cannot be produced or read."""


# =============================================================================
# Writing
# =============================================================================


def _render(sheet_title: str, headers: list[str], rows: list[list[Any]]) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.sheet_view.rightToLeft = True
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    for idx, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, len(header) + 4)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _date_text(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _product_rows() -> list[list[Any]]:
    totals = stock_totals()
    rows = []
    for product in db.session.query(Product).order_by(Product.code.asc()).all():
        rows.append([
            product.code,
            product.name,
            product.category.name if product.category else "",
            product.unit or "",
            product.cost_price or 0,
            product.sell_price_1 or 0,
            totals.get(product.id, 0),
        ])
    return rows


def _account_rows() -> list[list[Any]]:
    rows = []
    for account in db.session.query(Account).order_by(Account.type.asc(), Account.name.asc()).all():
        rows.append([
            account.code or "",
            account.name,
            ACCOUNT_TYPE_LABELS.get(account.type, account.type),
            account.address or "",
            account.phone or "",
            account.opening_balance or 0,
            account.notes or "",
        ])
    return rows


def _invoice_rows() -> list[list[Any]]:
    docs = db.session.query(Invoice).all() + db.session.query(Purchase).all()
    docs.sort(key=lambda d: (d.date, d.number))
    rows = []
    for doc in docs:
        lines = [
            {
                "code": line.product.code if line.product else None,
                "name": line.product.name if line.product else None,
                "quantity": line.quantity,
                "price": line.unit_price,
            }
            for line in doc.details
        ]
        rows.append([
            doc.number,
            _date_text(doc.date),
            doc.account.name if doc.account else "",
            KIND_LABELS.get(doc.kind, doc.kind),
            json.dumps(lines, ensure_ascii=False),
            sum(line.quantity or 0 for line in doc.details),
            doc.subtotal or 0,
            doc.discount or 0,
            doc.tax or 0,
            doc.total or 0,
            STATUS_LABELS.get(doc.status, doc.status),
            doc.notes or "",
        ])
    return rows


def _transaction_rows() -> list[list[Any]]:
    rows = []
    query = db.session.query(Transaction).order_by(Transaction.date.asc(), Transaction.id.asc())
    for tx in query.all():
        rows.append([
            _date_text(tx.date),
            TRANSACTION_TYPE_LABELS.get(tx.type, tx.type),
            tx.account.name if tx.account else "",
            tx.amount,
            PAYMENT_METHOD_LABELS.get(tx.payment_method, tx.payment_method or ""),
            tx.notes or "",
        ])
    return rows


_EXPORTERS = {
    "products": (PRODUCT_HEADERS, _product_rows),
    "accounts": (ACCOUNT_HEADERS, _account_rows),
    "invoices": (INVOICE_HEADERS, _invoice_rows),
    "transactions": (TRANSACTION_HEADERS, _transaction_rows),
}


def export_workbook(entity: str) -> tuple[bytes, str]:
    """Return (xlsx bytes, download filename) for an entity list."""
    if entity not in _EXPORTERS:
        raise SpreadsheetError(f"entity must be one of: {', '.join(EXPORT_ENTITIES)}")
    headers, build_rows = _EXPORTERS[entity]
    sheet_title, filename = SHEET_TITLES[entity]
    return _render(sheet_title, headers, build_rows()), filename


def template_workbook(entity: str) -> tuple[bytes, str]:
    if entity not in TEMPLATES:
        raise SpreadsheetError(f"entity must be one of: {', '.join(TEMPLATES)}")
    sheet_title, headers, sample = TEMPLATES[entity]
    return _render(sheet_title, headers, [sample]), f"{sheet_title}.xlsx"


# =============================================================================
# Reading
# =============================================================================


def _cell_val(cell: Any) -> Any:
    v = getattr(cell, "value", None)
    if v is None:
        return ""
    if isinstance(v, float) and v == int(v):
        return int(v)
    if isinstance(v, str):
        return v.strip()
    return v


def read_rows(stream, max_rows: int = 10_000) -> list[tuple[int, dict[str, Any]]]:
    """
    Read the first sheet into (excel_row_number, {header: value}) pairs.

    The header row is the first of the top 15 rows with at least two
    non-empty cells; fully empty data rows are skipped.
    """
    try:
        wb = openpyxl.load_workbook(stream, read_only=True, data_only=True)
    except Exception as exc:
        raise SpreadsheetError(f"File is not a readable xlsx workbook: {exc}") from exc
    try:
        sheet = wb.worksheets[0]
        all_rows = [[_cell_val(c) for c in row] for row in sheet.iter_rows(min_row=1, max_row=max_rows + 20)]
    finally:
        wb.close()

    if not all_rows:
        return []
    header_index = 0
    for i, row in enumerate(all_rows[:15]):
        if sum(1 for c in row if c not in ("", None)) >= 2:
            header_index = i
            break
    headers = [str(h) for h in all_rows[header_index]]

    records = []
    for offset, row in enumerate(all_rows[header_index + 1:], start=header_index + 2):
        if not any(v not in ("", None) for v in row):
            continue
        records.append((offset, {h: (row[i] if i < len(row) else "") for i, h in enumerate(headers) if h}))
    return records


def _text(record: dict, key: str) -> str | None:
    value = record.get(key)
    if value in (None, ""):
        return None
    return str(value).strip()


def _number(record: dict, key: str):
    value = record.get(key)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{key}' must be a number")


def _category_id_for(name: str | None) -> int | None:
    if not name:
        return None
    category = db.session.query(Category).filter(Category.name == name).first()
    if category is None:
        category = Category(name=name)
        db.session.add(category)
        db.session.flush()
    return category.id


def _import_product(record: dict, *, user_id: int | None) -> str:
    code = _text(record, "الكود")
    if not code:
        raise ValidationError("'الكود' is required")

    payload = {
        "name": _text(record, "الاسم"),
        "categoryId": _category_id_for(_text(record, "الفئة")),
        "unit": _text(record, "الوحدة"),
        "costPrice": _number(record, "سعر التكلفة"),
        "sellPrice1": _number(record, "سعر البيع"),
    }
    payload = {k: v for k, v in payload.items() if v is not None}
    quantity = _number(record, "الكمية")

    existing = db.session.query(Product).filter(Product.code == code).first()
    if existing is None:
        payload["code"] = code
        product = create_product(payload, user_id=user_id)
        outcome = "created"
    else:
        product = update_product(existing.id, payload) if payload else existing
        outcome = "updated"

    if quantity is not None:
        if quantity < 0:
            raise ValidationError("'الكمية' must be >= 0")
        warehouse = default_warehouse()
        if warehouse is None:
            raise ValidationError("No default warehouse to hold imported quantities")
        # quantity column is an absolute count, like isCount=true
        set_count(product_id=product.id, warehouse_id=warehouse.id, quantity=quantity, user_id=user_id)
        db.session.commit()
    return outcome


def _import_account(record: dict, *, user_id: int | None) -> str:
    code = _text(record, "الكود")
    if not code:
        raise ValidationError("'الكود' is required")

    type_label = _text(record, "النوع")
    account_type = ACCOUNT_TYPE_BY_LABEL.get(type_label, type_label)
    payload = {
        "name": _text(record, "الاسم"),
        "type": account_type,
        "address": _text(record, "العنوان"),
        "phone": _text(record, "الهاتف"),
        "openingBalance": _number(record, "الرصيد الافتتاحي"),
        "notes": _text(record, "ملاحظات"),
    }
    payload = {k: v for k, v in payload.items() if v is not None}

    existing = db.session.query(Account).filter(Account.code == code).first()
    if existing is None:
        payload["code"] = code
        create_account(payload)
        return "created"
    update_account(existing.id, payload)
    return "updated"


_IMPORTERS = {
    "products": _import_product,
    "accounts": _import_account,
}


def import_workbook(entity: str, stream, *, user_id: int | None = None) -> dict:
    """
    Import rows from an uploaded workbook.

    Returns {"created": n, "updated": n, "errors": [{"row": excel_row, "error": msg}]}.
    """
    if entity not in _IMPORTERS:
        raise SpreadsheetError(f"entity must be one of: {', '.join(IMPORT_ENTITIES)}")
    importer = _IMPORTERS[entity]

    result = {"created": 0, "updated": 0, "errors": []}
    for row_number, record in read_rows(stream):
        try:
            outcome = importer(record, user_id=user_id)
        except (ValidationError, ConflictError, NotFoundError) as exc:
            db.session.rollback()
            result["errors"].append({"row": row_number, "error": str(exc)})
            continue
        result[outcome] += 1

    logger.info(
        "Imported %s: created=%d updated=%d errors=%d",
        entity, result["created"], result["updated"], len(result["errors"]),
    )
    return result
