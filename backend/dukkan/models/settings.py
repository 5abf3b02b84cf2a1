from __future__ import annotations

from ..extensions import db
from dukkan.time_utils import to_utc_z


class Settings(db.Model):
    """
    Company-wide settings. Exactly one row, created with defaults on first read.

    allow_negative_stock=False makes the posting workflow reject any movement
    that would leave an inventory row below zero.
    """
    __tablename__ = "settings"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_name = db.Column(db.String(255), nullable=False, default="")
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    logo = db.Column(db.Text, nullable=True)

    default_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True)

    currency = db.Column(db.String(8), nullable=False, default="EGP")
    currency_symbol = db.Column(db.String(16), nullable=False, default="ج.م")
    currency_position = db.Column(db.String(8), nullable=False, default="after")
    decimal_places = db.Column(db.Integer, nullable=False, default=2)
    financial_year_start = db.Column(db.DateTime(timezone=True), nullable=True)
    date_format = db.Column(db.String(32), nullable=False, default="DD/MM/YYYY")
    time_format = db.Column(db.String(32), nullable=False, default="HH:mm")
    combine_purchase_views = db.Column(db.Boolean, nullable=False, default=True)
    allow_negative_stock = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyName": self.company_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "taxNumber": self.tax_number,
            "logo": self.logo,
            "defaultWarehouseId": self.default_warehouse_id,
            "currency": self.currency,
            "currencySymbol": self.currency_symbol,
            "currencyPosition": self.currency_position,
            "decimalPlaces": self.decimal_places,
            "financialYearStart": to_utc_z(self.financial_year_start),
            "dateFormat": self.date_format,
            "timeFormat": self.time_format,
            "combinePurchaseViews": self.combine_purchase_views,
            "allowNegativeStock": self.allow_negative_stock,
            "updatedAt": to_utc_z(self.updated_at),
        }
