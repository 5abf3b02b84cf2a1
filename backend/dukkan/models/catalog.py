from __future__ import annotations

from ..extensions import db
from dukkan.time_utils import to_utc_z


class Category(db.Model):
    """
    Product category tree.

    At most one category carries is_default; new products without a category
    land there. parent_id must never form a cycle (enforced in catalog_service).
    """
    __tablename__ = "categories"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parentId": self.parent_id,
            "description": self.description,
            "isDefault": self.is_default,
            "createdAt": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    code is the business-facing unique key (used by spreadsheet import to
    match rows). Four sell price tiers mirror the price lists printed on
    invoices; the tier actually charged is stored on each document line.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_barcode", "barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(128), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    cost_price = db.Column(db.Float, nullable=False, default=0.0)
    sell_price_1 = db.Column(db.Float, nullable=False, default=0.0)
    sell_price_2 = db.Column(db.Float, nullable=True)
    sell_price_3 = db.Column(db.Float, nullable=True)
    sell_price_4 = db.Column(db.Float, nullable=True)

    unit = db.Column(db.String(32), nullable=False, default="طن")
    description = db.Column(db.Text, nullable=True)
    min_stock = db.Column(db.Float, nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "barcode": self.barcode,
            "categoryId": self.category_id,
            "costPrice": self.cost_price,
            "sellPrice1": self.sell_price_1,
            "sellPrice2": self.sell_price_2,
            "sellPrice3": self.sell_price_3,
            "sellPrice4": self.sell_price_4,
            "unit": self.unit,
            "description": self.description,
            "minStock": self.min_stock,
            "isActive": self.is_active,
            "versionId": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    manager = db.Column(db.String(255), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "manager": self.manager,
            "isDefault": self.is_default,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
