# Overview: Service-layer operations for company settings; single-row read/update.

from __future__ import annotations

from ..extensions import db
from ..models import Settings, Warehouse
from ..validation import ModelValidationPolicy, ValidationError, validate_payload


SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "company_name", "address", "phone", "email", "tax_number", "logo",
        "default_warehouse_id", "currency", "currency_symbol", "currency_position",
        "decimal_places", "financial_year_start", "date_format", "time_format",
        "combine_purchase_views", "allow_negative_stock",
    },
    choices={"currency_position": {"before", "after"}},
)


def get_settings() -> Settings:
    """Return the settings row, creating it with defaults on first access."""
    settings = db.session.query(Settings).order_by(Settings.id.asc()).first()
    if settings is None:
        settings = Settings(company_name="")
        db.session.add(settings)
        db.session.commit()
    return settings


def update_settings(payload: dict) -> Settings:
    patch = validate_payload(model=Settings, payload=payload, policy=SETTINGS_POLICY, partial=True)

    places = patch.get("decimal_places")
    if places is not None and not 0 <= places <= 4:
        raise ValidationError("decimal_places must be between 0 and 4")

    warehouse_id = patch.get("default_warehouse_id")
    if warehouse_id is not None and db.session.get(Warehouse, warehouse_id) is None:
        raise ValidationError(f"Warehouse {warehouse_id} not found")

    settings = get_settings()
    for key, value in patch.items():
        setattr(settings, key, value)
    db.session.commit()
    return settings


def negative_stock_allowed() -> bool:
    # Read-only: called mid-transaction by the posting workflow, so never commits
    settings = db.session.query(Settings).order_by(Settings.id.asc()).first()
    return True if settings is None else bool(settings.allow_negative_stock)
