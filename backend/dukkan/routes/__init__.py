# Overview: Shared helpers for API blueprints (error mapping and query parsing).

from flask import request

from ..time_utils import parse_period
from ..validation import ConflictError, NotFoundError, ValidationError

DOMAIN_ERRORS = (ValidationError, NotFoundError, ConflictError)


def error_response(exc: Exception):
    """Map a domain exception to its JSON error body and HTTP status."""
    if isinstance(exc, NotFoundError):
        return {"error": str(exc).strip("'\"")}, 404
    if isinstance(exc, ConflictError):
        return {"error": str(exc)}, 409
    return {"error": str(exc)}, 400


def bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def period_args() -> tuple:
    """(start, end) from ?startDate=&endDate=; raises ValidationError on bad dates."""
    try:
        return parse_period(request.args.get("startDate"), request.args.get("endDate"))
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {exc}") from exc
