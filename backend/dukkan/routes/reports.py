# Overview: Flask API routes for reports and dashboard stats; parses input and returns JSON responses.

# backend/dukkan/routes/reports.py
"""
Reporting routes (read-only).

GET /api/reports?type=sales|purchases|inventory|customers|suppliers&startDate=&endDate=
GET /api/finance/reports?type=income|balance|cashflow|accounts&startDate=&endDate=
GET /api/stats
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth
from ..services import report_service
from . import DOMAIN_ERRORS, error_response, period_args

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/reports")
@require_auth
def reports_route():
    report_type = request.args.get("type")
    if not report_type:
        return {"error": "Report type is required"}, 400
    try:
        start, end = period_args()
        return report_service.build_report(report_type, start=start, end=end)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build %s report", report_type)
        return {"error": "Error generating report"}, 500


@reports_bp.get("/finance/reports")
@require_auth
def finance_reports_route():
    report_type = request.args.get("type")
    if not report_type:
        return {"error": "Report type is required"}, 400
    try:
        start, end = period_args()
        return report_service.build_finance_report(report_type, start=start, end=end)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build %s finance report", report_type)
        return {"error": "Error generating report"}, 500


@reports_bp.get("/stats")
@require_auth
def stats_route():
    return report_service.dashboard_stats()
