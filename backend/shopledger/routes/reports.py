# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import CoreError
from ..services import reporting_service
from ..services.audit_service import list_audit_events


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_actor
def sales_summary_route():
    """?location_id=&start=ISO&end=ISO"""
    try:
        summary = reporting_service.sales_summary(
            org_id=g.org_id,
            location_id=request.args.get("location_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify({"report": summary}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build sales summary")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/audit")
@require_actor
def audit_events_route():
    """?entity_type=&entity_id=&limit="""
    try:
        events = list_audit_events(
            org_id=g.org_id,
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            limit=min(request.args.get("limit", default=100, type=int) or 100, 500),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list audit events")
        return jsonify({"error": "Internal server error"}), 500
