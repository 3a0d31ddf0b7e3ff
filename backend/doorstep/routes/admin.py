# backend/doorstep/routes/admin.py
"""
Admin operations API Routes

- POST /api/admin/deliveries/generate       - Generate deliveries for one date (idempotent)
- POST /api/admin/deliveries/backfill       - Generate for an inclusive date range
- GET  /api/admin/deliveries/unassigned     - Coverage gaps for a date
- GET  /api/admin/deliveries/summary        - Counts per status over a date range
- GET  /api/admin/deliveries/:id/integrity  - Proof/reason/timestamp invariant report

Generation is normally driven by a scheduler calling the generate endpoint
(or `flask deliveries generate`) once per day.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import DeliveryCoreError, ValidationError
from ..decorators import require_admin
from doorstep import error_response
from doorstep.services import delivery_service, generation_service, lifecycle_service
from doorstep.time_utils import parse_iso_date, to_iso_date, today


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _parse_date(value, field: str):
    try:
        return parse_iso_date(value) if isinstance(value, str) else None
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


@admin_bp.post("/deliveries/generate")
@require_admin
def generate_deliveries_route():
    """
    Request body (optional):
        {"date": "2024-01-01"}      // default: today

    Response:
        {"date": "2024-01-01", "created": 12}
    """
    data = request.get_json(silent=True) or {}
    try:
        day = _parse_date(data.get("date"), "date") or today()
        created = generation_service.generate_for_date(day)
        return jsonify({"date": to_iso_date(day), "created": created}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to generate deliveries")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@admin_bp.post("/deliveries/backfill")
@require_admin
def backfill_deliveries_route():
    """
    Request body:
        {"start": "2024-01-01", "end": "2024-01-07"}

    Response:
        {"days": {"2024-01-01": 3, ...}, "created": 17}
    """
    data = request.get_json(silent=True) or {}
    try:
        start = _parse_date(data.get("start"), "start")
        end = _parse_date(data.get("end"), "end")
        if start is None or end is None:
            raise ValidationError("start and end are required")

        per_day = generation_service.backfill_range(start, end)
        return jsonify({
            "days": {to_iso_date(d): n for d, n in per_day.items()},
            "created": sum(per_day.values()),
        }), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to backfill deliveries")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@admin_bp.get("/deliveries/unassigned")
@require_admin
def unassigned_deliveries_route():
    try:
        day = _parse_date(request.args.get("date"), "date") or today()
        rows = delivery_service.get_unassigned_deliveries(day)
        return jsonify({
            "date": to_iso_date(day),
            "deliveries": [d.to_dict() for d in rows],
            "count": len(rows),
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)


@admin_bp.get("/deliveries/summary")
@require_admin
def delivery_summary_route():
    """
    Query params:
        start, end (ISO dates, default: today), agent_id (optional)
    """
    try:
        start = _parse_date(request.args.get("start"), "start") or today()
        end = _parse_date(request.args.get("end"), "end") or start
        summary = delivery_service.delivery_status_summary(
            start, end, agent_id=request.args.get("agent_id", type=int)
        )
        return jsonify(summary), 200
    except DeliveryCoreError as e:
        return error_response(e)


@admin_bp.get("/deliveries/<int:delivery_id>/integrity")
@require_admin
def delivery_integrity_route(delivery_id: int):
    try:
        delivery = delivery_service.get_delivery(delivery_id)
        return jsonify(lifecycle_service.check_delivery_integrity(delivery)), 200
    except DeliveryCoreError as e:
        return error_response(e)
