# backend/doorstep/routes/deliveries.py
"""
Agent delivery API Routes

These routes serve a delivery agent's working day:
- GET  /api/deliveries/today[?date=]      - Deliveries assigned to the agent for a day
- GET  /api/deliveries/route[?date=]      - Same day's open deliveries in visiting order
- GET  /api/deliveries/history            - Paged history (status/start/end/limit/offset)
- GET  /api/deliveries/failure-reasons    - Fixed failure reason catalog
- GET  /api/deliveries/:id                - One delivery with its audit trail
- POST /api/deliveries/:id/start          - PENDING -> IN_PROGRESS
- POST /api/deliveries/:id/complete       - -> DELIVERED (proof required)
- POST /api/deliveries/:id/fail           - -> FAILED (reason code required)

SECURITY:
- All routes require an active agent (X-Agent-Id)
- The acting agent is taken from the request identity (g.agent_id), NOT the body
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import DeliveryCoreError, UnauthorizedError, ValidationError
from ..decorators import require_agent
from doorstep import error_response
from doorstep.services import delivery_service, lifecycle_service, routing_service
from doorstep.time_utils import parse_iso_date, to_iso_date, today


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")


def _internal_error(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@deliveries_bp.get("/today")
@require_agent
def daily_deliveries_route():
    """
    Response:
        {"date": "2024-01-01", "deliveries": [...], "count": 3}
    """
    try:
        day = _date_arg("date") or today()
        deliveries = delivery_service.get_daily_deliveries(g.agent_id, day)
        return jsonify({
            "date": to_iso_date(day),
            "deliveries": [d.to_dict() for d in deliveries],
            "count": len(deliveries),
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)
    except Exception:
        return _internal_error("load daily deliveries")


@deliveries_bp.get("/route")
@require_agent
def optimized_route_route():
    """
    Response:
        {
            "date": "2024-01-01",
            "stops": [...],               // PENDING and IN_PROGRESS only
            "total_distance_km": 4.21,
            "estimated_minutes": 23
        }
    """
    try:
        day = _date_arg("date") or today()
        plan = routing_service.get_optimized_route(g.agent_id, day)
        return jsonify({"date": to_iso_date(day), **plan.to_dict()}), 200
    except DeliveryCoreError as e:
        return error_response(e)
    except Exception:
        return _internal_error("build optimized route")


@deliveries_bp.get("/history")
@require_agent
def delivery_history_route():
    try:
        limit = request.args.get("limit", default=delivery_service.DEFAULT_HISTORY_LIMIT, type=int)
        offset = request.args.get("offset", default=0, type=int)
        status = request.args.get("status")

        rows, total = delivery_service.get_delivery_history(
            g.agent_id,
            status=status.upper() if status else None,
            start=_date_arg("start"),
            end=_date_arg("end"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "deliveries": [d.to_dict() for d in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)
    except Exception:
        return _internal_error("load delivery history")


@deliveries_bp.get("/failure-reasons")
@require_agent
def failure_reasons_route():
    return jsonify({"reasons": lifecycle_service.list_failure_reason_codes()}), 200


@deliveries_bp.get("/<int:delivery_id>")
@require_agent
def get_delivery_route(delivery_id: int):
    try:
        delivery = delivery_service.get_delivery(delivery_id)
        if delivery.agent_id != g.agent_id:
            raise UnauthorizedError(f"Agent {g.agent_id} is not assigned to delivery {delivery_id}")
        return jsonify({
            "delivery": delivery.to_dict(),
            "events": [e.to_dict() for e in delivery.events],
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)
    except Exception:
        return _internal_error("load delivery")


@deliveries_bp.post("/<int:delivery_id>/start")
@require_agent
def start_delivery_route(delivery_id: int):
    """
    Start a PENDING delivery (PENDING -> IN_PROGRESS).

    Error responses:
        403: Not the assigned agent
        404: Delivery not found
        409: Not PENDING
    """
    try:
        delivery = lifecycle_service.start_delivery(delivery_id, g.agent_id)
        return jsonify({"delivery": delivery.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("start delivery")


@deliveries_bp.post("/<int:delivery_id>/complete")
@require_agent
def complete_delivery_route(delivery_id: int):
    """
    Mark a delivery DELIVERED.

    Request body:
        {"proof": {"type": "photo", "url": "https://...", "captured_at": "...Z"}}

    Error responses:
        400: Missing or invalid proof
        403: Not the assigned agent
        404: Delivery not found
        409: Already DELIVERED or FAILED
    """
    data = request.get_json(silent=True) or {}
    try:
        delivery = lifecycle_service.complete_delivery(delivery_id, g.agent_id, data.get("proof"))
        return jsonify({"delivery": delivery.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except ValueError:
        db.session.rollback()
        return error_response(ValidationError("proof.captured_at must be an ISO datetime"))
    except Exception:
        return _internal_error("complete delivery")


@deliveries_bp.post("/<int:delivery_id>/fail")
@require_agent
def fail_delivery_route(delivery_id: int):
    """
    Mark a delivery FAILED.

    Request body:
        {"reason": {"code": "CUSTOMER_UNAVAILABLE", "note": "Gate locked"}}

    Error responses:
        400: Missing or unknown reason code, note too long
        403: Not the assigned agent
        404: Delivery not found
        409: Already DELIVERED or FAILED
    """
    data = request.get_json(silent=True) or {}
    try:
        delivery = lifecycle_service.fail_delivery(delivery_id, g.agent_id, data.get("reason"))
        return jsonify({"delivery": delivery.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("fail delivery")
