# backend/doorstep/routes/coverage.py
"""
Coverage registry API Routes

- GET  /api/coverage/areas                        - List coverage areas
- GET  /api/coverage/areas/:id                    - One area with its active agents
- POST /api/coverage/areas                        - Create an area with postal codes
- PUT  /api/coverage/areas/:id/postal-codes       - Replace an area's postal codes (cascades)
- GET  /api/coverage/agents                       - List agents
- POST /api/coverage/agents                       - Create an agent in an area
- PATCH /api/coverage/agents/:id                  - Update agent name/phone
- POST /api/coverage/agents/:id/area              - Move an agent to another area (cascades)
- POST /api/coverage/agents/:id/deactivate        - Deactivate an agent (cascades)
- GET  /api/coverage/resolve/:postal_code         - Which agent would receive this postal code

SECURITY:
- All routes require the admin token; agents never edit coverage
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import DeliveryCoreError, ValidationError
from ..decorators import require_admin
from doorstep import error_response
from doorstep.services import assignment_service, coverage_service, reassignment_service


coverage_bp = Blueprint("coverage", __name__, url_prefix="/api/coverage")


def _require_int(data: dict, field: str) -> int:
    value = data.get(field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


@coverage_bp.get("/areas")
@require_admin
def list_areas_route():
    areas = coverage_service.list_areas()
    return jsonify({"areas": [a.to_dict() for a in areas]}), 200


@coverage_bp.post("/areas")
@require_admin
def create_area_route():
    """
    Request body:
        {"name": "North", "postal_codes": ["110001", "110002"]}
    """
    data = request.get_json(silent=True) or {}
    try:
        area = coverage_service.create_area(data.get("name"), data.get("postal_codes"))
        return jsonify({"area": area.to_dict()}), 201
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create coverage area")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.get("/areas/<int:area_id>")
@require_admin
def get_area_route(area_id: int):
    try:
        area = coverage_service.get_area(area_id)
        return jsonify({
            "area": area.to_dict(),
            "agents": [a.to_dict() for a in coverage_service.get_agents_by_area(area.id)],
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)


@coverage_bp.put("/areas/<int:area_id>/postal-codes")
@require_admin
def update_area_postal_codes_route(area_id: int):
    """
    Replace the postal-code set of an area.

    Pending deliveries of the area's agents whose postal code is no longer
    covered are re-resolved in the same transaction.

    Response:
        {"area": {...}, "reassigned_count": 3}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = reassignment_service.update_area_postal_codes(area_id, data.get("postal_codes"))
        return jsonify(result.to_dict()), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update area postal codes")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.get("/agents")
@require_admin
def list_agents_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    area_id = request.args.get("area_id", type=int)

    if area_id is not None:
        agents = coverage_service.get_agents_by_area(area_id)
    else:
        agents = coverage_service.list_agents(active_only=active_only)
    return jsonify({"agents": [a.to_dict() for a in agents]}), 200


@coverage_bp.post("/agents")
@require_admin
def create_agent_route():
    """
    Request body:
        {"name": "Ravi", "phone": "+919800000001", "area_id": 1}
    """
    data = request.get_json(silent=True) or {}
    try:
        agent = coverage_service.create_agent(
            data.get("name"),
            data.get("phone"),
            _require_int(data, "area_id"),
        )
        return jsonify({"agent": agent.to_dict()}), 201
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create agent")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.patch("/agents/<int:agent_id>")
@require_admin
def update_agent_route(agent_id: int):
    """
    Update name and/or phone. Area moves use POST /agents/:id/area.
    """
    data = request.get_json(silent=True) or {}
    try:
        agent = coverage_service.update_agent(agent_id, name=data.get("name"), phone=data.get("phone"))
        return jsonify({"agent": agent.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update agent")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.post("/agents/<int:agent_id>/area")
@require_admin
def reassign_agent_area_route(agent_id: int):
    """
    Move an agent to a different coverage area.

    Request body:
        {"area_id": 2}

    Response:
        {"agent": {...}, "reassigned_count": 4}

    Error responses:
        404: Agent not found
        400: Target area missing or has no postal codes
    """
    data = request.get_json(silent=True) or {}
    try:
        result = reassignment_service.reassign_agent_area(agent_id, _require_int(data, "area_id"))
        return jsonify(result.to_dict()), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reassign agent area")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.post("/agents/<int:agent_id>/deactivate")
@require_admin
def deactivate_agent_route(agent_id: int):
    try:
        result = reassignment_service.deactivate_agent(agent_id)
        return jsonify(result.to_dict()), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate agent")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@coverage_bp.get("/resolve/<postal_code>")
@require_admin
def resolve_postal_code_route(postal_code: str):
    """
    Response:
        {"postal_code": "110001", "agent": {...} | null}
    """
    agent = assignment_service.find_agent_for_postal_code(postal_code)
    return jsonify({
        "postal_code": postal_code.strip(),
        "agent": agent.to_dict() if agent else None,
    }), 200
