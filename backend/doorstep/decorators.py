# Overview: Request identity decorators for agent and admin API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .models import Agent


def require_agent(f):
    """
    Resolve the acting delivery agent.

    The upstream authentication gateway sets X-Agent-Id after verifying the
    agent's credentials; this service only trusts that header.

    Sets:
    - g.current_agent: the Agent row
    - g.agent_id: its id

    Returns 401 if:
    - No X-Agent-Id header, or it is not an integer
    - Agent does not exist
    - Agent is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-Agent-Id") or "").strip()
        if not raw:
            return jsonify({"error": {"code": "UNAUTHENTICATED", "message": "Agent authentication required"}}), 401

        try:
            agent_id = int(raw)
        except ValueError:
            return jsonify({"error": {"code": "UNAUTHENTICATED", "message": "Invalid agent id"}}), 401

        agent = db.session.get(Agent, agent_id)
        if agent is None or not agent.is_active:
            return jsonify({"error": {"code": "UNAUTHENTICATED", "message": "Agent not found or inactive"}}), 401

        g.current_agent = agent
        g.agent_id = agent.id
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require X-Admin-Token to match ADMIN_API_TOKEN."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN") or ""
        supplied = request.headers.get("X-Admin-Token") or ""

        if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
            current_app.logger.warning("Rejected admin request to %s", request.path)
            return jsonify({"error": {"code": "FORBIDDEN", "message": "Admin access required"}}), 403

        return f(*args, **kwargs)

    return decorated_function
