# Overview: Flask API routes for workflow configuration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_override_role
from ..extensions import db
from ..services import workflow_config_service
from ..services.workflow_engine import WorkflowConfigurationError
from ..validation import ValidationError, coerce_int


workflows_bp = Blueprint("workflows", __name__, url_prefix="/api/workflows")


@workflows_bp.get("/<process_name>/levels")
@require_auth
def list_levels_route(process_name: str):
    levels = workflow_config_service.get_levels(g.company_id, process_name)
    return jsonify({
        "process_name": process_name,
        "levels": [level.to_dict() for level in levels],
    }), 200


@workflows_bp.post("/<process_name>/levels")
@require_auth
@require_override_role
def add_level_route(process_name: str):
    """
    Append the next level to a process ladder.

    Request body:
    {
        "role_id": 3,
        "override_enabled": false  (optional)
    }

    Existing levels cannot be edited or reordered.
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("role_id") is None:
            return jsonify({"error": "role_id required"}), 400

        level = workflow_config_service.add_level(
            company_id=g.company_id,
            process_name=process_name,
            role_id=coerce_int(data["role_id"], "role_id", minimum=1),
            override_enabled=bool(data.get("override_enabled", False)),
        )
        db.session.commit()
        return jsonify({"level": level.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except WorkflowConfigurationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 422
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add workflow level")
        return jsonify({"error": "Internal server error"}), 500
