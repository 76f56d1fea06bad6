# Overview: Flask API routes for purchase return operations; parses input and returns JSON responses.

# backend/garage/routes/returns.py
"""
Purchase Return API Routes

WHY: Expose the purchase return approval workflow over REST.

DESIGN:
- Create returns against a purchase order (stock leaves immediately)
- Approve / reject one level at a time; the override role may collapse
  the remaining levels where the level allows it
- Resubmit a return rejected at level 1
- Approve/reject responses carry "warnings" for dependent writes
  (inventory, audit log, notifications) that failed after the approval
  itself was recorded

ERRORS:
- 400 validation / invalid state
- 403 role not allowed at the current level
- 404 return not found
- 409 stale view (expected_sequence_no mismatch or concurrent write)
- 422 workflow or status vocabulary misconfigured
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import return_service, status_service
from ..services.concurrency import LedgerConflictError
from ..services.return_service import ReturnError, ReturnNotFoundError
from ..services.workflow_engine import (
    WorkflowConfigurationError,
    WorkflowPermissionError,
    WorkflowStateError,
)
from ..validation import ValidationError, coerce_int, optional_int, optional_text


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _service_error(e: Exception):
    """Map a service exception to a JSON error response."""
    if isinstance(e, ReturnNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, WorkflowPermissionError):
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    if isinstance(e, LedgerConflictError):
        return jsonify({"error": str(e), "conflict": True}), 409
    if isinstance(e, WorkflowConfigurationError):
        return jsonify({"error": str(e)}), 422
    return jsonify({"error": str(e)}), 400


SERVICE_ERRORS = (
    ReturnError,
    ValidationError,
    LedgerConflictError,
    WorkflowConfigurationError,
    WorkflowPermissionError,
    WorkflowStateError,
)


# =============================================================================
# LISTING
# =============================================================================

@returns_bp.get("")
@require_auth
def list_returns_route():
    """
    List purchase returns.

    Query params:
        status: status sub-category (e.g. APPROVAL_PENDING)
        search: matches return number or supplier
        page, page_size: pagination (defaults 1, 20)
        sort: created_at | return_number | supplier_name | total_value
        direction: asc | desc
        mine: 1 to list only returns awaiting the caller's role
    """
    try:
        args = request.args
        awaiting_role_id = g.current_user.role_id if args.get("mine") in ("1", "true") else None
        if args.get("mine") in ("1", "true") and awaiting_role_id is None:
            return jsonify({"items": [], "total_count": 0, "page": 1, "page_size": 0}), 200

        result = return_service.list_returns_by_status(
            company_id=g.company_id,
            status=args.get("status") or None,
            search=args.get("search") or None,
            page=coerce_int(args.get("page", "1"), "page", minimum=1),
            page_size=coerce_int(args.get("page_size", "20"), "page_size", minimum=1),
            sort=args.get("sort", "created_at"),
            direction=args.get("direction", "desc"),
            awaiting_role_id=awaiting_role_id,
        )
        return jsonify(result), 200

    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to list purchase returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/statuses")
@require_auth
def list_statuses_route():
    statuses = status_service.list_statuses(g.company_id)
    return jsonify({"statuses": [s.to_dict() for s in statuses]}), 200


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return jsonify(return_service.get_return_summary(g.company_id, return_id)), 200
    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATION
# =============================================================================

@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Create a purchase return.

    Request body:
    {
        "purchase_order_id": 42,
        "supplier_name": "Acme Parts",  (optional)
        "remark": "Damaged on arrival",  (optional)
        "items": [
            {"item_id": 7, "returned_qty": 2, "unit_price": 12.50, "return_reason": "Cracked"}
        ]
    }

    Returns:
        201: Return created (Pending at level 1, or completed when no workflow is configured)
        400: Invalid input or insufficient stock
        422: Workflow or status vocabulary misconfigured
    """
    try:
        data = request.get_json(silent=True) or {}
        purchase_order_id = data.get("purchase_order_id")
        if purchase_order_id is None:
            return jsonify({"error": "purchase_order_id required"}), 400

        outcome = return_service.create_return(
            company_id=g.company_id,
            user_id=g.current_user.id,
            purchase_order_id=coerce_int(purchase_order_id, "purchase_order_id", minimum=1),
            items=data.get("items") or [],
            supplier_name=optional_text(data, "supplier_name"),
            remark=optional_text(data, "remark"),
        )
        return jsonify(outcome.to_dict()), 201

    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WORKFLOW ACTIONS
# =============================================================================

@returns_bp.post("/<int:return_id>/approve")
@require_auth
def approve_return_route(return_id: int):
    """
    Approve the current level.

    Request body:
    {
        "comment": "ok",  (optional)
        "expected_sequence_no": 3  (optional; last sequence number the client saw)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = return_service.approve_return(
            return_id=return_id,
            actor=g.current_user,
            comment=optional_text(data, "comment"),
            expected_sequence_no=optional_int(data, "expected_sequence_no", minimum=0),
        )
        return jsonify(outcome.to_dict()), 200

    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to approve purchase return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_auth
def reject_return_route(return_id: int):
    """
    Reject the current level.

    Request body:
    {
        "comment": "missing receipt",  (required)
        "expected_sequence_no": 3  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = return_service.reject_return(
            return_id=return_id,
            actor=g.current_user,
            comment=optional_text(data, "comment"),
            expected_sequence_no=optional_int(data, "expected_sequence_no", minimum=0),
        )
        return jsonify(outcome.to_dict()), 200

    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to reject purchase return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/resubmit")
@require_auth
def resubmit_return_route(return_id: int):
    try:
        data = request.get_json(silent=True) or {}
        outcome = return_service.resubmit_return(
            return_id=return_id,
            actor=g.current_user,
            remark=optional_text(data, "remark"),
            expected_sequence_no=optional_int(data, "expected_sequence_no", minimum=0),
        )
        return jsonify(outcome.to_dict()), 200

    except SERVICE_ERRORS as e:
        return _service_error(e)
    except Exception:
        current_app.logger.exception("Failed to resubmit purchase return")
        return jsonify({"error": "Internal server error"}), 500
