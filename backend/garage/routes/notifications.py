# Overview: Flask API routes for the notification inbox; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import notification_service
from ..services.notification_service import NotificationError


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread") in ("1", "true")
    rows = notification_service.list_for_user(g.current_user.id, unread_only=unread_only)
    return jsonify({"notifications": [n.to_dict() for n in rows]}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        row = notification_service.mark_read(notification_id, g.current_user.id)
    except NotificationError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"notification": row.to_dict()}), 200
