# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/garage/routes/auth.py
"""
Authentication API routes

- Login returns a bearer token scoped to one company
- Logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "company_code": "GARAGE",
        "username": "clerk",  (or email)
        "password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        company_code = data.get("company_code")
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([company_code, username, password]):
            return jsonify({"error": "company_code, username/email and password required"}), 400

        user = auth_service.authenticate(company_code, username, password)
        if not user:
            current_app.logger.info("Failed login for %r in company %r", username, company_code)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "company_id": session.company_id,
            "is_override_role": auth_service.is_override_role(user.role),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "company_id": g.company_id,
        "is_override_role": auth_service.is_override_role(user.role),
    }), 200
