# Overview: Flask API routes for sign-in; issues and revokes bearer tokens.

"""
Authentication API routes

Login returns the token in the body and also sets it as an HttpOnly cookie,
so browser clients and API clients share one credential.
"""

from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from ..decorators import USER_CHAIN, current_context, with_chain
from ..errors import LoanDeskError, error_response
from ..services import auth_service, permission_service, token_service
from loandesk.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/users")


@auth_bp.post("/login")
def login_route():
    """
    Request body: {"username": "a@x.com", "password": "..."}
    ("email" is accepted in place of "username")

    Returns:
        200: {"token", "expiresAt", "user"}
        400: missing fields
        401: invalid credentials
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason="Invalid credentials",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Invalid credentials"}), 401

        record, token = token_service.create_token(user.id)

        response = jsonify({
            "token": token,
            "expiresAt": to_utc_z(record.expires_at),
            "user": user.to_dict(),
        })
        response.set_cookie(
            current_app.config["AUTH_COOKIE_NAME"],
            token,
            max_age=int(timedelta(hours=current_app.config["AUTH_TOKEN_TTL_HOURS"]).total_seconds()),
            httponly=True,
            samesite="Lax",
        )
        return response, 200

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@with_chain(*USER_CHAIN)
def logout_route():
    """Revoke the presented token and clear the cookie."""
    try:
        ctx = current_context()
        token_service.revoke_token(ctx.token)

        response = jsonify({"message": "Logged out"})
        response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to log out")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/self")
@with_chain(*USER_CHAIN)
def self_route():
    """The signed-in user, their roles and kiosk flags."""
    ctx = current_context()
    roles = permission_service.get_token_roles(ctx.token)
    return jsonify({
        "user": ctx.user.to_dict(),
        "roles": sorted(roles),
        "isKiosk": ctx.is_kiosk,
        "isKioskUnlocked": ctx.is_kiosk_unlocked,
    }), 200
