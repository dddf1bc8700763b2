# Overview: Flask API routes for kiosk mode; activation, unlock windows and status.

"""
Kiosk API Routes

Every endpoint responds with the caller's kiosk status:
    {"isActive": bool, "isUnlocked": bool, "unlockedUntil": "...Z"}
unlockedUntil is omitted unless an unlock window is open.

The unlock window length is clamped here, from config:
missing or non-positive -> KIOSK_UNLOCK_DEFAULT_MINUTES,
above the ceiling -> KIOSK_UNLOCK_MAX_MINUTES.
"""

from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from ..decorators import USER_CHAIN, current_context, with_chain
from ..errors import ConflictError, ForbiddenError, LoanDeskError, ValidationError, error_response
from ..services import auth_service, kiosk_service, permission_service
from ..services.kiosk_service import KioskStatus


kiosk_bp = Blueprint("kiosk", __name__, url_prefix="/api/v1/kiosk")


def clamp_unlock_minutes(raw) -> int:
    """Turn a client-supplied durationMinutes into the window actually granted."""
    default = int(current_app.config["KIOSK_UNLOCK_DEFAULT_MINUTES"])
    ceiling = int(current_app.config["KIOSK_UNLOCK_MAX_MINUTES"])

    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError("durationMinutes must be an integer")
    if raw <= 0:
        return default
    return min(raw, ceiling)


@kiosk_bp.post("/activate")
@with_chain(*USER_CHAIN)
def activate_route():
    try:
        ctx = current_context()
        session = kiosk_service.activate(ctx.user_id)
        return jsonify(KioskStatus.from_session(session).to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to activate kiosk mode")
        return jsonify({"error": "Internal server error"}), 500


@kiosk_bp.post("/deactivate")
@with_chain(*USER_CHAIN)
def deactivate_route():
    try:
        ctx = current_context()
        session = kiosk_service.deactivate(ctx.user_id)
        return jsonify(KioskStatus.from_session(session).to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to deactivate kiosk mode")
        return jsonify({"error": "Internal server error"}), 500


@kiosk_bp.post("/unlock")
@with_chain(*USER_CHAIN)
def unlock_route():
    """
    Open a temporary unlock window. Requires the caller's own password.

    Request body:
    {
        "password": "...",
        "durationMinutes": 5  (optional, clamped to [1, 30])
    }

    Returns:
        200: Kiosk status with unlockedUntil
        400: Missing password or bad duration
        403: Wrong password
        409: Kiosk mode is not active
    """
    try:
        ctx = current_context()
        data = request.get_json(silent=True) or {}

        password = data.get("password")
        if not password or not isinstance(password, str):
            raise ValidationError("password is required")

        minutes = clamp_unlock_minutes(data.get("durationMinutes"))

        if not auth_service.verify_password(password, ctx.user.password_hash):
            permission_service.log_security_event(
                user_id=ctx.user_id,
                group_id=ctx.group_id,
                event_type="KIOSK_UNLOCK_FAILED",
                success=False,
                resource=request.path,
                action="UNLOCK",
                reason="Invalid password",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            raise ForbiddenError("invalid password")

        session = kiosk_service.unlock(ctx.user_id, timedelta(minutes=minutes))
        if session is None:
            raise ConflictError("no active kiosk session to unlock")

        return jsonify(KioskStatus.from_session(session).to_dict()), 200

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to unlock kiosk")
        return jsonify({"error": "Internal server error"}), 500


@kiosk_bp.post("/lock")
@with_chain(*USER_CHAIN)
def lock_route():
    try:
        ctx = current_context()
        session = kiosk_service.lock(ctx.user_id)
        return jsonify(KioskStatus.from_session(session).to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to lock kiosk")
        return jsonify({"error": "Internal server error"}), 500


@kiosk_bp.get("/status")
@with_chain(*USER_CHAIN)
def status_route():
    try:
        ctx = current_context()
        return jsonify(kiosk_service.get_status(ctx.user_id).to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to get kiosk status")
        return jsonify({"error": "Internal server error"}), 500
