# Overview: Flask API routes for the borrower directory; parses input and returns JSON responses.

"""
Borrower API Routes

KIOSK MODE:
- POST /borrowers stays open in a locked kiosk (self-registration) and
  marks the borrower self_registered
- PUT / DELETE / activation changes require an unlocked kiosk
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import KIOSK_RESTRICTED_CHAIN, USER_CHAIN, current_context, with_chain
from ..errors import LoanDeskError, error_response
from ..models import Borrower
from ..services import borrower_service, loan_service
from ..validation import (
    BORROWER_CREATE_POLICY,
    BORROWER_UPDATE_POLICY,
    enforce_rules_borrower,
    validate_payload,
)
from loandesk.time_utils import utcnow


borrowers_bp = Blueprint("borrowers", __name__, url_prefix="/api/v1/borrowers")


# =============================================================================
# READS
# =============================================================================

@borrowers_bp.get("")
@with_chain(*USER_CHAIN)
def list_borrowers_route():
    try:
        ctx = current_context()
        borrowers = borrower_service.get_all(ctx.group_id)
        return jsonify([b.to_summary_dict() for b in borrowers]), 200
    except Exception:
        current_app.logger.exception("Failed to list borrowers")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.get("/active")
@with_chain(*USER_CHAIN)
def list_active_borrowers_route():
    try:
        ctx = current_context()
        borrowers = borrower_service.get_active(ctx.group_id)
        return jsonify([b.to_summary_dict() for b in borrowers]), 200
    except Exception:
        current_app.logger.exception("Failed to list active borrowers")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.get("/<int:borrower_id>")
@with_chain(*USER_CHAIN)
def get_borrower_route(borrower_id: int):
    try:
        ctx = current_context()
        return jsonify(borrower_service.get_detail(ctx.group_id, borrower_id)), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get borrower")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.get("/<int:borrower_id>/loans")
@with_chain(*USER_CHAIN)
def get_borrower_loans_route(borrower_id: int):
    try:
        ctx = current_context()
        loans = loan_service.get_loans_by_borrower(ctx.group_id, borrower_id)
        now = utcnow()
        return jsonify([loan.to_summary_dict(now) for loan in loans]), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list borrower loans")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MUTATIONS
# =============================================================================

@borrowers_bp.post("")
@with_chain(*USER_CHAIN)
def create_borrower_route():
    """
    Register a borrower. Allowed from a locked kiosk.

    Request body:
    {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "", "organization": "", "studentId": "", "notes": ""  (optional)
    }

    Returns:
        201: Borrower created
        400: Invalid input
    """
    try:
        ctx = current_context()
        patch = validate_payload(
            model=Borrower,
            payload=request.get_json(silent=True),
            policy=BORROWER_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_borrower(patch)

        borrower = borrower_service.create_borrower(ctx.group_id, patch, self_registered=ctx.is_kiosk)
        return jsonify(borrower.to_dict()), 201

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create borrower")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.put("/<int:borrower_id>")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def update_borrower_route(borrower_id: int):
    """Replace a borrower's details. name and email are required."""
    try:
        ctx = current_context()
        patch = validate_payload(
            model=Borrower,
            payload=request.get_json(silent=True),
            policy=BORROWER_UPDATE_POLICY,
            partial=False,
        )
        enforce_rules_borrower(patch)

        borrower_service.update_borrower(ctx.group_id, borrower_id, patch)
        return jsonify(borrower_service.get_detail(ctx.group_id, borrower_id)), 200

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update borrower")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.post("/<int:borrower_id>/deactivate")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def deactivate_borrower_route(borrower_id: int):
    try:
        ctx = current_context()
        borrower_service.set_active(ctx.group_id, borrower_id, False)
        return jsonify(borrower_service.get_detail(ctx.group_id, borrower_id)), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate borrower")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.post("/<int:borrower_id>/activate")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def activate_borrower_route(borrower_id: int):
    try:
        ctx = current_context()
        borrower_service.set_active(ctx.group_id, borrower_id, True)
        return jsonify(borrower_service.get_detail(ctx.group_id, borrower_id)), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate borrower")
        return jsonify({"error": "Internal server error"}), 500


@borrowers_bp.delete("/<int:borrower_id>")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def delete_borrower_route(borrower_id: int):
    """Delete a borrower and its loans. 204 on success."""
    try:
        ctx = current_context()
        borrower_service.delete_borrower(ctx.group_id, borrower_id)
        return "", 204
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete borrower")
        return jsonify({"error": "Internal server error"}), 500
