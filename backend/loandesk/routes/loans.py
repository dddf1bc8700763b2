# Overview: Flask API routes for loan operations; parses input and returns JSON responses.

"""
Loan API Routes

LIFECYCLE:
- POST /loans                 checkout (open)
- PUT /loans/<id>             extend: dueAt and notes only
- POST /loans/<id>/return     open -> returned, once
- DELETE /loans/<id>          administrative correction

KIOSK MODE:
- checkout and return stay open in a locked kiosk; a kiosk checkout sets
  kioskAction, a kiosk return sets returnKioskAction
- PUT and DELETE require an unlocked kiosk

Item-centric views (/items/<id>/loans, /items/<id>/current-loan) live on
items_bp in this module.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import KIOSK_RESTRICTED_CHAIN, USER_CHAIN, current_context, with_chain
from ..errors import LoanDeskError, error_response
from ..models import Loan
from ..services import loan_service
from ..validation import (
    LOAN_CREATE_POLICY,
    LOAN_RETURN_POLICY,
    LOAN_UPDATE_POLICY,
    enforce_rules_loan,
    validate_payload,
)
from loandesk.time_utils import utcnow


loans_bp = Blueprint("loans", __name__, url_prefix="/api/v1/loans")
items_bp = Blueprint("items", __name__, url_prefix="/api/v1/items")


# =============================================================================
# READS
# =============================================================================

@loans_bp.get("")
@with_chain(*USER_CHAIN)
def list_loans_route():
    """Open loans in the caller's group, soonest due first. Returned loans are not listed."""
    try:
        ctx = current_context()
        loans = loan_service.get_active_loans(ctx.group_id)
        now = utcnow()
        return jsonify([loan.to_summary_dict(now) for loan in loans]), 200
    except Exception:
        current_app.logger.exception("Failed to list loans")
        return jsonify({"error": "Internal server error"}), 500


@loans_bp.get("/overdue")
@with_chain(*USER_CHAIN)
def list_overdue_loans_route():
    try:
        ctx = current_context()
        now = utcnow()
        loans = loan_service.get_overdue_loans(ctx.group_id, now)
        return jsonify([loan.to_summary_dict(now) for loan in loans]), 200
    except Exception:
        current_app.logger.exception("Failed to list overdue loans")
        return jsonify({"error": "Internal server error"}), 500


@loans_bp.get("/<int:loan_id>")
@with_chain(*USER_CHAIN)
def get_loan_route(loan_id: int):
    try:
        ctx = current_context()
        loan = loan_service.get_one_by_group(ctx.group_id, loan_id)
        return jsonify(loan.to_dict()), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get loan")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHECKOUT / RETURN (kiosk-exempt)
# =============================================================================

@loans_bp.post("")
@with_chain(*USER_CHAIN)
def create_loan_route():
    """
    Check an item out to a borrower.

    Request body:
    {
        "itemId": 1,
        "borrowerId": 2,
        "dueAt": "2026-01-31T17:00:00Z",
        "quantity": 1,  (optional, default: 1)
        "notes": ""  (optional)
    }

    Returns:
        201: Loan created
        400: Invalid input
        404: Item or borrower not in this group
    """
    try:
        ctx = current_context()
        patch = validate_payload(
            model=Loan,
            payload=request.get_json(silent=True),
            policy=LOAN_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_loan(patch)

        loan = loan_service.create_loan(
            group_id=ctx.group_id,
            user_id=ctx.user_id,
            data=patch,
            kiosk_action=ctx.is_kiosk,
        )
        return jsonify(loan.to_dict()), 201

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create loan")
        return jsonify({"error": "Internal server error"}), 500


@loans_bp.post("/<int:loan_id>/return")
@with_chain(*USER_CHAIN)
def return_loan_route(loan_id: int):
    """
    Return an open loan.

    Request body (optional): {"returnNotes": "ok"}

    Returns:
        200: Loan returned
        404: Loan not found
        409: Loan already returned
    """
    try:
        ctx = current_context()
        patch = validate_payload(
            model=Loan,
            payload=request.get_json(silent=True),
            policy=LOAN_RETURN_POLICY,
            partial=True,
        )

        loan = loan_service.return_loan(
            group_id=ctx.group_id,
            user_id=ctx.user_id,
            loan_id=loan_id,
            return_notes=patch.get("return_notes") or "",
            kiosk_action=ctx.is_kiosk,
        )
        return jsonify(loan.to_dict()), 200

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return loan")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ADMINISTRATIVE (kiosk-restricted)
# =============================================================================

@loans_bp.put("/<int:loan_id>")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def update_loan_route(loan_id: int):
    """Request body: {"dueAt": "...", "notes": "..."} (either or both)."""
    try:
        ctx = current_context()
        patch = validate_payload(
            model=Loan,
            payload=request.get_json(silent=True),
            policy=LOAN_UPDATE_POLICY,
            partial=True,
        )

        loan = loan_service.update_loan(ctx.group_id, loan_id, patch)
        return jsonify(loan.to_dict()), 200

    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update loan")
        return jsonify({"error": "Internal server error"}), 500


@loans_bp.delete("/<int:loan_id>")
@with_chain(*KIOSK_RESTRICTED_CHAIN)
def delete_loan_route(loan_id: int):
    try:
        ctx = current_context()
        loan_service.delete_loan(ctx.group_id, loan_id)
        return "", 204
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete loan")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ITEM VIEWS
# =============================================================================

@items_bp.get("/<int:item_id>/loans")
@with_chain(*USER_CHAIN)
def get_item_loans_route(item_id: int):
    try:
        ctx = current_context()
        loans = loan_service.get_loans_by_item(ctx.group_id, item_id)
        now = utcnow()
        return jsonify([loan.to_summary_dict(now) for loan in loans]), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list item loans")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.get("/<int:item_id>/current-loan")
@with_chain(*USER_CHAIN)
def get_item_current_loan_route(item_id: int):
    """The item's open loan, or null when it is on the shelf. 404 only for an unknown item."""
    try:
        ctx = current_context()
        loan = loan_service.get_active_loan_for_item(ctx.group_id, item_id)
        if loan is None:
            return jsonify(None), 200
        return jsonify(loan.to_dict()), 200
    except LoanDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get current loan for item")
        return jsonify({"error": "Internal server error"}), 500
