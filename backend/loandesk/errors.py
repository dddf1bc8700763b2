# Overview: Error taxonomy shared by services and routes, and its HTTP mapping.

"""
Error Taxonomy

Services raise these; routes translate them with error_response().
Storage errors (sqlalchemy.exc.*) are NOT wrapped here. They propagate to
the route boundary and surface as a generic 500.

NotFound covers both "absent" and "belongs to another group" so callers
can never probe for another tenant's records.
"""

from flask import jsonify


class LoanDeskError(Exception):
    """Base class for expected, client-visible failures."""
    status_code = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    default_message = "Internal server error"


class ValidationError(LoanDeskError, ValueError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(LoanDeskError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(LoanDeskError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(LoanDeskError):
    status_code = 404
    default_message = "Not found"


class ConflictError(LoanDeskError):
    """409-level business rule conflict (e.g., loan already returned)."""
    status_code = 409
    default_message = "Conflict"


def error_response(exc: LoanDeskError):
    return jsonify({"error": str(exc)}), exc.status_code
