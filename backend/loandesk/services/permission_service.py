# Overview: Service-layer operations for role checks and the security audit trail.

"""
Role Checks and Security Event Logging

Role membership is resolved from the presented token on every request, so
a role granted or revoked takes effect on the caller's next request.

DESIGN PRINCIPLES:
- Fail closed: deny unless the required roles are held
- Log denials only: grants are not logged
- Events carry group_id so the audit trail is tenant-scoped
"""

import logging
from enum import Enum

from ..errors import ForbiddenError
from ..extensions import db
from ..models import AuthToken, Role, SecurityEvent, UserRole
from .token_service import hash_token
from loandesk.time_utils import utcnow

logger = logging.getLogger(__name__)


class RoleMode(str, Enum):
    """How a list of required roles combines."""
    OR = "OR"    # any one of the roles
    AND = "AND"  # every role


class PermissionDeniedError(ForbiddenError):
    """Raised when the caller lacks the required roles."""
    default_message = "insufficient role"


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    group_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event to the audit trail.

    event_type examples:
    - INVALID_TOKEN
    - ROLE_DENIED
    - KIOSK_RESTRICTED
    - KIOSK_UNLOCK_FAILED
    - LOGIN_FAILED
    - LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        group_id=group_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_token_roles(token: str) -> set[str]:
    """
    Role names held by the user behind a token.

    One query per call, no caching. An unknown token holds no roles.
    """
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .join(AuthToken, AuthToken.user_id == UserRole.user_id)
        .filter(AuthToken.token_hash == hash_token(token))
        .all()
    )
    return {name for (name,) in rows}


def check_roles(token: str, required: tuple[str, ...], mode: RoleMode = RoleMode.OR) -> set[str]:
    """
    Require the token's user to hold the given roles.

    mode=OR passes when any one role is held, mode=AND when all are.
    An empty requirement always passes. Returns the held roles.

    Raises PermissionDeniedError otherwise.
    """
    held = get_token_roles(token)
    if not required:
        return held

    if mode == RoleMode.AND:
        missing = [r for r in required if r not in held]
        if missing:
            raise PermissionDeniedError(f"missing required role: {', '.join(missing)}")
        return held

    if not any(r in held for r in required):
        raise PermissionDeniedError(f"requires one of roles: {', '.join(required)}")
    return held
