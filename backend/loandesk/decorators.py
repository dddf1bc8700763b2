# Overview: Request interceptors for API routes; identity, roles and kiosk gating.

"""
Request Pipeline

Each view is wrapped in an ordered chain of interceptors:

    require_auth -> require_roles(...) -> kiosk_context [-> kiosk_restricted] -> view

Each interceptor either short-circuits with a JSON error response or calls
the next one. The per-request state they share is a frozen RequestContext
on flask.g: require_auth creates it, kiosk_context replaces it with an
updated copy, nothing mutates it.

Kiosk-exempt views (borrower self-registration, loan checkout and return)
are simply routed through USER_CHAIN rather than KIOSK_RESTRICTED_CHAIN.
"""

from dataclasses import dataclass, replace
from functools import wraps
from urllib.parse import unquote

from flask import current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .errors import UnauthenticatedError, error_response
from .extensions import db
from .services import kiosk_service, permission_service, token_service
from .services.auth_service import ROLE_USER
from .services.permission_service import PermissionDeniedError, RoleMode
from .services.token_service import Identity


KIOSK_RESTRICTED_MESSAGE = "this action requires admin access - please unlock to continue"


@dataclass(frozen=True)
class RequestContext:
    identity: Identity
    # Set by kiosk_context. kiosk_restricted refuses to run until it is.
    kiosk_resolved: bool = False
    is_kiosk: bool = False
    is_kiosk_unlocked: bool = False

    @property
    def user(self):
        return self.identity.user

    @property
    def user_id(self) -> int:
        return self.identity.user_id

    @property
    def group_id(self) -> int:
        return self.identity.group_id

    @property
    def token(self) -> str:
        return self.identity.token


def current_context() -> RequestContext:
    """The request's context. Raises RuntimeError if require_auth has not run."""
    ctx = g.get("request_context")
    if ctx is None:
        raise RuntimeError("request context requested before require_auth ran")
    return ctx


def extract_token() -> str | None:
    """
    Find the bearer credential on the current request.

    First match wins: auth cookie, Authorization header, access_token
    query parameter. A leading "Bearer " is stripped from whichever is used.
    """
    token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if not token:
        token = request.headers.get("Authorization")
    if not token:
        token = request.args.get("access_token")
        if token:
            token = unquote(token)
    if not token:
        return None

    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    token = token.strip()
    return token or None


def _audit(event_type: str, reason: str, ctx: RequestContext | None = None, action: str | None = None) -> None:
    permission_service.log_security_event(
        user_id=ctx.user_id if ctx else None,
        group_id=ctx.group_id if ctx else None,
        event_type=event_type,
        success=False,
        resource=request.path,
        action=action or request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def require_auth(f):
    """
    Resolve the caller's identity and establish the RequestContext.

    Returns 401 if no token is supplied, or if the token is unknown,
    expired, or belongs to a deactivated user or group.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get("request_context") is not None:
            raise RuntimeError("require_auth ran twice for one request")

        token = extract_token()
        if not token:
            return error_response(UnauthenticatedError("authorization header or query is required"))

        identity = token_service.resolve_token(token)
        if identity is None:
            _audit("INVALID_TOKEN", "Unknown or expired token")
            return error_response(UnauthenticatedError("valid authorization token is required"))

        g.request_context = RequestContext(identity=identity)
        return f(*args, **kwargs)

    return decorated_function


def require_roles(mode: RoleMode, *roles: str):
    """
    Require the caller to hold any (OR) or every (AND) of the given roles.

    Roles are read fresh from the token on each request.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get("request_context") is None:
                raise RuntimeError("require_roles used before require_auth")
            ctx = g.request_context

            try:
                permission_service.check_roles(ctx.token, roles, mode)
            except PermissionDeniedError as e:
                _audit("ROLE_DENIED", str(e), ctx, action=f"{mode.value}:{','.join(roles)}")
                return jsonify({"error": str(e)}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def kiosk_context(f):
    """
    Attach the caller's kiosk flags to the RequestContext.

    A failed kiosk lookup is logged and the request continues without
    kiosk mode.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get("request_context") is None:
            raise RuntimeError("kiosk_context used before require_auth")
        ctx = g.request_context

        try:
            session = kiosk_service.get_by_user(ctx.user_id)
        except SQLAlchemyError:
            current_app.logger.exception("Kiosk session lookup failed for user %s", ctx.user_id)
            db.session.rollback()
            session = None

        if session is not None and session.is_active:
            ctx = replace(ctx, kiosk_resolved=True, is_kiosk=True, is_kiosk_unlocked=session.is_unlocked())
        else:
            ctx = replace(ctx, kiosk_resolved=True)
        g.request_context = ctx

        return f(*args, **kwargs)

    return decorated_function


def kiosk_restricted(f):
    """Block the view while the caller is in kiosk mode and not unlocked."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = g.get("request_context")
        if ctx is None or not ctx.kiosk_resolved:
            raise RuntimeError("kiosk_restricted used before kiosk_context")

        if ctx.is_kiosk and not ctx.is_kiosk_unlocked:
            _audit("KIOSK_RESTRICTED", "Kiosk mode is locked", ctx)
            return jsonify({"error": KIOSK_RESTRICTED_MESSAGE}), 403

        return f(*args, **kwargs)

    return decorated_function


def with_chain(*interceptors):
    """Compose interceptors onto a view; the first one listed runs first."""
    def decorator(f):
        for interceptor in reversed(interceptors):
            f = interceptor(f)
        return f
    return decorator


USER_CHAIN = (require_auth, require_roles(RoleMode.OR, ROLE_USER), kiosk_context)
KIOSK_RESTRICTED_CHAIN = USER_CHAIN + (kiosk_restricted,)
