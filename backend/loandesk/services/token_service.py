# Overview: Service-layer operations for bearer tokens; issue, resolve and revoke.

"""
Bearer Token Management

Tokens are cryptographically random, stored only as SHA-256 hashes, and
expire after AUTH_TOKEN_TTL_HOURS.

resolve_token() is the identity step of every authenticated request. It
returns None (never raises) for anything that isn't a live credential:
unknown token, expired token, deactivated user, deactivated group.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AuthToken, Group, User
from loandesk.time_utils import utcnow


DEFAULT_TOKEN_TTL = timedelta(hours=24 * 7)


@dataclass(frozen=True)
class Identity:
    """
    Who is calling, as resolved from a bearer token.

    Role membership is deliberately not carried here; the role gate reads it
    fresh for each request.
    """
    user: User
    user_id: int
    group_id: int
    token: str


def generate_token() -> str:
    """64 hex characters (32 bytes of entropy). Sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient for high-entropy tokens."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _token_ttl() -> timedelta:
    try:
        hours = current_app.config.get("AUTH_TOKEN_TTL_HOURS")
    except RuntimeError:
        return DEFAULT_TOKEN_TTL
    if not hours:
        return DEFAULT_TOKEN_TTL
    return timedelta(hours=int(hours))


def create_token(user_id: int) -> tuple[AuthToken, str]:
    """
    Issue a new token for a user.

    Returns (token_record, plaintext_token). The client receives the
    plaintext once; the database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    record = AuthToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + _token_ttl(),
    )
    db.session.add(record)
    db.session.commit()

    return record, plaintext_token


def resolve_token(token: str) -> Identity | None:
    """Map a presented token to an Identity, or None if it is not a live credential."""
    if not token:
        return None

    record = db.session.query(AuthToken).filter_by(token_hash=hash_token(token)).first()
    if record is None:
        return None

    if record.expires_at <= utcnow():
        return None

    user = record.user
    if user is None or not user.is_active:
        return None

    group = db.session.get(Group, user.group_id)
    if group is None or not group.is_active:
        return None

    return Identity(user=user, user_id=user.id, group_id=user.group_id, token=token)


def revoke_token(token: str) -> bool:
    """Delete a token. Returns False if it was unknown."""
    deleted = db.session.query(AuthToken).filter_by(token_hash=hash_token(token)).delete()
    db.session.commit()
    return deleted > 0


def revoke_user_tokens(user_id: int) -> int:
    """Sign a user out everywhere."""
    deleted = db.session.query(AuthToken).filter_by(user_id=user_id).delete()
    db.session.commit()
    return deleted


def cleanup_expired_tokens() -> int:
    """Delete expired tokens. Returns number deleted."""
    deleted = db.session.query(AuthToken).filter(AuthToken.expires_at <= utcnow()).delete()
    db.session.commit()
    return deleted
