from __future__ import annotations
from datetime import datetime
import re
from loandesk.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Deliberately loose: one "@", no whitespace, a dot in the domain.
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MAX_NOTES_LENGTH = 1000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: column keys clients are allowed to set (security boundary)
    - required_on_create: column keys required for POST (and non-blank if text)
    - aliases: wire name -> column key (e.g. "dueAt" -> "due_at")
    - max_lengths: limits for Text columns, which carry no length of their own
    - ignored_fields: wire names accepted but dropped (e.g. an echoed "id")
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)
    max_lengths: dict[str, int] = field(default_factory=dict)
    ignored_fields: set[str] = field(default_factory=lambda: {"id"})


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name, with only writable fields.

    partial=False: create/replace semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    translated = {
        policy.aliases.get(k, k): v
        for k, v in payload.items()
        if k not in policy.ignored_fields
    }

    required = policy.required_on_create
    if not partial:
        missing = sorted(f for f in required if f not in translated)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in translated.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in translated.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if k in required and isinstance(val, str) and val == "":
            raise ValidationError(f"{k} cannot be blank")

        max_length = policy.max_lengths.get(k)
        if max_length is None and isinstance(col.type, String):
            max_length = col.type.length
        if max_length and isinstance(val, str) and len(val) > max_length:
            raise ValidationError(f"{k} exceeds max length {max_length}")

        patch[k] = val

    return patch


# =============================================================================
# POLICIES
# =============================================================================

BORROWER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "organization", "student_id", "notes"},
    required_on_create={"name", "email"},
    aliases={"studentId": "student_id"},
    max_lengths={"notes": MAX_NOTES_LENGTH},
)

BORROWER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "organization", "student_id", "notes", "is_active"},
    required_on_create={"name", "email"},
    aliases={"studentId": "student_id", "isActive": "is_active"},
    max_lengths={"notes": MAX_NOTES_LENGTH},
)

LOAN_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "borrower_id", "due_at", "notes", "quantity"},
    required_on_create={"item_id", "borrower_id", "due_at"},
    aliases={"itemId": "item_id", "borrowerId": "borrower_id", "dueAt": "due_at"},
    max_lengths={"notes": MAX_NOTES_LENGTH},
)

LOAN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"due_at", "notes"},
    aliases={"dueAt": "due_at"},
    max_lengths={"notes": MAX_NOTES_LENGTH},
)

LOAN_RETURN_POLICY = ModelValidationPolicy(
    writable_fields={"return_notes"},
    aliases={"returnNotes": "return_notes"},
    max_lengths={"return_notes": MAX_NOTES_LENGTH},
)


def enforce_rules_borrower(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    if "email" in patch and not EMAIL_RE.match(patch["email"] or ""):
        raise ValidationError("email must be a valid email address")


def enforce_rules_loan(patch: dict) -> None:
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 1")
