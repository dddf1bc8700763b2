# Overview: Service-layer operations for loans; checkout, extension, return and queries.

"""
Loan Lifecycle Service

LIFECYCLE:
- create: open loan (returned_at NULL), checked_out_at = now
- update: due_at and notes only
- return: open -> returned, exactly once
- delete: administrative hard delete, any state

TENANT ISOLATION: every query starts from scoped_query(Loan, group_id).
A loan in another group raises the same NotFoundError as a missing loan.

CONCURRENCY: return is a single conditional UPDATE guarded by
"returned_at IS NULL". Of two concurrent returns exactly one matches a
row; the other sees rowcount 0 and gets a ConflictError.

Every successful mutation publishes TOPIC_LOAN_MUTATION after commit.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import joinedload

from ..errors import ConflictError, NotFoundError, ValidationError
from ..events import TOPIC_LOAN_MUTATION
from ..extensions import db, events
from ..models import Borrower, Item, Loan
from .tenant_service import get_in_group, scoped_query
from loandesk.time_utils import utcnow

logger = logging.getLogger(__name__)


def _publish(group_id: int) -> None:
    events.publish(TOPIC_LOAN_MUTATION, group_id)


def _loans(group_id: int):
    """Group-scoped loan query with item and borrower joined for views."""
    return scoped_query(Loan, group_id).options(
        joinedload(Loan.item),
        joinedload(Loan.borrower),
    )


def _open():
    return Loan.returned_at.is_(None)


# =============================================================================
# QUERIES
# =============================================================================

def get_one_by_group(group_id: int, loan_id: int) -> Loan:
    loan = _loans(group_id).filter(Loan.id == loan_id).first()
    if loan is None:
        raise NotFoundError("Loan not found")
    return loan


def get_active_loans(group_id: int) -> list[Loan]:
    return _loans(group_id).filter(_open()).order_by(Loan.due_at.asc(), Loan.id.asc()).all()


def get_overdue_loans(group_id: int, now: datetime | None = None) -> list[Loan]:
    """Open loans whose due_at has passed, evaluated against the clock at call time."""
    if now is None:
        now = utcnow()
    return (
        _loans(group_id)
        .filter(_open(), Loan.due_at < now)
        .order_by(Loan.due_at.asc(), Loan.id.asc())
        .all()
    )


def get_loans_by_borrower(group_id: int, borrower_id: int) -> list[Loan]:
    get_in_group(Borrower, borrower_id, group_id, "Borrower")
    return (
        _loans(group_id)
        .filter(Loan.borrower_id == borrower_id)
        .order_by(Loan.checked_out_at.desc(), Loan.id.desc())
        .all()
    )


def get_loans_by_item(group_id: int, item_id: int) -> list[Loan]:
    get_in_group(Item, item_id, group_id, "Item")
    return (
        _loans(group_id)
        .filter(Loan.item_id == item_id)
        .order_by(Loan.checked_out_at.desc(), Loan.id.desc())
        .all()
    )


def get_active_loan_for_item(group_id: int, item_id: int) -> Loan | None:
    """Most recent open loan of an item, or None when it is on the shelf."""
    get_in_group(Item, item_id, group_id, "Item")
    return (
        _loans(group_id)
        .filter(Loan.item_id == item_id, _open())
        .order_by(Loan.checked_out_at.desc(), Loan.id.desc())
        .first()
    )


# =============================================================================
# MUTATIONS
# =============================================================================

def create_loan(group_id: int, user_id: int | None, data: dict, kiosk_action: bool = False) -> Loan:
    """
    Check an item out to a borrower.

    data: validated patch with item_id, borrower_id, due_at and optional
    notes / quantity. A missing or zero quantity becomes 1.

    The item and borrower must be in the caller's group. Stock levels and
    borrower active status are not checked.
    """
    for key in ("item_id", "borrower_id", "due_at"):
        if data.get(key) is None:
            raise ValidationError(f"{key} is required")

    quantity = data.get("quantity") or 0
    if quantity < 0:
        raise ValidationError("quantity must be >= 1")
    if quantity == 0:
        quantity = 1

    get_in_group(Item, data["item_id"], group_id, "Item")
    get_in_group(Borrower, data["borrower_id"], group_id, "Borrower")

    now = utcnow()
    loan = Loan(
        group_id=group_id,
        item_id=data["item_id"],
        borrower_id=data["borrower_id"],
        checked_out_at=now,
        due_at=data["due_at"],
        notes=data.get("notes") or "",
        quantity=quantity,
        kiosk_action=kiosk_action,
        checked_out_by_id=user_id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(loan)
    db.session.commit()

    logger.info("Loan %s created in group %s (kiosk=%s)", loan.id, group_id, kiosk_action)
    _publish(group_id)
    return get_one_by_group(group_id, loan.id)


def return_loan(
    group_id: int,
    user_id: int | None,
    loan_id: int,
    return_notes: str = "",
    kiosk_action: bool = False,
) -> Loan:
    """
    Mark an open loan returned.

    kiosk_action records the return as made from a kiosk session
    (return_kiosk_action); the checkout's own kiosk_action is left as is.

    Raises:
        NotFoundError: loan absent or in another group
        ConflictError: loan already returned (first return is left intact)
    """
    now = utcnow()
    values = {
        "returned_at": now,
        "return_notes": return_notes or "",
        "returned_by_id": user_id,
        "updated_at": now,
    }
    if kiosk_action:
        values["return_kiosk_action"] = True

    updated = (
        scoped_query(Loan, group_id)
        .filter(Loan.id == loan_id, _open())
        .update(values, synchronize_session=False)
    )

    if updated == 0:
        db.session.rollback()
        exists = scoped_query(Loan, group_id).filter(Loan.id == loan_id).count()
        if exists:
            raise ConflictError("Loan has already been returned")
        raise NotFoundError("Loan not found")

    db.session.commit()

    logger.info("Loan %s returned in group %s", loan_id, group_id)
    _publish(group_id)
    return get_one_by_group(group_id, loan_id)


def update_loan(group_id: int, loan_id: int, data: dict) -> Loan:
    """Extend a loan. Only due_at and notes are ever written."""
    values = {k: data[k] for k in ("due_at", "notes") if k in data}
    if "due_at" in values and values["due_at"] is None:
        raise ValidationError("due_at cannot be null")
    if "notes" in values and values["notes"] is None:
        values["notes"] = ""
    if not values:
        raise ValidationError("Nothing to update: provide dueAt and/or notes")

    values["updated_at"] = utcnow()
    updated = (
        scoped_query(Loan, group_id)
        .filter(Loan.id == loan_id)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        db.session.rollback()
        raise NotFoundError("Loan not found")

    db.session.commit()
    _publish(group_id)
    return get_one_by_group(group_id, loan_id)


def delete_loan(group_id: int, loan_id: int) -> None:
    """Hard delete regardless of state."""
    deleted = (
        scoped_query(Loan, group_id)
        .filter(Loan.id == loan_id)
        .delete(synchronize_session=False)
    )
    if deleted == 0:
        db.session.rollback()
        raise NotFoundError("Loan not found")

    db.session.commit()

    logger.info("Loan %s deleted in group %s", loan_id, group_id)
    _publish(group_id)
