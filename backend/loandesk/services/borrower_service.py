# Overview: Service-layer operations for borrowers; group-scoped directory CRUD.

"""
Borrower Directory Service

Borrowers are loan counterparties, not system users. All reads and writes
are scoped to the caller's group.

Deleting a borrower deletes its loans (ORM cascade), so it publishes a
loan mutation as well as a borrower mutation.
"""

import logging

from sqlalchemy import case, func

from ..errors import ValidationError
from ..events import TOPIC_BORROWER_MUTATION, TOPIC_LOAN_MUTATION
from ..extensions import db, events
from ..models import Borrower, Loan
from .tenant_service import get_in_group, scoped_query

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "phone", "organization", "student_id", "notes", "is_active")


def get_all(group_id: int) -> list[Borrower]:
    return scoped_query(Borrower, group_id).order_by(Borrower.name.asc(), Borrower.id.asc()).all()


def get_active(group_id: int) -> list[Borrower]:
    return (
        scoped_query(Borrower, group_id)
        .filter(Borrower.is_active.is_(True))
        .order_by(Borrower.name.asc(), Borrower.id.asc())
        .all()
    )


def get_one_by_group(group_id: int, borrower_id: int) -> Borrower:
    return get_in_group(Borrower, borrower_id, group_id, "Borrower")


def get_loan_counts(group_id: int, borrower_id: int) -> tuple[int, int]:
    """(active_loans, total_loans) for one borrower, computed now."""
    total, active = (
        scoped_query(Loan, group_id)
        .with_entities(
            func.count(Loan.id),
            func.sum(case((Loan.returned_at.is_(None), 1), else_=0)),
        )
        .filter(Loan.borrower_id == borrower_id)
        .one()
    )
    return int(active or 0), int(total or 0)


def get_detail(group_id: int, borrower_id: int) -> dict:
    """Detail view: summary fields plus notes and loan counts."""
    borrower = get_one_by_group(group_id, borrower_id)
    active, total = get_loan_counts(group_id, borrower_id)
    return borrower.to_dict(active_loans=active, total_loans=total)


def create_borrower(group_id: int, data: dict, self_registered: bool = False) -> Borrower:
    """
    Add a borrower. data is a validated patch (name and email required).

    self_registered marks borrowers created from a kiosk terminal.
    """
    if not data.get("name"):
        raise ValidationError("name is required")
    if not data.get("email"):
        raise ValidationError("email is required")

    borrower = Borrower(
        group_id=group_id,
        name=data["name"],
        email=data["email"],
        phone=data.get("phone") or "",
        organization=data.get("organization") or "",
        student_id=data.get("student_id") or "",
        notes=data.get("notes") or "",
        is_active=True,
        self_registered=self_registered,
    )
    db.session.add(borrower)
    db.session.commit()

    logger.info("Borrower %s created in group %s (self_registered=%s)", borrower.id, group_id, self_registered)
    events.publish(TOPIC_BORROWER_MUTATION, group_id)
    return borrower


def update_borrower(group_id: int, borrower_id: int, data: dict) -> Borrower:
    borrower = get_one_by_group(group_id, borrower_id)

    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if value is None:
            if field in ("name", "email", "is_active"):
                raise ValidationError(f"{field} cannot be null")
            value = ""
        setattr(borrower, field, value)

    db.session.commit()

    events.publish(TOPIC_BORROWER_MUTATION, group_id)
    return borrower


def set_active(group_id: int, borrower_id: int, active: bool) -> Borrower:
    """Deactivate or reactivate a borrower without touching its loans."""
    borrower = get_one_by_group(group_id, borrower_id)
    borrower.is_active = bool(active)
    db.session.commit()

    events.publish(TOPIC_BORROWER_MUTATION, group_id)
    return borrower


def delete_borrower(group_id: int, borrower_id: int) -> None:
    borrower = get_one_by_group(group_id, borrower_id)
    db.session.delete(borrower)
    db.session.commit()

    logger.info("Borrower %s deleted in group %s", borrower_id, group_id)
    events.publish(TOPIC_BORROWER_MUTATION, group_id)
    events.publish(TOPIC_LOAN_MUTATION, group_id)
