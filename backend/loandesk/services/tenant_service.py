"""
Group Scoping Helpers

Every read and write of tenant data starts from scoped_query(), which puts
the group predicate first. Callers add their own filters after it.

A record in another group is indistinguishable from a missing one: both
raise NotFoundError with the same message.
"""

from ..errors import NotFoundError
from ..extensions import db


def scoped_query(model, group_id: int):
    if group_id is None:
        raise ValueError("group_id is required for scoped queries")
    return db.session.query(model).filter(model.group_id == group_id)


def get_in_group(model, record_id: int, group_id: int, label: str):
    """Load one record by id within a group, or raise NotFoundError."""
    record = scoped_query(model, group_id).filter(model.id == record_id).first()
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record
