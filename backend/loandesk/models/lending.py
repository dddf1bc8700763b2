from __future__ import annotations

from datetime import datetime

from ..extensions import db
from loandesk.time_utils import to_utc_z, utcnow


class Item(db.Model):
    """
    Physical inventory item that can be lent out.

    Item management lives elsewhere; loans only need the identity, display
    name and asset id for their joined views.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_group_id", "group_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    asset_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    group = db.relationship("Group", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "groupId": self.group_id,
            "name": self.name,
            "assetId": self.asset_id,
            "quantity": self.quantity,
        }


class Borrower(db.Model):
    """
    A loan counterparty. NOT a system user: no credentials, no roles.

    self_registered marks borrowers created from a kiosk terminal rather
    than by a signed-in administrator.
    """
    __tablename__ = "borrowers"
    __table_args__ = (
        db.Index("ix_borrowers_group_id", "group_id"),
        db.Index("ix_borrowers_group_active", "group_id", "is_active"),
        db.Index("ix_borrowers_name", "name"),
        db.Index("ix_borrowers_email", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=False, default="")
    organization = db.Column(db.String(255), nullable=False, default="")
    student_id = db.Column(db.String(100), nullable=False, default="")
    notes = db.Column(db.Text, nullable=False, default="")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    self_registered = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    group = db.relationship("Group", backref=db.backref("borrowers", lazy=True))
    loans = db.relationship(
        "Loan",
        back_populates="borrower",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_summary_dict(self) -> dict:
        """List shape: omits notes to keep payloads small."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "organization": self.organization,
            "studentId": self.student_id,
            "isActive": self.is_active,
            "selfRegistered": self.self_registered,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_dict(self, active_loans: int = 0, total_loans: int = 0) -> dict:
        data = self.to_summary_dict()
        data["notes"] = self.notes
        data["activeLoans"] = active_loans
        data["totalLoans"] = total_loans
        return data


class Loan(db.Model):
    """
    One checkout of an item to a borrower.

    LIFECYCLE:
    - open: returned_at IS NULL
    - returned (terminal): returned_at set exactly once

    item_id and borrower_id never change after creation. Only due_at, notes
    and the return fields are ever updated. "Overdue" is derived, never stored.
    """
    __tablename__ = "loans"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_loans_quantity_positive"),
        db.Index("ix_loans_group_returned", "group_id", "returned_at"),
        db.Index("ix_loans_group_due", "group_id", "due_at"),
        db.Index("ix_loans_item", "item_id"),
        db.Index("ix_loans_borrower", "borrower_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    borrower_id = db.Column(db.Integer, db.ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False)

    checked_out_at = db.Column(db.DateTime(timezone=True), nullable=False)
    due_at = db.Column(db.DateTime(timezone=True), nullable=False)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=False, default="")
    return_notes = db.Column(db.Text, nullable=False, default="")

    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Checkout made from a kiosk session. The return has its own flag.
    kiosk_action = db.Column(db.Boolean, nullable=False, default=False)
    return_kiosk_action = db.Column(db.Boolean, nullable=False, default=False)

    checked_out_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    returned_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    group = db.relationship("Group", backref=db.backref("loans", lazy=True))
    item = db.relationship(
        "Item",
        backref=db.backref("loans", lazy=True, cascade="all, delete-orphan"),
    )
    borrower = db.relationship("Borrower", back_populates="loans")
    checked_out_by = db.relationship("User", foreign_keys=[checked_out_by_id])
    returned_by = db.relationship("User", foreign_keys=[returned_by_id])

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.returned_at is not None:
            return False
        if now is None:
            now = utcnow()
        return now > self.due_at

    def to_summary_dict(self, now: datetime | None = None) -> dict:
        return {
            "id": self.id,
            "checkedOutAt": to_utc_z(self.checked_out_at),
            "dueAt": to_utc_z(self.due_at),
            "returnedAt": to_utc_z(self.returned_at),
            "quantity": self.quantity,
            "isOverdue": self.is_overdue(now),
            "kioskAction": self.kiosk_action,
            "returnKioskAction": self.return_kiosk_action,
            "itemId": self.item_id,
            "itemName": self.item.name if self.item else None,
            "borrowerId": self.borrower_id,
            "borrowerName": self.borrower.name if self.borrower else None,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_dict(self, now: datetime | None = None) -> dict:
        data = self.to_summary_dict(now)
        data.update({
            "notes": self.notes,
            "returnNotes": self.return_notes,
            "itemAssetId": self.item.asset_id if self.item else None,
            "borrowerEmail": self.borrower.email if self.borrower else None,
            "borrowerPhone": self.borrower.phone if self.borrower else None,
            "checkedOutBy": self.checked_out_by_id,
            "returnedBy": self.returned_by_id,
        })
        return data
