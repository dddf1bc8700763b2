from __future__ import annotations

from datetime import datetime

from ..extensions import db
from loandesk.time_utils import to_utc_z, utcnow


class KioskSession(db.Model):
    """
    Per-user kiosk mode state.

    At most one row per user, enforced by uq_kiosk_sessions_user. The unique
    constraint (not a prior read) is what resolves concurrent activations.

    "Unlocked" is never stored: it is derived from unlocked_until at read
    time, so an expired window needs no timer to lock it again.
    """
    __tablename__ = "kiosk_sessions"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_kiosk_sessions_user"),
        db.Index("ix_kiosk_sessions_is_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Null = locked. Only meaningful while is_active.
    unlocked_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship(
        "User",
        backref=db.backref("kiosk_session", uselist=False, lazy=True, cascade="all, delete-orphan"),
    )

    def is_unlocked(self, now: datetime | None = None) -> bool:
        if self.unlocked_until is None:
            return False
        if now is None:
            now = utcnow()
        return now < self.unlocked_until

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "isActive": self.is_active,
            "isUnlocked": self.is_unlocked(),
            "unlockedUntil": to_utc_z(self.unlocked_until),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
