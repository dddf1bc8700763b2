# Overview: Service-layer operations for kiosk mode; activation, unlock windows and status.

"""
Kiosk Mode State Machine

STATES (per user):
- inactive: no row, or is_active=False
- active + locked: is_active=True and unlocked_until is NULL or in the past
- active + unlocked: is_active=True and now < unlocked_until

TRANSITIONS:
- activate:   * -> active + locked (upsert; repeated calls relock)
- deactivate: * -> inactive (unlock window cleared)
- unlock:     active -> active + unlocked for `duration` (no-op when inactive)
- lock:       * -> locked

Every transition is a single conditional UPDATE (or INSERT for the first
activation), so two concurrent requests cannot leave the row half-applied.
Concurrent first activations race on uq_kiosk_sessions_user; the loser
retries as an UPDATE.

Unlock durations are bounded by the /kiosk/unlock route, not here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import KioskSession
from loandesk.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KioskStatus:
    is_active: bool
    is_unlocked: bool
    unlocked_until: datetime | None = None

    @classmethod
    def from_session(cls, session: KioskSession | None, now: datetime | None = None) -> "KioskStatus":
        if session is None or not session.is_active:
            return cls(is_active=False, is_unlocked=False)
        if now is None:
            now = utcnow()
        unlocked = session.is_unlocked(now)
        return cls(
            is_active=True,
            is_unlocked=unlocked,
            unlocked_until=session.unlocked_until if unlocked else None,
        )

    def to_dict(self) -> dict:
        data = {"isActive": self.is_active, "isUnlocked": self.is_unlocked}
        if self.unlocked_until is not None:
            data["unlockedUntil"] = to_utc_z(self.unlocked_until)
        return data


def _by_user(user_id: int):
    return db.session.query(KioskSession).filter(KioskSession.user_id == user_id)


def get_by_user(user_id: int) -> KioskSession | None:
    return _by_user(user_id).first()


def get_status(user_id: int) -> KioskStatus:
    return KioskStatus.from_session(get_by_user(user_id))


def activate(user_id: int) -> KioskSession:
    """
    Enter kiosk mode, locked. Creates the row on first use.

    Safe to call repeatedly and concurrently: every caller ends with exactly
    one active, locked row for the user.
    """
    now = utcnow()
    values = {"is_active": True, "unlocked_until": None, "updated_at": now}

    updated = _by_user(user_id).update(values, synchronize_session=False)
    if updated == 0:
        db.session.add(KioskSession(
            user_id=user_id,
            is_active=True,
            unlocked_until=None,
            created_at=now,
            updated_at=now,
        ))
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the row first; apply ours on top of it.
            db.session.rollback()
            logger.info("Kiosk session for user %s created concurrently, updating", user_id)
            _by_user(user_id).update(values, synchronize_session=False)
            db.session.commit()
    else:
        db.session.commit()

    logger.info("Kiosk mode activated for user %s", user_id)
    return get_by_user(user_id)


def deactivate(user_id: int) -> KioskSession | None:
    """Leave kiosk mode. Returns None when the user never activated it."""
    updated = _by_user(user_id).update(
        {"is_active": False, "unlocked_until": None, "updated_at": utcnow()},
        synchronize_session=False,
    )
    db.session.commit()
    if updated == 0:
        return None

    logger.info("Kiosk mode deactivated for user %s", user_id)
    return get_by_user(user_id)


def unlock(user_id: int, duration: timedelta) -> KioskSession | None:
    """
    Open an unlock window of `duration` starting now.

    Returns None, without changing anything, when the user has no active
    kiosk session. Unlocking an already-unlocked session replaces the window.
    """
    if duration <= timedelta(0):
        raise ValidationError("unlock duration must be positive")

    now = utcnow()
    updated = _by_user(user_id).filter(KioskSession.is_active.is_(True)).update(
        {"unlocked_until": now + duration, "updated_at": now},
        synchronize_session=False,
    )
    db.session.commit()
    if updated == 0:
        return None

    logger.info("Kiosk unlocked for user %s for %s", user_id, duration)
    return get_by_user(user_id)


def lock(user_id: int) -> KioskSession | None:
    """Close the unlock window immediately. Kiosk mode itself stays on."""
    updated = _by_user(user_id).update(
        {"unlocked_until": None, "updated_at": utcnow()},
        synchronize_session=False,
    )
    db.session.commit()
    if updated == 0:
        return None
    return get_by_user(user_id)
