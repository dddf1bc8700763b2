"""
Kiosk session state machine tests.

Verifies every transition, the derived "unlocked" flag and its boundary,
and that concurrent first activations never produce a second row.
"""

from datetime import timedelta

import pytest

from loandesk.errors import ValidationError
from loandesk.models import KioskSession
from loandesk.services import kiosk_service
from loandesk.services.kiosk_service import KioskStatus


def _rows(db_session, user_id):
    return db_session.query(KioskSession).filter_by(user_id=user_id).count()


class TestActivate:

    def test_activate_then_get_is_active_and_locked(self, user_a, clock):
        kiosk_service.activate(user_a.id)

        session = kiosk_service.get_by_user(user_a.id)
        assert session.is_active is True
        assert session.is_unlocked() is False
        assert session.unlocked_until is None

    def test_activate_is_idempotent(self, db_session, user_a, clock):
        first = kiosk_service.activate(user_a.id)
        second = kiosk_service.activate(user_a.id)

        assert first.id == second.id
        assert _rows(db_session, user_a.id) == 1
        assert KioskStatus.from_session(second) == KioskStatus(is_active=True, is_unlocked=False)

    def test_activate_relocks_an_unlocked_session(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=10))

        session = kiosk_service.activate(user_a.id)
        assert session.is_unlocked() is False
        assert session.unlocked_until is None

    def test_activate_reuses_deactivated_row(self, db_session, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.deactivate(user_a.id)

        session = kiosk_service.activate(user_a.id)
        assert session.is_active is True
        assert _rows(db_session, user_a.id) == 1

    def test_activate_tolerates_losing_the_insert_race(self, db_session, monkeypatch, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.deactivate(user_a.id)

        real_by_user = kiosk_service._by_user
        calls = {"n": 0}

        def racing_by_user(user_id):
            # First UPDATE sees no row, as if the competing insert landed
            # between our UPDATE and our INSERT.
            calls["n"] += 1
            if calls["n"] == 1:
                return real_by_user(-1)
            return real_by_user(user_id)

        monkeypatch.setattr(kiosk_service, "_by_user", racing_by_user)

        session = kiosk_service.activate(user_a.id)

        assert session.is_active is True
        assert _rows(db_session, user_a.id) == 1

    def test_sessions_are_per_user(self, db_session, user_a, user_b, clock):
        kiosk_service.activate(user_a.id)

        assert kiosk_service.get_by_user(user_b.id) is None
        assert kiosk_service.get_status(user_b.id).is_active is False


class TestUnlock:

    def test_unlock_opens_window(self, user_a, clock):
        kiosk_service.activate(user_a.id)

        session = kiosk_service.unlock(user_a.id, timedelta(minutes=5))

        assert session.unlocked_until == clock.now + timedelta(minutes=5)
        assert session.is_unlocked() is True

    @pytest.mark.parametrize("minutes", [1, 5, 17, 30])
    def test_window_expires_exactly_at_deadline(self, user_a, clock, minutes):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=minutes))

        clock.advance(minutes=minutes, seconds=-1)
        assert kiosk_service.get_status(user_a.id).is_unlocked is True

        clock.advance(seconds=1)
        assert kiosk_service.get_status(user_a.id).is_unlocked is False

        clock.advance(seconds=1)
        assert kiosk_service.get_status(user_a.id).is_unlocked is False

    def test_no_upper_bound_in_state_machine(self, user_a, clock):
        kiosk_service.activate(user_a.id)

        session = kiosk_service.unlock(user_a.id, timedelta(hours=3))

        assert session.unlocked_until == clock.now + timedelta(hours=3)

    def test_unlock_without_session_returns_none(self, db_session, user_a, clock):
        assert kiosk_service.unlock(user_a.id, timedelta(minutes=5)) is None
        assert _rows(db_session, user_a.id) == 0

    def test_unlock_inactive_session_returns_none(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.deactivate(user_a.id)

        assert kiosk_service.unlock(user_a.id, timedelta(minutes=5)) is None
        assert kiosk_service.get_by_user(user_a.id).unlocked_until is None

    def test_unlock_rejects_non_positive_duration(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        with pytest.raises(ValidationError):
            kiosk_service.unlock(user_a.id, timedelta(0))

    def test_unlock_again_replaces_window(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=30))

        session = kiosk_service.unlock(user_a.id, timedelta(minutes=1))

        assert session.unlocked_until == clock.now + timedelta(minutes=1)


class TestLockAndDeactivate:

    def test_lock_keeps_kiosk_active(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=5))

        session = kiosk_service.lock(user_a.id)

        assert session.is_active is True
        assert session.is_unlocked() is False
        assert session.unlocked_until is None

    def test_lock_without_session_is_noop(self, db_session, user_a):
        assert kiosk_service.lock(user_a.id) is None
        assert _rows(db_session, user_a.id) == 0

    def test_deactivate_clears_unlock_window(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=5))

        session = kiosk_service.deactivate(user_a.id)

        assert session.is_active is False
        assert session.unlocked_until is None

    def test_deactivate_without_session_is_noop(self, db_session, user_a):
        assert kiosk_service.deactivate(user_a.id) is None
        assert _rows(db_session, user_a.id) == 0

    def test_session_removed_with_user(self, db_session, user_a):
        kiosk_service.activate(user_a.id)

        db_session.delete(user_a)
        db_session.commit()

        assert db_session.query(KioskSession).count() == 0


class TestStatusShape:

    def test_locked_status_omits_unlocked_until(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        assert kiosk_service.get_status(user_a.id).to_dict() == {"isActive": True, "isUnlocked": False}

    def test_unlocked_status_includes_deadline(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=5))

        assert kiosk_service.get_status(user_a.id).to_dict() == {
            "isActive": True,
            "isUnlocked": True,
            "unlockedUntil": "2026-03-02T09:05:00Z",
        }

    def test_expired_window_omits_deadline(self, user_a, clock):
        kiosk_service.activate(user_a.id)
        kiosk_service.unlock(user_a.id, timedelta(minutes=5))
        clock.advance(minutes=6)

        assert "unlockedUntil" not in kiosk_service.get_status(user_a.id).to_dict()

    def test_no_session_status(self, user_a):
        assert kiosk_service.get_status(user_a.id).to_dict() == {"isActive": False, "isUnlocked": False}
