"""
Identity resolution and request pipeline tests.

Verifies:
- Token discovery order: cookie, then Authorization header, then access_token
- Missing vs. invalid token messages (both 401)
- Expired tokens and deactivated users are rejected
- Login / logout / self round trip
- Interceptors fail loudly when composed out of order
"""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest
from flask import g, jsonify

from loandesk.decorators import (
    RequestContext,
    kiosk_restricted,
    require_auth,
    require_roles,
    with_chain,
)
from loandesk.models import AuthToken, SecurityEvent
from loandesk.services import token_service
from loandesk.services.permission_service import RoleMode
from loandesk.time_utils import utcnow

from conftest import PASSWORD, auth_headers, issue_token


SELF = "/api/v1/users/self"


def _cookie_name(app):
    return app.config["AUTH_COOKIE_NAME"]


# =============================================================================
# TOKEN DISCOVERY
# =============================================================================


class TestTokenDiscovery:

    def test_no_token_is_401(self, client, db_session):
        resp = client.get(SELF)
        assert resp.status_code == 401
        assert resp.json["error"] == "authorization header or query is required"

    def test_unknown_token_is_401_with_distinct_message(self, client, user_a):
        resp = client.get(SELF, headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401
        assert resp.json["error"] == "valid authorization token is required"

    def test_unknown_token_is_audited(self, client, db_session, user_a):
        client.get(SELF, headers=auth_headers("not-a-real-token"))
        events = db_session.query(SecurityEvent).filter_by(event_type="INVALID_TOKEN").all()
        assert len(events) == 1
        assert events[0].resource == SELF

    def test_header_token(self, client, user_a, token_a):
        resp = client.get(SELF, headers=auth_headers(token_a))
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_a.id

    def test_query_token(self, client, user_a, token_a):
        resp = client.get(f"{SELF}?access_token={token_a}")
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_a.id

    def test_query_token_with_bearer_prefix(self, client, user_a, token_a):
        resp = client.get(SELF, query_string={"access_token": f"Bearer {token_a}"})
        assert resp.status_code == 200

    def test_cookie_token(self, app, client, user_a, token_a):
        client.set_cookie(_cookie_name(app), token_a)
        resp = client.get(SELF)
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_a.id

    def test_cookie_wins_over_header(self, app, client, user_a, user_b, token_a):
        token_b = issue_token(user_b)
        client.set_cookie(_cookie_name(app), token_a)
        resp = client.get(SELF, headers=auth_headers(token_b))
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_a.id

    def test_header_wins_over_query(self, client, user_a, user_b, token_a):
        token_b = issue_token(user_b)
        resp = client.get(SELF, headers=auth_headers(token_a), query_string={"access_token": token_b})
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_a.id

    def test_invalid_cookie_does_not_fall_back_to_header(self, app, client, user_a, token_a):
        client.set_cookie(_cookie_name(app), "stale-cookie-token")
        resp = client.get(SELF, headers=auth_headers(token_a))
        assert resp.status_code == 401


# =============================================================================
# CREDENTIAL LIFETIME
# =============================================================================


class TestCredentialLifetime:

    def test_expired_token_is_rejected(self, client, db_session, user_a, token_a):
        record = db_session.query(AuthToken).filter_by(user_id=user_a.id).one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        resp = client.get(SELF, headers=auth_headers(token_a))
        assert resp.status_code == 401

    def test_deactivated_user_is_rejected(self, client, db_session, user_a, token_a):
        user_a.is_active = False
        db_session.commit()

        resp = client.get(SELF, headers=auth_headers(token_a))
        assert resp.status_code == 401

    def test_deactivated_group_is_rejected(self, client, db_session, group_a, user_a, token_a):
        group_a.is_active = False
        db_session.commit()

        assert token_service.resolve_token(token_a) is None

    def test_only_token_hash_is_stored(self, db_session, user_a, token_a):
        record = db_session.query(AuthToken).filter_by(user_id=user_a.id).one()
        assert record.token_hash != token_a
        assert record.token_hash == token_service.hash_token(token_a)

    def test_resolve_returns_identity(self, user_a, token_a):
        identity = token_service.resolve_token(token_a)
        assert identity.user_id == user_a.id
        assert identity.group_id == user_a.group_id
        assert identity.token == token_a


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLoginLogout:

    def test_login_returns_token_and_sets_cookie(self, app, client, user_a):
        resp = client.post("/api/v1/users/login", json={"username": user_a.email, "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.json["token"]
        assert len(token) == 64
        assert any(_cookie_name(app) in h for h in resp.headers.getlist("Set-Cookie"))

        # cookie alone now authenticates
        resp = client.get(SELF)
        assert resp.status_code == 200

    def test_login_bad_password(self, client, db_session, user_a):
        resp = client.post("/api/v1/users/login", json={"username": user_a.email, "password": "Wrong123!"})
        assert resp.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_login_missing_fields(self, client, db_session):
        resp = client.post("/api/v1/users/login", json={"username": "x@y.z"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, user_a, token_a):
        resp = client.post("/api/v1/users/logout", headers=auth_headers(token_a))
        assert resp.status_code == 200

        resp = client.get(SELF, headers=auth_headers(token_a))
        assert resp.status_code == 401

    def test_self_reports_roles_and_kiosk_flags(self, client, headers_a):
        resp = client.get(SELF, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["roles"] == ["admin", "user"]
        assert resp.json["isKiosk"] is False
        assert resp.json["isKioskUnlocked"] is False


# =============================================================================
# PIPELINE COMPOSITION
# =============================================================================


class TestPipelineComposition:

    def test_with_chain_runs_interceptors_in_listed_order(self):
        seen = []

        def tag(name):
            def interceptor(f):
                def wrapped(*args, **kwargs):
                    seen.append(name)
                    return f(*args, **kwargs)
                return wrapped
            return interceptor

        @with_chain(tag("first"), tag("second"), tag("third"))
        def view():
            seen.append("view")
            return "ok"

        assert view() == "ok"
        assert seen == ["first", "second", "third", "view"]

    def test_role_gate_without_auth_raises(self, app, db_session):
        @require_roles(RoleMode.OR, "user")
        def view():
            return jsonify({})

        with app.test_request_context("/"):
            with pytest.raises(RuntimeError):
                view()

    def test_kiosk_gate_without_kiosk_context_raises(self, app, user_a, token_a):
        @with_chain(require_auth, kiosk_restricted)
        def view():
            return jsonify({})

        with app.test_request_context("/", headers=auth_headers(token_a)):
            with pytest.raises(RuntimeError):
                view()

    def test_request_context_is_immutable(self, app, user_a, token_a):
        identity = token_service.resolve_token(token_a)
        ctx = RequestContext(identity=identity)
        with pytest.raises(FrozenInstanceError):
            ctx.is_kiosk = True

    def test_require_auth_sets_context_on_g(self, app, user_a, token_a):
        @require_auth
        def view():
            return jsonify({"group": g.request_context.group_id})

        with app.test_request_context("/", headers=auth_headers(token_a)):
            resp = view()
            assert resp.json["group"] == user_a.group_id
