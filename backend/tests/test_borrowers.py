"""
Borrower directory tests.

Verifies:
- create/update validation (email format, required name, notes length)
- list shape omits notes, detail shape carries notes and loan counts
- deactivation keeps loans, deletion removes them
- group isolation
"""

from datetime import timedelta

import pytest

from loandesk.errors import NotFoundError
from loandesk.models import Borrower, Loan
from loandesk.services import borrower_service, loan_service


BORROWERS = "/api/v1/borrowers"


@pytest.fixture
def two_loans(group_a, user_a, item_a, borrower_a, clock):
    """One open and one returned loan for borrower_a."""
    data = {"item_id": item_a.id, "borrower_id": borrower_a.id, "due_at": clock.now + timedelta(days=7)}
    returned = loan_service.create_loan(group_a.id, user_a.id, dict(data))
    loan_service.return_loan(group_a.id, user_a.id, returned.id, "")
    open_loan = loan_service.create_loan(group_a.id, user_a.id, dict(data))
    return open_loan, returned


class TestCreate:

    def test_create(self, client, headers_a):
        resp = client.post(BORROWERS, headers=headers_a, json={
            "name": "Grace Hopper",
            "email": "grace@navy.test",
            "studentId": "S-1906",
            "notes": "prefers mornings",
        })

        assert resp.status_code == 201
        assert resp.json["studentId"] == "S-1906"
        assert resp.json["notes"] == "prefers mornings"
        assert resp.json["isActive"] is True
        assert resp.json["selfRegistered"] is False
        assert resp.json["activeLoans"] == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "a@x.com"},
            {"name": "", "email": "a@x.com"},
            {"name": "Ada"},
            {"name": "Ada", "email": "not-an-email"},
            {"name": "Ada", "email": "a@x.com", "notes": "n" * 1001},
            {"name": "Ada", "email": "a@x.com", "selfRegistered": True},
            {"name": "Ada", "email": "a@x.com", "groupId": 99},
        ],
    )
    def test_invalid_payload_is_400(self, client, headers_a, payload):
        assert client.post(BORROWERS, headers=headers_a, json=payload).status_code == 400

    def test_notes_at_limit_accepted(self, client, headers_a):
        resp = client.post(BORROWERS, headers=headers_a, json={"name": "Ada", "email": "a@x.com", "notes": "n" * 1000})
        assert resp.status_code == 201


class TestReads:

    def test_list_omits_notes(self, client, headers_a, borrower_a):
        resp = client.get(BORROWERS, headers=headers_a)

        assert resp.status_code == 200
        assert [b["id"] for b in resp.json] == [borrower_a.id]
        assert "notes" not in resp.json[0]

    def test_detail_counts_loans(self, client, headers_a, borrower_a, two_loans):
        resp = client.get(f"{BORROWERS}/{borrower_a.id}", headers=headers_a)

        assert resp.status_code == 200
        assert resp.json["notes"] == "front desk"
        assert resp.json["activeLoans"] == 1
        assert resp.json["totalLoans"] == 2

    def test_loan_counts_service(self, group_a, borrower_a, two_loans):
        assert borrower_service.get_loan_counts(group_a.id, borrower_a.id) == (1, 2)

    def test_active_listing(self, client, db_session, headers_a, group_a, borrower_a):
        other = Borrower(group_id=group_a.id, name="Zed", email="z@x.com", is_active=False)
        db_session.add(other)
        db_session.commit()

        names = [b["name"] for b in client.get(f"{BORROWERS}/active", headers=headers_a).json]
        assert names == ["Ada"]
        names = [b["name"] for b in client.get(BORROWERS, headers=headers_a).json]
        assert names == ["Ada", "Zed"]


class TestMutations:

    def test_update(self, client, headers_a, borrower_a):
        resp = client.put(f"{BORROWERS}/{borrower_a.id}", headers=headers_a, json={
            "name": "Ada King",
            "email": "ada@king.test",
            "phone": "555-0100",
        })

        assert resp.status_code == 200
        assert resp.json["name"] == "Ada King"
        assert resp.json["phone"] == "555-0100"
        assert resp.json["notes"] == "front desk"

    def test_update_requires_name_and_email(self, client, headers_a, borrower_a):
        resp = client.put(f"{BORROWERS}/{borrower_a.id}", headers=headers_a, json={"phone": "1"})
        assert resp.status_code == 400

    def test_update_bad_email(self, client, headers_a, borrower_a):
        resp = client.put(f"{BORROWERS}/{borrower_a.id}", headers=headers_a, json={"name": "Ada", "email": "nope"})
        assert resp.status_code == 400

    def test_deactivate_keeps_loans(self, client, db_session, headers_a, borrower_a, two_loans):
        resp = client.post(f"{BORROWERS}/{borrower_a.id}/deactivate", headers=headers_a)

        assert resp.status_code == 200
        assert resp.json["isActive"] is False
        assert resp.json["totalLoans"] == 2

        resp = client.post(f"{BORROWERS}/{borrower_a.id}/activate", headers=headers_a)
        assert resp.json["isActive"] is True

    def test_delete_cascades_loans(self, client, db_session, headers_a, borrower_a, two_loans):
        resp = client.delete(f"{BORROWERS}/{borrower_a.id}", headers=headers_a)

        assert resp.status_code == 204
        assert db_session.get(Borrower, borrower_a.id) is None
        assert db_session.query(Loan).count() == 0


class TestIsolation:

    def test_other_group_gets_404(self, client, headers_b, borrower_a):
        path = f"{BORROWERS}/{borrower_a.id}"

        assert client.get(path, headers=headers_b).status_code == 404
        assert client.put(path, headers=headers_b, json={"name": "X", "email": "x@x.com"}).status_code == 404
        assert client.post(f"{path}/deactivate", headers=headers_b).status_code == 404
        assert client.delete(path, headers=headers_b).status_code == 404
        assert client.get(BORROWERS, headers=headers_b).json == []

    def test_service_scoping(self, group_b, borrower_a):
        with pytest.raises(NotFoundError):
            borrower_service.get_one_by_group(group_b.id, borrower_a.id)
        with pytest.raises(NotFoundError):
            borrower_service.delete_borrower(group_b.id, borrower_a.id)
        assert borrower_service.get_all(group_b.id) == []
