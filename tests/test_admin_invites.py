import re
from datetime import timedelta

from email_tokens import hash_token
from models import AdminInvite, Club, EventStaffIncharge, User, UserRole
from time_utils import now_tz
from conftest import auth_headers, make_event, make_superadmin, make_user

API = "/api/v1"


def _token_from(message):
    match = re.search(r"/admin/signup/(\S+)", message["text"])
    assert match, message["text"]
    return match.group(1)


def _send_invite(client, superadmin, event, email="coord@fest.test", club="Literary Club"):
    return client.post(
        f"{API}/admin/invite",
        json={"email": email, "club": club, "event_id": event.slug},
        headers=auth_headers(superadmin),
    )


def test_invite_and_signup_assigns_event(client, db, outbox):
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate", club_in_charge=Club.LITERARY.value)

    sent = _send_invite(client, superadmin, event)
    assert sent.status_code == 201
    assert sent.json()["invite"]["club_name"] == Club.LITERARY.value
    token = _token_from(outbox[-1])

    details = client.get(f"{API}/admin/invite/{token}")
    assert details.status_code == 200
    assert details.json()["invite"]["email"] == "coord@fest.test"
    assert details.json()["invite"]["event"]["name"] == "Debate"

    missing = client.post(f"{API}/admin/signup/{token}", json={"name": "Coord", "password": "secret123"})
    assert missing.status_code == 400
    assert missing.json()["message"] == "All fields are required"

    signup = client.post(
        f"{API}/admin/signup/{token}",
        json={"name": "Coord", "password": "secret123", "gender": "Female"},
    )
    assert signup.status_code == 201
    assert signup.json()["user"]["role"] == "admin"
    client.cookies.clear()

    db.expire_all()
    admin = db.query(User).filter(User.email == "coord@fest.test").one()
    assert admin.role == UserRole.ADMIN
    assert admin.club == Club.LITERARY
    assert admin.assigned_event_id == event.id
    assert admin.is_verified is True
    staff = db.query(EventStaffIncharge).filter(EventStaffIncharge.event_id == event.id).all()
    assert [row.admin_id for row in staff] == [admin.id]

    invite = db.query(AdminInvite).one()
    assert invite.is_used is True
    assert invite.admin_id == admin.id

    reused = client.post(
        f"{API}/admin/signup/{token}",
        json={"name": "Again", "password": "secret123", "gender": "Male"},
    )
    assert reused.status_code == 400
    assert reused.json()["message"] == "Invalid or expired invitation token"

    another = _send_invite(client, superadmin, event, email="second@fest.test")
    assert another.status_code == 400
    assert another.json()["message"] == "This event already has an admin assigned"


def test_second_pending_invite_for_event_rejected(client, db):
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate")
    assert _send_invite(client, superadmin, event).status_code == 201

    same = _send_invite(client, superadmin, event)
    assert same.json()["message"] == "An active invitation already exists for this email and event"

    other = _send_invite(client, superadmin, event, email="other@fest.test")
    assert other.status_code == 400
    assert other.json()["message"] == "This event already has a pending admin invitation"


def test_invite_rejects_existing_user_and_non_superadmin(client, db):
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate")
    make_user(db, "taken@fest.test")
    taken = _send_invite(client, superadmin, event, email="taken@fest.test")
    assert taken.json()["message"] == "User with this email already exists"

    participant = make_user(db, "plain@fest.test")
    forbidden = _send_invite(client, participant, event, email="x@fest.test")
    assert forbidden.status_code == 403


def test_expired_invite_is_rejected(client, db):
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate")
    db.add(AdminInvite(
        email="late@fest.test",
        event_id=event.id,
        club_name=Club.FINE_ARTS,
        invite_token_hash=hash_token("expired-token"),
        invite_token_expires_at=now_tz() - timedelta(days=1),
        invited_by=superadmin.id,
    ))
    db.commit()

    details = client.get(f"{API}/admin/invite/expired-token")
    assert details.status_code == 400
    assert details.json()["message"] == "Invalid or expired invitation token"

    signup = client.post(
        f"{API}/admin/signup/expired-token",
        json={"name": "Late", "password": "secret123", "gender": "Male"},
    )
    assert signup.status_code == 400

    fresh = _send_invite(client, superadmin, event, email="late@fest.test")
    assert fresh.status_code == 201


def test_cancel_invite(client, db):
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate")
    invite_id = _send_invite(client, superadmin, event).json()["invite"]["id"]

    listed = client.get(f"{API}/admin/invites", headers=auth_headers(superadmin))
    assert listed.json()["count"] == 1

    cancelled = client.delete(f"{API}/admin/invite/{invite_id}", headers=auth_headers(superadmin))
    assert cancelled.status_code == 200
    missing = client.delete(f"{API}/admin/invite/{invite_id}", headers=auth_headers(superadmin))
    assert missing.status_code == 404


def test_failed_invite_email_removes_invite(client, db, monkeypatch):
    import email_workflows

    def broken_send(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(email_workflows, "send_email", broken_send)
    superadmin = make_superadmin(db)
    event = make_event(db, "Debate")

    response = _send_invite(client, superadmin, event)
    assert response.status_code == 500
    assert response.json()["message"] == "Failed to send invitation email"
    db.expire_all()
    assert db.query(AdminInvite).count() == 0
