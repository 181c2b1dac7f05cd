from models import EventApplication, EventRegistration, EventType, Invite, Team
from conftest import auth_headers, make_event, make_user

API = "/api/v1"


def test_solo_registration_fills_up(client, db, outbox):
    event = make_event(db, "Quiz", max_applications=1)
    first = make_user(db, "a@fest.test")
    second = make_user(db, "b@fest.test")

    response = client.post(f"{API}/solo", json={"event_id": event.slug}, headers=auth_headers(first))
    assert response.status_code == 200
    assert response.json()["message"] == "Successfully registered for Quiz"
    assert outbox[-1]["to"] == "a@fest.test"

    again = client.post(f"{API}/registration/solo", json={"event_id": event.slug}, headers=auth_headers(first))
    assert again.status_code == 400
    assert again.json()["message"] == "You are already registered for this event"

    full = client.post(f"{API}/solo", json={"event_id": str(event.id)}, headers=auth_headers(second))
    assert full.status_code == 400
    assert full.json() == {"success": False, "message": "Event is full"}

    check = client.get(f"{API}/check/{event.slug}", headers=auth_headers(first))
    assert check.json()["is_registered"] is True


def test_solo_registration_unknown_event(client, db):
    user = make_user(db, "a@fest.test")
    response = client.post(f"{API}/solo", json={"event_id": "missing"}, headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json()["message"] == "Event not found"


def test_group_flow_invite_accept_register(client, db, outbox):
    event = make_event(db, "Code Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=4)
    leader = make_user(db, "lead@fest.test", name="Lead")
    friend = make_user(db, "friend@fest.test", name="Friend")

    created = client.post(
        f"{API}/teams/create",
        json={"event_id": event.slug, "team_name": "Byte Me"},
        headers=auth_headers(leader),
    )
    assert created.status_code == 201
    team_id = created.json()["team"]["id"]

    early = client.post(f"{API}/teams/register", json={"team_id": team_id}, headers=auth_headers(leader))
    assert early.status_code == 400
    assert early.json()["message"] == "Team needs at least 2 members to register"

    invited = client.post(
        f"{API}/teams/invite",
        json={"team_id": team_id, "user_ids": [friend.id]},
        headers=auth_headers(leader),
    )
    assert invited.status_code == 200
    assert invited.json()["errors"] == []
    invite_id = invited.json()["sent"][0]["invite_id"]

    notifications = client.get(f"{API}/teams/notifications", headers=auth_headers(friend))
    assert [invite["id"] for invite in notifications.json()["invites"]] == [invite_id]

    not_mine = client.post(
        f"{API}/teams/invite/{invite_id}/respond",
        json={"response": "accept"},
        headers=auth_headers(leader),
    )
    assert not_mine.status_code == 403

    accepted = client.post(
        f"{API}/teams/invite/{invite_id}/respond",
        json={"response": "accept"},
        headers=auth_headers(friend),
    )
    assert accepted.status_code == 200
    assert len(accepted.json()["team"]["members"]) == 2

    twice = client.post(
        f"{API}/teams/invite/{invite_id}/respond",
        json={"response": "decline"},
        headers=auth_headers(friend),
    )
    assert twice.status_code == 400
    assert twice.json()["message"] == "Invite has already been responded to"

    registered = client.post(f"{API}/teams/register", json={"team_id": team_id}, headers=auth_headers(friend))
    assert registered.status_code == 200
    assert registered.json()["team"]["is_registered"] is True
    assert {message["to"] for message in outbox} == {"lead@fest.test", "friend@fest.test"}

    applications = db.query(EventApplication).filter(EventApplication.event_id == event.id).all()
    assert {application.user_id for application in applications} == {leader.id, friend.id}
    assert {application.team_id for application in applications} == {team_id}

    late = make_user(db, "late@fest.test")
    closed = client.post(
        f"{API}/teams/invite",
        json={"team_id": team_id, "user_ids": [late.id]},
        headers=auth_headers(leader),
    )
    assert closed.status_code == 400
    assert closed.json()["message"] == "Cannot invite to a registered team"


def test_leader_cancels_pending_invite(client, db):
    event = make_event(db, "Code Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=4)
    leader = make_user(db, "lead@fest.test", name="Lead")
    friend = make_user(db, "friend@fest.test", name="Friend")
    mate = make_user(db, "mate@fest.test", name="Mate")

    created = client.post(
        f"{API}/teams/create",
        json={"event_id": event.slug, "team_name": "Byte Me"},
        headers=auth_headers(leader),
    )
    team_id = created.json()["team"]["id"]
    invited = client.post(
        f"{API}/teams/invite",
        json={"team_id": team_id, "user_ids": [friend.id, mate.id]},
        headers=auth_headers(leader),
    )
    invite_ids = {item["user_id"]: item["invite_id"] for item in invited.json()["sent"]}

    denied = client.delete(f"{API}/teams/invite/{invite_ids[friend.id]}", headers=auth_headers(mate))
    assert denied.status_code == 403
    assert denied.json()["message"] == "Only the team leader can cancel invites"

    cancelled = client.delete(f"{API}/teams/invite/{invite_ids[friend.id]}", headers=auth_headers(leader))
    assert cancelled.status_code == 200
    notifications = client.get(f"{API}/teams/notifications", headers=auth_headers(friend))
    assert notifications.json()["invites"] == []
    db.expire_all()
    assert db.query(Invite).filter(Invite.id == invite_ids[friend.id]).first() is None

    accepted = client.post(
        f"{API}/teams/invite/{invite_ids[mate.id]}/respond",
        json={"response": "accept"},
        headers=auth_headers(mate),
    )
    assert accepted.status_code == 200
    late = client.delete(f"{API}/teams/invite/{invite_ids[mate.id]}", headers=auth_headers(leader))
    assert late.status_code == 400
    assert late.json()["message"] == "Only pending invites can be cancelled"


def test_invite_errors_are_reported_per_user(client, db):
    event = make_event(db, "Code Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=4)
    leader = make_user(db, "lead@fest.test")
    created = client.post(
        f"{API}/teams/create",
        json={"event_id": event.slug, "team_name": "Byte Me"},
        headers=auth_headers(leader),
    )
    team_id = created.json()["team"]["id"]

    response = client.post(
        f"{API}/teams/invite",
        json={"team_id": team_id, "user_ids": ["abc", leader.id]},
        headers=auth_headers(leader),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sent"] == []
    assert body["errors"] == ["Invalid user ID format: abc", "You cannot invite yourself"]


def test_user_cannot_start_two_teams(client, db):
    event = make_event(db, "Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=3)
    leader = make_user(db, "lead@fest.test")
    headers = auth_headers(leader)
    first = client.post(f"{API}/group", json={"event_id": event.slug}, headers=headers)
    assert first.status_code == 201
    assert first.json()["team"]["team_name"] == "Lead's Team"

    second = client.post(f"{API}/teams/create", json={"event_id": event.slug, "team_name": "Other"}, headers=headers)
    assert second.status_code == 400
    assert second.json()["message"] == "You are already part of a team for this event"


def test_solo_endpoint_rejects_group_event(client, db):
    event = make_event(db, "Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=3)
    user = make_user(db, "a@fest.test")
    response = client.post(f"{API}/solo", json={"event_id": event.slug}, headers=auth_headers(user))
    assert response.status_code == 400
    assert response.json()["message"] == "This is not a solo event"


def test_leave_and_delete_team(client, db):
    event = make_event(db, "Relay", event_type=EventType.GROUP, min_team_size=2, max_team_size=3)
    leader = make_user(db, "lead@fest.test")
    friend = make_user(db, "friend@fest.test")
    created = client.post(
        f"{API}/teams/create-with-invites",
        json={"event_id": event.slug, "team_name": "Pair", "user_ids": [friend.id]},
        headers=auth_headers(leader),
    )
    assert created.status_code == 201
    invite_id = created.json()["sent"][0]["invite_id"]
    team_id = created.json()["team"]["id"]
    client.post(f"{API}/teams/invite/{invite_id}/respond", json={"response": "accept"}, headers=auth_headers(friend))

    forbidden = client.delete(f"{API}/teams/{team_id}", headers=auth_headers(friend))
    assert forbidden.status_code == 403

    left = client.post(f"{API}/teams/{team_id}/leave", headers=auth_headers(leader))
    assert left.status_code == 200
    db.expire_all()
    team = db.query(Team).filter(Team.id == team_id).one()
    assert team.leader_id == friend.id

    deleted = client.delete(f"{API}/teams/{team_id}", headers=auth_headers(friend))
    assert deleted.status_code == 200
    db.expire_all()
    assert db.query(Team).filter(Team.id == team_id).first() is None


def _participant(name, **overrides):
    participant = {
        "name": name,
        "email": f"{name.lower()}@college.test",
        "mobile": "9876543210",
        "level": "UG",
        "degree": "BE",
        "dept": "CSE",
        "year": "3",
        "gender": "Male",
    }
    participant.update(overrides)
    return participant


def test_direct_group_registration(client, db):
    event = make_event(db, "Hackathon", event_type=EventType.GROUP, min_team_size=2, max_team_size=3)
    registrant = make_user(db, "coord@fest.test")
    payload = {
        "event_id": event.slug,
        "team_name": "Direct Hits",
        "participants": [_participant("Ravi"), _participant("Sam", dept="Other", custom_dept="Robotics")],
        "college_state": "Tamil Nadu",
    }
    response = client.post(f"{API}/direct", json=payload, headers=auth_headers(registrant))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["participant_count"] == 2
    assert data["team_name"] == "Direct Hits"

    rows = db.query(EventRegistration).filter(EventRegistration.event_id == event.id).all()
    assert {row.department for row in rows} == {"CSE", "Robotics"}
    assert {row.college_state for row in rows} == {"Tamil Nadu"}
    team = db.query(Team).filter(Team.id == data["team_id"]).one()
    assert team.is_registered is True
    assert len(team.members) == 2

    again = client.post(f"{API}/direct", json=payload, headers=auth_headers(registrant))
    assert again.status_code == 400
    assert again.json()["message"] == "You already have a registered team for this event"


def test_direct_registration_validation(client, db):
    event = make_event(db, "Hackathon", event_type=EventType.GROUP, min_team_size=2, max_team_size=3)
    registrant = make_user(db, "coord@fest.test")
    headers = auth_headers(registrant)

    empty = client.post(f"{API}/direct", json={"event_id": event.slug, "participants": []}, headers=headers)
    assert empty.json()["message"] == "Event ID and participants are required"

    too_few = client.post(
        f"{API}/direct",
        json={"event_id": event.slug, "team_name": "T", "participants": [_participant("Ravi")]},
        headers=headers,
    )
    assert too_few.json()["message"] == "Minimum 2 participants required for this event"

    no_custom = client.post(
        f"{API}/direct",
        json={
            "event_id": event.slug,
            "team_name": "T",
            "participants": [_participant("Ravi"), _participant("Sam", dept="Other")],
        },
        headers=headers,
    )
    assert no_custom.json()["message"] == "Custom department is required for participant 2"


def test_event_listing_reports_seats(client, db):
    event = make_event(db, "Quiz", max_applications=2)
    user = make_user(db, "a@fest.test")
    client.post(f"{API}/solo", json={"event_id": event.slug}, headers=auth_headers(user))

    response = client.get(f"{API}/events")
    assert response.status_code == 200
    listed = response.json()["events"][0]
    assert listed["name"] == "Quiz"
    assert listed["actual_seats_taken"] == 1
    assert listed["available_seats"] == 1
