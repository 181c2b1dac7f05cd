import pytest
from fastapi import HTTPException

from models import EventApplication, EventType, Invite, InviteStatus, MemberRegistrationType, Team, TeamGender
from registration_service import (
    INVALIDATED_REASON,
    accept_invite,
    add_application,
    add_team_member,
    create_team,
    determine_team_gender,
    gender_team_stats,
    is_user_registered_for_event,
    register_solo,
    register_team,
    send_team_invites,
)
from conftest import make_event, make_user
from models import UserRole


def _group_event(db, name="Relay", **fields):
    fields.setdefault("min_team_size", 2)
    fields.setdefault("max_team_size", 4)
    return make_event(db, name, event_type=EventType.GROUP, **fields)


def test_determine_team_gender():
    assert determine_team_gender("Male") == TeamGender.MALE
    assert determine_team_gender("Female") == TeamGender.FEMALE
    assert determine_team_gender("Other") == TeamGender.MIXED
    assert determine_team_gender(None) == TeamGender.MIXED


def test_solo_registration_rejects_duplicates(db):
    event = make_event(db, "Quiz")
    user = make_user(db, "a@fest.test")
    register_solo(db, event, user)
    db.commit()
    with pytest.raises(HTTPException) as exc:
        register_solo(db, event, user)
    assert exc.value.detail == "You are already registered for this event"


def test_solo_registration_rejects_group_event(db):
    event = _group_event(db)
    user = make_user(db, "a@fest.test")
    with pytest.raises(HTTPException) as exc:
        register_solo(db, event, user)
    assert exc.value.detail == "This is not a solo event"


def test_direct_member_requires_fields(db):
    event = _group_event(db)
    leader = make_user(db, "lead@fest.test")
    team = create_team(db, event, leader, "Alpha")
    with pytest.raises(HTTPException) as exc:
        add_team_member(team, event, registration_type=MemberRegistrationType.DIRECT, name="Guest", dept="CSE")
    assert "year" in exc.value.detail
    member = add_team_member(
        team,
        event,
        registration_type=MemberRegistrationType.DIRECT,
        name="Guest",
        dept="CSE",
        year="2",
        degree="BE",
        gender="Female",
    )
    assert member.user_id is None
    assert len(team.members) == 2


def test_member_capacity_and_uniqueness(db):
    event = _group_event(db)
    leader = make_user(db, "lead@fest.test")
    team = create_team(db, event, leader, "Alpha")
    with pytest.raises(HTTPException):
        add_team_member(team, event, user=leader)
    for index in range(3):
        add_team_member(team, event, user=make_user(db, f"m{index}@fest.test"))
    with pytest.raises(HTTPException) as exc:
        add_team_member(team, event, user=make_user(db, "extra@fest.test"))
    assert exc.value.detail == "Team is full"


def test_register_team_invalidates_competing_teams(db):
    event = _group_event(db)
    alice = make_user(db, "alice@fest.test")
    bob = make_user(db, "bob@fest.test")
    carol = make_user(db, "carol@fest.test")

    bobs_team = create_team(db, event, bob, "Bob's Team")
    add_team_member(bobs_team, event, user=carol)
    alices_team = create_team(db, event, alice, "Alice's Team")
    add_team_member(alices_team, event, user=bob)
    db.commit()

    invalidated = register_team(db, event, alices_team, alice)
    db.commit()

    assert [team.id for team in invalidated] == [bobs_team.id]
    db.refresh(bobs_team)
    assert bobs_team.is_invalidated is True
    assert bobs_team.invalidated_reason == INVALIDATED_REASON
    assert bobs_team.is_registered is False
    assert is_user_registered_for_event(db, event.id, bob.id)
    assert not is_user_registered_for_event(db, event.id, carol.id)

    with pytest.raises(HTTPException) as exc:
        register_team(db, event, bobs_team, bob)
    assert "invalidated" in exc.value.detail


def test_register_team_requires_min_members(db):
    event = _group_event(db)
    leader = make_user(db, "lead@fest.test")
    team = create_team(db, event, leader, "Solo Act")
    with pytest.raises(HTTPException) as exc:
        register_team(db, event, team, leader)
    assert exc.value.detail == "Team needs at least 2 members to register"


def test_group_capacity_counts_registered_teams(db):
    event = _group_event(db, max_applications=1)
    first = create_team(db, event, make_user(db, "a@fest.test"), "A")
    add_team_member(first, event, user=make_user(db, "b@fest.test"))
    second = create_team(db, event, make_user(db, "c@fest.test"), "C")
    add_team_member(second, event, user=make_user(db, "d@fest.test"))
    db.commit()

    register_team(db, event, first, first.leader)
    db.commit()
    with pytest.raises(HTTPException) as exc:
        register_team(db, event, second, second.leader)
    assert exc.value.detail == "Event is full"


def test_gender_based_team_limits(db):
    event = _group_event(db, name="Kabaddi", has_gender_based_teams=True, max_boy_teams=1, max_girl_teams=2)
    boys = [make_user(db, f"boy{i}@fest.test", gender="Male") for i in range(4)]
    girl = make_user(db, "girl@fest.test", gender="Female")

    first = create_team(db, event, boys[0], "Boys A")
    assert first.team_gender == TeamGender.MALE
    with pytest.raises(HTTPException) as exc:
        add_team_member(first, event, user=girl)
    assert exc.value.detail == "Boys can only be added to boy teams in this event"
    add_team_member(first, event, user=boys[1])

    second = create_team(db, event, boys[2], "Boys B")
    add_team_member(second, event, user=boys[3])
    db.commit()

    register_team(db, event, first, boys[0])
    db.commit()
    with pytest.raises(HTTPException) as exc:
        register_team(db, event, second, boys[2])
    assert exc.value.detail == "Maximum limit of 1 boy teams reached for this event"

    stats = gender_team_stats(db, event)
    assert stats["boy_teams"] == {"registered": 1, "max": 1, "remaining": 0}
    assert stats["girl_teams"] == {"registered": 0, "max": 2, "remaining": 2}


def test_invites_collect_per_user_errors(db):
    event = _group_event(db, max_team_size=3)
    leader = make_user(db, "lead@fest.test")
    admin = make_user(db, "admin@fest.test", role=UserRole.ADMIN)
    friend = make_user(db, "friend@fest.test")
    other = make_user(db, "other@fest.test")
    late = make_user(db, "late@fest.test")
    team = create_team(db, event, leader, "Alpha")
    db.commit()

    sent, errors = send_team_invites(
        db, event, team, leader, [friend.id, friend.id, leader.id, admin.id, "abc", 9999, other.id, late.id]
    )
    assert [item["user_id"] for item in sent] == [friend.id, other.id]
    assert f"{friend.name} already has a pending invite" in errors
    assert "You cannot invite yourself" in errors
    assert any("admins cannot be invited" in error for error in errors)
    assert "Invalid user ID format: abc" in errors
    assert "User with ID 9999 not found" in errors
    assert errors[-1] == "Team is full or has too many pending invites"


def test_accept_invite_adds_member(db):
    event = _group_event(db)
    leader = make_user(db, "lead@fest.test")
    friend = make_user(db, "friend@fest.test")
    team = create_team(db, event, leader, "Alpha")
    db.commit()
    send_team_invites(db, event, team, leader, [friend.id])
    db.commit()

    invite = db.query(Invite).filter(Invite.invitee_id == friend.id).one()
    accept_invite(db, invite, friend)
    db.commit()

    assert invite.status == InviteStatus.ACCEPTED
    assert invite.responded_at is not None
    assert {member.user_id for member in team.members} == {leader.id, friend.id}


def test_add_application_is_unique_per_user(db):
    event = make_event(db, "Essay")
    user = make_user(db, "a@fest.test")
    add_application(db, event, user.id)
    db.commit()
    with pytest.raises(HTTPException):
        add_application(db, event, user.id)
    assert db.query(EventApplication).filter(EventApplication.event_id == event.id).count() == 1
    assert db.query(Team).count() == 0
