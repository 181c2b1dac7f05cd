"""Registration bookkeeping for solo and group events.

``event_applications`` and ``team_members`` are child rows owned by their
event/team; every write to them goes through the helpers here so the
uniqueness, capacity and gender rules are enforced in one place.

Capacity and duplicate checks are read-then-write without locks. Two
requests racing for the last seat can both pass; that over-subscription is
accepted rather than guarded against.
"""
import logging
from typing import Iterable, List, Optional, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from event_service import count_registered_teams, count_solo_applications, effective_deadline
from models import (
    ApplicationStatus,
    Event,
    EventApplication,
    EventRegistration,
    EventType,
    Invite,
    InviteStatus,
    MemberRegistrationType,
    Team,
    TeamGender,
    TeamMember,
    User,
)
from schemas import InviteResponse, TeamMemberResponse, TeamResponse
from time_utils import is_past, now_tz

logger = logging.getLogger(__name__)

INVALIDATED_REASON = "Member registered with another team"
DIRECT_MEMBER_REQUIRED_FIELDS = ("name", "dept", "year", "degree", "gender")


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def is_user_registered_for_event(db: Session, event_id: int, user_id: int) -> bool:
    """True when the user leads or belongs to a registered team, or holds a solo application."""
    registered_team = (
        db.query(Team.id)
        .outerjoin(TeamMember, TeamMember.team_id == Team.id)
        .filter(
            Team.event_id == event_id,
            Team.is_registered == True,
            or_(Team.leader_id == user_id, TeamMember.user_id == user_id),
        )
        .first()
    )
    if registered_team:
        return True
    solo = db.query(EventApplication.id).filter(
        EventApplication.event_id == event_id,
        EventApplication.user_id == user_id,
        EventApplication.team_id.is_(None),
    ).first()
    return solo is not None


def get_user_team_for_event(db: Session, event_id: int, user_id: int, include_invalidated: bool = False) -> Optional[Team]:
    query = (
        db.query(Team)
        .outerjoin(TeamMember, TeamMember.team_id == Team.id)
        .filter(Team.event_id == event_id, or_(Team.leader_id == user_id, TeamMember.user_id == user_id))
    )
    if not include_invalidated:
        query = query.filter(Team.is_invalidated == False)
    return query.order_by(Team.is_registered.desc(), Team.id.asc()).first()


def team_user_ids(team: Team) -> Set[int]:
    ids = {member.user_id for member in team.members if member.user_id is not None}
    ids.add(team.leader_id)
    return ids


def is_team_participant(team: Team, user_id: int) -> bool:
    return user_id in team_user_ids(team)


def ensure_event_type(event: Event, expected: EventType) -> None:
    if event.event_type != expected:
        if expected == EventType.SOLO:
            raise _bad_request("This is not a solo event")
        raise _bad_request("This is not a group event")


def ensure_deadline_open(event: Event) -> None:
    if is_past(effective_deadline(event)):
        raise _bad_request("Registration deadline has passed")


def ensure_solo_capacity(db: Session, event: Event) -> None:
    if event.max_applications is not None and count_solo_applications(db, event.id) >= event.max_applications:
        raise _bad_request("Event is full")


def ensure_group_capacity(db: Session, event: Event) -> None:
    if event.max_applications is not None and count_registered_teams(db, event.id) >= event.max_applications:
        raise _bad_request("Event is full")


def add_application(db: Session, event: Event, user_id: int, team_id: Optional[int] = None) -> EventApplication:
    existing = db.query(EventApplication).filter(
        EventApplication.event_id == event.id,
        EventApplication.user_id == user_id,
    ).first()
    if existing:
        raise _bad_request("You are already registered for this event")

    application = EventApplication(
        event_id=event.id,
        user_id=user_id,
        team_id=team_id,
        applied_at=now_tz(),
        status=ApplicationStatus.PENDING,
    )
    db.add(application)
    event.applications.append(application)
    return application


def register_solo(db: Session, event: Event, user: User) -> EventApplication:
    ensure_event_type(event, EventType.SOLO)
    if is_user_registered_for_event(db, event.id, user.id):
        raise _bad_request("You are already registered for this event")
    ensure_solo_capacity(db, event)
    ensure_deadline_open(event)
    return add_application(db, event, user.id)


# Gender rules
def determine_team_gender(leader_gender: Optional[str]) -> TeamGender:
    if leader_gender == TeamGender.MALE.value:
        return TeamGender.MALE
    if leader_gender == TeamGender.FEMALE.value:
        return TeamGender.FEMALE
    return TeamGender.MIXED


def gender_compatibility_error(event: Event, team: Team, gender: Optional[str]) -> Optional[str]:
    if not event.has_gender_based_teams or team.team_gender in (None, TeamGender.MIXED):
        return None
    if team.team_gender == TeamGender.MALE and gender != TeamGender.MALE.value:
        return "Boys can only be added to boy teams in this event"
    if team.team_gender == TeamGender.FEMALE and gender != TeamGender.FEMALE.value:
        return "Girls can only be added to girl teams in this event"
    return None


def gender_team_limit_error(db: Session, event: Event, team: Team) -> Optional[str]:
    if not event.has_gender_based_teams:
        return None
    if team.team_gender == TeamGender.MALE and event.max_boy_teams is not None:
        registered = _registered_gender_teams(db, event.id, TeamGender.MALE)
        if registered >= event.max_boy_teams:
            return f"Maximum limit of {event.max_boy_teams} boy teams reached for this event"
    if team.team_gender == TeamGender.FEMALE and event.max_girl_teams is not None:
        registered = _registered_gender_teams(db, event.id, TeamGender.FEMALE)
        if registered >= event.max_girl_teams:
            return f"Maximum limit of {event.max_girl_teams} girl teams reached for this event"
    return None


def _registered_gender_teams(db: Session, event_id: int, gender: TeamGender) -> int:
    return db.query(Team).filter(
        Team.event_id == event_id,
        Team.is_registered == True,
        Team.team_gender == gender,
    ).count()


def gender_team_stats(db: Session, event: Event) -> dict:
    def _slot(gender: TeamGender, cap: Optional[int]) -> dict:
        registered = _registered_gender_teams(db, event.id, gender)
        remaining = max(cap - registered, 0) if cap is not None else None
        return {"registered": registered, "max": cap, "remaining": remaining}

    return {
        "has_gender_based_teams": bool(event.has_gender_based_teams),
        "boy_teams": _slot(TeamGender.MALE, event.max_boy_teams),
        "girl_teams": _slot(TeamGender.FEMALE, event.max_girl_teams),
    }


# Team membership
def add_team_member(
    team: Team,
    event: Event,
    user: Optional[User] = None,
    registration_type: MemberRegistrationType = MemberRegistrationType.INVITE,
    **details,
) -> TeamMember:
    if len(team.members) >= team.max_members:
        raise _bad_request("Team is full")

    if user is not None:
        if any(member.user_id == user.id for member in team.members):
            raise _bad_request(f"{user.name} is already in the team")
        gender = user.gender
        member = TeamMember(
            user_id=user.id,
            name=user.name,
            email=user.email,
            mobile=user.phone,
            dept=user.dept,
            year=user.year,
            degree=user.degree,
            gender=user.gender,
            registration_type=registration_type,
            joined_at=now_tz(),
        )
    else:
        missing = [field for field in DIRECT_MEMBER_REQUIRED_FIELDS if not details.get(field)]
        if missing:
            raise _bad_request(f"Missing required member fields: {', '.join(missing)}")
        gender = details.get("gender")
        member = TeamMember(
            name=details.get("name"),
            email=details.get("email"),
            mobile=details.get("mobile"),
            dept=details.get("dept"),
            year=details.get("year"),
            degree=details.get("degree"),
            gender=gender,
            registration_type=registration_type,
            joined_at=now_tz(),
        )

    gender_error = gender_compatibility_error(event, team, gender)
    if gender_error:
        raise _bad_request(gender_error)

    team.members.append(member)
    return member


def create_team(db: Session, event: Event, leader: User, team_name: str) -> Team:
    team = Team(
        event_id=event.id,
        team_name=team_name.strip(),
        leader_id=leader.id,
        max_members=event.max_team_size,
        team_gender=determine_team_gender(leader.gender) if event.has_gender_based_teams else None,
    )
    db.add(team)
    add_team_member(team, event, user=leader)
    db.flush()
    return team


def ensure_can_start_team(db: Session, event: Event, user: User) -> None:
    if is_user_registered_for_event(db, event.id, user.id):
        raise _bad_request("You are already registered for this event and cannot create a new team")
    if get_user_team_for_event(db, event.id, user.id):
        raise _bad_request("You are already part of a team for this event")


def invalidate_competing_teams(db: Session, event_id: int, team: Team, user_ids: Iterable[int]) -> List[Team]:
    ids = set(user_ids)
    if not ids:
        return []
    competing = (
        db.query(Team)
        .outerjoin(TeamMember, TeamMember.team_id == Team.id)
        .filter(
            Team.event_id == event_id,
            Team.id != team.id,
            Team.is_registered == False,
            Team.is_invalidated == False,
            or_(Team.leader_id.in_(ids), TeamMember.user_id.in_(ids)),
        )
        .distinct()
        .all()
    )
    now = now_tz()
    for other in competing:
        other.is_invalidated = True
        other.invalidated_at = now
        other.invalidated_reason = INVALIDATED_REASON
    if competing:
        logger.info(
            "Invalidated teams %s after team %s registered for event %s",
            [other.id for other in competing], team.id, event_id,
        )
    return competing


def register_team(db: Session, event: Event, team: Team, user: User) -> List[Team]:
    """Run the registration checks in order and commit the team; returns the teams invalidated by it."""
    if not is_team_participant(team, user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only team members can register the team")
    if team.is_registered:
        raise _bad_request("Team is already registered")
    if team.is_invalidated:
        raise _bad_request("This team has been invalidated because a member registered with another team")
    ensure_group_capacity(db, event)
    limit_error = gender_team_limit_error(db, event, team)
    if limit_error:
        raise _bad_request(limit_error)
    ensure_deadline_open(event)
    if len(team.members) < event.min_team_size:
        raise _bad_request(f"Team needs at least {event.min_team_size} members to register")

    member_ids = [member.user_id for member in team.members if member.user_id is not None]
    for member_id in member_ids:
        if is_user_registered_for_event(db, event.id, member_id):
            raise _bad_request("A team member is already registered for this event")

    for member_id in member_ids:
        add_application(db, event, member_id, team_id=team.id)

    team.is_registered = True
    team.registered_at = now_tz()
    team.registered_by = user.id
    return invalidate_competing_teams(db, event.id, team, member_ids)


# Invites
def pending_invite_count(db: Session, team_id: int) -> int:
    return db.query(Invite).filter(Invite.team_id == team_id, Invite.status == InviteStatus.PENDING).count()


def _parse_user_id(raw) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    value = str(raw or "").strip()
    return int(value) if value.isdigit() and int(value) > 0 else None


def send_team_invites(db: Session, event: Event, team: Team, inviter: User, raw_user_ids) -> Tuple[List[dict], List[str]]:
    """Create pending invites for each id, collecting per-user failures instead of aborting."""
    if not is_team_participant(team, inviter.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only team members can invite others")
    if team.is_registered:
        raise _bad_request("Cannot invite to a registered team")

    sent: List[dict] = []
    errors: List[str] = []
    for raw_id in raw_user_ids or []:
        invitee_id = _parse_user_id(raw_id)
        if invitee_id is None:
            errors.append(f"Invalid user ID format: {raw_id}")
            continue

        invitee = db.query(User).filter(User.id == invitee_id).first()
        if not invitee:
            errors.append(f"User with ID {invitee_id} not found")
            continue
        if invitee.is_admin:
            errors.append(f"Cannot invite {invitee.name} - admins cannot be invited to teams")
            continue
        if invitee.id == inviter.id:
            errors.append("You cannot invite yourself")
            continue
        if is_user_registered_for_event(db, event.id, invitee.id):
            errors.append(f"Cannot invite {invitee.name} - they are already registered for this event")
            continue
        if any(member.user_id == invitee.id for member in team.members):
            errors.append(f"{invitee.name} is already in the team")
            continue
        existing = db.query(Invite).filter(
            Invite.team_id == team.id,
            Invite.invitee_id == invitee.id,
            Invite.status == InviteStatus.PENDING,
        ).first()
        if existing:
            errors.append(f"{invitee.name} already has a pending invite")
            continue
        if len(team.members) + pending_invite_count(db, team.id) >= team.max_members:
            errors.append("Team is full or has too many pending invites")
            break
        gender_error = gender_compatibility_error(event, team, invitee.gender)
        if gender_error:
            errors.append(f"Cannot invite {invitee.name} - {gender_error}")
            continue

        invite = Invite(
            event_id=event.id,
            team_id=team.id,
            inviter_id=inviter.id,
            invitee_id=invitee.id,
            status=InviteStatus.PENDING,
        )
        db.add(invite)
        db.flush()
        sent.append({"invite_id": invite.id, "user_id": invitee.id, "name": invitee.name, "email": invitee.email})
    return sent, errors


def accept_invite(db: Session, invite: Invite, user: User) -> Team:
    team = invite.team
    event = invite.event
    if is_user_registered_for_event(db, event.id, user.id):
        raise _bad_request("You are already registered for this event")
    if team.is_registered:
        raise _bad_request("Team is already registered")
    if len(team.members) >= event.max_team_size:
        raise _bad_request("Team is already full")
    other = get_user_team_for_event(db, event.id, user.id)
    if other and other.id != team.id:
        raise _bad_request("You are already part of another team for this event")

    add_team_member(team, event, user=user)
    invite.status = InviteStatus.ACCEPTED
    invite.responded_at = now_tz()
    invite.is_read = True
    return team


def decline_invite(invite: Invite) -> None:
    invite.status = InviteStatus.DECLINED
    invite.responded_at = now_tz()
    invite.is_read = True


def ensure_invite_pending(invite: Invite) -> None:
    if invite.status != InviteStatus.PENDING:
        raise _bad_request("Invite has already been responded to")


# Leaving and deleting
def leave_team(db: Session, team: Team, user: User) -> bool:
    """Remove ``user`` from an unregistered team; returns True when the team was deleted."""
    membership = next((member for member in team.members if member.user_id == user.id), None)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this team")
    if team.is_registered:
        raise _bad_request("Cannot leave a registered team")

    if team.leader_id == user.id:
        successor = next(
            (member for member in team.members if member.user_id is not None and member.user_id != user.id),
            None,
        )
        if successor is not None:
            team.leader_id = successor.user_id

    team.members.remove(membership)
    if not team.members:
        db.query(Invite).filter(Invite.team_id == team.id).delete(synchronize_session=False)
        db.delete(team)
        return True
    return False


def purge_user_participation(db: Session, user: User) -> None:
    """Drop the invites, memberships, teams and applications tied to ``user`` before it is deleted."""
    led_team_ids = [team_id for (team_id,) in db.query(Team.id).filter(Team.leader_id == user.id).all()]
    db.query(Invite).filter(
        or_(Invite.invitee_id == user.id, Invite.inviter_id == user.id, Invite.team_id.in_(led_team_ids))
    ).delete(synchronize_session=False)
    db.query(TeamMember).filter(TeamMember.user_id == user.id).delete(synchronize_session=False)
    db.query(EventApplication).filter(EventApplication.user_id == user.id).delete(synchronize_session=False)
    for team in db.query(Team).filter(Team.id.in_(led_team_ids)).all():
        db.delete(team)


def delete_team(db: Session, team: Team, user: User) -> None:
    if team.leader_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only team leader can delete the team")
    if team.is_registered:
        raise _bad_request("Cannot delete a registered team")
    db.query(Invite).filter(Invite.team_id == team.id).delete(synchronize_session=False)
    db.delete(team)


# Direct registration
def _participant_department(participant) -> str:
    if participant.dept == "Other":
        return participant.custom_dept or "Other"
    return participant.dept


def validate_direct_participants(event: Event, team_name: Optional[str], participants) -> None:
    if event.event_type == EventType.SOLO and len(participants) > 1:
        raise _bad_request("Solo events can only have one participant")
    if event.event_type == EventType.GROUP:
        if len(participants) < event.min_team_size:
            raise _bad_request(f"Minimum {event.min_team_size} participants required for this event")
        if len(participants) > event.max_team_size:
            raise _bad_request(f"Maximum {event.max_team_size} participants allowed for this event")
        if not (team_name or "").strip():
            raise _bad_request("Team name is required for group events")

    for index, participant in enumerate(participants, start=1):
        required = (
            participant.name,
            participant.level,
            participant.degree,
            participant.dept,
            participant.year,
            participant.gender,
        )
        if not all(required):
            raise _bad_request(f"Missing required fields for participant {index}")
        if participant.dept == "Other" and not participant.custom_dept:
            raise _bad_request(f"Custom department is required for participant {index}")


def register_direct(
    db: Session,
    event: Event,
    registrant: User,
    team_name: Optional[str],
    participants,
    college_state: Optional[str] = None,
) -> Tuple[Optional[Team], List[EventRegistration]]:
    """Register every participant inline; group events get a team that is registered immediately."""
    validate_direct_participants(event, team_name, participants)

    team = None
    if event.event_type == EventType.GROUP:
        existing = db.query(Team.id).filter(
            Team.event_id == event.id,
            Team.leader_id == registrant.id,
            Team.is_registered == True,
        ).first()
        if existing:
            raise _bad_request("You already have a registered team for this event")
        ensure_group_capacity(db, event)
        ensure_deadline_open(event)

        team = Team(
            event_id=event.id,
            team_name=team_name.strip(),
            leader_id=registrant.id,
            max_members=event.max_team_size,
            team_gender=determine_team_gender(participants[0].gender.value) if event.has_gender_based_teams else None,
        )
        db.add(team)
        for participant in participants:
            add_team_member(
                team,
                event,
                registration_type=MemberRegistrationType.DIRECT,
                name=participant.name,
                email=participant.email,
                mobile=participant.mobile,
                dept=_participant_department(participant),
                year=participant.year,
                degree=participant.degree,
                gender=participant.gender.value,
            )
        limit_error = gender_team_limit_error(db, event, team)
        if limit_error:
            raise _bad_request(limit_error)
        team.is_registered = True
        team.registered_at = now_tz()
        team.registered_by = registrant.id
        db.flush()
    else:
        ensure_deadline_open(event)

    registrations = []
    for participant in participants:
        registration = EventRegistration(
            event_id=event.id,
            event_name=event.name,
            event_type=event.event_type,
            team_id=team.id if team else None,
            team_name=team.team_name if team else None,
            registrant_id=registrant.id,
            registrant_email=registrant.email,
            participant_name=participant.name,
            participant_email=participant.email,
            participant_mobile=participant.mobile,
            level=participant.level.value,
            degree=participant.degree,
            department=_participant_department(participant),
            custom_department=participant.custom_dept if participant.dept == "Other" else None,
            year=participant.year,
            gender=participant.gender.value,
            college_name=registrant.college or "Not Specified",
            college_city=registrant.city or "Not Specified",
            college_state=college_state or "Not Specified",
            registration_type=MemberRegistrationType.DIRECT,
            registration_date=now_tz(),
        )
        db.add(registration)
        registrations.append(registration)
    db.flush()
    return team, registrations


# Response shaping
def build_team_response(team: Team) -> TeamResponse:
    event = team.event
    return TeamResponse(
        id=team.id,
        event_id=team.event_id,
        event_name=event.name if event else None,
        event_code=event.slug if event else None,
        team_name=team.team_name,
        leader_id=team.leader_id,
        is_registered=team.is_registered,
        registered_at=team.registered_at,
        max_members=team.max_members,
        team_gender=team.team_gender.value if team.team_gender else None,
        is_invalidated=team.is_invalidated,
        invalidated_reason=team.invalidated_reason,
        members=[TeamMemberResponse.model_validate(member) for member in team.members],
        created_at=team.created_at,
    )


def build_invite_response(invite: Invite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        event_id=invite.event_id,
        team_id=invite.team_id,
        inviter_id=invite.inviter_id,
        invitee_id=invite.invitee_id,
        status=invite.status.value,
        message=invite.message,
        is_read=invite.is_read,
        responded_at=invite.responded_at,
        created_at=invite.created_at,
        inviter_name=invite.inviter.name if invite.inviter else None,
        invitee_name=invite.invitee.name if invite.invitee else None,
        team_name=invite.team.team_name if invite.team else None,
        event_name=invite.event.name if invite.event else None,
    )
