from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from email_workflows import send_registration_confirmation
from event_service import get_event_or_404
from models import EventType, Invite, InviteStatus, Team, TeamMember, User
from registration_service import (
    accept_invite,
    build_invite_response,
    build_team_response,
    create_team,
    decline_invite,
    delete_team,
    ensure_can_start_team,
    ensure_deadline_open,
    ensure_event_type,
    ensure_invite_pending,
    gender_team_stats,
    is_team_participant,
    leave_team,
    register_team,
    send_team_invites,
)
from schemas import (
    InviteRespondRequest,
    TeamAddMembersRequest,
    TeamCreateRequest,
    TeamCreateWithInvitesRequest,
    TeamInviteRequest,
    TeamRegisterRequest,
)
from security import require_user

router = APIRouter()


def _get_team_or_404(db: Session, team_id: int) -> Team:
    team = db.query(Team).filter(Team.id == team_id).first()
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    return team


def _get_invite_or_404(db: Session, invite_id: int) -> Invite:
    invite = db.query(Invite).filter(Invite.id == invite_id).first()
    if not invite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    return invite


def _start_team(db: Session, payload: TeamCreateRequest, user: User):
    event = get_event_or_404(db, payload.event_id)
    ensure_event_type(event, EventType.GROUP)
    ensure_can_start_team(db, event, user)
    ensure_deadline_open(event)
    return event, create_team(db, event, user, payload.team_name)


def _user_teams_query(db: Session, user: User):
    return (
        db.query(Team)
        .outerjoin(TeamMember, TeamMember.team_id == Team.id)
        .filter(or_(Team.leader_id == user.id, TeamMember.user_id == user.id))
        .distinct()
    )


@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_team_route(payload: TeamCreateRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    _, team = _start_team(db, payload, user)
    db.commit()
    db.refresh(team)
    return {"success": True, "message": "Team created successfully", "team": build_team_response(team)}


@router.post("/create-with-invites", status_code=status.HTTP_201_CREATED)
def create_team_with_invites(
    payload: TeamCreateWithInvitesRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    event, team = _start_team(db, payload, user)
    sent, errors = send_team_invites(db, event, team, user, payload.user_ids)
    db.commit()
    db.refresh(team)
    return {
        "success": True,
        "message": f"Team created and {len(sent)} invite(s) sent",
        "team": build_team_response(team),
        "sent": sent,
        "errors": errors,
    }


@router.post("/invite")
def invite_to_team(payload: TeamInviteRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    team = _get_team_or_404(db, payload.team_id)
    sent, errors = send_team_invites(db, team.event, team, user, payload.user_ids)
    db.commit()
    return {
        "success": True,
        "message": f"{len(sent)} invite(s) sent",
        "sent": sent,
        "errors": errors,
    }


@router.post("/invite/{invite_id}/respond")
def respond_to_invite(
    invite_id: int,
    payload: InviteRespondRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    invite = _get_invite_or_404(db, invite_id)
    if invite.invitee_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This invite is not for you")
    ensure_invite_pending(invite)

    response = payload.response.strip().lower()
    if response == "accept":
        team = accept_invite(db, invite, user)
        db.commit()
        db.refresh(team)
        return {"success": True, "message": "Invite accepted. You have joined the team.", "team": build_team_response(team)}
    if response == "decline":
        decline_invite(invite)
        db.commit()
        return {"success": True, "message": "Invite declined"}
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Response must be 'accept' or 'decline'")


@router.delete("/invite/{invite_id}")
def cancel_invite(invite_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    invite = _get_invite_or_404(db, invite_id)
    if invite.team is None or invite.team.leader_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the team leader can cancel invites")
    if invite.status != InviteStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending invites can be cancelled")
    db.delete(invite)
    db.commit()
    return {"success": True, "message": "Invite cancelled successfully"}


@router.post("/register")
def register_team_route(payload: TeamRegisterRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    team = _get_team_or_404(db, payload.team_id)
    event = team.event
    invalidated = register_team(db, event, team, user)
    db.commit()
    db.refresh(team)

    for member in team.members:
        send_registration_confirmation(member.email, member.name or "", event.name, team.team_name)
    return {
        "success": True,
        "message": "Team registered successfully",
        "team": build_team_response(team),
        "invalidated_teams": [other.id for other in invalidated],
    }


@router.get("/my-teams")
def my_teams(user: User = Depends(require_user), db: Session = Depends(get_db)):
    teams = _user_teams_query(db, user).order_by(Team.created_at.desc(), Team.id.desc()).all()
    return {"success": True, "teams": [build_team_response(team) for team in teams], "count": len(teams)}


@router.get("/event/{event_id}")
def my_teams_for_event(event_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    teams = _user_teams_query(db, user).filter(Team.event_id == event.id).order_by(Team.id.asc()).all()
    return {"success": True, "teams": [build_team_response(team) for team in teams]}


@router.get("/event/{event_id}/stats")
def event_gender_stats(event_id: str, _: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    return {"success": True, "event_name": event.name, "stats": gender_team_stats(db, event)}


@router.get("/notifications")
def notifications(user: User = Depends(require_user), db: Session = Depends(get_db)):
    invites = (
        db.query(Invite)
        .filter(Invite.invitee_id == user.id, Invite.status == InviteStatus.PENDING)
        .order_by(Invite.created_at.desc(), Invite.id.desc())
        .all()
    )
    return {"success": True, "invites": [build_invite_response(invite) for invite in invites], "count": len(invites)}


@router.put("/notifications/{invite_id}/read")
def mark_notification_read(invite_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    invite = db.query(Invite).filter(Invite.id == invite_id, Invite.invitee_id == user.id).first()
    if not invite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    invite.is_read = True
    db.commit()
    return {"success": True, "message": "Notification marked as read"}


@router.get("/{team_id}")
def get_team(team_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    team = _get_team_or_404(db, team_id)
    if not is_team_participant(team, user.id) and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this team")
    pending = (
        db.query(Invite)
        .filter(Invite.team_id == team.id, Invite.status == InviteStatus.PENDING)
        .order_by(Invite.id.asc())
        .all()
    )
    return {
        "success": True,
        "team": build_team_response(team),
        "pending_invites": [build_invite_response(invite) for invite in pending],
    }


@router.delete("/{team_id}")
def delete_team_route(team_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    delete_team(db, _get_team_or_404(db, team_id), user)
    db.commit()
    return {"success": True, "message": "Team deleted successfully"}


@router.post("/{team_id}/leave")
def leave_team_route(team_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    deleted = leave_team(db, _get_team_or_404(db, team_id), user)
    db.commit()
    if deleted:
        return {"success": True, "message": "Left team successfully. Team was deleted as you were the last member."}
    return {"success": True, "message": "Left team successfully"}


@router.post("/{team_id}/add-members")
def add_members(
    team_id: int,
    payload: TeamAddMembersRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    team = _get_team_or_404(db, team_id)
    if team.leader_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only team leaders can add members")
    sent, errors = send_team_invites(db, team.event, team, user, payload.user_ids)
    db.commit()
    return {
        "success": True,
        "message": f"{len(sent)} invite(s) sent",
        "sent": sent,
        "errors": errors,
    }
