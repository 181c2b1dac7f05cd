from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from email_workflows import send_registration_confirmation
from event_service import get_event_or_404
from models import EventType, User
from registration_service import (
    build_team_response,
    create_team,
    ensure_can_start_team,
    ensure_deadline_open,
    ensure_event_type,
    get_user_team_for_event,
    is_user_registered_for_event,
    register_direct,
    register_solo,
)
from schemas import DirectRegistrationRequest, GroupRegistrationRequest, SoloRegistrationRequest
from security import require_user
from stats_service import college_registrations

router = APIRouter()


@router.post("/solo")
def solo_registration(payload: SoloRegistrationRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, payload.event_id)
    register_solo(db, event, user)
    db.commit()
    send_registration_confirmation(user.email, user.name, event.name)
    return {"success": True, "message": f"Successfully registered for {event.name}"}


@router.post("/group", status_code=status.HTTP_201_CREATED)
def group_registration(payload: GroupRegistrationRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, payload.event_id)
    ensure_event_type(event, EventType.GROUP)
    ensure_can_start_team(db, event, user)
    ensure_deadline_open(event)

    team = create_team(db, event, user, payload.team_name or f"{user.name}'s Team")
    db.commit()
    db.refresh(team)
    return {
        "success": True,
        "message": "Team created successfully. You can now invite other members.",
        "team": build_team_response(team),
        "note": "To register the team for the event, complete your team and use the register team endpoint",
    }


@router.post("/direct", status_code=status.HTTP_201_CREATED)
def direct_registration(payload: DirectRegistrationRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    if not payload.event_id or not payload.participants:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event ID and participants are required")
    event = get_event_or_404(db, payload.event_id)

    team, registrations = register_direct(
        db,
        event,
        user,
        payload.team_name,
        payload.participants,
        college_state=payload.college_state,
    )
    db.commit()

    count = len(registrations)
    return {
        "success": True,
        "message": f"Successfully registered {count} participant{'s' if count > 1 else ''} for {event.name}",
        "data": {
            "event_name": event.name,
            "event_type": event.event_type.value,
            "team_name": team.team_name if team else None,
            "team_id": team.id if team else None,
            "participant_count": count,
            "registrations": [
                {
                    "participant_name": reg.participant_name,
                    "department": reg.full_department,
                    "year": reg.year,
                    "registration_id": reg.id,
                }
                for reg in registrations
            ],
        },
    }


@router.get("/college")
def college_registration_report(user: User = Depends(require_user), db: Session = Depends(get_db)):
    if not user.college:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Your profile has no college set")
    return {"success": True, "college": user.college, **college_registrations(db, user)}


@router.get("/check/{event_id}")
def check_registration(event_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    team = get_user_team_for_event(db, event.id, user.id)
    return {
        "success": True,
        "is_registered": is_user_registered_for_event(db, event.id, user.id),
        "team": build_team_response(team) if team else None,
    }
