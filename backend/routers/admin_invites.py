import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from auth import create_user_token, set_auth_cookie
from database import get_db
from email_tokens import ADMIN_INVITE_TTL_SECONDS, generate_token, hash_token
from email_workflows import send_admin_invite_email
from event_service import get_event_or_404
from models import AdminInvite, EventStaffIncharge, User, UserRole
from schemas import AdminInviteCreate, AdminInviteResponse, AdminSignupRequest, EventResponse, UserResponse
from security import require_superadmin
from time_utils import now_tz
from user_builders import UserBuildError, build_admin_user, map_club_name, next_user_code
from utils import log_admin_action

router = APIRouter()
logger = logging.getLogger(__name__)

INVALID_INVITE_MESSAGE = "Invalid or expired invitation token"


def _live_invites(db: Session):
    return db.query(AdminInvite).filter(
        AdminInvite.is_used == False,
        AdminInvite.invite_token_expires_at > now_tz(),
    )


def find_live_invite(db: Session, token: Optional[str]) -> Optional[AdminInvite]:
    """Match the raw token against the stored digest; used or expired invites never match."""
    if not token:
        return None
    return _live_invites(db).filter(AdminInvite.invite_token_hash == hash_token(token)).first()


def _invite_response(invite: AdminInvite) -> AdminInviteResponse:
    return AdminInviteResponse(
        id=invite.id,
        email=invite.email,
        event_id=invite.event_id,
        event_name=invite.event.name if invite.event else None,
        club_name=invite.club_name.value,
        is_used=invite.is_used,
        used_at=invite.used_at,
        invite_token_expires_at=invite.invite_token_expires_at,
        created_at=invite.created_at,
    )


@router.post("/invite", status_code=status.HTTP_201_CREATED)
def send_invite(
    payload: AdminInviteCreate,
    request: Request,
    superadmin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    if not payload.email or not payload.club or not payload.event_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email, club and event are required")
    email = payload.email.strip().lower()
    event = get_event_or_404(db, payload.event_id)

    if db.query(User.id).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User with this email already exists")
    if _live_invites(db).filter(AdminInvite.email == email, AdminInvite.event_id == event.id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An active invitation already exists for this email and event",
        )
    assigned = db.query(User.id).filter(User.role == UserRole.ADMIN, User.assigned_event_id == event.id).first()
    if assigned:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This event already has an admin assigned")
    if _live_invites(db).filter(AdminInvite.event_id == event.id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This event already has a pending admin invitation",
        )

    token = generate_token()
    club = map_club_name(payload.club)
    invite = AdminInvite(
        email=email,
        event_id=event.id,
        club_name=club,
        invite_token_hash=hash_token(token),
        invite_token_expires_at=now_tz() + timedelta(seconds=ADMIN_INVITE_TTL_SECONDS),
        invited_by=superadmin.id,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)

    try:
        send_admin_invite_email(email, token, event.name, club.value)
    except Exception as exc:
        logger.warning("Admin invite email to %s failed: %s", email, exc)
        db.delete(invite)
        db.commit()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send invitation email")

    log_admin_action(db, superadmin, "Send admin invite", request, {"email": email, "event_id": event.id})
    return {"success": True, "message": f"Invitation sent to {email}", "invite": _invite_response(invite)}


@router.get("/invites")
def list_invites(_: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    invites = db.query(AdminInvite).order_by(AdminInvite.created_at.desc(), AdminInvite.id.desc()).all()
    return {"success": True, "invites": [_invite_response(invite) for invite in invites], "count": len(invites)}


@router.delete("/invite/{invite_id}")
def cancel_invite(
    invite_id: int,
    request: Request,
    superadmin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    invite = db.query(AdminInvite).filter(AdminInvite.id == invite_id).first()
    if not invite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    if invite.is_used:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot cancel a used invitation")
    meta = {"email": invite.email, "event_id": invite.event_id}
    db.delete(invite)
    db.commit()
    log_admin_action(db, superadmin, "Cancel admin invite", request, meta)
    return {"success": True, "message": "Invitation cancelled successfully"}


@router.get("/invite/{token}")
def invite_details(token: str, db: Session = Depends(get_db)):
    invite = find_live_invite(db, token)
    if not invite:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_INVITE_MESSAGE)
    return {
        "success": True,
        "invite": {
            "email": invite.email,
            "club_name": invite.club_name.value,
            "event": EventResponse.model_validate(invite.event),
        },
    }


@router.post("/signup/{token}", status_code=status.HTTP_201_CREATED)
def complete_admin_signup(token: str, payload: AdminSignupRequest, response: Response, db: Session = Depends(get_db)):
    invite = find_live_invite(db, token)
    if not invite:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_INVITE_MESSAGE)
    if not payload.name or not payload.password or not payload.gender:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All fields are required")
    if len(payload.password) < 6:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 6 characters")
    if db.query(User.id).filter(User.email == invite.email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User with this email already exists")

    event = invite.event
    try:
        admin = build_admin_user(
            email=invite.email,
            name=payload.name,
            password=payload.password,
            gender=payload.gender.value,
            club=invite.club_name,
            event=event,
            user_code=next_user_code(db),
        )
    except UserBuildError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.add(admin)
    db.flush()

    event.staff_incharges.append(EventStaffIncharge(
        admin_id=admin.id,
        name=admin.name,
        email=admin.email,
        club=invite.club_name.value,
    ))
    invite.is_used = True
    invite.used_at = now_tz()
    invite.admin_id = admin.id
    db.commit()
    db.refresh(admin)

    access_token = create_user_token(admin)
    set_auth_cookie(response, access_token)
    return {
        "success": True,
        "message": "Admin account created successfully",
        "token": access_token,
        "user": UserResponse.model_validate(admin),
    }
