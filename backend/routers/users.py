import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from auth import clear_auth_cookie, create_user_token, get_password_hash, set_auth_cookie, verify_password
from database import get_db
from email_workflows import (
    issue_otp,
    issue_password_reset,
    issue_verification,
    reset_password_with_token,
    verify_email_token,
    verify_otp,
)
from emailer import EmailDeliveryError
from models import Event, EventApplication, Team, User, UserRole
from registration_service import build_team_response, purge_user_participation
from schemas import (
    ChangePasswordRequest,
    EmailOnlyRequest,
    FindUserRequest,
    OtpVerifyRequest,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    UserBrief,
    UserResponse,
)
from security import require_user
from user_builders import (
    UserBuildError,
    build_bootstrap_superadmin,
    build_participant_user,
    is_first_user,
    next_user_code,
)

router = APIRouter()
logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def _user_by_email(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == str(email).strip().lower()).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def clear_unverified_signup(db: Session, email: str) -> None:
    """Verified accounts block a re-signup; a stale unverified one is dropped first."""
    existing = db.query(User).filter(User.email == email).first()
    if not existing:
        return
    if existing.is_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered and verified. Please login instead.",
        )
    purge_user_participation(db, existing)
    db.delete(existing)
    db.commit()


def create_signup_user(db: Session, payload: SignupRequest, is_verified: bool = False, allow_bootstrap: bool = True) -> User:
    first_user = allow_bootstrap and is_first_user(db)
    user_code = next_user_code(db)
    try:
        if first_user:
            user = build_bootstrap_superadmin(payload, user_code)
        else:
            user = build_participant_user(payload, user_code, is_verified=is_verified)
    except UserBuildError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/user/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    clear_unverified_signup(db, payload.email)
    user = create_signup_user(db, payload)
    first_user = user.is_superadmin

    if first_user:
        message = "First user created as super admin. You can now log in."
    else:
        message = "Registration successful. Please check your email to verify your account."
        try:
            issue_verification(db, user)
        except Exception as exc:
            logger.warning("Verification email to %s failed: %s", user.email, exc)

    return {
        "success": True,
        "message": message,
        "is_first_user": first_user,
        "role": user.role.value,
        "is_superadmin": user.is_superadmin,
    }


@router.get("/user/verify/{token}")
def verify_email(token: str, db: Session = Depends(get_db)):
    user = verify_email_token(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired verification token")
    return {"success": True, "message": "Email verified successfully! You can now log in."}


@router.post("/user/verify-otp")
def verify_user_otp(payload: OtpVerifyRequest, db: Session = Depends(get_db)):
    user = _user_by_email(db, payload.email)
    if user.is_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already verified")
    if not verify_otp(db, user, payload.otp):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OTP")
    return {"success": True, "message": "Email verified successfully! You can now log in."}


@router.post("/user/resend-otp")
def resend_user_otp(payload: EmailOnlyRequest, db: Session = Depends(get_db)):
    user = _user_by_email(db, payload.email)
    if user.is_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already verified")
    try:
        ok, reason = issue_otp(db, user)
    except EmailDeliveryError as exc:
        logger.warning("OTP email to %s failed: %s", user.email, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Email could not be sent")
    if not ok and reason == "cooldown":
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Please wait before requesting another OTP")
    return {"success": True, "message": "OTP sent to your email"}


@router.post("/user/signin", status_code=status.HTTP_201_CREATED)
def signin(payload: SigninRequest, response: Response, db: Session = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter email & password")
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Email or password")
    if not user.is_verified:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unverified Email")

    token = create_user_token(user)
    set_auth_cookie(response, token)
    return {"success": True, "token": token, "user": UserResponse.model_validate(user)}


@router.get("/user/signout")
def signout(response: Response):
    clear_auth_cookie(response)
    return {"success": True, "message": "Logged Out Successfully"}


@router.post("/user/find")
def find_user(payload: FindUserRequest, _: User = Depends(require_user), db: Session = Depends(get_db)):
    if not payload.email and not payload.user_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide an email or user code")
    query = db.query(User)
    if payload.email:
        query = query.filter(User.email == payload.email.strip().lower())
    else:
        query = query.filter(User.user_code == payload.user_code.strip().upper())
    user = query.first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"success": True, "user": UserBrief.model_validate(user)}


@router.get("/user/load")
def load_user(user: User = Depends(require_user), db: Session = Depends(get_db)):
    rows = (
        db.query(EventApplication, Event)
        .join(Event, EventApplication.event_id == Event.id)
        .filter(EventApplication.user_id == user.id)
        .order_by(EventApplication.applied_at.desc())
        .all()
    )
    events = [
        {
            "id": event.id,
            "event_id": event.slug,
            "name": event.name,
            "event_type": event.event_type.value,
            "event_date": event.event_date,
            "venue": event.venue,
            "team_id": application.team_id,
            "applied_at": application.applied_at,
            "status": application.status.value,
        }
        for application, event in rows
    ]
    return {"success": True, "user": UserResponse.model_validate(user), "events": events}


@router.get("/user/registrations")
def user_registrations(user: User = Depends(require_user), db: Session = Depends(get_db)):
    applications = (
        db.query(EventApplication)
        .filter(EventApplication.user_id == user.id)
        .order_by(EventApplication.applied_at.desc())
        .all()
    )
    registrations = []
    for application in applications:
        team = db.query(Team).filter(Team.id == application.team_id).first() if application.team_id else None
        event = application.event
        registrations.append({
            "event_id": event.slug,
            "event_name": event.name,
            "event_type": event.event_type.value,
            "event_date": event.event_date,
            "venue": event.venue,
            "applied_at": application.applied_at,
            "status": application.status.value,
            "is_present": application.is_present,
            "is_winner": application.is_winner,
            "winner_rank": application.winner_rank,
            "team": build_team_response(team) if team else None,
        })
    return {"success": True, "registrations": registrations, "count": len(registrations)}


@router.get("/users/search")
def search_users(q: str = "", user: User = Depends(require_user), db: Session = Depends(get_db)):
    term = q.strip()
    if len(term) < 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query must be at least 2 characters")
    pattern = f"%{term}%"
    users = (
        db.query(User)
        .filter(
            User.is_verified == True,
            User.role == UserRole.USER,
            User.id != user.id,
            or_(User.name.ilike(pattern), User.email.ilike(pattern), User.user_code.ilike(pattern)),
        )
        .order_by(User.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    return {"success": True, "users": [UserBrief.model_validate(u) for u in users]}


@router.get("/user/all")
def list_users(user: User = Depends(require_user), db: Session = Depends(get_db)):
    users = (
        db.query(User)
        .filter(User.is_verified == True, User.role == UserRole.USER, User.id != user.id)
        .order_by(User.name.asc())
        .all()
    )
    return {"success": True, "users": [UserBrief.model_validate(u) for u in users], "count": len(users)}


@router.get("/years")
def list_years(db: Session = Depends(get_db)):
    rows = db.query(User.year).filter(User.year.isnot(None)).distinct().all()
    years = sorted({row.year for row in rows if row.year})
    return {"success": True, "years": years}


@router.post("/user/password/forgot")
def forgot_password(payload: EmailOnlyRequest, db: Session = Depends(get_db)):
    user = _user_by_email(db, payload.email)
    try:
        issue_password_reset(db, user)
    except Exception as exc:
        logger.warning("Password reset email to %s failed: %s", user.email, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Email could not be sent")
    return {"success": True, "message": f"Email sent to {user.email} successfully"}


@router.post("/user/password/reset/{token}")
def reset_password(token: str, payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    if payload.confirm_password is not None and payload.password != payload.confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password does not match")
    user = reset_password_with_token(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
    user.hashed_password = get_password_hash(payload.password)
    db.commit()
    return {"success": True, "message": "Password reset successful"}


@router.put("/user/password/change")
def change_password(payload: ChangePasswordRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    if not payload.current_password or not payload.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide current and new password")
    if len(payload.new_password) < 6:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must be at least 6 characters")
    if payload.current_password == payload.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must be different from the current password")
    if not verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    user.hashed_password = get_password_hash(payload.new_password)
    db.commit()
    return {"success": True, "message": "Password changed successfully"}
