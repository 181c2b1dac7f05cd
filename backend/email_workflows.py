import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from email_tokens import (
    generate_otp,
    generate_token,
    hash_token,
    ADMIN_INVITE_TTL_SECONDS,
    OTP_TTL_SECONDS,
    RESET_TOKEN_TTL_SECONDS,
    VERIFY_TOKEN_TTL_SECONDS,
)
from email_templates import (
    build_admin_invite_email,
    build_otp_email,
    build_registration_email,
    build_reset_email,
    build_smtp_test_email,
    build_verification_email,
)
from emailer import send_email
from models import User
from time_utils import now_tz, ensure_timezone

logger = logging.getLogger(__name__)

FRONTEND_BASE_URL = os.environ.get("FRONTEND_BASE_URL", "")
RESEND_COOLDOWN_SECONDS = int(os.environ.get("EMAIL_RESEND_COOLDOWN_SECONDS", "60"))


def _now() -> datetime:
    return now_tz()


def _build_url(path: str, token: str) -> str:
    base = FRONTEND_BASE_URL.rstrip("/")
    return f"{base}{path}/{token}"


def _in_cooldown(sent_at: Optional[datetime]) -> bool:
    if not sent_at:
        return False
    delta = (_now() - ensure_timezone(sent_at)).total_seconds()
    return delta < RESEND_COOLDOWN_SECONDS


def issue_verification(db: Session, user: User) -> Tuple[bool, str]:
    """Store a fresh link token and OTP for ``user`` and mail both."""
    if not user.email:
        return False, "missing_email"
    if _in_cooldown(user.email_verification_sent_at):
        return False, "cooldown"

    token = generate_token()
    otp = generate_otp()
    user.email_verification_token_hash = hash_token(token)
    user.email_verification_expires_at = _now() + timedelta(seconds=VERIFY_TOKEN_TTL_SECONDS)
    user.email_verification_sent_at = _now()
    user.otp_hash = hash_token(otp)
    user.otp_expires_at = _now() + timedelta(seconds=OTP_TTL_SECONDS)
    user.otp_sent_at = _now()
    db.commit()

    url = _build_url("/verify", token)
    subject, html, text = build_verification_email(
        url,
        validity_hours=VERIFY_TOKEN_TTL_SECONDS // 3600,
        otp=otp,
        otp_minutes=OTP_TTL_SECONDS // 60,
    )
    send_email(user.email, subject, html, text)
    return True, "sent"


def issue_otp(db: Session, user: User) -> Tuple[bool, str]:
    if _in_cooldown(user.otp_sent_at):
        return False, "cooldown"

    otp = generate_otp()
    user.otp_hash = hash_token(otp)
    user.otp_expires_at = _now() + timedelta(seconds=OTP_TTL_SECONDS)
    user.otp_sent_at = _now()
    db.commit()

    subject, html, text = build_otp_email(otp, validity_minutes=OTP_TTL_SECONDS // 60)
    send_email(user.email, subject, html, text)
    return True, "sent"


def _mark_verified(user: User) -> None:
    user.is_verified = True
    user.email_verified_at = _now()
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    user.otp_hash = None
    user.otp_expires_at = None


def verify_email_token(db: Session, token: str) -> Optional[User]:
    if not token:
        return None
    token_hash = hash_token(token)
    user = db.query(User).filter(
        User.email_verification_token_hash == token_hash,
        User.email_verification_expires_at.isnot(None),
        User.email_verification_expires_at > _now()
    ).first()
    if not user:
        return None

    _mark_verified(user)
    db.commit()
    return user


def verify_otp(db: Session, user: User, otp: str) -> bool:
    if not user.otp_hash or not user.otp_expires_at:
        return False
    if ensure_timezone(user.otp_expires_at) <= _now():
        return False
    if hash_token(str(otp).strip()) != user.otp_hash:
        return False

    _mark_verified(user)
    db.commit()
    return True


def issue_password_reset(db: Session, user: User) -> None:
    """Mail a reset link; the stored token is cleared again if delivery fails."""
    token = generate_token()
    user.password_reset_token_hash = hash_token(token)
    user.password_reset_expires_at = _now() + timedelta(seconds=RESET_TOKEN_TTL_SECONDS)
    user.password_reset_sent_at = _now()
    db.commit()

    url = _build_url("/password/reset", token)
    subject, html, text = build_reset_email(url, validity_minutes=RESET_TOKEN_TTL_SECONDS // 60)
    try:
        send_email(user.email, subject, html, text)
    except Exception:
        user.password_reset_token_hash = None
        user.password_reset_expires_at = None
        db.commit()
        raise


def reset_password_with_token(db: Session, token: str) -> Optional[User]:
    if not token:
        return None
    token_hash = hash_token(token)
    user = db.query(User).filter(
        User.password_reset_token_hash == token_hash,
        User.password_reset_expires_at.isnot(None),
        User.password_reset_expires_at > _now()
    ).first()
    if not user:
        return None

    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    return user


def send_admin_invite_email(to_email: str, token: str, event_name: str, club_name: str) -> None:
    url = _build_url("/admin/signup", token)
    subject, html, text = build_admin_invite_email(
        url,
        event_name=event_name,
        club_name=club_name,
        validity_days=ADMIN_INVITE_TTL_SECONDS // 86400,
    )
    send_email(to_email, subject, html, text)


def send_registration_confirmation(to_email: Optional[str], name: str, event_name: str, team_name: Optional[str] = None) -> None:
    if not to_email:
        return
    subject, html, text = build_registration_email(name=name, event_name=event_name, team_name=team_name)
    try:
        send_email(to_email, subject, html, text)
    except Exception as exc:
        logger.warning("Registration confirmation to %s failed: %s", to_email, exc)


def send_smtp_test_email(to_email: str) -> Tuple[bool, Optional[str]]:
    subject, html, text = build_smtp_test_email(_now().isoformat())
    try:
        send_email(to_email, subject, html, text)
    except Exception as exc:
        logger.warning("SMTP test email to %s failed: %s", to_email, exc)
        return False, str(exc)
    return True, None
