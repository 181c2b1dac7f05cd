"""Per-role construction of ``User`` rows.

Role-dependent defaults (admin year "0", admin profile placeholders, the
bootstrap super-admin club) live here instead of in column defaults so they
can be checked without a database session.
"""
from typing import Optional

from sqlalchemy.orm import Session

from auth import get_password_hash
from models import Club, Counter, Event, User, UserRole
from schemas import SignupRequest

USER_CODE_COUNTER_KEY = "userId"
BOOTSTRAP_CLUB = Club.FINE_ARTS

ADMIN_PROFILE_DEFAULTS = {
    "year": "0",
    "dept": "Administration",
    "phone": "9999999999",
    "college": "SSN College of Engineering",
    "city": "Chennai",
    "level": "UG",
    "degree": "BE",
}

CLUB_ALIASES = {
    "FINE ARTS": Club.FINE_ARTS,
    "FINE ARTS CLUB": Club.FINE_ARTS,
    "FINEARTS": Club.FINE_ARTS,
    "LITERARY": Club.LITERARY,
    "LITERARY CLUB": Club.LITERARY,
    "PHOTOGRAPHY": Club.PHOTOGRAPHY,
    "PHOTOGRAPHY CLUB": Club.PHOTOGRAPHY,
    "BLUESKY": Club.BLUESKY,
    "BLUE SKY": Club.BLUESKY,
    "BLUESKY CLUB": Club.BLUESKY,
    "INNOVATIVE": Club.INNOVATIVE,
    "INNOVATIVE CLUB": Club.INNOVATIVE,
    "NATURE": Club.NATURE,
    "NATURE CLUB": Club.NATURE,
    "HEALTH": Club.HEALTH,
    "HEALTH CLUB": Club.HEALTH,
    "SUSTAINABLE": Club.SUSTAINABLE,
    "SUSTAINABLE CLUB": Club.SUSTAINABLE,
    "RIFLE": Club.RIFLE,
    "RIFLE CLUB": Club.RIFLE,
    "CONSUMER": Club.CONSUMER,
    "CONSUMER CLUB": Club.CONSUMER,
    "NCC": Club.NCC,
    "READERS": Club.READERS,
    "READERS CLUB": Club.READERS,
    "NSS": Club.NSS,
    "HERITAGE": Club.HERITAGE,
    "HERITAGE CLUB": Club.HERITAGE,
}


ADMIN_EVENT_REQUIRED = "Assigned event is required for admin users"


class UserBuildError(ValueError):
    pass


def map_club_name(raw: Optional[str]) -> Club:
    """Map free-form club names onto ``Club``; unknown names fall back to FINE ARTS."""
    key = " ".join(str(raw or "").replace("_", " ").upper().split())
    return CLUB_ALIASES.get(key, Club.FINE_ARTS)


def format_user_code(seq: int) -> str:
    return f"FUID{seq:04d}"


def next_user_code(db: Session) -> str:
    counter = db.query(Counter).filter(Counter.key == USER_CODE_COUNTER_KEY).first()
    if not counter:
        counter = Counter(key=USER_CODE_COUNTER_KEY, seq=0)
        db.add(counter)
    counter.seq = (counter.seq or 0) + 1
    db.flush()
    return format_user_code(counter.seq)


def build_participant_user(payload: SignupRequest, user_code: str, is_verified: bool = False) -> User:
    missing = [
        label
        for label, value in (("phone", payload.phone), ("gender", payload.gender), ("degree", payload.degree))
        if not value
    ]
    if missing:
        raise UserBuildError(f"Missing required fields: {', '.join(missing)}")

    return User(
        user_code=user_code,
        name=payload.name.strip(),
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.USER,
        is_superadmin=False,
        year=payload.year,
        dept=payload.dept,
        level=payload.level.value if payload.level else None,
        degree=payload.degree,
        college=payload.college,
        city=payload.city,
        gender=payload.gender.value,
        phone=payload.phone,
        is_verified=is_verified,
    )


def build_bootstrap_superadmin(payload: SignupRequest, user_code: str) -> User:
    """The very first account becomes the super-admin of the bootstrap club."""
    return User(
        user_code=user_code,
        name=payload.name.strip(),
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.ADMIN,
        is_superadmin=True,
        club=BOOTSTRAP_CLUB,
        year=payload.year or ADMIN_PROFILE_DEFAULTS["year"],
        dept=payload.dept or ADMIN_PROFILE_DEFAULTS["dept"],
        level=payload.level.value if payload.level else ADMIN_PROFILE_DEFAULTS["level"],
        degree=payload.degree or ADMIN_PROFILE_DEFAULTS["degree"],
        college=payload.college or ADMIN_PROFILE_DEFAULTS["college"],
        city=payload.city or ADMIN_PROFILE_DEFAULTS["city"],
        gender=payload.gender.value if payload.gender else None,
        phone=payload.phone or ADMIN_PROFILE_DEFAULTS["phone"],
        is_verified=True,
    )


def build_admin_user(
    email: str,
    name: str,
    password: str,
    gender: str,
    club: Club,
    event: Optional[Event],
    user_code: str,
) -> User:
    if club is None:
        raise UserBuildError("Club field is required for admin users")
    if event is None:
        raise UserBuildError(ADMIN_EVENT_REQUIRED)

    return User(
        user_code=user_code,
        name=name.strip(),
        email=email.strip().lower(),
        hashed_password=get_password_hash(password),
        role=UserRole.ADMIN,
        is_superadmin=False,
        club=club,
        assigned_event_id=event.id,
        gender=gender,
        is_verified=True,
        **ADMIN_PROFILE_DEFAULTS,
    )


def is_first_user(db: Session) -> bool:
    return db.query(User).count() == 0
