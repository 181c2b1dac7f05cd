import re
from typing import Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from models import AdminInvite, Event, EventApplication, EventRegistration, EventType, Invite, Team, User
from schemas import EventCreate, EventListItem, EventResponse, EventUpdate

GROUP_MIN_TEAM_SIZE = 2
GROUP_MAX_TEAM_SIZE = 6

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def generate_event_slug(name: str) -> str:
    base = _NON_SLUG_CHARS.sub("", str(name or "").strip().lower())
    base = _WHITESPACE.sub("-", base.strip())
    return base or "event"


def unique_event_slug(db: Session, name: str, exclude_event_id: Optional[int] = None) -> str:
    base = generate_event_slug(name)
    candidate = base
    counter = 1
    while True:
        query = db.query(Event.id).filter(Event.slug == candidate)
        if exclude_event_id is not None:
            query = query.filter(Event.id != exclude_event_id)
        if not query.first():
            return candidate
        candidate = f"{base}-{counter}"
        counter += 1


def resolve_team_sizes(event_type: EventType, min_size: Optional[int], max_size: Optional[int]) -> Tuple[int, int]:
    if event_type != EventType.GROUP:
        return 1, 1
    resolved_min = max(min_size or GROUP_MIN_TEAM_SIZE, GROUP_MIN_TEAM_SIZE)
    resolved_max = max_size or GROUP_MAX_TEAM_SIZE
    if resolved_max < resolved_min:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Maximum team size cannot be less than minimum team size",
        )
    return resolved_min, resolved_max


def normalize_fee(amount) -> int:
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0
    return max(0, int(round(value)))


def find_event(db: Session, identifier) -> Optional[Event]:
    """Look an event up by slug, falling back to the numeric primary key."""
    key = str(identifier or "").strip()
    if not key:
        return None
    event = db.query(Event).filter(Event.slug == key).first()
    if event is None and key.isdigit():
        event = db.query(Event).filter(Event.id == int(key)).first()
    return event


def get_event_or_404(db: Session, identifier) -> Event:
    event = find_event(db, identifier)
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


def effective_deadline(event: Event):
    return event.application_deadline or event.registration_deadline


def count_registered_teams(db: Session, event_id: int) -> int:
    return db.query(Team).filter(Team.event_id == event_id, Team.is_registered == True).count()


def count_solo_applications(db: Session, event_id: int) -> int:
    return db.query(EventApplication).filter(
        EventApplication.event_id == event_id,
        EventApplication.team_id.is_(None),
    ).count()


def seats_taken(db: Session, event: Event) -> int:
    """Group events are counted in registered teams, solo events in applications."""
    if event.event_type == EventType.GROUP:
        return count_registered_teams(db, event.id)
    return db.query(EventApplication).filter(EventApplication.event_id == event.id).count()


def build_event_response(event: Event) -> EventResponse:
    return EventResponse.model_validate(event)


def build_event_list_item(db: Session, event: Event) -> EventListItem:
    base = EventResponse.model_validate(event).model_dump()
    registered_teams = count_registered_teams(db, event.id)
    total_teams = db.query(Team).filter(Team.event_id == event.id).count()
    taken = seats_taken(db, event)
    available = None
    if event.max_applications is not None:
        available = max(event.max_applications - taken, 0)
    return EventListItem(
        **base,
        registered_teams_count=registered_teams,
        total_teams_count=total_teams,
        actual_seats_taken=taken,
        available_seats=available,
    )


def _club_value(club) -> Optional[str]:
    if club is None:
        return None
    return club.value if hasattr(club, "value") else str(club)


def ensure_club_access(admin: User, event: Event, action: str = "view") -> None:
    """Club admins only touch events run by their own club."""
    if admin.is_superadmin:
        return
    if event.club_in_charge != _club_value(admin.club):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied: You can only {action} events from your club",
        )


def create_event(db: Session, payload: EventCreate, admin: User) -> Event:
    if not payload.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event name is required")
    if not admin.is_superadmin and not admin.club:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin must belong to a club to create events")
    if db.query(Event.id).filter(Event.name == payload.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event with this name already exists")

    event_type = EventType(payload.event_type.value)
    min_size, max_size = resolve_team_sizes(event_type, payload.min_team_size, payload.max_team_size)
    club = payload.club_in_charge if admin.is_superadmin and payload.club_in_charge else _club_value(admin.club)

    data = payload.model_dump(exclude={"name", "event_type", "min_team_size", "max_team_size", "club_in_charge", "registration_amount"})
    event = Event(
        **data,
        name=payload.name,
        slug=unique_event_slug(db, payload.name),
        event_type=event_type,
        min_team_size=min_size,
        max_team_size=max_size,
        club_in_charge=club,
        registration_amount=normalize_fee(payload.registration_amount),
        created_by=admin.id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def update_event(db: Session, event: Event, payload: EventUpdate, admin: User) -> Event:
    ensure_club_access(admin, event, "update")
    data = payload.model_dump(exclude_unset=True)

    if "club_in_charge" in data and not admin.is_superadmin and data["club_in_charge"] != event.club_in_charge:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot transfer events to other clubs")

    name = data.pop("name", None)
    if name and name.strip() != event.name:
        name = name.strip()
        clash = db.query(Event.id).filter(Event.name == name, Event.id != event.id).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event with this name already exists")
        event.name = name
        event.slug = unique_event_slug(db, name, exclude_event_id=event.id)

    event_type = data.pop("event_type", None)
    if event_type is not None:
        event.event_type = EventType(event_type.value if hasattr(event_type, "value") else event_type)
    min_size = data.pop("min_team_size", None)
    max_size = data.pop("max_team_size", None)
    if event_type is not None or min_size is not None or max_size is not None:
        event.min_team_size, event.max_team_size = resolve_team_sizes(
            event.event_type,
            min_size if min_size is not None else event.min_team_size,
            max_size if max_size is not None else event.max_team_size,
        )

    if "registration_amount" in data:
        event.registration_amount = normalize_fee(data.pop("registration_amount"))
    for field, value in data.items():
        setattr(event, field, value)

    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, event: Event, admin: User) -> None:
    ensure_club_access(admin, event, "delete")
    db.query(User).filter(User.assigned_event_id == event.id).update(
        {User.assigned_event_id: None}, synchronize_session=False
    )
    db.query(Invite).filter(Invite.event_id == event.id).delete(synchronize_session=False)
    db.query(AdminInvite).filter(AdminInvite.event_id == event.id).delete(synchronize_session=False)
    db.query(EventRegistration).filter(EventRegistration.event_id == event.id).delete(synchronize_session=False)
    for team in db.query(Team).filter(Team.event_id == event.id).all():
        db.delete(team)
    db.delete(event)
    db.commit()
