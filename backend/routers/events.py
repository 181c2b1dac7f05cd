from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from database import get_db
from event_service import (
    build_event_list_item,
    build_event_response,
    create_event,
    delete_event,
    effective_deadline,
    get_event_or_404,
    seats_taken,
    update_event,
)
from models import Event, EventType, User
from registration_service import add_application, is_user_registered_for_event
from schemas import EventCreate, EventUpdate, SoloRegistrationRequest
from security import require_admin, require_user
from time_utils import is_past
from utils import log_admin_action

router = APIRouter()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@router.post("/events", status_code=status.HTTP_201_CREATED)
def create_event_route(
    payload: EventCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = create_event(db, payload, admin)
    log_admin_action(db, admin, "Create event", request, {"event_id": event.id, "name": event.name})
    return {"success": True, "event": build_event_response(event)}


@router.get("/events")
def list_events(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: Session = Depends(get_db),
):
    limit = min(limit, MAX_PAGE_SIZE)
    query = db.query(Event).order_by(Event.event_date.asc(), Event.id.asc())
    total = query.count()
    events = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "events": [build_event_list_item(db, event) for event in events],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.post("/events/register")
def register_for_event(payload: SoloRegistrationRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    event = get_event_or_404(db, payload.event_id)
    if is_user_registered_for_event(db, event.id, user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You are already registered for this event")
    if not event.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event registration is closed")
    if event.event_type == EventType.GROUP:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This is a group event. Please register as a team")
    if event.max_applications is not None and seats_taken(db, event) >= event.max_applications:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event is full")
    if is_past(effective_deadline(event)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Registration deadline has passed")

    add_application(db, event, user.id)
    db.commit()
    return {"success": True, "message": "Successfully registered for event"}


@router.get("/events/{event_id}")
def get_event(event_id: str, db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    return {"success": True, "event": build_event_list_item(db, event)}


@router.put("/events/{event_id}")
def update_event_route(
    event_id: str,
    payload: EventUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = update_event(db, get_event_or_404(db, event_id), payload, admin)
    log_admin_action(db, admin, "Update event", request, {"event_id": event.id})
    return {"success": True, "event": build_event_response(event)}


@router.delete("/events/{event_id}")
def delete_event_route(
    event_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = get_event_or_404(db, event_id)
    meta = {"event_id": event.id, "name": event.name}
    delete_event(db, event, admin)
    log_admin_action(db, admin, "Delete event", request, meta)
    return {"success": True, "message": "Event deleted successfully"}
