import csv
import io
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.orm import Session

from database import get_db
from email_workflows import send_smtp_test_email
from emailer import describe_email_config
from event_service import (
    build_event_list_item,
    build_event_response,
    create_event,
    delete_event,
    ensure_club_access,
    get_event_or_404,
    update_event,
)
from models import AdminInvite, AdminLog, Event, EventApplication, EventStaffIncharge, Team, User, UserRole
from schemas import (
    AdminLogResponse,
    AttendanceUpdateRequest,
    EventCreate,
    EventUpdate,
    RegistrationAttendanceRequest,
    RoleUpdateRequest,
    UserResponse,
    WinnersUpdateRequest,
)
from security import can_manage_event, require_admin, require_superadmin
from stats_service import (
    application_rows,
    assigned_event_dashboard,
    club_stats,
    dept_gender_stats,
    event_registration_summary,
    superadmin_dashboard,
)
from time_utils import now_tz
from user_builders import ADMIN_EVENT_REQUIRED, map_club_name
from utils import log_admin_action

router = APIRouter()

EXPORT_HEADERS = [
    "User Code", "Name", "Email", "Phone", "Gender", "Department", "Year", "College",
    "Team", "Applied At", "Present", "Winner Rank",
]


def _club_events_query(db: Session, admin: User):
    query = db.query(Event)
    if not admin.is_superadmin:
        query = query.filter(Event.club_in_charge == (admin.club.value if admin.club else None))
    return query


def _managed_event_or_403(db: Session, admin: User, event_id: str) -> Event:
    event = get_event_or_404(db, event_id)
    if not can_manage_event(admin, event):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not authorized to view this event's registrations",
        )
    return event


def _sync_user_flags(db: Session, user_ids) -> None:
    # SessionLocal uses autoflush=False; pending winner/attendance writes must be visible below
    db.flush()
    for user in db.query(User).filter(User.id.in_(list(user_ids) or [-1])).all():
        user.is_winner = db.query(EventApplication.id).filter(
            EventApplication.user_id == user.id,
            EventApplication.is_winner == True,
        ).first() is not None
        user.is_present = db.query(EventApplication.id).filter(
            EventApplication.user_id == user.id,
            EventApplication.is_present == True,
        ).first() is not None


# Dashboard
@router.get("/dashboard/stats")
def dashboard_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if admin.is_superadmin:
        return {"success": True, "is_superadmin": True, "stats": superadmin_dashboard(db)}
    summary = assigned_event_dashboard(db, admin)
    if summary is None:
        return {"success": True, "is_superadmin": False, "message": "No event assigned to this admin", "stats": None}
    return {"success": True, "is_superadmin": False, **summary}


@router.get("/dashboard/events-registrations")
def events_with_registrations(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    events = _club_events_query(db, admin).order_by(Event.name.asc()).all()
    return {"success": True, "events": [event_registration_summary(db, event) for event in events]}


@router.get("/dashboard/club-stats")
def dashboard_club_stats(
    club: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if admin.is_superadmin and club:
        target = map_club_name(club)
    elif admin.club:
        target = admin.club
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admin must belong to a club")
    return {"success": True, **club_stats(db, target)}


@router.get("/dashboard/dept-stats")
def dashboard_dept_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    event_ids = None
    if not admin.is_superadmin:
        event_ids = [row.id for row in _club_events_query(db, admin).with_entities(Event.id).all()]
    rows = dept_gender_stats(db, event_ids)
    return {"success": True, "departments": rows, "total": sum(row["total"] for row in rows)}


# Events
@router.get("/events")
def admin_list_events(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    events = _club_events_query(db, admin).order_by(Event.created_at.desc(), Event.id.desc()).all()
    return {"success": True, "events": [build_event_list_item(db, event) for event in events], "count": len(events)}


@router.post("/events", status_code=status.HTTP_201_CREATED)
def admin_create_event(
    payload: EventCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = create_event(db, payload, admin)
    log_admin_action(db, admin, "Create event", request, {"event_id": event.id, "name": event.name})
    return {"success": True, "message": "Event created successfully", "event": build_event_response(event)}


@router.get("/events/{event_id}")
def admin_get_event(event_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    ensure_club_access(admin, event, "view")
    return {"success": True, "event": build_event_list_item(db, event)}


@router.put("/events/{event_id}")
def admin_update_event(
    event_id: str,
    payload: EventUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = update_event(db, get_event_or_404(db, event_id), payload, admin)
    log_admin_action(db, admin, "Update event", request, {"event_id": event.id})
    return {"success": True, "message": "Event updated successfully", "event": build_event_response(event)}


@router.delete("/events/{event_id}")
def admin_delete_event(
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


@router.get("/events/{event_id}/with-registrations")
def admin_event_with_registrations(event_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    ensure_club_access(admin, event, "view")
    return {"success": True, **event_registration_summary(db, event)}


@router.put("/events/{event_id}/attendance")
def update_attendance(
    event_id: str,
    payload: AttendanceUpdateRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = _managed_event_or_403(db, admin, event_id)
    if not payload.attendance:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attendance list is required")

    updated = 0
    for entry in payload.attendance:
        application = db.query(EventApplication).filter(
            EventApplication.event_id == event.id,
            EventApplication.user_id == entry.user_id,
        ).first()
        if application:
            application.is_present = entry.is_present
            updated += 1
    _sync_user_flags(db, [entry.user_id for entry in payload.attendance])
    db.commit()
    log_admin_action(db, admin, "Update attendance", request, {"event_id": event.id, "updated": updated})
    return {"success": True, "message": f"Attendance updated for {updated} participant(s)", "updated": updated}


@router.put("/events/{event_id}/winners")
def update_winners(
    event_id: str,
    payload: WinnersUpdateRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = _managed_event_or_403(db, admin, event_id)
    if payload.winners is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Winners list is required")

    ranks = {}
    for entry in payload.winners:
        if entry.team_id is not None:
            team = db.query(Team).filter(Team.id == entry.team_id, Team.event_id == event.id).first()
            if not team:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Team {entry.team_id} not found for this event")
            for member in team.members:
                if member.user_id is not None:
                    ranks[member.user_id] = entry.winner_rank
        elif entry.user_id is not None:
            ranks[entry.user_id] = entry.winner_rank
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Each winner needs a user_id or team_id")

    applications = db.query(EventApplication).filter(EventApplication.event_id == event.id).all()
    registered = {application.user_id for application in applications}
    missing = [user_id for user_id in ranks if user_id not in registered]
    if missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"User {missing[0]} is not registered for this event")

    for application in applications:
        application.is_winner = application.user_id in ranks
        application.winner_rank = ranks.get(application.user_id)
    _sync_user_flags(db, registered)
    db.commit()
    log_admin_action(db, admin, "Update winners", request, {"event_id": event.id, "winners": len(ranks)})
    return {"success": True, "message": "Winners updated successfully", "winner_count": len(ranks)}


@router.get("/events/{event_id}/registrations")
def event_registrations(event_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    event = _managed_event_or_403(db, admin, event_id)
    return {"success": True, **event_registration_summary(db, event)}


@router.put("/events/{event_id}/registrations/{registration_id}/attendance")
def update_registration_attendance(
    event_id: str,
    registration_id: int,
    payload: RegistrationAttendanceRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = _managed_event_or_403(db, admin, event_id)
    if payload.attended is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attendance status is required")
    application = db.query(EventApplication).filter(
        EventApplication.id == registration_id,
        EventApplication.event_id == event.id,
    ).first()
    if not application:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    application.is_present = payload.attended
    _sync_user_flags(db, [application.user_id])
    db.commit()
    log_admin_action(db, admin, "Update registration attendance", request, {"event_id": event.id, "registration_id": registration_id})
    return {"success": True, "message": "Attendance updated", "is_present": application.is_present}


@router.get("/events/{event_id}/registrations/export")
def export_registrations(
    event_id: str,
    format: str = Query("csv", enum=["csv", "xlsx"]),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = _managed_event_or_403(db, admin, event_id)
    team_names = {team.id: team.team_name for team in db.query(Team).filter(Team.event_id == event.id).all()}
    rows = []
    for row in application_rows(db, event):
        user = db.query(User).filter(User.id == row["user_id"]).first()
        rows.append([
            user.user_code, user.name, user.email, user.phone, user.gender, user.dept, user.year, user.college,
            team_names.get(row["team_id"], ""),
            row["applied_at"].isoformat() if row["applied_at"] else "",
            "Yes" if row["is_present"] else "No",
            row["winner_rank"] or "",
        ])

    filename = f"{event.slug}_registrations"
    if format == "xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = "Registrations"
        ws.append(EXPORT_HEADERS)
        for row in rows:
            ws.append(row)

        output = io.BytesIO()
        wb.save(output)
        output.seek(0)

        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"}
        )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(rows)

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}.csv"}
    )


@router.get("/events-with-admin-status")
def events_with_admin_status(_: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    events = db.query(Event).order_by(Event.name.asc()).all()
    items = []
    for event in events:
        admin = db.query(User).filter(User.role == UserRole.ADMIN, User.assigned_event_id == event.id).first()
        pending = db.query(AdminInvite).filter(
            AdminInvite.event_id == event.id,
            AdminInvite.is_used == False,
            AdminInvite.invite_token_expires_at > now_tz(),
        ).first()
        items.append({
            "id": event.id,
            "event_id": event.slug,
            "name": event.name,
            "club_in_charge": event.club_in_charge,
            "has_admin": admin is not None,
            "admin": {"id": admin.id, "name": admin.name, "email": admin.email} if admin else None,
            "has_pending_invite": pending is not None,
        })
    return {"success": True, "events": items}


# Users
@router.get("/users")
def admin_list_users(
    role: Optional[str] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role:
        try:
            query = query.filter(User.role == UserRole(role))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return {"success": True, "users": [UserResponse.model_validate(user) for user in users], "count": len(users)}


def _assign_admin_event(db: Session, user: User, event: Event) -> None:
    if user.assigned_event_id == event.id:
        return
    taken = db.query(User.id).filter(
        User.role == UserRole.ADMIN,
        User.assigned_event_id == event.id,
        User.id != user.id,
    ).first()
    if taken:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This event already has an admin assigned")
    db.query(EventStaffIncharge).filter(EventStaffIncharge.admin_id == user.id).delete(synchronize_session=False)
    user.assigned_event_id = event.id
    event.staff_incharges.append(EventStaffIncharge(
        admin_id=user.id,
        name=user.name,
        email=user.email,
        club=user.club.value,
    ))


@router.put("/users/{user_id}/role")
def update_user_role(
    user_id: int,
    payload: RoleUpdateRequest,
    request: Request,
    superadmin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    try:
        role = UserRole(payload.role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == superadmin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    if role == UserRole.ADMIN:
        if payload.club:
            user.club = map_club_name(payload.club)
        if not user.club:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Club field is required for admin users")
        if not user.is_superadmin:
            if payload.event_id:
                _assign_admin_event(db, user, get_event_or_404(db, payload.event_id))
            elif user.assigned_event_id is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ADMIN_EVENT_REQUIRED)
    else:
        db.query(EventStaffIncharge).filter(EventStaffIncharge.admin_id == user.id).delete(synchronize_session=False)
        user.club = None
        user.assigned_event_id = None
    user.role = role
    db.commit()
    db.refresh(user)
    log_admin_action(db, superadmin, "Update user role", request, {"user_id": user.id, "role": role.value})
    return {"success": True, "message": "User role updated successfully", "user": UserResponse.model_validate(user)}


@router.get("/users/admins-by-club")
def admins_by_club(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    admins = db.query(User).filter(User.role == UserRole.ADMIN).order_by(User.name.asc()).all()
    grouped = {}
    for admin in admins:
        key = admin.club.value if admin.club else "Unassigned"
        grouped.setdefault(key, []).append({
            "id": admin.id,
            "name": admin.name,
            "email": admin.email,
            "is_superadmin": admin.is_superadmin,
            "assigned_event_id": admin.assigned_event_id,
        })
    return {"success": True, "clubs": grouped}


@router.get("/users/all-admins")
def all_admins(_: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    admins = db.query(User).filter(User.role == UserRole.ADMIN).order_by(User.name.asc()).all()
    items = []
    for admin in admins:
        event = admin.assigned_event
        items.append({
            **UserResponse.model_validate(admin).model_dump(),
            "assigned_event_name": event.name if event else None,
            "assigned_event_code": event.slug if event else None,
        })
    return {"success": True, "admins": items, "count": len(items)}


@router.get("/debug/email-config")
def email_config(superadmin: User = Depends(require_superadmin)):
    sent, error = send_smtp_test_email(superadmin.email)
    return {
        "success": True,
        "config": describe_email_config(),
        "email_test": {"success": sent, "error": error, "sent_to": superadmin.email},
    }


@router.get("/logs")
def admin_logs(
    limit: int = Query(50, ge=1, le=500),
    _: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    logs = db.query(AdminLog).order_by(AdminLog.id.desc()).limit(limit).all()
    return {"success": True, "logs": [AdminLogResponse.model_validate(log) for log in logs]}
