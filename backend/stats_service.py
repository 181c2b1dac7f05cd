from collections import Counter as TallyCounter
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from event_service import build_event_response, count_registered_teams, seats_taken
from models import (
    AdminInvite,
    Club,
    Event,
    EventApplication,
    EventRegistration,
    EventType,
    Invite,
    InviteStatus,
    Team,
    TeamMember,
    User,
    UserRole,
)
from registration_service import build_team_response
from schemas import UserBrief
from time_utils import days_ago, now_tz

UNKNOWN_DEPT = "Unknown"


def _gender_bucket(gender: Optional[str]) -> str:
    if gender == "Male":
        return "boys"
    if gender == "Female":
        return "girls"
    return "unknown"


def application_rows(db: Session, event: Event) -> List[dict]:
    rows = (
        db.query(EventApplication, User)
        .join(User, EventApplication.user_id == User.id)
        .filter(EventApplication.event_id == event.id)
        .order_by(EventApplication.applied_at.asc(), EventApplication.id.asc())
        .all()
    )
    return [
        {
            "user_id": application.user_id,
            "team_id": application.team_id,
            "applied_at": application.applied_at,
            "status": application.status.value,
            "is_present": application.is_present,
            "is_winner": application.is_winner,
            "winner_rank": application.winner_rank,
            "user": UserBrief.model_validate(user),
        }
        for application, user in rows
    ]


def event_registration_summary(db: Session, event: Event) -> dict:
    registrations = application_rows(db, event)
    teams = (
        db.query(Team)
        .filter(Team.event_id == event.id, Team.is_registered == True)
        .order_by(Team.registered_at.asc(), Team.id.asc())
        .all()
    )
    winners = sorted(
        (row for row in registrations if row["is_winner"]),
        key=lambda row: row["winner_rank"] if row["winner_rank"] is not None else float("inf"),
    )
    return {
        "event": build_event_response(event),
        "registration_count": seats_taken(db, event),
        "registered_teams_count": len(teams),
        "registrations": registrations,
        "teams": [build_team_response(team) for team in teams],
        "winners": winners,
    }


def assigned_event_dashboard(db: Session, admin: User) -> Optional[dict]:
    event = db.query(Event).filter(Event.id == admin.assigned_event_id).first() if admin.assigned_event_id else None
    if not event:
        return None
    summary = event_registration_summary(db, event)
    genders = TallyCounter(_gender_bucket(row["user"].gender) for row in summary["registrations"])
    summary["stats"] = {
        "total_applications": len(summary["registrations"]),
        "boys": genders.get("boys", 0),
        "girls": genders.get("girls", 0),
        "unknown": genders.get("unknown", 0),
        "present": sum(1 for row in summary["registrations"] if row["is_present"]),
    }
    return summary


def superadmin_dashboard(db: Session) -> dict:
    gender_rows = (
        db.query(User.gender, func.count(EventApplication.id))
        .join(User, EventApplication.user_id == User.id)
        .group_by(User.gender)
        .all()
    )
    genders = TallyCounter()
    for gender, count in gender_rows:
        genders[_gender_bucket(gender)] += count

    admins_by_club: Dict[str, int] = {}
    club_rows = (
        db.query(User.club, func.count(User.id))
        .filter(User.role == UserRole.ADMIN)
        .group_by(User.club)
        .all()
    )
    for club, count in club_rows:
        admins_by_club[club.value if club else "Unassigned"] = count

    total_users = db.query(User).count()
    verified_users = db.query(User).filter(User.is_verified == True).count()
    return {
        "total_applications": db.query(EventApplication).count(),
        "boys": genders.get("boys", 0),
        "girls": genders.get("girls", 0),
        "unknown": genders.get("unknown", 0),
        "total_users": total_users,
        "total_events": db.query(Event).count(),
        "total_admins": db.query(User).filter(User.role == UserRole.ADMIN).count(),
        "verified_users": verified_users,
        "unverified_users": total_users - verified_users,
        "recent_registrations": db.query(EventApplication).filter(EventApplication.applied_at >= days_ago(7)).count(),
        "pending_invites": db.query(Invite).filter(Invite.status == InviteStatus.PENDING).count(),
        "pending_admin_invites": db.query(AdminInvite).filter(
            AdminInvite.is_used == False,
            AdminInvite.invite_token_expires_at > now_tz(),
        ).count(),
        "admins_by_club": admins_by_club,
    }


def club_stats(db: Session, club: Club) -> dict:
    events = (
        db.query(Event)
        .filter((Event.club_in_charge == club.value) | (Event.organizing_club == club.value))
        .order_by(Event.name.asc())
        .all()
    )
    items = []
    for event in events:
        items.append({
            "id": event.id,
            "event_id": event.slug,
            "name": event.name,
            "event_type": event.event_type.value,
            "registration_count": seats_taken(db, event),
            "application_count": db.query(EventApplication).filter(EventApplication.event_id == event.id).count(),
            "registered_teams_count": count_registered_teams(db, event.id),
            "total_teams_count": db.query(Team).filter(Team.event_id == event.id).count(),
        })
    return {
        "club": club.value,
        "events": items,
        "totals": {
            "events": len(items),
            "registrations": sum(item["registration_count"] for item in items),
            "applications": sum(item["application_count"] for item in items),
            "registered_teams": sum(item["registered_teams_count"] for item in items),
        },
    }


def dept_gender_stats(db: Session, event_ids: Optional[List[int]] = None) -> List[dict]:
    """Department x gender counts over solo applicants and members of registered teams."""
    solo_query = (
        db.query(User.dept, User.gender)
        .join(EventApplication, EventApplication.user_id == User.id)
        .filter(EventApplication.team_id.is_(None))
    )
    member_query = (
        db.query(TeamMember.dept, TeamMember.gender)
        .join(Team, TeamMember.team_id == Team.id)
        .filter(Team.is_registered == True)
    )
    if event_ids is not None:
        solo_query = solo_query.filter(EventApplication.event_id.in_(event_ids))
        member_query = member_query.filter(Team.event_id.in_(event_ids))

    table: Dict[str, Dict[str, int]] = {}
    for dept, gender in list(solo_query.all()) + list(member_query.all()):
        key = (dept or "").strip() or UNKNOWN_DEPT
        row = table.setdefault(key, {"male": 0, "female": 0, "other": 0, "total": 0})
        if gender == "Male":
            row["male"] += 1
        elif gender == "Female":
            row["female"] += 1
        else:
            row["other"] += 1
        row["total"] += 1

    rows = [{"dept": dept, **counts} for dept, counts in table.items()]
    rows.sort(key=lambda row: (-row["total"], row["dept"]))
    return rows


def _registration_member(reg: EventRegistration) -> dict:
    return {
        "id": reg.id,
        "participant_name": reg.participant_name,
        "participant_email": reg.participant_email,
        "participant_mobile": reg.participant_mobile,
        "level": reg.level,
        "degree": reg.degree,
        "department": reg.full_department,
        "year": reg.year,
        "gender": reg.gender,
        "registration_date": reg.registration_date,
        "registrant_id": reg.registrant_id,
        "registrant_email": reg.registrant_email,
    }


def college_registrations(db: Session, user: User) -> dict:
    query = db.query(EventRegistration).filter(
        EventRegistration.college_name == user.college,
        EventRegistration.is_active == True,
    )
    if user.is_admin:
        coordinator_ids = [
            row.id
            for row in db.query(User.id).filter(
                User.college == user.college,
                User.role == UserRole.ADMIN,
                User.is_verified == True,
            ).all()
        ]
        query = query.filter(EventRegistration.registrant_id.in_(coordinator_ids or [-1]))
    registrations = query.order_by(EventRegistration.registration_date.desc(), EventRegistration.id.desc()).all()

    solo = [reg for reg in registrations if reg.event_type == EventType.SOLO]
    grouped: Dict[str, dict] = {}
    for reg in registrations:
        if reg.event_type != EventType.GROUP:
            continue
        key = f"{reg.team_id or reg.team_name}-{reg.event_id}"
        entry = grouped.setdefault(key, {
            "team_id": reg.team_id,
            "team_name": reg.team_name,
            "event_id": reg.event_id,
            "event_name": reg.event_name,
            "registrant_id": reg.registrant_id,
            "registrant_email": reg.registrant_email,
            "members": [],
        })
        entry["members"].append(_registration_member(reg))

    by_gender = {"Male": 0, "Female": 0, "Other": 0}
    by_level = {"UG": 0, "PG": 0, "PhD": 0}
    by_event: Dict[str, int] = {}
    for reg in registrations:
        if reg.gender in by_gender:
            by_gender[reg.gender] += 1
        if reg.level in by_level:
            by_level[reg.level] += 1
        by_event[reg.event_name] = by_event.get(reg.event_name, 0) + 1

    team_member_count = len(registrations) - len(solo)
    return {
        "solo_registrations": [
            {**_registration_member(reg), "event_id": reg.event_id, "event_name": reg.event_name}
            for reg in solo
        ],
        "team_registrations": list(grouped.values()),
        "stats": {
            "total": len(registrations),
            "solo_count": len(solo),
            "team_count": team_member_count,
            "total_teams": len(grouped),
            "by_gender": by_gender,
            "by_level": by_level,
            "by_event": by_event,
            "by_event_type": {"solo": len(solo), "group": team_member_count},
        },
    }
