from fastapi import Depends, HTTPException, status

from auth import get_current_user
from models import Event, User


def require_user(user: User = Depends(get_current_user)) -> User:
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin and not user.is_superadmin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def require_superadmin(user: User = Depends(get_current_user)) -> User:
    if not user.is_superadmin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Superadmin access required")
    return user


def can_manage_event(user: User, event: Event) -> bool:
    """Super-admins manage everything; other admins only the event they are assigned to."""
    if user.is_superadmin:
        return True
    return bool(user.assigned_event_id and user.assigned_event_id == event.id)

