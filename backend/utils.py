from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from models import AdminLog, User


def log_admin_action(db: Session, admin: User, action: str, request: Optional[Request] = None, meta: Optional[dict] = None):
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=admin.email if admin else "",
        admin_name=admin.name if admin else "",
        action=action,
        method=request.method if request else None,
        path=request.url.path if request else None,
        meta=meta
    ))
    db.commit()
