"""
Request-scoped dependencies: acting user and tenant

Authentication itself happens upstream; by the time a request reaches this
service the caller is identified by the X-User-Id header.
"""
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database import get_db
from app.models import User
from app.services.entity_store import EntityStore


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authorized, no user")

    user = EntityStore(db).find_user_by_id(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authorized, user not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized as an admin")
    return user


def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> Optional[UUID]:
    if not x_tenant_id:
        return None
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid tenant id")
