"""
Caller identity dependencies.

Authentication happens upstream; requests arrive with ``X-User-Id`` and
``X-User-Role`` headers. This module only parses them and enforces roles.
"""

from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...core.principal import Principal, Role
from ...models.teacher import TeacherProfile
from ...repositories.factory import RepositoryFactory
from .database import get_db


def get_current_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Principal:
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        )
    return Principal(user_id=x_user_id, role=role)


def require_role(*roles: Role) -> Callable[[Principal], Principal]:
    """Dependency factory rejecting callers outside ``roles`` with 403."""

    def _checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _checker


def get_current_teacher(
    principal: Principal = Depends(require_role(Role.TEACHER)),
    db: Session = Depends(get_db),
) -> TeacherProfile:
    """The calling teacher's scheduling profile."""
    teacher = RepositoryFactory.create_teacher_repository(db).get_by_user_id(principal.user_id)
    if not teacher:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Teacher profile not found",
        )
    return teacher


def ensure_teacher_owner(teacher_id: str, principal: Principal, db: Session) -> None:
    """403 unless the caller is an admin or the teacher behind ``teacher_id``."""
    if principal.is_admin:
        return
    teacher = RepositoryFactory.create_teacher_repository(db).get_by_id(
        teacher_id, load_relationships=False
    )
    if not teacher:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher not found")
    if principal.role != Role.TEACHER or teacher.user_id != principal.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own availability",
        )
