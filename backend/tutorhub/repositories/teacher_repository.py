# backend/tutorhub/repositories/teacher_repository.py
"""
Teacher profile and subject catalog data access.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.exceptions import LockUnavailableException, RepositoryException
from ..models.teacher import SubjectOffering, TeacherProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TeacherRepository(BaseRepository[TeacherProfile]):
    """Reads teacher scheduling profiles and their offerings."""

    def __init__(self, db: Session):
        super().__init__(db, TeacherProfile)

    def _apply_eager_loading(self, query):
        return query.options(selectinload(TeacherProfile.offerings))

    def get_by_user_id(self, user_id: str) -> Optional[TeacherProfile]:
        return self.find_one_by(user_id=user_id)

    def lock_profile(self, teacher_id: str) -> Optional[TeacherProfile]:
        """
        Row-lock the teacher profile for the rest of the transaction.

        PostgreSQL takes ``FOR UPDATE NOWAIT`` so a concurrent writer for the
        same teacher fails immediately instead of queueing. SQLite serializes
        writers at the database level and gets a plain read.
        """
        query = self.db.query(TeacherProfile).filter(TeacherProfile.id == teacher_id)
        if self.dialect_name == "postgresql":
            query = query.with_for_update(nowait=True)
        try:
            return query.first()
        except OperationalError as exc:
            self.logger.warning("Teacher profile %s is locked: %s", teacher_id, exc)
            raise LockUnavailableException(f"Teacher {teacher_id} is busy") from exc
        except SQLAlchemyError as exc:
            self.logger.error("Error locking teacher profile %s: %s", teacher_id, exc)
            raise RepositoryException(f"Failed to lock teacher profile: {exc}") from exc

    # Subject catalog (read-only for scheduling)

    def get_offering(self, offering_id: str) -> Optional[SubjectOffering]:
        try:
            return (
                self.db.query(SubjectOffering).filter(SubjectOffering.id == offering_id).first()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Error loading offering %s: %s", offering_id, exc)
            raise RepositoryException(f"Failed to load subject offering: {exc}") from exc

    def get_active_offerings(self, teacher_id: str) -> List[SubjectOffering]:
        query = (
            self.db.query(SubjectOffering)
            .filter(
                SubjectOffering.teacher_id == teacher_id,
                SubjectOffering.is_active.is_(True),
            )
            .order_by(SubjectOffering.created_at, SubjectOffering.id)
        )
        return self._execute_query(query)
