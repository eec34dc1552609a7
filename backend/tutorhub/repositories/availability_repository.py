# backend/tutorhub/repositories/availability_repository.py
"""
Availability rule data access.

Rules are plain rows edited in place; expansion into concrete intervals
happens in the domain layer, never in SQL.
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilityRule, AvailabilityRuleKind
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilityRule]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRule)

    def list_for_teacher(
        self, teacher_id: str, kind: Optional[AvailabilityRuleKind] = None
    ) -> List[AvailabilityRule]:
        query = self.db.query(AvailabilityRule).filter(AvailabilityRule.teacher_id == teacher_id)
        if kind is not None:
            query = query.filter(AvailabilityRule.kind == kind)
        query = query.order_by(
            AvailabilityRule.kind,
            AvailabilityRule.weekday,
            AvailabilityRule.specific_date,
            AvailabilityRule.start_time,
        )
        return self._execute_query(query)

    def get_for_teacher(self, teacher_id: str, rule_id: str) -> Optional[AvailabilityRule]:
        return self.find_one_by(id=rule_id, teacher_id=teacher_id)

    def find_same_day_rules(
        self,
        teacher_id: str,
        kind: AvailabilityRuleKind,
        *,
        weekday: Optional[int] = None,
        specific_date: Optional[date] = None,
        exclude_rule_id: Optional[str] = None,
    ) -> List[AvailabilityRule]:
        """Rules of the same kind anchored on the same weekday or date."""
        query = self.db.query(AvailabilityRule).filter(
            AvailabilityRule.teacher_id == teacher_id,
            AvailabilityRule.kind == kind,
        )
        if kind == AvailabilityRuleKind.RECURRING:
            query = query.filter(AvailabilityRule.weekday == weekday)
        else:
            query = query.filter(AvailabilityRule.specific_date == specific_date)
        if exclude_rule_id:
            query = query.filter(AvailabilityRule.id != exclude_rule_id)
        return self._execute_query(query)

    def get_rules_for_range(
        self, teacher_id: str, start_date: date, end_date: date
    ) -> List[AvailabilityRule]:
        """
        Rules that can contribute intervals to [start_date, end_date].

        Recurring rules whose validity window misses the range and exceptions
        dated outside it are filtered out here.
        """
        query = self.db.query(AvailabilityRule).filter(
            AvailabilityRule.teacher_id == teacher_id,
            or_(
                (AvailabilityRule.kind == AvailabilityRuleKind.RECURRING)
                & or_(AvailabilityRule.valid_from.is_(None), AvailabilityRule.valid_from <= end_date)
                & or_(
                    AvailabilityRule.valid_until.is_(None),
                    AvailabilityRule.valid_until >= start_date,
                ),
                (AvailabilityRule.kind == AvailabilityRuleKind.EXCEPTION)
                & AvailabilityRule.specific_date.between(start_date, end_date),
            ),
        )
        return self._execute_query(query)

    def delete_all_for_teacher(self, teacher_id: str) -> int:
        try:
            deleted = (
                self.db.query(AvailabilityRule)
                .filter(AvailabilityRule.teacher_id == teacher_id)
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
            return int(deleted)
        except SQLAlchemyError as exc:
            self.logger.error("Error deleting rules for teacher %s: %s", teacher_id, exc)
            raise RepositoryException(f"Failed to delete availability rules: {exc}") from exc
