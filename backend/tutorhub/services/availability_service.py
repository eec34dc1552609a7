# backend/tutorhub/services/availability_service.py
"""
Availability Service

Owns a teacher's recurring weekly rules and date-specific exceptions.
Rules are edited in place. Expansion into concrete time lives in
``slot_generator``; this service only validates and stores definitions.
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import AvailabilityOverlapException, NotFoundException, ValidationException
from ..domain.availability_rules import Rule, to_domain_rules
from ..models.availability import AvailabilityRule, AvailabilityRuleKind
from ..models.teacher import TeacherProfile
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import MAX_BULK_RULES, AvailabilityRuleCreate
from .base import BaseService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _describe_day(rule: AvailabilityRuleCreate | AvailabilityRule) -> str:
    if rule.kind == AvailabilityRuleKind.RECURRING:
        return WEEKDAY_NAMES[rule.weekday]
    return rule.specific_date.isoformat()


def _describe_range(rule: AvailabilityRuleCreate | AvailabilityRule) -> str:
    if not rule.is_open:
        return "blocked"
    return f"{rule.start_time.strftime('%H:%M')}-{rule.end_time.strftime('%H:%M')}"


def _validity_overlaps(a: AvailabilityRuleCreate | AvailabilityRule, b: AvailabilityRule) -> bool:
    a_from = a.valid_from or date.min
    a_until = a.valid_until or date.max
    b_from = b.valid_from or date.min
    b_until = b.valid_until or date.max
    return a_from <= b_until and b_from <= a_until


def _rules_collide(candidate: AvailabilityRuleCreate | AvailabilityRule, existing: AvailabilityRule) -> bool:
    if candidate.kind == AvailabilityRuleKind.RECURRING and not _validity_overlaps(
        candidate, existing
    ):
        return False
    # A blocked exception owns its date, so it collides with anything on it
    if not candidate.is_open or not existing.is_open:
        return True
    return candidate.start_time < existing.end_time and existing.start_time < candidate.end_time


class AvailabilityService(BaseService):
    """Manage availability rules for a teacher."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.repository = RepositoryFactory.create_availability_repository(db)

    def _get_teacher(self, teacher_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_id(teacher_id, load_relationships=False)
        if not teacher:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
        return teacher

    def _resolve_timezone(self, teacher: TeacherProfile, requested: Optional[str]) -> str:
        tz_name = requested or teacher.timezone
        if not TimezoneService.is_valid_timezone(tz_name):
            raise ValidationException(
                f"Unknown timezone: {tz_name}",
                code="INVALID_TIMEZONE",
                details={"timezone": tz_name},
            )
        return tz_name

    def _check_overlap(
        self,
        teacher_id: str,
        data: AvailabilityRuleCreate,
        exclude_rule_id: Optional[str] = None,
    ) -> None:
        same_day = self.repository.find_same_day_rules(
            teacher_id,
            data.kind,
            weekday=data.weekday,
            specific_date=data.specific_date,
            exclude_rule_id=exclude_rule_id,
        )
        for existing in same_day:
            if _rules_collide(data, existing):
                raise AvailabilityOverlapException(
                    _describe_day(data), _describe_range(data), _describe_range(existing)
                )

    def _rule_fields(self, teacher: TeacherProfile, data: AvailabilityRuleCreate) -> dict:
        return {
            "kind": data.kind,
            "weekday": data.weekday,
            "specific_date": data.specific_date,
            "start_time": data.start_time,
            "end_time": data.end_time,
            "is_open": data.is_open,
            "timezone": self._resolve_timezone(teacher, data.timezone),
            "valid_from": data.valid_from,
            "valid_until": data.valid_until,
        }

    @BaseService.measure_operation("list_rules")
    def list_rules(self, teacher_id: str) -> List[AvailabilityRule]:
        self._get_teacher(teacher_id)
        return self.repository.list_for_teacher(teacher_id)

    @BaseService.measure_operation("create_rule")
    def create_rule(self, teacher_id: str, data: AvailabilityRuleCreate) -> AvailabilityRule:
        teacher = self._get_teacher(teacher_id)
        fields = self._rule_fields(teacher, data)
        with self.transaction():
            self._check_overlap(teacher_id, data)
            rule = self.repository.create(teacher_id=teacher_id, **fields)
        self.log_operation("create_rule", teacher_id=teacher_id, rule_id=rule.id)
        return rule

    @BaseService.measure_operation("update_rule")
    def update_rule(
        self, teacher_id: str, rule_id: str, data: AvailabilityRuleCreate
    ) -> AvailabilityRule:
        teacher = self._get_teacher(teacher_id)
        rule = self.repository.get_for_teacher(teacher_id, rule_id)
        if not rule:
            raise NotFoundException(
                f"Availability rule {rule_id} not found", code="AVAILABILITY_RULE_NOT_FOUND"
            )
        fields = self._rule_fields(teacher, data)
        with self.transaction():
            self._check_overlap(teacher_id, data, exclude_rule_id=rule_id)
            for key, value in fields.items():
                setattr(rule, key, value)
            self.repository.flush()
        self.log_operation("update_rule", teacher_id=teacher_id, rule_id=rule_id)
        return rule

    @BaseService.measure_operation("delete_rule")
    def delete_rule(self, teacher_id: str, rule_id: str) -> None:
        rule = self.repository.get_for_teacher(teacher_id, rule_id)
        if not rule:
            raise NotFoundException(
                f"Availability rule {rule_id} not found", code="AVAILABILITY_RULE_NOT_FOUND"
            )
        with self.transaction():
            self.repository.delete(rule_id)
        self.log_operation("delete_rule", teacher_id=teacher_id, rule_id=rule_id)

    @BaseService.measure_operation("replace_rules")
    def replace_rules(
        self,
        teacher_id: str,
        rules: List[AvailabilityRuleCreate],
        replace_existing: bool = True,
    ) -> List[AvailabilityRule]:
        """
        Bulk save up to MAX_BULK_RULES rules in one transaction.

        With ``replace_existing`` the teacher's current rules are dropped
        first; either way the batch is all-or-nothing.
        """
        if len(rules) > MAX_BULK_RULES:
            raise ValidationException(
                f"At most {MAX_BULK_RULES} rules can be saved at once",
                code="TOO_MANY_RULES",
                details={"count": len(rules)},
            )
        teacher = self._get_teacher(teacher_id)
        prepared = [(data, self._rule_fields(teacher, data)) for data in rules]

        created: List[AvailabilityRule] = []
        with self.transaction():
            if replace_existing:
                removed = self.repository.delete_all_for_teacher(teacher_id)
                logger.info("Replacing %s availability rules for teacher %s", removed, teacher_id)
            for data, fields in prepared:
                self._check_overlap(teacher_id, data)
                created.append(self.repository.create(teacher_id=teacher_id, **fields))
        self.log_operation("replace_rules", teacher_id=teacher_id, count=len(created))
        return created

    def get_rules_for_range(self, teacher_id: str, start_date: date, end_date: date) -> List[Rule]:
        """Domain rules that can open time between the two local dates (inclusive)."""
        rows = self.repository.get_rules_for_range(teacher_id, start_date, end_date)
        return to_domain_rules(rows)
