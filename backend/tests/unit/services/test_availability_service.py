"""AvailabilityService rule management."""

from datetime import date, time

from pydantic import ValidationError
import pytest

from tutorhub.core.exceptions import (
    AvailabilityOverlapException,
    NotFoundException,
    ValidationException,
)
from tutorhub.models.availability import AvailabilityRule, AvailabilityRuleKind
from tutorhub.schemas.availability import AvailabilityRuleCreate
from tutorhub.services.availability_service import AvailabilityService


def recurring(weekday: int, start: str, end: str, **kwargs) -> AvailabilityRuleCreate:
    return AvailabilityRuleCreate(
        kind=AvailabilityRuleKind.RECURRING,
        weekday=weekday,
        start_time=start,
        end_time=end,
        **kwargs,
    )


@pytest.fixture
def teacher(make_teacher):
    return make_teacher(timezone="Asia/Tashkent")


@pytest.fixture
def service(db) -> AvailabilityService:
    return AvailabilityService(db)


class TestCreateRule:
    def test_rule_defaults_to_teacher_timezone(self, service, teacher):
        rule = service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))

        assert rule.teacher_id == teacher.id
        assert rule.timezone == "Asia/Tashkent"
        assert rule.start_time == time(9)
        assert service.list_rules(teacher.id) == [rule]

    def test_explicit_timezone_is_kept(self, service, teacher):
        rule = service.create_rule(teacher.id, recurring(0, "09:00", "12:00", timezone="Europe/Berlin"))
        assert rule.timezone == "Europe/Berlin"

    def test_unknown_timezone_is_rejected(self, service, teacher):
        with pytest.raises(ValidationException) as exc_info:
            service.create_rule(teacher.id, recurring(0, "09:00", "12:00", timezone="Mars/Olympus"))
        assert exc_info.value.code == "INVALID_TIMEZONE"

    def test_overlapping_weekly_rule_is_rejected(self, service, teacher):
        service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))

        with pytest.raises(AvailabilityOverlapException):
            service.create_rule(teacher.id, recurring(0, "11:00", "13:00"))

    def test_touching_rules_do_not_overlap(self, service, teacher):
        service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))
        service.create_rule(teacher.id, recurring(0, "12:00", "14:00"))
        assert len(service.list_rules(teacher.id)) == 2

    def test_disjoint_validity_windows_may_share_hours(self, service, teacher):
        service.create_rule(
            teacher.id, recurring(0, "09:00", "12:00", valid_until=date(2030, 1, 31))
        )
        service.create_rule(
            teacher.id, recurring(0, "09:00", "12:00", valid_from=date(2030, 2, 1))
        )
        assert len(service.list_rules(teacher.id)) == 2

    def test_blocked_exception_collides_with_any_rule_on_its_date(self, service, teacher):
        service.create_rule(
            teacher.id,
            AvailabilityRuleCreate(
                kind=AvailabilityRuleKind.EXCEPTION,
                specific_date=date(2030, 1, 8),
                start_time="10:00",
                end_time="11:00",
            ),
        )
        with pytest.raises(AvailabilityOverlapException):
            service.create_rule(
                teacher.id,
                AvailabilityRuleCreate(
                    kind=AvailabilityRuleKind.EXCEPTION,
                    specific_date=date(2030, 1, 8),
                    is_open=False,
                ),
            )

    def test_unknown_teacher(self, service):
        with pytest.raises(NotFoundException):
            service.create_rule("01J0000000000000000000000X", recurring(0, "09:00", "12:00"))


class TestRuleShape:
    def test_end_before_start_is_rejected(self):
        with pytest.raises(ValidationError):
            recurring(0, "12:00", "09:00")

    def test_recurring_rule_cannot_be_closed(self):
        with pytest.raises(ValidationError):
            AvailabilityRuleCreate(kind=AvailabilityRuleKind.RECURRING, weekday=1, is_open=False)

    def test_blocked_exception_cannot_carry_times(self):
        with pytest.raises(ValidationError):
            AvailabilityRuleCreate(
                kind=AvailabilityRuleKind.EXCEPTION,
                specific_date=date(2030, 1, 8),
                is_open=False,
                start_time="09:00",
                end_time="10:00",
            )


class TestUpdateAndDelete:
    def test_update_edits_in_place_and_ignores_itself_for_overlap(self, service, teacher):
        rule = service.create_rule(teacher.id, recurring(2, "09:00", "12:00"))

        updated = service.update_rule(teacher.id, rule.id, recurring(2, "10:00", "13:00"))

        assert updated.id == rule.id
        assert updated.start_time == time(10)
        assert updated.end_time == time(13)

    def test_update_into_another_rule_is_rejected(self, service, teacher):
        service.create_rule(teacher.id, recurring(2, "09:00", "12:00"))
        other = service.create_rule(teacher.id, recurring(2, "14:00", "16:00"))

        with pytest.raises(AvailabilityOverlapException):
            service.update_rule(teacher.id, other.id, recurring(2, "11:00", "15:00"))

    def test_delete_removes_rule(self, service, teacher, db):
        rule = service.create_rule(teacher.id, recurring(3, "09:00", "12:00"))
        service.delete_rule(teacher.id, rule.id)
        assert db.get(AvailabilityRule, rule.id) is None

    def test_delete_someone_elses_rule_is_not_found(self, service, teacher, make_teacher):
        rule = service.create_rule(teacher.id, recurring(3, "09:00", "12:00"))
        stranger = make_teacher()
        with pytest.raises(NotFoundException):
            service.delete_rule(stranger.id, rule.id)


class TestReplaceRules:
    def test_replaces_existing_rules(self, service, teacher):
        service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))

        created = service.replace_rules(
            teacher.id, [recurring(1, "09:00", "10:00"), recurring(2, "09:00", "10:00")]
        )

        assert {rule.weekday for rule in service.list_rules(teacher.id)} == {1, 2}
        assert len(created) == 2

    def test_batch_is_all_or_nothing(self, service, teacher):
        service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))

        with pytest.raises(AvailabilityOverlapException):
            service.replace_rules(
                teacher.id, [recurring(1, "09:00", "11:00"), recurring(1, "10:00", "12:00")]
            )

        remaining = service.list_rules(teacher.id)
        assert [(rule.weekday, rule.start_time) for rule in remaining] == [(0, time(9))]

    def test_appending_keeps_existing_rules(self, service, teacher):
        service.create_rule(teacher.id, recurring(0, "09:00", "12:00"))
        service.replace_rules(teacher.id, [recurring(4, "09:00", "10:00")], replace_existing=False)
        assert len(service.list_rules(teacher.id)) == 2

    def test_too_many_rules(self, service, teacher):
        rules = [recurring(i % 7, "09:00", "09:30") for i in range(51)]
        with pytest.raises(ValidationException) as exc_info:
            service.replace_rules(teacher.id, rules)
        assert exc_info.value.code == "TOO_MANY_RULES"
