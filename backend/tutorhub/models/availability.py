# backend/tutorhub/models/availability.py
"""
Availability rules owned by a teacher.

A rule is either RECURRING (a weekly interval on a weekday, optionally
bounded by valid_from/valid_until) or an EXCEPTION for a specific date.
Exceptions take over the whole date: an exception with ``is_open=False``
blocks it, one with ``is_open=True`` replaces the weekly intervals with its
own interval. Rules are edited in place and carry no history.
"""

from __future__ import annotations

from datetime import date, time
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .types import TimestampMixin

if TYPE_CHECKING:
    from .teacher import TeacherProfile


class AvailabilityRuleKind(str, Enum):
    RECURRING = "RECURRING"
    EXCEPTION = "EXCEPTION"


class AvailabilityRule(TimestampMixin, Base):
    """One weekly or date-specific availability definition."""

    __tablename__ = "availability_rules"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_profiles.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[AvailabilityRuleKind] = mapped_column(
        SAEnum(
            AvailabilityRuleKind,
            name="availability_rule_kind",
            native_enum=False,
            length=16,
            validate_strings=True,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    # 0 = Monday ... 6 = Sunday (date.weekday())
    weekday: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    specific_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    teacher: Mapped["TeacherProfile"] = relationship(
        "TeacherProfile", back_populates="availability_rules"
    )

    __table_args__ = (
        CheckConstraint(
            "(kind = 'RECURRING' AND weekday BETWEEN 0 AND 6 AND specific_date IS NULL)"
            " OR (kind = 'EXCEPTION' AND specific_date IS NOT NULL AND weekday IS NULL)",
            name="ck_availability_rules_kind_shape",
        ),
        CheckConstraint(
            "(is_open = false AND start_time IS NULL AND end_time IS NULL)"
            " OR (start_time IS NOT NULL AND end_time IS NOT NULL AND end_time > start_time)",
            name="ck_availability_rules_interval",
        ),
        CheckConstraint(
            "valid_from IS NULL OR valid_until IS NULL OR valid_until >= valid_from",
            name="ck_availability_rules_validity",
        ),
        Index("idx_availability_rules_teacher_kind", "teacher_id", "kind"),
    )

    @property
    def is_recurring(self) -> bool:
        return self.kind == AvailabilityRuleKind.RECURRING

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        anchor = self.weekday if self.is_recurring else self.specific_date
        return f"<AvailabilityRule {self.kind.value} {anchor} {self.start_time}-{self.end_time}>"
