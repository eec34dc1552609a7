# backend/tutorhub/models/teacher.py
"""
Teacher scheduling profile and the subject pricing catalog.

Teachers and students are owned by the external identity service; this
module only keeps what scheduling and pricing need. SubjectOffering rows are
a read-only catalog from the booking engine's point of view: bookings copy
the current hourly rate at reservation time and never look back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .types import IntegerArrayType, TimestampMixin

if TYPE_CHECKING:
    from .availability import AvailabilityRule


class TeacherProfile(TimestampMixin, Base):
    """Scheduling preferences for a single teacher."""

    __tablename__ = "teacher_profiles"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Tashkent")
    allowed_durations: Mapped[List[int]] = mapped_column(
        IntegerArrayType(), nullable=False, default=lambda: [30, 60, 90, 120]
    )
    instant_confirmation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # None means "use the platform default lead time"
    min_notice_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    offerings: Mapped[List["SubjectOffering"]] = relationship(
        "SubjectOffering", back_populates="teacher", order_by="SubjectOffering.created_at"
    )
    availability_rules: Mapped[List["AvailabilityRule"]] = relationship(
        "AvailabilityRule", back_populates="teacher", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "min_notice_minutes IS NULL OR min_notice_minutes >= 0",
            name="ck_teacher_profiles_min_notice_non_negative",
        ),
    )

    def allows_duration(self, duration_minutes: int) -> bool:
        return duration_minutes in (self.allowed_durations or [])

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<TeacherProfile {self.id} user={self.user_id} tz={self.timezone}>"


class SubjectOffering(TimestampMixin, Base):
    """A subject a teacher teaches, with its current hourly rate in minor units."""

    __tablename__ = "subject_offerings"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_profiles.id", ondelete="CASCADE"), nullable=False
    )
    subject_name: Mapped[str] = mapped_column(String(120), nullable=False)
    price_per_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    teacher: Mapped[TeacherProfile] = relationship("TeacherProfile", back_populates="offerings")

    __table_args__ = (
        CheckConstraint("price_per_hour >= 0", name="ck_subject_offerings_price_non_negative"),
        Index("idx_subject_offerings_teacher_active", "teacher_id", "is_active"),
    )
