# backend/tutorhub/repositories/booking_repository.py
"""
Booking data access, including the overlap queries used for conflict
checking at reservation time and for slot subtraction.
"""

from datetime import datetime
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def find_overlapping(
        self,
        teacher_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Active bookings intersecting the half-open interval [start_at, end_at).

        Back-to-back bookings (one ending exactly when the other starts) do
        not overlap.
        """
        query = self.db.query(Booking).filter(
            Booking.teacher_id == teacher_id,
            Booking.status.in_(list(ACTIVE_BOOKING_STATUSES)),
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return self._execute_query(query.order_by(Booking.start_at))

    def get_active_in_range(
        self, teacher_id: str, range_start: datetime, range_end: datetime
    ) -> List[Booking]:
        return self.find_overlapping(teacher_id, range_start, range_end)

    def list_bookings(
        self,
        *,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Booking], int]:
        query = self.db.query(Booking)
        if teacher_id:
            query = query.filter(Booking.teacher_id == teacher_id)
        if student_id:
            query = query.filter(Booking.student_id == student_id)
        if status:
            query = query.filter(Booking.status == status)
        query = query.order_by(Booking.start_at.desc(), Booking.id)
        return self._paginate(query, page, per_page)

    def count_grouped_by(
        self,
        column,
        *,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        created_since: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """Booking counts keyed by the raw value of ``column`` (status or booking_type)."""
        query = self.db.query(column, func.count(Booking.id))
        if teacher_id:
            query = query.filter(Booking.teacher_id == teacher_id)
        if student_id:
            query = query.filter(Booking.student_id == student_id)
        if created_since:
            query = query.filter(Booking.created_at >= created_since)
        query = query.group_by(column)
        return {getattr(key, "value", key): int(count) for key, count in self._execute_query(query)}

    def find_due_for_completion(self, now: datetime, limit: int = 500) -> List[Booking]:
        """CONFIRMED bookings whose lesson has already ended."""
        query = (
            self.db.query(Booking)
            .filter(Booking.status == BookingStatus.CONFIRMED, Booking.end_at <= now)
            .order_by(Booking.end_at, Booking.id)
            .limit(limit)
        )
        if self.dialect_name == "postgresql":
            query = query.with_for_update(skip_locked=True)
        return self._execute_query(query)
