# backend/tutorhub/repositories/payout_repository.py
"""
Payout request and allocation data access.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.wallet import PayoutAllocation, PayoutRequest, PayoutStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PayoutRepository(BaseRepository[PayoutRequest]):
    def __init__(self, db: Session):
        super().__init__(db, PayoutRequest)

    def _apply_eager_loading(self, query):
        return query.options(selectinload(PayoutRequest.allocations))

    def get_for_update(self, payout_id: str) -> Optional[PayoutRequest]:
        """Load a payout with a row lock so concurrent webhooks apply once."""
        query = (
            self.db.query(PayoutRequest)
            .options(selectinload(PayoutRequest.allocations))
            .filter(PayoutRequest.id == payout_id)
        )
        if self.dialect_name == "postgresql":
            query = query.with_for_update()
        try:
            return query.first()
        except SQLAlchemyError as exc:
            self.logger.error("Error locking payout %s: %s", payout_id, exc)
            raise RepositoryException(f"Failed to load payout request: {exc}") from exc

    def create_allocation(
        self, payout_request_id: str, wallet_entry_id: str, amount: int
    ) -> PayoutAllocation:
        try:
            allocation = PayoutAllocation(
                payout_request_id=payout_request_id,
                wallet_entry_id=wallet_entry_id,
                amount=amount,
            )
            self.db.add(allocation)
            self.db.flush()
            return allocation
        except SQLAlchemyError as exc:
            self.logger.error("Error creating payout allocation: %s", exc)
            raise RepositoryException(f"Failed to create payout allocation: {exc}") from exc

    def list_for_teacher(
        self,
        teacher_id: str,
        *,
        status: Optional[PayoutStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[PayoutRequest], int]:
        query = (
            self.db.query(PayoutRequest)
            .options(selectinload(PayoutRequest.allocations))
            .filter(PayoutRequest.teacher_id == teacher_id)
        )
        if status:
            query = query.filter(PayoutRequest.status == status)
        query = query.order_by(PayoutRequest.requested_at.desc(), PayoutRequest.id.desc())
        return self._paginate(query, page, per_page)
