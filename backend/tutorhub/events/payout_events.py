"""Payout domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class PayoutStatusChanged:
    """Fired on every payout request transition, including creation."""

    payout_id: str
    teacher_id: str
    amount: int
    status: str
    changed_at: datetime
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
