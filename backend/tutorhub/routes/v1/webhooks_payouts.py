# backend/tutorhub/routes/v1/webhooks_payouts.py
"""
Payment rail webhook - API v1

Mounted under /api/v1/webhooks. The rail signs the raw request body with
HMAC-SHA256 using the shared secret and sends the hex digest in
``X-Payout-Signature``. Outcomes are idempotent: replaying an outcome that
was already applied returns 200 without changing anything.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from ...api.dependencies import get_payout_service
from ...core.config import settings
from ...core.exceptions import HTTP_422_UNPROCESSABLE, DomainException
from ...schemas.payout import PayoutWebhookEvent
from ...services.payout_service import PayoutService

logger = logging.getLogger(__name__)

# v1 router - mounted under /api/v1/webhooks
router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "x-payout-signature"


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def _verify_signature(request: Request, raw_body: bytes) -> None:
    provided = (request.headers.get(SIGNATURE_HEADER) or "").strip().lower()
    if not provided:
        logger.warning("Missing payout webhook signature header")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")
    secret = settings.payout_webhook_secret.get_secret_value()
    expected = compute_signature(secret, raw_body)
    if not hmac.compare_digest(provided, expected):
        logger.warning("Payout webhook signature mismatch")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")


@router.post("/payouts")
async def payout_webhook(
    request: Request,
    payout_service: PayoutService = Depends(get_payout_service),
) -> Dict[str, str]:
    raw_body = await request.body()
    _verify_signature(request, raw_body)

    try:
        event = PayoutWebhookEvent.model_validate_json(raw_body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail={"message": "Malformed webhook payload", "details": exc.errors(include_context=False)},
        )

    try:
        if event.outcome == "paid":
            payout = await asyncio.to_thread(
                payout_service.on_paid, event.payout_id, event.external_ref
            )
        else:
            payout = await asyncio.to_thread(
                payout_service.on_failed,
                event.payout_id,
                event.failure_reason or "Payment rail reported a failure",
            )
    except DomainException as exc:
        logger.warning(
            "Payout webhook rejected",
            extra={"payout_id": event.payout_id, "code": exc.code},
        )
        raise exc.to_http_exception()

    logger.info(
        "Payout webhook applied",
        extra={"payout_id": payout.id, "status": payout.status.value},
    )
    return {"payout_id": payout.id, "status": payout.status.value}
