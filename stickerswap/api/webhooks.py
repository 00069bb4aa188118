"""
Payment webhook endpoints.

Authentication runs on the raw body before anything is parsed. Once
authenticated, every delivery is acknowledged with 200, including events
we ignore, so providers do not retry them.
"""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import settings
from stickerswap.db.database import get_session
from stickerswap.models.failure import WebhookPayloadError
from stickerswap.services.reconciler import (
    ReconcileOutcome,
    reconcile_asaas,
    reconcile_stripe,
)
from stickerswap.services.webhook_auth import verify_asaas_token, verify_stripe_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider."""

    received: bool = True
    event: str | None = None
    applied: bool = False
    reason: str | None = None


def _decode(provider: str, body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise WebhookPayloadError(provider, "body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise WebhookPayloadError(provider, "body must be a JSON object")
    return payload


def _ack(outcome: ReconcileOutcome) -> WebhookAck:
    return WebhookAck(event=outcome.event_type, applied=outcome.applied, reason=outcome.reason)


@router.post("/asaas", response_model=WebhookAck)
async def asaas_webhook(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    asaas_access_token: Annotated[str | None, Header()] = None,
) -> WebhookAck:
    """
    Asaas payment and subscription events.

    Returns 401 when the ``asaas-access-token`` header does not match.
    """
    verify_asaas_token(asaas_access_token, settings.asaas_webhook_secret)
    payload = _decode("asaas", await request.body())
    outcome = await reconcile_asaas(session, payload)
    return _ack(outcome)


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    stripe_signature: Annotated[str | None, Header()] = None,
) -> WebhookAck:
    """
    Stripe checkout, invoice and subscription events.

    Returns 400 when the ``Stripe-Signature`` header does not verify.
    """
    body = await request.body()
    verify_stripe_signature(
        body,
        stripe_signature,
        settings.stripe_webhook_secret,
        tolerance=settings.stripe_signature_tolerance_seconds,
    )
    payload = _decode("stripe", body)
    outcome = await reconcile_stripe(session, payload)
    return _ack(outcome)
