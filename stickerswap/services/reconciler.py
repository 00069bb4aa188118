"""
Subscription reconciliation from payment webhooks.

Each handled event maps to a ``SubscriptionUpdate`` of absolute values and
is written with one UPDATE keyed by the provider's customer id. Replaying an
event, or receiving events from both providers for the same user, therefore
converges on the last write.

The providers differ on cancellation:

- Asaas ``SUBSCRIPTION_DELETED`` only marks the status canceled; access
  paid for runs on until ``valid_until``.
- Stripe ``customer.subscription.deleted`` also clears ``is_premium``
  immediately.

Events for customers we do not know, without a customer id, or of types we
do not handle are acknowledged and ignored so the provider stops retrying.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from stickerswap.config import PREMIUM_PERIOD_DAYS
from stickerswap.db import operations
from stickerswap.models.failure import WebhookPayloadError
from stickerswap.models.subscription import (
    PaymentProvider,
    SubscriptionStatus,
    SubscriptionUpdate,
)
from stickerswap.models.webhook_events import (
    AsaasEvent,
    AsaasPaymentConfirmed,
    AsaasPaymentRevoked,
    AsaasSubscriptionDeleted,
    StripeCheckoutCompleted,
    StripeEvent,
    StripeInvoicePaid,
    StripeSubscriptionDeleted,
    StripeSubscriptionUpdated,
    parse_asaas_event,
    parse_stripe_event,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """What happened to one delivered event. Always acknowledged."""

    provider: PaymentProvider
    event_type: str | None
    customer_id: str | None = None
    applied: bool = False
    reason: str | None = None


def _premium_period(now: datetime) -> datetime:
    return now + timedelta(days=PREMIUM_PERIOD_DAYS)


def asaas_update(event: AsaasEvent, now: datetime) -> SubscriptionUpdate:
    """Subscription fields an Asaas event overwrites."""
    if isinstance(event, AsaasPaymentConfirmed):
        return SubscriptionUpdate(
            is_premium=True,
            status=SubscriptionStatus.ACTIVE,
            valid_until=_premium_period(now),
        )
    if isinstance(event, AsaasPaymentRevoked):
        return SubscriptionUpdate(is_premium=False, status=SubscriptionStatus.INACTIVE)
    if isinstance(event, AsaasSubscriptionDeleted):
        return SubscriptionUpdate(status=SubscriptionStatus.CANCELED)
    raise TypeError(f"unhandled Asaas event {type(event).__name__}")


def stripe_update(event: StripeEvent, now: datetime) -> SubscriptionUpdate:
    """
    Subscription fields a Stripe event overwrites.

    A ``customer.subscription.updated`` that does not schedule a
    cancellation changes nothing and yields an empty update.
    """
    if isinstance(event, StripeCheckoutCompleted):
        return SubscriptionUpdate(
            is_premium=True,
            status=SubscriptionStatus.ACTIVE,
            valid_until=_premium_period(now),
            stripe_subscription_id=event.data.obj.subscription,
        )
    if isinstance(event, StripeInvoicePaid):
        return SubscriptionUpdate(
            is_premium=True,
            status=SubscriptionStatus.ACTIVE,
            valid_until=event.data.obj.paid_through,
        )
    if isinstance(event, StripeSubscriptionDeleted):
        return SubscriptionUpdate(is_premium=False, status=SubscriptionStatus.CANCELED)
    if isinstance(event, StripeSubscriptionUpdated):
        if event.data.obj.cancel_at_period_end:
            return SubscriptionUpdate(status=SubscriptionStatus.CANCELED)
        return SubscriptionUpdate()
    raise TypeError(f"unhandled Stripe event {type(event).__name__}")


def _event_type(payload: dict[str, Any], key: str, provider: PaymentProvider) -> str | None:
    """The event type field, which must be a string when present."""
    event_type = payload.get(key)
    if event_type is None or isinstance(event_type, str):
        return event_type
    raise WebhookPayloadError(provider.value, f"{key!r} must be a string")


async def _apply(
    session: AsyncSession,
    outcome: ReconcileOutcome,
    update: SubscriptionUpdate,
) -> ReconcileOutcome:
    if outcome.customer_id is None:
        outcome.reason = "no customer id"
        logger.warning(
            "%s event %s carries no customer id, ignoring",
            outcome.provider.value,
            outcome.event_type,
        )
        return outcome
    if update.is_empty():
        outcome.reason = "no subscription change"
        return outcome

    applied = await operations.apply_subscription_update(
        session, outcome.provider, outcome.customer_id, update
    )
    if not applied:
        outcome.reason = "unknown customer"
        logger.warning(
            "%s event %s for unknown customer %s, ignoring",
            outcome.provider.value,
            outcome.event_type,
            outcome.customer_id,
        )
        return outcome

    outcome.applied = True
    logger.info(
        "%s event %s applied to customer %s: %s",
        outcome.provider.value,
        outcome.event_type,
        outcome.customer_id,
        update.values(),
    )
    return outcome


async def reconcile_asaas(
    session: AsyncSession, payload: dict[str, Any], now: datetime | None = None
) -> ReconcileOutcome:
    """
    Apply one authenticated Asaas webhook body.

    Raises:
        WebhookPayloadError: If the event type is not a string or a handled
            event has the wrong shape
    """
    event_type = _event_type(payload, "event", PaymentProvider.ASAAS)
    outcome = ReconcileOutcome(PaymentProvider.ASAAS, event_type)
    try:
        event = parse_asaas_event(payload)
    except ValidationError as e:
        detail = f"invalid {event_type} event: {e.error_count()} errors"
        raise WebhookPayloadError("asaas", detail) from e
    if event is None:
        outcome.reason = "event type not handled"
        logger.debug("Ignoring Asaas event %s", event_type)
        return outcome

    outcome.customer_id = event.customer_id
    return await _apply(session, outcome, asaas_update(event, now or datetime.now(UTC)))


async def reconcile_stripe(
    session: AsyncSession, payload: dict[str, Any], now: datetime | None = None
) -> ReconcileOutcome:
    """
    Apply one verified Stripe webhook body.

    Raises:
        WebhookPayloadError: If the event type is not a string or a handled
            event has the wrong shape
    """
    event_type = _event_type(payload, "type", PaymentProvider.STRIPE)
    outcome = ReconcileOutcome(PaymentProvider.STRIPE, event_type)
    try:
        event = parse_stripe_event(payload)
    except ValidationError as e:
        detail = f"invalid {event_type} event: {e.error_count()} errors"
        raise WebhookPayloadError("stripe", detail) from e
    if event is None:
        outcome.reason = "event type not handled"
        logger.debug("Ignoring Stripe event %s", event_type)
        return outcome

    outcome.customer_id = event.customer_id
    return await _apply(session, outcome, stripe_update(event, now or datetime.now(UTC)))
