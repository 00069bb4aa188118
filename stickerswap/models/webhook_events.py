"""
Payment webhook event envelopes.

Each provider's event set is a closed tagged union, validated at the HTTP
boundary before any handler runs. Event types outside the union are not an
error: ``parse_*`` returns None and the caller acknowledges without acting.

Provider A is Asaas (PIX subscriptions), provider B is Stripe (card
checkout and renewals).
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

# =============================================================================
# PROVIDER A: ASAAS
# =============================================================================


class AsaasPayment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | None = None
    subscription: str | None = None


class AsaasSubscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | None = None


class _AsaasEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    payment: AsaasPayment | None = None

    @property
    def customer_id(self) -> str | None:
        if self.payment is not None:
            return self.payment.customer
        return None


class AsaasPaymentConfirmed(_AsaasEvent):
    """Payment confirmed or received: grants a fixed access period."""

    event: Literal["PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"]


class AsaasPaymentRevoked(_AsaasEvent):
    """Payment overdue or refunded: access ends now."""

    event: Literal["PAYMENT_OVERDUE", "PAYMENT_REFUNDED"]


class AsaasSubscriptionDeleted(_AsaasEvent):
    """Future charges stopped; already-paid access runs until expiry."""

    event: Literal["SUBSCRIPTION_DELETED"]
    subscription: AsaasSubscription | None = None

    @property
    def customer_id(self) -> str | None:
        if self.payment is not None and self.payment.customer:
            return self.payment.customer
        if self.subscription is not None:
            return self.subscription.customer
        return None


AsaasEvent = Annotated[
    AsaasPaymentConfirmed | AsaasPaymentRevoked | AsaasSubscriptionDeleted,
    Field(discriminator="event"),
]

ASAAS_EVENT_TYPES = frozenset(
    {
        "PAYMENT_CONFIRMED",
        "PAYMENT_RECEIVED",
        "PAYMENT_OVERDUE",
        "PAYMENT_REFUNDED",
        "SUBSCRIPTION_DELETED",
    }
)

_asaas_adapter: TypeAdapter[Any] = TypeAdapter(AsaasEvent)


def parse_asaas_event(payload: dict[str, Any]) -> AsaasEvent | None:
    """
    Validate an Asaas webhook body.

    Returns None for event types this service does not handle, including a
    missing or non-string type.

    Raises:
        pydantic.ValidationError: If a handled event has the wrong shape
    """
    event_type = payload.get("event")
    if not isinstance(event_type, str) or event_type not in ASAAS_EVENT_TYPES:
        return None
    event: AsaasEvent = _asaas_adapter.validate_python(payload)
    return event


# =============================================================================
# PROVIDER B: STRIPE
# =============================================================================

T = TypeVar("T")


class StripeEventData(BaseModel, Generic[T]):
    model_config = ConfigDict(populate_by_name=True)

    obj: T = Field(alias="object")


class StripeCheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | None = None
    subscription: str | None = None


class StripePeriod(BaseModel):
    start: int | None = None
    end: int


class StripeInvoiceLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    period: StripePeriod


class StripeInvoiceLines(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[StripeInvoiceLine] = Field(default_factory=list)


class StripeInvoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | None = None
    subscription: str | None = None
    lines: StripeInvoiceLines = Field(default_factory=StripeInvoiceLines)
    period_end: int | None = None

    @model_validator(mode="after")
    def _require_period_end(self) -> "StripeInvoice":
        if not self.lines.data and self.period_end is None:
            raise ValueError("invoice carries no billing period end")
        return self

    @property
    def paid_through(self) -> datetime:
        """End of the billed period: first line item, else the invoice's own."""
        if self.lines.data:
            end = self.lines.data[0].period.end
        else:
            # validated above
            end = self.period_end  # type: ignore[assignment]
        return datetime.fromtimestamp(end, tz=UTC)


class StripeSubscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | None = None
    cancel_at_period_end: bool = False


class _StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None


class StripeCheckoutCompleted(_StripeEvent):
    type: Literal["checkout.session.completed"]
    data: StripeEventData[StripeCheckoutSession]

    @property
    def customer_id(self) -> str | None:
        return self.data.obj.customer


class StripeInvoicePaid(_StripeEvent):
    type: Literal["invoice.payment_succeeded"]
    data: StripeEventData[StripeInvoice]

    @property
    def customer_id(self) -> str | None:
        return self.data.obj.customer


class StripeSubscriptionDeleted(_StripeEvent):
    type: Literal["customer.subscription.deleted"]
    data: StripeEventData[StripeSubscription]

    @property
    def customer_id(self) -> str | None:
        return self.data.obj.customer


class StripeSubscriptionUpdated(_StripeEvent):
    type: Literal["customer.subscription.updated"]
    data: StripeEventData[StripeSubscription]

    @property
    def customer_id(self) -> str | None:
        return self.data.obj.customer


StripeEvent = Annotated[
    StripeCheckoutCompleted
    | StripeInvoicePaid
    | StripeSubscriptionDeleted
    | StripeSubscriptionUpdated,
    Field(discriminator="type"),
]

STRIPE_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "invoice.payment_succeeded",
        "customer.subscription.deleted",
        "customer.subscription.updated",
    }
)

_stripe_adapter: TypeAdapter[Any] = TypeAdapter(StripeEvent)


def parse_stripe_event(payload: dict[str, Any]) -> StripeEvent | None:
    """
    Validate a Stripe webhook body.

    Returns None for event types this service does not handle, including a
    missing or non-string type.

    Raises:
        pydantic.ValidationError: If a handled event has the wrong shape
    """
    event_type = payload.get("type")
    if not isinstance(event_type, str) or event_type not in STRIPE_EVENT_TYPES:
        return None
    event: StripeEvent = _stripe_adapter.validate_python(payload)
    return event
