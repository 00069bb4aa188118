"""
Premium subscription state.

The state lives on the profile row and is written only by the payment
webhook handlers. Everything else reads it through ``has_premium_access``.
"""

from dataclasses import dataclass, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELED = "canceled"


class PaymentProvider(str, Enum):
    """Payment backends, each correlated by its own customer id column."""

    ASAAS = "asaas"
    STRIPE = "stripe"

    @property
    def customer_column(self) -> str:
        return f"{self.value}_customer_id"


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from the store."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass(frozen=True)
class SubscriptionState:
    """Subscription fields of one user."""

    is_premium: bool = False
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    valid_until: datetime | None = None
    asaas_customer_id: str | None = None
    stripe_customer_id: str | None = None

    def has_premium_access(self, now: datetime | None = None) -> bool:
        """
        Effective premium access.

        An active subscription grants access on ``is_premium`` alone. Once
        canceled or inactive, a still-set ``is_premium`` only counts until
        ``valid_until`` (grace period after cancellation).
        """
        if not self.is_premium:
            return False
        if self.status is SubscriptionStatus.ACTIVE:
            return True
        valid_until = as_utc(self.valid_until)
        if valid_until is None:
            return False
        return valid_until > (now or datetime.now(UTC))


_UNSET: Any = object()


@dataclass(frozen=True)
class SubscriptionUpdate:
    """
    Partial overwrite of subscription fields produced by one webhook event.

    Fields left unset are not touched. Every set field is an absolute
    value, so applying the same update twice is the same as applying it once.
    """

    is_premium: bool = _UNSET
    status: SubscriptionStatus = _UNSET
    valid_until: datetime | None = _UNSET
    stripe_subscription_id: str | None = _UNSET

    def values(self) -> dict[str, Any]:
        """Column values to write, keyed by profile column name."""
        columns = {
            "is_premium": "is_premium",
            "status": "subscription_status",
            "valid_until": "premium_valid_until",
            "stripe_subscription_id": "stripe_subscription_id",
        }
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is _UNSET:
                continue
            if isinstance(value, SubscriptionStatus):
                value = value.value
            out[columns[f.name]] = value
        return out

    def is_empty(self) -> bool:
        return not self.values()
