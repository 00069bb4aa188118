"""
Outbound Asaas API calls.

Only cancellation is needed here: checkout and payment creation happen on
the provider's hosted pages. Cancelling stops future charges; the resulting
``SUBSCRIPTION_DELETED`` webhook is what records the change locally.
"""

import logging
from dataclasses import dataclass

import httpx

from stickerswap.config import settings
from stickerswap.models.failure import ExternalApiError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


@dataclass
class CancellationResult:
    """Outcome of a cancel request against Asaas."""

    subscription_id: str | None
    deleted: bool

    @property
    def had_active_subscription(self) -> bool:
        return self.subscription_id is not None


async def cancel_active_subscription(
    customer_id: str,
    api_url: str | None = None,
    api_key: str | None = None,
) -> CancellationResult:
    """
    Delete the customer's active Asaas subscription, if any.

    Args:
        customer_id: Asaas customer id stored on the profile
        api_url: API base URL (defaults to settings)
        api_key: API key sent as the ``access_token`` header (defaults to settings)

    Returns:
        CancellationResult; ``subscription_id`` is None when nothing was active

    Raises:
        ExternalApiError: If Asaas is unreachable, answers with an error, or
            does not confirm the deletion
    """
    base_url = (api_url or settings.asaas_api_url).rstrip("/")
    headers = {"access_token": api_key or settings.asaas_api_key}

    try:
        async with httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=REQUEST_TIMEOUT
        ) as client:
            listing = await client.get(
                "/subscriptions", params={"customer": customer_id, "status": "ACTIVE"}
            )
            listing.raise_for_status()
            active = listing.json().get("data") or []
            if not active:
                logger.info("No active Asaas subscription for customer %s", customer_id)
                return CancellationResult(subscription_id=None, deleted=False)

            subscription_id = str(active[0]["id"])
            deletion = await client.delete(f"/subscriptions/{subscription_id}")
            deletion.raise_for_status()
            deleted = bool(deletion.json().get("deleted"))
    except httpx.HTTPError as e:
        logger.error("Asaas request for customer %s failed: %s", customer_id, e)
        raise ExternalApiError("Asaas", str(e)) from e
    except (KeyError, ValueError) as e:
        logger.error("Unexpected Asaas response for customer %s: %s", customer_id, e)
        raise ExternalApiError("Asaas", f"unexpected response: {e}") from e

    if not deleted:
        raise ExternalApiError("Asaas", f"subscription {subscription_id} was not deleted")

    logger.info("Cancelled Asaas subscription %s for customer %s", subscription_id, customer_id)
    return CancellationResult(subscription_id=subscription_id, deleted=True)
