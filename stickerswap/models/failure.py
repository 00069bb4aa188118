"""
Failure Explanation Envelope: Unified Response Classification.

Every user-visible failure leaves the API inside an ``ApiResponse`` with a
classified outcome. Domain code raises the exceptions defined here; the
handlers installed in ``stickerswap.main`` translate them.

Response types:
- Success: Operation completed successfully
- Refusal: System chose not to proceed (limits, locks, visibility)
- KnownFailure: System knows why it failed
- UnknownFailure: System does not know why it failed

AUTHORITY BOUNDARY:
All error responses pass through `finalize_response()`.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    INVALID_STICKER = "invalid_sticker"
    TEMPLATE_MISMATCH = "template_mismatch"

    # Resource failures
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    NOT_VISIBLE = "not_visible"

    # Constraint violations
    TRADE_LIMIT_EXCEEDED = "trade_limit_exceeded"
    ALBUM_LIMIT_EXCEEDED = "album_limit_exceeded"
    STICKER_LOCKED = "sticker_locked"
    INSUFFICIENT_STOCK = "insufficient_stock"

    # Concurrency conflicts
    ALREADY_PROCESSED = "already_processed"

    # Service failures
    TRANSFER_FAILED = "transfer_failed"
    EXTERNAL_API_ERROR = "external_api_error"

    # Webhook boundary
    WEBHOOK_UNAUTHORIZED = "webhook_unauthorized"
    WEBHOOK_MALFORMED = "webhook_malformed"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    REFUSAL = "refusal"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Universal response envelope for error responses.

    Every failure is classified into one of the outcome types,
    ensuring no failure reaches the user unexplained.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )

    @classmethod
    def refusal(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a refusal response.

        Use when the system chose not to proceed due to a constraint.
        Example: free-tier trade cap reached.
        """
        return cls(
            outcome=OutcomeType.REFUSAL,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        Example: trade not found, trade already processed.
        """
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )


# Standard exception types that map to known failures


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class RefusalError(Exception):
    """
    Exception for constraint-based refusals.

    Use when the system refuses to proceed due to a product constraint
    rather than bad input. Nothing is persisted when one is raised.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 403,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.refusal(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class NotFoundError(KnownError):
    """A referenced profile, album, template or trade does not exist."""

    def __init__(self, resource: str, identifier: object):
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{resource} not found.",
            detail=f"{resource} {identifier!r} does not exist",
            status_code=404,
        )


class ForbiddenError(KnownError):
    """The acting user is not the party allowed to perform the action."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.FORBIDDEN,
            message=message,
            detail=detail,
            status_code=403,
        )


class AlbumNotVisibleError(KnownError):
    """Another user's album is private and cannot be read."""

    def __init__(self, album_id: int):
        super().__init__(
            kind=FailureKind.NOT_VISIBLE,
            message="This album is private.",
            detail=f"album {album_id} is not public",
            status_code=403,
        )


class TemplateMismatchError(KnownError):
    """Two album instances that must share a template do not."""

    def __init__(self, expected_template_id: int, actual_template_id: int):
        self.expected_template_id = expected_template_id
        self.actual_template_id = actual_template_id
        super().__init__(
            kind=FailureKind.TEMPLATE_MISMATCH,
            message="Both albums must be the same edition.",
            detail=f"expected template {expected_template_id}, got {actual_template_id}",
            suggestion="Pick one of your albums of the same edition.",
            status_code=400,
        )


class InvalidStickerError(KnownError):
    """Sticker numbers outside the template, duplicated, or otherwise malformed."""

    def __init__(self, message: str, numbers: list[int] | None = None):
        self.numbers = sorted(numbers or [])
        super().__init__(
            kind=FailureKind.INVALID_STICKER,
            message=message,
            detail=f"stickers: {self.numbers}" if self.numbers else None,
            status_code=400,
        )


class StickerLockedError(RefusalError):
    """Offered stickers are already promised in another pending trade."""

    def __init__(self, numbers: list[int]):
        self.numbers = sorted(numbers)
        super().__init__(
            kind=FailureKind.STICKER_LOCKED,
            message="Some stickers are already offered in a pending trade.",
            detail=f"locked stickers: {self.numbers}",
            suggestion="Wait for the pending trade to finish or cancel it.",
            status_code=409,
        )


class TradeLimitExceededError(RefusalError):
    """A free user reached the cap of concurrent pending trades."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            kind=FailureKind.TRADE_LIMIT_EXCEEDED,
            message=f"Free accounts can have at most {limit} pending trades.",
            detail=f"pending trade limit {limit} reached",
            suggestion="Upgrade to Premium for unlimited trades.",
        )


class AlbumLimitExceededError(RefusalError):
    """A free user reached the cap of album instances."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            kind=FailureKind.ALBUM_LIMIT_EXCEEDED,
            message=f"Free accounts can have at most {limit} albums.",
            detail=f"album limit {limit} reached",
            suggestion="Upgrade to Premium for unlimited albums.",
        )


class TradeAlreadyProcessedError(KnownError):
    """
    The trade left the pending state before this action could apply.

    Carries the status re-read from the store so the caller can re-sync
    instead of trusting its cached copy.
    """

    def __init__(self, trade_id: int, current_status: str):
        self.trade_id = trade_id
        self.current_status = current_status
        super().__init__(
            kind=FailureKind.ALREADY_PROCESSED,
            message="This trade was already processed.",
            detail=f"trade {trade_id} is {current_status}",
            suggestion="Refresh your trades to see the current status.",
            status_code=409,
        )


class InsufficientStockError(KnownError):
    """One side no longer holds a sticker it promised to give."""

    def __init__(self, user_id: str, numbers: list[int]):
        self.user_id = user_id
        self.numbers = sorted(numbers)
        super().__init__(
            kind=FailureKind.INSUFFICIENT_STOCK,
            message="Some stickers in this trade are no longer available.",
            detail=f"user {user_id} is missing stickers {self.numbers}",
            suggestion="Reject this trade and propose a new one.",
            status_code=409,
        )


class TradeTransferError(KnownError):
    """The stock transfer failed; the trade stays pending."""

    def __init__(self, trade_id: int):
        self.trade_id = trade_id
        super().__init__(
            kind=FailureKind.TRANSFER_FAILED,
            message="The trade could not be completed. Nothing was changed.",
            detail=f"transfer for trade {trade_id} rolled back",
            suggestion="Try accepting again in a moment.",
            status_code=500,
        )


class ExternalApiError(KnownError):
    """A payment provider API call failed."""

    def __init__(self, provider: str, detail: str):
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=f"The {provider} payment service is unavailable.",
            detail=detail,
            suggestion="Try again later.",
            status_code=502,
        )


class WebhookAuthenticationError(KnownError):
    """Webhook secret or signature did not verify."""

    def __init__(self, provider: str, detail: str, status_code: int = 401):
        self.provider = provider
        super().__init__(
            kind=FailureKind.WEBHOOK_UNAUTHORIZED,
            message="Webhook authentication failed.",
            detail=f"{provider}: {detail}",
            status_code=status_code,
        )


class WebhookPayloadError(KnownError):
    """Webhook body is not valid JSON or does not match the event schema."""

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(
            kind=FailureKind.WEBHOOK_MALFORMED,
            message="Webhook payload is malformed.",
            detail=f"{provider}: {detail}",
            status_code=400,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================

STANDARD_MESSAGES: dict[OutcomeType, str] = {
    OutcomeType.REFUSAL: (
        "The system cannot proceed with this request due to a constraint violation."
    ),
    OutcomeType.KNOWN_FAILURE: "The operation failed due to a known issue.",
    OutcomeType.UNKNOWN_FAILURE: "Something went wrong. Please try again.",
}

STANDARD_SUGGESTIONS: dict[OutcomeType, str] = {
    OutcomeType.REFUSAL: "Please modify your request to satisfy the constraint.",
    OutcomeType.KNOWN_FAILURE: "Check the error details and adjust your request.",
    OutcomeType.UNKNOWN_FAILURE: "If this persists, please report the issue.",
}


def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    else:
        if response.failure is None:
            raise ValueError(f"{response.outcome.value} response must have failure details")

    return response


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """
    Create an unknown failure response from an exception.

    Only the exception type leaks into the detail; the message is fixed.
    """
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=STANDARD_MESSAGES[OutcomeType.UNKNOWN_FAILURE],
            detail=type(exception).__name__,
            suggestion=STANDARD_SUGGESTIONS[OutcomeType.UNKNOWN_FAILURE],
        ),
    )

    return finalize_response(response)
