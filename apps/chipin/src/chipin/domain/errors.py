"""Domain exceptions used across API and services."""

from __future__ import annotations

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any


def compose_error_message(*, cause: str, action: str) -> str:
    """Build a user-facing error message with cause and corrective action."""

    return f"Cause: {cause} Action: {action}"


@dataclass(slots=True)
class DomainError(Exception):
    """Base exception for predictable domain failures."""

    code: str
    message: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class InvalidRequestError(DomainError):
    """Raised when user sends semantically invalid input."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="INVALID_REQUEST",
            message=message
            or compose_error_message(
                cause="Request data violates business rules.",
                action="Adjust the input fields and try again.",
            ),
            status_code=HTTPStatus.BAD_REQUEST,
            details=details or {},
        )


class AuthenticationRequiredError(DomainError):
    """Raised when an operation needs a signed-in identity."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="AUTHENTICATION_REQUIRED",
            message=message
            or compose_error_message(
                cause="This operation requires a signed-in user.",
                action="Sign in and retry the request.",
            ),
            status_code=HTTPStatus.UNAUTHORIZED,
            details=details or {},
        )


class InvalidCronSecretError(DomainError):
    """Raised when a scheduled job trigger presents a wrong shared secret."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message
            or compose_error_message(
                cause="The x-cron-secret header is missing or invalid.",
                action="Send the configured shared secret with the job trigger.",
            ),
            status_code=HTTPStatus.UNAUTHORIZED,
            details=details or {},
        )


class InvalidWebhookSignatureError(DomainError):
    """Raised when a processor event fails signature verification."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="INVALID_WEBHOOK_SIGNATURE",
            message=message
            or compose_error_message(
                cause="The webhook signature is missing or invalid.",
                action="Deliver the event with a valid stripe-signature header.",
            ),
            status_code=HTTPStatus.BAD_REQUEST,
            details=details or {},
        )


class ForbiddenActionError(DomainError):
    """Raised when the caller is not allowed to act on a resource."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message
            or compose_error_message(
                cause="You are not allowed to perform this action.",
                action="Use the owner account or join the chip first.",
            ),
            status_code=HTTPStatus.FORBIDDEN,
            details=details or {},
        )


class ChipNotFoundError(DomainError):
    """Raised when a chip cannot be resolved."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="CHIP_NOT_FOUND",
            message=message
            or compose_error_message(
                cause="Chip was not found.",
                action="Check the chip link and retry.",
            ),
            status_code=HTTPStatus.NOT_FOUND,
            details=details or {},
        )


class PoolNotFoundError(DomainError):
    """Raised when a pool cannot be resolved."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="POOL_NOT_FOUND",
            message=message
            or compose_error_message(
                cause="Pool was not found.",
                action="Check the pool link and retry.",
            ),
            status_code=HTTPStatus.NOT_FOUND,
            details=details or {},
        )


class ObjectiveNotFoundError(DomainError):
    """Raised when an objective does not belong to the addressed chip."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="OBJECTIVE_NOT_FOUND",
            message=message
            or compose_error_message(
                cause="Objective was not found in this chip.",
                action="Reload the chip and pick an existing objective.",
            ),
            status_code=HTTPStatus.NOT_FOUND,
            details=details or {},
        )


class ParticipantNotFoundError(DomainError):
    """Raised when a participant does not belong to the addressed chip."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="PARTICIPANT_NOT_FOUND",
            message=message
            or compose_error_message(
                cause="Participant was not found in this chip.",
                action="Reload the chip and pick an existing participant.",
            ),
            status_code=HTTPStatus.NOT_FOUND,
            details=details or {},
        )


class InvalidStatusTransitionError(DomainError):
    """Raised when a requested lifecycle change is illegal from current status."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=message
            or compose_error_message(
                cause="The requested status change is not allowed.",
                action="Reload the resource to see its current status.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class ChipClosedError(DomainError):
    """Raised when a chip no longer accepts joins or objective toggles."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="CHIP_CLOSED",
            message=message
            or compose_error_message(
                cause="This chip is completed, expired or canceled.",
                action="Start or join another chip.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class ChipFullError(DomainError):
    """Raised when a new participant tries to join a chip at its threshold."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="CHIP_FULL",
            message=message
            or compose_error_message(
                cause="This chip already has all required participants.",
                action="Ask the owner to start another chip.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class DuplicateParticipantNameError(DomainError):
    """Raised when a display name is already taken inside one chip."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="DUPLICATE_PARTICIPANT_NAME",
            message=message
            or compose_error_message(
                cause="Another participant already uses this display name.",
                action="Pick a different display name and retry.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class OpenChipLimitReachedError(DomainError):
    """Raised when an owner already holds the allowed number of open chips."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="OPEN_CHIP_LIMIT_REACHED",
            message=message
            or compose_error_message(
                cause="Free mode allows a limited number of pending or active chips.",
                action="Complete or cancel a current chip first.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class PayoutsNotConnectedError(DomainError):
    """Raised when an organizer has not finished payout onboarding."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="PAYOUTS_NOT_CONNECTED",
            message=message
            or compose_error_message(
                cause="Payout onboarding is not complete for this organizer.",
                action="Finish payout onboarding and retry.",
            ),
            status_code=HTTPStatus.CONFLICT,
            details=details or {},
        )


class PaymentsUnavailableError(DomainError):
    """Raised when no usable payment processor credentials are configured."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="PAYMENTS_UNAVAILABLE",
            message=message
            or compose_error_message(
                cause="Card payments are not configured on this server.",
                action="Retry later or contact support.",
            ),
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            details=details or {},
        )


class PaymentProviderError(DomainError):
    """Raised when the payment processor rejects or fails a request."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="PAYMENT_PROVIDER_ERROR",
            message=message
            or compose_error_message(
                cause="The payment processor could not complete the request.",
                action="Retry the operation in a few moments.",
            ),
            status_code=HTTPStatus.BAD_GATEWAY,
            details=details or {},
        )


class WebhookProcessingError(DomainError):
    """Raised when a verified webhook event failed to apply."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="WEBHOOK_PROCESSING_FAILED",
            message=message
            or compose_error_message(
                cause="The webhook event could not be applied.",
                action="The processor will redeliver the event.",
            ),
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            details=details or {},
        )
