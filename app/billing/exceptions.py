"""
Billing-specific exceptions.

Exception Hierarchy:
    core.ValidationError
    └── InvalidPlanError - Unknown or unconfigured plan key
    core.NotFoundError
    └── SubscriptionNotFoundError - No local subscription for a Stripe id
    core.ConflictError
    └── AlreadySubscribedError - Requested plan is already active
    core.ExternalServiceError
    └── BillingError (base for billing processing)
        ├── ReconciliationGapError - Webhook references nothing known locally
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInvalidRequestError - Invalid request, bad signature (permanent)
            ├── StripeRateLimitError - Rate limited (transient)
            └── StripeAPIUnavailableError - API unavailable (transient)

Nothing in billing retries automatically. ``is_retryable`` is informational
for operators deciding whether a manual replay is worth it.

Usage:
    from billing.exceptions import AlreadySubscribedError, StripeError

    try:
        service.create_or_switch_subscription(user, plan_key)
    except AlreadySubscribedError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Domain Exceptions
# =============================================================================


class InvalidPlanError(ValidationError):
    """
    Raised when a plan key has no configured Stripe price.

    Example:
        raise InvalidPlanError("Invalid plan type.", details={"plan": "gold"})
    """

    default_error_code: str = "INVALID_PLAN"


class AlreadySubscribedError(ConflictError):
    """
    Raised when the customer already has an active subscription on the
    requested price. No Stripe mutation or Checkout row happens first.
    """

    default_error_code: str = "ALREADY_SUBSCRIBED"
    http_status: int = 400

    def __init__(
        self,
        message: str = "Subscription already exists.",
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code=error_code, details=details)


class SubscriptionNotFoundError(NotFoundError):
    """Raised when no local Subscription matches a Stripe subscription id."""

    default_error_code: str = "SUBSCRIPTION_NOT_FOUND"


class BillingError(ExternalServiceError):
    """Base exception for billing processing failures."""

    default_error_code: str = "BILLING_ERROR"


class ReconciliationGapError(BillingError):
    """
    Raised when a webhook references a subscription, checkout or customer
    that has no local counterpart. The event is dropped, never retried.
    """

    default_error_code: str = "RECONCILIATION_GAP"
    http_status: int = 404


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(BillingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's error code, when it sent one
        decline_code: Card decline code (card errors only)
        is_retryable: Whether the same call may succeed later
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """Card was declined by the issuing bank."""

    default_error_code: str = "CARD_DECLINED"
    http_status: int = 402


class StripeInvalidRequestError(StripeError):
    """
    Invalid request sent to Stripe.

    Covers unknown ids, invalid parameters, authentication failures and
    webhook signatures that fail verification.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    http_status: int = 400


# -----------------------------------------------------------------------------
# Transient Errors
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True
    http_status: int = 503


class StripeAPIUnavailableError(StripeError):
    """
    Stripe could not be reached or answered with a server error.

    Note:
        A timed out call may still have taken effect on Stripe's side; the
        next webhook for the object reconciles local state.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
    http_status: int = 502
