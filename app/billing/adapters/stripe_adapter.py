"""
Stripe API adapter for subscription billing.

This module provides the StripeAdapter class which encapsulates all Stripe
API interactions used by billing. Every Stripe call goes through an adapter
instance so that error handling, timeouts and logging are consistent, and
so tests can substitute a double.

Features:
- API key held by the instance and passed on every call (no global key)
- Configurable HTTP timeout
- Automatic error translation to billing exceptions
- Structured logging with timing metrics
- Typed result dataclasses that also parse raw webhook payloads

Nothing here retries. Failures propagate to the caller as StripeError.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from billing.adapters import StripeAdapter

    stripe_adapter = StripeAdapter.from_settings()
    customer = stripe_adapter.create_customer(email="user@example.com")
    subscriptions = stripe_adapter.list_active_subscriptions(customer.id)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)
from core.helpers import from_unix_timestamp

if TYPE_CHECKING:
    from collections.abc import Callable


# =============================================================================
# Payload Helpers
# =============================================================================


def as_dict(obj: Any) -> dict[str, Any]:
    """
    Normalize a Stripe SDK object or raw webhook payload into a dict.

    SDK objects expose ``to_dict()``; webhook payloads are already dicts.
    """
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def expandable_id(value: Any) -> str | None:
    """Return the id of a field that is either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return as_dict(value).get("id")


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CustomerResult:
    """
    Result from Stripe Customer operations.

    Attributes:
        id: Customer ID (cus_xxx)
        email: Customer email
        deleted: Whether Stripe reports the customer as deleted
        raw_response: Full Stripe response dict
    """

    id: str
    email: str | None = None
    deleted: bool = False
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> CustomerResult:
        data = as_dict(obj)
        return cls(
            id=data["id"],
            email=data.get("email"),
            deleted=bool(data.get("deleted", False)),
            raw_response=data,
        )


@dataclass
class PaymentMethodResult:
    """
    Result from Stripe PaymentMethod listing.

    Attributes:
        id: PaymentMethod ID (pm_xxx)
        type: Payment method type ('card' for everything billing lists)
        created: When the payment method was created (attached)
        card_brand: Card brand, e.g. 'visa'
        card_last4: Last four digits of the card
    """

    id: str
    type: str
    created: datetime | None = None
    card_brand: str | None = None
    card_last4: str | None = None

    @classmethod
    def from_stripe(cls, obj: Any) -> PaymentMethodResult:
        data = as_dict(obj)
        card = as_dict(data.get("card"))
        return cls(
            id=data["id"],
            type=data.get("type") or "card",
            created=from_unix_timestamp(data.get("created")),
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
        )


@dataclass
class SubscriptionSnapshot:
    """
    Stripe's view of a subscription at one point in time.

    Built from an API response or from the ``data.object`` of a webhook
    event, so both paths feed the same fields into reconciliation.

    Attributes:
        id: Subscription ID (sub_xxx)
        status: Stripe status string (active, past_due, canceled, ...)
        customer_id: Customer ID (cus_xxx)
        price_id: Price of the first subscription item
        product_id: Product of that price
        interval: Recurring interval of that price ('month', 'year', ...)
        start_date: When the subscription started
        current_period_end: End of the current billing period
        cancel_at_period_end: Whether cancellation is scheduled
        cancel_at: When a scheduled cancellation takes effect
        raw_response: Full Stripe object dict
    """

    id: str
    status: str
    customer_id: str | None = None
    price_id: str | None = None
    product_id: str | None = None
    interval: str | None = None
    start_date: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    cancel_at: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> SubscriptionSnapshot:
        data = as_dict(obj)
        items = as_dict(data.get("items")).get("data") or []
        first_item = as_dict(items[0]) if items else {}

        # Newer API versions carry "price"; older ones only "plan"
        price = first_item.get("price") or first_item.get("plan") or {}
        if isinstance(price, str):
            price = {"id": price}
        price = as_dict(price)
        recurring = as_dict(price.get("recurring"))

        # current_period_end moved from the subscription to its items
        period_end = data.get("current_period_end") or first_item.get(
            "current_period_end"
        )

        return cls(
            id=data["id"],
            status=data.get("status") or "",
            customer_id=expandable_id(data.get("customer")),
            price_id=price.get("id"),
            product_id=expandable_id(price.get("product")),
            interval=recurring.get("interval") or price.get("interval"),
            start_date=from_unix_timestamp(data.get("start_date")),
            current_period_end=from_unix_timestamp(period_end),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            cancel_at=from_unix_timestamp(data.get("cancel_at")),
            raw_response=data,
        )


@dataclass
class CheckoutSessionResult:
    """
    Result from Stripe Checkout Session operations.

    Attributes:
        id: Checkout Session ID (cs_xxx)
        url: Hosted checkout page URL (None once the session is complete)
        status: 'open', 'complete' or 'expired'
        customer_id: Customer ID (cus_xxx)
        subscription_id: Subscription created by the session, if any
        client_reference_id: Our user id, echoed back by Stripe
        raw_response: Full Stripe response dict
    """

    id: str
    url: str | None = None
    status: str | None = None
    customer_id: str | None = None
    subscription_id: str | None = None
    client_reference_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> CheckoutSessionResult:
        data = as_dict(obj)
        return cls(
            id=data["id"],
            url=data.get("url"),
            status=data.get("status"),
            customer_id=expandable_id(data.get("customer")),
            subscription_id=expandable_id(data.get("subscription")),
            client_reference_id=data.get("client_reference_id"),
            raw_response=data,
        )


@dataclass
class PriceResult:
    """
    Result from Stripe Price retrieval.

    Attributes:
        id: Price ID (price_xxx)
        product_id: Product ID (prod_xxx)
        product_name: Product name when the product was expanded
        interval: Recurring interval ('month', 'year', ...)
        unit_amount: Amount in the smallest currency unit
        currency: ISO 4217 currency code
    """

    id: str
    product_id: str | None = None
    product_name: str | None = None
    interval: str | None = None
    unit_amount: int | None = None
    currency: str | None = None

    @classmethod
    def from_stripe(cls, obj: Any) -> PriceResult:
        data = as_dict(obj)
        product = data.get("product")
        product_name = None
        if product is not None and not isinstance(product, str):
            product_name = as_dict(product).get("name")
        return cls(
            id=data["id"],
            product_id=expandable_id(product),
            product_name=product_name,
            interval=as_dict(data.get("recurring")).get("interval"),
            unit_amount=data.get("unit_amount"),
            currency=data.get("currency"),
        )


@dataclass
class ProductResult:
    """Result from Stripe Product retrieval."""

    id: str
    name: str | None = None
    active: bool = True

    @classmethod
    def from_stripe(cls, obj: Any) -> ProductResult:
        data = as_dict(obj)
        return cls(
            id=data["id"],
            name=data.get("name"),
            active=bool(data.get("active", True)),
        )


# =============================================================================
# Transport
# =============================================================================


def _install_http_client(timeout: int) -> stripe.HTTPClient:
    """
    Set the SDK's process-wide HTTP transport to use ``timeout``.

    The resource API takes no per-call transport, so every adapter in the
    process shares ``stripe.default_http_client``. The transport is replaced
    only when the installed one has a different timeout, so it always
    matches the most recently built adapter.
    """
    current = stripe.default_http_client
    if isinstance(current, stripe.RequestsClient) and current._timeout == timeout:
        return current

    client = stripe.RequestsClient(timeout=timeout)
    stripe.default_http_client = client
    return client


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    Constructed explicitly and injected into SubscriptionService and
    WebhookProcessor. The API key lives on the instance and is passed to
    every SDK call.

    Usage:
        stripe_adapter = StripeAdapter(api_key="sk_test_...", webhook_secret="whsec_...")
        session = stripe_adapter.create_checkout_session(...)

        # Or from Django settings
        stripe_adapter = StripeAdapter.from_settings()
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        timeout: int = 10,
    ):
        if not api_key:
            raise ImproperlyConfigured("A Stripe secret key is required")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        _install_http_client(timeout)

    @classmethod
    def from_settings(cls) -> StripeAdapter:
        """Build an adapter from STRIPE_* settings."""
        return cls(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS,
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _execute(
        self,
        log_context: dict[str, Any],
        call: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Run one SDK call with timing, logging and error translation.

        Raises:
            StripeError: Any SDK failure, translated
        """
        logger = self.get_logger()
        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            response = call(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return response

    # =========================================================================
    # Customers
    # =========================================================================

    def create_customer(
        self, email: str, metadata: dict[str, str] | None = None
    ) -> CustomerResult:
        """Create a Stripe customer for an email address."""
        customer = self._execute(
            {"operation": "create_customer"},
            stripe.Customer.create,
            email=email,
            metadata=metadata or {},
        )
        return CustomerResult.from_stripe(customer)

    def retrieve_customer(self, customer_id: str) -> CustomerResult:
        """
        Fetch a customer by id.

        A customer deleted on Stripe's side comes back with ``deleted=True``
        rather than raising.

        Raises:
            StripeInvalidRequestError: No such customer
        """
        customer = self._execute(
            {"operation": "retrieve_customer", "customer_id": customer_id},
            stripe.Customer.retrieve,
            customer_id,
        )
        return CustomerResult.from_stripe(customer)

    def find_customer_by_email(self, email: str) -> CustomerResult | None:
        """Return the first Stripe customer with this email, or None."""
        customers = self._execute(
            {"operation": "find_customer_by_email"},
            stripe.Customer.list,
            email=email,
            limit=1,
        )
        if not customers.data:
            return None
        return CustomerResult.from_stripe(customers.data[0])

    def list_card_payment_methods(self, customer_id: str) -> list[PaymentMethodResult]:
        """List the card payment methods attached to a customer."""
        methods = self._execute(
            {"operation": "list_card_payment_methods", "customer_id": customer_id},
            stripe.PaymentMethod.list,
            customer=customer_id,
            type="card",
            limit=100,
        )
        return [PaymentMethodResult.from_stripe(m) for m in methods.data]

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def list_active_subscriptions(self, customer_id: str) -> list[SubscriptionSnapshot]:
        """List a customer's subscriptions in status 'active'."""
        subscriptions = self._execute(
            {"operation": "list_active_subscriptions", "customer_id": customer_id},
            stripe.Subscription.list,
            customer=customer_id,
            status="active",
            limit=100,
        )
        return [SubscriptionSnapshot.from_stripe(s) for s in subscriptions.data]

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        """Fetch a subscription by id."""
        subscription = self._execute(
            {"operation": "retrieve_subscription", "subscription_id": subscription_id},
            stripe.Subscription.retrieve,
            subscription_id,
        )
        return SubscriptionSnapshot.from_stripe(subscription)

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: dict[str, str] | None = None,
    ) -> SubscriptionSnapshot:
        """
        Create a subscription charged to a saved payment method.

        Raises:
            StripeCardDeclinedError: The first invoice could not be paid
        """
        subscription = self._execute(
            {
                "operation": "create_subscription",
                "customer_id": customer_id,
                "price_id": price_id,
            },
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            default_payment_method=payment_method_id,
            metadata=metadata or {},
        )
        return SubscriptionSnapshot.from_stripe(subscription)

    def set_cancel_at_period_end(
        self, subscription_id: str, cancel_at_period_end: bool = True
    ) -> SubscriptionSnapshot:
        """Set or clear the at-period-end cancellation flag."""
        subscription = self._execute(
            {
                "operation": "set_cancel_at_period_end",
                "subscription_id": subscription_id,
                "cancel_at_period_end": cancel_at_period_end,
            },
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel_at_period_end,
        )
        return SubscriptionSnapshot.from_stripe(subscription)

    def cancel_subscription_now(self, subscription_id: str) -> SubscriptionSnapshot:
        """Cancel a subscription immediately."""
        subscription = self._execute(
            {"operation": "cancel_subscription_now", "subscription_id": subscription_id},
            stripe.Subscription.cancel,
            subscription_id,
        )
        return SubscriptionSnapshot.from_stripe(subscription)

    # =========================================================================
    # Checkout
    # =========================================================================

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        client_reference_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSessionResult:
        """Create a hosted checkout session in subscription mode."""
        session = self._execute(
            {
                "operation": "create_checkout_session",
                "customer_id": customer_id,
                "price_id": price_id,
            },
            stripe.checkout.Session.create,
            mode="subscription",
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=client_reference_id,
            metadata=metadata or {},
        )
        return CheckoutSessionResult.from_stripe(session)

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionResult:
        """Fetch a checkout session by id."""
        session = self._execute(
            {"operation": "retrieve_checkout_session", "session_id": session_id},
            stripe.checkout.Session.retrieve,
            session_id,
        )
        return CheckoutSessionResult.from_stripe(session)

    # =========================================================================
    # Catalogue
    # =========================================================================

    def retrieve_price(self, price_id: str) -> PriceResult:
        """Fetch a price with its product expanded."""
        price = self._execute(
            {"operation": "retrieve_price", "price_id": price_id},
            stripe.Price.retrieve,
            price_id,
            expand=["product"],
        )
        return PriceResult.from_stripe(price)

    def retrieve_product(self, product_id: str) -> ProductResult:
        """Fetch a product by id."""
        product = self._execute(
            {"operation": "retrieve_product", "product_id": product_id},
            stripe.Product.retrieve,
            product_id,
        )
        return ProductResult.from_stripe(product)

    # =========================================================================
    # Webhooks
    # =========================================================================

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Fails closed: a missing secret, a missing signature, a bad signature
        or an unparsable body are all rejected.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: The payload could not be verified
        """
        if not self.webhook_secret:
            self.get_logger().error("Webhook received but no signing secret is configured")
            raise StripeInvalidRequestError(
                "Webhook signing secret is not configured",
                stripe_code="signature_verification_failed",
            )
        if not signature:
            raise StripeInvalidRequestError(
                "Missing Stripe-Signature header",
                stripe_code="signature_verification_failed",
            )

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e
        return as_dict(event)

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to billing exceptions.

        Every branch logs the provider's message and raises.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid request, auth or permission failure
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Network failure, Stripe 5xx, or unknown error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms, "error": str(error)}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            logger.critical(
                "Stripe rejected our credentials - check STRIPE_SECRET_KEY",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error.",
                stripe_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
