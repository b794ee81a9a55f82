"""
Webhook event handlers for Stripe events.

This module provides a handler registry and one handler per
StripeEventType. Handlers receive the stored WebhookEvent and the
SubscriptionService (which carries the Stripe adapter), and return a
ServiceResult:

- success: the event was applied, or was audit-only
- failure: a reconciliation gap (the event references nothing known
  locally). Nothing is mutated and the event is not retried.

Unexpected errors are raised and caught by WebhookProcessor.

Usage:
    from billing.webhooks.handlers import dispatch_webhook

    result = dispatch_webhook(webhook_event, service)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ImproperlyConfigured

from authentication.models import User
from billing.adapters import CheckoutSessionResult, SubscriptionSnapshot, expandable_id
from billing.exceptions import ReconciliationGapError
from billing.models import Checkout, PaymentHistory, Subscription
from billing.plans import resolve_display_plan
from billing.state_machines import CheckoutKind, CheckoutStatus, SubscriptionStatus
from billing.types import SubscriptionPatch
from billing.webhooks.events import StripeEventType
from core.services import ServiceResult

if TYPE_CHECKING:
    from billing.models import WebhookEvent
    from billing.services import SubscriptionService

    Handler = Callable[[WebhookEvent, SubscriptionService], ServiceResult]


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event kinds to handler functions
WEBHOOK_HANDLERS: dict[StripeEventType, Handler] = {}


def register_handler(event_type: StripeEventType) -> Callable:
    """
    Decorator to register the handler for one event kind.

    Usage:
        @register_handler(StripeEventType.INVOICE_PAYMENT_FAILED)
        def handle_invoice_payment_failed(webhook_event, service) -> ServiceResult:
            ...

    Raises:
        ImproperlyConfigured: A handler is already registered for the kind
    """

    def decorator(func: Handler) -> Handler:
        if event_type in WEBHOOK_HANDLERS:
            raise ImproperlyConfigured(
                f"Duplicate webhook handler for {event_type.value}"
            )
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type.value}")
        return func

    return decorator


def assert_registry_complete() -> None:
    """
    Check that every StripeEventType has a handler.

    Raises:
        ImproperlyConfigured: Listing the kinds without a handler
    """
    missing = [kind.value for kind in StripeEventType if kind not in WEBHOOK_HANDLERS]
    if missing:
        raise ImproperlyConfigured(
            f"No webhook handler registered for: {', '.join(sorted(missing))}"
        )


def dispatch_webhook(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """
    Dispatch a stored webhook event to its handler.

    Returns:
        ServiceResult from the handler. Event types outside
        StripeEventType return a failure without calling anything.
    """
    event_type = StripeEventType.parse(webhook_event.event_type)
    if event_type is None:
        return ServiceResult.failure(
            f"Unhandled event type: {webhook_event.event_type}",
            error_code="UNHANDLED_EVENT_TYPE",
        )

    logger.info(
        f"Dispatching {event_type.value} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return WEBHOOK_HANDLERS[event_type](webhook_event, service)


def _reconciliation_gap(webhook_event: WebhookEvent, message: str) -> ServiceResult:
    logger.warning(
        f"{webhook_event.event_type}: {message}",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "object_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.from_exception(ReconciliationGapError(message))


# =============================================================================
# Checkout Session Handlers
# =============================================================================


@register_handler(StripeEventType.CHECKOUT_SESSION_COMPLETED)
def handle_checkout_session_completed(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """
    Handle a completed hosted checkout.

    Upserts the subscription the session created and completes the
    Checkout, through the same routine the check-session endpoint uses.
    A second delivery updates the same row.
    """
    session = CheckoutSessionResult.from_stripe(webhook_event.get_object())
    checkout = (
        Checkout.objects.select_related("user")
        .filter(checkout_session_id=session.id)
        .first()
    )
    if checkout is None:
        return _reconciliation_gap(webhook_event, f"No checkout for session {session.id}")

    subscription = service.reconcile_checkout_session(
        checkout,
        session,
        event_at=webhook_event.event_created_at,
        assume_complete=True,
    )
    return ServiceResult.success(subscription)


@register_handler(StripeEventType.CHECKOUT_SESSION_EXPIRED)
def handle_checkout_session_expired(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """Mark a pending Checkout abandoned when its session expires."""
    session_id = webhook_event.get_object_id()
    checkout = Checkout.objects.filter(checkout_session_id=session_id).first()
    if checkout is None:
        return _reconciliation_gap(webhook_event, f"No checkout for session {session_id}")

    if checkout.is_pending:
        checkout.abandon("expired")
        checkout.save()
        logger.info(
            "Checkout abandoned",
            extra={"checkout_id": str(checkout.id), "session_id": session_id},
        )
    return ServiceResult.success(checkout)


# =============================================================================
# Customer Subscription Handlers
# =============================================================================


def _upsert_subscription(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> tuple[SubscriptionSnapshot, ServiceResult]:
    """Shared upsert for customer.subscription.created and .updated."""
    snapshot = SubscriptionSnapshot.from_stripe(webhook_event.get_object())

    user = User.objects.by_stripe_customer(snapshot.customer_id)
    if user is None:
        existing = (
            Subscription.objects.select_related("user")
            .filter(stripe_subscription_id=snapshot.id)
            .first()
        )
        user = existing.user if existing else None
    if user is None:
        return snapshot, _reconciliation_gap(
            webhook_event, f"No user for customer {snapshot.customer_id}"
        )

    plan = resolve_display_plan(service.stripe, snapshot)
    subscription, _ = Subscription.objects.upsert_from_stripe(
        user, snapshot, plan, event_at=webhook_event.event_created_at
    )

    if snapshot.status == SubscriptionStatus.ACTIVE:
        _complete_direct_checkout(snapshot)

    return snapshot, ServiceResult.success(subscription)


def _complete_direct_checkout(snapshot: SubscriptionSnapshot) -> None:
    """Complete the bookkeeping Checkout of a subscription created against a card."""
    checkout = Checkout.objects.filter(
        checkout_session_id=snapshot.id,
        kind=CheckoutKind.DIRECT_SUBSCRIPTION,
        status=CheckoutStatus.PENDING,
    ).first()
    if checkout is None:
        return
    checkout.complete(snapshot.raw_response)
    checkout.save()
    logger.info(
        "Direct subscription checkout completed",
        extra={"checkout_id": str(checkout.id), "stripe_subscription_id": snapshot.id},
    )


@register_handler(StripeEventType.CUSTOMER_SUBSCRIPTION_CREATED)
def handle_subscription_created(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    _, result = _upsert_subscription(webhook_event, service)
    return result


@register_handler(StripeEventType.CUSTOMER_SUBSCRIPTION_UPDATED)
def handle_subscription_updated(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """
    Same upsert as created. A scheduled cancellation also records the end
    date (cancel_at, else the period end) the way an explicit cancel does.
    A live subscription with no cancellation scheduled has its end date
    cleared, so a reactivation drops the one recorded earlier.
    """
    snapshot, result = _upsert_subscription(webhook_event, service)
    if not result.success:
        return result

    if snapshot.cancel_at_period_end:
        service.record_cancellation(
            snapshot,
            snapshot.cancel_at or snapshot.current_period_end,
            event_at=webhook_event.event_created_at,
        )
    elif snapshot.cancel_at is None and snapshot.status != SubscriptionStatus.CANCELED:
        subscription = Subscription.objects.apply_patch(
            snapshot.id,
            SubscriptionPatch(end_date=None),
            event_at=webhook_event.event_created_at,
        )
        if subscription is not None:
            result = ServiceResult.success(subscription)
    return result


@register_handler(StripeEventType.CUSTOMER_SUBSCRIPTION_DELETED)
def handle_subscription_deleted(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """
    Record the end of a subscription that was scheduled to cancel.

    Deletions without a scheduled cancellation are audit-only.
    """
    snapshot = SubscriptionSnapshot.from_stripe(webhook_event.get_object())

    if not snapshot.cancel_at_period_end:
        logger.info(
            "Subscription deleted without scheduled cancellation, audit only",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "stripe_subscription_id": snapshot.id,
            },
        )
        return ServiceResult.success(None)

    subscription = Subscription.objects.apply_patch(
        snapshot.id,
        SubscriptionPatch(
            status=SubscriptionStatus.CANCELED,
            end_date=snapshot.cancel_at or snapshot.current_period_end,
        ),
        event_at=webhook_event.event_created_at,
    )
    if subscription is None:
        return _reconciliation_gap(
            webhook_event, f"No local subscription {snapshot.id}"
        )
    return ServiceResult.success(subscription)


# =============================================================================
# Invoice Handlers
# =============================================================================


def _invoice_subscription_id(invoice: dict) -> str | None:
    """Subscription id of an invoice, from either API version's layout."""
    subscription_id = expandable_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return expandable_id(details.get("subscription"))


@register_handler(StripeEventType.INVOICE_PAYMENT_SUCCEEDED)
def handle_invoice_payment_succeeded(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """
    Refresh status and next billing date after a paid invoice.

    Only an existing row is updated; an invoice never creates a
    subscription. The paid invoice is recorded in PaymentHistory.
    """
    invoice = webhook_event.get_object()
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        logger.info(
            "Invoice without subscription, audit only",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    if not Subscription.objects.filter(stripe_subscription_id=subscription_id).exists():
        return _reconciliation_gap(
            webhook_event, f"No local subscription {subscription_id}"
        )

    # The fetched object is current, so it is not ordered against event time
    snapshot = service.stripe.retrieve_subscription(subscription_id)
    subscription = Subscription.objects.apply_patch(
        subscription_id,
        SubscriptionPatch(
            status=snapshot.status,
            next_billing_date=snapshot.current_period_end,
        ),
    )
    if subscription is None:
        return _reconciliation_gap(
            webhook_event, f"No local subscription {subscription_id}"
        )

    PaymentHistory.objects.get_or_create(
        stripe_invoice_id=invoice["id"],
        defaults={
            "user": subscription.user,
            "subscription": subscription,
            "amount_cents": invoice.get("amount_paid") or 0,
            "currency": invoice.get("currency") or "usd",
            "status": invoice.get("status") or "paid",
        },
    )
    return ServiceResult.success(subscription)


@register_handler(StripeEventType.INVOICE_PAYMENT_FAILED)
def handle_invoice_payment_failed(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    """Audit only. The status change arrives as customer.subscription.updated."""
    invoice = webhook_event.get_object()
    logger.warning(
        "Invoice payment failed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "invoice_id": invoice.get("id"),
            "stripe_subscription_id": _invoice_subscription_id(invoice),
        },
    )
    return ServiceResult.success(None)


# =============================================================================
# Audit-Only Handlers
# =============================================================================


@register_handler(StripeEventType.PAYMENT_INTENT_SUCCEEDED)
def handle_payment_intent_succeeded(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    logger.info(
        "Payment intent succeeded",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.success(None)


@register_handler(StripeEventType.PAYMENT_METHOD_ATTACHED)
def handle_payment_method_attached(
    webhook_event: WebhookEvent, service: SubscriptionService
) -> ServiceResult:
    logger.info(
        "Payment method attached",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_method_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.success(None)
