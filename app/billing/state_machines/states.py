"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Checkout (django-fsm, one-way):
    pending → completed
    pending → abandoned

Subscription status is not a local state machine. It mirrors whatever
status Stripe last reported for the subscription, so any value may follow
any other.

WebhookEvent status records the outcome of the single dispatch attempt:
    received → processed | ignored | failed
    failed → processed (manual replay)
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Subscription statuses as reported by Stripe.

    See https://docs.stripe.com/api/subscriptions/object#subscription_object-status
    """

    INCOMPLETE = "incomplete", "Incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
    TRIALING = "trialing", "Trialing"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"
    UNPAID = "unpaid", "Unpaid"
    PAUSED = "paused", "Paused"


class CheckoutStatus(models.TextChoices):
    """
    Completion status of a checkout attempt.

    Terminal states: COMPLETED, ABANDONED. Neither ever reverses.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    ABANDONED = "abandoned", "Abandoned"


class CheckoutKind(models.TextChoices):
    """
    How the checkout attempt reaches Stripe.

    - CHECKOUT_SESSION: hosted Stripe Checkout page (no saved card)
    - DIRECT_SUBSCRIPTION: subscription created directly against a saved
      card; the row is bookkeeping and holds the subscription id
    """

    CHECKOUT_SESSION = "checkout_session", "Checkout Session"
    DIRECT_SUBSCRIPTION = "direct_subscription", "Direct Subscription"


class WebhookEventStatus(models.TextChoices):
    """Outcome of dispatching a stored webhook event."""

    RECEIVED = "received", "Received"
    PROCESSED = "processed", "Processed"
    IGNORED = "ignored", "Ignored"
    FAILED = "failed", "Failed"
