"""
Subscription model: the local mirror of a Stripe subscription.

A row is written by the subscription service when a subscription is
created against a saved card, and by webhook reconciliation. Rows are
never deleted by either path; cancellation is recorded through status
and end_date.

Usage:
    from billing.models import Subscription
    from billing.types import SubscriptionPatch

    subscription = Subscription.objects.get(stripe_subscription_id="sub_xxx")
    subscription.apply_patch(SubscriptionPatch(status="past_due"))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.utils import timezone

from billing.models.managers import SubscriptionManager
from billing.state_machines import SubscriptionStatus
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from datetime import datetime

    from billing.types import SubscriptionPatch

logger = logging.getLogger(__name__)


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's subscription as last reconciled from Stripe.

    Status is not a local state machine: it is whatever Stripe last reported,
    so any status may follow any other.

    Fields:
        user: Subscriber
        stripe_subscription_id: Stripe Subscription ID (sub_xxx)
        stripe_customer_id: Stripe Customer ID (cus_xxx)
        stripe_price_id: Stripe Price ID (price_xxx)
        plan: Display plan, e.g. "MONTHLY-Basic"
        status: Stripe subscription status
        start_date: When the subscription started
        end_date: When it ends or ended (set on cancellation)
        next_billing_date: End of the current billing period
        cancel_at_period_end: Whether cancellation is scheduled
        last_event_at: Stripe timestamp of the last event applied
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="Subscriber",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    stripe_customer_id = models.CharField(
        max_length=255,
        db_index=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    stripe_price_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Price ID (price_xxx)",
    )

    plan = models.CharField(
        max_length=255,
        help_text="Display plan derived from price interval and product name",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=32,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Subscription status as last reported by Stripe",
    )

    # ==========================================================================
    # Billing Period
    # ==========================================================================

    start_date = models.DateTimeField(
        default=timezone.now,
        help_text="When the subscription started",
    )

    end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription ends or ended",
    )

    next_billing_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the current billing period",
    )

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Whether the subscription will cancel at period end",
    )

    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Stripe timestamp of the last reconciled change",
    )

    objects = SubscriptionManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["user", "status"], name="billing_sub_user_id_6d1f0a_idx"),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.stripe_subscription_id}, {self.plan}, {self.status})"

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    def apply_patch(
        self, patch: SubscriptionPatch, event_at: datetime | None = None
    ) -> bool:
        """
        Write the set fields of ``patch`` and save.

        Args:
            patch: Fields to change
            event_at: Stripe timestamp of the change, if it came from an event

        Returns:
            False when the change is older than the last one applied
        """
        if (
            event_at is not None
            and self.last_event_at is not None
            and event_at < self.last_event_at
        ):
            logger.info(
                "Skipping stale subscription change",
                extra={
                    "stripe_subscription_id": self.stripe_subscription_id,
                    "event_at": event_at.isoformat(),
                    "last_event_at": self.last_event_at.isoformat(),
                },
            )
            return False

        changes = patch.changes()
        for name, value in changes.items():
            setattr(self, name, value)
        update_fields = list(changes)
        if event_at is not None:
            self.last_event_at = event_at
            update_fields.append("last_event_at")

        self.save(update_fields=[*update_fields, "updated_at"])
        return True

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_current(self) -> bool:
        """Whether the subscription has not ended yet."""
        return self.end_date is None or self.end_date > timezone.now()
