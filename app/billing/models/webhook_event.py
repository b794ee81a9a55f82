"""
WebhookEvent model for Stripe webhook event tracking.

Every verified webhook delivery is stored here before any handler runs.
The unique stripe_event_id makes this table the dedup gate: a delivery
whose id is already present is never dispatched again.

Usage:
    from billing.models import WebhookEvent

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_1234567890",
        defaults={
            "event_type": "customer.subscription.updated",
            "payload": event_data,
        },
    )
    if not created:
        return webhook_event  # duplicate delivery

    # ... dispatch ...
    webhook_event.mark_processed()
    webhook_event.save()
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from django.db import models
from django.utils import timezone

from billing.state_machines import WebhookEventStatus
from core.helpers import from_unix_timestamp
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only audit record of a Stripe webhook delivery.

    Processing Flow:
        1. Webhook arrives, Stripe signature verified
        2. get_or_create by stripe_event_id, committed before dispatch
        3. Existing row -> duplicate, return without dispatch
        4. Unknown event type -> IGNORED
        5. Dispatch -> PROCESSED, or FAILED with error_message

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Stripe event type string
        payload: Full event JSON
        status: Dispatch outcome
        error_message: Error details if processing failed
        processed_at: When the outcome was recorded
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'checkout.session.completed')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.RECEIVED,
        db_index=True,
        help_text="Dispatch outcome",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the dispatch outcome was recorded",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_web_status_8a41d7_idx"),
            models.Index(
                fields=["event_type", "created_at"], name="billing_web_event_t_c52e19_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def event_created_at(self) -> datetime | None:
        """Stripe's creation timestamp for the event."""
        return from_unix_timestamp((self.payload or {}).get("created"))

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_ignored(self, reason: str | None = None) -> None:
        """
        Mark event as received but not dispatched.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.IGNORED
        self.processed_at = timezone.now()
        self.error_message = reason

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.processed_at = timezone.now()
        self.error_message = error_message

    def get_object(self) -> dict[str, Any]:
        """Return ``data.object`` from the payload, or an empty dict."""
        try:
            return self.payload.get("data", {}).get("object") or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        """Return the id of the event's primary object, if present."""
        return self.get_object().get("id")
