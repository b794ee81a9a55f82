"""
Webhook processing: dedup gate, dispatch and outcome recording.

WebhookProcessor turns one verified Stripe event into exactly one
WebhookEvent row and at most one handler invocation:

1. get_or_create by stripe_event_id. The row is committed before any
   handler runs, so the audit record survives a handler failure.
2. An existing row is a duplicate delivery: nothing is dispatched.
3. Types outside StripeEventType are marked IGNORED.
4. Otherwise the handler runs in a transaction; the outcome is recorded as
   PROCESSED or FAILED. Handler exceptions are logged and never re-raised.

Usage:
    from billing.webhooks.processor import WebhookProcessor

    processor = WebhookProcessor(stripe_adapter)
    webhook_event = processor.process(event_data)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from billing.models import WebhookEvent
from billing.services import SubscriptionService
from billing.webhooks.events import StripeEventType
from billing.webhooks.handlers import dispatch_webhook
from core.services import BaseService

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter


class WebhookProcessor(BaseService):
    """Stores and dispatches Stripe webhook events."""

    def __init__(self, stripe: StripeAdapter):
        self.stripe = stripe
        self.service = SubscriptionService(stripe=stripe)

    def process(self, event_data: dict[str, Any]) -> WebhookEvent:
        """
        Record a verified event and dispatch it once.

        Args:
            event_data: Parsed Stripe event (from StripeAdapter.construct_event)

        Returns:
            The WebhookEvent row, new or pre-existing
        """
        logger = self.get_logger()
        webhook_event, created = WebhookEvent.objects.get_or_create(
            stripe_event_id=event_data["id"],
            defaults={
                "event_type": event_data.get("type") or "",
                "payload": event_data,
            },
        )

        if not created:
            logger.info(
                "Duplicate webhook delivery, not dispatching",
                extra={
                    "stripe_event_id": webhook_event.stripe_event_id,
                    "status": webhook_event.status,
                },
            )
            return webhook_event

        logger.info(
            f"Received Stripe webhook: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return self._dispatch(webhook_event)

    def replay(self, webhook_event: WebhookEvent) -> WebhookEvent:
        """Dispatch an already stored event again, bypassing the dedup gate."""
        self.get_logger().info(
            "Replaying webhook event",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "previous_status": webhook_event.status,
            },
        )
        return self._dispatch(webhook_event)

    def _dispatch(self, webhook_event: WebhookEvent) -> WebhookEvent:
        logger = self.get_logger()

        if StripeEventType.parse(webhook_event.event_type) is None:
            logger.info(
                f"Ignoring unhandled event type: {webhook_event.event_type}",
                extra={"stripe_event_id": webhook_event.stripe_event_id},
            )
            webhook_event.mark_ignored("Unhandled event type")
            self._save_outcome(webhook_event)
            return webhook_event

        try:
            with self.atomic():
                result = dispatch_webhook(webhook_event, self.service)
        except Exception as e:
            logger.error(
                f"Webhook handler raised: {type(e).__name__}",
                extra={
                    "stripe_event_id": webhook_event.stripe_event_id,
                    "event_type": webhook_event.event_type,
                },
                exc_info=True,
            )
            webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        else:
            if result.success:
                webhook_event.mark_processed()
                logger.info(
                    "Webhook processed",
                    extra={
                        "stripe_event_id": webhook_event.stripe_event_id,
                        "event_type": webhook_event.event_type,
                    },
                )
            else:
                webhook_event.mark_failed(result.error or "Handler failed")
                logger.warning(
                    "Webhook handler reported failure",
                    extra={
                        "stripe_event_id": webhook_event.stripe_event_id,
                        "event_type": webhook_event.event_type,
                        "error_code": result.error_code,
                    },
                )

        self._save_outcome(webhook_event)
        return webhook_event

    @staticmethod
    def _save_outcome(webhook_event: WebhookEvent) -> None:
        webhook_event.save(
            update_fields=["status", "error_message", "processed_at", "updated_at"]
        )
