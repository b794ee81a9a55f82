"""
Celery tasks for billing.

Webhooks are processed synchronously in the request. These tasks only
replay events already stored in the WebhookEvent audit log, on operator
request. Nothing schedules them and they do not retry themselves.

Usage:
    from billing.tasks import replay_webhook_event, replay_failed_webhook_events

    # Replay one stored event
    replay_webhook_event.delay(str(webhook_event.id))

    # Replay everything that failed in the last 24 hours
    replay_failed_webhook_events.delay(since_hours=24)
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from billing.adapters import StripeAdapter
from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.webhooks.processor import WebhookProcessor

logger = logging.getLogger(__name__)


@shared_task(acks_late=True)
def replay_webhook_event(webhook_event_id: str) -> dict:
    """
    Re-dispatch one stored webhook event.

    Args:
        webhook_event_id: UUID of the WebhookEvent

    Returns:
        Dict with the resulting status
    """
    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.warning(
            "Replay requested for unknown webhook event",
            extra={"webhook_event_id": webhook_event_id},
        )
        return {"status": "not_found", "webhook_event_id": webhook_event_id}

    processor = WebhookProcessor(StripeAdapter.from_settings())
    webhook_event = processor.replay(webhook_event)
    return {
        "status": webhook_event.status,
        "webhook_event_id": webhook_event_id,
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task(acks_late=True)
def replay_failed_webhook_events(since_hours: int = 24) -> dict:
    """
    Re-dispatch every FAILED event received in the last ``since_hours`` hours.

    Events are replayed oldest first so per-object order is kept.

    Returns:
        Dict with counts of replayed events by resulting status
    """
    cutoff = timezone.now() - timedelta(hours=since_hours)
    failed_events = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        created_at__gte=cutoff,
    ).order_by("created_at")

    processor = WebhookProcessor(StripeAdapter.from_settings())
    counts: dict[str, int] = {}
    for webhook_event in failed_events:
        webhook_event = processor.replay(webhook_event)
        counts[webhook_event.status] = counts.get(webhook_event.status, 0) + 1

    logger.info(
        "Replayed failed webhook events",
        extra={"since_hours": since_hours, "counts": counts},
    )
    return {"replayed": sum(counts.values()), "by_status": counts}
