"""
Tests for WebhookProcessor: dedup gate, dispatch and outcome recording.
"""

from unittest.mock import patch

import pytest

from billing.models import Subscription, WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.tests.factories import SubscriptionFactory, WebhookEventFactory
from core.services import ServiceResult


@pytest.mark.django_db
class TestProcess:
    """Tests for WebhookProcessor.process."""

    def test_new_event_is_stored_and_processed(self, processor, stripe_event):
        event_data = stripe_event("payment_method.attached", {"id": "pm_1"}, id="evt_new")

        webhook_event = processor.process(event_data)

        stored = WebhookEvent.objects.get(stripe_event_id="evt_new")
        assert stored.pk == webhook_event.pk
        assert stored.status == WebhookEventStatus.PROCESSED
        assert stored.event_type == "payment_method.attached"
        assert stored.payload == event_data
        assert stored.processed_at is not None

    def test_duplicate_delivery_is_not_dispatched(self, processor, stripe_event):
        """The second delivery of an event id returns the stored row untouched."""
        event_data = stripe_event("payment_method.attached", {"id": "pm_1"}, id="evt_dup")

        with patch(
            "billing.webhooks.processor.dispatch_webhook",
            return_value=ServiceResult.success(None),
        ) as mock_dispatch:
            first = processor.process(event_data)
            second = processor.process(event_data)

        assert mock_dispatch.call_count == 1
        assert first.pk == second.pk
        assert WebhookEvent.objects.filter(stripe_event_id="evt_dup").count() == 1

    def test_duplicate_of_failed_event_is_not_retried(self, processor, stripe_event):
        WebhookEventFactory(stripe_event_id="evt_failed", status=WebhookEventStatus.FAILED)

        with patch("billing.webhooks.processor.dispatch_webhook") as mock_dispatch:
            webhook_event = processor.process(
                stripe_event("payment_method.attached", {"id": "pm_1"}, id="evt_failed")
            )

        mock_dispatch.assert_not_called()
        assert webhook_event.status == WebhookEventStatus.FAILED

    def test_unknown_type_is_ignored(self, processor, stripe_event):
        with patch("billing.webhooks.processor.dispatch_webhook") as mock_dispatch:
            webhook_event = processor.process(
                stripe_event("customer.created", {"id": "cus_1"}, id="evt_other")
            )

        mock_dispatch.assert_not_called()
        stored = WebhookEvent.objects.get(pk=webhook_event.pk)
        assert stored.status == WebhookEventStatus.IGNORED
        assert stored.error_message == "Unhandled event type"

    def test_reconciliation_gap_is_recorded_as_failed(
        self, processor, stripe_event, subscription_payload
    ):
        event_data = stripe_event(
            "customer.subscription.deleted",
            subscription_payload(id="sub_ghost", cancel_at_period_end=True),
            id="evt_gap",
        )

        webhook_event = processor.process(event_data)

        stored = WebhookEvent.objects.get(pk=webhook_event.pk)
        assert stored.status == WebhookEventStatus.FAILED
        assert "sub_ghost" in stored.error_message

    def test_handler_exception_is_recorded_not_raised(self, processor, stripe_event, user):
        """The audit row survives; the handler's partial writes do not."""

        def explode(webhook_event, service):
            SubscriptionFactory(user=user, stripe_subscription_id="sub_partial")
            raise RuntimeError("boom")

        with patch("billing.webhooks.processor.dispatch_webhook", side_effect=explode):
            webhook_event = processor.process(
                stripe_event("customer.subscription.updated", {"id": "sub_x"}, id="evt_boom")
            )

        stored = WebhookEvent.objects.get(pk=webhook_event.pk)
        assert stored.status == WebhookEventStatus.FAILED
        assert stored.error_message == "RuntimeError: boom"
        assert not Subscription.objects.filter(stripe_subscription_id="sub_partial").exists()


@pytest.mark.django_db
class TestReplay:
    def test_replay_failed_event(self, processor, stored_event):
        """Replay bypasses the dedup gate."""
        webhook_event = stored_event("payment_intent.succeeded", {"id": "pi_1"})
        webhook_event.mark_failed("earlier failure")
        webhook_event.save()

        replayed = processor.replay(webhook_event)

        stored = WebhookEvent.objects.get(pk=replayed.pk)
        assert stored.status == WebhookEventStatus.PROCESSED
        assert stored.error_message is None
