"""
Tests for webhook event handlers.

Handlers are called through dispatch_webhook with a SubscriptionService
wrapping the adapter double.
"""

from datetime import datetime, timezone as dt_timezone

import pytest
from django.core.exceptions import ImproperlyConfigured

from billing.adapters import SubscriptionSnapshot
from billing.models import Checkout, PaymentHistory, Subscription
from billing.state_machines import CheckoutKind, CheckoutStatus, SubscriptionStatus
from billing.tests.factories import CheckoutFactory
from billing.types import SubscriptionPatch
from billing.webhooks.events import StripeEventType
from billing.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    assert_registry_complete,
    dispatch_webhook,
    register_handler,
)

# 2026-01-15T00:00:00Z
EVENT_TIME = 1768435200


def utc(timestamp):
    return datetime.fromtimestamp(timestamp, tz=dt_timezone.utc)


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_every_event_type_has_a_handler(self):
        assert set(WEBHOOK_HANDLERS) == set(StripeEventType)
        assert_registry_complete()

    def test_duplicate_registration_is_rejected(self):
        original = WEBHOOK_HANDLERS[StripeEventType.PAYMENT_METHOD_ATTACHED]

        with pytest.raises(ImproperlyConfigured):
            register_handler(StripeEventType.PAYMENT_METHOD_ATTACHED)(lambda e, s: None)

        assert WEBHOOK_HANDLERS[StripeEventType.PAYMENT_METHOD_ATTACHED] is original

    def test_missing_handler_is_reported(self, monkeypatch):
        monkeypatch.delitem(WEBHOOK_HANDLERS, StripeEventType.INVOICE_PAYMENT_FAILED)

        with pytest.raises(ImproperlyConfigured, match="invoice.payment_failed"):
            assert_registry_complete()

    def test_unknown_type_is_not_dispatched(self, stored_event, service):
        event = stored_event("customer.created", {"id": "cus_1"})

        result = dispatch_webhook(event, service)

        assert result.success is False
        assert result.error_code == "UNHANDLED_EVENT_TYPE"


# =============================================================================
# Checkout Session Events
# =============================================================================


@pytest.mark.django_db
class TestCheckoutSessionCompleted:
    """Tests for checkout.session.completed."""

    @pytest.fixture(autouse=True)
    def stripe_subscription(self, mock_stripe, subscription_payload):
        mock_stripe.retrieve_subscription.return_value = SubscriptionSnapshot.from_stripe(
            subscription_payload()
        )

    def test_creates_subscription_and_completes_checkout(
        self, stored_event, service, mock_stripe, pending_checkout, checkout_session_payload
    ):
        event = stored_event(
            "checkout.session.completed", checkout_session_payload(), created=EVENT_TIME
        )

        result = dispatch_webhook(event, service)

        assert result.success is True
        mock_stripe.retrieve_subscription.assert_called_once_with("sub_test123")
        subscription = Subscription.objects.get(stripe_subscription_id="sub_test123")
        assert subscription.user == pending_checkout.user
        assert subscription.plan == "MONTHLY-Basic"
        assert subscription.last_event_at == utc(EVENT_TIME)
        assert Checkout.objects.get(pk=pending_checkout.pk).status == CheckoutStatus.COMPLETED

    def test_payload_without_status_still_completes(
        self, stored_event, service, pending_checkout, checkout_session_payload
    ):
        """Older API versions send no session status; the event type is enough."""
        session = checkout_session_payload()
        del session["status"]
        event = stored_event("checkout.session.completed", session)

        result = dispatch_webhook(event, service)

        assert result.success is True
        assert Subscription.objects.filter(stripe_subscription_id="sub_test123").exists()
        assert Checkout.objects.get(pk=pending_checkout.pk).status == CheckoutStatus.COMPLETED

    def test_second_delivery_updates_same_row(
        self, stored_event, service, pending_checkout, checkout_session_payload
    ):
        """Re-sent under a new event id: one subscription, checkout stays completed."""
        first = stored_event("checkout.session.completed", checkout_session_payload(), id="evt_1")
        second = stored_event("checkout.session.completed", checkout_session_payload(), id="evt_2")

        dispatch_webhook(first, service)
        result = dispatch_webhook(second, service)

        assert result.success is True
        assert Subscription.objects.count() == 1
        assert Checkout.objects.get(pk=pending_checkout.pk).status == CheckoutStatus.COMPLETED

    def test_unknown_session_is_a_gap(
        self, stored_event, service, mock_stripe, db, checkout_session_payload
    ):
        event = stored_event("checkout.session.completed", checkout_session_payload(id="cs_nope"))

        result = dispatch_webhook(event, service)

        assert result.success is False
        assert result.error_code == "RECONCILIATION_GAP"
        mock_stripe.retrieve_subscription.assert_not_called()
        assert Subscription.objects.count() == 0


@pytest.mark.django_db
class TestCheckoutSessionExpired:
    def test_pending_checkout_is_abandoned(
        self, stored_event, service, pending_checkout, checkout_session_payload
    ):
        event = stored_event(
            "checkout.session.expired",
            checkout_session_payload(status="expired", subscription=None),
        )

        assert dispatch_webhook(event, service).success is True

        checkout = Checkout.objects.get(pk=pending_checkout.pk)
        assert checkout.status == CheckoutStatus.ABANDONED
        assert checkout.failure_reason == "expired"

    def test_completed_checkout_stays_completed(
        self, stored_event, service, pending_checkout, checkout_session_payload
    ):
        pending_checkout.complete()
        pending_checkout.save()
        event = stored_event(
            "checkout.session.expired",
            checkout_session_payload(status="expired", subscription=None),
        )

        assert dispatch_webhook(event, service).success is True
        assert Checkout.objects.get(pk=pending_checkout.pk).status == CheckoutStatus.COMPLETED

    def test_unknown_session_is_a_gap(self, stored_event, service, checkout_session_payload):
        event = stored_event("checkout.session.expired", checkout_session_payload(id="cs_nope"))

        assert dispatch_webhook(event, service).error_code == "RECONCILIATION_GAP"


# =============================================================================
# Customer Subscription Events
# =============================================================================


@pytest.mark.django_db
class TestSubscriptionCreatedAndUpdated:
    """Tests for customer.subscription.created and .updated."""

    def test_created_inserts_row_for_known_customer(
        self, stored_event, service, user, subscription_payload
    ):
        event = stored_event(
            "customer.subscription.created", subscription_payload(), created=EVENT_TIME
        )

        result = dispatch_webhook(event, service)

        subscription = result.data
        assert subscription.user == user
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.next_billing_date == utc(1769904000)
        assert subscription.last_event_at == utc(EVENT_TIME)

    def test_created_completes_direct_checkout(
        self, stored_event, service, user, subscription_payload
    ):
        """An active subscription completes its bookkeeping checkout."""
        checkout = CheckoutFactory(
            user=user,
            checkout_session_id="sub_test123",
            kind=CheckoutKind.DIRECT_SUBSCRIPTION,
        )
        event = stored_event("customer.subscription.created", subscription_payload())

        dispatch_webhook(event, service)

        assert Checkout.objects.get(pk=checkout.pk).status == CheckoutStatus.COMPLETED

    def test_incomplete_subscription_leaves_direct_checkout_pending(
        self, stored_event, service, user, subscription_payload
    ):
        checkout = CheckoutFactory(
            user=user,
            checkout_session_id="sub_test123",
            kind=CheckoutKind.DIRECT_SUBSCRIPTION,
        )
        event = stored_event(
            "customer.subscription.created", subscription_payload(status="incomplete")
        )

        dispatch_webhook(event, service)

        assert Checkout.objects.get(pk=checkout.pk).is_pending is True

    def test_unknown_customer_is_a_gap(self, stored_event, service, db, subscription_payload):
        event = stored_event(
            "customer.subscription.created", subscription_payload(customer="cus_stranger")
        )

        result = dispatch_webhook(event, service)

        assert result.error_code == "RECONCILIATION_GAP"
        assert Subscription.objects.count() == 0

    def test_updated_falls_back_to_existing_row_owner(
        self, stored_event, service, subscription, subscription_payload
    ):
        """A customer id we never stored still reaches a row we already have."""
        event = stored_event(
            "customer.subscription.updated",
            subscription_payload(customer="cus_rotated", status="past_due"),
        )

        assert dispatch_webhook(event, service).success is True

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.PAST_DUE

    def test_updated_with_scheduled_cancel_records_end(
        self, stored_event, service, subscription, subscription_payload
    ):
        cancel_at = 1768867200  # 2026-01-20
        event = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=True, cancel_at=cancel_at),
            created=EVENT_TIME,
        )

        dispatch_webhook(event, service)

        subscription.refresh_from_db()
        assert subscription.cancel_at_period_end is True
        assert subscription.end_date == utc(cancel_at)
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_updated_cancel_without_cancel_at_uses_period_end(
        self, stored_event, service, subscription, subscription_payload
    ):
        event = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=True),
        )

        dispatch_webhook(event, service)

        subscription.refresh_from_db()
        assert subscription.end_date == utc(1769904000)

    def test_reactivation_clears_scheduled_end(
        self, stored_event, service, subscription, subscription_payload
    ):
        """Withdrawing a scheduled cancellation drops the recorded end date."""
        cancel_at = 1768867200  # 2026-01-20
        scheduled = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=True, cancel_at=cancel_at),
            id="evt_scheduled",
            created=EVENT_TIME,
        )
        reactivated = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=False),
            id="evt_reactivated",
            created=EVENT_TIME + 60,
        )

        dispatch_webhook(scheduled, service)
        subscription.refresh_from_db()
        assert subscription.end_date == utc(cancel_at)

        result = dispatch_webhook(reactivated, service)

        subscription.refresh_from_db()
        assert result.success is True
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancel_at_period_end is False
        assert subscription.end_date is None
        assert subscription.last_event_at == utc(EVENT_TIME + 60)

    def test_stale_reactivation_keeps_scheduled_end(
        self, stored_event, service, subscription, subscription_payload
    ):
        cancel_at = 1768867200
        scheduled = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=True, cancel_at=cancel_at),
            id="evt_scheduled",
            created=EVENT_TIME,
        )
        older = stored_event(
            "customer.subscription.updated",
            subscription_payload(cancel_at_period_end=False),
            id="evt_older",
            created=EVENT_TIME - 60,
        )

        dispatch_webhook(scheduled, service)
        dispatch_webhook(older, service)

        subscription.refresh_from_db()
        assert subscription.cancel_at_period_end is True
        assert subscription.end_date == utc(cancel_at)

    def test_out_of_order_update_is_ignored(
        self, stored_event, service, subscription, subscription_payload
    ):
        """An older event arriving after a newer one does not overwrite it."""
        newer = stored_event(
            "customer.subscription.updated",
            subscription_payload(status="past_due"),
            id="evt_newer",
            created=EVENT_TIME,
        )
        older = stored_event(
            "customer.subscription.updated",
            subscription_payload(status="active"),
            id="evt_older",
            created=EVENT_TIME - 60,
        )

        dispatch_webhook(newer, service)
        dispatch_webhook(older, service)

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.PAST_DUE


@pytest.mark.django_db
class TestSubscriptionDeleted:
    """Tests for customer.subscription.deleted."""

    def test_without_scheduled_cancel_is_audit_only(
        self, stored_event, service, subscription, subscription_payload
    ):
        event = stored_event(
            "customer.subscription.deleted", subscription_payload(status="canceled")
        )

        result = dispatch_webhook(event, service)

        assert result.success is True
        assert result.data is None
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_scheduled_cancel_marks_canceled(
        self, stored_event, service, subscription, subscription_payload
    ):
        event = stored_event(
            "customer.subscription.deleted",
            subscription_payload(status="canceled", cancel_at_period_end=True),
        )

        assert dispatch_webhook(event, service).success is True

        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.end_date == utc(1769904000)

    def test_unknown_subscription_is_a_gap(self, stored_event, service, db, subscription_payload):
        event = stored_event(
            "customer.subscription.deleted",
            subscription_payload(id="sub_ghost", status="canceled", cancel_at_period_end=True),
        )

        assert dispatch_webhook(event, service).error_code == "RECONCILIATION_GAP"


# =============================================================================
# Invoice Events
# =============================================================================


@pytest.mark.django_db
class TestInvoicePaymentSucceeded:
    """Tests for invoice.payment_succeeded."""

    @pytest.fixture(autouse=True)
    def renewed_subscription(self, mock_stripe, subscription_payload):
        mock_stripe.retrieve_subscription.return_value = SubscriptionSnapshot.from_stripe(
            subscription_payload(current_period_end=1772323200)  # 2026-03-01
        )

    def test_refreshes_subscription_and_records_payment(
        self, stored_event, service, mock_stripe, subscription, invoice_payload
    ):
        subscription.apply_patch(SubscriptionPatch(status=SubscriptionStatus.PAST_DUE))
        event = stored_event("invoice.payment_succeeded", invoice_payload())

        result = dispatch_webhook(event, service)

        assert result.success is True
        mock_stripe.retrieve_subscription.assert_called_once_with("sub_test123")
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.next_billing_date == utc(1772323200)

        payment = PaymentHistory.objects.get(stripe_invoice_id="in_test123")
        assert payment.subscription == subscription
        assert payment.user == subscription.user
        assert payment.amount_cents == 999

    def test_redelivery_records_payment_once(
        self, stored_event, service, subscription, invoice_payload
    ):
        dispatch_webhook(stored_event("invoice.payment_succeeded", invoice_payload(), id="evt_a"), service)
        dispatch_webhook(stored_event("invoice.payment_succeeded", invoice_payload(), id="evt_b"), service)

        assert PaymentHistory.objects.count() == 1

    def test_reads_subscription_from_parent_details(
        self, stored_event, service, mock_stripe, subscription
    ):
        invoice = {
            "id": "in_new_layout",
            "amount_paid": 1999,
            "currency": "usd",
            "status": "paid",
            "parent": {"subscription_details": {"subscription": "sub_test123"}},
        }

        assert dispatch_webhook(stored_event("invoice.payment_succeeded", invoice), service).success

        mock_stripe.retrieve_subscription.assert_called_once_with("sub_test123")

    def test_invoice_without_subscription(
        self, stored_event, service, mock_stripe, db, invoice_payload
    ):
        event = stored_event("invoice.payment_succeeded", invoice_payload(subscription=None))

        result = dispatch_webhook(event, service)

        assert result.success is True
        mock_stripe.retrieve_subscription.assert_not_called()

    def test_unknown_subscription_is_a_gap_without_stripe_call(
        self, stored_event, service, mock_stripe, db, invoice_payload
    ):
        """An invoice never creates a subscription."""
        event = stored_event("invoice.payment_succeeded", invoice_payload(subscription="sub_ghost"))

        result = dispatch_webhook(event, service)

        assert result.error_code == "RECONCILIATION_GAP"
        mock_stripe.retrieve_subscription.assert_not_called()
        assert Subscription.objects.count() == 0
        assert PaymentHistory.objects.count() == 0


@pytest.mark.django_db
class TestAuditOnlyEvents:
    @pytest.mark.parametrize(
        ("event_type", "data_object"),
        [
            ("invoice.payment_failed", {"id": "in_1", "subscription": "sub_test123"}),
            ("payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent"}),
            ("payment_method.attached", {"id": "pm_1", "object": "payment_method"}),
        ],
    )
    def test_no_state_change(
        self, stored_event, service, mock_stripe, subscription, event_type, data_object
    ):
        before = Subscription.objects.get(pk=subscription.pk).updated_at

        result = dispatch_webhook(stored_event(event_type, data_object), service)

        assert result.success is True
        assert result.data is None
        assert Subscription.objects.get(pk=subscription.pk).updated_at == before
        mock_stripe.retrieve_subscription.assert_not_called()

