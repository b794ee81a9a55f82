"""
Pytest fixtures shared by all billing tests.

This module provides users, a Stripe adapter double, builders for raw
Stripe payloads (as they arrive in webhooks and API responses), and
stored model instances in common states.

Sections:
    - User Fixtures
    - Stripe Adapter Double
    - Stripe Payload Builders
    - Model Fixtures

Usage:
    def test_cancel(service, mock_stripe, subscription, subscription_payload):
        mock_stripe.set_cancel_at_period_end.return_value = SubscriptionSnapshot.from_stripe(
            subscription_payload(id=subscription.stripe_subscription_id, cancel_at_period_end=True)
        )
        service.cancel_subscription(subscription.stripe_subscription_id)
"""

from unittest.mock import MagicMock

import pytest

from authentication.tests.factories import UserFactory
from billing.adapters import ProductResult, StripeAdapter
from billing.services import SubscriptionService
from billing.tests.factories import CheckoutFactory, SubscriptionFactory

# 2026-01-01T00:00:00Z and 2026-02-01T00:00:00Z
PERIOD_START = 1767225600
PERIOD_END = 1769904000


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """A user already linked to a Stripe customer."""
    return UserFactory(email="buyer@example.com", stripe_customer_id="cus_test123")


@pytest.fixture
def new_user(db):
    """A user Stripe has never seen."""
    return UserFactory(email="fresh@example.com", stripe_customer_id=None)


@pytest.fixture
def other_user(db):
    return UserFactory(email="other@example.com", stripe_customer_id="cus_other999")


# =============================================================================
# Stripe Adapter Double
# =============================================================================


@pytest.fixture
def mock_stripe():
    """
    MagicMock constrained to the StripeAdapter interface.

    Catalogue lookups default to the "Basic" product so display plans
    resolve to "<INTERVAL>-Basic" unless a test overrides them.
    """
    adapter = MagicMock(spec=StripeAdapter)
    adapter.retrieve_product.return_value = ProductResult(id="prod_basic", name="Basic")
    adapter.list_active_subscriptions.return_value = []
    adapter.list_card_payment_methods.return_value = []
    return adapter


@pytest.fixture
def service(mock_stripe):
    return SubscriptionService(stripe=mock_stripe)


# =============================================================================
# Stripe Payload Builders
# =============================================================================


@pytest.fixture
def subscription_payload():
    """Build a Stripe Subscription object dict."""

    def _create(
        id: str = "sub_test123",
        customer: str = "cus_test123",
        status: str = "active",
        price_id: str = "price_basic_monthly",
        product: str = "prod_basic",
        interval: str = "month",
        start_date: int = PERIOD_START,
        current_period_end: int = PERIOD_END,
        cancel_at_period_end: bool = False,
        cancel_at: int | None = None,
    ) -> dict:
        return {
            "id": id,
            "object": "subscription",
            "customer": customer,
            "status": status,
            "start_date": start_date,
            "current_period_end": current_period_end,
            "cancel_at_period_end": cancel_at_period_end,
            "cancel_at": cancel_at,
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": "si_test123",
                        "price": {
                            "id": price_id,
                            "product": product,
                            "recurring": {"interval": interval},
                        },
                    }
                ],
            },
            "metadata": {},
        }

    return _create


@pytest.fixture
def checkout_session_payload():
    """Build a Stripe Checkout Session object dict."""

    def _create(
        id: str = "cs_test123",
        status: str = "complete",
        customer: str = "cus_test123",
        subscription: str | None = "sub_test123",
        url: str | None = None,
        client_reference_id: str | None = None,
    ) -> dict:
        return {
            "id": id,
            "object": "checkout.session",
            "mode": "subscription",
            "status": status,
            "customer": customer,
            "subscription": subscription,
            "url": url,
            "client_reference_id": client_reference_id,
        }

    return _create


@pytest.fixture
def invoice_payload():
    """Build a Stripe Invoice object dict."""

    def _create(
        id: str = "in_test123",
        subscription: str | None = "sub_test123",
        amount_paid: int = 999,
        currency: str = "usd",
        status: str = "paid",
    ) -> dict:
        return {
            "id": id,
            "object": "invoice",
            "subscription": subscription,
            "amount_paid": amount_paid,
            "currency": currency,
            "status": status,
        }

    return _create


@pytest.fixture
def stripe_event():
    """Build a Stripe Event envelope around a data object."""

    def _create(
        event_type: str,
        data_object: dict,
        id: str = "evt_test123",
        created: int = PERIOD_START,
    ) -> dict:
        return {
            "id": id,
            "object": "event",
            "type": event_type,
            "created": created,
            "livemode": False,
            "data": {"object": data_object},
        }

    return _create


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def subscription(db, user):
    """An active local subscription matching subscription_payload() defaults."""
    return SubscriptionFactory(
        user=user,
        stripe_subscription_id="sub_test123",
        stripe_customer_id="cus_test123",
    )


@pytest.fixture
def pending_checkout(db, user):
    """A pending hosted checkout matching checkout_session_payload() defaults."""
    return CheckoutFactory(user=user, checkout_session_id="cs_test123")
