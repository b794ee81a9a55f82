"""
Pytest fixtures for webhook tests.

Usage:
    def test_expired(stored_event, checkout_session_payload, service):
        event = stored_event("checkout.session.expired", checkout_session_payload(status="expired"))
        result = dispatch_webhook(event, service)
"""

from unittest.mock import patch

import pytest

from billing.tests.factories import WebhookEventFactory
from billing.webhooks.processor import WebhookProcessor


@pytest.fixture
def stored_event(db, stripe_event):
    """Create a stored WebhookEvent around a Stripe data object."""

    def _create(event_type: str, data_object: dict, **envelope) -> object:
        payload = stripe_event(event_type, data_object, **envelope)
        return WebhookEventFactory(
            stripe_event_id=payload["id"],
            event_type=event_type,
            payload=payload,
        )

    return _create


@pytest.fixture
def processor(mock_stripe):
    return WebhookProcessor(mock_stripe)


@pytest.fixture
def mock_construct_event():
    """Patch signature verification; the return value is the parsed event."""
    with patch("stripe.Webhook") as mock:
        yield mock.construct_event
