"""
Pytest fixtures for Stripe adapter tests.

This module provides fixtures for testing the Stripe adapter, including
mock Stripe API responses, error conditions, and patched SDK resources.

Sections:
    - Adapter Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
    - Mock Stripe Client Fixtures
"""

from unittest.mock import patch

import pytest
import stripe

from billing.adapters import StripeAdapter
from billing.adapters.tests.mocks import MockStripeList, MockStripeObject


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture
def adapter():
    """Adapter with test credentials."""
    return StripeAdapter(api_key="sk_test_123", webhook_secret="whsec_test_123")


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@pytest.fixture
def mock_customer():
    """Create a mock Customer response."""

    def _create(
        id: str = "cus_test123",
        email: str = "buyer@example.com",
        deleted: bool | None = None,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        data = {
            "id": id,
            "object": "customer",
            "email": email,
            "metadata": metadata or {},
        }
        if deleted is not None:
            data["deleted"] = deleted
        return MockStripeObject(data)

    return _create


@pytest.fixture
def mock_payment_method():
    """Create a mock card PaymentMethod response."""

    def _create(
        id: str = "pm_test123",
        created: int = 1767225600,
        brand: str = "visa",
        last4: str = "4242",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_method",
                "type": "card",
                "created": created,
                "card": {"brand": brand, "last4": last4},
            }
        )

    return _create


@pytest.fixture
def mock_subscription(subscription_payload):
    """Create a mock Subscription response from the shared payload builder."""

    def _create(**overrides) -> MockStripeObject:
        return MockStripeObject(subscription_payload(**overrides))

    return _create


@pytest.fixture
def mock_checkout_session(checkout_session_payload):
    """Create a mock Checkout Session response."""

    def _create(**overrides) -> MockStripeObject:
        overrides.setdefault("status", "open")
        overrides.setdefault("subscription", None)
        overrides.setdefault("url", "https://checkout.stripe.com/c/pay/cs_test123")
        return MockStripeObject(checkout_session_payload(**overrides))

    return _create


@pytest.fixture
def mock_price():
    """Create a mock Price response with the product expanded."""

    def _create(
        id: str = "price_basic_monthly",
        product_id: str = "prod_basic",
        product_name: str = "Basic",
        interval: str = "month",
        unit_amount: int = 999,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "price",
                "product": {"id": product_id, "object": "product", "name": product_name},
                "recurring": {"interval": interval},
                "unit_amount": unit_amount,
                "currency": "usd",
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(
            message=message,
            param=None,
            code=code,
        )
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "No such customer: 'cus_missing'",
        param: str | None = "id",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(
            message=message,
            param=param,
            code=code,
        )

    return _create


@pytest.fixture
def rate_limit_error():
    """Create a Stripe RateLimitError."""
    return stripe.RateLimitError(
        message="Too many requests hit the API too quickly.",
    )


@pytest.fixture
def api_connection_error():
    """Create a Stripe APIConnectionError."""
    return stripe.APIConnectionError(
        message="Could not connect to Stripe.",
    )


@pytest.fixture
def api_error():
    """Create a Stripe APIError."""
    return stripe.APIError(
        message="Something went wrong on Stripe's end.",
    )


@pytest.fixture
def authentication_error():
    """Create a Stripe AuthenticationError."""
    return stripe.AuthenticationError(
        message="Invalid API Key provided.",
    )


@pytest.fixture
def signature_verification_error():
    """Create a Stripe SignatureVerificationError."""
    return stripe.SignatureVerificationError(
        message="Unable to verify webhook signature.",
        sig_header="bad_signature",
    )


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_customer(mock_customer):
    """Mock stripe.Customer API."""
    with patch("stripe.Customer") as mock:
        mock.create.return_value = mock_customer()
        mock.retrieve.return_value = mock_customer()
        mock.list.return_value = MockStripeList(items=[])
        yield mock


@pytest.fixture
def mock_stripe_payment_method(mock_payment_method):
    """Mock stripe.PaymentMethod API."""
    with patch("stripe.PaymentMethod") as mock:
        mock.list.return_value = MockStripeList(items=[mock_payment_method()])
        yield mock


@pytest.fixture
def mock_stripe_subscription(mock_subscription):
    """Mock stripe.Subscription API."""
    with patch("stripe.Subscription") as mock:
        mock.create.return_value = mock_subscription()
        mock.retrieve.return_value = mock_subscription()
        mock.modify.return_value = mock_subscription(cancel_at_period_end=True)
        mock.cancel.return_value = mock_subscription(status="canceled")
        mock.list.return_value = MockStripeList(items=[mock_subscription()])
        yield mock


@pytest.fixture
def mock_stripe_checkout_session(mock_checkout_session):
    """Mock stripe.checkout.Session API."""
    with patch("stripe.checkout.Session") as mock:
        mock.create.return_value = mock_checkout_session()
        mock.retrieve.return_value = mock_checkout_session()
        yield mock


@pytest.fixture
def mock_stripe_price(mock_price):
    """Mock stripe.Price API."""
    with patch("stripe.Price") as mock:
        mock.retrieve.return_value = mock_price()
        yield mock


@pytest.fixture
def mock_stripe_product():
    """Mock stripe.Product API."""
    with patch("stripe.Product") as mock:
        mock.retrieve.return_value = MockStripeObject(
            {"id": "prod_basic", "object": "product", "name": "Basic", "active": True}
        )
        yield mock


@pytest.fixture
def mock_stripe_webhook():
    """Mock stripe.Webhook API."""
    with patch("stripe.Webhook") as mock:
        mock.construct_event.return_value = MockStripeObject(
            {
                "id": "evt_test123",
                "type": "customer.subscription.updated",
                "created": 1767225600,
                "data": {
                    "object": {
                        "id": "sub_test123",
                        "object": "subscription",
                    }
                },
            }
        )
        yield mock
