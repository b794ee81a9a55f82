"""
Stripe event kinds handled by billing.

The set is closed: every member has exactly one registered handler
(checked at startup by handlers.assert_registry_complete), and type
strings outside it are stored and ignored, never dispatched.
"""

from django.db import models


class StripeEventType(models.TextChoices):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"
    CUSTOMER_SUBSCRIPTION_CREATED = "customer.subscription.created"
    CUSTOMER_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_METHOD_ATTACHED = "payment_method.attached"

    @classmethod
    def parse(cls, value: str | None) -> "StripeEventType | None":
        """Return the member for a type string, or None if it is not handled."""
        try:
            return cls(value)
        except ValueError:
            return None
