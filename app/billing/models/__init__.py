"""
Billing domain models.

- Subscription: Local mirror of a Stripe subscription
- Checkout: A subscription purchase attempt
- WebhookEvent: Stripe webhook audit log and dedup gate
- PaymentHistory: Paid subscription invoices
"""

from billing.models.checkout import Checkout
from billing.models.payment_history import PaymentHistory
from billing.models.subscription import Subscription
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "Checkout",
    "PaymentHistory",
    "Subscription",
    "WebhookEvent",
]
