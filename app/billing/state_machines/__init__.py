"""
State enums for billing models.
"""

from billing.state_machines.states import (
    CheckoutKind,
    CheckoutStatus,
    SubscriptionStatus,
    WebhookEventStatus,
)

__all__ = [
    "CheckoutKind",
    "CheckoutStatus",
    "SubscriptionStatus",
    "WebhookEventStatus",
]
