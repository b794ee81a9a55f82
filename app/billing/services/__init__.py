"""
Billing services.

Services:
    SubscriptionService: Create-or-switch, cancel, and checkout reconciliation
"""

from billing.services.subscription_service import (
    SubscriptionService,
    select_default_payment_method,
)

__all__ = [
    "SubscriptionService",
    "select_default_payment_method",
]
