"""
External service adapters for billing.

Adapters:
    StripeAdapter: Stripe API operations (customers, subscriptions,
        checkout sessions, catalogue lookups, webhook verification)
"""

from billing.adapters.stripe_adapter import (
    CheckoutSessionResult,
    CustomerResult,
    PaymentMethodResult,
    PriceResult,
    ProductResult,
    StripeAdapter,
    SubscriptionSnapshot,
    as_dict,
    expandable_id,
)

__all__ = [
    "CheckoutSessionResult",
    "CustomerResult",
    "PaymentMethodResult",
    "PriceResult",
    "ProductResult",
    "StripeAdapter",
    "SubscriptionSnapshot",
    "as_dict",
    "expandable_id",
]
