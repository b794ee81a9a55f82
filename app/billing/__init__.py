"""
Billing app for Stripe-backed recurring subscriptions.

This app handles:
- Creating or switching a user's subscription plan
- Cancelling subscriptions (at period end or immediately)
- Tracking hosted checkout attempts
- Receiving Stripe webhooks and reconciling local state with Stripe

Related apps:
    - authentication: User model, which stores the Stripe customer id
    - core: base models, exceptions and ServiceResult

Usage:
    from billing.services import SubscriptionService

    service = SubscriptionService.from_settings()
    result = service.create_or_switch_subscription(user, "basic_monthly")
"""
