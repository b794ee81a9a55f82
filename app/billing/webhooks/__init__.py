"""
Webhook handling for subscription events from Stripe.

Webhooks are verified, stored once per Stripe event id, and dispatched
synchronously to one handler per event kind.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhook/", stripe_webhook, name="stripe_webhook"),
    ]
"""
