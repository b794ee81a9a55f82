"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main
URLconf, and are also mounted at /api/ for existing clients.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("billing/", include("billing.urls")),
    ]
"""

from django.urls import path

from billing import views
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("subscriptions/", views.SubscriptionListView.as_view(), name="subscription-list"),
    path("subscription/", views.CreateSubscriptionView.as_view(), name="subscription-create"),
    path(
        "subscriptions/<str:stripe_subscription_id>/cancel/",
        views.CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    path("check-session/", views.CheckSessionView.as_view(), name="check-session"),
    path("checkouts/", views.CheckoutListView.as_view(), name="checkout-list"),
    # Webhook endpoint
    path("webhook/", stripe_webhook, name="stripe_webhook"),
]
