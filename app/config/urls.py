"""
URL configuration for the billing backend.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint (for load balancers, Docker)
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/auth/token/                 - Obtain JWT pair (simplejwt)
    /api/v1/auth/token/refresh/         - Refresh JWT access token
    /api/v1/billing/                    - Billing endpoints
        subscriptions/                  - List the caller's subscriptions
        subscription/                   - Create or switch a subscription (POST)
        subscriptions/{id}/cancel/      - Cancel a subscription (POST)
        check-session/                  - Confirm a hosted checkout session (POST)
        checkouts/                      - List the caller's checkouts
        webhook/                        - Stripe webhook endpoint (POST)
    /api/                               - Same billing routes without the version
                                          prefix; Stripe posts to /api/webhook

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from billing.webhooks.views import stripe_webhook
from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
    # Unversioned webhook URL registered in the Stripe dashboard
    path("api/webhook", stripe_webhook, name="stripe_webhook_legacy"),
    path("api/", include(("billing.urls", "billing"), namespace="billing_legacy")),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin Portal"
admin.site.index_title = "Subscriptions and webhooks"
