"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature (400 on failure, nothing stored)
2. Hands the event to WebhookProcessor, which stores and dispatches it
3. Answers 200 whatever the processing outcome, so Stripe does not retry
   events that failed for a reason a retry cannot fix

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhook/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import StripeInvalidRequestError
from billing.webhooks.processor import WebhookProcessor

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive a Stripe webhook delivery.

    Returns:
        JsonResponse with status:
        - 200: Event accepted (new, duplicate, ignored or failed in a handler)
        - 400: Missing or invalid signature, or an event without id/type

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    stripe_adapter = StripeAdapter.from_settings()
    signature = request.headers.get("Stripe-Signature", "")

    try:
        event_data = stripe_adapter.construct_event(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return JsonResponse(e.to_dict(), status=400)

    if not event_data.get("id") or not event_data.get("type"):
        logger.warning("Webhook missing required fields")
        return JsonResponse({"error": "Invalid event"}, status=400)

    WebhookProcessor(stripe_adapter).process(event_data)
    return JsonResponse({"received": True}, status=200)
