"""
Plan catalogue and display plan derivation.

Plan keys are the public names clients send (e.g. "basic_monthly"). Each maps
to a Stripe recurring price id configured in settings.STRIPE_PRICE_IDS.

The display plan stored on Subscription.plan is computed from the price's
billing interval and the product name, e.g. "MONTHLY-Basic". Both the
subscription service and the webhook handlers call resolve_display_plan,
so the label for a given Stripe subscription is the same whichever path
wrote it.

Usage:
    from billing.plans import resolve_price_id, resolve_display_plan

    price_id = resolve_price_id("premium_yearly")
    plan = resolve_display_plan(stripe_adapter, snapshot)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings

from billing.exceptions import InvalidPlanError, StripeError

if TYPE_CHECKING:
    from billing.adapters.stripe_adapter import StripeAdapter, SubscriptionSnapshot

logger = logging.getLogger(__name__)


PLAN_KEYS = ("basic_monthly", "basic_yearly", "premium_monthly", "premium_yearly")

UNKNOWN = "Unknown"

INTERVAL_PREFIXES = {
    "day": "DAILY",
    "week": "WEEKLY",
    "month": "MONTHLY",
    "year": "YEARLY",
}


def resolve_price_id(plan_key: str) -> str:
    """
    Map a plan key to its configured Stripe price id.

    Raises:
        InvalidPlanError: Unknown key, or the key has no price configured
    """
    if plan_key not in PLAN_KEYS:
        raise InvalidPlanError("Invalid plan type.", details={"plan": plan_key})

    price_id = settings.STRIPE_PRICE_IDS.get(plan_key)
    if not price_id:
        logger.error(
            "No Stripe price configured for plan",
            extra={"plan": plan_key},
        )
        raise InvalidPlanError(
            "Invalid plan type.",
            details={"plan": plan_key, "reason": "price not configured"},
        )
    return price_id


def derive_plan_name(product_name: str | None, interval: str | None) -> str:
    """
    Build the display plan label from a product name and billing interval.

    Examples:
        derive_plan_name("Basic", "month")  # "MONTHLY-Basic"
        derive_plan_name("Premium", "year")  # "YEARLY-Premium"
        derive_plan_name(None, "month")  # "MONTHLY-Unknown"
        derive_plan_name("Basic", None)  # "Unknown"
    """
    if not interval:
        return UNKNOWN
    prefix = INTERVAL_PREFIXES.get(interval, interval.upper())
    return f"{prefix}-{product_name or UNKNOWN}"


def resolve_display_plan(
    stripe_adapter: StripeAdapter, snapshot: SubscriptionSnapshot
) -> str:
    """
    Look up the price and product behind a subscription and derive its label.

    Lookup failures never propagate: a failed price lookup yields "Unknown",
    a failed product lookup yields "<INTERVAL>-Unknown".
    """
    interval = snapshot.interval
    product_id = snapshot.product_id
    product_name = None

    if snapshot.price_id and (not interval or not product_id):
        try:
            price = stripe_adapter.retrieve_price(snapshot.price_id)
        except StripeError as e:
            logger.warning(
                "Price lookup failed while deriving plan name",
                extra={
                    "stripe_subscription_id": snapshot.id,
                    "price_id": snapshot.price_id,
                    "error": e.message,
                },
            )
            return UNKNOWN
        interval = interval or price.interval
        product_id = product_id or price.product_id
        product_name = price.product_name

    if not interval:
        return UNKNOWN

    if product_name is None and product_id:
        try:
            product_name = stripe_adapter.retrieve_product(product_id).name
        except StripeError as e:
            logger.warning(
                "Product lookup failed while deriving plan name",
                extra={
                    "stripe_subscription_id": snapshot.id,
                    "product_id": product_id,
                    "error": e.message,
                },
            )

    return derive_plan_name(product_name, interval)
