"""
DRF serializers for the billing app.

Serializers:
    SubscriptionSerializer: Subscription responses
    CheckoutSerializer: Checkout responses
    CreateSubscriptionSerializer: {"plan": <plan key>}
    CancelSubscriptionSerializer: {"at_period_end": bool}
    CheckSessionSerializer: {"session_id": "cs_xxx"}
    SubscriptionRequestResultSerializer: create-or-switch response (schema only)
"""

from __future__ import annotations

from rest_framework import serializers

from billing.models import Checkout, Subscription
from billing.plans import PLAN_KEYS


class SubscriptionSerializer(serializers.ModelSerializer):
    """Read-only serializer for Subscription."""

    is_current = serializers.BooleanField(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "stripe_subscription_id",
            "stripe_price_id",
            "plan",
            "status",
            "start_date",
            "end_date",
            "next_billing_date",
            "cancel_at_period_end",
            "is_current",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.ModelSerializer):
    """Read-only serializer for Checkout. Raw session metadata is not exposed."""

    class Meta:
        model = Checkout
        fields = [
            "id",
            "plan",
            "plan_id",
            "checkout_session_id",
            "kind",
            "status",
            "failure_reason",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields


class CreateSubscriptionSerializer(serializers.Serializer):
    plan = serializers.ChoiceField(
        choices=PLAN_KEYS,
        error_messages={"invalid_choice": "Invalid plan type."},
        help_text="Plan key, e.g. 'basic_monthly'",
    )


class CancelSubscriptionSerializer(serializers.Serializer):
    at_period_end = serializers.BooleanField(
        default=True,
        help_text="Cancel at the end of the current period (default) or immediately",
    )


class CheckSessionSerializer(serializers.Serializer):
    session_id = serializers.CharField(
        max_length=255,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )


class SubscriptionRequestResultSerializer(serializers.Serializer):
    """
    Response of POST subscription/.

    mode="checkout" carries url and session_id; mode="subscription"
    carries message and subscription_id.
    """

    mode = serializers.ChoiceField(choices=["checkout", "subscription"])
    is_switch = serializers.BooleanField()
    url = serializers.URLField(required=False)
    session_id = serializers.CharField(required=False)
    message = serializers.CharField(required=False)
    subscription_id = serializers.CharField(required=False)
