"""
DRF views for the billing app.

Endpoints (mounted at /api/v1/billing/ and at the legacy /api/ prefix):
    GET  subscriptions/                    - List the user's subscriptions
    POST subscription/                     - Create or switch subscription
    POST subscriptions/<id>/cancel/        - Cancel a subscription
    POST check-session/                    - Confirm a completed checkout
    GET  checkouts/                        - List the user's checkouts
    POST webhook/                          - Stripe webhook (billing.webhooks.views)

Security:
    - All endpoints require a JWT except the webhook
    - The webhook verifies the Stripe signature

Errors raised by the service layer are BaseApplicationError subclasses and
are answered with ``error.to_dict()`` and ``error.http_status``.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.serializers import (
    CancelSubscriptionSerializer,
    CheckoutSerializer,
    CheckSessionSerializer,
    CreateSubscriptionSerializer,
    SubscriptionRequestResultSerializer,
    SubscriptionSerializer,
)
from billing.services import SubscriptionService
from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def get_subscription_service() -> SubscriptionService:
    """Build the service for a request."""
    return SubscriptionService.from_settings()


def error_response(error: BaseApplicationError) -> Response:
    return Response(error.to_dict(), status=error.http_status)


class SubscriptionListView(APIView):
    """
    List the current user's subscriptions.

    GET subscriptions/
    GET subscriptions/?current=1   - only subscriptions that have not ended

    Response:
        200 OK: Subscriptions, newest first
        404 Not Found: The user has no subscriptions
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_subscriptions",
        summary="List subscriptions",
        parameters=[
            OpenApiParameter(
                "current",
                bool,
                description="Only subscriptions whose end date is unset or in the future",
            ),
        ],
        responses={
            200: SubscriptionSerializer(many=True),
            404: OpenApiResponse(description="No subscriptions found"),
        },
        tags=["Billing"],
    )
    def get(self, request):
        service = get_subscription_service()
        if request.query_params.get("current") in ("1", "true", "True"):
            subscriptions = list(service.list_current_subscriptions(request.user))
        else:
            subscriptions = list(service.list_subscriptions(request.user))
        if not subscriptions:
            return Response(
                {"error": "No subscriptions found.", "error_code": "NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(SubscriptionSerializer(subscriptions, many=True).data)


class CreateSubscriptionView(APIView):
    """
    Create a subscription or switch plans.

    POST subscription/

    Request:
        {"plan": "basic_monthly"}

    Response:
        200 OK: {"mode": "checkout", "url": ..., "session_id": ...}
                or {"mode": "subscription", "message": ..., "subscription_id": ...}
        400 Bad Request: Invalid plan, or the plan is already active
        402 Payment Required: Saved card declined
        502 Bad Gateway: Stripe unavailable
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_or_switch_subscription",
        summary="Create or switch subscription",
        request=CreateSubscriptionSerializer,
        responses={
            200: SubscriptionRequestResultSerializer,
            400: OpenApiResponse(description="Invalid plan or already subscribed"),
            402: OpenApiResponse(description="Card declined"),
            502: OpenApiResponse(description="Stripe unavailable"),
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = CreateSubscriptionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = get_subscription_service().create_or_switch_subscription(
                request.user, serializer.validated_data["plan"]
            )
        except BaseApplicationError as e:
            logger.info(
                "Subscription request rejected",
                extra={"user_id": request.user.pk, "error_code": e.error_code},
            )
            return error_response(e)

        return Response(result.to_response(), status=status.HTTP_200_OK)


class CancelSubscriptionView(APIView):
    """
    Cancel one of the user's subscriptions.

    POST subscriptions/<stripe_subscription_id>/cancel/

    Request:
        {"at_period_end": true}

    Response:
        200 OK: The updated subscription
        404 Not Found: No such subscription for this user
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_subscription",
        summary="Cancel subscription",
        request=CancelSubscriptionSerializer,
        responses={
            200: SubscriptionSerializer,
            404: OpenApiResponse(description="Subscription not found"),
        },
        tags=["Billing"],
    )
    def post(self, request, stripe_subscription_id):
        serializer = CancelSubscriptionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        service = get_subscription_service()
        try:
            subscription = service.get_owned_subscription(
                request.user, stripe_subscription_id
            )
            service.cancel_subscription(
                stripe_subscription_id,
                cancel_at_period_end=serializer.validated_data["at_period_end"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        subscription.refresh_from_db()
        return Response(SubscriptionSerializer(subscription).data)


class CheckSessionView(APIView):
    """
    Confirm a checkout session after the buyer returns from Stripe.

    POST check-session/

    Request:
        {"session_id": "cs_xxx"}

    Response:
        200 OK: {"completed": true, "subscription": {...}}
                or {"completed": false, "subscription": null} while open
        403 Forbidden: The session belongs to another user
        404 Not Found: Unknown session
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="check_checkout_session",
        summary="Confirm checkout session",
        request=CheckSessionSerializer,
        responses={
            200: OpenApiResponse(description="Reconciliation result"),
            403: OpenApiResponse(description="Session belongs to another user"),
            404: OpenApiResponse(description="Checkout session not found"),
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = CheckSessionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            subscription = get_subscription_service().confirm_checkout_session(
                request.user, serializer.validated_data["session_id"]
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            {
                "completed": subscription is not None,
                "subscription": (
                    SubscriptionSerializer(subscription).data if subscription else None
                ),
            }
        )


class CheckoutListView(APIView):
    """
    List the current user's checkout attempts.

    GET checkouts/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_checkouts",
        summary="List checkouts",
        responses={200: CheckoutSerializer(many=True)},
        tags=["Billing"],
    )
    def get(self, request):
        checkouts = request.user.checkouts.order_by("-created_at")
        return Response(CheckoutSerializer(checkouts, many=True).data)
