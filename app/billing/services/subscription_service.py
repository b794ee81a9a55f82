"""
Subscription service for the create-or-switch and cancel use cases.

This module provides the SubscriptionService class which orchestrates
Stripe calls and local bookkeeping for subscriptions:

1. Plan resolution and Stripe customer resolution
2. Plan switching (other active subscriptions end at period end)
3. Direct subscription against a saved card, or a hosted checkout session
4. Cancellation, deferred or immediate
5. Checkout session reconciliation (shared with the webhook handler)

The flows are best-effort sequential: Stripe calls are not wrapped in a
database transaction, and a failure part way through leaves Stripe ahead
of local state until the next webhook reconciles it.

Usage:
    from billing.services import SubscriptionService

    service = SubscriptionService.from_settings()
    result = service.create_or_switch_subscription(user, "basic_monthly")

    if result.mode == result.CHECKOUT:
        redirect(result.checkout_url)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from billing.adapters import StripeAdapter
from billing.exceptions import (
    AlreadySubscribedError,
    StripeError,
    SubscriptionNotFoundError,
)
from billing.models import Checkout, Subscription
from billing.plans import resolve_display_plan, resolve_price_id
from billing.state_machines import CheckoutKind
from billing.types import SubscriptionPatch, SubscriptionRequestResult
from core.exceptions import NotFoundError, PermissionDeniedError
from core.services import BaseService

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from django.db.models import QuerySet

    from authentication.models import User
    from billing.adapters import (
        CheckoutSessionResult,
        PaymentMethodResult,
        SubscriptionSnapshot,
    )


# =============================================================================
# Payment Method Policy
# =============================================================================


def select_default_payment_method(
    methods: Sequence[PaymentMethodResult],
) -> PaymentMethodResult | None:
    """
    Pick the card a direct subscription is charged to.

    Policy: the most recently attached card (largest ``created``). On a tie
    the card Stripe listed first wins. Cards without a creation time rank
    last. The customer's invoice_settings.default_payment_method is not
    consulted.

    Returns:
        The selected card, or None when the customer has no cards
    """
    selected = None
    for method in methods:
        if method.type != "card":
            continue
        if selected is None:
            selected = method
        elif method.created is not None and (
            selected.created is None or method.created > selected.created
        ):
            selected = method
    return selected


# =============================================================================
# Subscription Service
# =============================================================================


class SubscriptionService(BaseService):
    """
    Orchestrates subscription purchase, switching and cancellation.

    The Stripe adapter is injected; tests pass a MagicMock(spec=StripeAdapter).

    Flow (create_or_switch_subscription):
        1. Resolve plan key to price id (InvalidPlanError if unknown)
        2. Resolve or create the Stripe customer, persist its id on the user
        3. List active subscriptions:
           - same price -> AlreadySubscribedError
           - other prices -> each set to cancel at period end (a switch)
        4. Saved card -> create subscription now, upsert local row,
           bookkeeping Checkout keyed by the subscription id
           No card -> hosted checkout session, Checkout keyed by session id
    """

    def __init__(self, stripe: StripeAdapter):
        self.stripe = stripe

    @classmethod
    def from_settings(cls) -> SubscriptionService:
        return cls(stripe=StripeAdapter.from_settings())

    # =========================================================================
    # Create or Switch
    # =========================================================================

    def create_or_switch_subscription(
        self, user: User, plan_key: str
    ) -> SubscriptionRequestResult:
        """
        Subscribe a user to a plan, switching away from any other active plan.

        Args:
            user: Subscribing user
            plan_key: One of billing.plans.PLAN_KEYS

        Returns:
            SubscriptionRequestResult with either a checkout URL or the new
            subscription id

        Raises:
            InvalidPlanError: Unknown plan key
            AlreadySubscribedError: An active subscription is on this price
            StripeError: Any Stripe failure, propagated unchanged
        """
        logger = self.get_logger()
        price_id = resolve_price_id(plan_key)
        customer_id = self.resolve_customer(user)

        active = self.stripe.list_active_subscriptions(customer_id)
        if any(subscription.price_id == price_id for subscription in active):
            logger.info(
                "Requested plan already active",
                extra={"user_id": user.pk, "plan": plan_key, "price_id": price_id},
            )
            raise AlreadySubscribedError(details={"plan": plan_key})

        is_switch = False
        for subscription in active:
            self.stripe.set_cancel_at_period_end(subscription.id, True)
            is_switch = True
            logger.info(
                "Scheduled previous subscription to end at period end",
                extra={"user_id": user.pk, "stripe_subscription_id": subscription.id},
            )

        card = select_default_payment_method(
            self.stripe.list_card_payment_methods(customer_id)
        )

        if card is not None:
            return self._subscribe_with_card(
                user, plan_key, price_id, customer_id, card, is_switch
            )
        return self._start_checkout(user, plan_key, price_id, customer_id, is_switch)

    def resolve_customer(self, user: User) -> str:
        """
        Return the user's Stripe customer id, creating the customer if needed.

        Order: stored id (unless Stripe reports it deleted or unknown), then
        a lookup by email, then a new customer. The result is saved on the
        user when it differs from the stored value.
        """
        customer = None

        if user.stripe_customer_id:
            try:
                customer = self.stripe.retrieve_customer(user.stripe_customer_id)
            except StripeError as e:
                if e.stripe_code != "resource_missing":
                    raise
                customer = None
            if customer is not None and customer.deleted:
                self.get_logger().warning(
                    "Stored Stripe customer was deleted, resolving again",
                    extra={"user_id": user.pk, "customer_id": user.stripe_customer_id},
                )
                customer = None

        if customer is None:
            customer = self.stripe.find_customer_by_email(user.email)

        if customer is None:
            customer = self.stripe.create_customer(
                email=user.email,
                metadata={"user_id": str(user.pk)},
            )
            self.get_logger().info(
                "Created Stripe customer",
                extra={"user_id": user.pk, "customer_id": customer.id},
            )

        user.set_stripe_customer_id(customer.id)
        return customer.id

    def _subscribe_with_card(
        self,
        user: User,
        plan_key: str,
        price_id: str,
        customer_id: str,
        card: PaymentMethodResult,
        is_switch: bool,
    ) -> SubscriptionRequestResult:
        snapshot = self.stripe.create_subscription(
            customer_id=customer_id,
            price_id=price_id,
            payment_method_id=card.id,
            metadata={"user_id": str(user.pk), "plan": plan_key},
        )
        plan = resolve_display_plan(self.stripe, snapshot)
        Subscription.objects.upsert_from_stripe(user, snapshot, plan)

        Checkout.objects.create(
            user=user,
            plan=plan_key,
            plan_id=price_id,
            checkout_session_id=snapshot.id,
            kind=CheckoutKind.DIRECT_SUBSCRIPTION,
        )

        self.get_logger().info(
            "Subscription created against saved card",
            extra={
                "user_id": user.pk,
                "stripe_subscription_id": snapshot.id,
                "plan": plan,
                "is_switch": is_switch,
            },
        )
        return SubscriptionRequestResult(
            mode=SubscriptionRequestResult.SUBSCRIPTION,
            price_id=price_id,
            is_switch=is_switch,
            stripe_subscription_id=snapshot.id,
            message=f"Subscription created: {snapshot.id}",
        )

    def _start_checkout(
        self,
        user: User,
        plan_key: str,
        price_id: str,
        customer_id: str,
        is_switch: bool,
    ) -> SubscriptionRequestResult:
        frontend_url = settings.BILLING_FRONTEND_URL.rstrip("/")
        session = self.stripe.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=(
                f"{frontend_url}/pricing?session_id={{CHECKOUT_SESSION_ID}}&id={user.pk}"
            ),
            cancel_url=f"{frontend_url}/pricing",
            client_reference_id=str(user.pk),
            metadata={"user_id": str(user.pk), "plan": plan_key},
        )
        if not session.url:
            raise StripeError(
                "Stripe did not return a checkout URL",
                details={"session_id": session.id},
            )

        Checkout.objects.create(
            user=user,
            plan=plan_key,
            plan_id=price_id,
            checkout_session_id=session.id,
            kind=CheckoutKind.CHECKOUT_SESSION,
        )

        self.get_logger().info(
            "Checkout session created",
            extra={
                "user_id": user.pk,
                "session_id": session.id,
                "plan": plan_key,
                "is_switch": is_switch,
            },
        )
        return SubscriptionRequestResult(
            mode=SubscriptionRequestResult.CHECKOUT,
            price_id=price_id,
            is_switch=is_switch,
            checkout_url=session.url,
            checkout_session_id=session.id,
        )

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_subscription(
        self,
        stripe_subscription_id: str,
        cancel_at_period_end: bool = True,
    ) -> SubscriptionSnapshot:
        """
        Cancel a subscription on Stripe and mirror the result locally.

        Args:
            stripe_subscription_id: Stripe Subscription ID (sub_xxx)
            cancel_at_period_end: Defer to the end of the current period
                (default) or cancel immediately

        Returns:
            Stripe's subscription after the change. A missing local row is
            logged, not raised: the Stripe change has already happened.
        """
        if cancel_at_period_end:
            snapshot = self.stripe.set_cancel_at_period_end(stripe_subscription_id, True)
            end_date = snapshot.current_period_end
        else:
            snapshot = self.stripe.cancel_subscription_now(stripe_subscription_id)
            end_date = timezone.now()

        self.record_cancellation(snapshot, end_date)
        return snapshot

    def record_cancellation(
        self,
        snapshot: SubscriptionSnapshot,
        end_date: datetime | None,
        event_at: datetime | None = None,
    ) -> Subscription | None:
        """Write Stripe's status and the end date onto the local row."""
        subscription = Subscription.objects.apply_patch(
            snapshot.id,
            SubscriptionPatch(
                status=snapshot.status,
                end_date=end_date,
                cancel_at_period_end=snapshot.cancel_at_period_end,
            ),
            event_at=event_at,
        )
        if subscription is None:
            self.get_logger().warning(
                "No local subscription to record cancellation on",
                extra={"stripe_subscription_id": snapshot.id},
            )
        else:
            self.get_logger().info(
                "Subscription cancellation recorded",
                extra={
                    "stripe_subscription_id": snapshot.id,
                    "status": snapshot.status,
                    "end_date": end_date.isoformat() if end_date else None,
                },
            )
        return subscription

    # =========================================================================
    # Queries
    # =========================================================================

    def list_subscriptions(self, user: User) -> QuerySet[Subscription]:
        """All of the user's subscriptions, newest first."""
        return Subscription.objects.for_user(user).order_by("-created_at")

    def list_current_subscriptions(self, user: User) -> QuerySet[Subscription]:
        """The user's subscriptions that have not ended."""
        return Subscription.objects.current_for(user).order_by("-created_at")

    def get_owned_subscription(
        self, user: User, stripe_subscription_id: str
    ) -> Subscription:
        """
        Raises:
            SubscriptionNotFoundError: No subscription with this id belongs to the
                user
        """
        subscription = Subscription.objects.filter(
            user=user, stripe_subscription_id=stripe_subscription_id
        ).first()
        if subscription is None:
            raise SubscriptionNotFoundError(
                "Subscription not found.",
                details={"subscription_id": stripe_subscription_id},
            )
        return subscription

    # =========================================================================
    # Checkout Reconciliation
    # =========================================================================

    def confirm_checkout_session(self, user: User, session_id: str) -> Subscription | None:
        """
        Reconcile a checkout session on the buyer's return from Stripe.

        Returns:
            The local subscription, or None while the session is still open

        Raises:
            NotFoundError: No checkout with this session id
            PermissionDeniedError: The checkout belongs to another user
        """
        checkout = Checkout.objects.filter(checkout_session_id=session_id).first()
        if checkout is None:
            raise NotFoundError(
                "Checkout session not found.",
                details={"session_id": session_id},
            )
        if checkout.user_id != user.pk:
            raise PermissionDeniedError(
                "Checkout session belongs to another user.",
                details={"session_id": session_id},
            )

        session = self.stripe.retrieve_checkout_session(session_id)
        return self.reconcile_checkout_session(checkout, session)

    def reconcile_checkout_session(
        self,
        checkout: Checkout,
        session: CheckoutSessionResult,
        event_at: datetime | None = None,
        assume_complete: bool = False,
    ) -> Subscription | None:
        """
        Bring local state in line with a completed checkout session.

        Upserts the subscription the session created (if any) and completes
        the Checkout. Safe to repeat: a completed Checkout stays as it is
        and the subscription row is updated, never duplicated.

        Args:
            checkout: Local Checkout for the session
            session: Stripe checkout session
            event_at: Stripe timestamp when called from a webhook event
            assume_complete: Skip the session status check. Set when the
                event type already says the session completed, since older
                API versions omit status from the payload

        Returns:
            The local subscription, or None when the session is not
            complete or carries no subscription
        """
        if not assume_complete and session.status != "complete":
            self.get_logger().info(
                "Checkout session not complete yet",
                extra={"session_id": session.id, "status": session.status},
            )
            return None

        user = checkout.user
        if session.customer_id and not user.stripe_customer_id:
            user.set_stripe_customer_id(session.customer_id)

        subscription = None
        if session.subscription_id:
            snapshot = self.stripe.retrieve_subscription(session.subscription_id)
            plan = resolve_display_plan(self.stripe, snapshot)
            subscription, _ = Subscription.objects.upsert_from_stripe(
                user, snapshot, plan, event_at=event_at
            )

        if checkout.is_pending:
            checkout.complete(session.raw_response)
            checkout.save()
            self.get_logger().info(
                "Checkout completed",
                extra={"checkout_id": str(checkout.id), "session_id": session.id},
            )

        return subscription
