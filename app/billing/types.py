"""
Data types for billing operations.

Types:
    SubscriptionPatch: The complete set of locally mutable Subscription fields
    SubscriptionRequestResult: Outcome of create-or-switch

Usage:
    from billing.types import SubscriptionPatch

    patch = SubscriptionPatch(status="canceled", end_date=cancel_at)
    Subscription.objects.apply_patch("sub_123", patch, event_at=event_time)
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime

    from billing.adapters.stripe_adapter import SubscriptionSnapshot


class _Unset:
    """Marker for patch fields that must not be written."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class SubscriptionPatch:
    """
    Typed partial update of a Subscription row.

    Only the fields listed here can change after creation. A field left as
    UNSET is not written; ``None`` is a real value (clears a nullable date).

    Attributes:
        status: Stripe subscription status
        plan: Derived display plan (see billing.plans)
        stripe_price_id: Price the subscription is billed on
        next_billing_date: End of the current period
        end_date: When the subscription ends or ended
        cancel_at_period_end: Whether cancellation is scheduled
    """

    status: str = UNSET
    plan: str = UNSET
    stripe_price_id: str = UNSET
    next_billing_date: datetime | None = UNSET
    end_date: datetime | None = UNSET
    cancel_at_period_end: bool = UNSET

    def changes(self) -> dict[str, Any]:
        """Return the fields to write, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    @classmethod
    def from_snapshot(
        cls, snapshot: SubscriptionSnapshot, plan: str | None = None
    ) -> SubscriptionPatch:
        """
        Build the reconciliation patch for a Stripe subscription.

        Status, next billing date and cancellation flag always follow Stripe.
        The price follows Stripe when the payload carries one.
        """
        return cls(
            status=snapshot.status,
            plan=plan if plan is not None else UNSET,
            stripe_price_id=snapshot.price_id or UNSET,
            next_billing_date=snapshot.current_period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        )


@dataclass
class SubscriptionRequestResult:
    """
    Result of SubscriptionService.create_or_switch_subscription.

    Attributes:
        mode: "checkout" (redirect to checkout_url) or "subscription"
            (created directly against a saved card)
        price_id: Stripe price the request resolved to
        is_switch: Whether other active subscriptions were scheduled to end
        checkout_url: Hosted checkout page (mode="checkout")
        checkout_session_id: Stripe checkout session id (mode="checkout")
        stripe_subscription_id: New subscription id (mode="subscription")
        message: Human-readable confirmation (mode="subscription")
    """

    CHECKOUT = "checkout"
    SUBSCRIPTION = "subscription"

    mode: str
    price_id: str
    is_switch: bool = False
    checkout_url: str | None = None
    checkout_session_id: str | None = None
    stripe_subscription_id: str | None = None
    message: str | None = None

    def to_response(self) -> dict[str, Any]:
        """API payload: the redirect URL or the confirmation message."""
        payload: dict[str, Any] = {"mode": self.mode, "is_switch": self.is_switch}
        if self.mode == self.CHECKOUT:
            payload["url"] = self.checkout_url
            payload["session_id"] = self.checkout_session_id
        else:
            payload["message"] = self.message
            payload["subscription_id"] = self.stripe_subscription_id
        return payload
