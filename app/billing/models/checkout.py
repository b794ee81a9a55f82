"""
Checkout model for tracking subscription purchase attempts.

One row is created per create-or-switch request. For hosted checkout the
row is keyed by the Stripe checkout session id; for subscriptions created
directly against a saved card it is a bookkeeping row keyed by the
subscription id.

Usage:
    from billing.models import Checkout
    from billing.state_machines import CheckoutKind

    checkout = Checkout.objects.create(
        user=user,
        plan="basic_monthly",
        plan_id="price_xxx",
        checkout_session_id="cs_xxx",
        kind=CheckoutKind.CHECKOUT_SESSION,
    )

    # State transitions using django-fsm
    checkout.complete(session_payload)  # pending -> completed
    checkout.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.state_machines import CheckoutKind, CheckoutStatus
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from typing import Any


class Checkout(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A single checkout attempt.

    State Flow:
        PENDING -> COMPLETED (session completed, or subscription went active)
        PENDING -> ABANDONED (session expired)

    Fields:
        user: Buyer
        plan: Plan key requested, e.g. "basic_monthly"
        plan_id: Stripe Price ID the plan resolved to
        checkout_session_id: Checkout Session ID, or Subscription ID for
            direct subscriptions
        kind: Hosted session or direct subscription
        status: FSM status
        failure_reason: Why the attempt was abandoned
        completed_at: When the attempt completed
        metadata: Raw Stripe session payload once completed
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="checkouts",
        help_text="User who started the checkout",
    )

    plan = models.CharField(
        max_length=64,
        help_text="Requested plan key",
    )

    plan_id = models.CharField(
        max_length=255,
        help_text="Stripe Price ID (price_xxx)",
    )

    checkout_session_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Checkout Session ID, or Subscription ID for direct subscriptions",
    )

    kind = models.CharField(
        max_length=32,
        choices=CheckoutKind.choices,
        default=CheckoutKind.CHECKOUT_SESSION,
        help_text="How the checkout reaches Stripe",
    )

    status = FSMField(
        default=CheckoutStatus.PENDING,
        choices=CheckoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the checkout (managed by FSM)",
    )

    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why the checkout was abandoned",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the checkout completed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Checkout"
        verbose_name_plural = "Checkouts"
        indexes = [
            models.Index(fields=["user", "status"], name="billing_che_user_id_3b9c2e_idx"),
        ]

    def __str__(self) -> str:
        return f"Checkout({self.checkout_session_id}, {self.plan}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=CheckoutStatus.PENDING,
        target=CheckoutStatus.COMPLETED,
    )
    def complete(self, session: dict[str, Any] | None = None) -> None:
        """
        Mark the checkout as completed.

        Transition: PENDING -> COMPLETED

        Args:
            session: Raw Stripe session payload, kept in metadata
        """
        self.completed_at = timezone.now()
        if session is not None:
            self.set_meta("session", session, save=False)

    @transition(
        field=status,
        source=CheckoutStatus.PENDING,
        target=CheckoutStatus.ABANDONED,
    )
    def abandon(self, reason: str = "") -> None:
        """
        Mark the checkout as abandoned.

        Transition: PENDING -> ABANDONED
        """
        self.failure_reason = reason

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == CheckoutStatus.PENDING
