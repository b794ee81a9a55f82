"""
PaymentHistory model: one row per paid subscription invoice.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PaymentHistory(UUIDPrimaryKeyMixin, BaseModel):
    """
    Record of a successful invoice payment.

    Written idempotently (keyed by stripe_invoice_id) when
    invoice.payment_succeeded correlates to a local subscription.

    Fields:
        user: Paying user
        subscription: Local subscription the invoice belongs to
        stripe_invoice_id: Stripe Invoice ID (in_xxx)
        amount_cents: Amount paid in smallest currency unit
        currency: ISO 4217 currency code (lowercase)
        status: Stripe invoice status at the time of payment
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Paying user",
    )

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Subscription the invoice belongs to",
    )

    stripe_invoice_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount paid in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=32,
        default="paid",
        help_text="Stripe invoice status",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment History"
        verbose_name_plural = "Payment History"

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"PaymentHistory({self.stripe_invoice_id}, {amount_display})"
