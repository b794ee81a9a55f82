"""
Managers for billing models.

SubscriptionManager owns the two write paths into Subscription used by
reconciliation. Both run in a transaction with the row locked, so two
writers for the same stripe_subscription_id never interleave.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone

from billing.types import SubscriptionPatch

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User
    from billing.adapters.stripe_adapter import SubscriptionSnapshot
    from billing.models.subscription import Subscription

logger = logging.getLogger(__name__)


class SubscriptionManager(models.Manager):
    """
    Manager for Subscription.

    Usage:
        subscription, created = Subscription.objects.upsert_from_stripe(
            user, snapshot, plan="MONTHLY-Basic", event_at=event_time
        )
        Subscription.objects.apply_patch("sub_123", SubscriptionPatch(status="canceled"))
    """

    def for_user(self, user: User) -> models.QuerySet:
        return self.filter(user=user)

    def current_for(self, user: User) -> models.QuerySet:
        """Subscriptions that have not ended yet: end_date unset or in the future."""
        return self.filter(user=user).filter(
            Q(end_date__isnull=True) | Q(end_date__gt=timezone.now())
        )

    def upsert_from_stripe(
        self,
        user: User,
        snapshot: SubscriptionSnapshot,
        plan: str,
        event_at: datetime | None = None,
    ) -> tuple[Subscription, bool]:
        """
        Create or update the row for a Stripe subscription.

        Keyed by stripe_subscription_id. An existing row receives the
        reconciliation patch for the snapshot, unless ``event_at`` is older
        than the last change already applied to it.

        Returns:
            Tuple of (subscription, created)
        """
        patch = SubscriptionPatch.from_snapshot(snapshot, plan=plan)

        with transaction.atomic():
            subscription, created = self.select_for_update().get_or_create(
                stripe_subscription_id=snapshot.id,
                defaults={
                    "user": user,
                    "stripe_customer_id": snapshot.customer_id or "",
                    "stripe_price_id": snapshot.price_id or "",
                    "plan": plan,
                    "status": snapshot.status,
                    "start_date": snapshot.start_date or timezone.now(),
                    "next_billing_date": snapshot.current_period_end,
                    "cancel_at_period_end": snapshot.cancel_at_period_end,
                    "last_event_at": event_at,
                },
            )
            if not created:
                subscription.apply_patch(patch, event_at=event_at)

        logger.info(
            "Subscription upserted",
            extra={
                "stripe_subscription_id": snapshot.id,
                "user_id": user.pk,
                "was_created": created,
                "status": subscription.status,
            },
        )
        return subscription, created

    def apply_patch(
        self,
        stripe_subscription_id: str,
        patch: SubscriptionPatch,
        event_at: datetime | None = None,
    ) -> Subscription | None:
        """
        Patch an existing row; never creates one.

        Returns:
            The subscription, or None when no row has this Stripe id
        """
        with transaction.atomic():
            subscription = (
                self.select_for_update()
                .filter(stripe_subscription_id=stripe_subscription_id)
                .first()
            )
            if subscription is None:
                return None
            subscription.apply_patch(patch, event_at=event_at)
        return subscription
