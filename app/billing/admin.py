"""
Billing admin configuration.

Registers Subscription, Checkout, WebhookEvent and PaymentHistory. The
webhook audit log is read-only apart from the replay action.
"""

from django.contrib import admin, messages

from billing.models import Checkout, PaymentHistory, Subscription, WebhookEvent

__all__ = [
    "CheckoutAdmin",
    "PaymentHistoryAdmin",
    "SubscriptionAdmin",
    "WebhookEventAdmin",
]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for subscriptions as last reconciled from Stripe."""

    list_display = [
        "stripe_subscription_id",
        "user",
        "plan",
        "status",
        "cancel_at_period_end",
        "next_billing_date",
        "end_date",
        "updated_at",
    ]
    list_filter = ["status", "cancel_at_period_end", "plan"]
    search_fields = [
        "stripe_subscription_id",
        "stripe_customer_id",
        "user__email",
    ]
    readonly_fields = ["id", "created_at", "updated_at", "last_event_at"]
    raw_id_fields = ["user"]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "plan", "status"),
            },
        ),
        (
            "Stripe",
            {
                "fields": (
                    "stripe_subscription_id",
                    "stripe_customer_id",
                    "stripe_price_id",
                ),
            },
        ),
        (
            "Billing Period",
            {
                "fields": (
                    "start_date",
                    "next_billing_date",
                    "end_date",
                    "cancel_at_period_end",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("last_event_at", "created_at", "updated_at"),
            },
        ),
    )


@admin.register(Checkout)
class CheckoutAdmin(admin.ModelAdmin):
    """Admin for checkout attempts. Status only moves through FSM transitions."""

    list_display = [
        "checkout_session_id",
        "user",
        "plan",
        "kind",
        "status",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status", "kind", "plan"]
    search_fields = ["checkout_session_id", "plan_id", "user__email"]
    readonly_fields = [
        "id",
        "status",
        "completed_at",
        "failure_reason",
        "metadata",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["user"]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin for the webhook audit log.

    Events are immutable once received. Failed events can be queued for
    replay with the "Replay selected events" action.
    """

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "payload",
        "error_message",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["replay_events"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "error_message"),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.action(description="Replay selected events")
    def replay_events(self, request, queryset):
        from billing.tasks import replay_webhook_event

        count = 0
        for webhook_event in queryset:
            replay_webhook_event.delay(str(webhook_event.id))
            count += 1
        self.message_user(request, f"Queued {count} event(s) for replay.", messages.INFO)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False


@admin.register(PaymentHistory)
class PaymentHistoryAdmin(admin.ModelAdmin):
    list_display = [
        "stripe_invoice_id",
        "user",
        "subscription",
        "amount_cents",
        "currency",
        "status",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["stripe_invoice_id", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    raw_id_fields = ["user", "subscription"]
    ordering = ["-created_at"]
