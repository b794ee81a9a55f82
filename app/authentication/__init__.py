"""
Authentication application.

Provides the email-based custom User model. Each user optionally carries the
id of the Stripe customer that pays for their subscriptions, so billing can
skip the customer lookup on repeat purchases.

Usage:
    from authentication.models import User
"""
