"""
Service layer base class and result type.

ServiceResult is the standard wrapper for expected outcomes of an operation
(a webhook event that references nothing we know about, a handler that had
nothing to do). Unexpected failures are raised as exceptions instead.

BaseService gives service classes a per-class logger and a transaction
helper.

Usage:
    from core.services import BaseService, ServiceResult

    def handle(event) -> ServiceResult:
        if not checkout:
            return ServiceResult.failure(
                "No checkout for session cs_123",
                error_code="RECONCILIATION_GAP",
            )
        return ServiceResult.success(subscription)

Related:
    - core.exceptions: For unexpected/exceptional errors
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
        )

    @classmethod
    def from_exception(cls, exc: Exception) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Uses the exception's own ``error_code`` when it has one, else the
        upper-cased class name.
        """
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=getattr(exc, "error_code", None)
            or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides a per-class logger and an explicit transaction boundary.

    Usage:
        class SubscriptionService(BaseService):
            def cancel(self, subscription_id):
                with self.atomic():
                    ...
                self.get_logger().info("Cancelled", extra={"id": subscription_id})
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Return a logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Iterator[None]:
        """Run the enclosed block in a database transaction."""
        with transaction.atomic():
            yield
