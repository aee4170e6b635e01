"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from transports and models.
    Consumers handle connection concerns, models handle data, services
    handle logic.

Error Handling:
    Services raise the typed failures from core.exceptions for primary
    failures (validation, permission, missing resources, storage). Secondary
    side effects (push notifications, media cleanup) are logged and
    swallowed by the service that triggers them.

Usage:
    from core.services import BaseService

    class GroupRegistry(BaseService):
        def create(self, creator: str, name: str) -> Group:
            with self.atomic():
                group = Group.objects.create(name=name, creator_id=creator)
                GroupMembership.objects.create(group=group, user_id=creator)

            self.get_logger().info(f"Created group {group.id}")
            return group

Related:
    - core.exceptions: Typed failures raised by services
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction

from core.exceptions import StorageError

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management
    - Translation of database failures into StorageError

    Design Notes:
        - Services hold collaborators (presence, transport), never cached
          domain state
        - Raise core.exceptions errors for failures the caller must see
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Returns:
            Logger instance for this service
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Yields:
            None

        Example:
            with self.atomic():
                group = Group.objects.create(name=name, creator_id=creator)
                GroupMembership.objects.create(group=group, user_id=creator)
                # If the membership insert fails, the group is rolled back
        """
        with transaction.atomic():
            yield

    @classmethod
    @contextmanager
    def storage_errors(cls, context: str) -> Generator[None, None, None]:
        """
        Re-raise database failures as StorageError.

        Application errors raised inside the block pass through unchanged.

        Args:
            context: Short description of the operation for the log line

        Example:
            with self.storage_errors("persisting direct message"):
                message = DirectMessage.objects.create(...)
        """
        try:
            yield
        except DatabaseError as e:
            cls.get_logger().error(f"Storage failure while {context}: {e}")
            raise StorageError(f"Storage failure while {context}") from e
