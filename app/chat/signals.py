"""
Django signals for the chat delivery core.

This module defines signal handlers for:
- Auto-creating UserPresence when a User is created

Related files:
    - models.py: UserPresence model
    - apps.py: Signal import in ready()

Usage:
    Signals are automatically connected when the app is ready.
    See apps.py for the import that triggers connection.
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_presence(sender, instance, created, **kwargs):
    """
    Create an OFFLINE presence record for newly created users.

    PresenceRegistry never creates presence rows itself, so every account
    gets exactly one here.

    Args:
        sender: The User model class
        instance: The User instance that was saved
        created: Boolean indicating if this is a new record
        **kwargs: Additional signal arguments
    """
    if created:
        from chat.models import UserPresence

        UserPresence.objects.get_or_create(user=instance)
        logger.debug(f"Presence created for user: {instance.username}")
