"""
Chat application configuration.

This app provides the real-time delivery and presence core with:
- Online/offline presence per account
- Direct conversations with SENT/DELIVERED/READ message lifecycle
- Groups with admin roles, audit (SYSTEM) entries and read cursors
- Push fanout over the Channels layer
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        """
        Import signals when the app is ready.

        This ensures presence records are created for new accounts.
        """
        from chat import signals  # noqa: F401
