"""
WebSocket URL routing for the chat application.

This module defines the URL patterns for WebSocket connections,
mapping paths to their corresponding consumers.

URL Patterns:
    ws/presence/ - Presence, push delivery and chat actions for one identity

Authentication:
    The user is attached to the consumer's scope by the upstream auth
    middleware (see config/asgi.py).
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/presence/",
        consumers.PresenceConsumer.as_asgi(),
    ),
]
