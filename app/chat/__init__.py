"""
Chat app for real-time message delivery and presence.

This app handles:
- Online/offline presence per account
- Direct conversations and the SENT/DELIVERED/READ message lifecycle
- Groups, group messages, SYSTEM audit entries and read cursors
- Push fanout over the Channels layer

Related apps:
    - authentication: User model whose username is the identity
    - core: Base model, exceptions and BaseService

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for the WebSocket handler.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.delivery import DeliveryDispatcher

    dispatcher = DeliveryDispatcher()
    dispatcher.send_direct("alice", "bob", "Hello!")
    dispatcher.create_group("carol", "Book Club", member_ids=["dave"])
"""
