"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Conversation keys, message transitions, group helpers
- test_presence.py: PresenceRegistry tests
- test_conversations.py: ConversationResolver tests
- test_direct_messages.py: MessageLedger tests
- test_groups.py: GroupRegistry tests
- test_group_messages.py: GroupMessageLedger tests
- test_read_cursors.py: ReadCursorTracker tests
- test_delivery.py: DeliveryDispatcher workflows
- test_payloads.py / test_transport.py / test_tasks.py / test_consumers.py

Usage:
    pytest chat/tests/
    pytest chat/tests/test_delivery.py
"""
