"""
Test configuration and fixtures for chat tests.

This module provides:
- Named user fixtures (alice, bob, carol, dave) with fixed identities
- A recording push transport that captures every push and broadcast
- Service and dispatcher fixtures wired to that transport
- Group fixtures for membership scenarios

Usage:
    def test_example(dispatcher, transport, alice, bob):
        dispatcher.connect("bob")
        dispatcher.send_direct("alice", "bob", "hi")
        assert transport.kinds_for("bob") == ["message"]
"""

import pytest

from authentication.tests.factories import UserFactory
from chat.delivery import DeliveryDispatcher
from chat.services import (
    ConversationResolver,
    GroupMessageLedger,
    GroupRegistry,
    MessageLedger,
    PresenceRegistry,
    ReadCursorTracker,
)


# =============================================================================
# Transport Doubles
# =============================================================================


class RecordingTransport:
    """
    PushTransport that records pushes instead of sending them.

    Attributes:
        sent: (identity, payload) tuples in push order
        broadcasts: Payloads sent on the public channel
    """

    def __init__(self):
        self.sent = []
        self.broadcasts = []

    def send(self, identity, payload):
        self.sent.append((identity, payload))

    def broadcast_public(self, payload):
        self.broadcasts.append(payload)

    def payloads_for(self, identity, kind=None):
        """Payloads pushed to one identity, optionally filtered by kind."""
        return [
            payload
            for target, payload in self.sent
            if target == identity and (kind is None or payload["kind"] == kind)
        ]

    def kinds_for(self, identity):
        return [payload["kind"] for payload in self.payloads_for(identity)]

    def recipients(self):
        return {identity for identity, _ in self.sent}

    def clear(self):
        self.sent.clear()
        self.broadcasts.clear()


class FailingTransport:
    """PushTransport whose every push raises, like a dead channel layer."""

    def __init__(self):
        self.attempts = 0

    def send(self, identity, payload):
        self.attempts += 1
        raise ConnectionError("channel layer unavailable")

    def broadcast_public(self, payload):
        self.attempts += 1
        raise ConnectionError("channel layer unavailable")


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    """Create alice (presence auto-created offline)."""
    return UserFactory(username="alice", full_name="Alice Liddell")


@pytest.fixture
def bob(db):
    """Create bob."""
    return UserFactory(username="bob", full_name="Bob Builder")


@pytest.fixture
def carol(db):
    """Create carol."""
    return UserFactory(username="carol", full_name="Carol Danvers")


@pytest.fixture
def dave(db):
    """Create dave."""
    return UserFactory(username="dave", full_name="Dave Bowman")


@pytest.fixture
def erin(db):
    """Create erin, a user outside every fixture group."""
    return UserFactory(username="erin", full_name="Erin Hunt")


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def transport():
    """Recording push transport."""
    return RecordingTransport()


@pytest.fixture
def failing_transport():
    """Push transport that always fails."""
    return FailingTransport()


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def conversations():
    return ConversationResolver()


@pytest.fixture
def ledger(presence, conversations):
    return MessageLedger(presence=presence, conversations=conversations)


@pytest.fixture
def groups():
    return GroupRegistry()


@pytest.fixture
def group_messages(groups):
    return GroupMessageLedger(groups=groups)


@pytest.fixture
def cursors(groups):
    return ReadCursorTracker(groups=groups)


@pytest.fixture
def dispatcher(presence, transport):
    """DeliveryDispatcher wired to the recording transport."""
    return DeliveryDispatcher(presence=presence, transport=transport)


# =============================================================================
# Group Fixtures
# =============================================================================


@pytest.fixture
def carol_group(groups, carol, dave):
    """
    Group created by carol with dave as a plain member.

    No SYSTEM entries are written (created through the registry, not the
    dispatcher).
    """
    return groups.create("carol", "Book Club", "Monthly reads", ["dave"])
