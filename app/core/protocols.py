"""
Protocol definitions for generic infrastructure services.

This module defines Protocol classes that specify interfaces for
infrastructure collaborators the domain code depends on.

Protocols define contracts that services must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (depend on abstractions, not concretions)
- Easy substitution with recording fakes in tests

Available Protocols:
    PushTransport: Per-identity private delivery plus one public broadcast

Usage:
    from core.protocols import PushTransport

    def announce(transport: PushTransport, identity: str):
        transport.broadcast_public({"kind": "presence", "identity": identity})

    class RecordingTransport:
        def send(self, identity, payload): ...
        def broadcast_public(self, payload): ...

    # RecordingTransport is a valid PushTransport
    # even without explicit inheritance (duck typing)
    transport: PushTransport = RecordingTransport()

Note:
    - Protocols are primarily for type checking
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class PushTransport(Protocol):
    """
    Protocol for push transports.

    The transport owns addressing entirely: the core only names an identity
    or the public channel and hands over a JSON-serializable payload.

    Example:
        class ChannelLayerTransport:
            def send(self, identity, payload): ...
            def broadcast_public(self, payload): ...
    """

    def send(self, identity: str, payload: dict[str, Any]) -> None:
        """
        Deliver a payload to one identity's private channel.

        Args:
            identity: Recipient identity (username)
            payload: JSON-serializable event body
        """
        ...

    def broadcast_public(self, payload: dict[str, Any]) -> None:
        """
        Deliver a payload to every connection on the public channel.

        Args:
            payload: JSON-serializable event body
        """
        ...
