"""
Push transport over the Channels layer.

ChannelLayerTransport implements core.protocols.PushTransport by sending
to channel-layer groups:

    user.<identity>   Private channel, joined by every socket of that identity
    public            Broadcast channel, joined by every socket

Each event is delivered as {"type": "push.event", "payload": {...}}, which
Channels dispatches to PresenceConsumer.push_event.

Related files:
    - consumers.py: Joins the groups and forwards push events to the socket
    - delivery.py: Decides who receives what
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from chat.constants import PUSH_CONFIG

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def user_group_name(identity: str) -> str:
    """Channel-layer group carrying one identity's private pushes."""
    return f"{PUSH_CONFIG.USER_GROUP_PREFIX}{identity}"


class ChannelLayerTransport:
    """
    PushTransport backed by the configured channel layer.

    Methods are synchronous; they are called from service code running in
    a worker thread (database_sync_to_async) or a plain sync context.

    Errors from the channel layer propagate; DeliveryDispatcher logs and
    swallows them.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def send(self, identity: str, payload: dict[str, Any]) -> None:
        """Push a payload to one identity's private channel."""
        self._group_send(user_group_name(identity), payload)

    def broadcast_public(self, payload: dict[str, Any]) -> None:
        """Push a payload to everyone on the public channel."""
        self._group_send(PUSH_CONFIG.PUBLIC_GROUP, payload)

    def _group_send(self, group: str, payload: dict[str, Any]) -> None:
        layer = self.channel_layer
        if layer is None:
            logger.warning(f"No channel layer configured, dropping push to {group}")
            return

        async_to_sync(layer.group_send)(
            group,
            {"type": PUSH_CONFIG.EVENT_TYPE, "payload": payload},
        )
        logger.debug(f"Pushed {payload.get('kind')} to {group}")
