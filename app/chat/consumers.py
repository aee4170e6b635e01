"""
WebSocket consumer for the chat delivery core.

This module implements the presence-reporting transport: one socket per
authenticated identity. Connecting marks the identity online, closing marks
it offline, and pushes addressed to the identity (or to everyone) are
forwarded to the socket.

Consumers:
    PresenceConsumer: Presence, push delivery and inbound chat actions

Authentication:
    The upstream auth middleware attaches the user to self.scope["user"].
    Anonymous connections are rejected with close code 4001.

Channel Groups:
    user.<identity>  Private pushes for this identity
    public           Presence broadcasts

Message Types (from client):
    - message: {"type": "message", "recipient": "bob", "content": "hi"}
    - read: {"type": "read", "sender": "alice"}
    - group_message: {"type": "group_message", "group_id": "...", "content": "hello"}
    - group_read: {"type": "group_read", "group_id": "..."}

Message Types (to client):
    - Push payloads from chat/payloads.py (keyed by "kind")
    - pending: {"type": "pending", "messages": [...]} right after connect
    - error: {"type": "error", "error": "...", "error_code": "..."}
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.exceptions import BaseApplicationError

from chat.constants import PUSH_CONFIG
from chat.delivery import DeliveryDispatcher
from chat.payloads import message_payload
from chat.transport import user_group_name

logger = logging.getLogger(__name__)


class PresenceConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer reporting presence and delivering pushes.

    Handles:
        - Connection authentication
        - Joining/leaving the private and public channel groups
        - Presence connect/disconnect through DeliveryDispatcher
        - Pulling undelivered direct messages on connect
        - Inbound send/read actions

    Attributes:
        identity: Username of the connected user (after connect)
        dispatcher: DeliveryDispatcher for this connection
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.identity: str | None = None
        self.dispatcher = DeliveryDispatcher()

    async def connect(self):
        """
        Handle WebSocket connection.

        On success, joins the private and public groups, accepts the
        connection, marks the identity online and sends pending messages.
        """
        user = self.scope.get("user")

        if not user or not user.is_authenticated:
            logger.warning("Rejected unauthenticated presence connection")
            await self.close(code=4001)
            return

        self.identity = user.username

        await self.channel_layer.group_add(
            user_group_name(self.identity), self.channel_name
        )
        await self.channel_layer.group_add(PUSH_CONFIG.PUBLIC_GROUP, self.channel_name)

        await self.accept()
        await self._connect_presence()

        pending = await self._fetch_undelivered()
        if pending:
            await self.send_json({"type": "pending", "messages": pending})

        logger.info(f"User {self.identity} connected")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Leaves the channel groups and marks the identity offline.
        """
        if not self.identity:
            return

        await self.channel_layer.group_discard(
            user_group_name(self.identity), self.channel_name
        )
        await self.channel_layer.group_discard(
            PUSH_CONFIG.PUBLIC_GROUP, self.channel_name
        )
        await self._disconnect_presence()
        logger.info(f"User {self.identity} disconnected ({close_code})")

    async def receive_json(self, content):
        """
        Handle incoming WebSocket messages.

        Args:
            content: Parsed JSON message from client (anything but an
                object is answered with UNKNOWN_TYPE)
        """
        action = content.get("type") if isinstance(content, dict) else None
        handler = {
            "message": self._send_direct,
            "read": self._mark_read,
            "group_message": self._send_group,
            "group_read": self._mark_group_read,
        }.get(action)

        if handler is None:
            await self.send_json(
                {
                    "type": "error",
                    "error": f"Unknown message type: {action}",
                    "error_code": "UNKNOWN_TYPE",
                }
            )
            return

        try:
            await handler(content)
        except BaseApplicationError as e:
            logger.info(f"Rejected {action} from {self.identity}: {e}")
            await self.send_json({"type": "error", **e.to_dict()})

    async def push_event(self, event):
        """
        Handle push.event events from the channel layer.

        Forwards the payload to the WebSocket client unchanged.
        """
        await self.send_json(event["payload"])

    # ==========================================================================
    # Database-bound actions
    # ==========================================================================

    @database_sync_to_async
    def _connect_presence(self) -> bool:
        return self.dispatcher.connect(self.identity)

    @database_sync_to_async
    def _disconnect_presence(self) -> bool:
        return self.dispatcher.disconnect(self.identity)

    @database_sync_to_async
    def _fetch_undelivered(self) -> list[dict]:
        return [
            message_payload(m)
            for m in self.dispatcher.fetch_undelivered(self.identity)
        ]

    @database_sync_to_async
    def _send_direct(self, content: dict) -> None:
        self.dispatcher.send_direct(
            self.identity,
            content.get("recipient", ""),
            content.get("content", ""),
            **self._media(content),
        )

    @database_sync_to_async
    def _mark_read(self, content: dict) -> None:
        self.dispatcher.mark_read(content.get("sender", ""), self.identity)

    @database_sync_to_async
    def _send_group(self, content: dict) -> None:
        self.dispatcher.send_group(
            content.get("group_id", ""),
            self.identity,
            content.get("content", ""),
            **self._media(content),
        )

    @database_sync_to_async
    def _mark_group_read(self, content: dict) -> None:
        self.dispatcher.mark_group_read(content.get("group_id", ""), self.identity)

    @staticmethod
    def _media(content: dict) -> dict:
        """Pick the optional media fields out of an inbound frame."""
        fields = (
            "message_type",
            "media_url",
            "media_ref",
            "file_name",
            "file_size",
            "mime_type",
        )
        return {name: content[name] for name in fields if content.get(name) is not None}
