"""
Delivery orchestration for direct messages, group messages and presence.

DeliveryDispatcher is the entry point a request layer (WebSocket consumer,
HTTP view, management command) calls. It persists through the ledgers in
chat/services.py and then fans out to online recipients over a
PushTransport.

Fanout rules:
    Direct message   Recipient online at send time: push the message to the
                     recipient and a DELIVERED receipt to the sender.
                     Otherwise the message stays SENT until pulled.
    Pull             fetch_undelivered pushes a DELIVERED receipt to each
                     online original sender.
    Read             mark_read pushes a READ receipt per message to the
                     online sender.
    Group message    Pushed to every online member, sender included.
    Membership       SYSTEM entry broadcast like a group message, then a
                     group_update notification with the group snapshot.
    Presence         Broadcast on the public channel.

Push failures are logged and swallowed: the persisted state has already
committed and is never rolled back because a push failed.

Usage:
    from chat.delivery import DeliveryDispatcher

    dispatcher = DeliveryDispatcher()
    dispatcher.connect("bob")
    dispatcher.send_direct("alice", "bob", "hi")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService

from chat.constants import GroupUpdateType
from chat.models import MessageStatus, PresenceStatus
from chat.payloads import (
    group_message_payload,
    group_update_payload,
    message_payload,
    presence_payload,
    receipt_payload,
)
from chat.services import (
    ConversationResolver,
    GroupMessageLedger,
    GroupRegistry,
    MessageLedger,
    PresenceRegistry,
    ReadCursorTracker,
    display_name,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any
    from uuid import UUID

    from core.protocols import PushTransport

    from chat.models import DirectMessage, Group, GroupMessage
    from chat.services import AddMembersResult, LeaveResult


class DeliveryDispatcher(BaseService):
    """
    Persists messages and fans them out based on presence.

    Collaborators are explicit: pass the PresenceRegistry and PushTransport
    to use. Nothing is stored on the dispatcher between calls.

    Attributes:
        presence: PresenceRegistry consulted for every fanout decision
        transport: PushTransport used for private and public pushes
        messages / groups / group_messages / read_cursors: Ledgers
    """

    def __init__(
        self,
        presence: PresenceRegistry | None = None,
        transport: PushTransport | None = None,
    ):
        if transport is None:
            from chat.transport import ChannelLayerTransport

            transport = ChannelLayerTransport()

        self.presence = presence or PresenceRegistry()
        self.transport = transport
        self.conversations = ConversationResolver()
        self.messages = MessageLedger(
            presence=self.presence, conversations=self.conversations
        )
        self.groups = GroupRegistry()
        self.group_messages = GroupMessageLedger(groups=self.groups)
        self.read_cursors = ReadCursorTracker(groups=self.groups)

    # ==========================================================================
    # Presence
    # ==========================================================================

    def connect(self, identity: str) -> bool:
        """
        Mark an identity online and announce it on the public channel.

        Returns:
            False for unknown identities (nothing is announced)
        """
        if not self.presence.set_online(identity):
            return False
        self._broadcast(
            presence_payload(
                identity, PresenceStatus.ONLINE, self.presence.last_seen(identity)
            )
        )
        return True

    def disconnect(self, identity: str) -> bool:
        """Mark an identity offline and announce it on the public channel."""
        if not self.presence.set_offline(identity):
            return False
        self._broadcast(
            presence_payload(
                identity, PresenceStatus.OFFLINE, self.presence.last_seen(identity)
            )
        )
        return True

    # ==========================================================================
    # Direct messages
    # ==========================================================================

    def send_direct(self, sender: str, recipient: str, content: str = "", **media) -> DirectMessage:
        """
        Persist a direct message and push it if the recipient is online.

        The push decision uses the status snapshot taken when the message was
        stored: DELIVERED means the recipient was online.

        Args:
            sender: Author identity
            recipient: Addressee identity
            content: Text body
            **media: message_type, media_url, media_ref, file_name,
                file_size, mime_type

        Returns:
            The persisted DirectMessage
        """
        message = self.messages.send(sender, recipient, content, **media)

        if message.status == MessageStatus.DELIVERED:
            self._push(recipient, message_payload(message))
            self._push(sender, receipt_payload(message, MessageStatus.DELIVERED))

        return message

    def fetch_undelivered(self, user: str) -> list[DirectMessage]:
        """
        Pull pending messages for `user` and notify their online senders.

        Returns:
            Snapshots carrying the pre-pull status (SENT)
        """
        pending = self.messages.fetch_undelivered(user)
        if not pending:
            return pending

        online_senders = self.presence.online_among({m.sender_id for m in pending})
        for message in pending:
            if message.sender_id in online_senders:
                self._push(
                    message.sender_id,
                    receipt_payload(message, MessageStatus.DELIVERED),
                )
        return pending

    def mark_read(self, sender: str, recipient: str) -> list[DirectMessage]:
        """
        Mark messages from `sender` to `recipient` READ and notify the sender.

        Returns:
            Exactly the messages transitioned by this call
        """
        read = self.messages.mark_read(sender, recipient)
        if read and self.presence.is_online(sender):
            for message in read:
                self._push(sender, receipt_payload(message, MessageStatus.READ))
        return read

    # ==========================================================================
    # Group messages
    # ==========================================================================

    def send_group(
        self,
        group_id: UUID | str,
        sender: str,
        content: str = "",
        **media,
    ) -> GroupMessage:
        """
        Persist a group message and push it to every online member.

        The sender receives its own message too.
        """
        message = self.group_messages.save(group_id, sender, content, **media)
        self._fanout(message.group, message)
        return message

    def mark_group_read(self, group_id: UUID | str, user: str) -> int:
        """
        Move the user's read cursor to now.

        Returns:
            Unread count after the update
        """
        self.read_cursors.mark_read(group_id, user)
        return self.read_cursors.unread_count(group_id, user)

    # ==========================================================================
    # Group lifecycle
    # ==========================================================================

    def create_group(
        self,
        creator: str,
        name: str,
        description: str = "",
        member_ids: Iterable[str] | None = None,
    ) -> Group:
        """
        Create a group, record its creation and notify the initial members.

        SYSTEM entries:
            '<creator> created the group "<name>"'
            '<member> was added to the group' (per initial member)
        """
        group = self.groups.create(creator, name, description, member_ids)

        self._announce(group, f'{display_name(creator)} created the group "{group.name}"')
        for member in group.member_ids():
            if member != creator:
                self._announce(group, f"{display_name(member)} was added to the group")

        self._notify(group, GroupUpdateType.GROUP_CREATED, group.member_ids())
        return group

    def add_members(
        self,
        group_id: UUID | str,
        requester: str,
        member_ids: Iterable[str],
    ) -> AddMembersResult:
        """
        Add members, record each addition and notify old and new members.

        New members get ADDED_TO_GROUP; existing members get MEMBERS_ADDED.
        """
        result = self.groups.add_members(group_id, requester, member_ids)
        if not result.added:
            return result

        group = result.group
        requester_name = display_name(requester)
        for member in result.added:
            self._announce(
                group,
                f"{display_name(member)} was added to the group by {requester_name}",
            )

        members = group.member_ids()
        self._notify(group, GroupUpdateType.ADDED_TO_GROUP, result.added)
        self._notify(
            group,
            GroupUpdateType.MEMBERS_ADDED,
            [m for m in members if m not in result.added],
        )
        return result

    def remove_member(
        self,
        group_id: UUID | str,
        requester: str,
        member_id: str,
    ) -> LeaveResult:
        """
        Remove a member and notify both the removed member and the rest.

        A removal that empties the group purges it; nothing else is pushed then.
        """
        result = self.groups.remove_member(group_id, requester, member_id)
        group = result.group

        self._notify(group, GroupUpdateType.REMOVED_FROM_GROUP, [member_id])
        if result.deleted or not group.member_ids():
            return result

        if requester == member_id:
            text = f"{display_name(member_id)} left the group"
        else:
            text = (
                f"{display_name(member_id)} was removed from the group "
                f"by {display_name(requester)}"
            )
        self._announce(group, text)
        self._notify(group, GroupUpdateType.MEMBER_LEFT, group.member_ids())
        return result

    def leave_group(self, group_id: UUID | str, user: str) -> LeaveResult:
        """
        Leave a group and tell the remaining members.

        The last member leaving purges the group; no SYSTEM entry is written
        for a group that no longer exists.
        """
        result = self.groups.leave(group_id, user)
        # An empty group whose purge failed gets no SYSTEM entry either
        if result.deleted or not result.group.member_ids():
            return result

        group = result.group
        self._announce(group, f"{display_name(user)} left the group")
        self._notify(group, GroupUpdateType.MEMBER_LEFT, group.member_ids())
        return result

    def update_group(
        self,
        group_id: UUID | str,
        requester: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Group:
        """Update name/description and send GROUP_UPDATED to members."""
        group = self.groups.update(group_id, requester, name, description)
        self._notify(group, GroupUpdateType.GROUP_UPDATED, group.member_ids())
        return group

    def delete_group(self, group_id: UUID | str, requester: str) -> Group:
        """Delete a group (creator only) and send GROUP_DELETED to former members."""
        group = self.groups.require(group_id)
        members = group.member_ids()
        deleted = self.groups.delete(group_id, requester)
        self._notify(deleted, GroupUpdateType.GROUP_DELETED, members)
        return deleted

    # ==========================================================================
    # Internal
    # ==========================================================================

    def _announce(self, group: Group, text: str) -> GroupMessage | None:
        """
        Append a SYSTEM entry and fan it out like a normal message.

        The membership change has already committed, so a failure here is
        logged and the operation still succeeds.
        """
        try:
            message = self.group_messages.system(group.pk, text)
        except Exception:
            self.get_logger().exception(
                f"Failed to record system message for group {group.pk}"
            )
            return None
        self._fanout(group, message)
        return message

    def _fanout(self, group: Group, message: GroupMessage) -> None:
        payload = group_message_payload(message, group_name=group.name)
        for member in sorted(self.presence.online_among(group.member_ids())):
            self._push(member, payload)

    def _notify(self, group: Group, update_type: str, recipients: Iterable[str]) -> None:
        recipients = list(recipients)
        if not recipients:
            return

        online = self.presence.online_among(recipients)
        if not online:
            return

        payload = group_update_payload(update_type, group)
        for member in recipients:
            if member in online:
                self._push(member, payload)

    def _push(self, identity: str, payload: dict[str, Any]) -> None:
        try:
            self.transport.send(identity, payload)
        except Exception:
            self.get_logger().exception(
                f"Failed to push {payload.get('kind')} to {identity}"
            )

    def _broadcast(self, payload: dict[str, Any]) -> None:
        try:
            self.transport.broadcast_public(payload)
        except Exception:
            self.get_logger().exception(
                f"Failed to broadcast {payload.get('kind')}"
            )
