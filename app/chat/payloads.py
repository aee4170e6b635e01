"""
Push payload builders.

Every payload is a JSON/msgpack-safe dict with a "kind" key telling the
client which stream it belongs to:

    message        Direct message for the recipient
    receipt        DELIVERED/READ receipt for the sender of a direct message
    group_message  Group message or SYSTEM audit entry
    group_update   Structural group notification (see GroupUpdateType)
    presence       Online/offline change, broadcast on the public channel

Timestamps are ISO 8601 strings and ids are strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from chat.constants import PUSH_CONFIG, GroupUpdateType

if TYPE_CHECKING:
    from datetime import datetime

    from chat.models import DirectMessage, Group, GroupMessage


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _media(message) -> dict[str, Any]:
    return {
        "media_url": message.media_url or None,
        "file_name": message.file_name or None,
        "file_size": message.file_size,
        "mime_type": message.mime_type or None,
    }


def message_payload(message: DirectMessage) -> dict[str, Any]:
    """Direct message as pushed to its recipient."""
    return {
        "kind": PUSH_CONFIG.KIND_MESSAGE,
        "id": str(message.id),
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "message_type": str(message.message_type),
        "status": str(message.status),
        "created_at": _isoformat(message.created_at),
        "read_at": _isoformat(message.read_at),
        **_media(message),
    }


def receipt_payload(
    message: DirectMessage,
    status: str,
    read_at: datetime | None = None,
) -> dict[str, Any]:
    """
    Delivery or read receipt for the sender of a direct message.

    Args:
        message: The message the receipt is about
        status: DELIVERED or READ
        read_at: Read timestamp (defaults to message.read_at)
    """
    return {
        "kind": PUSH_CONFIG.KIND_RECEIPT,
        "message_id": str(message.id),
        "conversation_id": message.conversation_id,
        "recipient_id": message.recipient_id,
        "status": str(status),
        "read_at": _isoformat(read_at or message.read_at),
    }


def group_message_payload(message: GroupMessage, group_name: str | None = None) -> dict[str, Any]:
    """Group message or SYSTEM entry as pushed to online members."""
    return {
        "kind": PUSH_CONFIG.KIND_GROUP_MESSAGE,
        "id": str(message.id),
        "group_id": str(message.group_id),
        "group_name": group_name,
        "sender_id": message.sender_identity,
        "sender_name": message.sender_name,
        "content": message.content,
        "message_type": str(message.message_type),
        "created_at": _isoformat(message.created_at),
        **_media(message),
    }


def group_snapshot(group: Group) -> dict[str, Any]:
    """Current state of a group, read fresh from the database."""
    member_ids = group.member_ids()
    return {
        "id": str(group.id),
        "name": group.name,
        "description": group.description,
        "creator_id": group.creator_id,
        "member_ids": member_ids,
        "admin_ids": group.admin_ids(),
        "member_count": len(member_ids),
        "created_at": _isoformat(group.created_at),
        "updated_at": _isoformat(group.updated_at),
    }


def group_update_payload(update_type: str, group: Group) -> dict[str, Any]:
    """
    Structural notification about a group.

    Deleted groups and removals carry only the group id; everything else
    carries a full snapshot.
    """
    payload = {
        "kind": PUSH_CONFIG.KIND_GROUP_UPDATE,
        "type": update_type,
        "group_id": str(group.id),
    }
    if update_type not in (
        GroupUpdateType.GROUP_DELETED,
        GroupUpdateType.REMOVED_FROM_GROUP,
    ):
        payload["group"] = group_snapshot(group)
    return payload


def presence_payload(identity: str, status: str, last_seen: datetime | None) -> dict[str, Any]:
    """Presence change for the public channel."""
    return {
        "kind": PUSH_CONFIG.KIND_PRESENCE,
        "identity": identity,
        "status": str(status),
        "last_seen": _isoformat(last_seen),
    }
