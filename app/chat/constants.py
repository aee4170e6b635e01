"""
Constants and configuration for the chat delivery core.

This module centralizes configuration values for:
- Conversation key construction and find-or-create retries
- Message content limits and previews
- Group limits and the system sender sentinel
- Push addressing on the channel layer

These values can be overridden via Django settings if needed.
Import example:
    from chat.constants import CONVERSATION_CONFIG, GROUP_CONFIG
"""

from typing import Final


# =============================================================================
# Conversation Configuration
# =============================================================================


class CONVERSATION_CONFIG:
    """Configuration for direct conversation resolution."""

    # Canonical key is "<lower>:<higher>"; usernames cannot contain ":"
    KEY_SEPARATOR: Final[str] = ":"

    # Find-or-create attempts before a unique-key race surfaces as ConflictError
    MAX_CREATE_ATTEMPTS: Final[int] = 3


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for direct and group messages."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters

    # Contact / group list previews
    PREVIEW_LENGTH: Final[int] = 50
    MEDIA_PREVIEWS: Final[dict] = {
        "image": "[Image]",
        "video": "[Video]",
        "audio": "[Audio]",
    }


# =============================================================================
# Group Configuration
# =============================================================================


class GROUP_CONFIG:
    """Configuration for groups and their audit entries."""

    MAX_NAME_LENGTH: Final[int] = 100
    MAX_DESCRIPTION_LENGTH: Final[int] = 500

    # Audit entries are authored by this sentinel, not by an account
    SYSTEM_SENDER_ID: Final[str] = "SYSTEM"
    SYSTEM_SENDER_NAME: Final[str] = "System"


class GroupUpdateType:
    """
    Structural notification types pushed on group membership changes.

    Events:
        GROUP_CREATED: Sent to every initial member
        ADDED_TO_GROUP: Sent to each newly added member
        MEMBERS_ADDED: Sent to the members who were already present
        REMOVED_FROM_GROUP: Sent to the removed member
        MEMBER_LEFT: Sent to the remaining members after a leave or removal
        GROUP_UPDATED: Sent to every member after name/description changes
        GROUP_DELETED: Sent to every former member after deletion
    """

    GROUP_CREATED = "GROUP_CREATED"
    ADDED_TO_GROUP = "ADDED_TO_GROUP"
    MEMBERS_ADDED = "MEMBERS_ADDED"
    REMOVED_FROM_GROUP = "REMOVED_FROM_GROUP"
    MEMBER_LEFT = "MEMBER_LEFT"
    GROUP_UPDATED = "GROUP_UPDATED"
    GROUP_DELETED = "GROUP_DELETED"


# =============================================================================
# Push Configuration
# =============================================================================


class PUSH_CONFIG:
    """Configuration for push addressing over the channel layer."""

    # Channel-layer group names
    USER_GROUP_PREFIX: Final[str] = "user."
    PUBLIC_GROUP: Final[str] = "public"

    # Consumer handler dispatched by the channel layer ("push.event" -> push_event)
    EVENT_TYPE: Final[str] = "push.event"

    # Payload kinds
    KIND_MESSAGE: Final[str] = "message"
    KIND_RECEIPT: Final[str] = "receipt"
    KIND_GROUP_MESSAGE: Final[str] = "group_message"
    KIND_GROUP_UPDATE: Final[str] = "group_update"
    KIND_PRESENCE: Final[str] = "presence"
