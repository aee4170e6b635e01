"""
Chat delivery core models.

This module defines the data models for the delivery and presence core:
- Presence of every account (online/offline, last seen)
- Direct (1:1) conversations keyed by a canonical identity pair
- Groups with member/admin roles, their message history and read cursors

Models:
    UserPresence: Online/offline state for one account
    Conversation: Canonical 1:1 channel between exactly two accounts
    DirectMessage: Message within a conversation with SENT/DELIVERED/READ status
    Group: Group entity with creator, name and description
    GroupMembership: Account membership in a group, with admin flag
    GroupMessage: Message or audit (SYSTEM) entry in a group
    ReadCursor: Last instant an account viewed a group's history

Design Decisions:
    - Every relation to an account goes through User.username (to_field), so
      *_id attributes hold the identity string used across the core
    - Conversation ids are derived from the ordered pair, never generated
    - Direct message status is a django-fsm state machine; concurrent writers
      cannot move a row backwards (ConcurrentTransitionMixin)
    - Group messages accept caller-supplied timestamps (created_at has a
      default instead of auto_now_add)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from chat.constants import CONVERSATION_CONFIG, GROUP_CONFIG, MESSAGE_CONFIG
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PresenceStatus(models.TextChoices):
    """Binary online/offline state driving fanout decisions."""

    ONLINE = "ONLINE", "Online"
    OFFLINE = "OFFLINE", "Offline"


class MessageStatus(models.TextChoices):
    """
    Delivery lifecycle of a direct message.

    SENT: Persisted while the recipient was offline
    DELIVERED: Pushed to (or pulled by) the recipient
    READ: Viewed by the recipient (read_at is set)

    Order: SENT < DELIVERED < READ. Status never moves backwards.
    """

    SENT = "SENT", "Sent"
    DELIVERED = "DELIVERED", "Delivered"
    READ = "READ", "Read"


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message
    IMAGE/VIDEO/AUDIO: Media message referencing a stored blob
    SYSTEM: Auto-generated audit entry (group messages only)
    """

    TEXT = "TEXT", "Text"
    IMAGE = "IMAGE", "Image"
    VIDEO = "VIDEO", "Video"
    AUDIO = "AUDIO", "Audio"
    SYSTEM = "SYSTEM", "System"


MEDIA_MESSAGE_TYPES = frozenset(
    [MessageType.IMAGE.value, MessageType.VIDEO.value, MessageType.AUDIO.value]
)


class UserPresence(BaseModel):
    """
    Online/offline state for one account.

    Created automatically when an account is created (see chat/signals.py).
    Status only changes through PresenceRegistry.set_online/set_offline.

    Fields:
        user: Account this record belongs to (primary key)
        status: ONLINE or OFFLINE
        last_seen: When the account last connected or disconnected
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="presence",
        help_text="Account this presence record belongs to",
    )

    status = models.CharField(
        max_length=10,
        choices=PresenceStatus.choices,
        default=PresenceStatus.OFFLINE,
        db_index=True,
        help_text="Current online/offline state",
    )

    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the account last connected or disconnected",
    )

    class Meta:
        db_table = "chat_user_presence"
        ordering = ["user"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"Presence({self.user_id}: {self.status})"

    @property
    def is_online(self) -> bool:
        """Check if the account is currently online."""
        return self.status == PresenceStatus.ONLINE


class Conversation(BaseModel):
    """
    A direct (1:1) conversation between exactly two accounts.

    The primary key is the canonical key "<lower>:<higher>" of the ordered
    identity pair, so resolving (a, b) and (b, a) always lands on the same
    row. Conversations are created lazily on first message and never deleted.

    Fields:
        id: Canonical key of the identity pair
        member_lower: Account whose username sorts first
        member_higher: Account whose username sorts second

    Constraints:
        - UniqueConstraint(member_lower, member_higher): One conversation per pair
        - CheckConstraint(member_lower < member_higher): Enforce canonical order
    """

    id = models.CharField(
        primary_key=True,
        max_length=61,
        editable=False,
        help_text="Canonical key of the identity pair ('<lower>:<higher>')",
    )

    member_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="+",  # No reverse accessor needed
        help_text="Member whose identity sorts first",
    )

    member_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="+",  # No reverse accessor needed
        help_text="Member whose identity sorts second",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-created_at"]
        constraints = [
            # Ensure only one conversation exists per identity pair
            models.UniqueConstraint(
                fields=["member_lower", "member_higher"],
                name="unique_conversation_pair",
            ),
            # Enforce canonical ordering: lower identity first
            models.CheckConstraint(
                condition=Q(member_lower_id__lt=F("member_higher_id")),
                name="conversation_member_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"Conversation({self.pk})"

    @staticmethod
    def canonical_pair(a: str, b: str) -> tuple[str, str]:
        """Return the pair ordered so that the lower identity comes first."""
        return (a, b) if a < b else (b, a)

    @classmethod
    def key_for(cls, a: str, b: str) -> str:
        """
        Build the canonical conversation key for an unordered pair.

        Example:
            Conversation.key_for("bob", "alice")  # "alice:bob"
        """
        lower, higher = cls.canonical_pair(a, b)
        return f"{lower}{CONVERSATION_CONFIG.KEY_SEPARATOR}{higher}"

    @property
    def members(self) -> tuple[str, str]:
        """Both member identities, lower first."""
        return (self.member_lower_id, self.member_higher_id)

    def other_member(self, identity: str) -> str:
        """Return the member of this conversation that is not `identity`."""
        if identity == self.member_lower_id:
            return self.member_higher_id
        return self.member_lower_id


class MediaContent(models.Model):
    """
    Abstract fields for messages that can carry media instead of text.

    The blob itself lives in external storage; only the reference is kept.
    media_ref is the storage name handed to media cleanup on cascade delete.

    Fields:
        message_type: TEXT, a media type, or SYSTEM
        content: Text body (may be blank for media messages)
        media_url: Public URL of the stored blob
        media_ref: Storage reference (name/public id) of the stored blob
        file_name: Original file name
        file_size: Size in bytes
        mime_type: MIME type reported by the uploader
    """

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        db_index=True,
        help_text="Type of message content",
    )

    content = models.TextField(
        blank=True,
        default="",
        help_text="Message text (optional caption for media messages)",
    )

    media_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Public URL of the attached media",
    )

    media_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Storage reference of the attached media (used for cleanup)",
    )

    file_name = models.CharField(max_length=255, blank=True, default="")
    file_size = models.PositiveBigIntegerField(null=True, blank=True)
    mime_type = models.CharField(max_length=100, blank=True, default="")

    class Meta:
        abstract = True

    @property
    def has_media(self) -> bool:
        """Check if this message references a stored blob."""
        return bool(self.media_url or self.media_ref)

    @property
    def is_system_message(self) -> bool:
        """Check if this is a system-generated audit entry."""
        return self.message_type == MessageType.SYSTEM

    def preview(self) -> str:
        """
        Short text used in contact and group lists.

        Returns:
            - "[Image]"/"[Video]"/"[Audio]" for media without caption
            - Content truncated to MESSAGE_CONFIG.PREVIEW_LENGTH otherwise
        """
        message_type = str(self.message_type)
        if message_type in MEDIA_MESSAGE_TYPES and not self.content:
            return MESSAGE_CONFIG.MEDIA_PREVIEWS[message_type.lower()]
        limit = MESSAGE_CONFIG.PREVIEW_LENGTH
        if len(self.content) > limit:
            return self.content[:limit] + "..."
        return self.content


class DirectMessage(ConcurrentTransitionMixin, MediaContent, BaseModel):
    """
    A message within a direct conversation.

    Status Lifecycle (django-fsm):
        SENT -> DELIVERED          (deliver)
        SENT/DELIVERED -> READ     (mark_read, sets read_at)

    The initial status is a one-time snapshot taken at send time: DELIVERED
    when the recipient was online, SENT otherwise. It is never re-evaluated.

    Concurrency:
        ConcurrentTransitionMixin turns every status save into an UPDATE
        guarded by the status the row was loaded with. If another caller
        moved the row first, save() raises ConcurrentTransition and nothing
        is written, so a row never regresses.

    Fields:
        conversation: Conversation this message belongs to
        sender: Author identity
        recipient: Addressee identity
        status: SENT, DELIVERED or READ
        read_at: When the recipient read the message (set iff status=READ)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="sent_direct_messages",
        help_text="Identity that sent this message",
    )

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="received_direct_messages",
        help_text="Identity this message is addressed to",
    )

    status = FSMField(
        default=MessageStatus.SENT,
        choices=MessageStatus.choices,
        db_index=True,
        help_text="Delivery status (managed by FSM, never regresses)",
    )

    read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the recipient read this message",
    )

    class Meta:
        db_table = "chat_direct_message"
        ordering = ["created_at", "id"]
        indexes = [
            # Conversation history in arrival order
            models.Index(
                fields=["conversation", "created_at", "id"],
                name="chat_dm_conv_history_idx",
            ),
            # Pending messages for a recipient (fetch_undelivered)
            models.Index(
                fields=["recipient", "status"],
                name="chat_dm_recipient_status_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"{self.sender_id} -> {self.recipient_id}: {self.preview()} [{self.status}]"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=MessageStatus.SENT,
        target=MessageStatus.DELIVERED,
    )
    def deliver(self):
        """
        Mark the message as delivered to the recipient.

        Transition: SENT -> DELIVERED
        """
        pass

    @transition(
        field=status,
        source=[MessageStatus.SENT, MessageStatus.DELIVERED],
        target=MessageStatus.READ,
    )
    def mark_read(self, read_at=None):
        """
        Mark the message as read by the recipient.

        Transition: SENT/DELIVERED -> READ

        Args:
            read_at: Read timestamp (defaults to now)
        """
        self.read_at = read_at or timezone.now()

    @property
    def is_read(self) -> bool:
        """Check if the recipient has read this message."""
        return self.status == MessageStatus.READ


class Group(UUIDPrimaryKeyMixin, BaseModel):
    """
    A named group of accounts.

    Membership lives in GroupMembership rows. The creator is a member and
    admin at creation, and membership is non-empty while the group exists:
    when the last member leaves, the group is deleted together with its
    messages and read cursors.

    Fields:
        name: Display name (never blank)
        description: Optional description (blank clears it)
        creator: Identity that created the group; only it may delete the group
    """

    name = models.CharField(
        max_length=GROUP_CONFIG.MAX_NAME_LENGTH,
        help_text="Group display name",
    )

    description = models.CharField(
        max_length=GROUP_CONFIG.MAX_DESCRIPTION_LENGTH,
        blank=True,
        default="",
        help_text="Optional group description",
    )

    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_groups",
        help_text="Identity that created this group",
    )

    class Meta:
        db_table = "chat_group"
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"Group: {self.name}"

    def member_ids(self) -> list[str]:
        """Identities of all current members, sorted."""
        return list(
            self.memberships.order_by("user_id").values_list("user_id", flat=True)
        )

    def admin_ids(self) -> list[str]:
        """Identities of all current admins, sorted."""
        return list(
            self.memberships.filter(is_admin=True)
            .order_by("user_id")
            .values_list("user_id", flat=True)
        )

    def is_member(self, identity: str) -> bool:
        """Check if `identity` is a current member."""
        return self.memberships.filter(user_id=identity).exists()

    def is_admin(self, identity: str) -> bool:
        """Check if `identity` is a current admin."""
        return self.memberships.filter(user_id=identity, is_admin=True).exists()


class GroupMembership(BaseModel):
    """
    Membership of one account in one group.

    Fields:
        group: The group
        user: Member identity
        is_admin: Whether the member may update the group and remove others
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Group this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="group_memberships",
        help_text="Member identity",
    )

    is_admin = models.BooleanField(
        default=False,
        help_text="Whether this member is a group admin",
    )

    class Meta:
        db_table = "chat_group_membership"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["group", "user"],
                name="unique_group_membership",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        role_str = " (admin)" if self.is_admin else ""
        return f"Member: {self.user_id} in {self.group_id}{role_str}"


class GroupMessage(MediaContent, BaseModel):
    """
    A message or audit entry within a group.

    SYSTEM entries have no sender account: sender is NULL and sender_name is
    GROUP_CONFIG.SYSTEM_SENDER_NAME. They bypass membership checks and count
    toward unread totals like any other entry.

    Fields:
        group: Group this message belongs to
        sender: Author identity (NULL for SYSTEM entries)
        sender_name: Display name of the author at send time
        created_at: Message timestamp (defaults to now, may be supplied)
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Group this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_group_messages",
        help_text="Identity that sent this message (null for system entries)",
    )

    sender_name = models.CharField(
        max_length=150,
        help_text="Display name of the sender at send time",
    )

    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Message timestamp",
    )

    class Meta:
        db_table = "chat_group_message"
        ordering = ["created_at", "id"]
        indexes = [
            # Group history and unread counts by time range
            models.Index(
                fields=["group", "created_at", "id"],
                name="chat_gm_group_history_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"{self.sender_name}: {self.preview()}"

    @property
    def sender_identity(self) -> str:
        """Sender identity, or the system sentinel for audit entries."""
        return self.sender_id or GROUP_CONFIG.SYSTEM_SENDER_ID


class ReadCursor(BaseModel):
    """
    Last instant an account viewed a group's history.

    Unique per (user, group). last_read_at only moves forward.

    Fields:
        user: Reader identity
        group: Group being read
        last_read_at: Messages at or before this instant are read
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        to_field="username",
        on_delete=models.CASCADE,
        related_name="group_read_cursors",
        help_text="Reader identity",
    )

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="read_cursors",
        help_text="Group this cursor tracks",
    )

    last_read_at = models.DateTimeField(
        help_text="Last instant the user viewed the group's history",
    )

    class Meta:
        db_table = "chat_read_cursor"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "group"],
                name="unique_read_cursor_per_user_group",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"ReadCursor({self.user_id} in {self.group_id} @ {self.last_read_at})"
