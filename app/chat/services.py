"""
Chat delivery core service layer.

This module provides the business logic for presence, direct messaging,
groups, group messages and read cursors. Push fanout lives in
chat/delivery.py and builds on these services.

Services:
    PresenceRegistry: Per-identity online/offline state
    ConversationResolver: Canonical conversation id for an unordered pair
    MessageLedger: Direct messages and their SENT/DELIVERED/READ lifecycle
    GroupRegistry: Group lifecycle, membership and admin roles
    GroupMessageLedger: Group messages including SYSTEM audit entries
    ReadCursorTracker: Per (user, group) read markers and unread counts

Design Principles:
    - Services are instances holding their collaborators, never cached
      domain state; every call reads the database
    - Failures the caller must see raise core.exceptions errors
    - Database failures surface as StorageError
    - Secondary effects (media cleanup) are logged and swallowed

Usage:
    from chat.services import PresenceRegistry, MessageLedger

    presence = PresenceRegistry()
    ledger = MessageLedger(presence=presence)

    message = ledger.send("alice", "bob", "hi")
    message.status  # "SENT" while bob is offline

    ledger.fetch_undelivered("bob")  # [<DirectMessage SENT>]
    ledger.mark_read("alice", "bob")  # [<DirectMessage READ>]
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService

from chat.constants import CONVERSATION_CONFIG, GROUP_CONFIG, MESSAGE_CONFIG
from chat.models import (
    MEDIA_MESSAGE_TYPES,
    Conversation,
    DirectMessage,
    Group,
    GroupMembership,
    GroupMessage,
    MessageStatus,
    MessageType,
    PresenceStatus,
    ReadCursor,
    UserPresence,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID

    from authentication.models import User

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class LeaveResult:
    """
    Outcome of a leave or member removal.

    Attributes:
        group: The group as it was before the departure (still usable for
            payloads after deletion)
        deleted: True when the departure emptied the group and it was purged
    """

    group: Group
    deleted: bool = False


@dataclass(frozen=True)
class AddMembersResult:
    """Outcome of add_members: the group and the identities actually added."""

    group: Group
    added: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChatContact:
    """
    One entry of a user's direct-message contact list.

    Attributes:
        identity: Partner identity
        display_name: Partner display name
        is_online: Partner presence at query time
        last_seen: Partner's last connect/disconnect
        last_message: Preview of the newest message in the conversation
        last_message_type: Type of the newest message
        last_message_at: Timestamp of the newest message
        last_message_sender: Identity that sent the newest message
        unread_count: Messages from the partner not yet READ
    """

    identity: str
    display_name: str
    is_online: bool
    last_seen: datetime | None = None
    last_message: str | None = None
    last_message_type: str | None = None
    last_message_at: datetime | None = None
    last_message_sender: str | None = None
    unread_count: int = 0


@dataclass(frozen=True)
class GroupSummary:
    """One entry of a user's group list, with last message and unread count."""

    group: Group
    member_count: int
    last_message: str | None = None
    last_message_type: str | None = None
    last_message_at: datetime | None = None
    last_message_sender: str | None = None
    unread_count: int = 0


@dataclass(frozen=True)
class MemberInfo:
    """A group member with display details."""

    identity: str
    display_name: str
    is_online: bool
    is_admin: bool
    is_creator: bool


# =============================================================================
# Helpers
# =============================================================================


def _accounts_by_identity(identities: Iterable[str]) -> dict[str, User]:
    """
    Load accounts for identities, raising NotFoundError if any is missing.

    Returns:
        Dict mapping identity to User
    """
    wanted = set(identities)
    accounts = {
        user.username: user
        for user in get_user_model().objects.filter(username__in=wanted)
    }
    missing = sorted(wanted - accounts.keys())
    if missing:
        raise NotFoundError(
            "Account not found",
            error_code="ACCOUNT_NOT_FOUND",
            details={"identities": missing},
        )
    return accounts


def display_name(identity: str) -> str:
    """Display name for an identity, falling back to the identity itself."""
    user = get_user_model().objects.filter(username=identity).first()
    return user.get_full_name() if user else identity


def _unique(identities: Iterable[str]) -> list[str]:
    """Deduplicate identities keeping first-seen order."""
    return list(dict.fromkeys(i for i in identities if i))


def _validate_message_body(
    message_type: str,
    content: str,
    media_url: str,
    media_ref: str,
) -> None:
    """
    Validate user-authored message content.

    Raises:
        ValidationError: Unknown type, blank text, oversized text, or a media
            message without a media reference
    """
    if message_type not in MessageType.values or message_type == MessageType.SYSTEM:
        raise ValidationError(
            f"Unsupported message type: {message_type}",
            error_code="INVALID_MESSAGE_TYPE",
        )

    if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Message exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
            error_code="CONTENT_TOO_LONG",
        )

    if message_type == MessageType.TEXT and not content.strip():
        raise ValidationError(
            "Message content cannot be empty",
            error_code="CONTENT_REQUIRED",
        )

    if str(message_type) in MEDIA_MESSAGE_TYPES and not (media_url or media_ref):
        raise ValidationError(
            "Media messages require a media reference",
            error_code="MEDIA_REQUIRED",
        )


# =============================================================================
# PresenceRegistry
# =============================================================================


class PresenceRegistry(BaseService):
    """
    Per-identity online/offline state.

    Presence rows are created with the account (chat/signals.py); this
    registry only flips their status. It never caches: every query reads
    the latest committed row.

    Methods:
        set_online / set_offline: Idempotent status updates
        is_online: Current state of one identity
        online_among: Which of the given identities are online
        connected: All online identities
        last_seen: Last connect/disconnect instant
    """

    def set_online(self, identity: str) -> bool:
        """
        Mark an identity online.

        Args:
            identity: Account identity

        Returns:
            True if a presence row was updated, False for unknown identities
        """
        return self._set_status(identity, PresenceStatus.ONLINE)

    def set_offline(self, identity: str) -> bool:
        """
        Mark an identity offline.

        Returns:
            True if a presence row was updated, False for unknown identities
        """
        return self._set_status(identity, PresenceStatus.OFFLINE)

    def _set_status(self, identity: str, status: str) -> bool:
        now = timezone.now()
        with self.storage_errors("updating presence"):
            updated = UserPresence.objects.filter(user_id=identity).update(
                status=status,
                last_seen=now,
                updated_at=now,
            )

        if not updated:
            self.get_logger().debug(f"Ignoring presence update for unknown identity {identity}")
            return False

        self.get_logger().info(f"User {identity} is now {status}")
        return True

    def is_online(self, identity: str) -> bool:
        """Check if an identity is online. Unknown identities are offline."""
        return UserPresence.objects.filter(
            user_id=identity, status=PresenceStatus.ONLINE
        ).exists()

    def online_among(self, identities: Iterable[str]) -> set[str]:
        """Return the subset of `identities` that is currently online."""
        return set(
            UserPresence.objects.filter(
                user_id__in=list(identities), status=PresenceStatus.ONLINE
            ).values_list("user_id", flat=True)
        )

    def connected(self) -> list[str]:
        """All online identities, sorted."""
        return list(
            UserPresence.objects.filter(status=PresenceStatus.ONLINE)
            .order_by("user_id")
            .values_list("user_id", flat=True)
        )

    def last_seen(self, identity: str) -> datetime | None:
        """Last connect/disconnect instant, or None if unknown or never seen."""
        return (
            UserPresence.objects.filter(user_id=identity)
            .values_list("last_seen", flat=True)
            .first()
        )


# =============================================================================
# ConversationResolver
# =============================================================================


class ConversationResolver(BaseService):
    """
    Maps an unordered identity pair to one canonical conversation.

    The conversation key is "<lower>:<higher>" and doubles as the primary
    key, so the unique constraint on the key makes find-or-create race safe:
    the loser of a concurrent insert gets IntegrityError and re-reads.
    """

    def resolve(
        self,
        a: str,
        b: str,
        create_if_absent: bool = False,
    ) -> str | None:
        """
        Resolve the conversation id for a pair, optionally creating it.

        Args:
            a: One identity
            b: The other identity (order does not matter)
            create_if_absent: Create the conversation when missing

        Returns:
            Conversation id, or None if absent and not created

        Raises:
            ValidationError: a == b
            NotFoundError: An identity has no account (creation only)
            ConflictError: Concurrent creation kept failing
            StorageError: Database failure
        """
        if create_if_absent:
            return self.get_or_create(a, b).pk

        self._validate_pair(a, b)
        key = Conversation.key_for(a, b)
        with self.storage_errors("resolving conversation"):
            exists = Conversation.objects.filter(pk=key).exists()
        return key if exists else None

    def get_or_create(self, a: str, b: str) -> Conversation:
        """
        Find or create the conversation between two identities.

        Implementation:
            1. Canonicalize the pair (lower identity first)
            2. Return the existing row if present
            3. Insert inside a savepoint; on IntegrityError another caller
               won the race, so loop back to step 2
            4. Give up with ConflictError after MAX_CREATE_ATTEMPTS

        Returns:
            The Conversation (existing or new)
        """
        self._validate_pair(a, b)
        lower, higher = Conversation.canonical_pair(a, b)
        key = Conversation.key_for(a, b)

        with self.storage_errors("resolving conversation"):
            for attempt in range(1, CONVERSATION_CONFIG.MAX_CREATE_ATTEMPTS + 1):
                existing = Conversation.objects.filter(pk=key).first()
                if existing is not None:
                    return existing

                _accounts_by_identity([lower, higher])

                try:
                    with transaction.atomic():
                        conversation = Conversation.objects.create(
                            id=key,
                            member_lower_id=lower,
                            member_higher_id=higher,
                        )
                except IntegrityError:
                    self.get_logger().info(
                        f"Conversation {key} created concurrently "
                        f"(attempt {attempt}), retrying lookup"
                    )
                    continue

                self.get_logger().info(f"Created conversation {key}")
                return conversation

        raise ConflictError(
            "Conversation creation raced too many times",
            error_code="CONVERSATION_CONFLICT",
            details={"conversation_id": key},
        )

    def partners(self, identity: str) -> list[str]:
        """Identities that have a conversation with `identity`, sorted."""
        conversations = Conversation.objects.filter(
            Q(member_lower_id=identity) | Q(member_higher_id=identity)
        )
        return sorted(c.other_member(identity) for c in conversations)

    @staticmethod
    def _validate_pair(a: str, b: str) -> None:
        if not a or not b:
            raise ValidationError(
                "Both identities are required",
                error_code="IDENTITY_REQUIRED",
            )
        if a == b:
            raise ValidationError(
                "Cannot open a conversation with yourself",
                error_code="SAME_USER",
            )
        separator = CONVERSATION_CONFIG.KEY_SEPARATOR
        if separator in a or separator in b:
            raise ValidationError(
                f"Identities cannot contain '{separator}'",
                error_code="INVALID_IDENTITY",
            )


# =============================================================================
# MessageLedger
# =============================================================================


class MessageLedger(BaseService):
    """
    Durable record of direct messages.

    Owns the SENT -> DELIVERED -> READ state machine. Status writes go
    through django-fsm transitions saved with ConcurrentTransitionMixin, so
    a row that a concurrent caller already moved forward is skipped, never
    regressed.

    Methods:
        send: Persist a message with its presence snapshot status
        fetch_undelivered: Pull pending messages, transitioning them
        mark_read: Mark a pair's unread messages READ
        find_messages: Full history of a pair
        unread_from: Count of a sender's messages not yet READ
        contacts: Contact list with last message and unread counts
    """

    def __init__(
        self,
        presence: PresenceRegistry | None = None,
        conversations: ConversationResolver | None = None,
    ):
        self.presence = presence or PresenceRegistry()
        self.conversations = conversations or ConversationResolver()

    def send(
        self,
        sender: str,
        recipient: str,
        content: str = "",
        message_type: str = MessageType.TEXT,
        media_url: str = "",
        media_ref: str = "",
        file_name: str = "",
        file_size: int | None = None,
        mime_type: str = "",
    ) -> DirectMessage:
        """
        Persist a direct message.

        The status is snapshotted once: DELIVERED if the recipient is online
        right now, SENT otherwise. It is never re-evaluated.

        Args:
            sender: Author identity
            recipient: Addressee identity
            content: Text body (caption for media messages)
            message_type: TEXT, IMAGE, VIDEO or AUDIO
            media_url, media_ref, file_name, file_size, mime_type: Media details

        Returns:
            The persisted DirectMessage

        Raises:
            ValidationError: Malformed content or sender == recipient
            NotFoundError: Unknown sender or recipient
            StorageError: Database failure
        """
        content = content or ""
        _validate_message_body(message_type, content, media_url, media_ref)

        conversation = self.conversations.get_or_create(sender, recipient)
        status = (
            MessageStatus.DELIVERED
            if self.presence.is_online(recipient)
            else MessageStatus.SENT
        )

        with self.storage_errors("persisting direct message"):
            message = DirectMessage.objects.create(
                conversation=conversation,
                sender_id=sender,
                recipient_id=recipient,
                content=content,
                message_type=message_type,
                media_url=media_url,
                media_ref=media_ref,
                file_name=file_name,
                file_size=file_size,
                mime_type=mime_type,
                status=status,
            )

        self.get_logger().info(
            f"Stored message {message.id} from {sender} to {recipient} as {status}"
        )
        return message

    def fetch_undelivered(self, user: str) -> list[DirectMessage]:
        """
        Pull SENT messages addressed to `user` and mark them DELIVERED.

        Returns:
            Snapshots of the pending messages, still carrying status SENT,
            in arrival order. The stored rows are DELIVERED afterwards.
        """
        with self.storage_errors("fetching undelivered messages"):
            pending = list(
                DirectMessage.objects.filter(
                    recipient_id=user, status=MessageStatus.SENT
                ).order_by("created_at", "id")
            )

        snapshots = [copy.copy(message) for message in pending]

        delivered = 0
        for message in pending:
            if self._apply(message, "deliver", ["status", "updated_at"]):
                delivered += 1

        if pending:
            self.get_logger().info(
                f"Delivered {delivered}/{len(pending)} pending messages to {user}"
            )
        return snapshots

    def mark_read(self, sender: str, recipient: str) -> list[DirectMessage]:
        """
        Mark every unread message from `sender` to `recipient` as READ.

        Returns:
            Exactly the messages this call transitioned (empty on repeat)
        """
        key = self.conversations.resolve(sender, recipient)
        if key is None:
            return []

        with self.storage_errors("loading unread messages"):
            unread = list(
                DirectMessage.objects.filter(
                    conversation_id=key,
                    sender_id=sender,
                    recipient_id=recipient,
                )
                .exclude(status=MessageStatus.READ)
                .order_by("created_at", "id")
            )

        read_at = timezone.now()
        transitioned = [
            message
            for message in unread
            if self._apply(
                message,
                "mark_read",
                ["status", "read_at", "updated_at"],
                read_at=read_at,
            )
        ]

        if transitioned:
            self.get_logger().info(
                f"{recipient} read {len(transitioned)} messages from {sender}"
            )
        return transitioned

    def find_messages(self, a: str, b: str) -> list[DirectMessage]:
        """Full history between two identities in arrival order."""
        key = Conversation.key_for(a, b)
        pair = (a, b)
        return list(
            DirectMessage.objects.filter(
                conversation_id=key,
                sender_id__in=pair,
                recipient_id__in=pair,
            ).order_by("created_at", "id")
        )

    def unread_from(self, recipient: str, sender: str) -> int:
        """Count messages from `sender` to `recipient` that are not READ."""
        return (
            DirectMessage.objects.filter(sender_id=sender, recipient_id=recipient)
            .exclude(status=MessageStatus.READ)
            .count()
        )

    def contacts(self, user: str) -> list[ChatContact]:
        """
        Contact list for `user`: everyone they have a conversation with.

        Sorted by last message time, newest first; partners without
        messages come last.
        """
        partners = self.conversations.partners(user)
        if not partners:
            return []

        accounts = {
            account.username: account
            for account in get_user_model().objects.filter(username__in=partners)
        }
        presences = {
            p.user_id: p for p in UserPresence.objects.filter(user_id__in=partners)
        }

        contacts = []
        for partner in partners:
            last = (
                DirectMessage.objects.filter(
                    conversation_id=Conversation.key_for(user, partner)
                )
                .order_by("-created_at", "-id")
                .first()
            )
            presence = presences.get(partner)
            account = accounts.get(partner)
            contacts.append(
                ChatContact(
                    identity=partner,
                    display_name=account.get_full_name() if account else partner,
                    is_online=bool(presence and presence.is_online),
                    last_seen=presence.last_seen if presence else None,
                    last_message=last.preview() if last else None,
                    last_message_type=last.message_type if last else None,
                    last_message_at=last.created_at if last else None,
                    last_message_sender=last.sender_id if last else None,
                    unread_count=self.unread_from(user, partner),
                )
            )

        with_messages = sorted(
            (c for c in contacts if c.last_message_at is not None),
            key=lambda c: c.last_message_at,
            reverse=True,
        )
        without_messages = [c for c in contacts if c.last_message_at is None]
        return with_messages + without_messages

    def _apply(
        self,
        message: DirectMessage,
        transition_name: str,
        update_fields: list[str],
        **kwargs,
    ) -> bool:
        """
        Run a status transition and persist it.

        Returns:
            True if the row moved, False if a concurrent caller had already
            moved it (or the transition no longer applies)
        """
        try:
            with self.storage_errors(f"saving status of message {message.id}"):
                with transaction.atomic():
                    getattr(message, transition_name)(**kwargs)
                    message.save(update_fields=update_fields)
        except (ConcurrentTransition, TransitionNotAllowed):
            self.get_logger().info(
                f"Message {message.id} already moved past {transition_name}, skipping"
            )
            return False
        return True


# =============================================================================
# GroupRegistry
# =============================================================================


class GroupRegistry(BaseService):
    """
    Group lifecycle: creation, membership, admin roles, update, deletion.

    Empty groups are purged (messages, read cursors, group) in one
    transaction that locks the group row and re-checks membership first,
    so a concurrent add_members keeps the group alive. Media cleanup for
    purged messages is handed to Celery afterwards on a best-effort basis.
    """

    def get(self, group_id: UUID | str) -> Group | None:
        """Return the group, or None if it does not exist."""
        try:
            return Group.objects.filter(pk=group_id).first()
        except DjangoValidationError:
            # Malformed UUID
            return None

    def require(self, group_id: UUID | str) -> Group:
        """
        Return the group or raise NotFoundError.
        """
        group = self.get(group_id)
        if group is None:
            raise NotFoundError(
                "Group not found",
                error_code="GROUP_NOT_FOUND",
                details={"group_id": str(group_id)},
            )
        return group

    def create(
        self,
        creator: str,
        name: str,
        description: str = "",
        initial_members: Iterable[str] | None = None,
    ) -> Group:
        """
        Create a group.

        The creator is always a member and the only initial admin. Members
        are deduplicated.

        Raises:
            ValidationError: Blank or oversized name
            NotFoundError: Creator or a member has no account
        """
        name = self._clean_name(name)
        members = _unique([creator, *(initial_members or [])])
        _accounts_by_identity(members)

        with self.storage_errors("creating group"), self.atomic():
            group = Group.objects.create(
                name=name,
                description=(description or "").strip(),
                creator_id=creator,
            )
            GroupMembership.objects.bulk_create(
                [
                    GroupMembership(
                        group=group,
                        user_id=member,
                        is_admin=member == creator,
                    )
                    for member in members
                ]
            )

        self.get_logger().info(
            f"Created group {group.id} '{name}' by {creator} with {len(members)} members"
        )
        return group

    def add_members(
        self,
        group_id: UUID | str,
        requester: str,
        member_ids: Iterable[str],
    ) -> AddMembersResult:
        """
        Add members to a group. Any current member may invite.

        Identities that are already members are skipped.

        Raises:
            NotFoundError: Group absent (or purged concurrently), or unknown account
            PermissionDeniedError: Requester is not a member
        """
        group = self.require(group_id)
        if not group.is_member(requester):
            raise PermissionDeniedError(
                "You are not a member of this group",
                error_code="NOT_A_MEMBER",
            )

        candidates = _unique(member_ids)
        _accounts_by_identity(candidates)

        added = []
        with self.storage_errors("adding group members"), self.atomic():
            # Serializes against the emptying purge of this group
            locked = Group.objects.select_for_update().filter(pk=group.pk).first()
            if locked is None:
                raise NotFoundError(
                    "Group not found",
                    error_code="GROUP_NOT_FOUND",
                    details={"group_id": str(group.pk)},
                )
            for member in candidates:
                _, created = GroupMembership.objects.get_or_create(
                    group=locked, user_id=member
                )
                if created:
                    added.append(member)
            if added:
                locked.save(update_fields=["updated_at"])

        self.get_logger().info(
            f"{requester} added {len(added)} members to group {group.id}"
        )
        return AddMembersResult(group=locked, added=added)

    def remove_member(
        self,
        group_id: UUID | str,
        requester: str,
        member_id: str,
    ) -> LeaveResult:
        """
        Remove a member. Admins may remove anyone; members may remove themselves.

        If the group becomes empty it is purged.

        Raises:
            NotFoundError: Group absent or member_id is not a member
            PermissionDeniedError: Requester is neither admin nor member_id
        """
        group = self.require(group_id)
        if requester != member_id and not group.is_admin(requester):
            raise PermissionDeniedError(
                "You don't have permission to remove this member",
                error_code="ADMIN_REQUIRED",
            )
        if not group.is_member(member_id):
            raise NotFoundError(
                "Member not found in group",
                error_code="MEMBER_NOT_FOUND",
                details={"group_id": str(group.pk), "member_id": member_id},
            )

        result = self._remove_membership(group, member_id)
        self.get_logger().info(
            f"{requester} removed {member_id} from group {group.id}"
        )
        return result

    def leave(self, group_id: UUID | str, user: str) -> LeaveResult:
        """
        Leave a group. The last member leaving purges the group.

        Purge failures are logged, not raised: the leave itself succeeds.

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: User is not a member
        """
        group = self.require(group_id)
        if not group.is_member(user):
            raise PermissionDeniedError(
                "You are not a member of this group",
                error_code="NOT_A_MEMBER",
            )

        result = self._remove_membership(group, user)
        self.get_logger().info(f"User {user} left group {group.id}")
        return result

    def update(
        self,
        group_id: UUID | str,
        requester: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Group:
        """
        Update group name and/or description. Admin only.

        Args:
            name: New name (None leaves it unchanged, blank is rejected)
            description: New description (None leaves it unchanged, blank clears it)

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: Requester is not an admin
            ValidationError: Blank name
        """
        group = self.require(group_id)
        if not group.is_admin(requester):
            raise PermissionDeniedError(
                "Only admins can update group details",
                error_code="ADMIN_REQUIRED",
            )

        update_fields = ["updated_at"]
        if name is not None:
            group.name = self._clean_name(name)
            update_fields.append("name")
        if description is not None:
            group.description = description.strip()
            update_fields.append("description")

        with self.storage_errors("updating group"):
            group.save(update_fields=update_fields)

        self.get_logger().info(f"Group {group.id} updated by {requester}")
        return group

    def delete(self, group_id: UUID | str, requester: str) -> Group:
        """
        Delete a group with its messages and read cursors. Creator only.

        Returns:
            The deleted group (in-memory copy, for notification payloads)

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: Requester is not the creator
            StorageError: Database failure
        """
        group = self.require(group_id)
        if group.creator_id != requester:
            raise PermissionDeniedError(
                "Only the group creator can delete the group",
                error_code="CREATOR_REQUIRED",
            )

        with self.storage_errors("deleting group"), self.atomic():
            media_refs = self._collect_media_refs(group)
            self._purge(group)

        self._schedule_media_cleanup(media_refs)
        self.get_logger().info(f"Group {group.id} deleted by creator {requester}")
        return group

    def groups_for(self, user: str) -> list[GroupSummary]:
        """
        Groups `user` belongs to, with last message and unread count.

        Sorted by last message time, newest first; silent groups come last.
        """
        cursors = ReadCursorTracker(groups=self)
        groups = Group.objects.filter(memberships__user_id=user).distinct()

        summaries = []
        for group in groups:
            last = (
                GroupMessage.objects.filter(group=group)
                .order_by("-created_at", "-id")
                .first()
            )
            summaries.append(
                GroupSummary(
                    group=group,
                    member_count=group.memberships.count(),
                    last_message=last.preview() if last else None,
                    last_message_type=last.message_type if last else None,
                    last_message_at=last.created_at if last else None,
                    last_message_sender=last.sender_name if last else None,
                    unread_count=cursors.unread_count(group.pk, user),
                )
            )

        with_messages = sorted(
            (s for s in summaries if s.last_message_at is not None),
            key=lambda s: s.last_message_at,
            reverse=True,
        )
        silent = [s for s in summaries if s.last_message_at is None]
        return with_messages + silent

    def members(self, group_id: UUID | str) -> list[MemberInfo]:
        """
        Members of a group with display name, presence and roles.

        Raises:
            NotFoundError: Group absent
        """
        group = self.require(group_id)
        memberships = group.memberships.select_related(
            "user", "user__presence"
        ).order_by("user_id")

        members = []
        for membership in memberships:
            presence = getattr(membership.user, "presence", None)
            members.append(
                MemberInfo(
                    identity=membership.user_id,
                    display_name=membership.user.get_full_name(),
                    is_online=bool(presence and presence.is_online),
                    is_admin=membership.is_admin,
                    is_creator=membership.user_id == group.creator_id,
                )
            )
        return members

    # ==========================================================================
    # Internal
    # ==========================================================================

    @staticmethod
    def _clean_name(name: str | None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError(
                "Group name cannot be blank",
                error_code="NAME_REQUIRED",
            )
        if len(name) > GROUP_CONFIG.MAX_NAME_LENGTH:
            raise ValidationError(
                f"Group name exceeds {GROUP_CONFIG.MAX_NAME_LENGTH} characters",
                error_code="NAME_TOO_LONG",
            )
        return name

    def _remove_membership(self, group: Group, identity: str) -> LeaveResult:
        """Delete one membership and purge the group if it emptied."""
        with self.storage_errors("removing group member"), self.atomic():
            GroupMembership.objects.filter(group=group, user_id=identity).delete()
            remaining = GroupMembership.objects.filter(group=group).exists()
            if remaining:
                Group.objects.filter(pk=group.pk).update(updated_at=timezone.now())

        if remaining:
            return LeaveResult(group=group, deleted=False)

        return LeaveResult(group=group, deleted=self._purge_if_empty(group))

    def _purge_if_empty(self, group: Group) -> bool:
        """
        Purge a group that has just lost its last member.

        Locks the group row and re-checks membership; if a concurrent
        add_members landed in between, the purge is abandoned.

        Returns:
            True if the group no longer exists afterwards
        """
        try:
            with transaction.atomic():
                locked = Group.objects.select_for_update().filter(pk=group.pk).first()
                if locked is None:
                    self.get_logger().info(f"Group {group.id} already deleted")
                    return True
                if GroupMembership.objects.filter(group=locked).exists():
                    self.get_logger().warning(
                        f"Group {group.id} gained members before purge, keeping it"
                    )
                    return False
                media_refs = self._collect_media_refs(locked)
                self._purge(locked)
        except DatabaseError:
            self.get_logger().exception(f"Failed to purge empty group {group.id}")
            return False

        self._schedule_media_cleanup(media_refs)
        self.get_logger().info(f"Group {group.id} deleted as last member left")
        return True

    @staticmethod
    def _collect_media_refs(group: Group) -> list[str]:
        return list(
            GroupMessage.objects.filter(group=group)
            .exclude(media_ref="")
            .values_list("media_ref", flat=True)
        )

    def _purge(self, group: Group) -> None:
        """Delete messages, read cursors and the group row, in that order."""
        messages, _ = GroupMessage.objects.filter(group_id=group.pk).delete()
        self.get_logger().debug(f"Deleted {messages} messages from group {group.id}")

        cursors, _ = ReadCursor.objects.filter(group_id=group.pk).delete()
        self.get_logger().debug(f"Deleted {cursors} read cursors for group {group.id}")

        Group.objects.filter(pk=group.pk).delete()

    def _schedule_media_cleanup(self, media_refs: list[str]) -> None:
        """Queue deletion of stored media. Failures are logged only."""
        if not media_refs:
            return

        from chat.tasks import delete_media_files

        try:
            delete_media_files.delay(media_refs)
        except Exception:
            self.get_logger().exception(
                f"Failed to queue cleanup of {len(media_refs)} media files"
            )


# =============================================================================
# GroupMessageLedger
# =============================================================================


class GroupMessageLedger(BaseService):
    """
    Durable record of group messages, including SYSTEM audit entries.

    SYSTEM entries (type SYSTEM or the "SYSTEM" sender sentinel) bypass the
    membership check and are stored without a sender account.
    """

    def __init__(self, groups: GroupRegistry | None = None):
        self.groups = groups or GroupRegistry()

    def save(
        self,
        group_id: UUID | str,
        sender: str,
        content: str = "",
        message_type: str = MessageType.TEXT,
        media_url: str = "",
        media_ref: str = "",
        file_name: str = "",
        file_size: int | None = None,
        mime_type: str = "",
        created_at: datetime | None = None,
    ) -> GroupMessage:
        """
        Persist a group message.

        Args:
            group_id: Target group
            sender: Author identity, or GROUP_CONFIG.SYSTEM_SENDER_ID
            content: Text body (caption for media messages)
            message_type: TEXT, IMAGE, VIDEO, AUDIO or SYSTEM
            created_at: Message timestamp (defaults to now)

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: Sender is not a member (non-SYSTEM only)
            ValidationError: Malformed content
        """
        group = self.groups.require(group_id)
        content = content or ""

        is_system = (
            message_type == MessageType.SYSTEM
            or sender == GROUP_CONFIG.SYSTEM_SENDER_ID
        )
        if is_system:
            if not content.strip():
                raise ValidationError(
                    "System entries need content",
                    error_code="CONTENT_REQUIRED",
                )
            sender_id = None
            sender_name = GROUP_CONFIG.SYSTEM_SENDER_NAME
            message_type = MessageType.SYSTEM
        else:
            if not group.is_member(sender):
                raise PermissionDeniedError(
                    "You are not a member of this group",
                    error_code="NOT_A_MEMBER",
                )
            _validate_message_body(message_type, content, media_url, media_ref)
            sender_id = sender
            sender_name = display_name(sender)

        with self.storage_errors("persisting group message"):
            message = GroupMessage.objects.create(
                group=group,
                sender_id=sender_id,
                sender_name=sender_name,
                content=content,
                message_type=message_type,
                media_url=media_url,
                media_ref=media_ref,
                file_name=file_name,
                file_size=file_size,
                mime_type=mime_type,
                created_at=created_at or timezone.now(),
            )

        self.get_logger().debug(
            f"Stored {message_type} message {message.id} in group {group.id}"
        )
        return message

    def system(self, group_id: UUID | str, text: str) -> GroupMessage:
        """Append a SYSTEM audit entry to a group."""
        return self.save(
            group_id,
            GROUP_CONFIG.SYSTEM_SENDER_ID,
            text,
            message_type=MessageType.SYSTEM,
        )

    def list_messages(self, group_id: UUID | str, requester: str) -> list[GroupMessage]:
        """
        Full group history, oldest first. Members only.

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: Requester is not a member
        """
        group = self.groups.require(group_id)
        if not group.is_member(requester):
            raise PermissionDeniedError(
                "You are not a member of this group",
                error_code="NOT_A_MEMBER",
            )
        return list(group.messages.order_by("created_at", "id"))

    def last_message(self, group_id: UUID | str) -> GroupMessage | None:
        """Newest message of a group, or None."""
        group = self.groups.get(group_id)
        if group is None:
            return None
        return group.messages.order_by("-created_at", "-id").first()


# =============================================================================
# ReadCursorTracker
# =============================================================================


class ReadCursorTracker(BaseService):
    """
    Per (user, group) last-read markers and unread counts.

    Unread rules:
        - No cursor: every message in the group is unread
        - Cursor: messages after last_read_at not sent by the user
        - SYSTEM entries have no sender, so they always count
    """

    def __init__(self, groups: GroupRegistry | None = None):
        self.groups = groups or GroupRegistry()

    def mark_read(self, group_id: UUID | str, user: str) -> ReadCursor:
        """
        Move the user's cursor to now. The cursor never moves backwards.

        Raises:
            NotFoundError: Group absent
            PermissionDeniedError: User is not a member
        """
        group = self.groups.require(group_id)
        if not group.is_member(user):
            raise PermissionDeniedError(
                "You are not a member of this group",
                error_code="NOT_A_MEMBER",
            )

        now = timezone.now()
        with self.storage_errors("updating read cursor"):
            cursor, created = ReadCursor.objects.get_or_create(
                user_id=user,
                group=group,
                defaults={"last_read_at": now},
            )
            if not created and cursor.last_read_at < now:
                ReadCursor.objects.filter(
                    pk=cursor.pk, last_read_at__lt=now
                ).update(last_read_at=now, updated_at=now)
                cursor.last_read_at = now

        self.get_logger().debug(f"User {user} marked group {group.id} as read")
        return cursor

    def unread_count(self, group_id: UUID | str, user: str) -> int:
        """Unread messages for `user` in a group (0 if the group is absent)."""
        group = self.groups.get(group_id)
        if group is None:
            return 0

        messages = GroupMessage.objects.filter(group=group)
        cursor = ReadCursor.objects.filter(group=group, user_id=user).first()
        if cursor is None:
            return messages.count()

        return (
            messages.filter(created_at__gt=cursor.last_read_at)
            .exclude(sender_id=user)
            .count()
        )

    def last_read_at(self, group_id: UUID | str, user: str) -> datetime | None:
        """Cursor position, or None if the user never read the group."""
        try:
            return (
                ReadCursor.objects.filter(group_id=group_id, user_id=user)
                .values_list("last_read_at", flat=True)
                .first()
            )
        except DjangoValidationError:
            return None
