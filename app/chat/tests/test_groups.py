"""
Tests for GroupRegistry.

This module tests group lifecycle and membership:
- create: Name validation, member deduplication, creator as admin
- add_members / remove_member / leave: Membership changes and permissions
- update / delete: Admin and creator checks
- Empty-group purge: messages, read cursors and group removed together
- groups_for / members: Read side

Testing Philosophy:
    Tests focus on observable behavior:
    - Raised error types and codes for each failure mode
    - Database state after each operation
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationError

from chat.models import Group, GroupMembership, GroupMessage, MessageType, ReadCursor
from chat.services import GroupRegistry
from chat.tests.factories import GroupMessageFactory


# =============================================================================
# create
# =============================================================================


class TestCreate:
    """Tests for GroupRegistry.create()."""

    def test_creator_is_member_and_only_admin(self, groups, carol, dave):
        group = groups.create("carol", "Book Club", "Monthly reads", ["dave"])

        assert group.name == "Book Club"
        assert group.description == "Monthly reads"
        assert group.creator_id == "carol"
        assert group.member_ids() == ["carol", "dave"]
        assert group.admin_ids() == ["carol"]

    def test_members_are_deduplicated(self, groups, carol, dave):
        group = groups.create("carol", "Dupes", initial_members=["dave", "dave", "carol"])

        assert GroupMembership.objects.filter(group=group).count() == 2

    def test_creator_alone(self, groups, carol):
        group = groups.create("carol", "Solo")

        assert group.member_ids() == ["carol"]

    def test_name_is_stripped(self, groups, carol):
        group = groups.create("carol", "  Padded  ")

        assert group.name == "Padded"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name_rejected(self, groups, carol, name):
        with pytest.raises(ValidationError) as exc_info:
            groups.create("carol", name)

        assert exc_info.value.error_code == "NAME_REQUIRED"
        assert not Group.objects.exists()

    def test_oversized_name_rejected(self, groups, carol):
        with pytest.raises(ValidationError) as exc_info:
            groups.create("carol", "x" * 101)

        assert exc_info.value.error_code == "NAME_TOO_LONG"

    def test_unknown_member_rejected(self, groups, carol):
        with pytest.raises(NotFoundError):
            groups.create("carol", "Ghosts", initial_members=["ghost"])

        assert not Group.objects.exists()


# =============================================================================
# get / require
# =============================================================================


class TestLookup:
    """Tests for GroupRegistry.get() and require()."""

    def test_get_returns_group(self, groups, carol_group):
        assert groups.get(carol_group.pk) == carol_group
        assert groups.get(str(carol_group.pk)) == carol_group

    def test_get_missing_or_malformed_returns_none(self, groups, db):
        assert groups.get("00000000-0000-0000-0000-000000000000") is None
        assert groups.get("not-a-uuid") is None

    def test_require_raises_not_found(self, groups, db):
        with pytest.raises(NotFoundError) as exc_info:
            groups.require("not-a-uuid")

        assert exc_info.value.error_code == "GROUP_NOT_FOUND"


# =============================================================================
# add_members
# =============================================================================


class TestAddMembers:
    """Tests for GroupRegistry.add_members()."""

    def test_any_member_can_add(self, groups, carol_group, erin):
        result = groups.add_members(carol_group.pk, "dave", ["erin"])

        assert result.added == ["erin"]
        assert carol_group.is_member("erin") is True
        assert carol_group.is_admin("erin") is False

    def test_existing_members_are_skipped(self, groups, carol_group, erin):
        result = groups.add_members(carol_group.pk, "carol", ["dave", "erin", "erin"])

        assert result.added == ["erin"]
        assert GroupMembership.objects.filter(group=carol_group).count() == 3

    def test_non_member_cannot_add(self, groups, carol_group, erin, alice):
        """
        Only members may invite.

        Why it matters: outsiders must not be able to join themselves or
        others to a private group.
        """
        with pytest.raises(PermissionDeniedError) as exc_info:
            groups.add_members(carol_group.pk, "erin", ["alice"])

        assert exc_info.value.error_code == "NOT_A_MEMBER"
        assert not carol_group.is_member("alice")

    def test_missing_group(self, groups, carol):
        with pytest.raises(NotFoundError):
            groups.add_members("00000000-0000-0000-0000-000000000000", "carol", ["carol"])

    def test_unknown_account(self, groups, carol_group):
        with pytest.raises(NotFoundError) as exc_info:
            groups.add_members(carol_group.pk, "carol", ["ghost"])

        assert exc_info.value.error_code == "ACCOUNT_NOT_FOUND"

    def test_group_purged_before_lock_raises_not_found(self, groups, carol_group, erin):
        """An add that loses the race with the emptying purge fails cleanly."""
        real_require = groups.require

        def require_then_purge(group_id):
            group = real_require(group_id)
            Group.objects.filter(pk=group.pk).delete()
            return group

        with patch.object(groups, "require", side_effect=require_then_purge):
            with patch.object(Group, "is_member", return_value=True):
                with pytest.raises(NotFoundError):
                    groups.add_members(carol_group.pk, "carol", ["erin"])

        assert not GroupMembership.objects.filter(user_id="erin").exists()


# =============================================================================
# remove_member
# =============================================================================


class TestRemoveMember:
    """Tests for GroupRegistry.remove_member()."""

    def test_admin_removes_member(self, groups, carol_group):
        result = groups.remove_member(carol_group.pk, "carol", "dave")

        assert result.deleted is False
        assert carol_group.member_ids() == ["carol"]

    def test_member_removes_self(self, groups, carol_group):
        result = groups.remove_member(carol_group.pk, "dave", "dave")

        assert result.deleted is False
        assert not carol_group.is_member("dave")

    def test_member_cannot_remove_others(self, groups, carol_group):
        with pytest.raises(PermissionDeniedError) as exc_info:
            groups.remove_member(carol_group.pk, "dave", "carol")

        assert exc_info.value.error_code == "ADMIN_REQUIRED"
        assert carol_group.is_member("carol")

    def test_removing_non_member(self, groups, carol_group, erin):
        with pytest.raises(NotFoundError) as exc_info:
            groups.remove_member(carol_group.pk, "carol", "erin")

        assert exc_info.value.error_code == "MEMBER_NOT_FOUND"

    def test_removing_last_member_purges_group(self, groups, carol):
        group = groups.create("carol", "Solo")

        result = groups.remove_member(group.pk, "carol", "carol")

        assert result.deleted is True
        assert not Group.objects.filter(pk=group.pk).exists()


# =============================================================================
# leave
# =============================================================================


class TestLeave:
    """Tests for GroupRegistry.leave()."""

    def test_leave_two_member_group_keeps_group(self, groups, carol_group):
        """
        leave() on a 2-member group leaves 1 member and an intact group.
        """
        GroupMessageFactory(group=carol_group, sender=carol_group.creator)

        result = groups.leave(carol_group.pk, "dave")

        assert result.deleted is False
        assert Group.objects.filter(pk=carol_group.pk).exists()
        assert carol_group.member_ids() == ["carol"]
        assert GroupMessage.objects.filter(group_id=carol_group.pk).count() == 1

    def test_last_member_leaving_purges_everything(self, groups, cursors, carol):
        """
        leave() on a 1-member group deletes group, messages and read cursors.

        Why it matters: an empty group must not linger with orphaned history.
        """
        group = groups.create("carol", "Solo")
        GroupMessageFactory(group=group, sender=group.creator)
        GroupMessageFactory(group=group, system=True)
        cursors.mark_read(group.pk, "carol")

        result = groups.leave(group.pk, "carol")

        assert result.deleted is True
        assert result.group.pk == group.pk
        assert not Group.objects.filter(pk=group.pk).exists()
        assert not GroupMessage.objects.filter(group_id=group.pk).exists()
        assert not ReadCursor.objects.filter(group_id=group.pk).exists()

    def test_non_member_cannot_leave(self, groups, carol_group, erin):
        with pytest.raises(PermissionDeniedError):
            groups.leave(carol_group.pk, "erin")

    def test_missing_group(self, groups, carol):
        with pytest.raises(NotFoundError):
            groups.leave("00000000-0000-0000-0000-000000000000", "carol")

    def test_purge_aborts_when_member_added_concurrently(self, groups, carol, dave):
        """
        A member added between the emptiness check and the purge keeps the group.

        Why it matters: an add_members racing the last leave must not lose
        the new member's group.
        """
        group = groups.create("carol", "Race")
        real_purge_if_empty = groups._purge_if_empty

        def add_then_purge(target):
            GroupMembership.objects.create(group=target, user_id="dave")
            return real_purge_if_empty(target)

        with patch.object(groups, "_purge_if_empty", side_effect=add_then_purge):
            result = groups.leave(group.pk, "carol")

        assert result.deleted is False
        assert group.member_ids() == ["dave"]

    def test_purge_failure_is_logged_not_raised(self, groups, carol):
        """
        A failing purge does not fail the leave itself.
        """
        group = groups.create("carol", "Broken")

        with patch.object(groups, "_purge", side_effect=DatabaseError("disk full")):
            result = groups.leave(group.pk, "carol")

        assert result.deleted is False
        assert not GroupMembership.objects.filter(group_id=group.pk).exists()

    def test_media_cleanup_queued_after_purge(self, groups, carol):
        group = groups.create("carol", "Media")
        GroupMessageFactory(
            group=group,
            sender=group.creator,
            message_type=MessageType.IMAGE,
            content="",
            media_ref="chat/cat.jpg",
        )
        GroupMessageFactory(group=group, sender=group.creator)

        with patch("chat.tasks.delete_media_files.delay") as mock_delay:
            groups.leave(group.pk, "carol")

        mock_delay.assert_called_once_with(["chat/cat.jpg"])

    def test_media_cleanup_queue_failure_is_swallowed(self, groups, carol):
        group = groups.create("carol", "Media")
        GroupMessageFactory(group=group, sender=group.creator, media_ref="chat/a.mp3")

        with patch(
            "chat.tasks.delete_media_files.delay",
            side_effect=ConnectionError("broker down"),
        ):
            result = groups.leave(group.pk, "carol")

        assert result.deleted is True


# =============================================================================
# update
# =============================================================================


class TestUpdate:
    """Tests for GroupRegistry.update()."""

    def test_admin_updates_name_and_description(self, groups, carol_group):
        group = groups.update(carol_group.pk, "carol", name="Film Club", description="Weekly")

        group.refresh_from_db()
        assert group.name == "Film Club"
        assert group.description == "Weekly"

    def test_blank_description_clears_it(self, groups, carol_group):
        group = groups.update(carol_group.pk, "carol", description="  ")

        group.refresh_from_db()
        assert group.description == ""
        assert group.name == "Book Club"

    def test_blank_name_rejected(self, groups, carol_group):
        with pytest.raises(ValidationError):
            groups.update(carol_group.pk, "carol", name=" ")

    def test_non_admin_cannot_update(self, groups, carol_group):
        with pytest.raises(PermissionDeniedError) as exc_info:
            groups.update(carol_group.pk, "dave", name="Hijacked")

        assert exc_info.value.error_code == "ADMIN_REQUIRED"
        carol_group.refresh_from_db()
        assert carol_group.name == "Book Club"


# =============================================================================
# delete
# =============================================================================


class TestDelete:
    """Tests for GroupRegistry.delete()."""

    def test_creator_deletes_group_and_history(self, groups, cursors, carol_group):
        GroupMessageFactory(group=carol_group, sender=carol_group.creator)
        cursors.mark_read(carol_group.pk, "dave")

        deleted = groups.delete(carol_group.pk, "carol")

        assert deleted.pk == carol_group.pk
        assert not Group.objects.filter(pk=carol_group.pk).exists()
        assert not GroupMessage.objects.filter(group_id=carol_group.pk).exists()
        assert not ReadCursor.objects.filter(group_id=carol_group.pk).exists()
        assert not GroupMembership.objects.filter(group_id=carol_group.pk).exists()

    def test_only_creator_can_delete(self, groups, carol_group):
        """
        Admin rights are not enough to delete a group.
        """
        GroupMembership.objects.filter(group=carol_group, user_id="dave").update(
            is_admin=True
        )

        with pytest.raises(PermissionDeniedError) as exc_info:
            groups.delete(carol_group.pk, "dave")

        assert exc_info.value.error_code == "CREATOR_REQUIRED"
        assert Group.objects.filter(pk=carol_group.pk).exists()


# =============================================================================
# Read side
# =============================================================================


class TestGroupsFor:
    """Tests for GroupRegistry.groups_for()."""

    def test_sorted_by_last_activity(self, groups, carol, dave):
        quiet = groups.create("carol", "Quiet")
        older = groups.create("carol", "Older", initial_members=["dave"])
        newer = groups.create("carol", "Newer")
        start = timezone.now()
        GroupMessageFactory(group=older, sender=carol, content="old", created_at=start)
        GroupMessageFactory(
            group=newer,
            sender=carol,
            content="new",
            created_at=start + timedelta(minutes=1),
        )

        summaries = groups.groups_for("carol")

        assert [s.group.pk for s in summaries] == [newer.pk, older.pk, quiet.pk]
        assert summaries[0].last_message == "new"
        assert summaries[0].last_message_sender == "Carol Danvers"
        assert summaries[1].member_count == 2
        assert summaries[2].last_message is None

    def test_unread_count_per_group(self, groups, cursors, carol_group):
        with freeze_time("2024-05-01 09:00:00"):
            GroupMessageFactory(group=carol_group, sender=carol_group.creator)
            cursors.mark_read(carol_group.pk, "dave")
        with freeze_time("2024-05-01 10:00:00"):
            GroupMessageFactory(group=carol_group, sender=carol_group.creator)

        [summary] = groups.groups_for("dave")

        assert summary.unread_count == 1

    def test_non_member_sees_nothing(self, groups, carol_group, erin):
        assert groups.groups_for("erin") == []


class TestMembers:
    """Tests for GroupRegistry.members()."""

    def test_lists_roles_and_presence(self, groups, presence, carol_group):
        presence.set_online("dave")

        members = groups.members(carol_group.pk)

        assert [m.identity for m in members] == ["carol", "dave"]
        carol_info, dave_info = members
        assert carol_info.is_admin is True
        assert carol_info.is_creator is True
        assert carol_info.display_name == "Carol Danvers"
        assert dave_info.is_admin is False
        assert dave_info.is_creator is False
        assert dave_info.is_online is True
