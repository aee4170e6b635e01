"""
Authentication models.

This module defines the account model the chat core addresses by identity:
- User: Custom user model with username-based identity (slim, auth-focused)

Related files:
    - managers.py: Custom user manager for username-based creation
    - chat/signals.py: Auto-create presence record on user creation

Identity:
    The username is the identity used everywhere in the chat core (presence,
    conversation keys, group membership, channel-layer group names). It is
    restricted to letters, digits, underscores and hyphens so that it can be
    embedded in conversation keys and channel names unambiguously.
"""

import re

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.core.exceptions import ValidationError
from django.db import models

from authentication.managers import UserManager


# Reserved usernames that cannot be used
RESERVED_USERNAMES = frozenset([
    "admin", "administrator", "root", "system", "api", "www",
    "support", "help", "info", "contact", "security", "account",
    "login", "logout", "register", "auth", "null", "undefined",
    "anonymous", "guest", "public", "staff", "mod", "moderator",
    "bot", "robot", "service", "notification",
])

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")


def validate_username_not_reserved(value):
    """Validate that username is not in the reserved list."""
    if value.lower() in RESERVED_USERNAMES:
        raise ValidationError(
            f"The username '{value}' is reserved and cannot be used."
        )


def validate_username_format(value):
    """Validate username format: 3-30 chars, alphanumeric + _ + -."""
    if not USERNAME_PATTERN.match(value):
        raise ValidationError(
            "Username must be 3-30 characters and contain only "
            "letters, numbers, underscores, and hyphens."
        )


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using username as the primary identifier.

    Fields:
        username: Identity used by the chat core, unique
        full_name: Display name shown in system messages and contact lists
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(
            username="alice",
            password="securepassword",
            full_name="Alice Liddell",
        )
    """

    username = models.CharField(
        max_length=30,
        unique=True,
        validators=[validate_username_format, validate_username_not_reserved],
        help_text="Unique identity (3-30 chars, alphanumeric + _ + -)",
    )

    full_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name (falls back to username when blank)",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "username"

    # Username is automatically required since it's the USERNAME_FIELD
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["username"]

    def __str__(self):
        """Return the username as string representation."""
        return self.username

    def get_full_name(self):
        """
        Return the display name.

        Returns:
            str: full_name, or username if no name set.
        """
        return self.full_name or self.username

    def get_short_name(self):
        """Return the first word of the display name."""
        return self.get_full_name().split(" ")[0]
