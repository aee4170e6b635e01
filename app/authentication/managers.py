"""
Custom user manager for username-based identities.

This module provides the UserManager class that handles user creation
with username as the primary identifier.

Related files:
    - models.py: User model that uses this manager

Security:
    - Passwords are automatically hashed via set_password()
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Custom manager for User model with username-based identity.

    Note:
        A UserPresence record is auto-created via chat signals, so every
        account has exactly one presence row from the start.
    """

    def create_user(self, username, password=None, **extra_fields):
        """
        Create and save a regular user with the given username and password.

        Args:
            username: Identity (required)
            password: User's password (optional for externally authenticated users)
            **extra_fields: Additional fields to set on the user

        Returns:
            User: The created user instance

        Raises:
            ValueError: If username is not provided
            django.core.exceptions.ValidationError: If username fails the
                format or reserved-name validators
        """
        if not username:
            raise ValueError("The Username field must be set")

        # Usernames are conversation key components; ":" must never get in
        self.model._meta.get_field("username").run_validators(username)

        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        user = self.model(username=username, **extra_fields)

        if password:
            user.set_password(password)
        else:
            # Credentials are validated upstream for these accounts
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, username, password=None, **extra_fields):
        """
        Create and save a superuser with the given username and password.

        Raises:
            ValueError: If is_staff or is_superuser is not True
        """
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(username, password, **extra_fields)
