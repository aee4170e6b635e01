"""
Test configuration and fixtures for authentication tests.

This module provides:
- Reusable user fixtures for common test scenarios

Usage:
    def test_example(user):
        assert user.presence.status == "OFFLINE"
"""

import pytest

from authentication.models import User
from authentication.tests.factories import UserFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """
    Create a basic active user.

    The presence record is automatically created via chat signals.
    """
    return UserFactory(full_name="Test User")


@pytest.fixture
def superuser(db):
    """Create a superuser with admin privileges."""
    return User.objects.create_superuser(
        username="superadmin",
        password="AdminPass123!",
    )
