"""
Authentication application.

This app provides the account model the chat core addresses by identity.
Credentials are validated upstream; this app only stores accounts.

Key components:
    - User model: Custom username-based user (the username is the identity)
    - UserManager: Account creation helpers

Usage:
    from authentication.models import User

    User.objects.create_user(username="alice", full_name="Alice Liddell")
"""
