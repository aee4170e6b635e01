"""
Tests for BaseService utilities and the PushTransport protocol.

Verifies:
- Per-service logger names
- storage_errors translates database failures only
- atomic rolls back on failure
- Transport implementations satisfy PushTransport
"""

import pytest
from django.db import DatabaseError

from core.exceptions import NotFoundError, StorageError
from core.protocols import PushTransport
from core.services import BaseService


class ExampleService(BaseService):
    pass


class TestBaseService:
    """Tests for BaseService helpers."""

    def test_logger_named_after_service(self):
        assert ExampleService.get_logger().name.endswith("ExampleService")

    def test_storage_errors_wraps_database_error(self):
        with pytest.raises(StorageError) as exc_info:
            with ExampleService.storage_errors("saving"):
                raise DatabaseError("connection lost")

        assert exc_info.value.message == "Storage failure while saving"
        assert isinstance(exc_info.value.__cause__, DatabaseError)

    def test_storage_errors_passes_application_errors(self):
        with pytest.raises(NotFoundError):
            with ExampleService.storage_errors("loading"):
                raise NotFoundError("Group not found")

    def test_atomic_rolls_back(self, db):
        from authentication.models import User

        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                User.objects.create_user(username="rolled_back")
                raise RuntimeError("abort")

        assert not User.objects.filter(username="rolled_back").exists()


class TestPushTransportProtocol:
    """Transport implementations are structural PushTransports."""

    def test_channel_layer_transport_satisfies_protocol(self):
        from chat.transport import ChannelLayerTransport

        assert isinstance(ChannelLayerTransport(), PushTransport)

    def test_object_without_broadcast_does_not(self):
        class SendOnly:
            def send(self, identity, payload):
                pass

        assert not isinstance(SendOnly(), PushTransport)
