"""
Tests for ChannelLayerTransport.

Uses Channels' in-memory channel layer so that pushes can be received back
without a Redis server.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer

from chat.transport import ChannelLayerTransport, user_group_name


@pytest.fixture
def layer():
    return InMemoryChannelLayer()


def _join(layer, group):
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(group, channel)
    return channel


class TestChannelLayerTransport:
    """Tests for private and public pushes."""

    def test_user_group_name(self):
        assert user_group_name("alice") == "user.alice"

    def test_send_reaches_private_group(self, layer):
        channel = _join(layer, "user.alice")
        transport = ChannelLayerTransport(channel_layer=layer)

        transport.send("alice", {"kind": "message", "content": "hi"})

        event = async_to_sync(layer.receive)(channel)
        assert event == {
            "type": "push.event",
            "payload": {"kind": "message", "content": "hi"},
        }

    def test_broadcast_reaches_public_group(self, layer):
        first = _join(layer, "public")
        second = _join(layer, "public")
        transport = ChannelLayerTransport(channel_layer=layer)

        transport.broadcast_public({"kind": "presence", "identity": "bob"})

        for channel in (first, second):
            event = async_to_sync(layer.receive)(channel)
            assert event["payload"]["identity"] == "bob"

    def test_defaults_to_configured_layer(self, settings):
        settings.CHANNEL_LAYERS = {
            "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
        }

        assert ChannelLayerTransport().channel_layer is not None

    def test_missing_layer_drops_push(self, monkeypatch):
        monkeypatch.setattr("chat.transport.get_channel_layer", lambda: None)

        ChannelLayerTransport().send("alice", {"kind": "message"})

    def test_layer_errors_propagate(self):
        layer = MagicMock()
        layer.group_send = AsyncMock(side_effect=ConnectionError("redis down"))

        with pytest.raises(ConnectionError):
            ChannelLayerTransport(channel_layer=layer).send("alice", {"kind": "message"})
