import json

import httpx
import pytest

from storefront.channel.port import ChannelNotConnected
from storefront.channel.registry import CONNECTED, DISCONNECTED, FAILED, ChannelRegistry
from storefront.db.models import ChannelConnection


class FakeGraphApi:
    """Stands in for the provider's HTTP API."""

    def __init__(self, known=("PN1",)):
        self.known = set(known)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # /v19.0/<phone_number_id>[/messages]
        phone_number_id = request.url.path.strip("/").split("/")[1]
        if phone_number_id not in self.known:
            return httpx.Response(404, json={"error": "unknown number"})
        if request.method == "GET":
            return httpx.Response(200, json={"id": phone_number_id})
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})


@pytest.fixture()
def api():
    return FakeGraphApi()


@pytest.fixture()
def registry(session_factory, api):
    registry = ChannelRegistry(session_factory, api_base="https://graph.test/v19.0", token="tkn",
                               transport=httpx.MockTransport(api))
    yield registry
    registry.stop()


class TestConnect:
    def test_connect_persists_and_sends(self, registry, api, session_factory, seed):
        registry.connect(seed.business_id, "PN1")

        assert registry.status(seed.business_id)["status"] == CONNECTED
        with session_factory() as s:
            row = s.get(ChannelConnection, seed.business_id)
            assert (row.enabled, row.status) == (True, CONNECTED)
            assert row.last_connected_at is not None

        registry.send_message(seed.business_id, "+584141234567", "hola")
        sent = api.requests[-1]
        assert sent.method == "POST"
        assert sent.url.path == "/v19.0/PN1/messages"
        assert sent.headers["Authorization"] == "Bearer tkn"
        assert json.loads(sent.content)["text"] == {"body": "hola"}

    def test_failed_handshake_is_recorded(self, registry, session_factory, seed):
        registry.connect(seed.business_id, "UNKNOWN")

        status = registry.status(seed.business_id)
        assert status["status"] == FAILED
        assert status["last_error"]
        with pytest.raises(ChannelNotConnected):
            registry.send_message(seed.business_id, "+58", "hola")

    def test_send_without_connection(self, registry, seed):
        with pytest.raises(ChannelNotConnected):
            registry.send_message(seed.business_id, "+58", "hola")


class TestLifecycle:
    def test_start_restores_enabled_connections(self, session_factory, api, seed):
        first = ChannelRegistry(session_factory, "https://graph.test/v19.0", "tkn", transport=httpx.MockTransport(api))
        first.connect(seed.business_id, "PN1")
        first.stop()

        second = ChannelRegistry(session_factory, "https://graph.test/v19.0", "tkn", transport=httpx.MockTransport(api))
        second.start()
        try:
            assert second.status(seed.business_id)["connected"] is True
        finally:
            second.stop()

    def test_disconnect_is_not_restored(self, session_factory, registry, api, seed):
        registry.connect(seed.business_id, "PN1")
        registry.disconnect(seed.business_id)
        assert registry.status(seed.business_id)["status"] == DISCONNECTED

        fresh = ChannelRegistry(session_factory, "https://graph.test/v19.0", "tkn", transport=httpx.MockTransport(api))
        fresh.start()
        try:
            assert fresh.status(seed.business_id)["connected"] is False
        finally:
            fresh.stop()
