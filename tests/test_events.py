"""Tests for the SignalR event subscription."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable
from urllib.parse import parse_qs, urlsplit

import pytest

from safeguardpy.events import (
    CLOSE,
    INVOCATION,
    NOTIFY_EVENT,
    PING,
    RECORD_SEPARATOR,
    EventSubscription,
    encode_message,
    split_messages,
)


HOST = "sg.example.com"
NEGOTIATE_PATH = "/service/event/signalr/negotiate"
HANDSHAKE_OK = "{}" + RECORD_SEPARATOR


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """Async-context-manager websocket fed from a queue of frames."""

    def __init__(self, *frames: str) -> None:
        self.frames: asyncio.Queue[str] = asyncio.Queue()
        for frame in frames:
            self.frames.put_nowait(frame)
        self.sent: list[str] = []

    async def __aenter__(self) -> "FakeWebSocket":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> str:
        return await self.frames.get()


class FakeHub:
    """Replacement for websockets' connect(); hands out sockets in order."""

    def __init__(self, *sockets: FakeWebSocket) -> None:
        self.sockets = list(sockets)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if not self.sockets:
            raise ConnectionError("hub unavailable")
        return self.sockets.pop(0)


def _event(message: str, **data: Any) -> str:
    return encode_message(
        {
            "type": INVOCATION,
            "target": NOTIFY_EVENT,
            "arguments": [{"Message": message, "Data": data}],
        }
    )


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def hub_factory(monkeypatch: pytest.MonkeyPatch) -> Callable[..., FakeHub]:
    def install(*sockets: FakeWebSocket) -> FakeHub:
        hub = FakeHub(*sockets)
        monkeypatch.setattr("safeguardpy.events.connect", hub)
        return hub

    return install


@pytest.fixture(autouse=True)
def _fast_reconnect(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("safeguardpy.events.RECONNECT_DELAYS", (0,))


@pytest.fixture
def negotiating(appliance):
    appliance.on("POST", NEGOTIATE_PATH, json={"connectionToken": "ct-1", "negotiateVersion": 1})
    return appliance


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


class TestFraming:
    def test_encode_appends_separator(self) -> None:
        assert encode_message({"type": PING}) == '{"type": 6}\x1e'

    def test_split_multiple_messages(self) -> None:
        frame = encode_message({"type": PING}) + encode_message({"type": CLOSE})
        assert split_messages(frame) == [{"type": PING}, {"type": CLOSE}]

    def test_split_bytes(self) -> None:
        assert split_messages(b'{"type": 6}\x1e') == [{"type": PING}]

    def test_split_ignores_blank_parts(self) -> None:
        assert split_messages("\x1e \x1e") == []


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreaming:
    async def test_delivers_events(self, negotiating, invoker, hub_factory) -> None:
        socket = FakeWebSocket(HANDSHAKE_OK, _event("UserCreated", UserId=5))
        hub = hub_factory(socket)
        received: list[Any] = []

        subscription = EventSubscription(HOST, lambda: "usr", received.append, invoker)
        subscription.start()
        await _wait_until(lambda: received)
        await subscription.close()

        assert received == [{"Message": "UserCreated", "Data": {"UserId": 5}}]
        assert json.loads(socket.sent[0].rstrip(RECORD_SEPARATOR)) == {"protocol": "json", "version": 1}

        url, kwargs = hub.calls[0]
        parts = urlsplit(url)
        assert (parts.scheme, parts.netloc, parts.path) == ("wss", HOST, "/service/event/signalr")
        assert parse_qs(parts.query) == {"id": ["ct-1"], "access_token": ["usr"]}
        assert kwargs["additional_headers"] == {"Authorization": "Bearer usr"}

        negotiate = negotiating.calls("POST", NEGOTIATE_PATH)[0]
        assert negotiate.url.params["negotiateVersion"] == "1"
        assert negotiate.headers["authorization"] == "Bearer usr"

    async def test_events_in_handshake_frame(self, negotiating, invoker, hub_factory) -> None:
        hub_factory(FakeWebSocket(HANDSHAKE_OK + _event("A") + _event("B")))
        received: list[Any] = []

        subscription = EventSubscription(HOST, lambda: "usr", received.append, invoker)
        subscription.start()
        await _wait_until(lambda: len(received) == 2)
        await subscription.close()

        assert [event["Message"] for event in received] == ["A", "B"]

    async def test_async_callback(self, negotiating, invoker, hub_factory) -> None:
        hub_factory(FakeWebSocket(HANDSHAKE_OK, _event("A")))
        received: list[Any] = []

        async def callback(event: Any) -> None:
            received.append(event)

        subscription = EventSubscription(HOST, lambda: "usr", callback, invoker)
        subscription.start()
        await _wait_until(lambda: received)
        await subscription.close()

    async def test_callback_errors_are_logged(
        self, negotiating, invoker, hub_factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        hub_factory(FakeWebSocket(HANDSHAKE_OK, _event("boom"), _event("fine")))
        received: list[str] = []

        def callback(event: Any) -> None:
            if event["Message"] == "boom":
                raise RuntimeError("callback failed")
            received.append(event["Message"])

        subscription = EventSubscription(HOST, lambda: "usr", callback, invoker)
        subscription.start()
        await _wait_until(lambda: received)
        await subscription.close()

        assert received == ["fine"]
        assert "Event callback raised" in caplog.text

    async def test_ignores_other_messages(self, negotiating, invoker, hub_factory) -> None:
        other = encode_message({"type": INVOCATION, "target": "Other", "arguments": ["x"]})
        hub_factory(FakeWebSocket(HANDSHAKE_OK, encode_message({"type": PING}) + other, _event("A")))
        received: list[Any] = []

        subscription = EventSubscription(HOST, lambda: "usr", received.append, invoker)
        subscription.start()
        await _wait_until(lambda: received)
        await subscription.close()

        assert [event["Message"] for event in received] == ["A"]

    async def test_keep_alive_ping(
        self, negotiating, invoker, hub_factory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("safeguardpy.events.KEEP_ALIVE_INTERVAL", 0.01)
        socket = FakeWebSocket(HANDSHAKE_OK)
        hub_factory(socket)

        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)
        subscription.start()
        await _wait_until(lambda: encode_message({"type": PING}) in socket.sent)
        await subscription.close()


# ---------------------------------------------------------------------------
# Closing and reconnecting
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_close_stops_task(self, negotiating, invoker, hub_factory) -> None:
        hub_factory(FakeWebSocket(HANDSHAKE_OK))
        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)
        subscription.start()
        await _wait_until(lambda: subscription.is_active)

        await subscription.close()

        assert not subscription.is_active

    async def test_close_from_callback(
        self, negotiating, invoker, hub_factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        hub_factory(FakeWebSocket(HANDSHAKE_OK, _event("A"), _event("B")))
        received: list[str] = []
        subscriptions: list[EventSubscription] = []

        async def callback(event: Any) -> None:
            received.append(event["Message"])
            await subscriptions[0].close()

        subscription = EventSubscription(HOST, lambda: "usr", callback, invoker)
        subscriptions.append(subscription)
        subscription.start()
        await _wait_until(lambda: received and not subscription.is_active)

        assert received == ["A"]
        assert "Event callback raised" not in caplog.text

    async def test_close_before_start(self, invoker) -> None:
        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)
        await subscription.close()
        assert not subscription.is_active

    async def test_server_close_ends_stream(self, negotiating, invoker, hub_factory) -> None:
        hub = hub_factory(FakeWebSocket(HANDSHAKE_OK, encode_message({"type": CLOSE})))
        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)
        subscription.start()

        await _wait_until(lambda: not subscription.is_active)

        assert len(hub.calls) == 1

    async def test_server_close_allowing_reconnect(self, negotiating, invoker, hub_factory) -> None:
        closing = encode_message({"type": CLOSE, "allowReconnect": True})
        hub = hub_factory(
            FakeWebSocket(HANDSHAKE_OK, closing),
            FakeWebSocket(HANDSHAKE_OK, _event("after-reconnect")),
        )
        received: list[Any] = []

        subscription = EventSubscription(HOST, lambda: "usr", received.append, invoker)
        subscription.start()
        await _wait_until(lambda: received)
        await subscription.close()

        assert len(hub.calls) == 2

    async def test_reads_fresh_token_per_connect(self, negotiating, invoker, hub_factory) -> None:
        closing = encode_message({"type": CLOSE, "allowReconnect": True})
        hub = hub_factory(FakeWebSocket(HANDSHAKE_OK, closing), FakeWebSocket(HANDSHAKE_OK))
        tokens = iter(["first", "second"])

        subscription = EventSubscription(HOST, lambda: next(tokens), lambda event: None, invoker)
        subscription.start()
        await _wait_until(lambda: len(hub.calls) == 2)
        await subscription.close()

        assert hub.calls[1][1]["additional_headers"] == {"Authorization": "Bearer second"}

    async def test_handshake_rejection_gives_up(
        self, negotiating, invoker, hub_factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        rejected = '{"error": "protocol not supported"}' + RECORD_SEPARATOR
        hub = hub_factory(FakeWebSocket(rejected), FakeWebSocket(rejected))
        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)

        with caplog.at_level(logging.INFO, logger="safeguardpy.events"):
            subscription.start()
            await _wait_until(lambda: not subscription.is_active)

        assert len(hub.calls) == 2
        assert "SignalR handshake rejected: protocol not supported" in caplog.text
        assert "Giving up" in caplog.text

    async def test_negotiate_failure_is_logged(
        self, appliance, invoker, hub_factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        hub = hub_factory()
        subscription = EventSubscription(HOST, lambda: "usr", lambda event: None, invoker)
        subscription.start()
        await _wait_until(lambda: not subscription.is_active)

        assert hub.calls == []
        assert len(appliance.calls("POST", NEGOTIATE_PATH)) == 2
        assert "HTTP 404" in caplog.text

    async def test_missing_token(self, appliance, invoker, hub_factory, caplog) -> None:
        hub_factory()
        subscription = EventSubscription(HOST, lambda: "", lambda event: None, invoker)
        subscription.start()
        await _wait_until(lambda: not subscription.is_active)

        assert appliance.requests == []
        assert "No user token available" in caplog.text
