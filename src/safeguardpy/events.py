"""Push notifications from the appliance's SignalR event hub.

:class:`EventSubscription` keeps one long-lived stream to
``https://<host>/service/event/signalr`` open in a background
:class:`asyncio.Task`. It speaks the ASP.NET Core SignalR JSON hub protocol
over a websocket:

1. ``POST .../negotiate`` (bearer-authenticated) to obtain a connection token.
2. Open ``wss://<host>/service/event/signalr?id=...`` and send the
   ``{"protocol": "json", "version": 1}`` handshake.
3. Dispatch every ``NotifyEventAsync`` invocation to the caller's callback,
   answering the server's keep-alive pings.

The user token is read again from storage before every (re)connect, so a
rotated token is picked up without registering again. Failures never
propagate to the caller that registered: they are logged, and the stream
reconnects after 0, 2, 10 and 30 seconds before giving up.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlencode

from websockets.asyncio.client import connect

from safeguardpy.client import tls
from safeguardpy.client.invoker import Invoker
from safeguardpy.client.response import parse_json_body
from safeguardpy.exceptions import MissingCredentialError, ProtocolError
from safeguardpy.models import HttpMethod

logger = logging.getLogger(__name__)

SIGNALR_PATH = "/service/event/signalr"
NOTIFY_EVENT = "NotifyEventAsync"
RECORD_SEPARATOR = "\x1e"
RECONNECT_DELAYS: tuple[float, ...] = (0, 2, 10, 30)
KEEP_ALIVE_INTERVAL = 15.0

# SignalR hub message types
INVOCATION = 1
PING = 6
CLOSE = 7

EventCallback = Callable[[Any], Union[None, Awaitable[None]]]
TokenFactory = Callable[[], str]


def encode_message(message: dict[str, Any]) -> str:
    """Serialise one hub message with its record separator."""
    return json.dumps(message) + RECORD_SEPARATOR


def split_messages(frame: Union[str, bytes]) -> list[dict[str, Any]]:
    """Split a websocket frame into its JSON hub messages."""
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8")
    return [json.loads(part) for part in frame.split(RECORD_SEPARATOR) if part.strip()]


class EventSubscription:
    """A background SignalR stream delivering appliance events to a callback.

    Created by :meth:`SafeguardConnection.register_signalr
    <safeguardpy.connection.SafeguardConnection.register_signalr>`; call
    :meth:`close` (or ``unregister_signalr``) to tear it down.

    Args:
        host_name: Appliance host name or address.
        token_factory: Returns the current user token; called per connect.
        callback: Receives each event payload (the first invocation
            argument, typically a dict with ``Message``). May be a coroutine
            function.
        invoker: Transport used for negotiation.
    """

    def __init__(
        self,
        host_name: str,
        token_factory: TokenFactory,
        callback: EventCallback,
        invoker: Invoker,
    ) -> None:
        self._host_name = host_name
        self._token_factory = token_factory
        self._callback = callback
        self._invoker = invoker
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False
        self._attempt = 0

    @property
    def is_active(self) -> bool:
        """Whether the background task is still running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background stream; returns immediately."""
        if self._task is None:
            self._task = asyncio.create_task(
                self._run(), name=f"safeguardpy-events-{self._host_name}"
            )

    async def close(self) -> None:
        """Stop the stream and wait for the background task to finish."""
        self._closed = True
        if self._task is None:
            return
        self._task.cancel()
        if self._task is asyncio.current_task():
            # Called from the callback; no further events are dispatched.
            logger.info("Event stream to %s closing", self._host_name)
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Event stream to %s closed", self._host_name)

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self._stream_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Event stream to %s failed: %s", self._host_name, exc)

            if self._closed:
                break
            if self._attempt >= len(RECONNECT_DELAYS):
                logger.error(
                    "Giving up on event stream to %s after %d reconnect attempts",
                    self._host_name,
                    self._attempt,
                )
                break
            delay = RECONNECT_DELAYS[self._attempt]
            self._attempt += 1
            logger.info("Reconnecting event stream to %s in %ss", self._host_name, delay)
            await asyncio.sleep(delay)

    async def _negotiate(self, token: str) -> str:
        url = f"https://{self._host_name}{SIGNALR_PATH}/negotiate?negotiateVersion=1"
        response = await self._invoker.request(
            HttpMethod.POST, url, headers={"authorization": f"Bearer {token}"}
        )
        data = parse_json_body(response, "negotiate")
        if not isinstance(data, dict):
            raise ProtocolError("Malformed negotiate response")
        connection_token = data.get("connectionToken") or data.get("connectionId")
        if not connection_token:
            raise ProtocolError("Negotiate response carries no connection token")
        return connection_token

    async def _stream_once(self) -> None:
        token = self._token_factory()
        if not token:
            raise MissingCredentialError("No user token available for the event stream")

        connection_token = await self._negotiate(token)
        query = urlencode({"id": connection_token, "access_token": token})
        url = f"wss://{self._host_name}{SIGNALR_PATH}?{query}"

        async with connect(
            url,
            ssl=tls.default_context(self._invoker.config.verify_ssl),
            additional_headers={"Authorization": f"Bearer {token}"},
        ) as websocket:
            await websocket.send(encode_message({"protocol": "json", "version": 1}))
            messages = split_messages(await websocket.recv())
            if not messages or messages[0].get("error"):
                error = messages[0].get("error") if messages else "empty handshake response"
                raise ProtocolError(f"SignalR handshake rejected: {error}")

            self._attempt = 0
            logger.info("Event stream to %s established", self._host_name)

            pending = messages[1:]
            while True:
                for message in pending:
                    if not await self._dispatch(message):
                        return
                try:
                    frame = await asyncio.wait_for(websocket.recv(), KEEP_ALIVE_INTERVAL)
                except asyncio.TimeoutError:
                    await websocket.send(encode_message({"type": PING}))
                    pending = []
                    continue
                pending = split_messages(frame)

    async def _dispatch(self, message: dict[str, Any]) -> bool:
        """Handle one hub message; returns False once the stream is closed by either side."""
        if self._closed:
            return False
        kind = message.get("type")
        if kind == CLOSE:
            if message.get("error"):
                logger.warning("Event hub closed the stream: %s", message["error"])
            if not message.get("allowReconnect", False):
                self._closed = True
            return False
        if kind != INVOCATION or message.get("target") != NOTIFY_EVENT:
            return True

        arguments = message.get("arguments") or [None]
        try:
            result = self._callback(arguments[0])
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Event callback raised")
        return True
