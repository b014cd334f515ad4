"""TCP transport to the in-game input receiver.

One outbound socket per ``SessionState``, opened lazily and reused while it
stays writable. The protocol is strictly request/response: each command
written to the socket gets exactly one JSON line back, and at most one
command is in flight at a time. Replies carry no request id; they are
matched to commands purely by order.

Socket events drive the single pending request:

- data: each complete line settles it (JSON → result, garbage → ProtocolError)
- error / close: it is rejected with ReceiverConnectionError
- timeout: ``send_command`` rejects it, clears the slot, and drops the socket
- teardown: ``disconnect`` rejects it with SessionEndedError

Whichever happens first wins; the others find an empty slot and do nothing.
A reply that arrives after its command timed out is never read: the socket
it would arrive on is closed, and the next command opens a fresh one.

Examples:
    Send a command against a running receiver::

        >>> state = SessionState()
        >>> reply = await send_command(
        ...     state, {"type": "get_state"}, host="127.0.0.1", port=9876
        ... )
        >>> disconnect(state, "done")
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from godot_session.lib.errors import (
    CommandTimeoutError,
    ProtocolError,
    ReceiverConnectionError,
    SessionEndedError,
)
from godot_session.lib.framing import decode_line, encode_message
from godot_session.lib.state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9876
DEFAULT_COMMAND_TIMEOUT = 5.0
DEFAULT_CONNECT_TIMEOUT = 5.0

START_HINT = "Is the game running? Start an interactive session with start_session first."

LostCallback = Callable[[BaseException | None], None]
"""Called after the receiver connection is lost (``None`` = clean close)."""


class ReceiverProtocol(asyncio.Protocol):
    """asyncio protocol bound to a ``SessionState``."""

    def __init__(self, state: SessionState, on_lost: LostCallback | None = None) -> None:
        self.state = state
        self.on_lost = on_lost
        self.transport: asyncio.Transport | None = None

    @property
    def is_usable(self) -> bool:
        """Whether the socket is open and can still be written to."""
        return self.transport is not None and not self.transport.is_closing()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.Transport)
        self.transport = transport
        self.state.connection = self

    def data_received(self, data: bytes) -> None:
        for line in self.state.framer.feed(data):
            self.deliver(line)

    def deliver(self, line: str) -> None:
        """Settle the pending request with one reply line."""
        if self.state.pending is None:
            logger.debug("Dropping unsolicited reply: %s", line[:200])
            return
        try:
            reply = decode_line(line)
        except ProtocolError as e:
            self.state.settle_pending(error=e)
            return
        self.state.settle_pending(reply)

    def eof_received(self) -> bool:
        # Returning False lets the transport close itself.
        return False

    def connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        if self.state.connection is not self:
            return
        self.state.connection = None
        self.state.framer.clear()
        if exc is not None:
            logger.warning("Receiver connection error: %s", exc)
            error = ReceiverConnectionError(f"TCP connection error: {exc}. {START_HINT}")
            error.__cause__ = exc
        else:
            logger.info("Receiver connection closed by Godot")
            error = ReceiverConnectionError("TCP connection closed by Godot")
        self.state.settle_pending(error=error)
        if self.on_lost is not None:
            self.on_lost(exc)

    def write(self, data: bytes) -> None:
        if self.transport is None:
            raise ReceiverConnectionError(f"Receiver connection is closed. {START_HINT}")
        self.transport.write(data)

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()


async def acquire(
    state: SessionState,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    on_lost: LostCallback | None = None,
) -> ReceiverProtocol:
    """Return a usable connection, opening a new one if needed.

    An open, writable connection is reused as is. Otherwise the stale
    reference and any buffered bytes are discarded and a fresh connection
    is opened. Failures are not retried.

    Raises:
        ReceiverConnectionError: If the connection cannot be established.
    """
    current = state.connection
    if current is not None and current.is_usable:
        return current

    state.connection = None
    state.framer.clear()

    loop = asyncio.get_running_loop()
    logger.debug("Connecting to receiver at %s:%d", host, port)
    try:
        _, protocol = await asyncio.wait_for(
            loop.create_connection(lambda: ReceiverProtocol(state, on_lost), host, port),
            timeout=connect_timeout,
        )
    except (OSError, TimeoutError) as e:
        reason = str(e) or type(e).__name__
        raise ReceiverConnectionError(
            f"Cannot connect to Godot input receiver at {host}:{port}: {reason}. {START_HINT}"
        ) from e
    return protocol


async def send_command(
    state: SessionState,
    command: dict[str, Any],
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    on_lost: LostCallback | None = None,
) -> Any:
    """Send one command and wait for its reply.

    Overlapping calls are queued behind ``state.send_lock`` in arrival
    order, so replies always come back in the order commands were sent.
    The timeout covers the wait for the reply only, not the queue.

    Args:
        state: Session state owning the connection and pending slot.
        command: JSON object with at least a string ``type`` field.
        host: Receiver host.
        port: Receiver port.
        timeout: Seconds to wait for the reply after writing the command.
        connect_timeout: Seconds to wait for the connection to open.
        on_lost: Callback for a newly opened connection being lost.

    Returns:
        The decoded JSON reply.

    Raises:
        ValueError: If the command has no string ``type``.
        ReceiverConnectionError: If the receiver is unreachable or the
            connection drops before the reply.
        ProtocolError: If the reply is not valid JSON.
        CommandTimeoutError: If no reply arrives in time.
    """
    command_type = command.get("type")
    if not isinstance(command_type, str) or not command_type:
        raise ValueError("Command must be a JSON object with a string 'type' field")
    payload = encode_message(command)

    async with state.send_lock:
        connection = await acquire(
            state, host, port, connect_timeout=connect_timeout, on_lost=on_lost
        )
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        state.pending = future
        try:
            connection.write(payload)
            logger.debug("Sent command: %s", command_type)
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as e:
            # The stale reply would otherwise settle the next command.
            discard_connection(state)
            raise CommandTimeoutError(
                f"TCP command '{command_type}' timed out after {timeout:g}s"
            ) from e
        except asyncio.CancelledError:
            discard_connection(state)
            raise
        finally:
            if state.pending is future:
                state.pending = None


def discard_connection(state: SessionState) -> None:
    """Close and forget the connection without touching the pending slot."""
    connection = state.connection
    state.connection = None
    state.framer.clear()
    if connection is not None:
        connection.close()


def disconnect(state: SessionState, reason: str = "Session ended") -> None:
    """Close the connection and reject any pending request.

    Safe to call with no connection open.
    """
    discard_connection(state)
    if state.settle_pending(error=SessionEndedError(reason)):
        logger.info("Rejected pending command: %s", reason)
