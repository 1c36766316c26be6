"""Host side of a device connection: handshake, flow control and streams."""

from __future__ import annotations

import logging
import struct
from collections import deque
from enum import Enum
from typing import Callable

from .abstractconnection import AbstractConnection
from .protocol import PROTOCOL_VERSION, CommandType, QdbMessage, RefuseReason
from .stream import Stream
from .transport import QdbTransport, TransportError

_log = logging.getLogger("qdb.connection")

_UINT32 = struct.Struct(">I")

StreamCreatedCallback = Callable[[Stream], object]


class ConnectionError_(RuntimeError):
    """Raised when the device sends something the host cannot handle."""


class ConnectionState(Enum):
    """Where the connection stands in its exchange with the device."""

    DISCONNECTED = "disconnected"
    WAITING_FOR_CONNECTION = "waiting-for-connection"
    CONNECTED = "connected"
    WAITING = "waiting"


def to_refuse_reason(data: int) -> RefuseReason:
    """Map a raw refuse reason to a RefuseReason, INVALID if unrecognised."""
    if data in (RefuseReason.NOT_CONNECTED, RefuseReason.UNKNOWN_VERSION):
        return RefuseReason(data)
    return RefuseReason.INVALID


def _read_uint32(data: bytes, offset: int = 0) -> int:
    """Read a big-endian uint32, 0 if the data is too short."""
    if len(data) < offset + _UINT32.size:
        return 0
    return _UINT32.unpack_from(data, offset)[0]


class Connection(AbstractConnection):
    """A connection to one device, carrying any number of streams.

    Open and Write messages must be acknowledged with Ok by the device
    before the next queued message is sent. Callbacks in
    ``disconnected_listeners`` run when the connection is dropped.
    """

    def __init__(self, transport: QdbTransport) -> None:
        super().__init__(transport)
        self._state = ConnectionState.DISCONNECTED
        self._stream_requests: dict[int, StreamCreatedCallback] = {}
        self.disconnected_listeners: list[Callable[[], object]] = []

    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    def connect(self) -> None:
        """Start the handshake with the device."""
        if self._state is not ConnectionState.DISCONNECTED:
            raise RuntimeError(f"cannot connect in state {self._state.value}")
        self.enqueue_message(
            QdbMessage(CommandType.CONNECT, 0, 0, _UINT32.pack(PROTOCOL_VERSION))
        )

    def close(self) -> None:
        """Close every open stream and drop the connection."""
        if self._state is ConnectionState.DISCONNECTED:
            return
        if self._state is ConnectionState.WAITING_FOR_CONNECTION:
            self._state = ConnectionState.DISCONNECTED
            return

        # No need to wait for Ok just to send the final Closes
        if self._state is ConnectionState.WAITING:
            self._state = ConnectionState.CONNECTED

        self.outgoing_messages.clear()
        self._stream_requests.clear()

        while self.streams:
            stream = next(iter(self.streams.values()))
            # Sending the Close removes the stream from self.streams
            self.enqueue_message(
                QdbMessage(CommandType.CLOSE, stream.host_id, stream.device_id)
            )

        self._state = ConnectionState.DISCONNECTED

    def create_stream(self, open_tag: bytes, callback: StreamCreatedCallback) -> None:
        """Ask the device for a new stream; ``callback`` gets it once opened."""
        stream_id = self.next_stream_id
        self.next_stream_id += 1
        self._stream_requests[stream_id] = callback
        self.enqueue_message(QdbMessage(CommandType.OPEN, stream_id, 0, open_tag))

    def enqueue_message(self, message: QdbMessage) -> None:
        """Queue a message and send it as soon as the state allows."""
        if message.command is CommandType.INVALID:
            raise ValueError("cannot enqueue an invalid message")
        _log.debug("Connection enqueue: %s", message)
        self.outgoing_messages.append(message)
        self._process_queue()

    def handle_message(self) -> None:
        """Receive one message from the transport and act on it."""
        message = self.transport.receive()
        command = message.command

        if command is CommandType.OPEN:
            raise ConnectionError_("received Open, which the host does not support")

        if command is CommandType.INVALID:
            _log.critical("Connection received invalid message!")
            if self._state is not ConnectionState.DISCONNECTED:
                self._reset_connection(False)
            return

        state = self._state
        if state is ConnectionState.DISCONNECTED:
            _log.warning("Connection got a message in Disconnected state")
            self._reset_connection(True)
        elif state is ConnectionState.WAITING_FOR_CONNECTION:
            if command is CommandType.CONNECT:
                if self._check_version(message):
                    self._state = ConnectionState.CONNECTED
                else:
                    self._state = ConnectionState.DISCONNECTED
            elif command is CommandType.REFUSE:
                self._handle_refuse(message.data)
            else:
                _log.warning(
                    "Connection got an unexpected message in "
                    "WaitingForConnection state %s",
                    message,
                )
                self._reset_connection(True)
        else:
            self._handle_connected_message(message)
        self._process_queue()

    def _handle_connected_message(self, message: QdbMessage) -> None:
        command = message.command
        waiting = self._state is ConnectionState.WAITING
        if command is CommandType.CONNECT:
            _log.warning(
                "Connection received Connect while already connected. Reconnecting."
            )
            self._reset_connection(True)
        elif command is CommandType.REFUSE:
            self._handle_refuse(message.data)
        elif command is CommandType.WRITE:
            self._handle_write(message)
        elif command is CommandType.CLOSE:
            self._close_stream(message.host_stream)
        elif command is CommandType.OK:
            if not waiting:
                _log.warning("Connection received Ok in connected state")
                return
            self._state = ConnectionState.CONNECTED
            if message.host_stream in self._stream_requests:
                # A response to Open
                self._finish_create_stream(message.host_stream, message.device_stream)

    def _send(self, message: QdbMessage) -> bool:
        try:
            self.transport.send(message)
        except TransportError:
            _log.critical("Connection could not send %s", message)
            self._reset_connection(False)
            return False
        return True

    def _acknowledge(self, host_id: int, device_id: int) -> None:
        # Ok is sent in Waiting state too, so both sides never wait for each other
        self._send(QdbMessage(CommandType.OK, host_id, device_id))

    def _process_queue(self) -> None:
        if not self.outgoing_messages:
            return
        if self._state is ConnectionState.WAITING:
            _log.debug("Delaying sending outgoing message to wait for Ok from device")
            return
        if self._state is ConnectionState.WAITING_FOR_CONNECTION:
            _log.debug(
                "Delaying sending outgoing message due to waiting for "
                "Connect or Refuse from device"
            )
            return

        message = self.outgoing_messages.popleft()
        if message.command in (CommandType.INVALID, CommandType.REFUSE, CommandType.OK):
            raise ValueError(f"host cannot send a queued {message.command} message")

        if not self._send(message):
            return

        command = message.command
        if command is CommandType.CONNECT:
            self._state = ConnectionState.WAITING_FOR_CONNECTION
        elif command in (CommandType.OPEN, CommandType.WRITE):
            self._state = ConnectionState.WAITING
        elif command is CommandType.CLOSE:
            # Close is not acknowledged
            self._close_stream(message.host_stream)

    def _reset_connection(self, reconnect: bool) -> None:
        self.outgoing_messages.clear()
        self._state = ConnectionState.DISCONNECTED
        self._stream_requests.clear()
        streams = list(self.streams.values())
        self.streams.clear()
        for stream in streams:
            stream.close()

        if reconnect:
            self.connect()
        else:
            for callback in list(self.disconnected_listeners):
                callback()

    def _close_stream(self, stream_id: int) -> None:
        stream = self.streams.pop(stream_id, None)
        if stream is None:
            return
        stream.close()
        self.outgoing_messages = deque(
            message
            for message in self.outgoing_messages
            if message.host_stream != stream_id
        )

    def _finish_create_stream(self, host_id: int, device_id: int) -> None:
        stream = Stream(self, host_id, device_id)
        self.streams[host_id] = stream
        callback = self._stream_requests.pop(host_id)
        callback(stream)

    def _handle_refuse(self, payload: bytes) -> None:
        reason = to_refuse_reason(_read_uint32(payload))
        if reason is RefuseReason.NOT_CONNECTED:
            _log.warning("Received Refuse due to not being connected, reconnecting")
            self._reset_connection(True)
        elif reason is RefuseReason.UNKNOWN_VERSION:
            version = _read_uint32(payload, _UINT32.size)
            _log.critical(
                "Device does not recognize version %d and requested for "
                "unknown version %d. Can not connect.",
                PROTOCOL_VERSION,
                version,
            )
            self._reset_connection(False)
        else:
            _log.critical("Received Refuse with an invalid reason. Disconnected.")
            self._reset_connection(False)

    def _handle_write(self, message: QdbMessage) -> None:
        stream = self.streams.get(message.host_stream)
        if stream is None:
            _log.warning(
                "Connection received message to non-existing stream %d",
                message.host_stream,
            )
            self.enqueue_message(
                QdbMessage(CommandType.CLOSE, message.host_stream, message.device_stream)
            )
            return
        self._acknowledge(message.host_stream, message.device_stream)
        stream.receive_message(message)

    def _check_version(self, message: QdbMessage) -> bool:
        if len(message.data) != _UINT32.size:
            _log.critical(
                "Device responded with a malformed version of %d bytes",
                len(message.data),
            )
            return False
        version = _read_uint32(message.data)
        if version != PROTOCOL_VERSION:
            _log.critical(
                "Device responded with protocol version %d, but version %d "
                "was requested",
                version,
                PROTOCOL_VERSION,
            )
            return False
        return True