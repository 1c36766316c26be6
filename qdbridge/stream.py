"""A logical stream of packets carried by a connection."""

from __future__ import annotations

import struct
from typing import TYPE_CHECKING, Callable

from .protocol import MAX_PAYLOAD_SIZE, CommandType, QdbMessage
from .streampacket import StreamPacket

if TYPE_CHECKING:
    from .abstractconnection import AbstractConnection

_UINT32 = struct.Struct(">I")


def wrap_packet(packet: StreamPacket) -> bytes:
    """Prefix a packet's bytes with their length."""
    buffer = packet.buffer()
    return _UINT32.pack(len(buffer)) + buffer


class Stream:
    """One stream between host and device, identified by a pair of ids.

    Packets are split into Write messages of at most the maximum payload
    size; received Write messages are joined back into packets, which are
    passed to the callbacks in ``packet_listeners``.
    """

    def __init__(
        self, connection: AbstractConnection, host_id: int, device_id: int
    ) -> None:
        self._connection = connection
        self._host_id = host_id
        self._device_id = device_id
        self._partly_received = False
        self._incoming_size = 0
        self._incoming = bytearray()
        self.packet_listeners: list[Callable[[StreamPacket], object]] = []
        self.close_listeners: list[Callable[[], object]] = []

    @property
    def host_id(self) -> int:
        return self._host_id

    @property
    def device_id(self) -> int:
        return self._device_id

    def write(self, packet: StreamPacket) -> None:
        """Send a packet, split over as many Write messages as needed."""
        if len(packet) == 0:
            raise ValueError("cannot write an empty packet to a stream")
        data = wrap_packet(packet)
        for start in range(0, len(data), MAX_PAYLOAD_SIZE):
            self._connection.enqueue_message(
                QdbMessage(
                    CommandType.WRITE,
                    self._host_id,
                    self._device_id,
                    data[start:start + MAX_PAYLOAD_SIZE],
                )
            )

    def request_close(self) -> None:
        """Ask the connection to close this stream."""
        self._connection.enqueue_message(
            QdbMessage(CommandType.CLOSE, self._host_id, self._device_id)
        )

    def close(self) -> None:
        """Notify listeners that the stream closed; used by the connection."""
        for callback in list(self.close_listeners):
            callback()

    def receive_message(self, message: QdbMessage) -> None:
        """Take in one Write message addressed to this stream."""
        if message.command is not CommandType.WRITE:
            raise ValueError(f"stream can only receive Write, got {message.command}")
        if message.host_stream != self._host_id:
            raise ValueError(
                f"message for host stream {message.host_stream}, "
                f"this is {self._host_id}"
            )
        if message.device_stream != self._device_id:
            raise ValueError(
                f"message for device stream {message.device_stream}, "
                f"this is {self._device_id}"
            )

        data = message.data
        if self._partly_received:
            missing = self._incoming_size - len(self._incoming) - len(data)
            if missing < 0:
                raise ValueError(
                    "one message must only contain data from a single stream packet"
                )
            self._incoming += data
            if missing > 0:
                return
        else:
            if len(data) < _UINT32.size:
                raise ValueError("message too short to hold a packet size")
            packet_size = _UINT32.unpack_from(data)[0]
            data_size = len(data) - _UINT32.size
            if data_size > packet_size:
                raise ValueError(
                    "one message must only contain data from a single stream packet"
                )
            self._incoming = bytearray(data[_UINT32.size:])
            if data_size < packet_size:
                self._partly_received = True
                self._incoming_size = packet_size
                return

        packet = StreamPacket(bytes(self._incoming))
        self._partly_received = False
        self._incoming_size = 0
        self._incoming = bytearray()

        # Listeners run last since handling a packet may close the stream
        for callback in list(self.packet_listeners):
            callback(packet)