"""Message transport over a byte device."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .protocol import HEADER_SIZE, MESSAGE_SIZE, CommandType, QdbMessage

_log = logging.getLogger("qdb.transport")


class TransportError(OSError):
    """Raised when the underlying device cannot be opened or written."""


class ByteDevice(Protocol):
    """What the transport needs from the device it owns."""

    def read(self, size: int) -> Optional[bytes]: ...

    def write(self, data: bytes) -> Optional[int]: ...


class QdbTransport:
    """Sends and receives whole protocol messages over a byte device.

    The transport owns the device. Whoever watches the device calls
    :meth:`notify_readable` when data arrives; the callbacks in
    ``message_available`` are then run.
    """

    def __init__(self, device: ByteDevice) -> None:
        self._device = device
        self.message_available: list[Callable[[], object]] = []

    @property
    def device(self) -> ByteDevice:
        """The device the transport reads and writes."""
        return self._device

    def open(self) -> None:
        """Open the device for reading and writing."""
        opener = getattr(self._device, "open", None)
        if opener is None:
            return
        if opener() is False:
            raise TransportError("could not open transport device")

    def notify_readable(self) -> None:
        """Tell the listeners that a message can be received."""
        for callback in list(self.message_available):
            callback()

    def send(self, message: QdbMessage) -> None:
        """Write one message to the device as a whole."""
        payload = message.to_bytes()
        count = self._device.write(payload)
        if count is None:
            count = len(payload)
        if count != len(payload):
            _log.critical(
                "Could not write entire message of %d bytes, only wrote %d",
                len(payload),
                count,
            )
            raise TransportError(
                f"could not write entire message of {len(payload)} bytes, "
                f"only wrote {count}"
            )
        _log.debug("TX: %s", message)

    def receive(self) -> QdbMessage:
        """Read one message; an INVALID message if none could be read."""
        data = self._device.read(MESSAGE_SIZE) or b""
        if len(data) < HEADER_SIZE:
            _log.critical(
                "Could only read %d bytes out of package header's %d",
                len(data),
                HEADER_SIZE,
            )
            return QdbMessage(CommandType.INVALID, 0, 0)
        try:
            message = QdbMessage.from_bytes(data)
        except ValueError as error:
            _log.critical("Could not parse received message: %s", error)
            return QdbMessage(CommandType.INVALID, 0, 0)
        _log.debug("RX: %s", message)
        return message