"""Wire format of the debug bridge protocol: constants, enums and messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

HEADER_SIZE = 4 * 4
MESSAGE_SIZE = 16 * 1024
MAX_PAYLOAD_SIZE = MESSAGE_SIZE - HEADER_SIZE
PROTOCOL_VERSION = 1

SOCKET_NAME = "qdb.socket"

USB_CLASS_ID = 0xFF
USB_SUBCLASS_ID = 0x52
USB_PROTOCOL_ID = 0x1

_UINT32_MAX = 0xFFFFFFFF
_NULL_DATA_SIZE = 0xFFFFFFFF
_HEADER = struct.Struct(">IIII")
_UINT32 = struct.Struct(">I")


class RefuseReason(IntEnum):
    """Reason carried in the payload of a Refuse message."""

    INVALID = 0  # only produced when decoding fails
    NOT_CONNECTED = 1
    UNKNOWN_VERSION = 2


class CommandType(IntEnum):
    """Command field of a message; the values spell the command in ASCII."""

    INVALID = 0  # never sent
    CONNECT = 0x434E584E  # CNXN
    REFUSE = 0x52465345  # RFSE
    OPEN = 0x4F50454E  # OPEN
    WRITE = 0x57525445  # WRTE
    CLOSE = 0x434C5345  # CLSE
    OK = 0x4F4B4159  # OKAY

    def __str__(self) -> str:
        return self.name.capitalize()


class ServiceTag(IntEnum):
    """Tag sent in an Open message to select the service on the device."""

    ECHO = 1
    HANDSHAKE = 2
    NETWORK_CONFIGURATION = 3


class ConfigurationResult(IntEnum):
    """Outcome of a network configuration request."""

    SUCCESS = 0
    FAILURE = 1
    ALREADY_SET = 2


def to_command_type(command: int) -> CommandType:
    """Map a raw command value to a CommandType, INVALID if unrecognised."""
    try:
        return CommandType(command)
    except ValueError:
        return CommandType.INVALID


def tag_buffer(tag: ServiceTag, padding: int = 0) -> bytes:
    """Encode a service tag, followed by ``padding`` zero bytes."""
    if padding < 0:
        raise ValueError("padding must not be negative")
    return _UINT32.pack(int(tag)) + bytes(padding)


def _check_uint32(name: str, value: int) -> int:
    value = int(value)
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{name} {value} does not fit in 32 bits")
    return value


@dataclass
class QdbMessage:
    """A single protocol message: command, stream ids and payload."""

    command: CommandType = CommandType.INVALID
    host_stream: int = 0
    device_stream: int = 0
    data: bytes = b""

    def __post_init__(self) -> None:
        self.command = CommandType(self.command)
        self.host_stream = _check_uint32("host stream", self.host_stream)
        self.device_stream = _check_uint32("device stream", self.device_stream)
        self.data = bytes(self.data)

    @staticmethod
    def get_data_size(header: bytes) -> int:
        """Return the payload size announced in a message header."""
        if len(header) < HEADER_SIZE:
            raise ValueError(
                f"header needs {HEADER_SIZE} bytes, got {len(header)}"
            )
        size = _HEADER.unpack_from(header)[3]
        if size == _NULL_DATA_SIZE:
            return 0
        return size

    def to_bytes(self) -> bytes:
        """Serialise the message in network byte order."""
        size = len(self.data) if self.data else _NULL_DATA_SIZE
        header = _HEADER.pack(
            int(self.command), self.host_stream, self.device_stream, size
        )
        return header + self.data

    @classmethod
    def from_bytes(cls, data: bytes) -> QdbMessage:
        """Parse a message; bytes after the payload are ignored."""
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"message needs at least {HEADER_SIZE} bytes, got {len(data)}"
            )
        command, host_stream, device_stream, _ = _HEADER.unpack_from(data)
        size = cls.get_data_size(data)
        end = HEADER_SIZE + size
        if len(data) < end:
            raise ValueError(
                f"message announces {size} bytes of payload, "
                f"only {len(data) - HEADER_SIZE} present"
            )
        return cls(
            to_command_type(command),
            host_stream,
            device_stream,
            bytes(data[HEADER_SIZE:end]),
        )

    def __str__(self) -> str:
        return f"{self.command} {self.host_stream} {self.device_stream} {self.data!r}"