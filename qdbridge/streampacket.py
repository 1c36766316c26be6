"""Packets of typed values exchanged over a stream."""

from __future__ import annotations

import struct

_UINT32 = struct.Struct(">I")
_UINT32_MAX = 0xFFFFFFFF
_NULL_BYTES = 0xFFFFFFFF


class StreamPacket:
    """A buffer of big-endian values.

    Created without data, the packet is writable and starts empty.
    Created from data, it is readable from the start of that data.
    """

    def __init__(self, data: bytes | None = None) -> None:
        if data is None:
            self._buffer = bytearray()
            self._readable = False
        else:
            self._buffer = bytearray(data)
            self._readable = True
        self._position = 0

    def buffer(self) -> bytes:
        """Return the packet's bytes."""
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def _require_writable(self) -> None:
        if self._readable:
            raise ValueError("packet was created for reading")

    def _require_readable(self) -> None:
        if not self._readable:
            raise ValueError("packet was created for writing")

    def _take(self, count: int) -> bytes:
        end = self._position + count
        if end > len(self._buffer):
            raise EOFError(
                f"need {count} bytes, only {len(self._buffer) - self._position} left"
            )
        chunk = bytes(self._buffer[self._position:end])
        self._position = end
        return chunk

    def write_uint32(self, value: int) -> StreamPacket:
        """Append an unsigned 32-bit integer."""
        self._require_writable()
        value = int(value)
        if not 0 <= value <= _UINT32_MAX:
            raise ValueError(f"{value} does not fit in 32 bits")
        self._buffer += _UINT32.pack(value)
        return self

    def write_bytes(self, data: bytes) -> StreamPacket:
        """Append a byte string, preceded by its length."""
        self._require_writable()
        data = bytes(data)
        if len(data) >= _NULL_BYTES:
            raise ValueError("byte string too long for a packet")
        self._buffer += _UINT32.pack(len(data)) + data
        return self

    def read_uint32(self) -> int:
        """Read the next unsigned 32-bit integer."""
        self._require_readable()
        return _UINT32.unpack(self._take(_UINT32.size))[0]

    def read_bytes(self) -> bytes:
        """Read the next length-prefixed byte string."""
        self._require_readable()
        start = self._position
        length = _UINT32.unpack(self._take(_UINT32.size))[0]
        if length == _NULL_BYTES:
            return b""
        try:
            return self._take(length)
        except EOFError:
            self._position = start
            raise