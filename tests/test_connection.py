from collections import deque

import pytest

from qdbridge.connection import (
    Connection,
    ConnectionError_,
    ConnectionState,
    to_refuse_reason,
)
from qdbridge.protocol import CommandType, QdbMessage, RefuseReason
from qdbridge.stream import wrap_packet
from qdbridge.streampacket import StreamPacket
from qdbridge.transport import QdbTransport

VERSION_BYTES = b"\x00\x00\x00\x01"


class FakeDevice:
    def __init__(self):
        self.incoming = deque()
        self.sent = []
        self.fail_writes = False

    def read(self, size):
        if not self.incoming:
            return b""
        return self.incoming.popleft()

    def write(self, data):
        if self.fail_writes:
            return 0
        self.sent.append(QdbMessage.from_bytes(data))
        return len(data)


def make_connection():
    device = FakeDevice()
    transport = QdbTransport(device)
    conn = Connection(transport)
    conn.initialize()
    return conn, device, transport


def deliver(device, transport, message):
    device.incoming.append(message.to_bytes())
    transport.notify_readable()


def connected():
    conn, device, transport = make_connection()
    conn.connect()
    deliver(device, transport, QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES))
    return conn, device, transport


def with_stream(device_id=7):
    conn, device, transport = connected()
    streams = []
    conn.create_stream(b"tag", streams.append)
    deliver(device, transport, QdbMessage(CommandType.OK, 1, device_id))
    return conn, device, transport, streams[0]


def test_to_refuse_reason():
    assert to_refuse_reason(1) is RefuseReason.NOT_CONNECTED
    assert to_refuse_reason(2) is RefuseReason.UNKNOWN_VERSION
    assert to_refuse_reason(0) is RefuseReason.INVALID
    assert to_refuse_reason(99) is RefuseReason.INVALID


def test_connect_sends_version():
    conn, device, _ = make_connection()
    assert conn.state() is ConnectionState.DISCONNECTED
    conn.connect()
    assert device.sent == [QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES)]
    assert conn.state() is ConnectionState.WAITING_FOR_CONNECTION


def test_connect_twice_raises():
    conn, _, _ = make_connection()
    conn.connect()
    with pytest.raises(RuntimeError):
        conn.connect()


def test_handshake_connects():
    conn, _, _ = connected()
    assert conn.state() is ConnectionState.CONNECTED


def test_wrong_version_disconnects():
    conn, device, transport = make_connection()
    conn.connect()
    deliver(device, transport, QdbMessage(CommandType.CONNECT, 0, 0, b"\x00\x00\x00\x02"))
    assert conn.state() is ConnectionState.DISCONNECTED


def test_create_stream_opens_and_calls_back():
    conn, device, transport = connected()
    streams = []
    conn.create_stream(b"tag", streams.append)
    assert device.sent[-1] == QdbMessage(CommandType.OPEN, 1, 0, b"tag")
    assert conn.state() is ConnectionState.WAITING
    assert streams == []
    deliver(device, transport, QdbMessage(CommandType.OK, 1, 7))
    assert conn.state() is ConnectionState.CONNECTED
    assert len(streams) == 1
    assert (streams[0].host_id, streams[0].device_id) == (1, 7)
    assert conn.streams[1] is streams[0]


def test_stream_ids_increase():
    conn, device, transport = connected()
    conn.create_stream(b"a", lambda s: None)
    deliver(device, transport, QdbMessage(CommandType.OK, 1, 3))
    conn.create_stream(b"b", lambda s: None)
    assert device.sent[-1] == QdbMessage(CommandType.OPEN, 2, 0, b"b")


def test_messages_delayed_until_connected():
    conn, device, transport = make_connection()
    conn.connect()
    conn.create_stream(b"tag", lambda s: None)
    assert [m.command for m in device.sent] == [CommandType.CONNECT]
    deliver(device, transport, QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES))
    assert device.sent[-1] == QdbMessage(CommandType.OPEN, 1, 0, b"tag")


def test_write_waits_for_ok():
    conn, device, transport, stream = with_stream()
    first = StreamPacket().write_uint32(5)
    second = StreamPacket().write_uint32(6)
    stream.write(first)
    stream.write(second)
    assert device.sent[-1] == QdbMessage(CommandType.WRITE, 1, 7, wrap_packet(first))
    assert conn.state() is ConnectionState.WAITING
    deliver(device, transport, QdbMessage(CommandType.OK, 1, 7))
    assert device.sent[-1] == QdbMessage(CommandType.WRITE, 1, 7, wrap_packet(second))


def test_incoming_write_is_acknowledged_and_delivered():
    conn, device, transport, stream = with_stream()
    received = []
    stream.packet_listeners.append(received.append)
    packet = StreamPacket().write_bytes(b"hi")
    deliver(device, transport, QdbMessage(CommandType.WRITE, 1, 7, wrap_packet(packet)))
    assert device.sent[-1] == QdbMessage(CommandType.OK, 1, 7)
    assert [p.buffer() for p in received] == [packet.buffer()]


def test_write_to_unknown_stream_is_closed():
    conn, device, transport = connected()
    deliver(device, transport, QdbMessage(CommandType.WRITE, 5, 9, b"\x00\x00\x00\x00"))
    assert device.sent[-1] == QdbMessage(CommandType.CLOSE, 5, 9)


def test_close_from_device_closes_stream():
    conn, device, transport, stream = with_stream()
    closed = []
    stream.close_listeners.append(lambda: closed.append(True))
    deliver(device, transport, QdbMessage(CommandType.CLOSE, 1, 7))
    assert closed == [True]
    assert conn.streams == {}


def test_refuse_not_connected_reconnects():
    conn, device, transport, stream = with_stream()
    closed = []
    stream.close_listeners.append(lambda: closed.append(True))
    deliver(device, transport, QdbMessage(CommandType.REFUSE, 0, 0, b"\x00\x00\x00\x01"))
    assert closed == [True]
    assert device.sent[-1] == QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES)
    assert conn.state() is ConnectionState.WAITING_FOR_CONNECTION


def test_refuse_unknown_version_disconnects():
    conn, device, transport = make_connection()
    dropped = []
    conn.disconnected_listeners.append(lambda: dropped.append(True))
    conn.connect()
    payload = b"\x00\x00\x00\x02\x00\x00\x00\x02"
    deliver(device, transport, QdbMessage(CommandType.REFUSE, 0, 0, payload))
    assert dropped == [True]
    assert conn.state() is ConnectionState.DISCONNECTED


def test_invalid_message_disconnects():
    conn, device, transport = connected()
    dropped = []
    conn.disconnected_listeners.append(lambda: dropped.append(True))
    device.incoming.append(b"\x01\x02")
    transport.notify_readable()
    assert dropped == [True]
    assert conn.state() is ConnectionState.DISCONNECTED


def test_open_from_device_raises():
    conn, device, transport = connected()
    device.incoming.append(QdbMessage(CommandType.OPEN, 1, 2).to_bytes())
    with pytest.raises(ConnectionError_):
        conn.handle_message()


def test_connect_while_connected_reconnects():
    conn, device, transport = connected()
    count = len(device.sent)
    deliver(device, transport, QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES))
    assert len(device.sent) == count + 1
    assert device.sent[-1].command is CommandType.CONNECT
    assert conn.state() is ConnectionState.WAITING_FOR_CONNECTION


def test_message_while_disconnected_reconnects():
    conn, device, transport = make_connection()
    deliver(device, transport, QdbMessage(CommandType.OK, 0, 0))
    assert device.sent == [QdbMessage(CommandType.CONNECT, 0, 0, VERSION_BYTES)]


def test_ok_in_connected_state_is_ignored():
    conn, device, transport = connected()
    count = len(device.sent)
    deliver(device, transport, QdbMessage(CommandType.OK, 1, 1))
    assert conn.state() is ConnectionState.CONNECTED
    assert len(device.sent) == count


def test_close_sends_close_for_streams():
    conn, device, transport, stream = with_stream()
    closed = []
    stream.close_listeners.append(lambda: closed.append(True))
    conn.close()
    assert device.sent[-1] == QdbMessage(CommandType.CLOSE, 1, 7)
    assert closed == [True]
    assert conn.streams == {}
    assert conn.state() is ConnectionState.DISCONNECTED


def test_close_while_waiting_for_connection():
    conn, device, _ = make_connection()
    conn.connect()
    conn.close()
    assert conn.state() is ConnectionState.DISCONNECTED
    assert len(device.sent) == 1


def test_send_failure_disconnects():
    conn, device, transport = connected()
    dropped = []
    conn.disconnected_listeners.append(lambda: dropped.append(True))
    device.fail_writes = True
    conn.create_stream(b"tag", lambda s: None)
    assert dropped == [True]
    assert conn.state() is ConnectionState.DISCONNECTED
    assert len(conn.outgoing_messages) == 0


def test_enqueue_invalid_raises():
    conn, _, _ = connected()
    with pytest.raises(ValueError):
        conn.enqueue_message(QdbMessage())