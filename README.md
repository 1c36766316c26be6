# qdbridge

`qdbridge` is a host-side library that speaks a debug-bridge protocol to
embedded devices. It provides the parts a host program needs to talk to a
device over any byte channel:

- **Wire messages** (`qdbridge.protocol`): `QdbMessage` holds a command
  (`CommandType`: `CONNECT`, `REFUSE`, `OPEN`, `WRITE`, `CLOSE`, `OK`), a
  host stream id, a device stream id and a payload. `to_bytes()` and
  `QdbMessage.from_bytes()` encode and decode it in network byte order, and
  `QdbMessage.get_data_size()` reads the payload size from a header.
  `to_command_type()` maps raw values, giving `CommandType.INVALID` for
  unknown ones. `tag_buffer()` encodes a `ServiceTag` with optional zero
  padding. The module also defines `RefuseReason`, `ConfigurationResult`
  and the constants `HEADER_SIZE`, `MESSAGE_SIZE`, `MAX_PAYLOAD_SIZE`,
  `PROTOCOL_VERSION`, `SOCKET_NAME`, `USB_CLASS_ID`, `USB_SUBCLASS_ID` and
  `USB_PROTOCOL_ID`.
- **Transport** (`qdbridge.transport`): `QdbTransport` owns a byte device.
  `send()` writes one whole message and raises `TransportError` if the
  device takes fewer bytes; `receive()` reads one message and returns an
  `INVALID` message when nothing usable arrived. `notify_readable()` runs
  the callbacks in `message_available`.
- **Connections** (`qdbridge.connection`): `Connection` runs the Connect
  handshake, holds back queued messages until the device has answered an
  Open or Write with Ok, answers device Writes with Ok, and reconnects or
  disconnects on Refuse. `create_stream()` sends an Open and hands the new
  `Stream` to a callback once the device accepts it. `close()` closes every
  stream. Callbacks in `disconnected_listeners` run when the connection is
  dropped without reconnecting.
- **Streams** (`qdbridge.stream`): `Stream.write()` sends a `StreamPacket`
  split over as many Write messages as the payload limit requires;
  `receive_message()` joins them back and passes each whole packet to the
  callbacks in `packet_listeners`. `close_listeners` run when the stream
  closes. `wrap_packet()` gives a packet's length-prefixed bytes.
- **Stream packets** (`qdbridge.streampacket`): a `StreamPacket` created
  without data is writable (`write_uint32`, `write_bytes`); one created
  from bytes is readable (`read_uint32`, `read_bytes`).
- **Host messages** (`qdbridge.hostmessages`): the line-delimited JSON
  requests and responses between a client and a host server:
  `create_request`, `request_type`, `request_type_string`,
  `initialize_response`, `response_type`, `response_type_string`,
  `serialise_response` and `check_host_message_version`, with the enums
  `RequestType` and `ResponseType`.
- **Utilities**: `ScopeGuard` (`qdbridge.scopeguard`) calls a function on
  `close()` or on leaving a `with` block unless `dismiss()` was called.
  `InterruptSignalHandler` (`qdbridge.interrupt`) calls a function on the
  first SIGINT or SIGTERM (and SIGBREAK where it exists), then puts back
  the previous handlers so a second signal stops the process.

## Installation

```
pip install .
```

For development with the test suite:

```
pip install ".[test]"
pytest
```

## Example

```python
from qdbridge.protocol import CommandType, QdbMessage
from qdbridge.hostmessages import RequestType, create_request

message = QdbMessage(CommandType.WRITE, 1, 2, b"hello")
wire = message.to_bytes()
assert QdbMessage.from_bytes(wire) == message

line = create_request(RequestType.DEVICES)
# b'{"_version":1,"request":"devices"}\n'
```

Opening a stream on a connection:

```python
from qdbridge.connection import Connection
from qdbridge.protocol import ServiceTag, tag_buffer
from qdbridge.streampacket import StreamPacket
from qdbridge.transport import QdbTransport

connection = Connection(QdbTransport(device))
connection.initialize()
connection.connect()

def on_stream(stream):
    packet = StreamPacket()
    packet.write_uint32(ServiceTag.ECHO)
    stream.write(packet)

connection.create_stream(tag_buffer(ServiceTag.ECHO), on_stream)
```

Here `device` is any object with `read(size)` and `write(data)` methods,
and optionally an `open()` method that returns `False` on failure.
`initialize()` registers the connection with the transport and opens the
device; after that, call `connection.transport.notify_readable()` (or
`connection.handle_message()`) whenever the device has data to read.

## What the package does not do

`qdbridge` is a library only. It has no command-line tool, no host server
listening on `SOCKET_NAME`, and no client that talks to such a server; the
host-message functions only build and parse the JSON lines. It does not
find, open or watch USB devices, and it does not implement the device-side
services (echo, handshake, network configuration) beyond their tags and
result codes. The caller supplies the byte device and drives reading.