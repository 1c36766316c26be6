"""Common state of a connection that multiplexes streams over a transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING

from .protocol import QdbMessage
from .transport import QdbTransport

if TYPE_CHECKING:
    from .stream import Stream


class AbstractConnection(ABC):
    """Owns a transport, an outgoing queue and the open streams."""

    def __init__(self, transport: QdbTransport) -> None:
        self.transport = transport
        self.outgoing_messages: deque[QdbMessage] = deque()
        self.streams: dict[int, Stream] = {}
        # Stream id 0 has a special meaning, so ids start from 1
        self.next_stream_id = 1

    def initialize(self) -> None:
        """Listen for incoming messages and open the transport."""
        self.transport.message_available.append(self.handle_message)
        self.transport.open()

    @abstractmethod
    def enqueue_message(self, message: QdbMessage) -> None:
        """Queue a message to be sent."""

    @abstractmethod
    def handle_message(self) -> None:
        """Receive and process one message from the transport."""